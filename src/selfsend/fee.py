"""Gas price estimation."""

import logging
import math
import random
from dataclasses import dataclass
from fractions import Fraction

from selfsend import randoms
from selfsend.chain import ChainConnector
from selfsend.constants import FEE_JITTER_MAX, FEE_JITTER_MIN, FeeMode
from selfsend.models import AutoFee, FeeConfig, FixedFee

log = logging.getLogger("selfsend.fee")


@dataclass(frozen=True, slots=True)
class FeeQuote:
    """Gas price chosen for one transaction.

    All values are in wei. ``hint`` and ``factor`` are only set for auto pricing.
    """

    price: int
    mode: FeeMode
    hint: int | None = None
    factor: float | None = None

    @classmethod
    def jittered(cls, hint: int, factor: float) -> "FeeQuote":
        # exact for hints beyond 2**53
        return cls(price=math.floor(hint * Fraction(factor)), mode=FeeMode.AUTO, hint=hint, factor=factor)


class FeeEstimator:
    """Turns a FeeConfig into a FeeQuote.

    Auto pricing multiplies the network's gas price by a factor drawn uniformly from the
    closed interval [1.00, 1.10], so that accounts in one batch don't all carry an
    identical gas price.
    """

    def __init__(self, connector: ChainConnector, *, rng: random.Random | None = None) -> None:
        self.connector = connector
        self.rng = rng or randoms.rng

    def jitter(self) -> float:
        return min(max(self.rng.uniform(FEE_JITTER_MIN, FEE_JITTER_MAX), FEE_JITTER_MIN), FEE_JITTER_MAX)

    async def estimate(self, fee: FeeConfig) -> FeeQuote:
        if isinstance(fee, FixedFee):
            return FeeQuote(price=fee.price_per_unit, mode=FeeMode.FIXED)
        if not isinstance(fee, AutoFee):
            raise TypeError(f"unsupported fee config: {fee!r}")
        hint = await self.connector.read_fee_hint()
        quote = FeeQuote.jittered(hint, self.jitter())
        log.debug("gas price hint=%s factor=%.4f price=%s", hint, quote.factor, quote.price)
        return quote
