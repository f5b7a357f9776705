"""Spend amount selection.

All amounts are integers in the asset's smallest unit. Selection is uniform over the
computed bound and intentionally non-reproducible; only the bounds are guaranteed.
"""

import math
import random
from dataclasses import dataclass
from fractions import Fraction

from selfsend import randoms
from selfsend.constants import TOKEN_MAX_FRACTION, OutcomeStatus


@dataclass(frozen=True, slots=True)
class AmountSelection:
    amount: int = 0
    skipped: OutcomeStatus | None = None

    @property
    def ok(self) -> bool:
        return self.skipped is None


ZERO_BALANCE = AmountSelection(skipped=OutcomeStatus.SKIPPED_ZERO_BALANCE)
INSUFFICIENT_FOR_FEE = AmountSelection(skipped=OutcomeStatus.SKIPPED_INSUFFICIENT_FOR_FEE)


def select_native_amount(balance: int, cost: int, rng: random.Random | None = None) -> AmountSelection:
    """Pick an amount in [0, balance - cost] so the fee stays covered."""
    if balance <= 0:
        return ZERO_BALANCE
    spendable = balance - cost
    if spendable <= 0:
        return INSUFFICIENT_FOR_FEE
    return AmountSelection(amount=(rng or randoms.rng).randint(0, spendable))


def token_ceiling(balance: int, fraction: float) -> int:
    return math.floor(balance * Fraction(fraction))


def select_token_amount(balance: int, rng: random.Random | None = None) -> AmountSelection:
    """Pick an amount in [0, floor(balance * r)] with r uniform in [0, 0.9].

    The fee is paid in the native asset, so coverage is checked separately with
    ``covers_fee``.
    """
    if balance <= 0:
        return ZERO_BALANCE
    rng = rng or randoms.rng
    r = min(max(rng.uniform(0.0, TOKEN_MAX_FRACTION), 0.0), TOKEN_MAX_FRACTION)
    return AmountSelection(amount=rng.randint(0, token_ceiling(balance, r)))


def covers_fee(native_balance: int, cost: int) -> bool:
    return native_balance >= cost
