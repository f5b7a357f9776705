"""Domain data structures shared by the scheduler, the controller and the API."""

import time
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from web3 import Web3

from selfsend.constants import OutcomeStatus
from selfsend.errors import InvalidConfiguration


@dataclass(frozen=True, slots=True)
class NativeAsset:
    symbol: str
    decimals: int = 18

    @property
    def is_native(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class TokenAsset:
    contract_address: str
    symbol: str
    decimals: int
    name: str = ""

    @property
    def is_native(self) -> bool:
        return False


Asset = NativeAsset | TokenAsset


@dataclass(frozen=True, slots=True)
class NetworkInfo:
    id: str
    name: str
    chain_id: int
    rpc_url: str
    explorer_tx_url: str  # template with a {tx_hash} placeholder
    native: NativeAsset
    tokens: tuple[TokenAsset, ...] = ()

    def tx_url(self, tx_hash: str) -> str:
        return self.explorer_tx_url.format(tx_hash=tx_hash)


@dataclass(frozen=True, slots=True)
class TimingConfig:
    """Per-task pre-submission delay bounds, in seconds."""

    min_delay: float
    max_delay: float

    def __post_init__(self) -> None:
        if self.min_delay <= 0 or self.max_delay <= 0:
            raise InvalidConfiguration(f"delays must be positive, got {self.min_delay}..{self.max_delay}")
        if self.min_delay > self.max_delay:
            raise InvalidConfiguration(f"min_delay {self.min_delay} is greater than max_delay {self.max_delay}")


@dataclass(frozen=True, slots=True)
class AutoFee:
    """Query the network gas price and add a random jitter."""


@dataclass(frozen=True, slots=True)
class FixedFee:
    price_per_unit: int  # wei

    def __post_init__(self) -> None:
        if self.price_per_unit <= 0:
            raise InvalidConfiguration(f"fixed gas price must be positive, got {self.price_per_unit}")

    @classmethod
    def from_gwei(cls, value: str | int | Decimal) -> "FixedFee":
        try:
            wei = Web3.to_wei(Decimal(str(value)), "gwei")
        except (InvalidOperation, ValueError, TypeError) as e:
            raise InvalidConfiguration(f"invalid gas price {value!r}: {e}") from e
        return cls(price_per_unit=int(wei))


FeeConfig = AutoFee | FixedFee


@dataclass(frozen=True, slots=True)
class Confirmation:
    tx_hash: str
    block_number: int | None = None
    units_used: int | None = None


@dataclass(frozen=True, slots=True)
class TransferOutcome:
    account: str
    account_ref: str
    status: OutcomeStatus
    tx_hash: str | None = None
    reason: str | None = None
    amount: int | None = None
    fee_price: int | None = None
    started_at: float = 0.0
    finished_at: float = 0.0

    def to_dict(self) -> dict:
        return {
            "account": self.account_ref,
            "status": self.status.value,
            "tx_hash": self.tx_hash,
            "reason": self.reason,
            "amount": str(self.amount) if self.amount is not None else None,
            "fee_price": str(self.fee_price) if self.fee_price is not None else None,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }


@dataclass
class BatchRun:
    batch_id: str
    network_id: str
    asset_symbol: str
    outcomes: list[TransferOutcome] = field(default_factory=list)
    started_at: float = field(default_factory=time.time)
    finished_at: float | None = None
    stop_requested: bool = False

    def summary(self) -> dict[str, int]:
        counts = {s.value: 0 for s in OutcomeStatus}
        for o in self.outcomes:
            counts[o.status.value] += 1
        return counts

    def to_dict(self) -> dict:
        return {
            "batch_id": self.batch_id,
            "network": self.network_id,
            "asset": self.asset_symbol,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "stop_requested": self.stop_requested,
            "summary": self.summary(),
            "outcomes": [o.to_dict() for o in self.outcomes],
        }
