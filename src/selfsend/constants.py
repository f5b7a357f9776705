from typing import Final
from enum import StrEnum
from fractions import Fraction


class TaskState(StrEnum):
    PENDING               = "PENDING"
    WAITING               = "WAITING"
    CHECKING_CANCELLATION = "CHECKING_CANCELLATION"
    ESTIMATING            = "ESTIMATING"
    SUBMITTING            = "SUBMITTING"
    CONFIRMING            = "CONFIRMING"
    TERMINAL              = "TERMINAL"

class OutcomeStatus(StrEnum):
    SUCCESS                      = "SUCCESS"
    SKIPPED_ZERO_BALANCE         = "SKIPPED_ZERO_BALANCE"
    SKIPPED_INSUFFICIENT_FOR_FEE = "SKIPPED_INSUFFICIENT_FOR_FEE"
    CANCELLED                    = "CANCELLED"
    FAILED                       = "FAILED"

class Severity(StrEnum):
    INFO    = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR   = "error"

class FeeMode(StrEnum):
    AUTO  = "auto"
    FIXED = "fixed"


SKIPPED: Final = frozenset({OutcomeStatus.SKIPPED_ZERO_BALANCE, OutcomeStatus.SKIPPED_INSUFFICIENT_FOR_FEE})

# Plain value transfer on every EVM chain costs exactly this much gas.
NATIVE_TRANSFER_GAS: Final = 21_000
# Submitted gas limit for token transfers is the node's estimate plus 20%.
GAS_LIMIT_HEADROOM: Final = Fraction(6, 5)

# Auto fee jitter band, closed interval.
FEE_JITTER_MIN: Final = 1.00
FEE_JITTER_MAX: Final = 1.10

# Token transfers spend at most this fraction of the token balance.
TOKEN_MAX_FRACTION: Final = 0.9

# Upper bound on accounts derived from one mnemonic per request.
MAX_MNEMONIC_ACCOUNTS: Final = 200

# Finished batches kept for status queries.
BATCH_HISTORY: Final = 50

NATIVE_ASSET_REF: Final = "native"
AUTO_GAS_PRICE: Final = "auto"

# keccak("transfer(address,uint256)")[:4] etc.
ERC20_TRANSFER_SELECTOR: Final = bytes.fromhex("a9059cbb")
ERC20_BALANCE_OF_SELECTOR: Final = bytes.fromhex("70a08231")
ERC20_DECIMALS_SELECTOR: Final = bytes.fromhex("313ce567")
ERC20_SYMBOL_SELECTOR: Final = bytes.fromhex("95d89b41")

__all__ = [
    "AUTO_GAS_PRICE",
    "BATCH_HISTORY",
    "ERC20_BALANCE_OF_SELECTOR",
    "ERC20_DECIMALS_SELECTOR",
    "ERC20_SYMBOL_SELECTOR",
    "ERC20_TRANSFER_SELECTOR",
    "FEE_JITTER_MAX",
    "FEE_JITTER_MIN",
    "GAS_LIMIT_HEADROOM",
    "MAX_MNEMONIC_ACCOUNTS",
    "NATIVE_ASSET_REF",
    "NATIVE_TRANSFER_GAS",
    "SKIPPED",
    "TOKEN_MAX_FRACTION",

    ######
    "FeeMode",
    "OutcomeStatus",
    "Severity",
    "TaskState",
]
