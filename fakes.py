"""In-memory stand-ins shared by the test modules."""

import asyncio
import random

from web3 import Web3

from selfsend.credentials import Credential
from selfsend.models import Confirmation

# Hardhat / anvil default accounts, derived from "test test ... junk".
HARDHAT_MNEMONIC = "test test test test test test test test test test test junk"
HARDHAT_KEYS = [
    "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80",
    "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d",
]
HARDHAT_ADDRESSES = [
    "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266",
    "0x70997970C51812dc3A010C7d01b50e0d17dc79C8",
]


def make_credentials(n: int) -> list[Credential]:
    return [Credential.from_secret(f"0x{i:064x}") for i in range(1, n + 1)]


class FakeConnector:
    """ChainConnector that answers from dicts and records every call."""

    def __init__(
        self,
        balances: dict[str, int] | None = None,
        token_balances: dict[str, int] | None = None,
        *,
        fee_hint: int = 10**9,
        gas_estimate: int = 50_000,
        fail: dict[str, Exception] | None = None,
        fail_accounts: dict[str, Exception] | None = None,
        token_metadata: tuple[str, int] | None = None,
    ) -> None:
        self.balances = dict(balances or {})
        self.token_balances = dict(token_balances or {})
        self.fee_hint = fee_hint
        self.gas_estimate = gas_estimate
        self.fail = dict(fail or {})
        self.fail_accounts = dict(fail_accounts or {})
        self.token_metadata = token_metadata
        self.calls: list[tuple] = []
        self.submitted: list[bytes] = []
        self.estimated: list[dict] = []
        self.on_submit = None

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if name in self.fail:
            raise self.fail[name]

    def count(self, name: str) -> int:
        return sum(1 for c in self.calls if c[0] == name)

    async def read_balance(self, account, asset):
        self._record("read_balance", account, asset.symbol)
        if account in self.fail_accounts:
            raise self.fail_accounts[account]
        if asset.is_native:
            return self.balances.get(account, 0)
        return self.token_balances.get(account, 0)

    async def read_fee_hint(self):
        self._record("read_fee_hint")
        return self.fee_hint

    async def read_sequence_number(self, account):
        self._record("read_sequence_number", account)
        return 0

    async def estimate_units(self, payload):
        self._record("estimate_units")
        self.estimated.append(payload)
        return self.gas_estimate

    async def submit(self, signed_tx):
        self._record("submit")
        self.submitted.append(signed_tx)
        if self.on_submit is not None:
            self.on_submit()
        return Web3.to_hex(Web3.keccak(signed_tx))

    async def await_confirmation(self, handle):
        self._record("await_confirmation", handle)
        return Confirmation(tx_hash=handle, block_number=1, units_used=21_000)

    async def read_token_metadata(self, address):
        self._record("read_token_metadata", address)
        if self.token_metadata is None:
            raise AssertionError("token metadata not configured")
        return self.token_metadata


class PinnedRandom(random.Random):
    """Random whose uniform() always returns ``value`` and randint() one of its bounds."""

    def __init__(self, value: float, high: bool = True) -> None:
        super().__init__(0)
        self.value = value
        self.high = high

    def uniform(self, a, b):
        return self.value

    def randint(self, a, b):
        return b if self.high else a


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


class BlockingSleep:
    """Sleep that never finishes on its own; only a stop request ends the wait."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.Event().wait()
