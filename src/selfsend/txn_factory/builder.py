from collections.abc import Callable
from dataclasses import dataclass
import logging
import math

from eth_abi import encode
from eth_abi.exceptions import EncodingError
from eth_account import Account
from web3 import Web3

from selfsend.chain import ChainConnector
from selfsend.constants import ERC20_TRANSFER_SELECTOR, GAS_LIMIT_HEADROOM, NATIVE_TRANSFER_GAS
from selfsend.credentials import Credential
from selfsend.errors import BuildError
from selfsend.models import Confirmation, TokenAsset

log = logging.getLogger("selfsend.txn")


@dataclass(frozen=True, slots=True)
class SignedTransfer:
    raw: bytes
    tx_hash: str


def _checksum(address: str, what: str) -> str:
    try:
        return Web3.to_checksum_address(address)
    except (ValueError, TypeError) as e:
        raise BuildError(f"malformed {what} address {address!r}") from e


def encode_transfer_call(to: str, amount: int) -> str:
    """Calldata for ERC-20 ``transfer(to, amount)``."""
    to = _checksum(to, "recipient")
    try:
        args = encode(["address", "uint256"], [to, amount])
    except (EncodingError, TypeError) as e:
        raise BuildError(f"cannot encode transfer of {amount!r} to {to}: {e}") from e
    return Web3.to_hex(ERC20_TRANSFER_SELECTOR + args)


def inflate_gas(estimate: int) -> int:
    """Gas limit submitted for an estimated call: the estimate plus 20%, floored."""
    return math.floor(estimate * GAS_LIMIT_HEADROOM)


def native_transfer(account: str, amount: int, gas_price: int, nonce: int, chain_id: int) -> dict:
    """Legacy value transfer from ``account`` back to itself."""
    return {
        "to": _checksum(account, "account"),
        "value": amount,
        "gas": NATIVE_TRANSFER_GAS,
        "gasPrice": gas_price,
        "nonce": nonce,
        "chainId": chain_id,
    }


def token_transfer(account: str, token: TokenAsset, amount: int, gas_price: int, nonce: int, chain_id: int) -> dict:
    """Token ``transfer`` from ``account`` to itself, without a gas limit yet.

    The limit is filled in with ``with_gas`` once the node has estimated the call.
    """
    return {
        "from": _checksum(account, "account"),
        "to": _checksum(token.contract_address, "token contract"),
        "value": 0,
        "data": encode_transfer_call(account, amount),
        "gasPrice": gas_price,
        "nonce": nonce,
        "chainId": chain_id,
    }


def with_gas(payload: dict, gas: int) -> dict:
    return {**payload, "gas": gas}


def sign_transfer(payload: dict, credential: Credential) -> SignedTransfer:
    tx = {k: v for k, v in payload.items() if k != "from"}
    if "gas" not in tx:
        raise BuildError("transaction has no gas limit")
    try:
        signed = Account.sign_transaction(tx, credential.private_key)
    except (TypeError, ValueError, KeyError) as e:
        # error text may carry key material, keep it out of the message
        raise BuildError(f"signing failed for {credential.ref}: {e.__class__.__name__}") from e
    return SignedTransfer(raw=bytes(signed.raw_transaction), tx_hash=Web3.to_hex(signed.hash))


class TransferSubmitter:
    """Signs, submits and waits for a self-transfer through a ChainConnector."""

    def __init__(self, connector: ChainConnector) -> None:
        self.connector = connector

    async def estimate_gas(self, payload: dict) -> tuple[int, int]:
        """Return ``(estimate, limit)`` for a payload built without a gas limit."""
        estimate = await self.connector.estimate_units(payload)
        return estimate, inflate_gas(estimate)

    async def send(
        self,
        payload: dict,
        credential: Credential,
        *,
        on_submitted: Callable[[str], None] | None = None,
    ) -> Confirmation:
        signed = sign_transfer(payload, credential)
        handle = await self.connector.submit(signed.raw)
        if handle.lower() != signed.tx_hash.lower():
            log.warning("node returned hash %s for locally signed %s", handle, signed.tx_hash)
        if on_submitted is not None:
            on_submitted(handle)
        return await self.connector.await_confirmation(handle)
