"""Chain connector: the only place that talks to the network.

Every library failure is translated into ``NetworkError``. Nothing here retries; what
to do with a failure is the scheduler's decision.
"""

import contextlib
import logging
from typing import Protocol

import aiohttp
import httpx
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import TimeExhausted, Web3Exception

from selfsend.constants import (
    ERC20_BALANCE_OF_SELECTOR,
    ERC20_DECIMALS_SELECTOR,
    ERC20_SYMBOL_SELECTOR,
)
from selfsend.errors import NetworkError
from selfsend.models import Asset, Confirmation, NetworkInfo

log = logging.getLogger("selfsend.chain")


class ChainConnector(Protocol):
    async def read_balance(self, account: str, asset: Asset) -> int: ...
    async def read_fee_hint(self) -> int: ...
    async def read_sequence_number(self, account: str) -> int: ...
    async def estimate_units(self, payload: dict) -> int: ...
    async def submit(self, signed_tx: bytes) -> str: ...
    async def await_confirmation(self, handle: str) -> Confirmation: ...
    async def read_token_metadata(self, address: str) -> tuple[str, int]: ...


@contextlib.asynccontextmanager
async def _rpc(what: str):
    try:
        yield
    except NetworkError:
        raise
    except (TimeExhausted, TimeoutError, ConnectionError) as e:
        raise NetworkError(f"{what}: {e.__class__.__name__}: {e}", transient=True) from e
    except aiohttp.ClientResponseError as e:
        transient = e.status >= 500 or e.status == 429
        raise NetworkError(f"{what}: HTTP {e.status} {e.message}", transient=transient) from e
    except (aiohttp.ClientError, OSError) as e:
        raise NetworkError(f"{what}: {e.__class__.__name__}: {e}", transient=True) from e
    except (Web3Exception, DecodingError, ValueError) as e:
        # JSON-RPC error responses, reverts and undecodable results
        raise NetworkError(f"{what}: {e}", transient=False) from e


class EvmConnector:
    """ChainConnector for one EVM JSON-RPC endpoint."""

    def __init__(
        self,
        network: NetworkInfo,
        *,
        w3: AsyncWeb3 | None = None,
        confirmation_timeout: float = 600.0,
        poll_latency: float = 1.0,
    ) -> None:
        self.network = network
        self.w3 = w3 or AsyncWeb3(AsyncHTTPProvider(network.rpc_url))
        self.confirmation_timeout = confirmation_timeout
        self.poll_latency = poll_latency

    async def _call(self, to: str, data: bytes, what: str) -> bytes:
        async with _rpc(what):
            raw = await self.w3.eth.call({"to": to, "data": Web3.to_hex(data)})
        if not raw:
            raise NetworkError(f"{what}: empty result from {to} (not a token contract?)")
        return bytes(raw)

    async def read_balance(self, account: str, asset: Asset) -> int:
        if asset.is_native:
            async with _rpc("eth_getBalance"):
                return int(await self.w3.eth.get_balance(account))
        raw = await self._call(asset.contract_address, ERC20_BALANCE_OF_SELECTOR + encode(["address"], [account]),
                               "balanceOf")
        async with _rpc("balanceOf"):
            return int(decode(["uint256"], raw)[0])

    async def read_token_metadata(self, address: str) -> tuple[str, int]:
        """Return ``(symbol, decimals)`` of an ERC-20 contract."""
        raw_decimals = await self._call(address, ERC20_DECIMALS_SELECTOR, "decimals")
        raw_symbol = await self._call(address, ERC20_SYMBOL_SELECTOR, "symbol")
        async with _rpc("token metadata"):
            decimals = int(decode(["uint256"], raw_decimals)[0])
            try:
                symbol = decode(["string"], raw_symbol)[0]
            except (DecodingError, OverflowError):
                # a few old tokens (MKR, SAI) return bytes32
                symbol = raw_symbol[:32].rstrip(b"\x00").decode("utf-8", errors="replace")
        return symbol, decimals

    async def read_fee_hint(self) -> int:
        async with _rpc("eth_gasPrice"):
            return int(await self.w3.eth.gas_price)

    async def read_sequence_number(self, account: str) -> int:
        async with _rpc("eth_getTransactionCount"):
            return int(await self.w3.eth.get_transaction_count(account, "pending"))

    async def estimate_units(self, payload: dict) -> int:
        call = {k: payload[k] for k in ("from", "to", "data", "value") if k in payload}
        async with _rpc("eth_estimateGas"):
            return int(await self.w3.eth.estimate_gas(call))

    async def submit(self, signed_tx: bytes) -> str:
        async with _rpc("eth_sendRawTransaction"):
            tx_hash = await self.w3.eth.send_raw_transaction(signed_tx)
        return Web3.to_hex(tx_hash)

    async def await_confirmation(self, handle: str) -> Confirmation:
        async with _rpc("receipt"):
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                handle, timeout=self.confirmation_timeout, poll_latency=self.poll_latency
            )
        if receipt.get("status") == 0:
            raise NetworkError(f"transaction {handle} reverted in block {receipt.get('blockNumber')}")
        return Confirmation(
            tx_hash=Web3.to_hex(receipt["transactionHash"]),
            block_number=receipt.get("blockNumber"),
            units_used=receipt.get("gasUsed"),
        )


def connector_for(network: NetworkInfo, cfg: dict) -> EvmConnector:
    return EvmConnector(network, confirmation_timeout=float(cfg["timeout"]["confirmation"]))


async def probe_rpc(url: str, timeout: float = 5.0) -> int:
    """Check that a JSON-RPC endpoint answers and return the chain id it reports."""
    payload = {"jsonrpc": "2.0", "id": 1, "method": "eth_chainId", "params": []}
    try:
        async with httpx.AsyncClient(timeout=timeout) as http:
            r = await http.post(url, json=payload)
            r.raise_for_status()
            body = r.json()
    except httpx.HTTPError as e:
        raise NetworkError(f"RPC probe {url}: {e.__class__.__name__}: {e}", transient=True) from e
    except ValueError as e:
        raise NetworkError(f"RPC probe {url}: invalid JSON response") from e
    if "result" not in body:
        raise NetworkError(f"RPC probe {url}: {body.get('error')}")
    return int(body["result"], 16)
