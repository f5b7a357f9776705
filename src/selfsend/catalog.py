"""Network and asset catalog, loaded from the ``[networks.*]`` tables of config.toml."""

import logging
import os
import re

from web3 import Web3

from selfsend.constants import NATIVE_ASSET_REF
from selfsend.errors import InvalidConfiguration
from selfsend.models import Asset, NativeAsset, NetworkInfo, TokenAsset

log = logging.getLogger("selfsend.catalog")

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


def is_valid_token_address(address: str) -> bool:
    return bool(_ADDRESS_RE.match(address or ""))


def _network_from_config(network_id: str, raw: dict) -> NetworkInfo:
    native = raw["native"]
    tokens = tuple(
        TokenAsset(
            contract_address=Web3.to_checksum_address(t["address"]),
            symbol=t["symbol"],
            decimals=int(t["decimals"]),
            name=t.get("name", ""),
        )
        for t in raw.get("tokens", [])
    )
    rpc_url = os.getenv(f"{network_id.upper()}_RPC_URL", raw["rpc_url"])
    return NetworkInfo(
        id=network_id,
        name=raw.get("name", network_id),
        chain_id=int(raw["chain_id"]),
        rpc_url=rpc_url,
        explorer_tx_url=raw["explorer_tx_url"],
        native=NativeAsset(symbol=native["symbol"], decimals=int(native.get("decimals", 18))),
        tokens=tokens,
    )


class Catalog:
    def __init__(self, networks: dict[str, NetworkInfo]) -> None:
        self._networks = networks

    @classmethod
    def from_config(cls, cfg: dict) -> "Catalog":
        networks = {}
        for network_id, raw in cfg.get("networks", {}).items():
            try:
                networks[network_id] = _network_from_config(network_id, raw)
            except (KeyError, ValueError, TypeError) as e:
                raise InvalidConfiguration(f"bad catalog entry for network {network_id!r}: {e!r}") from e
        log.debug("Loaded %d networks: %s", len(networks), ", ".join(networks))
        return cls(networks)

    def networks(self) -> list[NetworkInfo]:
        return list(self._networks.values())

    def resolve_network(self, network_id: str) -> NetworkInfo:
        try:
            return self._networks[network_id]
        except KeyError:
            raise InvalidConfiguration(f"unknown network {network_id!r}") from None

    def resolve_asset(
        self,
        network: NetworkInfo,
        ref: str,
        *,
        symbol: str | None = None,
        decimals: int | None = None,
    ) -> Asset:
        """Resolve ``"native"``, a catalog token symbol or a token contract address.

        Contract addresses that are not in the catalog need ``symbol`` and ``decimals``
        supplied by the caller (the API reads them from the chain).
        """
        if not ref or ref.lower() == NATIVE_ASSET_REF:
            return network.native
        for token in network.tokens:
            if ref.upper() == token.symbol.upper() or ref.lower() == token.contract_address.lower():
                return token
        if not is_valid_token_address(ref):
            raise InvalidConfiguration(f"unknown asset {ref!r} on {network.name}")
        if symbol is None or decimals is None:
            raise InvalidConfiguration(f"token {ref} is not in the catalog; symbol and decimals are required")
        return TokenAsset(contract_address=Web3.to_checksum_address(ref), symbol=symbol, decimals=int(decimals))
