"""Test the network and token catalog."""

import os
from unittest import TestCase
from unittest.mock import patch

from selfsend.catalog import Catalog, is_valid_token_address
from selfsend.config import load_config
from selfsend.errors import InvalidConfiguration

USDT = "0xdAC17F958D2ee523a2206206994597C13D831ec7"


class CatalogTest(TestCase):
    def setUp(self):
        self.catalog = Catalog.from_config(load_config())
        self.ethereum = self.catalog.resolve_network("ethereum")

    def test_networks(self):
        ids = {n.id for n in self.catalog.networks()}
        self.assertTrue({"sahara", "ethereum", "bsc", "polygon", "avalanche"} <= ids)
        self.assertEqual(self.ethereum.chain_id, 1)
        self.assertEqual(self.ethereum.native.symbol, "ETH")
        self.assertEqual(self.ethereum.native.decimals, 18)

    def test_unknown_network(self):
        with self.assertRaises(InvalidConfiguration):
            self.catalog.resolve_network("nope")

    def test_tx_url(self):
        self.assertEqual(self.ethereum.tx_url("0xabc"), "https://etherscan.io/tx/0xabc")

    def test_resolve_native(self):
        self.assertIs(self.catalog.resolve_asset(self.ethereum, "native"), self.ethereum.native)
        self.assertIs(self.catalog.resolve_asset(self.ethereum, ""), self.ethereum.native)

    def test_resolve_token_by_symbol_or_address(self):
        by_symbol = self.catalog.resolve_asset(self.ethereum, "usdt")
        by_address = self.catalog.resolve_asset(self.ethereum, USDT.lower())
        self.assertEqual(by_symbol, by_address)
        self.assertEqual(by_symbol.decimals, 6)
        self.assertEqual(by_symbol.contract_address, USDT)
        self.assertFalse(by_symbol.is_native)

    def test_unknown_symbol(self):
        with self.assertRaises(InvalidConfiguration):
            self.catalog.resolve_asset(self.ethereum, "FOO")

    def test_custom_token(self):
        address = "0x5fbdb2315678afecb367f032d93f642f64180aa3"
        with self.assertRaises(InvalidConfiguration):
            self.catalog.resolve_asset(self.ethereum, address)
        token = self.catalog.resolve_asset(self.ethereum, address, symbol="TKN", decimals=8)
        self.assertEqual(token.contract_address, "0x5FbDB2315678afecb367f032d93F642f64180aa3")
        self.assertEqual((token.symbol, token.decimals), ("TKN", 8))

    def test_rpc_url_override(self):
        with patch.dict(os.environ, {"ETHEREUM_RPC_URL": "http://127.0.0.1:8545"}):
            catalog = Catalog.from_config(load_config())
        self.assertEqual(catalog.resolve_network("ethereum").rpc_url, "http://127.0.0.1:8545")

    def test_bad_entry(self):
        cfg = {"networks": {"broken": {"name": "Broken", "rpc_url": "http://x"}}}
        with self.assertRaises(InvalidConfiguration):
            Catalog.from_config(cfg)

    def test_token_address_check(self):
        self.assertTrue(is_valid_token_address(USDT))
        self.assertFalse(is_valid_token_address("USDT"))
        self.assertFalse(is_valid_token_address(USDT[:-1]))
        self.assertFalse(is_valid_token_address(None))
