"""Test private key parsing and mnemonic derivation."""

import asyncio
import time
from unittest import IsolatedAsyncioTestCase, TestCase

from fakes import HARDHAT_ADDRESSES, HARDHAT_KEYS, HARDHAT_MNEMONIC
from selfsend.credentials import (
    Credential,
    derive_from_mnemonic,
    derive_from_mnemonic_async,
    is_valid_private_key,
    parse_private_keys,
)
from selfsend.errors import InvalidConfiguration


class PrivateKeyTest(TestCase):
    def test_valid_keys(self):
        self.assertTrue(is_valid_private_key(HARDHAT_KEYS[0]))
        self.assertTrue(is_valid_private_key(HARDHAT_KEYS[0][2:]))
        self.assertTrue(is_valid_private_key(f"  {HARDHAT_KEYS[1]}\n"))

    def test_invalid_keys(self):
        self.assertFalse(is_valid_private_key(""))
        self.assertFalse(is_valid_private_key("0x1234"))
        self.assertFalse(is_valid_private_key(HARDHAT_KEYS[0] + "00"))
        self.assertFalse(is_valid_private_key("0x" + "g" * 64))
        self.assertFalse(is_valid_private_key("0x" + "0" * 64))

    def test_credential(self):
        cred = Credential.from_secret(HARDHAT_KEYS[0])
        self.assertEqual(cred.address, HARDHAT_ADDRESSES[0])
        self.assertEqual(cred.ref, "0xf39F...2266")
        self.assertNotIn(HARDHAT_KEYS[0][2:], repr(cred))

    def test_credential_rejects_garbage(self):
        with self.assertRaises(InvalidConfiguration):
            Credential.from_secret("not a key")


class ParseTest(TestCase):
    def test_parse_text(self):
        text = f"{HARDHAT_KEYS[0]}\n\n   \nnot-a-key\n{HARDHAT_KEYS[1][2:]}\n"
        creds, invalid = parse_private_keys(text)
        self.assertEqual([c.address for c in creds], HARDHAT_ADDRESSES)
        self.assertEqual(invalid, [4])

    def test_parse_list(self):
        creds, invalid = parse_private_keys(["0xdead", HARDHAT_KEYS[1]])
        self.assertEqual([c.address for c in creds], HARDHAT_ADDRESSES[1:])
        self.assertEqual(invalid, [1])

    def test_parse_empty(self):
        self.assertEqual(parse_private_keys(""), ([], []))


class MnemonicTest(TestCase):
    def test_derive(self):
        creds = derive_from_mnemonic(HARDHAT_MNEMONIC, count=2)
        self.assertEqual([c.address for c in creds], HARDHAT_ADDRESSES)
        self.assertEqual([c.private_key for c in creds], HARDHAT_KEYS)

    def test_count_must_be_positive(self):
        with self.assertRaises(InvalidConfiguration):
            derive_from_mnemonic(HARDHAT_MNEMONIC, count=0)

    def test_bad_mnemonic(self):
        with self.assertRaises(InvalidConfiguration):
            derive_from_mnemonic("definitely not twelve words")


class MnemonicThreadTest(IsolatedAsyncioTestCase):
    async def test_event_loop_keeps_running(self):
        gaps = []
        done = asyncio.Event()

        async def ticker():
            last = time.monotonic()
            while not done.is_set():
                await asyncio.sleep(0.01)
                now = time.monotonic()
                gaps.append(now - last)
                last = now

        ticking = asyncio.create_task(ticker())
        creds = await derive_from_mnemonic_async(HARDHAT_MNEMONIC, count=30)
        done.set()
        await ticking

        self.assertEqual([c.address for c in creds[:2]], HARDHAT_ADDRESSES)
        self.assertEqual(len({c.address for c in creds}), 30)
        self.assertLess(max(gaps), 0.2)

    async def test_errors_surface(self):
        with self.assertRaises(InvalidConfiguration):
            await derive_from_mnemonic_async("definitely not twelve words")
