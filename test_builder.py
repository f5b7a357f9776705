"""Test transaction building, signing and submission."""

from unittest import IsolatedAsyncioTestCase, TestCase

from fakes import HARDHAT_ADDRESSES, HARDHAT_KEYS, FakeConnector
from selfsend.credentials import Credential
from selfsend.errors import BuildError
from selfsend.models import TokenAsset
from selfsend.txn_factory import (
    TransferSubmitter,
    encode_transfer_call,
    inflate_gas,
    native_transfer,
    sign_transfer,
    token_transfer,
    with_gas,
)

ACCOUNT = HARDHAT_ADDRESSES[0]
TOKEN = TokenAsset(contract_address="0x5FbDB2315678afecb367f032d93F642f64180aa3", symbol="TKN", decimals=18)


class EncodeTest(TestCase):
    def test_transfer_calldata(self):
        data = encode_transfer_call(ACCOUNT, 5)
        self.assertTrue(data.startswith("0xa9059cbb"))
        self.assertEqual(len(data), 2 + 8 + 64 * 2)
        self.assertEqual(data[-64:], f"{5:064x}")
        self.assertEqual(data[10 + 24:10 + 64], ACCOUNT[2:].lower())

    def test_bad_recipient(self):
        with self.assertRaises(BuildError):
            encode_transfer_call("0x1234", 5)

    def test_negative_amount(self):
        with self.assertRaises(BuildError):
            encode_transfer_call(ACCOUNT, -1)

    def test_inflate_gas(self):
        self.assertEqual(inflate_gas(50_000), 60_000)
        self.assertEqual(inflate_gas(7), 8)
        self.assertEqual(inflate_gas(0), 0)


class PayloadTest(TestCase):
    def test_native_transfer_goes_back_to_sender(self):
        tx = native_transfer(ACCOUNT.lower(), 10, 2, 3, 1)
        self.assertEqual(tx, {"to": ACCOUNT, "value": 10, "gas": 21_000, "gasPrice": 2, "nonce": 3, "chainId": 1})

    def test_token_transfer_has_no_gas_yet(self):
        tx = token_transfer(ACCOUNT, TOKEN, 10, 2, 3, 56)
        self.assertNotIn("gas", tx)
        self.assertEqual(tx["from"], ACCOUNT)
        self.assertEqual(tx["to"], TOKEN.contract_address)
        self.assertEqual(tx["value"], 0)
        self.assertEqual(tx["data"], encode_transfer_call(ACCOUNT, 10))
        self.assertEqual(with_gas(tx, 60_000)["gas"], 60_000)
        self.assertNotIn("gas", tx)


class SignTest(TestCase):
    def setUp(self):
        self.credential = Credential.from_secret(HARDHAT_KEYS[0])

    def test_sign_native(self):
        signed = sign_transfer(native_transfer(ACCOUNT, 1, 10**9, 0, 31337), self.credential)
        self.assertIsInstance(signed.raw, bytes)
        self.assertTrue(signed.tx_hash.startswith("0x"))
        self.assertEqual(len(signed.tx_hash), 66)
        again = sign_transfer(native_transfer(ACCOUNT, 1, 10**9, 0, 31337), self.credential)
        self.assertEqual(signed, again)

    def test_sign_token_needs_gas(self):
        tx = token_transfer(ACCOUNT, TOKEN, 1, 10**9, 0, 31337)
        with self.assertRaises(BuildError):
            sign_transfer(tx, self.credential)
        signed = sign_transfer(with_gas(tx, 60_000), self.credential)
        self.assertEqual(len(signed.tx_hash), 66)

    def test_signing_error_does_not_echo_key(self):
        tx = native_transfer(ACCOUNT, 1, 10**9, 0, 31337)
        del tx["nonce"]
        with self.assertRaises(BuildError) as ctx:
            sign_transfer(tx, self.credential)
        self.assertNotIn(HARDHAT_KEYS[0][2:], str(ctx.exception))


class SubmitterTest(IsolatedAsyncioTestCase):
    async def test_send(self):
        credential = Credential.from_secret(HARDHAT_KEYS[0])
        connector = FakeConnector()
        submitted = []
        payload = native_transfer(ACCOUNT, 1, 10**9, 0, 31337)

        confirmation = await TransferSubmitter(connector).send(payload, credential, on_submitted=submitted.append)

        expected = sign_transfer(payload, credential)
        self.assertEqual(connector.submitted, [expected.raw])
        self.assertEqual(submitted, [expected.tx_hash])
        self.assertEqual(confirmation.tx_hash, expected.tx_hash)
        self.assertEqual([c[0] for c in connector.calls], ["submit", "await_confirmation"])

    async def test_estimate_gas(self):
        connector = FakeConnector(gas_estimate=51_000)
        estimate, limit = await TransferSubmitter(connector).estimate_gas(token_transfer(ACCOUNT, TOKEN, 1, 1, 0, 1))
        self.assertEqual((estimate, limit), (51_000, 61_200))
