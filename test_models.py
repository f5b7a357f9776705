"""Test domain value types, errors and formatting helpers."""

from unittest import TestCase

from selfsend.constants import OutcomeStatus
from selfsend.errors import InvalidConfiguration, NetworkError
from selfsend.formatters import format_units, short_address, short_tx_hash
from selfsend.models import BatchRun, FixedFee, TimingConfig, TransferOutcome


class TimingConfigTest(TestCase):
    def test_valid(self):
        timing = TimingConfig(min_delay=10, max_delay=10)
        self.assertEqual((timing.min_delay, timing.max_delay), (10, 10))

    def test_invalid(self):
        for lo, hi in [(0, 5), (-1, 5), (5, 0), (6, 5)]:
            with self.assertRaises(InvalidConfiguration, msg=f"{lo}..{hi}"):
                TimingConfig(min_delay=lo, max_delay=hi)


class FixedFeeTest(TestCase):
    def test_from_gwei(self):
        self.assertEqual(FixedFee.from_gwei("5").price_per_unit, 5 * 10**9)
        self.assertEqual(FixedFee.from_gwei("1.5").price_per_unit, 1_500_000_000)
        self.assertEqual(FixedFee.from_gwei(2).price_per_unit, 2 * 10**9)

    def test_invalid(self):
        for value in ["abc", "0", "-1"]:
            with self.assertRaises(InvalidConfiguration, msg=value):
                FixedFee.from_gwei(value)
        with self.assertRaises(InvalidConfiguration):
            FixedFee(price_per_unit=0)


class NetworkErrorTest(TestCase):
    def test_kind(self):
        self.assertEqual(str(NetworkError("timeout", transient=True)), "transient network error: timeout")
        self.assertEqual(str(NetworkError("reverted")), "permanent network error: reverted")
        self.assertFalse(NetworkError("x").transient)


class BatchRunTest(TestCase):
    def test_summary(self):
        batch = BatchRun(batch_id="b1", network_id="ethereum", asset_symbol="ETH")
        batch.outcomes = [
            TransferOutcome(account="0x1", account_ref="0x1", status=OutcomeStatus.SUCCESS, amount=10**30),
            TransferOutcome(account="0x2", account_ref="0x2", status=OutcomeStatus.CANCELLED),
        ]
        summary = batch.summary()
        self.assertEqual(summary["SUCCESS"], 1)
        self.assertEqual(summary["CANCELLED"], 1)
        self.assertEqual(summary["FAILED"], 0)
        d = batch.to_dict()
        self.assertEqual(d["outcomes"][0]["amount"], str(10**30))
        self.assertIsNone(d["outcomes"][1]["amount"])


class FormatterTest(TestCase):
    def test_short_address(self):
        self.assertEqual(short_address("0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"), "0xf39F...2266")
        self.assertEqual(short_address(None), "")

    def test_short_tx_hash(self):
        self.assertEqual(short_tx_hash("0x" + "ab" * 32), "0xababab...ababab")

    def test_format_units(self):
        self.assertEqual(format_units(1_500_000, 6), "1.5")
        self.assertEqual(format_units(0, 18), "0")
        self.assertEqual(format_units(10**18, 18), "1")
        self.assertEqual(format_units(1234 * 10**18, 18), "1,234")
        self.assertEqual(format_units(1, 18), "1.000000E-18")
