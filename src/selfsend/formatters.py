from datetime import datetime
from decimal import Decimal


def short_address(address: str | None) -> str:
    """Redacted account reference used in events and logs, e.g. 0x1234...abcd."""
    if not address:
        return ""
    if address.startswith("0x"):
        return f"{address[:6]}...{address[-4:]}"
    return f"{address[:4]}...{address[-4:]}"


def short_tx_hash(tx_hash: str | None) -> str:
    if not tx_hash:
        return ""
    return f"{tx_hash[:8]}...{tx_hash[-6:]}"


def format_units(value: int, decimals: int, places: int = 6) -> str:
    """Render an integer amount of smallest units as a human readable decimal."""
    amount = Decimal(value).scaleb(-decimals)
    if 0 < amount < Decimal("0.00001"):
        return f"{amount:.{places}E}"
    text = f"{amount:,.{places}f}".rstrip("0").rstrip(".")
    return text or "0"


def format_timestamp(ts: float) -> str:
    return datetime.fromtimestamp(ts).strftime("%H:%M:%S")
