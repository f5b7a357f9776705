"""Signing credentials.

Private keys only ever live in memory for the duration of a batch. They are excluded
from ``repr`` and every log line or event refers to an account through its redacted
``ref`` instead.
"""

import asyncio
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from eth_account import Account
from eth_account.hdaccount import key_from_seed, seed_from_mnemonic
from web3 import Web3

from selfsend.errors import InvalidConfiguration
from selfsend.formatters import short_address

log = logging.getLogger("selfsend.credentials")

_PRIVATE_KEY_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")
DEFAULT_DERIVATION_PATH = "m/44'/60'/0'/0/{index}"


def _normalize(secret: str) -> str:
    secret = secret.strip()
    if not secret.startswith("0x"):
        secret = "0x" + secret
    return secret


def is_valid_private_key(secret: str) -> bool:
    key = _normalize(secret)
    if not _PRIVATE_KEY_RE.match(key):
        return False
    try:
        Account.from_key(key)
    except Exception:  # out of curve range, all zeros, ...
        return False
    return True


@dataclass(frozen=True, slots=True)
class Credential:
    private_key: str = field(repr=False)
    address: str

    @property
    def ref(self) -> str:
        return short_address(self.address)

    @classmethod
    def from_secret(cls, secret: str) -> "Credential":
        if not is_valid_private_key(secret):
            raise InvalidConfiguration("malformed private key")
        key = _normalize(secret)
        return cls(private_key=key, address=Account.from_key(key).address)


def parse_private_keys(source: str | Iterable[str]) -> tuple[list[Credential], list[int]]:
    """Parse one key per line, ignoring blank lines.

    Returns the credentials and the 1-based line numbers of keys that failed validation.
    """
    lines = source.splitlines() if isinstance(source, str) else list(source)
    valid: list[Credential] = []
    invalid: list[int] = []
    for lineno, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            valid.append(Credential.from_secret(line))
        except InvalidConfiguration:
            invalid.append(lineno)
    if invalid:
        log.warning("Rejected %d malformed private keys (lines %s)", len(invalid), invalid)
    return valid, invalid


def derive_from_mnemonic(mnemonic: str, count: int = 1, path: str = DEFAULT_DERIVATION_PATH) -> list[Credential]:
    """Derive ``count`` credentials along the BIP-44 Ethereum path.

    The seed stretch is CPU bound; call ``derive_from_mnemonic_async`` from the event loop.
    """
    if count < 1:
        raise InvalidConfiguration("count must be at least 1")
    try:
        seed = seed_from_mnemonic(mnemonic.strip(), passphrase="")
    except Exception as e:
        raise InvalidConfiguration(f"invalid mnemonic: {e.__class__.__name__}") from e
    out = []
    for i in range(count):
        try:
            key = key_from_seed(seed, path.format(index=i))
        except Exception as e:
            raise InvalidConfiguration(f"cannot derive key {i} from mnemonic: {e.__class__.__name__}") from e
        out.append(Credential.from_secret(Web3.to_hex(key)))
    return out


async def derive_from_mnemonic_async(
    mnemonic: str, count: int = 1, path: str = DEFAULT_DERIVATION_PATH
) -> list[Credential]:
    return await asyncio.to_thread(derive_from_mnemonic, mnemonic, count, path)
