"""Casper key helpers: public keys, account hashes and dictionary item keys."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import pycspr

from error_map import ERR_INVALID_CONFIG, ERR_KEY_FILE_NOT_FOUND, Cep47Error

HEX64_RE = re.compile(r"^[0-9a-fA-F]{64}$")

ED25519_TAG = 0x01
SECP256K1_TAG = 0x02

# tag -> (algorithm name used in account hashing, raw key length)
KEY_ALGORITHMS: dict[int, tuple[str, int]] = {
    ED25519_TAG: ("ed25519", 32),
    SECP256K1_TAG: ("secp256k1", 33),
}

# Key::Account variant tag in bytesrepr.
KEY_ACCOUNT_TAG = b"\x00"

PUBLIC_KEY_HEX_FILE = "public_key_hex"
SECRET_KEY_PEM_FILE = "secret_key.pem"


def _blake2b256(data: bytes) -> bytes:
    return pycspr.get_hash(data, 32, pycspr.HashAlgorithm.BLAKE2B)


def parse_public_key_hex(raw: str) -> bytes:
    """Parse a tagged public key hex (`01…` ed25519, `02…` secp256k1)."""
    value = str(raw).strip().lower()
    if value.startswith("0x"):
        value = value[2:]
    if not value or len(value) % 2 != 0:
        raise ValueError("public key hex must have an even, non-zero length")
    try:
        data = bytes.fromhex(value)
    except ValueError as err:
        raise ValueError(f"public key is not valid hex: {err}") from None

    tag = data[0]
    if tag not in KEY_ALGORITHMS:
        raise ValueError(f"unsupported public key tag: {tag:02x}")
    _, key_len = KEY_ALGORITHMS[tag]
    if len(data) != key_len + 1:
        raise ValueError(f"public key with tag {tag:02x} must be {key_len} bytes, got {len(data) - 1}")
    return data


def account_hash(public_key: bytes) -> bytes:
    return pycspr.get_account_hash(public_key)


def account_hash_hex(public_key_hex: str) -> str:
    return account_hash(parse_public_key_hex(public_key_hex)).hex()


def u256_bytes(value: int) -> bytes:
    """bytesrepr for U256: one length byte followed by little-endian digits."""
    if value < 0 or value >= 1 << 256:
        raise ValueError("U256 value out of range")
    digits = value.to_bytes(32, "little").rstrip(b"\x00")
    return bytes([len(digits)]) + digits


def owned_token_item_key(account_hash_value: bytes, index: int) -> str:
    return _blake2b256(KEY_ACCOUNT_TAG + account_hash_value + u256_bytes(index)).hex()


CONTRACT_HASH_PREFIXES = ("hash-", "contract-")
PACKAGE_HASH_PREFIXES = ("contract-package-wasm", "contract-package-", "hash-")


def normalize_hash(raw: str, *, field: str = "contract hash", package: bool = False) -> str:
    """Strip a known key prefix and return the bare lowercase hex.

    Package prefixes are only accepted when `package` is set, so a package
    hash passed where a contract hash belongs fails instead of querying the
    wrong key.
    """
    value = str(raw).strip()
    for prefix in PACKAGE_HASH_PREFIXES if package else CONTRACT_HASH_PREFIXES:
        if value.startswith(prefix):
            value = value[len(prefix):]
            break
    if not HEX64_RE.fullmatch(value):
        raise ValueError(f"{field} must be 64 hex characters, optionally prefixed with 'hash-'")
    return value.lower()


def format_key(parsed: Any) -> str | None:
    """Render a node-parsed Key value (`{"Account": ...}` or plain string)."""
    if parsed is None:
        return None
    if isinstance(parsed, dict):
        for variant in ("Account", "Hash", "URef"):
            if variant in parsed:
                return str(parsed[variant])
        return None
    return str(parsed)


def read_public_key_hex(key_pair_path: str | Path) -> str:
    path = Path(key_pair_path).expanduser() / PUBLIC_KEY_HEX_FILE
    if not path.is_file():
        raise Cep47Error(
            ERR_KEY_FILE_NOT_FOUND,
            f"no {SECRET_KEY_PEM_FILE} or {PUBLIC_KEY_HEX_FILE} in {path.parent}",
            hint="point --key-pair-path at a directory produced by `casper-client keygen`",
        )
    raw = path.read_text(encoding="utf-8").strip()
    parse_public_key_hex(raw)
    return raw.lower()


def secret_key_path(key_pair_path: str | Path) -> Path:
    path = Path(key_pair_path).expanduser() / SECRET_KEY_PEM_FILE
    if not path.is_file():
        raise Cep47Error(ERR_KEY_FILE_NOT_FOUND, f"secret key file not found: {path}")
    return path


def load_private_key(key_pair_path: str | Path, key_algorithm: str = "ed25519") -> Any:
    path = secret_key_path(key_pair_path)
    try:
        algo = pycspr.KeyAlgorithm[key_algorithm.upper()]
    except KeyError:
        raise Cep47Error(ERR_INVALID_CONFIG, f"unsupported key algorithm: {key_algorithm}") from None
    try:
        return pycspr.parse_private_key(str(path), algo)
    except Exception as err:  # noqa: BLE001
        raise Cep47Error(
            ERR_INVALID_CONFIG,
            f"cannot read {key_algorithm} secret key from {path}: {err}",
            hint="check that key_algorithm matches the key pair",
        ) from err


def read_own_public_key(key_pair_path: str | Path, key_algorithm: str = "ed25519") -> bytes:
    """Tagged public key of the configured account.

    Derived from `secret_key.pem`; a bare `public_key_hex` file is enough for
    read-only commands.
    """
    if (Path(key_pair_path).expanduser() / SECRET_KEY_PEM_FILE).is_file():
        return load_private_key(key_pair_path, key_algorithm).account_key
    return parse_public_key_hex(read_public_key_hex(key_pair_path))
