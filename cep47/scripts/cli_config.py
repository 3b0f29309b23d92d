"""Runtime configuration for the CEP-47 client.

Values are layered, lowest precedence first: built-in defaults, a YAML file
(`--config` or `CEP47_CONFIG`), `CEP47_*` environment variables, then
command-line flags. The result is one frozen `CliConfig` per process.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from casper_keys import normalize_hash, parse_public_key_hex
from error_map import ERR_CONTRACT_HASH_REQUIRED, ERR_INVALID_CONFIG, Cep47Error
from node_rpc import DEFAULT_TIMEOUT_SECONDS
from quantity import parse_motes, parse_positive_int

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "CEP47_CONFIG"

ENV_VARS: dict[str, str] = {
    "CEP47_NODE_URL": "node_url",
    "CEP47_EVENT_STREAM_URL": "event_stream_url",
    "CEP47_CHAIN_NAME": "chain_name",
    "CEP47_CONTRACT_HASH": "contract_hash",
    "CEP47_CONTRACT_PACKAGE_HASH": "contract_package_hash",
    "CEP47_KEY_PAIR_PATH": "key_pair_path",
    "CEP47_WASM_PATH": "wasm_path",
    "CEP47_TRANSFER_RECIPIENT": "transfer_recipient",
}

KEY_ALGORITHMS = ("ed25519", "secp256k1")

# Receives transfer_token / transfer_many / transfer_all unless configured.
DEFAULT_TRANSFER_RECIPIENT = "017b4822b849f197acf4f49d91315887f913128a9673a2d7ea834cf13c2e6fc606"


@dataclasses.dataclass(frozen=True)
class PaymentAmounts:
    """Per-operation deploy payment, in motes."""

    install: int = 200_000_000_000
    mint_one: int = 2_000_000_000
    mint_copies: int = 100_000_000_000
    mint_many: int = 100_000_000_000
    burn_one: int = 12_000_000_000
    transfer: int = 200_000_000_000
    pause: int = 2_000_000_000
    update_token_metadata: int = 2_000_000_000


@dataclasses.dataclass(frozen=True)
class CliConfig:
    node_url: str = "http://localhost:40101/rpc"
    event_stream_url: str = "http://localhost:60101/events/main"
    chain_name: str = "casper-net-1"
    contract_hash: str | None = None
    contract_package_hash: str | None = None
    key_pair_path: str | None = None
    key_algorithm: str = "ed25519"
    wasm_path: str = "../target/wasm32-unknown-unknown/release/dragons-nft.wasm"
    token_name: str = "event_nft_3"
    token_symbol: str = "DRAG"
    token_meta: Mapping[str, str] = dataclasses.field(
        default_factory=lambda: {"origin": "fire", "lifetime": "infinite"}
    )
    mint_one_meta_size: int = 4
    mint_copies_meta_size: int = 10
    mint_many_meta_size: int = 10
    mint_copies_count: int = 5
    transfer_recipient: str | None = DEFAULT_TRANSFER_RECIPIENT
    payments: PaymentAmounts = dataclasses.field(default_factory=PaymentAmounts)
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    def require_contract_hash(self) -> str:
        if not self.contract_hash:
            raise Cep47Error(
                ERR_CONTRACT_HASH_REQUIRED,
                "no contract hash configured",
                hint="set --contract-hash, CEP47_CONTRACT_HASH or `contract_hash` in the config file",
            )
        return self.contract_hash

    def require_key_pair_path(self) -> str:
        if not self.key_pair_path:
            raise Cep47Error(
                ERR_INVALID_CONFIG,
                "no key pair directory configured",
                hint="set --key-pair-path, CEP47_KEY_PAIR_PATH or `key_pair_path` in the config file",
            )
        return self.key_pair_path

    def require_transfer_recipient(self) -> str:
        if not self.transfer_recipient:
            raise Cep47Error(
                ERR_INVALID_CONFIG,
                "no transfer recipient configured",
                hint="set CEP47_TRANSFER_RECIPIENT or `transfer_recipient` to a public key hex",
            )
        return self.transfer_recipient


CONFIG_FIELDS = {f.name for f in dataclasses.fields(CliConfig)}
PAYMENT_FIELDS = {f.name for f in dataclasses.fields(PaymentAmounts)}
SIZE_FIELDS = ("mint_one_meta_size", "mint_copies_meta_size", "mint_many_meta_size", "mint_copies_count")


def read_config_file(path: str | Path) -> dict[str, Any]:
    config_path = Path(path).expanduser()
    if not config_path.is_file():
        raise Cep47Error(ERR_INVALID_CONFIG, f"config file not found: {config_path}")
    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as err:
        raise Cep47Error(ERR_INVALID_CONFIG, f"config file is not valid YAML: {err}") from err
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise Cep47Error(ERR_INVALID_CONFIG, "config file must contain a mapping at the top level")
    return raw


def values_from_env(env: Mapping[str, str]) -> dict[str, Any]:
    return {field: env[name] for name, field in ENV_VARS.items() if env.get(name)}


def _build_payments(raw: Any) -> PaymentAmounts:
    if raw is None:
        return PaymentAmounts()
    if isinstance(raw, PaymentAmounts):
        return raw
    if not isinstance(raw, dict):
        raise ValueError("payments must be a mapping of operation -> motes")
    unknown = sorted(set(raw) - PAYMENT_FIELDS)
    if unknown:
        raise ValueError(f"unknown payment keys: {', '.join(unknown)}")
    return PaymentAmounts(**{k: parse_motes(v, field=f"payments.{k}") for k, v in raw.items()})


def _coerce(values: dict[str, Any]) -> dict[str, Any]:
    out = dict(values)
    if out.get("contract_hash"):
        out["contract_hash"] = normalize_hash(out["contract_hash"], field="contract hash")
    if out.get("contract_package_hash"):
        out["contract_package_hash"] = normalize_hash(
            out["contract_package_hash"], field="contract package hash", package=True
        )
    if out.get("transfer_recipient"):
        out["transfer_recipient"] = parse_public_key_hex(out["transfer_recipient"]).hex()
    for field in SIZE_FIELDS:
        if field in out:
            out[field] = parse_positive_int(out[field], field=field)
    if "payments" in out:
        out["payments"] = _build_payments(out["payments"])
    if "token_meta" in out:
        meta = out["token_meta"]
        if not isinstance(meta, dict):
            raise ValueError("token_meta must be a mapping of string keys to string values")
        out["token_meta"] = {str(k): str(v) for k, v in meta.items()}
    if "timeout_seconds" in out:
        timeout = float(out["timeout_seconds"])
        if timeout <= 0:
            raise ValueError("timeout_seconds must be positive")
        out["timeout_seconds"] = timeout
    algo = out.get("key_algorithm")
    if algo is not None and str(algo).lower() not in KEY_ALGORITHMS:
        raise ValueError(f"key_algorithm must be one of {', '.join(KEY_ALGORITHMS)}")
    if algo is not None:
        out["key_algorithm"] = str(algo).lower()
    return out


def load_config(
    *,
    config_path: str | None = None,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> CliConfig:
    env = env or {}
    merged: dict[str, Any] = {}

    path = config_path or env.get(CONFIG_PATH_ENV)
    if path:
        logger.debug("loading config file %s", path)
        merged.update(read_config_file(path))
    merged.update(values_from_env(env))
    merged.update({k: v for k, v in (overrides or {}).items() if v is not None})

    unknown = sorted(set(merged) - CONFIG_FIELDS)
    if unknown:
        raise Cep47Error(ERR_INVALID_CONFIG, f"unknown config keys: {', '.join(unknown)}")
    try:
        return CliConfig(**_coerce(merged))
    except (TypeError, ValueError) as err:
        raise Cep47Error(ERR_INVALID_CONFIG, str(err)) from err
