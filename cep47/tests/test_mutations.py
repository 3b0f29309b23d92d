from __future__ import annotations

import json
import os

import pytest

from ._cep47_helpers import (
    CONTRACT_HASH,
    OTHER_PUBLIC_KEY,
    OWN_PUBLIC_KEY,
    FakeSigner,
    _key_dir,
    _pem_key_dir,
)

from casper_keys import parse_public_key_hex  # noqa: E402
from cep47_cli import main  # noqa: E402
from cli_config import DEFAULT_TRANSFER_RECIPIENT  # noqa: E402

OWN_KEY = parse_public_key_hex(OWN_PUBLIC_KEY)
OTHER_KEY = parse_public_key_hex(OTHER_PUBLIC_KEY)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("CEP47_"):
            monkeypatch.delenv(name)
    FakeSigner.instances = []


@pytest.fixture
def base_args(tmp_path):
    return [
        "--node-url",
        "http://127.0.0.1:1/rpc",
        "--contract-hash",
        f"hash-{CONTRACT_HASH}",
        "--key-pair-path",
        str(_key_dir(tmp_path)),
    ]


def _run(command: str, base_args: list[str], *extra: str) -> int:
    return main([command, *extra, *base_args], signer_factory=FakeSigner)


def _only_call() -> tuple[str, str, dict, int]:
    assert len(FakeSigner.instances) == 1
    calls = FakeSigner.instances[0].calls
    assert len(calls) == 1
    return calls[0]


def test_burn_one_sends_owner_and_token_id(base_args, capsys):
    assert _run("burn_one", base_args, "17873237509455618405") == 0
    contract, entry_point, args, payment = _only_call()
    assert contract == CONTRACT_HASH
    assert entry_point == "burn_one"
    assert args == {"owner": ("account_key", OWN_KEY), "token_id": ("string", "17873237509455618405")}
    assert payment == 12_000_000_000
    out = capsys.readouterr().out
    assert out == f"Burn One\n... DeployHash: {1:064x}\n"


def test_burn_one_rejects_non_numeric_token_id(base_args, capsys):
    assert _run("burn_one", base_args, "abc") == 2
    assert FakeSigner.instances[0].calls == []
    assert "INVALID_ARGUMENT" in capsys.readouterr().err


def test_burn_many(base_args):
    assert _run("burn_many", base_args, "1, 2,3") == 0
    _, entry_point, args, payment = _only_call()
    assert entry_point == "burn_many"
    assert args["token_ids"] == ("string_list", ["1", "2", "3"])
    assert payment == 12_000_000_000


def test_mint_one_uses_generated_meta(base_args, capsys):
    assert _run("mint_one", base_args) == 0
    _, entry_point, args, payment = _only_call()
    assert entry_point == "mint_one"
    assert args["recipient"] == ("account_key", OWN_KEY)
    assert args["token_ids"] == ("option_string", None)
    assert args["token_meta"] == (
        "string_map",
        {"key0": "value0", "key1": "value1", "key2": "value2", "key3": "value3"},
    )
    assert payment == 2_000_000_000
    assert capsys.readouterr().out.startswith("Mint One\n... DeployHash: ")


def test_mint_one_with_explicit_token_id(base_args):
    assert _run("mint_one", base_args, "77") == 0
    _, _, args, _ = _only_call()
    assert args["token_ids"] == ("option_string", "77")


def test_mint_copies_defaults(base_args):
    assert _run("mint_copies", base_args) == 0
    _, entry_point, args, payment = _only_call()
    assert entry_point == "mint_copies"
    assert args["count"] == ("u32", 5)
    assert len(args["token_meta"][1]) == 10
    assert args["token_ids"] == ("option_string_list", None)
    assert payment == 100_000_000_000


def test_mint_copies_count_argument(base_args):
    assert _run("mint_copies", base_args, "3") == 0
    _, _, args, _ = _only_call()
    assert args["count"] == ("u32", 3)


def test_mint_copies_rejects_zero_count(base_args):
    assert _run("mint_copies", base_args, "0") == 2
    assert FakeSigner.instances[0].calls == []


def test_mint_many_sends_one_meta_per_token(base_args, capsys):
    assert _run("mint_many", base_args, "--json") == 0
    _, entry_point, args, payment = _only_call()
    assert entry_point == "mint_many"
    kind, metas = args["token_metas"]
    assert kind == "string_map_list"
    assert len(metas) == 10
    assert all(m == {"key0": "value0", "key1": "value1", "key2": "value2"} for m in metas)
    assert payment == 100_000_000_000
    payload = json.loads(capsys.readouterr().out)
    assert payload["ok"] is True
    assert payload["result"]["count"] == 10


def test_install_contract_needs_no_contract_hash(tmp_path, capsys):
    argv = ["install_contract", "--key-pair-path", str(_key_dir(tmp_path)), "--node-url", "http://127.0.0.1:1/rpc"]
    assert main(argv, signer_factory=FakeSigner) == 0
    signer = FakeSigner.instances[0]
    assert signer.calls == []
    wasm_path, args, payment = signer.installs[0]
    assert wasm_path.endswith("dragons-nft.wasm")
    assert args == {
        "token_name": ("string", "event_nft_3"),
        "token_symbol": ("string", "DRAG"),
        "token_meta": ("string_map", {"origin": "fire", "lifetime": "infinite"}),
    }
    assert payment == 200_000_000_000
    assert signer.chain_name == "casper-net-1"
    assert capsys.readouterr().out.startswith("Contract Installed\n")


def test_update_token_metadata(base_args):
    assert _run("update_token_metadata", base_args, "9") == 0
    _, entry_point, args, _ = _only_call()
    assert entry_point == "update_token_metadata"
    assert args["token_id"] == ("string", "9")
    assert args["meta"][0] == "string_map"


def test_pause_and_unpause_send_no_args(base_args):
    assert _run("pause", base_args) == 0
    assert _run("unpause", base_args) == 0
    entry_points = [signer.calls[0][1] for signer in FakeSigner.instances]
    assert entry_points == ["pause", "unpause"]
    assert all(signer.calls[0][2] == {} for signer in FakeSigner.instances)


def test_transfer_defaults_to_built_in_recipient(base_args):
    assert _run("transfer_token", base_args, "1") == 0
    _, entry_point, args, _ = _only_call()
    assert entry_point == "transfer_token"
    assert args["recipient"] == ("account_key", parse_public_key_hex(DEFAULT_TRANSFER_RECIPIENT))


def test_transfer_rejects_malformed_recipient(base_args, monkeypatch, capsys):
    monkeypatch.setenv("CEP47_TRANSFER_RECIPIENT", "01abc")
    assert _run("transfer_token", base_args, "1") == 2
    assert "INVALID_CONFIG" in capsys.readouterr().err


def test_mint_one_with_pem_only_key_dir(tmp_path):
    key_dir, public_key_hex = _pem_key_dir(tmp_path)
    argv = ["mint_one", "--node-url", "http://127.0.0.1:1/rpc", "--contract-hash", CONTRACT_HASH, "--key-pair-path", str(key_dir)]
    assert main(argv, signer_factory=FakeSigner) == 0
    _, entry_point, args, _ = _only_call()
    assert entry_point == "mint_one"
    assert args["recipient"] == ("account_key", bytes.fromhex(public_key_hex))


def test_pem_key_takes_precedence_over_public_key_hex(tmp_path):
    key_dir, public_key_hex = _pem_key_dir(tmp_path, name="keys")
    _key_dir(tmp_path, OTHER_PUBLIC_KEY)
    argv = ["burn_one", "5", "--node-url", "http://127.0.0.1:1/rpc", "--contract-hash", CONTRACT_HASH, "--key-pair-path", str(key_dir)]
    assert main(argv, signer_factory=FakeSigner) == 0
    _, _, args, _ = _only_call()
    assert args["owner"] == ("account_key", bytes.fromhex(public_key_hex))


def test_transfer_token_to_configured_recipient(base_args, monkeypatch):
    monkeypatch.setenv("CEP47_TRANSFER_RECIPIENT", OTHER_PUBLIC_KEY)
    assert _run("transfer_token", base_args, "1") == 0
    _, entry_point, args, payment = _only_call()
    assert entry_point == "transfer_token"
    assert args == {
        "sender": ("account_key", OWN_KEY),
        "recipient": ("account_key", OTHER_KEY),
        "token_id": ("string", "1"),
    }
    assert payment == 200_000_000_000


def test_transfer_many_and_all(base_args, monkeypatch):
    monkeypatch.setenv("CEP47_TRANSFER_RECIPIENT", OTHER_PUBLIC_KEY)
    assert _run("transfer_many", base_args, "4,5") == 0
    assert _run("transfer_all", base_args) == 0
    first, second = (signer.calls[0] for signer in FakeSigner.instances)
    assert first[1] == "transfer_many_tokens"
    assert first[2]["token_ids"] == ("string_list", ["4", "5"])
    assert second[1] == "transfer_all_tokens"
    assert set(second[2]) == {"sender", "recipient"}


def test_signing_command_requires_key_pair_path(capsys):
    argv = ["mint_one", "--contract-hash", CONTRACT_HASH]
    assert main(argv, signer_factory=FakeSigner) == 2
    assert FakeSigner.instances == []
    assert "INVALID_CONFIG" in capsys.readouterr().err


def test_payments_come_from_config_file(base_args, tmp_path):
    config = tmp_path / "cep47.yaml"
    config.write_text("payments:\n  burn_one: 5000000000\n", encoding="utf-8")
    assert _run("burn_one", base_args, "3", "--config", str(config)) == 0
    _, _, _, payment = _only_call()
    assert payment == 5_000_000_000
