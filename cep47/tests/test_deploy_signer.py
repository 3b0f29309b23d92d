from __future__ import annotations

import pycspr
import pytest

from ._cep47_helpers import (
    CONTRACT_HASH,
    OWN_PUBLIC_KEY,
    _key_dir,
    _pem_key_dir,
    _RPCHandler,
    _serve,
    _stop,
)

from casper_keys import account_hash, parse_public_key_hex  # noqa: E402
from deploy_signer import DeploySigner, node_connection_from_url, to_cl_value  # noqa: E402
from error_map import Cep47Error  # noqa: E402

TOKEN_ID = "17873237509455618405"


def _signer(key_dir, node_url: str = "http://127.0.0.1:1/rpc") -> DeploySigner:
    return DeploySigner(node_url=node_url, chain_name="casper-net-1", key_pair_path=str(key_dir))


def test_node_connection_requires_host():
    with pytest.raises(Cep47Error) as info:
        node_connection_from_url("not-a-url")
    assert info.value.code == "INVALID_CONFIG"


def test_node_connection_uses_host_and_rpc_port():
    info = node_connection_from_url("http://localhost:40101/rpc")
    assert isinstance(info, pycspr.NodeConnectionInfo)
    assert info.host == "localhost"
    assert info.port_rpc == 40101
    assert node_connection_from_url("http://node.example").port_rpc == 7777


def test_account_key_argument_is_account_hash_key():
    key = parse_public_key_hex(OWN_PUBLIC_KEY)
    value = to_cl_value("account_key", key)
    assert isinstance(value, pycspr.types.CL_Key)
    assert value.key_type == pycspr.types.CL_KeyType.ACCOUNT
    assert value.identifier == account_hash(key)


def test_option_string_none_and_some():
    none = to_cl_value("option_string", None)
    assert none.value is None
    assert isinstance(none.option_type, pycspr.types.CL_Type_String)
    some = to_cl_value("option_string", "Dragon")
    assert some.value == pycspr.types.CL_String("Dragon")


def test_option_string_list_wraps_typed_list():
    value = to_cl_value("option_string_list", ["1", "2"])
    assert isinstance(value.option_type, pycspr.types.CL_Type_List)
    assert [item.value for item in value.value.vector] == ["1", "2"]
    assert to_cl_value("option_string_list", None).value is None


def test_string_map_list_is_list_of_maps():
    value = to_cl_value("string_map_list", [{"origin": "fire"}, {"origin": "ice", "age": "3"}])
    assert isinstance(value, pycspr.types.CL_List)
    assert all(isinstance(item, pycspr.types.CL_Map) for item in value.vector)
    pairs = [[(k.value, v.value) for k, v in item.value] for item in value.vector]
    assert pairs == [[("origin", "fire")], [("origin", "ice"), ("age", "3")]]


def test_u32_and_string():
    assert to_cl_value("u32", "7").value == 7
    assert isinstance(to_cl_value("u32", 7), pycspr.types.CL_U32)
    assert to_cl_value("string", 5).value == "5"


@pytest.mark.parametrize(
    ("kind", "value"),
    [("string_list", []), ("string_map", {}), ("string_map_list", []), ("bytes", b"")],
)
def test_untypable_arguments_are_rejected(kind, value):
    with pytest.raises(Cep47Error) as info:
        to_cl_value(kind, value)
    assert info.value.code == "INVALID_ARGUMENT"


def test_public_key_is_derived_from_pem(tmp_path):
    key_dir, public_key_hex = _pem_key_dir(tmp_path)
    assert _signer(key_dir).public_key == bytes.fromhex(public_key_hex)


def test_public_key_hex_alone_cannot_sign(tmp_path):
    with pytest.raises(Cep47Error) as info:
        _signer(_key_dir(tmp_path)).public_key
    assert info.value.code == "KEY_FILE_NOT_FOUND"


def test_unknown_key_algorithm_is_config_error(tmp_path):
    key_dir, _ = _pem_key_dir(tmp_path)
    signer = DeploySigner(
        node_url="http://127.0.0.1:1/rpc",
        chain_name="casper-net-1",
        key_pair_path=str(key_dir),
        key_algorithm="rsa",
    )
    with pytest.raises(Cep47Error) as info:
        signer.public_key
    assert info.value.code == "INVALID_CONFIG"


def test_install_requires_wasm_file(tmp_path):
    with pytest.raises(Cep47Error) as info:
        _signer(tmp_path).install(str(tmp_path / "missing.wasm"), {}, 1)
    assert info.value.code == "INVALID_CONFIG"


def test_call_entry_point_puts_signed_deploy(tmp_path):
    key_dir, public_key_hex = _pem_key_dir(tmp_path)
    owner = bytes.fromhex(public_key_hex)
    server, url = _serve([{"jsonrpc": "2.0", "id": 1, "result": {"api_version": "1.4.5", "deploy_hash": "00" * 32}}])
    try:
        deploy_hash = _signer(key_dir, url).call_entry_point(
            CONTRACT_HASH,
            "burn_one",
            {"owner": ("account_key", owner), "token_id": ("string", TOKEN_ID)},
            12_000_000_000,
        )
        calls = list(_RPCHandler.calls)
    finally:
        _stop(server)

    assert [call["method"] for call in calls] == ["account_put_deploy"]
    deploy = calls[0]["params"]["deploy"]
    assert deploy_hash == deploy["hash"].lower()
    assert deploy["header"]["chain_name"] == "casper-net-1"
    assert deploy["header"]["account"].lower() == public_key_hex

    session = deploy["session"]["StoredContractByHash"]
    assert session["entry_point"] == "burn_one"
    assert session["hash"].lower() == CONTRACT_HASH
    args = dict((name, value) for name, value in session["args"])
    assert list(args) == ["owner", "token_id"]
    assert args["token_id"]["parsed"] == TOKEN_ID
    assert args["owner"]["parsed"]["Account"].lower() == f"account-hash-{account_hash(owner).hex()}"

    assert len(deploy["approvals"]) == 1
    assert deploy["approvals"][0]["signer"].lower() == public_key_hex


def test_install_puts_module_bytes(tmp_path):
    key_dir, _ = _pem_key_dir(tmp_path)
    wasm = tmp_path / "cep47-token.wasm"
    wasm.write_bytes(b"\x00asm\x01\x00\x00\x00")
    server, url = _serve([{"jsonrpc": "2.0", "id": 1, "result": {"api_version": "1.4.5", "deploy_hash": "00" * 32}}])
    try:
        _signer(key_dir, url).install(
            str(wasm),
            {"token_name": ("string", "DragonsNFT"), "meta": ("string_map", {"origin": "fire"})},
            200_000_000_000,
        )
        calls = list(_RPCHandler.calls)
    finally:
        _stop(server)

    session = calls[0]["params"]["deploy"]["session"]["ModuleBytes"]
    assert session["module_bytes"].lower() == wasm.read_bytes().hex()
    assert [name for name, _ in session["args"]] == ["token_name", "meta"]


def test_rejected_deploy_is_deploy_failed(tmp_path):
    key_dir, _ = _pem_key_dir(tmp_path)
    server, url = _serve([{"jsonrpc": "2.0", "id": 1, "error": {"code": -32008, "message": "invalid deploy"}}])
    try:
        with pytest.raises(Cep47Error) as info:
            _signer(key_dir, url).call_entry_point(CONTRACT_HASH, "pause", {}, 1)
    finally:
        _stop(server)
    assert info.value.code == "DEPLOY_FAILED"
    assert "invalid deploy" in info.value.message


def test_unreachable_node_is_deploy_failed(tmp_path):
    key_dir, _ = _pem_key_dir(tmp_path)
    with pytest.raises(Cep47Error) as info:
        _signer(key_dir).call_entry_point(CONTRACT_HASH, "unpause", {}, 1)
    assert info.value.code == "DEPLOY_FAILED"
    assert info.value.hint
