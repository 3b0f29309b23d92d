"""Adapter over pycspr for building, signing and submitting deploys.

Callers describe session arguments as `(kind, value)` pairs so that the
contract client stays free of SDK types; this module is the only place that
builds pycspr deploy objects.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import pycspr

from casper_keys import account_hash, load_private_key
from error_map import ERR_DEPLOY_FAILED, ERR_INVALID_ARGUMENT, ERR_INVALID_CONFIG, Cep47Error

logger = logging.getLogger(__name__)

DeployArgs = dict[str, tuple[str, Any]]

DEFAULT_RPC_PORT = 7777
# pycspr always posts to http://<host>:<port>/rpc.
RPC_PATHS = ("", "/", "/rpc", "/rpc/")


def node_connection_from_url(node_url: str) -> Any:
    parsed = urlparse(node_url)
    if not parsed.hostname:
        raise Cep47Error(ERR_INVALID_CONFIG, f"node url has no host: {node_url}")
    if parsed.path not in RPC_PATHS:
        logger.warning("deploys go to %s:%s/rpc, ignoring path %s", parsed.hostname, parsed.port, parsed.path)
    return pycspr.NodeConnectionInfo(host=parsed.hostname, port_rpc=parsed.port or DEFAULT_RPC_PORT)


def _string_map(value: dict[str, str]) -> Any:
    types = pycspr.types
    if not value:
        # The map's CL type is derived from its first entry.
        raise Cep47Error(ERR_INVALID_ARGUMENT, "metadata map cannot be empty")
    return types.CL_Map([(types.CL_String(str(k)), types.CL_String(str(v))) for k, v in value.items()])


def _string_list(values: list[str]) -> Any:
    types = pycspr.types
    if not values:
        raise Cep47Error(ERR_INVALID_ARGUMENT, "token id list cannot be empty")
    return types.CL_List([types.CL_String(str(v)) for v in values])


def to_cl_value(kind: str, value: Any) -> Any:
    types = pycspr.types
    if kind == "string":
        return types.CL_String(str(value))
    if kind == "u32":
        return types.CL_U32(int(value))
    if kind == "account_key":
        # value is a tagged public key; CEP-47 stores owners as Key::Account.
        return types.CL_Key(account_hash(value), types.CL_KeyType.ACCOUNT)
    if kind == "string_map":
        return _string_map(value)
    if kind == "string_list":
        return _string_list(value)
    if kind == "string_map_list":
        if not value:
            raise Cep47Error(ERR_INVALID_ARGUMENT, "metadata list cannot be empty")
        return types.CL_List([_string_map(item) for item in value])
    if kind == "option_string":
        inner = None if value is None else types.CL_String(str(value))
        return types.CL_Option(inner, types.CL_Type_String())
    if kind == "option_string_list":
        inner = None if value is None else _string_list(value)
        return types.CL_Option(inner, types.CL_Type_List(types.CL_Type_String()))
    raise Cep47Error(ERR_INVALID_ARGUMENT, f"unsupported deploy argument kind: {kind}")


def _session_args(args: DeployArgs) -> dict[str, Any]:
    return {name: to_cl_value(kind, value) for name, (kind, value) in args.items()}


class DeploySigner:
    """Signs deploys with a local key pair and submits them to one node."""

    def __init__(
        self,
        *,
        node_url: str,
        chain_name: str,
        key_pair_path: str,
        key_algorithm: str = "ed25519",
    ) -> None:
        self.node_url = node_url
        self.chain_name = chain_name
        self.key_pair_path = key_pair_path
        self.key_algorithm = key_algorithm
        self._private_key = None
        self._client = None

    @property
    def public_key(self) -> bytes:
        return self._signing_key().account_key

    def _signing_key(self) -> Any:
        if self._private_key is None:
            self._private_key = load_private_key(self.key_pair_path, self.key_algorithm)
        return self._private_key

    def _rpc_client(self) -> Any:
        if self._client is None:
            self._client = pycspr.NodeRpcClient(node_connection_from_url(self.node_url))
        return self._client

    def _submit(self, session: Any, payment: int, label: str) -> str:
        signer = self._signing_key()
        params = pycspr.create_deploy_parameters(account=signer, chain_name=self.chain_name)
        deploy = pycspr.create_deploy(params, pycspr.create_standard_payment(payment), session)
        deploy.approve(signer)
        deploy_hash = deploy.hash.hex()
        logger.debug("sending %s deploy %s to %s", label, deploy_hash, self.node_url)
        try:
            self._rpc_client().account_put_deploy(deploy)
        except Exception as err:  # noqa: BLE001
            raise Cep47Error(
                ERR_DEPLOY_FAILED,
                f"{label} deploy {deploy_hash} was not accepted: {err}",
                hint=f"check the node at {self.node_url} and the chain name {self.chain_name!r}",
            ) from err
        logger.info("submitted %s deploy %s", label, deploy_hash)
        return deploy_hash

    def install(self, wasm_path: str, args: DeployArgs, payment: int) -> str:
        path = Path(wasm_path).expanduser()
        if not path.is_file():
            raise Cep47Error(ERR_INVALID_CONFIG, f"contract wasm not found: {path}")
        session = pycspr.types.ModuleBytes(
            args=_session_args(args),
            module_bytes=pycspr.read_wasm(str(path)),
        )
        return self._submit(session, payment, "install")

    def call_entry_point(self, contract_hash: str, entry_point: str, args: DeployArgs, payment: int) -> str:
        session = pycspr.types.StoredContractByHash(
            args=_session_args(args),
            entry_point=entry_point,
            hash=bytes.fromhex(contract_hash),
        )
        return self._submit(session, payment, entry_point)
