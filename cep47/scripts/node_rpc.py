"""Casper node JSON-RPC client.

Requests are plain HTTP POSTs through urllib with a small retry budget for
transient failures. Successful responses come back as the node's `result`
object; transport and remote failures surface as `Cep47Error`.
"""

from __future__ import annotations

import itertools
import json
import logging
import time
import urllib.error
import urllib.request
from socket import timeout as SocketTimeout
from typing import Any

from error_map import ERR_RPC_REMOTE, ERR_RPC_TIMEOUT, ERR_RPC_TRANSPORT, Cep47Error

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 20.0
DEFAULT_READ_RETRIES = 2
RETRYABLE_HTTP_CODES = {429, 502, 503, 504}
BACKOFF_SECONDS = (0.15, 0.40)

# Fragments the node uses when a stored value or dictionary entry is absent.
MISSING_VALUE_MARKERS = ("valuenotfound", "value not found", "failed to find")


def _sleep_backoff(attempt: int) -> None:
    if attempt < len(BACKOFF_SECONDS):
        time.sleep(BACKOFF_SECONDS[attempt])


def _failure(code: str, message: str, rpc_response: Any = None) -> dict[str, Any]:
    return {"ok": False, "error_code": code, "error_message": message, "rpc_response": rpc_response}


def _is_timeout(err: BaseException) -> bool:
    # urllib wraps connect timeouts in URLError; read timeouts surface bare.
    reason = getattr(err, "reason", err)
    return isinstance(reason, (SocketTimeout, TimeoutError))


def _post_once(rpc_url: str, body: bytes, timeout_seconds: float) -> tuple[dict[str, Any], bool]:
    """Single POST; returns the envelope and whether a retry may help."""
    req = urllib.request.Request(
        rpc_url,
        data=body,
        method="POST",
        headers={"Content-Type": "application/json", "Accept": "application/json"},
    )
    try:
        with urllib.request.urlopen(req, timeout=timeout_seconds) as resp:
            text = resp.read().decode("utf-8")
    except urllib.error.HTTPError as err:
        raw = err.read().decode("utf-8", errors="replace")
        envelope = _failure(ERR_RPC_TRANSPORT, f"node answered http {err.code}", {"status": err.code, "raw": raw})
        return envelope, err.code in RETRYABLE_HTTP_CODES
    except (urllib.error.URLError, SocketTimeout, TimeoutError) as err:
        if _is_timeout(err):
            return _failure(ERR_RPC_TIMEOUT, f"no answer within {timeout_seconds:g}s"), False
        return _failure(ERR_RPC_TRANSPORT, str(getattr(err, "reason", err))), True

    try:
        rpc_response = json.loads(text)
    except json.JSONDecodeError:
        return _failure(ERR_RPC_TRANSPORT, "node returned non-json response", {"raw": text}), False
    return {"ok": True, "error_code": None, "error_message": None, "rpc_response": rpc_response}, False


def post_json_rpc(
    *,
    rpc_url: str,
    payload: dict[str, Any],
    timeout_seconds: float,
    retries: int,
) -> dict[str, Any]:
    """POST one JSON-RPC payload; returns an envelope instead of raising.

    Only connection failures and overloaded-node answers are retried. Node
    queries are reads, so a retry never duplicates a state change.
    """
    method = payload.get("method", "?")
    body = json.dumps(payload).encode("utf-8")
    attempt = 0
    while True:
        envelope, retryable = _post_once(rpc_url, body, timeout_seconds)
        if envelope["ok"] or not retryable or attempt >= retries:
            if not envelope["ok"]:
                logger.debug("%s failed after %d attempt(s): %s", method, attempt + 1, envelope["error_message"])
            return envelope
        logger.warning("%s: %s, retrying", method, envelope["error_message"])
        _sleep_backoff(attempt)
        attempt += 1


def is_missing_value_error(err: Cep47Error) -> bool:
    if err.code != ERR_RPC_REMOTE or not isinstance(err.rpc_response, dict):
        return False
    remote = err.rpc_response.get("error")
    if not isinstance(remote, dict):
        return False
    text = f"{remote.get('message', '')} {remote.get('data', '')}".lower()
    return any(marker in text for marker in MISSING_VALUE_MARKERS)


def _stored_cl_value(result: dict[str, Any]) -> Any:
    stored = result.get("stored_value")
    if not isinstance(stored, dict) or "CLValue" not in stored:
        raise Cep47Error(ERR_RPC_REMOTE, "node response carries no CLValue", rpc_response=result)
    return stored["CLValue"].get("parsed")


class NodeRpc:
    """Thin typed wrapper over the node's JSON-RPC methods used by CEP-47."""

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        retries: int = DEFAULT_READ_RETRIES,
    ) -> None:
        self.rpc_url = rpc_url
        self.timeout_seconds = timeout_seconds
        self.retries = retries
        self._ids = itertools.count(1)

    def call(self, method: str, params: Any = None) -> Any:
        payload: dict[str, Any] = {"jsonrpc": "2.0", "id": next(self._ids), "method": method}
        payload["params"] = [] if params is None else params
        transport = post_json_rpc(
            rpc_url=self.rpc_url,
            payload=payload,
            timeout_seconds=self.timeout_seconds,
            retries=self.retries,
        )
        if not transport["ok"]:
            raise Cep47Error(
                transport["error_code"],
                f"{method}: {transport['error_message']}",
                hint=f"check that a Casper node RPC endpoint is reachable at {self.rpc_url}",
                rpc_response=transport.get("rpc_response"),
            )
        rpc_response = transport["rpc_response"]
        if not isinstance(rpc_response, dict):
            raise Cep47Error(ERR_RPC_REMOTE, f"{method}: malformed rpc response")
        if "error" in rpc_response:
            remote = rpc_response["error"]
            message = remote.get("message") if isinstance(remote, dict) else remote
            raise Cep47Error(ERR_RPC_REMOTE, f"{method}: {message}", rpc_response=rpc_response)
        return rpc_response.get("result")

    def state_root_hash(self) -> str:
        result = self.call("chain_get_state_root_hash")
        root = result.get("state_root_hash") if isinstance(result, dict) else None
        if not root:
            raise Cep47Error(ERR_RPC_REMOTE, "chain_get_state_root_hash returned no state root hash")
        return str(root)

    def get_item(self, key: str, path: list[str] | None = None, *, state_root_hash: str | None = None) -> dict[str, Any]:
        root = state_root_hash or self.state_root_hash()
        result = self.call("state_get_item", {"state_root_hash": root, "key": key, "path": path or []})
        if not isinstance(result, dict):
            raise Cep47Error(ERR_RPC_REMOTE, "state_get_item returned no result")
        return result

    def contract_named_value(self, contract_hash: str, name: str) -> Any:
        return _stored_cl_value(self.get_item(f"hash-{contract_hash}", [name]))

    def contract_dictionary_value(
        self,
        contract_hash: str,
        dictionary_name: str,
        item_key: str,
        *,
        state_root_hash: str | None = None,
    ) -> Any:
        root = state_root_hash or self.state_root_hash()
        identifier = {
            "ContractNamedKey": {
                "key": f"hash-{contract_hash}",
                "dictionary_name": dictionary_name,
                "dictionary_item_key": item_key,
            }
        }
        result = self.call(
            "state_get_dictionary_item",
            {"state_root_hash": root, "dictionary_identifier": identifier},
        )
        if not isinstance(result, dict):
            raise Cep47Error(ERR_RPC_REMOTE, "state_get_dictionary_item returned no result")
        return _stored_cl_value(result)

    def contract_data(self, contract_hash: str) -> dict[str, Any]:
        stored = self.get_item(f"hash-{contract_hash}").get("stored_value", {})
        return stored.get("Contract", stored)

    def account_info(self, account_hash_hex: str) -> dict[str, Any]:
        stored = self.get_item(f"account-hash-{account_hash_hex}").get("stored_value", {})
        return stored.get("Account", stored)
