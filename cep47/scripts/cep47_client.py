"""CEP-47 NFT contract client.

Reads go straight to the node's global state (named keys and dictionaries of
the installed contract). Writes are encoded as entry-point calls and handed to
a deploy signer.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from casper_keys import account_hash, format_key, normalize_hash, owned_token_item_key
from error_map import ERR_CONTRACT_HASH_REQUIRED, ERR_INVALID_CONFIG, ERR_RPC_REMOTE, Cep47Error
from event_stream import EventCallback, listen
from node_rpc import NodeRpc, is_missing_value_error

logger = logging.getLogger(__name__)

# Named keys and dictionaries created by the contract on install.
NAME_KEY = "name"
SYMBOL_KEY = "symbol"
META_KEY = "meta"
TOTAL_SUPPLY_KEY = "total_supply"
PAUSED_KEY = "paused"
BALANCES_DICT = "balances"
OWNERS_DICT = "owners"
METADATA_DICT = "metadata"
OWNED_TOKENS_BY_INDEX_DICT = "owned_tokens_by_index"


class DeploySubmitter(Protocol):
    def install(self, wasm_path: str, args: dict[str, tuple[str, Any]], payment: int) -> str: ...

    def call_entry_point(
        self, contract_hash: str, entry_point: str, args: dict[str, tuple[str, Any]], payment: int
    ) -> str: ...


def _parse_u256(parsed: Any, *, field: str) -> int:
    try:
        return int(str(parsed), 10)
    except (TypeError, ValueError):
        raise Cep47Error(ERR_RPC_REMOTE, f"{field} is not an integer: {parsed!r}") from None


def _parse_meta(parsed: Any) -> dict[str, str]:
    if isinstance(parsed, dict):
        return {str(k): str(v) for k, v in parsed.items()}
    if isinstance(parsed, list):
        return {str(item["key"]): str(item["value"]) for item in parsed if isinstance(item, dict)}
    raise Cep47Error(ERR_RPC_REMOTE, f"metadata has unexpected shape: {parsed!r}")


class CEP47Client:
    def __init__(
        self,
        node: NodeRpc,
        signer: DeploySubmitter | None = None,
        *,
        contract_hash: str | None = None,
        event_stream_url: str | None = None,
        contract_package_hash: str | None = None,
    ) -> None:
        self.node = node
        self.signer = signer
        self.contract_hash = normalize_hash(contract_hash) if contract_hash else None
        self.event_stream_url = event_stream_url
        self.contract_package_hash = contract_package_hash

    def set_contract_hash(self, contract_hash: str) -> None:
        self.contract_hash = normalize_hash(contract_hash)

    def _contract(self) -> str:
        if not self.contract_hash:
            raise Cep47Error(ERR_CONTRACT_HASH_REQUIRED, "client is not bound to a contract hash")
        return self.contract_hash

    def _signer(self) -> DeploySubmitter:
        if self.signer is None:
            raise Cep47Error(ERR_INVALID_CONFIG, "client has no deploy signer configured")
        return self.signer

    def _named(self, key: str) -> Any:
        return self.node.contract_named_value(self._contract(), key)

    def _dictionary(self, name: str, item_key: str, *, state_root_hash: str | None = None) -> Any:
        try:
            return self.node.contract_dictionary_value(
                self._contract(), name, item_key, state_root_hash=state_root_hash
            )
        except Cep47Error as err:
            if is_missing_value_error(err):
                logger.debug("dictionary %s has no item %s", name, item_key)
                return None
            raise

    # Queries

    def name(self) -> str:
        return str(self._named(NAME_KEY))

    def symbol(self) -> str:
        return str(self._named(SYMBOL_KEY))

    def meta(self) -> dict[str, str]:
        return _parse_meta(self._named(META_KEY))

    def total_supply(self) -> int:
        return _parse_u256(self._named(TOTAL_SUPPLY_KEY), field=TOTAL_SUPPLY_KEY)

    def is_paused(self) -> bool:
        return bool(self._named(PAUSED_KEY))

    def balance_of(self, public_key: bytes, *, state_root_hash: str | None = None) -> int:
        parsed = self._dictionary(BALANCES_DICT, account_hash(public_key).hex(), state_root_hash=state_root_hash)
        return 0 if parsed is None else _parse_u256(parsed, field=BALANCES_DICT)

    def owner_of(self, token_id: str) -> str | None:
        return format_key(self._dictionary(OWNERS_DICT, token_id))

    def token_meta(self, token_id: str) -> dict[str, str] | None:
        parsed = self._dictionary(METADATA_DICT, token_id)
        return None if parsed is None else _parse_meta(parsed)

    def tokens_of(self, public_key: bytes) -> list[str]:
        # Pin one state root so the balance and index lookups see the same block.
        root = self.node.state_root_hash()
        owner_hash = account_hash(public_key)
        balance = self.balance_of(public_key, state_root_hash=root)
        tokens: list[str] = []
        for index in range(balance):
            token_id = self._dictionary(
                OWNED_TOKENS_BY_INDEX_DICT,
                owned_token_item_key(owner_hash, index),
                state_root_hash=root,
            )
            if token_id is None:
                logger.warning("owned token index %d missing for %s", index, owner_hash.hex())
                continue
            tokens.append(str(token_id))
        return tokens

    # Mutations

    def _call(self, entry_point: str, args: dict[str, tuple[str, Any]], payment: int) -> str:
        return self._signer().call_entry_point(self._contract(), entry_point, args, payment)

    def install(self, name: str, symbol: str, meta: dict[str, str], wasm_path: str, payment: int) -> str:
        args = {
            "token_name": ("string", name),
            "token_symbol": ("string", symbol),
            "token_meta": ("string_map", meta),
        }
        return self._signer().install(wasm_path, args, payment)

    def mint_one(self, recipient: bytes, meta: dict[str, str], payment: int, *, token_id: str | None = None) -> str:
        args = {
            "recipient": ("account_key", recipient),
            "token_ids": ("option_string", token_id),
            "token_meta": ("string_map", meta),
        }
        return self._call("mint_one", args, payment)

    def mint_copies(
        self,
        recipient: bytes,
        meta: dict[str, str],
        count: int,
        payment: int,
        *,
        token_ids: list[str] | None = None,
    ) -> str:
        args = {
            "recipient": ("account_key", recipient),
            "token_ids": ("option_string_list", token_ids),
            "token_meta": ("string_map", meta),
            "count": ("u32", count),
        }
        return self._call("mint_copies", args, payment)

    def mint_many(
        self,
        recipient: bytes,
        metas: list[dict[str, str]],
        payment: int,
        *,
        token_ids: list[str] | None = None,
    ) -> str:
        args = {
            "recipient": ("account_key", recipient),
            "token_ids": ("option_string_list", token_ids),
            "token_metas": ("string_map_list", metas),
        }
        return self._call("mint_many", args, payment)

    def burn_one(self, owner: bytes, token_id: str, payment: int) -> str:
        args = {"owner": ("account_key", owner), "token_id": ("string", token_id)}
        return self._call("burn_one", args, payment)

    def burn_many(self, owner: bytes, token_ids: list[str], payment: int) -> str:
        args = {"owner": ("account_key", owner), "token_ids": ("string_list", token_ids)}
        return self._call("burn_many", args, payment)

    def update_token_metadata(self, token_id: str, meta: dict[str, str], payment: int) -> str:
        args = {"token_id": ("string", token_id), "meta": ("string_map", meta)}
        return self._call("update_token_metadata", args, payment)

    def transfer_token(self, sender: bytes, recipient: bytes, token_id: str, payment: int) -> str:
        args = {
            "sender": ("account_key", sender),
            "recipient": ("account_key", recipient),
            "token_id": ("string", token_id),
        }
        return self._call("transfer_token", args, payment)

    def transfer_many_tokens(self, sender: bytes, recipient: bytes, token_ids: list[str], payment: int) -> str:
        args = {
            "sender": ("account_key", sender),
            "recipient": ("account_key", recipient),
            "token_ids": ("string_list", token_ids),
        }
        return self._call("transfer_many_tokens", args, payment)

    def transfer_all_tokens(self, sender: bytes, recipient: bytes, payment: int) -> str:
        args = {"sender": ("account_key", sender), "recipient": ("account_key", recipient)}
        return self._call("transfer_all_tokens", args, payment)

    def pause(self, payment: int) -> str:
        return self._call("pause", {}, payment)

    def unpause(self, payment: int) -> str:
        return self._call("unpause", {}, payment)

    # Events

    def on_event(self, event_names: list[str], callback: EventCallback, *, max_events: int | None = None) -> int:
        if not self.event_stream_url:
            raise Cep47Error(ERR_INVALID_CONFIG, "client has no event stream url")
        return listen(
            self.event_stream_url,
            event_names,
            callback,
            package_hash=self.contract_package_hash,
            max_events=max_events,
        )
