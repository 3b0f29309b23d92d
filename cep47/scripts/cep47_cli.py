#!/usr/bin/env python3
"""Command-line client for a CEP-47 NFT contract on a Casper network."""

from __future__ import annotations

import argparse
import dataclasses
import functools
import json
import logging
import os
import sys
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

# Local imports for script execution (python3 scripts/cep47_cli.py ...)
SCRIPT_DIR = Path(__file__).resolve().parent
if str(SCRIPT_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPT_DIR))

from casper_keys import account_hash_hex, parse_public_key_hex, read_own_public_key  # noqa: E402
from cep47_client import CEP47Client  # noqa: E402
from cli_config import CliConfig, load_config  # noqa: E402
from error_map import (  # noqa: E402
    ERR_INTERNAL,
    ERR_INVALID_ARGUMENT,
    EXIT_OK,
    Cep47Error,
)
from event_stream import DEFAULT_LISTEN_EVENTS  # noqa: E402
from meta_factory import random_meta_array, random_meta_map  # noqa: E402
from node_rpc import NodeRpc  # noqa: E402
from quantity import parse_positive_int, parse_token_id, parse_token_ids  # noqa: E402

logger = logging.getLogger(__name__)

ActionResult = dict[str, Any]
Action = Callable[[str | None, CliConfig, CEP47Client], ActionResult]
Printer = Callable[[str], None]


@dataclasses.dataclass(frozen=True)
class Command:
    name: str
    action: Action
    help: str
    signs: bool = False


def _timestamp() -> str:
    return datetime.now(UTC).isoformat()


def _json_dump(payload: Any, pretty: bool = True) -> str:
    return json.dumps(payload, indent=2 if pretty else None, sort_keys=False)


def _display(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return _json_dump(value)
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _own_public_key(config: CliConfig) -> bytes:
    return read_own_public_key(config.require_key_pair_path(), config.key_algorithm)


def _public_key_arg(arg: str | None, config: CliConfig) -> bytes:
    if arg:
        return parse_public_key_hex(arg)
    return _own_public_key(config)


def _bind(client: CEP47Client, config: CliConfig) -> None:
    client.set_contract_hash(config.require_contract_hash())


def _deploy_result(title: str, deploy_hash: str, **extra: Any) -> ActionResult:
    return {
        "lines": [title, f"... DeployHash: {deploy_hash}"],
        "result": {"deploy_hash": deploy_hash, **extra},
    }


# Mutations


def install_contract(arg: str | None, config: CliConfig, client: CEP47Client) -> ActionResult:
    deploy_hash = client.install(
        config.token_name,
        config.token_symbol,
        dict(config.token_meta),
        config.wasm_path,
        config.payments.install,
    )
    return _deploy_result("Contract Installed", deploy_hash)


def mint_one(arg: str | None, config: CliConfig, client: CEP47Client) -> ActionResult:
    _bind(client, config)
    token_id = parse_token_id(arg) if arg else None
    meta = random_meta_map(config.mint_one_meta_size)
    deploy_hash = client.mint_one(_own_public_key(config), meta, config.payments.mint_one, token_id=token_id)
    return _deploy_result("Mint One", deploy_hash, token_id=token_id)


def mint_copies(arg: str | None, config: CliConfig, client: CEP47Client) -> ActionResult:
    _bind(client, config)
    count = parse_positive_int(arg, field="count") if arg else config.mint_copies_count
    meta = random_meta_map(config.mint_copies_meta_size)
    deploy_hash = client.mint_copies(_own_public_key(config), meta, count, config.payments.mint_copies)
    return _deploy_result("Mint Copies", deploy_hash, count=count)


def mint_many(arg: str | None, config: CliConfig, client: CEP47Client) -> ActionResult:
    _bind(client, config)
    size = parse_positive_int(arg, field="size") if arg else config.mint_many_meta_size
    metas = random_meta_array(size)
    deploy_hash = client.mint_many(_own_public_key(config), metas, config.payments.mint_many)
    return _deploy_result("Mint Many", deploy_hash, count=len(metas))


def burn_one(arg: str | None, config: CliConfig, client: CEP47Client) -> ActionResult:
    _bind(client, config)
    token_id = parse_token_id(arg)
    deploy_hash = client.burn_one(_own_public_key(config), token_id, config.payments.burn_one)
    return _deploy_result("Burn One", deploy_hash, token_id=token_id)


def burn_many(arg: str | None, config: CliConfig, client: CEP47Client) -> ActionResult:
    _bind(client, config)
    token_ids = parse_token_ids(arg)
    deploy_hash = client.burn_many(_own_public_key(config), token_ids, config.payments.burn_one)
    return _deploy_result("Burn Many", deploy_hash, token_ids=token_ids)


def update_token_metadata(arg: str | None, config: CliConfig, client: CEP47Client) -> ActionResult:
    _bind(client, config)
    token_id = parse_token_id(arg)
    meta = random_meta_map(config.mint_one_meta_size)
    deploy_hash = client.update_token_metadata(token_id, meta, config.payments.update_token_metadata)
    return _deploy_result("Update Token Metadata", deploy_hash, token_id=token_id)


def pause(arg: str | None, config: CliConfig, client: CEP47Client) -> ActionResult:
    _bind(client, config)
    return _deploy_result("Pause", client.pause(config.payments.pause))


def unpause(arg: str | None, config: CliConfig, client: CEP47Client) -> ActionResult:
    _bind(client, config)
    return _deploy_result("Unpause", client.unpause(config.payments.pause))


def transfer_token(arg: str | None, config: CliConfig, client: CEP47Client) -> ActionResult:
    _bind(client, config)
    token_id = parse_token_id(arg)
    recipient = parse_public_key_hex(config.require_transfer_recipient())
    deploy_hash = client.transfer_token(_own_public_key(config), recipient, token_id, config.payments.transfer)
    return _deploy_result("Transfer Token", deploy_hash, token_id=token_id)


def transfer_many(arg: str | None, config: CliConfig, client: CEP47Client) -> ActionResult:
    _bind(client, config)
    token_ids = parse_token_ids(arg)
    recipient = parse_public_key_hex(config.require_transfer_recipient())
    deploy_hash = client.transfer_many_tokens(
        _own_public_key(config), recipient, token_ids, config.payments.transfer
    )
    return _deploy_result("Transfer Many Tokens", deploy_hash, token_ids=token_ids)


def transfer_all(arg: str | None, config: CliConfig, client: CEP47Client) -> ActionResult:
    _bind(client, config)
    recipient = parse_public_key_hex(config.require_transfer_recipient())
    deploy_hash = client.transfer_all_tokens(_own_public_key(config), recipient, config.payments.transfer)
    return _deploy_result("Transfer All Tokens", deploy_hash)


# Queries


def _simple_getter(label: str, getter: Callable[[CEP47Client], Any]) -> Action:
    def _action(arg: str | None, config: CliConfig, client: CEP47Client) -> ActionResult:
        _bind(client, config)
        value = getter(client)
        return {"lines": [f"{label} {_display(value)}"], "result": value}

    _action.__name__ = f"get_{label}"
    return _action


def balance_of(arg: str | None, config: CliConfig, client: CEP47Client) -> ActionResult:
    _bind(client, config)
    balance = client.balance_of(_public_key_arg(arg, config))
    return {"lines": [f"Balance: {balance}"], "result": balance}


def owner_of(arg: str | None, config: CliConfig, client: CEP47Client) -> ActionResult:
    _bind(client, config)
    owner = client.owner_of(parse_token_id(arg))
    return {"lines": [f"Owner: {_display(owner)}"], "result": owner}


def get_token_meta(arg: str | None, config: CliConfig, client: CEP47Client) -> ActionResult:
    _bind(client, config)
    meta = client.token_meta(parse_token_id(arg))
    return {"lines": [f"Token meta {_display(meta)}"], "result": meta}


def tokens_of(arg: str | None, config: CliConfig, client: CEP47Client) -> ActionResult:
    _bind(client, config)
    tokens = client.tokens_of(_public_key_arg(arg, config))
    return {"lines": [f"Tokens: {_json_dump(tokens)}"], "result": tokens}


def print_account(arg: str | None, config: CliConfig, client: CEP47Client) -> ActionResult:
    account = client.node.account_info(account_hash_hex(_public_key_arg(arg, config).hex()))
    return {"lines": [_json_dump(account)], "result": account}


def get_contract(arg: str | None, config: CliConfig, client: CEP47Client) -> ActionResult:
    _bind(client, config)
    contract = client.node.contract_data(client.contract_hash)
    return {"lines": [_json_dump(contract)], "result": contract}


def _listen_printer(out: Printer, as_json: bool) -> Callable[[str, dict[str, Any]], None]:
    def _on_event(event_name: str, data: dict[str, Any]) -> None:
        if as_json:
            out(_json_dump({"event": event_name, "data": data}, pretty=False))
        else:
            out(f"+ {event_name} {_json_dump(data, pretty=False)}")

    return _on_event


def _print_flush(line: str) -> None:
    print(line, flush=True)


def listen_to(
    arg: str | None,
    config: CliConfig,
    client: CEP47Client,
    *,
    on_event: Callable[[str, dict[str, Any]], None] | None = None,
    max_events: int | None = None,
) -> ActionResult:
    _bind(client, config)
    on_event = on_event or _listen_printer(_print_flush, as_json=False)
    received = 0

    def _count(event_name: str, data: dict[str, Any]) -> None:
        nonlocal received
        received += 1
        on_event(event_name, data)

    try:
        client.on_event(list(DEFAULT_LISTEN_EVENTS), _count, max_events=max_events)
    except KeyboardInterrupt:
        logger.debug("listen interrupted after %d events", received)
    return {"lines": ["Stopped listening"], "result": {"events_received": received}}


COMMANDS: dict[str, Command] = {
    c.name: c
    for c in (
        Command("install_contract", install_contract, "install the contract wasm", signs=True),
        Command("mint_one", mint_one, "mint one token to own account [token_id]", signs=True),
        Command("mint_copies", mint_copies, "mint copies sharing one metadata map [count]", signs=True),
        Command("mint_many", mint_many, "mint a batch with distinct metadata [size]", signs=True),
        Command("name", _simple_getter("name", CEP47Client.name), "contract name"),
        Command("symbol", _simple_getter("symbol", CEP47Client.symbol), "contract symbol"),
        Command("meta", _simple_getter("meta", CEP47Client.meta), "contract metadata"),
        Command("is_paused", _simple_getter("isPaused", CEP47Client.is_paused), "paused flag"),
        Command("burn_one", burn_one, "burn one owned token <token_id>", signs=True),
        Command("burn_many", burn_many, "burn owned tokens <id,id,...>", signs=True),
        Command("total_supply", _simple_getter("totalSupply", CEP47Client.total_supply), "total supply"),
        Command("balance_of", balance_of, "token balance [public_key_hex]"),
        Command("owner_of", owner_of, "owner of <token_id>"),
        Command("get_token_meta", get_token_meta, "metadata of <token_id>"),
        Command("tokens_of", tokens_of, "token ids owned by [public_key_hex]"),
        Command(
            "update_token_metadata",
            update_token_metadata,
            "replace metadata of <token_id>",
            signs=True,
        ),
        Command("pause", pause, "pause the contract", signs=True),
        Command("unpause", unpause, "unpause the contract", signs=True),
        Command("print_account", print_account, "account info of [public_key_hex]"),
        Command("get_contract", get_contract, "raw contract data"),
        Command("transfer_token", transfer_token, "transfer <token_id> to the configured recipient", signs=True),
        Command("transfer_many", transfer_many, "transfer <id,id,...> to the configured recipient", signs=True),
        Command("transfer_all", transfer_all, "transfer all owned tokens to the configured recipient", signs=True),
        Command("listen_to", listen_to, "print contract events until interrupted"),
    )
}


def build_client(config: CliConfig, *, signs: bool, signer_factory: Callable[..., Any] | None = None) -> CEP47Client:
    node = NodeRpc(config.node_url, timeout_seconds=config.timeout_seconds)
    signer = None
    if signs:
        if signer_factory is None:
            from deploy_signer import DeploySigner

            signer_factory = DeploySigner
        signer = signer_factory(
            node_url=config.node_url,
            chain_name=config.chain_name,
            key_pair_path=config.require_key_pair_path(),
            key_algorithm=config.key_algorithm,
        )
    return CEP47Client(
        node,
        signer,
        event_stream_url=config.event_stream_url,
        contract_package_hash=config.contract_package_hash,
    )


def _error_payload(command: str, err: Cep47Error) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "timestamp_utc": _timestamp(),
        "command": command,
        "status": "error",
        "ok": False,
        "error_code": err.code,
        "error_message": err.message,
    }
    if err.hint:
        payload["hint"] = err.hint
    if err.rpc_response is not None:
        payload["rpc_response"] = err.rpc_response
    return payload


def _ok_payload(command: str, result: Any) -> dict[str, Any]:
    return {
        "timestamp_utc": _timestamp(),
        "command": command,
        "status": "ok",
        "ok": True,
        "error_code": None,
        "error_message": None,
        "result": result,
    }


def _report_error(args: argparse.Namespace, err: Cep47Error) -> int:
    if args.json:
        print(_json_dump(_error_payload(args.command, err), pretty=not args.compact))
    else:
        print(f"Error [{err.code}]: {err.message}", file=sys.stderr)
        if err.hint:
            print(f"hint: {err.hint}", file=sys.stderr)
    return err.exit_code


def run_command(
    args: argparse.Namespace,
    *,
    env: dict[str, str] | None = None,
    signer_factory: Callable[..., Any] | None = None,
) -> int:
    command = COMMANDS.get(args.command)
    if command is None:
        print(f"Command unknown {args.command}")
        return EXIT_OK

    try:
        config = load_config(
            config_path=args.config,
            env=os.environ if env is None else env,
            overrides={
                "node_url": args.node_url,
                "event_stream_url": args.event_stream_url,
                "chain_name": args.chain_name,
                "contract_hash": args.contract_hash,
                "key_pair_path": args.key_pair_path,
                "timeout_seconds": args.timeout_seconds,
            },
        )
        client = build_client(config, signs=command.signs, signer_factory=signer_factory)
        action = command.action
        if command.name == "listen_to":
            if not args.json:
                _print_flush("Listening to...")
            action = functools.partial(
                command.action,
                on_event=_listen_printer(_print_flush, args.json),
                max_events=args.max_events,
            )
        logger.debug("dispatching %s arg=%r", command.name, args.arg1)
        outcome = action(args.arg1, config, client)
    except Cep47Error as err:
        return _report_error(args, err)
    except ValueError as err:
        return _report_error(args, Cep47Error(ERR_INVALID_ARGUMENT, str(err)))
    except Exception as err:  # noqa: BLE001
        logger.debug("unexpected failure", exc_info=True)
        return _report_error(args, Cep47Error(ERR_INTERNAL, f"{type(err).__name__}: {err}"))

    if args.json:
        print(_json_dump(_ok_payload(command.name, outcome.get("result")), pretty=not args.compact))
    else:
        for line in outcome.get("lines", []):
            print(line)
    return EXIT_OK


def _command_epilog() -> str:
    width = max(len(name) for name in COMMANDS)
    rows = [f"  {name.ljust(width)}  {c.help}" for name, c in COMMANDS.items()]
    return "commands:\n" + "\n".join(rows)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=__doc__,
        epilog=_command_epilog(),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("command", help="command name (see list below)")
    parser.add_argument("arg1", nargs="?", help="optional argument: token id(s), count or public key hex")
    parser.add_argument("--config", help="YAML config file (default: $CEP47_CONFIG)")
    parser.add_argument("--node-url", help="node JSON-RPC url")
    parser.add_argument("--event-stream-url", help="node SSE event stream url")
    parser.add_argument("--chain-name", help="network chain name")
    parser.add_argument("--contract-hash", help="installed contract hash (hex or hash-<hex>)")
    parser.add_argument("--key-pair-path", help="directory holding secret_key.pem and public_key_hex")
    parser.add_argument("--timeout-seconds", type=float, help="node request timeout")
    parser.add_argument("--max-events", type=int, help="listen_to: stop after N events")
    parser.add_argument("--json", action="store_true", help="print a JSON envelope instead of status lines")
    parser.add_argument("--compact", action="store_true", help="compact JSON output")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging on stderr")
    return parser


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main(argv: list[str] | None = None, *, signer_factory: Callable[..., Any] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    if args.max_events is not None and args.max_events <= 0:
        parser.error("--max-events must be positive")
    return int(run_command(args, signer_factory=signer_factory))


if __name__ == "__main__":
    raise SystemExit(main())
