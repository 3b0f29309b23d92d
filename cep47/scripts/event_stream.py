"""Node event-stream (SSE) reader that extracts CEP-47 contract events."""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from collections.abc import Callable, Iterable, Iterator
from typing import Any

from error_map import ERR_EVENT_STREAM_FAILED, Cep47Error

logger = logging.getLogger(__name__)

# Event kinds -> `event_type` value the contract writes into its event maps.
CEP47_EVENTS: dict[str, str] = {
    "Mint": "cep47_mint_one",
    "TransferToken": "cep47_transfer_token",
    "TransferAllTokens": "cep47_transfer_all_tokens",
    "BurnOne": "cep47_burn_one",
    "MetadataUpdate": "cep47_metadata_update",
}

DEFAULT_LISTEN_EVENTS = ("Mint", "TransferToken", "TransferAllTokens", "BurnOne")

EventCallback = Callable[[str, dict[str, Any]], None]


def iter_sse_frames(lines: Iterable[bytes | str]) -> Iterator[dict[str, str]]:
    """Group raw SSE lines into frames; comment lines are skipped."""
    frame: dict[str, str] = {}
    data_lines: list[str] = []
    for raw in lines:
        line = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        line = line.rstrip("\r\n")
        if not line:
            if data_lines:
                frame["data"] = "\n".join(data_lines)
                yield frame
            frame, data_lines = {}, []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "data":
            data_lines.append(value)
        elif field in ("id", "event"):
            frame[field] = value
    if data_lines:
        frame["data"] = "\n".join(data_lines)
        yield frame


def _cl_map_to_dict(parsed: Any) -> dict[str, str] | None:
    if isinstance(parsed, dict):
        return {str(k): str(v) for k, v in parsed.items()}
    if isinstance(parsed, list) and all(isinstance(i, dict) and "key" in i and "value" in i for i in parsed):
        return {str(i["key"]): str(i["value"]) for i in parsed}
    return None


def parse_cep47_events(
    payload: dict[str, Any],
    event_types: Iterable[str],
    *,
    package_hash: str | None = None,
) -> list[tuple[str, dict[str, str]]]:
    """Return `(event_type, fields)` for each matching event in a DeployProcessed payload."""
    processed = payload.get("DeployProcessed") if isinstance(payload, dict) else None
    if not isinstance(processed, dict):
        return []
    execution = processed.get("execution_result") or {}
    if "Success" not in execution:
        if "Failure" in execution:
            logger.debug("skipping failed deploy %s", processed.get("deploy_hash"))
        return []

    wanted = set(event_types)
    transforms = ((execution.get("Success") or {}).get("effect") or {}).get("transforms") or []
    events: list[tuple[str, dict[str, str]]] = []
    for entry in transforms:
        transform = entry.get("transform") if isinstance(entry, dict) else None
        if not isinstance(transform, dict) or "WriteCLValue" not in transform:
            continue
        fields = _cl_map_to_dict((transform["WriteCLValue"] or {}).get("parsed"))
        if not fields or fields.get("event_type") not in wanted:
            continue
        # Stored either bare or with a `contract-package-wasm` prefix.
        if package_hash and fields.get("contract_package_hash", "")[-64:].lower() != package_hash:
            continue
        fields.setdefault("deploy_hash", str(processed.get("deploy_hash", "")))
        events.append((fields["event_type"], fields))
    return events


def resolve_event_types(names: Iterable[str]) -> list[str]:
    out = []
    for name in names:
        if name not in CEP47_EVENTS:
            raise ValueError(f"unknown CEP-47 event: {name}")
        out.append(CEP47_EVENTS[name])
    return out


def listen(
    stream_url: str,
    event_names: Iterable[str],
    callback: EventCallback,
    *,
    package_hash: str | None = None,
    max_events: int | None = None,
) -> int:
    """Block on the event stream, invoking `callback` per matching event.

    Returns the number of delivered events once `max_events` is reached or the
    server closes the stream.
    """
    event_types = resolve_event_types(event_names)
    req = urllib.request.Request(stream_url, headers={"Accept": "text/event-stream"})
    delivered = 0
    try:
        with urllib.request.urlopen(req) as resp:
            logger.info("subscribed to %s", stream_url)
            for frame in iter_sse_frames(resp):
                try:
                    payload = json.loads(frame["data"])
                except json.JSONDecodeError:
                    logger.warning("dropping non-json event frame id=%s", frame.get("id"))
                    continue
                for event_type, fields in parse_cep47_events(payload, event_types, package_hash=package_hash):
                    callback(event_type, fields)
                    delivered += 1
                    if max_events is not None and delivered >= max_events:
                        return delivered
    except urllib.error.URLError as err:
        reason = getattr(err, "reason", err)
        raise Cep47Error(
            ERR_EVENT_STREAM_FAILED,
            f"event stream unavailable: {reason}",
            hint=f"check the node event stream at {stream_url}",
        ) from err
    return delivered
