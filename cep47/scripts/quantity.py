"""Parsers for token ids, counts and motes amounts."""

from __future__ import annotations

from typing import Any

U32_MAX = (1 << 32) - 1
U512_MAX = (1 << 512) - 1


def parse_token_id(raw: Any) -> str:
    """Token ids are decimal strings on chain; keep them as text."""
    if raw is None:
        raise ValueError("token id is required")
    value = str(raw).strip()
    if not value:
        raise ValueError("token id cannot be empty")
    if not value.isdigit():
        raise ValueError(f"token id must be a decimal integer, got {value!r}")
    return value


def parse_token_ids(raw: Any) -> list[str]:
    if raw is None:
        raise ValueError("token ids are required (comma-separated)")
    parts = [p for p in (s.strip() for s in str(raw).split(",")) if p]
    if not parts:
        raise ValueError("token ids cannot be empty")
    return [parse_token_id(p) for p in parts]


def parse_positive_int(raw: Any, *, field: str, maximum: int = U32_MAX) -> int:
    if isinstance(raw, bool):
        raise ValueError(f"{field} cannot be boolean")
    if isinstance(raw, int):
        value = raw
    else:
        text = str(raw).strip()
        if not text.isdigit():
            raise ValueError(f"{field} must be a positive decimal integer")
        value = int(text, 10)
    if value <= 0:
        raise ValueError(f"{field} must be positive")
    if value > maximum:
        raise ValueError(f"{field} exceeds {maximum}")
    return value


def parse_motes(raw: Any, *, field: str) -> int:
    """Payment amounts are U512 motes given as int or decimal string."""
    return parse_positive_int(raw, field=field, maximum=U512_MAX)
