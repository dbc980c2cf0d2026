"""Token issuing and the owner-token list kept in the browser."""

from __future__ import annotations

import re
import secrets
from collections.abc import Iterable

OWNER_TOKENS_COOKIE = "atsumeru_owner_tokens"
MAX_OWNER_TOKENS = 50
TOKEN_BYTES = 16

_token_pattern = re.compile(r"^[a-f0-9]{32}$")


def issue_token() -> str:
    """Return 32 random hex digits (128 bits)."""
    return secrets.token_hex(TOKEN_BYTES)


def _normalize(token: str) -> str | None:
    normalized = (token or "").strip().lower()
    if not _token_pattern.match(normalized):
        return None
    return normalized


def parse_owner_tokens(raw: str | None) -> list[str]:
    """Parse the comma-separated cookie value into valid, unique tokens."""
    if not raw:
        return []
    tokens: list[str] = []
    for part in raw.split(","):
        normalized = _normalize(part)
        if normalized is None or normalized in tokens:
            continue
        tokens.append(normalized)
        if len(tokens) >= MAX_OWNER_TOKENS:
            break
    return tokens


def merge_owner_tokens(existing: Iterable[str], token: str) -> list[str]:
    """Put ``token`` first, drop its older copy, and cap the list."""
    existing = list(existing)
    normalized = _normalize(token)
    if normalized is None:
        return existing
    merged = [normalized, *(item for item in existing if item != normalized)]
    return merged[:MAX_OWNER_TOKENS]
