from __future__ import annotations

from atsumeru.tokens import (
    MAX_OWNER_TOKENS,
    issue_token,
    merge_owner_tokens,
    parse_owner_tokens,
)


def test_issue_token_is_32_hex_digits_and_unique():
    tokens = {issue_token() for _ in range(200)}
    assert len(tokens) == 200
    for token in tokens:
        assert len(token) == 32
        assert set(token) <= set("0123456789abcdef")


def test_parse_owner_tokens_filters_and_dedupes():
    good = issue_token()
    other = issue_token()
    raw = f" {good.upper()} ,not-a-token,{other},{good},,{'g' * 32}"
    assert parse_owner_tokens(raw) == [good, other]
    assert parse_owner_tokens(None) == []
    assert parse_owner_tokens("") == []


def test_parse_owner_tokens_caps_list():
    raw = ",".join(issue_token() for _ in range(MAX_OWNER_TOKENS + 10))
    assert len(parse_owner_tokens(raw)) == MAX_OWNER_TOKENS


def test_merge_owner_tokens_puts_newest_first():
    older, newer = issue_token(), issue_token()
    assert merge_owner_tokens([older], newer) == [newer, older]
    assert merge_owner_tokens([newer, older], older) == [older, newer]


def test_merge_owner_tokens_ignores_invalid_and_caps():
    existing = [issue_token() for _ in range(MAX_OWNER_TOKENS)]
    assert merge_owner_tokens(existing, "bogus") == existing
    merged = merge_owner_tokens(existing, issue_token())
    assert len(merged) == MAX_OWNER_TOKENS
    assert merged[1:] == existing[:-1]
