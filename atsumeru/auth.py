"""Token checks guarding every mutation."""

from __future__ import annotations

import logging
import secrets

from .errors import Unauthenticated, Unauthorized
from .models import Event, Response

logger = logging.getLogger("uvicorn.error")


def require_token(token: str | None, *, message: str = "A token is required.") -> str:
    """Return the stripped token or raise when it is missing."""
    cleaned = (token or "").strip()
    if not cleaned:
        raise Unauthenticated(message)
    return cleaned


def _matches(stored: str | None, supplied: str) -> bool:
    if not stored:
        return False
    return secrets.compare_digest(stored.encode("utf-8"), supplied.encode("utf-8"))


def check_owner(event: Event, token: str) -> None:
    if not _matches(event.owner_token, token):
        logger.warning("Rejected owner token for event %s", event.id)
        raise Unauthorized("The owner token does not match this event.")


def check_editor(response: Response, token: str) -> None:
    if not _matches(response.edit_token, token):
        logger.warning(
            "Rejected edit token for response %s (event %s)",
            response.id,
            response.event_id,
        )
        raise Unauthorized("The edit token does not match this response.")
