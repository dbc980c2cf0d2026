"""Event and response managers.

Every operation checks its inputs and tokens in a fixed order and raises on the
first failure, so nothing is written unless the whole request is valid:
token presence, body validation, lookup, token match, then mutation.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from .auth import check_editor, check_owner, require_token
from .errors import NotFound, ValidationError
from .models import Event, Response
from .tokens import issue_token
from .utils import clean_text, to_naive_utc, utcnow

VALID_RSVPS = {"yes", "maybe", "no"}

# Upper bound of the 32-bit `events.amount` column.
MAX_AMOUNT = 2**31 - 1

OWNER_TOKEN_REQUIRED = "An owner token is required."
EDIT_TOKEN_REQUIRED = "An edit token is required."


def _now() -> datetime:
    return utcnow()


def parse_amount(raw: Any) -> int:
    """Return a non-negative whole amount; a missing value counts as zero."""
    if raw is None:
        return 0
    if isinstance(raw, bool):
        raise ValidationError("Amount must be a number of 0 or more.")
    if isinstance(raw, str):
        raw = raw.strip()
        if not raw:
            return 0
        try:
            raw = float(raw)
        except ValueError as exc:
            raise ValidationError("Amount must be a number of 0 or more.") from exc
    if not isinstance(raw, (int, float)):
        raise ValidationError("Amount must be a number of 0 or more.")
    if isinstance(raw, float):
        if not math.isfinite(raw) or raw < 0:
            raise ValidationError("Amount must be a number of 0 or more.")
        if not raw.is_integer():
            raise ValidationError("Amount must be a whole number.")
        raw = int(raw)
    if raw < 0:
        raise ValidationError("Amount must be a number of 0 or more.")
    if raw > MAX_AMOUNT:
        raise ValidationError(f"Amount must not exceed {MAX_AMOUNT}.")
    return raw


def _require_title(title: Any) -> str:
    cleaned = clean_text(title)
    if not cleaned:
        raise ValidationError("Please enter an event title.")
    return cleaned


def _require_name(name: Any) -> str:
    cleaned = clean_text(name)
    if not cleaned:
        raise ValidationError("Please enter your name.")
    return cleaned


def _require_rsvp(rsvp: Any) -> str:
    if rsvp not in VALID_RSVPS:
        raise ValidationError("RSVP must be one of yes, maybe or no.")
    return rsvp


def _require_paid(paid: Any) -> bool:
    if not isinstance(paid, bool):
        raise ValidationError("paid must be true or false.")
    return paid


# -------- events --------


def create_event(
    session: Session,
    *,
    title: Any,
    date: datetime | None = None,
    place: str | None = None,
    note: str | None = None,
    collecting: bool = False,
    amount: Any = 0,
    pay_url: str | None = None,
) -> Event:
    """Create and persist a new event with a fresh owner token."""
    cleaned_title = _require_title(title)
    normalized_amount = parse_amount(amount)
    event = Event(
        owner_token=issue_token(),
        title=cleaned_title,
        date=to_naive_utc(date),
        place=clean_text(place),
        note=clean_text(note),
        collecting=bool(collecting),
        amount=normalized_amount,
        pay_url=clean_text(pay_url),
        created_at=_now(),
    )
    session.add(event)
    session.flush()
    return event


def get_event(session: Session, event_id: str) -> Event:
    event = session.get(Event, event_id)
    if not event:
        raise NotFound("Event not found.")
    return event


def update_event_settings(
    session: Session,
    event_id: str,
    owner_token: str | None,
    *,
    collecting: bool,
    amount: Any,
    pay_url: str | None = None,
) -> Event:
    """Overwrite the collection settings of an event."""
    token = require_token(owner_token, message=OWNER_TOKEN_REQUIRED)
    normalized_amount = parse_amount(amount)
    event = get_event(session, event_id)
    check_owner(event, token)
    event.collecting = bool(collecting)
    event.amount = normalized_amount
    event.pay_url = clean_text(pay_url)
    session.add(event)
    session.flush()
    return event


def get_owned_events(session: Session, owner_tokens: Iterable[str]) -> Sequence[Event]:
    """Return the events created with any of ``owner_tokens``, newest first."""
    tokens = list(owner_tokens)
    if not tokens:
        return []
    stmt = (
        select(Event)
        .where(Event.owner_token.in_(tokens))
        .order_by(Event.created_at.desc())
    )
    return session.scalars(stmt).all()


def response_counts(event: Event) -> dict[str, int]:
    """Count responses per RSVP; paid/unpaid only consider ``yes`` rows."""
    counts = {"yes": 0, "maybe": 0, "no": 0, "paid": 0, "unpaid": 0}
    for response in event.responses:
        counts[response.rsvp] = counts.get(response.rsvp, 0) + 1
        if response.rsvp == "yes":
            counts["paid" if response.paid else "unpaid"] += 1
    return counts


# -------- responses --------


def create_response(
    session: Session,
    event_id: str,
    *,
    name: Any,
    rsvp: Any,
) -> Response:
    """Record a participant's RSVP; no token is needed to submit one."""
    cleaned_name = _require_name(name)
    normalized_rsvp = _require_rsvp(rsvp)
    event = get_event(session, event_id)
    now = _now()
    response = Response(
        event=event,
        edit_token=issue_token(),
        name=cleaned_name,
        rsvp=normalized_rsvp,
        paid=False,
        paid_at=None,
        created_at=now,
        updated_at=now,
    )
    session.add(response)
    session.flush()
    return response


def _responses_for(session: Session, event: Event) -> Sequence[Response]:
    stmt = (
        select(Response)
        .where(Response.event_id == event.id)
        .order_by(Response.created_at.asc(), Response.id.asc())
    )
    return session.scalars(stmt).all()


def list_owner_responses(
    session: Session, event_id: str, owner_token: str | None
) -> Sequence[Response]:
    token = require_token(owner_token, message=OWNER_TOKEN_REQUIRED)
    event = get_event(session, event_id)
    check_owner(event, token)
    return _responses_for(session, event)


def list_public_responses(session: Session, event_id: str) -> Sequence[Response]:
    event = get_event(session, event_id)
    return _responses_for(session, event)


def get_response(session: Session, event_id: str, response_id: str) -> Response:
    response = session.get(Response, response_id)
    if not response or response.event_id != event_id:
        raise NotFound("Response not found.")
    return response


def _apply_paid(response: Response, paid: bool, now: datetime) -> None:
    if paid and response.rsvp != "yes":
        raise ValidationError("Only responses marked yes can be paid.")
    response.paid_at = now if paid else None
    response.paid = paid


def update_own_response(
    session: Session,
    event_id: str,
    response_id: str,
    edit_token: str | None,
    changes: Mapping[str, Any],
) -> Response:
    """Apply a participant's partial edit.

    ``rsvp`` is applied only when it is a valid choice and ``paid`` only when it
    is a boolean; anything else in ``changes`` is ignored. Leaving ``yes``
    always clears the payment.
    """
    token = require_token(edit_token, message=EDIT_TOKEN_REQUIRED)
    response = get_response(session, event_id, response_id)
    check_editor(response, token)
    now = _now()
    rsvp = changes.get("rsvp")
    if rsvp in VALID_RSVPS:
        response.rsvp = rsvp
    paid = changes.get("paid")
    if isinstance(paid, bool):
        _apply_paid(response, paid, now)
    if response.rsvp != "yes" and response.paid:
        _apply_paid(response, False, now)
    response.updated_at = now
    session.add(response)
    session.flush()
    return response


def set_response_paid(
    session: Session,
    event_id: str,
    response_id: str,
    owner_token: str | None,
    paid: Any,
) -> Response:
    """Let the organizer mark any response of their event paid or unpaid."""
    token = require_token(owner_token, message=OWNER_TOKEN_REQUIRED)
    normalized_paid = _require_paid(paid)
    event = get_event(session, event_id)
    check_owner(event, token)
    response = get_response(session, event.id, response_id)
    now = _now()
    _apply_paid(response, normalized_paid, now)
    response.updated_at = now
    session.add(response)
    session.flush()
    return response
