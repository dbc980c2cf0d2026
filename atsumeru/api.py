"""FastAPI application for Atsumeru."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from contextlib import asynccontextmanager
from datetime import datetime
from importlib.metadata import PackageNotFoundError, version as pkg_version
from pathlib import Path
from typing import Any
import tomllib

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import require_token
from .config import Settings, load_settings
from .crud import (
    EDIT_TOKEN_REQUIRED,
    OWNER_TOKEN_REQUIRED,
    create_event,
    create_response,
    get_event,
    get_owned_events,
    list_owner_responses,
    list_public_responses,
    response_counts,
    set_response_paid,
    update_event_settings,
    update_own_response,
)
from .database import build_engine, build_session_factory
from .errors import AtsumeruError, StorageError
from .models import Event, Response as ResponseRow
from .storage import upgrade_database
from .tokens import OWNER_TOKENS_COOKIE, merge_owner_tokens, parse_owner_tokens
from .utils import isoformat

# Use uvicorn's error logger so messages get the level prefix in the default log
# format.
logger = logging.getLogger("uvicorn.error")

OWNER_RESPONSE_FIELDS = ("id", "name", "rsvp", "paid", "paid_at", "created_at", "updated_at")
PUBLIC_RESPONSE_FIELDS = ("id", "name", "rsvp", "paid", "edit_token", "created_at")
EDIT_RESULT_FIELDS = ("id", "name", "rsvp", "paid", "paid_at")
PAID_RESULT_FIELDS = ("id", "paid", "paid_at")


def _load_app_version() -> str:
    """Return the current package version, falling back to pyproject for dev runs."""
    try:
        return pkg_version("atsumeru")
    except PackageNotFoundError:
        pyproject_path = Path(__file__).resolve().parent.parent / "pyproject.toml"
        if pyproject_path.exists():
            data = tomllib.loads(pyproject_path.read_text())
            project = data.get("project") or {}
            return str(project.get("version") or "dev")
    return "dev"


APP_VERSION = _load_app_version()


# -------- payloads --------


class EventCreatePayload(BaseModel):
    title: str | None = None
    date: datetime | None = Field(None, description="ISO datetime string")
    place: str | None = None
    note: str | None = None
    collecting: bool = False
    amount: Any = Field(0, description="Whole amount of 0 or more")
    pay_url: str | None = None

    @field_validator("date", mode="before")
    @classmethod
    def _blank_date(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class EventSettingsPayload(BaseModel):
    collecting: bool = False
    amount: Any = Field(0, description="Whole amount of 0 or more")
    pay_url: str | None = None


class ResponseCreatePayload(BaseModel):
    name: str | None = None
    rsvp: Any = None


class ResponseUpdatePayload(BaseModel):
    rsvp: Any = None
    paid: Any = None


class PaidPayload(BaseModel):
    paid: Any = None


# -------- dependencies --------


def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def owner_token_param(token: str | None = Query(None)) -> str:
    return require_token(token, message=OWNER_TOKEN_REQUIRED)


def edit_token_param(edit: str | None = Query(None)) -> str:
    return require_token(edit, message=EDIT_TOKEN_REQUIRED)


# -------- serialization --------


def _json_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return isoformat(value)
    return value


def _serialize_event(event: Event) -> dict[str, Any]:
    return {
        "id": event.id,
        "title": event.title,
        "date": isoformat(event.date),
        "place": event.place,
        "note": event.note,
        "collecting": event.collecting,
        "amount": event.amount,
        "pay_url": event.pay_url,
        "created_at": isoformat(event.created_at),
    }


def _serialize_response(row: ResponseRow, fields: Iterable[str]) -> dict[str, Any]:
    return {field: _json_value(getattr(row, field)) for field in fields}


def _serialize_summary(event: Event) -> dict[str, Any]:
    counts = response_counts(event)
    return {
        "id": event.id,
        "title": event.title,
        "date": isoformat(event.date),
        "place": event.place,
        "collecting": event.collecting,
        "amount": event.amount,
        "created_at": isoformat(event.created_at),
        "counts": counts,
        "collected": counts["paid"] * event.amount if event.collecting else 0,
    }


# -------- error handlers --------


async def atsumeru_error_handler(request: Request, exc: AtsumeruError):
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg") or "The request is malformed."
    if location:
        message = f"{location}: {message}"
    return JSONResponse({"error": message}, status_code=400)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail if isinstance(exc.detail, str) else "Something went wrong."
    return JSONResponse(
        {"error": detail}, status_code=exc.status_code, headers=exc.headers
    )


async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    raw = str(exc.orig) if getattr(exc, "orig", None) else str(exc)
    logger.error(
        "Database error on %s %s: %s",
        request.method,
        request.url.path,
        raw,
    )
    return JSONResponse(
        {"error": StorageError.default_message},
        status_code=StorageError.status_code,
    )


async def generic_exception_handler(request: Request, exc: Exception):
    """Gracefully handle unexpected errors."""
    logger.exception(
        "Unhandled error while processing %s %s", request.method, request.url.path
    )
    return JSONResponse({"error": "Internal server error"}, status_code=500)


# -------- routes --------

router = APIRouter()


@router.post("/events")
def api_create_event(
    payload: EventCreatePayload,
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    event = create_event(
        db,
        title=payload.title,
        date=payload.date,
        place=payload.place,
        note=payload.note,
        collecting=payload.collecting,
        amount=payload.amount,
        pay_url=payload.pay_url,
    )
    logger.info("Created event %s (collecting=%s)", event.id, event.collecting)
    response = JSONResponse({"eventId": event.id, "ownerToken": event.owner_token})
    existing = parse_owner_tokens(request.cookies.get(OWNER_TOKENS_COOKIE))
    tokens = merge_owner_tokens(existing, event.owner_token)
    if tokens:
        response.set_cookie(
            OWNER_TOKENS_COOKIE,
            ",".join(tokens),
            max_age=int(settings.owner_cookie_max_age.total_seconds()),
            path="/",
            httponly=True,
            samesite="lax",
            secure=settings.owner_cookie_secure,
        )
    return response


@router.get("/events/mine")
def api_owned_events(request: Request, db: Session = Depends(get_db)):
    tokens = parse_owner_tokens(request.cookies.get(OWNER_TOKENS_COOKIE))
    summaries = [_serialize_summary(event) for event in get_owned_events(db, tokens)]
    totals = {"events": len(summaries), "yes": 0, "paid": 0, "unpaid": 0}
    for summary in summaries:
        for key in ("yes", "paid", "unpaid"):
            totals[key] += summary["counts"][key]
    return {"events": summaries, "totals": totals}


@router.get("/events/{event_id}")
def api_get_event(event_id: str, db: Session = Depends(get_db)):
    return _serialize_event(get_event(db, event_id))


@router.patch("/events/{event_id}/manage")
def api_update_event_settings(
    event_id: str,
    payload: EventSettingsPayload,
    token: str = Depends(owner_token_param),
    db: Session = Depends(get_db),
):
    event = update_event_settings(
        db,
        event_id,
        token,
        collecting=payload.collecting,
        amount=payload.amount,
        pay_url=payload.pay_url,
    )
    logger.info(
        "Updated settings for event %s (collecting=%s, amount=%s)",
        event.id,
        event.collecting,
        event.amount,
    )
    return _serialize_event(event)


@router.post("/events/{event_id}/responses")
def api_create_response(
    event_id: str, payload: ResponseCreatePayload, db: Session = Depends(get_db)
):
    row = create_response(db, event_id, name=payload.name, rsvp=payload.rsvp)
    logger.info("Recorded response %s for event %s", row.id, event_id)
    return {"responseId": row.id, "editToken": row.edit_token}


@router.get("/events/{event_id}/responses")
def api_list_owner_responses(
    event_id: str,
    token: str = Depends(owner_token_param),
    db: Session = Depends(get_db),
):
    rows = list_owner_responses(db, event_id, token)
    return {"responses": [_serialize_response(r, OWNER_RESPONSE_FIELDS) for r in rows]}


@router.get("/events/{event_id}/responses/public")
def api_list_public_responses(event_id: str, db: Session = Depends(get_db)):
    rows = list_public_responses(db, event_id)
    return {"responses": [_serialize_response(r, PUBLIC_RESPONSE_FIELDS) for r in rows]}


@router.patch("/events/{event_id}/responses/{response_id}")
def api_update_own_response(
    event_id: str,
    response_id: str,
    payload: ResponseUpdatePayload,
    edit: str = Depends(edit_token_param),
    db: Session = Depends(get_db),
):
    changes = payload.model_dump(exclude_unset=True)
    row = update_own_response(db, event_id, response_id, edit, changes)
    return _serialize_response(row, EDIT_RESULT_FIELDS)


@router.patch("/events/{event_id}/responses/{response_id}/paid")
def api_set_response_paid(
    event_id: str,
    response_id: str,
    payload: PaidPayload,
    token: str = Depends(owner_token_param),
    db: Session = Depends(get_db),
):
    row = set_response_paid(db, event_id, response_id, token, payload.paid)
    logger.info(
        "Owner marked response %s of event %s paid=%s", row.id, event_id, row.paid
    )
    return _serialize_response(row, PAID_RESULT_FIELDS)


def create_app(
    settings: Settings | None = None, *, engine: Engine | None = None
) -> FastAPI:
    """Build the application and the database handles it owns.

    Passing ``engine`` lets callers share an existing engine; it is then left
    open on shutdown.
    """
    settings = settings or load_settings()
    owns_engine = engine is None
    engine = engine or build_engine(settings.database_url)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        if settings.auto_migrate:
            for action in upgrade_database(engine, make_backup=False):
                logger.info(action)
        try:
            yield
        finally:
            if owns_engine:
                engine.dispose()

    app = FastAPI(title="Atsumeru", version=APP_VERSION, lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)

    app.add_exception_handler(AtsumeruError, atsumeru_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(SQLAlchemyError, storage_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(router)
    return app
