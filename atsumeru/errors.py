"""Error taxonomy shared by the managers and the HTTP layer."""

from __future__ import annotations


class AtsumeruError(Exception):
    """Base error carrying the HTTP status it maps to."""

    status_code = 500
    default_message = "Something went wrong."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AtsumeruError):
    status_code = 400
    default_message = "The request is invalid."


class Unauthenticated(AtsumeruError):
    status_code = 401
    default_message = "A token is required."


class Unauthorized(AtsumeruError):
    status_code = 403
    default_message = "The token does not match."


class NotFound(AtsumeruError):
    status_code = 404
    default_message = "Not found."


class StorageError(AtsumeruError):
    status_code = 500
    default_message = "The data store could not complete the request."
