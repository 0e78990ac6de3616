from __future__ import annotations

from typing import TypedDict


class ErrorDetail(TypedDict):
    code: str
    message: str


class ErrorEnvelope(TypedDict):
    error: ErrorDetail


class ConfigMissingError(Exception):
    """Raised when the credential pool or the policy table is not configured."""

    def __init__(self, what: str) -> None:
        super().__init__(f"Missing configuration: {what}")
        self.what = what


class StoreUnavailableError(Exception):
    """Raised by state store backends when the backing store cannot be reached."""


def api_error(code: str, message: str) -> ErrorEnvelope:
    return {"error": {"code": code, "message": message}}


class AccessDeniedError(Exception):
    """Raised when a proxy client does not present an allowed access token."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
