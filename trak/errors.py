"""Error taxonomy shared by the store, analyzer, reporter, CLI and web layer."""

from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    NOT_FOUND = "NOT_FOUND"
    PARSE_ERROR = "PARSE_ERROR"
    BACKEND_ERROR = "BACKEND_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    SESSION_ACTIVE = "SESSION_ACTIVE"
    DAEMON_ERROR = "DAEMON_ERROR"


class TrakError(Exception):
    """Base class for classified errors. Anything else is treated as fatal."""

    code: ErrorCode = ErrorCode.BACKEND_ERROR

    def __init__(self, message: str, code: ErrorCode | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {"error": self.message, "code": str(self.code)}


class NotFoundError(TrakError):
    code = ErrorCode.NOT_FOUND


class ParseError(TrakError):
    code = ErrorCode.PARSE_ERROR


class BackendError(TrakError):
    code = ErrorCode.BACKEND_ERROR


class InputError(TrakError, ValueError):
    code = ErrorCode.VALIDATION_ERROR


class SessionActiveError(InputError):
    code = ErrorCode.SESSION_ACTIVE


class DaemonError(TrakError):
    code = ErrorCode.DAEMON_ERROR
