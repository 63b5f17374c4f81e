"""
Errors for gemini-web
=====================

One exception type, ``GeminiWebError``, tagged with an ``ErrorKind``.
Each kind carries its own error code, category, severity and default
recovery suggestions, so callers branch on ``exc.kind`` instead of on a
class hierarchy:

    try:
        output = await client.generate_content("Hello")
    except GeminiWebError as e:
        if e.kind is ErrorKind.USAGE_LIMIT_EXCEEDED:
            ...
"""

import traceback
from datetime import datetime
from enum import Enum
from typing import Any


class ErrorKind(Enum):
    """Tagged error kinds: (error_code, category, severity, recoverable)."""

    AUTHENTICATION = ("GWA_AUTH_001", "authentication", "critical", False)
    API = ("GWA_API_001", "api", "error", True)
    MODEL_INVALID = ("GWA_MDL_001", "model", "error", False)
    USAGE_LIMIT_EXCEEDED = ("GWA_LIM_001", "rate_limit", "warning", True)
    TEMPORARILY_BLOCKED = ("GWA_LIM_002", "rate_limit", "error", True)
    TIMEOUT = ("GWA_NET_001", "network", "warning", True)
    CLIENT_CLOSED = ("GWA_CLI_001", "client", "error", False)
    CONFIGURATION = ("GWA_CFG_001", "configuration", "error", False)

    def __init__(self, error_code: str, category: str, severity: str, recoverable: bool):
        self.error_code = error_code
        self.category = category
        self.severity = severity
        self.recoverable = recoverable


_DEFAULT_SUGGESTIONS: dict[ErrorKind, list[str]] = {
    ErrorKind.AUTHENTICATION: [
        "Copy fresh __Secure-1PSID / __Secure-1PSIDTS cookies from a logged-in browser",
        "Check your proxy settings",
    ],
    ErrorKind.MODEL_INVALID: [
        "Pass the same model used when the chat was started",
        "Use Model.UNSPECIFIED",
    ],
    ErrorKind.USAGE_LIMIT_EXCEEDED: ["Switch to another model", "Wait before retrying"],
    ErrorKind.TEMPORARILY_BLOCKED: ["Use a proxy", "Wait a while before retrying"],
    ErrorKind.TIMEOUT: ["Increase the timeout passed to init()"],
    ErrorKind.CLIENT_CLOSED: ["Create a new client and call init()"],
}


class GeminiWebError(Exception):
    """
    Base error for every gemini-web failure.

    Provides:
    - the tagged ``kind`` and its error code
    - detailed context
    - recovery suggestions
    - the underlying cause (also chained via ``raise ... from``)
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        details: dict[str, Any] | None = None,
        suggestions: list[str] | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details or {}
        self.suggestions = (
            suggestions if suggestions is not None else list(_DEFAULT_SUGGESTIONS.get(kind, []))
        )
        self.cause = cause
        self.timestamp = datetime.now()
        self.traceback = (
            "".join(traceback.format_exception(type(cause), cause, cause.__traceback__))
            if cause
            else None
        )

    @property
    def error_code(self) -> str:
        return self.kind.error_code

    @property
    def error_category(self) -> str:
        return self.kind.category

    @property
    def severity(self) -> str:
        return self.kind.severity

    @property
    def recoverable(self) -> bool:
        return self.kind.recoverable

    def to_dict(self) -> dict[str, Any]:
        """Convert the error into a dict for logging and API responses."""
        return {
            "kind": self.kind.name,
            "error_code": self.error_code,
            "error_category": self.error_category,
            "severity": self.severity,
            "message": self.message,
            "details": self.details,
            "suggestions": self.suggestions,
            "recoverable": self.recoverable,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
            "traceback": self.traceback,
        }

    def __str__(self) -> str:
        parts = [f"[{self.error_code}] {self.message}"]
        if self.details:
            parts.append(f"Details: {self.details}")
        if self.suggestions:
            parts.append(f"Suggestions: {', '.join(self.suggestions)}")
        return " | ".join(parts)


def authentication_error(message: str, cause: BaseException | None = None) -> GeminiWebError:
    return GeminiWebError(ErrorKind.AUTHENTICATION, message, cause=cause)


def api_error(
    message: str,
    status_code: int | None = None,
    response_body: str | None = None,
    cause: BaseException | None = None,
) -> GeminiWebError:
    details: dict[str, Any] = {}
    if status_code is not None:
        details["status_code"] = status_code
    if response_body:
        details["response"] = response_body[:500]
    return GeminiWebError(ErrorKind.API, message, details=details, cause=cause)


def timeout_error(operation: str, cause: BaseException | None = None) -> GeminiWebError:
    return GeminiWebError(
        ErrorKind.TIMEOUT,
        f"{operation} request timed out",
        details={"operation": operation},
        cause=cause,
    )


def client_closed_error(operation: str) -> GeminiWebError:
    return GeminiWebError(
        ErrorKind.CLIENT_CLOSED,
        f"Cannot call {operation}(): client is closed",
        details={"operation": operation},
    )


__all__ = [
    "ErrorKind",
    "GeminiWebError",
    "authentication_error",
    "api_error",
    "timeout_error",
    "client_closed_error",
]
