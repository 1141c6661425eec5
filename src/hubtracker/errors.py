"""Error handling and exception classes for the Helm repository tracker.

This module provides structured error handling with custom exception types
and error codes. It includes utilities for converting HTTP responses from
remote chart repositories into structured application errors with
appropriate error codes and sanitized context information.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional

NETWORK_ERROR = "NETWORK_ERROR"
RATE_LIMIT = "RATE_LIMIT"
AUTH_ERROR = "AUTH_ERROR"
NOT_FOUND = "NOT_FOUND"
SERVER_ERROR = "SERVER_ERROR"
HTTP_ERROR = "HTTP_ERROR"
SCHEMA_ERROR = "SCHEMA_ERROR"
UNSUPPORTED_SCHEME = "UNSUPPORTED_SCHEME"
INVALID_METADATA = "INVALID_METADATA"
INVALID_ANNOTATION = "INVALID_ANNOTATION"
CANCELLED = "CANCELLED"
INTERNAL_ERROR = "INTERNAL_ERROR"

_SENSITIVE_KEYS = {"authorization", "password", "token", "auth_pass"}


@dataclass
class AppError(Exception):
    """A custom exception class for tracker errors.

    Attributes:
        code (str): A short, stable error code representing the type of error
            (e.g., NETWORK_ERROR, UNSUPPORTED_SCHEME, INVALID_ANNOTATION)
        message (str): A human-readable error message describing the error
        cause (Optional[BaseException]): The underlying exception that caused
            this error, if any
        context (Optional[dict[str, Any]]): Additional context about the error,
            such as the url requested or the package being processed
    """

    code: str
    message: str
    cause: Optional[BaseException] = None
    context: Optional[dict[str, Any]] = None

    def __str__(self) -> str:
        """Return a string representation of the error.

        Formats the error as "CODE: message" with optional context information.
        Credentials are filtered out of the context.

        Returns:
            str: Formatted error string with code, message, and sanitized context
        """
        base = f"{self.code}: {self.message}"
        if self.context:
            safe_ctx = {
                k: v
                for k, v in self.context.items()
                if k.lower() not in _SENSITIVE_KEYS
            }
            if safe_ctx:
                base += f" | ctx={safe_ctx}"
        return base


def unsupported_scheme_error(url: str) -> AppError:
    """Error returned when a url uses a scheme the tracker cannot handle."""
    return AppError(
        code=UNSUPPORTED_SCHEME,
        message="scheme not supported",
        context={"url": url},
    )


def multi_error(code: str, errors: Iterable[str]) -> Optional[AppError]:
    """Aggregate several error messages into a single AppError.

    Returns None when no errors were collected, so callers can write
    ``err = multi_error(...); if err: raise err``.
    """
    errors = list(errors)
    if not errors:
        return None
    if len(errors) == 1:
        return AppError(code=code, message=errors[0], context={"errors": errors})
    lines = "\n".join(f"\t* {e}" for e in errors)
    return AppError(
        code=code,
        message=f"{len(errors)} errors occurred:\n{lines}",
        context={"errors": errors},
    )


def http_error_from_response(
    *,
    url: str,
    status: int,
    body: Optional[str] = None,
    headers: Optional[dict[str, Any]] = None,
) -> AppError:
    """Create an AppError instance from an HTTP response of a remote repository.

    Args:
        url: The URL of the request that failed
        status: The HTTP status code of the response
        body: The response body, if available (will be truncated to 300 chars)
        headers: The response headers, if available (used to extract request IDs)

    Returns:
        AppError: Structured error with appropriate code:
            - RATE_LIMIT for 429 status
            - AUTH_ERROR for 401/403 status
            - NOT_FOUND for 404 status
            - SERVER_ERROR for 5xx status
            - HTTP_ERROR for other status codes
    """
    snippet = (body or "").strip().replace("\n", " ")
    if len(snippet) > 300:
        snippet = snippet[:300] + "..."

    req_id = None
    if headers:
        for k in ("x-request-id", "x-github-request-id"):
            if k in headers:
                req_id = headers.get(k)

    ctx: dict[str, Any] = {"url": url, "status": status}
    if req_id:
        ctx["request_id"] = req_id
    if snippet:
        ctx["body"] = snippet

    if status == 429:
        code = RATE_LIMIT
        msg = "rate limit exceeded (429)"
    elif status in (401, 403):
        code = AUTH_ERROR
        msg = f"unauthorized or forbidden (HTTP {status})"
    elif status == 404:
        code = NOT_FOUND
        msg = "resource not found (404)"
    elif 500 <= status <= 599:
        code = SERVER_ERROR
        msg = f"server error (HTTP {status})"
    else:
        code = HTTP_ERROR
        msg = f"unexpected status code received: {status}"

    return AppError(code=code, message=msg, cause=None, context=ctx)
