"""Exception hierarchy and the JSON error envelope used by the read API."""

from __future__ import annotations

from typing import Any


class ErrorCode:
    INVALID_MARKET = "INVALID_MARKET"
    INVALID_ADDRESS = "INVALID_ADDRESS"
    INVALID_PARAMETER = "INVALID_PARAMETER"
    MARKET_NOT_FOUND = "MARKET_NOT_FOUND"
    RESERVE_NOT_FOUND = "RESERVE_NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    UNAUTHORIZED = "UNAUTHORIZED"


class LendingError(Exception):
    """Base class for errors raised by lending_core."""


class ConfigurationError(LendingError):
    """Required setting missing or unusable (e.g. no Graph API key)."""


class UpstreamError(LendingError):
    """An upstream source returned a non-2xx, malformed or error response."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source
        self.message = message


class AllEndpointsFailedError(UpstreamError):
    """Every RPC endpoint in the failover list failed."""

    def __init__(self, attempted: list[str], last_error: Exception | None = None) -> None:
        detail = f"all {len(attempted)} RPC endpoints failed"
        if last_error is not None:
            detail += f" (last error: {last_error})"
        super().__init__("rpc", detail)
        self.attempted = attempted
        self.last_error = last_error


class ValidationError(LendingError):
    """Bad caller input: unknown market, malformed address, bad parameter."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


def error_response(code: str, message: str, details: Any = None) -> dict[str, Any]:
    """Build the ``{"error": {...}}`` envelope; *details* only when given."""
    error: dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    return {"error": error}
