"""Exceptions raised by the SCP API clients."""

from __future__ import annotations


class ScpError(Exception):
    """Base class for everything this package raises."""


class ScpApiError(ScpError):
    """A call to the SCP API failed or returned no usable payload."""

    def __init__(self, call: str, message: str, status: int | None = None) -> None:
        self.call = call
        self.status = status
        super().__init__(f"{call}: {message}")


class ScpAuthError(ScpApiError):
    """The token endpoint refused the refresh token."""


class UptimeParseError(ScpError, ValueError):
    """An uptime string could not be turned into a duration."""
