"""Custom exception hierarchy for viewfold.

The engine itself never raises on payload content; these are raised at
the configuration boundary and by the transport adapters.
"""

from __future__ import annotations


class ViewfoldError(Exception):
    """Base exception for all viewfold errors."""


class ViewfoldConfigError(ViewfoldError):
    """Invalid or missing configuration."""


class ViewfoldTransportError(ViewfoldError):
    """Snapshot query failure (network, non-200, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class ViewfoldStreamError(ViewfoldError):
    """Event stream payload could not be decoded."""
