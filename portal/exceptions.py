from __future__ import annotations

from typing import Any


class PortalError(Exception):
    """An error that maps directly onto an HTTP response.

    ``message`` is shown to the caller; ``error`` carries optional extra detail
    (a provider payload, a raw exception message).
    """

    def __init__(self, status_code: int, message: str, *, error: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.error = error


class ProviderError(Exception):
    """Transport-level or protocol-level failure talking to an upstream API."""
