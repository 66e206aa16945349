"""Custom exception hierarchy for pycrowdmap."""

from __future__ import annotations


class CrowdMapError(Exception):
    """Base exception for all pycrowdmap errors."""


class CrowdMapConfigError(CrowdMapError):
    """Invalid or missing configuration."""


class CrowdMapNotConnectedError(CrowdMapError):
    """Client used outside of its ``async with`` lifecycle."""


class CrowdMapTransportError(CrowdMapError):
    """HTTP-level failure (network, non-2xx, invalid JSON)."""

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


class CrowdMapApiError(CrowdMapError):
    """Server answered, but the response body is not the expected shape."""

    def __init__(self, message: str, *, endpoint: str = "") -> None:
        self.endpoint = endpoint
        super().__init__(message)


class UnknownLocationError(CrowdMapError):
    """A location id that is absent from the catalog.

    Non-fatal: reported to the caller as a user-visible failure.
    """

    def __init__(self, location_id: str) -> None:
        self.location_id = location_id
        super().__init__(f"Event '{location_id}' not found.")


class MalformedInputError(CrowdMapError):
    """Inbound payload (e.g. a QR code) could not be parsed.

    No submission is ever attempted for malformed input.
    """
