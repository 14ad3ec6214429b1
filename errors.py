"""Error taxonomy shared by the stores, the sampler and the HTTP layer."""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for handled errors; carries the HTTP status it maps to."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigError(TrackerError):
    """Schedule configuration could not be read or written."""


class StorageError(TrackerError):
    """A persistence operation failed."""

    status_code = 503


class AuthError(TrackerError):
    """Missing, malformed or unknown bearer token."""

    status_code = 401


class ValidationError(TrackerError):
    """Request parameters are missing or unparsable."""

    status_code = 400


class TelemetryPartialError(TrackerError):
    """One telemetry source failed; the snapshot degrades that section."""

    def __init__(self, probe: str, cause: BaseException) -> None:
        super().__init__(f"Telemetry probe {probe!r} failed: {cause}")
        self.probe = probe
