"""
Pistat Custom Exceptions

Simple exception hierarchy for error handling.
None of these are fatal: callers log them and hold the last good state.
"""


class PistatError(Exception):
    """Base exception for Pistat."""

    pass


class ConfigurationError(PistatError):
    """Configuration is invalid."""

    pass


class SensorReadError(PistatError):
    """Local temperature probe is unavailable or returned garbage."""

    pass


class RemoteFetchError(PistatError):
    """Cannot reach the remote temperature service."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(RemoteFetchError):
    """Credential exchange with the remote temperature service failed."""

    pass


class PersistenceError(PistatError):
    """State store is unreachable or rejected a write."""

    pass


class StateSchemaError(PistatError):
    """Persisted state has an unknown shape or version."""

    pass
