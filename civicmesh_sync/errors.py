from __future__ import annotations


class ConfigError(RuntimeError):
    """Raised when configuration is missing or invalid."""


class FixtureError(RuntimeError):
    """Raised when mock fixture files cannot be read or parsed."""


class GatewayError(RuntimeError):
    """Raised by the live transport when a request fails or returns a non-2xx status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        server_message: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.server_message = server_message
        self.retry_after = retry_after
