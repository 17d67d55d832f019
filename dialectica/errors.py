"""Exception taxonomy for the client, registry and orchestrator."""

from typing import Any


class DialecticaError(Exception):
    """Base for every error raised by the package."""


class ClientError(DialecticaError):
    """Raised when a remote generative call fails."""


class TransientError(ClientError):
    """Timeout, connection failure, HTTP 429 or 5xx. Retried by the client."""

    def __init__(self, message: str, status: int | None = None) -> None:
        self.status = status
        super().__init__(message)


class FatalClientError(ClientError):
    """HTTP 4xx other than 429. Never retried."""

    def __init__(self, status: int, body: Any) -> None:
        self.status = status
        self.body = body
        super().__init__(f"HTTP {status}: {_error_detail(body)}")


class MalformedResponse(ClientError):
    """The call succeeded but the payload is missing or violates the contract."""


class RetriesExhausted(ClientError):
    """Every allowed attempt failed with a retryable error."""

    def __init__(self, attempts: int, last_error: Exception | None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")


class DeadlineExceeded(ClientError):
    """The call deadline expired before another attempt could fit."""

    def __init__(self, message: str, last_error: Exception | None = None) -> None:
        self.last_error = last_error
        if last_error is not None:
            message = f"{message} (last error: {last_error})"
        super().__init__(message)


class RequestValidationError(DialecticaError):
    """An AnalysisRequest was rejected before dispatch."""


class PersonaNotFound(DialecticaError, KeyError):
    """No persona is registered under the requested id."""

    def __init__(self, persona_id: str) -> None:
        self.persona_id = persona_id
        super().__init__(f"Unknown persona: {persona_id}")

    def __str__(self) -> str:
        return self.args[0]


class DuplicatePersonaError(DialecticaError, ValueError):
    """Two personas were registered under the same id."""


def _error_detail(body: Any) -> str:
    """Pull the API error message out of a response body, if there is one."""
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    if not body:
        return "no response body"
    return str(body)
