"""Abstract base for the HTTP POST collaborator used by the client."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from dialectica.errors import DialecticaError


class TransportError(DialecticaError):
    """Raised when the request never produced an HTTP response."""


class TransportTimeout(TransportError):
    """Raised when the request did not complete within its timeout."""


@dataclass(frozen=True)
class TransportResponse:
    status: int
    body: Any       # decoded JSON, or {} when the server sent none


class Transport(ABC):
    """Issues one generateContent POST and returns status + JSON body."""

    @abstractmethod
    async def post(self, model: str, body: dict[str, Any], timeout: float) -> TransportResponse:
        """Send a generateContent request for the given model.

        Args:
            model: Model identifier, e.g. 'gemini-2.5-flash'.
            body: REST-shaped JSON request body.
            timeout: Seconds allowed for this single attempt.

        Returns:
            TransportResponse with the HTTP status and decoded body. Non-2xx
            statuses are returned, not raised; the caller classifies them.

        Raises:
            TransportTimeout: The attempt exceeded its timeout.
            TransportError: Connection-level failure.
        """
        ...

    async def aclose(self) -> None:
        """Release any pooled connections."""
