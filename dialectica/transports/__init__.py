from dialectica.transports.base import Transport, TransportError, TransportResponse, TransportTimeout

__all__ = ["Transport", "TransportError", "TransportResponse", "TransportTimeout"]
