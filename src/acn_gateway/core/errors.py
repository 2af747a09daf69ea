"""Error taxonomy for the ACN gateway."""


class AcnError(Exception):
    """Base error for acn_gateway."""


class TransportOpenError(AcnError):
    """Raised when the serial port / master cannot be opened."""


class TransportError(AcnError):
    """Raised when the master fails to complete a request (timeout, I/O)."""


class NotConnectedError(TransportError):
    """Raised when a request is issued while the connection is not open."""


class ConnectionStateError(AcnError):
    """Raised on a lifecycle call that is illegal in the current state."""


class DeviceExceptionError(AcnError):
    """Raised when the device answers with a MODBUS exception response."""

    def __init__(self, exception_code: int, message: str | None = None) -> None:
        self.exception_code = exception_code
        super().__init__(message or f"Device exception response 0x{exception_code:02X}")


class CommandRejectedError(AcnError):
    """Raised when the device acknowledges a request with a non-zero status."""

    def __init__(self, status: int, message: str | None = None) -> None:
        self.status = status
        super().__init__(message or f"Request rejected with status {status}")


class DataIntegrityError(AcnError):
    """Raised when a response does not match the declared register layout."""


class ValidationError(AcnError, ValueError):
    """Raised when caller-supplied input is rejected before transmission."""


class EncodingError(ValidationError):
    """Raised when a host value cannot be encoded for the device."""


class UnknownCommandError(ValidationError):
    """Raised when a symbolic command name is not in the vocabulary."""
