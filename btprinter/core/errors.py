"""Domain-specific errors for btprinter."""


class BtPrinterError(Exception):
    """Base error for btprinter."""


class ConfigValidationError(BtPrinterError):
    """Raised when a settings file does not conform to schema or semantics."""


class ConfigLoadError(BtPrinterError):
    """Raised when reading the settings file fails."""


class InvalidAddressError(BtPrinterError):
    """Raised when a string is not a Bluetooth hardware address."""


class TransportError(BtPrinterError):
    """Base transport error."""


class AdapterError(TransportError):
    """Raised when the host Bluetooth adapter cannot be queried."""


class TransportConnectError(TransportError):
    """Raised on RFCOMM connect failures."""


class TransportSendError(TransportError):
    """Raised when writing or flushing the output stream fails."""


class TransportTimeoutError(TransportError):
    """Raised when an RFCOMM connect attempt times out."""


class ChannelError(BtPrinterError):
    """Base error reported to callers of the printer channel."""

    code = "ERROR"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code
        self.message = message


class MissingArgumentError(ChannelError):
    """Raised when a required call argument was not supplied."""


class MethodNotImplementedError(ChannelError):
    """Raised for channel methods this manager does not provide."""

    code = "NOT_IMPLEMENTED"
