"""Failure taxonomy and classification for receiptlink."""

from __future__ import annotations

import binascii
from enum import Enum


class FailureCategory(str, Enum):
    ADAPTER_UNAVAILABLE = "AdapterUnavailable"
    ADAPTER_DISABLED = "AdapterDisabled"
    PERMISSION_DENIED = "PermissionDenied"
    INVALID_ADDRESS = "InvalidAddress"
    CONNECT_FAILED = "ConnectFailed"
    NOT_CONNECTED = "NotConnected"
    INVALID_PAYLOAD = "InvalidPayload"
    TRANSMISSION_FAILED = "TransmissionFailed"


class Origin(str, Enum):
    """Where in an operation a failure was observed."""

    PERMISSION = "permission"
    ADAPTER = "adapter"
    RESOLVE = "resolve"
    CONNECT = "connect"
    PAYLOAD = "payload"
    TRANSMIT = "transmit"


class ReceiptlinkError(Exception):
    """Base error for receiptlink."""


class ConfigError(ReceiptlinkError):
    """Raised when reading configuration files fails."""


class ConfigValidationError(ConfigError):
    """Raised when configuration does not conform to schema or semantics."""


class PrinterError(ReceiptlinkError):
    """Base for runtime failures reported to callers.

    The ``category`` is the contract callers branch on; the message is for
    humans only.
    """

    category: FailureCategory
    default_message = "Printer operation failed."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class AdapterUnavailableError(PrinterError):
    category = FailureCategory.ADAPTER_UNAVAILABLE
    default_message = "No Bluetooth adapter is available on this system."


class AdapterDisabledError(PrinterError):
    category = FailureCategory.ADAPTER_DISABLED
    default_message = "Bluetooth is turned off. Turn it on and retry."


class PermissionDeniedError(PrinterError):
    category = FailureCategory.PERMISSION_DENIED
    default_message = "Bluetooth permission has not been granted."


class InvalidAddressError(PrinterError):
    category = FailureCategory.INVALID_ADDRESS
    default_message = "Printer address is not a valid Bluetooth address."


class ConnectFailedError(PrinterError):
    category = FailureCategory.CONNECT_FAILED
    default_message = "Could not connect to the printer."


class NotConnectedError(PrinterError):
    category = FailureCategory.NOT_CONNECTED
    default_message = "Printer is not connected."


class InvalidPayloadError(PrinterError):
    category = FailureCategory.INVALID_PAYLOAD
    default_message = "Print data is empty or malformed."


class TransmissionFailedError(PrinterError):
    category = FailureCategory.TRANSMISSION_FAILED
    default_message = "Printer connection was lost while sending data. Reconnect and retry."


_ERROR_BY_CATEGORY: dict[FailureCategory, type[PrinterError]] = {
    cls.category: cls
    for cls in (
        AdapterUnavailableError,
        AdapterDisabledError,
        PermissionDeniedError,
        InvalidAddressError,
        ConnectFailedError,
        NotConnectedError,
        InvalidPayloadError,
        TransmissionFailedError,
    )
}

_CATEGORY_BY_ORIGIN: dict[Origin, FailureCategory] = {
    Origin.PERMISSION: FailureCategory.PERMISSION_DENIED,
    Origin.ADAPTER: FailureCategory.ADAPTER_UNAVAILABLE,
    Origin.RESOLVE: FailureCategory.INVALID_ADDRESS,
    Origin.CONNECT: FailureCategory.CONNECT_FAILED,
    Origin.PAYLOAD: FailureCategory.INVALID_PAYLOAD,
    Origin.TRANSMIT: FailureCategory.TRANSMISSION_FAILED,
}


def error_for(category: FailureCategory, message: str | None = None) -> PrinterError:
    return _ERROR_BY_CATEGORY[category](message)


def classify(exc: BaseException, origin: Origin) -> PrinterError:
    """Map an exception observed at ``origin`` to a classified printer error."""
    if isinstance(exc, PrinterError):
        return exc

    category = _CATEGORY_BY_ORIGIN[origin]
    cls = _ERROR_BY_CATEGORY[category]

    if origin is Origin.PAYLOAD:
        if isinstance(exc, binascii.Error):
            return cls(f"Print data is not valid base64: {exc}")
        if isinstance(exc, UnicodeError):
            return cls(f"Print text cannot be encoded as UTF-8: {exc}")
    if origin is Origin.CONNECT and isinstance(exc, OSError):
        return cls(f"{cls.default_message} {_os_error_text(exc)}")
    if origin is Origin.TRANSMIT and isinstance(exc, OSError):
        return cls(f"Failed to send print data: {_os_error_text(exc)}")

    detail = str(exc)
    return cls(f"{cls.default_message} {detail}" if detail else None)


def _os_error_text(exc: OSError) -> str:
    return exc.strerror or str(exc) or type(exc).__name__
