"""Stable public API for host applications driving a receipt printer.

Every operation returns an :class:`Outcome` instead of raising: the host
either resolves (``ok``) or rejects with a :class:`FailureCategory` it can
branch on. Avoid importing from internal modules unless intentionally
depending on non-stable internals.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from receiptlink.core.config import Settings
from receiptlink.core.errors import (
    AdapterDisabledError,
    AdapterUnavailableError,
    ConnectFailedError,
    FailureCategory,
    InvalidAddressError,
    InvalidPayloadError,
    NotConnectedError,
    PermissionDeniedError,
    PrinterError,
    ReceiptlinkError,
    TransmissionFailedError,
)
from receiptlink.core.model import ConnectionState, Device, PayloadEncoding
from receiptlink.core.permissions import PermissionHost
from receiptlink.core.service import PrinterService
from receiptlink.platform.base import ChannelFactory, RadioAdapter

__all__ = [
    "ReceiptlinkError",
    "PrinterError",
    "AdapterUnavailableError",
    "AdapterDisabledError",
    "PermissionDeniedError",
    "InvalidAddressError",
    "ConnectFailedError",
    "NotConnectedError",
    "InvalidPayloadError",
    "TransmissionFailedError",
    "FailureCategory",
    "ConnectionState",
    "Device",
    "PayloadEncoding",
    "Outcome",
    "Client",
]

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Outcome:
    """Result of one host request."""

    ok: bool
    category: FailureCategory | None = None
    message: str | None = None
    devices: tuple[Device, ...] = ()

    @classmethod
    def success(cls, devices: tuple[Device, ...] = ()) -> Outcome:
        return cls(ok=True, devices=devices)

    @classmethod
    def failure(cls, error: PrinterError) -> Outcome:
        return cls(ok=False, category=error.category, message=error.message)


class Client:
    """Public client wrapping the permission gate, device directory, connection
    manager, and print pipeline for host applications (UI shells, services,
    scripts). Requests are expected one at a time.
    """

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        config_path: Path | None = None,
        permission_host: PermissionHost | None = None,
        adapter: RadioAdapter | None = None,
        channel_factory: ChannelFactory | None = None,
        prompt: Callable[[tuple[str, ...]], bool] | None = None,
    ) -> None:
        self._service = PrinterService(
            settings=settings,
            config_path=config_path,
            permission_host=permission_host,
            adapter=adapter,
            channel_factory=channel_factory,
            prompt=prompt,
        )

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    @property
    def runtime_warnings(self) -> tuple[str, ...]:
        return self._service.runtime_warnings

    @property
    def state(self) -> ConnectionState:
        return self._service.state

    def request_permission(self) -> Outcome:
        return self._call(self._service.request_permission)

    def list_paired_devices(self) -> Outcome:
        try:
            devices = self._service.list_paired_devices()
        except PrinterError as exc:
            return self._reject("list_paired_devices", exc)
        return Outcome.success(devices)

    def connect(self, address: str) -> Outcome:
        return self._call(self._service.connect, address)

    def print(self, data: str, encoding: str = "raw") -> Outcome:
        return self._call(self._service.print, data, encoding)

    def disconnect(self) -> Outcome:
        self._service.disconnect()
        return Outcome.success()

    def is_connected(self) -> bool:
        return self._service.is_connected()

    def _call(self, operation: Callable[..., object], *args: object) -> Outcome:
        try:
            operation(*args)
        except PrinterError as exc:
            return self._reject(operation.__name__, exc)
        return Outcome.success()

    @staticmethod
    def _reject(name: str, exc: PrinterError) -> Outcome:
        LOGGER.info("%s rejected: %s (%s)", name, exc.category.value, exc)
        return Outcome.failure(exc)
