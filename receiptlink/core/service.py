"""Service layer used by the CLI and the public client."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from receiptlink.core.config import Settings, TransportSettings, load_settings
from receiptlink.core.connection import STRATEGIES_BY_NAME, ConnectionManager
from receiptlink.core.directory import DeviceDirectory
from receiptlink.core.errors import PermissionDeniedError
from receiptlink.core.model import (
    AdapterStatus,
    ConnectionState,
    Device,
    PayloadEncoding,
    PermissionState,
    PermissionTier,
    PrintPayload,
)
from receiptlink.core.permissions import GrantListPermissionHost, PermissionGate, PermissionHost, permissions_for
from receiptlink.core.pipeline import PrintPipeline, parse_encoding
from receiptlink.platform.base import ChannelFactory, RadioAdapter
from receiptlink.platform.ble_gatt import BLEGATTChannelFactory
from receiptlink.platform.bluez import BluezAdapter, find_rfcomm_channel
from receiptlink.platform.rfcomm import RFCOMMChannelFactory, bluetooth_socket_support


class PrinterService:
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
        self.load_warnings: tuple[str, ...] = ()
        if settings is None:
            loaded = load_settings(config_path)
            settings = loaded.settings
            self.load_warnings = loaded.warnings
        self.settings = settings
        self.runtime_warnings = _runtime_warnings(settings.transport)

        self.permission_host = permission_host or GrantListPermissionHost(
            settings.permissions.os_version,
            granted=settings.permissions.granted,
            denied=settings.permissions.denied,
            prompt=prompt,
        )
        self.adapter = adapter or BluezAdapter()
        self.gate = PermissionGate(
            self.permission_host,
            modern_threshold=settings.permissions.modern_threshold,
        )
        self.directory = DeviceDirectory(self.gate, self.adapter)
        self.manager = ConnectionManager(
            self.gate,
            self.adapter,
            channel_factory or _default_channel_factory(settings.transport),
            service_uuid=settings.transport.service_uuid,
            strategies=[STRATEGIES_BY_NAME[name] for name in settings.transport.strategies],
        )
        self.pipeline = PrintPipeline(
            self.manager,
            chunk_size=settings.transport.chunk_size,
            chunk_delay_s=settings.transport.chunk_delay_s,
        )

    @property
    def state(self) -> ConnectionState:
        return self.manager.state

    def permission_tier(self) -> PermissionTier:
        return self.gate.required_tier()

    def permission_state(self) -> PermissionState:
        return self.gate.is_usable()

    def request_permission(self) -> PermissionTier:
        tier = self.gate.required_tier()
        state = self.gate.request_and_recheck(tier)
        if state is not PermissionState.GRANTED:
            needed = ", ".join(permissions_for(tier))
            raise PermissionDeniedError(f"Bluetooth permission was not granted ({needed}).")
        return tier

    def adapter_status(self) -> AdapterStatus:
        return self.directory.status()

    def list_paired_devices(self) -> tuple[Device, ...]:
        return self.directory.list_paired()

    def connect(self, address: str) -> None:
        self.manager.connect(address)

    def is_connected(self) -> bool:
        return self.manager.is_connected()

    def print(self, data: str, encoding: PayloadEncoding | str = PayloadEncoding.RAW) -> None:
        if not isinstance(encoding, PayloadEncoding):
            encoding = parse_encoding(encoding)
        self.pipeline.print(PrintPayload(data=data, encoding=encoding))

    def disconnect(self) -> None:
        self.manager.disconnect()


def _default_channel_factory(transport: TransportSettings) -> ChannelFactory:
    if transport.type == "ble":
        return BLEGATTChannelFactory(timeout_s=transport.timeout_s)
    return RFCOMMChannelFactory(
        resolver=find_rfcomm_channel,
        default_channel=transport.channel,
        timeout_s=transport.timeout_s,
    )


def _runtime_warnings(transport: TransportSettings) -> tuple[str, ...]:
    warnings: list[str] = []
    unsupported = bluetooth_socket_support()
    if transport.type == "rfcomm" and unsupported:
        warnings.append(f"{unsupported} RFCOMM connections will fail.")
    return tuple(warnings)
