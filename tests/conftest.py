from __future__ import annotations

import re

import pytest

from receiptlink.core.config import PermissionSettings, Settings, TransportSettings
from receiptlink.core.connection import ConnectionManager
from receiptlink.core.model import Device
from receiptlink.core.permissions import (
    BLUETOOTH_CONNECT,
    BLUETOOTH_SCAN,
    GrantListPermissionHost,
    PermissionGate,
)
from receiptlink.core.pipeline import PrintPipeline
from receiptlink.core.service import PrinterService

PRINTER = Device(address="AA:BB:CC:DD:EE:FF", name="POS-58")

_MAC_RE = re.compile(r"^[0-9A-F]{2}(?::[0-9A-F]{2}){5}$")


class FakeAdapter:
    def __init__(self, devices: list[Device] | None = None, *, present: bool = True, enabled: bool = True) -> None:
        self.devices = [PRINTER] if devices is None else devices
        self.present = present
        self.enabled = enabled
        self.calls: list[str] = []
        self.fail_with: OSError | None = None

    def _record(self, call: str) -> None:
        self.calls.append(call)
        if self.fail_with is not None:
            raise self.fail_with

    def is_present(self) -> bool:
        self._record("is_present")
        return self.present

    def is_enabled(self) -> bool:
        self._record("is_enabled")
        return self.enabled

    def bonded_devices(self) -> list[Device]:
        self._record("bonded_devices")
        return list(self.devices)

    def get_remote_device(self, address: str) -> Device:
        self._record("get_remote_device")
        normalized = address.upper()
        if not _MAC_RE.match(normalized):
            raise ValueError(f"bad address {address}")
        for device in self.devices:
            if device.address == normalized:
                return device
        return Device(address=normalized)

    def cancel_discovery(self) -> None:
        self._record("cancel_discovery")


class FakeStream:
    def __init__(self) -> None:
        self.written = bytearray()
        self.writes: list[bytes] = []
        self.flushes = 0
        self.closed = False
        self.fail_writes = False

    def write(self, data: bytes) -> int:
        if self.fail_writes:
            raise OSError(104, "Connection reset by peer")
        self.writes.append(bytes(data))
        self.written.extend(data)
        return len(data)

    def flush(self) -> None:
        self.flushes += 1

    def close(self) -> None:
        self.closed = True


class FakeChannel:
    def __init__(self, device: Device, service_uuid: str, *, secure: bool, fail_connect: bool) -> None:
        self.device = device
        self.service_uuid = service_uuid
        self.secure = secure
        self.fail_connect = fail_connect
        self.stream = FakeStream()
        self.connected = False
        self.closed = False

    def connect(self) -> None:
        if self.fail_connect:
            raise OSError(111, "Connection refused")
        self.connected = True

    def output_stream(self) -> FakeStream:
        return self.stream

    def is_connected(self) -> bool:
        return self.connected and not self.closed

    def close(self) -> None:
        self.closed = True
        self.connected = False


class FakeChannelFactory:
    def __init__(self, *, fail_secure: bool = False, fail_insecure: bool = False) -> None:
        self.fail_secure = fail_secure
        self.fail_insecure = fail_insecure
        self.channels: list[FakeChannel] = []
        self.before_create = None

    def create_channel(self, device: Device, service_uuid: str, *, secure: bool) -> FakeChannel:
        if self.before_create is not None:
            self.before_create(secure)
        fail = self.fail_secure if secure else self.fail_insecure
        channel = FakeChannel(device, service_uuid, secure=secure, fail_connect=fail)
        self.channels.append(channel)
        return channel


def make_settings(**transport_overrides) -> Settings:
    transport = {
        "type": "rfcomm",
        "service_uuid": "00001101-0000-1000-8000-00805f9b34fb",
        "strategies": ("secure", "insecure"),
        "channel": 1,
        "timeout_s": 10.0,
        "chunk_size": None,
        "chunk_delay_s": 0.0,
    }
    transport.update(transport_overrides)
    return Settings(
        permissions=PermissionSettings(
            os_version=31,
            modern_threshold=31,
            granted=(BLUETOOTH_SCAN, BLUETOOTH_CONNECT),
            denied=(),
        ),
        transport=TransportSettings(**transport),
    )


@pytest.fixture
def host() -> GrantListPermissionHost:
    return GrantListPermissionHost(31, granted=(BLUETOOTH_SCAN, BLUETOOTH_CONNECT))


@pytest.fixture
def gate(host: GrantListPermissionHost) -> PermissionGate:
    return PermissionGate(host)


@pytest.fixture
def adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture
def factory() -> FakeChannelFactory:
    return FakeChannelFactory()


@pytest.fixture
def manager(gate: PermissionGate, adapter: FakeAdapter, factory: FakeChannelFactory) -> ConnectionManager:
    return ConnectionManager(gate, adapter, factory)


@pytest.fixture
def pipeline(manager: ConnectionManager) -> PrintPipeline:
    return PrintPipeline(manager)


@pytest.fixture
def service(host: GrantListPermissionHost, adapter: FakeAdapter, factory: FakeChannelFactory) -> PrinterService:
    return PrinterService(
        settings=make_settings(),
        permission_host=host,
        adapter=adapter,
        channel_factory=factory,
    )
