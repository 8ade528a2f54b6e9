from __future__ import annotations

import socket

import pytest

from receiptlink.core.model import Device
from receiptlink.platform.rfcomm import RFCOMMChannel, RFCOMMChannelFactory, bluetooth_socket_support


def test_missing_bluetooth_constants_raises_os_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delattr(socket, "AF_BLUETOOTH", raising=False)
    monkeypatch.delattr(socket, "BTPROTO_RFCOMM", raising=False)

    assert bluetooth_socket_support() is not None
    channel = RFCOMMChannel("AA:BB:CC:DD:EE:FF", 1, secure=True, timeout_s=1.0)
    with pytest.raises(OSError):
        channel.connect()
    assert not channel.is_connected()
    channel.close()


def test_output_stream_requires_connection() -> None:
    channel = RFCOMMChannel("AA:BB:CC:DD:EE:FF", 1, secure=False, timeout_s=1.0)
    with pytest.raises(OSError):
        channel.output_stream()


def test_factory_uses_resolved_channel() -> None:
    lookups: list[tuple[str, str]] = []

    def resolver(address: str, service_uuid: str) -> int | None:
        lookups.append((address, service_uuid))
        return 4

    factory = RFCOMMChannelFactory(resolver=resolver, default_channel=1, timeout_s=2.5)
    channel = factory.create_channel(Device(address="AA:BB:CC:DD:EE:FF"), "uuid", secure=False)
    assert channel.channel == 4
    assert channel.secure is False
    assert channel.timeout_s == 2.5
    assert lookups == [("AA:BB:CC:DD:EE:FF", "uuid")]


def test_factory_falls_back_to_default_channel() -> None:
    factory = RFCOMMChannelFactory(resolver=lambda address, uuid: None, default_channel=6)
    assert factory.create_channel(Device(address="AA:BB:CC:DD:EE:FF"), "uuid", secure=True).channel == 6
    assert RFCOMMChannelFactory().create_channel(Device(address="AA:BB:CC:DD:EE:FF"), "uuid", secure=True).channel == 1
