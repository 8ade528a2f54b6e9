from __future__ import annotations

import pytest

from conftest import PRINTER, FakeAdapter, FakeChannelFactory
from receiptlink.core.connection import INSECURE, SPP_UUID, ConnectionManager
from receiptlink.core.errors import (
    AdapterUnavailableError,
    ConnectFailedError,
    FailureCategory,
    InvalidAddressError,
    NotConnectedError,
    PermissionDeniedError,
    TransmissionFailedError,
)
from receiptlink.core.model import ConnectionState
from receiptlink.core.permissions import BLUETOOTH_CONNECT, GrantListPermissionHost, PermissionGate


def test_connect_uses_secure_channel_first(manager: ConnectionManager, factory: FakeChannelFactory) -> None:
    connection = manager.connect(PRINTER.address)

    assert manager.state is ConnectionState.CONNECTED
    assert manager.is_connected()
    assert connection.strategy == "secure"
    assert connection.address == PRINTER.address
    assert len(factory.channels) == 1
    assert factory.channels[0].secure is True
    assert factory.channels[0].service_uuid == SPP_UUID


def test_connect_cancels_discovery(manager: ConnectionManager, adapter: FakeAdapter) -> None:
    manager.connect(PRINTER.address)
    assert adapter.calls.index("get_remote_device") < adapter.calls.index("cancel_discovery")


def test_insecure_fallback_is_transparent(gate: PermissionGate, adapter: FakeAdapter) -> None:
    factory = FakeChannelFactory(fail_secure=True)
    manager = ConnectionManager(gate, adapter, factory)

    connection = manager.connect(PRINTER.address)

    assert manager.state is ConnectionState.CONNECTED
    assert connection.strategy == "insecure"
    secure_channel, insecure_channel = factory.channels
    assert secure_channel.closed
    assert not insecure_channel.closed


def test_both_strategies_failing_reports_connect_failed(gate: PermissionGate, adapter: FakeAdapter) -> None:
    factory = FakeChannelFactory(fail_secure=True, fail_insecure=True)
    manager = ConnectionManager(gate, adapter, factory)

    with pytest.raises(ConnectFailedError) as exc:
        manager.connect(PRINTER.address)

    assert exc.value.category is FailureCategory.CONNECT_FAILED
    assert "Connection refused" in str(exc.value)
    assert manager.state is ConnectionState.IDLE
    assert manager.last_failure is exc.value
    assert all(channel.closed for channel in factory.channels)
    assert len(factory.channels) == 2


def test_failed_connect_can_be_retried(gate: PermissionGate, adapter: FakeAdapter) -> None:
    factory = FakeChannelFactory(fail_secure=True, fail_insecure=True)
    manager = ConnectionManager(gate, adapter, factory)
    with pytest.raises(ConnectFailedError):
        manager.connect(PRINTER.address)

    factory.fail_secure = False
    manager.connect(PRINTER.address)
    assert manager.state is ConnectionState.CONNECTED
    assert manager.last_failure is None


def test_unresolvable_address_leaves_manager_idle(manager: ConnectionManager, factory: FakeChannelFactory) -> None:
    with pytest.raises(InvalidAddressError):
        manager.connect("not-a-mac")
    assert manager.state is ConnectionState.IDLE
    assert factory.channels == []


def test_adapter_os_error_is_classified_and_resets_state(
    manager: ConnectionManager, adapter: FakeAdapter, factory: FakeChannelFactory
) -> None:
    adapter.fail_with = PermissionError(13, "Permission denied", "bluetoothctl")

    with pytest.raises(AdapterUnavailableError) as excinfo:
        manager.connect(PRINTER.address)

    assert excinfo.value.category is FailureCategory.ADAPTER_UNAVAILABLE
    assert "bluetoothctl" in str(excinfo.value)
    assert manager.state is ConnectionState.IDLE
    assert factory.channels == []


def test_denied_permission_short_circuits_before_adapter() -> None:
    adapter = FakeAdapter()
    factory = FakeChannelFactory()
    gate = PermissionGate(GrantListPermissionHost(31, denied=(BLUETOOTH_CONNECT,)))
    manager = ConnectionManager(gate, adapter, factory)

    with pytest.raises(PermissionDeniedError):
        manager.connect(PRINTER.address)
    assert adapter.calls == []
    assert factory.channels == []
    assert manager.state is ConnectionState.IDLE


def test_revocation_between_attempts_stops_fallback(
    host: GrantListPermissionHost, gate: PermissionGate, adapter: FakeAdapter
) -> None:
    factory = FakeChannelFactory(fail_secure=True)

    def revoke_after_secure(secure: bool) -> None:
        if secure:
            host.revoke(BLUETOOTH_CONNECT)

    factory.before_create = revoke_after_secure
    manager = ConnectionManager(gate, adapter, factory)

    with pytest.raises(PermissionDeniedError):
        manager.connect(PRINTER.address)
    assert [channel.secure for channel in factory.channels] == [True]
    assert factory.channels[0].closed
    assert manager.state is ConnectionState.IDLE


def test_connect_replaces_live_connection(manager: ConnectionManager, factory: FakeChannelFactory) -> None:
    manager.connect(PRINTER.address)
    manager.connect("11:22:33:44:55:66")

    first, second = factory.channels
    assert first.closed
    assert first.stream.closed
    assert not second.closed
    assert manager.require_connection().address == "11:22:33:44:55:66"


def test_disconnect_is_idempotent(manager: ConnectionManager, factory: FakeChannelFactory) -> None:
    manager.disconnect()
    assert manager.state is ConnectionState.IDLE

    manager.connect(PRINTER.address)
    manager.disconnect()
    manager.disconnect()
    assert manager.state is ConnectionState.IDLE
    assert factory.channels[0].closed
    assert factory.channels[0].stream.closed


def test_disconnect_swallows_close_errors(manager: ConnectionManager, factory: FakeChannelFactory) -> None:
    manager.connect(PRINTER.address)
    channel = factory.channels[0]

    def broken_close() -> None:
        raise OSError("close failed")

    channel.stream.close = broken_close
    channel.close = broken_close

    manager.disconnect()
    assert manager.state is ConnectionState.IDLE
    with pytest.raises(NotConnectedError):
        manager.require_connection()


def test_require_connection_when_idle(manager: ConnectionManager) -> None:
    with pytest.raises(NotConnectedError):
        manager.require_connection()


def test_stale_channel_is_torn_down(manager: ConnectionManager, factory: FakeChannelFactory) -> None:
    manager.connect(PRINTER.address)
    factory.channels[0].connected = False

    with pytest.raises(TransmissionFailedError):
        manager.require_connection()
    assert manager.state is ConnectionState.IDLE
    assert factory.channels[0].closed


def test_custom_strategy_order(gate: PermissionGate, adapter: FakeAdapter, factory: FakeChannelFactory) -> None:
    manager = ConnectionManager(gate, adapter, factory, strategies=[INSECURE])
    assert manager.connect(PRINTER.address).strategy == "insecure"
    assert [channel.secure for channel in factory.channels] == [False]


def test_empty_strategy_list_rejected(gate: PermissionGate, adapter: FakeAdapter, factory: FakeChannelFactory) -> None:
    with pytest.raises(ValueError):
        ConnectionManager(gate, adapter, factory, strategies=[])
