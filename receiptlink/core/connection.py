"""Ownership of the single printer connection.

The manager moves between ``IDLE``, ``CONNECTING``, ``CONNECTED`` and
``FAILED``. A failed connect passes through ``FAILED`` and lands back in
``IDLE`` so the caller can retry from scratch.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from receiptlink.core.errors import (
    ConnectFailedError,
    InvalidAddressError,
    NotConnectedError,
    Origin,
    PermissionDeniedError,
    PrinterError,
    TransmissionFailedError,
    classify,
)
from receiptlink.core.model import Connection, ConnectionState, Device
from receiptlink.core.permissions import PermissionGate
from receiptlink.platform.base import ChannelFactory, RadioAdapter

SPP_UUID = "00001101-0000-1000-8000-00805f9b34fb"

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChannelStrategy:
    name: str
    secure: bool


SECURE = ChannelStrategy(name="secure", secure=True)
INSECURE = ChannelStrategy(name="insecure", secure=False)

# Secure first; some thermal printers only accept the insecure variant.
DEFAULT_STRATEGIES: tuple[ChannelStrategy, ...] = (SECURE, INSECURE)

STRATEGIES_BY_NAME = {strategy.name: strategy for strategy in DEFAULT_STRATEGIES}


class ConnectionManager:
    def __init__(
        self,
        gate: PermissionGate,
        adapter: RadioAdapter | None,
        channel_factory: ChannelFactory,
        *,
        service_uuid: str = SPP_UUID,
        strategies: Sequence[ChannelStrategy] = DEFAULT_STRATEGIES,
    ) -> None:
        if not strategies:
            raise ValueError("At least one channel strategy is required")
        self._gate = gate
        self._adapter = adapter
        self._factory = channel_factory
        self._service_uuid = service_uuid
        self._strategies = tuple(strategies)
        self._connection: Connection | None = None
        self._state = ConnectionState.IDLE
        self.last_failure: PrinterError | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED and self._connection is not None

    def connect(self, address: str) -> Connection:
        self._gate.ensure_granted()
        self.disconnect()

        if self._adapter is None:
            raise InvalidAddressError(f"Cannot resolve '{address}': no Bluetooth adapter is available.")

        self._set_state(ConnectionState.CONNECTING)
        try:
            device = self._adapter.get_remote_device(address)
        except ValueError as exc:
            self._set_state(ConnectionState.IDLE)
            raise InvalidAddressError(f"'{address}' is not a valid Bluetooth address: {exc}") from exc
        except OSError as exc:
            self._set_state(ConnectionState.IDLE)
            raise classify(exc, Origin.ADAPTER) from exc

        try:
            self._adapter.cancel_discovery()
        except OSError as exc:
            self._set_state(ConnectionState.IDLE)
            raise classify(exc, Origin.ADAPTER) from exc

        last_error: OSError | None = None
        for strategy in self._strategies:
            if not self._still_permitted():
                self._set_state(ConnectionState.IDLE)
                raise PermissionDeniedError("Bluetooth permission was revoked while connecting.")
            try:
                connection = self._open(device, strategy)
            except OSError as exc:
                LOGGER.warning(
                    "%s channel to %s failed: %s",
                    strategy.name,
                    device.address,
                    exc,
                )
                last_error = exc
                continue

            self._connection = connection
            self._set_state(ConnectionState.CONNECTED)
            self.last_failure = None
            LOGGER.info("Connected to %s using %s channel", device.address, strategy.name)
            return connection

        failure = classify(last_error, Origin.CONNECT) if last_error else ConnectFailedError()
        self.last_failure = failure
        self._set_state(ConnectionState.FAILED)
        self._set_state(ConnectionState.IDLE)
        raise failure from last_error

    def disconnect(self) -> None:
        connection = self._connection
        self._connection = None
        if connection is not None:
            _close_quietly(connection.output, what="output stream")
            _close_quietly(connection.channel, what="channel")
            LOGGER.info("Disconnected from %s", connection.address)
        self._set_state(ConnectionState.IDLE)

    def require_connection(self) -> Connection:
        """Return the live connection, or raise when none is held."""
        connection = self._connection
        if self._state is not ConnectionState.CONNECTED or connection is None:
            raise NotConnectedError()
        if not connection.channel.is_connected():
            address = connection.address
            self.disconnect()
            raise TransmissionFailedError(f"Connection to {address} was lost. Reconnect and retry.")
        return connection

    def _open(self, device: Device, strategy: ChannelStrategy) -> Connection:
        channel = self._factory.create_channel(device, self._service_uuid, secure=strategy.secure)
        try:
            channel.connect()
            output = channel.output_stream()
        except OSError:
            _close_quietly(channel, what="channel")
            raise
        return Connection(address=device.address, channel=channel, output=output, strategy=strategy.name)

    def _still_permitted(self) -> bool:
        try:
            self._gate.ensure_granted()
        except PermissionDeniedError:
            return False
        return True

    def _set_state(self, state: ConnectionState) -> None:
        if state is not self._state:
            LOGGER.debug("Connection state %s -> %s", self._state.value, state.value)
        self._state = state


class _Closeable(Protocol):
    def close(self) -> None:
        ...


def _close_quietly(resource: _Closeable, *, what: str) -> None:
    try:
        resource.close()
    except OSError as exc:
        LOGGER.debug("Ignoring error while closing %s: %s", what, exc)
