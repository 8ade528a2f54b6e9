"""RFCOMM serial channels using Python's Bluetooth sockets."""

from __future__ import annotations

import logging
import socket
import struct
from collections.abc import Callable
from typing import BinaryIO

from receiptlink.core.model import Device

# <bluetooth/bluetooth.h>; not exported by the socket module.
SOL_BLUETOOTH = 274
BT_SECURITY = 4
BT_SECURITY_LOW = 1
BT_SECURITY_MEDIUM = 2

LOGGER = logging.getLogger(__name__)

ChannelResolver = Callable[[str, str], int | None]


def bluetooth_socket_support() -> str | None:
    """Return why RFCOMM sockets are unavailable, or None when they are."""
    if not hasattr(socket, "AF_BLUETOOTH") or not hasattr(socket, "BTPROTO_RFCOMM"):
        return "This Python build does not expose Bluetooth socket APIs (AF_BLUETOOTH/BTPROTO_RFCOMM)."
    return None


class RFCOMMChannel:
    def __init__(self, address: str, channel: int, *, secure: bool, timeout_s: float) -> None:
        self.address = address
        self.channel = channel
        self.secure = secure
        self.timeout_s = timeout_s
        self._sock: socket.socket | None = None
        self._output: BinaryIO | None = None
        self._connected = False

    def connect(self) -> None:
        unsupported = bluetooth_socket_support()
        if unsupported:
            raise OSError(unsupported)

        sock = socket.socket(socket.AF_BLUETOOTH, socket.SOCK_STREAM, socket.BTPROTO_RFCOMM)
        self._sock = sock
        level = BT_SECURITY_MEDIUM if self.secure else BT_SECURITY_LOW
        sock.setsockopt(SOL_BLUETOOTH, BT_SECURITY, struct.pack("BB", level, 0))
        sock.settimeout(self.timeout_s)
        LOGGER.debug(
            "Connecting RFCOMM %s channel %d (%s)",
            self.address,
            self.channel,
            "secure" if self.secure else "insecure",
        )
        try:
            sock.connect((self.address, self.channel))
        except TimeoutError as exc:
            raise OSError(f"RFCOMM connect timed out for {self.address} on channel {self.channel}") from exc
        self._connected = True

    def output_stream(self) -> BinaryIO:
        if not self._connected or self._sock is None:
            raise OSError(f"RFCOMM channel to {self.address} is not connected")
        if self._output is None:
            self._output = self._sock.makefile("wb")
        return self._output

    def is_connected(self) -> bool:
        return self._connected and self._sock is not None and self._sock.fileno() != -1

    def close(self) -> None:
        self._connected = False
        output, self._output = self._output, None
        sock, self._sock = self._sock, None
        try:
            if output is not None:
                output.close()
        finally:
            if sock is not None:
                sock.close()


class RFCOMMChannelFactory:
    """Creates RFCOMM channels, resolving the service's channel number per device.

    ``resolver`` maps (address, service UUID) to a channel number; when it has
    no answer, ``default_channel`` is used.
    """

    def __init__(
        self,
        *,
        resolver: ChannelResolver | None = None,
        default_channel: int = 1,
        timeout_s: float = 10.0,
    ) -> None:
        self._resolver = resolver
        self._default_channel = default_channel
        self._timeout_s = timeout_s

    def create_channel(self, device: Device, service_uuid: str, *, secure: bool) -> RFCOMMChannel:
        channel = None
        if self._resolver is not None:
            channel = self._resolver(device.address, service_uuid)
        if channel is None:
            LOGGER.debug("No SDP record for %s on %s, using channel %d", service_uuid, device.address, self._default_channel)
            channel = self._default_channel
        return RFCOMMChannel(device.address, channel, secure=secure, timeout_s=self._timeout_s)
