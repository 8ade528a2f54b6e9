"""Platform collaborator interfaces."""

from __future__ import annotations

from typing import BinaryIO, Protocol

from receiptlink.core.model import Device


class RadioAdapter(Protocol):
    def is_present(self) -> bool:
        """Return True when a local Bluetooth controller exists."""

    def is_enabled(self) -> bool:
        """Return True when the controller is powered on."""

    def bonded_devices(self) -> list[Device]:
        """Return already-paired devices in the adapter's native order."""

    def get_remote_device(self, address: str) -> Device:
        """Resolve an address to a device handle. Raises ValueError if invalid."""

    def cancel_discovery(self) -> None:
        """Stop any running inquiry; it slows down connection setup."""


class Channel(Protocol):
    def connect(self) -> None:
        """Open the link. Raises OSError on transport failure."""

    def output_stream(self) -> BinaryIO:
        """Return the writable byte stream of a connected channel."""

    def is_connected(self) -> bool:
        ...

    def close(self) -> None:
        ...


class ChannelFactory(Protocol):
    def create_channel(self, device: Device, service_uuid: str, *, secure: bool) -> Channel:
        """Create an unconnected serial channel to ``service_uuid`` on ``device``."""
