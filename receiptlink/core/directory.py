"""Listing of already-paired printers."""

from __future__ import annotations

from receiptlink.core.errors import AdapterDisabledError, AdapterUnavailableError, Origin, classify
from receiptlink.core.model import AdapterStatus, Device
from receiptlink.core.permissions import PermissionGate
from receiptlink.platform.base import RadioAdapter


class DeviceDirectory:
    def __init__(self, gate: PermissionGate, adapter: RadioAdapter | None) -> None:
        self._gate = gate
        self._adapter = adapter

    def status(self) -> AdapterStatus:
        if self._adapter is None:
            return AdapterStatus(present=False, enabled=False)
        try:
            if not self._adapter.is_present():
                return AdapterStatus(present=False, enabled=False)
            return AdapterStatus(present=True, enabled=self._adapter.is_enabled())
        except OSError as exc:
            raise classify(exc, Origin.ADAPTER) from exc

    def list_paired(self) -> tuple[Device, ...]:
        """Return a snapshot of bonded devices in the adapter's own order."""
        self._gate.ensure_granted()
        try:
            adapter = require_enabled_adapter(self._adapter)
            return tuple(adapter.bonded_devices())
        except OSError as exc:
            raise classify(exc, Origin.ADAPTER) from exc


def require_enabled_adapter(adapter: RadioAdapter | None) -> RadioAdapter:
    if adapter is None or not adapter.is_present():
        raise AdapterUnavailableError()
    if not adapter.is_enabled():
        raise AdapterDisabledError()
    return adapter
