"""BlueZ-backed radio adapter driven through ``bluetoothctl`` and ``sdptool``."""

from __future__ import annotations

import logging
import re
import subprocess
from collections.abc import Sequence

from receiptlink.core.model import Device

_DEVICE_LINE_RE = re.compile(r"^Device\s+([0-9A-F:]{17})\s*(.*)$", re.IGNORECASE)
_MAC_RE = re.compile(r"^[0-9A-F]{2}(?::[0-9A-F]{2}){5}$")
_POWERED_RE = re.compile(r"^\s*Powered:\s*(yes|no)\s*$", re.IGNORECASE | re.MULTILINE)
_CHANNEL_RE = re.compile(r"^\s*Channel:\s*(\d+)\s*$", re.MULTILINE)

LOGGER = logging.getLogger(__name__)


class BluezAdapter:
    """The default local controller as reported by ``bluetoothctl``."""

    def is_present(self) -> bool:
        result = _run(["bluetoothctl", "show"])
        if result is None or result.returncode != 0:
            return False
        return "Controller" in result.stdout

    def is_enabled(self) -> bool:
        result = _run(["bluetoothctl", "show"])
        if result is None or result.returncode != 0:
            return False
        match = _POWERED_RE.search(result.stdout)
        return bool(match) and match.group(1).lower() == "yes"

    def bonded_devices(self) -> list[Device]:
        for cmd in (["bluetoothctl", "devices", "Paired"], ["bluetoothctl", "paired-devices"]):
            result = _run(cmd)
            if result is None or result.returncode != 0:
                continue
            return parse_device_lines(result.stdout)
        return []

    def get_remote_device(self, address: str) -> Device:
        normalized = address.strip().upper()
        if not _MAC_RE.match(normalized):
            raise ValueError(f"expected six colon-separated hex octets, got '{address}'")
        for device in self.bonded_devices():
            if device.address == normalized:
                return device
        return Device(address=normalized)

    def cancel_discovery(self) -> None:
        result = _run(["bluetoothctl", "scan", "off"])
        if result is not None and result.returncode != 0:
            LOGGER.debug("bluetoothctl scan off: %s", (result.stderr or result.stdout).strip())


def parse_device_lines(output: str) -> list[Device]:
    seen: set[str] = set()
    devices: list[Device] = []
    for line in output.splitlines():
        match = _DEVICE_LINE_RE.match(line.strip())
        if not match:
            continue
        address, name = match.group(1).upper(), match.group(2).strip()
        if address in seen:
            continue
        seen.add(address)
        devices.append(Device(address=address, name=name or None))
    return devices


def find_rfcomm_channel(address: str, service_uuid: str) -> int | None:
    """Look up the RFCOMM channel advertising ``service_uuid`` via SDP."""
    result = _run(["sdptool", "search", "--bdaddr", address, _sdp_search_term(service_uuid)])
    if result is None or result.returncode != 0:
        return None
    return parse_sdp_channel(result.stdout)


def parse_sdp_channel(output: str) -> int | None:
    # sdptool prints one block per matching record; the first RFCOMM channel wins.
    match = _CHANNEL_RE.search(output)
    return int(match.group(1)) if match else None


def _sdp_search_term(service_uuid: str) -> str:
    uuid = service_uuid.lower()
    if uuid.startswith("0000") and uuid.endswith("-0000-1000-8000-00805f9b34fb"):
        return "0x" + uuid[4:8]
    return uuid


def _run(cmd: Sequence[str]) -> subprocess.CompletedProcess[str] | None:
    try:
        return subprocess.run(
            cmd,
            check=False,
            capture_output=True,
            text=True,
        )
    except FileNotFoundError:
        LOGGER.debug("%s is not installed", cmd[0])
        return None
    except OSError as exc:
        LOGGER.warning("Cannot run %s: %s", cmd[0], exc)
        return None
