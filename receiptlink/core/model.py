"""Core data models shared by the gate, directory, manager, and pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, BinaryIO

if TYPE_CHECKING:
    from receiptlink.platform.base import Channel


class PermissionTier(str, Enum):
    LEGACY_LOCATION = "legacy_location"
    MODERN_NEARBY = "modern_nearby"


class PermissionState(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    UNKNOWN = "unknown"


class ConnectionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


class PayloadEncoding(str, Enum):
    RAW = "raw"
    BASE64 = "base64"


@dataclass(frozen=True)
class Device:
    address: str
    name: str | None = None


@dataclass(frozen=True)
class AdapterStatus:
    present: bool
    enabled: bool


@dataclass(frozen=True)
class PrintPayload:
    data: str
    encoding: PayloadEncoding = PayloadEncoding.RAW


@dataclass(frozen=True)
class Connection:
    """The single live link held by the connection manager."""

    address: str
    channel: Channel
    output: BinaryIO
    strategy: str
