"""Delivery of print payloads to the connected printer."""

from __future__ import annotations

import base64
import binascii
import logging
import time
from typing import BinaryIO

from receiptlink.core.connection import ConnectionManager
from receiptlink.core.errors import InvalidPayloadError, Origin, classify
from receiptlink.core.model import PayloadEncoding, PrintPayload

LOGGER = logging.getLogger(__name__)


def decode_payload(payload: PrintPayload) -> bytes:
    if not payload.data:
        raise InvalidPayloadError("Print data is empty.")
    try:
        if payload.encoding is PayloadEncoding.BASE64:
            return base64.b64decode(payload.data, validate=True)
        return payload.data.encode("utf-8")
    except (binascii.Error, UnicodeError) as exc:
        raise classify(exc, Origin.PAYLOAD) from exc


def parse_encoding(name: str) -> PayloadEncoding:
    try:
        return PayloadEncoding(name.lower())
    except ValueError as exc:
        allowed = ", ".join(e.value for e in PayloadEncoding)
        raise InvalidPayloadError(f"Unknown payload encoding '{name}'. Allowed: {allowed}") from exc


class PrintPipeline:
    """Writes payloads to the manager's current connection.

    A write or flush failure means the physical link is gone: the connection is
    torn down and the caller has to reconnect before printing again.
    """

    def __init__(
        self,
        manager: ConnectionManager,
        *,
        chunk_size: int | None = None,
        chunk_delay_s: float = 0.0,
    ) -> None:
        if chunk_size is not None and chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._manager = manager
        self._chunk_size = chunk_size
        self._chunk_delay_s = chunk_delay_s

    def print(self, payload: PrintPayload) -> None:
        connection = self._manager.require_connection()
        data = decode_payload(payload)

        try:
            self._write(connection.output, data)
            connection.output.flush()
        except OSError as exc:
            LOGGER.warning("Write to %s failed, dropping connection: %s", connection.address, exc)
            self._manager.disconnect()
            raise classify(exc, Origin.TRANSMIT) from exc

        LOGGER.debug("Sent %d bytes to %s", len(data), connection.address)

    def _write(self, output: BinaryIO, data: bytes) -> None:
        if self._chunk_size is None:
            output.write(data)
            return
        for offset in range(0, len(data), self._chunk_size):
            if offset and self._chunk_delay_s:
                time.sleep(self._chunk_delay_s)
            output.write(data[offset : offset + self._chunk_size])
