"""Write-only printer channel over a BLE GATT characteristic."""

from __future__ import annotations

import asyncio
import io
import logging
import threading
from collections.abc import Coroutine
from typing import Any, BinaryIO

from receiptlink.core.model import Device

LOGGER = logging.getLogger(__name__)

# A single GATT write is capped well below the negotiated MTU on cheap printers.
DEFAULT_WRITE_CHUNK = 100


class _GATTWriter(io.RawIOBase):
    def __init__(self, channel: BLEGATTChannel) -> None:
        self._channel = channel

    def writable(self) -> bool:
        return True

    def write(self, data: bytes | bytearray | memoryview) -> int:  # type: ignore[override]
        payload = bytes(data)
        self._channel.write(payload)
        return len(payload)


class BLEGATTChannel:
    def __init__(
        self,
        address: str,
        service_uuid: str,
        *,
        secure: bool,
        timeout_s: float,
        write_chunk: int = DEFAULT_WRITE_CHUNK,
    ) -> None:
        self.address = address
        self.service_uuid = service_uuid
        self.secure = secure
        self.timeout_s = timeout_s
        self.write_chunk = write_chunk
        self._client: Any = None
        self._characteristic: Any = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._output: BinaryIO | None = None

    def connect(self) -> None:
        try:
            from bleak import BleakClient  # type: ignore
        except Exception as exc:  # pragma: no cover - import failure path
            raise OSError("BLE transport requires 'bleak'. Install dependency and retry.") from exc

        self._start_loop()
        self._client = BleakClient(self.address, timeout=self.timeout_s)
        try:
            self._run(self._connect_async())
        except OSError:
            self.close()
            raise
        except Exception as exc:
            self.close()
            raise OSError(f"BLE connect failed for {self.address}: {exc}") from exc

    async def _connect_async(self) -> None:
        await self._client.connect()
        if self.secure:
            await self._client.pair()

        service = self._client.services.get_service(self.service_uuid)
        if service is None:
            raise OSError(f"Service {self.service_uuid} not found on {self.address}")
        for characteristic in service.characteristics:
            properties = set(characteristic.properties)
            if {"write", "write-without-response"} & properties:
                self._characteristic = characteristic
                break
        else:
            raise OSError(f"No writable characteristic in service {self.service_uuid}")
        LOGGER.debug("Using GATT characteristic %s on %s", self._characteristic.uuid, self.address)

    def output_stream(self) -> BinaryIO:
        if not self.is_connected():
            raise OSError(f"BLE channel to {self.address} is not connected")
        if self._output is None:
            self._output = io.BufferedWriter(_GATTWriter(self))
        return self._output

    def write(self, data: bytes) -> None:
        if not self.is_connected():
            raise OSError(f"BLE channel to {self.address} is not connected")
        response = "write" in self._characteristic.properties
        try:
            for offset in range(0, len(data), self.write_chunk):
                chunk = data[offset : offset + self.write_chunk]
                self._run(self._client.write_gatt_char(self._characteristic, chunk, response=response))
        except OSError:
            raise
        except Exception as exc:
            raise OSError(f"BLE GATT write failed: {exc}") from exc

    def is_connected(self) -> bool:
        return self._client is not None and self._characteristic is not None and bool(self._client.is_connected)

    def close(self) -> None:
        output, self._output = self._output, None
        try:
            if output is not None:
                output.close()
        except OSError as exc:
            LOGGER.debug("Discarded unsent data for %s: %s", self.address, exc)

        client, self._client = self._client, None
        self._characteristic = None
        try:
            if client is not None and client.is_connected and self._loop is not None:
                self._run(client.disconnect())
        except Exception as exc:
            raise OSError(f"BLE disconnect failed: {exc}") from exc
        finally:
            self._stop_loop()

    def _start_loop(self) -> None:
        if self._loop is not None:
            return
        loop = asyncio.new_event_loop()
        thread = threading.Thread(target=loop.run_forever, name=f"ble-{self.address}", daemon=True)
        thread.start()
        self._loop = loop
        self._thread = thread

    def _stop_loop(self) -> None:
        loop, self._loop = self._loop, None
        thread, self._thread = self._thread, None
        if loop is None:
            return
        loop.call_soon_threadsafe(loop.stop)
        if thread is not None:
            thread.join(timeout=1.0)
        if not loop.is_running():
            loop.close()

    def _run(self, coro: Coroutine[Any, Any, Any]) -> Any:
        if self._loop is None:
            coro.close()
            raise OSError(f"BLE channel to {self.address} is not connected")
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result(timeout=self.timeout_s + 5.0)


class BLEGATTChannelFactory:
    def __init__(self, *, timeout_s: float = 10.0, write_chunk: int = DEFAULT_WRITE_CHUNK) -> None:
        self._timeout_s = timeout_s
        self._write_chunk = write_chunk

    def create_channel(self, device: Device, service_uuid: str, *, secure: bool) -> BLEGATTChannel:
        return BLEGATTChannel(
            device.address,
            service_uuid,
            secure=secure,
            timeout_s=self._timeout_s,
            write_chunk=self._write_chunk,
        )
