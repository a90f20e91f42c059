"""
This module provides the SparkCloud client: thin wrappers over the device,
firmware and event endpoints of the Spark Cloud REST API, plus the
Server-Sent-Events stream of device events.
"""

from __future__ import annotations

import json
import os
import time
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, Iterator, Optional, Union
from urllib.parse import quote

import httpx

from spark_cloud._auth import AuthConfig
from spark_cloud._client import FileSpec, HttpConfig, SparkHttpClient
from spark_cloud._sse import DEFAULT_MAX_BUFFERED_LINES, EventRecord, Observer, StreamEventProcessor
from spark_cloud.device import Device

DEFAULT_BASE_URL = "https://api.particle.io"

# Device id selecting the events of every device owned by the token's user.
MY_DEVICES = "mine"

FileInput = Union[str, os.PathLike, tuple[str, bytes]]


def _segment(value: str) -> str:
    return quote(value, safe="")


def _event_stream_path(event_name: str | None, device_id: str | None) -> str:
    if device_id == MY_DEVICES:
        path = "/v1/devices/events"
    elif device_id:
        path = f"/v1/devices/{_segment(device_id)}/events"
    else:
        path = "/v1/events"

    if event_name:
        path = f"{path}/{_segment(event_name)}"
    return path


def _file_parts(files: list[FileInput]) -> list[tuple[str, FileSpec]]:
    """
    Build the multipart fields for firmware uploads.

    The cloud expects the first source as ``file`` and the following ones as
    ``file1``, ``file2``... Each entry is a path or a ``(filename, content)`` pair.
    """
    if not files:
        raise ValueError("At least one file is required")

    parts: list[tuple[str, FileSpec]] = []
    for i, item in enumerate(files):
        if isinstance(item, tuple):
            filename, content = item
        else:
            path = Path(item)
            filename, content = path.name, path.read_bytes()
        field_name = "file" if i == 0 else f"file{i}"
        parts.append((field_name, (filename, content)))
    return parts


def _event_data(data: Any) -> str:
    if isinstance(data, str):
        return data
    return json.dumps(data, separators=(",", ":"))


@dataclass(slots=True)
class SparkCloud:
    """
    Main interface to the Spark Cloud.
    Provides synchronous and asynchronous access to devices, firmware and events.
    """
    access_token: str | None = None
    base_url: str = DEFAULT_BASE_URL
    timeout_s: float = 120.0
    strict_streams: bool = False
    max_buffered_lines: int = DEFAULT_MAX_BUFFERED_LINES

    _http: SparkHttpClient = field(init=False, repr=False)

    def __post_init__(self) -> None:
        auth = AuthConfig.from_env_or_value(self.access_token)
        self._http = SparkHttpClient(
            config=HttpConfig(base_url=self.base_url, timeout_s=self.timeout_s),
            access_token=auth.access_token,
        )

    def close(self) -> None:
        self._http.close()

    async def aclose(self) -> None:
        await self._http.aclose()

    def _map_device(self, data: dict[str, Any]) -> Device:
        return Device.model_validate(data).bind(self)

    def new_processor(self, observer: Optional[Observer] = None) -> StreamEventProcessor:
        """Create a processor for one event stream, configured like this client."""
        return StreamEventProcessor(
            observer,
            max_buffered_lines=self.max_buffered_lines,
            strict=self.strict_streams,
        )

    # Devices

    def list_devices(self) -> list[Device]:
        """
        List the devices owned by the current user.

        Returns:
            Device objects bound to this client.
        """
        data = self._http.get("/v1/devices").json()
        return [self._map_device(d) for d in data]

    def get_device(self, device_id: str) -> Device:
        """Retrieve one device, including its variables and functions."""
        return self._map_device(self.get_attributes(device_id))

    def get_attributes(self, device_id: str) -> dict[str, Any]:
        return self._http.get(f"/v1/devices/{_segment(device_id)}").json()

    def claim_device(self, device_id: str) -> dict[str, Any]:
        return self._http.post_form("/v1/devices", {"id": device_id}).json()

    def remove_device(self, device_id: str) -> dict[str, Any]:
        return self._http.delete(f"/v1/devices/{_segment(device_id)}").json()

    def rename_device(self, device_id: str, name: str) -> dict[str, Any]:
        return self._http.put_form(f"/v1/devices/{_segment(device_id)}", {"name": name}).json()

    def signal_device(self, device_id: str, signal: bool = True) -> dict[str, Any]:
        """
        Start or stop the rainbow LED signal of a device.

        Args:
            device_id: Id of the device.
            signal: True to start signaling, False to stop.
        """
        payload = {"signal": "1" if signal else "0"}
        return self._http.put_form(f"/v1/devices/{_segment(device_id)}", payload).json()

    def get_variable(self, device_id: str, name: str) -> dict[str, Any]:
        """
        Read a cloud variable exposed by the device firmware.

        Returns:
            The cloud response; the value is under ``result``.
        """
        return self._http.get(f"/v1/devices/{_segment(device_id)}/{_segment(name)}").json()

    def call_function(self, device_id: str, function_name: str, arg: str = "") -> dict[str, Any]:
        """
        Call a cloud function exposed by the device firmware.

        Returns:
            The cloud response; the function result is under ``return_value``.
        """
        path = f"/v1/devices/{_segment(device_id)}/{_segment(function_name)}"
        return self._http.post_form(path, {"args": arg}).json()

    # Firmware

    def flash_tinker(self, device_id: str) -> dict[str, Any]:
        return self._http.put_form(f"/v1/devices/{_segment(device_id)}", {"app": "tinker"}).json()

    def flash_device(self, device_id: str, files: list[FileInput]) -> dict[str, Any]:
        """
        Compile and flash source or binary files to a device over the air.

        Args:
            device_id: Id of the device to flash.
            files: Paths or ``(filename, content)`` pairs.
        """
        return self._http.put_form(
            f"/v1/devices/{_segment(device_id)}",
            files=_file_parts(files),
        ).json()

    def compile_code(self, files: list[FileInput], platform_id: int | None = None) -> dict[str, Any]:
        """Compile source files in the cloud; the response links to the binary."""
        data = {"platform_id": str(platform_id)} if platform_id is not None else None
        return self._http.post_form("/v1/binaries", data, files=_file_parts(files)).json()

    def send_public_key(self, device_id: str, key: str | bytes, filename: str = "cli") -> dict[str, Any]:
        """Register the device public key with the cloud."""
        public_key = key.decode("utf-8") if isinstance(key, bytes) else key
        payload = {
            "deviceID": device_id,
            "publicKey": public_key,
            "filename": filename,
            "order": f"manual_{int(time.time())}",
        }
        return self._http.post_form(f"/v1/provisioning/{_segment(device_id)}", payload).json()

    # Events

    def publish_event(
        self,
        name: str,
        data: Any = None,
        private: bool = True,
        ttl: int | None = None,
    ) -> dict[str, Any]:
        """
        Publish an event on behalf of the current user.

        Args:
            name: Event name.
            data: Event data; non-string values are sent as JSON.
            private: Publish to the user's private stream instead of the public one.
            ttl: Optional time to live in seconds.
        """
        payload: dict[str, Any] = {"name": name, "private": "true" if private else "false"}
        if data is not None:
            payload["data"] = _event_data(data)
        if ttl is not None:
            payload["ttl"] = str(ttl)
        return self._http.post_form("/v1/devices/events", payload).json()

    @contextmanager
    def _open_event_stream(self, event_name: str | None, device_id: str | None) -> Iterator[httpx.Response]:
        with self._http.stream_get(_event_stream_path(event_name, device_id)) as r:
            if not 200 <= r.status_code < 300:
                r.read()
                self._http.raise_for_status(r)
            yield r

    def iter_events(self, event_name: str | None = None, device_id: str | None = None) -> Iterator[EventRecord]:
        """
        Stream events from the cloud as they are published.

        Args:
            event_name: Optional event name prefix to filter on.
            device_id: A device id, ``"mine"`` for all the user's devices,
                or None for the public stream.

        Yields:
            EventRecord objects until the server closes the stream.
        """
        processor = self.new_processor()
        with self._open_event_stream(event_name, device_id) as r:
            for chunk in r.iter_bytes():
                yield from processor.feed(chunk)

    def get_event_stream(
        self,
        event_name: str | None,
        device_id: str | None,
        callback: Observer,
    ) -> None:
        """
        Listen to an event stream, invoking ``callback`` for every event.

        Blocks until the stream closes. A failing callback is logged and does
        not stop the stream; use iter_events for a lazy iterator instead.
        """
        processor = self.new_processor(callback)
        with self._open_event_stream(event_name, device_id) as r:
            for chunk in r.iter_bytes():
                processor.on_fragment(chunk)

    def on_event(self, event_name: str, callback: Observer) -> None:
        """Invoke ``callback`` for every public event named ``event_name``."""
        self.get_event_stream(event_name, None, callback)

    # Async

    async def alist_devices(self) -> list[Device]:
        response = await self._http.aget("/v1/devices")
        return [self._map_device(d) for d in response.json()]

    async def aget_device(self, device_id: str) -> Device:
        response = await self._http.aget(f"/v1/devices/{_segment(device_id)}")
        return self._map_device(response.json())

    async def arename_device(self, device_id: str, name: str) -> dict[str, Any]:
        response = await self._http.aput_form(f"/v1/devices/{_segment(device_id)}", {"name": name})
        return response.json()

    async def aremove_device(self, device_id: str) -> dict[str, Any]:
        response = await self._http.adelete(f"/v1/devices/{_segment(device_id)}")
        return response.json()

    async def aget_variable(self, device_id: str, name: str) -> dict[str, Any]:
        response = await self._http.aget(f"/v1/devices/{_segment(device_id)}/{_segment(name)}")
        return response.json()

    async def acall_function(self, device_id: str, function_name: str, arg: str = "") -> dict[str, Any]:
        path = f"/v1/devices/{_segment(device_id)}/{_segment(function_name)}"
        response = await self._http.apost_form(path, {"args": arg})
        return response.json()

    async def apublish_event(
        self,
        name: str,
        data: Any = None,
        private: bool = True,
        ttl: int | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": name, "private": "true" if private else "false"}
        if data is not None:
            payload["data"] = _event_data(data)
        if ttl is not None:
            payload["ttl"] = str(ttl)
        response = await self._http.apost_form("/v1/devices/events", payload)
        return response.json()

    @asynccontextmanager
    async def _aopen_event_stream(
        self, event_name: str | None, device_id: str | None
    ) -> AsyncIterator[httpx.Response]:
        async with self._http.astream_get(_event_stream_path(event_name, device_id)) as r:
            if not 200 <= r.status_code < 300:
                await r.aread()
                self._http.raise_for_status(r)
            yield r

    async def aiter_events(
        self, event_name: str | None = None, device_id: str | None = None
    ) -> AsyncIterator[EventRecord]:
        processor = self.new_processor()
        async with self._aopen_event_stream(event_name, device_id) as r:
            async for chunk in r.aiter_bytes():
                for record in processor.feed(chunk):
                    yield record
