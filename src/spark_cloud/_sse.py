"""
Incremental parser for the Server-Sent Events (SSE) stream of the Spark Cloud.

The transport hands over fragments split at arbitrary offsets. The processor
rebuilds complete lines, groups them into records terminated by a ``data:``
line and emits one EventRecord per record.
"""

from __future__ import annotations

import codecs
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterable, AsyncIterator, Callable, Iterable, Iterator, Protocol, Union

from spark_cloud._errors import UnsupportedSourceError

logger = logging.getLogger(__name__)

EVENT_PREFIX = "event:"
DATA_PREFIX = "data:"
COMMENT_PREFIX = ":"

DEFAULT_MAX_BUFFERED_LINES = 256
DEFAULT_MAX_LINE_CHARS = 1_048_576

Fragment = Union[str, bytes, bytearray]


@dataclass(frozen=True, slots=True)
class EventRecord:
    """
    A single event published to the cloud.

    ``name`` comes from the last ``event:`` line preceding the ``data:`` line.
    ``payload`` holds the JSON object carried by the ``data:`` line, minus any
    ``name`` key of its own.
    """

    name: str | None
    payload: dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, key: str) -> Any:
        if key == "name":
            return self.name
        return self.payload[key]

    def __contains__(self, key: object) -> bool:
        return key == "name" or key in self.payload

    def get(self, key: str, default: Any = None) -> Any:
        if key == "name":
            return self.name
        return self.payload.get(key, default)

    def to_dict(self) -> dict[str, Any]:
        out = dict(self.payload)
        out["name"] = self.name
        return out

    @property
    def data(self) -> Any:
        return self.payload.get("data")

    @property
    def device_id(self) -> str | None:
        return self.payload.get("coreid")

    @property
    def published_at(self) -> str | None:
        return self.payload.get("published_at")

    @property
    def ttl(self) -> Any:
        return self.payload.get("ttl")


Observer = Callable[[EventRecord], None]
FragmentHandler = Callable[[Fragment], None]


class Emitter(Protocol):
    def on(self, event: str, handler: Callable[..., Any]) -> Any: ...


class EventEmitterSource:
    """Source backed by an emitter that pushes new chunks through ``on(event, handler)``."""

    def __init__(self, emitter: Emitter, event: str = "data") -> None:
        self.emitter = emitter
        self.event = event

    def attach(self, handler: FragmentHandler) -> None:
        self.emitter.on(self.event, handler)


class PollableSource:
    """
    Source backed by a response buffer that only ever grows.

    The transport calls ``notify()`` whenever the buffer may have changed; only
    the text appended since the previous notification is fed to the handler.
    """

    def __init__(self, read_text: Callable[[], str]) -> None:
        self.read_text = read_text
        self.offset = 0
        self._handler: FragmentHandler | None = None

    def attach(self, handler: FragmentHandler) -> None:
        self._handler = handler

    def notify(self) -> None:
        if self._handler is None:
            return
        text = self.read_text()
        suffix = text[self.offset:]
        self.offset = len(text)
        if suffix:
            self._handler(suffix)


FragmentSource = Union[EventEmitterSource, PollableSource]


def _decode_object(payload: str) -> dict[str, Any] | None:
    try:
        obj = json.loads(payload)
    except ValueError:
        return None
    return obj if isinstance(obj, dict) else None


class StreamEventProcessor:
    """
    Turns a sequence of raw fragments into EventRecords, preserving arrival order.

    One processor serves one stream: the pending lines, the partial-line carry
    and the byte decoder are all per-stream state.
    """

    def __init__(
        self,
        observer: Observer | None = None,
        *,
        max_buffered_lines: int = DEFAULT_MAX_BUFFERED_LINES,
        max_line_chars: int = DEFAULT_MAX_LINE_CHARS,
        strict: bool = False,
    ) -> None:
        self.observer = observer
        self.max_buffered_lines = max_buffered_lines
        self.max_line_chars = max_line_chars
        self.strict = strict

        self._lines: list[str] = []
        self._carry = ""
        # Set when an oversized partial line was dropped; the rest of it is skipped.
        self._skip_line = False
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @property
    def pending_lines(self) -> list[str]:
        return list(self._lines)

    def reset(self) -> None:
        self._lines = []
        self._carry = ""
        self._skip_line = False
        self._decoder.reset()

    def watch(self, source: FragmentSource, observer: Observer) -> None:
        """Register ``observer`` and start receiving fragments from ``source``."""
        if not isinstance(source, (EventEmitterSource, PollableSource)):
            if self.strict:
                raise UnsupportedSourceError(
                    f"Cannot stream events from {type(source).__name__}; "
                    "wrap it in EventEmitterSource or PollableSource"
                )
            logger.error("event stream couldn't stream: unsupported source %r", type(source).__name__)
            return

        self.observer = observer
        source.attach(self.on_fragment)

    def on_fragment(self, fragment: Fragment) -> None:
        for record in self.feed(fragment):
            if self.observer is None:
                continue
            try:
                self.observer(record)
            except Exception:
                logger.exception("Event observer failed on record %r", record.name)

    def feed(self, fragment: Fragment) -> list[EventRecord]:
        """Process one fragment and return the records it completed."""
        if isinstance(fragment, (bytes, bytearray)):
            text = self._decoder.decode(bytes(fragment))
        else:
            text = fragment

        records: list[EventRecord] = []
        if not text:
            return records

        if self._skip_line:
            newline = text.find("\n")
            if newline == -1:
                return records
            text = text[newline + 1:]
            self._skip_line = False

        segments = (self._carry + text).split("\n")
        self._carry = segments.pop()

        for raw_line in segments:
            self._accept_line(raw_line, records)

        self._check_carry()
        return records

    def _check_carry(self) -> None:
        # A partial line is only processed once its newline arrives.
        if len(self._carry) > self.max_line_chars:
            logger.warning(
                "Dropping partial SSE line longer than %s chars", self.max_line_chars
            )
            self._carry = ""
            self._skip_line = True

    def _accept_line(self, raw_line: str, records: list[EventRecord]) -> None:
        line = raw_line.strip()
        if not line or line.startswith(COMMENT_PREFIX):
            return

        self._lines.append(line)

        if line.startswith(DATA_PREFIX):
            record = self._complete_record(self._lines)
            self._lines = []
            if record is not None:
                records.append(record)
            return

        if len(self._lines) > self.max_buffered_lines:
            logger.warning(
                "No data line after %s buffered SSE lines; discarding them", len(self._lines)
            )
            self._lines = []

    @staticmethod
    def _complete_record(lines: list[str]) -> EventRecord | None:
        name: str | None = None
        for line in lines:
            if line.startswith(EVENT_PREFIX):
                name = line[len(EVENT_PREFIX):].strip()
            elif line.startswith(DATA_PREFIX):
                raw = line[len(DATA_PREFIX):]
                payload = _decode_object(raw)
                if payload is None:
                    logger.warning("Skipping SSE record %r with malformed data: %.200s", name, raw)
                    return None
                payload.pop("name", None)
                return EventRecord(name=name, payload=payload)
        return None


def iter_event_records(
    chunks: Iterable[Fragment],
    processor: StreamEventProcessor | None = None,
) -> Iterator[EventRecord]:
    """
    Lazily parse EventRecords from an iterable of fragments.

    Args:
        chunks: Raw text or byte fragments, e.g. ``httpx.Response.iter_bytes()``.
        processor: Optional processor carrying custom limits or prior state.

    Yields:
        EventRecord objects in arrival order.
    """
    proc = processor or StreamEventProcessor()
    for chunk in chunks:
        yield from proc.feed(chunk)


async def aiter_event_records(
    chunks: AsyncIterable[Fragment],
    processor: StreamEventProcessor | None = None,
) -> AsyncIterator[EventRecord]:
    proc = processor or StreamEventProcessor()
    async for chunk in chunks:
        for record in proc.feed(chunk):
            yield record
