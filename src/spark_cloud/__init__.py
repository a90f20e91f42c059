from __future__ import annotations

from spark_cloud.cloud import SparkCloud
from spark_cloud.device import Device
from spark_cloud._errors import SparkAPIError, SparkError, UnsupportedSourceError
from spark_cloud._sse import (
    EventEmitterSource,
    EventRecord,
    PollableSource,
    StreamEventProcessor,
    aiter_event_records,
    iter_event_records,
)

__all__ = [
    "Device",
    "EventEmitterSource",
    "EventRecord",
    "PollableSource",
    "SparkAPIError",
    "SparkCloud",
    "SparkError",
    "StreamEventProcessor",
    "UnsupportedSourceError",
    "aiter_event_records",
    "iter_event_records",
]

__version__ = "0.1.0"
