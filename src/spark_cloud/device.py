from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterator, Optional

from pydantic import BaseModel, ConfigDict, PrivateAttr

from spark_cloud._sse import EventRecord

if TYPE_CHECKING:
    from spark_cloud.cloud import FileInput, SparkCloud


class Device(BaseModel):
    """
    A device registered in the Spark Cloud.

    Instances are produced by SparkCloud.list_devices / get_device and stay bound
    to that client, so the helpers below address this device without repeating its id.
    Fields the cloud returns beyond the declared ones are kept as extras.
    """
    model_config = ConfigDict(extra="allow")

    id: str
    name: Optional[str] = None
    connected: bool = False
    last_heard: Optional[str] = None
    last_app: Optional[str] = None
    platform_id: Optional[int] = None
    variables: Optional[dict[str, Any]] = None
    functions: Optional[list[str]] = None

    _cloud: Any = PrivateAttr(default=None)

    def bind(self, cloud: SparkCloud) -> Device:
        self._cloud = cloud
        return self

    @property
    def cloud(self) -> SparkCloud:
        if self._cloud is None:
            raise RuntimeError(f"Device {self.id} is not bound to a SparkCloud client")
        return self._cloud

    def refresh(self) -> Device:
        """Fetch the device again, including its variables and functions."""
        return self.cloud.get_device(self.id)

    def get_variable(self, name: str) -> dict[str, Any]:
        return self.cloud.get_variable(self.id, name)

    def call_function(self, function_name: str, arg: str = "") -> dict[str, Any]:
        return self.cloud.call_function(self.id, function_name, arg)

    def rename(self, name: str) -> dict[str, Any]:
        result = self.cloud.rename_device(self.id, name)
        self.name = name
        return result

    def signal(self, signal: bool = True) -> dict[str, Any]:
        return self.cloud.signal_device(self.id, signal)

    def flash(self, files: list[FileInput]) -> dict[str, Any]:
        return self.cloud.flash_device(self.id, files)

    def flash_tinker(self) -> dict[str, Any]:
        return self.cloud.flash_tinker(self.id)

    def remove(self) -> dict[str, Any]:
        return self.cloud.remove_device(self.id)

    def iter_events(self, event_name: str | None = None) -> Iterator[EventRecord]:
        return self.cloud.iter_events(event_name, self.id)
