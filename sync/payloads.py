"""
Pydantic models of the remote status page protocol.

    GET {base}/api/status-page/{slug}
        {config: {published}, publicGroupList: [{monitorList: [...]}],
         heartbeatList?: {monitorId: [...]}}

    GET {base}/api/status-page/heartbeat/{slug}
        {heartbeatList: {monitorId: [{status, time, msg, ping, important, duration}]}}

Unknown fields are ignored. Fields are parsed leniently since status page
versions differ in what they emit.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RemoteModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class RemoteMonitor(RemoteModel):
    """One entry of a group's ``monitorList``."""

    id: int
    name: Optional[str] = None
    url: Optional[str] = None
    type: Optional[str] = None
    interval: Optional[int] = None
    active: Optional[bool] = None

    @field_validator("url", "type", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator("interval", mode="before")
    @classmethod
    def lenient_interval(cls, v: Any) -> Any:
        if v in (None, ""):
            return None
        try:
            return int(float(v))
        except (TypeError, ValueError):
            return None

    @property
    def display_name(self) -> str:
        return self.name or f"Monitor {self.id}"


class RemoteGroup(RemoteModel):
    name: Optional[str] = None
    monitor_list: List[RemoteMonitor] = Field(default_factory=list, alias="monitorList")

    @field_validator("monitor_list", mode="before")
    @classmethod
    def null_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class StatusPageConfig(RemoteModel):
    slug: Optional[str] = None
    title: Optional[str] = None
    published: bool = False

    @field_validator("published", mode="before")
    @classmethod
    def lenient_published(cls, v: Any) -> bool:
        if isinstance(v, str):
            return v.strip().lower() in ("1", "true", "yes")
        return bool(v)


class RemoteHeartbeat(RemoteModel):
    """One heartbeat as emitted by the remote status page."""

    status: Any = None
    time: Any = None
    msg: Optional[str] = None
    ping: Optional[float] = None
    important: bool = False
    duration: Optional[int] = None

    @field_validator("msg", mode="before")
    @classmethod
    def stringify_msg(cls, v: Any) -> Any:
        return None if v is None else str(v)

    @field_validator("ping", mode="before")
    @classmethod
    def lenient_ping(cls, v: Any) -> Any:
        if v in (None, ""):
            return None
        try:
            return float(v)
        except (TypeError, ValueError):
            return None

    @field_validator("important", mode="before")
    @classmethod
    def lenient_important(cls, v: Any) -> bool:
        return bool(v)

    @field_validator("duration", mode="before")
    @classmethod
    def lenient_duration(cls, v: Any) -> Any:
        if v in (None, ""):
            return None
        try:
            return int(float(v))
        except (TypeError, ValueError):
            return None


class StatusPagePayload(RemoteModel):
    """Body of the status page endpoint."""

    config: StatusPageConfig = Field(default_factory=StatusPageConfig)
    public_group_list: List[RemoteGroup] = Field(default_factory=list, alias="publicGroupList")
    heartbeat_list: Optional[Dict[str, List[RemoteHeartbeat]]] = Field(default=None, alias="heartbeatList")

    @field_validator("config", mode="before")
    @classmethod
    def null_config(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("public_group_list", mode="before")
    @classmethod
    def null_groups(cls, v: Any) -> Any:
        return [] if v is None else v

    @property
    def published(self) -> bool:
        return self.config.published

    def monitors(self) -> List[RemoteMonitor]:
        """Monitors of every group, or none when the page is unpublished."""
        if not self.published:
            return []
        return [monitor for group in self.public_group_list for monitor in group.monitor_list]


class HeartbeatPayload(RemoteModel):
    """Body of the heartbeat endpoint."""

    heartbeat_list: Dict[str, List[RemoteHeartbeat]] = Field(default_factory=dict, alias="heartbeatList")

    @field_validator("heartbeat_list", mode="before")
    @classmethod
    def null_map(cls, v: Any) -> Any:
        return {} if v is None else v

    def to_cache(self) -> Dict[str, List[Dict[str, Any]]]:
        """JSON-safe heartbeat map as stored in the heartbeat cache."""
        return {
            monitor_id: [beat.model_dump(mode="json") for beat in beats]
            for monitor_id, beats in self.heartbeat_list.items()
        }
