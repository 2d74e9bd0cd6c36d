"""
Value types shared by the sync engine, the scheduler and the API.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from config.constants import SyncRunStatus
from utils.helpers import TimeHelper


class SyncOptions(BaseModel):
    """
    Options of a single sync run.

    ``incremental`` is consumed by sync strategies only and does not
    change engine behaviour.
    """

    model_config = ConfigDict(extra="ignore")

    incremental: bool = False
    include_heartbeats: bool = True
    timeout_ms: int = Field(default=30000, ge=1, description="Deadline of each remote request")
    max_retries: int = Field(default=3, ge=1, description="Attempts of the whole fetch and reconcile sequence")


@dataclass
class ReconcileCounts:
    monitors_updated: int = 0
    heartbeats_fetched: int = 0


@dataclass
class SyncResult:
    """Outcome of one sync run. Failures are reported here, never raised."""

    source_id: int
    success: bool
    monitors_updated: int = 0
    heartbeats_fetched: int = 0
    error: Optional[str] = None
    duration_ms: int = 0
    timestamp: datetime = field(default_factory=TimeHelper.utc_now)
    run_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "success": self.success,
            "monitors_updated": self.monitors_updated,
            "heartbeats_fetched": self.heartbeats_fetched,
            "error": self.error,
            "duration_ms": self.duration_ms,
            "timestamp": TimeHelper.to_iso(self.timestamp),
            "run_id": self.run_id,
        }


@dataclass
class SyncProgress:
    """Progress event published to engine subscribers."""

    source_id: int
    run_id: str
    status: SyncRunStatus
    current_step: str
    error: Optional[str] = None

    @property
    def progress(self) -> int:
        return self.status.progress

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "run_id": self.run_id,
            "status": self.status.value,
            "progress": self.progress,
            "current_step": self.current_step,
            "error": self.error,
        }
