"""
============================================================================
KUMASYNC - DATABASE MODELS
============================================================================
SQLAlchemy ORM models for sources, monitors, heartbeats, sync bookkeeping,
the persistent cache and the settings key-value store.

All datetimes are stored naive and expressed in UTC.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

from typing import Any, Dict

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text,
    Float, ForeignKey, Index, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

from utils.helpers import TimeHelper


# ============================================================================
# BASE MODEL CONFIGURATION
# ============================================================================

Base = declarative_base()


class TimestampMixin:
    """
    Mixin to add created_at and updated_at timestamps to models.
    """
    created_at = Column(
        DateTime,
        nullable=False,
        default=TimeHelper.utc_now,
    )
    updated_at = Column(
        DateTime,
        nullable=False,
        default=TimeHelper.utc_now,
        onupdate=TimeHelper.utc_now,
    )


# ============================================================================
# SOURCE MODEL
# ============================================================================

class Source(Base, TimestampMixin):
    """
    A remote status page instance: base URL plus status page slug.
    """
    __tablename__ = "sources"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    url = Column(String(2048), nullable=False)
    slug = Column(String(255), nullable=False)

    __table_args__ = (
        UniqueConstraint("url", "slug", name="uq_source_url_slug"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert source to dictionary"""
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "slug": self.slug,
            "created_at": TimeHelper.to_iso(self.created_at),
            "updated_at": TimeHelper.to_iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<Source(id={self.id}, name={self.name!r}, url={self.url!r}, slug={self.slug!r})>"


# ============================================================================
# MONITOR MODEL
# ============================================================================

class Monitor(Base, TimestampMixin):
    """
    A monitor defined by a source. Monitor ids are only unique per source.
    """
    __tablename__ = "monitors"

    id = Column(Integer, primary_key=True, autoincrement=False)
    source_id = Column(
        Integer,
        ForeignKey("sources.id", ondelete="CASCADE"),
        primary_key=True,
        autoincrement=False,
    )
    name = Column(String(255), nullable=False)
    url = Column(Text, nullable=True)
    type = Column(String(64), nullable=True)
    interval = Column(Integer, nullable=True)

    __table_args__ = (
        Index("idx_monitor_source", "source_id"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert monitor to dictionary"""
        return {
            "id": self.id,
            "source_id": self.source_id,
            "name": self.name,
            "url": self.url,
            "type": self.type,
            "interval": self.interval,
            "created_at": TimeHelper.to_iso(self.created_at),
            "updated_at": TimeHelper.to_iso(self.updated_at),
        }


# ============================================================================
# HEARTBEAT MODEL
# ============================================================================

class Heartbeat(Base):
    """
    One check result of a monitor. Rows are append-only; a second row with
    the same (monitor, source, timestamp) is ignored on insert.
    """
    __tablename__ = "heartbeats"

    monitor_id = Column(Integer, primary_key=True, autoincrement=False)
    source_id = Column(
        Integer,
        ForeignKey("sources.id", ondelete="CASCADE"),
        primary_key=True,
        autoincrement=False,
    )
    timestamp = Column(DateTime, primary_key=True)

    status = Column(Integer, nullable=False)
    ping = Column(Float, nullable=True)
    msg = Column(Text, nullable=True)
    important = Column(Boolean, nullable=False, default=False)
    duration = Column(Integer, nullable=True)

    created_at = Column(DateTime, nullable=False, default=TimeHelper.utc_now)

    __table_args__ = (
        Index("idx_heartbeat_monitor_time", "source_id", "monitor_id", "timestamp"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert heartbeat to dictionary"""
        return {
            "monitor_id": self.monitor_id,
            "source_id": self.source_id,
            "status": self.status,
            "ping": self.ping,
            "msg": self.msg,
            "important": self.important,
            "duration": self.duration,
            "timestamp": TimeHelper.to_iso(self.timestamp),
        }


# ============================================================================
# SYNC HISTORY MODEL
# ============================================================================

class SyncHistory(Base):
    """
    One sync run of one source. Inserted as pending when the run starts
    and finalized as completed or failed when it ends.
    """
    __tablename__ = "sync_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    source_id = Column(
        Integer,
        ForeignKey("sources.id", ondelete="CASCADE"),
        nullable=False,
    )
    run_id = Column(String(64), nullable=False, unique=True)
    status = Column(String(32), nullable=False)
    monitors_updated = Column(Integer, nullable=False, default=0)
    heartbeats_fetched = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    started_at = Column(DateTime, nullable=False, default=TimeHelper.utc_now)
    completed_at = Column(DateTime, nullable=True)
    duration_ms = Column(Integer, nullable=True)

    __table_args__ = (
        Index("idx_sync_history_source_started", "source_id", "started_at"),
        Index("idx_sync_history_started", "started_at"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert sync run to dictionary"""
        return {
            "id": self.id,
            "source_id": self.source_id,
            "run_id": self.run_id,
            "status": self.status,
            "monitors_updated": self.monitors_updated,
            "heartbeats_fetched": self.heartbeats_fetched,
            "error_message": self.error_message,
            "started_at": TimeHelper.to_iso(self.started_at),
            "completed_at": TimeHelper.to_iso(self.completed_at),
            "duration_ms": self.duration_ms,
        }


# ============================================================================
# SYNC METRICS MODEL
# ============================================================================

class SyncMetric(Base):
    """
    One metrics sample per finished sync run.
    """
    __tablename__ = "sync_metrics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    source_id = Column(
        Integer,
        ForeignKey("sources.id", ondelete="CASCADE"),
        nullable=False,
    )
    run_id = Column(String(64), nullable=False)
    duration_ms = Column(Integer, nullable=False)
    success = Column(Boolean, nullable=False)
    monitors_updated = Column(Integer, nullable=False, default=0)
    heartbeats_fetched = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    timestamp = Column(DateTime, nullable=False, default=TimeHelper.utc_now)

    __table_args__ = (
        Index("idx_sync_metrics_timestamp", "timestamp"),
        Index("idx_sync_metrics_source_timestamp", "source_id", "timestamp"),
    )


# ============================================================================
# CACHE ENTRY MODEL
# ============================================================================

class CacheEntry(Base):
    """
    Durable layer of the persistent cache.

    ``timestamp`` is the write time and ``ttl`` the lifetime, both in
    seconds; the entry is expired once ``timestamp + ttl < now``.
    """
    __tablename__ = "cache_entries"

    key = Column(String(512), primary_key=True)
    data = Column(Text, nullable=False)
    timestamp = Column(Float, nullable=False)
    ttl = Column(Float, nullable=False)
    created_at = Column(DateTime, nullable=False, default=TimeHelper.utc_now)


# ============================================================================
# SETTINGS MODEL
# ============================================================================

class Setting(Base):
    """
    Key-value settings store (scheduler config, auto-sync flags).
    """
    __tablename__ = "settings"

    key = Column(String(128), primary_key=True)
    value = Column(Text, nullable=True)
    updated_at = Column(
        DateTime,
        nullable=False,
        default=TimeHelper.utc_now,
        onupdate=TimeHelper.utc_now,
    )
