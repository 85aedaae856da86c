"""Persisted video usage rows: the authoritative record of video spend."""

from __future__ import annotations

import json
import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, Field

from cadence.config import get_settings
from cadence.db import connect

logger = logging.getLogger(__name__)


class VideoUsageRecord(BaseModel):
    id: str = Field(default_factory=lambda: f"vu_{uuid.uuid4().hex[:16]}")
    brand_id: str
    content_id: str | None = None
    media_path: str | None = None
    model: str
    duration_seconds: int
    has_audio: bool = False
    cost_usd: float
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class VideoUsageStore(Protocol):
    def record(self, usage: VideoUsageRecord) -> VideoUsageRecord: ...
    def list_since(self, brand_id: str, since: datetime) -> list[VideoUsageRecord]: ...
    def sum_cost_since(self, brand_id: str, since: datetime) -> float: ...
    def count_since(self, brand_id: str, since: datetime) -> int: ...
    def recent(self, brand_id: str, limit: int = 10) -> list[VideoUsageRecord]: ...


_COLUMNS = "id, brand_id, content_id, media_path, model, duration_seconds, has_audio, cost_usd, created_at"


class PostgresVideoUsageStore:
    def __init__(self, database_url: str):
        self._conn = connect(
            database_url,
            """
            CREATE TABLE IF NOT EXISTS video_usage (
                id TEXT PRIMARY KEY,
                brand_id TEXT NOT NULL,
                content_id TEXT,
                media_path TEXT,
                model TEXT NOT NULL,
                duration_seconds INT NOT NULL,
                has_audio BOOLEAN NOT NULL DEFAULT FALSE,
                cost_usd DOUBLE PRECISION NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
            """,
            """
            CREATE INDEX IF NOT EXISTS idx_video_usage_brand_created
            ON video_usage (brand_id, created_at DESC)
            """,
        )

    def record(self, usage: VideoUsageRecord) -> VideoUsageRecord:
        self._conn.execute(
            f"INSERT INTO video_usage ({_COLUMNS}) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)",
            (
                usage.id,
                usage.brand_id,
                usage.content_id,
                usage.media_path,
                usage.model,
                usage.duration_seconds,
                usage.has_audio,
                usage.cost_usd,
                usage.created_at,
            ),
        )
        return usage

    def list_since(self, brand_id: str, since: datetime) -> list[VideoUsageRecord]:
        rows = self._conn.execute(
            f"""
            SELECT {_COLUMNS} FROM video_usage
            WHERE brand_id = %s AND created_at >= %s ORDER BY created_at DESC
            """,
            (brand_id, since),
        ).fetchall()
        return [self._row_to_record(r) for r in rows]

    def sum_cost_since(self, brand_id: str, since: datetime) -> float:
        row = self._conn.execute(
            "SELECT COALESCE(SUM(cost_usd), 0) FROM video_usage WHERE brand_id = %s AND created_at >= %s",
            (brand_id, since),
        ).fetchone()
        return float(row[0])

    def count_since(self, brand_id: str, since: datetime) -> int:
        row = self._conn.execute(
            "SELECT COUNT(*) FROM video_usage WHERE brand_id = %s AND created_at >= %s",
            (brand_id, since),
        ).fetchone()
        return int(row[0])

    def recent(self, brand_id: str, limit: int = 10) -> list[VideoUsageRecord]:
        rows = self._conn.execute(
            f"SELECT {_COLUMNS} FROM video_usage WHERE brand_id = %s ORDER BY created_at DESC LIMIT %s",
            (brand_id, limit),
        ).fetchall()
        return [self._row_to_record(r) for r in rows]

    def _row_to_record(self, row) -> VideoUsageRecord:
        return VideoUsageRecord(
            id=row[0],
            brand_id=row[1],
            content_id=row[2],
            media_path=row[3],
            model=row[4],
            duration_seconds=row[5],
            has_audio=row[6],
            cost_usd=row[7],
            created_at=row[8],
        )


class FileVideoUsageStore:
    """Append-only JSON list of usage rows."""

    def __init__(self, data_dir: Path):
        self._path = Path(data_dir) / "video_usage.json"

    def _load(self) -> list[VideoUsageRecord]:
        if not self._path.exists():
            return []
        with open(self._path, "r", encoding="utf-8") as f:
            return [VideoUsageRecord.model_validate(r) for r in json.load(f)]

    def record(self, usage: VideoUsageRecord) -> VideoUsageRecord:
        rows = self._load()
        rows.append(usage)
        tmp = self._path.with_suffix(".json.tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump([r.model_dump(mode="json") for r in rows], f, indent=2)
        os.replace(tmp, self._path)
        return usage

    def list_since(self, brand_id: str, since: datetime) -> list[VideoUsageRecord]:
        rows = [r for r in self._load() if r.brand_id == brand_id and r.created_at >= since]
        return sorted(rows, key=lambda r: r.created_at, reverse=True)

    def sum_cost_since(self, brand_id: str, since: datetime) -> float:
        return sum(r.cost_usd for r in self.list_since(brand_id, since))

    def count_since(self, brand_id: str, since: datetime) -> int:
        return len(self.list_since(brand_id, since))

    def recent(self, brand_id: str, limit: int = 10) -> list[VideoUsageRecord]:
        rows = sorted(
            (r for r in self._load() if r.brand_id == brand_id),
            key=lambda r: r.created_at,
            reverse=True,
        )
        return rows[:limit]


_store: VideoUsageStore | None = None


def get_video_usage_store() -> VideoUsageStore:
    """Return singleton usage store (Postgres if configured, else file-based)."""
    global _store
    if _store is None:
        settings = get_settings()
        _store = build_video_usage_store(settings.cadence_database_url, settings.data_dir)
    return _store


def build_video_usage_store(database_url: str | None, data_dir: Path) -> VideoUsageStore:
    if database_url:
        try:
            return PostgresVideoUsageStore(database_url)
        except Exception as e:
            logger.warning("Postgres video usage store failed (%s), falling back to file store", e)
    return FileVideoUsageStore(data_dir)
