"""Generation job storage: Postgres (preferred) or a file-based fallback."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Iterable, Protocol

from cadence.config import get_settings
from cadence.db import as_json, connect
from cadence.jobs.models import GenerationJob, JobStatus, is_plain_id, job_record, parse_job

logger = logging.getLogger(__name__)


class JobStore(Protocol):
    def create(self, job: GenerationJob) -> GenerationJob: ...
    def get(self, job_id: str) -> GenerationJob | None: ...
    def list_by_content(
        self, content_id: str, statuses: Iterable[JobStatus] | None = None
    ) -> list[GenerationJob]: ...
    def list_by_status(self, statuses: Iterable[JobStatus]) -> list[GenerationJob]: ...
    def update(self, job: GenerationJob) -> None: ...
    def delete(self, job_id: str) -> bool: ...
    def delete_by_content(self, content_id: str, statuses: Iterable[JobStatus]) -> int: ...


def _status_values(statuses: Iterable[JobStatus]) -> list[str]:
    return [JobStatus(s).value for s in statuses]


def _newest_first(jobs: list[GenerationJob]) -> list[GenerationJob]:
    return sorted(jobs, key=lambda j: j.created_at, reverse=True)


# ---------------------------------------------------------------------------
# Postgres implementation
# ---------------------------------------------------------------------------

_COLUMNS = (
    "id, content_id, type, status, progress, total_items, completed_items, current_step, "
    "error_message, error_code, error_details, metadata, lease_expires_at, created_at, updated_at"
)


class PostgresJobStore:
    """Persist jobs in Postgres. Survives restarts."""

    def __init__(self, database_url: str):
        self._conn = connect(
            database_url,
            """
            CREATE TABLE IF NOT EXISTS generation_jobs (
                id TEXT PRIMARY KEY,
                content_id TEXT NOT NULL,
                type TEXT NOT NULL,
                status TEXT NOT NULL,
                progress INT NOT NULL DEFAULT 0,
                total_items INT NOT NULL DEFAULT 1,
                completed_items INT NOT NULL DEFAULT 0,
                current_step TEXT,
                error_message TEXT,
                error_code TEXT,
                error_details JSONB,
                metadata JSONB NOT NULL DEFAULT '{}',
                lease_expires_at TIMESTAMPTZ,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
            """,
            """
            CREATE INDEX IF NOT EXISTS idx_generation_jobs_content
            ON generation_jobs (content_id, created_at DESC)
            """,
            """
            CREATE INDEX IF NOT EXISTS idx_generation_jobs_status
            ON generation_jobs (status)
            """,
        )

    def _params(self, job: GenerationJob) -> dict:
        record = job_record(job)
        return {
            "id": job.id,
            "content_id": job.content_id,
            "type": record["type"],
            "status": record["status"],
            "progress": job.progress,
            "total_items": job.total_items,
            "completed_items": job.completed_items,
            "current_step": job.current_step,
            "error_message": record["error_message"],
            "error_code": record["error_code"],
            "error_details": json.dumps(record["error_details"]) if record["error_details"] is not None else None,
            "metadata": json.dumps(job.metadata),
            "lease_expires_at": job.lease_expires_at,
            "created_at": job.created_at,
            "updated_at": job.updated_at,
        }

    def create(self, job: GenerationJob) -> GenerationJob:
        self._conn.execute(
            f"""
            INSERT INTO generation_jobs ({_COLUMNS})
            VALUES (%(id)s, %(content_id)s, %(type)s, %(status)s, %(progress)s, %(total_items)s,
                    %(completed_items)s, %(current_step)s, %(error_message)s, %(error_code)s,
                    %(error_details)s::jsonb, %(metadata)s::jsonb, %(lease_expires_at)s,
                    %(created_at)s, %(updated_at)s)
            """,
            self._params(job),
        )
        return job

    def get(self, job_id: str) -> GenerationJob | None:
        row = self._conn.execute(
            f"SELECT {_COLUMNS} FROM generation_jobs WHERE id = %s",
            (job_id,),
        ).fetchone()
        return self._row_to_job(row) if row else None

    def list_by_content(
        self, content_id: str, statuses: Iterable[JobStatus] | None = None
    ) -> list[GenerationJob]:
        if statuses is None:
            rows = self._conn.execute(
                f"SELECT {_COLUMNS} FROM generation_jobs WHERE content_id = %s ORDER BY created_at DESC",
                (content_id,),
            ).fetchall()
        else:
            rows = self._conn.execute(
                f"""
                SELECT {_COLUMNS} FROM generation_jobs
                WHERE content_id = %s AND status = ANY(%s)
                ORDER BY created_at DESC
                """,
                (content_id, _status_values(statuses)),
            ).fetchall()
        return [self._row_to_job(r) for r in rows]

    def list_by_status(self, statuses: Iterable[JobStatus]) -> list[GenerationJob]:
        rows = self._conn.execute(
            f"SELECT {_COLUMNS} FROM generation_jobs WHERE status = ANY(%s) ORDER BY created_at DESC",
            (_status_values(statuses),),
        ).fetchall()
        return [self._row_to_job(r) for r in rows]

    def update(self, job: GenerationJob) -> None:
        self._conn.execute(
            """
            UPDATE generation_jobs SET
                status = %(status)s, progress = %(progress)s, completed_items = %(completed_items)s,
                current_step = %(current_step)s, error_message = %(error_message)s,
                error_code = %(error_code)s, error_details = %(error_details)s::jsonb,
                metadata = %(metadata)s::jsonb, lease_expires_at = %(lease_expires_at)s,
                updated_at = %(updated_at)s
            WHERE id = %(id)s
            """,
            self._params(job),
        )

    def delete(self, job_id: str) -> bool:
        cur = self._conn.execute("DELETE FROM generation_jobs WHERE id = %s", (job_id,))
        return cur.rowcount > 0

    def delete_by_content(self, content_id: str, statuses: Iterable[JobStatus]) -> int:
        cur = self._conn.execute(
            "DELETE FROM generation_jobs WHERE content_id = %s AND status = ANY(%s)",
            (content_id, _status_values(statuses)),
        )
        return cur.rowcount

    def _row_to_job(self, row) -> GenerationJob:
        return parse_job(
            {
                "id": row[0],
                "content_id": row[1],
                "type": row[2],
                "status": row[3],
                "progress": row[4],
                "total_items": row[5],
                "completed_items": row[6],
                "current_step": row[7],
                "error_message": row[8],
                "error_code": row[9],
                "error_details": as_json(row[10]),
                "metadata": as_json(row[11]) or {},
                "lease_expires_at": row[12],
                "created_at": row[13],
                "updated_at": row[14],
            }
        )


# ---------------------------------------------------------------------------
# File-based implementation (fallback when no Postgres)
# ---------------------------------------------------------------------------

class FileJobStore:
    """Persist jobs as one JSON file each. Survives restarts within same data dir."""

    def __init__(self, data_dir: Path):
        self._dir = Path(data_dir) / "jobs"
        self._dir.mkdir(parents=True, exist_ok=True)

    def _job_path(self, job_id: str) -> Path | None:
        if not is_plain_id(job_id):
            return None
        return self._dir / f"{job_id}.json"

    def create(self, job: GenerationJob) -> GenerationJob:
        self._write_job(job)
        return job

    def get(self, job_id: str) -> GenerationJob | None:
        path = self._job_path(job_id)
        if path is None or not path.exists():
            return None
        return self._read_job(path)

    def list_by_content(
        self, content_id: str, statuses: Iterable[JobStatus] | None = None
    ) -> list[GenerationJob]:
        wanted = set(_status_values(statuses)) if statuses is not None else None
        jobs = [
            job
            for job in self._all()
            if job.content_id == content_id and (wanted is None or job.status in wanted)
        ]
        return _newest_first(jobs)

    def list_by_status(self, statuses: Iterable[JobStatus]) -> list[GenerationJob]:
        wanted = set(_status_values(statuses))
        return _newest_first([job for job in self._all() if job.status in wanted])

    def update(self, job: GenerationJob) -> None:
        self._write_job(job)

    def delete(self, job_id: str) -> bool:
        path = self._job_path(job_id)
        if path is None or not path.exists():
            return False
        path.unlink()
        return True

    def delete_by_content(self, content_id: str, statuses: Iterable[JobStatus]) -> int:
        doomed = self.list_by_content(content_id, statuses)
        return sum(1 for job in doomed if self.delete(job.id))

    def _all(self) -> list[GenerationJob]:
        jobs = []
        for path in self._dir.glob("*.json"):
            try:
                jobs.append(self._read_job(path))
            except FileNotFoundError:
                # deleted between glob and read
                continue
        return jobs

    def _write_job(self, job: GenerationJob) -> None:
        path = self._job_path(job.id)
        if path is None:
            raise ValueError(f"Job id is not a plain token: {job.id!r}")
        tmp = path.with_suffix(".json.tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(job_record(job), f, indent=2)
        os.replace(tmp, path)

    def _read_job(self, path: Path) -> GenerationJob:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return parse_job(data)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_store: JobStore | None = None


def get_job_store() -> JobStore:
    """Return singleton job store (Postgres if configured, else file-based)."""
    global _store
    if _store is not None:
        return _store
    settings = get_settings()
    _store = build_job_store(settings.cadence_database_url, settings.data_dir)
    return _store


def build_job_store(database_url: str | None, data_dir: Path) -> JobStore:
    if database_url:
        try:
            store = PostgresJobStore(database_url)
            logger.info("Using Postgres job store")
            return store
        except Exception as e:
            logger.warning("Postgres job store failed (%s), falling back to file store", e)
    logger.info("Using file-based job store (%s)", Path(data_dir) / "jobs")
    return FileJobStore(data_dir)
