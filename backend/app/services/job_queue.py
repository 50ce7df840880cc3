"""
Durable job queue.

At-least-once delivery: a job is claimed by ``pop``, and only removed from
circulation by ``ack`` or ``fail``. Jobs claimed by a consumer that died are
handed out again by ``requeue_expired``. Identical submissions are never
deduplicated.
"""

import threading
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Protocol

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from app.core.logging import get_logger
from app.models.job import QueuedJob

logger = get_logger(__name__)

IMPORT_MEDIA = "import_media"
RECALCULATE_SUMMARY = "recalculate_summary"

PENDING = "pending"
RUNNING = "running"
DONE = "done"
FAILED = "failed"


@dataclass
class Job:
    """A job handed to a consumer."""

    id: str
    name: str
    payload: dict[str, Any]
    attempts: int = 1


class JobQueue(Protocol):
    def push(self, name: str, payload: dict[str, Any]) -> str: ...

    def pop(self, worker_id: str) -> Job | None: ...

    def ack(self, job_id: str) -> None: ...

    def fail(self, job_id: str, error: str) -> None: ...

    def requeue_expired(self, older_than: timedelta, now: datetime | None = None) -> int: ...

    def pending_count(self) -> int: ...


class SqlJobQueue:
    """Job queue persisted in the ``job_queue`` table."""

    def __init__(self, db: Session):
        self.db = db

    def push(self, name: str, payload: dict[str, Any]) -> str:
        job = QueuedJob(name=name, payload=payload, status=PENDING)
        self.db.add(job)
        self.db.commit()
        logger.debug(f"Enqueued job {job.job_id} ({name})")
        return job.job_id

    def pop(self, worker_id: str) -> Job | None:
        """Claim the oldest pending job, or return None if the queue is empty."""
        row = (
            self.db.query(QueuedJob)
            .filter(QueuedJob.status == PENDING)
            .order_by(QueuedJob.id)
            .with_for_update(skip_locked=True)
            .first()
        )
        if row is None:
            # Release the (empty) transaction
            self.db.commit()
            return None

        row.status = RUNNING
        row.attempts += 1
        row.locked_at = datetime.utcnow()
        row.locked_by = worker_id
        self.db.commit()

        return Job(id=row.job_id, name=row.name, payload=dict(row.payload), attempts=row.attempts)

    def ack(self, job_id: str) -> None:
        self._finish(job_id, DONE)

    def fail(self, job_id: str, error: str) -> None:
        self._finish(job_id, FAILED, error)

    def _finish(self, job_id: str, status: str, error: str | None = None) -> None:
        self.db.execute(
            update(QueuedJob)
            .where(QueuedJob.job_id == job_id)
            .values(status=status, last_error=error, done_at=datetime.utcnow())
        )
        self.db.commit()

    def requeue_expired(self, older_than: timedelta, now: datetime | None = None) -> int:
        """Put back jobs that have been running longer than ``older_than``."""
        cutoff = (now or datetime.utcnow()) - older_than
        result = self.db.execute(
            update(QueuedJob)
            .where(QueuedJob.status == RUNNING, QueuedJob.locked_at < cutoff)
            .values(status=PENDING, locked_at=None, locked_by=None)
        )
        self.db.commit()
        if result.rowcount:
            logger.warning(f"Redelivering {result.rowcount} expired job(s)")
        return result.rowcount

    def pending_count(self) -> int:
        return (
            self.db.query(func.count(QueuedJob.id))
            .filter(QueuedJob.status == PENDING)
            .scalar()
        )


@dataclass
class _MemoryEntry:
    job: Job
    status: str = PENDING
    locked_at: datetime | None = None
    errors: list[str] = field(default_factory=list)


class InMemoryJobQueue:
    """Process-local queue with the same semantics as SqlJobQueue."""

    def __init__(self):
        self._lock = threading.Lock()
        self._pending: deque[str] = deque()
        self._entries: dict[str, _MemoryEntry] = {}

    def push(self, name: str, payload: dict[str, Any]) -> str:
        job = Job(id=str(uuid.uuid4()), name=name, payload=payload, attempts=0)
        with self._lock:
            self._entries[job.id] = _MemoryEntry(job=job)
            self._pending.append(job.id)
        return job.id

    def pop(self, worker_id: str) -> Job | None:
        with self._lock:
            if not self._pending:
                return None
            entry = self._entries[self._pending.popleft()]
            entry.status = RUNNING
            entry.locked_at = datetime.utcnow()
            entry.job.attempts += 1
            return entry.job

    def ack(self, job_id: str) -> None:
        with self._lock:
            self._entries[job_id].status = DONE

    def fail(self, job_id: str, error: str) -> None:
        with self._lock:
            entry = self._entries[job_id]
            entry.status = FAILED
            entry.errors.append(error)

    def requeue_expired(self, older_than: timedelta, now: datetime | None = None) -> int:
        cutoff = (now or datetime.utcnow()) - older_than
        count = 0
        with self._lock:
            for job_id, entry in self._entries.items():
                if entry.status == RUNNING and entry.locked_at and entry.locked_at < cutoff:
                    entry.status = PENDING
                    entry.locked_at = None
                    self._pending.append(job_id)
                    count += 1
        return count

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def jobs(self, name: str | None = None) -> list[Job]:
        """All jobs ever pushed, in submission order."""
        with self._lock:
            return [e.job for e in self._entries.values() if name is None or e.job.name == name]

    def status(self, job_id: str) -> str:
        with self._lock:
            return self._entries[job_id].status
