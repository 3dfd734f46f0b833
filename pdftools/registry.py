"""
In-Memory Registries
====================
Thread-safe repositories for file records and jobs.

Both registries hold immutable pydantic records in a dict guarded by a
``threading.Lock``. Every mutation swaps a whole record under the lock, so a
concurrent reader sees either the old record or the new one.

Instances are created by ``server.create_app`` (or a test) and passed to
their consumers.
"""

from __future__ import annotations

import logging
import threading
import uuid
from typing import Optional

from .models import FileRecord, FileStatus, Job, JobStatus, NewFile
from .state_machine import advance
from .storage import FileStorage

logger = logging.getLogger(__name__)


# ─── File Registry ────────────────────────────────────────────────────────────


class FileRegistry:
    """Authoritative store of file metadata."""

    def __init__(self, storage: FileStorage):
        self.storage = storage
        self._files: dict[str, FileRecord] = {}
        self._lock = threading.Lock()

    def create(self, new_file: NewFile) -> FileRecord:
        record = FileRecord(id=str(uuid.uuid4()), **new_file.model_dump())
        with self._lock:
            self._files[record.id] = record
        logger.debug(f"Registered file {record.id} ({record.original_name})")
        return record

    def get(self, file_id: str) -> Optional[FileRecord]:
        with self._lock:
            return self._files.get(file_id)

    def update_status(self, file_id: str, status: FileStatus) -> Optional[FileRecord]:
        with self._lock:
            record = self._files.get(file_id)
            if record is None:
                return None
            record = record.model_copy(update={"status": status})
            self._files[file_id] = record
            return record

    def delete(self, file_id: str) -> bool:
        """
        Remove a file's metadata, then its bytes.

        Metadata removal decides the result. A failure to remove the bytes is
        logged and leaves the file orphaned on disk.
        """
        with self._lock:
            record = self._files.pop(file_id, None)
        if record is None:
            return False

        try:
            self.storage.remove(record.storage_location)
        except OSError as e:
            logger.warning(
                f"Could not remove stored bytes for file {file_id} "
                f"at {record.storage_location}: {e}"
            )
        return True

    def list(self) -> list[FileRecord]:
        with self._lock:
            return list(self._files.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._files)

    def __contains__(self, file_id: str) -> bool:
        with self._lock:
            return file_id in self._files


# ─── Job Registry ─────────────────────────────────────────────────────────────


class JobRegistry:
    """Store of jobs with atomic, state-machine checked transitions."""

    def __init__(self):
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()

    def add(self, job: Job) -> Job:
        with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"Job {job.id} already exists")
            self._jobs[job.id] = job
        return job

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def claim(self, job_id: str) -> Optional[Job]:
        """
        Atomically move a pending job to processing.
        Returns None when the job is unknown or no longer pending.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status != JobStatus.PENDING:
                return None
            job = advance(job, JobStatus.PROCESSING)
            self._jobs[job_id] = job
            return job

    def transition(self, job_id: str, target: JobStatus, **updates) -> Optional[Job]:
        """
        Apply a checked transition.
        Returns None if the job was deleted meanwhile; raises
        ``InvalidTransitionError`` for illegal moves.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            job = advance(job, target, **updates)
            self._jobs[job_id] = job
            return job

    def delete(self, job_id: str) -> bool:
        with self._lock:
            return self._jobs.pop(job_id, None) is not None

    def list(self) -> list[Job]:
        with self._lock:
            return list(self._jobs.values())

    def count_active(self) -> int:
        with self._lock:
            return sum(1 for j in self._jobs.values() if not j.status.is_terminal)

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)
