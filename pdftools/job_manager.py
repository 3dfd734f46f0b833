"""
Job Lifecycle Manager
=====================
Creates jobs, runs each one at most once, and records the outcome.

Lifecycle:
    create_job   → pending job stored, id queued on the worker pool
    execute      → claim (pending → processing), dispatch, register outputs
                 → completed (progress 100) or failed (progress 0)

``create_job`` raises for unknown operations and missing input files, so
no job is ever created for them. Everything after creation is reported
through the job record: ``execute`` never raises.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from .background_worker import JobWorkerPool
from .dispatcher import OperationDispatcher
from .errors import MissingInputFileError
from .models import FileRecord, FileStatus, Job, JobStatus, NewFile
from .registry import FileRegistry, JobRegistry
from .state_machine import InvalidTransitionError

logger = logging.getLogger(__name__)


class JobManager:
    """Owns the job lifecycle; shared by the HTTP layer and the CLI."""

    def __init__(
        self,
        files: FileRegistry,
        jobs: JobRegistry,
        dispatcher: OperationDispatcher,
        pool: Optional[JobWorkerPool] = None,
    ):
        self.files = files
        self.jobs = jobs
        self.dispatcher = dispatcher
        self.pool = pool

    # ─── Creation ─────────────────────────────────────────────────────────

    def create_job(
        self,
        operation: str,
        input_file_ids: list[str],
        parameters: Optional[dict] = None,
    ) -> Job:
        """
        Register a pending job and queue it.

        Raises:
            UnknownOperationError: the operation name is not known.
            MissingInputFileError: an input id has no usable file record.
        """
        op = self.dispatcher.resolve(operation)
        for file_id in input_file_ids:
            record = self.files.get(file_id)
            if record is None or record.status not in (FileStatus.UPLOADED, FileStatus.PROCESSED):
                raise MissingInputFileError(file_id)

        job = self.jobs.add(Job(
            id=str(uuid.uuid4()),
            operation=op,
            input_file_ids=list(input_file_ids),
            parameters=dict(parameters or {}),
        ))
        logger.info(f"Job {job.id} created: {op.value} on {len(input_file_ids)} file(s)")

        if self.pool is not None:
            self.pool.submit(job.id)
        return job

    # ─── Execution ────────────────────────────────────────────────────────

    def execute(self, job_id: str) -> bool:
        """
        Run a pending job. Returns False when the job could not be claimed
        (unknown, already running, or finished).
        """
        job = self.jobs.claim(job_id)
        if job is None:
            logger.debug(f"Job {job_id} not claimable, skipping")
            return False

        logger.info(f"Job {job_id} processing: {job.operation.value}")
        try:
            self._run(job)
        except Exception as e:
            logger.error(f"Job {job_id} failed unexpectedly: {e}", exc_info=True)
            self._fail(job_id, f"Unexpected error while processing job: {e}")
        return True

    def _run(self, job: Job):
        paths = []
        for file_id in job.input_file_ids:
            record = self.files.get(file_id)
            if record is None:
                self._fail(job.id, f"File {file_id} not found")
                return
            paths.append(record.storage_location)

        result = self.dispatcher.dispatch(job.operation, paths, job.parameters)
        if not result.success:
            self._fail(job.id, result.error or "Processing failed")
            return

        outputs: list[FileRecord] = []
        for output in result.output_files:
            outputs.append(self.files.create(NewFile(
                original_name=output.name,
                stored_name=output.name,
                mime_type=output.mime_type,
                size_bytes=output.size_bytes,
                storage_location=output.path,
                status=FileStatus.PROCESSED,
                metadata={
                    "operation": job.operation.value,
                    "jobId": job.id,
                    "createdFrom": list(job.input_file_ids),
                },
            )))

        done = self.jobs.transition(
            job.id,
            JobStatus.COMPLETED,
            output_file_ids=[f.id for f in outputs],
            notices=list(result.notices),
        )
        if done is None:
            # Job deleted while running; its outputs have no owner
            for record in outputs:
                self.files.delete(record.id)
            logger.warning(f"Job {job.id} was deleted before completion")
            return
        logger.info(f"Job {job.id} completed with {len(outputs)} output file(s)")

    def _fail(self, job_id: str, message: str):
        try:
            failed = self.jobs.transition(job_id, JobStatus.FAILED, error_message=message)
        except InvalidTransitionError as e:
            logger.error(f"Job {job_id} could not be marked failed: {e}")
            return
        if failed is not None:
            logger.warning(f"Job {job_id} failed: {message}")

    # ─── Queries ──────────────────────────────────────────────────────────

    def get_job(self, job_id: str) -> Optional[Job]:
        return self.jobs.get(job_id)

    def output_files(self, job: Job) -> list[FileRecord]:
        return [r for r in (self.files.get(i) for i in job.output_file_ids) if r is not None]

    def delete_job(self, job_id: str) -> bool:
        """Forget a job record; its output files stay registered."""
        deleted = self.jobs.delete(job_id)
        if deleted:
            logger.info(f"Job {job_id} deleted")
        return deleted

    def list_jobs(self) -> list[Job]:
        return self.jobs.list()
