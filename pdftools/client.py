"""
HTTP Client
===========
``requests`` client for a running PDF tools service, with a polling loop
that waits for a job to reach a terminal status.

Usage:
    client = PdfToolsClient("http://localhost:5000")
    ids = [f["id"] for f in client.upload(["a.pdf", "b.pdf"])]
    job_id = client.process("merge-pdf", ids)
    job = client.wait_for_job(job_id, PollPolicy(interval=1.0, timeout=120))
    if job["status"] == "completed":
        client.download(job["outputFiles"][0]["id"], "merged.pdf")
"""

from __future__ import annotations

import logging
import mimetypes
import os
import time
from contextlib import ExitStack
from dataclasses import dataclass
from typing import Callable, Optional

import requests

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = ("completed", "failed")


class ApiError(Exception):
    """Non-2xx response from the service."""

    def __init__(self, status_code: int, message: str, code: Optional[str] = None):
        self.status_code = status_code
        self.message = message
        self.code = code
        super().__init__(f"HTTP {status_code}: {message}")


class JobTimeoutError(Exception):
    """The job did not reach a terminal status in time."""

    def __init__(self, job_id: str, timeout: float, last_status: Optional[str]):
        self.job_id = job_id
        self.timeout = timeout
        self.last_status = last_status
        super().__init__(
            f"Job {job_id} still {last_status or 'unknown'} after {timeout:.0f}s"
        )


@dataclass
class PollPolicy:
    """
    How to poll a job.

    ``backoff`` multiplies the interval after every poll (1.0 keeps it
    fixed) up to ``max_interval``. ``timeout`` None waits forever.
    """
    interval: float = 1.0
    backoff: float = 1.0
    max_interval: float = 10.0
    timeout: Optional[float] = 300.0

    def __post_init__(self):
        if self.interval <= 0:
            raise ValueError("interval must be positive")
        if self.backoff < 1.0:
            raise ValueError("backoff must be >= 1.0")

    def next_interval(self, current: float) -> float:
        return min(current * self.backoff, max(self.max_interval, self.interval))


class PdfToolsClient:
    """Thin wrapper over the service's JSON API."""

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def _url(self, path: str) -> str:
        return f"{self.base_url}/api/{path.lstrip('/')}"

    def _check(self, response: requests.Response) -> requests.Response:
        if response.ok:
            return response
        try:
            body = response.json()
        except ValueError:
            body = {}
        message = body.get("error") if isinstance(body, dict) else None
        code = body.get("code") if isinstance(body, dict) else None
        raise ApiError(response.status_code, message or response.reason or "Request failed", code)

    # ─── Files ────────────────────────────────────────────────────────────

    def upload(self, paths: list[str]) -> list[dict]:
        """Upload local files; returns the file summaries."""
        with ExitStack() as stack:
            parts = []
            for path in paths:
                mime = mimetypes.guess_type(path)[0] or "application/octet-stream"
                fh = stack.enter_context(open(path, "rb"))
                parts.append(("files", (os.path.basename(path), fh, mime)))
            response = self.session.post(self._url("upload"), files=parts, timeout=self.timeout)
        return self._check(response).json()["files"]

    def get_file(self, file_id: str) -> dict:
        return self._check(
            self.session.get(self._url(f"files/{file_id}"), timeout=self.timeout)
        ).json()

    def download(self, file_id: str, dest: str) -> str:
        """Stream a file to ``dest``; returns the path written."""
        response = self.session.get(
            self._url(f"files/{file_id}/download"), stream=True, timeout=self.timeout
        )
        with response:
            self._check(response)
            with open(dest, "wb") as fh:
                for chunk in response.iter_content(chunk_size=64 * 1024):
                    fh.write(chunk)
        return dest

    def delete_file(self, file_id: str) -> bool:
        response = self.session.delete(self._url(f"files/{file_id}"), timeout=self.timeout)
        if response.status_code == 404:
            return False
        self._check(response)
        return True

    # ─── Jobs ─────────────────────────────────────────────────────────────

    def process(self, operation: str, file_ids: list[str], parameters: Optional[dict] = None) -> str:
        """Start a job; returns its id."""
        response = self.session.post(
            self._url("process"),
            json={"operation": operation, "inputFiles": file_ids, "parameters": parameters or {}},
            timeout=self.timeout,
        )
        return self._check(response).json()["jobId"]

    def get_job(self, job_id: str) -> dict:
        return self._check(
            self.session.get(self._url(f"jobs/{job_id}"), timeout=self.timeout)
        ).json()

    def wait_for_job(
        self,
        job_id: str,
        policy: Optional[PollPolicy] = None,
        on_poll: Optional[Callable[[dict], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> dict:
        """
        Poll until the job is completed or failed and return its payload.

        Raises:
            JobTimeoutError: the policy's timeout elapsed first.
            ApiError: the service rejected a poll (e.g. 404 for unknown jobs).
        """
        policy = policy or PollPolicy()
        started = clock()
        interval = policy.interval
        while True:
            job = self.get_job(job_id)
            if on_poll is not None:
                on_poll(job)
            if job.get("status") in TERMINAL_STATUSES:
                return job
            if policy.timeout is not None and clock() - started + interval > policy.timeout:
                raise JobTimeoutError(job_id, policy.timeout, job.get("status"))
            logger.debug(f"Job {job_id} {job.get('status')}, next poll in {interval:.1f}s")
            sleep(interval)
            interval = policy.next_interval(interval)
