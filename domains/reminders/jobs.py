"""In-memory registry of remote jobs, indexed by occurrence key and reminder."""

import threading
from datetime import datetime
from typing import Optional

from .types import OccurrenceKey, RemoteJob, RemoteJobStatus


class RemoteJobRegistry:
    """Tracks which occurrences already have a job on the push gateway.

    Lets deletion cancel every job of a reminder, and lets the live dispatcher
    skip occurrences a pre-scheduled job already covers.
    """

    def __init__(self):
        self._jobs: dict[OccurrenceKey, RemoteJob] = {}
        self._lock = threading.Lock()

    def add(self, job: RemoteJob) -> None:
        with self._lock:
            self._jobs[job.occurrence_key] = job

    def find(self, key: OccurrenceKey) -> Optional[RemoteJob]:
        with self._lock:
            return self._jobs.get(key)

    def find_by_remote_id(self, remote_job_id: str) -> Optional[RemoteJob]:
        with self._lock:
            for job in self._jobs.values():
                if job.remote_job_id == remote_job_id:
                    return job
        return None

    def pending_for(self, key: OccurrenceKey) -> Optional[RemoteJob]:
        """The job covering this occurrence, if it is still pending."""
        job = self.find(key)
        if job is not None and job.status == RemoteJobStatus.PENDING:
            return job
        return None

    def outstanding_for(self, reminder_id: str) -> list[RemoteJob]:
        """Pending jobs belonging to a reminder."""
        with self._lock:
            return [
                job for job in self._jobs.values()
                if job.reminder_id == reminder_id and job.status == RemoteJobStatus.PENDING
            ]

    def passed(self, now: datetime) -> list[RemoteJob]:
        """Pending jobs whose scheduled moment is already behind us."""
        with self._lock:
            return [
                job for job in self._jobs.values()
                if job.status == RemoteJobStatus.PENDING and job.scheduled_at < now
            ]

    def remove(self, key: OccurrenceKey) -> Optional[RemoteJob]:
        with self._lock:
            return self._jobs.pop(key, None)

    def remove_reminder(self, reminder_id: str) -> list[RemoteJob]:
        """Forget every job of a reminder, whatever its status."""
        with self._lock:
            keys = [key for key, job in self._jobs.items() if job.reminder_id == reminder_id]
            return [self._jobs.pop(key) for key in keys]

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)
