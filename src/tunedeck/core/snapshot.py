#  Copyright (c) 2026 by the Tunedeck team and contributors
#  Permissions are hereby granted under the terms of the Apache 2.0 License:
#  https://opensource.org/license/apache-2-0.

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from typing import Optional

from tunedeck.api.exceptions import ClientError
from tunedeck.api.models import Job

from .events import EventSource


class SnapshotObserver(ABC):
    @abstractmethod
    def on_snapshot_replaced(self, jobs: Sequence[Job]):
        """Called after the snapshot has been replaced."""

    @abstractmethod
    def on_snapshot_error(self, error: Optional[ClientError]):
        """Called if fetching a new snapshot failed."""


class JobSnapshotStore(EventSource):
    """Holds the complete, unfiltered list of jobs last fetched.

    The snapshot is replaced as a whole; there are no partial updates.
    `version` increases with every replacement so that derived views
    can tell whether their cached result is still valid.
    """

    def __init__(self, jobs: Iterable[Job] = ()):
        super().__init__()
        self._jobs: tuple[Job, ...] = _sort_jobs(jobs)
        self._version = 0
        self._error: Optional[ClientError] = None

    @property
    def version(self) -> int:
        return self._version

    @property
    def error(self) -> Optional[ClientError]:
        """The error of the last failed fetch, if the last fetch failed."""
        return self._error

    def get(self) -> tuple[Job, ...]:
        return self._jobs

    def get_job(self, job_id: str) -> Optional[Job]:
        for job in self._jobs:
            if job.id == job_id:
                return job
        return None

    def replace_all(self, jobs: Iterable[Job]):
        """Replace the snapshot by `jobs` sorted newest first.

        Jobs with equal (or no) creation time keep their order;
        jobs without creation time go last.
        """
        self._jobs = _sort_jobs(jobs)
        self._version += 1
        self._error = None
        self._emit("snapshot_replaced", self._jobs)

    def report_error(self, error: ClientError):
        """Record a failed fetch. The snapshot itself is kept."""
        self._error = error
        self._emit("snapshot_error", error)

    def __len__(self) -> int:
        return len(self._jobs)


def _sort_jobs(jobs: Iterable[Job]) -> tuple[Job, ...]:
    def sort_key(job: Job):
        if job.created_at is None:
            return 1, 0.0
        return 0, -job.created_at.timestamp()

    return tuple(sorted(jobs, key=sort_key))
