#  Copyright (c) 2026 by the Tunedeck team and contributors
#  Permissions are hereby granted under the terms of the Apache 2.0 License:
#  https://opensource.org/license/apache-2-0.

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeAlias

from tunedeck.api.models import Job, JobStatus

from .events import EventSource
from .guard import SUPPRESSED, FetchGuard
from .poller import Poller

LOG = logging.getLogger(__name__)

FetchStatus: TypeAlias = Callable[[str], Awaitable[Job]]
FetchData: TypeAlias = Callable[[str], Awaitable[Any]]


class WatchState(str, Enum):
    watching = "watching"
    completing = "completing"
    stopped = "stopped"


@dataclass(eq=False)
class JobWatch:
    """State of one watched job.

    `job` is the last status fetched and stays available after the
    watch has stopped, also if it stopped because of an error.
    """

    job_id: str
    poller: Poller
    state: WatchState = WatchState.watching
    job: Optional[Job] = None
    live_data: Any = None
    supplementary: Any = None
    supplementary_fetched: bool = False
    error: Optional[Exception] = None
    status_fetches: int = field(default=0, repr=False)


class JobLifecycleTracker(EventSource):
    """Decides per watched job when to poll, when to fetch
    supplementary data and when to stop.

    While a job is `watching`, every tick fetches its status (and,
    if configured, its live data such as a loss curve):

    - `pending` or `running`: keep watching.
    - `succeeded`: fetch the supplementary data (evaluation results)
      exactly once, then stop.
    - any other status: stop without fetching supplementary data.
    - the status fetch fails: stop and report the error. A job whose
      state cannot be determined is never polled forever.

    Events: `job_status`, `live_data`, `supplementary`,
    `watch_error` and `watch_stopped`, each with the `JobWatch`
    as first argument.

    Args:
        fetch_status: Fetches the current job record.
        fetch_supplementary: Fetches data only meaningful for
            successful jobs.
        fetch_live: Optional fetch of data that changes while the job
            runs. Failures are logged and otherwise ignored.
        interval: Poll interval in seconds.
        guard: Optional fetch guard shared with other components.
    """

    def __init__(
        self,
        fetch_status: FetchStatus,
        fetch_supplementary: FetchData,
        *,
        fetch_live: Optional[FetchData] = None,
        interval: float = 3.0,
        guard: Optional[FetchGuard] = None,
    ):
        super().__init__()
        self._fetch_status = fetch_status
        self._fetch_supplementary = fetch_supplementary
        self._fetch_live = fetch_live
        self._interval = interval
        self._guard = guard or FetchGuard()
        self._watches: dict[str, JobWatch] = {}

    def get(self, job_id: str) -> Optional[JobWatch]:
        return self._watches.get(job_id)

    @property
    def watched_ids(self) -> list[str]:
        return [
            job_id
            for job_id, watch in self._watches.items()
            if watch.state == WatchState.watching
        ]

    async def watch(self, job_id: str, job: Optional[Job] = None) -> JobWatch:
        """Start watching a job.

        Args:
            job_id: The job identifier.
            job: The job as last known by the caller, if any. A job
                known to be finished is not polled at all; if it
                succeeded, its supplementary data is fetched once.

        Returns:
            The new watch. A previous watch of the same job is discarded.
        """
        self.unwatch(job_id)
        watch = JobWatch(job_id=job_id, poller=Poller(f"job:{job_id}"), job=job)
        self._watches[job_id] = watch
        await self._update_live_data(watch, watch.poller.generation)

        status = job.status if job is not None else None
        if status is None or status.is_active:
            watch.poller.start(lambda: self.tick(job_id), self._interval)
            LOG.info("Watching job %s", job_id)
        else:
            await self._finish(watch, status)
        return watch

    def unwatch(self, job_id: str):
        """Stop watching a job and discard its state.

        Responses still in flight for the job are ignored.
        """
        watch = self._watches.pop(job_id, None)
        if watch is not None:
            watch.poller.stop()
            watch.state = WatchState.stopped

    def close(self):
        for job_id in list(self._watches):
            self.unwatch(job_id)

    async def tick(self, job_id: str) -> WatchState:
        """Perform one poll step for a watched job.

        Returns:
            The state of the watch after this step.
        """
        result = await self._guard.with_guard(
            f"lifecycle:{job_id}", self._tick, job_id
        )
        if result is SUPPRESSED:
            watch = self._watches.get(job_id)
            return watch.state if watch is not None else WatchState.stopped
        return result

    async def _tick(self, job_id: str) -> WatchState:
        watch = self._watches.get(job_id)
        if watch is None:
            return WatchState.stopped
        if watch.state != WatchState.watching:
            return watch.state

        generation = watch.poller.generation
        await self._update_live_data(watch, generation)

        watch.status_fetches += 1
        try:
            job = await self._fetch_status(job_id)
        except Exception as e:
            if self._is_current(watch, generation):
                LOG.warning("Cannot determine status of job %s: %s", job_id, e)
                watch.error = e
                self._stop(watch)
                self._emit("watch_error", watch, e)
            return watch.state

        if not self._is_current(watch, generation):
            LOG.debug("Discarding stale status of job %s", job_id)
            return watch.state

        watch.job = job
        self._emit("job_status", watch)
        if job.status.is_active:
            return watch.state
        await self._finish(watch, job.status)
        return watch.state

    async def _finish(self, watch: JobWatch, status: JobStatus):
        if status == JobStatus.succeeded:
            watch.state = WatchState.completing
            if not watch.supplementary_fetched:
                await self._update_supplementary(watch)
        self._stop(watch)

    async def _update_supplementary(self, watch: JobWatch):
        generation = watch.poller.generation
        try:
            data = await self._fetch_supplementary(watch.job_id)
        except Exception as e:
            LOG.warning(
                "Failed to fetch supplementary data of job %s: %s", watch.job_id, e
            )
            watch.error = e
            self._emit("watch_error", watch, e)
            return
        if self._is_current(watch, generation):
            watch.supplementary = data
            watch.supplementary_fetched = True
            self._emit("supplementary", watch)

    async def _update_live_data(self, watch: JobWatch, generation: int):
        if self._fetch_live is None:
            return
        try:
            data = await self._fetch_live(watch.job_id)
        except Exception as e:
            LOG.warning("Failed to fetch live data of job %s: %s", watch.job_id, e)
            return
        if self._is_current(watch, generation):
            watch.live_data = data
            self._emit("live_data", watch)

    def _stop(self, watch: JobWatch):
        watch.poller.stop()
        watch.state = WatchState.stopped
        LOG.info(
            "Stopped watching job %s (%s)",
            watch.job_id,
            watch.job.status.value if watch.job is not None else "unknown",
        )
        self._emit("watch_stopped", watch)

    def _is_current(self, watch: JobWatch, generation: int) -> bool:
        return self._watches.get(watch.job_id) is watch and watch.poller.is_current(
            generation
        )
