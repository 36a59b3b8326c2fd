#  Copyright (c) 2026 by the Tunedeck team and contributors
#  Permissions are hereby granted under the terms of the Apache 2.0 License:
#  https://opensource.org/license/apache-2-0.

import logging
from typing import Any, Awaitable, Callable, Optional

from tunedeck.api.client import Client
from tunedeck.api.exceptions import ClientError
from tunedeck.api.models import DockerServer, RemotePage
from tunedeck.api.normalize import restart_devices
from tunedeck.core.guard import SUPPRESSED, FetchGuard
from tunedeck.core.lifecycle import JobLifecycleTracker, JobWatch
from tunedeck.core.paging import JobsView
from tunedeck.core.poller import Poller
from tunedeck.core.resources import ResourceAvailabilityTracker
from tunedeck.core.snapshot import JobSnapshotStore

from .devices_panel import DevicesPanelViewModel
from .jobs_panel import JobsPanelViewModel

LOG = logging.getLogger(__name__)

JOBS_KEY = "training_tasks"
DEVICES_KEY = "gpu_status"
SERVERS_KEY = "docker_servers"


class Console:
    """Monitors training jobs, document tasks and compute resources
    of one backend.

    The console owns every poll subscription. All of them run in
    the event loop that calls the `start_*()`, `watch_*()` and
    `open_*()` methods; `close()` stops them all.

    Args:
        client: The API client. It is not closed by the console.
    """

    def __init__(self, client: Client):
        config = client.config
        self._client = client
        self._config = config
        self.guard = FetchGuard()
        self.jobs = JobSnapshotStore()
        self.jobs_view = JobsView(self.jobs, page_size=config.page_size)
        self.devices = ResourceAvailabilityTracker(client.get_device_snapshot)
        self.results = JobLifecycleTracker(
            client.get_training_task,
            client.get_eval_results,
            fetch_live=client.get_loss_data,
            interval=config.detail_poll_interval,
            guard=self.guard,
        )
        self.doc_tasks: dict[str, RemotePage] = {}
        self.docker_servers: list[DockerServer] = []
        self.logs: dict[str, Any] = {}
        self._jobs_poller = Poller(JOBS_KEY)
        self._jobs_revision = 0
        self._devices_poller = Poller(DEVICES_KEY)
        self._servers_poller = Poller(SERVERS_KEY)
        self._doc_task_pollers: dict[str, Poller] = {}
        self._doc_task_pages: dict[str, int] = {}
        self._logs_pollers: dict[str, Poller] = {}

    @property
    def client(self) -> Client:
        return self._client

    def jobs_panel(self) -> JobsPanelViewModel:
        """Create a view model of the job list.

        The caller must keep a reference to it, the console
        notifies it as long as it is alive.
        """
        view_model = JobsPanelViewModel(
            self.jobs_view, stop_job=self.stop_job, delete_job=self.delete_job
        )
        self.jobs.register(view_model)
        return view_model

    def devices_panel(self) -> DevicesPanelViewModel:
        view_model = DevicesPanelViewModel(self.devices)
        self.devices.register(view_model)
        return view_model

    # ---- training job list ----

    def start_job_polling(self, immediate: bool = True):
        self._jobs_poller.start(
            self.refresh_jobs, self._config.job_poll_interval, immediate=immediate
        )

    def stop_job_polling(self):
        self._jobs_poller.stop()

    async def refresh_jobs(self) -> bool:
        """Fetch the complete job list and replace the snapshot.

        Returns:
            Whether the snapshot has been replaced. It is not if a
            fetch is already in flight, if the job list subscription
            has been stopped or restarted meanwhile, if a command has
            changed the job list meanwhile, or if the fetch failed.
            Failures are reported to the store.
        """
        return await self._fetch_jobs(
            lambda: self.guard.with_guard(JOBS_KEY, self._client.list_training_tasks)
        )

    async def _refetch_jobs(self) -> bool:
        """Fetch the job list after a command changed it.

        Fetches issued before are outdated, so their responses are
        discarded and this fetch is not suppressed by them.
        """
        self._jobs_revision += 1
        return await self._fetch_jobs(self._client.list_training_tasks)

    async def _fetch_jobs(self, fetch: Callable[[], Awaitable[Any]]) -> bool:
        generation = self._jobs_poller.generation
        revision = self._jobs_revision

        def is_current() -> bool:
            return (
                self._jobs_poller.is_current(generation)
                and revision == self._jobs_revision
            )

        try:
            result = await fetch()
        except ClientError as e:
            if is_current():
                LOG.warning("Failed to fetch the job list: %s", e)
                self.jobs.report_error(e)
            return False
        if result is SUPPRESSED:
            return False
        if not is_current():
            LOG.debug("Discarding stale response of %r", JOBS_KEY)
            return False
        self.jobs.replace_all(result)
        return True

    async def stop_job(self, job_id: str) -> str:
        """Stop a training job and refresh the job list.

        Returns:
            The server message.

        Raises:
            ClientError: if the job could not be stopped.
                The snapshot is left untouched.
        """
        message = await self._client.stop_training(job_id)
        LOG.info("Stopped job %s", job_id)
        await self._refetch_jobs()
        return message

    async def delete_job(self, job_id: str) -> str:
        """Delete a training job and refresh the job list.

        Returns:
            The server message.

        Raises:
            ClientError: if the job could not be deleted.
                The snapshot is left untouched.
        """
        message = await self._client.delete_training_task(job_id)
        LOG.info("Deleted job %s", job_id)
        self.close_results(job_id)
        self.close_logs(job_id)
        await self._refetch_jobs()
        return message

    # ---- restarting a job ----

    async def load_restart_config(self, job_id: str) -> dict[str, Any]:
        """Fetch the configuration of a job to restart it with and ask
        the device tracker to restore the devices it ran on.

        The restore is decided once a device snapshot is available;
        see `ResourceAvailabilityTracker.request_restore()`.
        """
        config = await self._client.get_restart_config(job_id)
        self.devices.request_restore(restart_devices(config))
        return config

    async def restart_job(self, job_id: str, training_config: dict[str, Any]) -> str:
        """Start a new training job from `training_config` on the
        selected devices and refresh the job list.

        Raises:
            ValueError: if no device is selected.
            ClientError: if the job could not be started.
        """
        devices = self.devices.selection
        if not devices:
            raise ValueError("No device selected")
        message = await self._client.start_training(
            {
                **training_config,
                "device": ",".join(devices),
                "base_task_id": job_id,
            }
        )
        LOG.info("Restarted job %s on %s", job_id, ", ".join(devices))
        await self._refetch_jobs()
        return message

    # ---- results and logs of a single job ----

    async def open_results(self, job_id: str) -> JobWatch:
        """Start watching a job's status, loss data and, once it
        succeeded, its evaluation results."""
        return await self.results.watch(job_id, self.jobs.get_job(job_id))

    def close_results(self, job_id: str):
        self.results.unwatch(job_id)

    async def open_logs(self, job_id: str) -> Any:
        """Fetch the logs of a job now and then keep refreshing them
        until `close_logs()` is called."""
        poller = self._logs_pollers.get(job_id)
        if poller is None:
            poller = Poller(f"logs:{job_id}")
            self._logs_pollers[job_id] = poller
        poller.start(
            lambda: self.refresh_logs(job_id), self._config.logs_poll_interval
        )
        await self.refresh_logs(job_id)
        return self.logs.get(job_id)

    def close_logs(self, job_id: str):
        poller = self._logs_pollers.pop(job_id, None)
        if poller is not None:
            poller.stop()
        self.logs.pop(job_id, None)

    async def refresh_logs(self, job_id: str) -> bool:
        poller = self._logs_pollers.get(job_id)
        if poller is None:
            return False
        generation = poller.generation
        result = await self.guard.with_guard(
            f"logs:{job_id}", self._client.get_training_logs, job_id
        )
        if result is SUPPRESSED:
            return False
        if self._logs_pollers.get(job_id) is not poller or not poller.is_current(
            generation
        ):
            LOG.debug("Discarding stale logs of job %s", job_id)
            return False
        self.logs[job_id] = result
        return True

    # ---- document ingestion tasks ----

    def watch_doc_tasks(self, knowledge_base_id: str, page: int = 1):
        """Keep the document tasks of a knowledge base up to date."""
        poller = self._doc_task_pollers.get(knowledge_base_id)
        if poller is None:
            poller = Poller(f"doc_tasks:{knowledge_base_id}")
            self._doc_task_pollers[knowledge_base_id] = poller
        self._doc_task_pages[knowledge_base_id] = page
        poller.start(
            lambda: self.refresh_doc_tasks(knowledge_base_id),
            self._config.doc_task_poll_interval,
            immediate=True,
        )

    def unwatch_doc_tasks(self, knowledge_base_id: str):
        poller = self._doc_task_pollers.pop(knowledge_base_id, None)
        if poller is not None:
            poller.stop()
        self._doc_task_pages.pop(knowledge_base_id, None)
        self.doc_tasks.pop(knowledge_base_id, None)

    def set_doc_tasks_page(self, knowledge_base_id: str, page: int):
        if knowledge_base_id in self._doc_task_pollers:
            self.watch_doc_tasks(knowledge_base_id, page=page)

    async def refresh_doc_tasks(self, knowledge_base_id: str) -> bool:
        poller = self._doc_task_pollers.get(knowledge_base_id)
        if poller is None:
            return False
        generation = poller.generation
        result = await self.guard.with_guard(
            f"doc_tasks:{knowledge_base_id}",
            self._client.list_doc_tasks,
            knowledge_base_id,
            page=self._doc_task_pages.get(knowledge_base_id, 1),
        )
        if result is SUPPRESSED:
            return False
        if not poller.is_current(generation):
            LOG.debug("Discarding stale document tasks of %s", knowledge_base_id)
            return False
        self.doc_tasks[knowledge_base_id] = result
        return True

    # ---- compute resources ----

    def start_device_polling(self, immediate: bool = True):
        self._devices_poller.start(
            self.refresh_devices, self._config.gpu_poll_interval, immediate=immediate
        )

    def stop_device_polling(self):
        self._devices_poller.stop()

    async def refresh_devices(self) -> bool:
        """Fetch the device snapshot and hand it to the tracker.

        Fetch errors propagate; the tracker keeps its snapshot.
        """
        generation = self._devices_poller.generation
        result = await self.guard.with_guard(
            DEVICES_KEY, self._client.get_device_snapshot
        )
        if result is SUPPRESSED:
            return False
        if not self._devices_poller.is_current(generation):
            LOG.debug("Discarding stale response of %r", DEVICES_KEY)
            return False
        self.devices.apply(result)
        return True

    # ---- docker servers ----

    def start_server_polling(self, immediate: bool = True):
        self._servers_poller.start(
            self.refresh_servers,
            self._config.docker_poll_interval,
            immediate=immediate,
        )

    def stop_server_polling(self):
        self._servers_poller.stop()

    async def refresh_servers(self) -> bool:
        generation = self._servers_poller.generation
        result = await self.guard.with_guard(
            SERVERS_KEY, self._client.list_docker_servers
        )
        if result is SUPPRESSED:
            return False
        if not self._servers_poller.is_current(generation):
            LOG.debug("Discarding stale response of %r", SERVERS_KEY)
            return False
        self.docker_servers = result
        return True

    # ---- teardown ----

    def close(self):
        """Stop all poll subscriptions."""
        self._jobs_poller.stop()
        self._devices_poller.stop()
        self._servers_poller.stop()
        for knowledge_base_id in list(self._doc_task_pollers):
            self.unwatch_doc_tasks(knowledge_base_id)
        for job_id in list(self._logs_pollers):
            self.close_logs(job_id)
        self.results.close()

    async def wait_idle(self):
        """Wait until all poll ticks in flight have settled."""
        pollers = [
            self._jobs_poller,
            self._devices_poller,
            self._servers_poller,
            *self._doc_task_pollers.values(),
            *self._logs_pollers.values(),
        ]
        for poller in pollers:
            await poller.wait_idle()


def filter_servers(
    servers: list[DockerServer], query: Optional[str] = None
) -> list[DockerServer]:
    """Filter docker servers by a case-insensitive search
    in their names and base URLs."""
    needle = (query or "").strip().lower()
    if not needle:
        return list(servers)
    return [
        server
        for server in servers
        if needle in server.name.lower() or needle in server.base_url.lower()
    ]
