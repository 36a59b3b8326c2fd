#  Copyright (c) 2026 by the Tunedeck team and contributors
#  Permissions are hereby granted under the terms of the Apache 2.0 License:
#  https://opensource.org/license/apache-2-0.

from collections.abc import Sequence
from typing import Any, Awaitable, Callable, Optional, TypeAlias

import pandas as pd
import param

from tunedeck.api.exceptions import ClientError, ResponseError
from tunedeck.api.models import Job
from tunedeck.core.paging import ALL, JobsView, ViewPage
from tunedeck.core.snapshot import SnapshotObserver

JobAction: TypeAlias = Callable[[str], Awaitable[str]]

DATAFRAME_COLUMNS = ["job_id", "name", "type", "status", "progress", "created_at"]


@SnapshotObserver.register  # virtual subclass, no runtime checks
class JobsPanelViewModel(param.Parameterized):
    """
    Reactive state and logic holder of a job list panel.

    It implements the SnapshotObserver interface by protocol.
    """

    # ---- reactive state ----
    jobs = param.List(default=[])
    selection = param.List(default=[])
    message = param.String(default="")
    error = param.Parameter(default=None)
    # ---- filter and page ----
    query = param.String(default="")
    status_filter = param.String(default=ALL)
    type_filter = param.String(default=ALL)
    page = param.Integer(default=1, bounds=(1, None))
    # ---- reactive enablement ----
    stop_disabled = param.Boolean(default=True)
    delete_disabled = param.Boolean(default=True)

    def __init__(
        self,
        view: JobsView,
        stop_job: Optional[JobAction] = None,
        delete_job: Optional[JobAction] = None,
    ):
        super().__init__()
        # ---- capabilities (not reactive) ----
        self._view = view
        self._stop_job = stop_job
        self._delete_job = delete_job
        # ---- reactive state ----
        self.jobs = list(view.store.get())

    # ---- SnapshotObserver interface implementation ----

    def on_snapshot_replaced(self, jobs: Sequence[Job]):
        self.jobs = list(jobs)
        self.error = None

    def on_snapshot_error(self, error: ClientError | None):
        self.error = error

    # ---- filter and page state ----

    @param.depends("query", "status_filter", "type_filter", watch=True)
    def _update_criteria(self):
        self._view.set_criteria(
            name_or_id=self.query, status=self.status_filter, type=self.type_filter
        )
        self.page = self._view.page

    @param.depends("page", watch=True)
    def _update_page(self):
        self._view.set_page(self.page)

    # ---- selection state ----

    def set_selection(self, selection: list[int]):
        rows = self.view_page().rows
        self.selection = [rows[selected_idx].id for selected_idx in selection]

    # ---- derived (pure) ----

    @param.depends("jobs", "query", "status_filter", "type_filter", "page")
    def view_page(self) -> ViewPage:
        view_page = self._view.current()
        if view_page.page_corrected:
            self.page = view_page.current_page
        return view_page

    @param.depends("jobs", "query", "status_filter", "type_filter", "page")
    def dataframe(self) -> pd.DataFrame:
        return _jobs_to_dataframe(self.view_page().rows)

    @param.depends("jobs")
    def type_options(self) -> list[str]:
        return [ALL, *self._view.type_options()]

    @param.depends("jobs")
    def status_counts(self) -> dict[str, int]:
        return dict(self._view.status_counts())

    @param.depends("jobs")
    def completed_jobs(self) -> list[Job]:
        return self._view.completed_jobs()

    def selected_jobs(self) -> list[Job]:
        if not self.selection:
            return []
        ids = set(self.selection)
        return [job for job in self.jobs if job.id in ids]

    @param.depends("jobs", "selection", watch=True)
    def _update_capabilities(self):
        jobs = self.selected_jobs()
        self.stop_disabled = not (
            self._stop_job is not None
            and bool(jobs)
            and all(job.status.is_active for job in jobs)
        )
        self.delete_disabled = not (
            self._delete_job is not None
            and bool(jobs)
            and not any(job.status.is_active for job in jobs)
        )

    # ---- actions mutate state ----

    async def stop_selected(self):
        self.message = await self._run_action(
            self._stop_job,
            "✅ Stopped {job}",
            "⚠️ Failed stopping {job}: {message}",
        )

    async def delete_selected(self):
        self.message = await self._run_action(
            self._delete_job,
            "✅ Deleted {job}",
            "⚠️ Failed deleting {job}: {message}",
        )

    async def _run_action(
        self,
        action: JobAction | None,
        success_fmt: str,
        error_fmt: str,
    ) -> str:
        if action is None:
            return ""

        messages = []
        for job in self.selected_jobs():
            job_text = f"job `{job.id}`"
            try:
                result = await action(job.id)
                text = success_fmt.format(job=job_text)
                messages.append(f"{text}: {result}" if result else text)
            except Exception as e:
                msg = e.msg if isinstance(e, ResponseError) and e.msg else str(e)
                messages.append(error_fmt.format(job=job_text, message=msg))

        return "  \n".join(messages)


def _jobs_to_dataframe(jobs: Sequence[Job]) -> pd.DataFrame:
    return pd.DataFrame(
        [_job_to_dataframe_row(job) for job in jobs], columns=DATAFRAME_COLUMNS
    )


def _job_to_dataframe_row(job: Job) -> dict[str, Any]:
    return {
        "job_id": job.id,
        "name": job.name or "-",
        "type": job.type or job.type_alias or "-",
        "status": job.raw_status or job.status.value,
        "progress": job.progress,
        "created_at": job.created_at,
    }
