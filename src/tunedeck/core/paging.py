#  Copyright (c) 2026 by the Tunedeck team and contributors
#  Permissions are hereby granted under the terms of the Apache 2.0 License:
#  https://opensource.org/license/apache-2-0.

import math
from collections import Counter
from collections.abc import Sequence
from typing import Optional

from pydantic import BaseModel, ConfigDict

from tunedeck.api.models import Job, JobStatus

from .snapshot import JobSnapshotStore

ALL = "all"

# Raw statuses matched by the "succeeded" filter value
SUCCEEDED_SYNONYMS = frozenset({"succeeded", "completed", "success"})


class FilterCriteria(BaseModel):
    model_config = ConfigDict(frozen=True)

    name_or_id: str = ""
    status: str = ALL
    type: str = ALL


class ViewPage(BaseModel):
    """One page of the filtered job list.

    `page_corrected` is set if the requested page was out of range
    and `current_page` has been reset to 1. The caller should then
    persist page 1 as its current page.
    """

    model_config = ConfigDict(frozen=True)

    rows: tuple[Job, ...] = ()
    total_pages: int = 1
    current_page: int = 1
    filtered_count: int = 0
    page_corrected: bool = False


def matches_name_or_id(job: Job, text: str) -> bool:
    needle = text.strip().lower()
    if not needle:
        return True
    return any(
        needle in value.lower()
        for value in (job.name, job.id, job.task_id)
        if value
    )


def matches_status(job: Job, status: str) -> bool:
    wanted = status.strip().lower()
    if wanted == ALL:
        return True
    raw_status = job.raw_status or job.status.value
    if wanted == JobStatus.succeeded.value:
        return raw_status in SUCCEEDED_SYNONYMS
    return raw_status == wanted


def matches_type(job: Job, type_: str) -> bool:
    wanted = type_.strip().lower()
    if wanted == ALL:
        return True
    return any(
        value.lower() == wanted for value in (job.type, job.type_alias) if value
    )


def matches(job: Job, criteria: FilterCriteria) -> bool:
    return (
        matches_name_or_id(job, criteria.name_or_id)
        and matches_status(job, criteria.status)
        and matches_type(job, criteria.type)
    )


def derive(
    snapshot: Sequence[Job], criteria: FilterCriteria, page: int, page_size: int
) -> ViewPage:
    """Compute the visible page of `snapshot`.

    This is a pure function of its arguments.

    Args:
        snapshot: The complete job list.
        criteria: The filter criteria.
        page: The requested page, starting at 1.
        page_size: Maximum number of rows per page.

    Returns:
        The visible page. If `page` is out of range, page 1 is
        returned and `page_corrected` is set.
    """
    if page_size < 1:
        raise ValueError("page_size must be at least 1")
    filtered = [job for job in snapshot if matches(job, criteria)]
    total_pages = max(1, math.ceil(len(filtered) / page_size))
    current_page = page
    if not 1 <= page <= total_pages:
        current_page = 1
    start = (current_page - 1) * page_size
    return ViewPage(
        rows=tuple(filtered[start : start + page_size]),
        total_pages=total_pages,
        current_page=current_page,
        filtered_count=len(filtered),
        page_corrected=current_page != page,
    )


class JobsView:
    """Filtered, paginated view of a job snapshot store.

    Holds the filter criteria and the current page and memoizes the
    derived page until the snapshot, the criteria, the page or the
    page size change.
    """

    def __init__(self, store: JobSnapshotStore, page_size: int = 10):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self._store = store
        self._page_size = page_size
        self._criteria = FilterCriteria()
        self._page = 1
        self._cache_key: Optional[tuple] = None
        self._cache: Optional[ViewPage] = None

    @property
    def store(self) -> JobSnapshotStore:
        return self._store

    @property
    def criteria(self) -> FilterCriteria:
        return self._criteria

    @property
    def page(self) -> int:
        return self._page

    @property
    def page_size(self) -> int:
        return self._page_size

    def set_criteria(self, criteria: Optional[FilterCriteria] = None, **changes):
        """Change the filter criteria. Any change resets the page to 1."""
        new_criteria = (criteria or self._criteria).model_copy(update=changes)
        if new_criteria != self._criteria:
            self._criteria = new_criteria
            self._page = 1

    def set_page(self, page: int):
        self._page = page

    def set_page_size(self, page_size: int):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        if page_size != self._page_size:
            self._page_size = page_size
            self._page = 1

    def current(self) -> ViewPage:
        key = (self._store.version, self._criteria, self._page, self._page_size)
        if self._cache is None or key != self._cache_key:
            view_page = derive(
                self._store.get(), self._criteria, self._page, self._page_size
            )
            if view_page.page_corrected:
                self._page = view_page.current_page
                key = (
                    self._store.version,
                    self._criteria,
                    self._page,
                    self._page_size,
                )
            self._cache_key = key
            self._cache = view_page
        return self._cache

    def completed_jobs(self) -> list[Job]:
        """Jobs of the whole snapshot that can be deployed."""
        return [
            job for job in self._store.get() if job.status == JobStatus.succeeded
        ]

    def status_counts(self) -> Counter:
        return Counter(job.status.value for job in self._store.get())

    def type_options(self) -> list[str]:
        """The distinct job types of the snapshot, for a type filter."""
        types = {
            value
            for job in self._store.get()
            for value in (job.type, job.type_alias)
            if value
        }
        return sorted(types)
