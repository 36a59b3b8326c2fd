#  Copyright (c) 2026 by the Tunedeck team and contributors
#  Permissions are hereby granted under the terms of the Apache 2.0 License:
#  https://opensource.org/license/apache-2-0.

from .events import EventSource
from .guard import SUPPRESSED, FetchGuard
from .lifecycle import JobLifecycleTracker, JobWatch, WatchState
from .paging import FilterCriteria, JobsView, ViewPage, derive
from .poller import Poller
from .resources import (
    DeviceInfo,
    DeviceUnavailableError,
    ResourceAvailabilityTracker,
    toggle_device,
)
from .snapshot import JobSnapshotStore, SnapshotObserver

__all__ = [
    "DeviceInfo",
    "DeviceUnavailableError",
    "EventSource",
    "FetchGuard",
    "FilterCriteria",
    "JobLifecycleTracker",
    "JobSnapshotStore",
    "JobWatch",
    "JobsView",
    "Poller",
    "ResourceAvailabilityTracker",
    "SUPPRESSED",
    "SnapshotObserver",
    "ViewPage",
    "WatchState",
    "derive",
    "toggle_device",
]
