#  Copyright (c) 2026 by the Tunedeck team and contributors
#  Permissions are hereby granted under the terms of the Apache 2.0 License:
#  https://opensource.org/license/apache-2-0.

import logging
import math
from collections.abc import Iterable
from typing import Awaitable, Callable, Optional, TypeAlias

from pydantic import BaseModel, ConfigDict

from tunedeck.api.defaults import DEFAULT_GPU_PLACEHOLDERS
from tunedeck.api.models import CPU_DEVICE_ID, GPU_DEVICE_PREFIX, DeviceSnapshot

from .events import EventSource

LOG = logging.getLogger(__name__)

FetchSnapshot: TypeAlias = Callable[[], Awaitable[DeviceSnapshot]]


class DeviceUnavailableError(ValueError):
    """Raised when selecting a device that is not available."""

    def __init__(self, device_id: str):
        super().__init__(f"Device {device_id!r} is not available")
        self.device_id = device_id


class DeviceInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    available: bool
    memory: str
    free_memory_gb: Optional[float] = None
    total_memory_gb: Optional[float] = None
    utilization: Optional[float] = None


def toggle_device(selection: Iterable[str], device_id: str) -> tuple[str, ...]:
    """Toggle `device_id` in `selection`.

    The CPU and GPUs are mutually exclusive, while any number of GPUs
    may be selected together:

    - a selected device is removed;
    - selecting the CPU yields `("cpu",)`;
    - selecting a GPU while the CPU is selected yields just that GPU;
    - otherwise the GPU is appended.

    Availability is not checked here.
    """
    current = tuple(selection)
    if device_id in current:
        return tuple(d for d in current if d != device_id)
    if device_id == CPU_DEVICE_ID:
        return (CPU_DEVICE_ID,)
    if CPU_DEVICE_ID in current:
        return (device_id,)
    return (*current, device_id)


class ResourceAvailabilityTracker(EventSource):
    """Tracks the latest device snapshot and the device selection.

    Events:

    - `devices_changed(snapshot)` after every refresh;
    - `selection_changed(selection)`;
    - `selection_restored(selection)` and
      `selection_restore_rejected(prior_selection)`, see
      `request_restore()`.

    Args:
        fetch_snapshot: Fetches the current device snapshot.
        placeholders: Number of GPU ids listed while no
            snapshot has been received yet.
    """

    def __init__(
        self,
        fetch_snapshot: FetchSnapshot,
        placeholders: int = DEFAULT_GPU_PLACEHOLDERS,
    ):
        super().__init__()
        self._fetch_snapshot = fetch_snapshot
        self._placeholders = placeholders
        self._snapshot: Optional[DeviceSnapshot] = None
        self._selection: tuple[str, ...] = ()
        self._pending_restore: Optional[tuple[str, ...]] = None

    @property
    def snapshot(self) -> Optional[DeviceSnapshot]:
        return self._snapshot

    @property
    def selection(self) -> tuple[str, ...]:
        return self._selection

    @property
    def restore_pending(self) -> bool:
        return self._pending_restore is not None

    async def refresh(self) -> DeviceSnapshot:
        """Fetch a new snapshot and make it the current one.

        Errors of the fetch propagate; the previous snapshot is kept.
        """
        snapshot = await self._fetch_snapshot()
        self.apply(snapshot)
        return snapshot

    def apply(self, snapshot: DeviceSnapshot):
        self._snapshot = snapshot
        self._emit("devices_changed", snapshot)
        if self._pending_restore is not None:
            prior = self._pending_restore
            self._pending_restore = None
            self._restore(prior)

    def device_ids(self) -> list[str]:
        """Ids of all devices to offer, the CPU first."""
        if self._snapshot is None:
            return [CPU_DEVICE_ID] + [
                f"{GPU_DEVICE_PREFIX}{i}" for i in range(self._placeholders)
            ]
        return self._snapshot.device_ids

    def is_available(self, device_id: str) -> bool:
        if device_id == CPU_DEVICE_ID:
            return True
        if self._snapshot is None:
            return False
        device = self._snapshot.get(device_id)
        return device is not None and device.available

    def display_info(self, device_id: str) -> DeviceInfo:
        snapshot = self._snapshot
        if device_id == CPU_DEVICE_ID:
            summary = snapshot.memory_summary if snapshot is not None else None
            if summary is None:
                return DeviceInfo(name="CPU", available=True, memory="system memory")
            return DeviceInfo(
                name="CPU",
                available=True,
                memory=_memory_text(summary.free_gb, summary.total_gb),
                free_memory_gb=summary.free_gb,
                total_memory_gb=summary.total_gb,
            )

        device = snapshot.get(device_id) if snapshot is not None else None
        if device is None:
            index = device_id.removeprefix(GPU_DEVICE_PREFIX)
            return DeviceInfo(
                name=f"GPU {index}", available=False, memory=_memory_text(0, 0)
            )
        if device.free_memory_gb is None or device.total_memory_gb is None:
            return DeviceInfo(
                name=device.name,
                available=device.available,
                memory="memory info missing",
                utilization=device.utilization,
            )
        return DeviceInfo(
            name=device.name,
            available=device.available,
            memory=_memory_text(device.free_memory_gb, device.total_memory_gb),
            free_memory_gb=device.free_memory_gb,
            total_memory_gb=device.total_memory_gb,
            utilization=device.utilization,
        )

    def toggle(self, device_id: str) -> tuple[str, ...]:
        """Toggle a device in the selection.

        Deselecting always succeeds.

        Raises:
            DeviceUnavailableError: if `device_id` is to be selected
                but is not available in the current snapshot.
        """
        if device_id not in self._selection and not self.is_available(device_id):
            raise DeviceUnavailableError(device_id)
        self._set_selection(toggle_device(self._selection, device_id))
        return self._selection

    def clear_selection(self):
        self._set_selection(())

    def request_restore(self, prior_selection: Iterable[str]) -> Optional[bool]:
        """Ask to restore a device selection, for example the devices
        of a training job that is going to be restarted.

        The selection is restored as a whole only if every device in
        it is available and nothing has been selected in the meantime.
        Otherwise it is rejected and the user must choose again; a
        subset is never restored.

        If no snapshot has been received yet, the decision is made
        when the first one arrives.

        An empty prior selection leaves everything as it is.

        Returns:
            `True` if restored, `False` if rejected or empty,
            `None` if the decision is pending.
        """
        prior = tuple(prior_selection)
        if not prior:
            return False
        if self._snapshot is None:
            self._pending_restore = prior
            return None
        return self._restore(prior)

    def _restore(self, prior: tuple[str, ...]) -> bool:
        if not self._selection and all(self.is_available(d) for d in prior):
            LOG.info("Restored device selection %s", ", ".join(prior))
            self._set_selection(prior)
            self._emit("selection_restored", prior)
            return True
        LOG.info("Cannot restore device selection %s", ", ".join(prior))
        self._emit("selection_restore_rejected", prior)
        return False

    def _set_selection(self, selection: tuple[str, ...]):
        if selection != self._selection:
            self._selection = selection
            self._emit("selection_changed", selection)


def _memory_text(free_gb: float, total_gb: float) -> str:
    return f"free: {_round(free_gb)}GB / total: {_round(total_gb)}GB"


def _round(value: float) -> int:
    return math.floor(value + 0.5)
