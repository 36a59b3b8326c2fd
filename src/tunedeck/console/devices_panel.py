#  Copyright (c) 2026 by the Tunedeck team and contributors
#  Permissions are hereby granted under the terms of the Apache 2.0 License:
#  https://opensource.org/license/apache-2-0.

from collections.abc import Iterable, Sequence

import pandas as pd
import param

from tunedeck.api.models import DeviceSnapshot
from tunedeck.core.resources import DeviceUnavailableError, ResourceAvailabilityTracker

DATAFRAME_COLUMNS = ["device_id", "name", "available", "selected", "memory"]


class DevicesPanelViewModel(param.Parameterized):
    """Reactive state of a device selection panel."""

    device_ids = param.List(default=[])
    selection = param.List(default=[])
    message = param.String(default="")
    version = param.Integer(default=0)

    def __init__(self, tracker: ResourceAvailabilityTracker):
        super().__init__()
        self._tracker = tracker
        self.device_ids = tracker.device_ids()
        self.selection = list(tracker.selection)

    # ---- tracker events ----

    def on_devices_changed(self, _snapshot: DeviceSnapshot):
        self.device_ids = self._tracker.device_ids()
        self.version += 1

    def on_selection_changed(self, selection: Sequence[str]):
        self.selection = list(selection)

    def on_selection_restored(self, selection: Sequence[str]):
        self.message = f"✅ Restored devices {_device_list(selection)}"

    def on_selection_restore_rejected(self, selection: Sequence[str]):
        self.message = (
            f"⚠️ Devices {_device_list(selection)} are no longer available,"
            f" please select again"
        )

    # ---- derived (pure) ----

    @param.depends("device_ids", "selection", "version")
    def dataframe(self) -> pd.DataFrame:
        selected = set(self.selection)
        rows = []
        for device_id in self.device_ids:
            info = self._tracker.display_info(device_id)
            rows.append(
                {
                    "device_id": device_id,
                    "name": info.name,
                    "available": info.available,
                    "selected": device_id in selected,
                    "memory": info.memory,
                }
            )
        return pd.DataFrame(rows, columns=DATAFRAME_COLUMNS)

    # ---- actions mutate state ----

    def toggle(self, device_id: str):
        try:
            self._tracker.toggle(device_id)
            self.message = ""
        except DeviceUnavailableError as e:
            self.message = f"⚠️ {e}"


def _device_list(device_ids: Iterable[str]) -> str:
    return ", ".join(f"`{device_id}`" for device_id in device_ids) or "-"
