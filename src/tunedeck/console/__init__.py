#  Copyright (c) 2026 by the Tunedeck team and contributors
#  Permissions are hereby granted under the terms of the Apache 2.0 License:
#  https://opensource.org/license/apache-2-0.

from .console import Console, filter_servers
from .devices_panel import DevicesPanelViewModel
from .jobs_panel import JobsPanelViewModel

__all__ = [
    "Console",
    "DevicesPanelViewModel",
    "JobsPanelViewModel",
    "filter_servers",
]
