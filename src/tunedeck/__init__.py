#  Copyright (c) 2026 by the Tunedeck team and contributors
#  Permissions are hereby granted under the terms of the Apache 2.0 License:
#  https://opensource.org/license/apache-2-0.

from .api import Client, ClientConfig
from .version import __version__

__all__ = [
    "Client",
    "ClientConfig",
    "__version__",
]
