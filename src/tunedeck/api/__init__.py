#  Copyright (c) 2026 by the Tunedeck team and contributors
#  Permissions are hereby granted under the terms of the Apache 2.0 License:
#  https://opensource.org/license/apache-2-0.

from .client import Client
from .config import ClientConfig
from .exceptions import ClientError, ResponseError, TransportError
from .models import (
    Device,
    DeviceSnapshot,
    DockerServer,
    Job,
    JobStatus,
    RemotePage,
)
from .transport import Envelope, HttpxTransport, Transport, TransportArgs

__all__ = [
    "Client",
    "ClientConfig",
    "ClientError",
    "Device",
    "DeviceSnapshot",
    "DockerServer",
    "Envelope",
    "HttpxTransport",
    "Job",
    "JobStatus",
    "RemotePage",
    "ResponseError",
    "Transport",
    "TransportArgs",
    "TransportError",
]
