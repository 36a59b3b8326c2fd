#  Copyright (c) 2026 by the Tunedeck team and contributors
#  Permissions are hereby granted under the terms of the Apache 2.0 License:
#  https://opensource.org/license/apache-2-0.

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

CPU_DEVICE_ID = "cpu"
GPU_DEVICE_PREFIX = "cuda:"


class JobStatus(str, Enum):
    pending = "pending"
    running = "running"
    succeeded = "succeeded"
    failed = "failed"
    stopped = "stopped"
    deployed = "deployed"
    unknown = "unknown"

    @property
    def is_active(self) -> bool:
        return self in (JobStatus.pending, JobStatus.running)


class Job(BaseModel):
    """Canonical record of one remote unit of work,
    a training task or a document-ingestion task.

    Instances are produced by [to_job()][tunedeck.api.normalize.to_job]
    only; the rest of the package never looks at wire payloads.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    task_id: Optional[str] = None
    name: Optional[str] = None
    status: JobStatus = JobStatus.unknown
    # Lower-cased status as sent by the backend, e.g. "completed"
    raw_status: str = ""
    created_at: Optional[datetime] = None
    # Percentage in the range 0..100
    progress: float = 0.0
    type: Optional[str] = None
    type_alias: Optional[str] = None
    error_message: Optional[str] = None
    raw: dict[str, Any] = Field(default_factory=dict, repr=False)


class DockerServer(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    base_url: str = ""
    raw: dict[str, Any] = Field(default_factory=dict, repr=False)


class RemotePage(BaseModel):
    """One page of a server-paged list."""

    items: list[Any] = Field(default_factory=list)
    page: int = 1
    page_size: int
    total: Optional[int] = None
    total_pages: int = 1


class MemorySummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_gb: float = 0.0
    free_gb: float = 0.0
    used_gb: Optional[float] = None


class Device(BaseModel):
    """A compute unit that can be selected for a training job.

    `id` is either `"cpu"` or `"cuda:<n>"`. The CPU is always
    available; a GPU only if the backend reports it as `free`.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    available: bool = False
    # Allocation status as sent by the backend, e.g. "allocated"
    status: str = ""
    task_id: Optional[str] = None
    free_memory_gb: Optional[float] = None
    total_memory_gb: Optional[float] = None
    utilization: Optional[float] = None

    @property
    def is_cpu(self) -> bool:
        return self.id == CPU_DEVICE_ID


class DeviceSnapshot(BaseModel):
    """Availability of all compute devices at one point in time."""

    model_config = ConfigDict(frozen=True)

    devices: tuple[Device, ...] = ()
    memory_summary: Optional[MemorySummary] = None

    def get(self, device_id: str) -> Optional[Device]:
        for device in self.devices:
            if device.id == device_id:
                return device
        return None

    @property
    def device_ids(self) -> list[str]:
        return [device.id for device in self.devices]
