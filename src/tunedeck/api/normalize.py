#  Copyright (c) 2026 by the Tunedeck team and contributors
#  Permissions are hereby granted under the terms of the Apache 2.0 License:
#  https://opensource.org/license/apache-2-0.

"""
Boundary adapter that maps the different payload shapes sent by the
backend services into the canonical models of this package.

The same logical list appears under different keys depending on the
endpoint and on the backend version, and records use different field
names for the same thing. Nothing outside this module needs to know.
"""

import logging
import math
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any, Optional

from .models import (
    CPU_DEVICE_ID,
    GPU_DEVICE_PREFIX,
    Device,
    DeviceSnapshot,
    DockerServer,
    Job,
    JobStatus,
    MemorySummary,
)

LOG = logging.getLogger(__name__)

LIST_KEYS = ("tasks", "items", "list", "servers", "models", "deployments")

ID_KEYS = ("id", "task_id", "job_id", "doc_id")
NAME_KEYS = ("task_name", "model_name", "name", "doc_name", "filename", "doc_title")
CREATED_KEYS = ("created_at", "created_time", "create_time", "createdAt")
ERROR_KEYS = ("error_message", "error_msg", "error")

STATUS_SYNONYMS: dict[str, JobStatus] = {
    "pending": JobStatus.pending,
    "queued": JobStatus.pending,
    "waiting": JobStatus.pending,
    "created": JobStatus.pending,
    "running": JobStatus.running,
    "processing": JobStatus.running,
    "succeeded": JobStatus.succeeded,
    "completed": JobStatus.succeeded,
    "success": JobStatus.succeeded,
    "failed": JobStatus.failed,
    "stopped": JobStatus.stopped,
    "cancelled": JobStatus.stopped,
    "canceled": JobStatus.stopped,
    "deployed": JobStatus.deployed,
}

# Document tasks report a numeric status
DOC_TASK_STATUS_NAMES: dict[int, str] = {
    0: "processing",
    1: "success",
    2: "failed",
}


def extract_items(data: Any) -> list[Any]:
    """Get the list of records from a list endpoint's payload.

    Args:
        data: The `data` member of a response envelope.

    Returns:
        The list of raw records, empty if `data` holds none.
    """
    if isinstance(data, list):
        return data
    if isinstance(data, Mapping):
        for key in LIST_KEYS:
            value = data.get(key)
            if isinstance(value, list):
                return value
    return []


def remote_total_pages(data: Any, page: int, page_size: int, n_items: int) -> int:
    """Compute the page count of a server-paged list.

    Prefers `total`, then `total_pages`. If the server reports
    neither, a full page is taken as a hint that at least one
    more page exists.
    """
    if isinstance(data, Mapping):
        total = data.get("total")
        if isinstance(total, (int, float)) and page_size > 0:
            return max(1, math.ceil(total / page_size))
        total_pages = data.get("total_pages")
        if isinstance(total_pages, (int, float)):
            return max(1, int(total_pages))
    if page_size > 0 and n_items >= page_size:
        return page + 1
    return 1


def normalize_status(value: Any) -> tuple[JobStatus, str]:
    """Normalize a wire status.

    Returns:
        A pair of the canonical status and the lower-cased raw status.
    """
    if isinstance(value, bool):
        value = None
    if isinstance(value, int):
        value = DOC_TASK_STATUS_NAMES.get(value, str(value))
    raw_status = str(value).strip().lower() if value is not None else ""
    return STATUS_SYNONYMS.get(raw_status, JobStatus.unknown), raw_status


def normalize_progress(value: Any) -> float:
    """Normalize progress to a percentage.

    Fractional floats in the range 0..1 are scaled by 100,
    integers are always taken as percentages.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        progress = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(progress):
        return 0.0
    if isinstance(value, float) and 0.0 < progress <= 1.0:
        progress *= 100.0
    return min(100.0, max(0.0, progress))


def parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def to_job(raw: Mapping[str, Any]) -> Job:
    """Map one raw task record into a [Job][tunedeck.api.models.Job].

    Raises:
        ValueError: if the record has no identifier.
    """
    job_id = _first(raw, ID_KEYS)
    if job_id is None or str(job_id) == "":
        raise ValueError(f"Record without identifier: {dict(raw)!r}")
    status, raw_status = normalize_status(raw.get("status"))
    task_id = raw.get("task_id")
    type_ = raw.get("train_type")
    type_alias = raw.get("task_type")
    if type_ is None and type_alias is None:
        type_ = raw.get("file_type")
    error_message = _first(raw, ERROR_KEYS) if status == JobStatus.failed else None
    name = _first(raw, NAME_KEYS)
    return Job(
        id=str(job_id),
        task_id=str(task_id) if task_id is not None else None,
        name=str(name) if name is not None else None,
        status=status,
        raw_status=raw_status,
        created_at=parse_timestamp(_first(raw, CREATED_KEYS)),
        progress=normalize_progress(raw.get("progress")),
        type=str(type_) if type_ is not None else None,
        type_alias=str(type_alias) if type_alias is not None else None,
        error_message=str(error_message) if error_message is not None else None,
        raw=dict(raw),
    )


def to_jobs(records: Iterable[Any]) -> list[Job]:
    """Map raw records into jobs, dropping records that cannot be mapped."""
    jobs = []
    for record in records:
        if not isinstance(record, Mapping):
            LOG.warning("Ignoring job record of type %s", type(record).__name__)
            continue
        try:
            jobs.append(to_job(record))
        except ValueError as e:
            LOG.warning("Ignoring job record: %s", e)
    return jobs


def to_docker_server(raw: Mapping[str, Any]) -> DockerServer:
    server_id = _first(raw, ("id", "server_id", "docker_server_id"))
    if server_id is None:
        raise ValueError(f"Record without identifier: {dict(raw)!r}")
    return DockerServer(
        id=str(server_id),
        name=str(_first(raw, ("server_name", "name")) or ""),
        base_url=str(_first(raw, ("srv_base_url", "base_url", "url")) or ""),
        raw=dict(raw),
    )


def to_docker_servers(records: Iterable[Any]) -> list[DockerServer]:
    servers = []
    for record in records:
        if not isinstance(record, Mapping):
            continue
        try:
            servers.append(to_docker_server(record))
        except ValueError as e:
            LOG.warning("Ignoring docker server record: %s", e)
    return servers


def to_restart_config(data: Any) -> dict[str, Any]:
    """Flatten a restart configuration: the entries of its
    `training_params` take precedence over the top-level ones."""
    if not isinstance(data, Mapping):
        return {}
    config = dict(data)
    training_params = config.get("training_params")
    if isinstance(training_params, Mapping):
        config.update(training_params)
    return config


def restart_devices(config: Mapping[str, Any]) -> list[str]:
    """Device ids a job ran on, from its `device` entry,
    for example `"cuda:0, cuda:1"`."""
    device = config.get("device")
    if isinstance(device, str):
        device = device.split(",")
    if not isinstance(device, (list, tuple)):
        return []
    return [d.strip() for d in device if isinstance(d, str) and d.strip()]


def _first(raw: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return None


def to_device_snapshot(data: Any) -> DeviceSnapshot:
    """Map a GPU status payload into a
    [DeviceSnapshot][tunedeck.api.models.DeviceSnapshot].

    GPU records are expected under `gpu_details` or `devices`, either
    as a mapping from GPU index to record or as a list of records.
    A GPU is available only if its status is exactly `"free"`.
    The CPU is always part of the snapshot and always available.
    """
    summary = None
    gpu_records: Any = None
    if isinstance(data, Mapping):
        summary = _to_memory_summary(data.get("memory_summary"))
        gpu_records = data.get("gpu_details")
        if gpu_records is None:
            gpu_records = data.get("devices")

    if isinstance(gpu_records, Mapping):
        indexed = list(gpu_records.items())
    elif isinstance(gpu_records, list):
        indexed = [
            (
                record.get("index", i) if isinstance(record, Mapping) else i,
                record,
            )
            for i, record in enumerate(gpu_records)
        ]
    else:
        indexed = []

    gpus = []
    for index, record in sorted(indexed, key=lambda item: _index_key(item[0])):
        if not isinstance(record, Mapping):
            LOG.warning("Ignoring GPU record of type %s", type(record).__name__)
            continue
        gpus.append(_to_gpu(str(index).strip(), record))

    cpu = Device(
        id=CPU_DEVICE_ID,
        name="CPU",
        available=True,
        status="free",
        free_memory_gb=summary.free_gb if summary is not None else None,
        total_memory_gb=summary.total_gb if summary is not None else None,
    )
    return DeviceSnapshot(devices=(cpu, *gpus), memory_summary=summary)


def _to_gpu(index: str, raw: Mapping[str, Any]) -> Device:
    status = raw.get("status")
    status = status if isinstance(status, str) else ""
    memory = raw.get("memory")
    memory = memory if isinstance(memory, Mapping) else {}
    utilization = raw.get("utilization")
    if isinstance(utilization, Mapping):
        utilization = utilization.get("gpu_percent")
    task_id = raw.get("task_id")
    return Device(
        id=f"{GPU_DEVICE_PREFIX}{index}",
        name=str(raw.get("gpu_name") or f"GPU {index}"),
        available=status == "free",
        status=status,
        task_id=str(task_id) if task_id is not None else None,
        free_memory_gb=_to_float(memory.get("free_gb")),
        total_memory_gb=_to_float(memory.get("total_gb")),
        utilization=_to_float(utilization),
    )


def _to_memory_summary(raw: Any) -> Optional[MemorySummary]:
    if not isinstance(raw, Mapping):
        return None
    return MemorySummary(
        total_gb=_to_float(raw.get("total_gb")) or 0.0,
        free_gb=_to_float(raw.get("free_gb")) or 0.0,
        used_gb=_to_float(raw.get("used_gb")),
    )


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _index_key(index: Any) -> tuple[int, int, str]:
    text = str(index).strip()
    if text.isdigit():
        return 0, int(text), ""
    return 1, 0, text
