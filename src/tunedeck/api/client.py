#  Copyright (c) 2026 by the Tunedeck team and contributors
#  Permissions are hereby granted under the terms of the Apache 2.0 License:
#  https://opensource.org/license/apache-2-0.

from typing import Any, Optional

from .config import ClientConfig
from .models import DeviceSnapshot, DockerServer, Job, RemotePage
from .normalize import (
    extract_items,
    remote_total_pages,
    to_device_snapshot,
    to_docker_servers,
    to_job,
    to_jobs,
    to_restart_config,
)
from .transport import Envelope, HttpxTransport, Transport, TransportArgs

TRAINING = "api/v1/unified_training"


class Client:
    """Asynchronous client of the remote job and resource API.

    Query methods return normalized models. Command methods return
    the server's message. Both raise a
    [TransportError][tunedeck.api.exceptions.TransportError] if no
    envelope could be obtained and a
    [ResponseError][tunedeck.api.exceptions.ResponseError] if the
    envelope reports `code != 200`.

    Args:
        config: Optional client configuration.
        config_kwargs: Configuration values overriding `config`.
    """

    def __init__(
        self,
        *,
        config: Optional[ClientConfig] = None,
        _transport: Optional[Transport] = None,
        **config_kwargs: Any,
    ):
        self._config = ClientConfig.create(config=config, **config_kwargs)
        self._transport = _transport or HttpxTransport(
            self._config.api_url or "",
            headers=self._config.auth_headers,
            timeout=self._config.timeout,
        )

    @property
    def config(self) -> ClientConfig:
        return self._config

    async def close(self):
        await self._transport.close()

    async def __aenter__(self) -> "Client":
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    # ---- training tasks ----

    async def list_training_tasks(self) -> list[Job]:
        """Get the complete list of training tasks, unpaged."""
        envelope = await self._call(path=f"{TRAINING}/tasks")
        return to_jobs(extract_items(envelope.data))

    async def get_training_task(self, task_id: str) -> Job:
        envelope = await self._call(path=f"{TRAINING}/tasks/{task_id}")
        data = envelope.data
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected task payload for {task_id!r}")
        return to_job(data)

    async def get_training_logs(self, task_id: str) -> Any:
        envelope = await self._call(
            path=f"{TRAINING}/training_logs",
            params={"task_id": task_id},
        )
        return envelope.data

    async def get_loss_data(self, task_id: str) -> Any:
        envelope = await self._call(path=f"{TRAINING}/tasks/{task_id}/loss_data")
        return envelope.data

    async def get_eval_results(self, task_id: str) -> Any:
        envelope = await self._call(path=f"{TRAINING}/tasks/{task_id}/eval_results")
        return envelope.data

    async def get_datasets(self, task_id: str) -> Any:
        envelope = await self._call(path=f"{TRAINING}/tasks/{task_id}/datasets")
        return envelope.data

    async def get_restart_config(self, task_id: str) -> dict[str, Any]:
        """Get the configuration a task was started with, flattened."""
        envelope = await self._call(
            path=f"{TRAINING}/tasks/{task_id}/restart_config"
        )
        return to_restart_config(envelope.data)

    async def start_training(self, training_config: dict[str, Any]) -> str:
        envelope = await self._call(
            path=f"{TRAINING}/start_training",
            method="post",
            json=training_config,
        )
        return envelope.msg

    async def stop_training(self, task_id: str) -> str:
        envelope = await self._call(
            path=f"{TRAINING}/stop_training",
            method="post",
            params={"task_id": task_id},
        )
        return envelope.msg

    async def delete_training_task(self, task_id: str) -> str:
        envelope = await self._call(
            path=f"{TRAINING}/tasks/{task_id}", method="delete"
        )
        return envelope.msg

    # ---- compute resources ----

    async def get_gpu_status(self) -> dict[str, Any]:
        """Get the raw GPU status payload."""
        envelope = await self._call(path=f"{TRAINING}/gpu/status")
        return envelope.data if isinstance(envelope.data, dict) else {}

    async def get_device_snapshot(self) -> DeviceSnapshot:
        return to_device_snapshot(await self.get_gpu_status())

    # ---- document ingestion tasks ----

    async def list_doc_tasks(
        self, knowledge_base_id: str, page: int = 1, page_size: Optional[int] = None
    ) -> RemotePage:
        page_size = page_size or self._config.page_size
        envelope = await self._call(
            path="api/v1/documents/list_doc_tasks",
            method="post",
            json={
                "doc_knowledge_base_id": knowledge_base_id,
                "page_num": page,
                "page_size": page_size,
            },
        )
        return self._to_remote_page(envelope.data, page, page_size, to_jobs)

    # ---- deployment ----

    async def list_docker_servers(self) -> list[DockerServer]:
        envelope = await self._call(
            path="api/v1/docker_servers/list_all_docker_servers",
            method="post",
            json={
                "server_name": "",
                "srv_base_url": "",
                "page_size": 10,
                "page_num": 1,
            },
        )
        return to_docker_servers(extract_items(envelope.data))

    async def delete_docker_server(self, server_id: str) -> str:
        envelope = await self._call(
            path="api/v1/docker_servers/delete_docker_server",
            method="post",
            json={"id": server_id},
        )
        return envelope.msg

    async def list_deployments(
        self,
        page: int = 1,
        page_size: Optional[int] = None,
        model_type: Optional[int] = None,
    ) -> RemotePage:
        page_size = page_size or self._config.page_size
        request: dict[str, Any] = {"page_size": page_size, "page_num": page}
        if model_type is not None:
            request["model_type"] = model_type
        envelope = await self._call(
            path="api/v1/model_deploy/list_model_deploy",
            method="post",
            json=request,
        )
        return self._to_remote_page(envelope.data, page, page_size, list)

    async def deploy_model(self, deploy_request: dict[str, Any]) -> str:
        if (
            not deploy_request.get("docker_server_id")
            or not deploy_request.get("model_path")
            or deploy_request.get("model_type") is None
        ):
            raise ValueError(
                "docker_server_id, model_path and model_type are required"
            )
        envelope = await self._call(
            path="api/v1/model_deploy/one_click_deploy",
            method="post",
            json=deploy_request,
        )
        return envelope.msg

    async def stop_deployment(self, docker_server_id: str, deployment_id: str) -> str:
        envelope = await self._call(
            path="api/v1/model_deploy/stop_model",
            method="post",
            json={
                "docker_server_id": docker_server_id,
                "model_deploy_id": deployment_id,
            },
        )
        return envelope.msg

    # ---- helpers ----

    async def _call(self, **kwargs: Any) -> Envelope:
        envelope = await self._transport.call(TransportArgs(**kwargs))
        return envelope.raise_for_code()

    @staticmethod
    def _to_remote_page(data: Any, page: int, page_size: int, convert) -> RemotePage:
        items = convert(extract_items(data))
        return RemotePage(
            items=items,
            page=page,
            page_size=page_size,
            total=data.get("total") if isinstance(data, dict) else None,
            total_pages=remote_total_pages(data, page, page_size, len(items)),
        )
