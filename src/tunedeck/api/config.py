#  Copyright (c) 2026 by the Tunedeck team and contributors
#  Permissions are hereby granted under the terms of the Apache 2.0 License:
#  https://opensource.org/license/apache-2-0.

from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

from .defaults import (
    DEFAULT_API_URL,
    DEFAULT_CONFIG_PATH,
    DEFAULT_DETAIL_POLL_INTERVAL,
    DEFAULT_DOC_TASK_POLL_INTERVAL,
    DEFAULT_DOCKER_POLL_INTERVAL,
    DEFAULT_GPU_POLL_INTERVAL,
    DEFAULT_JOB_POLL_INTERVAL,
    DEFAULT_LOGS_POLL_INTERVAL,
    DEFAULT_PAGE_SIZE,
    DEFAULT_TIMEOUT,
    DEFAULT_TOKEN_HEADER,
)


class ClientConfig(BaseSettings):
    """Client configuration.

    Args:
        api_url: URL of the console's API proxy, for example
            `http://localhost:3010/api/proxy`.
        token: Optional access token sent with every request.
    """

    model_config = SettingsConfigDict(
        env_prefix="TUNEDECK_",
        extra="forbid",
    )

    api_url: Optional[str] = None

    # Authentication: the backend accepts the token both as
    # "Authorization: Bearer <token>" and in a custom header.
    token: Optional[str] = None
    token_header: str = DEFAULT_TOKEN_HEADER
    use_bearer: bool = True

    timeout: float = DEFAULT_TIMEOUT
    page_size: int = DEFAULT_PAGE_SIZE

    job_poll_interval: float = DEFAULT_JOB_POLL_INTERVAL
    detail_poll_interval: float = DEFAULT_DETAIL_POLL_INTERVAL
    logs_poll_interval: float = DEFAULT_LOGS_POLL_INTERVAL
    gpu_poll_interval: float = DEFAULT_GPU_POLL_INTERVAL
    doc_task_poll_interval: float = DEFAULT_DOC_TASK_POLL_INTERVAL
    docker_poll_interval: float = DEFAULT_DOCKER_POLL_INTERVAL

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"

    @property
    def auth_headers(self) -> dict[str, str]:
        """The HTTP authentication headers for this configuration."""
        if not self.token:
            return {}
        headers = {self.token_header: self.token}
        if self.use_bearer:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    @classmethod
    def create(
        cls,
        *,
        config: Optional["ClientConfig"] = None,
        config_path: Optional[Path | str] = None,
        **config_kwargs,
    ) -> "ClientConfig":
        # 0. from defaults
        config_dict = cls.get_default().to_dict()

        # 1. from file
        file_config = cls.from_file(config_path=config_path)
        if file_config is not None:
            config_dict.update(file_config.to_dict())

        # 2. from env
        env_config = cls()
        config_dict.update(env_config.to_dict())

        # 3. from config
        if config is not None:
            config_dict.update(config.to_dict())

        # 4. from kwargs
        config_dict.update(config_kwargs)

        return cls(**config_dict)

    @classmethod
    def from_file(
        cls, config_path: Optional[str | Path] = None
    ) -> Optional["ClientConfig"]:
        config_path_: Path = cls.normalize_config_path(config_path)
        if not config_path_.exists():
            return None
        with config_path_.open("rt") as stream:
            config_dict = yaml.safe_load(stream)
        if not config_dict:
            return None
        return ClientConfig(**config_dict)

    def write(self, config_path: Optional[str | Path] = None) -> Path:
        config_path = self.normalize_config_path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with config_path.open("wt") as stream:
            yaml.dump(self.model_dump(mode="json", exclude_none=True), stream)
        return config_path

    @classmethod
    def normalize_config_path(cls, config_path) -> Path:
        return (
            config_path
            if isinstance(config_path, Path)
            else (Path(config_path) if config_path else DEFAULT_CONFIG_PATH)
        )

    def to_dict(self):
        return self.model_dump(
            mode="json",
            exclude_none=True,
            exclude_defaults=True,
            exclude_unset=True,
        )

    @classmethod
    def get_default(cls) -> "ClientConfig":
        """Get the configuration default values."""
        return ClientConfig(**_DEFAULT_CONFIG.to_dict())

    @classmethod
    def set_default(cls, default_config: "ClientConfig") -> "ClientConfig":
        """Set the configuration default values.

        Args:
            default_config: A configuration object providing the defaults.
        Return:
            The previous defaults.
        """
        global _DEFAULT_CONFIG
        prev_default_config = _DEFAULT_CONFIG
        _DEFAULT_CONFIG = ClientConfig(**default_config.to_dict())
        return prev_default_config


_DEFAULT_CONFIG: ClientConfig = ClientConfig(api_url=DEFAULT_API_URL)
