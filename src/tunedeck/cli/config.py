#  Copyright (c) 2026 by the Tunedeck team and contributors
#  Permissions are hereby granted under the terms of the Apache 2.0 License:
#  https://opensource.org/license/apache-2-0.

from pathlib import Path
from typing import Any

import click
import typer

from tunedeck.api.config import ClientConfig
from tunedeck.api.defaults import DEFAULT_API_URL


def get_config(config_path: Path | str | None) -> ClientConfig:
    file_config = ClientConfig.from_file(config_path=config_path)
    if file_config is None:
        if config_path is None:
            raise click.ClickException(
                "The client tool has not yet been configured;"
                " please use the 'configure' command to set it up."
            )
        else:
            raise click.ClickException(
                f"Configuration file {config_path} not found or empty."
            )
    return ClientConfig.create(config=file_config)


_HIDDEN_INPUT = 6 * "*"


def configure_client(
    config_path: Path | str | None = None,
    **cli_params: Any,
) -> Path:
    """Prompt for the configuration values not given
    in `cli_params` and write the configuration file."""
    prev_params = ClientConfig.create(config_path=config_path).to_dict()
    curr_params: dict[str, Any] = {}

    api_url = cli_params.get("api_url")
    if not api_url:
        api_url = typer.prompt(
            "API URL",
            default=prev_params.get("api_url") or DEFAULT_API_URL,
        )
    curr_params.update(api_url=api_url)

    token = cli_params.get("token")
    if token is None:
        prev_token = prev_params.get("token")
        _token = typer.prompt(
            "Access token (leave empty for none)",
            type=str,
            hide_input=True,
            default=_HIDDEN_INPUT if prev_token else "",
            show_default=False,
        )
        token = prev_token if _token == _HIDDEN_INPUT and prev_token else _token
    if token:
        curr_params.update(token=token)

    for key in ("token_header", "use_bearer"):
        value = cli_params.get(key)
        if value is None:
            value = prev_params.get(key)
        if value is not None:
            curr_params[key] = value

    config = ClientConfig(**curr_params)
    return config.write(config_path=config_path)
