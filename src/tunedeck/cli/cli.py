#  Copyright (c) 2026 by the Tunedeck team and contributors
#  Permissions are hereby granted under the terms of the Apache 2.0 License:
#  https://opensource.org/license/apache-2-0.

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Any, Awaitable, Callable, Optional

import click
import typer
import yaml

from tunedeck.api.client import Client
from tunedeck.api.exceptions import ClientError
from tunedeck.api.models import Job
from tunedeck.core.lifecycle import JobLifecycleTracker, JobWatch, WatchState
from tunedeck.core.paging import ALL, FilterCriteria, derive
from tunedeck.core.resources import ResourceAvailabilityTracker
from tunedeck.version import __version__

DEFAULT_CLI_NAME = "tunedeck"
DEFAULT_CLI_HELP = """
`{cli_name}` is a command line tool for monitoring the training tasks,
document tasks and compute resources of a knowledge-base and
model-training backend.

Use the `configure` command first to set the backend's API URL and
access token.
"""

CLI_CONFIG_OPTION = typer.Option(
    "--config",
    "-c",
    help="Path to the client configuration file.",
)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
DEFAULT_LOG_LEVEL = "WARNING"


def get_client(config_path: Path | str | None) -> Client:
    from .config import get_config

    return Client(config=get_config(config_path))


# noinspection PyShadowingBuiltins
def new_cli(
    name: str = DEFAULT_CLI_NAME,
    version: str | None = None,
    help: str | None = None,
) -> typer.Typer:
    """
    Create a CLI instance for the given, optional name and help text.

    Args:
        name: The name of the CLI application. Defaults to `tunedeck`.
        version: Optional version of a customized application.
        help: Optional CLI application help text. If not provided, a default
            help text will be used.
    Return:
        a `typer.Typer` instance
    """
    t = typer.Typer(
        name=name,
        help=help or DEFAULT_CLI_HELP.format(cli_name=name),
        invoke_without_command=True,
    )

    @t.callback()
    def main(
        ctx: typer.Context,
        version_: Annotated[
            bool, typer.Option("--version", help="Show version and exit.")
        ] = False,
        log_level: Annotated[
            Optional[str],
            typer.Option(
                "--log-level",
                help=f"Log level, one of {', '.join(LOG_LEVELS)}.",
            ),
        ] = None,
    ):
        if version_:
            typer.echo(
                f"{version} ({DEFAULT_CLI_NAME} {__version__})"
                if version
                else __version__
            )
            raise typer.Exit()
        if log_level is not None and log_level.upper() not in LOG_LEVELS:
            raise click.BadParameter(
                f"must be one of {', '.join(LOG_LEVELS)}", param_hint="--log-level"
            )
        ctx.ensure_object(dict)
        ctx.obj.setdefault("get_client", get_client)
        ctx.obj["log_level"] = log_level
        _configure_logging(log_level or DEFAULT_LOG_LEVEL)

    @t.command()
    def configure(
        config_path: Annotated[Optional[Path], CLI_CONFIG_OPTION] = None,
        api_url: Annotated[
            Optional[str], typer.Option(help="URL of the backend's API.")
        ] = None,
        token: Annotated[Optional[str], typer.Option(help="Access token.")] = None,
        token_header: Annotated[
            Optional[str], typer.Option(help="Header that carries the token.")
        ] = None,
        use_bearer: Annotated[
            Optional[bool],
            typer.Option(
                "--use-bearer/--no-bearer",
                help="Also send the token as bearer token.",
            ),
        ] = None,
    ):
        """Configure the client tool."""
        from .config import configure_client

        path = configure_client(
            config_path=config_path,
            api_url=api_url,
            token=token,
            token_header=token_header,
            use_bearer=use_bearer,
        )
        typer.echo(f"Client configuration written to {path}")

    @t.command("list-tasks")
    def list_tasks(
        ctx: typer.Context,
        query: Annotated[
            str, typer.Option("--query", "-q", help="Part of a task name or id.")
        ] = "",
        status: Annotated[
            str, typer.Option("--status", "-s", help="Task status or 'all'.")
        ] = ALL,
        type_: Annotated[
            str, typer.Option("--type", "-t", help="Training type or 'all'.")
        ] = ALL,
        page: Annotated[int, typer.Option("--page", "-p", min=1)] = 1,
        page_size: Annotated[Optional[int], typer.Option(min=1)] = None,
        config_path: Annotated[Optional[Path], CLI_CONFIG_OPTION] = None,
    ):
        """List training tasks, filtered and paginated."""

        async def _list_tasks(client: Client) -> dict[str, Any]:
            jobs = await client.list_training_tasks()
            view_page = derive(
                jobs,
                FilterCriteria(name_or_id=query, status=status, type=type_),
                page,
                page_size or client.config.page_size,
            )
            return {
                "page": view_page.current_page,
                "total_pages": view_page.total_pages,
                "count": view_page.filtered_count,
                "tasks": [_job_to_dict(job) for job in view_page.rows],
            }

        _output(_run_with_client(ctx, config_path, _list_tasks))

    @t.command("watch-task")
    def watch_task(
        ctx: typer.Context,
        task_id: Annotated[str, typer.Argument(help="Training task identifier.")],
        interval: Annotated[
            Optional[float],
            typer.Option(help="Poll interval in seconds.", min=0.001),
        ] = None,
        config_path: Annotated[Optional[Path], CLI_CONFIG_OPTION] = None,
    ):
        """Watch a training task until it has finished and
        output its evaluation results if it succeeded."""

        async def _watch_task(client: Client) -> dict[str, Any]:
            printer = _WatchPrinter()
            tracker = JobLifecycleTracker(
                client.get_training_task,
                client.get_eval_results,
                interval=interval or client.config.detail_poll_interval,
            )
            tracker.register(printer)
            try:
                job = await client.get_training_task(task_id)
            except ValueError as e:
                raise click.ClickException(f"{e}") from e
            printer.print_job(job)
            watch = await tracker.watch(task_id, job)
            try:
                if watch.state != WatchState.stopped:
                    await printer.stopped.wait()
            finally:
                tracker.close()
            if watch.error is not None:
                raise click.ClickException(
                    f"Stopped watching task {task_id}: {watch.error}"
                ) from watch.error
            result: dict[str, Any] = {"task": _job_to_dict(watch.job)}
            if watch.supplementary_fetched:
                result["eval_results"] = watch.supplementary
            return result

        _output(_run_with_client(ctx, config_path, _watch_task))

    @t.command("stop-task")
    def stop_task(
        ctx: typer.Context,
        task_id: Annotated[str, typer.Argument(help="Training task identifier.")],
        config_path: Annotated[Optional[Path], CLI_CONFIG_OPTION] = None,
    ):
        """Stop a running training task."""
        message = _run_with_client(
            ctx, config_path, lambda client: client.stop_training(task_id)
        )
        typer.echo(message or f"Stopped task {task_id}")

    @t.command("delete-task")
    def delete_task(
        ctx: typer.Context,
        task_id: Annotated[str, typer.Argument(help="Training task identifier.")],
        config_path: Annotated[Optional[Path], CLI_CONFIG_OPTION] = None,
    ):
        """Delete a training task."""
        message = _run_with_client(
            ctx, config_path, lambda client: client.delete_training_task(task_id)
        )
        typer.echo(message or f"Deleted task {task_id}")

    @t.command("gpus")
    def gpus(
        ctx: typer.Context,
        config_path: Annotated[Optional[Path], CLI_CONFIG_OPTION] = None,
    ):
        """Show the compute devices and their availability."""

        async def _gpus(client: Client) -> list[dict[str, Any]]:
            tracker = ResourceAvailabilityTracker(client.get_device_snapshot)
            await tracker.refresh()
            devices = []
            for device_id in tracker.device_ids():
                info = tracker.display_info(device_id)
                devices.append(
                    {
                        "id": device_id,
                        "name": info.name,
                        "available": info.available,
                        "memory": info.memory,
                    }
                )
            return devices

        _output(_run_with_client(ctx, config_path, _gpus))

    @t.command("doc-tasks")
    def doc_tasks(
        ctx: typer.Context,
        knowledge_base_id: Annotated[
            str, typer.Argument(metavar="KB_ID", help="Knowledge base identifier.")
        ],
        page: Annotated[int, typer.Option("--page", "-p", min=1)] = 1,
        page_size: Annotated[Optional[int], typer.Option(min=1)] = None,
        config_path: Annotated[Optional[Path], CLI_CONFIG_OPTION] = None,
    ):
        """List the document ingestion tasks of a knowledge base."""

        async def _doc_tasks(client: Client) -> dict[str, Any]:
            remote_page = await client.list_doc_tasks(
                knowledge_base_id, page=page, page_size=page_size
            )
            return {
                "page": remote_page.page,
                "total_pages": remote_page.total_pages,
                "tasks": [_job_to_dict(job) for job in remote_page.items],
            }

        _output(_run_with_client(ctx, config_path, _doc_tasks))

    return t


cli = new_cli()

__all__ = ["cli", "new_cli"]


class _WatchPrinter:
    def __init__(self):
        self.stopped = asyncio.Event()

    def on_job_status(self, watch: JobWatch):
        if watch.job is not None:
            self.print_job(watch.job)

    # noinspection PyMethodMayBeStatic
    def print_job(self, job: Job):
        typer.echo(f"{job.id}: {job.raw_status or job.status.value} {job.progress:g}%")

    def on_watch_stopped(self, _watch: JobWatch):
        self.stopped.set()


def _run_with_client(
    ctx: typer.Context,
    config_path: Optional[Path],
    fn: Callable[[Client], Awaitable[Any]],
) -> Any:
    get_client: Callable[[Path | None], Client] = ctx.obj["get_client"]

    async def _main():
        async with get_client(config_path) as client:
            if ctx.obj.get("log_level") is None:
                _configure_logging(client.config.log_level)
            return await fn(client)

    try:
        return asyncio.run(_main())
    except ClientError as e:
        raise click.ClickException(f"{e}") from e


def _configure_logging(level: str):
    logging.basicConfig()
    logging.getLogger("tunedeck").setLevel(level.upper())


def _output(value: Any):
    typer.echo(yaml.safe_dump(value, sort_keys=False, allow_unicode=True))


def _job_to_dict(job: Optional[Job]) -> Optional[dict[str, Any]]:
    if job is None:
        return None
    return job.model_dump(mode="json", exclude={"raw"}, exclude_none=True)
