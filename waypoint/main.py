"""Waypoint entry point: wires the engine together and exposes the CLI."""

from __future__ import annotations

import asyncio
import json
import signal
import sys
from typing import Any

import click
import httpx
import yaml

from waypoint import __version__
from waypoint.config import Settings, load_settings
from waypoint.core.checkpoint import COMPLETED, CheckpointStore
from waypoint.core.confirmation import ConfirmationGateway
from waypoint.core.environment import HostEnvironment
from waypoint.core.errors import WaypointError
from waypoint.core.llm import create_generator
from waypoint.core.runner import TaskRunner
from waypoint.core.signals import ControlSignals, parse_duration
from waypoint.handlers import build_default_dispatcher
from waypoint.notify import create_notifier
from waypoint.planner.engine import ExecutionEngine
from waypoint.planner.parser import is_valid_task_id, parse_plan
from waypoint.utils.logging import get_logger, setup_logging
from waypoint.webhooks.handlers import SECRET_HEADER
from waypoint.webhooks.server import DecisionServer

log = get_logger(__name__)


class Waypoint:
    """Main application orchestrator."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        tasks_dir = settings.get_tasks_dir()

        self.store = CheckpointStore(
            tasks_dir,
            write_attempts=settings.storage.write_attempts,
            write_backoff=settings.storage.write_backoff,
        )
        self.signals = ControlSignals(tasks_dir)
        self.notifier = create_notifier(settings.notifications)
        self.gateway = ConfirmationGateway(self.notifier, timeout=settings.engine.confirmation_timeout)
        self.generator = create_generator(settings.llm)
        self.dispatcher = build_default_dispatcher(settings.handlers, self.notifier, self.generator)
        self.engine = ExecutionEngine(
            store=self.store,
            dispatcher=self.dispatcher,
            signals=self.signals,
            gateway=self.gateway,
            notifier=self.notifier,
            environment=HostEnvironment(settings.environment, settings.get_data_dir()),
            config=settings.engine,
        )
        self.runner = TaskRunner(self.engine, self.notifier)
        self.decision_server: DecisionServer | None = None
        if settings.decisions.enabled:
            self.decision_server = DecisionServer(settings.decisions, self.gateway)

    async def start(self) -> None:
        log.info(
            "waypoint_starting",
            version=__version__,
            data_dir=str(self.settings.get_data_dir()),
            notifier=self.notifier.channel_name,
        )
        if self.decision_server is not None:
            await self.decision_server.start()

    async def stop(self) -> None:
        log.info("waypoint_stopping")
        await self.runner.shutdown()
        if self.decision_server is not None:
            await self.decision_server.stop()
        await self.generator.close()
        await self.notifier.close()
        log.info("waypoint_stopped")


async def run_plans(settings: Settings, documents: list[dict[str, Any]]) -> dict[str, str]:
    """Run plans to completion. Returns task id -> final status."""
    app = Waypoint(settings)

    loop = asyncio.get_running_loop()
    stopping = False

    def _signal_handler() -> None:
        nonlocal stopping
        if stopping:
            return
        stopping = True
        log.info("shutdown_signal")
        loop.create_task(app.runner.shutdown())

    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _signal_handler)

    await app.start()
    try:
        for document in documents:
            app.runner.submit(document)
        results = await app.runner.wait()
    finally:
        await app.stop()

    return {
        task_id: checkpoint.status if checkpoint is not None else "interrupted"
        for task_id, checkpoint in results.items()
    }


def _load_document(path: str) -> dict[str, Any]:
    # YAML is a superset of JSON
    with open(path) as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise click.BadParameter(f"{path} does not contain a plan object")
    return data


def _task_id(ctx: click.Context, param: click.Parameter, value: str | None) -> str | None:
    if value is not None and not is_valid_task_id(value):
        raise click.BadParameter(f"Invalid task id: {value!r}")
    return value


def _execute(settings: Settings, documents: list[dict[str, Any]]) -> None:
    try:
        for document in documents:
            parse_plan(document)
    except WaypointError as e:
        raise click.ClickException(str(e)) from e

    statuses = asyncio.run(run_plans(settings, documents))
    for task_id, status in sorted(statuses.items()):
        click.echo(f"{task_id}: {status}")
    if any(status != COMPLETED for status in statuses.values()):
        sys.exit(1)


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML file")
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
@click.version_option(__version__, prog_name="waypoint")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, log_level: str | None) -> None:
    """Waypoint: durable, resumable plan execution."""
    settings = load_settings(config_path)
    if log_level:
        settings.log_level = log_level
    setup_logging(level=settings.log_level, json_output=settings.log_json)
    ctx.obj = settings


@cli.command()
@click.argument("plans", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def run(settings: Settings, plans: tuple[str, ...]) -> None:
    """Run one or more plan files (JSON or YAML), resuming from checkpoints."""
    _execute(settings, [_load_document(p) for p in plans])


@cli.command()
@click.argument("task_id", callback=_task_id)
@click.option("--clear-abort", is_flag=True, help="Remove an abort signal before restarting")
@click.pass_obj
def restart(settings: Settings, task_id: str, clear_abort: bool) -> None:
    """Resume a task from its stored plan and checkpoint."""
    store = CheckpointStore(settings.get_tasks_dir())
    document = store.load_plan(task_id)
    if document is None:
        raise click.ClickException(f"No stored plan for task {task_id}")
    if clear_abort:
        ControlSignals(settings.get_tasks_dir()).clear_abort(task_id)
    _execute(settings, [document])


@cli.command()
@click.argument("task_id", callback=_task_id)
@click.option("--for", "duration", default=None, help="Auto-resume after a duration such as 30m or 1h30m")
@click.pass_obj
def pause(settings: Settings, task_id: str, duration: str | None) -> None:
    """Pause a task before its next step."""
    seconds = None
    if duration is not None:
        seconds = parse_duration(duration)
        if seconds is None:
            raise click.BadParameter(f"Invalid duration: {duration}", param_hint="--for")
    ControlSignals(settings.get_tasks_dir()).pause(task_id, seconds)
    suffix = f" for {duration}" if duration else ""
    click.echo(f"Paused {task_id}{suffix}")


@cli.command()
@click.argument("task_id", callback=_task_id)
@click.pass_obj
def resume(settings: Settings, task_id: str) -> None:
    """Clear a pause signal."""
    if ControlSignals(settings.get_tasks_dir()).resume(task_id):
        click.echo(f"Resumed {task_id}")
    else:
        click.echo(f"{task_id} was not paused")


@cli.command()
@click.argument("task_id", callback=_task_id)
@click.pass_obj
def abort(settings: Settings, task_id: str) -> None:
    """Abort a task before its next step."""
    ControlSignals(settings.get_tasks_dir()).abort(task_id)
    click.echo(f"Abort requested for {task_id}")


@cli.command()
@click.argument("task_id", required=False, callback=_task_id)
@click.pass_obj
def status(settings: Settings, task_id: str | None) -> None:
    """Show one checkpoint in full, or a summary of every task."""
    store = CheckpointStore(settings.get_tasks_dir())
    signals = ControlSignals(settings.get_tasks_dir())

    if task_id is not None:
        try:
            checkpoint = store.read(task_id)
        except ValueError as e:
            raise click.ClickException(str(e)) from e
        if checkpoint is None:
            raise click.ClickException(f"No checkpoint for task {task_id}")
        data = checkpoint.to_dict()
        data["signal"] = signals.state(task_id)
        click.echo(json.dumps(data, indent=2))
        return

    task_ids = store.list_task_ids()
    if not task_ids:
        click.echo("No tasks.")
        return
    for tid in task_ids:
        try:
            checkpoint = store.read(tid)
        except ValueError:
            click.echo(f"{tid}  unreadable")
            continue
        if checkpoint is None:
            continue
        line = f"{tid}  {checkpoint.status}  step {checkpoint.last_step}"
        if checkpoint.reason:
            line += f"  ({checkpoint.reason})"
        state = signals.state(tid)
        if state != "running":
            line += f"  [{state}]"
        click.echo(line)


@cli.command()
@click.argument("task_id", callback=_task_id)
@click.argument("step_id", required=False)
@click.option("--approve/--deny", required=True, help="Approve or deny the pending step")
@click.pass_obj
def decide(settings: Settings, task_id: str, step_id: str | None, approve: bool) -> None:
    """Send a confirmation decision to a running waypoint."""
    config = settings.decisions
    url = f"http://{config.bind}:{config.port}/decisions"
    payload: dict[str, Any] = {"task_id": task_id, "approved": approve}
    if step_id is not None:
        payload["step_id"] = step_id

    try:
        resp = httpx.post(url, json=payload, headers={SECRET_HEADER: config.secret}, timeout=10)
        resp.raise_for_status()
    except httpx.HTTPError as e:
        raise click.ClickException(f"Decision not delivered: {e}") from e

    if resp.json().get("accepted"):
        click.echo("Decision accepted")
    else:
        click.echo("No pending confirmation matched")
        sys.exit(1)


if __name__ == "__main__":
    cli()
