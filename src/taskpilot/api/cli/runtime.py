"""Shared CLI plumbing: logging setup, orchestrator wiring and stop handling."""

import asyncio
import logging
import signal
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog
import typer
from rich.console import Console
from rich.prompt import Confirm

from taskpilot.application.factory import TaskpilotFactory
from taskpilot.application.orchestrator import AgentOrchestrator
from taskpilot.application.settings import AgentSettings
from taskpilot.core.domain.models import Session

T = TypeVar("T")


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
    )


class RichApprovalProvider:
    """Asks for command approval on the terminal."""

    def __init__(self, console: Console):
        self.console = console

    async def request_approval(self, session: Session, command: str) -> bool:
        self.console.print(f"\n[bold yellow]Command requested:[/bold yellow] {command}")
        self.console.print(f"[dim]cwd: {session.working_directory}[/dim]")
        return await asyncio.to_thread(
            Confirm.ask, "Run this command?", console=self.console, default=False
        )


def _factory(ctx: typer.Context) -> TaskpilotFactory:
    return TaskpilotFactory((ctx.obj or {}).get("config_dir", "configs"))


def load_settings(ctx: typer.Context) -> AgentSettings:
    options = ctx.obj or {}
    return _factory(ctx).load_settings(
        options.get("profile", "dev"),
        overrides={
            "workspace_root": options.get("workspace"),
            "execution_mode": options.get("mode"),
            "model": options.get("model"),
        },
    )


def create_orchestrator(
    ctx: typer.Context, console: Console, settings: Optional[AgentSettings] = None
) -> AgentOrchestrator:
    """Build an orchestrator for the profile and overrides on the context."""
    settings = settings or load_settings(ctx)
    return _factory(ctx).create_orchestrator(settings, RichApprovalProvider(console))


def run_with_stop(
    orchestrator: AgentOrchestrator,
    operation: Callable[[], Awaitable[T]],
    console: Console,
) -> T:
    """
    Run ``operation`` on a fresh event loop.

    Ctrl-C requests a stop of every running session instead of killing the
    process, so the interrupted session is persisted as stopped.
    """

    def _on_interrupt() -> None:
        stopped = orchestrator.request_stop_all()
        console.print(f"\n[yellow]Stop requested for {len(stopped)} session(s)...[/yellow]")

    async def _main() -> Any:
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, _on_interrupt)
        except (NotImplementedError, RuntimeError):
            # No loop signal handlers on Windows; Ctrl-C aborts the process there
            pass
        try:
            return await operation()
        finally:
            try:
                loop.remove_signal_handler(signal.SIGINT)
            except (NotImplementedError, RuntimeError):
                pass

    return asyncio.run(_main())
