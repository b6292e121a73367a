"""
Console output for the taskpilot CLI.

Renders sessions, task tables and status messages with rich.
"""

from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from taskpilot.core.domain.models import Session, SessionStatus, TaskStatus

_TASK_STYLES = {
    TaskStatus.PENDING: "white",
    TaskStatus.ACTIVE: "bold yellow",
    TaskStatus.FINISHED: "green",
    TaskStatus.ERROR: "bold red",
    TaskStatus.SKIPPED: "dim",
    TaskStatus.CANCELLED: "magenta",
    TaskStatus.REPAIRED: "cyan",
}

_SESSION_STYLES = {
    SessionStatus.FINISHED: "green",
    SessionStatus.ERROR: "red",
    SessionStatus.STOPPED: "magenta",
    SessionStatus.MAX_STEPS_REACHED: "red",
    SessionStatus.AWAITING_APPROVAL: "yellow",
    SessionStatus.AWAITING_USER_INPUT: "yellow",
}


class TaskpilotConsole:
    """Rich console with the message styles used across commands."""

    def __init__(self, console: Optional[Console] = None, debug: bool = False):
        self.console = console or Console()
        self.debug = debug

    def print_banner(self) -> None:
        self.console.print("[bold blue]taskpilot[/bold blue] [dim]task-execution agent[/dim]")

    def print_divider(self) -> None:
        self.console.rule(style="dim")

    def print_system_message(self, message: str, level: str = "info") -> None:
        style = {"system": "bold blue", "info": "cyan", "warning": "yellow"}.get(level, "white")
        self.console.print(f"[{style}]{message}[/{style}]")

    def print_success(self, message: str) -> None:
        self.console.print(f"[bold green]✓ {message}[/bold green]")

    def print_error(self, message: str) -> None:
        self.console.print(f"[bold red]✗ {message}[/bold red]")

    def print_debug(self, message: str) -> None:
        if self.debug:
            self.console.print(f"[dim]{message}[/dim]")

    def print_agent_message(self, message: str) -> None:
        if message:
            self.console.print(Panel(message, title="Agent", border_style="blue"))

    def status_text(self, status: SessionStatus) -> str:
        style = _SESSION_STYLES.get(status, "white")
        return f"[{style}]{status.value}[/{style}]"

    def print_tasks(self, session: Session) -> None:
        table = Table(title="Tasks")
        table.add_column("#", style="dim", justify="right")
        table.add_column("ID", style="cyan")
        table.add_column("Type", style="white")
        table.add_column("Description", style="white")
        table.add_column("Status")

        for index, task in enumerate(session.tasks, start=1):
            style = _TASK_STYLES.get(task.status, "white")
            detail = task.description
            if task.command:
                detail += f"\n[dim]$ {task.command}[/dim]"
            elif task.path:
                detail += f"\n[dim]{task.path}[/dim]"
            if task.error:
                detail += f"\n[red]{task.error[:300]}[/red]"
            table.add_row(
                str(index),
                task.id,
                task.type.value,
                detail,
                f"[{style}]{task.status.value}[/{style}]",
            )
        self.console.print(table)

    def print_session(self, session: Session) -> None:
        self.console.print(f"\n[bold]Session:[/bold] {session.id}")
        self.console.print(f"[bold]Goal:[/bold] {session.goal}")
        self.console.print(f"[bold]Mode:[/bold] {session.mode.value}")
        self.console.print(f"[bold]Status:[/bold] {self.status_text(session.status)}")
        self.console.print(f"[bold]Working directory:[/bold] {session.working_directory}")
        self.console.print(Panel(session.plan, title="Plan", border_style="cyan"))
        if session.thoughts:
            self.print_debug(session.thoughts)
        if session.tasks:
            self.print_tasks(session)
        if session.pending_question:
            self.console.print(
                f"[bold yellow]Question:[/bold yellow] {session.pending_question}"
            )

    def print_outcome(self, session: Session) -> None:
        """One-line result of a run plus the hint for the next command."""
        status = session.status
        if status == SessionStatus.FINISHED:
            self.print_success("Session finished")
            last = session.history[-1] if session.history else {}
            if last.get("role") == "assistant":
                self.print_agent_message(str(last.get("content") or ""))
        elif status == SessionStatus.AWAITING_USER_INPUT:
            self.print_system_message(f"Question: {session.pending_question}", "warning")
            self.print_system_message(
                f'Answer with: taskpilot answer {session.id} "<answer>"', "info"
            )
        elif status == SessionStatus.AWAITING_APPROVAL:
            self.print_system_message(
                f"Plan ready. Start it with: taskpilot run {session.id}", "info"
            )
        elif status == SessionStatus.ERROR:
            self.print_error("Session ended in error")
            if session.thoughts:
                self.print_debug(session.thoughts)
            self.print_system_message(
                f"Retry with a fix: taskpilot repair {session.id} --run", "info"
            )
        else:
            self.print_error(f"Session {status.value}")
