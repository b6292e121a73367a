"""taskpilot CLI entry point."""

from typing import Optional

import typer
from rich.console import Console

from taskpilot.api.cli.commands import agent, plan, run, sessions
from taskpilot.api.cli.runtime import configure_logging
from taskpilot.core.interfaces.approval import ExecutionMode

app = typer.Typer(
    name="taskpilot",
    help="taskpilot - LLM task-execution agent for software workspaces",
    add_completion=True,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

app.command("plan")(plan.plan_command)
app.command("run")(run.run_command)
app.command("answer")(run.answer_command)
app.command("repair")(run.repair_command)
app.command("agent")(agent.agent_command)
app.add_typer(sessions.app, name="sessions", help="Session management")


@app.callback()
def main(
    ctx: typer.Context,
    profile: str = typer.Option("dev", "--profile", "-p", help="Configuration profile"),
    config_dir: str = typer.Option("configs", "--config-dir", help="Profile directory"),
    workspace: Optional[str] = typer.Option(
        None, "--workspace", "-w", help="Workspace root (overrides the profile)"
    ),
    mode: Optional[ExecutionMode] = typer.Option(
        None, "--mode", "-m", help="Command approval policy (overrides the profile)"
    ),
    model: Optional[str] = typer.Option(None, "--model", help="Model alias override"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
):
    """taskpilot agent CLI."""
    configure_logging(verbose)
    ctx.obj = {
        "profile": profile,
        "config_dir": config_dir,
        "workspace": workspace,
        "mode": mode,
        "model": model,
        "verbose": verbose,
    }


@app.command()
def version():
    """Show taskpilot version."""
    from taskpilot import __version__

    console.print(f"[bold blue]taskpilot[/bold blue] version [cyan]{__version__}[/cyan]")


if __name__ == "__main__":
    app()
