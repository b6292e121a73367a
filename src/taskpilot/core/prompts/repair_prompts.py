"""
Repair Prompts

Remediation request sent to the model when a task fails. Prior failure
signatures of the same run are listed so the model changes strategy instead
of repeating a fix; nothing enforces that beyond the prompt.
"""

from typing import Iterable

from taskpilot.core.domain.models import Session, Task

REPAIR_PROTOCOL = """
You are an expert software engineer. One of the tasks in your implementation
plan has failed. Analyze the error and provide a precise fix.

CRITICAL PROTOCOL:
1. ROOT CAUSE ANALYSIS: Determine exactly why it failed.
2. DIRECTORY AWARENESS: Check the working directory before using relative paths.
3. CONCATENATE COMMANDS: Use 'cd folder && other-command' to ensure context.
4. PREVENT LOOPS: If the error is the same as a previous failure, do NOT repeat
   the same fix. CHANGE STRATEGY.
5. EXISTING DIRECTORY: If a scaffolding command failed because the folder exists,
   do NOT delete it. 'cd' into it and continue.
6. CONTINUATION: Provide ONLY the tasks needed to overcome this failure and
   verify it. Remaining tasks will run after yours.
""".strip()

RESPONSE_FORMAT = """
Respond ONLY with JSON:
{
  "thoughts": "Root cause analysis...",
  "tasks": [
    {"description": "Fix step...", "type": "command", "command": "..."}
  ]
}
""".strip()


def build_repair_prompt(
    session: Session,
    failed_task: Task,
    previous_failures: Iterable[str] = (),
) -> str:
    """
    Build the remediation request for ``failed_task``.

    Args:
        session: Session the task belongs to
        failed_task: Task that reached status error
        previous_failures: Signatures of failures already repaired in this run
    """
    lines = [
        REPAIR_PROTOCOL,
        "",
        f'ORIGINAL GOAL: "{session.goal}"',
        f"CURRENT PLAN: {session.plan}",
        f"WORKING DIRECTORY: {session.working_directory}",
        "",
        "FAILED TASK:",
        f"- Description: {failed_task.description}",
        f"- Type: {failed_task.type.value}",
    ]
    if failed_task.command:
        lines.append(f"- Command: {failed_task.command}")
    if failed_task.path:
        lines.append(f"- Path: {failed_task.path}")

    lines += ["", "ERROR ENCOUNTERED:", f'"{failed_task.error or "Unknown Error"}"', ""]

    previous = list(previous_failures)
    if previous:
        lines.append("PREVIOUS FAILURES IN THIS RUN (do not repeat these fixes):")
        lines += [f"- {signature}" for signature in previous]
        lines.append("")

    lines.append("REMAINING TASKS:")
    pending = session.pending_tasks()
    lines += [f"- {t.description}" for t in pending] or ["- (none)"]
    lines += ["", RESPONSE_FORMAT]
    return "\n".join(lines)
