"""
Core Domain Models

This module defines the session and task entities the engine operates on,
plus the ephemeral ToolResult produced by one tool invocation.

Sessions are serialized to plain dicts for persistence. The persisted record
always carries ``id, goal, plan, thoughts, tasks, status``; the remaining
fields are runtime context needed to resume a session.
"""

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

DEFAULT_PLAN = "No plan description provided."
DEFAULT_WORKING_DIRECTORY = "."
DEFAULT_MAX_FIELD_CHARS = 20000

# Fields that commonly contain large outputs
_LARGE_FIELDS = ("output", "content", "stdout", "stderr")


class TaskType(str, Enum):
    FILE_WRITE = "file_write"
    COMMAND = "command"
    READ = "read"
    LIST = "list"
    ASK_USER = "ask_user"
    SUMMARY = "summary"


class TaskStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    FINISHED = "finished"
    ERROR = "error"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"
    REPAIRED = "repaired"


class SessionStatus(str, Enum):
    CREATED = "created"
    THINKING = "thinking"
    EXECUTING = "executing"
    RUNNING = "running"
    AWAITING_APPROVAL = "awaiting_approval"
    AWAITING_USER_INPUT = "awaiting_user_input"
    FINISHED = "finished"
    ERROR = "error"
    STOPPED = "stopped"
    MAX_STEPS_REACHED = "max_steps_reached"


class SessionMode(str, Enum):
    PLAN = "plan"
    AUTONOMOUS = "autonomous"


# Task statuses a finished plan may contain.
COMPLETED_TASK_STATUSES = frozenset(
    {TaskStatus.FINISHED, TaskStatus.REPAIRED, TaskStatus.SKIPPED}
)

_TYPE_ALIASES = {
    "terminal": TaskType.COMMAND,
    "shell": TaskType.COMMAND,
    "run": TaskType.COMMAND,
    "run_command": TaskType.COMMAND,
    "file_edit": TaskType.FILE_WRITE,
    "edit": TaskType.FILE_WRITE,
    "write": TaskType.FILE_WRITE,
    "write_file": TaskType.FILE_WRITE,
    "create_file": TaskType.FILE_WRITE,
    "read_file": TaskType.READ,
    "list_directory": TaskType.LIST,
    "ls": TaskType.LIST,
    "question": TaskType.ASK_USER,
    "ask": TaskType.ASK_USER,
    "done": TaskType.SUMMARY,
}


def parse_task_type(value: Any, task: dict[str, Any] | None = None) -> TaskType:
    """Parse a model-provided task type, inferring it from parameters if unknown.

    Accepts aliases such as "terminal" -> COMMAND and "file_edit" -> FILE_WRITE.
    """
    text = str(value or "").strip().lower().replace("-", "_").replace(" ", "_")
    if text:
        try:
            return TaskType(text)
        except ValueError:
            if text in _TYPE_ALIASES:
                return _TYPE_ALIASES[text]

    task = task or {}
    if task.get("command"):
        return TaskType.COMMAND
    if task.get("path") and task.get("content") is not None:
        return TaskType.FILE_WRITE
    if task.get("path"):
        return TaskType.READ
    return TaskType.SUMMARY


def parse_task_status(value: Any) -> TaskStatus:
    text = str(value or "").strip().lower()
    try:
        return TaskStatus(text)
    except ValueError:
        return TaskStatus.PENDING


def new_id() -> str:
    return str(uuid.uuid4())


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Task:
    """
    One discrete unit of planned work.

    Attributes:
        id: Identifier unique within the owning session
        description: Human-readable summary of the work
        type: What the executor dispatches this task to
        path: Target path for file_write/read/list tasks
        content: File content for file_write, text for summary/ask_user
        command: Shell command for command tasks
        status: Per-task lifecycle status
        error: Diagnostic text, present once the task failed
    """

    description: str
    type: TaskType
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    path: str | None = None
    content: str | None = None
    command: str | None = None
    status: TaskStatus = TaskStatus.PENDING
    error: str | None = None

    @classmethod
    def from_model_output(cls, raw: Any, index: int) -> "Task":
        """Build a pending task from one entry of a model-generated task list.

        Model-provided ids are ignored so that ids stay unique across repairs.
        """
        if not isinstance(raw, dict):
            raw = {"description": str(raw)}

        description = (
            raw.get("description")
            or raw.get("task")
            or raw.get("name")
            or raw.get("label")
            or f"Task {index + 1}"
        )
        command = raw.get("command")
        content = raw.get("content")
        # Models sometimes emit JSON file bodies as objects instead of strings
        if isinstance(content, (dict, list)):
            content = json.dumps(content, indent=2)
        return cls(
            description=str(description).strip(),
            type=parse_task_type(raw.get("type"), raw),
            path=raw.get("path") or raw.get("file_path") or None,
            content=content,
            command=str(command).strip() if command else None,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        return cls(
            id=str(data.get("id") or uuid.uuid4().hex[:8]),
            description=str(data.get("description", "")),
            type=parse_task_type(data.get("type"), data),
            path=data.get("path"),
            content=data.get("content"),
            command=data.get("command"),
            status=parse_task_status(data.get("status")),
            error=data.get("error"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "description": self.description,
            "type": self.type.value,
        }
        for key in ("path", "content", "command"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        data["status"] = self.status.value
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class ToolResult:
    """
    Return value of one tool invocation.

    Attributes:
        success: Whether the tool achieved its purpose
        output: Main textual output on success
        error: Diagnostic text on failure
        data: Extra structured fields (stdout, stderr, exit_code, entries, ...)
    """

    success: bool
    output: Any = None
    error: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, output: Any = None, **data: Any) -> "ToolResult":
        return cls(success=True, output=output, data=data)

    @classmethod
    def fail(cls, error: str, **data: Any) -> "ToolResult":
        return cls(success=False, error=error, data=data)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"success": self.success}
        if self.success:
            result["output"] = self.output
        else:
            result["error"] = self.error
        result.update(self.data)
        return result

    def to_text(self, max_field_chars: int = DEFAULT_MAX_FIELD_CHARS) -> str:
        """Serialize to JSON text, truncating oversized output fields."""
        data = self.to_dict()
        for key in _LARGE_FIELDS:
            value = data.get(key)
            if isinstance(value, (list, dict)):
                value = json.dumps(value, ensure_ascii=False, default=str)
                if len(value) <= max_field_chars:
                    continue
            if isinstance(value, str) and len(value) > max_field_chars:
                overflow = len(value) - max_field_chars
                data[key] = (
                    value[:max_field_chars]
                    + f"\n\n[... TRUNCATED - {overflow} more chars ...]"
                )
        return json.dumps(data, ensure_ascii=False, default=str)


@dataclass
class Session:
    """
    One agent run against a single goal.

    Attributes:
        goal: Original user instruction, never modified
        id: Creation-time unique identifier
        plan: Human-readable strategy summary
        thoughts: Latest reasoning text, prefixed with [REPAIR] notes on repair
        tasks: Ordered task list, order is execution order
        history: Append-only role-tagged turns fed back to the model
        status: Lifecycle status, changed through SessionStateMachine
        working_directory: Logical cwd relative to the workspace root
        mode: plan (approve then execute) or autonomous (function calling)
        pending_question: Question awaiting an answer from the user
        active_file: File the run is scoped to, if any
        step_count: Steps consumed by the current run
    """

    goal: str
    id: str = field(default_factory=new_id)
    plan: str = DEFAULT_PLAN
    thoughts: str = ""
    tasks: list[Task] = field(default_factory=list)
    history: list[dict[str, Any]] = field(default_factory=list)
    status: SessionStatus = SessionStatus.CREATED
    working_directory: str = DEFAULT_WORKING_DIRECTORY
    mode: SessionMode = SessionMode.PLAN
    pending_question: str | None = None
    active_file: str | None = None
    step_count: int = 0
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    def next_runnable_task(self) -> Task | None:
        """Return the first task that is pending or still active."""
        for task in self.tasks:
            if task.status in (TaskStatus.PENDING, TaskStatus.ACTIVE):
                return task
        return None

    def active_tasks(self) -> list[Task]:
        return [t for t in self.tasks if t.status == TaskStatus.ACTIVE]

    def pending_tasks(self) -> list[Task]:
        return [t for t in self.tasks if t.status == TaskStatus.PENDING]

    def insert_tasks_after(self, anchor: Task, new_tasks: list[Task]) -> None:
        index = self.tasks.index(anchor)
        self.tasks[index + 1:index + 1] = new_tasks

    def all_tasks_completed(self) -> bool:
        return all(t.status in COMPLETED_TASK_STATUSES for t in self.tasks)

    def touch(self) -> None:
        self.updated_at = _now()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "goal": self.goal,
            "plan": self.plan,
            "thoughts": self.thoughts,
            "tasks": [t.to_dict() for t in self.tasks],
            "status": self.status.value,
            "history": list(self.history),
            "working_directory": self.working_directory,
            "mode": self.mode.value,
            "pending_question": self.pending_question,
            "active_file": self.active_file,
            "step_count": self.step_count,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        try:
            status = SessionStatus(data.get("status", "created"))
        except ValueError:
            status = SessionStatus.ERROR
        try:
            mode = SessionMode(data.get("mode", "plan"))
        except ValueError:
            mode = SessionMode.PLAN

        return cls(
            id=str(data["id"]),
            goal=str(data.get("goal", "")),
            plan=data.get("plan") or DEFAULT_PLAN,
            thoughts=data.get("thoughts") or "",
            tasks=[Task.from_dict(t) for t in data.get("tasks", []) or []],
            history=list(data.get("history", []) or []),
            status=status,
            working_directory=data.get("working_directory") or DEFAULT_WORKING_DIRECTORY,
            mode=mode,
            pending_question=data.get("pending_question"),
            active_file=data.get("active_file"),
            step_count=int(data.get("step_count", 0)),
            created_at=data.get("created_at") or _now(),
            updated_at=data.get("updated_at") or _now(),
        )
