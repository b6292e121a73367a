"""
Agent settings with environment variable support.

Values come from keyword arguments, ``TASKPILOT_*`` environment variables,
a ``.env`` file, or a YAML profile loaded through ``load_from_file``.
"""

from pathlib import Path
from typing import Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings

from taskpilot.core.interfaces.approval import ExecutionMode


class AgentSettings(BaseSettings):
    """Runtime configuration for the engine and the CLI."""

    # Workspace and persistence
    workspace_root: str = Field(default=".", description="Directory the agent operates in")
    sessions_dir: str = Field(
        default=".taskpilot/sessions", description="Directory for persisted sessions"
    )

    # Model
    llm_config_path: str = Field(
        default="configs/llm_config.yaml", description="LLM YAML configuration"
    )
    model: Optional[str] = Field(default=None, description="Model alias override")
    stream_planning: bool = Field(default=True, description="Stream the planning request")

    # Execution
    execution_mode: ExecutionMode = Field(
        default=ExecutionMode.PERMISSION, description="Command approval policy"
    )
    max_steps: int = Field(default=50, ge=1, description="Step ceiling per run")
    max_auto_repairs: int = Field(default=5, ge=0, description="Repair attempts per run")
    command_timeout: Optional[float] = Field(
        default=None, gt=0, description="Seconds before a command is killed"
    )
    max_tool_output_chars: int = Field(
        default=20000, ge=100, description="Truncation limit for tool output in history"
    )

    model_config = {
        "env_file": ".env",
        "env_prefix": "TASKPILOT_",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @classmethod
    def load_from_file(cls, config_path: Path) -> "AgentSettings":
        """Load settings from a YAML file; defaults if the file is missing."""
        if not config_path.exists():
            return cls()

        with open(config_path, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

    def save_to_file(self, config_path: Path) -> None:
        config_path.parent.mkdir(parents=True, exist_ok=True)

        config_data = self.model_dump(mode="json")
        with open(config_path, "w", encoding="utf-8") as f:
            yaml.dump(config_data, f, default_flow_style=False, indent=2)
