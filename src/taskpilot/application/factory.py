"""
Application Layer - Taskpilot Factory

Dependency injection for the engine. A configuration profile
(``configs/{profile}.yaml``) is turned into AgentSettings, and the settings
select the infrastructure adapters wired into the orchestrator.
"""

from pathlib import Path
from typing import Any, Optional

import structlog
import yaml

from taskpilot.application.orchestrator import AgentOrchestrator
from taskpilot.application.settings import AgentSettings
from taskpilot.core.domain.approval import CommandApprovalGate
from taskpilot.core.interfaces.approval import ApprovalProvider
from taskpilot.infrastructure.llm.gateway import LiteLLMGateway
from taskpilot.infrastructure.llm.usage import TokenUsageTracker
from taskpilot.infrastructure.persistence.file_session_store import FileSessionStore
from taskpilot.infrastructure.tools.registry import create_default_registry
from taskpilot.infrastructure.workspace.local_workspace import LocalWorkspace


class TaskpilotFactory:
    """
    Builds fully wired orchestrators from configuration profiles.

    Args:
        config_dir: Directory containing the profile YAML files
    """

    def __init__(self, config_dir: str = "configs"):
        self.config_dir = Path(config_dir)
        self.usage_tracker = TokenUsageTracker()
        self.logger = structlog.get_logger().bind(component="taskpilot_factory")

    def load_settings(
        self, profile: str = "dev", overrides: Optional[dict[str, Any]] = None
    ) -> AgentSettings:
        """
        Load a profile and apply explicit overrides on top of it.

        Raises:
            FileNotFoundError: If the profile YAML does not exist
        """
        config = self._load_profile(profile)
        config.update({k: v for k, v in (overrides or {}).items() if v is not None})
        return AgentSettings(**config)

    def _load_profile(self, profile: str) -> dict[str, Any]:
        profile_path = self.config_dir / f"{profile}.yaml"

        if not profile_path.exists():
            self.logger.error(
                "profile_not_found",
                profile=profile,
                path=str(profile_path),
                hint="Ensure profile YAML exists in configs directory",
            )
            raise FileNotFoundError(f"Profile not found: {profile_path}")

        with open(profile_path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}

        self.logger.debug("profile_loaded", profile=profile, config_keys=list(config.keys()))
        return config

    def create_orchestrator(
        self,
        settings: AgentSettings,
        approval_provider: Optional[ApprovalProvider] = None,
    ) -> AgentOrchestrator:
        """Wire gateway, workspace, tools, store and approval gate."""
        self.logger.info(
            "creating_orchestrator",
            workspace_root=settings.workspace_root,
            execution_mode=settings.execution_mode.value,
            model=settings.model,
        )
        gateway = LiteLLMGateway(
            config_path=settings.llm_config_path,
            model=settings.model,
            usage_observer=self.usage_tracker,
        )
        workspace = LocalWorkspace(
            settings.workspace_root, command_timeout=settings.command_timeout
        )
        approval_gate = CommandApprovalGate(settings.execution_mode, approval_provider)

        return AgentOrchestrator(
            gateway=gateway,
            tools=create_default_registry(),
            workspace=workspace,
            store=FileSessionStore(settings.sessions_dir),
            approval_gate=approval_gate,
            max_steps=settings.max_steps,
            max_auto_repairs=settings.max_auto_repairs,
            max_output_chars=settings.max_tool_output_chars,
        )
