"""Taskpilot - plan, execute and self-repair coding tasks with an LLM agent."""

__version__ = "0.1.0"
