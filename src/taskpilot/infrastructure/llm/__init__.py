"""LLM gateway over litellm."""
