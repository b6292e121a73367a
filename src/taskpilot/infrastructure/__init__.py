"""Infrastructure adapters: LLM gateway, tools, workspace, persistence."""
