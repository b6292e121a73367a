"""Workspace tools and the tool registry."""
