"""Prompt templates for planning, repair and autonomous execution."""
