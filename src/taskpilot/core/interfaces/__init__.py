"""Protocols for the collaborators the core depends on."""
