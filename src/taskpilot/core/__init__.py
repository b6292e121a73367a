"""Core domain: sessions, tasks, execution and repair."""
