"""Application layer: orchestration, session registry and wiring."""
