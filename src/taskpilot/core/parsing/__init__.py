"""Recovery parsing of structured model output."""
