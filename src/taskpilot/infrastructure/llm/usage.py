"""
Token usage accounting.

The gateway reports usage after every completed call. Observers are purely
observational: their failures are logged and never reach the caller.
"""

from dataclasses import dataclass, field
from typing import Callable

UsageObserver = Callable[[str, int], None]


@dataclass
class TokenUsageTracker:
    """Accumulates total token usage overall and per model."""

    total_tokens: int = 0
    calls: int = 0
    by_model: dict[str, int] = field(default_factory=dict)

    def __call__(self, model: str, total_tokens: int) -> None:
        self.calls += 1
        self.total_tokens += total_tokens
        self.by_model[model] = self.by_model.get(model, 0) + total_tokens
