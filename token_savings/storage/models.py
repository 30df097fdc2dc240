"""
Data models for storage layer.

Defines the invocation record persisted for every tracked command.
"""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class InvocationRecord:
    """Immutable token accounting for one command execution.

    Records are append-only: once written they are never modified.
    ``saved_tokens`` is not clamped and goes negative when the
    compressed output is larger than the raw one.
    """
    timestamp: datetime
    original_cmd: str
    rtk_cmd: str
    input_tokens: int
    output_tokens: int

    @property
    def saved_tokens(self) -> int:
        return self.input_tokens - self.output_tokens

    @property
    def savings_pct(self) -> float:
        if self.input_tokens <= 0:
            return 0.0
        return self.saved_tokens / self.input_tokens * 100.0
