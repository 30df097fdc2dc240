"""
Token counting for tracked command output.

Estimates token counts from raw and compressed command output.
"""

import math
from dataclasses import dataclass

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Estimate tokens for a piece of text (~4 characters per token)."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


@dataclass(frozen=True)
class TokenCounts:
    """Token counts for one invocation before and after compression."""
    input_tokens: int
    output_tokens: int

    def __post_init__(self):
        if self.input_tokens < 0:
            raise ValueError("input_tokens cannot be negative")
        if self.output_tokens < 0:
            raise ValueError("output_tokens cannot be negative")

    @property
    def saved_tokens(self) -> int:
        """Tokens eliminated by compression (negative if output grew)."""
        return self.input_tokens - self.output_tokens

    @classmethod
    def from_text(cls, raw_output: str, compressed_output: str) -> "TokenCounts":
        return cls(
            input_tokens=estimate_tokens(raw_output),
            output_tokens=estimate_tokens(compressed_output)
        )
