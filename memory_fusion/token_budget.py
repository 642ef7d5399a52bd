"""Token estimation and budget tracking for fused results."""

import math

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """
    Estimate token count from character count.

    Uses the ~4 characters per token heuristic for English text.

    Args:
        text: Text to estimate tokens for

    Returns:
        Estimated token count
    """
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


class TokenBudget:
    """Tracks token usage against a fixed maximum."""

    def __init__(self, max_tokens: int):
        self.max_tokens = max(0, max_tokens)
        self._used_tokens = 0

    @property
    def used_tokens(self) -> int:
        return self._used_tokens

    def fits(self, tokens: int) -> bool:
        """Whether an allocation of `tokens` would stay within budget."""
        return self._used_tokens + tokens <= self.max_tokens

    def allocate(self, tokens: int, force: bool = False) -> bool:
        """
        Try to allocate tokens from budget.

        Args:
            tokens: Number of tokens to allocate
            force: Allocate even if the budget would be exceeded

        Returns:
            True if allocation successful, False otherwise
        """
        if force or self.fits(tokens):
            self._used_tokens += tokens
            return True
        return False
