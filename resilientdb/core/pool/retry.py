"""Exponential backoff shared by connection retries and query retries."""

from dataclasses import dataclass

from tenacity import RetryCallState
from tenacity.wait import wait_base

# 2**62 seconds is already far beyond any sane max_delay
_MAX_EXPONENT = 62


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 5
    base_delay: float = 1.0
    max_delay: float = 30.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be >= 0")

    def backoff(self, attempt_index: int) -> float:
        """Delay before retry number ``attempt_index`` (0-based): min(base * 2**i, max)."""
        if attempt_index < 0:
            raise ValueError("attempt_index must be >= 0")
        exponent = min(attempt_index, _MAX_EXPONENT)
        return min(self.base_delay * (2**exponent), self.max_delay)


class wait_backoff(wait_base):
    """tenacity wait strategy driven by RetryPolicy.backoff()."""

    def __init__(self, policy: RetryPolicy) -> None:
        self.policy = policy

    def __call__(self, retry_state: RetryCallState) -> float:
        # attempt_number is 1 after the first failure -> backoff(0)
        return self.policy.backoff(retry_state.attempt_number - 1)
