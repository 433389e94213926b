"""Ordered fallback chains.

The download path degrades instead of failing: asset lookup falls back from
Supabase to the bundled samples, transcoding falls back to the stored bytes.
Each step returns a tagged ``Attempt``; ``first_hit`` walks the steps in
order and stops at the first ``HIT``.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, Iterable, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    HIT = "hit"
    MISS = "miss"
    ERROR = "error"


@dataclass
class Attempt(Generic[T]):
    """Result of one fallback step."""
    source: str
    outcome: Outcome
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @classmethod
    def hit(cls, source: str, value: T) -> "Attempt[T]":
        return cls(source=source, outcome=Outcome.HIT, value=value)

    @classmethod
    def miss(cls, source: str) -> "Attempt[T]":
        return cls(source=source, outcome=Outcome.MISS)

    @classmethod
    def failed(cls, source: str, error: BaseException) -> "Attempt[T]":
        return cls(source=source, outcome=Outcome.ERROR, error=error)


@dataclass
class ChainResult(Generic[T]):
    """Winning attempt, if any, plus every attempt made before it."""
    attempts: list[Attempt[T]]

    @property
    def winner(self) -> Optional[Attempt[T]]:
        if self.attempts and self.attempts[-1].outcome is Outcome.HIT:
            return self.attempts[-1]
        return None

    @property
    def degraded(self) -> bool:
        """True when an earlier step failed or missed before the winner."""
        return self.winner is not None and len(self.attempts) > 1


def first_hit(steps: Iterable[Callable[[], Attempt[T]]]) -> ChainResult[T]:
    """Run ``steps`` in order until one reports ``HIT``."""
    attempts: list[Attempt[T]] = []
    for step in steps:
        attempt = step()
        attempts.append(attempt)
        if attempt.outcome is Outcome.HIT:
            break
        logger.debug("Fallback step %s: %s", attempt.source, attempt.outcome.value)
    return ChainResult(attempts=attempts)
