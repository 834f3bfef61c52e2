"""
Reconnect backoff strategies.

A dropped WhatsApp session is retried after a fixed delay by default.
ExponentialBackoff is available for deployments that want to back off
harder against a flapping bridge.
"""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass


class BackoffStrategy(ABC):
    """Maps a reconnect attempt number to a delay."""

    @abstractmethod
    def get_delay(self, attempt: int) -> float:
        """
        Seconds to wait before reconnect attempt `attempt`.

        Args:
            attempt: Consecutive failures so far (1 for the first reconnect)
        """
        ...


@dataclass
class ConstantBackoff(BackoffStrategy):
    """
    Same delay for every attempt.

    Example:
        ConstantBackoff(delay=5.0).get_delay(7)  # 5.0
    """

    delay: float = 5.0

    def get_delay(self, attempt: int) -> float:
        return self.delay


@dataclass
class ExponentialBackoff(BackoffStrategy):
    """
    delay = base * multiplier ** (attempt - 1), capped at max_delay.

    Jitter spreads reconnects of several relays sharing one bridge.

    Example:
        backoff = ExponentialBackoff(base=5.0, max_delay=300.0, jitter=False)
        # 5s, 10s, 20s, 40s, ... 300s
    """

    base: float = 5.0
    multiplier: float = 2.0
    max_delay: float = 300.0
    jitter: bool = True
    jitter_factor: float = 0.25

    def get_delay(self, attempt: int) -> float:
        delay = min(self.base * self.multiplier ** (max(attempt, 1) - 1), self.max_delay)
        if not self.jitter:
            return delay

        spread = delay * self.jitter_factor
        return max(0.0, delay + random.uniform(-spread, spread))


def create_backoff(kind: str, delay: float) -> BackoffStrategy:
    """
    Build the reconnect backoff named in settings.

    Args:
        kind: "constant" or "exponential"
        delay: Fixed delay, or the exponential base

    Raises:
        ValueError: If kind is unknown
    """
    if kind == "constant":
        return ConstantBackoff(delay=delay)
    if kind == "exponential":
        return ExponentialBackoff(base=delay)
    raise ValueError(f"Unknown backoff strategy: {kind!r}")
