"""Pacer interfaces.

The HTTP client layer depends on this abstraction (not the concrete
implementation) so the pacing strategy can be swapped per integration.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class PacingResult:
    """Outcome of acquiring a request slot.

    Attributes:
        waited_seconds: Time spent sleeping before the slot was granted.
        granted_at: Clock reading recorded as the new last-request time.
    """

    waited_seconds: float
    granted_at: float


class AbstractPacer(ABC):
    """Interface for outbound request pacers."""

    @abstractmethod
    async def acquire(self) -> PacingResult:
        """Wait until the next request may be issued and claim the slot.

        Returns:
            PacingResult describing how long the caller waited.
        """
        raise NotImplementedError
