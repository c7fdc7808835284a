"""Abstract base class for signal collectors."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

from leadtrace.config import settings
from leadtrace.models import DomainSignal, SourceKind, VisitorContext

logger = logging.getLogger(__name__)


class SignalCollector(ABC):
    """Abstract interface for one evidentiary channel.

    Collectors are independent of each other. A collector that hits any
    external fault yields no signal instead of raising: a missing signal
    means the channel did not vote.
    """

    name: str = "base"
    source: SourceKind = SourceKind.UNKNOWN

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout if timeout is not None else settings.collector_timeout

    @abstractmethod
    async def collect(self, visitor: VisitorContext) -> list[DomainSignal]:
        """
        Gather domain signals for a visitor.

        Args:
            visitor: What is known about the visitor so far

        Returns:
            Zero or more domain signals
        """
        pass

    async def safe_collect(
        self,
        visitor: VisitorContext,
        timeout: Optional[float] = None,
    ) -> list[DomainSignal]:
        """Run collect() within its time budget, degrading to no signal."""
        budget = timeout if timeout is not None else self.timeout
        try:
            return await asyncio.wait_for(self.collect(visitor), timeout=budget)
        except asyncio.TimeoutError:
            logger.debug(f"{self.name} timed out after {budget}s for {visitor.ip}")
        except Exception as e:
            logger.warning(f"{self.name} failed for {visitor.ip}: {e}")
        return []

    def signal(self, domain: Optional[str], confidence: float, reason: str) -> DomainSignal:
        """Build a signal tagged with this collector's source."""
        return DomainSignal(
            domain=domain,
            source=self.source,
            confidence=confidence,
            confidence_reason=reason,
        )
