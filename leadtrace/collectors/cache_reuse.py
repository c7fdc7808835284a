"""Re-emit a previously resolved identity as a signal."""

from leadtrace.models import DomainSignal, SourceKind, VisitorContext
from .base import SignalCollector


class CacheReuseCollector(SignalCollector):
    """Vote for whatever the cache already believes about this IP."""

    name = "cache_reuse"
    source = SourceKind.CACHE_REUSE

    async def collect(self, visitor: VisitorContext) -> list[DomainSignal]:
        if visitor.known is None:
            return []

        identity = visitor.known.identity()
        if identity is None:
            return []

        signal = identity.as_signal(SourceKind.CACHE_REUSE)
        if not signal.confidence_reason:
            signal.confidence_reason = "previously resolved identity"
        return [signal]
