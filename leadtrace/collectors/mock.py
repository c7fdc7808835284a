"""Static collector for testing and offline runs."""

from typing import Optional

from leadtrace.models import DomainSignal, SourceKind, VisitorContext
from .base import SignalCollector


class StaticCollector(SignalCollector):
    """Collector that returns predefined signals."""

    name = "static"

    def __init__(self, signals: Optional[list[DomainSignal]] = None, source: SourceKind = SourceKind.UNKNOWN):
        super().__init__()
        self.source = source
        self._signals = signals if signals is not None else self._default_signals()

    async def collect(self, visitor: VisitorContext) -> list[DomainSignal]:
        """Return the predefined signals."""
        return list(self._signals)

    def _default_signals(self) -> list[DomainSignal]:
        """Signals that fuse into a confident identity for acme-logistics.nl."""
        return [
            DomainSignal(
                domain="acme-logistics.nl",
                source=SourceKind.REVERSE_DNS,
                confidence=0.5,
                confidence_reason="Zakelijk ogende subdomeinstructuur",
            ),
            DomainSignal(
                domain="acme-logistics.nl",
                source=SourceKind.TLS_CERT,
                confidence=0.8,
                confidence_reason="certificate common name",
            ),
            DomainSignal(
                domain="www.acme-logistics.nl",
                source=SourceKind.HTTP_FETCH,
                confidence=0.6,
                confidence_reason="HTTP redirect (Location header)",
            ),
            DomainSignal(
                domain="kpn.net",
                source=SourceKind.ISP_BASELINE,
                confidence=0.3,
                confidence_reason="ASN owner domain",
            ),
        ]
