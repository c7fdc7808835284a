"""Evidence fusion: combine domain signals into one identity."""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Union

from pydantic import ValidationError

from leadtrace.config import settings
from leadtrace.models import DomainSignal, FusedIdentity, SourceKind

logger = logging.getLogger(__name__)

SignalInput = Union[DomainSignal, dict]


@dataclass
class DomainEvidence:
    """Capped evidence gathered for one candidate domain."""

    domain: str
    weights_by_source: dict[SourceKind, list[float]] = field(default_factory=dict)
    reasons: list[str] = field(default_factory=list)
    confidence: float = 0.0

    def retained_weights(self, per_source: int) -> list[float]:
        """Strongest readings per source, flattened across sources."""
        retained = []
        for weights in self.weights_by_source.values():
            retained.extend(sorted(weights, reverse=True)[:per_source])
        return retained


class EvidenceFusion:
    """Noisy-OR fusion of per-source capped domain signals.

    Each signal is capped by its source, at most the strongest readings per
    source are kept for a domain, and the kept weights are combined as
    ``1 - prod(1 - w)``. The best domain wins only if it reaches the
    acceptance threshold; ties keep the domain seen first.
    """

    FALLBACK_REASON = "combined evidence"

    def __init__(
        self,
        source_caps: Optional[dict[str, float]] = None,
        default_cap: Optional[float] = None,
        threshold: Optional[float] = None,
        max_weights_per_source: Optional[int] = None,
        max_single_weight: Optional[float] = None,
        max_reasons: Optional[int] = None,
    ):
        caps = source_caps if source_caps is not None else settings.source_caps
        self.source_caps = {SourceKind.parse(k): v for k, v in caps.items()}
        self.default_cap = default_cap if default_cap is not None else settings.default_source_cap
        self.threshold = threshold if threshold is not None else settings.acceptance_threshold
        self.max_weights_per_source = (
            max_weights_per_source if max_weights_per_source is not None else settings.max_weights_per_source
        )
        self.max_single_weight = (
            max_single_weight if max_single_weight is not None else settings.max_single_weight
        )
        self.max_reasons = max_reasons if max_reasons is not None else settings.max_reasons

    def cap_for(self, source: SourceKind) -> float:
        return self.source_caps.get(source, self.default_cap)

    def fuse(self, signals: Iterable[SignalInput]) -> Optional[FusedIdentity]:
        """Return the accepted best-guess identity, or None."""
        ranked = self.rank(signals)
        if not ranked:
            return None

        best = ranked[0]
        if best.confidence < self.threshold:
            logger.debug(f"Best candidate {best.domain} at {best.confidence:.2f} below threshold")
            return None

        return FusedIdentity(
            domain=best.domain,
            enrichment_source=SourceKind.FINAL_LIKELY,
            confidence=round(best.confidence, 2),
            confidence_reason="; ".join(best.reasons) or self.FALLBACK_REASON,
        )

    def rank(self, signals: Iterable[SignalInput]) -> list[DomainEvidence]:
        """Score every candidate domain, best first (stable on ties)."""
        groups = self.group(signals)
        for evidence in groups.values():
            evidence.confidence = self.combine(
                evidence.retained_weights(self.max_weights_per_source)
            )
        # sorted() is stable, so equal confidences keep first-seen order
        return sorted(groups.values(), key=lambda e: e.confidence, reverse=True)

    def group(self, signals: Iterable[SignalInput]) -> dict[str, DomainEvidence]:
        """Group capped signal weights by domain, then by source."""
        groups: dict[str, DomainEvidence] = {}

        for raw in signals or []:
            signal = self._coerce(raw)
            if signal is None or not signal.domain:
                continue

            evidence = groups.setdefault(signal.domain, DomainEvidence(domain=signal.domain))
            weight = min(signal.confidence, self.cap_for(signal.source))
            evidence.weights_by_source.setdefault(signal.source, []).append(weight)

            if signal.confidence_reason and len(evidence.reasons) < self.max_reasons:
                reason = f"{signal.source.value}: {signal.confidence_reason}"
                if reason not in evidence.reasons:
                    evidence.reasons.append(reason)

        return groups

    def combine(self, weights: list[float]) -> float:
        """Noisy-OR over independent weights."""
        miss = 1.0
        for weight in weights:
            miss *= 1.0 - min(weight, self.max_single_weight)
        return min(1.0, max(0.0, 1.0 - miss))

    def _coerce(self, raw: SignalInput) -> Optional[DomainSignal]:
        if isinstance(raw, DomainSignal):
            return raw
        if not isinstance(raw, dict):
            logger.debug(f"Skipping non-signal input: {raw!r}")
            return None
        try:
            return DomainSignal.model_validate(raw)
        except ValidationError as e:
            logger.debug(f"Skipping malformed signal {raw!r}: {e}")
            return None
