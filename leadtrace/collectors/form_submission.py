"""Form submissions as ground-truth identity."""

from typing import Callable, Optional

from leadtrace.domains import email_domain
from leadtrace.models import DomainSignal, SourceKind, VisitorContext
from .base import SignalCollector

EmailLookup = Callable[[str], Optional[str]]

GROUND_TRUTH_CONFIDENCE = 1.0


def signal_from_email(email: Optional[str]) -> Optional[DomainSignal]:
    """The domain of a submitted email address, at full confidence."""
    domain = email_domain(email)
    if not domain:
        return None
    return DomainSignal(
        domain=domain,
        source=SourceKind.FORM_SUBMISSION,
        confidence=GROUND_TRUTH_CONFIDENCE,
        confidence_reason="form submission email domain",
    )


class FormSubmissionCollector(SignalCollector):
    """Look up the most recent form email submitted from the visitor IP."""

    name = "form_submission"
    source = SourceKind.FORM_SUBMISSION

    def __init__(self, latest_email: EmailLookup, timeout: Optional[float] = None):
        super().__init__(timeout)
        self.latest_email = latest_email

    async def collect(self, visitor: VisitorContext) -> list[DomainSignal]:
        signal = signal_from_email(self.latest_email(visitor.ip))
        return [signal] if signal else []
