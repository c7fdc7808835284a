"""Host-header probe: ask the IP to serve each candidate domain."""

import logging
from dataclasses import dataclass, field
from typing import Optional

import httpx

from leadtrace.config import settings
from leadtrace.domains import brand_label, normalize_domain
from leadtrace.models import DomainSignal, SourceKind, VisitorContext
from .base import SignalCollector

logger = logging.getLogger(__name__)


@dataclass
class ProbeTrial:
    """One Host-header attempt against an IP."""

    domain: str
    status_code: Optional[int] = None
    snippet: Optional[str] = None
    success: bool = False


@dataclass
class ProbeResult:
    """Winning signal (if any) plus every trial made to find it."""

    signal: Optional[DomainSignal] = None
    trials: list[ProbeTrial] = field(default_factory=list)


class HostHeaderProbe(SignalCollector):
    """Virtual-host probe against the visitor IP.

    Candidates are tried in order and the first one the server answers with
    200 (and, by default, with the candidate's brand in the first 500
    characters) wins.
    """

    name = "host_header"
    source = SourceKind.HOST_HEADER

    CONFIDENCE = 0.85
    SNIPPET_LENGTH = 500

    def __init__(
        self,
        require_branding: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        super().__init__(timeout)
        self.require_branding = require_branding
        self.transport = transport

    async def collect(self, visitor: VisitorContext) -> list[DomainSignal]:
        result = await self.probe(visitor.ip, visitor.candidate_domains, self.require_branding)
        return [result.signal] if result.signal else []

    async def probe(
        self,
        ip: str,
        candidates: list[str],
        require_branding: bool = True,
    ) -> ProbeResult:
        result = ProbeResult()
        if not candidates:
            return result

        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            follow_redirects=False,
            transport=self.transport,
        ) as client:
            for candidate in candidates:
                domain = normalize_domain(candidate)
                if not domain:
                    continue

                trial = await self._try(client, ip, domain, require_branding)
                result.trials.append(trial)
                logger.debug(
                    f"Host probe {ip} Host={domain}: status={trial.status_code} success={trial.success}"
                )

                if trial.success:
                    reason = (
                        "Host-header probing match op 200 + branding"
                        if require_branding
                        else "Host-header probing match op 200"
                    )
                    result.signal = self.signal(domain, self.CONFIDENCE, reason)
                    break

        return result

    async def _try(
        self,
        client: httpx.AsyncClient,
        ip: str,
        domain: str,
        require_branding: bool,
    ) -> ProbeTrial:
        trial = ProbeTrial(domain=domain)
        try:
            response = await client.get(
                f"http://{ip}/",
                headers={"Host": domain, "User-Agent": settings.user_agent},
            )
        except httpx.TimeoutException:
            logger.debug(f"Timeout probing {ip} with Host={domain}")
            return trial
        except httpx.RequestError as e:
            logger.debug(f"Request error probing {ip} with Host={domain}: {e}")
            return trial

        trial.status_code = response.status_code
        trial.snippet = response.text[: self.SNIPPET_LENGTH].lower()

        if response.status_code != 200:
            return trial

        trial.success = not require_branding or brand_label(domain) in trial.snippet
        return trial
