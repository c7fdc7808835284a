"""Google Places business directory lookup."""

import logging
import re
from typing import Optional

import httpx

from leadtrace.config import settings
from leadtrace.models import BusinessLocation, DomainSignal, GeoMatchResult, SourceKind, VisitorContext
from leadtrace.score import GeoMatchChooser
from .base import SignalCollector

logger = logging.getLogger(__name__)

# "<street>, <postal> <city>, <country>" with a Dutch/Belgian style postal code
ADDRESS_RE = re.compile(r"^(.+?),\s*(\d{4}\s?[A-Z]{2})\s(.+),\s*(.+)$")


def parse_address(formatted: Optional[str]) -> dict:
    """Split a formatted address into street, postal code, city and country."""
    if not formatted:
        return {}

    match = ADDRESS_RE.match(formatted)
    if not match:
        return {"street": formatted}

    street, postal_code, city, country = (part.strip() for part in match.groups())
    return {"street": street, "postal_code": postal_code, "city": city, "country": country}


def format_category(place_type: Optional[str]) -> Optional[str]:
    """Turn a place type like ``real_estate_agency`` into ``Real Estate Agency``."""
    if not place_type:
        return None
    return " ".join(word.capitalize() for word in place_type.split("_"))


class DirectoryLookup(SignalCollector):
    """Search the business directory for a candidate domain.

    Up to ``MAX_RESULTS`` text-search hits are expanded with place details,
    then one is chosen with the geo-match chooser using the visitor's
    location. Without a visitor location the first hit is taken at 0.5.
    """

    name = "google_maps"
    source = SourceKind.GOOGLE_MAPS

    BASE_URL = "https://maps.googleapis.com/maps/api/place"
    MAX_RESULTS = 5
    DETAIL_FIELDS = "name,formatted_address,formatted_phone_number,website,types"
    NO_LOCATION_CONFIDENCE = 0.5

    def __init__(
        self,
        api_key: Optional[str] = None,
        chooser: Optional[GeoMatchChooser] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        super().__init__(timeout)
        self.api_key = api_key if api_key is not None else settings.google_maps_api_key
        self.chooser = chooser or GeoMatchChooser()
        self.transport = transport

    async def collect(self, visitor: VisitorContext) -> list[DomainSignal]:
        if not visitor.candidate_domains:
            return []

        domain = visitor.candidate_domains[0]
        result = await self.lookup(domain, visitor.latitude, visitor.longitude)
        if result is None:
            return []
        return [self.to_signal(domain, result)]

    def to_signal(self, domain: str, result: GeoMatchResult) -> DomainSignal:
        return self.signal(domain, result.confidence, f"Google Maps {result.reason}")

    async def lookup(
        self,
        query: str,
        lat: Optional[float] = None,
        lon: Optional[float] = None,
    ) -> Optional[GeoMatchResult]:
        """Find the listing for ``query`` (a domain or company name)."""
        if not self.api_key:
            logger.debug("No Google Maps API key configured, skipping directory lookup")
            return None

        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            transport=self.transport,
        ) as client:
            try:
                places = await self._text_search(client, query)
                locations = []
                for place in places[: self.MAX_RESULTS]:
                    location = await self._details(client, place)
                    if location:
                        locations.append(location)

            except httpx.TimeoutException:
                logger.warning(f"Google Places request timed out for '{query}'")
                return None
            except httpx.RequestError as e:
                logger.warning(f"Google Places request failed for '{query}': {e}")
                return None

        if not locations:
            logger.info(f"No directory listing found for '{query}'")
            return None

        if lat is None or lon is None:
            return GeoMatchResult(
                match=locations[0],
                confidence=self.NO_LOCATION_CONFIDENCE,
                reason="no-ip-location",
            )

        return self.chooser.choose(locations, lat, lon, query)

    async def _text_search(self, client: httpx.AsyncClient, query: str) -> list[dict]:
        response = await client.get(
            f"{self.BASE_URL}/textsearch/json",
            params={"query": query, "key": self.api_key},
        )
        if response.status_code != 200:
            logger.warning(f"Google Places text search returned {response.status_code}")
            return []

        try:
            data = response.json()
        except ValueError:
            logger.warning(f"Unparseable text search response: {response.text[:300]}")
            return []

        return data.get("results") or []

    async def _details(self, client: httpx.AsyncClient, place: dict) -> Optional[BusinessLocation]:
        location = (place.get("geometry") or {}).get("location") or {}
        if "lat" not in location or "lng" not in location or not place.get("place_id"):
            return None

        response = await client.get(
            f"{self.BASE_URL}/details/json",
            params={"place_id": place["place_id"], "fields": self.DETAIL_FIELDS, "key": self.api_key},
        )
        try:
            result = response.json().get("result")
        except ValueError:
            logger.warning(f"Unparseable place details response: {response.text[:300]}")
            return None
        if not result:
            return None

        formatted = result.get("formatted_address") or None
        types = result.get("types") or []

        return BusinessLocation(
            name=result.get("name"),
            address=formatted,
            phone=result.get("formatted_phone_number"),
            website=result.get("website"),
            category=format_category(types[0] if types else None),
            lat=location["lat"],
            lon=location["lng"],
            **parse_address(formatted),
        )
