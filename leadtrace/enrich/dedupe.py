"""Deduplication of people found on team pages."""

import logging
import re
import unicodedata

from leadtrace.models import Person

logger = logging.getLogger(__name__)


class PeopleDeduplicator:
    """Deduplicate people by normalized name plus their best contact key.

    The same person often appears several times on one page (a card, its
    heading and a LinkedIn anchor). Two entries are the same person when
    the normalized name matches and so does the strongest contact detail
    (LinkedIn, then email, phone, photo).
    """

    def deduplicate(self, people: list[Person]) -> list[Person]:
        seen: set[tuple[str, str]] = set()
        result: list[Person] = []

        for person in people:
            name = self.normalize_name(person.full_name)
            if not name:
                continue

            key = (name, self.contact_key(person))
            if key in seen:
                continue

            seen.add(key)
            result.append(person)

        if len(result) < len(people):
            logger.debug(f"Deduplicated {len(people)} people to {len(result)}")

        return result

    @staticmethod
    def normalize_name(name: str) -> str:
        """Lowercase, strip diacritics and collapse whitespace."""
        if not name:
            return ""

        decomposed = unicodedata.normalize("NFD", name.lower())
        stripped = "".join(c for c in decomposed if not unicodedata.combining(c))

        return re.sub(r"\s+", " ", stripped).strip()

    @staticmethod
    def contact_key(person: Person) -> str:
        return person.linkedin_url or person.email or person.phone or person.photo_url or ""
