"""Duplicate detection against records already present in the target.

Re-running a migration after a partial run must not create a second copy
of anything. The existing target records of a kind are fetched once per
run and indexed by the ``mongoId`` they carry and by a natural key.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from convex_migration.utils.logging import get_logger

logger = get_logger(__name__)

SOURCE_ID_FIELD = "mongoId"


class Match(Enum):
    """How a candidate relates to the existing target records."""

    NEW = "new"
    DUPLICATE_BY_ID = "duplicate_by_id"
    DUPLICATE_BY_KEY = "duplicate_by_key"


@dataclass(frozen=True)
class Classification:
    """Result of classifying one candidate."""

    match: Match
    existing: dict[str, Any] | None = None

    @property
    def is_duplicate(self) -> bool:
        return self.match is not Match.NEW


def email_key(record: dict[str, Any]) -> str | None:
    email = record.get("email")
    return str(email).lower() if email else None


def name_key(record: dict[str, Any]) -> str | None:
    name = record.get("name")
    return str(name) if name else None


class ExistingIndex:
    """In-memory index of a kind's target records.

    Keyed by the source id stored on the target record and by a natural
    key. Records written during the run are added with :meth:`remember` so
    the index stays the single authoritative view.
    """

    def __init__(self, natural_key: Callable[[dict[str, Any]], str | None]):
        self.natural_key = natural_key
        self._by_source_id: dict[str, dict[str, Any]] = {}
        self._by_natural_key: dict[str, dict[str, Any]] = {}

    @classmethod
    def build(
        cls,
        records: Iterable[dict[str, Any]],
        natural_key: Callable[[dict[str, Any]], str | None],
    ) -> "ExistingIndex":
        index = cls(natural_key)
        for record in records:
            index.remember(record)
        logger.info(
            "existing_index_built",
            by_source_id=len(index._by_source_id),
            by_natural_key=len(index._by_natural_key),
        )
        return index

    def remember(self, record: dict[str, Any]) -> None:
        """Add or refresh a target record."""
        source_id = record.get(SOURCE_ID_FIELD)
        if source_id:
            self._by_source_id[str(source_id)] = record

        key = self.natural_key(record)
        if key is not None:
            self._by_natural_key.setdefault(key, record)

    def classify(self, candidate: dict[str, Any]) -> Classification:
        """Classify a transformed candidate.

        A source id match wins over a natural key match.
        """
        source_id = candidate.get(SOURCE_ID_FIELD)
        if source_id and str(source_id) in self._by_source_id:
            return Classification(Match.DUPLICATE_BY_ID, self._by_source_id[str(source_id)])

        key = self.natural_key(candidate)
        if key is not None and key in self._by_natural_key:
            return Classification(Match.DUPLICATE_BY_KEY, self._by_natural_key[key])

        return Classification(Match.NEW)
