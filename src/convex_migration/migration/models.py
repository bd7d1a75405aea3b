"""Shared value types for the migration pipeline."""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class RecordKind(Enum):
    """Kinds of records moved or reconciled by a run."""

    USERS = "users"
    PROPERTIES = "properties"
    TAGS = "tags"
    TAG_LINKS = "tag_links"


class Outcome(Enum):
    """Per-record result of a write decision."""

    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    ERRORED = "errored"


class TagState(Enum):
    """Lifecycle of a tag within one run."""

    PENDING = "pending"
    CREATED = "created"
    LINKING = "linking"
    DONE = "done"
    SKIPPED = "skipped"
    ERRORED = "errored"


class ReferenceType(Enum):
    """Kind of record a tag reference points at."""

    CONTACT = "contact"
    PROPERTY = "property"

    @property
    def record_type(self) -> str:
        """Plural name used by the target for this record kind."""
        return "contacts" if self is ReferenceType.CONTACT else "properties"


@dataclass(frozen=True)
class TagReference:
    """Link between a source tag and a source record."""

    tag_id: str
    record_id: str
    reference_type: ReferenceType

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "TagReference":
        """Build from a ``tagrefs`` document.

        Raises:
            KeyError: If ``tagObject`` or ``refWith`` is missing
            ValueError: If ``type`` is not a known reference type
        """
        return cls(
            tag_id=str(document["tagObject"]),
            record_id=str(document["refWith"]),
            reference_type=ReferenceType(document.get("type")),
        )
