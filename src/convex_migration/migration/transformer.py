"""Record transformers: legacy document shape to Convex document shape.

Each transformer handles one record kind. ``transform`` returns the target
payload, raises :class:`SkipRecordError` for a deliberate no-op and
:class:`TransformationError` when a required field is missing.
"""

from collections import defaultdict
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from convex_migration.client.exceptions import SkipRecordError, TransformationError
from convex_migration.migration.mapping import IdentifierMapper
from convex_migration.migration.models import RecordKind, ReferenceType, TagReference
from convex_migration.utils.logging import get_logger

logger = get_logger(__name__)

MEMBER_ROLE = "org:member"
TAG_ADMIN_ROLE = "tag:admin"


def normalize_timestamp(value: Any, default: datetime) -> str:
    """Render a timestamp as ISO-8601 UTC with millisecond precision.

    Accepts datetimes (naive ones are taken as UTC), ISO strings and epoch
    milliseconds. Empty values resolve to ``default``.

    Raises:
        TransformationError: If the value cannot be interpreted
    """
    if value is None or value == "":
        moment = default
    elif isinstance(value, datetime):
        moment = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        moment = datetime.fromtimestamp(value / 1000, tz=UTC)
    elif isinstance(value, str):
        try:
            moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as e:
            raise TransformationError(f"Unparseable timestamp: {value!r}") from e
    else:
        raise TransformationError(f"Unsupported timestamp type: {type(value).__name__}")

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def format_address(address: dict[str, Any]) -> str:
    """Single-line address as sent to the geocoder."""
    street = address.get("street", "")
    city = address.get("city", "")
    state = address.get("state", "")
    zip_code = address.get("zip", "")
    return f"{street}, {city}, {state} {zip_code}".strip()


def build_reference_index(documents: Iterable[dict[str, Any]]) -> dict[str, list[TagReference]]:
    """Group tag reference documents by source tag id.

    Malformed references are logged and left out of the index.
    """
    index: dict[str, list[TagReference]] = defaultdict(list)
    for document in documents:
        try:
            reference = TagReference.from_document(document)
        except (KeyError, ValueError) as e:
            logger.warning("tag_reference_ignored", reference_id=str(document.get("_id")), error=str(e))
            continue
        index[reference.tag_id].append(reference)
    return dict(index)


def classify_record_type(references: Iterable[TagReference]) -> str:
    """Decide which record kind a tag is meant for.

    Only a tag referenced exclusively by contacts is a contact tag. Tags with
    both kinds of references, or none, fall back to properties.
    """
    types = {reference.reference_type for reference in references}
    has_contacts = ReferenceType.CONTACT in types
    has_properties = ReferenceType.PROPERTY in types

    if has_contacts and not has_properties:
        return ReferenceType.CONTACT.record_type
    return ReferenceType.PROPERTY.record_type


class RecordTransformer:
    """Base class for per-kind transformers."""

    KIND: RecordKind

    @staticmethod
    def source_id(document: dict[str, Any]) -> str | None:
        raw = document.get("_id")
        return str(raw) if raw is not None else None

    def transform(self, document: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError


class UserTransformer(RecordTransformer):
    """Legacy ``users`` document to Convex user."""

    KIND = RecordKind.USERS

    def __init__(self, mapper: IdentifierMapper, now: datetime | None = None):
        self.mapper = mapper
        self.now = now or datetime.now(UTC)

    def _memberships(self, teams: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
        memberships = []
        for team in teams:
            org_id = self.mapper.map_org(team.get("teamId"))
            if org_id is None:
                continue
            status = str(team.get("status") or "")
            memberships.append(
                {
                    "id": org_id,
                    "role": MEMBER_ROLE,
                    "status": "active" if status.lower() == "approved" else "pending",
                }
            )
        return memberships

    def transform(self, document: dict[str, Any]) -> dict[str, Any]:
        source_id = self.source_id(document)
        email = document.get("email")
        if not email:
            raise TransformationError("User has no email", source_id=source_id)

        email = str(email).lower()
        org_ids = self._memberships(document.get("team") or [])
        if not org_ids:
            raise SkipRecordError(f"No mapped organizations for {email}", source_id=source_id)

        active_org_id = self.mapper.map_org(document.get("teamActive")) or org_ids[0]["id"]

        first_name = document.get("firstName") or ""
        last_name = document.get("lastName") or ""

        try:
            last_seen = normalize_timestamp(document.get("lastActive"), self.now)
        except TransformationError as e:
            raise TransformationError(str(e), source_id=source_id) from e

        return {
            "mongoId": source_id,
            "email": email,
            "emailVerified": True,
            "image": document.get("profileImg"),
            "isOnboardingComplete": bool(document.get("isOnBoarded", False)),
            "name": " ".join(part for part in (first_name, last_name) if part),
            "firstName": first_name,
            "lastName": last_name,
            "phone": document.get("phone") or "",
            "orgIds": org_ids,
            "activeOrgId": active_org_id,
            "presence": {"lastSeen": last_seen, "status": "offline"},
            "providers": [""],
        }


class PropertyTransformer(RecordTransformer):
    """Convex property to the input of a coordinate update.

    The payload carries the flattened address; the coordinates themselves
    come from the geocoder.
    """

    KIND = RecordKind.PROPERTIES

    def transform(self, document: dict[str, Any]) -> dict[str, Any]:
        source_id = self.source_id(document)
        address = document.get("address")
        if not address:
            raise SkipRecordError("No address", source_id=source_id)
        if not isinstance(address, dict):
            raise TransformationError("Address is not a document", source_id=source_id)

        return {
            "id": document["_id"],
            "orgId": document.get("orgId"),
            "address": format_address(address),
        }


class TagTransformer(RecordTransformer):
    """Legacy ``tagdatas`` document to Convex tag."""

    KIND = RecordKind.TAGS

    def __init__(self, mapper: IdentifierMapper, references: dict[str, list[TagReference]]):
        self.mapper = mapper
        self.references = references

    def transform(self, document: dict[str, Any]) -> dict[str, Any]:
        source_id = self.source_id(document)
        name = document.get("tag")
        if not name:
            raise TransformationError("Tag has no label", source_id=source_id)

        org_id = self.mapper.map_org(document.get("team"))
        if org_id is None:
            raise SkipRecordError(f"Organization {document.get('team')} is not mapped", source_id=source_id)

        creator_id = self.mapper.map_user(document.get("userId"))
        user_ids = [{"userId": creator_id, "role": TAG_ADMIN_ROLE}] if creator_id else []

        return {
            "orgId": org_id,
            "name": name,
            "recordType": classify_record_type(self.references.get(source_id, [])),
            "userIds": user_ids,
            "mongoId": source_id,
        }
