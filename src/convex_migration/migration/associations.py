"""Tag association reconciliation.

Runs after the tags of a run exist on the target. Each tag's source
references are replayed: the referenced record is resolved on the target
by its ``mongoId``, its current tag links are read, and the link is added
only if it is missing. Re-running the pass therefore never duplicates a
link.
"""

from collections.abc import Iterator
from typing import Any

from convex_migration.client.exceptions import LinkError
from convex_migration.config import FunctionsConfig
from convex_migration.migration.models import Outcome, RecordKind, ReferenceType, TagReference, TagState
from convex_migration.migration.stats import RunStatistics
from convex_migration.migration.upsert import TargetStore, WriteThrottle
from convex_migration.utils.logging import get_logger

logger = get_logger(__name__)


class CreatedTagIndex:
    """Source tag id to target tag id for the tags handled by this run."""

    def __init__(self) -> None:
        self._ids: dict[str, str] = {}

    def add(self, source_id: str, target_id: str) -> None:
        self._ids[source_id] = target_id

    def get(self, source_id: str) -> str | None:
        return self._ids.get(source_id)

    def items(self) -> Iterator[tuple[str, str]]:
        return iter(list(self._ids.items()))

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)


def _link_ids(links: Any) -> set[str]:
    ids = set()
    for link in links or []:
        if isinstance(link, dict):
            if link.get("_id"):
                ids.add(str(link["_id"]))
        elif link:
            ids.add(str(link))
    return ids


class AssociationReconciler:
    """Links created tags to the records that referenced them in the source."""

    def __init__(
        self,
        target: TargetStore,
        functions: FunctionsConfig,
        stats: RunStatistics,
        throttle: WriteThrottle,
    ):
        self.target = target
        self.functions = functions
        self.stats = stats
        self.throttle = throttle
        # (reference type, source record id) -> target record id, None when unresolved
        self._record_ids: dict[tuple[ReferenceType, str], str | None] = {}
        # (record type, target record id) -> tag ids currently linked
        self._links: dict[tuple[str, str], set[str]] = {}

    def _lookup_function(self, reference_type: ReferenceType) -> str:
        if reference_type is ReferenceType.CONTACT:
            return self.functions.contacts_by_mongo_id
        return self.functions.properties_by_mongo_id

    async def _resolve_record(self, reference: TagReference) -> str | None:
        cache_key = (reference.reference_type, reference.record_id)
        if cache_key not in self._record_ids:
            record = await self.target.query(
                self._lookup_function(reference.reference_type), {"mongoId": reference.record_id}
            )
            self._record_ids[cache_key] = str(record["_id"]) if record and record.get("_id") else None
        return self._record_ids[cache_key]

    async def _links_for(self, record_type: str, record_id: str) -> set[str]:
        cache_key = (record_type, record_id)
        if cache_key not in self._links:
            links = await self.target.query(
                self.functions.tags_for_record, {"recordId": record_id, "recordType": record_type}
            )
            self._links[cache_key] = _link_ids(links)
        return self._links[cache_key]

    async def link(self, reference: TagReference, tag_id: str) -> Outcome:
        """Ensure one tag/record link exists.

        Returns:
            CREATED when a link was added, SKIPPED when it already existed,
            ERRORED when the record is unknown or a call failed
        """
        record_type = reference.reference_type.record_type
        link_ref = f"{reference.tag_id}->{reference.record_id}"

        try:
            record_id = await self._resolve_record(reference)
            if record_id is None:
                raise LinkError(
                    f"{record_type} {reference.record_id} not found on target",
                    source_id=reference.record_id,
                )

            links = await self._links_for(record_type, record_id)
            if tag_id in links:
                logger.info("tag_link_exists", tag_id=tag_id, record_type=record_type, record_id=record_id)
                self.stats.record(RecordKind.TAG_LINKS, Outcome.SKIPPED)
                return Outcome.SKIPPED

            await self.target.mutation(
                self.functions.tags_add_to_record, {"recordId": record_id, "tagId": tag_id}
            )
            links.add(tag_id)
        except Exception as e:
            logger.error(
                "tag_link_failed",
                tag_id=tag_id,
                record_type=record_type,
                source_record_id=reference.record_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            self.stats.record(RecordKind.TAG_LINKS, Outcome.ERRORED, link_ref, f"{type(e).__name__}: {e}")
            return Outcome.ERRORED

        logger.info("tag_link_created", tag_id=tag_id, record_type=record_type, record_id=record_id)
        self.stats.record(RecordKind.TAG_LINKS, Outcome.CREATED)
        await self.throttle.wait()
        return Outcome.CREATED

    async def reconcile(
        self,
        created: CreatedTagIndex,
        references: dict[str, list[TagReference]],
        states: dict[str, TagState],
    ) -> None:
        """Link every tag in ``created`` to its referenced records.

        Args:
            created: Tags that exist on the target, by source id
            references: Tag references grouped by source tag id
            states: Per-tag lifecycle, advanced to LINKING then DONE
        """
        for source_tag_id, target_tag_id in created.items():
            tag_references = references.get(source_tag_id, [])
            states[source_tag_id] = TagState.LINKING
            self.stats.for_kind(RecordKind.TAG_LINKS).total += len(tag_references)

            logger.debug(
                "tag_linking_started",
                source_tag_id=source_tag_id,
                tag_id=target_tag_id,
                references=len(tag_references),
            )
            for reference in tag_references:
                await self.link(reference, target_tag_id)

            states[source_tag_id] = TagState.DONE
