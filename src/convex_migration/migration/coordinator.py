"""Migration coordinator for the users, properties and tags phases.

Each phase runs the same pipeline: extract the complete record set, index
what already exists on the target, then transform and write record by
record. Per-record failures are counted and the phase moves on; failures
to authenticate, extract or index abort the run.
"""

from collections.abc import Iterable
from contextlib import AsyncExitStack
from datetime import UTC, datetime
from typing import Any

from convex_migration.client.convex_client import ConvexPaginatedQuery, ConvexTargetClient
from convex_migration.client.exceptions import (
    AuthenticationError,
    ConfigurationError,
    ExtractionError,
    SkipRecordError,
)
from convex_migration.client.geocoding_client import GoogleGeocodingClient
from convex_migration.client.mongo_source_client import (
    MongoCollectionSource,
    MongoSourceClient,
    to_object_ids,
)
from convex_migration.config import MigrationConfig, SourceStoreConfig
from convex_migration.migration.associations import AssociationReconciler, CreatedTagIndex
from convex_migration.migration.duplicates import ExistingIndex, Match, email_key, name_key
from convex_migration.migration.extractor import PaginatedExtractor
from convex_migration.migration.mapping import IdentifierMapper
from convex_migration.migration.models import Outcome, RecordKind, TagState
from convex_migration.migration.stats import RunStatistics
from convex_migration.migration.transformer import (
    PropertyTransformer,
    RecordTransformer,
    TagTransformer,
    UserTransformer,
    build_reference_index,
)
from convex_migration.migration.upsert import (
    TargetStore,
    UpsertCoordinator,
    WritePolicy,
    WriteThrottle,
)
from convex_migration.utils.logging import get_logger, log_migration_progress

logger = get_logger(__name__)

PHASE_ORDER = ("users", "properties", "tags")
PROGRESS_EVERY = 100


def tag_filter(source_config: SourceStoreConfig) -> dict[str, Any]:
    """Restrict tags to the configured teams, if any."""
    team_ids = source_config.team_ids
    return {"team": {"$in": to_object_ids(team_ids)}} if team_ids else {}


def reference_filter(source_config: SourceStoreConfig) -> dict[str, Any]:
    return {"type": {"$in": list(source_config.reference_types)}}


class MigrationCoordinator:
    """Runs the migration phases against already-open stores."""

    def __init__(
        self,
        config: MigrationConfig,
        target: TargetStore,
        source: MongoSourceClient | None = None,
        geocoder: Any = None,
        mapper: IdentifierMapper | None = None,
        throttle: WriteThrottle | None = None,
        now: datetime | None = None,
    ):
        """Initialize the coordinator.

        Args:
            config: Migration configuration
            target: Convex client (or anything with ``query``/``mutation``)
            source: MongoDB client, required by the users and tags phases
            geocoder: Object with ``async geocode(address)``, required by
                the properties phase
            mapper: Identifier mapper; built from ``config.mappings`` if omitted
            throttle: Post-write delay; built from ``config.performance`` if omitted
            now: Run start time used for missing timestamps
        """
        self.config = config
        self.functions = config.functions
        self.target = target
        self.source = source
        self.geocoder = geocoder
        self.mapper = mapper or IdentifierMapper.from_config(config.mappings)
        self.now = now or datetime.now(UTC)

        self.stats = RunStatistics()
        self.throttle = throttle or WriteThrottle(config.performance.write_delay_ms)
        self.extractor = PaginatedExtractor(config.performance.source_page_size)
        self.upserter = UpsertCoordinator(target, self.stats, self.throttle)

        self.viewer: dict[str, Any] | None = None
        self.tag_states: dict[str, TagState] = {}

    async def authenticate(self) -> dict[str, Any]:
        """Resolve the viewer of the configured token.

        Raises:
            AuthenticationError: If there is no viewer
        """
        viewer = await self.target.query(self.functions.viewer)
        if not viewer:
            raise AuthenticationError("Authentication failed: no viewer for the configured token")
        self.viewer = viewer
        logger.info("target_authenticated", viewer_id=viewer.get("_id"))
        return viewer

    def _require_source(self) -> MongoSourceClient:
        if self.source is None:
            raise ConfigurationError("A MongoDB source client is required for this phase")
        return self.source

    async def _existing_index(self, function: str, natural_key: Any) -> ExistingIndex:
        try:
            existing = await self.target.query(function)
        except Exception as e:
            raise ExtractionError(f"Could not load existing target records via {function}: {e}") from e
        return ExistingIndex.build(existing or [], natural_key)

    def _transform(
        self, transformer: RecordTransformer, document: dict[str, Any]
    ) -> dict[str, Any] | None:
        """Transform one document, recording skips and failures."""
        kind = transformer.KIND
        source_id = transformer.source_id(document)
        try:
            return transformer.transform(document)
        except SkipRecordError as e:
            logger.info("record_skipped", kind=kind.value, source_id=source_id, reason=e.reason)
            self.stats.record(kind, Outcome.SKIPPED, source_id, e.reason)
        except Exception as e:
            logger.error(
                "record_transform_failed",
                kind=kind.value,
                source_id=source_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            self.stats.record(kind, Outcome.ERRORED, source_id, f"{type(e).__name__}: {e}")
        return None

    def _progress(self, kind: RecordKind, completed: int, total: int) -> None:
        if completed % PROGRESS_EVERY == 0 or completed == total:
            log_migration_progress(logger, kind.value, completed, total)

    async def migrate_users(self) -> None:
        """Create or update target users from the legacy ``users`` collection."""
        source_client = self._require_source()
        source = MongoCollectionSource(source_client, self.config.source.users_collection)

        logger.info("users_phase_started", source_count=await source.count())
        documents = await self.extractor.fetch_all(source)
        self.stats.set_total(RecordKind.USERS, len(documents))

        index = await self._existing_index(self.functions.users_get_all, email_key)
        transformer = UserTransformer(self.mapper, self.now)
        policy = WritePolicy(RecordKind.USERS, self.functions.users_create, self.functions.users_update)

        for position, document in enumerate(documents, 1):
            candidate = self._transform(transformer, document)
            if candidate is not None:
                await self.upserter.upsert(policy, candidate, index, transformer.source_id(document))
            self._progress(RecordKind.USERS, position, len(documents))

    async def migrate_properties(self) -> None:
        """Geocode every property of the viewer's active organization."""
        if self.geocoder is None:
            raise ConfigurationError("A geocoder is required for the properties phase")

        viewer = self.viewer or await self.authenticate()
        source = ConvexPaginatedQuery(
            self.target,
            self.functions.properties_list,
            {"orgId": viewer.get("activeOrgId"), "isDeleted": False},
        )
        documents = await self.extractor.fetch_all(source, self.config.performance.target_page_size)
        self.stats.set_total(RecordKind.PROPERTIES, len(documents))
        logger.info("properties_phase_started", total=len(documents))

        transformer = PropertyTransformer()
        for position, document in enumerate(documents, 1):
            candidate = self._transform(transformer, document)
            if candidate is not None:
                await self._geocode_property(candidate)
            self._progress(RecordKind.PROPERTIES, position, len(documents))

    async def _geocode_property(self, candidate: dict[str, Any]) -> Outcome:
        property_id = str(candidate["id"])
        try:
            location = await self.geocoder.geocode(candidate["address"])
        except Exception as e:
            logger.error("geocoding_failed", property_id=property_id, error=str(e))
            self.stats.record(RecordKind.PROPERTIES, Outcome.ERRORED, property_id, f"Geocoding failed: {e}")
            return Outcome.ERRORED

        if location is None:
            logger.warning("geocoding_no_result", property_id=property_id, address=candidate["address"])
            self.stats.record(
                RecordKind.PROPERTIES,
                Outcome.ERRORED,
                property_id,
                f"No coordinates for {candidate['address']}",
            )
            return Outcome.ERRORED

        logger.debug("property_geocoded", property_id=property_id, coordinates=location["coordinates"])
        return await self.upserter.update_existing(
            RecordKind.PROPERTIES,
            self.functions.properties_update,
            {"id": candidate["id"], "orgId": candidate["orgId"], "location": location},
            property_id,
        )

    async def migrate_tags(self) -> None:
        """Create tags, then link them to the records that reference them."""
        source_client = self._require_source()
        source_config = self.config.source

        tag_source = MongoCollectionSource(
            source_client, source_config.tags_collection, tag_filter(source_config)
        )
        ref_source = MongoCollectionSource(
            source_client, source_config.tag_refs_collection, reference_filter(source_config)
        )

        logger.info("tags_phase_counting", source_count=await tag_source.count())
        documents = await self.extractor.fetch_all(tag_source)
        references = build_reference_index(await self.extractor.fetch_all(ref_source))
        self.stats.set_total(RecordKind.TAGS, len(documents))
        logger.info("tags_phase_started", total=len(documents), referenced_tags=len(references))

        index = await self._existing_index(self.functions.tags_get_all, name_key)
        transformer = TagTransformer(self.mapper, references)
        policy = WritePolicy(RecordKind.TAGS, self.functions.tags_create, requires_created_id=True)
        created = CreatedTagIndex()
        states = self.tag_states

        for position, document in enumerate(documents, 1):
            source_id = transformer.source_id(document)
            states[source_id] = TagState.PENDING
            skipped_before = self.stats.for_kind(RecordKind.TAGS).skipped
            candidate = self._transform(transformer, document)
            if candidate is None:
                skipped = self.stats.for_kind(RecordKind.TAGS).skipped > skipped_before
                states[source_id] = TagState.SKIPPED if skipped else TagState.ERRORED
                self._progress(RecordKind.TAGS, position, len(documents))
                continue

            if self.config.tags.relink_existing:
                classification = index.classify(candidate)
                if classification.match is Match.DUPLICATE_BY_ID:
                    created.add(source_id, str(classification.existing["_id"]))

            result = await self.upserter.upsert(policy, candidate, index, source_id)
            if result.outcome is Outcome.CREATED:
                created.add(source_id, result.target_id)
                states[source_id] = TagState.CREATED
            elif source_id in created:
                # existing tag re-entering the link pass
                states[source_id] = TagState.CREATED
            elif result.outcome is Outcome.SKIPPED:
                states[source_id] = TagState.SKIPPED
            else:
                states[source_id] = TagState.ERRORED
            self._progress(RecordKind.TAGS, position, len(documents))

        logger.info("tag_associations_started", tags=len(created))
        reconciler = AssociationReconciler(self.target, self.functions, self.stats, self.throttle)
        await reconciler.reconcile(created, references, states)

    async def run(self, phases: Iterable[str] | None = None) -> RunStatistics:
        """Authenticate, then run the selected phases in dependency order.

        Args:
            phases: Phase names; defaults to those enabled in the configuration

        Returns:
            The run statistics
        """
        selected = set(phases) if phases is not None else enabled_phases(self.config)
        unknown = selected - set(PHASE_ORDER)
        if unknown:
            raise ConfigurationError(f"Unknown phases: {', '.join(sorted(unknown))}")

        await self.authenticate()

        for phase in PHASE_ORDER:
            if phase not in selected:
                continue
            logger.info("phase_starting", phase=phase)
            await getattr(self, f"migrate_{phase}")()
            logger.info("phase_completed", phase=phase)

        return self.stats


def enabled_phases(config: MigrationConfig) -> set[str]:
    """Phases switched on in the configuration."""
    return {phase for phase in PHASE_ORDER if getattr(config.phases, phase)}


async def run_migration(config: MigrationConfig, phases: Iterable[str] | None = None) -> RunStatistics:
    """Open the stores, run the migration, and close everything on every exit path."""
    selected = set(phases) if phases is not None else enabled_phases(config)

    async with AsyncExitStack() as stack:
        target = ConvexTargetClient(
            config.target,
            rate_limit=config.performance.rate_limit,
            log_payloads=config.logging.log_payloads,
            max_payload_size=config.logging.max_payload_size,
        )
        stack.push_async_callback(target.close)

        source = None
        if selected & {"users", "tags"}:
            source = MongoSourceClient(config.source)
            stack.push_async_callback(source.close)
            await source.connect()

        geocoder = None
        if "properties" in selected:
            if config.geocoding is None:
                raise ConfigurationError("geocoding configuration is required for the properties phase")
            geocoder = GoogleGeocodingClient(config.geocoding)
            stack.push_async_callback(geocoder.close)

        coordinator = MigrationCoordinator(config, target, source=source, geocoder=geocoder)
        return await coordinator.run(selected)


async def count_source_records(config: MigrationConfig) -> dict[str, int]:
    """Count the legacy documents each MongoDB-backed phase would read."""
    source_config = config.source
    async with MongoSourceClient(source_config) as client:
        await client.connect()
        return {
            "users": await client.count(source_config.users_collection),
            "tags": await client.count(source_config.tags_collection, tag_filter(source_config)),
            "tag_references": await client.count(
                source_config.tag_refs_collection, reference_filter(source_config)
            ),
        }
