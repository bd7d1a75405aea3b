"""Create/update/skip decisions and the corresponding target writes.

Policy:
- source id already present on the target: update when the kind allows
  it, otherwise skip
- natural key present without a source id match: skip, never overwrite
- otherwise: create

Write failures are isolated to the record; the run carries on.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

from convex_migration.client.exceptions import RecordError
from convex_migration.migration.duplicates import ExistingIndex, Match
from convex_migration.migration.models import Outcome, RecordKind
from convex_migration.migration.stats import RunStatistics
from convex_migration.utils.logging import get_logger

logger = get_logger(__name__)


class TargetStore(Protocol):
    """The part of the Convex client the pipeline depends on."""

    async def query(self, name: str, args: dict[str, Any] | None = None) -> Any: ...

    async def mutation(self, name: str, args: dict[str, Any] | None = None) -> Any: ...


class WriteThrottle:
    """Fixed pause after each successful write to respect the target's rate limit."""

    def __init__(self, delay_ms: int = 200, sleep: Callable[[float], Awaitable[None]] | None = None):
        self.delay = delay_ms / 1000
        self._sleep = sleep or asyncio.sleep

    async def wait(self) -> None:
        if self.delay > 0:
            await self._sleep(self.delay)


@dataclass(frozen=True)
class WritePolicy:
    """Target functions and update rule for one record kind."""

    kind: RecordKind
    create_function: str
    update_function: str | None = None
    requires_created_id: bool = False

    @property
    def updates_on_id_match(self) -> bool:
        return self.update_function is not None


@dataclass(frozen=True)
class UpsertResult:
    outcome: Outcome
    target_id: str | None = None


def extract_created_id(result: Any, required: bool = True) -> str | None:
    """Pull the new document id out of a create mutation's return value.

    Accepts a bare id, a document with ``_id``, or a
    ``{"status": "success", "data": id}`` envelope.

    Args:
        result: The mutation's return value
        required: Raise when no id is present instead of returning None

    Raises:
        RecordError: If the mutation reports failure, or returns no id
            while one is required
    """
    if isinstance(result, str) and result:
        return result

    if isinstance(result, dict):
        if "status" in result:
            if result["status"] != "success":
                raise RecordError(f"Create rejected: {result.get('message') or result['status']}")
            return extract_created_id(result.get("data"), required)
        for key in ("_id", "id"):
            if result.get(key):
                return str(result[key])

    if required:
        raise RecordError(f"Create returned no id: {result!r}")
    return None


class UpsertCoordinator:
    """Issues the write chosen for each candidate and records its outcome."""

    def __init__(self, target: TargetStore, stats: RunStatistics, throttle: WriteThrottle):
        self.target = target
        self.stats = stats
        self.throttle = throttle

    async def upsert(
        self,
        policy: WritePolicy,
        candidate: dict[str, Any],
        index: ExistingIndex,
        source_id: str | None = None,
    ) -> UpsertResult:
        """Create, update or skip one transformed candidate.

        Args:
            policy: Functions and update rule for the candidate's kind
            candidate: Transformed target payload
            index: Existing target records of the kind
            source_id: Source identifier, for logging and the report

        Returns:
            The outcome, with the target id when one is known
        """
        classification = index.classify(candidate)
        existing = classification.existing or {}

        # records created earlier in the run may have no known target id
        if classification.match is Match.DUPLICATE_BY_KEY or (
            classification.match is Match.DUPLICATE_BY_ID
            and not (policy.updates_on_id_match and existing.get("_id"))
        ):
            logger.info(
                "record_already_exists",
                kind=policy.kind.value,
                source_id=source_id,
                match=classification.match.value,
                target_id=existing.get("_id"),
            )
            self.stats.record(policy.kind, Outcome.SKIPPED, source_id, f"Duplicate ({classification.match.value})")
            return UpsertResult(Outcome.SKIPPED, existing.get("_id"))

        try:
            if classification.match is Match.DUPLICATE_BY_ID:
                target_id = existing["_id"]
                await self.target.mutation(policy.update_function, {"id": target_id, **candidate})
                outcome = Outcome.UPDATED
            else:
                result = await self.target.mutation(policy.create_function, candidate)
                target_id = extract_created_id(result, policy.requires_created_id)
                outcome = Outcome.CREATED
        except Exception as e:
            logger.error(
                "record_write_failed",
                kind=policy.kind.value,
                source_id=source_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            self.stats.record(policy.kind, Outcome.ERRORED, source_id, f"{type(e).__name__}: {e}")
            return UpsertResult(Outcome.ERRORED)

        index.remember({**candidate, "_id": target_id})
        self.stats.record(policy.kind, outcome)
        logger.info(
            f"record_{outcome.value}",
            kind=policy.kind.value,
            source_id=source_id,
            target_id=target_id,
        )

        await self.throttle.wait()
        return UpsertResult(outcome, target_id)

    async def update_existing(
        self,
        kind: RecordKind,
        function: str,
        payload: dict[str, Any],
        source_id: str | None = None,
    ) -> Outcome:
        """Apply an update to a record known to exist on the target."""
        try:
            await self.target.mutation(function, payload)
        except Exception as e:
            logger.error(
                "record_write_failed",
                kind=kind.value,
                source_id=source_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            self.stats.record(kind, Outcome.ERRORED, source_id, f"{type(e).__name__}: {e}")
            return Outcome.ERRORED

        self.stats.record(kind, Outcome.UPDATED)
        logger.info("record_updated", kind=kind.value, source_id=source_id)
        await self.throttle.wait()
        return Outcome.UPDATED
