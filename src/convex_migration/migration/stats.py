"""Run statistics for the final summary report.

Counters are advisory only; nothing reads them to make migration decisions.
"""

from dataclasses import asdict, dataclass, field
from typing import Any

from convex_migration.migration.models import Outcome, RecordKind

MAX_ISSUES = 500


@dataclass
class KindStats:
    """Counters for one record kind."""

    total: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errored: int = 0

    @property
    def processed(self) -> int:
        return self.created + self.updated + self.skipped + self.errored


@dataclass
class Issue:
    """A skipped or failed record, kept for the report."""

    kind: str
    outcome: str
    source_id: str | None
    reason: str


@dataclass
class RunStatistics:
    """Per-kind counters accumulated over one run."""

    kinds: dict[RecordKind, KindStats] = field(default_factory=dict)
    issues: list[Issue] = field(default_factory=list)
    dropped_issues: int = 0

    def for_kind(self, kind: RecordKind) -> KindStats:
        return self.kinds.setdefault(kind, KindStats())

    def set_total(self, kind: RecordKind, total: int) -> None:
        self.for_kind(kind).total = total

    def record(
        self,
        kind: RecordKind,
        outcome: Outcome,
        source_id: str | None = None,
        reason: str | None = None,
    ) -> None:
        """Count one outcome; skips and errors with a reason are also kept as issues."""
        stats = self.for_kind(kind)
        setattr(stats, outcome.value, getattr(stats, outcome.value) + 1)

        if reason and outcome in (Outcome.SKIPPED, Outcome.ERRORED):
            if len(self.issues) < MAX_ISSUES:
                self.issues.append(Issue(kind.value, outcome.value, source_id, reason))
            else:
                self.dropped_issues += 1

    @property
    def has_errors(self) -> bool:
        return any(stats.errored for stats in self.kinds.values())

    def summary(self) -> dict[str, Any]:
        """Plain-dict view for reports and JSON output."""
        return {
            "kinds": {kind.value: asdict(stats) for kind, stats in self.kinds.items()},
            "issues": [asdict(issue) for issue in self.issues],
            "dropped_issues": self.dropped_issues,
        }
