"""Migration report generation.

This module renders run statistics as a rich console table and as a JSON
report file.
"""

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from rich.table import Table

from convex_migration.migration.stats import RunStatistics
from convex_migration.reporting.colors import MigrationColors
from convex_migration.utils.logging import get_logger

logger = get_logger(__name__)

REPORT_VERSION = "1.0"


class MigrationReport:
    """Summary of one migration run.

    Wraps the run statistics with run metadata and derives totals and
    recommendations for the operator.
    """

    def __init__(
        self,
        stats: RunStatistics,
        phases: list[str],
        started_at: datetime,
        finished_at: datetime | None = None,
    ):
        """Initialize migration report.

        Args:
            stats: Statistics accumulated by the coordinator
            phases: Phases that were run
            started_at: Run start time
            finished_at: Run end time (defaults to now)
        """
        self.stats = stats
        self.phases = phases
        self.started_at = started_at
        self.finished_at = finished_at or datetime.now(UTC)

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    def totals(self) -> dict[str, int]:
        """Counters summed over every record kind."""
        totals = {"total": 0, "created": 0, "updated": 0, "skipped": 0, "errored": 0}
        for kind_stats in self.stats.kinds.values():
            for key in totals:
                totals[key] += getattr(kind_stats, key)
        return totals

    def recommendations(self) -> list[str]:
        """Follow-up hints based on the run's outcome."""
        recommendations = []
        summary = self.stats.summary()

        errored = self.totals()["errored"]
        if errored:
            recommendations.append(
                f"{errored} records failed. Review the issues list and the log file, "
                "then re-run: already migrated records are skipped."
            )

        if summary["dropped_issues"]:
            recommendations.append(
                f"{summary['dropped_issues']} further issues were not recorded in this report; "
                "see the log file."
            )

        if not recommendations:
            recommendations.append("Migration completed without errors.")
        return recommendations

    def to_dict(self) -> dict[str, Any]:
        summary = self.stats.summary()
        return {
            "report_version": REPORT_VERSION,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "duration": format_duration(self.duration_seconds),
            "phases": self.phases,
            "totals": self.totals(),
            "kinds": summary["kinds"],
            "issues": summary["issues"],
            "dropped_issues": summary["dropped_issues"],
            "recommendations": self.recommendations(),
        }

    def generate_json(self, output_path: str | Path | None = None) -> str:
        """Generate JSON report.

        Args:
            output_path: Optional path to save report

        Returns:
            JSON report as string
        """
        json_str = json.dumps(self.to_dict(), indent=2, default=str)

        if output_path:
            path = Path(output_path)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json_str)
            logger.info("json_report_saved", path=str(path))

        return json_str


def format_duration(seconds: float | None) -> str:
    """Format duration in human-readable format."""
    if seconds is None:
        return "N/A"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)

    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    elif minutes > 0:
        return f"{minutes}m {secs}s"
    else:
        return f"{secs}s"


def build_summary_table(stats: RunStatistics, title: str = "Migration Summary") -> Table:
    """Per-kind counters as a rich table."""
    table = Table(title=title, border_style=MigrationColors.BORDER, header_style=MigrationColors.HEADER)
    table.add_column("Kind", style=MigrationColors.LABEL)
    table.add_column("Total", justify="right", style=MigrationColors.RESOURCE_COUNT)
    table.add_column("Created", justify="right", style=MigrationColors.SUCCESS)
    table.add_column("Updated", justify="right", style=MigrationColors.SUCCESS)
    table.add_column("Skipped", justify="right", style=MigrationColors.SKIPPED)
    table.add_column("Errored", justify="right", style=MigrationColors.ERROR)

    for kind, kind_stats in stats.kinds.items():
        table.add_row(
            kind.value,
            f"{kind_stats.total:,}",
            f"{kind_stats.created:,}",
            f"{kind_stats.updated:,}",
            f"{kind_stats.skipped:,}",
            f"{kind_stats.errored:,}",
        )

    return table
