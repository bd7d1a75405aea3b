"""Reporting for Convex Bridge migration runs."""

from convex_migration.reporting.report import MigrationReport, build_summary_table, format_duration

__all__ = [
    "MigrationReport",
    "build_summary_table",
    "format_duration",
]
