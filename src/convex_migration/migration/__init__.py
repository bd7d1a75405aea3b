"""
Migration module for Convex Bridge.

This module provides extraction, transformation, duplicate detection and
write coordination for moving legacy MongoDB records into Convex.
"""

from convex_migration.migration.duplicates import ExistingIndex, Match
from convex_migration.migration.extractor import Page, PaginatedExtractor
from convex_migration.migration.mapping import IdentifierMapper
from convex_migration.migration.models import Outcome, RecordKind, ReferenceType, TagReference, TagState
from convex_migration.migration.stats import RunStatistics

__all__ = [
    "ExistingIndex",
    "Match",
    "Page",
    "PaginatedExtractor",
    "IdentifierMapper",
    "Outcome",
    "RecordKind",
    "ReferenceType",
    "TagReference",
    "TagState",
    "RunStatistics",
]
