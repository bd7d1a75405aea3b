"""Source-to-target identifier mapping.

Organizations and users already exist in Convex before a run; the mapping
tables are static configuration and are never mutated during a migration.
"""

from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from convex_migration.config import MappingsConfig
from convex_migration.utils.logging import get_logger

logger = get_logger(__name__)


class IdentifierMapper:
    """Read-only lookup of target identifiers for source identifiers.

    ``map_org`` is strict: anything not in the table maps to None, and a
    record whose organization does not map must not be written.
    ``map_user`` is permissive: unknown users map to a fallback target
    user so that ownership metadata never blocks a record. Every record
    whose creator is unknown is attributed to that single account.
    """

    def __init__(
        self,
        organizations: Mapping[str, str],
        users: Mapping[str, str],
        fallback_user_id: str | None = None,
    ):
        self._organizations = MappingProxyType({str(k): str(v) for k, v in organizations.items()})
        self._users = MappingProxyType({str(k): str(v) for k, v in users.items()})
        self.fallback_user_id = fallback_user_id

    @classmethod
    def from_config(cls, config: MappingsConfig) -> "IdentifierMapper":
        mapper = cls(config.organizations, config.users, config.fallback_user_id)
        logger.info(
            "identifier_mapper_loaded",
            organizations=len(mapper.organizations),
            users=len(mapper.users),
            has_fallback_user=config.fallback_user_id is not None,
        )
        return mapper

    @property
    def organizations(self) -> Mapping[str, str]:
        return self._organizations

    @property
    def users(self) -> Mapping[str, str]:
        return self._users

    def map_org(self, source_id: Any) -> str | None:
        """Return the target organization id, or None when unmapped."""
        if not source_id:
            return None
        return self._organizations.get(str(source_id))

    def map_user(self, source_id: Any) -> str | None:
        """Return the target user id, falling back to the sentinel user."""
        if source_id:
            target_id = self._users.get(str(source_id))
            if target_id is not None:
                return target_id

        logger.debug("user_mapped_to_fallback", source_id=str(source_id) if source_id else None)
        return self.fallback_user_id
