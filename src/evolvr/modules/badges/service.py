"""
BadgeService: best-effort badge orchestration over the ports.

Purpose
-------
Fetch the user aggregate and the (cached) badge catalog, run the rule engine,
persist newly earned badges in one batch and announce them on the EventBus.

Failure Semantics
-----------------
Badges are a best-effort subsystem: every public method returns an empty
result instead of raising when a port fails. The failure is logged with the
user and operation in context.

Dependencies
------------
- PersistenceGateway (user aggregate, earned-badge writes)
- BadgeCatalogSource (definitions; read-only, cached for
  ``badges.catalog_cache_ttl_seconds``)
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from logging import Logger
from typing import Any, Callable, Optional

from evolvr.core.logging.logger import LogContext, get_logger
from evolvr.domain.models.badge import BadgeDefinition
from evolvr.modules.badges.engine import BadgeRuleEngine
from evolvr.modules.badges.rules import parse_catalog
from evolvr.modules.shared.base_service import BaseService
from evolvr.modules.shared.constants import (
    DEFAULT_CATALOG_CACHE_TTL_SECONDS,
    EVENT_BADGES_AWARDED,
)
from evolvr.modules.tasks.ports import BadgeCatalogSource, PersistenceGateway


@dataclass(frozen=True)
class BadgeProgress:
    badge: BadgeDefinition
    progress: float
    is_earned: bool


class BadgeService(BaseService):
    def __init__(
        self,
        gateway: PersistenceGateway,
        catalog_source: BadgeCatalogSource,
        config_manager: Any,
        event_bus: Any,
        logger: Optional[Logger] = None,
        *,
        engine: Optional[BadgeRuleEngine] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(config_manager, event_bus, logger or get_logger(__name__))
        self._gateway = gateway
        self._catalog_source = catalog_source
        self._engine = engine or BadgeRuleEngine()
        self._clock = clock
        self._catalog: Optional[list[BadgeDefinition]] = None
        self._catalog_loaded_at: float = 0.0

    # ------------------------------------------------------------------ #
    # Catalog
    # ------------------------------------------------------------------ #

    def _catalog_ttl(self) -> float:
        return self.get_number_config(
            "badges.catalog_cache_ttl_seconds", DEFAULT_CATALOG_CACHE_TTL_SECONDS
        )

    def invalidate_catalog(self) -> None:
        self._catalog = None
        self._catalog_loaded_at = 0.0

    async def get_catalog(self) -> list[BadgeDefinition]:
        """Badge definitions, served from cache while fresh; `[]` on failure."""
        if self._catalog is not None and self._clock() - self._catalog_loaded_at < self._catalog_ttl():
            return list(self._catalog)

        try:
            raw = await self._catalog_source.get_all_badge_definitions()
        except Exception as exc:
            self.log_error("get_catalog", exc)
            return []

        self._catalog = parse_catalog(raw or [])
        self._catalog_loaded_at = self._clock()
        self.log.debug("Badge catalog loaded", extra={"catalog_size": len(self._catalog)})
        return list(self._catalog)

    # ------------------------------------------------------------------ #
    # Evaluation
    # ------------------------------------------------------------------ #

    async def evaluate_user(self, user_id: str) -> list[str]:
        """
        Award and persist every badge the user newly satisfies.

        Returns the ids of the newly awarded badges (empty on any failure).
        """
        async with LogContext(user_id=user_id, operation="evaluate_badges"):
            try:
                user_state = await self._gateway.get_user_aggregate(user_id)
                catalog = await self.get_catalog()
                result = self._engine.check_and_award(user_state, catalog)

                if not result.newly_awarded:
                    return []

                await self._gateway.save_earned_badges(user_id, list(result.newly_awarded))
            except Exception as exc:
                self.log_error("evaluate_user", exc, user_id=user_id)
                return []

            self.log_operation(
                "evaluate_user",
                user_id=user_id,
                badge_ids=result.newly_awarded,
            )
            await self.emit_event(
                EVENT_BADGES_AWARDED,
                {"user_id": user_id, "badge_ids": list(result.newly_awarded)},
            )
            return list(result.newly_awarded)

    async def get_badge_progress(self, user_id: str) -> list[BadgeProgress]:
        """Progress toward every catalog badge for display; `[]` on failure."""
        try:
            user_state = await self._gateway.get_user_aggregate(user_id)
        except Exception as exc:
            self.log_error("get_badge_progress", exc, user_id=user_id)
            return []

        if user_state is None:
            self.log.warning(
                "User aggregate unavailable; no badge progress",
                extra={"user_id": user_id},
            )
            return []

        catalog = await self.get_catalog()
        earned = user_state.earned_badge_ids
        return [
            BadgeProgress(
                badge=badge,
                progress=1.0 if badge.id in earned else self._engine.progress_of(badge, user_state),
                is_earned=badge.id in earned,
            )
            for badge in catalog
        ]
