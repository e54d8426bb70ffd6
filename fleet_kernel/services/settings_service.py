"""
Season settings providers.

``SeasonSettingsService`` reads the season policy stored in AppSetting and
falls back to a configured default.  ``StaticSeasonSettings`` holds a fixed
policy in memory for tests and batch tools.

A stored value that does not parse is logged and treated as absent, so the
default applies; the season classifier never sees a malformed policy.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from fleet_kernel.domain.clock import Clock
from fleet_kernel.domain.season import SeasonPolicy, parse_season_policy
from fleet_kernel.logging_config import get_logger
from fleet_kernel.models.settings import SEASON_SETTINGS_KEY, AppSetting
from fleet_kernel.services.base import BaseService

logger = get_logger("services.settings")


class StaticSeasonSettings:
    """In-memory SeasonSettingsProvider."""

    def __init__(self, policy: SeasonPolicy | None = None):
        self._policy = policy

    def get_season_policy(self) -> SeasonPolicy | None:
        return self._policy


class SeasonSettingsService(BaseService[AppSetting]):
    """SQL-backed SeasonSettingsProvider."""

    def __init__(
        self,
        session: Session,
        default_policy: SeasonPolicy | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._default_policy = default_policy

    def _row(self) -> AppSetting | None:
        return self.session.execute(
            select(AppSetting).where(AppSetting.key == SEASON_SETTINGS_KEY)
        ).scalar_one_or_none()

    def get_season_policy(self) -> SeasonPolicy | None:
        row = self._row()
        if row is None or row.value is None:
            return self._default_policy

        policy = parse_season_policy(row.value)
        if policy is None:
            logger.warning(
                "season_settings_invalid_using_default",
                extra={
                    "stored_type": (
                        str(row.value.get("type")) if isinstance(row.value, dict) else None
                    ),
                },
            )
            return self._default_policy
        return policy

    def save_season_policy(self, policy: SeasonPolicy, actor_id: UUID) -> AppSetting:
        """Insert or replace the stored season policy."""
        row = self._row()
        if row is None:
            row = AppSetting(
                key=SEASON_SETTINGS_KEY,
                value=policy.to_dict(),
                created_by_id=actor_id,
            )
            self.session.add(row)
        else:
            row.value = policy.to_dict()
            row.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "season_settings_saved",
            extra={"policy_type": policy.to_dict()["type"]},
        )
        return row
