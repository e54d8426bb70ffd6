"""
Module: fleet_kernel.models.settings
Responsibility: Key/JSON application settings editable at runtime (season
    policy lives here under ``season_settings``).
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from sqlalchemy import JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fleet_kernel.db.base import TrackedBase

SEASON_SETTINGS_KEY = "season_settings"


class AppSetting(TrackedBase):
    __tablename__ = "app_settings"

    __table_args__ = (
        UniqueConstraint("key", name="uq_app_setting_key"),
    )

    key: Mapped[str] = mapped_column(String(100), nullable=False)
    value: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<AppSetting {self.key}>"
