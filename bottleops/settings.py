# SPDX-License-Identifier: AGPL-3.0-or-later
from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from platformdirs import PlatformDirs
from pydantic import Field
from pydantic_settings import BaseSettings


_platform_dirs = PlatformDirs(appname="bottleops", appauthor="bottleops")


class Settings(BaseSettings):
    host: str = "127.0.0.1"
    port: int = 8766
    home: str | None = Field(default=None, alias="BOTTLEOPS_HOME")
    db: str | None = Field(default=None, alias="BOTTLEOPS_DB")

    # business constants
    min_kit_quantity: int = Field(default=5, ge=1)
    default_deposit_percent: int = Field(default=50, ge=0, le=100)
    addon_max_percent: int = Field(default=100, ge=0)
    addon_auto_approve_cents: int = Field(default=0, ge=0)
    strict_step_order: bool = False

    log_file: str | None = None
    unified_log: str | None = None

    model_config = {
        "env_prefix": "BOTTLEOPS_",
        "env_file": ".env",
        "extra": "ignore",
        "populate_by_name": True,
    }

    def resolve_data_dir(self) -> Path:
        base = Path(self.home) if self.home else Path(_platform_dirs.user_data_path)
        base.mkdir(parents=True, exist_ok=True)
        return base

    def resolve_db_path(self) -> Path:
        if self.db:
            return Path(self.db)
        return self.resolve_data_dir() / "bottleops.db"

    def journals_dir(self) -> Path:
        d = self.resolve_data_dir() / "journals"
        d.mkdir(parents=True, exist_ok=True)
        return d

    def resolve_log_file(self) -> Path:
        if self.log_file:
            return Path(self.log_file)
        return self.resolve_data_dir() / "logs" / "bottleops.log"

    def resolve_unified_log(self) -> Path:
        if self.unified_log:
            return Path(self.unified_log)
        return self.resolve_data_dir() / "logs" / "events.jsonl"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


__all__ = ["Settings", "get_settings"]
