from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Core settings.

    Notes:
    - Defaults are local and deterministic; every value can be overridden with
      an ``EXPEDIENTES_`` environment variable.
    - ``db_url`` unset means the in-memory adapters are used for rules and
      area responsibilities.
    """

    model_config = SettingsConfigDict(env_prefix="EXPEDIENTES_", extra="ignore")

    db_url: str | None = None
    rules_config_path: str | None = None
    log_level: str = "INFO"

    responsibility_cache_ttl_seconds: int = 300

    audit_endpoint: str | None = None
    audit_timeout_seconds: float = 5.0

    def resolved_rules_config_path(self) -> Path:
        if self.rules_config_path:
            return Path(self.rules_config_path)

        repo_root = Path(__file__).resolve().parents[1]
        return repo_root / "config" / "contextual_rules.yaml"


@lru_cache
def get_settings() -> Settings:
    return Settings()
