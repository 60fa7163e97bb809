from pathlib import Path

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineConfig(BaseModel):
    """Tunables consumed by a single voice command engine."""
    fuzzy_threshold: float = Field(0.35, ge=0.0, le=1.0)  # per-field approximate match tolerance
    min_match_score: float = Field(0.5, ge=0.0, le=1.0)  # general acceptance threshold
    safety_max_score: float = Field(0.4, ge=0.0, le=1.0)  # system actions must score at or below this
    lookup_max_score: float = Field(0.65, ge=0.0, le=1.0)
    lookup_limit: int = Field(5, ge=1)
    debug: bool = False
    auto_reload: bool = False
    reload_interval_seconds: float = Field(300.0, gt=0)
    insert_rejected_as_text: bool = True
    auto_apply_lookup: bool = False
    commands_path: Path | None = None

    @model_validator(mode="after")
    def _check_threshold_order(self):
        if self.safety_max_score > self.min_match_score:
            raise ValueError(
                f"safety_max_score ({self.safety_max_score}) must not exceed "
                f"min_match_score ({self.min_match_score})"
            )
        return self


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Matching ---
    fuzzy_threshold: float = 0.35
    min_match_score: float = 0.5
    safety_max_score: float = 0.4

    # --- Dynamic lookup ---
    lookup_max_score: float = 0.65
    lookup_limit: int = 5
    auto_apply_lookup: bool = False

    # --- Engine lifecycle ---
    debug: bool = False
    auto_reload: bool = False
    reload_interval_seconds: float = 300.0
    insert_rejected_as_text: bool = True
    commands_path: Path | None = None

    # --- Local SQLite (template / phrase catalog) ---
    sqlite_db_path: Path = Path("data/radvoice.db")

    # --- Web interface ---
    web_host: str = "0.0.0.0"
    web_port: int = 8080
    web_username: str = "admin"
    web_password: str = "admin"

    @property
    def sqlite_url(self) -> str:
        return f"sqlite:///{self.sqlite_db_path}"

    def get_engine_config(self, **overrides) -> EngineConfig:
        """Build the engine config from flat env vars."""
        values = {name: getattr(self, name) for name in EngineConfig.model_fields if hasattr(self, name)}
        values.update(overrides)
        return EngineConfig(**values)


settings = Settings()
