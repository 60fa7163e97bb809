"""Layered config: SQLite → .env → defaults.

Usage:
    from radvoice.config_store import get_config_store

    config = get_config_store().get_engine_config()
    threshold = get_config_store().get_global("min_match_score")
"""

import logging

from pydantic import ValidationError

from radvoice.config import EngineConfig, settings
from radvoice.models import GlobalSetting

logger = logging.getLogger(__name__)

# Keys stored in global_settings, with their .env fallback attribute names
_GLOBAL_KEYS = {
    "fuzzy_threshold": "fuzzy_threshold",
    "min_match_score": "min_match_score",
    "safety_max_score": "safety_max_score",
    "lookup_max_score": "lookup_max_score",
    "lookup_limit": "lookup_limit",
    "auto_apply_lookup": "auto_apply_lookup",
    "auto_reload": "auto_reload",
    "reload_interval_seconds": "reload_interval_seconds",
    "insert_rejected_as_text": "insert_rejected_as_text",
    "debug": "debug",
}


class ConfigStore:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Global settings
    # ------------------------------------------------------------------

    def get_global(self, key: str) -> str | None:
        with self._session_factory() as session:
            row = session.query(GlobalSetting).filter_by(key=key).first()
            if row and row.value is not None:
                return row.value
        # Fall back to .env / defaults
        value = getattr(settings, _GLOBAL_KEYS.get(key, key), None)
        return None if value is None else str(value)

    def get_all_globals(self) -> dict[str, str]:
        result = {}
        for key in _GLOBAL_KEYS:
            result[key] = self.get_global(key) or ""
        return result

    def set_global(self, key: str, value: str):
        self.save_globals({key: value})

    def save_globals(self, data: dict[str, str]):
        with self._session_factory() as session:
            for key, value in data.items():
                if key not in _GLOBAL_KEYS:
                    logger.warning("Ignoring unknown setting '%s'", key)
                    continue
                row = session.query(GlobalSetting).filter_by(key=key).first()
                if row:
                    row.value = value
                else:
                    session.add(GlobalSetting(key=key, value=value))
            session.commit()

    # ------------------------------------------------------------------
    # Engine config
    # ------------------------------------------------------------------

    def get_engine_config(self) -> EngineConfig:
        """Overlay stored values on the .env defaults.

        Invalid stored values are logged and the .env config is used instead.
        """
        overrides = {}
        with self._session_factory() as session:
            for row in session.query(GlobalSetting).filter(GlobalSetting.key.in_(_GLOBAL_KEYS)).all():
                if row.value is not None and row.value != "":
                    overrides[row.key] = row.value
        try:
            return settings.get_engine_config(**overrides)
        except ValidationError as e:
            logger.warning("Stored engine settings are invalid, using defaults: %s", e)
            return settings.get_engine_config()

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    def seed_from_env(self):
        with self._session_factory() as session:
            existing = session.query(GlobalSetting).count()
            if existing > 0:
                return  # Already seeded

            logger.info("Seeding global_settings from .env")
            for key, attr in _GLOBAL_KEYS.items():
                val = getattr(settings, attr, None)
                if val is not None:
                    session.add(GlobalSetting(key=key, value=str(val)))
            session.commit()
            logger.info("Seeded %d global setting(s) from .env", len(_GLOBAL_KEYS))


# Module-level singleton, initialized lazily after database.py sets up SessionLocal
_config_store: ConfigStore | None = None


def get_config_store() -> ConfigStore:
    global _config_store
    if _config_store is None:
        from radvoice.database import SessionLocal
        _config_store = ConfigStore(SessionLocal)
    return _config_store
