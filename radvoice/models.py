import datetime
import json

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime.datetime:
    # DateTime columns are naive and hold UTC
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def _load_json(raw: str | None, default):
    if not raw:
        return default
    try:
        return json.loads(raw)
    except ValueError:
        return default


class GlobalSetting(Base):
    __tablename__ = "global_settings"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=True)
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())


class ReportTemplate(Base):
    """A report template that voice lookups can apply to the document."""
    __tablename__ = "templates"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    modality = Column(String, nullable=True)  # USG, TC, RM, RX, MG, MN
    region = Column(String, nullable=True)  # abdome, torax, cranio, ...
    category = Column(String, nullable=True)
    tags_json = Column(Text, nullable=True)

    # Already-resolved report body (no further templating by the engine)
    content = Column(Text, nullable=False, default="")
    # {"SEM": "...", "EV": "..."}: technique paragraph variants
    techniques_json = Column(Text, nullable=True)

    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        Index("ix_templates_modality", "modality"),
        Index("ix_templates_region", "region"),
    )

    @property
    def tags(self) -> list[str]:
        return _load_json(self.tags_json, [])

    @property
    def techniques(self) -> dict[str, str]:
        return _load_json(self.techniques_json, {})


class Frase(Base):
    """A reusable report phrase ("frase modelo")."""
    __tablename__ = "frases"

    id = Column(String, primary_key=True)
    code = Column(String, nullable=False)
    text = Column(Text, nullable=False)
    category = Column(String, nullable=True)
    modality_code = Column(String, nullable=True)
    region_code = Column(String, nullable=True)
    tags_json = Column(Text, nullable=True)
    synonyms_json = Column(Text, nullable=True)
    conclusion = Column(Text, nullable=True)  # optional text for the IMPRESSÃO section

    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        Index("ix_frases_code", "code"),
        Index("ix_frases_modality", "modality_code"),
    )

    @property
    def tags(self) -> list[str]:
        return _load_json(self.tags_json, [])

    @property
    def synonyms(self) -> list[str]:
        return _load_json(self.synonyms_json, [])


class UsageRecord(Base):
    """Per-item usage counters used for ranking boosts in dynamic lookup."""
    __tablename__ = "usage_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String, nullable=False)  # "template" or "frase"
    item_id = Column(String, nullable=False)
    usage_count = Column(Integer, nullable=False, default=0)
    favorite = Column(Boolean, nullable=False, default=False)
    last_used_at = Column(DateTime, nullable=True, default=utcnow)

    __table_args__ = (
        UniqueConstraint("kind", "item_id", name="uq_usage_kind_item"),
    )
