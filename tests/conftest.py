"""Shared fixtures: in-memory document, loaded engine, temporary SQLite catalog."""

import os
import tempfile
from pathlib import Path

import pytest

# Point the app database at a throwaway file before radvoice.config is imported
os.environ.setdefault("SQLITE_DB_PATH", str(Path(tempfile.mkdtemp(prefix="radvoice-")) / "radvoice.db"))


class FakeCatalog:
    """CatalogSearch double that returns canned candidates and records calls."""

    def __init__(self, templates=None, frases=None, error=None):
        self.templates = list(templates or [])
        self.frases = list(frases or [])
        self.error = error
        self.calls = []
        self.usage = []

    async def search_templates(self, query, context=None, limit=5):
        self.calls.append(("templates", query, context))
        if self.error:
            raise self.error
        return list(self.templates)[:limit]

    async def search_frases(self, query, context=None, limit=5):
        self.calls.append(("frases", query, context))
        if self.error:
            raise self.error
        return list(self.frases)[:limit]

    async def record_usage(self, kind, item_id):
        self.usage.append((kind, item_id))


@pytest.fixture
def make_catalog():
    return FakeCatalog


@pytest.fixture
def document():
    from radvoice.engine.document import InMemoryDocument
    return InMemoryDocument()


@pytest.fixture
def engine(document):
    from radvoice.config import EngineConfig
    from radvoice.engine.orchestrator import VoiceCommandEngine

    eng = VoiceCommandEngine(EngineConfig())
    assert eng.load_commands()
    eng.attach(document)
    yield eng
    eng.dispose()


@pytest.fixture
def events(engine):
    """Wire every engine callback to a list of (name, args) tuples."""
    from radvoice.engine.orchestrator import EngineCallbacks

    recorded = []
    engine.set_callbacks(EngineCallbacks(
        on_match=lambda m: recorded.append(("match", m)),
        on_execute=lambda r: recorded.append(("execute", r)),
        on_reject=lambda t, m: recorded.append(("reject", (t, m))),
        on_error=lambda e: recorded.append(("error", e)),
        on_search_template=lambda q, c: recorded.append(("search_template", (q, c))),
        on_search_frase=lambda q, c: recorded.append(("search_frase", (q, c))),
    ))
    return recorded


@pytest.fixture
def session_factory(tmp_path):
    """Session factory over a fresh SQLite file seeded with the sample catalog."""
    from sqlalchemy import create_engine
    from sqlalchemy.orm import sessionmaker

    from radvoice.database import seed_catalog
    from radvoice.models import Base

    db = create_engine(f"sqlite:///{tmp_path / 'catalog.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(db)
    factory = sessionmaker(bind=db, expire_on_commit=False)
    with factory() as session:
        seed_catalog(session)
    yield factory
    db.dispose()
