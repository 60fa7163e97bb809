"""Editor sessions hosted by the web API: one engine and document each."""

import logging
import secrets
import threading
from dataclasses import dataclass
from typing import Callable

from radvoice.engine.document import InMemoryDocument
from radvoice.engine.orchestrator import VoiceCommandEngine

logger = logging.getLogger(__name__)


@dataclass
class EditorSession:
    id: str
    engine: VoiceCommandEngine
    document: InMemoryDocument


def default_engine_factory() -> VoiceCommandEngine:
    from radvoice.config_store import get_config_store
    from radvoice.database import SessionLocal
    from radvoice.engine.lookup import SqlCatalog

    return VoiceCommandEngine(get_config_store().get_engine_config(), catalog_search=SqlCatalog(SessionLocal))


class SessionRegistry:
    def __init__(self, engine_factory: Callable[[], VoiceCommandEngine] = default_engine_factory):
        self._engine_factory = engine_factory
        self._sessions: dict[str, EditorSession] = {}
        self._lock = threading.Lock()

    def create(self, text: str = "", modality: str | None = None, region: str | None = None) -> EditorSession:
        engine = self._engine_factory()
        engine.load_commands()
        document = InMemoryDocument(text)
        engine.attach(document)
        if modality or region:
            engine.set_current_context(modality, region)
        engine.start()

        session = EditorSession(id=secrets.token_hex(8), engine=engine, document=document)
        with self._lock:
            self._sessions[session.id] = session
        logger.info("Editor session %s opened", session.id)
        return session

    def get(self, session_id: str) -> EditorSession | None:
        with self._lock:
            return self._sessions.get(session_id)

    def close(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.engine.dispose()
        logger.info("Editor session %s closed", session_id)
        return True

    def close_all(self):
        with self._lock:
            ids = list(self._sessions)
        for session_id in ids:
            self.close(session_id)

    def __len__(self) -> int:
        return len(self._sessions)
