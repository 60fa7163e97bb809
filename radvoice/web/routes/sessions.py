"""Editor session endpoints: open, dictate into, inspect and close."""

import dataclasses
import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from radvoice.engine.commands import CommandExecutionResult, CommandMatchResult
from radvoice.engine.orchestrator import UtteranceOutcome
from radvoice.web.app import registry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sessions")


class SessionCreate(BaseModel):
    text: str = ""
    modality: str | None = None
    region: str | None = None


class UtteranceIn(BaseModel):
    transcript: str = Field(max_length=2000)


def _get_session(session_id: str):
    session = registry.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return session


def _match_dict(match: CommandMatchResult | None) -> dict | None:
    if match is None:
        return None
    return {
        "command_id": match.command.id,
        "command_name": match.command.name,
        "score": round(match.score, 4),
        "matched_phrase": match.matched_phrase,
        "is_exact": match.is_exact,
    }


def _execution_dict(result: CommandExecutionResult | None) -> dict | None:
    if result is None:
        return None
    return {
        "success": result.success,
        "command_id": result.command.id if result.command else None,
        "message": result.message,
        "inserted_content": result.inserted_content,
    }


def _outcome_dict(outcome: UtteranceOutcome) -> dict:
    intent = outcome.intent
    return {
        "transcript": outcome.transcript,
        "intent": {
            "type": intent.type.value,
            "query": intent.query,
            "confidence": intent.confidence,
            "prefix": intent.prefix,
        } if intent else None,
        "match": _match_dict(outcome.match),
        "action": outcome.action.value if outcome.action else None,
        "execution": _execution_dict(outcome.execution),
        "candidates": [dataclasses.asdict(c) for c in outcome.candidates],
        "inserted_text": outcome.inserted_text,
    }


def _session_dict(session) -> dict:
    state = session.engine.get_state()
    context = session.engine.get_current_context()
    start, end = session.document.selection
    return {
        "session_id": session.id,
        "text": session.document.text,
        "selection": {"start": start, "end": end},
        "context": {"modality": context.modality, "region": context.region},
        "state": {
            "is_ready": state.is_ready,
            "is_active": state.is_active,
            "total_commands": state.total_commands,
            "last_match": _match_dict(state.last_match),
            "last_execution": _execution_dict(state.last_execution),
            "loaded_at": state.loaded_at.isoformat() if state.loaded_at else None,
        },
        "matcher": session.engine.matcher_stats(),
    }


@router.post("", status_code=201)
def create_session(body: SessionCreate):
    session = registry.create(body.text, body.modality, body.region)
    return _session_dict(session)


@router.get("/{session_id}")
def get_session(session_id: str):
    return _session_dict(_get_session(session_id))


@router.delete("/{session_id}")
def delete_session(session_id: str):
    if not registry.close(session_id):
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return {"deleted": session_id}


@router.post("/{session_id}/utterances")
async def post_utterance(session_id: str, body: UtteranceIn):
    session = _get_session(session_id)
    outcome = await session.engine.handle_utterance(body.transcript)
    logger.debug("Session %s: %r -> %s", session_id, body.transcript, outcome.action)
    return {
        "outcome": _outcome_dict(outcome),
        "document": {"text": session.document.text},
    }
