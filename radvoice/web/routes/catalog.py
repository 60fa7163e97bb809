"""Command catalog and template/phrase search endpoints."""

import dataclasses

from fastapi import APIRouter, HTTPException, Query

from radvoice.config import settings
from radvoice.database import SessionLocal
from radvoice.engine.catalog import build_catalog, filter_commands_by_category
from radvoice.engine.commands import CommandCategory
from radvoice.engine.lookup import CatalogKind, SearchContext, SqlCatalog

router = APIRouter(prefix="/api")


@router.get("/commands")
def list_commands(category: CommandCategory | None = Query(None, description="Filter by category")):
    commands = build_catalog(settings.commands_path)
    if category is not None:
        commands = filter_commands_by_category(commands, category)
    return {
        "total": len(commands),
        "commands": [c.model_dump(mode="json") for c in commands],
    }


@router.get("/search/templates")
async def search_templates(
    q: str = Query(..., min_length=1),
    modality: str | None = Query(None),
    region: str | None = Query(None),
    limit: int = Query(5, ge=1, le=50),
):
    catalog = SqlCatalog(SessionLocal)
    results = await catalog.search_templates(q, SearchContext(modality=modality, region=region), limit)
    return {"query": q, "results": [dataclasses.asdict(r) for r in results]}


@router.get("/search/frases")
async def search_frases(
    q: str = Query(..., min_length=1),
    modality: str | None = Query(None),
    region: str | None = Query(None),
    limit: int = Query(5, ge=1, le=50),
):
    catalog = SqlCatalog(SessionLocal)
    results = await catalog.search_frases(q, SearchContext(modality=modality, region=region), limit)
    return {"query": q, "results": [dataclasses.asdict(r) for r in results]}


@router.post("/favorites/{kind}/{item_id}")
async def toggle_favorite(kind: CatalogKind, item_id: str):
    catalog = SqlCatalog(SessionLocal)
    try:
        favorite = await catalog.toggle_favorite(kind, item_id)
    except LookupError:
        raise HTTPException(status_code=404, detail=f"{kind.value} {item_id} not found")
    return {"kind": kind.value, "item_id": item_id, "favorite": favorite}
