"""Dynamic lookup of report templates and phrases for TEMPLATE/FRASE intents.

The engine never materializes templates or phrases as voice commands; an
utterance such as "modelo tc tórax" is resolved through a live, ranked search
against the catalog instead. Ranking (lower score is better):

1. substring hit on title/code, tags or body, else rapidfuzz similarity
2. context boost: same modality and region x0.4, same modality x0.7,
   same region x0.85
3. usage boost: favourite x0.8, frequent or recent use down to x0.85

When nothing ranks, templates fall back to the shortest title matching the
modality and region named in the query, and phrases to a code substring.
"""

import asyncio
import datetime
import enum
import logging
import re
from dataclasses import dataclass, field
from typing import Protocol

from rapidfuzz import fuzz

from radvoice.engine.intent import DetectedIntent, IntentType
from radvoice.engine.normalizer import normalize
from radvoice.models import Frase, ReportTemplate, UsageRecord, utcnow

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 5
ACCEPT_MAX_SCORE = 0.65  # single best candidate
LIST_MAX_SCORE = 0.7  # suggestion lists
FUZZY_CUTOFF = 0.5

# Base scores for substring hits, by where the query was found
_SUBSTRING_SCORES = (("title", 0.1), ("tags", 0.2), ("body", 0.3))

# Spoken modality names -> catalog codes (keys accent-free)
MODALITY_MAP = {
    "ultrassom": "USG",
    "ultrassonografia": "USG",
    "us": "USG",
    "eco": "USG",
    "ecografia": "USG",
    "tomografia": "TC",
    "ct": "TC",
    "ressonancia": "RM",
    "rm": "RM",
    "raio x": "RX",
    "radiografia": "RX",
    "rx": "RX",
    "mamografia": "MG",
    "mg": "MG",
    "medicina nuclear": "MN",
    "mn": "MN",
    "cintilografia": "MN",
}

REGION_MAP = {
    "abdome": "abdome",
    "abdominal": "abdome",
    "abd": "abdome",
    "torax": "torax",
    "toracico": "torax",
    "pelve": "pelve",
    "pelvico": "pelve",
    "cranio": "cranio",
    "cabeca": "cranio",
    "cerebro": "cranio",
    "encefalo": "cranio",
    "coluna": "coluna",
    "cervical": "cervical",
    "pescoco": "cervical",
    "tireoide": "cervical",
    "mama": "mama",
    "mamas": "mama",
    "mamario": "mama",
    "mamaria": "mama",
    "obstetrico": "obstetrico",
    "gestacao": "obstetrico",
    "fetal": "obstetrico",
    "escroto": "escroto",
    "testicular": "escroto",
    "vascular": "vascular",
    "doppler": "vascular",
}

_QUERY_CLEANUP = [
    (re.compile(r"\b(modelo|frase|inserir|aplicar)\b"), ""),
    (re.compile(r"\s+(de|do|da)\s+"), " "),
    (re.compile(r"\s+(total|completo|normal)\b"), ""),
]
_WHITESPACE_RE = re.compile(r"\s+")
_MODALITY_RES = [(re.compile(r"\b" + k + r"\b"), v) for k, v in MODALITY_MAP.items()]

# Usage boost parameters
FAVORITE_FACTOR = 0.8
MAX_USAGE_REDUCTION = 0.15
FREQUENT_USE_COUNT = 10
RECENT_USE_DAYS = 30


class CatalogKind(str, enum.Enum):
    TEMPLATE = "template"
    FRASE = "frase"


@dataclass
class UsageData:
    usage_count: int = 0
    favorite: bool = False
    last_used_at: datetime.datetime | None = None


@dataclass
class SearchContext:
    modality: str | None = None
    region: str | None = None
    usage: dict[str, UsageData] = field(default_factory=dict)  # keyed by item id


@dataclass
class TemplateCandidate:
    id: str
    title: str
    content: str
    modality: str | None = None
    region: str | None = None
    category: str | None = None
    tags: list[str] = field(default_factory=list)
    techniques: dict[str, str] = field(default_factory=dict)
    score: float = 1.0

    def render(self, technique: str | None = None) -> str:
        """Content with the [técnica] placeholder filled from a technique variant."""
        if technique and technique in self.techniques:
            return self.content.replace("[técnica]", self.techniques[technique])
        return self.content


@dataclass
class FraseCandidate:
    id: str
    code: str
    text: str
    category: str | None = None
    modality: str | None = None
    region: str | None = None
    tags: list[str] = field(default_factory=list)
    synonyms: list[str] = field(default_factory=list)
    conclusion: str | None = None
    score: float = 1.0


class CatalogSearch(Protocol):
    """Async ranked search over an external template/phrase catalog."""

    async def search_templates(
        self, query: str, context: SearchContext | None = None, limit: int = DEFAULT_LIMIT,
    ) -> list[TemplateCandidate]: ...

    async def search_frases(
        self, query: str, context: SearchContext | None = None, limit: int = DEFAULT_LIMIT,
    ) -> list[FraseCandidate]: ...

    async def record_usage(self, kind: CatalogKind, item_id: str) -> None: ...


# ---------------------------------------------------------------------------
# Query normalisation
# ---------------------------------------------------------------------------

def normalize_query(query: str) -> str:
    """Strip command prefixes and filler words from a lookup query."""
    text = normalize(query)
    for pattern, replacement in _QUERY_CLEANUP:
        text = pattern.sub(replacement, text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def expand_query_with_synonyms(query: str) -> str:
    """Replace the first spoken modality name with its catalog code."""
    for pattern, code in _MODALITY_RES:
        if pattern.search(query):
            return pattern.sub(code.lower(), query)
    return query


def extract_modality_and_region(query: str) -> tuple[str | None, str | None]:
    words = query.split()
    terms = words + [" ".join(pair) for pair in zip(words, words[1:])]
    modality = next((MODALITY_MAP[t] for t in terms if t in MODALITY_MAP), None)
    region = next((REGION_MAP[t] for t in terms if t in REGION_MAP), None)
    return modality, region


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------

def apply_context_boost(score: float, modality: str | None, region: str | None, context: SearchContext) -> float:
    item_mod = (modality or "").upper()
    item_reg = (region or "").lower()
    ctx_mod = (context.modality or "").upper()
    ctx_reg = (context.region or "").lower()

    if ctx_mod and ctx_reg and item_mod == ctx_mod and item_reg == ctx_reg:
        return score * 0.4
    if ctx_mod and item_mod == ctx_mod:
        return score * 0.7
    if ctx_reg and item_reg == ctx_reg:
        return score * 0.85
    return score


def apply_usage_boost(score: float, usage: UsageData | None, now: datetime.datetime | None = None) -> float:
    if usage is None:
        return score
    if usage.favorite:
        score *= FAVORITE_FACTOR

    frequency = min(1.0, usage.usage_count / FREQUENT_USE_COUNT)
    recency = 0.0
    if usage.last_used_at is not None and usage.usage_count > 0:
        now = now or utcnow()
        age_days = (now - usage.last_used_at).total_seconds() / 86400
        recency = min(1.0, max(0.0, 1.0 - age_days / RECENT_USE_DAYS))
    return score * (1.0 - MAX_USAGE_REDUCTION * max(frequency, recency))


def _base_score(query: str, fields: dict[str, list[str]]) -> float | None:
    """Substring score when the query occurs in a field, else fuzzy distance."""
    for name, score in _SUBSTRING_SCORES:
        if any(query in value for value in fields.get(name, ())):
            return score

    best = 1.0
    for values in fields.values():
        for value in values:
            if value:
                best = min(best, 1.0 - fuzz.token_sort_ratio(query, value) / 100.0)
    if best > FUZZY_CUTOFF:
        return None
    # Fuzzy hits never outrank substring hits
    return max(best, _SUBSTRING_SCORES[-1][1])


def _finalize(scored: list[tuple[float, int, object]], limit: int, max_score: float) -> list:
    scored.sort(key=lambda s: (s[0], s[1]))
    results = []
    for score, _, candidate in scored:
        if score > max_score:
            break
        candidate.score = round(score, 4)
        results.append(candidate)
        if len(results) >= limit:
            break
    return results


def rank_templates(
    query: str,
    templates: list[TemplateCandidate],
    context: SearchContext | None = None,
    limit: int = DEFAULT_LIMIT,
    max_score: float = LIST_MAX_SCORE,
) -> list[TemplateCandidate]:
    if not query.strip() or not templates:
        return []
    context = context or SearchContext()

    normalized = normalize_query(query)
    expanded = expand_query_with_synonyms(normalized)
    logger.debug("Template query '%s' -> '%s'", query, expanded)

    scored = []
    if expanded:
        for t in templates:
            fields = {
                "title": [normalize(t.title)],
                "tags": [normalize(tag) for tag in t.tags] + [normalize(t.modality or ""), normalize(t.region or "")],
                "body": [normalize(t.content)],
            }
            base = _base_score(expanded, fields)
            if base is None:
                continue
            score = apply_context_boost(base, t.modality, t.region, context)
            score = apply_usage_boost(score, context.usage.get(t.id))
            scored.append((score, len(t.title), t))

    results = _finalize(scored, limit, max_score)
    if results:
        return results

    modality, region = extract_modality_and_region(normalized)
    if not modality and not region:
        logger.debug("No template found for '%s'", query)
        return []

    fallback = [
        t for t in templates
        if (not modality or (t.modality or "").upper() == modality)
        and (not region or region in (t.region or "").lower())
    ]
    fallback.sort(key=lambda t: len(t.title))
    for t in fallback:
        t.score = min(max_score, ACCEPT_MAX_SCORE)
    if fallback:
        logger.debug("Template fallback modality=%s region=%s -> %s", modality, region, fallback[0].title)
    return fallback[:limit]


def rank_frases(
    query: str,
    frases: list[FraseCandidate],
    context: SearchContext | None = None,
    limit: int = DEFAULT_LIMIT,
    max_score: float = LIST_MAX_SCORE,
) -> list[FraseCandidate]:
    if not query.strip() or not frases:
        return []
    context = context or SearchContext()

    normalized = normalize_query(query)
    logger.debug("Phrase query '%s' -> '%s'", query, normalized)

    scored = []
    if normalized:
        for f in frases:
            fields = {
                "title": [normalize(f.code.replace("_", " "))] + [normalize(s) for s in f.synonyms],
                "tags": [normalize(tag) for tag in f.tags] + [normalize(f.category or "")],
                "body": [normalize(f.text), normalize(f.conclusion or "")],
            }
            base = _base_score(normalized, fields)
            if base is None:
                continue
            score = apply_context_boost(base, f.modality, f.region, context)
            score = apply_usage_boost(score, context.usage.get(f.id))
            scored.append((score, len(f.code), f))

    results = _finalize(scored, limit, max_score)
    if results or not normalized:
        return results

    underscored = normalized.replace(" ", "_")
    joined = normalized.replace(" ", "")
    for f in frases:
        code = f.code.lower()
        if underscored in code or joined in code:
            logger.debug("Phrase fallback by code: %s", f.code)
            f.score = min(max_score, ACCEPT_MAX_SCORE)
            return [f]

    logger.debug("No phrase found for '%s'", query)
    return []


# ---------------------------------------------------------------------------
# SQL-backed catalog
# ---------------------------------------------------------------------------

def _template_candidate(row: ReportTemplate) -> TemplateCandidate:
    return TemplateCandidate(
        id=row.id,
        title=row.title,
        content=row.content or "",
        modality=row.modality,
        region=row.region,
        category=row.category,
        tags=row.tags,
        techniques=row.techniques,
    )


def _frase_candidate(row: Frase) -> FraseCandidate:
    return FraseCandidate(
        id=row.id,
        code=row.code,
        text=row.text,
        category=row.category,
        modality=row.modality_code,
        region=row.region_code,
        tags=row.tags,
        synonyms=row.synonyms,
        conclusion=row.conclusion,
    )


class SqlCatalog:
    """`CatalogSearch` over the local templates/frases tables.

    Queries run in a worker thread so the event loop is never blocked.
    """

    def __init__(self, session_factory, max_score: float = LIST_MAX_SCORE):
        self._session_factory = session_factory
        self.max_score = max_score

    async def search_templates(
        self, query: str, context: SearchContext | None = None, limit: int = DEFAULT_LIMIT,
    ) -> list[TemplateCandidate]:
        templates, usage = await asyncio.to_thread(self._load, ReportTemplate, CatalogKind.TEMPLATE)
        context = self._with_usage(context, usage)
        return rank_templates(query, [_template_candidate(t) for t in templates], context, limit, self.max_score)

    async def search_frases(
        self, query: str, context: SearchContext | None = None, limit: int = DEFAULT_LIMIT,
    ) -> list[FraseCandidate]:
        frases, usage = await asyncio.to_thread(self._load, Frase, CatalogKind.FRASE)
        context = self._with_usage(context, usage)
        return rank_frases(query, [_frase_candidate(f) for f in frases], context, limit, self.max_score)

    async def record_usage(self, kind: CatalogKind, item_id: str) -> None:
        await asyncio.to_thread(self.record_usage_sync, kind, item_id)

    async def toggle_favorite(self, kind: CatalogKind, item_id: str) -> bool:
        return await asyncio.to_thread(self.toggle_favorite_sync, kind, item_id)

    def record_usage_sync(self, kind: CatalogKind, item_id: str):
        with self._session_factory() as session:
            record = self._get_or_create_usage(session, kind, item_id)
            record.usage_count = (record.usage_count or 0) + 1
            record.last_used_at = utcnow()
            session.commit()
            logger.debug("Usage of %s %s: %d", kind.value, item_id, record.usage_count)

    def toggle_favorite_sync(self, kind: CatalogKind, item_id: str) -> bool:
        with self._session_factory() as session:
            model = ReportTemplate if kind == CatalogKind.TEMPLATE else Frase
            if session.get(model, item_id) is None:
                raise LookupError(f"Unknown {kind.value}: {item_id}")
            record = self._get_or_create_usage(session, kind, item_id)
            record.favorite = not record.favorite
            favorite = record.favorite
            session.commit()
        logger.info("%s %s favourite=%s", kind.value, item_id, favorite)
        return favorite

    # ------------------------------------------------------------------

    def _load(self, model, kind: CatalogKind):
        with self._session_factory() as session:
            rows = session.query(model).filter_by(active=True).all()
            usage = {
                r.item_id: UsageData(usage_count=r.usage_count or 0, favorite=bool(r.favorite), last_used_at=r.last_used_at)
                for r in session.query(UsageRecord).filter_by(kind=kind.value).all()
            }
        return rows, usage

    @staticmethod
    def _with_usage(context: SearchContext | None, usage: dict[str, UsageData]) -> SearchContext:
        context = context or SearchContext()
        if context.usage:
            return context
        return SearchContext(modality=context.modality, region=context.region, usage=usage)

    @staticmethod
    def _get_or_create_usage(session, kind: CatalogKind, item_id: str) -> UsageRecord:
        record = session.query(UsageRecord).filter_by(kind=kind.value, item_id=item_id).first()
        if record is None:
            record = UsageRecord(kind=kind.value, item_id=item_id, usage_count=0, favorite=False, last_used_at=None)
            session.add(record)
        return record


# ---------------------------------------------------------------------------
# Bridge
# ---------------------------------------------------------------------------

class DynamicLookup:
    """Routes TEMPLATE/FRASE intents to the catalog; retrieval only."""

    def __init__(self, catalog: CatalogSearch, limit: int = DEFAULT_LIMIT, max_score: float = ACCEPT_MAX_SCORE):
        self.catalog = catalog
        self.limit = limit
        self.max_score = max_score

    async def search(
        self, intent: DetectedIntent, context: SearchContext | None = None,
    ) -> list[TemplateCandidate] | list[FraseCandidate]:
        if not intent.query.strip():
            return []
        if intent.type == IntentType.TEMPLATE:
            results = await self.catalog.search_templates(intent.query, context, self.limit)
        elif intent.type == IntentType.FRASE:
            results = await self.catalog.search_frases(intent.query, context, self.limit)
        else:
            raise ValueError(f"Lookup does not handle {intent.type.value} intents")
        logger.debug("Lookup %s '%s': %d candidate(s)", intent.type.value, intent.query, len(results))
        return results

    def best(self, candidates: list) -> TemplateCandidate | FraseCandidate | None:
        """Top candidate if it is good enough to apply without asking."""
        if candidates and candidates[0].score <= self.max_score:
            return candidates[0]
        return None
