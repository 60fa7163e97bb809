"""Fuzzy command matcher tuned for noisy pt-BR voice transcripts.

Two structures are rebuilt on every catalog update:

1. an exact-match table keyed by the normalized name and every normalized
   phrase (first command registered for a key wins), giving O(1) lookups
   for verbatim utterances;
2. an approximate index scored with rapidfuzz over weighted fields
   (name > phrases > modality > category).

Scores follow a distance convention: 0 is identical, 1 is unrelated.
"""

import logging
from dataclasses import dataclass

from rapidfuzz import fuzz

from radvoice.engine.catalog import sort_by_priority
from radvoice.engine.commands import CommandMatchResult, VoiceCommand
from radvoice.engine.normalizer import normalize_for_matching

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.35
MIN_MATCH_CHAR_LENGTH = 2

# Relative field weights; the heaviest field is scored as-is, lighter fields
# are scaled up and given a floor so they can never beat a name match.
_FIELD_WEIGHTS = (
    ("name", 2.0),
    ("phrases", 1.5),
    ("modality", 0.8),
    ("category", 0.5),
)
_MAX_WEIGHT = max(w for _, w in _FIELD_WEIGHTS)
_FIELD_FLOOR = 0.25

# How much a short utterance is penalized for covering only part of a phrase
_COVERAGE_PENALTY = 0.5


@dataclass(frozen=True)
class _FieldValue:
    field: str
    weight: float
    key: str  # normalized
    raw: str


@dataclass(frozen=True)
class _Index:
    commands: tuple[VoiceCommand, ...]
    exact: dict[str, tuple[int, str]]
    values: tuple[tuple[_FieldValue, ...], ...]  # parallel to commands
    threshold: float


_EMPTY_INDEX = _Index(commands=(), exact={}, values=(), threshold=DEFAULT_THRESHOLD)


def _field_values(command: VoiceCommand) -> tuple[_FieldValue, ...]:
    raw_values = [("name", command.name)]
    raw_values.extend(("phrases", p) for p in command.phrases)
    if command.modality:
        raw_values.append(("modality", command.modality))
    raw_values.append(("category", command.category.value))

    weights = dict(_FIELD_WEIGHTS)
    values = []
    for field, raw in raw_values:
        key = normalize_for_matching(raw)
        if len(key) < MIN_MATCH_CHAR_LENGTH:
            continue
        values.append(_FieldValue(field=field, weight=weights[field], key=key, raw=raw))
    return tuple(values)


def text_distance(query: str, value: str) -> float:
    """Location-independent distance between a query and one field value.

    A query shorter than the value may sit anywhere inside it; partial
    coverage of the value costs up to `_COVERAGE_PENALTY`. A query longer
    than the value is compared as a whole, so long dictation never matches
    a short phrase just because it contains it.
    """
    if not query or not value:
        return 1.0
    if query == value:
        return 0.0
    if len(query) <= len(value):
        similarity = fuzz.partial_ratio(query, value) / 100.0
        coverage = len(query) / len(value)
        return min(1.0, (1.0 - similarity) + (1.0 - coverage) * _COVERAGE_PENALTY * similarity)
    return 1.0 - fuzz.ratio(query, value) / 100.0


def _weighted(distance: float, weight: float) -> float:
    if weight >= _MAX_WEIGHT:
        return distance
    ratio = weight / _MAX_WEIGHT
    return min(1.0, distance / ratio + (1.0 - ratio) * _FIELD_FLOOR)


class FuzzyMatcher:
    def __init__(self, threshold: float = DEFAULT_THRESHOLD):
        self._threshold = threshold
        self._index = _EMPTY_INDEX

    def update_commands(self, commands: list[VoiceCommand]):
        """Rebuild both structures and swap them in one assignment.

        Readers holding the previous index keep using it until they finish.
        """
        ordered = tuple(sort_by_priority(list(commands)))
        exact: dict[str, tuple[int, str]] = {}
        values = []
        for i, command in enumerate(ordered):
            for raw in (command.name, *command.phrases):
                key = normalize_for_matching(raw)
                if key:
                    exact.setdefault(key, (i, raw))
            values.append(_field_values(command))

        self._index = _Index(
            commands=ordered,
            exact=exact,
            values=tuple(values),
            threshold=self._threshold,
        )
        logger.debug("Index updated with %d commands (%d exact keys)", len(ordered), len(exact))

    def find_exact(self, transcript: str) -> CommandMatchResult | None:
        index = self._index
        hit = index.exact.get(normalize_for_matching(transcript or ""))
        if hit is None:
            return None
        i, phrase = hit
        return CommandMatchResult(command=index.commands[i], score=0.0, matched_phrase=phrase, is_exact=True)

    def find_best_match(self, transcript: str) -> CommandMatchResult | None:
        index = self._index
        if not index.commands or not (transcript or "").strip():
            return None

        query = normalize_for_matching(transcript)
        hit = index.exact.get(query)
        if hit is not None:
            i, phrase = hit
            logger.debug("Exact match: '%s' -> %s", transcript, index.commands[i].id)
            return CommandMatchResult(command=index.commands[i], score=0.0, matched_phrase=phrase, is_exact=True)

        if len(query) < MIN_MATCH_CHAR_LENGTH:
            return None

        ranked = self._rank(index, query)
        if not ranked:
            logger.debug("No match for '%s'", transcript)
            return None

        score, i, phrase = ranked[0]
        if len(ranked) > 1:
            logger.debug(
                "Fuzzy match: %s (%.3f); alternatives: %s",
                index.commands[i].id, score,
                ", ".join(f"{index.commands[j].id}({s:.3f})" for s, j, _ in ranked[1:4]),
            )
        return CommandMatchResult(command=index.commands[i], score=score, matched_phrase=phrase, is_exact=False)

    @staticmethod
    def _rank(index: _Index, query: str) -> list[tuple[float, int, str]]:
        ranked = []
        for i, field_values in enumerate(index.values):
            best: tuple[float, str] | None = None
            for fv in field_values:
                distance = text_distance(query, fv.key)
                if distance > index.threshold:
                    continue
                score = _weighted(distance, fv.weight)
                if best is None or score < best[0]:
                    best = (score, fv.raw)
            if best is not None:
                ranked.append((best[0], i, best[1]))
        # Catalog position breaks ties, and the catalog is priority-ordered
        ranked.sort(key=lambda r: (r[0], r[1]))
        return ranked

    def set_threshold(self, threshold: float):
        self._threshold = threshold
        if self._index.commands:
            self.update_commands(list(self._index.commands))

    @property
    def threshold(self) -> float:
        return self._threshold

    def stats(self) -> dict:
        index = self._index
        return {
            "total_commands": len(index.commands),
            "exact_keys": len(index.exact),
            "threshold": self._threshold,
        }
