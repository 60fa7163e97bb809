"""Protection against dictated medical words firing system actions.

A radiologist saying "direita" is describing laterality, not asking to
right-align the paragraph; isolated clinical words must fall through to
literal dictation.
"""

import enum
import logging
from dataclasses import dataclass

from radvoice.engine.commands import CommandCategory, CommandMatchResult
from radvoice.engine.normalizer import normalize, normalize_for_matching

logger = logging.getLogger(__name__)

DEFAULT_MAX_SCORE = 0.4

# Stored accent-free; utterances are normalized before lookup
PROTECTED_MEDICAL_WORDS = frozenset(normalize(w) for w in (
    # Laterality / position
    "direita", "esquerda", "direito", "esquerdo",
    "superior", "inferior", "anterior", "posterior",
    "lateral", "medial", "proximal", "distal",
    "central", "periférico", "superficial", "profundo",
    "bilateral",

    # Organs and structures
    "fígado", "baço", "rim", "rins", "pâncreas", "vesícula",
    "mama", "mamas", "tireoide", "próstata", "útero", "ovário",
    "pulmão", "pulmões", "coração", "aorta", "veia", "artéria",

    # Common findings
    "nódulo", "cisto", "massa", "lesão", "calcificação",
    "normal", "alterado", "aumentado", "reduzido",

    # Report sections as dictated words
    "técnica", "relatório", "achados", "conclusão", "impressão",

    # Modalities
    "ultrassonografia", "tomografia", "ressonância", "mamografia",

    # Frequent descriptors
    "aspecto", "padrão", "textura", "contorno", "dimensões",
))

SAFE_COMMAND_PREFIXES = (
    "modelo",
    "template",
    "frase",
    "inserir",
    "aplicar",
    "usar",
    "comando",
    "ir para",
    "alinhar",
    "formatacao",
)

_ALWAYS_SAFE = (CommandCategory.PUNCTUATION, CommandCategory.STRUCTURAL)


class RecommendedAction(str, enum.Enum):
    EXECUTE = "execute"
    INSERT_TEXT = "insert_text"


@dataclass(frozen=True)
class SafetyVerdict:
    safe: bool
    reason: str | None = None


def _words(text: str) -> list[str]:
    # Punctuation from the speech service ("Direita.") is not part of the word
    return normalize_for_matching(text).split()


def is_protected_medical_phrase(text: str) -> bool:
    words = _words(text)
    return bool(words) and all(w in PROTECTED_MEDICAL_WORDS for w in words)


def has_safe_command_prefix(text: str) -> bool:
    normalized = normalize(text)
    return any(normalized.startswith(p) for p in SAFE_COMMAND_PREFIXES)


class SafetyGuard:
    def __init__(self, max_score: float = DEFAULT_MAX_SCORE):
        self.max_score = max_score

    def validate_system_command(self, match: CommandMatchResult, original_text: str) -> SafetyVerdict:
        if match.command.category in _ALWAYS_SAFE:
            return SafetyVerdict(safe=True)

        if match.is_exact or match.score == 0:
            return SafetyVerdict(safe=True)

        word_count = len(_words(original_text))
        if 1 <= word_count <= 2 and is_protected_medical_phrase(original_text):
            return SafetyVerdict(safe=False, reason="protected medical phrase cannot trigger a command")

        if match.score <= self.max_score:
            return SafetyVerdict(safe=True)
        return SafetyVerdict(
            safe=False,
            reason=f"score {match.score:.2f} above safety limit {self.max_score:.2f}",
        )

    def get_recommended_action(self, match: CommandMatchResult | None, original_text: str) -> RecommendedAction:
        if match is None:
            return RecommendedAction.INSERT_TEXT

        verdict = self.validate_system_command(match, original_text)
        if verdict.safe:
            return RecommendedAction.EXECUTE

        logger.debug(
            "Unsafe match '%s' -> %s (score %.3f): %s; inserting as text",
            original_text, match.command.id, match.score, verdict.reason,
        )
        return RecommendedAction.INSERT_TEXT
