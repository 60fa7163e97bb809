"""Prefix-based intent detection for dictated utterances.

- "modelo tc tórax"   -> TEMPLATE, query "tc tórax"
- "frase esteatose"   -> FRASE, query "esteatose"
- "vírgula"           -> TEXT (the engine tries system commands first)
- plain dictation     -> TEXT
"""

import enum
import re
from dataclasses import dataclass

from radvoice.engine.normalizer import normalize


class IntentType(str, enum.Enum):
    TEMPLATE = "TEMPLATE"
    FRASE = "FRASE"
    SYSTEM = "SYSTEM"
    TEXT = "TEXT"


@dataclass(frozen=True)
class DetectedIntent:
    type: IntentType
    query: str
    confidence: float
    original_text: str
    prefix: str | None = None


PREFIX_CONFIDENCE = 0.95
BARE_PREFIX_CONFIDENCE = 0.7
MIN_QUERY_LENGTH = 2

# Most specific first: multi-word prefixes must be tried before the single
# words they contain, or "modelo" would swallow "aplicar modelo ...".
TEMPLATE_PREFIXES = (
    "aplicar modelos",
    "aplicar modelo",
    "usar modelos",
    "usar modelo",
    "laudo de",
    "modelos de",
    "modelo de",
    "templates",
    "template",
    "modelos",
    "modelo",
    "laudo",
)

FRASE_PREFIXES = (
    "inserir frases",
    "inserir frase",
    "adicionar frases",
    "adicionar frase",
    "colocar frases",
    "colocar frase",
    "frases de",
    "frase de",
    "inserir",
    "adicionar",
    "colocar",
    "frases",
    "frase",
)

_WORD_RE = re.compile(r"\S+")

_PREFIX_TABLE = (
    [(IntentType.TEMPLATE, p, normalize(p)) for p in TEMPLATE_PREFIXES]
    + [(IntentType.FRASE, p, normalize(p)) for p in FRASE_PREFIXES]
)


def _remainder_after_words(original: str, word_count: int) -> str:
    """Return the original text following its first `word_count` words."""
    end = 0
    for i, m in enumerate(_WORD_RE.finditer(original)):
        if i == word_count - 1:
            end = m.end()
            break
    return original[end:].strip()


def detect_intent(transcript: str) -> DetectedIntent:
    original = (transcript or "").strip()
    normalized = normalize(original)

    for intent_type, prefix, norm_prefix in _PREFIX_TABLE:
        if normalized.startswith(norm_prefix + " "):
            query = _remainder_after_words(original, len(norm_prefix.split()))
            if len(query) >= MIN_QUERY_LENGTH:
                return DetectedIntent(
                    type=intent_type,
                    query=query,
                    confidence=PREFIX_CONFIDENCE,
                    original_text=original,
                    prefix=prefix,
                )
            # Residual too short: let a later (less specific) prefix try
            continue
        if normalized == norm_prefix:
            return DetectedIntent(
                type=intent_type,
                query="",
                confidence=BARE_PREFIX_CONFIDENCE,
                original_text=original,
                prefix=prefix,
            )

    return DetectedIntent(
        type=IntentType.TEXT,
        query=original,
        confidence=1.0,
        original_text=original,
    )


def has_command_prefix(text: str) -> bool:
    normalized = normalize(text)
    return any(
        normalized == p or normalized.startswith(p + " ")
        for _, _, p in _PREFIX_TABLE
    )


def get_intent_type(text: str) -> IntentType:
    return detect_intent(text).type
