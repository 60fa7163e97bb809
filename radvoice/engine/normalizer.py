"""Deterministic transcript cleanup for voice command matching.

Handles:
- Case folding and diacritic stripping (NFD decomposition)
- Whitespace collapsing
- Mis-transcriptions of radiology terms from browser speech engines
  (e.g. "bairads" -> "BI-RADS", "hipo ecogenico" -> "hipoecogênico")
- Split or mangled structural command words ("virgola" -> "vírgula")

Every replacement is anchored on word boundaries so that a rule never
rewrites a substring inside a longer medical term.
"""

import re
import unicodedata

_WHITESPACE_RE = re.compile(r"\s+")
_PUNCTUATION_RE = re.compile(r"[^\w\s]")


def _word(pattern: str) -> re.Pattern:
    return re.compile(r"\b(?:" + pattern + r")\b", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Phonetic corrections (speech engine mishears, pt-BR radiology dictation)
# ---------------------------------------------------------------------------
# Keys are written accent-free because rules run on normalized text as well
# as on raw dictation. Multi-word patterns first, then single-word.

_PHONETIC_CORRECTIONS = [
    # Classification systems spoken as separate syllables
    (_word(r"b[ai]y?\s+rads"), "BI-RADS"),
    (_word(r"ti\s+rads"), "TI-RADS"),
    (_word(r"pi\s+rads"), "PI-RADS"),
    (_word(r"li\s+rads"), "LI-RADS"),
    (_word(r"o\s+rads"), "O-RADS"),
    (_word(r"cad\s+rads"), "CAD-RADS"),
    (_word(r"lung\s+rads"), "Lung-RADS"),
    (_word(r"bairads"), "BI-RADS"),
    (_word(r"birads"), "BI-RADS"),
    (_word(r"tirads"), "TI-RADS"),
    (_word(r"pirads"), "PI-RADS"),
    (_word(r"lirads"), "LI-RADS"),
    (_word(r"orads"), "O-RADS"),
    (_word(r"cadrads"), "CAD-RADS"),
    (_word(r"riados"), "RADS"),

    # Prefixes split from the root word
    (_word(r"hipo\s+ecogenico"), "hipoecogênico"),
    (_word(r"hiper\s+ecogenico"), "hiperecogênico"),
    (_word(r"iso\s+ecogenico"), "isoecogênico"),
    (_word(r"hipo\s+ecoico"), "hipoecoico"),
    (_word(r"hiper\s+ecoico"), "hiperecoico"),
    (_word(r"hipo\s+denso"), "hipodenso"),
    (_word(r"hiper\s+denso"), "hiperdenso"),
    (_word(r"hipo\s+intenso"), "hipointenso"),
    (_word(r"hiper\s+intenso"), "hiperintenso"),
    (_word(r"hidro\s+nefrose"), "hidronefrose"),
    (_word(r"hepato\s+megalia"), "hepatomegalia"),
    (_word(r"espleno\s+megalia"), "esplenomegalia"),
    (_word(r"cardio\s+megalia"), "cardiomegalia"),

    # Dropped initial "h" and vowel swaps
    (_word(r"epocogenico"), "hipoecogênico"),
    (_word(r"iperecogenico"), "hiperecogênico"),
    (_word(r"hipeecogenico"), "hiperecogênico"),
    (_word(r"ipodenso"), "hipodenso"),
    (_word(r"iperdenso"), "hiperdenso"),
    (_word(r"iperintenso"), "hiperintenso"),
    (_word(r"ipointenso"), "hipointenso"),
    (_word(r"isoentenso"), "isointenso"),
    (_word(r"aneicoico|onecoico"), "anecoico"),
    (_word(r"eterogeneo"), "heterogêneo"),
    (_word(r"omogeneo"), "homogêneo"),
    (_word(r"irreguar"), "irregular"),
    (_word(r"reguar"), "regular"),

    # Anatomy and pathology
    (_word(r"colilitiasi|colilitiase"), "colelitíase"),
    (_word(r"piolonefrite"), "pielonefrite"),
    (_word(r"nefrolytiase"), "nefrolitíase"),
    (_word(r"hepatomegali"), "hepatomegalia"),
    (_word(r"meninjite"), "meningite"),
    (_word(r"tireoyde|tiroide"), "tireoide"),
    (_word(r"flaier"), "FLAIR"),
    (_word(r"stire"), "STIR"),

    # Structural and punctuation command words
    (_word(r"virgola"), "vírgula"),
    (_word(r"paragrafu"), "parágrafo"),
    (_word(r"nova\s+linia"), "nova linha"),
    (_word(r"dois\s+ponto"), "dois pontos"),
    (_word(r"parentese"), "parênteses"),
]


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize(text: str) -> str:
    """Lower-case, strip diacritics, collapse whitespace and trim."""
    if not text:
        return ""
    text = strip_accents(text.lower())
    return _WHITESPACE_RE.sub(" ", text).strip()


def apply_phonetic_corrections(text: str) -> str:
    """Replace known mis-transcriptions on whole-word boundaries.

    Returns the input unchanged when no rule applies.
    """
    if not text:
        return text
    for pattern, replacement in _PHONETIC_CORRECTIONS:
        text = pattern.sub(replacement, text)
    return text


def normalize_for_matching(text: str) -> str:
    """Full cleanup used by the command matcher on both sides of a comparison.

    Punctuation is turned into spaces so "dois-pontos" and "dois pontos"
    collapse to the same key.
    """
    text = apply_phonetic_corrections(normalize(text))
    text = _PUNCTUATION_RE.sub(" ", normalize(text))
    return _WHITESPACE_RE.sub(" ", text).strip()
