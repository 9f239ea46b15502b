"""
Wine-domain text normalization and similarity scoring.

normalize() turns raw recognized text into a canonical form:
- in-word OCR digit confusions fixed ("w1ne" -> "wine", "c0ndado" -> "condado")
- lowercase, diacritics stripped ("Château" -> "chateau")
- producer variations folded ("&" -> "and", possessives, trailing "winery")
- punctuation replaced by spaces, whitespace collapsed
- domain abbreviations expanded ("Ch." -> "chateau", "rsv" -> "reserve")

The function is pure and idempotent, so results are memoized.

similarity() blends three signals on normalized text:
- token-set overlap (rapidfuzz token_set_ratio)
- normalized edit distance (rapidfuzz Levenshtein)
- phonetic agreement (jellyfish metaphone)
"""

import re
import unicodedata
from functools import lru_cache

import jellyfish
from rapidfuzz import fuzz
from rapidfuzz.distance import Levenshtein

from ..config import Config

# Abbreviation -> expansion. Keys are in post-punctuation form:
# "Ch." arrives here as "ch", "N.V." as "n v".
ABBREVIATIONS: dict[str, str] = {
    # Producer designations
    "ch": "chateau",
    "cht": "chateau",
    "dom": "domaine",
    "vyd": "vineyard",
    "vyds": "vineyards",
    "v yd": "vineyard",
    "wnry": "winery",
    # Grapes
    "cab sauv": "cabernet sauvignon",
    "cab": "cabernet",
    "cs": "cabernet sauvignon",
    "sauv blanc": "sauvignon blanc",
    "sb": "sauvignon blanc",
    "chard": "chardonnay",
    "pinot n": "pinot noir",
    "pn": "pinot noir",
    "pinot g": "pinot grigio",
    "pg": "pinot grigio",
    "zin": "zinfandel",
    "gewurz": "gewurztraminer",
    "gruner": "gruner veltliner",
    "shiraz": "syrah",
    "gsm": "grenache syrah mourvedre",
    # Vintage markers
    "n v": "non vintage",
    "nv": "non vintage",
    # Regions
    "bdx": "bordeaux",
    "burg": "burgundy",
    "bourgogne": "burgundy",
    "napa": "napa valley",
    "sonoma": "sonoma county",
    "willamette": "willamette valley",
    "ribera": "ribera del duero",
    "toscana": "tuscany",
    "piemonte": "piedmont",
    "cdp": "chateauneuf du pape",
    "c d p": "chateauneuf du pape",
    "chateauneuf": "chateauneuf du pape",
    # Quality markers
    "1er cru": "premier cru",
    "1er": "premier cru",
    "pc": "premier cru",
    "gc": "grand cru",
    "gr cru": "grand cru",
    "rsv": "reserve",
    "res": "reserve",
    "reserva": "reserve",
    "riserva": "reserve",
    # Serving formats
    "btl": "bottle",
    "gls": "glass",
}

# Trailing producer suffixes dropped so "Caymus Vineyards" == "Caymus"
_PRODUCER_SUFFIX = re.compile(r"(?:\s+(?:estates?|vineyards?|winery|wineries|cellars?))+$")
_POSSESSIVE = re.compile(r"(?<=\w)'s\b")
_OCR_ZERO = re.compile(r"(?<=[a-z])0(?=[a-z])")
_OCR_ONE = re.compile(r"(?<=[a-z])1(?=[a-z])")
_NON_WORD = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")


def _abbreviation_pattern(abbr: str, expansion: str) -> str:
    """Build one alternation branch matching `abbr` as whole words."""
    pattern = r"(?<!\w)" + re.escape(abbr) + r"(?!\w)"
    # Leave text that is already in expanded form alone ("napa valley")
    if expansion.startswith(abbr + " "):
        pattern += "(?!" + re.escape(expansion[len(abbr):]) + ")"
    return pattern


# Longest keys first so "cab sauv" wins over "cab"
_ABBREVIATION_RE = re.compile(
    "|".join(
        _abbreviation_pattern(abbr, ABBREVIATIONS[abbr])
        for abbr in sorted(ABBREVIATIONS, key=len, reverse=True)
    )
)


def strip_diacritics(text: str) -> str:
    """Remove combining marks: "Château Rayas" -> "Chateau Rayas"."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def fold(text: str) -> str:
    """Lowercase and strip diacritics without any other rewriting."""
    return strip_diacritics(strip_diacritics(text).lower())


def fix_ocr_errors(text: str) -> str:
    """Fix digit-for-letter confusions inside words. Expects lowercase text."""
    text = _OCR_ZERO.sub("o", text)
    return _OCR_ONE.sub("i", text)


@lru_cache(maxsize=4096)
def normalize(text: str) -> str:
    """
    Normalize wine-list text for matching.

    Args:
        text: Raw text from the recognizer or a catalog record

    Returns:
        Canonical lowercase form. normalize(normalize(x)) == normalize(x).
    """
    if not text:
        return ""

    result = fold(text).replace("’", "'")
    result = fix_ocr_errors(result)

    # Producer variations
    result = result.replace("&", " and ")
    result = _POSSESSIVE.sub("", result)

    result = _NON_WORD.sub(" ", result)
    result = _WHITESPACE.sub(" ", result).strip()
    result = _ABBREVIATION_RE.sub(lambda m: ABBREVIATIONS[m.group(0)], result)
    return _PRODUCER_SUFFIX.sub("", result)


def tokenize(text: str) -> list[str]:
    """Split already-normalized text into tokens."""
    return text.split()


def phonetic_key(text: str) -> str:
    """Metaphone key of the normalized text."""
    return jellyfish.metaphone(normalize(text))


def similarity(a: str, b: str) -> float:
    """
    Similarity of two strings in [0, 1].

    Reflexive (identical normalized text scores 1.0) and commutative.
    Inputs are normalized first.
    """
    norm_a = normalize(a)
    norm_b = normalize(b)
    if norm_a == norm_b:
        return 1.0
    if not norm_a or not norm_b:
        return 0.0

    token_score = fuzz.token_set_ratio(norm_a, norm_b) / 100.0
    edit_score = Levenshtein.normalized_similarity(norm_a, norm_b)
    phonetic_score = _phonetic_agreement(norm_a, norm_b)

    weighted = (
        token_score * Config.WEIGHT_TOKEN_SET
        + edit_score * Config.WEIGHT_EDIT
        + phonetic_score * Config.WEIGHT_PHONETIC
    )
    return min(1.0, weighted)


def _phonetic_agreement(norm_a: str, norm_b: str) -> float:
    """1.0 for equal metaphone keys, 0.5 for equal key prefixes, else 0."""
    key_a = jellyfish.metaphone(norm_a)
    key_b = jellyfish.metaphone(norm_b)
    if not key_a or not key_b:
        return 0.0
    if key_a == key_b:
        return 1.0
    prefix = Config.PHONETIC_PREFIX_LENGTH
    if len(key_a) >= prefix and key_a[:prefix] == key_b[:prefix]:
        return 0.5
    return 0.0
