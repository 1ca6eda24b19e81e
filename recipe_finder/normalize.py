import re
from typing import List, Set

# No fuzzy matching: queries are folded, then matched as substrings

_KATAKANA = re.compile("[ァ-ヶ]")
# full-width A-Z, a-z, 0-9
_FULLWIDTH_ALNUM = re.compile("[Ａ-Ｚａ-ｚ０-９]")
_WHITESPACE = re.compile(r"\s+")

IDEOGRAPHIC_SPACE = "　"


def katakana_to_hiragana(s: str) -> str:
    """Fold katakana to hiragana, e.g. "カタカナ" -> "かたかな"."""
    return _KATAKANA.sub(lambda m: chr(ord(m.group(0)) - 0x60), s)


def _fullwidth_to_ascii(s: str) -> str:
    return _FULLWIDTH_ALNUM.sub(lambda m: chr(ord(m.group(0)) - 0xFEE0), s)


def normalize_text(s: str) -> str:
    """Return the search-folded form of ``s``.

    Katakana becomes hiragana, full-width letters and digits become ASCII,
    then the result is lowercased and stripped. ``None`` and "" give "".
    """
    if not s:
        return ""
    w = katakana_to_hiragana(s)
    w = _fullwidth_to_ascii(w)
    return w.lower().strip()


def tokenize(query: str) -> List[str]:
    """Split a raw query into tokens.

    Full-width spaces count as whitespace. Order and duplicates are kept;
    an empty query gives an empty list.
    """
    if not query:
        return []
    text = query.replace(IDEOGRAPHIC_SPACE, " ")
    return [t.strip() for t in _WHITESPACE.split(text) if t.strip()]


def expand_token(token: str) -> Set[str]:
    """Lookup strings tried for one token: itself plus its folded form."""
    variants = {token}
    normalized = normalize_text(token)
    if normalized and normalized != token:
        variants.add(normalized)
    return variants
