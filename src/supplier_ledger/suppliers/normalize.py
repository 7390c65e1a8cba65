"""
Search-term normalization (SSOT).

Every comparison between a supplier name, an alias, a pattern and a bank
transaction description goes through ``normalize_search_term``. Nothing else
in the package should lower-case or strip accents on its own.
"""

import re
import unicodedata

# Whitespace, hyphen, underscore, dot, slash and backslash
_SEPARATORS_RE = re.compile(r"[\s\-_./\\]")


def strip_diacritics(text: str) -> str:
    """Decompose to NFD and drop combining marks ("É" -> "E")."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def normalize_search_term(text: str | None) -> str:
    """
    Normalize text for supplier matching.

    Lower-cases, strips diacritics, then removes whitespace and the
    ``- _ . / \\`` separators:

        "Éden-Red"  -> "edenred"
        "eden red"  -> "edenred"
        "SA/NV"     -> "sanv"

    The function is pure and idempotent.

    Args:
        text: Any text (None is treated as empty)

    Returns:
        Normalized string (may be empty)
    """
    if not text:
        return ""
    return _SEPARATORS_RE.sub("", strip_diacritics(text.lower()))
