"""Supplier resolver: read-only matching surface over the supplier registry.

A term typed by a user ("Eden Red", "pluxi") is mapped to a registry entry
through its aliases; the entry's patterns are then looked for in the
normalized transaction description.

Ambiguity rule: when the aliases of several entries accept the same term,
the entry whose key sorts first wins. This ordering is deterministic but
carries no meaning (see ``audit.audit_registry`` for overlap detection).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .normalize import normalize_search_term

if TYPE_CHECKING:
    from .registry import RegistryEntry, SupplierRegistry

logger = logging.getLogger(__name__)


def _title_words(text: str, lower_rest: bool = False) -> str:
    """Upper-case the first letter of each space-separated word."""
    words = []
    for word in text.split(" "):
        rest = word[1:].lower() if lower_rest else word[1:]
        words.append(word[:1].upper() + rest)
    return " ".join(words)


class SupplierResolver:
    """Match transaction descriptions against supplier names."""

    def __init__(self, registry: SupplierRegistry) -> None:
        """Initialize the resolver.

        Args:
            registry: Registry to read entries from (never modified here).
        """
        self.registry = registry

    @staticmethod
    def _alias_accepts(alias: str, normalized_term: str) -> bool:
        """Alias equals, contains, or is contained in the normalized term."""
        normalized_alias = normalize_search_term(alias)
        if not normalized_alias:
            return False
        return (
            normalized_alias == normalized_term
            or normalized_term in normalized_alias
            or normalized_alias in normalized_term
        )

    def find_entry(self, term: str) -> RegistryEntry | None:
        """Return the first entry (sorted key order) whose aliases accept ``term``."""
        normalized = normalize_search_term(term)
        if not normalized:
            return None

        for entry in self.registry.entries():
            if any(self._alias_accepts(alias, normalized) for alias in entry.aliases):
                return entry
        return None

    def patterns_for(self, term: str) -> list[str]:
        """Get the normalized description patterns for a supplier term.

        Args:
            term: Supplier name or alias as typed by a user.

        Returns:
            The matched entry's normalized patterns, or ``[normalized term]``
            when no entry accepts the term.
        """
        entry = self.find_entry(term)
        if entry is not None:
            patterns = [normalize_search_term(p) for p in entry.patterns]
            return [p for p in patterns if p]
        return [normalize_search_term(term)]

    def matches(self, description: str, term: str) -> bool:
        """Check whether a transaction description refers to a supplier.

        Args:
            description: Transaction description.
            term: Supplier name or alias.

        Returns:
            True if any pattern for ``term`` is a substring of the
            normalized description.
        """
        normalized_desc = normalize_search_term(description)
        if not normalized_desc:
            return False
        return any(p and p in normalized_desc for p in self.patterns_for(term))

    def display_name(self, term: str) -> str:
        """Canonical display name for a supplier term.

        Returns the title-cased first alias of the matched entry, or the
        title-cased input when nothing matches.
        """
        entry = self.find_entry(term)
        if entry is not None:
            return _title_words(entry.primary_alias)
        return _title_words(term.strip(), lower_rest=True)
