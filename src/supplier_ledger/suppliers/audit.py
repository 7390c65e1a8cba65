"""
Supplier alias audit.

Learned aliases are derived mechanically (first word, first two words, ...)
and can end up far too generic: "belgian" or "food" will happily match
unrelated transactions. Nothing in the matching algorithm prevents that.
This module only surfaces the problem:

- audit_registry(): report generic aliases, too-short aliases and patterns
  shared by several suppliers
- GENERIC_ALIASES / filter_aliases(): the manually curated override list
  applied during bulk imports
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .normalize import normalize_search_term

if TYPE_CHECKING:
    from .registry import SupplierRegistry

# Words known to cause false positives when used as an alias on their own
GENERIC_ALIASES: frozenset[str] = frozenset(
    {
        "belgium",
        "belgian",
        "belgi",
        "belgië",
        "belgique",
        "sa",
        "srl",
        "nv",
        "bvba",
        "sprl",
        "fast",
        "food",
        "pack",
        "eats",
        "europacific",
        "partners",
        "europe",
        "services",
        "service",
        "group",
        "company",
    }
)

# Shorter aliases are almost always ambiguous
MIN_ALIAS_LENGTH = 4

ISSUE_GENERIC = "generic"
ISSUE_TOO_SHORT = "too_short"
ISSUE_SHARED_PATTERN = "shared_pattern"


@dataclass(frozen=True)
class AliasIssue:
    """A single questionable alias or pattern."""

    key: str
    value: str
    kind: str
    detail: str

    def __str__(self) -> str:
        return f"[{self.kind}] {self.key}: '{self.value}' ({self.detail})"


def _is_generic(alias: str, excluded: frozenset[str] | set[str]) -> bool:
    excluded_normalized = {normalize_search_term(word) for word in excluded}
    return normalize_search_term(alias) in excluded_normalized


def filter_aliases(
    aliases: list[str],
    excluded: frozenset[str] | set[str] = GENERIC_ALIASES,
) -> list[str]:
    """Drop aliases that appear in the override list (accent/case-insensitive)."""
    return [alias for alias in aliases if not _is_generic(alias, excluded)]


def audit_registry(
    registry: SupplierRegistry,
    excluded: frozenset[str] | set[str] = GENERIC_ALIASES,
    min_length: int = MIN_ALIAS_LENGTH,
) -> list[AliasIssue]:
    """
    Inspect every supplier for aliases/patterns likely to cause mismatches.

    Args:
        registry: Registry to inspect
        excluded: Generic words to flag
        min_length: Aliases with fewer normalized characters are flagged

    Returns:
        Alias issues in registry key order, then shared-pattern issues
    """
    issues: list[AliasIssue] = []
    pattern_owners: dict[str, list[str]] = defaultdict(list)

    for entry in registry.entries():
        for alias in entry.aliases:
            normalized = normalize_search_term(alias)
            if _is_generic(alias, excluded):
                issues.append(
                    AliasIssue(entry.key, alias, ISSUE_GENERIC, "known generic word")
                )
            elif len(normalized) < min_length:
                issues.append(
                    AliasIssue(
                        entry.key,
                        alias,
                        ISSUE_TOO_SHORT,
                        f"{len(normalized)} < {min_length} characters",
                    )
                )

        for pattern in entry.patterns:
            normalized = normalize_search_term(pattern)
            if normalized and entry.key not in pattern_owners[normalized]:
                pattern_owners[normalized].append(entry.key)

    for pattern, owners in sorted(pattern_owners.items()):
        if len(owners) > 1:
            for key in owners:
                others = ", ".join(o for o in owners if o != key)
                issues.append(
                    AliasIssue(key, pattern, ISSUE_SHARED_PATTERN, f"also used by {others}")
                )

    return issues
