"""
Supplier identity: registry, matching and self-learning.

- normalize_search_term: the one text normalization used for matching
- SupplierRegistry: JSON-backed canonical key -> aliases/patterns store
- SupplierResolver: does a transaction description refer to a supplier?
- SupplierLearner: extracts unknown suppliers from descriptions
  and reports debits that match no supplier
- audit_registry: flags aliases likely to cause mismatches
"""

from .audit import GENERIC_ALIASES, AliasIssue, audit_registry, filter_aliases
from .learning import (
    DEFAULT_EXCLUDED_KEYWORDS,
    EXTRACTION_RULES,
    ExtractionCandidate,
    ExtractionRule,
    LearningReport,
    SupplierLearner,
    UnknownSupplier,
    normalize_key,
)
from .normalize import normalize_search_term
from .registry import (
    DEFAULT_SUPPLIERS,
    RegistryEntry,
    RegistryError,
    RegistryLoadError,
    RegistryWriteError,
    SupplierRegistry,
)
from .resolver import SupplierResolver

__all__ = [
    "normalize_search_term",
    "SupplierRegistry",
    "RegistryEntry",
    "RegistryError",
    "RegistryLoadError",
    "RegistryWriteError",
    "DEFAULT_SUPPLIERS",
    "SupplierResolver",
    "SupplierLearner",
    "ExtractionRule",
    "ExtractionCandidate",
    "LearningReport",
    "EXTRACTION_RULES",
    "normalize_key",
    "UnknownSupplier",
    "DEFAULT_EXCLUDED_KEYWORDS",
    "audit_registry",
    "filter_aliases",
    "AliasIssue",
    "GENERIC_ALIASES",
]
