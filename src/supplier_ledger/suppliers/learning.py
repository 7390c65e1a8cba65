"""Supplier learning: grow the registry from bank transaction descriptions.

Descriptions follow several statement grammars. Each grammar is modelled by
one named ``ExtractionRule``; ``EXTRACTION_RULES`` lists them in priority
order and the first rule producing a plausible name wins.

Examples of the grammars handled:

    "Belgian Shell SA -          DEBIT POUR DOMICILIATION ..."   leading_name
    "VIREMENT EN FAVEUR DE mediwet BE91390..."                    transfer_beneficiary
    "RECOUVREMENT EUROPÉEN KBC BANK NV 0001 0001 ..."             collection_keyword
    "ACME TRADING SA REF 88"                                      uppercase_legal_entity
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .audit import GENERIC_ALIASES, filter_aliases
from .normalize import normalize_search_term, strip_diacritics
from .resolver import SupplierResolver

if TYPE_CHECKING:
    from ..bank_client.client import BankTransaction
    from .registry import SupplierRegistry

logger = logging.getLogger(__name__)

# Company-form abbreviations stripped from the end of a name
LEGAL_SUFFIXES = ("sa", "nv", "bureau", "sprl", "ltd", "gmbh", "srl", "bv", "ba")

_LEGAL_SUFFIX_RE = re.compile(r"\s+(?:" + "|".join(LEGAL_SUFFIXES) + r")$", re.IGNORECASE)
_STOP_WORDS_RE = re.compile(r"(?:^|\s+)(?:belgian|n\.v\.|de|la|le|les|des|du)(?=\s|$)")
_NON_ALNUM_SPACE_RE = re.compile(r"[^a-z0-9\s]")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class ExtractionRule:
    """One statement grammar: a regex capturing the supplier name in group 1.

    The captured name must pass the rule's sanity checks (word count, first
    word length, overall length) to count as a candidate.
    """

    name: str
    pattern: re.Pattern
    min_words: int = 1
    min_first_word_length: int = 1
    min_length: int = 2

    def apply(self, text: str) -> str | None:
        """Return the captured supplier name, or None if the rule does not apply."""
        match = self.pattern.search(text)
        if not match or not match.group(1):
            return None

        name = " ".join(match.group(1).split())
        words = name.split(" ")
        if len(name) < self.min_length:
            return None
        if len(words) < self.min_words:
            return None
        if len(words[0]) < self.min_first_word_length:
            return None
        return name


EXTRACTION_RULES: tuple[ExtractionRule, ...] = (
    # Everything before " - ", ":" or a long run of spaces
    ExtractionRule(
        name="leading_name",
        pattern=re.compile(r"^([A-Z][A-Za-z0-9&\s.]+?)(?:\s+-\s+|\s*:|\s{5,})"),
        min_words=2,
        min_first_word_length=2,
    ),
    # Beneficiary after "vers" / "en faveur de", up to an IBAN or another marker
    ExtractionRule(
        name="transfer_beneficiary",
        pattern=re.compile(
            r"\b(?:vers|en faveur de)\s+([A-Za-z0-9&]+?)"
            r"(?:\s+(?:BE|DE|NL|FR)\d+|\s+-|\s+Identification|\s*,|\s+Paiement)",
            re.IGNORECASE,
        ),
    ),
    # Creditor after a collection / transfer keyword, up to a long digit run
    ExtractionRule(
        name="collection_keyword",
        pattern=re.compile(
            r"^(?:RECOUVREMENT|VIREMENT|PRELEVEMENT|PR[EÉ]L[EÈ]VEMENT|DOMICILIATION)\s+"
            r"(?:EUROP[ÉE]EN\s+)?(?:SEPA\s+)?"
            r"([A-Z][A-Za-z0-9&\s.]+?)(?:\s+\d{4,}|$)",
            re.IGNORECASE,
        ),
        min_words=2,
    ),
    # Two or more upper-case words followed by a legal-entity suffix
    ExtractionRule(
        name="uppercase_legal_entity",
        pattern=re.compile(r"^([A-Z]{2,}(?:\s+[A-Z]{2,})+?\s+(?:SA|NV|BUREAU|SPRL|LTD))\b"),
        min_words=3,
    ),
)


@dataclass
class ExtractionCandidate:
    """A supplier extracted from one description, before registration."""

    raw_name: str
    key: str
    aliases: list[str]
    patterns: list[str]
    rule: str


@dataclass
class LearningReport:
    """Outcome of a bulk learning run."""

    learned: int = 0
    already_known: int = 0
    not_extracted: int = 0
    learned_keys: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.learned + self.already_known + self.not_extracted

    def to_dict(self) -> dict:
        return {
            "learned": self.learned,
            "already_known": self.already_known,
            "not_extracted": self.not_extracted,
            "learned_keys": list(self.learned_keys),
        }


# Debits that are never supplier payments (salaries, taxes, rent, standing orders)
DEFAULT_EXCLUDED_KEYWORDS: tuple[str, ...] = (
    "salaire",
    "salary",
    "avance",
    "onss",
    "tva",
    "precompte",
    "fiscal",
    "impot",
    "loyer",
    "rent",
    "ordre permanent",
    "standing order",
    "indexation",
)

# Descriptions shorter than this carry no usable name
MIN_DESCRIPTION_LENGTH = 10

# Grouping key: first characters of the normalized description
GROUP_KEY_LENGTH = 30


@dataclass
class UnknownSupplier:
    """Unmatched debits sharing the same description prefix."""

    description: str
    candidate: str | None
    count: int = 0
    total_amount: float = 0.0
    transaction_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "candidate": self.candidate,
            "count": self.count,
            "total_amount": self.total_amount,
            "transaction_ids": list(self.transaction_ids),
        }


def _clean_name(name: str) -> str:
    """Lower-case, fold accents, keep [a-z0-9 ] and collapse whitespace."""
    cleaned = strip_diacritics(name.lower())
    cleaned = _NON_ALNUM_SPACE_RE.sub(" ", cleaned)
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def normalize_key(name: str) -> str:
    """
    Derive the canonical registry key for a supplier name.

        "KBC BANK NV"       -> "kbc bank"
        "Belgian Shell SA"  -> "shell"

    Args:
        name: Supplier name as extracted or typed

    Returns:
        Canonical key (may be empty for names made only of stop-words)
    """
    key = name.strip().lower()
    key = _LEGAL_SUFFIX_RE.sub("", key)
    key = _STOP_WORDS_RE.sub(" ", key)
    key = strip_diacritics(key)
    key = _NON_ALNUM_SPACE_RE.sub(" ", key)
    return _WHITESPACE_RE.sub(" ", key).strip()


def create_aliases(name: str) -> list[str]:
    """
    Default aliases for a supplier name, in order:
    full name, name without legal suffix, first word, first two words.
    """
    normalized = _clean_name(name)
    if not normalized:
        return []

    aliases = [normalized]

    without_suffix = _LEGAL_SUFFIX_RE.sub("", normalized).strip()
    if without_suffix != normalized and len(without_suffix) > 2:
        aliases.append(without_suffix)

    words = normalized.split(" ")
    if len(words) > 1:
        aliases.append(words[0])
        aliases.append(f"{words[0]} {words[1]}")

    result: list[str] = []
    for alias in aliases:
        if alias not in result:
            result.append(alias)
    return result


def create_patterns(name: str) -> list[str]:
    """Single separator-free pattern: "KBC BANK NV" -> ["kbcbanknv"]."""
    pattern = _NON_ALNUM_RE.sub("", strip_diacritics(name.lower()))
    return [pattern] if pattern else []


class SupplierLearner:
    """
    Learn unknown suppliers from transaction descriptions.

    The learner never creates a second entry for a supplier the resolver
    already recognizes, so ``learn`` is idempotent for a given description.
    """

    def __init__(
        self,
        registry: SupplierRegistry,
        resolver: SupplierResolver | None = None,
        rules: tuple[ExtractionRule, ...] = EXTRACTION_RULES,
    ) -> None:
        """Initialize the learner.

        Args:
            registry: Registry to grow.
            resolver: Resolver used for the "already known" check.
            rules: Extraction rules in priority order.
        """
        self.registry = registry
        self.resolver = resolver or SupplierResolver(registry)
        self.rules = rules

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    def extract_candidate(self, description: str | None) -> ExtractionCandidate | None:
        """Run the rule cascade and build a candidate from the first hit."""
        if not description:
            return None

        text = description.strip()
        for rule in self.rules:
            name = rule.apply(text)
            if name:
                return self.build_candidate(name, rule=rule.name)
        return None

    def extract(self, description: str | None) -> str | None:
        """Extract a supplier name from a description (None if no rule applies)."""
        candidate = self.extract_candidate(description)
        return candidate.raw_name if candidate else None

    def build_candidate(self, name: str, rule: str = "manual") -> ExtractionCandidate:
        return ExtractionCandidate(
            raw_name=name,
            key=normalize_key(name),
            aliases=create_aliases(name),
            patterns=create_patterns(name),
            rule=rule,
        )

    # ------------------------------------------------------------------
    # Registry growth
    # ------------------------------------------------------------------

    def is_known(self, name: str) -> bool:
        """True if any existing supplier key matches the name."""
        return any(self.resolver.matches(name, key) for key in self.registry.keys())

    def _register(self, candidate: ExtractionCandidate) -> bool:
        if not candidate.key or not candidate.aliases:
            logger.debug("Rejected candidate '%s': empty key", candidate.raw_name)
            return False

        success, message = self.registry.add(
            candidate.key,
            candidate.aliases[0],
            candidate.aliases[1:],
            candidate.patterns,
        )
        if not success:
            logger.debug("Candidate '%s' not registered: %s", candidate.raw_name, message)
        return success

    def learn(self, description: str | None) -> bool:
        """
        Learn a new supplier from a transaction description.

        Returns:
            True if a new supplier was registered; False if nothing could be
            extracted or the supplier is already known
        """
        candidate = self.extract_candidate(description)
        if candidate is None:
            return False

        if self.is_known(candidate.raw_name):
            return False

        learned = self._register(candidate)
        if learned:
            logger.info(
                "New supplier learned: '%s' (key: '%s', rule: %s)",
                candidate.raw_name,
                candidate.key,
                candidate.rule,
            )
        return learned

    def add_manual(self, name: str, extra_aliases: list[str] | None = None) -> bool:
        """
        Register a supplier by hand (operator correction).

        Args:
            name: Full supplier name (e.g. "KBC BANK NV", "Mediwet")
            extra_aliases: Additional aliases

        Returns:
            True if added, False if already known
        """
        if self.is_known(name):
            return False

        candidate = self.build_candidate(name)
        for alias in extra_aliases or []:
            alias = alias.strip().lower()
            if alias and alias not in candidate.aliases:
                candidate.aliases.append(alias)

        added = self._register(candidate)
        if added:
            logger.info("Supplier added manually: '%s' (key: '%s')", name, candidate.key)
        return added

    def remove(self, key: str) -> bool:
        """Remove a supplier by key."""
        return self.registry.remove(key)

    def learn_from_transactions(self, transactions: Iterable[BankTransaction]) -> LearningReport:
        """Retroactively scan existing transactions for unknown suppliers."""
        report = LearningReport()

        for tx in transactions:
            candidate = self.extract_candidate(tx.description)
            if candidate is None:
                report.not_extracted += 1
            elif self.is_known(candidate.raw_name):
                report.already_known += 1
            elif self._register(candidate):
                report.learned += 1
                report.learned_keys.append(candidate.key)
            else:
                report.already_known += 1

        logger.info(
            "Retroactive learning: %d learned, %d already known, %d without supplier",
            report.learned,
            report.already_known,
            report.not_extracted,
        )
        return report

    def import_names(
        self,
        names: Iterable[str],
        excluded_aliases: frozenset[str] | set[str] = GENERIC_ALIASES,
    ) -> LearningReport:
        """
        Bulk-import supplier names (e.g. from historical invoices).

        Aliases found in ``excluded_aliases`` are dropped before the entry is
        created, so generic words like "belgian" never become match terms.
        """
        report = LearningReport()

        for name in names:
            if not name or not name.strip():
                report.not_extracted += 1
                continue
            if self.is_known(name):
                report.already_known += 1
                continue

            candidate = self.build_candidate(name.strip(), rule="import")
            candidate.aliases = filter_aliases(candidate.aliases, excluded_aliases)
            if self._register(candidate):
                report.learned += 1
                report.learned_keys.append(candidate.key)
            else:
                report.not_extracted += 1

        logger.info(
            "Supplier import: %d added, %d already known, %d rejected",
            report.learned,
            report.already_known,
            report.not_extracted,
        )
        return report

    def detect_unknown(
        self,
        transactions: Iterable[BankTransaction],
        excluded_keywords: Iterable[str] = DEFAULT_EXCLUDED_KEYWORDS,
    ) -> list[UnknownSupplier]:
        """
        Report debits that match no known supplier, for manual review.

        Debits with a short description or one containing an excluded keyword
        are skipped. The rest are grouped on the first characters of their
        normalized description. Nothing is written to the registry.

        Returns:
            Groups sorted by total amount, largest first
        """
        keywords = [strip_diacritics(k.lower()) for k in excluded_keywords if k]
        keys = self.registry.keys()
        groups: dict[str, UnknownSupplier] = {}

        for tx in transactions:
            if not tx.is_debit:
                continue
            description = tx.description or ""
            if len(description) < MIN_DESCRIPTION_LENGTH:
                continue
            folded = strip_diacritics(description.lower())
            if any(keyword in folded for keyword in keywords):
                continue
            if any(self.resolver.matches(description, key) for key in keys):
                continue

            group_key = normalize_search_term(description)[:GROUP_KEY_LENGTH]
            group = groups.get(group_key)
            if group is None:
                group = UnknownSupplier(
                    description=description, candidate=self.extract(description)
                )
                groups[group_key] = group
            group.count += 1
            group.total_amount += abs(tx.amount)
            group.transaction_ids.append(tx.id)

        result = sorted(groups.values(), key=lambda g: g.total_amount, reverse=True)
        logger.info("%d unknown supplier group(s) detected", len(result))
        return result
