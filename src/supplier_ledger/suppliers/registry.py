"""
Supplier registry (JSON document store).

Durable mapping of canonical supplier key -> aliases + match patterns:

    {
      "edenred": {
        "aliases": ["edenred", "eden red", "eden", "ticket restaurant"],
        "patterns": ["edenred", "edenredbelgium"]
      }
    }

Persistence contract:
- The whole document is rewritten, sorted by key, after every mutation
- Writes go to a temporary file first and are renamed into place
- A missing or corrupt document falls back to DEFAULT_SUPPLIERS (never fatal)
- A corrupt document is copied to <name>.corrupt before it is first overwritten
- A failed write is logged; the in-memory state stays authoritative
"""

import json
import logging
import os
import shutil
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

logger = logging.getLogger(__name__)


class RegistryError(Exception):
    """Base exception for supplier registry errors."""

    pass


class RegistryLoadError(RegistryError):
    """The registry document is missing, unreadable or malformed."""

    pass


class RegistryWriteError(RegistryError):
    """The registry document could not be written."""

    pass


@dataclass
class RegistryEntry:
    """One canonical supplier identity."""

    key: str
    aliases: list[str] = field(default_factory=list)
    patterns: list[str] = field(default_factory=list)

    @property
    def primary_alias(self) -> str:
        """First alias (the display name), or the key if there are no aliases."""
        return self.aliases[0] if self.aliases else self.key

    def copy(self) -> "RegistryEntry":
        return RegistryEntry(key=self.key, aliases=list(self.aliases), patterns=list(self.patterns))

    def to_dict(self) -> dict:
        """Convert to the on-disk JSON shape (the key is the mapping key)."""
        return {"aliases": list(self.aliases), "patterns": list(self.patterns)}

    @classmethod
    def from_dict(cls, key: str, data: dict) -> "RegistryEntry":
        """Build an entry from its on-disk JSON shape.

        Raises:
            RegistryLoadError: If aliases/patterns are not lists of strings
        """
        if not isinstance(data, dict):
            raise RegistryLoadError(f"Entry '{key}' must be an object, got {type(data).__name__}")

        aliases = data.get("aliases", [])
        patterns = data.get("patterns", [])
        for name, value in (("aliases", aliases), ("patterns", patterns)):
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise RegistryLoadError(f"Entry '{key}': '{name}' must be a list of strings")

        return cls(key=key, aliases=list(aliases), patterns=list(patterns))


# Built-in vocabulary used when the registry document is missing or corrupt
DEFAULT_SUPPLIERS: dict[str, dict[str, list[str]]] = {
    "collibry": {
        "aliases": ["collibry", "colibri", "collibri"],
        "patterns": ["collibry"],
    },
    "edenred": {
        "aliases": ["edenred", "eden red", "eden", "ticket restaurant"],
        "patterns": ["edenred", "edenredbelgium"],
    },
    "foster": {
        "aliases": ["foster", "foster fast food", "foster fastfood"],
        "patterns": ["foster", "fosterfastfood"],
    },
}


def _dedupe(values: list[str], case_insensitive: bool = False) -> list[str]:
    """Drop empty and duplicate values, keeping first occurrence order."""
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        value = value.strip()
        marker = value.lower() if case_insensitive else value
        if value and marker not in seen:
            seen.add(marker)
            result.append(value)
    return result


class SupplierRegistry:
    """
    On-disk supplier registry with an in-memory working copy.

    Iteration order is always sorted by key. The resolver relies on this:
    when several entries match the same term, the first key in sorted order
    wins.

    Thread-safe for synchronous usage: a single lock serializes mutation
    and the subsequent file rewrite.
    """

    def __init__(self, path: Path | str, autoload: bool = True):
        """
        Initialize the registry.

        Args:
            path: Location of the JSON document
            autoload: Call load() immediately
        """
        self.path = Path(path)
        self._entries: dict[str, RegistryEntry] = {}
        self._lock = threading.RLock()
        self.last_write_error: RegistryWriteError | None = None
        self.using_defaults = False
        # Unreadable document still on disk, not yet backed up
        self._corrupt_pending = False

        if autoload:
            self.load()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> int:
        """
        Load the registry document.

        Never raises: a missing or malformed document is logged and the
        built-in defaults are used instead.

        Returns:
            Number of entries loaded
        """
        with self._lock:
            try:
                self._entries = self._read()
                self.using_defaults = False
                self._corrupt_pending = False
                logger.info("Loaded %d supplier(s) from %s", len(self._entries), self.path)
            except RegistryLoadError as e:
                self._corrupt_pending = self.path.exists()
                if self._corrupt_pending:
                    logger.error("Failed to load supplier registry: %s", e)
                else:
                    logger.info("%s; using built-in defaults", e)
                self._entries = {
                    key: RegistryEntry.from_dict(key, data)
                    for key, data in DEFAULT_SUPPLIERS.items()
                }
                self.using_defaults = True
            return len(self._entries)

    def reload(self) -> int:
        """Re-read the document (after an external change)."""
        return self.load()

    def _read(self) -> dict[str, RegistryEntry]:
        if not self.path.exists():
            raise RegistryLoadError(f"Supplier registry not found: {self.path}")

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise RegistryLoadError(f"Cannot read {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise RegistryLoadError(
                f"Registry root must be an object, got {type(data).__name__}"
            )

        entries: dict[str, RegistryEntry] = {}
        for key in sorted(data):
            try:
                entries[key] = RegistryEntry.from_dict(key, data[key])
            except RegistryLoadError as e:
                logger.warning("Skipping invalid registry entry: %s", e)
        return entries

    @property
    def corrupt_backup_path(self) -> Path:
        return self.path.with_name(self.path.name + ".corrupt")

    def _backup_corrupt(self) -> None:
        if not self._corrupt_pending:
            return
        if self.path.exists():
            shutil.copy2(self.path, self.corrupt_backup_path)
            logger.warning(
                "Unreadable supplier registry preserved as %s", self.corrupt_backup_path
            )
        self._corrupt_pending = False

    def save(self) -> bool:
        """
        Rewrite the whole document, sorted by key.

        Returns:
            True if written; False if the write failed (see last_write_error)
        """
        with self._lock:
            document = {key: self._entries[key].to_dict() for key in sorted(self._entries)}
            tmp_path = self.path.with_name(self.path.name + ".tmp")
            try:
                self._backup_corrupt()
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(tmp_path, "w", encoding="utf-8") as f:
                    json.dump(document, f, indent=2, ensure_ascii=False)
                    f.write("\n")
                os.replace(tmp_path, self.path)
            except OSError as e:
                self.last_write_error = RegistryWriteError(f"Cannot write {self.path}: {e}")
                logger.error("%s", self.last_write_error)
                return False

            self.last_write_error = None
            logger.debug("Supplier registry saved (%d entries)", len(document))
            return True

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(
        self,
        key: str,
        display_name: str,
        aliases: list[str],
        patterns: list[str],
    ) -> tuple[bool, str]:
        """
        Add a new supplier.

        Args:
            key: Unique canonical key (e.g. "pluxee")
            display_name: Main display name, stored as the first alias
            aliases: Additional names a user might type
            patterns: Substrings to look for in transaction descriptions

        Returns:
            (success, human-readable status message)
        """
        key = key.strip()
        if not key:
            return False, "Supplier key must not be empty"

        with self._lock:
            if key in self._entries:
                return False, f"Supplier '{key}' already exists"

            entry = RegistryEntry(
                key=key,
                aliases=_dedupe([display_name, *aliases], case_insensitive=True),
                patterns=_dedupe(list(patterns)),
            )
            self._entries[key] = entry
            saved = self.save()

        logger.info("Supplier added: '%s' (aliases: %s)", key, ", ".join(entry.aliases))
        message = f"Supplier '{display_name}' added (key: {key}, aliases: {', '.join(entry.aliases)})"
        if not saved:
            message += " [not persisted: write failed]"
        return True, message

    def replace(self, key: str, aliases: list[str], patterns: list[str]) -> bool:
        """
        Replace the alias and pattern sets of an existing supplier.

        Entries are never edited in place; this swaps in a new entry.

        Returns:
            True if the supplier existed and was replaced
        """
        with self._lock:
            if key not in self._entries:
                return False
            self._entries[key] = RegistryEntry(
                key=key,
                aliases=_dedupe(list(aliases), case_insensitive=True),
                patterns=_dedupe(list(patterns)),
            )
            self.save()
        logger.info("Supplier replaced: '%s'", key)
        return True

    def remove(self, key: str) -> bool:
        """
        Remove a supplier.

        Returns:
            True if removed, False if the key was not found
        """
        with self._lock:
            if key not in self._entries:
                return False
            del self._entries[key]
            self.save()
        logger.info("Supplier removed: '%s'", key)
        return True

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def get(self, key: str) -> RegistryEntry | None:
        entry = self._entries.get(key)
        return entry.copy() if entry else None

    def keys(self) -> list[str]:
        return sorted(self._entries)

    def entries(self) -> list[RegistryEntry]:
        """Entries in sorted key order (the resolver's iteration order)."""
        with self._lock:
            return [self._entries[key] for key in sorted(self._entries)]

    def all(self) -> Mapping[str, RegistryEntry]:
        """Read-only snapshot of the whole registry, in sorted key order."""
        with self._lock:
            return MappingProxyType(
                {key: self._entries[key].copy() for key in sorted(self._entries)}
            )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
