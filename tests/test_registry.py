"""
Tests for the JSON supplier registry.

Covers default fallback, persistence format and the mutation contract.
"""

import json

import pytest

from supplier_ledger.suppliers import DEFAULT_SUPPLIERS, RegistryEntry, SupplierRegistry


class TestRegistryLoading:
    """Test loading and fallback behavior."""

    def test_missing_document_uses_defaults(self, registry_path):
        """A missing document is not an error: built-in defaults are used."""
        registry = SupplierRegistry(registry_path)

        assert registry.using_defaults is True
        assert registry.keys() == sorted(DEFAULT_SUPPLIERS)
        assert registry.get("edenred").aliases[0] == "edenred"
        # Nothing is written until a mutation happens
        assert not registry_path.exists()

    def test_corrupt_document_uses_defaults(self, registry_path):
        registry_path.parent.mkdir(parents=True)
        registry_path.write_text("{not json", encoding="utf-8")

        registry = SupplierRegistry(registry_path)

        assert registry.using_defaults is True
        assert len(registry) == len(DEFAULT_SUPPLIERS)

    def test_corrupt_document_preserved_before_first_write(self, registry_path):
        """The unreadable original is copied aside, not overwritten."""
        registry_path.parent.mkdir(parents=True)
        registry_path.write_text('{"edenred": {"aliases": ["eden', encoding="utf-8")
        registry = SupplierRegistry(registry_path)

        success, _ = registry.add("mediwet", "mediwet", [], ["mediwet"])

        assert success is True
        backup = registry.corrupt_backup_path
        assert backup.name == "supplier-aliases.json.corrupt"
        assert backup.read_text(encoding="utf-8") == '{"edenred": {"aliases": ["eden'
        assert "mediwet" in json.loads(registry_path.read_text(encoding="utf-8"))

        # Later writes leave the backup alone
        registry.add("kbc bank", "kbc bank", [], ["kbcbank"])
        assert backup.read_text(encoding="utf-8") == '{"edenred": {"aliases": ["eden'

    def test_missing_document_writes_no_backup(self, registry):
        registry.add("mediwet", "mediwet", [], ["mediwet"])

        assert not registry.corrupt_backup_path.exists()

    def test_non_object_root_uses_defaults(self, write_registry):
        path = write_registry(["edenred"])

        registry = SupplierRegistry(path)

        assert registry.using_defaults is True

    def test_loads_document(self, write_registry):
        path = write_registry(
            {
                "pluxee": {"aliases": ["pluxee", "sodexo"], "patterns": ["pluxee"]},
                "mediwet": {"aliases": ["mediwet"], "patterns": ["mediwet"]},
            }
        )

        registry = SupplierRegistry(path)

        assert registry.using_defaults is False
        assert registry.keys() == ["mediwet", "pluxee"]
        assert registry.get("pluxee").aliases == ["pluxee", "sodexo"]

    def test_invalid_entry_skipped(self, write_registry):
        """One malformed entry does not discard the rest of the document."""
        path = write_registry(
            {
                "good": {"aliases": ["good"], "patterns": ["good"]},
                "bad": {"aliases": "not-a-list", "patterns": []},
            }
        )

        registry = SupplierRegistry(path)

        assert registry.keys() == ["good"]

    def test_reload_picks_up_external_change(self, write_registry):
        path = write_registry({"one": {"aliases": ["one"], "patterns": ["one"]}})
        registry = SupplierRegistry(path)

        write_registry(
            {
                "one": {"aliases": ["one"], "patterns": ["one"]},
                "two": {"aliases": ["two"], "patterns": ["two"]},
            }
        )
        assert registry.reload() == 2
        assert "two" in registry


class TestRegistryMutations:
    """Test add / replace / remove and persistence."""

    def test_add_persists_sorted_document(self, registry, registry_path):
        success, message = registry.add("zeta", "Zeta", ["z corp"], ["zeta"])
        assert success is True
        assert "zeta" in message

        registry.add("alpha", "Alpha", [], ["alpha"])

        with open(registry_path, encoding="utf-8") as f:
            document = json.load(f)
        assert list(document) == sorted(document)
        assert document["zeta"] == {"aliases": ["Zeta", "z corp"], "patterns": ["zeta"]}
        # Defaults become part of the document on first write
        assert "edenred" in document

    def test_add_existing_key_rejected(self, registry):
        success, message = registry.add("edenred", "Edenred", [], [])

        assert success is False
        assert "already exists" in message

    def test_add_empty_key_rejected(self, registry):
        success, _ = registry.add("  ", "Nobody", [], [])
        assert success is False

    def test_add_dedupes_aliases_case_insensitively(self, registry):
        registry.add("kbc bank", "KBC Bank", ["kbc bank", "KBC", "", "kbc"], ["kbc", "kbc"])

        entry = registry.get("kbc bank")
        assert entry.aliases == ["KBC Bank", "KBC"]
        assert entry.patterns == ["kbc"]

    def test_add_survives_reload(self, registry, registry_path):
        registry.add("mediwet", "mediwet", [], ["mediwet"])

        fresh = SupplierRegistry(registry_path)

        assert fresh.using_defaults is False
        assert fresh.get("mediwet") == RegistryEntry("mediwet", ["mediwet"], ["mediwet"])

    def test_non_ascii_written_verbatim(self, registry, registry_path):
        registry.add("belgie", "België", [], ["belgie"])

        assert "België" in registry_path.read_text(encoding="utf-8")

    def test_replace(self, registry):
        assert registry.replace("foster", ["foster"], ["fosterfood"]) is True

        entry = registry.get("foster")
        assert entry.aliases == ["foster"]
        assert entry.patterns == ["fosterfood"]

    def test_replace_unknown(self, registry):
        assert registry.replace("nobody", ["x"], ["x"]) is False

    def test_remove(self, registry, registry_path):
        assert registry.remove("collibry") is True
        assert "collibry" not in registry

        document = json.loads(registry_path.read_text(encoding="utf-8"))
        assert "collibry" not in document

    def test_remove_unknown(self, registry):
        assert registry.remove("nobody") is False

    def test_no_temp_file_left_behind(self, registry, registry_path):
        registry.add("mediwet", "mediwet", [], ["mediwet"])

        assert not registry_path.with_name(registry_path.name + ".tmp").exists()


class TestRegistryWriteFailure:
    """A failed write never loses the in-memory change."""

    def test_write_failure_keeps_memory_state(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("I am a file, not a directory")
        registry = SupplierRegistry(blocker / "supplier-aliases.json")

        success, message = registry.add("mediwet", "mediwet", [], ["mediwet"])

        assert success is True
        assert "not persisted" in message
        assert "mediwet" in registry
        assert registry.last_write_error is not None

    def test_successful_write_clears_error(self, registry):
        registry.last_write_error = object()

        assert registry.save() is True
        assert registry.last_write_error is None


class TestRegistryReadAccess:
    def test_get_returns_copy(self, registry):
        entry = registry.get("edenred")
        entry.aliases.append("mutated")

        assert "mutated" not in registry.get("edenred").aliases

    def test_all_is_read_only_snapshot(self, registry):
        snapshot = registry.all()

        assert list(snapshot) == registry.keys()
        with pytest.raises(TypeError):
            snapshot["new"] = RegistryEntry("new")  # type: ignore[index]

    def test_entries_sorted(self, registry):
        registry.add("aaa", "aaa", [], ["aaa"])

        assert [e.key for e in registry.entries()][0] == "aaa"

    def test_primary_alias_falls_back_to_key(self):
        assert RegistryEntry("lonely").primary_alias == "lonely"
