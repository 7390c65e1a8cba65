"""Tests for the supplier alias audit."""

from supplier_ledger.suppliers import GENERIC_ALIASES, SupplierRegistry, audit_registry, filter_aliases
from supplier_ledger.suppliers.audit import ISSUE_GENERIC, ISSUE_SHARED_PATTERN, ISSUE_TOO_SHORT


class TestAuditRegistry:
    """Test detection of questionable aliases."""

    def test_defaults_are_clean(self, registry):
        assert audit_registry(registry) == []

    def test_reports_each_kind(self, write_registry):
        path = write_registry(
            {
                "shell": {
                    "aliases": ["belgian shell sa", "Belgian", "bp"],
                    "patterns": ["belgianshellsa", "shellfuel"],
                },
                "texaco": {"aliases": ["texaco"], "patterns": ["shellfuel"]},
            }
        )

        issues = audit_registry(SupplierRegistry(path))

        assert [(i.key, i.value, i.kind) for i in issues] == [
            ("shell", "Belgian", ISSUE_GENERIC),
            ("shell", "bp", ISSUE_TOO_SHORT),
            ("shell", "shellfuel", ISSUE_SHARED_PATTERN),
            ("texaco", "shellfuel", ISSUE_SHARED_PATTERN),
        ]
        assert issues[2].detail == "also used by texaco"

    def test_custom_threshold_and_word_list(self, write_registry):
        path = write_registry({"ores": {"aliases": ["ores", "energy"], "patterns": ["ores"]}})
        registry = SupplierRegistry(path)

        issues = audit_registry(registry, excluded={"energy"}, min_length=5)

        assert {(i.value, i.kind) for i in issues} == {
            ("ores", ISSUE_TOO_SHORT),
            ("energy", ISSUE_GENERIC),
        }

    def test_issue_string(self, write_registry):
        path = write_registry({"x": {"aliases": ["sa"], "patterns": ["x"]}})

        (issue,) = audit_registry(SupplierRegistry(path))

        assert str(issue) == "[generic] x: 'sa' (known generic word)"


class TestFilterAliases:
    def test_generic_words_dropped(self):
        assert filter_aliases(["BELGIË", "shell", "Services", "shell services"]) == [
            "shell",
            "shell services",
        ]

    def test_custom_list(self):
        assert filter_aliases(["a", "b"], excluded={"b"}) == ["a"]

    def test_generic_list_contents(self):
        assert "belgian" in GENERIC_ALIASES
        assert "food" in GENERIC_ALIASES
