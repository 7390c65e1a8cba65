"""Tests for supplier resolution."""

from supplier_ledger.suppliers import SupplierRegistry, SupplierResolver


class TestMatches:
    """Test description matching through aliases and patterns."""

    def test_alias_resolves_to_patterns(self, resolver):
        """'Eden Red' is an alias of edenred, whose patterns are looked up."""
        assert resolver.matches("EDENRED BELGIUM SA - Paiement", "Eden Red") is True

    def test_unrelated_description(self, resolver):
        assert resolver.matches("ELECTRABEL - Facture 2024-03", "Eden Red") is False

    def test_accents_and_separators_ignored(self, resolver):
        assert resolver.matches("Éden-Red Belgium", "edenred") is True

    def test_partial_alias_accepted(self, resolver):
        """A term contained in an alias still selects the entry."""
        assert resolver.patterns_for("ticket") == ["edenred", "edenredbelgium"]

    def test_unknown_term_used_as_pattern(self, resolver):
        assert resolver.patterns_for("Medi Wet") == ["mediwet"]
        assert resolver.matches("MEDIWET SPRL - facture 12", "Medi Wet") is True

    def test_empty_description_never_matches(self, resolver):
        assert resolver.matches("", "edenred") is False
        assert resolver.matches(" - ", "edenred") is False

    def test_empty_term_never_matches(self, resolver):
        assert resolver.matches("EDENRED BELGIUM", "") is False

    def test_entry_without_patterns_never_matches(self, write_registry):
        path = write_registry({"ghost": {"aliases": ["ghost"], "patterns": []}})
        resolver = SupplierResolver(SupplierRegistry(path))

        assert resolver.patterns_for("ghost") == []
        assert resolver.matches("GHOST SA", "ghost") is False


class TestFindEntry:
    def test_first_sorted_key_wins(self, write_registry):
        """Overlapping aliases resolve to the first key in sorted order."""
        path = write_registry(
            {
                "beta": {"aliases": ["shared"], "patterns": ["betapattern"]},
                "alpha": {"aliases": ["shared"], "patterns": ["alphapattern"]},
            }
        )
        resolver = SupplierResolver(SupplierRegistry(path))

        assert resolver.find_entry("shared").key == "alpha"
        assert resolver.matches("ALPHAPATTERN 123", "shared") is True
        assert resolver.matches("BETAPATTERN 123", "shared") is False

    def test_alias_contained_in_term(self, resolver):
        assert resolver.find_entry("foster fast food gent").key == "foster"

    def test_no_entry(self, resolver):
        assert resolver.find_entry("proximus") is None
        assert resolver.find_entry("") is None

    def test_registry_changes_visible(self, registry, resolver):
        registry.add("proximus", "proximus", [], ["proximus"])

        assert resolver.find_entry("Proximus").key == "proximus"


class TestDisplayName:
    def test_known_supplier(self, resolver):
        assert resolver.display_name("eden red") == "Edenred"

    def test_multi_word_alias(self, registry, resolver):
        registry.add("kbc bank", "kbc bank nv", ["kbc"], ["kbcbanknv"])

        assert resolver.display_name("KBC") == "Kbc Bank Nv"

    def test_unknown_term_title_cased(self, resolver):
        assert resolver.display_name("  mediwet SHOP ") == "Mediwet Shop"
