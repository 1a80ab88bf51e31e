"""Tests for card header parsing, manifest build and manifest resolution."""

import json

import pytest

from conftest import write_corpus
from tarot_rag.errors import ConfigurationError, DataIntegrityError, ValidationError
from tarot_rag.manifests import (
    HOROSCOPE_CARD_COUNT,
    ManifestResolver,
    build_manifest_files,
    parse_card_header,
)
from tarot_rag.models import SpreadDefinition


class TestHeaderParsing:
    def test_single_long_line(self):
        """All fields parse from one long header line."""
        h = parse_card_header(
            "CARD ID: 23 CANONICAL TSA NAME: Three of Cups RWS EQUIVALENT: Three of Cups "
            "ELEMENT: Water SUIT: Cups PIP: Three NAMING RULE: keep"
        )
        assert h.card_id == "23"
        assert h.canonical_name == "Three of Cups"
        assert h.suit == "Cups"
        assert h.pip == "Three"

    def test_fields_in_any_order_and_case(self):
        """Fields parse regardless of order and case."""
        h = parse_card_header("pip: 7\nSuit: Swords\ncanonical name: Seven of Swords\ncard id: 49")
        assert (h.card_id, h.canonical_name, h.suit, h.pip) == ("49", "Seven of Swords", "Swords", "7")

    def test_name_stops_at_end_of_line(self):
        """The canonical name ends at the line break."""
        h = parse_card_header("CANONICAL TSA NAME: The Seeker\nBody text that is not a name.")
        assert h.canonical_name == "The Seeker"

    def test_name_followed_by_card_id(self):
        """The canonical name stops at a following CARD ID label."""
        h = parse_card_header("CANONICAL TSA NAME: Three of Cups CARD ID: 23 SUIT: Cups PIP: Three")
        assert h.canonical_name == "Three of Cups"
        assert h.card_id == "23"

    def test_absent_fields_are_none(self):
        """Missing fields parse as None."""
        h = parse_card_header("Just prose, no header at all.")
        assert h.card_id is None
        assert h.canonical_name is None
        assert h.suit is None
        assert h.pip is None


class TestBuild:
    def test_card_manifest(self, settings):
        """Cards are keyed by id with their suit and pip files."""
        cards, _ = build_manifest_files(settings)
        assert set(cards["cardsById"]) == {"0", "1", "23"}
        assert cards["cardsById"]["0"] == {"cardPath": "cards/00-seeker.txt"}
        assert cards["cardsById"]["23"] == {
            "cardPath": "cards/23-three-of-cups.txt",
            "suitPath": "minorArcana/suits/cups.txt",
            "pipPath": "minorArcana/pips/three.txt",
        }
        assert cards["cardsByCanonicalName"]["three of cups"] == "23"
        assert cards["cardsByCanonicalName"]["the seeker"] == "0"

    def test_manifests_written_to_disk(self, settings):
        """Both manifests are written as JSON."""
        build_manifest_files(settings)
        on_disk = json.loads(settings.card_manifest_path.read_text(encoding="utf-8"))
        spreads = json.loads(settings.spread_manifest_path.read_text(encoding="utf-8"))
        assert on_disk["version"] == 1
        assert spreads["ppf"] == {
            "spreadPath": "spreads/ppf.txt",
            "positions": ["past", "present", "future_directional"],
        }

    def test_spread_without_rules_file_has_no_spread_path(self, settings):
        """A spread with no rules file has no spreadPath."""
        _, spreads = build_manifest_files(settings)
        assert "spreadPath" not in spreads["kdk"]
        assert spreads["kdk"]["positions"] == ["what_i_know", "what_i_dont_know", "what_i_need_to_know"]

    def test_supporting_paths_only_when_present(self, settings):
        """Only existing supporting files are listed."""
        _, spreads = build_manifest_files(settings)
        assert spreads["horoscope"]["supportingPaths"] == ["reference/zodiac.txt"]
        assert len(spreads["horoscope"]["positions"]) == HOROSCOPE_CARD_COUNT
        assert "supportingPaths" not in spreads["ppf"]

    def test_missing_suit_file_is_fatal(self, settings):
        """A missing suit file stops the build and writes nothing."""
        (settings.knowledge_root / "minorArcana/suits/cups.txt").unlink()
        with pytest.raises(DataIntegrityError, match="Missing suit file for card 23"):
            build_manifest_files(settings)
        assert not settings.card_manifest_path.exists()

    def test_missing_pip_file_is_fatal(self, settings):
        """A missing pip file names its path."""
        (settings.knowledge_root / "minorArcana/pips/three.txt").unlink()
        with pytest.raises(DataIntegrityError, match="minorArcana/pips/three.txt"):
            build_manifest_files(settings)

    def test_duplicate_card_id_is_fatal(self, settings):
        """Two files with one card id stop the build."""
        write_corpus(settings.knowledge_root, {"cards/dupe.txt": "CARD ID: 1 CANONICAL NAME: Another Maker"})
        with pytest.raises(DataIntegrityError, match="Duplicate CARD ID 1"):
            build_manifest_files(settings)

    def test_undecodable_card_file_names_the_file(self, settings):
        """An undecodable card file is a data error naming its path."""
        (settings.knowledge_root / "cards/99-bad.txt").write_bytes(b"\xff\xfe CARD ID: 99")
        with pytest.raises(DataIntegrityError, match="Unreadable knowledge file cards/99-bad.txt"):
            build_manifest_files(settings)

    def test_missing_knowledge_root(self, tmp_path):
        """A missing corpus folder is a configuration error."""
        from tarot_rag.config import Settings

        s = Settings.from_env(env={"TAROT_RAG_HOME": str(tmp_path)})
        with pytest.raises(ConfigurationError):
            build_manifest_files(s)


class TestResolver:
    def test_resolve_card(self, resolver):
        """Card ids resolve to their record."""
        assert resolver.resolve_card("23").is_pip
        assert not resolver.resolve_card(0).is_pip

    def test_unknown_card(self, resolver):
        """An unknown card id names the id."""
        with pytest.raises(ValidationError, match="Card id 99"):
            resolver.resolve_card("99")

    def test_resolve_spread(self, resolver):
        """Spread keys resolve to their definition."""
        assert resolver.resolve_spread("ppf").positions == ["past", "present", "future_directional"]

    def test_unknown_spread(self, resolver):
        """Unknown spread keys are rejected with the key."""
        with pytest.raises(ValidationError, match='Unknown spreadKey: "nope"'):
            resolver.resolve_spread("nope")

    def test_required_card_count(self, resolver):
        """Card count follows the positions, except horoscope."""
        assert resolver.required_card_count(resolver.resolve_spread("ppf"), False) == 3
        assert resolver.required_card_count(resolver.resolve_spread("horoscope"), True) == 12
        assert resolver.required_card_count(SpreadDefinition(positions=[]), True) == 12

    def test_zero_positions_is_configuration_error(self, resolver):
        """A spread with no positions cannot be read."""
        with pytest.raises(ConfigurationError):
            resolver.required_card_count(SpreadDefinition(spread_path="spreads/empty.txt"), False)

    def test_name_lookup(self, resolver):
        """Canonical names map to card ids and back."""
        assert resolver.card_id_for_name("  THREE OF CUPS ") == "23"
        assert resolver.card_id_for_name("Nobody") is None
        assert resolver.canonical_name_for("1") == "the maker"

    def test_spread_keys_in_manifest_order(self, resolver):
        """Spread keys keep manifest order."""
        assert resolver.spread_keys() == ["ppf", "pphao", "kdk", "gsbbl", "fml", "tot", "horoscope"]

    def test_missing_manifest_file(self, settings):
        """A missing manifest says how to build it."""
        with pytest.raises(ConfigurationError, match="build-manifests"):
            ManifestResolver.from_settings(settings)

    def test_malformed_manifest_json(self, settings):
        """Unparsable manifest JSON is a configuration error."""
        build_manifest_files(settings)
        settings.spread_manifest_path.write_text("[1, 2", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Invalid JSON"):
            ManifestResolver.from_settings(settings)

    def test_manifest_without_cards_by_id(self):
        """A card manifest without cardsById is rejected."""
        with pytest.raises(ConfigurationError):
            ManifestResolver({"cards": []}, {})
