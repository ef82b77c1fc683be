"""
Unit Tests for the Key Extractor.
"""

from __future__ import annotations

import pytest

from xray_sync.errors import ConfigurationError, KeyExtractionWarning
from xray_sync.postman.key_extractor import KeyExtractor, KeyPatterns, ParsedKeys


@pytest.fixture
def extractor() -> KeyExtractor:
    return KeyExtractor()


class TestDefaultPatterns:
    """Tests for the default bracketed conventions."""

    def test_extract_all_keys(self, extractor: KeyExtractor) -> None:
        keys = extractor.extract("[TE-01][TS-01] Suite", "[API01-TS01-TE01] Get list")
        assert keys == ParsedKeys("TE-01", "TS-01", "API01-TS01-TE01")

    def test_keys_anywhere_in_name(self, extractor: KeyExtractor) -> None:
        keys = extractor.extract("Nightly [TS-7] run [TE-12]", "Get list [API3-TS7-TE12]")
        assert keys == ParsedKeys("TE-12", "TS-7", "API3-TS7-TE12")

    def test_request_keys_override_collection(self, extractor: KeyExtractor) -> None:
        keys = extractor.extract(
            "[TE-01][TS-01] Suite", "[TE-02][API01-TS01-TE01] Get list"
        )
        assert keys.execution_key == "TE-02"
        assert keys.set_key == "TS-01"

    def test_first_match_wins(self, extractor: KeyExtractor) -> None:
        assert extractor.execution_key("[TE-1][TE-2]") == "TE-1"

    @pytest.mark.parametrize(
        "collection, request_name",
        [
            ("[TS-01] Suite", "[API01-TS01-TE01] Get"),
            ("[TE-01] Suite", "[API01-TS01-TE01] Get"),
            ("[TE-01][TS-01] Suite", "Get list"),
            ("[TE-01][TS-01] Suite", "[API01] Get"),
            ("", ""),
        ],
    )
    def test_missing_key_warns_and_returns_none(
        self, extractor: KeyExtractor, collection: str, request_name: str
    ) -> None:
        with pytest.warns(KeyExtractionWarning):
            assert extractor.extract(collection, request_name) is None

    def test_unbracketed_key_not_matched(self, extractor: KeyExtractor) -> None:
        assert extractor.case_key("API01-TS01-TE01 Get") is None


class TestCustomPatterns:
    """Tests for configured patterns."""

    def test_custom_patterns(self) -> None:
        extractor = KeyExtractor(
            KeyPatterns(
                execution_key=r"<(EX-\d+)>",
                set_key=r"<(SET-\d+)>",
                case_key=r"\{(C\d+)\}",
            )
        )
        keys = extractor.extract("<EX-4><SET-9> Suite", "{C17} Ping")
        assert keys == ParsedKeys("EX-4", "SET-9", "C17")

    def test_invalid_regex_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="Invalid case key pattern"):
            KeyExtractor(KeyPatterns(case_key=r"[unclosed"))

    def test_pattern_without_group_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="capturing group"):
            KeyExtractor(KeyPatterns(set_key=r"\[TS-\d+\]"))
