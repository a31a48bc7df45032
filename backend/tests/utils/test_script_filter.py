"""Tests for Han script classification and keyword list cleaning."""

import pytest

from keyword_intel.utils.script_filter import (
    ScriptType,
    classify,
    dedupe_case_insensitive,
    filter_simplified,
    spaced_variant,
    to_traditional,
)


class TestClassify:
    """Tests for classify."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("電腦", ScriptType.TRADITIONAL),
            ("电脑", ScriptType.SIMPLIFIED),
            ("電脑", ScriptType.MIXED),
            ("食譜", ScriptType.TRADITIONAL),
            ("soup recipe", ScriptType.NONE),
            ("", ScriptType.NONE),
        ],
    )
    def test_classify(self, text: str, expected: ScriptType) -> None:
        """Test script detection."""
        assert classify(text) is expected

    def test_shared_characters_count_as_traditional(self) -> None:
        """Test CJK text without script-specific characters is traditional."""
        assert classify("大小") is ScriptType.TRADITIONAL

    def test_mixed_latin_and_simplified(self) -> None:
        """Test Latin characters do not hide simplified ones."""
        assert classify("iphone 电脑") is ScriptType.SIMPLIFIED


class TestFilterSimplified:
    """Tests for filter_simplified."""

    def test_drops_simplified_only(self) -> None:
        """Test only purely simplified keywords are removed."""
        keywords = ["雞湯", "鸡汤", "chicken soup", "電脑"]
        assert filter_simplified(keywords) == ["雞湯", "chicken soup", "電脑"]

    def test_preserves_order_and_duplicates(self) -> None:
        """Test the filter does not reorder or dedupe."""
        assert filter_simplified(["b", "a", "b"]) == ["b", "a", "b"]

    def test_all_simplified(self) -> None:
        """Test an all-simplified list filters to empty."""
        assert filter_simplified(["电脑", "网络"]) == []


class TestDedupeCaseInsensitive:
    """Tests for dedupe_case_insensitive."""

    def test_keeps_first_spelling(self) -> None:
        """Test the first occurrence wins."""
        assert dedupe_case_insensitive(["iPhone", "iphone", "IPHONE", "ipad"]) == [
            "iPhone",
            "ipad",
        ]

    def test_casefold(self) -> None:
        """Test casefold equivalence (ß == ss)."""
        assert dedupe_case_insensitive(["straße", "STRASSE"]) == ["straße"]


class TestConversions:
    """Tests for to_traditional and spaced_variant."""

    def test_to_traditional(self) -> None:
        """Test simplified characters are converted via the pair table."""
        assert to_traditional("电脑") == "電腦"
        assert to_traditional("abc") == "abc"

    def test_spaced_variant(self) -> None:
        """Test short CJK-only keywords get a character-spaced form."""
        assert spaced_variant("電腦") == "電 腦"

    @pytest.mark.parametrize("keyword", ["電", "電 腦", "laptop", "電腦case", "一二三四五六七八九十一"])
    def test_no_spaced_variant(self, keyword: str) -> None:
        """Test keywords outside the length or script rules get none."""
        assert spaced_variant(keyword) is None
