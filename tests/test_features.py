"""Tests for FeatureExtractor."""

from collections import Counter

from experience_memory import FeatureExtractor
from experience_memory.features import TAG_DICTIONARY_BASIC, entry_text


class TestKeywords:
    """Term extraction."""

    def test_empty_and_none(self, extractor):
        assert extractor.keywords("") == Counter()
        assert extractor.keywords(None) == Counter()
        assert not extractor.extract("   ")

    def test_lowercase_and_punctuation(self, extractor):
        terms = extractor.tokenize("PM2 cannot start, module type error!")
        assert terms == ["pm2", "cannot", "start", "module", "type", "error"]

    def test_stop_words_dropped(self, extractor):
        assert extractor.tokenize("use the tool for this") == ["tool"]

    def test_min_term_length(self, extractor):
        assert extractor.tokenize("a b cd") == ["cd"]
        loose = FeatureExtractor(min_term_length=1)
        assert loose.tokenize("a b cd") == ["a", "b", "cd"]

    def test_counts_are_kept(self, extractor):
        assert extractor.keywords("error error fix") == Counter(
            {"error": 2, "fix": 1}
        )

    def test_letter_digit_boundaries(self, extractor):
        terms = extractor.tokenize("1920x1080")
        assert terms == ["1920x1080", "1920", "1080"]

    def test_short_words_not_split(self, extractor):
        assert extractor.tokenize("v1") == ["v1"]

    def test_cjk_run_substrings(self, extractor):
        terms = set(extractor.tokenize("用户认证"))
        assert terms == {"用户认证", "用户", "户认", "认证", "用户认", "户认证"}

    def test_mixed_script(self, extractor):
        terms = extractor.tokenize("GUI测试")
        assert "gui" in terms
        assert "测试" in terms

    def test_deterministic(self, extractor):
        text = "Playwright 截图 flaky in CI on Windows 10"
        assert extractor.extract(text) == extractor.extract(text)


class TestTags:
    """Dictionary tags."""

    def test_substring_tolerant(self, extractor):
        tags = extractor.tags("Clicking with PyAutoGUI")
        assert "pyautogui" in tags
        assert "gui" in tags

    def test_case_insensitive(self, extractor):
        assert "sqlite" in extractor.tags("SQLite locked")

    def test_no_tags(self, extractor):
        assert extractor.tags("nothing relevant here") == frozenset()
        assert extractor.tags(None) == frozenset()

    def test_basic_dictionary(self):
        basic = FeatureExtractor(tag_dictionary=TAG_DICTIONARY_BASIC)
        assert basic.tags("GUI screenshot") == frozenset()
        assert basic.tags("pm2 restart loop") == {"pm2"}


def test_entry_text_skips_empty_fields():
    assert entry_text("a", "", None, "b") == "a b"


def test_surface_terms_keep_stop_words(extractor):
    assert extractor.surface_terms("It is, a test") == {"it", "is", "a", "test"}
    assert extractor.surface_terms(None) == frozenset()
