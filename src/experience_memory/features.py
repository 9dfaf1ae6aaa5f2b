"""
features.py — Free text to weighted terms and domain tags.

Terms are the unit every other layer works with: the vocabulary indexes
them, the vectorizer weights them, the overlap scorers compare their sets.

Tokenization is deliberately shallow:
  - lowercase, split on whitespace and ASCII/CJK punctuation
  - dense CJK runs are cut into overlapping 2-4 character substrings so
    compound words stay matchable without a real segmenter
  - long latin tokens are also split on letter/digit boundaries
    ("1920x1080" -> "1920", "1080")
  - stop words and terms shorter than min_term_length are dropped

Tags come from a fixed dictionary and are substring-tolerant: a tag is
present whenever the lowercased text contains it anywhere.
"""

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Counter as CounterT, FrozenSet, Iterable, List, Optional


# ---------------------------------------------------------------------------
# Static dictionaries
# ---------------------------------------------------------------------------

STOP_WORDS: FrozenSet[str] = frozenset([
    # Chinese function words
    '的', '了', '是', '在', '和', '与', '或', '但', '而', '等', '也', '为',
    '就', '都', '有', '我', '不', '这', '那', '你', '们', '个', '上', '要',
    '会', '着', '能', '可以', '我们', '你们', '他们', '自己', '什么', '怎么',
    '这个', '那个', '这里', '那里', '这样', '那样', '如何', '为什么',
    # English function words
    'the', 'an', 'and', 'or', 'but', 'is', 'are', 'was', 'were', 'be',
    'been', 'being', 'have', 'has', 'had', 'do', 'does', 'did', 'will',
    'would', 'should', 'could', 'may', 'might', 'can', 'to', 'of', 'in',
    'on', 'at', 'for', 'with', 'by', 'from', 'as', 'it', 'its', 'this',
    'that', 'these', 'those', 'use', 'into', 'via', 'if', 'then', 'so',
    'not', 'no', 'we', 'you', 'they', 'he', 'she', 'my', 'our', 'your',
])

# The small dictionary the first skill library shipped with.
TAG_DICTIONARY_BASIC = (
    'pm2', 'node.js', 'nodejs', 'python', 'javascript', 'typescript',
    '乱码', '超时', '无法退出', '无限循环', 'api', '数据库', 'sqlite',
    'express', 'playwright', '测试', 'bug', '修复', '优化',
)

TAG_DICTIONARY = TAG_DICTIONARY_BASIC + (
    # test tooling
    'pyautogui', 'pywinauto', 'selenium', 'puppeteer', 'opencv',
    # gui
    'gui', 'desktop', '桌面应用', '界面', '截图', 'screenshot',
    # testing
    'test', '验证', '检测', 'automation', '自动化',
    # tech
    'flask', 'database', 'timeout', 'encoding',
    # windows
    'windows', '屏幕分辨率', '分辨率', 'resolution', '坐标',
    # data formats
    'json', 'yaml', 'markdown',
    # automation vocabulary
    '控件', '元素', '定位', '搜索', '图像识别', '验证报告',
)

_SPLIT_RE = re.compile(
    r"[\s,，.。;；:：!！?？、()（）\[\]【】{}<>《》\"'“”‘’`|/\\=+*&^%$#@~-]+"
)
_CJK_RUN_RE = re.compile(r"[\u4e00-\u9fff]+")
_BOUNDARY_RE = re.compile(r"(?<=\d)(?=[a-z])|(?<=[a-z])(?=\d)")

_SUBSTRING_LENGTHS = (2, 3, 4)


@dataclass
class Features:
    """Output of one extraction: term multiset plus tag set."""
    terms: CounterT[str] = field(default_factory=Counter)
    tags: FrozenSet[str] = frozenset()

    @property
    def term_set(self) -> FrozenSet[str]:
        return frozenset(self.terms)

    def __bool__(self) -> bool:
        return bool(self.terms) or bool(self.tags)


class FeatureExtractor:
    """
    Deterministic text -> Features.

    No state beyond the static dictionaries handed in at construction, so
    one extractor can be shared by every component of an engine.
    """

    def __init__(
        self,
        min_term_length: int = 2,
        stop_words: Iterable[str] = STOP_WORDS,
        tag_dictionary: Iterable[str] = TAG_DICTIONARY,
    ):
        self.min_term_length = max(1, int(min_term_length))
        self.stop_words = frozenset(w.lower() for w in stop_words)
        self.tag_dictionary = tuple(sorted({t.lower() for t in tag_dictionary if t}))

    def extract(self, text) -> Features:
        if not isinstance(text, str) or not text.strip():
            return Features()
        return Features(terms=self.keywords(text), tags=self.tags(text))

    def keywords(self, text) -> CounterT[str]:
        """Term multiset. Counts feed term frequency in the vectorizer."""
        counts: CounterT[str] = Counter()
        if not isinstance(text, str):
            return counts
        for term in self.tokenize(text):
            counts[term] += 1
        return counts

    def tags(self, text) -> FrozenSet[str]:
        if not isinstance(text, str) or not text:
            return frozenset()
        lowered = text.lower()
        return frozenset(t for t in self.tag_dictionary if t in lowered)

    def tokenize(self, text: str) -> List[str]:
        out: List[str] = []
        for piece in _SPLIT_RE.split(text.lower()):
            if not piece:
                continue
            for run in _CJK_RUN_RE.findall(piece):
                self._add_cjk(run, out)
            for word in _CJK_RUN_RE.sub(' ', piece).split():
                self._add_word(word, out)
        return out

    def surface_terms(self, text) -> FrozenSet[str]:
        """Lowercased pieces with no stop-word or length filtering."""
        if not isinstance(text, str):
            return frozenset()
        return frozenset(p for p in _SPLIT_RE.split(text.lower()) if p)

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------

    def _keep(self, term: str) -> bool:
        return len(term) >= self.min_term_length and term not in self.stop_words

    def _add_cjk(self, run: str, out: List[str]):
        if len(run) < 2:
            return
        if self._keep(run):
            out.append(run)
        for n in _SUBSTRING_LENGTHS:
            if n >= len(run):
                break
            for i in range(len(run) - n + 1):
                sub = run[i:i + n]
                if self._keep(sub):
                    out.append(sub)

    def _add_word(self, word: str, out: List[str]):
        if self._keep(word):
            out.append(word)
        if len(word) > 4:
            parts = _BOUNDARY_RE.split(word)
            if len(parts) > 1:
                out.extend(p for p in parts if self._keep(p))


def entry_text(*fields: Optional[str]) -> str:
    """Join entry fields the way derived features are computed from them."""
    return ' '.join(f for f in fields if f)
