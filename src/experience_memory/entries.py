"""
entries.py — Experience entries and their category.

An Entry is one problem/solution pair. Its `tags` and `keywords` are
derived from the text fields and rewritten whenever those fields change.
Failures share the shape but carry no success rate.
"""

import time
import hashlib
import itertools
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Counter as CounterT, Dict, FrozenSet, Optional

from experience_memory.errors import InvalidInput
from experience_memory.features import FeatureExtractor, entry_text


class Category(str, Enum):
    BUGFIX = 'bugfix'
    TOOL = 'tool'
    PATTERN = 'pattern'
    FAILURE = 'failure'

    @classmethod
    def parse(cls, value) -> "Category":
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise InvalidInput(f"category must be a string, got {value!r}")
        key = value.strip().lower()
        try:
            return _CATEGORY_ALIASES[key]
        except KeyError:
            raise InvalidInput(
                f"unknown category {value!r}; expected one of "
                f"{', '.join(c.value for c in cls)}"
            ) from None

    @property
    def id_prefix(self) -> str:
        return _ID_PREFIX[self]


# Bucket names from the JSON layout older libraries were saved in.
_CATEGORY_ALIASES = {
    'bugfix': Category.BUGFIX, 'bugfixes': Category.BUGFIX,
    'bug_fix': Category.BUGFIX,
    'tool': Category.TOOL, 'tools': Category.TOOL,
    'pattern': Category.PATTERN, 'patterns': Category.PATTERN,
    'failure': Category.FAILURE, 'failures': Category.FAILURE,
}

_ID_PREFIX = {
    Category.BUGFIX: 'fix',
    Category.TOOL: 'tool',
    Category.PATTERN: 'pat',
    Category.FAILURE: 'fail',
}

_id_seq = itertools.count()


def new_entry_id(category: Category, text: str) -> str:
    h = hashlib.md5(
        f"{text}{time.time()}{next(_id_seq)}".encode('utf-8')
    ).hexdigest()[:10]
    return f'{category.id_prefix}_{h}'


@dataclass
class Entry:
    id: str
    category: Category
    title: str
    problem: str
    solution: str
    context: str = ''
    tags: FrozenSet[str] = frozenset()
    keywords: CounterT[str] = field(default_factory=Counter)
    usage_count: int = 1
    success_rate: Optional[float] = 100.0
    reason: str = ''
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    @property
    def is_failure(self) -> bool:
        return self.category is Category.FAILURE

    @property
    def keyword_set(self) -> FrozenSet[str]:
        return frozenset(self.keywords)

    def derive(self, extractor: FeatureExtractor):
        """Recompute tags and keywords from the current text fields."""
        self.keywords = extractor.keywords(
            entry_text(self.title, self.problem, self.solution)
        )
        self.tags = extractor.tags(
            entry_text(self.title, self.problem, self.solution, self.context)
        )

    def touch(self):
        self.usage_count += 1
        self.updated_at = time.time()

    # -----------------------------------------------------------------------
    # Serialization
    # -----------------------------------------------------------------------

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'category': self.category.value,
            'title': self.title,
            'problem': self.problem,
            'solution': self.solution,
            'context': self.context,
            'tags': sorted(self.tags),
            'keywords': dict(self.keywords),
            'usage_count': self.usage_count,
            'success_rate': self.success_rate,
            'reason': self.reason,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }

    @classmethod
    def from_dict(cls, d: Dict,
                  extractor: Optional[FeatureExtractor] = None) -> "Entry":
        """Rebuild an entry; features are re-derived when missing."""
        if not isinstance(d, dict):
            raise InvalidInput(f"entry must be a mapping, got {type(d).__name__}")
        try:
            category = Category.parse(d['category'])
            entry = cls(
                id=str(d['id']),
                category=category,
                title=d.get('title') or '',
                problem=d.get('problem') or '',
                solution=d.get('solution') or '',
                context=d.get('context') or '',
                usage_count=int(d.get('usage_count', 1)),
                success_rate=(None if category is Category.FAILURE
                              or d.get('success_rate') is None
                              else float(d['success_rate'])),
                reason=d.get('reason') or '',
                created_at=float(d.get('created_at', time.time())),
                updated_at=float(d.get('updated_at', time.time())),
            )
        except KeyError as e:
            raise InvalidInput(f"entry is missing field {e}") from None
        except (TypeError, ValueError) as e:
            raise InvalidInput(f"bad entry {d.get('id')!r}: {e}") from e

        for name in ('title', 'problem', 'solution', 'context', 'reason'):
            if not isinstance(getattr(entry, name), str):
                raise InvalidInput(f"entry {entry.id!r}: {name} must be text")

        tags, keywords = d.get('tags'), d.get('keywords')
        if tags is None or keywords is None:
            if extractor is None:
                extractor = FeatureExtractor()
            entry.derive(extractor)
            return entry
        try:
            entry.tags = frozenset(str(t) for t in tags)
            if isinstance(keywords, dict):
                entry.keywords = Counter(
                    {str(k): int(v) for k, v in keywords.items()}
                )
            else:
                entry.keywords = Counter(str(k) for k in keywords)
        except (TypeError, ValueError) as e:
            raise InvalidInput(f"entry {entry.id!r}: bad features: {e}") from e
        return entry
