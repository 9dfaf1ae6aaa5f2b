"""Experience memory test configuration."""
import sys
from pathlib import Path

import pytest

# Ensure the package is importable without installation
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from experience_memory import ExperienceEngine, FeatureExtractor  # noqa: E402


PM2_ENTRY = {
    "category": "bugfix",
    "title": "PM2 startup failure",
    "problem": "PM2 cannot start, module type error",
    "solution": "rename to .cjs, use CommonJS",
}

GUI_ENTRY = {
    "category": "pattern",
    "title": "GUI screenshot comparison",
    "problem": "GUI test screenshots differ between runs",
    "solution": "Wait for the window to settle before taking the screenshot",
    "context": "desktop automation",
}

DB_ENTRY = {
    "category": "bugfix",
    "title": "SQLite database locked",
    "problem": "database is locked during concurrent writes",
    "solution": "enable WAL mode and retry with backoff",
}

CLUSTER_CORPUS = [
    ("SQLite database locked during writes", "enable WAL journal mode"),
    ("PostgreSQL connection pool exhausted",
     "raise pool size and close idle connections"),
    ("MySQL slow query on orders table",
     "add composite index on customer and date"),
    ("Selenium click intercepted by overlay",
     "wait for overlay to disappear before clicking"),
    ("Playwright screenshot flaky in CI", "disable animations before capturing"),
    ("PyAutoGUI misses buttons on HiDPI screens",
     "scale coordinates by the display DPI factor"),
]


@pytest.fixture
def engine():
    """A fresh engine with default parameters."""
    return ExperienceEngine()


@pytest.fixture
def extractor():
    return FeatureExtractor()


@pytest.fixture
def seeded_engine(engine):
    """Engine holding the PM2, GUI and SQLite entries."""
    for item in (PM2_ENTRY, GUI_ENTRY, DB_ENTRY):
        engine.record_entry(**item)
    assert len(engine) == 3
    return engine


@pytest.fixture
def cluster_engine():
    eng = ExperienceEngine(seed=7)
    for title, solution in CLUSTER_CORPUS:
        eng.record_entry("pattern", title, title, solution)
    assert len(eng) == len(CLUSTER_CORPUS)
    return eng
