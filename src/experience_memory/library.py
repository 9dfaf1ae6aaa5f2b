"""
library.py — Portable experience library file.

A self-contained .memory bundle around one ExperienceEngine:
  - snapshot.json   engine snapshot (entries, vocabulary, idf, params)
  - manifest.json   human-readable description and counters
  - README.md       generated summary of the most used entries

The engine never touches storage; this module is the host that calls
export_snapshot() / import_snapshot() around its own file I/O. Writes go
through a temporary file and a rename, nothing more: no durability
guarantees.

Usage:
    from experience_memory import ExperienceLibrary

    lib = ExperienceLibrary.create("desktop automation lessons")
    lib.record_entry("bugfix", "PM2 startup failure",
                     "PM2 cannot start, module type error",
                     "rename to .cjs, use CommonJS")
    hits = lib.find_solution("pm2 will not start")
    lib.save("team.memory")

    lib = ExperienceLibrary.load("team.memory")
"""

import os
import json
import time
import logging
import zipfile
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Union

from experience_memory.engine import ExperienceEngine
from experience_memory.entries import Category
from experience_memory.errors import InvalidInput

logger = logging.getLogger("experience_memory.library")


class ExperienceLibrary:
    """
    Wraps ExperienceEngine with:
      - Human-readable manifest (JSON)
      - Auto-generated README of top entries
      - Merge support (replay one library into another through dedup)
      - Single .memory file format (zip of snapshot + manifest + readme)
    """

    FORMAT_VERSION = "1.0"

    def __init__(self, engine: ExperienceEngine, manifest: Dict):
        self.engine = engine
        self._manifest = manifest

    # -----------------------------------------------------------------------
    # Factory methods
    # -----------------------------------------------------------------------

    @classmethod
    def create(
        cls,
        description: str = "",
        tags: Optional[List[str]] = None,
        **engine_params,
    ) -> "ExperienceLibrary":
        """Create a new empty library."""
        engine = ExperienceEngine(**engine_params)
        manifest = {
            "version": cls.FORMAT_VERSION,
            "description": description,
            "tags": tags or [],
            "created_at": time.time(),
            "created_at_human": datetime.now().isoformat(timespec="seconds"),
            "last_used_at": time.time(),
            "entry_count": 0,
        }
        return cls(engine, manifest)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "ExperienceLibrary":
        """
        Load a library. Accepts:
          - path/to/file.memory  (zip bundle)
          - path/to/file.json    (bare snapshot, or the legacy bucket layout
                                  {bugFixes: [...], tools: [...], ...})
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Library file not found: {path}")

        if path.suffix == ".memory":
            return cls._load_bundle(path)
        elif path.suffix == ".json":
            return cls._load_json(path)
        else:
            raise InvalidInput(f"Unknown format: {path.suffix}. Use .memory or .json")

    @classmethod
    def _load_bundle(cls, path: Path) -> "ExperienceLibrary":
        with zipfile.ZipFile(path, "r") as zf:
            names = zf.namelist()
            if "snapshot.json" not in names:
                raise InvalidInput(f"{path} has no snapshot.json")
            snapshot = json.loads(zf.read("snapshot.json").decode("utf-8"))
            if "manifest.json" in names:
                manifest = json.loads(zf.read("manifest.json").decode("utf-8"))
            else:
                manifest = {"version": "unknown", "description": "", "tags": []}

        engine = ExperienceEngine.from_snapshot(snapshot)
        logger.info("loaded %s (%d entries)", path.name, len(engine))
        return cls(engine, manifest)

    @classmethod
    def _load_json(cls, path: Path) -> "ExperienceLibrary":
        """Wrap a bare snapshot or a legacy bucketed skills file."""
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        lib = cls.create(description=f"Imported from {path.name}")
        if isinstance(data, dict) and "entries" in data:
            lib.engine = ExperienceEngine.from_snapshot(data)
        else:
            lib.engine.record_entries(_legacy_items(data))
        lib._manifest["entry_count"] = len(lib.engine)
        return lib

    # -----------------------------------------------------------------------
    # Core API (delegated)
    # -----------------------------------------------------------------------

    def record_entry(self, category, title: str, problem: str, solution: str,
                     context: str = "", **kwargs):
        result = self.engine.record_entry(category, title, problem, solution,
                                          context, **kwargs)
        self._mark_used()
        return result

    def record_failure(self, problem: str, attempted_solution: str,
                       reason: str = "", context: str = "", title: str = ""):
        result = self.engine.record_failure(problem, attempted_solution,
                                            reason=reason, context=context,
                                            title=title)
        self._mark_used()
        return result

    def find_solution(self, problem_text: str, min_score: Optional[float] = None,
                      top_k: Optional[int] = None):
        hits = self.engine.find_solution(problem_text, min_score=min_score,
                                         top_k=top_k)
        self._mark_used()
        return hits

    def check_prior_failure(self, solution_text: str, context_text: str = "",
                            threshold: Optional[float] = None):
        return self.engine.check_prior_failure(solution_text, context_text,
                                               threshold=threshold)

    def cluster(self, k: int, **kwargs):
        return self.engine.cluster(k, **kwargs)

    def save(self, path: Union[str, Path]):
        """
        Save to a .memory bundle (zip of snapshot.json + manifest.json +
        README.md). Creates parent directories if needed.
        """
        path = Path(path)
        if path.suffix != ".memory":
            path = path.with_suffix(".memory")
        path.parent.mkdir(parents=True, exist_ok=True)

        stats = self.engine.stats()
        self._manifest["entry_count"] = stats["total"]
        self._manifest["by_category"] = stats["by_category"]
        self._manifest["vocabulary_size"] = stats["vocabulary_size"]
        self._manifest["last_used_at"] = time.time()
        self._manifest["last_used_at_human"] = \
            datetime.now().isoformat(timespec="seconds")

        snapshot = self.engine.export_snapshot()
        fd, tmp_path = tempfile.mkstemp(suffix=".memory", dir=str(path.parent))
        os.close(fd)
        try:
            with zipfile.ZipFile(tmp_path, "w",
                                 compression=zipfile.ZIP_DEFLATED) as zf:
                zf.writestr("snapshot.json",
                            json.dumps(snapshot, ensure_ascii=False))
                zf.writestr("manifest.json",
                            json.dumps(self._manifest, indent=2,
                                       ensure_ascii=False))
                zf.writestr("README.md", self._generate_readme())
            os.replace(tmp_path, path)
        finally:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
        logger.info("saved %s (%d entries)", path.name, stats["total"])
        return path

    # -----------------------------------------------------------------------
    # Merge
    # -----------------------------------------------------------------------

    @classmethod
    def merge(cls, a: "ExperienceLibrary", b: "ExperienceLibrary",
              description: str = "") -> "ExperienceLibrary":
        """
        Merge two libraries into a new one.

        A's entries are restored as-is; B's are replayed through
        record_entry, so near-duplicates fold into A's entries instead of
        doubling up. Usage counts of B's merged entries are carried over.
        """
        engine = ExperienceEngine.from_snapshot(a.engine.export_snapshot())
        for e in b.engine.entries():
            result = engine.record_entry(
                e.category, e.title, e.problem, e.solution, e.context,
                success_rate=e.success_rate, reason=e.reason,
            )
            target = engine.get(result.id)
            if result.merged:
                # record_entry counted one use; carry the rest of B's count.
                target.usage_count += max(0, e.usage_count - 1)
            else:
                target.usage_count = e.usage_count
                target.created_at = e.created_at
        engine.recompute_idf()

        manifest = {
            "version": cls.FORMAT_VERSION,
            "description": description or f"Merged: {a.description} + {b.description}",
            "tags": sorted(set(a.tags) | set(b.tags)),
            "created_at": time.time(),
            "created_at_human": datetime.now().isoformat(timespec="seconds"),
            "last_used_at": time.time(),
            "merged_from": [a.description or "library_a",
                            b.description or "library_b"],
            "entry_count": len(engine),
        }
        return cls(engine, manifest)

    # -----------------------------------------------------------------------
    # Inspection
    # -----------------------------------------------------------------------

    @property
    def description(self) -> str:
        return self._manifest.get("description", "")

    @property
    def tags(self) -> List[str]:
        return self._manifest.get("tags", [])

    @property
    def manifest(self) -> Dict:
        return dict(self._manifest)

    def __len__(self) -> int:
        return len(self.engine)

    def stats(self) -> Dict:
        s = self.engine.stats()
        s.update({
            "description": self.description,
            "tags": self.tags,
            "created_at": self._manifest.get("created_at_human", ""),
            "last_used_at": self._manifest.get("last_used_at_human", ""),
        })
        return s

    def _mark_used(self):
        self._manifest["last_used_at"] = time.time()
        self._manifest["entry_count"] = len(self.engine)

    def _generate_readme(self) -> str:
        stats = self.engine.stats()
        lines = [
            f"# {self.description or 'Experience library'}",
            "",
            f"- Entries: {stats['total']}",
        ]
        for cat, count in stats["by_category"].items():
            lines.append(f"  - {cat}: {count}")
        lines += [
            f"- Vocabulary: {stats['vocabulary_size']} terms",
            f"- Saved: {datetime.now().isoformat(timespec='seconds')}",
            "",
            "## Most used",
            "",
        ]
        for item in stats["most_used"]:
            lines.append(f"- ({item['usage_count']}x) {item['title'] or item['id']}")
        lines += [
            "",
            "Load with:",
            "",
            "    from experience_memory import ExperienceLibrary",
            "    lib = ExperienceLibrary.load('this.memory')",
            "",
        ]
        return "\n".join(lines)


def _legacy_items(data) -> List[Dict]:
    """Flatten {bugFixes: [...], tools: [...], patterns: [...], failures: [...]}."""
    if not isinstance(data, dict):
        raise InvalidInput("expected a snapshot or a bucketed skills object")
    items = []
    for bucket, rows in data.items():
        category = Category.parse(bucket)
        if not isinstance(rows, list):
            raise InvalidInput(f"bucket {bucket!r} must be a list")
        for row in rows:
            if not isinstance(row, dict):
                raise InvalidInput(f"bucket {bucket!r} holds a non-object item")
            items.append({
                "category": category,
                "title": row.get("title", ""),
                "problem": row.get("problem", ""),
                "solution": row.get("solution", row.get("attemptedSolution", "")),
                "context": row.get("context", ""),
                "success_rate": (None if category is Category.FAILURE
                                 else row.get("successRate", 100.0)),
                "reason": row.get("reason", ""),
            })
    return items
