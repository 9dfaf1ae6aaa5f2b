"""Tests for the .memory file host."""

import json
import zipfile

import pytest

from experience_memory import ExperienceLibrary, InvalidInput

from conftest import DB_ENTRY, GUI_ENTRY, PM2_ENTRY


@pytest.fixture
def library():
    lib = ExperienceLibrary.create("team lessons", tags=["ops"])
    for item in (PM2_ENTRY, GUI_ENTRY):
        lib.record_entry(**item)
    return lib


class TestSaveLoad:

    def test_round_trip(self, library, tmp_path):
        path = library.save(tmp_path / "team.memory")
        loaded = ExperienceLibrary.load(path)
        assert len(loaded) == 2
        assert loaded.description == "team lessons"
        assert loaded.tags == ["ops"]
        hits = loaded.find_solution("GUI automation screenshot verification")
        assert hits[0].entry.title == GUI_ENTRY["title"]

    def test_bundle_contents(self, library, tmp_path):
        path = library.save(tmp_path / "nested" / "team")
        assert path.suffix == ".memory"
        with zipfile.ZipFile(path) as zf:
            names = set(zf.namelist())
            manifest = json.loads(zf.read("manifest.json"))
            readme = zf.read("README.md").decode("utf-8")
        assert names == {"snapshot.json", "manifest.json", "README.md"}
        assert manifest["entry_count"] == 2
        assert "# team lessons" in readme
        assert PM2_ENTRY["title"] in readme
        assert [p.name for p in path.parent.iterdir()] == ["team.memory"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ExperienceLibrary.load(tmp_path / "nope.memory")

    def test_unknown_suffix(self, tmp_path):
        path = tmp_path / "lessons.txt"
        path.write_text("{}")
        with pytest.raises(InvalidInput):
            ExperienceLibrary.load(path)

    def test_bundle_without_snapshot(self, tmp_path):
        path = tmp_path / "broken.memory"
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("manifest.json", "{}")
        with pytest.raises(InvalidInput):
            ExperienceLibrary.load(path)

    def test_load_bare_snapshot(self, library, tmp_path):
        path = tmp_path / "snapshot.json"
        path.write_text(json.dumps(library.engine.export_snapshot()))
        loaded = ExperienceLibrary.load(path)
        assert len(loaded) == 2

    def test_load_legacy_buckets(self, tmp_path):
        path = tmp_path / "skills.json"
        path.write_text(json.dumps({
            "bugFixes": [{"title": PM2_ENTRY["title"],
                          "problem": PM2_ENTRY["problem"],
                          "solution": PM2_ENTRY["solution"],
                          "successRate": 90}],
            "tools": [],
            "patterns": [GUI_ENTRY],
            "failures": [{"problem": "clicks miss",
                          "attemptedSolution": "hardcode resolution 1920x1080",
                          "reason": "breaks on 4K"}],
        }, ensure_ascii=False))
        loaded = ExperienceLibrary.load(path)
        stats = loaded.stats()
        assert stats["by_category"] == {"bugfix": 1, "tool": 0,
                                        "pattern": 1, "failure": 1}
        assert loaded.check_prior_failure(
            "hardcode resolution 1920x1080").is_failed

    def test_legacy_bad_bucket(self, tmp_path):
        path = tmp_path / "skills.json"
        path.write_text(json.dumps({"recipes": []}))
        with pytest.raises(InvalidInput):
            ExperienceLibrary.load(path)


class TestMerge:

    def test_overlap_folds_together(self, library):
        other = ExperienceLibrary.create("other team")
        other.record_entry(**PM2_ENTRY)
        other.record_entry(**DB_ENTRY)

        merged = ExperienceLibrary.merge(library, other)
        assert len(merged) == 3
        pm2 = [e for e in merged.engine.entries()
               if e.title == PM2_ENTRY["title"]]
        assert len(pm2) == 1
        assert pm2[0].usage_count == 2
        assert merged.manifest["merged_from"] == ["team lessons", "other team"]
        assert merged.tags == ["ops"]

    def test_sources_untouched(self, library):
        other = ExperienceLibrary.create("other team")
        other.record_entry(**PM2_ENTRY)
        ExperienceLibrary.merge(library, other)
        assert len(library) == 2
        assert len(other) == 1
