"""Tests for insert-time dedup, merging and prior-failure lookup."""

import pytest

from experience_memory import Action, Category, ExperienceEngine

from conftest import PM2_ENTRY


GUI_FAILURE = {
    "problem": "clicks land on the wrong controls on other monitors",
    "attempted_solution": "hardcode screen resolution 1920x1080",
    "reason": "breaks on 4K and scaled displays",
    "context": "desktop GUI automation clicking buttons in the settings window",
}


class TestMerge:

    def test_reworded_problem_merges(self, engine):
        """Scenario: reworded PM2 report folds into the first entry."""
        first = engine.record_entry(**PM2_ENTRY)
        second = engine.record_entry(
            "bugfix", "PM2 startup failure",
            "PM2 fails to start because of a module type error",
            "rename to .cjs, use CommonJS",
        )
        assert second.merged
        assert second.id == first.id
        assert second.similarity > 0.75
        assert len(engine) == 1
        assert engine.get(first.id).usage_count == 2

    def test_identical_insert_is_idempotent(self, engine):
        first = engine.record_entry(**PM2_ENTRY)
        again = engine.record_entry(**PM2_ENTRY)
        assert again.merged_into == first.id
        assert again.similarity == pytest.approx(1.0)
        entry = engine.get(first.id)
        assert entry.usage_count == 2
        assert "**Update (" not in entry.solution

    def test_new_solution_appended(self, engine):
        first = engine.record_entry(**PM2_ENTRY)
        engine.record_entry(
            "bugfix", "PM2 startup failure",
            "PM2 cannot start, module type error",
            "rename to .cjs, use CommonJS, restart pm2",
        )
        entry = engine.get(first.id)
        assert "**Update (" in entry.solution
        assert entry.solution.endswith("rename to .cjs, use CommonJS, restart pm2")
        assert "restart" in entry.keywords

    def test_tags_union_and_rate_average(self, engine):
        first = engine.record_entry(**PM2_ENTRY)
        engine.record_entry(context="Node.js 20 on Ubuntu", success_rate=50,
                            **PM2_ENTRY)
        entry = engine.get(first.id)
        assert {"pm2", "node.js"} <= entry.tags
        assert entry.success_rate == pytest.approx(75.0)
        assert "Node.js 20" in entry.context

    def test_failure_never_merges_into_success(self, engine):
        ok = engine.record_entry(**PM2_ENTRY)
        failed = engine.record_failure(PM2_ENTRY["problem"],
                                       PM2_ENTRY["solution"],
                                       title=PM2_ENTRY["title"])
        assert not failed.merged
        assert failed.id != ok.id
        assert engine.get(failed.id).category is Category.FAILURE
        assert engine.get(failed.id).success_rate is None

    def test_failures_dedup_among_themselves(self, engine):
        first = engine.record_failure(**GUI_FAILURE)
        second = engine.record_failure(**GUI_FAILURE)
        assert second.merged_into == first.id
        assert len(engine) == 1

    def test_proposal(self, engine):
        engine.record_entry(**PM2_ENTRY)
        probe = engine.entries()[0]
        assert engine.dedup.propose_insert(probe).action is Action.INSERT

    def test_find_similar(self, engine):
        first = engine.record_entry(**PM2_ENTRY)
        found = engine.find_similar(PM2_ENTRY["title"], PM2_ENTRY["problem"],
                                    PM2_ENTRY["solution"])
        assert [d["entry"].id for d in found] == [first.id]
        assert engine.find_similar("Redis", "keys vanish", "raise maxmemory") == []


class TestPriorFailure:

    def test_matching_context(self, engine):
        """Scenario: fixed-resolution attempt matches the recorded failure."""
        failed = engine.record_failure(**GUI_FAILURE)
        check = engine.check_prior_failure(
            "use fixed resolution 1920x1080 for clicks", GUI_FAILURE["context"]
        )
        assert check.is_failed
        assert check.similarity > 0.7
        assert check.matched_failure.id == failed.id
        assert check.solution_similarity == pytest.approx(0.6)
        assert check.context_similarity == pytest.approx(1.0)
        assert "breaks on 4K" in check.message

    def test_unrelated_solution_in_shared_context(self, engine):
        """A long shared context alone never flags a different solution."""
        context = (GUI_FAILURE["context"] + " on a Windows workstation with two"
                   " monitors, mixed DPI scaling, a legacy installer wizard,"
                   " modal dialogs, tray icons and a slow remote desktop link")
        engine.record_failure(GUI_FAILURE["problem"],
                              GUI_FAILURE["attempted_solution"],
                              context=context)
        check = engine.check_prior_failure(
            "locate controls via image recognition", context
        )
        assert not check.is_failed
        assert check.similarity is None

    def test_weak_solution_overlap_not_flagged(self, engine):
        engine.record_failure(**GUI_FAILURE)
        check = engine.check_prior_failure("hardcode the timeout",
                                           GUI_FAILURE["context"])
        assert not check.is_failed

    def test_without_context_boost(self):
        engine = ExperienceEngine(failure_context_boost=0.0)
        engine.record_failure(**GUI_FAILURE)
        check = engine.check_prior_failure(
            "use fixed resolution 1920x1080 for clicks", GUI_FAILURE["context"]
        )
        assert not check.is_failed

    def test_unrelated_context(self, engine):
        engine.record_failure(**GUI_FAILURE)
        check = engine.check_prior_failure(
            "use fixed resolution 1920x1080 for clicks",
            "web API pagination for the orders endpoint",
        )
        assert not check.is_failed
        assert check.matched_failure is None

    def test_context_gate(self, engine):
        engine.record_failure("blurry kiosk text",
                              "hardcode screen resolution 1920x1080",
                              context="kiosk display")
        solution = "hardcode screen resolution 1920x1080"
        assert engine.check_prior_failure(solution).is_failed
        assert engine.check_prior_failure(solution, "kiosk display").is_failed
        assert not engine.check_prior_failure(solution,
                                              "nightly backup job").is_failed

    def test_failure_without_context(self, engine):
        engine.record_failure("clicks miss", "hardcode screen resolution 1920x1080")
        check = engine.check_prior_failure(
            "hardcode screen resolution 1920x1080", "desktop GUI automation"
        )
        assert check.is_failed
        assert check.similarity == pytest.approx(1.0)
        assert check.context_similarity is None

    def test_no_failures_recorded(self, seeded_engine):
        check = seeded_engine.check_prior_failure("rename to .cjs")
        assert not check.is_failed
        assert check.to_dict()["matched_failure"] is None

    def test_empty_solution(self, engine):
        engine.record_failure(**GUI_FAILURE)
        assert not engine.check_prior_failure("").is_failed
