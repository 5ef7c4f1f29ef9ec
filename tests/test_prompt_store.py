"""Tests for the versioned prompt store."""

import pytest

from kwpilot.research.prompts import DEFAULT_PROMPTS
from kwpilot.store import prompt_store


class TestSavePrompt:
    def test_versions_are_monotonic_and_single_active(self, session):
        first = prompt_store.save_prompt(session, "seed", "one")
        second = prompt_store.save_prompt(session, "seed", "two", change_note="tweak")
        assert (first.version, second.version) == (1, 2)

        versions = prompt_store.get_prompt_versions(session, "seed")
        assert [v.version for v in versions] == [2, 1]
        assert [v.is_active for v in versions] == [True, False]
        assert prompt_store.get_active_prompt(session, "seed").prompt == "two"

    def test_types_are_independent(self, session):
        prompt_store.save_prompt(session, "seed", "seed prompt")
        row = prompt_store.save_prompt(session, "analysis", "analysis prompt")
        assert row.version == 1
        assert prompt_store.get_active_prompt(session, "seed").prompt == "seed prompt"

    def test_unknown_type_rejected(self, session):
        with pytest.raises(ValueError, match="Unknown prompt type"):
            prompt_store.save_prompt(session, "ads", "x")

    def test_blank_prompt_rejected(self, session):
        with pytest.raises(ValueError):
            prompt_store.save_prompt(session, "seed", "   ")

    def test_dict_shape(self, session):
        row = prompt_store.save_prompt(session, "seed", "p", variables=["COURSE_NAME"])
        data = prompt_store.prompt_to_dict(row)
        assert data["variables"] == ["COURSE_NAME"]
        assert data["is_active"] is True
        assert data["created_at"]


class TestActivateAndDelete:
    def test_rollback(self, session):
        prompt_store.save_prompt(session, "seed", "one")
        prompt_store.save_prompt(session, "seed", "two")
        prompt_store.activate_version(session, "seed", 1)
        assert prompt_store.get_active_prompt(session, "seed").version == 1

        # A new save still numbers after the highest version
        row = prompt_store.save_prompt(session, "seed", "three")
        assert row.version == 3

    def test_activate_missing(self, session):
        with pytest.raises(LookupError):
            prompt_store.activate_version(session, "seed", 9)

    def test_cannot_delete_active(self, session):
        prompt_store.save_prompt(session, "seed", "one")
        with pytest.raises(ValueError):
            prompt_store.delete_version(session, "seed", 1)

    def test_delete_inactive(self, session):
        prompt_store.save_prompt(session, "seed", "one")
        prompt_store.save_prompt(session, "seed", "two")
        prompt_store.delete_version(session, "seed", 1)
        assert prompt_store.get_prompt_by_version(session, "seed", 1) is None


class TestDefaults:
    def test_seed_defaults_only_fills_empty_types(self, session):
        prompt_store.save_prompt(session, "seed", "custom")
        assert prompt_store.seed_default_prompts(session) == ["analysis"]
        assert prompt_store.seed_default_prompts(session) == []

        analysis = prompt_store.get_active_prompt(session, "analysis")
        assert analysis.created_by == "system"
        assert analysis.prompt == DEFAULT_PROMPTS["analysis"]["prompt"]

    def test_resolve_seeds_on_first_use(self, session):
        active = prompt_store.resolve_prompt(session, "seed")
        assert active.version == 1
        assert active.prompt == DEFAULT_PROMPTS["seed"]["prompt"]

    def test_stats(self, session):
        prompt_store.save_prompt(session, "seed", "one")
        prompt_store.save_prompt(session, "seed", "two")
        stats = prompt_store.get_prompt_stats(session)
        assert stats["seed"]["total_versions"] == 2
        assert stats["seed"]["active_version"] == 2
        assert stats["analysis"] == {"total_versions": 0, "active_version": None, "last_updated": None}
