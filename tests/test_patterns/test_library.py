"""Tests for the versioned pattern library."""

import json

import pytest
from pydantic import ValidationError

from cookbook.patterns.library import (
    CURRENT_POINTER,
    LibraryVersionError,
    PatternLibrary,
    PatternLibraryVersion,
    PatternRule,
    update_success_rate,
)
from cookbook.patterns.rules import RuleDefinition


def _rule(rule_id, fingerprint="fp", success_rate=0.5, sample_count=1, active=True):
    return PatternRule(
        rule_id=rule_id,
        fingerprint=fingerprint,
        rule_definition=RuleDefinition(),
        success_rate=success_rate,
        sample_count=sample_count,
        active=active,
    )


class TestPatternLibraryVersion:
    def test_lookup_orders_best_first(self):
        version = PatternLibraryVersion(
            version=1,
            rules=(
                _rule("b", success_rate=0.6),
                _rule("a", success_rate=0.9),
                _rule("c", success_rate=0.6, sample_count=5),
                _rule("x", fingerprint="other", success_rate=1.0),
            ),
        )
        assert [r.rule_id for r in version.lookup("fp")] == ["a", "c", "b"]

    def test_lookup_skips_pruned_rules(self):
        version = PatternLibraryVersion(
            version=1, rules=(_rule("a", active=False), _rule("b"))
        )
        assert [r.rule_id for r in version.lookup("fp")] == ["b"]
        assert len(version.rules_for("fp")) == 2
        assert version.active_count == 1

    def test_versions_are_immutable(self):
        version = PatternLibraryVersion(version=1)
        with pytest.raises(ValidationError):
            version.version = 2

    def test_success_rate_bounds(self):
        with pytest.raises(ValueError):
            _rule("a", success_rate=1.5)


class TestUpdateSuccessRate:
    def test_moving_average(self):
        assert update_success_rate(0.5, 1.0, 0.3) == pytest.approx(0.65)
        assert update_success_rate(0.25, 0.0, 0.3) == pytest.approx(0.175)

    def test_clamped(self):
        assert update_success_rate(1.0, 1.0, 1.0) == 1.0
        assert update_success_rate(0.0, 0.0, 0.5) == 0.0


class TestPatternLibrary:
    def test_snapshot_survives_publish(self):
        library = PatternLibrary()
        before = library.snapshot()
        library.publish(PatternLibraryVersion(version=1, rules=(_rule("a"),)))
        assert before.version == 0
        assert before.rules == ()
        assert library.snapshot().version == 1

    def test_publish_requires_a_newer_version(self):
        library = PatternLibrary(initial=PatternLibraryVersion(version=3))
        with pytest.raises(LibraryVersionError):
            library.publish(PatternLibraryVersion(version=3))
        with pytest.raises(LibraryVersionError):
            library.publish(PatternLibraryVersion(version=2))
        assert library.snapshot().version == 3

    def test_publish_stamps_time(self):
        published = PatternLibrary().publish(PatternLibraryVersion(version=1))
        assert published.published_at is not None

    def test_persists_each_version(self, tmp_path):
        library = PatternLibrary(tmp_path)
        library.publish(PatternLibraryVersion(version=1, rules=(_rule("a"),)))
        library.publish(PatternLibraryVersion(version=2, rules=(_rule("a", success_rate=0.7),)))

        assert library.versions() == [1, 2]
        assert (tmp_path / CURRENT_POINTER).read_text() == "v000002.json"
        first = json.loads((tmp_path / "v000001.json").read_text())
        assert first["rules"][0]["success_rate"] == 0.5
        assert not list(tmp_path.glob("*.tmp"))

    def test_load_restores_current(self, tmp_path):
        library = PatternLibrary(tmp_path)
        library.publish(PatternLibraryVersion(version=1, rules=(_rule("a"),)))
        library.publish(PatternLibraryVersion(version=2, rules=(_rule("a", success_rate=0.7),)))

        restored = PatternLibrary.load(tmp_path)
        snapshot = restored.snapshot()
        assert snapshot.version == 2
        assert snapshot.rules[0].success_rate == 0.7

    def test_load_without_pointer_starts_empty(self, tmp_path):
        restored = PatternLibrary.load(tmp_path / "patterns")
        assert restored.snapshot().version == 0
        assert (tmp_path / "patterns").is_dir()
