"""
Tests for rule versioning and migrations.
"""

from dataclasses import replace
from datetime import datetime

import pytest
from bqe.model import EligibilityRule
from bqe.repository import InMemoryRepository
from bqe.versioning import (
    MigrationRegistry,
    RuleVersion,
    VersionMigration,
    compare_versions,
    create_rule_version,
    find_breaking_changes,
    get_version_changelog,
    increment_version,
    is_newer_version,
    is_version_compatible,
    latest_version,
    parse_version,
)


def build_rule(version="1.0.0", **kwargs) -> EligibilityRule:
    return EligibilityRule(
        id="snap-income",
        program_id="snap",
        name="Income limit",
        logic={"<=": [{"var": "householdIncome"}, 4000]},
        version=version,
        **kwargs,
    )


class TestVersionNumbers:
    """Test parsing and comparing versions."""

    def test_parse(self):
        assert parse_version("1.2.3") == RuleVersion(1, 2, 3)
        assert parse_version("1.2") == RuleVersion(1, 2, 0)
        assert parse_version("1.2.3.beta") == RuleVersion(1, 2, 3, "beta")
        assert str(RuleVersion(1, 2, 3, "beta")) == "1.2.3.beta"

    @pytest.mark.parametrize("bad", ["1", "1.x.0", "1.2.3.4.5", ""])
    def test_parse_invalid(self, bad):
        with pytest.raises(ValueError):
            parse_version(bad)

    def test_compare(self):
        assert compare_versions("1.10.0", "1.9.9") == 1
        assert compare_versions("1.0.0", "1.0.0.rc1") == 0
        assert compare_versions("0.9", "1.0") == -1
        assert is_newer_version("2.0.0", "1.9.0")

    def test_increment(self):
        assert str(increment_version("1.2.3", "major")) == "2.0.0"
        assert str(increment_version("1.2.3", "minor")) == "1.3.0"
        assert str(increment_version("1.2.3", "patch")) == "1.2.4"
        with pytest.raises(ValueError):
            increment_version("1.2.3", "huge")

    def test_compatibility(self):
        assert is_version_compatible("1.3.0", "1.2.0")
        assert not is_version_compatible("1.1.0", "1.2.0")
        assert not is_version_compatible("2.0.0", "1.0.0")
        assert not is_version_compatible("1.3.0", "1.2.0", allow_minor_mismatch=False)


class TestCreateRuleVersion:
    """Test creating new rule versions."""

    def test_new_version_leaves_original(self):
        rule = build_rule()
        updated = create_rule_version(rule, "minor", "Raise limit", author="analyst",
                                      logic={"<=": [{"var": "householdIncome"}, 4200]})
        assert rule.version == "1.0.0"
        assert updated.version == "1.1.0"
        assert updated.id == "snap-income@1.1.0"
        assert updated.supersedes == "snap-income"
        assert updated.logic == {"<=": [{"var": "householdIncome"}, 4200]}
        assert updated.changelog[-1].author == "analyst"
        assert not updated.changelog[-1].breaking

    def test_major_is_breaking(self):
        updated = create_rule_version(build_rule(), "major", "New income basis")
        assert updated.changelog[-1].breaking

    def test_chained_versions_keep_base_id(self):
        first = create_rule_version(build_rule(), "patch", "Typo")
        second = create_rule_version(first, "patch", "Another typo")
        assert second.id == "snap-income@1.0.2"
        assert second.supersedes == "snap-income@1.0.1"
        assert len(second.changelog) == 2

    def test_repository_deactivates_superseded_rule(self):
        repository = InMemoryRepository()
        rule = build_rule()
        repository.add_rule(rule)
        updated = create_rule_version(rule, "minor", "Raise limit")
        repository.save_rule_version(updated)
        assert repository.rules["snap-income"].active is False
        assert repository.rules[updated.id].active is True


class TestChangelog:
    """Test changelog queries."""

    def build_history(self):
        rule = build_rule()
        when = datetime(2024, 1, 15)
        rule = create_rule_version(rule, "minor", "Raise limit", now=when)
        rule = create_rule_version(rule, "major", "Switch to net income", now=when)
        return create_rule_version(rule, "patch", "Fix rounding", now=when)

    def test_find_breaking_changes(self):
        rule = self.build_history()
        breaking = find_breaking_changes(rule, "1.0.0", "2.0.1")
        assert [c.version for c in breaking] == ["2.0.0"]
        assert find_breaking_changes(rule, "2.0.0", "2.0.1") == []

    def test_changelog_text(self):
        text = get_version_changelog(self.build_history(), from_version="1.1.0")
        assert "## Version 2.0.0 [BREAKING] (2024-01-15)" in text
        assert "Fix rounding" in text
        assert "Raise limit" not in text

    def test_empty_changelog(self):
        assert get_version_changelog(build_rule()) == "No changelog available"

    def test_latest_version(self):
        rules = [build_rule("1.2.0"), build_rule("1.10.0"), build_rule("1.9.0")]
        assert latest_version(rules).version == "1.10.0"
        assert latest_version([]) is None


class TestMigrations:
    """Test migration registry."""

    def test_migrate_through_steps(self):
        registry = MigrationRegistry()
        registry.register("snap", VersionMigration(
            "1.1.0", "2.0.0", "Net income",
            lambda r: replace(r, logic={"<=": [{"var": "netIncome"}, 3500]}),
        ))
        registry.register("snap", VersionMigration(
            "1.0.0", "1.1.0", "Raise limit",
            lambda r: replace(r, logic={"<=": [{"var": "householdIncome"}, 4200]}),
        ))
        migrated = registry.migrate_rule(build_rule(), "2.0.0")
        assert migrated.version == "2.0.0"
        assert migrated.logic == {"<=": [{"var": "netIncome"}, 3500]}

    def test_already_current(self):
        rule = build_rule("2.0.0")
        assert MigrationRegistry().migrate_rule(rule, "1.0.0") is rule

    def test_no_migration(self):
        with pytest.raises(ValueError):
            MigrationRegistry().migrate_rule(build_rule(), "2.0.0")
