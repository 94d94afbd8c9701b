"""
Rule Versioning

Rules carry a semantic version ("MAJOR.MINOR.PATCH", optionally with a
fourth label segment). Changing a rule never mutates it: a new frozen
EligibilityRule is created with the incremented version, a changelog
entry and a `supersedes` pointer to the rule it replaces.

A major increment is a breaking change.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Dict, List, Optional, Union

from .model import ChangelogEntry, EligibilityRule


LEVELS = ("major", "minor", "patch")


@dataclass(frozen=True)
class RuleVersion:
    major: int
    minor: int
    patch: int = 0
    label: Optional[str] = None

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        return f"{text}.{self.label}" if self.label else text


VersionLike = Union[str, RuleVersion]


def parse_version(version: VersionLike) -> RuleVersion:
    """
    Parse "1.2", "1.2.3" or "1.2.3.beta".

    Raises:
        ValueError: for any other shape or non-numeric parts
    """
    if isinstance(version, RuleVersion):
        return version
    parts = str(version).split(".")
    if len(parts) < 2 or len(parts) > 4:
        raise ValueError(f"Invalid version format: {version}")
    try:
        major, minor = int(parts[0]), int(parts[1])
        patch = int(parts[2]) if len(parts) > 2 else 0
    except ValueError as exc:
        raise ValueError(f"Invalid version format: {version}") from exc
    label = parts[3] if len(parts) > 3 else None
    return RuleVersion(major, minor, patch, label)


def compare_versions(v1: VersionLike, v2: VersionLike) -> int:
    """-1, 0 or 1; labels are ignored."""
    a, b = parse_version(v1), parse_version(v2)
    key_a, key_b = (a.major, a.minor, a.patch), (b.major, b.minor, b.patch)
    if key_a == key_b:
        return 0
    return 1 if key_a > key_b else -1


def _sort_key(version: VersionLike) -> tuple:
    v = parse_version(version)
    return (v.major, v.minor, v.patch)


def is_newer_version(v1: VersionLike, v2: VersionLike) -> bool:
    return compare_versions(v1, v2) > 0


def increment_version(version: VersionLike, level: str) -> RuleVersion:
    current = parse_version(version)
    if level == "major":
        return RuleVersion(current.major + 1, 0, 0)
    if level == "minor":
        return RuleVersion(current.major, current.minor + 1, 0)
    if level == "patch":
        return RuleVersion(current.major, current.minor, current.patch + 1)
    raise ValueError(f"Unknown version level {level!r}; expected one of {LEVELS}")


def create_rule_version(rule: EligibilityRule, level: str, changes: str,
                        author: str = "system", new_id: Optional[str] = None,
                        now: Optional[datetime] = None, **updates) -> EligibilityRule:
    """
    Create the next version of a rule.

    Args:
        rule: Current version
        level: "major", "minor" or "patch"
        changes: Changelog description
        author: Changelog author
        new_id: Id of the new rule (defaults to "<id>@<version>")
        **updates: Field changes for the new version (e.g. logic=...)

    Returns:
        A new EligibilityRule; `rule` is left untouched.
    """
    version = str(increment_version(rule.version, level))
    entry = ChangelogEntry(
        version=version,
        date=now or datetime.now(),
        author=author,
        description=changes,
        breaking=level == "major",
    )
    base_id = rule.id.split("@", 1)[0]
    return replace(
        rule,
        id=new_id or f"{base_id}@{version}",
        version=version,
        supersedes=rule.id,
        changelog=rule.changelog + (entry,),
        **updates,
    )


def is_version_compatible(rule_version: VersionLike, target_version: VersionLike,
                          allow_minor_mismatch: bool = True) -> bool:
    rule_v, target_v = parse_version(rule_version), parse_version(target_version)
    if rule_v.major != target_v.major:
        return False
    if allow_minor_mismatch:
        return rule_v.minor >= target_v.minor
    return rule_v.minor == target_v.minor


def find_breaking_changes(rule: EligibilityRule, from_version: VersionLike,
                          to_version: VersionLike) -> List[ChangelogEntry]:
    """Breaking changelog entries in the half-open range (from, to]."""
    return [
        change for change in rule.changelog
        if change.breaking
        and compare_versions(change.version, from_version) > 0
        and compare_versions(change.version, to_version) <= 0
    ]


def get_version_changelog(rule: EligibilityRule, from_version: Optional[VersionLike] = None) -> str:
    if not rule.changelog:
        return "No changelog available"

    changes = rule.changelog
    if from_version is not None:
        changes = tuple(c for c in changes if compare_versions(c.version, from_version) > 0)

    lines = []
    for change in changes:
        breaking = " [BREAKING]" if change.breaking else ""
        lines.append(f"## Version {change.version}{breaking} ({change.date:%Y-%m-%d})")
        lines.append(f"**Author:** {change.author}")
        lines.append(f"**Changes:** {change.description}")
        lines.append("")
    return "\n".join(lines)


def latest_version(rules: List[EligibilityRule]) -> Optional[EligibilityRule]:
    """The rule with the highest version, or None for an empty list."""
    latest = None
    for rule in rules:
        if latest is None or is_newer_version(rule.version, latest.version):
            latest = rule
    return latest


# =============================================================================
# MIGRATIONS
# =============================================================================

RuleMigration = Callable[[EligibilityRule], EligibilityRule]


@dataclass(frozen=True)
class VersionMigration:
    from_version: str
    to_version: str
    description: str
    migrate: RuleMigration


class MigrationRegistry:
    """Per-program migrations, applied in from_version order."""

    def __init__(self):
        self._migrations: Dict[str, List[VersionMigration]] = {}

    def register(self, program_id: str, migration: VersionMigration) -> None:
        self._migrations.setdefault(program_id, []).append(migration)

    def get_migrations(self, program_id: str, from_version: VersionLike,
                       to_version: VersionLike) -> List[VersionMigration]:
        applicable = [
            m for m in self._migrations.get(program_id, [])
            if compare_versions(m.from_version, from_version) >= 0
            and compare_versions(m.to_version, to_version) <= 0
        ]
        return sorted(applicable, key=lambda m: _sort_key(m.from_version))

    def migrate_rule(self, rule: EligibilityRule, target_version: VersionLike) -> EligibilityRule:
        """
        Apply registered migrations until the rule reaches target_version.

        Raises:
            ValueError: when no migration covers the requested range
        """
        if compare_versions(rule.version, target_version) >= 0:
            return rule
        migrations = self.get_migrations(rule.program_id, rule.version, target_version)
        if not migrations:
            raise ValueError(
                f"No migrations available from {rule.version} to {parse_version(target_version)}"
            )
        migrated = rule
        for migration in migrations:
            migrated = replace(migration.migrate(migrated), version=migration.to_version)
        return migrated
