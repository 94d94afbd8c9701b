"""
Persistence collaborator.

The orchestrator only reads through EligibilityRepository. Reads are
coroutines so a real store (database, HTTP, local document store) can
suspend; the in-memory implementation never does.
"""

from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Dict, List, Optional

from .model import BenefitProgram, EligibilityRule, UserProfile


class EligibilityRepository(ABC):
    """Read access to profiles, programs and rules."""

    @abstractmethod
    async def find_profile(self, profile_id: str) -> Optional[UserProfile]:
        ...

    @abstractmethod
    async def find_program(self, program_id: str) -> Optional[BenefitProgram]:
        ...

    @abstractmethod
    async def find_active_rules_for_program(self, program_id: str) -> List[EligibilityRule]:
        ...


class InMemoryRepository(EligibilityRepository):
    """
    Dictionary-backed repository for tests and local use.

    Rules are keyed by id; saving a rule with an existing id replaces
    that version (older versions stay reachable through rule_history()).
    """

    def __init__(self):
        self.profiles: Dict[str, UserProfile] = {}
        self.programs: Dict[str, BenefitProgram] = {}
        self.rules: Dict[str, EligibilityRule] = {}
        self._history: Dict[str, List[EligibilityRule]] = {}

    def add_profile(self, profile: UserProfile) -> None:
        self.profiles[profile.id] = profile

    def add_program(self, program: BenefitProgram) -> None:
        self.programs[program.id] = program

    def add_rule(self, rule: EligibilityRule) -> None:
        self.rules[rule.id] = rule
        self._history.setdefault(rule.id, []).append(rule)

    def save_rule_version(self, rule: EligibilityRule) -> None:
        """Store a new rule version and deactivate the one it supersedes."""
        if rule.supersedes and rule.supersedes in self.rules and rule.supersedes != rule.id:
            old = self.rules[rule.supersedes]
            self.rules[old.id] = replace(old, active=False)
        self.add_rule(rule)

    def rule_history(self, rule_id: str) -> List[EligibilityRule]:
        return list(self._history.get(rule_id, []))

    async def find_profile(self, profile_id: str) -> Optional[UserProfile]:
        return self.profiles.get(profile_id)

    async def find_program(self, program_id: str) -> Optional[BenefitProgram]:
        return self.programs.get(program_id)

    async def find_active_rules_for_program(self, program_id: str) -> List[EligibilityRule]:
        return [r for r in self.rules.values() if r.program_id == program_id and r.active]
