"""
Core Eligibility Model Objects

Defines the data structures the eligibility orchestrator works with:
    - UserProfile (self-reported household data)
    - BenefitProgram (a program that has rules)
    - EligibilityRule (one versioned rule tree for a program)
    - CriterionResult (one checked sub-condition of a rule)
    - EligibilityResult (outcome for one profile and program)
    - BatchEligibilityResult (outcomes for several programs)

ARCHITECTURAL RULE:
    Rules and results are frozen.
    A rule update creates a new version (see bqe.versioning),
    a result is never changed after it is built.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple


@dataclass
class UserProfile:
    """
    A household's self-reported answers.

    Properties:
        id: Profile identifier
        data: Field name -> value (e.g. {"householdIncome": 50000,
              "householdSize": 3, "dateOfBirth": "1980-04-02"})
    """

    id: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class BenefitProgram:
    """
    A benefit program that eligibility rules belong to.

    Properties:
        id: Program identifier (e.g. "snap-federal")
        name: Display name
        category: Free-form grouping ("food", "housing", ...)
        jurisdiction: Issuing jurisdiction ("US-FEDERAL", "US-GA", ...)
        active: Inactive programs are still loadable but not advertised
    """

    id: str
    name: str
    description: str = ""
    category: str = ""
    jurisdiction: str = ""
    active: bool = True


@dataclass(frozen=True)
class EligibilityRule:
    """
    One rule tree deciding (part of) eligibility for a program.

    Properties:
        logic:
            Raw JSON rule tree, e.g. {"<=": [{"var": "householdIncome"}, 4000]}
            Stored in JSON form so it serializes unchanged.

        priority:
            Higher priority rules are evaluated first and win the
            tie-break for which rule explains a result.

        required_fields:
            Fields that must be present in the profile for a confident
            answer. Missing fields lower confidence, they do not fail the rule.

        version / changelog / supersedes:
            Semantic version metadata maintained by bqe.versioning.
    """

    id: str
    program_id: str
    name: str
    logic: Any
    priority: int = 0
    active: bool = True
    description: str = ""
    required_fields: Tuple[str, ...] = ()
    explanation: str = ""
    required_documents: Tuple[str, ...] = ()
    version: str = "1.0.0"
    changelog: Tuple["ChangelogEntry", ...] = ()
    supersedes: Optional[str] = None


@dataclass(frozen=True)
class ChangelogEntry:
    """One line of a rule's version history."""

    version: str
    date: datetime
    author: str
    description: str
    breaking: bool = False


@dataclass(frozen=True)
class CriterionResult:
    """
    One comparison found in a rule tree, with its compared values.

    Example:
        CriterionResult(
            criterion="householdIncome",
            met=False,
            value=4167,
            threshold=4000,
            comparison="<=",
            message="4,167 exceeds the limit of 4,000",
        )
    """

    criterion: str
    met: bool
    value: Any = None
    threshold: Any = None
    comparison: str = ""
    message: str = ""


@dataclass(frozen=True)
class EligibilityResult:
    """
    Outcome of evaluating one program for one profile.

    Properties:
        confidence: 0 (evaluation error), 50 (required fields missing), 95
        needs_review: True when the result came from an internal error
        incomplete: True when any rule had missing required fields
    """

    profile_id: str
    program_id: str
    rule_id: str
    eligible: bool
    confidence: int
    reason: str
    criteria_results: Tuple[CriterionResult, ...] = ()
    missing_fields: Tuple[str, ...] = ()
    required_documents: Tuple[str, ...] = ()
    evaluated_at: datetime = field(default_factory=datetime.now)
    execution_time: float = 0.0
    rule_version: Optional[str] = None
    needs_review: bool = False
    incomplete: bool = False
    error: Optional[str] = None


@dataclass(frozen=True)
class BatchEligibilityResult:
    """Results for several programs evaluated against one profile."""

    profile_id: str
    results: Dict[str, EligibilityResult]
    total_time: float = 0.0

    @property
    def summary(self) -> Dict[str, int]:
        values = list(self.results.values())
        return {
            "total": len(values),
            "eligible": sum(1 for r in values if r.eligible),
            "ineligible": sum(1 for r in values if not r.eligible and not r.incomplete),
            "incomplete": sum(1 for r in values if r.incomplete),
            "needs_review": sum(1 for r in values if r.needs_review),
        }

    def eligible_programs(self) -> List[str]:
        return [program_id for program_id, r in self.results.items() if r.eligible]
