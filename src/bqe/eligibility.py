"""
Eligibility Orchestrator

Loads a profile and a program's active rules, evaluates every rule with
the detailed evaluator and folds the outcomes into one EligibilityResult.

Aggregation:
    - rules are evaluated in descending priority
    - a rule passes only when evaluation succeeded and returned true
    - eligible only when every rule passes
    - the first failing rule (or the highest-priority rule when all
      pass) is the representative rule that explains the result
    - confidence: 0 when the representative evaluation errored,
      50 when any rule had missing required fields, 95 otherwise

ARCHITECTURAL RULE:
    evaluate_eligibility() always returns a result. Anything raised
    below it (missing records, repository failures) becomes an error
    result with confidence 0 and needs_review set.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from .config import EngineSettings
from .detailed_evaluator import DetailedEvaluationResult, evaluate_with_details
from .errors import ProfileNotFoundError, ProgramNotFoundError, RulesNotFoundError
from .interpreter import Interpreter
from .model import BatchEligibilityResult, EligibilityResult, EligibilityRule
from .operators import is_missing, resolve_path
from .repository import EligibilityRepository

logger = logging.getLogger(__name__)

ERROR_REASON = "Unable to evaluate eligibility due to an error"
INCOMPLETE_REASON = "Cannot fully determine eligibility - missing required information"
ELIGIBLE_REASON = "You meet the eligibility criteria for this program"
INELIGIBLE_REASON = "You do not meet the eligibility criteria for this program"


@dataclass
class RuleOutcome:
    """One rule's evaluation within a program."""

    rule: EligibilityRule
    evaluation: DetailedEvaluationResult
    missing_fields: List[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.evaluation.success and bool(self.evaluation.result)


def prepare_data_context(profile_data: Dict[str, Any],
                         today: Callable[[], date] = date.today) -> Dict[str, Any]:
    """
    Build the data context rules see.

    householdIncome is entered as an annual figure and rules are written
    against monthly income, so it is divided by 12 and rounded half up.
    age is derived from dateOfBirth when it is not given directly.
    The input mapping is not modified.
    """
    data = dict(profile_data)

    income = data.get("householdIncome")
    if isinstance(income, (int, float)) and not isinstance(income, bool):
        data["householdIncome"] = int(math.floor(income / 12 + 0.5))

    dob = data.get("dateOfBirth")
    if data.get("age") is None and isinstance(dob, str) and dob:
        try:
            born = date.fromisoformat(dob[:10])
        except ValueError:
            logger.debug("Ignoring unparseable dateOfBirth %r", dob)
        else:
            now = today()
            data["age"] = now.year - born.year - ((now.month, now.day) < (born.month, born.day))

    return data


def check_missing_fields(data: Dict[str, Any], required_fields: Sequence[str]) -> List[str]:
    """Required fields that are absent, null or empty in the data context."""
    return [name for name in required_fields if is_missing(resolve_path(data, name))]


def calculate_confidence(evaluation: DetailedEvaluationResult, incomplete: bool) -> int:
    if not evaluation.success:
        return 0
    if incomplete:
        return 50
    return 95


def generate_reason(evaluation: DetailedEvaluationResult, eligible: bool,
                    rule: EligibilityRule, incomplete: bool) -> str:
    if not evaluation.success:
        return ERROR_REASON
    if incomplete:
        return INCOMPLETE_REASON
    if eligible:
        return rule.explanation or ELIGIBLE_REASON
    return INELIGIBLE_REASON


class EligibilityEvaluator:
    """
    Evaluates programs for profiles stored in a repository.

    Example:
        evaluator = EligibilityEvaluator(repository)
        result = await evaluator.evaluate_eligibility("profile-1", "snap-federal")
    """

    def __init__(self, repository: EligibilityRepository,
                 interpreter: Optional[Interpreter] = None,
                 settings: Optional[EngineSettings] = None,
                 today: Callable[[], date] = date.today):
        self.repository = repository
        self.settings = settings or EngineSettings()
        self.today = today
        self.interpreter = interpreter or Interpreter.for_benefits(self.settings, today=today)

    async def evaluate_eligibility(self, profile_id: str, program_id: str) -> EligibilityResult:
        started = time.perf_counter()
        try:
            return await self._evaluate(profile_id, program_id, started)
        except Exception as exc:
            logger.warning("Eligibility evaluation failed for %s/%s: %s", profile_id, program_id, exc)
            return build_error_result(profile_id, program_id, exc, time.perf_counter() - started)

    async def evaluate_multiple_programs(self, profile_id: str,
                                         program_ids: Sequence[str]) -> BatchEligibilityResult:
        """Evaluate several programs; one failing program never blocks the others."""
        started = time.perf_counter()
        results = await asyncio.gather(
            *(self.evaluate_eligibility(profile_id, program_id) for program_id in program_ids)
        )
        return BatchEligibilityResult(
            profile_id=profile_id,
            results=dict(zip(program_ids, results)),
            total_time=time.perf_counter() - started,
        )

    async def _evaluate(self, profile_id: str, program_id: str, started: float) -> EligibilityResult:
        profile = await self.repository.find_profile(profile_id)
        if profile is None:
            raise ProfileNotFoundError(profile_id)
        program = await self.repository.find_program(program_id)
        if program is None:
            raise ProgramNotFoundError(program_id)
        rules = await self.repository.find_active_rules_for_program(program_id)
        if not rules:
            raise RulesNotFoundError(program_id)

        ordered = sorted(rules, key=lambda r: r.priority, reverse=True)
        data = prepare_data_context(profile.data, self.today)
        outcomes = [self.evaluate_rule(rule, data) for rule in ordered]

        failed = next((o for o in outcomes if not o.passed), None)
        representative = failed or outcomes[0]
        eligible = failed is None

        missing: List[str] = []
        for outcome in outcomes:
            missing.extend(f for f in outcome.missing_fields if f not in missing)
        incomplete = bool(missing)

        evaluation = representative.evaluation
        criteria = tuple(c for o in outcomes for c in o.evaluation.criteria_results)

        logger.debug(
            "Program %s for %s: eligible=%s representative=%s missing=%s",
            program_id, profile_id, eligible, representative.rule.id, missing,
        )
        return EligibilityResult(
            profile_id=profile_id,
            program_id=program_id,
            rule_id=representative.rule.id,
            eligible=eligible,
            confidence=calculate_confidence(evaluation, incomplete),
            reason=generate_reason(evaluation, eligible, representative.rule, incomplete),
            criteria_results=criteria,
            missing_fields=tuple(missing),
            required_documents=tuple(representative.rule.required_documents),
            evaluated_at=datetime.now(),
            execution_time=time.perf_counter() - started,
            rule_version=representative.rule.version,
            needs_review=not evaluation.success or incomplete,
            incomplete=incomplete,
            error=evaluation.error,
        )

    def evaluate_rule(self, rule: EligibilityRule, data: Dict[str, Any]) -> RuleOutcome:
        missing = check_missing_fields(data, rule.required_fields)
        evaluation = evaluate_with_details(rule.logic, data, self.interpreter)
        if not evaluation.success:
            logger.warning("Rule %s failed to evaluate: %s", rule.id, evaluation.error)
        return RuleOutcome(rule=rule, evaluation=evaluation, missing_fields=missing)


def build_error_result(profile_id: str, program_id: str, error: Exception,
                       execution_time: float) -> EligibilityResult:
    return EligibilityResult(
        profile_id=profile_id,
        program_id=program_id,
        rule_id="",
        eligible=False,
        confidence=0,
        reason=ERROR_REASON,
        evaluated_at=datetime.now(),
        execution_time=execution_time,
        needs_review=True,
        error=str(error),
    )
