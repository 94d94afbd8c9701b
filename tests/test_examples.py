"""
Tests for the bundled screening example.
"""

from datetime import date

import pytest
from bqe.eligibility import INELIGIBLE_REASON, EligibilityEvaluator
from bqe.examples import (
    FOOD_PROGRAM_ID,
    INCOME_LIMITS,
    build_example_repository,
    build_screening_flow,
    build_screening_skip_rules,
    income_limit_rule,
)
from bqe.flow.analyzer import validate_flow
from bqe.flow.engine import FlowEngine
from bqe.interpreter import Interpreter
from bqe.validator import validate_rule


def fixed_today():
    return date(2024, 6, 1)


def test_screening_flow_validates():
    assert validate_flow(build_screening_flow()).valid


def test_path_with_children_and_job():
    engine = FlowEngine(build_screening_flow())
    context = {"householdSize": 3, "hasChildren": True, "employed": True}
    assert engine.find_flow_path(context) == [
        "household_size", "has_children", "children_count", "employed",
        "employer", "income", "citizenship", "review",
    ]


def test_children_question_hidden_without_children():
    engine = FlowEngine(build_screening_flow())
    hidden = [q.id for q in engine.hidden_questions({"hasChildren": False})]
    assert hidden == ["q_children_count"]


def test_skip_rule_targets_known_questions():
    flow = build_screening_flow()
    question_ids = {q.id for q in flow.questions()}
    for rule in build_screening_skip_rules():
        assert set(rule.question_ids) <= question_ids


@pytest.mark.parametrize("size, income, expected", [
    (1, 1580, True),
    (1, 1581, False),
    (3, 2694, True),
    (6, 3250, True),
    (6, 3251, False),
])
def test_income_limit_rule(size, income, expected):
    interp = Interpreter.for_benefits()
    assert interp.evaluate(income_limit_rule(), {"householdSize": size, "householdIncome": income}) == expected


def test_income_limit_rule_is_valid():
    assert validate_rule(income_limit_rule()).valid
    assert INCOME_LIMITS[4] == 3250


class TestExampleRepository:
    """Test eligibility against the example profiles."""

    @pytest.mark.asyncio
    async def test_low_income_family_eligible(self):
        evaluator = EligibilityEvaluator(build_example_repository(), today=fixed_today)
        result = await evaluator.evaluate_eligibility("low-income-family", FOOD_PROGRAM_ID)
        assert result.eligible is True
        assert result.confidence == 95
        assert not result.needs_review
        assert result.rule_id == "food-citizenship"
        assert result.required_documents == ("Proof of citizenship or immigration status",)

    @pytest.mark.asyncio
    async def test_high_income_single_ineligible(self):
        evaluator = EligibilityEvaluator(build_example_repository(), today=fixed_today)
        result = await evaluator.evaluate_eligibility("high-income-single", FOOD_PROGRAM_ID)
        assert result.eligible is False
        assert result.rule_id == "food-income"
        assert result.reason == INELIGIBLE_REASON
        assert result.confidence == 95
