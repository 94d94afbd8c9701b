#!/usr/bin/env python3
"""
Screening Demo: Questionnaire → Answers → Eligibility

Shows the full workflow:
1. Analyze the screening flow
2. Walk a session through it
3. Store the answers as a profile
4. Evaluate food assistance eligibility
"""

import asyncio

from bqe.config import configure_logging
from bqe.eligibility import EligibilityEvaluator
from bqe.examples import (
    FOOD_PROGRAM_ID,
    build_example_repository,
    build_screening_flow,
    build_screening_skip_rules,
)
from bqe.flow.analyzer import validate_flow
from bqe.flow.session import QuestionnaireSession
from bqe.model import UserProfile


ANSWERS = {
    "q_household_size": 3,
    "q_has_children": True,
    "q_children_count": 2,
    "q_employed": True,
    "q_employer": "Riverside Clinic",
    "q_income": 28000,
    "q_citizenship": "citizen",
    "q_review": "",
}


def main():
    configure_logging("WARNING")

    print("=" * 80)
    print("SCREENING DEMO: Questionnaire → Answers → Eligibility")
    print("=" * 80)

    # =========================================================================
    # STEP 1: Analyze flow
    # =========================================================================
    print("\n1. ANALYZING FLOW...")
    flow = build_screening_flow()
    report = validate_flow(flow)
    print(f"   ✓ Nodes: {report.total_nodes}")
    print(f"   ✓ Branches: {report.total_branches}")
    print(f"   ✓ Valid: {report.valid}")
    for warning in report.warnings:
        print(f"      - {warning}")

    # =========================================================================
    # STEP 2: Run session
    # =========================================================================
    print("\n2. RUNNING SESSION...")
    session = QuestionnaireSession(flow, build_screening_skip_rules())
    session.start()
    while not session.is_completed:
        question = session.current_question()
        session.answer(question.id, ANSWERS[question.id])
        progress = session.progress()
        print(f"   {question.text:<55} {progress.progress_percent:>3}%")
        result = session.next()
        if not result.success:
            print(f"   ✗ Navigation failed: {result.error}")
            return

    # =========================================================================
    # STEP 3: Evaluate eligibility
    # =========================================================================
    print("\n3. EVALUATING ELIGIBILITY...")
    repository = build_example_repository()
    answers = dict(session.answers, dateOfBirth="1988-03-09")
    repository.add_profile(UserProfile(id="demo", data=answers))
    evaluator = EligibilityEvaluator(repository)
    result = asyncio.run(evaluator.evaluate_eligibility("demo", FOOD_PROGRAM_ID))

    print(f"   ✓ Eligible: {result.eligible} (confidence {result.confidence})")
    print(f"   ✓ Reason: {result.reason}")
    for criterion in result.criteria_results:
        mark = "✓" if criterion.met else "✗"
        print(f"      {mark} {criterion.criterion}: {criterion.message}")


if __name__ == "__main__":
    main()
