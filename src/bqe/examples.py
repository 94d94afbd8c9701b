"""
Example benefits screening content for demos and tests.

Builds a short household screening questionnaire with show-if and
branch logic, the skip rules that go with it, and a food assistance
program with income, household and citizenship rules.
"""
from typing import List

from .flow.graph import FlowBranch, FlowNode, QuestionDefinition, QuestionFlow, create_flow
from .flow.skip_logic import SkipRule
from .model import BenefitProgram, EligibilityRule, UserProfile
from .repository import InMemoryRepository

FOOD_PROGRAM_ID = "food-assistance"

# Monthly gross income limit by household size; rules compare against
# monthly income after prepare_data_context() converts the annual figure.
INCOME_LIMITS = {1: 1580, 2: 2137, 3: 2694, 4: 3250}


def build_screening_flow() -> QuestionFlow:
    """
    Screening questionnaire:

        household_size -> has_children -> children_count (only with children)
            -> employed -> employer / unemployment_benefits -> income
            -> citizenship -> review (terminal)
    """
    nodes = [
        FlowNode(
            id="household_size",
            question=QuestionDefinition(
                id="q_household_size",
                text="How many people live in your household?",
                field_name="householdSize",
                input_type="number",
                required=True,
            ),
        ),
        FlowNode(
            id="has_children",
            question=QuestionDefinition(
                id="q_has_children",
                text="Do any children under 18 live with you?",
                field_name="hasChildren",
                input_type="boolean",
                required=True,
            ),
        ),
        FlowNode(
            id="children_count",
            question=QuestionDefinition(
                id="q_children_count",
                text="How many children under 18?",
                field_name="childrenCount",
                input_type="number",
                required=True,
                show_if={"==": [{"var": "hasChildren"}, True]},
            ),
        ),
        FlowNode(
            id="employed",
            question=QuestionDefinition(
                id="q_employed",
                text="Is anyone in your household currently employed?",
                field_name="employed",
                input_type="boolean",
                required=True,
            ),
            branches=[
                FlowBranch(
                    id="to_employer",
                    condition={"==": [{"var": "employed"}, True]},
                    target_id="employer",
                    priority=1,
                ),
                FlowBranch(
                    id="to_unemployment",
                    condition={"==": [{"var": "employed"}, False]},
                    target_id="unemployment_benefits",
                ),
            ],
        ),
        FlowNode(
            id="employer",
            question=QuestionDefinition(
                id="q_employer",
                text="Who is the main employer?",
                field_name="employer",
            ),
            next_id="income",
        ),
        FlowNode(
            id="unemployment_benefits",
            question=QuestionDefinition(
                id="q_unemployment_benefits",
                text="Does anyone receive unemployment benefits?",
                field_name="receivesUnemployment",
                input_type="boolean",
            ),
            next_id="income",
        ),
        FlowNode(
            id="income",
            question=QuestionDefinition(
                id="q_income",
                text="What is your total annual household income?",
                field_name="householdIncome",
                input_type="currency",
                required=True,
                help_text="Include wages, benefits and support payments before taxes.",
            ),
        ),
        FlowNode(
            id="citizenship",
            question=QuestionDefinition(
                id="q_citizenship",
                text="What is your citizenship status?",
                field_name="citizenshipStatus",
                input_type="select",
                required=True,
                options=[
                    {"value": "citizen", "label": "U.S. citizen"},
                    {"value": "permanent_resident", "label": "Permanent resident"},
                    {"value": "other", "label": "Other"},
                ],
            ),
        ),
        FlowNode(
            id="review",
            question=QuestionDefinition(
                id="q_review",
                text="Anything else we should know?",
                field_name="notes",
            ),
            is_terminal=True,
        ),
    ]
    nodes[0].next_id = "has_children"
    nodes[1].next_id = "children_count"
    nodes[2].next_id = "employed"
    nodes[3].next_id = "income"
    nodes[6].next_id = "citizenship"
    nodes[7].next_id = "review"
    return create_flow("benefits-screening", "Benefits Screening", nodes)


def build_screening_skip_rules() -> List[SkipRule]:
    return [
        SkipRule(
            id="single_person_household",
            question_ids=["q_has_children", "q_children_count"],
            condition={"==": [{"var": "householdSize"}, 1]},
            description="A single-person household has no children to ask about",
        ),
    ]


def build_food_program() -> BenefitProgram:
    return BenefitProgram(
        id=FOOD_PROGRAM_ID,
        name="Food Assistance",
        description="Monthly food purchasing assistance for low-income households",
        category="food",
        jurisdiction="US-FEDERAL",
    )


def income_limit_rule() -> dict:
    """Monthly income at or below the limit for the household size."""
    return {
        "if": [
            {"<=": [{"var": "householdSize"}, 1]},
            {"<=": [{"var": "householdIncome"}, INCOME_LIMITS[1]]},
            {"==": [{"var": "householdSize"}, 2]},
            {"<=": [{"var": "householdIncome"}, INCOME_LIMITS[2]]},
            {"==": [{"var": "householdSize"}, 3]},
            {"<=": [{"var": "householdIncome"}, INCOME_LIMITS[3]]},
            {"<=": [{"var": "householdIncome"}, INCOME_LIMITS[4]]},
        ]
    }


def build_food_rules() -> List[EligibilityRule]:
    return [
        EligibilityRule(
            id="food-citizenship",
            program_id=FOOD_PROGRAM_ID,
            name="Citizenship or qualified status",
            logic={"matches_any": [{"var": "citizenshipStatus"}, ["citizen", "permanent_resident"]]},
            priority=10,
            required_fields=("citizenshipStatus",),
            required_documents=("Proof of citizenship or immigration status",),
        ),
        EligibilityRule(
            id="food-income",
            program_id=FOOD_PROGRAM_ID,
            name="Gross monthly income limit",
            logic=income_limit_rule(),
            priority=5,
            required_fields=("householdIncome", "householdSize"),
            explanation="Your household income is within the program limit",
            required_documents=("Pay stubs for the last 30 days",),
        ),
        EligibilityRule(
            id="food-age",
            program_id=FOOD_PROGRAM_ID,
            name="Applicant is an adult",
            logic={">=": [{"var": "age"}, 18]},
            priority=1,
            required_fields=("dateOfBirth",),
        ),
    ]


def build_example_repository() -> InMemoryRepository:
    """Repository holding the food program, its rules and two profiles."""
    repository = InMemoryRepository()
    repository.add_program(build_food_program())
    for rule in build_food_rules():
        repository.add_rule(rule)
    repository.add_profile(UserProfile(
        id="low-income-family",
        data={
            "householdSize": 4,
            "householdIncome": 30000,
            "citizenshipStatus": "citizen",
            "dateOfBirth": "1985-06-15",
        },
    ))
    repository.add_profile(UserProfile(
        id="high-income-single",
        data={
            "householdSize": 1,
            "householdIncome": 50000,
            "citizenshipStatus": "citizen",
            "dateOfBirth": "1990-01-01",
        },
    ))
    return repository
