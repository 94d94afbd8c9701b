"""
Tests for serialization and deserialization of BQE objects.

These tests ensure lossless JSON/YAML round-trip using the explicit
serialization functions in `bqe.serialization`.
"""

from datetime import datetime

import yaml
from bqe.examples import build_food_program, build_food_rules, build_screening_flow, build_screening_skip_rules
from bqe.expressions import Literal
from bqe.flow.engine import FlowEngine
from bqe.serialization import (
    flow_from_json,
    flow_from_yaml,
    flow_to_dict,
    flow_to_json,
    flow_to_yaml,
    program_from_dict,
    program_to_dict,
    rule_from_dict,
    rule_to_dict,
    rules_from_json,
    rules_from_yaml,
    rules_to_json,
    rules_to_yaml,
    skip_rules_from_yaml,
    skip_rules_to_yaml,
)
from bqe.versioning import create_rule_version


def build_versioned_rule():
    rule = build_food_rules()[1]
    return create_rule_version(rule, "major", "Net income basis", author="policy-team",
                               now=datetime(2024, 3, 1, 9, 30))


def test_flow_json_roundtrip():
    flow = build_screening_flow()
    before = flow_to_dict(flow)
    restored = flow_from_json(flow_to_json(flow))
    assert flow_to_dict(restored) == before
    assert list(restored.nodes) == list(flow.nodes)


def test_flow_yaml_roundtrip():
    flow = build_screening_flow()
    restored = flow_from_yaml(flow_to_yaml(flow))
    assert restored == flow


def test_flow_yaml_is_hand_editable():
    """Conditions are written as plain rule trees."""
    data = yaml.safe_load(flow_to_yaml(build_screening_flow()))
    children = next(n for n in data["nodes"] if n["id"] == "children_count")
    assert children["question"]["show_if"] == {"==": [{"var": "hasChildren"}, True]}
    assert data["nodes"][0]["question"]["show_if"] is None


def test_restored_flow_navigates_the_same():
    flow = build_screening_flow()
    restored = flow_from_json(flow_to_json(flow))
    context = {"employed": False}
    assert FlowEngine(restored).find_next_node("employed", context) == \
        FlowEngine(flow).find_next_node("employed", context)


def test_literal_branch_condition():
    flow = build_screening_flow()
    flow.nodes["employed"].branches[0].condition = Literal(False)
    restored = flow_from_yaml(flow_to_yaml(flow))
    assert restored.nodes["employed"].branches[0].condition == Literal(False)


def test_rules_json_roundtrip():
    rules = build_food_rules() + [build_versioned_rule()]
    assert rules_from_json(rules_to_json(rules)) == rules


def test_rules_yaml_roundtrip():
    rules = [build_versioned_rule()]
    restored = rules_from_yaml(rules_to_yaml(rules))
    assert restored == rules
    assert restored[0].changelog[0].date == datetime(2024, 3, 1, 9, 30)
    assert restored[0].changelog[0].breaking


def test_rule_defaults_from_minimal_dict():
    rule = rule_from_dict({"id": "r1", "program_id": "p", "logic": {"var": "ok"}})
    assert rule.name == "r1"
    assert rule.active
    assert rule.version == "1.0.0"
    assert rule.required_fields == ()
    assert rule_to_dict(rule)["changelog"] == []


def test_empty_yaml():
    assert rules_from_yaml("") == []
    assert skip_rules_from_yaml("") == []


def test_program_roundtrip():
    program = build_food_program()
    assert program_from_dict(program_to_dict(program)) == program


def test_skip_rules_yaml_roundtrip():
    rules = build_screening_skip_rules()
    assert skip_rules_from_yaml(skip_rules_to_yaml(rules)) == rules
