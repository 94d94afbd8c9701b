"""
Tests for the flow engine: conditions, branches and traversal.
"""

import pytest
from bqe.errors import RuleStructureError
from bqe.flow.engine import FlowEngine
from bqe.flow.graph import FlowBranch, FlowNode, QuestionDefinition, create_flow


def build_node(node_id, show_if=None, **kwargs) -> FlowNode:
    question = QuestionDefinition(id=f"q_{node_id}", text=f"Question {node_id}",
                                  field_name=node_id, show_if=show_if)
    return FlowNode(id=node_id, question=question, **kwargs)


def build_branching_engine() -> FlowEngine:
    """node1 branches to node3 (value >= 50, priority 1) or node2 (value < 50)."""
    flow = create_flow("branching", "Branching", [
        build_node("node1", next_id="node2", branches=[
            FlowBranch(id="low", condition={"<": [{"var": "value"}, 50]}, target_id="node2"),
            FlowBranch(id="high", condition={">=": [{"var": "value"}, 50]}, target_id="node3", priority=1),
        ]),
        build_node("node2", next_id="node3"),
        build_node("node3", is_terminal=True),
    ])
    return FlowEngine(flow)


class TestConditions:
    """Test condition evaluation."""

    def test_none_condition_is_met(self):
        engine = build_branching_engine()
        assert engine.evaluate_condition(None, {}).met

    def test_failed_condition_not_met(self):
        engine = build_branching_engine()
        result = engine.evaluate_condition({"teleport": []}, {})
        assert not result.met
        assert "teleport" in result.error

    def test_very_deep_condition_not_met(self):
        condition = {"var": "x"}
        for _ in range(3000):
            condition = {"!": condition}
        result = build_branching_engine().evaluate_condition(condition, {"x": 1})
        assert not result.met
        assert result.error
        with pytest.raises(RuleStructureError):
            QuestionDefinition(id="q", text="Q", field_name="f", show_if=condition)

    def test_should_show_question(self):
        engine = build_branching_engine()
        question = QuestionDefinition(id="q", text="Q", field_name="f",
                                      show_if={"==": [{"var": "hasChildren"}, True]})
        assert engine.should_show_question(question, {"hasChildren": True})
        assert not engine.should_show_question(question, {"hasChildren": False})
        assert not engine.should_show_question(question, {})


class TestNextNode:
    """Test successor resolution."""

    def test_highest_priority_true_branch(self):
        step = build_branching_engine().find_next_node("node1", {"value": 75})
        assert step.success
        assert step.target_node_id == "node3"
        assert step.branch_taken
        assert step.branch_id == "high"

    def test_lower_branch(self):
        step = build_branching_engine().find_next_node("node1", {"value": 10})
        assert step.target_node_id == "node2"
        assert step.branch_id == "low"

    def test_default_successor(self):
        step = build_branching_engine().find_next_node("node1", {})
        assert step.target_node_id == "node2"
        assert not step.branch_taken

    def test_terminal_node(self):
        step = build_branching_engine().find_next_node("node3", {})
        assert step.success
        assert step.target_node_id is None

    def test_unknown_node(self):
        step = build_branching_engine().find_next_node("nowhere", {})
        assert not step.success

    def test_dead_end(self):
        engine = FlowEngine(create_flow("f", "F", [build_node("n1")]))
        step = engine.find_next_node("n1", {})
        assert not step.success
        assert "No next node" in step.error

    def test_equal_priority_keeps_declaration_order(self):
        flow = create_flow("f", "F", [
            build_node("n1", next_id="n2", branches=[
                FlowBranch(id="first", condition=True, target_id="n2"),
                FlowBranch(id="second", condition=True, target_id="n3"),
            ]),
            build_node("n2", is_terminal=True),
            build_node("n3", is_terminal=True),
        ])
        assert FlowEngine(flow).find_next_node("n1", {}).branch_id == "first"


class TestTraversal:
    """Test ordering and visibility over the whole flow."""

    def test_traversal_order(self):
        flow = create_flow("f", "F", [
            build_node("orphan", is_terminal=True),
            build_node("a", next_id="b", branches=[FlowBranch(id="x", condition=True, target_id="c")]),
            build_node("b", next_id="c"),
            build_node("c", is_terminal=True),
        ], start_node_id="a")
        assert FlowEngine(flow).traversal_order() == ["a", "b", "c", "orphan"]

    def test_visible_questions(self):
        flow = create_flow("f", "F", [
            build_node("a"),
            build_node("b", show_if={"==": [{"var": "a"}, "yes"]}),
            build_node("c"),
        ], link=True)
        engine = FlowEngine(flow)
        assert [q.id for q in engine.visible_questions({"a": "no"})] == ["q_a", "q_c"]
        assert [q.id for q in engine.visible_questions({"a": "yes"}, ["q_c"])] == ["q_a", "q_b"]
        assert [q.id for q in engine.hidden_questions({"a": "no"})] == ["q_b"]

    def test_find_flow_path(self):
        engine = build_branching_engine()
        assert engine.find_flow_path({"value": 75}) == ["node1", "node3"]
        assert engine.find_flow_path({"value": 5}) == ["node1", "node2", "node3"]

    def test_find_flow_path_stops_on_cycle(self):
        flow = create_flow("f", "F", [build_node("a", next_id="b"), build_node("b", next_id="a")])
        assert FlowEngine(flow).find_flow_path({}) == ["a", "b"]
