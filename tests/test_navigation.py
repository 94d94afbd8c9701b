"""
Tests for navigation and skip logic.
"""

from bqe.config import EngineSettings
from bqe.flow.engine import FlowEngine
from bqe.flow.graph import FlowBranch, FlowNode, QuestionDefinition, create_flow
from bqe.flow.navigation import NavigationHistory, NavigationManager
from bqe.flow.skip_logic import SkipLogicManager, SkipRule


def build_node(node_id, question_id, show_if=None, **kwargs) -> FlowNode:
    question = QuestionDefinition(id=question_id, text=f"Question {node_id}",
                                  field_name=question_id, show_if=show_if)
    return FlowNode(id=node_id, question=question, **kwargs)


def build_children_flow():
    """node1 -> node2 (only with children) -> node3."""
    return create_flow("children", "Children", [
        build_node("node1", "q1", next_id="node2"),
        build_node("node2", "q2", next_id="node3", show_if={"==": [{"var": "hasChildren"}, True]}),
        build_node("node3", "q3", is_terminal=True),
    ])


def build_branching_flow():
    return create_flow("branching", "Branching", [
        build_node("node1", "q1", next_id="node2", branches=[
            FlowBranch(id="high", condition={">=": [{"var": "value"}, 50]}, target_id="node3", priority=1),
            FlowBranch(id="low", condition={"<": [{"var": "value"}, 50]}, target_id="node2"),
        ]),
        build_node("node2", "q2", next_id="node3"),
        build_node("node3", "q3", is_terminal=True),
    ])


def build_manager(flow, rules=None, context=None, settings=None) -> NavigationManager:
    engine = FlowEngine(flow)
    manager = NavigationManager(engine, SkipLogicManager(engine, rules), settings)
    manager.set_context(context or {})
    return manager


class TestNavigateForward:
    """Test forward navigation."""

    def test_hidden_question_skipped(self):
        manager = build_manager(build_children_flow(), context={"hasChildren": False})
        result = manager.navigate_forward("node1")
        assert result.success
        assert result.target_node_id == "node3"
        assert result.questions_skipped == ["q2"]
        assert manager.get_history() == ["node1", "node3"]

    def test_visible_question_shown(self):
        manager = build_manager(build_children_flow(), context={"hasChildren": True})
        result = manager.navigate_forward("node1")
        assert result.target_node_id == "node2"
        assert result.questions_skipped == []

    def test_branch_taken(self):
        manager = build_manager(build_branching_flow(), context={"value": 75})
        result = manager.navigate_forward("node1")
        assert result.target_node_id == "node3"
        assert result.branch_taken
        assert result.branch_id == "high"

    def test_skip_rule(self):
        rules = [SkipRule(id="no_q2", question_ids=["q2"], condition={"==": [{"var": "q1"}, "skip"]})]
        manager = build_manager(build_children_flow(), rules, {"q1": "skip", "hasChildren": True})
        result = manager.navigate_forward("node1")
        assert result.target_node_id == "node3"
        assert result.questions_skipped == ["q2"]

    def test_end_of_flow(self):
        manager = build_manager(build_children_flow())
        manager.reset_history("node3")
        result = manager.navigate_forward("node3")
        assert result.success
        assert result.target_node_id is None
        assert manager.get_history() == ["node3"]

    def test_skip_past_last_node_ends_flow(self):
        flow = create_flow("f", "F", [
            build_node("a", "qa", next_id="b"),
            build_node("b", "qb", is_terminal=True, show_if=False),
        ])
        result = build_manager(flow).navigate_forward("a")
        assert result.success
        assert result.target_node_id is None
        assert result.questions_skipped == ["qb"]

    def test_unknown_node(self):
        manager = build_manager(build_children_flow())
        result = manager.navigate_forward("nowhere")
        assert not result.success
        assert manager.get_history() == []

    def test_missing_target(self):
        flow = create_flow("f", "F", [build_node("a", "qa", next_id="ghost")])
        result = build_manager(flow).navigate_forward("a")
        assert not result.success
        assert "ghost" in result.error

    def test_skip_loop_is_bounded(self):
        flow = create_flow("f", "F", [
            build_node("a", "qa", next_id="b"),
            build_node("b", "qb", next_id="c", show_if=False),
            build_node("c", "qc", next_id="b", show_if=False),
        ])
        manager = build_manager(flow, settings=EngineSettings(max_navigation_steps=10))
        result = manager.navigate_forward("a")
        assert not result.success
        assert manager.get_history() == []

    def test_conditions_see_latest_answers(self):
        manager = build_manager(build_children_flow(), context={"hasChildren": False})
        assert manager.navigate_forward("node1").target_node_id == "node3"
        manager.update_context("hasChildren", True)
        manager.reset_history("node1")
        assert manager.navigate_forward("node1").target_node_id == "node2"


class TestNavigateBackward:
    """Test backward navigation."""

    def test_back_over_skipped_question(self):
        manager = build_manager(build_children_flow(), context={"hasChildren": False})
        manager.navigate_forward("node1")
        result = manager.navigate_backward("node3")
        assert result.success
        assert result.target_node_id == "node1"
        assert manager.get_history() == ["node1"]

    def test_nothing_to_go_back_to(self):
        manager = build_manager(build_children_flow())
        manager.reset_history("node1")
        result = manager.navigate_backward("node1")
        assert not result.success
        assert manager.get_history() == ["node1"]

    def test_history_is_prefix_consistent(self):
        """Every forward step extends the previous history by one node."""
        manager = build_manager(build_children_flow(), context={"hasChildren": True})
        first = manager.navigate_forward("node1").history
        second = manager.navigate_forward("node2").history
        assert second.entries[:len(first)] == first.entries
        assert len(second) == len(first) + 1

    def test_results_carry_immutable_history(self):
        manager = build_manager(build_children_flow(), context={"hasChildren": True})
        before = manager.navigate_forward("node1").history
        manager.navigate_forward("node2")
        assert before == NavigationHistory(("node1", "node2"))


class TestJumpAndQueries:
    """Test jumps and history queries."""

    def test_jump_to(self):
        manager = build_manager(build_children_flow())
        manager.reset_history("node1")
        result = manager.jump_to("node3")
        assert result.success
        assert result.previous_node_id == "node1"
        assert manager.get_history() == ["node1", "node3"]
        assert manager.can_go_back()

    def test_jump_to_unknown(self):
        manager = build_manager(build_children_flow())
        assert not manager.jump_to("ghost").success

    def test_can_go_forward(self):
        manager = build_manager(build_children_flow())
        assert manager.can_go_forward("node1")
        assert not manager.can_go_forward("node3")

    def test_clear_history(self):
        manager = build_manager(build_children_flow())
        manager.reset_history("node1")
        manager.clear_history()
        assert manager.get_history() == []
        assert not manager.can_go_back()


class TestSkipLogicManager:
    """Test skip rule bookkeeping."""

    def build(self):
        engine = FlowEngine(build_children_flow())
        return SkipLogicManager(engine, [
            SkipRule(id="low", question_ids=["q2"], condition={"var": "a"}),
            SkipRule(id="high", question_ids=["q3", "q2"], condition={"var": "b"}, priority=5),
        ])

    def test_rules_by_priority(self):
        assert [r.id for r in self.build().get_skip_rules()] == ["high", "low"]

    def test_questions_to_skip(self):
        manager = self.build()
        assert manager.get_questions_to_skip({"a": True, "b": True}) == ["q3", "q2"]
        assert manager.get_questions_to_skip({"a": True}) == ["q2"]
        assert manager.get_questions_to_skip({}) == []
        assert manager.should_skip_question("q2", {"a": 1})

    def test_replace_and_remove(self):
        manager = self.build()
        manager.add_skip_rule(SkipRule(id="low", question_ids=["q1"], condition=True))
        assert manager.get_skip_rule("low").question_ids == ["q1"]
        assert len(manager.get_skip_rules()) == 2
        assert manager.remove_skip_rule("low")
        assert not manager.remove_skip_rule("low")
        assert manager.get_skip_rule("low") is None
