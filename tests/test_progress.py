"""
Tests for progress tracking and checkpoints.
"""

import copy

import pytest

from bqe.config import EngineSettings
from bqe.flow.checkpoint import CheckpointManager
from bqe.flow.engine import FlowEngine
from bqe.flow.graph import FlowNode, QuestionDefinition, QuestionFlow, create_flow
from bqe.flow.progress import (
    FlowSection,
    QuestionState,
    QuestionStatus,
    TimeTracker,
    calculate_all_sections_progress,
    calculate_completion_percentage,
    calculate_progress,
    get_incomplete_required_questions,
    is_flow_complete,
)
from bqe.flow.skip_logic import SkipLogicManager, SkipRule


def build_node(node_id, required=False, show_if=None) -> FlowNode:
    question = QuestionDefinition(id=node_id, text=f"Question {node_id}", field_name=node_id,
                                  required=required, show_if=show_if)
    return FlowNode(id=node_id, question=question)


def build_engine() -> FlowEngine:
    """Four questions: r1, r2 required; o1 optional; hidden only shown when r1 == 'yes'."""
    flow = create_flow("progress", "Progress", [
        build_node("r1", required=True),
        build_node("o1"),
        build_node("r2", required=True),
        build_node("hidden", required=True, show_if={"==": [{"var": "r1"}, "yes"]}),
    ], link=True)
    flow.nodes["hidden"].is_terminal = True
    return FlowEngine(flow)


def answered(*ids):
    return {i: QuestionState(question_id=i, status=QuestionStatus.ANSWERED) for i in ids}


class TestCalculateProgress:
    """Test progress metrics."""

    def test_no_answers(self):
        metrics = calculate_progress(build_engine(), {}, {})
        assert metrics.total_questions == 3
        assert metrics.required_questions == 2
        assert metrics.answered_questions == 0
        assert metrics.remaining_questions == 3
        assert metrics.progress_percent == 0
        assert metrics.estimated_time_remaining == 90

    def test_weighted_progress(self):
        # required 1/2 = 50%, overall 1/3 = 33.3%: 0.7 * 50 + 0.3 * 33.3 = 45
        metrics = calculate_progress(build_engine(), answered("r1"), {"r1": "no"})
        assert metrics.progress_percent == 45
        assert metrics.required_progress_percent == 50

    def test_optional_answers_weigh_less(self):
        required_first = calculate_progress(build_engine(), answered("r1"), {"r1": "no"})
        optional_first = calculate_progress(build_engine(), answered("o1"), {})
        assert required_first.progress_percent > optional_first.progress_percent

    def test_progress_never_drops_as_required_answered(self):
        engine = build_engine()
        previous = -1
        states = {}
        for question_id in ("r1", "r2", "o1"):
            states.update(answered(question_id))
            percent = calculate_progress(engine, states, {"r1": "no"}).progress_percent
            assert percent >= previous
            previous = percent
        assert previous == 100

    def test_weight_from_settings(self):
        settings = EngineSettings(required_progress_weight=1.0)
        metrics = calculate_progress(build_engine(), answered("r1"), {"r1": "no"}, settings=settings)
        assert metrics.progress_percent == 50

    def test_only_optional_questions(self):
        flow = create_flow("f", "F", [build_node("a"), build_node("b")], link=True)
        metrics = calculate_progress(FlowEngine(flow), answered("a"), {})
        assert metrics.progress_percent == 50

    def test_zero_question_flow(self):
        engine = FlowEngine(QuestionFlow(id="empty", name="Empty", start_node_id="none"))
        metrics = calculate_progress(engine, {}, {})
        assert metrics.total_questions == 0
        assert metrics.progress_percent == 100

    def test_shown_question_counts_when_visible(self):
        metrics = calculate_progress(build_engine(), {}, {"r1": "yes"})
        assert metrics.total_questions == 4
        assert metrics.required_questions == 3

    def test_skip_rules_reduce_total(self):
        engine = build_engine()
        skip = SkipLogicManager(engine, [SkipRule(id="s", question_ids=["o1"], condition=True)])
        metrics = calculate_progress(engine, {}, {}, skip_manager=skip)
        assert metrics.total_questions == 2

    def test_skipped_status_not_remaining(self):
        states = {"o1": QuestionState(question_id="o1", status=QuestionStatus.SKIPPED)}
        metrics = calculate_progress(build_engine(), states, {})
        assert metrics.skipped_questions == 1
        assert metrics.remaining_questions == 2

    def test_current_position(self):
        engine = build_engine()
        assert calculate_progress(engine, {}, {}, current_node_id="r2").current_question_position == 3
        assert calculate_progress(engine, {}, {}, current_node_id="hidden").current_question_position == 0


class TestCompletion:
    """Test completion checks."""

    def test_is_flow_complete(self):
        engine = build_engine()
        assert not is_flow_complete(engine, answered("r1"), {"r1": "no"})
        assert is_flow_complete(engine, answered("r1", "r2"), {"r1": "no"})
        assert not is_flow_complete(engine, answered("r1", "r2"), {"r1": "yes"})

    def test_is_flow_complete_all_statuses(self):
        engine = build_engine()
        states = answered("r1", "r2")
        states["o1"] = QuestionState(question_id="o1", status=QuestionStatus.PENDING)
        assert not is_flow_complete(engine, states, {}, require_all_required=False)
        states["o1"].status = QuestionStatus.SKIPPED
        assert is_flow_complete(engine, states, {}, require_all_required=False)

    def test_incomplete_required(self):
        missing = get_incomplete_required_questions(build_engine(), answered("r1"), {"r1": "yes"})
        assert [q.id for q in missing] == ["r2", "hidden"]

    def test_skipped_required_does_not_block_completion(self):
        engine = build_engine()
        skip = SkipLogicManager(engine, [SkipRule(id="s", question_ids=["r2"], condition=True)])
        assert not is_flow_complete(engine, answered("r1"), {"r1": "no"})
        assert is_flow_complete(engine, answered("r1"), {"r1": "no"}, skip_manager=skip)
        missing = get_incomplete_required_questions(engine, {}, {"r1": "no"}, skip_manager=skip)
        assert [q.id for q in missing] == ["r1"]

    def test_completion_percentage(self):
        assert calculate_completion_percentage(1, 3) == 33
        assert calculate_completion_percentage(0, 0) == 100


class TestSections:
    """Test section progress."""

    def test_sections_in_order(self):
        sections = [
            FlowSection(id="income", name="Income", question_ids=["r2"], order=2),
            FlowSection(id="household", name="Household", question_ids=["r1", "o1"], order=1),
        ]
        progress = calculate_all_sections_progress(sections, answered("r1"))
        assert [p.section_id for p in progress] == ["household", "income"]
        assert progress[0].progress_percent == 50
        assert not progress[0].completed
        assert progress[1].answered_questions == 0


class TestTimeTracker:
    """Test elapsed time accounting."""

    def test_pause_excluded(self):
        now = [100.0]
        tracker = TimeTracker(clock=lambda: now[0])
        tracker.start()
        now[0] = 110.0
        tracker.pause()
        now[0] = 150.0
        assert tracker.get_elapsed_time() == 10.0
        tracker.resume()
        now[0] = 155.0
        assert tracker.get_elapsed_time() == 15.0

    def test_question_times(self):
        tracker = TimeTracker()
        tracker.record_question_time("q1", 4.0)
        tracker.record_question_time("q1", 2.0)
        tracker.record_question_time("q2", 6.0)
        assert tracker.get_question_time("q1") == 6.0
        assert tracker.get_average_question_time() == 6.0
        assert tracker.get_elapsed_time() == 0.0


class TestCheckpointManager:
    """Test checkpoint snapshots."""

    def test_restore_is_equal_copy(self):
        manager = CheckpointManager()
        answers = {"householdSize": 3, "members": [{"age": 40}]}
        checkpoint = manager.create_checkpoint("node2", "after household", answers)
        restored = manager.restore_checkpoint(checkpoint.id)
        assert restored == answers
        assert restored is not answers
        assert restored["members"] is not answers["members"]

    def test_snapshot_isolated_from_later_changes(self):
        manager = CheckpointManager()
        answers = {"members": [{"age": 40}]}
        original = copy.deepcopy(answers)
        checkpoint = manager.create_checkpoint("node1", "start", answers)
        answers["members"].append({"age": 5})
        manager.restore_checkpoint(checkpoint.id)["members"].clear()
        assert manager.restore_checkpoint(checkpoint.id) == original

    def test_latest_and_lookup(self):
        manager = CheckpointManager()
        first = manager.create_checkpoint("n1", "first", {})
        second = manager.create_checkpoint("n2", "second", {}, description="later")
        assert manager.get_latest_checkpoint() is second
        assert manager.get_checkpoint(first.id) is first
        assert [c.name for c in manager.get_checkpoints()] == ["first", "second"]
        assert first.id.startswith("checkpoint-")

    def test_unknown_checkpoint(self):
        manager = CheckpointManager()
        assert manager.restore_checkpoint("checkpoint-missing") is None
        assert manager.get_checkpoint("checkpoint-missing") is None
        assert manager.get_latest_checkpoint() is None

    def test_oldest_trimmed(self):
        manager = CheckpointManager(max_checkpoints=2)
        for name in ("a", "b", "c"):
            manager.create_checkpoint("n", name, {})
        assert [c.name for c in manager.get_checkpoints()] == ["b", "c"]
        manager.set_max_checkpoints(1)
        assert [c.name for c in manager.get_checkpoints()] == ["c"]
        manager.clear_checkpoints()
        assert manager.get_checkpoints() == []

    def test_snapshot_is_read_only(self):
        manager = CheckpointManager()
        checkpoint = manager.create_checkpoint("n1", "start", {"a": 1})
        with pytest.raises(TypeError):
            checkpoint.answers_snapshot["a"] = 999
        assert manager.restore_checkpoint(checkpoint.id) == {"a": 1}

    def test_nested_snapshot_changes_do_not_reach_restore(self):
        manager = CheckpointManager()
        checkpoint = manager.create_checkpoint("n1", "start", {"members": [{"age": 40}]})
        checkpoint.answers_snapshot["members"].append({"age": 5})
        manager.get_checkpoint(checkpoint.id).answers_snapshot["members"][0]["age"] = 1
        assert manager.restore_checkpoint(checkpoint.id) == {"members": [{"age": 40}]}

    def test_trimmed_checkpoint_cannot_be_restored(self):
        manager = CheckpointManager(max_checkpoints=1)
        first = manager.create_checkpoint("n1", "first", {"a": 1})
        second = manager.create_checkpoint("n2", "second", {"a": 2})
        assert manager.restore_checkpoint(first.id) is None
        assert manager.restore_checkpoint(second.id) == {"a": 2}
