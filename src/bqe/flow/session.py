"""
Questionnaire Session

One user's pass through a QuestionFlow. Ties together navigation,
answers, question states, progress and checkpoints.

Lifecycle:

    NOT_STARTED --start--> IN_PROGRESS --pause--> PAUSED
                               ^                    |
                               +-------resume-------+
    IN_PROGRESS / PAUSED --complete--> COMPLETED

Reaching the end of the flow with next() completes the session.

ARCHITECTURAL RULE:
    Lifecycle misuse (answering before start, resuming a running
    session) raises SessionStateError. Navigation failures are
    returned as NavigationResult(success=False) and leave the session
    exactly as it was.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from ..config import EngineSettings
from ..errors import FlowDefinitionError, SessionStateError
from ..interpreter import Interpreter
from .checkpoint import Checkpoint, CheckpointManager
from .engine import FlowEngine
from .graph import QuestionDefinition, QuestionFlow
from .navigation import NavigationManager, NavigationResult
from .progress import ProgressMetrics, QuestionState, QuestionStatus, TimeTracker, calculate_progress
from .skip_logic import SkipLogicManager, SkipRule

logger = logging.getLogger(__name__)


class SessionStatus(Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"


class FlowEventType(Enum):
    START = "start"
    QUESTION_ANSWERED = "question_answered"
    NAVIGATION = "navigation"
    SKIP = "skip"
    BRANCH = "branch"
    COMPLETE = "complete"


@dataclass(frozen=True)
class FlowEvent:
    type: FlowEventType
    timestamp: datetime
    node_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


class QuestionnaireSession:
    """
    Example:
        session = QuestionnaireSession(build_screening_flow())
        session.start()
        session.answer("q_household_size", 3)
        session.next()
    """

    def __init__(self, flow: QuestionFlow, skip_rules: Optional[List[SkipRule]] = None,
                 interpreter: Optional[Interpreter] = None,
                 settings: Optional[EngineSettings] = None):
        self.flow = flow
        self.settings = settings or EngineSettings()
        self.engine = FlowEngine(flow, interpreter or Interpreter.for_benefits(self.settings))
        self.skip_manager = SkipLogicManager(self.engine, skip_rules)
        self.navigation = NavigationManager(self.engine, self.skip_manager, self.settings)
        self.checkpoints = CheckpointManager(self.settings.max_checkpoints)
        self.timer = TimeTracker()

        self.status = SessionStatus.NOT_STARTED
        self.current_node_id: Optional[str] = None
        self.question_states: Dict[str, QuestionState] = {
            q.id: QuestionState(question_id=q.id) for q in flow.questions()
        }
        self.events: List[FlowEvent] = []
        self.started_at: Optional[datetime] = None
        self.completed_at: Optional[datetime] = None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self, answers: Optional[Dict[str, Any]] = None) -> None:
        self._require(SessionStatus.NOT_STARTED, "start")
        if self.flow.get_node(self.flow.start_node_id) is None:
            raise FlowDefinitionError(f"Start node {self.flow.start_node_id} not found")
        if answers:
            self.navigation.set_context(answers)
        self.status = SessionStatus.IN_PROGRESS
        self.started_at = datetime.now()
        self.timer.start()
        self.navigation.reset_history(self.flow.start_node_id)
        self._enter(self.flow.start_node_id)
        self._record(FlowEventType.START, self.flow.start_node_id)

    def pause(self) -> None:
        self._require(SessionStatus.IN_PROGRESS, "pause")
        self.status = SessionStatus.PAUSED
        self.timer.pause()

    def resume(self) -> None:
        self._require(SessionStatus.PAUSED, "resume")
        self.status = SessionStatus.IN_PROGRESS
        self.timer.resume()

    def complete(self) -> None:
        self._require((SessionStatus.IN_PROGRESS, SessionStatus.PAUSED), "complete")
        self.timer.resume()
        self.status = SessionStatus.COMPLETED
        self.completed_at = datetime.now()
        self._record(FlowEventType.COMPLETE, self.current_node_id)

    @property
    def is_completed(self) -> bool:
        return self.status == SessionStatus.COMPLETED

    # -------------------------------------------------------------------------
    # Answers
    # -------------------------------------------------------------------------

    @property
    def answers(self) -> Dict[str, Any]:
        return self.navigation.get_context()

    def current_question(self) -> Optional[QuestionDefinition]:
        return self.flow.get_question(self.current_node_id)

    def answer(self, question_id: str, value: Any) -> None:
        """Store an answer under the question's field name."""
        self._require(SessionStatus.IN_PROGRESS, "answer")
        node = self.flow.find_node_by_question(question_id)
        if node is None:
            raise FlowDefinitionError(f"Question {question_id} not found")
        self.navigation.update_context(node.question.field_name, value)
        state = self.question_states[question_id]
        state.answer = value
        state.status = QuestionStatus.ANSWERED
        state.errors = []
        self._record(FlowEventType.QUESTION_ANSWERED, node.id,
                     {"question_id": question_id, "field_name": node.question.field_name})

    def skip_question(self, question_id: str, reason: Optional[str] = None) -> None:
        self._require(SessionStatus.IN_PROGRESS, "skip")
        if question_id not in self.question_states:
            raise FlowDefinitionError(f"Question {question_id} not found")
        self.question_states[question_id].status = QuestionStatus.SKIPPED
        self._record(FlowEventType.SKIP, self.current_node_id,
                     {"question_ids": [question_id], "reason": reason})

    # -------------------------------------------------------------------------
    # Navigation
    # -------------------------------------------------------------------------

    def next(self) -> NavigationResult:
        self._require(SessionStatus.IN_PROGRESS, "navigate")
        result = self.navigation.navigate_forward(self.current_node_id)
        if not result.success:
            return result

        for question_id in result.questions_skipped:
            state = self.question_states[question_id]
            if state.status != QuestionStatus.ANSWERED:
                state.status = QuestionStatus.HIDDEN
                state.visible = False
        if result.questions_skipped:
            self._record(FlowEventType.SKIP, self.current_node_id,
                         {"question_ids": list(result.questions_skipped)})
        if result.branch_taken:
            self._record(FlowEventType.BRANCH, self.current_node_id, {"branch_id": result.branch_id})

        if result.target_node_id is None:
            self._leave(self.current_node_id)
            self.complete()
            return result

        self._move(result.target_node_id)
        return result

    def previous(self) -> NavigationResult:
        self._require(SessionStatus.IN_PROGRESS, "navigate")
        result = self.navigation.navigate_backward(self.current_node_id)
        if result.success:
            self._move(result.target_node_id)
        return result

    def jump_to(self, node_id: str) -> NavigationResult:
        self._require(SessionStatus.IN_PROGRESS, "navigate")
        result = self.navigation.jump_to(node_id)
        if result.success:
            self._move(node_id)
        return result

    def can_go_back(self) -> bool:
        return self.status == SessionStatus.IN_PROGRESS and self.navigation.can_go_back()

    def can_go_forward(self) -> bool:
        return (self.status == SessionStatus.IN_PROGRESS
                and self.current_node_id is not None
                and self.navigation.can_go_forward(self.current_node_id))

    # -------------------------------------------------------------------------
    # Progress and checkpoints
    # -------------------------------------------------------------------------

    def progress(self) -> ProgressMetrics:
        return calculate_progress(
            self.engine, self.question_states, self.answers,
            current_node_id=self.current_node_id,
            skip_manager=self.skip_manager,
            settings=self.settings,
        )

    def create_checkpoint(self, name: str, description: Optional[str] = None) -> Checkpoint:
        self._require((SessionStatus.IN_PROGRESS, SessionStatus.PAUSED), "create a checkpoint")
        return self.checkpoints.create_checkpoint(self.current_node_id, name, self.answers, description)

    def restore_checkpoint(self, checkpoint_id: str) -> bool:
        """
        Return to a checkpoint's answers and node.

        History restarts at the checkpoint node. Returns False for an
        unknown checkpoint id.
        """
        self._require((SessionStatus.IN_PROGRESS, SessionStatus.PAUSED), "restore a checkpoint")
        checkpoint = self.checkpoints.get_checkpoint(checkpoint_id)
        if checkpoint is None:
            return False
        answers = self.checkpoints.restore_checkpoint(checkpoint_id)
        self.navigation.set_context(answers)
        for node in self.flow.nodes.values():
            state = self.question_states[node.question.id]
            if node.question.field_name in answers:
                state.status = QuestionStatus.ANSWERED
                state.answer = answers[node.question.field_name]
            else:
                state.status = QuestionStatus.PENDING
                state.answer = None
        self.navigation.reset_history(checkpoint.node_id)
        self._enter(checkpoint.node_id)
        self._record(FlowEventType.NAVIGATION, checkpoint.node_id, {"checkpoint_id": checkpoint_id})
        return True

    # -------------------------------------------------------------------------

    def _require(self, allowed, action: str) -> None:
        allowed = allowed if isinstance(allowed, tuple) else (allowed,)
        if self.status not in allowed:
            raise SessionStateError(f"Cannot {action} a session that is {self.status.value}")

    def _move(self, node_id: str) -> None:
        previous = self.current_node_id
        self._leave(previous)
        self._enter(node_id)
        self._record(FlowEventType.NAVIGATION, node_id, {"from": previous})

    def _leave(self, node_id: Optional[str]) -> None:
        question = self.flow.get_question(node_id)
        if question is not None and self.question_states[question.id].status == QuestionStatus.CURRENT:
            self.question_states[question.id].status = QuestionStatus.PENDING

    def _enter(self, node_id: str) -> None:
        self.current_node_id = node_id
        question = self.flow.get_question(node_id)
        state = self.question_states[question.id]
        state.visited = True
        state.visible = True
        state.visit_count += 1
        if state.status != QuestionStatus.ANSWERED:
            state.status = QuestionStatus.CURRENT

    def _record(self, event_type: FlowEventType, node_id: Optional[str],
                data: Optional[Dict[str, Any]] = None) -> None:
        self.events.append(FlowEvent(event_type, datetime.now(), node_id, data or {}))
        logger.debug("Session event %s at %s", event_type.value, node_id)
