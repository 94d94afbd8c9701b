"""
Navigation

NavigationManager moves through a QuestionFlow for one session:
forward past hidden and skipped questions, backward through the
nodes actually shown, and directly to a node.

History is an immutable NavigationHistory value. The manager swaps in a
new value on every successful move and hands it back on the result,
so a caller can compare histories between steps. Only nodes that were
shown are ever pushed, which makes backward navigation retrace forward
navigation without revisiting skipped questions.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..config import EngineSettings
from .engine import FlowEngine
from .skip_logic import SkipLogicManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NavigationHistory:
    """Stack of visited node ids, oldest first."""

    entries: Tuple[str, ...] = ()

    @property
    def top(self) -> Optional[str]:
        return self.entries[-1] if self.entries else None

    def push(self, node_id: str) -> "NavigationHistory":
        return NavigationHistory(self.entries + (node_id,))

    def pop(self) -> "NavigationHistory":
        return NavigationHistory(self.entries[:-1])

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)


@dataclass
class NavigationResult:
    """
    Outcome of a navigation call.

    success with target_node_id None means the end of the flow was
    reached. On failure the history is the unchanged previous history.
    """

    success: bool
    target_node_id: Optional[str] = None
    previous_node_id: Optional[str] = None
    error: Optional[str] = None
    branch_taken: bool = False
    branch_id: Optional[str] = None
    questions_skipped: List[str] = field(default_factory=list)
    history: NavigationHistory = field(default_factory=NavigationHistory)


class NavigationManager:
    def __init__(self, engine: FlowEngine, skip_manager: Optional[SkipLogicManager] = None,
                 settings: Optional[EngineSettings] = None):
        self.engine = engine
        self.skip_manager = skip_manager or SkipLogicManager(engine)
        self.max_steps = (settings or EngineSettings()).max_navigation_steps
        self.history = NavigationHistory()
        self._context: Dict[str, Any] = {}

    @property
    def flow(self):
        return self.engine.flow

    # -------------------------------------------------------------------------
    # Context
    # -------------------------------------------------------------------------

    def get_context(self) -> Dict[str, Any]:
        return dict(self._context)

    def set_context(self, context: Dict[str, Any]) -> None:
        self._context = dict(context)

    def update_context(self, field_name: str, value: Any) -> None:
        self._context[field_name] = value

    # -------------------------------------------------------------------------
    # Moves
    # -------------------------------------------------------------------------

    def is_skipped(self, node_id: str, skipped_ids: List[str]) -> bool:
        question = self.flow.get_question(node_id)
        if question is None:
            return False
        return question.id in skipped_ids or not self.engine.should_show_question(question, self._context)

    def navigate_forward(self, from_id: str) -> NavigationResult:
        """
        Move to the next node that should be shown.

        Branches of from_id are tried in priority order, then its default
        successor. From there, nodes whose question is hidden or skipped
        are passed over and reported in questions_skipped.
        """
        if self.flow.get_node(from_id) is None:
            return self._failure(f"Node {from_id} not found", from_id)

        context = self._context
        skipped_ids = self.skip_manager.get_questions_to_skip(context)
        first = self.engine.find_next_node(from_id, context)
        if not first.success:
            return self._failure(first.error, from_id)

        step = first
        passed_over: List[str] = []
        while step.success and step.target_node_id is not None:
            target = step.target_node_id
            if self.flow.get_node(target) is None:
                return self._failure(f"Node {target} not found", from_id)
            if not self.is_skipped(target, skipped_ids):
                break
            if len(passed_over) >= self.max_steps:
                return self._failure(f"Skipped more than {self.max_steps} nodes after {from_id}", from_id)
            passed_over.append(self.flow.get_question(target).id)
            step = self.engine.find_next_node(target, context)

        if not step.success:
            return self._failure(step.error, from_id)

        history = self.history if len(self.history) else self.history.push(from_id)
        if step.target_node_id is not None:
            history = history.push(step.target_node_id)
        self.history = history

        if passed_over:
            logger.debug("Skipped %s after %s", passed_over, from_id)
        return NavigationResult(
            success=True,
            target_node_id=step.target_node_id,
            previous_node_id=from_id,
            branch_taken=first.branch_taken,
            branch_id=first.branch_id,
            questions_skipped=passed_over,
            history=self.history,
        )

    def navigate_backward(self, from_id: str) -> NavigationResult:
        """Pop history until its top differs from from_id; that node is the target."""
        history = self.history
        while history.top == from_id:
            history = history.pop()
        if history.top is None:
            return self._failure("No previous node available", from_id)
        self.history = history
        return NavigationResult(
            success=True,
            target_node_id=history.top,
            previous_node_id=from_id,
            history=history,
        )

    def jump_to(self, node_id: str) -> NavigationResult:
        if self.flow.get_node(node_id) is None:
            return self._failure(f"Node {node_id} not found", None)
        previous = self.history.top
        if previous != node_id:
            self.history = self.history.push(node_id)
        return NavigationResult(success=True, target_node_id=node_id,
                                previous_node_id=previous, history=self.history)

    def _failure(self, error: Optional[str], from_id: Optional[str]) -> NavigationResult:
        logger.debug("Navigation from %s failed: %s", from_id, error)
        return NavigationResult(success=False, previous_node_id=from_id, error=error,
                                history=self.history)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def can_go_back(self) -> bool:
        return len(self.history) > 1

    def can_go_forward(self, node_id: str) -> bool:
        step = self.engine.find_next_node(node_id, self._context)
        return step.success and step.target_node_id is not None

    def get_history(self) -> List[str]:
        return list(self.history.entries)

    def clear_history(self) -> None:
        self.history = NavigationHistory()

    def reset_history(self, node_id: str) -> None:
        self.history = NavigationHistory((node_id,))
