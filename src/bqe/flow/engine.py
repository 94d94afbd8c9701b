"""
Flow Engine

Evaluates a QuestionFlow's conditions against an answer context:
show-if visibility, branch selection and default successors.

The engine holds no answers. Every call takes the context it should
evaluate against, so conditions always see the latest answers.

A condition that fails to evaluate (unknown operator, bad operands)
counts as not met and is logged; it never aborts navigation.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from ..expressions import Expression
from ..interpreter import Interpreter
from ..operators import truthy
from .graph import FlowBranch, FlowNode, QuestionDefinition, QuestionFlow

logger = logging.getLogger(__name__)


@dataclass
class ConditionResult:
    met: bool
    evaluation_time: float = 0.0
    error: Optional[str] = None


@dataclass
class NextNode:
    """
    Where a node leads for a given context.

    success with target_node_id None means the flow ends here.
    """

    success: bool
    target_node_id: Optional[str] = None
    branch_taken: bool = False
    branch_id: Optional[str] = None
    error: Optional[str] = None


class FlowEngine:
    def __init__(self, flow: QuestionFlow, interpreter: Optional[Interpreter] = None):
        self.flow = flow
        self.interpreter = interpreter or Interpreter.for_benefits()

    def evaluate_condition(self, condition: Optional[Expression], context: Dict[str, Any]) -> ConditionResult:
        if condition is None:
            return ConditionResult(met=True)
        evaluation = self.interpreter.evaluate_safe(condition, context, strict=False)
        if not evaluation.success:
            logger.warning("Condition evaluation failed: %s", evaluation.error)
            return ConditionResult(met=False, evaluation_time=evaluation.execution_time,
                                   error=evaluation.error)
        return ConditionResult(met=truthy(evaluation.result),
                               evaluation_time=evaluation.execution_time)

    def should_show_question(self, question: QuestionDefinition, context: Dict[str, Any]) -> bool:
        if question.show_if is None:
            return True
        return self.evaluate_condition(question.show_if, context).met

    def sorted_branches(self, node: FlowNode) -> List[FlowBranch]:
        """Branches by descending priority; sorted() is stable so ties keep declaration order."""
        return sorted(node.branches, key=lambda b: b.priority, reverse=True)

    def evaluate_branches(self, node: FlowNode, context: Dict[str, Any]) -> Optional[FlowBranch]:
        for branch in self.sorted_branches(node):
            if self.evaluate_condition(branch.condition, context).met:
                return branch
        return None

    def find_next_node(self, node_id: str, context: Dict[str, Any]) -> NextNode:
        """Successor of node_id: first true branch, else the default successor."""
        node = self.flow.get_node(node_id)
        if node is None:
            return NextNode(success=False, error=f"Node {node_id} not found")
        if node.is_terminal:
            return NextNode(success=True)

        branch = self.evaluate_branches(node, context)
        if branch is not None:
            return NextNode(success=True, target_node_id=branch.target_id,
                            branch_taken=True, branch_id=branch.id)
        if node.next_id:
            return NextNode(success=True, target_node_id=node.next_id)
        return NextNode(success=False, error=f"No next node found for {node_id} and it is not terminal")

    # -------------------------------------------------------------------------

    def traversal_order(self) -> List[str]:
        """
        Node ids breadth-first from the start node (default successor
        first, then branches by priority), followed by unreachable nodes
        in declaration order.
        """
        order: List[str] = []
        seen = set()
        queue = deque([self.flow.start_node_id])
        while queue:
            node_id = queue.popleft()
            if node_id in seen or node_id not in self.flow.nodes:
                continue
            seen.add(node_id)
            order.append(node_id)
            node = self.flow.nodes[node_id]
            if node.next_id:
                queue.append(node.next_id)
            queue.extend(b.target_id for b in self.sorted_branches(node))
        order.extend(node_id for node_id in self.flow.nodes if node_id not in seen)
        return order

    def visible_questions(self, context: Dict[str, Any],
                          skipped_question_ids: Iterable[str] = ()) -> List[QuestionDefinition]:
        """Questions whose show-if holds and no skip rule hides, in traversal order."""
        skipped = set(skipped_question_ids)
        visible = []
        for node_id in self.traversal_order():
            question = self.flow.nodes[node_id].question
            if question.id in skipped:
                continue
            if self.should_show_question(question, context):
                visible.append(question)
        return visible

    def hidden_questions(self, context: Dict[str, Any]) -> List[QuestionDefinition]:
        return [q for q in self.flow.questions() if not self.should_show_question(q, context)]

    def find_flow_path(self, context: Dict[str, Any], max_steps: int = 1000) -> List[str]:
        """
        Node ids from the start node following branches and default
        successors. Stops at the end of the flow, on an error or when a
        node repeats.
        """
        path: List[str] = []
        seen = set()
        current = self.flow.start_node_id
        while current and len(path) < max_steps:
            if current in seen or current not in self.flow.nodes:
                break
            seen.add(current)
            path.append(current)
            step = self.find_next_node(current, context)
            if not step.success:
                break
            current = step.target_node_id
        return path
