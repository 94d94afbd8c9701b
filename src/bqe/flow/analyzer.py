"""
Flow Analyzer: static diagnostics for a QuestionFlow.

Checks a flow definition before any session runs on it:
    - Structure (start node, successor and branch targets, dead ends)
    - Reachability from the start node and cycles
    - Condition validity, via the rule validator
    - Variable inventory: which answer fields the conditions read

Errors make a flow unusable (navigation would fail on it). Warnings
flag likely authoring mistakes.

IMPORTANT: This is read-only. validate_flow() never modifies the flow.
"""

from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from ..expressions import Expression, to_json_value, variables_in
from ..validator import ValidationOptions, calculate_depth, validate_rule
from .graph import QuestionFlow

MAX_CONDITION_DEPTH = 5


def _find_cycles_dfs(graph: Dict[str, List[str]], start: str, visited: Set[str],
                     rec_stack: Set[str], path: List[str]) -> Optional[List[str]]:
    """DFS to find a cycle starting from a node, with an explicit stack."""
    visited.add(start)
    rec_stack.add(start)
    path.append(start)
    stack = [iter(graph.get(start, []))]

    while stack:
        neighbor = next(stack[-1], None)
        if neighbor is None:
            stack.pop()
            rec_stack.discard(path.pop())
            continue
        if neighbor not in visited:
            visited.add(neighbor)
            rec_stack.add(neighbor)
            path.append(neighbor)
            stack.append(iter(graph.get(neighbor, [])))
        elif neighbor in rec_stack:
            cycle_start_idx = path.index(neighbor)
            return path[cycle_start_idx:] + [neighbor]

    return None


@dataclass
class FlowReport:
    """Analysis report for a questionnaire flow."""

    flow_id: str
    total_nodes: int = 0
    total_branches: int = 0
    required_questions: int = 0

    # Variable usage
    variable_usage: Dict[str, int] = field(default_factory=dict)
    undefined_variables: Set[str] = field(default_factory=set)
    unreferenced_fields: Set[str] = field(default_factory=set)

    # Graph properties
    terminal_nodes: List[str] = field(default_factory=list)
    unreachable_nodes: Set[str] = field(default_factory=set)
    has_cycles: bool = False
    cycle_example: Optional[List[str]] = None
    max_condition_depth: int = 0

    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        if msg not in self.errors:
            self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        if msg not in self.warnings:
            self.warnings.append(msg)


def _conditions(flow: QuestionFlow) -> List[Tuple[str, Expression]]:
    """(label, condition) for every show_if and branch condition."""
    found = []
    for node in flow.nodes.values():
        if node.question.show_if is not None:
            found.append((f"show_if of {node.question.id}", node.question.show_if))
        for branch in node.branches:
            found.append((f"branch {branch.id} of {node.id}", branch.condition))
    return found


def validate_flow(flow: QuestionFlow, options: Optional[ValidationOptions] = None) -> FlowReport:
    """
    Analyze a QuestionFlow.

    Variables read by conditions but not stored by any question are
    reported as undefined: they must come from the initial answers
    passed to QuestionnaireSession.start().
    """
    report = FlowReport(flow_id=flow.id)
    report.total_nodes = len(flow.nodes)
    report.total_branches = sum(len(n.branches) for n in flow.nodes.values())
    report.required_questions = sum(1 for n in flow.nodes.values() if n.question.required)

    # =========================================================================
    # 1. STRUCTURE
    # =========================================================================

    if flow.start_node_id not in flow.nodes:
        report.add_error(f"Start node {flow.start_node_id} not found")

    outgoing: Dict[str, List[str]] = defaultdict(list)
    question_ids: Set[str] = set()

    for node in flow.nodes.values():
        question = node.question
        if question.id in question_ids:
            report.add_error(f"Duplicate question id {question.id}")
        question_ids.add(question.id)
        if not question.field_name:
            report.add_error(f"Question {question.id} has no field_name")

        if node.next_id:
            if node.next_id in flow.nodes:
                outgoing[node.id].append(node.next_id)
            else:
                report.add_error(f"Node {node.id} points to missing node {node.next_id}")
        for branch in node.branches:
            if branch.target_id in flow.nodes:
                outgoing[node.id].append(branch.target_id)
            else:
                report.add_error(
                    f"Branch {branch.id} of {node.id} points to missing node {branch.target_id}"
                )

        if node.is_terminal:
            report.terminal_nodes.append(node.id)
            if node.next_id or node.branches:
                report.add_warning(f"Terminal node {node.id} has successors that are never used")
        elif not node.next_id:
            report.add_error(f"Node {node.id} is not terminal and has no default successor")

    if flow.nodes and not report.terminal_nodes:
        report.add_warning("Flow has no terminal node")

    # =========================================================================
    # 2. REACHABILITY AND CYCLES
    # =========================================================================

    reachable: Set[str] = set()
    queue = deque([flow.start_node_id] if flow.start_node_id in flow.nodes else [])
    while queue:
        node_id = queue.popleft()
        if node_id in reachable:
            continue
        reachable.add(node_id)
        queue.extend(n for n in outgoing.get(node_id, []) if n not in reachable)

    report.unreachable_nodes = {n for n in flow.nodes if n not in reachable}

    visited: Set[str] = set()
    for node_id in flow.nodes:
        if node_id not in visited:
            cycle = _find_cycles_dfs(outgoing, node_id, visited, set(), [])
            if cycle:
                report.has_cycles = True
                report.cycle_example = cycle
                break

    # =========================================================================
    # 3. CONDITIONS AND VARIABLES
    # =========================================================================

    usage: Dict[str, int] = defaultdict(int)
    for label, condition in _conditions(flow):
        raw = to_json_value(condition)
        result = validate_rule(raw, options)
        for issue in result.errors:
            report.add_error(f"Invalid {label}: {issue.message}")
        report.max_condition_depth = max(report.max_condition_depth, calculate_depth(raw))
        for name in variables_in(condition):
            usage[name.split(".")[0]] += 1
    report.variable_usage = dict(usage)

    field_names = {n.question.field_name for n in flow.nodes.values() if n.question.field_name}
    report.undefined_variables = set(usage) - field_names
    report.unreferenced_fields = field_names - set(usage)

    # =========================================================================
    # 4. WARNING FLAGS
    # =========================================================================

    if report.unreachable_nodes:
        report.add_warning(
            f"Unreachable nodes: {', '.join(sorted(report.unreachable_nodes))}"
        )

    if report.has_cycles:
        report.add_warning(
            f"Cycle detected: {' -> '.join(report.cycle_example)}"
        )

    if report.undefined_variables:
        report.add_warning(
            f"Conditions read fields no question sets: {', '.join(sorted(report.undefined_variables))}"
        )

    if report.max_condition_depth > MAX_CONDITION_DEPTH:
        report.add_warning(
            f"High condition complexity: max depth {report.max_condition_depth}"
        )

    return report
