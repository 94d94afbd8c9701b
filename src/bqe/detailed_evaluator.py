"""
Detailed Evaluator

Evaluates a rule like Interpreter.evaluate() and additionally records,
for every comparison in the tree, the compared value, the threshold,
the comparison symbol and the verdict. Those CriterionResults are what
explanations are built from.

A criterion always reads "value OP threshold": when the variable sits on
the right-hand side the symbol is mirrored ({"<": [18, {"var": "age"}]}
is recorded as age > 18).

Failures never propagate. They come back as success=False with the
error text and whatever criteria were collected.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Iterator, List, Optional

from .errors import RuleError
from .expressions import Expression, ListExpression, Operation, VariableReference, parse_rule
from .interpreter import Interpreter
from .model import CriterionResult
from .operators import ARRAY_OPERATORS, truthy

logger = logging.getLogger(__name__)


COMPARISON_OPERATORS = frozenset(
    {"<", "<=", ">", ">=", "==", "!=", "===", "!==", "in", "between", "matches_any"}
)

MIRRORED = {"<": ">", "<=": ">=", ">": "<", ">=": "<="}

RANGE_OPERATORS = frozenset({"<", "<=", "between"})


@dataclass
class DetailedEvaluationResult:
    """Outcome of evaluate_with_details()."""

    result: Any
    success: bool
    execution_time: float = 0.0
    error: Optional[str] = None
    criteria_results: List[CriterionResult] = field(default_factory=list)
    explanation: str = ""


def evaluate_with_details(rule: Any, context: Any = None,
                          interpreter: Optional[Interpreter] = None) -> DetailedEvaluationResult:
    """
    Evaluate a rule and collect per-criterion details.

    Example:
        >>> res = evaluate_with_details(
        ...     {"<=": [{"var": "householdIncome"}, 4000]}, {"householdIncome": 4167})
        >>> res.result, res.criteria_results[0].message
        (False, '4,167 exceeds the limit of 4,000')
    """
    interp = interpreter or Interpreter()
    data = {} if context is None else context
    started = time.perf_counter()
    criteria: List[CriterionResult] = []

    try:
        expr = parse_rule(rule)
        criteria = collect_criteria(expr, data, interp)
        value = interp.evaluate(expr, data)
    except RuleError as exc:
        logger.debug("Detailed evaluation failed: %s", exc)
        return DetailedEvaluationResult(
            result=False,
            success=False,
            execution_time=time.perf_counter() - started,
            error=str(exc),
            criteria_results=criteria,
        )

    return DetailedEvaluationResult(
        result=value,
        success=True,
        execution_time=time.perf_counter() - started,
        criteria_results=criteria,
        explanation=generate_explanation(criteria, truthy(value)),
    )


def collect_criteria(expr: Expression, data: Any, interpreter: Interpreter) -> List[CriterionResult]:
    """
    Criteria for every comparison node, in pre-order.

    The body of map, filter, reduce, all, some and none runs once per
    array element with the element as its data, so comparisons inside it
    are not criteria of the outer context and are not collected.
    """
    criteria = []
    for node in _outer_scope_nodes(expr):
        if isinstance(node, Operation) and node.operator in COMPARISON_OPERATORS:
            criterion = _criterion_for(node, data, interpreter)
            if criterion is not None:
                criteria.append(criterion)
    return criteria


def _outer_scope_nodes(expr: Expression) -> Iterator[Expression]:
    stack = [expr]
    while stack:
        node = stack.pop()
        yield node
        if isinstance(node, Operation):
            operands = list(node.operands)
            if node.operator in ARRAY_OPERATORS and len(operands) > 1:
                del operands[1]
            stack.extend(reversed(operands))
        elif isinstance(node, ListExpression):
            stack.extend(reversed(node.items))
        elif isinstance(node, VariableReference) and node.has_default:
            stack.append(node.default)


def _criterion_for(node: Operation, data: Any, interpreter: Interpreter) -> Optional[CriterionResult]:
    operands = node.operands
    if len(operands) < 2:
        return None

    symbol = node.operator
    try:
        if len(operands) == 3 and symbol in RANGE_OPERATORS:
            if symbol == "between":
                variable, bounds = operands[0], (operands[1], operands[2])
            else:
                variable, bounds = operands[1], (operands[0], operands[2])
                symbol = "between"
            if not isinstance(variable, VariableReference):
                return None
            threshold = [interpreter.evaluate(b, data) for b in bounds]
            if any(t is None for t in threshold):
                return None
        elif isinstance(operands[0], VariableReference):
            variable = operands[0]
            threshold = interpreter.evaluate(operands[1], data)
        elif isinstance(operands[1], VariableReference) and symbol not in ("in", "matches_any"):
            variable = operands[1]
            threshold = interpreter.evaluate(operands[0], data)
            symbol = MIRRORED.get(symbol, symbol)
        else:
            return None

        value = interpreter.evaluate(variable, data)
        if value is None or threshold is None:
            return None
        met = truthy(interpreter.evaluate(node, data))
    except RuleError as exc:
        logger.debug("Skipping criterion for %r: %s", node.operator, exc)
        return None

    return CriterionResult(
        criterion=variable.name,
        met=met,
        value=value,
        threshold=threshold,
        comparison=symbol,
        message=format_comparison(symbol, value, threshold, met),
    )


# =============================================================================
# TEXT
# =============================================================================

def format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, int):
        return f"{value:,}"
    if isinstance(value, float):
        if value.is_integer():
            return f"{int(value):,}"
        return f"{value:,.2f}"
    if isinstance(value, (list, tuple)):
        return ", ".join(format_value(v) for v in value)
    return str(value)


def format_comparison(symbol: str, value: Any, threshold: Any, met: bool) -> str:
    """Plain-language sentence for one criterion."""
    v = format_value(value)
    if symbol == "between":
        low, high = (format_value(t) for t in threshold)
        return f"{v} is within the range {low} to {high}" if met else f"{v} is outside the range {low} to {high}"
    t = format_value(threshold)
    if symbol == "<=":
        return f"{v} is within the limit of {t}" if met else f"{v} exceeds the limit of {t}"
    if symbol == "<":
        return f"{v} is below the threshold of {t}" if met else f"{v} is not below the threshold of {t}"
    if symbol == ">=":
        return f"{v} meets the minimum of {t}" if met else f"{v} is below the minimum of {t}"
    if symbol == ">":
        return f"{v} exceeds the minimum of {t}" if met else f"{v} does not exceed the minimum of {t}"
    if symbol in ("==", "==="):
        return (f"{v} matches the required value of {t}" if met
                else f"{v} does not match the required value of {t}")
    if symbol in ("!=", "!=="):
        return f"{v} is different from {t} (as required)" if met else f"{v} incorrectly matches {t}"
    if symbol in ("in", "matches_any"):
        return f"{v} is one of the accepted values" if met else f"{v} is not one of the accepted values ({t})"
    return f"{v} compared to {t}"


def generate_explanation(criteria: List[CriterionResult], eligible: bool) -> str:
    if not criteria:
        return "Eligibility confirmed" if eligible else "Eligibility requirements not met"
    if eligible:
        return "All eligibility requirements have been met"
    failed = [c for c in criteria if not c.met]
    if failed:
        reasons = [c.message or f"{c.criterion} requirement not met" for c in failed]
        return "Eligibility requirements not met: " + ", ".join(reasons)
    return "Eligibility requirements not met due to program rules"
