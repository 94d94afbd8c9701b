"""
Expression Interpreter

Evaluates a rule tree against a data context.

ARCHITECTURAL RULE:
    The interpreter is stateless apart from its OperatorRegistry.
    It never mutates the data context, and the same (rule, context)
    pair always produces the same value.

Raw JSON rule trees are parsed on entry, so callers can hand in either
the stored JSON form or an already-parsed Expression.
"""

import logging
import time
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, List, Optional

from .errors import (
    MaxDepthExceededError,
    OperatorError,
    RuleError,
    RuleEvaluationError,
    RuleStructureError,
    UnknownOperatorError,
)
from .expressions import (
    Expression,
    ListExpression,
    Literal,
    Operation,
    VariableReference,
    parse_rule,
    to_json_value,
)
from .operators import OperatorRegistry, benefit_registry, default_registry, resolve_path

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 100

_SAME_SCOPE = object()


@dataclass
class RuleEvaluationResult:
    """Outcome of Interpreter.evaluate_safe()."""

    result: Any
    success: bool
    error: Optional[str] = None
    error_code: Optional[str] = None
    execution_time: float = 0.0


class EvaluationTracer:
    """
    Receives evaluation events. The base class ignores them.

    Subclasses (see bqe.debug) record the steps they care about.
    """

    def record_variable(self, path: str, value: Any, level: int) -> None:
        pass

    def record_operation(self, operator: str, operands: List[Any], result: Any,
                         level: int, duration: float) -> None:
        pass

    def record_failure(self, operator: str, error: Exception, level: int) -> None:
        pass


class Interpreter:
    """
    Evaluator bound to one OperatorRegistry.

    Example:
        >>> interp = Interpreter()
        >>> interp.evaluate({">": [{"var": "age"}, 18]}, {"age": 25})
        True
    """

    def __init__(self, registry: Optional[OperatorRegistry] = None,
                 max_depth: int = DEFAULT_MAX_DEPTH, strict: bool = False):
        self.registry = registry if registry is not None else default_registry()
        self.max_depth = max_depth
        self.strict = strict

    @classmethod
    def for_benefits(cls, settings=None, today: Callable[[], date] = date.today) -> "Interpreter":
        """Interpreter with base and benefit-domain operators registered."""
        interpreter = cls(registry=benefit_registry(today))
        if settings is not None:
            interpreter.max_depth = settings.max_rule_depth
            interpreter.strict = settings.strict_evaluation
        return interpreter

    @classmethod
    def from_settings(cls, settings, registry: Optional[OperatorRegistry] = None) -> "Interpreter":
        return cls(registry=registry, max_depth=settings.max_rule_depth,
                   strict=settings.strict_evaluation)

    # -------------------------------------------------------------------------

    def evaluate(self, rule: Any, context: Any = None,
                 tracer: Optional[EvaluationTracer] = None) -> Any:
        """
        Evaluate a rule tree.

        Raises:
            RuleStructureError: the raw rule tree is malformed
            UnknownOperatorError: an operator is not registered
            OperatorError: an operator rejected its operands
            MaxDepthExceededError: the tree nests deeper than max_depth
        """
        expr = parse_rule(rule)
        data = {} if context is None else context
        return self._evaluate(expr, data, 0, tracer)

    def evaluate_safe(self, rule: Any, context: Any = None,
                      strict: Optional[bool] = None) -> RuleEvaluationResult:
        """
        Evaluate and convert failures into success=False.

        In strict mode the error is re-raised instead.
        """
        strict = self.strict if strict is None else strict
        started = time.perf_counter()
        try:
            value = self.evaluate(rule, context)
        except RuleError as exc:
            elapsed = time.perf_counter() - started
            if strict:
                raise
            logger.debug("Rule evaluation failed: %s", exc)
            return RuleEvaluationResult(
                result=None,
                success=False,
                error=str(exc),
                error_code=error_code_for(exc),
                execution_time=elapsed,
            )
        return RuleEvaluationResult(
            result=value, success=True, execution_time=time.perf_counter() - started
        )

    # -------------------------------------------------------------------------

    def _evaluate(self, expr: Expression, data: Any, level: int,
                  tracer: Optional[EvaluationTracer]) -> Any:
        if level > self.max_depth:
            raise MaxDepthExceededError(self.max_depth)

        if isinstance(expr, Literal):
            return expr.value

        if isinstance(expr, VariableReference):
            value = resolve_path(data, expr.path)
            if value is None and expr.has_default:
                value = self._evaluate(expr.default, data, level + 1, tracer)
            if tracer is not None:
                tracer.record_variable(expr.name, value, level)
            return value

        if isinstance(expr, ListExpression):
            return [self._evaluate(item, data, level + 1, tracer) for item in expr.items]

        if isinstance(expr, Operation):
            return self._apply(expr, data, level, tracer)

        raise TypeError(f"Unsupported Expression type: {type(expr)}")

    def _apply(self, expr: Operation, data: Any, level: int,
               tracer: Optional[EvaluationTracer]) -> Any:
        spec = self.registry.get(expr.operator)
        if spec is None:
            error = UnknownOperatorError(expr.operator)
            if tracer is not None:
                tracer.record_failure(expr.operator, error, level)
            raise error

        started = time.perf_counter()
        try:
            if spec.lazy:
                def evaluate(node: Expression, scope: Any = _SAME_SCOPE) -> Any:
                    target = data if scope is _SAME_SCOPE else scope
                    return self._evaluate(node, target, level + 1, tracer)

                operands = [to_json_value(op) for op in expr.operands]
                result = spec.function(evaluate, expr.operands, data)
            else:
                operands = [self._evaluate(op, data, level + 1, tracer) for op in expr.operands]
                result = spec.function(*operands)
        except RuleError as exc:
            if tracer is not None and not isinstance(exc, MaxDepthExceededError):
                tracer.record_failure(expr.operator, exc, level)
            raise
        except Exception as exc:
            error = OperatorError(f"Operator {expr.operator!r} failed: {exc}")
            if tracer is not None:
                tracer.record_failure(expr.operator, error, level)
            raise error from exc

        if tracer is not None:
            tracer.record_operation(
                expr.operator, operands, result, level, time.perf_counter() - started
            )
        return result


def error_code_for(exc: Exception) -> str:
    if isinstance(exc, RuleEvaluationError):
        return exc.code
    if isinstance(exc, RuleStructureError):
        return "EVAL_INVALID_RULE"
    return "EVAL_UNKNOWN"
