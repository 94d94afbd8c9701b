"""
Rule Debugging

Step-by-step execution traces, variable inspection and rule inspection
for troubleshooting rules.

debug_rule() hooks a TraceRecorder into Interpreter.evaluate(), so the
trace shows exactly what the interpreter did. Operator steps are
recorded when the operator finishes, so nested steps appear before the
step that consumed them.
"""

import json
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import RuleError
from .expressions import Operation, VariableReference, iter_nodes, parse_rule
from .interpreter import EvaluationTracer, Interpreter
from .operators import resolve_path
from .validator import INVALID_STRUCTURE, ValidationOptions, validate_rule


@dataclass
class TraceStep:
    """One recorded evaluation step."""

    index: int
    description: str
    operator: str
    operands: List[Any]
    result: Any
    level: int
    duration: Optional[float] = None


@dataclass
class DebugResult:
    result: Any
    success: bool
    trace: List[TraceStep] = field(default_factory=list)
    total_time: float = 0.0
    variables_accessed: List[str] = field(default_factory=list)
    operators_used: List[str] = field(default_factory=list)
    max_depth: int = 0
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class TraceRecorder(EvaluationTracer):
    """Collects TraceSteps and usage sets while a rule evaluates."""

    def __init__(self):
        self.steps: List[TraceStep] = []
        self.variables: List[str] = []
        self.operators: List[str] = []
        self.errors: List[str] = []
        self.max_depth = 0

    def _add(self, **kwargs) -> None:
        self.steps.append(TraceStep(index=len(self.steps), **kwargs))
        self.max_depth = max(self.max_depth, kwargs["level"])

    def record_variable(self, path, value, level):
        if path not in self.variables:
            self.variables.append(path)
        self._add(description=f"Access variable: {path}", operator="var",
                  operands=[path], result=value, level=level)

    def record_operation(self, operator, operands, result, level, duration):
        if operator not in self.operators:
            self.operators.append(operator)
        self._add(description=f"Operator: {operator}", operator=operator,
                  operands=list(operands), result=result, level=level, duration=duration)

    def record_failure(self, operator, error, level):
        if operator not in self.operators:
            self.operators.append(operator)
        self.errors.append(f"Error in operator {operator!r}: {error}")
        self._add(description=f"Error in operator: {operator}", operator=operator,
                  operands=[], result=None, level=level)


def debug_rule(rule: Any, context: Any = None,
               interpreter: Optional[Interpreter] = None) -> DebugResult:
    """
    Evaluate a rule while recording an execution trace.

    The trace collected up to a failure is kept on the result.
    """
    interp = interpreter or Interpreter()
    recorder = TraceRecorder()
    warnings = [w.message for w in validate_rule(rule, registry=interp.registry).warnings]
    started = time.perf_counter()
    try:
        value = interp.evaluate(rule, context, tracer=recorder)
        success = True
        errors = list(recorder.errors)
    except RuleError as exc:
        value = None
        success = False
        errors = recorder.errors + [str(exc)]

    return DebugResult(
        result=value,
        success=success,
        trace=recorder.steps,
        total_time=time.perf_counter() - started,
        variables_accessed=recorder.variables,
        operators_used=recorder.operators,
        max_depth=recorder.max_depth,
        errors=errors,
        warnings=warnings,
    )


def format_debug_trace(trace: List[TraceStep]) -> str:
    """Render a trace as indented text, one block per step."""
    lines = ["Debug Trace:", ""]
    for step in trace:
        indent = "  " * step.level
        duration = f" ({step.duration * 1000:.2f}ms)" if step.duration else ""
        lines.append(f"{indent}[{step.index}] {step.description}{duration}")
        if step.operands:
            lines.append(f"{indent}    Operands: {json.dumps(step.operands, default=str)}")
        lines.append(f"{indent}    Result: {json.dumps(step.result, default=str)}")
        lines.append("")
    return "\n".join(lines)


# =============================================================================
# INSPECTION
# =============================================================================

@dataclass
class VariableInspection:
    name: str
    value: Any
    type: str
    defined: bool
    truthy: bool
    path: List[str]


def inspect_variable(name: str, context: Any) -> VariableInspection:
    value = resolve_path(context, name)
    return VariableInspection(
        name=name,
        value=value,
        type=type(value).__name__,
        defined=value is not None,
        truthy=bool(value),
        path=name.split("."),
    )


def inspect_all_variables(rule: Any, context: Any) -> List[VariableInspection]:
    return [inspect_variable(name, context) for name in validate_rule(rule).variables]


@dataclass
class RuleInspection:
    """
    Static summary of a rule.

    Properties:
        structure: operators, variables, depth, complexity
        validation: valid flag with error and warning messages
        variable_usage / operator_usage: occurrence counts
        suggestions: improvement hints
    """

    structure: Dict[str, Any]
    validation: Dict[str, Any]
    variable_usage: Dict[str, int]
    operator_usage: Dict[str, int]
    suggestions: List[str]


def inspect_rule(rule: Any, context: Any = None,
                 options: Optional[ValidationOptions] = None) -> RuleInspection:
    opts = options or ValidationOptions()
    validation = validate_rule(rule, opts)

    variable_usage: Counter = Counter()
    operator_usage: Counter = Counter()
    if not any(e.code == INVALID_STRUCTURE for e in validation.errors):
        for node in iter_nodes(parse_rule(rule)):
            if isinstance(node, VariableReference):
                variable_usage[node.name] += 1
            elif isinstance(node, Operation):
                operator_usage[node.operator] += 1

    suggestions = []
    if validation.complexity > opts.max_complexity * opts.complexity_warning_ratio:
        suggestions.append("Rule complexity is high - consider breaking into multiple rules")
    if validation.warnings:
        suggestions.append(f"Address {len(validation.warnings)} validation warnings")
    if isinstance(context, dict):
        unused = [key for key in context if key not in validation.variables]
        if unused:
            suggestions.append(f"Data contains unused fields: {', '.join(unused)}")

    return RuleInspection(
        structure={
            "operators": validation.operators,
            "variables": validation.variables,
            "depth": validation.depth,
            "complexity": validation.complexity,
        },
        validation={
            "valid": validation.valid,
            "errors": [e.message for e in validation.errors],
            "warnings": [w.message for w in validation.warnings],
        },
        variable_usage=dict(variable_usage),
        operator_usage=dict(operator_usage),
        suggestions=suggestions,
    )


@dataclass
class EvaluationComparison:
    result1: Any
    result2: Any
    same: bool
    differences: List[Dict[str, Any]]


def compare_evaluations(rule: Any, context1: Dict[str, Any], context2: Dict[str, Any],
                        interpreter: Optional[Interpreter] = None) -> EvaluationComparison:
    """Evaluate one rule against two contexts and list the differing fields."""
    interp = interpreter or Interpreter()
    first = interp.evaluate_safe(rule, context1)
    second = interp.evaluate_safe(rule, context2)

    differences = []
    for key in list(dict.fromkeys(list(context1) + list(context2))):
        value1, value2 = context1.get(key), context2.get(key)
        if value1 != value2:
            differences.append({"field": key, "value1": value1, "value2": value2})

    return EvaluationComparison(
        result1=first.result,
        result2=second.result,
        same=first.result == second.result,
        differences=differences,
    )
