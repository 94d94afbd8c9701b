"""
Rule Validator

Static checks over a rule tree. Nothing is evaluated: the validator only
walks the structure, so it is safe to run on rules from untrusted imports.

Checks performed:
    - structure (every operator node has exactly one string key)
    - nesting depth against a maximum
    - complexity score against a maximum, with an early warning
    - operators against allowed / disallowed sets
    - operand counts for operators with a fixed arity
    - required variables

Complexity score:
    2 x depth  for every object or array node
    + 1        per operator
    + 3        per array operator (map, filter, reduce, all, some, none)
    + 0.5      per variable reference
    rounded half up.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .errors import RuleStructureError
from .expressions import (
    VAR_OPERATOR,
    Expression,
    Operation,
    VariableReference,
    iter_nodes,
    parse_rule,
    to_json_value,
)
from .operators import ARRAY_OPERATORS, BENEFIT_OPERATOR_NAMES, STANDARD_OPERATORS, OperatorRegistry


INVALID_STRUCTURE = "VAL_INVALID_STRUCTURE"
UNKNOWN_OPERATOR = "VAL_UNKNOWN_OPERATOR"
DISALLOWED_OPERATOR = "VAL_DISALLOWED_OPERATOR"
MAX_DEPTH_EXCEEDED = "VAL_MAX_DEPTH"
MAX_COMPLEXITY_EXCEEDED = "VAL_MAX_COMPLEXITY"
INVALID_OPERANDS = "VAL_INVALID_OPERANDS"
MISSING_REQUIRED_VARIABLE = "VAL_MISSING_VARIABLE"
COMPLEXITY_WARNING = "COMPLEXITY_WARNING"

# Operand count bounds (minimum, maximum); None means unbounded.
OPERAND_COUNTS: Dict[str, tuple] = {
    "==": (2, 2),
    "===": (2, 2),
    "!=": (2, 2),
    "!==": (2, 2),
    ">": (2, 2),
    ">=": (2, 2),
    "<": (2, 3),
    "<=": (2, 3),
    "/": (2, 2),
    "%": (2, 2),
    "-": (1, 2),
    "!": (1, 1),
    "!!": (1, 1),
    "in": (2, 2),
    "substr": (2, 3),
    "map": (2, 2),
    "filter": (2, 2),
    "reduce": (2, 3),
    "all": (2, 2),
    "some": (2, 2),
    "none": (2, 2),
    "missing_some": (2, 2),
    "between": (3, 3),
    "within_percent": (3, 3),
    "matches_any": (2, 2),
    "age_from_dob": (1, 1),
    "date_in_past": (1, 1),
    "date_in_future": (1, 1),
}


@dataclass
class ValidationIssue:
    """A validation error or warning."""

    message: str
    code: str
    severity: str = "error"


@dataclass
class ValidationOptions:
    """
    Validation settings.

    allowed_operators defaults to the standard operators plus the
    benefit-domain operators. Pass an OperatorRegistry to validate_rule()
    to accept exactly what an Interpreter can run.
    """

    allowed_operators: Optional[Sequence[str]] = None
    disallowed_operators: Sequence[str] = ()
    max_depth: int = 20
    max_complexity: int = 100
    complexity_warning_ratio: float = 0.8
    required_variables: Sequence[str] = ()
    strict: bool = False

    @classmethod
    def from_settings(cls, settings, **overrides) -> "ValidationOptions":
        values = dict(
            max_depth=settings.validation_max_depth,
            max_complexity=settings.max_complexity,
            complexity_warning_ratio=settings.complexity_warning_ratio,
        )
        values.update(overrides)
        return cls(**values)


@dataclass
class ValidationResult:
    """Outcome of validate_rule()."""

    valid: bool
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)
    operators: List[str] = field(default_factory=list)
    variables: List[str] = field(default_factory=list)
    complexity: int = 0
    depth: int = 0

    def add_error(self, message: str, code: str, severity: str = "error") -> None:
        self.errors.append(ValidationIssue(message, code, severity))

    def add_warning(self, message: str, code: str) -> None:
        self.warnings.append(ValidationIssue(message, code, "warning"))


def validate_rule(rule: Any, options: Optional[ValidationOptions] = None,
                  registry: Optional[OperatorRegistry] = None) -> ValidationResult:
    """
    Validate a rule tree without evaluating it.

    Args:
        rule: Raw JSON rule tree or parsed Expression
        options: Validation options (defaults apply when omitted)
        registry: When given, its operator names are the allowed set

    Returns:
        ValidationResult; structural defects make it invalid and stop
        further checks.
    """
    opts = options or ValidationOptions()
    result = ValidationResult(valid=False)

    raw = to_json_value(rule) if isinstance(rule, Expression) else rule
    try:
        expr = parse_rule(raw)
    except RuleStructureError as exc:
        result.add_error(str(exc), INVALID_STRUCTURE, "critical")
        return result

    result.depth = calculate_depth(raw)
    if result.depth > opts.max_depth:
        result.add_error(
            f"Rule depth ({result.depth}) exceeds maximum ({opts.max_depth})", MAX_DEPTH_EXCEEDED
        )

    result.complexity = calculate_complexity(raw)
    if result.complexity > opts.max_complexity:
        result.add_error(
            f"Rule complexity ({result.complexity}) exceeds maximum ({opts.max_complexity})",
            MAX_COMPLEXITY_EXCEEDED,
        )
    if result.complexity > opts.max_complexity * opts.complexity_warning_ratio:
        result.add_warning(
            f"Rule complexity ({result.complexity}) is approaching maximum; "
            "consider splitting it into several rules",
            COMPLEXITY_WARNING,
        )

    result.operators = extract_operators(expr)
    result.variables = extract_variables(expr)

    allowed = _allowed_operators(opts, registry)
    _check_operators(result, opts, allowed)
    _check_operands(result, expr)

    for required in opts.required_variables:
        if required not in result.variables:
            result.add_error(
                f"Required variable {required!r} not found in rule", MISSING_REQUIRED_VARIABLE
            )

    result.valid = not result.errors
    return result


def validate_rules(rules: Iterable[Any], options: Optional[ValidationOptions] = None,
                   registry: Optional[OperatorRegistry] = None) -> List[ValidationResult]:
    return [validate_rule(rule, options, registry) for rule in rules]


def is_valid_rule(rule: Any, options: Optional[ValidationOptions] = None,
                  registry: Optional[OperatorRegistry] = None) -> bool:
    return validate_rule(rule, options, registry).valid


# =============================================================================
# METRICS
# =============================================================================

def calculate_depth(raw: Any, current: int = 0) -> int:
    """Nesting depth of a raw rule tree, counting object and array levels."""
    deepest = current
    stack = [(raw, current)]
    while stack:
        node, depth = stack.pop()
        deepest = max(deepest, depth)
        if isinstance(node, dict):
            stack.extend((child, depth + 1) for child in node.values())
        elif isinstance(node, (list, tuple)):
            stack.extend((child, depth + 1) for child in node)
    return deepest


def calculate_complexity(raw: Any) -> int:
    score = 0.0
    stack = [(raw, 0)]
    while stack:
        node, depth = stack.pop()
        if isinstance(node, (list, tuple)):
            score += depth * 2
            stack.extend((item, depth + 1) for item in node)
        elif isinstance(node, dict):
            score += depth * 2
            for key, value in node.items():
                if key == VAR_OPERATOR:
                    score += 0.5
                elif key in ARRAY_OPERATORS:
                    score += 3
                else:
                    score += 1
                stack.append((value, depth + 1))
    return int(math.floor(score + 0.5))


def extract_operators(expr: Expression) -> List[str]:
    """Deduplicated operator names (excluding var), in first-seen order."""
    seen: List[str] = []
    for node in iter_nodes(expr):
        if isinstance(node, Operation) and node.operator not in seen:
            seen.append(node.operator)
    return seen


def extract_variables(expr: Expression) -> List[str]:
    """Deduplicated var paths, in first-seen order."""
    seen: List[str] = []
    for node in iter_nodes(expr):
        if isinstance(node, VariableReference) and node.name and node.name not in seen:
            seen.append(node.name)
    return seen


# =============================================================================
# CHECKS
# =============================================================================

def _allowed_operators(opts: ValidationOptions, registry: Optional[OperatorRegistry]) -> set:
    if registry is not None:
        return set(registry.names())
    if opts.allowed_operators is not None:
        return set(opts.allowed_operators)
    return set(STANDARD_OPERATORS) | set(BENEFIT_OPERATOR_NAMES)


def _check_operators(result: ValidationResult, opts: ValidationOptions, allowed: set) -> None:
    for operator in result.operators:
        if operator in opts.disallowed_operators:
            result.add_error(f"Operator {operator!r} is disallowed", DISALLOWED_OPERATOR)
        if operator not in allowed:
            if opts.strict:
                result.add_error(f"Unknown operator {operator!r}", UNKNOWN_OPERATOR)
            else:
                result.add_warning(f"Unknown operator {operator!r} - may be custom", UNKNOWN_OPERATOR)


def _check_operands(result: ValidationResult, expr: Expression) -> None:
    reported = set()
    for node in iter_nodes(expr):
        if not isinstance(node, Operation) or node.bare:
            continue
        bounds = OPERAND_COUNTS.get(node.operator)
        if bounds is None:
            continue
        low, high = bounds
        count = len(node.operands)
        if count < low or (high is not None and count > high):
            key = (node.operator, count)
            if key in reported:
                continue
            reported.add(key)
            expected = str(low) if low == high else f"{low} to {high}"
            result.add_error(
                f"Operator {node.operator!r} expects {expected} operands, got {count}",
                INVALID_OPERANDS,
            )
