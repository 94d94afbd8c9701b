"""
Rule Tree Expressions for BQE

Eligibility rules, show-if predicates, branch conditions and skip rules
are all stored on disk as JSON rule trees:

    {">": [{"var": "age"}, 18]}

Inside the package they are represented as a closed set of immutable
AST nodes, built once at the JSON boundary by parse_rule():

    Literal            JSON scalar (null, bool, number, string)
    VariableReference  {"var": "dot.path"} / {"var": ["path", default]}
    ListExpression     JSON array of rule trees
    Operation          single-key object {operator: operand(s)}

ARCHITECTURAL RULE:
    Code outside this module never inspects raw dict keys.
    It pattern-matches on these four node types.
"""

from abc import ABC
from dataclasses import dataclass, field
from typing import Any, Iterator, Tuple, Union

from .errors import RuleStructureError


VAR_OPERATOR = "var"

# Object and array levels parse_rule accepts; deeper trees are rejected
# before they can exhaust the interpreter stack.
MAX_NESTING_DEPTH = 250


class Expression(ABC):
    """
    Base class for all rule tree nodes.

    Structure only. Evaluation lives in the interpreter layer,
    static checks live in the validator.
    """
    pass


@dataclass(frozen=True)
class Literal(Expression):
    """
    A JSON scalar constant.

    Examples:
        - 18
        - 4000.5
        - "citizen"
        - True
        - None (JSON null)
    """

    value: Union[None, bool, int, float, str]


@dataclass(frozen=True)
class VariableReference(Expression):
    """
    References a field of the data context by dot path.

    Examples:
        {"var": "age"}                 -> VariableReference("age")
        {"var": "household.size"}      -> VariableReference("household.size")
        {"var": ["income", 0]}         -> VariableReference("income", Literal(0), True)
        {"var": ""}                    -> the whole context

    A path that cannot be resolved is absent (None), never an error.
    """

    path: Union[str, int]
    default: Expression = field(default_factory=lambda: Literal(None))
    has_default: bool = False

    @property
    def name(self) -> str:
        return str(self.path)


@dataclass(frozen=True)
class ListExpression(Expression):
    """An ordered list of rule trees, evaluated element-wise."""

    items: Tuple[Expression, ...] = ()


@dataclass(frozen=True)
class Operation(Expression):
    """
    An operator applied to operands.

    Example:
        {"<=": [{"var": "householdIncome"}, 4000]}

    Becomes:
        Operation(
            operator="<=",
            operands=(VariableReference("householdIncome"), Literal(4000)),
        )

    Properties:
        operator: Operator name, looked up in an OperatorRegistry
        operands: Parsed operand expressions
        bare: True when the JSON held a single operand without the
              enclosing array ({"!": {"var": "x"}}); kept only so that
              to_json_value() reproduces the original form.
    """

    operator: str
    operands: Tuple[Expression, ...] = ()
    bare: bool = field(default=False, compare=False)


RuleTree = Any


# =============================================================================
# JSON BOUNDARY
# =============================================================================

def parse_rule(raw: RuleTree, path: str = "$", depth: int = 0) -> Expression:
    """
    Parse a JSON-compatible rule tree into an Expression.

    Raises:
        RuleStructureError: for operator nodes with zero or several keys,
            non-string operator keys, malformed var operands, values
            that are not JSON-compatible, or nesting deeper than
            MAX_NESTING_DEPTH.
    """
    if isinstance(raw, Expression):
        return raw
    if depth > MAX_NESTING_DEPTH:
        raise RuleStructureError(f"Rule nests deeper than {MAX_NESTING_DEPTH} levels", path)
    if raw is None or isinstance(raw, (bool, int, float, str)):
        return Literal(raw)
    if isinstance(raw, (list, tuple)):
        return ListExpression(
            tuple(parse_rule(item, f"{path}[{i}]", depth + 1) for i, item in enumerate(raw))
        )
    if isinstance(raw, dict):
        if len(raw) == 0:
            raise RuleStructureError("Operator node has no operator key", path)
        if len(raw) > 1:
            keys = ", ".join(sorted(str(k) for k in raw))
            raise RuleStructureError(f"Operator node has multiple keys ({keys})", path)
        operator, operand = next(iter(raw.items()))
        if not isinstance(operator, str):
            raise RuleStructureError(f"Operator key must be a string, got {operator!r}", path)
        child_path = f"{path}.{operator}"
        if operator == VAR_OPERATOR:
            return _parse_var(operand, child_path, depth + 1)
        if isinstance(operand, (list, tuple)):
            operands = tuple(
                parse_rule(item, f"{child_path}[{i}]", depth + 2) for i, item in enumerate(operand)
            )
            return Operation(operator=operator, operands=operands)
        operands = (parse_rule(operand, child_path, depth + 1),)
        return Operation(operator=operator, operands=operands, bare=True)
    raise RuleStructureError(f"Unsupported rule value of type {type(raw).__name__}", path)


def _parse_var(operand: Any, path: str, depth: int) -> VariableReference:
    if isinstance(operand, (list, tuple)):
        if not operand:
            return VariableReference("")
        var_path = operand[0]
        if len(operand) > 1:
            _check_var_path(var_path, path)
            return VariableReference(
                var_path, default=parse_rule(operand[1], f"{path}[1]", depth + 1), has_default=True
            )
        operand = var_path
    if operand is None:
        return VariableReference("")
    _check_var_path(operand, path)
    return VariableReference(operand)


def _check_var_path(value: Any, path: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise RuleStructureError("var path must be a string or integer", path)


def to_json_value(expr: Expression) -> RuleTree:
    """Convert an Expression back into its JSON-compatible rule tree."""
    if isinstance(expr, Literal):
        return expr.value
    if isinstance(expr, VariableReference):
        if expr.has_default:
            return {VAR_OPERATOR: [expr.path, to_json_value(expr.default)]}
        return {VAR_OPERATOR: expr.path}
    if isinstance(expr, ListExpression):
        return [to_json_value(item) for item in expr.items]
    if isinstance(expr, Operation):
        if expr.bare and len(expr.operands) == 1:
            return {expr.operator: to_json_value(expr.operands[0])}
        return {expr.operator: [to_json_value(op) for op in expr.operands]}
    raise TypeError(f"Unsupported Expression type: {type(expr)}")


def as_expression(value: Union[Expression, RuleTree, None]) -> Union[Expression, None]:
    """Parse raw rule trees, pass through Expressions and None."""
    if value is None or isinstance(value, Expression):
        return value
    return parse_rule(value)


def iter_nodes(expr: Expression) -> Iterator[Expression]:
    """Yield every node of an expression tree in pre-order."""
    stack = [expr]
    while stack:
        node = stack.pop()
        yield node
        if isinstance(node, Operation):
            stack.extend(reversed(node.operands))
        elif isinstance(node, ListExpression):
            stack.extend(reversed(node.items))
        elif isinstance(node, VariableReference) and node.has_default:
            stack.append(node.default)


def variables_in(expr: Union[Expression, None]) -> Tuple[str, ...]:
    """Deduplicated variable paths referenced by an expression, in order."""
    if expr is None:
        return ()
    seen = []
    for node in iter_nodes(expr):
        if isinstance(node, VariableReference) and node.name and node.name not in seen:
            seen.append(node.name)
    return tuple(seen)
