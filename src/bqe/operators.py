"""
Operator Registry

Every operator a rule tree may use is looked up in an OperatorRegistry
owned by an Interpreter instance. There is no process-wide table:
two interpreters with different registries never interfere, and a test
that needs an extra operator registers it on its own registry.

Two kinds of operators exist:

    eager   fn(*values)                   operands evaluated first
    lazy    fn(evaluate, operands, data)  operator decides what to evaluate
                                          (and/or/if short-circuit, map/filter
                                          rebind the data context per element)

Base operators cover comparison, boolean logic, conditionals, arithmetic,
strings, arrays and data helpers. Benefit-domain operators are registered
separately with register_benefit_operators().
"""

from __future__ import annotations

import logging
import math
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from .errors import OperatorError
from .expressions import VAR_OPERATOR, Expression

logger = logging.getLogger(__name__)


# =============================================================================
# VALUE HELPERS
# =============================================================================

def truthy(value: Any) -> bool:
    """Rule truthiness: empty lists and strings, 0 and null are false."""
    return bool(value)


def to_number(value: Any) -> Optional[float]:
    """Coerce a value to a number, or None when it has no numeric meaning."""
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
        return int(number) if number.is_integer() and "." not in text and "e" not in text.lower() else number
    return None


def _require_number(value: Any, operator: str) -> float:
    number = to_number(value)
    if number is None:
        raise OperatorError(f"Operator {operator!r} expects numeric operands, got {value!r}")
    return number


def stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def resolve_path(data: Any, path: Any) -> Any:
    """
    Look up a dot path in the data context.

    Only mapping keys and list indexes are followed, never attributes,
    so a rule can read nothing but the values it was handed.
    Missing segments resolve to None.
    """
    if path is None or path == "":
        return data
    segments = str(path).split(".")
    current = data
    for segment in segments:
        if isinstance(current, Mapping):
            if segment not in current:
                return None
            current = current[segment]
        elif isinstance(current, (list, tuple)):
            try:
                index = int(segment)
            except ValueError:
                return None
            if index < 0 or index >= len(current):
                return None
            current = current[index]
        else:
            return None
    return current


def is_missing(value: Any) -> bool:
    """A field counts as missing when it is absent, null or an empty string."""
    return value is None or value == ""


# =============================================================================
# COMPARISON
# =============================================================================

def loose_equals(a: Any, b: Any) -> bool:
    if a is None or b is None:
        return a is None and b is None
    if isinstance(a, (bool, int, float)) or isinstance(b, (bool, int, float)):
        na, nb = to_number(a), to_number(b)
        if na is not None and nb is not None:
            return na == nb
    return a == b


def strict_equals(a: Any, b: Any) -> bool:
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return a == b
    return type(a) is type(b) and a == b


def _ordered(a: Any, b: Any, compare: Callable[[Any, Any], bool]) -> bool:
    if a is None or b is None:
        return False
    if isinstance(a, str) and isinstance(b, str):
        na, nb = to_number(a), to_number(b)
        if na is None or nb is None:
            return compare(a, b)
        return compare(na, nb)
    na, nb = to_number(a), to_number(b)
    if na is None or nb is None:
        return False
    return compare(na, nb)


def _chain(compare: Callable[[Any, Any], bool]) -> Callable[..., bool]:
    """Two operands compare a and b; three test a OP b OP c, even when c is absent."""
    def op(*values: Any) -> bool:
        a, b = (values + (None, None))[:2]
        if len(values) < 3:
            return _ordered(a, b, compare)
        return _ordered(a, b, compare) and _ordered(b, values[2], compare)
    return op


def _greater(compare: Callable[[Any, Any], bool]) -> Callable[..., bool]:
    def op(a: Any = None, b: Any = None, *rest: Any) -> bool:
        return _ordered(a, b, compare)
    return op


# =============================================================================
# ARITHMETIC
# =============================================================================

def _add(*values: Any) -> float:
    return sum(_require_number(v, "+") for v in values)


def _subtract(*values: Any) -> float:
    if len(values) == 1:
        return -_require_number(values[0], "-")
    if len(values) != 2:
        raise OperatorError(f"Operator '-' expects 1 or 2 operands, got {len(values)}")
    return _require_number(values[0], "-") - _require_number(values[1], "-")


def _multiply(*values: Any) -> float:
    result = 1
    for v in values:
        result *= _require_number(v, "*")
    return result


def _divide(a: Any, b: Any) -> float:
    divisor = _require_number(b, "/")
    if divisor == 0:
        raise OperatorError("Division by zero")
    return _require_number(a, "/") / divisor


def _modulo(a: Any, b: Any) -> float:
    divisor = _require_number(b, "%")
    if divisor == 0:
        raise OperatorError("Modulo by zero")
    return math.fmod(_require_number(a, "%"), divisor)


def _minimum(*values: Any) -> Optional[float]:
    numbers = [_require_number(v, "min") for v in values]
    return min(numbers) if numbers else None


def _maximum(*values: Any) -> Optional[float]:
    numbers = [_require_number(v, "max") for v in values]
    return max(numbers) if numbers else None


# =============================================================================
# STRINGS AND ARRAYS
# =============================================================================

def _cat(*values: Any) -> str:
    return "".join(stringify(v) for v in values)


def _substr(source: Any, start: Any = 0, length: Any = None) -> str:
    text = stringify(source)
    begin = int(_require_number(start, "substr"))
    if begin < 0:
        begin = max(len(text) + begin, 0)
    if length is None:
        return text[begin:]
    count = int(_require_number(length, "substr"))
    if count < 0:
        return text[begin:len(text) + count]
    return text[begin:begin + count]


def _in(needle: Any, haystack: Any) -> bool:
    if haystack is None:
        return False
    if isinstance(haystack, str):
        return stringify(needle) in haystack
    if isinstance(haystack, (list, tuple)):
        return any(loose_equals(needle, item) for item in haystack)
    return False


def _merge(*values: Any) -> List[Any]:
    merged: List[Any] = []
    for v in values:
        if isinstance(v, (list, tuple)):
            merged.extend(v)
        else:
            merged.append(v)
    return merged


def _log(value: Any = None) -> Any:
    logger.info("rule log: %r", value)
    return value


# =============================================================================
# LAZY OPERATORS
# =============================================================================

Evaluate = Callable[..., Any]


def _if(evaluate: Evaluate, operands: Sequence[Expression], data: Any) -> Any:
    index = 0
    while index + 1 < len(operands):
        if truthy(evaluate(operands[index])):
            return evaluate(operands[index + 1])
        index += 2
    if index < len(operands):
        return evaluate(operands[index])
    return None


def _and(evaluate: Evaluate, operands: Sequence[Expression], data: Any) -> Any:
    value = None
    for operand in operands:
        value = evaluate(operand)
        if not truthy(value):
            return value
    return value


def _or(evaluate: Evaluate, operands: Sequence[Expression], data: Any) -> Any:
    value = None
    for operand in operands:
        value = evaluate(operand)
        if truthy(value):
            return value
    return value


def _not(evaluate: Evaluate, operands: Sequence[Expression], data: Any) -> bool:
    return not truthy(evaluate(operands[0])) if operands else True


def _double_not(evaluate: Evaluate, operands: Sequence[Expression], data: Any) -> bool:
    return truthy(evaluate(operands[0])) if operands else False


def _array_operand(evaluate: Evaluate, operands: Sequence[Expression], operator: str) -> List[Any]:
    if not operands:
        raise OperatorError(f"Operator {operator!r} expects an array operand")
    items = evaluate(operands[0])
    if items is None:
        return []
    if not isinstance(items, (list, tuple)):
        raise OperatorError(f"Operator {operator!r} expects an array, got {items!r}")
    return list(items)


def _body(operands: Sequence[Expression], operator: str) -> Expression:
    if len(operands) < 2:
        raise OperatorError(f"Operator {operator!r} expects an array and an expression")
    return operands[1]


def _map(evaluate: Evaluate, operands: Sequence[Expression], data: Any) -> List[Any]:
    items = _array_operand(evaluate, operands, "map")
    body = _body(operands, "map")
    return [evaluate(body, item) for item in items]


def _filter(evaluate: Evaluate, operands: Sequence[Expression], data: Any) -> List[Any]:
    items = _array_operand(evaluate, operands, "filter")
    body = _body(operands, "filter")
    return [item for item in items if truthy(evaluate(body, item))]


def _reduce(evaluate: Evaluate, operands: Sequence[Expression], data: Any) -> Any:
    items = _array_operand(evaluate, operands, "reduce")
    body = _body(operands, "reduce")
    accumulator = evaluate(operands[2]) if len(operands) > 2 else None
    for item in items:
        accumulator = evaluate(body, {"current": item, "accumulator": accumulator})
    return accumulator


def _all(evaluate: Evaluate, operands: Sequence[Expression], data: Any) -> bool:
    items = _array_operand(evaluate, operands, "all")
    if not items:
        return False
    body = _body(operands, "all")
    return all(truthy(evaluate(body, item)) for item in items)


def _some(evaluate: Evaluate, operands: Sequence[Expression], data: Any) -> bool:
    items = _array_operand(evaluate, operands, "some")
    body = _body(operands, "some")
    return any(truthy(evaluate(body, item)) for item in items)


def _none(evaluate: Evaluate, operands: Sequence[Expression], data: Any) -> bool:
    return not _some(evaluate, operands, data)


def _missing(evaluate: Evaluate, operands: Sequence[Expression], data: Any) -> List[Any]:
    keys: List[Any] = []
    for operand in operands:
        value = evaluate(operand)
        if isinstance(value, (list, tuple)):
            keys.extend(value)
        else:
            keys.append(value)
    return [key for key in keys if is_missing(resolve_path(data, key))]


def _missing_some(evaluate: Evaluate, operands: Sequence[Expression], data: Any) -> List[Any]:
    if len(operands) < 2:
        raise OperatorError("Operator 'missing_some' expects a count and a list of fields")
    need = int(_require_number(evaluate(operands[0]), "missing_some"))
    keys = evaluate(operands[1]) or []
    missing = [key for key in keys if is_missing(resolve_path(data, key))]
    if len(keys) - len(missing) >= need:
        return []
    return missing


# =============================================================================
# BENEFIT DOMAIN OPERATORS
# =============================================================================

def _parse_date(value: Any, operator: str) -> date:
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise OperatorError(f"Operator {operator!r} expects an ISO date, got {value!r}")
    try:
        return date.fromisoformat(value[:10])
    except ValueError as exc:
        raise OperatorError(f"Operator {operator!r} got an invalid ISO date {value!r}") from exc


def make_benefit_operators(today: Callable[[], date] = date.today) -> Dict[str, Callable[..., Any]]:
    """
    Build the benefit-domain operator table.

    Args:
        today: Clock returning the evaluation date (injectable for tests)
    """

    def between(value: Any, low: Any, high: Any) -> bool:
        return _ordered(value, low, lambda a, b: a >= b) and _ordered(value, high, lambda a, b: a <= b)

    def within_percent(value: Any, target: Any, percent: Any) -> bool:
        v = _require_number(value, "within_percent")
        t = _require_number(target, "within_percent")
        p = _require_number(percent, "within_percent")
        return abs(v - t) <= t * (p / 100)

    def age_from_dob(dob: Any) -> int:
        born = _parse_date(dob, "age_from_dob")
        now = today()
        age = now.year - born.year
        if (now.month, now.day) < (born.month, born.day):
            age -= 1
        return age

    def date_in_past(value: Any) -> bool:
        return _parse_date(value, "date_in_past") < today()

    def date_in_future(value: Any) -> bool:
        return _parse_date(value, "date_in_future") > today()

    def matches_any(value: Any, options: Any) -> bool:
        if value is None or not isinstance(options, (list, tuple)):
            return False
        if isinstance(value, str):
            lowered = value.lower()
            return any(isinstance(o, str) and o.lower() == lowered for o in options)
        return any(loose_equals(value, o) for o in options)

    def count_true(items: Any) -> int:
        return sum(1 for item in items or [] if truthy(item))

    def all_true(items: Any) -> bool:
        return all(truthy(item) for item in items or [])

    def any_true(items: Any) -> bool:
        return any(truthy(item) for item in items or [])

    return {
        "between": between,
        "within_percent": within_percent,
        "age_from_dob": age_from_dob,
        "date_in_past": date_in_past,
        "date_in_future": date_in_future,
        "matches_any": matches_any,
        "count_true": count_true,
        "all_true": all_true,
        "any_true": any_true,
    }


BENEFIT_OPERATOR_NAMES: Tuple[str, ...] = tuple(make_benefit_operators())


# =============================================================================
# REGISTRY
# =============================================================================

@dataclass(frozen=True)
class OperatorSpec:
    """A registered operator."""

    name: str
    function: Callable[..., Any]
    lazy: bool = False


class OperatorRegistry:
    """
    Table of operators available to an Interpreter.

    Registration is idempotent: registering the same name again replaces
    the entry, unregistering an absent name is a no-op.
    Not thread-safe; populate it at startup.
    """

    def __init__(self, operators: Optional[Mapping[str, OperatorSpec]] = None):
        self._operators: Dict[str, OperatorSpec] = dict(operators or {})

    def register(self, name: str, function: Callable[..., Any], lazy: bool = False) -> None:
        if name == VAR_OPERATOR:
            raise ValueError("'var' is reserved for variable references")
        if not name:
            raise ValueError("Operator name must be a non-empty string")
        self._operators[name] = OperatorSpec(name=name, function=function, lazy=lazy)

    def register_many(self, operators: Mapping[str, Callable[..., Any]], lazy: bool = False) -> None:
        for name, function in operators.items():
            self.register(name, function, lazy=lazy)

    def unregister(self, name: str) -> bool:
        return self._operators.pop(name, None) is not None

    def unregister_many(self, names: Sequence[str]) -> None:
        for name in names:
            self.unregister(name)

    def get(self, name: str) -> Optional[OperatorSpec]:
        return self._operators.get(name)

    def names(self) -> List[str]:
        return list(self._operators)

    def copy(self) -> "OperatorRegistry":
        return OperatorRegistry(self._operators)

    @contextmanager
    def registered(self, operators: Mapping[str, Callable[..., Any]], lazy: bool = False) -> Iterator["OperatorRegistry"]:
        """Temporarily register operators, restoring previous entries on exit."""
        previous = {name: self._operators.get(name) for name in operators}
        self.register_many(operators, lazy=lazy)
        try:
            yield self
        finally:
            for name, spec in previous.items():
                if spec is None:
                    self.unregister(name)
                else:
                    self._operators[name] = spec

    def __contains__(self, name: object) -> bool:
        return name in self._operators

    def __len__(self) -> int:
        return len(self._operators)


EAGER_BASE_OPERATORS: Dict[str, Callable[..., Any]] = {
    "==": lambda a=None, b=None: loose_equals(a, b),
    "===": lambda a=None, b=None: strict_equals(a, b),
    "!=": lambda a=None, b=None: not loose_equals(a, b),
    "!==": lambda a=None, b=None: not strict_equals(a, b),
    "<": _chain(lambda a, b: a < b),
    "<=": _chain(lambda a, b: a <= b),
    ">": _greater(lambda a, b: a > b),
    ">=": _greater(lambda a, b: a >= b),
    "+": _add,
    "-": _subtract,
    "*": _multiply,
    "/": _divide,
    "%": _modulo,
    "min": _minimum,
    "max": _maximum,
    "cat": _cat,
    "substr": _substr,
    "in": _in,
    "merge": _merge,
    "log": _log,
}

LAZY_BASE_OPERATORS: Dict[str, Callable[..., Any]] = {
    "if": _if,
    "?:": _if,
    "and": _and,
    "or": _or,
    "!": _not,
    "!!": _double_not,
    "map": _map,
    "filter": _filter,
    "reduce": _reduce,
    "all": _all,
    "some": _some,
    "none": _none,
    "missing": _missing,
    "missing_some": _missing_some,
}

STANDARD_OPERATORS: Tuple[str, ...] = (
    tuple(EAGER_BASE_OPERATORS) + tuple(LAZY_BASE_OPERATORS) + (VAR_OPERATOR,)
)

ARRAY_OPERATORS = frozenset({"map", "filter", "reduce", "all", "some", "none"})


def default_registry() -> OperatorRegistry:
    """A fresh registry holding only the base operators."""
    registry = OperatorRegistry()
    registry.register_many(EAGER_BASE_OPERATORS)
    registry.register_many(LAZY_BASE_OPERATORS, lazy=True)
    return registry


def register_benefit_operators(registry: OperatorRegistry, today: Callable[[], date] = date.today) -> None:
    registry.register_many(make_benefit_operators(today))


def unregister_benefit_operators(registry: OperatorRegistry) -> None:
    registry.unregister_many(BENEFIT_OPERATOR_NAMES)


def benefit_registry(today: Callable[[], date] = date.today) -> OperatorRegistry:
    """A fresh registry with base and benefit-domain operators."""
    registry = default_registry()
    register_benefit_operators(registry, today)
    return registry
