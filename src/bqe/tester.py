"""
Rule Tester

Runs the test cases that rule packages carry against a rule before the
rule is accepted. A case passes when the evaluation result equals the
expected value, or, for cases marked should_pass=False, when the
evaluation fails.
"""

import itertools
import json
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from .interpreter import Interpreter
from .validator import validate_rule


@dataclass
class RuleTestCase:
    description: str
    input: Dict[str, Any]
    expected: Any = None
    should_pass: bool = True


@dataclass
class RuleTestResult:
    description: str
    passed: bool
    expected: Any
    actual: Any
    execution_time: float = 0.0
    error: Optional[str] = None


@dataclass
class RuleTestSuite:
    """
    A named rule with its cases.

    setup / teardown run before and after the cases; teardown runs even
    when a case raises.
    """

    name: str
    rule: Any
    test_cases: List[RuleTestCase] = field(default_factory=list)
    setup: Optional[Callable[[], None]] = None
    teardown: Optional[Callable[[], None]] = None


@dataclass
class RuleTestSuiteResult:
    name: str
    total: int
    passed: int
    failed: int
    results: List[RuleTestResult]
    total_time: float = 0.0

    @property
    def success_rate(self) -> float:
        return self.passed / self.total * 100 if self.total else 0.0


def check_rule(rule: Any, case: RuleTestCase,
               interpreter: Optional[Interpreter] = None) -> RuleTestResult:
    """Run one case against a rule."""
    interp = interpreter or Interpreter()
    evaluation = interp.evaluate_safe(rule, case.input, strict=False)
    if case.should_pass:
        passed = evaluation.success and evaluation.result == case.expected
    else:
        passed = not evaluation.success
    return RuleTestResult(
        description=case.description,
        passed=passed,
        expected=case.expected,
        actual=evaluation.result,
        execution_time=evaluation.execution_time,
        error=evaluation.error,
    )


def run_test_suite(suite: RuleTestSuite,
                   interpreter: Optional[Interpreter] = None) -> RuleTestSuiteResult:
    started = time.perf_counter()
    if suite.setup is not None:
        suite.setup()
    try:
        results = [check_rule(suite.rule, case, interpreter) for case in suite.test_cases]
    finally:
        if suite.teardown is not None:
            suite.teardown()

    passed = sum(1 for r in results if r.passed)
    return RuleTestSuiteResult(
        name=suite.name,
        total=len(results),
        passed=passed,
        failed=len(results) - passed,
        results=results,
        total_time=time.perf_counter() - started,
    )


def run_test_suites(suites: Sequence[RuleTestSuite],
                    interpreter: Optional[Interpreter] = None) -> List[RuleTestSuiteResult]:
    return [run_test_suite(suite, interpreter) for suite in suites]


# =============================================================================
# CASE GENERATION
# =============================================================================

def generate_boundary_cases(ranges: Dict[str, Dict[str, float]]) -> List[RuleTestCase]:
    """
    Cases at min, boundary - 1, boundary, boundary + 1 and max per variable.

    Args:
        ranges: {"age": {"min": 0, "max": 100, "boundary": 18}}; boundary
                defaults to the midpoint

    The expected value is left as None for the caller to fill in.
    """
    cases = []
    for name, spec in ranges.items():
        low, high = spec["min"], spec["max"]
        boundary = spec.get("boundary", (low + high) / 2)
        points = [("at minimum", low)]
        if boundary > low:
            points.append(("below boundary", boundary - 1))
        points.append(("at boundary", boundary))
        if boundary < high:
            points.append(("above boundary", boundary + 1))
        points.append(("at maximum", high))
        for label, value in points:
            cases.append(RuleTestCase(description=f"{name} {label} ({value})", input={name: value}))
    return cases


def generate_combination_cases(values: Dict[str, Sequence[Any]]) -> List[RuleTestCase]:
    """One case per element of the cartesian product of the given values."""
    names = list(values)
    cases = []
    for combination in itertools.product(*(values[n] for n in names)):
        data = dict(zip(names, combination))
        cases.append(RuleTestCase(description=f"Combination: {json.dumps(data, default=str)}", input=data))
    return cases


# =============================================================================
# REPORTING
# =============================================================================

def format_test_suite_result(result: RuleTestSuiteResult, verbose: bool = False) -> str:
    lines = [
        f"Test Suite: {result.name}",
        f"  Total: {result.total}",
        f"  Passed: {result.passed} ({result.success_rate:.1f}%)",
        f"  Failed: {result.failed}",
        f"  Time: {result.total_time * 1000:.2f}ms",
    ]
    if verbose and result.results:
        lines.append("")
        lines.append("  Results:")
        for test in result.results:
            lines.append(f"    {'PASS' if test.passed else 'FAIL'} {test.description}")
            if not test.passed:
                lines.append(f"      Expected: {json.dumps(test.expected, default=str)}")
                lines.append(f"      Actual: {json.dumps(test.actual, default=str)}")
                if test.error:
                    lines.append(f"      Error: {test.error}")
    return "\n".join(lines)


@dataclass
class CoverageReport:
    operators_covered: List[str]
    operators_not_covered: List[str]
    variables_covered: List[str]
    variables_not_covered: List[str]
    coverage_percent: float


def generate_coverage_report(rule: Any, cases: Sequence[RuleTestCase]) -> CoverageReport:
    """
    Variables count as covered when some case supplies them. Operators
    count as covered as soon as any case exists.
    """
    validation = validate_rule(rule)
    supplied = {key for case in cases for key in case.input}

    variables_covered = [v for v in validation.variables if v.split(".")[0] in supplied]
    variables_not_covered = [v for v in validation.variables if v not in variables_covered]
    operators_covered = list(validation.operators) if cases else []
    operators_not_covered = [] if cases else list(validation.operators)

    total = len(validation.operators) + len(validation.variables)
    covered = len(operators_covered) + len(variables_covered)
    return CoverageReport(
        operators_covered=operators_covered,
        operators_not_covered=operators_not_covered,
        variables_covered=variables_covered,
        variables_not_covered=variables_not_covered,
        coverage_percent=covered / total * 100 if total else 0.0,
    )
