"""
Exception hierarchy for BQE.

Every error raised by this package derives from BQEError so callers at
an application boundary can catch one type.

Recovery boundaries (where these are caught and turned into results):
    - Interpreter.evaluate_safe       -> RuleEvaluationResult(success=False)
    - evaluate_with_details           -> DetailedEvaluationResult(success=False)
    - debug_rule                      -> DebugResult(success=False)
    - FlowEngine.evaluate_condition   -> ConditionResult(met=False)
    - EligibilityEvaluator entry      -> error EligibilityResult (confidence 0)
"""


class BQEError(Exception):
    """Base class for all BQE errors."""
    pass


# =============================================================================
# RULE ERRORS
# =============================================================================

class RuleError(BQEError):
    """Base class for rule tree problems."""
    pass


class RuleStructureError(RuleError):
    """Raised when a raw rule tree cannot be parsed (e.g. multi-key node)."""

    def __init__(self, message: str, path: str = "$"):
        super().__init__(f"{message} at {path}")
        self.path = path


class RuleEvaluationError(RuleError):
    """Raised when evaluating a rule tree fails."""

    code = "EVAL_UNKNOWN"


class UnknownOperatorError(RuleEvaluationError):
    """Raised when a rule uses an operator missing from the registry."""

    code = "EVAL_UNKNOWN_OPERATOR"

    def __init__(self, operator: str):
        super().__init__(f"Unrecognized operation {operator!r}")
        self.operator = operator


class OperatorError(RuleEvaluationError):
    """Raised when an operator receives operands it cannot work with."""

    code = "EVAL_OPERATOR_ERROR"


class MaxDepthExceededError(RuleEvaluationError):
    """Raised when a rule tree nests deeper than the interpreter allows."""

    code = "EVAL_MAX_DEPTH"

    def __init__(self, max_depth: int):
        super().__init__(f"Rule depth exceeds maximum ({max_depth})")
        self.max_depth = max_depth


# =============================================================================
# PERSISTENCE ERRORS
# =============================================================================

class NotFoundError(BQEError):
    """Raised when a requested record does not exist."""
    pass


class ProfileNotFoundError(NotFoundError):
    def __init__(self, profile_id: str):
        super().__init__(f"Profile {profile_id} not found")
        self.profile_id = profile_id


class ProgramNotFoundError(NotFoundError):
    def __init__(self, program_id: str):
        super().__init__(f"Program {program_id} not found")
        self.program_id = program_id


class RulesNotFoundError(NotFoundError):
    def __init__(self, program_id: str):
        super().__init__(f"No active rules found for program {program_id}")
        self.program_id = program_id


# =============================================================================
# FLOW ERRORS
# =============================================================================

class FlowError(BQEError):
    """Base class for questionnaire flow problems."""
    pass


class FlowDefinitionError(FlowError):
    """Raised when a flow graph is built or loaded inconsistently."""
    pass


class SessionStateError(FlowError):
    """Raised on an invalid questionnaire session lifecycle transition."""
    pass


class ConfigError(BQEError):
    """Raised when settings cannot be loaded or cast."""
    pass
