"""
Benefit Questionnaire Engine (BQE) Package

Rule evaluation and adaptive questionnaires for benefit screening.

Two halves share one rule language (JSON rule trees):
    - Eligibility: interpreter, validator, detailed evaluator, debug
      tracer and the orchestrator that folds rule outcomes into an
      EligibilityResult per program.
    - Questionnaire flow (bqe.flow): question graph, branches, show-if
      and skip rules, navigation history, progress and checkpoints.

ARCHITECTURAL GUARANTEE:
------------------------
The core performs no I/O. Profiles, programs and rules arrive through
an EligibilityRepository; presentation happens outside this package.
"""

__version__ = "0.1.0"
