"""
Progress Tracking

Completion metrics for a questionnaire. Only visible questions count:
a question hidden by its show_if or by a skip rule is neither required
nor remaining.

progress_percent policy:
    round(w * required_percent + (1 - w) * overall_percent)
        when any visible question is required, with
        w = EngineSettings.required_progress_weight (0.7)
    round(overall_percent)
        otherwise
    100 when there are no visible questions at all

Answering a required question raises both terms, so progress never goes
down as required questions get answered.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..config import EngineSettings
from .engine import FlowEngine
from .graph import QuestionDefinition
from .skip_logic import SkipLogicManager


class QuestionStatus(Enum):
    PENDING = "pending"
    CURRENT = "current"
    ANSWERED = "answered"
    SKIPPED = "skipped"
    HIDDEN = "hidden"


@dataclass
class QuestionState:
    question_id: str
    status: QuestionStatus = QuestionStatus.PENDING
    answer: Any = None
    errors: List[str] = field(default_factory=list)
    visible: bool = True
    visited: bool = False
    visit_count: int = 0


@dataclass
class ProgressMetrics:
    total_questions: int
    required_questions: int
    answered_questions: int
    skipped_questions: int
    remaining_questions: int
    current_question_position: int
    progress_percent: int
    required_progress_percent: int
    estimated_time_remaining: int


def _percent(part: int, whole: int) -> float:
    return part / whole * 100 if whole else 100.0


def _round(value: float) -> int:
    return int(value + 0.5)


def _is_answered(states: Dict[str, QuestionState], question_id: str) -> bool:
    state = states.get(question_id)
    return state is not None and state.status == QuestionStatus.ANSWERED


def calculate_progress(engine: FlowEngine, question_states: Dict[str, QuestionState],
                       context: Dict[str, Any], current_node_id: Optional[str] = None,
                       skip_manager: Optional[SkipLogicManager] = None,
                       settings: Optional[EngineSettings] = None) -> ProgressMetrics:
    """
    Progress over the questions visible for the given context.

    Args:
        engine: FlowEngine over the flow being measured
        question_states: Question id -> QuestionState
        context: Current answers (decides visibility)
        current_node_id: Node being shown; its question's 1-based ordinal
            among visible questions is current_question_position (0 when
            it is not visible or not given)
    """
    settings = settings or EngineSettings()
    visible = _visible(engine, context, skip_manager)

    total = len(visible)
    required = [q for q in visible if q.required]
    answered = sum(1 for q in visible if _is_answered(question_states, q.id))
    answered_required = sum(1 for q in required if _is_answered(question_states, q.id))
    skipped = sum(
        1 for q in visible
        if q.id in question_states and question_states[q.id].status == QuestionStatus.SKIPPED
    )
    remaining = max(total - answered - skipped, 0)

    overall_percent = _percent(answered, total)
    required_percent = _percent(answered_required, len(required))
    if required:
        weight = settings.required_progress_weight
        progress = _round(weight * required_percent + (1 - weight) * overall_percent)
    else:
        progress = _round(overall_percent)

    position = 0
    current_question = engine.flow.get_question(current_node_id)
    if current_question is not None:
        for index, question in enumerate(visible, start=1):
            if question.id == current_question.id:
                position = index
                break

    return ProgressMetrics(
        total_questions=total,
        required_questions=len(required),
        answered_questions=answered,
        skipped_questions=skipped,
        remaining_questions=remaining,
        current_question_position=position,
        progress_percent=progress,
        required_progress_percent=_round(required_percent),
        estimated_time_remaining=remaining * settings.seconds_per_question,
    )


def calculate_completion_percentage(answered: int, total: int) -> int:
    return _round(_percent(answered, total))


def is_flow_complete(engine: FlowEngine, question_states: Dict[str, QuestionState],
                     context: Dict[str, Any], require_all_required: bool = True,
                     skip_manager: Optional[SkipLogicManager] = None) -> bool:
    """
    True when every visible required question is answered, or, with
    require_all_required=False, when no visible question is still
    pending or current. Questions hidden by skip_manager do not count.
    """
    visible = _visible(engine, context, skip_manager)
    if require_all_required:
        return all(_is_answered(question_states, q.id) for q in visible if q.required)
    open_statuses = (QuestionStatus.PENDING, QuestionStatus.CURRENT)
    return not any(
        q.id in question_states and question_states[q.id].status in open_statuses
        for q in visible
    )


def get_incomplete_required_questions(engine: FlowEngine, question_states: Dict[str, QuestionState],
                                      context: Dict[str, Any],
                                      skip_manager: Optional[SkipLogicManager] = None
                                      ) -> List[QuestionDefinition]:
    return [
        q for q in _visible(engine, context, skip_manager)
        if q.required and not _is_answered(question_states, q.id)
    ]


def _visible(engine: FlowEngine, context: Dict[str, Any],
             skip_manager: Optional[SkipLogicManager]) -> List[QuestionDefinition]:
    skipped_ids = skip_manager.get_questions_to_skip(context) if skip_manager else []
    return engine.visible_questions(context, skipped_ids)


# =============================================================================
# SECTIONS
# =============================================================================

@dataclass
class FlowSection:
    id: str
    name: str
    question_ids: List[str]
    order: int = 0
    required: bool = False


@dataclass
class SectionProgress:
    section_id: str
    total_questions: int
    answered_questions: int
    progress_percent: int
    completed: bool


def calculate_section_progress(section: FlowSection,
                               question_states: Dict[str, QuestionState]) -> SectionProgress:
    total = len(section.question_ids)
    answered = sum(1 for q in section.question_ids if _is_answered(question_states, q))
    return SectionProgress(
        section_id=section.id,
        total_questions=total,
        answered_questions=answered,
        progress_percent=_round(_percent(answered, total)),
        completed=answered == total,
    )


def calculate_all_sections_progress(sections: List[FlowSection],
                                    question_states: Dict[str, QuestionState]) -> List[SectionProgress]:
    ordered = sorted(sections, key=lambda s: s.order)
    return [calculate_section_progress(s, question_states) for s in ordered]


# =============================================================================
# TIME TRACKING
# =============================================================================

class TimeTracker:
    """Elapsed time excluding pauses, plus per-question durations (seconds)."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self.reset()

    def reset(self) -> None:
        self.started_at: Optional[float] = None
        self.paused_at: Optional[float] = None
        self.paused_total = 0.0
        self.question_times: Dict[str, float] = {}

    def start(self) -> None:
        self.started_at = self.clock()

    def pause(self) -> None:
        if self.paused_at is None:
            self.paused_at = self.clock()

    def resume(self) -> None:
        if self.paused_at is not None:
            self.paused_total += self.clock() - self.paused_at
            self.paused_at = None

    def record_question_time(self, question_id: str, duration: float) -> None:
        self.question_times[question_id] = self.question_times.get(question_id, 0.0) + duration

    def get_elapsed_time(self) -> float:
        if self.started_at is None:
            return 0.0
        now = self.paused_at if self.paused_at is not None else self.clock()
        return now - self.started_at - self.paused_total

    def get_question_time(self, question_id: str) -> float:
        return self.question_times.get(question_id, 0.0)

    def get_average_question_time(self) -> float:
        if not self.question_times:
            return 0.0
        return sum(self.question_times.values()) / len(self.question_times)
