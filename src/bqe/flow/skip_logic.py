"""
Skip rules: a condition that, when met, hides a list of questions.

Skip rules are independent of a question's own show_if. A question is
skipped when its show_if is false OR a satisfied skip rule names it.
Rules are re-evaluated on every call; nothing is cached.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..expressions import Expression, as_expression
from .engine import FlowEngine


@dataclass
class SkipRule:
    id: str
    question_ids: List[str]
    condition: Expression
    description: Optional[str] = None
    priority: int = 0

    def __post_init__(self):
        self.condition = as_expression(self.condition)
        self.question_ids = list(self.question_ids)


class SkipLogicManager:
    """Holds skip rules in descending priority (stable for equal priorities)."""

    def __init__(self, engine: FlowEngine, rules: Optional[List[SkipRule]] = None):
        self.engine = engine
        self._rules: List[SkipRule] = []
        for rule in rules or []:
            self.add_skip_rule(rule)

    def add_skip_rule(self, rule: SkipRule) -> None:
        """Add a rule, replacing any rule with the same id."""
        self._rules = [r for r in self._rules if r.id != rule.id]
        self._rules.append(rule)
        self._rules.sort(key=lambda r: r.priority, reverse=True)

    def remove_skip_rule(self, rule_id: str) -> bool:
        before = len(self._rules)
        self._rules = [r for r in self._rules if r.id != rule_id]
        return len(self._rules) < before

    def get_skip_rule(self, rule_id: str) -> Optional[SkipRule]:
        for rule in self._rules:
            if rule.id == rule_id:
                return rule
        return None

    def get_skip_rules(self) -> List[SkipRule]:
        return list(self._rules)

    def get_questions_to_skip(self, context: Dict[str, Any]) -> List[str]:
        """Question ids named by every satisfied rule, deduplicated in rule order."""
        to_skip: List[str] = []
        for rule in self._rules:
            if self.engine.evaluate_condition(rule.condition, context).met:
                to_skip.extend(q for q in rule.question_ids if q not in to_skip)
        return to_skip

    def should_skip_question(self, question_id: str, context: Dict[str, Any]) -> bool:
        return question_id in self.get_questions_to_skip(context)
