"""
Serialization helpers for BQE objects (rules, flows, skip rules).

Provides JSON/YAML round-trip via intermediate dict representation.
Conditions are written as JSON rule trees, the same form rules are
authored in, so a serialized flow can be edited by hand.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

import yaml

from .expressions import Expression, to_json_value
from .flow.graph import FlowBranch, FlowNode, QuestionDefinition, QuestionFlow
from .flow.skip_logic import SkipRule
from .model import BenefitProgram, ChangelogEntry, EligibilityRule


def condition_to_dict(expr: Optional[Expression]) -> Any:
    if expr is None:
        return None
    return to_json_value(expr)


# =============================================================================
# RULES
# =============================================================================

def changelog_entry_to_dict(e: ChangelogEntry) -> Dict[str, Any]:
    return {
        "version": e.version,
        "date": e.date.isoformat(),
        "author": e.author,
        "description": e.description,
        "breaking": e.breaking,
    }


def changelog_entry_from_dict(d: Dict[str, Any]) -> ChangelogEntry:
    date = d["date"]
    if isinstance(date, str):
        date = datetime.fromisoformat(date)
    return ChangelogEntry(
        version=d["version"],
        date=date,
        author=d.get("author", ""),
        description=d.get("description", ""),
        breaking=d.get("breaking", False),
    )


def rule_to_dict(r: EligibilityRule) -> Dict[str, Any]:
    return {
        "id": r.id,
        "program_id": r.program_id,
        "name": r.name,
        "logic": r.logic,
        "priority": r.priority,
        "active": r.active,
        "description": r.description,
        "required_fields": list(r.required_fields),
        "explanation": r.explanation,
        "required_documents": list(r.required_documents),
        "version": r.version,
        "changelog": [changelog_entry_to_dict(e) for e in r.changelog],
        "supersedes": r.supersedes,
    }


def rule_from_dict(d: Dict[str, Any]) -> EligibilityRule:
    return EligibilityRule(
        id=d["id"],
        program_id=d["program_id"],
        name=d.get("name", d["id"]),
        logic=d["logic"],
        priority=d.get("priority", 0),
        active=d.get("active", True),
        description=d.get("description", ""),
        required_fields=tuple(d.get("required_fields", [])),
        explanation=d.get("explanation", ""),
        required_documents=tuple(d.get("required_documents", [])),
        version=d.get("version", "1.0.0"),
        changelog=tuple(changelog_entry_from_dict(e) for e in d.get("changelog", [])),
        supersedes=d.get("supersedes"),
    )


def program_to_dict(p: BenefitProgram) -> Dict[str, Any]:
    return {
        "id": p.id,
        "name": p.name,
        "description": p.description,
        "category": p.category,
        "jurisdiction": p.jurisdiction,
        "active": p.active,
    }


def program_from_dict(d: Dict[str, Any]) -> BenefitProgram:
    return BenefitProgram(
        id=d["id"],
        name=d.get("name", d["id"]),
        description=d.get("description", ""),
        category=d.get("category", ""),
        jurisdiction=d.get("jurisdiction", ""),
        active=d.get("active", True),
    )


def rules_to_json(rules: List[EligibilityRule]) -> str:
    return json.dumps([rule_to_dict(r) for r in rules], sort_keys=True)


def rules_from_json(s: str) -> List[EligibilityRule]:
    return [rule_from_dict(d) for d in json.loads(s)]


def rules_to_yaml(rules: List[EligibilityRule]) -> str:
    return yaml.safe_dump([rule_to_dict(r) for r in rules], sort_keys=False)


def rules_from_yaml(s: str) -> List[EligibilityRule]:
    return [rule_from_dict(d) for d in yaml.safe_load(s) or []]


# =============================================================================
# FLOWS
# =============================================================================

def question_to_dict(q: QuestionDefinition) -> Dict[str, Any]:
    return {
        "id": q.id,
        "text": q.text,
        "field_name": q.field_name,
        "input_type": q.input_type,
        "required": q.required,
        "show_if": condition_to_dict(q.show_if),
        "options": q.options,
        "help_text": q.help_text,
    }


def question_from_dict(d: Dict[str, Any]) -> QuestionDefinition:
    return QuestionDefinition(
        id=d["id"],
        text=d.get("text", ""),
        field_name=d.get("field_name", ""),
        input_type=d.get("input_type", "text"),
        required=d.get("required", False),
        show_if=d.get("show_if"),
        options=d.get("options", []),
        help_text=d.get("help_text"),
    )


def branch_to_dict(b: FlowBranch) -> Dict[str, Any]:
    return {
        "id": b.id,
        "condition": condition_to_dict(b.condition),
        "target_id": b.target_id,
        "priority": b.priority,
        "description": b.description,
    }


def branch_from_dict(d: Dict[str, Any]) -> FlowBranch:
    return FlowBranch(
        id=d["id"],
        condition=d["condition"],
        target_id=d["target_id"],
        priority=d.get("priority", 0),
        description=d.get("description"),
    )


def node_to_dict(n: FlowNode) -> Dict[str, Any]:
    return {
        "id": n.id,
        "question": question_to_dict(n.question),
        "next_id": n.next_id,
        "branches": [branch_to_dict(b) for b in n.branches],
        "is_terminal": n.is_terminal,
        "metadata": n.metadata,
    }


def node_from_dict(d: Dict[str, Any]) -> FlowNode:
    return FlowNode(
        id=d["id"],
        question=question_from_dict(d["question"]),
        next_id=d.get("next_id"),
        branches=[branch_from_dict(b) for b in d.get("branches", [])],
        is_terminal=d.get("is_terminal", False),
        metadata=d.get("metadata", {}),
    )


def flow_to_dict(f: QuestionFlow) -> Dict[str, Any]:
    return {
        "id": f.id,
        "name": f.name,
        "description": f.description,
        "version": f.version,
        "start_node_id": f.start_node_id,
        "nodes": [node_to_dict(n) for n in f.nodes.values()],
    }


def flow_from_dict(d: Dict[str, Any]) -> QuestionFlow:
    f = QuestionFlow(
        id=d["id"],
        name=d.get("name", ""),
        start_node_id=d["start_node_id"],
        description=d.get("description", ""),
        version=d.get("version", "1.0.0"),
    )
    for node in d.get("nodes", []):
        f.add_node(node_from_dict(node))
    return f


def skip_rule_to_dict(r: SkipRule) -> Dict[str, Any]:
    return {
        "id": r.id,
        "question_ids": list(r.question_ids),
        "condition": condition_to_dict(r.condition),
        "description": r.description,
        "priority": r.priority,
    }


def skip_rule_from_dict(d: Dict[str, Any]) -> SkipRule:
    return SkipRule(
        id=d["id"],
        question_ids=d.get("question_ids", []),
        condition=d["condition"],
        description=d.get("description"),
        priority=d.get("priority", 0),
    )


def flow_to_json(f: QuestionFlow) -> str:
    return json.dumps(flow_to_dict(f), sort_keys=True)


def flow_from_json(s: str) -> QuestionFlow:
    d = json.loads(s)
    return flow_from_dict(d)


def flow_to_yaml(f: QuestionFlow) -> str:
    return yaml.safe_dump(flow_to_dict(f), sort_keys=False)


def flow_from_yaml(s: str) -> QuestionFlow:
    d = yaml.safe_load(s)
    return flow_from_dict(d)


def skip_rules_to_yaml(rules: List[SkipRule]) -> str:
    return yaml.safe_dump([skip_rule_to_dict(r) for r in rules], sort_keys=False)


def skip_rules_from_yaml(s: str) -> List[SkipRule]:
    return [skip_rule_from_dict(d) for d in yaml.safe_load(s) or []]
