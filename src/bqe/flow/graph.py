"""
Questionnaire Flow Graph

Defines the structure of an adaptive questionnaire:
    - QuestionDefinition (what is asked, and when it is shown)
    - FlowBranch (conditional edge out of a node)
    - FlowNode (a question plus its default successor and branches)
    - QuestionFlow (root container, nodes keyed by id)

ARCHITECTURAL RULE:
    These objects describe structure only.
    Deciding which node comes next is FlowEngine's job,
    remembering where the user has been is NavigationManager's job.

Conditions (show_if, branch conditions) may be given as raw JSON rule
trees; they are parsed once, when the object is created.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..errors import FlowDefinitionError
from ..expressions import Expression, as_expression


@dataclass
class QuestionDefinition:
    """
    A single question.

    Properties:
        id:
            Question identifier. Skip rules and NavigationResult.questions_skipped
            name questions by this id, not by node id.

        field_name:
            Key the answer is stored under in the answer context
            (the context show_if and branch conditions evaluate against)

        input_type:
            "text", "number", "currency", "date", "select", "multiselect",
            "boolean", ... (informational for the presentation layer)

        show_if:
            Visibility predicate. None means always shown.
            Example: {"==": [{"var": "hasChildren"}, true]}
    """

    id: str
    text: str
    field_name: str
    input_type: str = "text"
    required: bool = False
    show_if: Optional[Expression] = None
    options: List[Dict[str, Any]] = field(default_factory=list)
    help_text: Optional[str] = None

    def __post_init__(self):
        self.show_if = as_expression(self.show_if)


@dataclass
class FlowBranch:
    """
    Conditional edge from a node.

    When several branch conditions are true, the highest priority wins;
    equal priorities resolve to the branch declared first.
    """

    id: str
    condition: Expression
    target_id: str
    priority: int = 0
    description: Optional[str] = None

    def __post_init__(self):
        self.condition = as_expression(self.condition)


@dataclass
class FlowNode:
    """
    A question node in the flow graph.

    Properties:
        next_id: Default successor when no branch condition holds
        branches: Conditional successors
        is_terminal: Reaching the end of this node ends the flow
    """

    id: str
    question: QuestionDefinition
    next_id: Optional[str] = None
    branches: List[FlowBranch] = field(default_factory=list)
    is_terminal: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class QuestionFlow:
    """
    Root container for a questionnaire.

    Nodes keep their declaration order, which is the fallback traversal
    order for nodes the start node cannot reach.
    """

    id: str
    name: str
    start_node_id: str
    nodes: Dict[str, FlowNode] = field(default_factory=dict)
    description: str = ""
    version: str = "1.0.0"

    def get_node(self, node_id: Optional[str]) -> Optional[FlowNode]:
        if node_id is None:
            return None
        return self.nodes.get(node_id)

    def get_question(self, node_id: Optional[str]) -> Optional[QuestionDefinition]:
        node = self.get_node(node_id)
        return node.question if node is not None else None

    def find_node_by_question(self, question_id: str) -> Optional[FlowNode]:
        for node in self.nodes.values():
            if node.question.id == question_id:
                return node
        return None

    def questions(self) -> List[QuestionDefinition]:
        return [node.question for node in self.nodes.values()]

    def add_node(self, node: FlowNode) -> "QuestionFlow":
        self.nodes[node.id] = node
        return self

    def link_nodes(self, from_id: str, to_id: str) -> "QuestionFlow":
        """Set to_id as the default successor of from_id."""
        if from_id not in self.nodes or to_id not in self.nodes:
            raise FlowDefinitionError(f"Cannot link {from_id} -> {to_id}: node not found")
        self.nodes[from_id].next_id = to_id
        return self

    def add_branch(self, from_id: str, branch: FlowBranch) -> "QuestionFlow":
        node = self.nodes.get(from_id)
        if node is None:
            raise FlowDefinitionError(f"Node {from_id} not found")
        node.branches.append(branch)
        return self


def create_flow(id: str, name: str, nodes: List[FlowNode],
                start_node_id: Optional[str] = None, link: bool = False) -> QuestionFlow:
    """
    Build a flow from a node list.

    Args:
        start_node_id: Defaults to the first node
        link: Chain nodes in list order where next_id is not already set

    Raises:
        FlowDefinitionError: duplicate node ids or an empty list without a start id
    """
    if not nodes and start_node_id is None:
        raise FlowDefinitionError("A flow without nodes needs an explicit start_node_id")
    flow = QuestionFlow(id=id, name=name, start_node_id=start_node_id or nodes[0].id)
    for node in nodes:
        if node.id in flow.nodes:
            raise FlowDefinitionError(f"Duplicate node id {node.id}")
        flow.add_node(node)
    if link:
        for current, following in zip(nodes, nodes[1:]):
            if current.next_id is None and not current.is_terminal:
                current.next_id = following.id
    return flow
