"""Core Pydantic models for the workflow simulator."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator, model_validator


class NodeType(str, Enum):
    """Enumeration of workflow node types."""
    START = "start"
    TASK = "task"
    APPROVAL = "approval"
    AUTOMATED = "automated"
    END = "end"
    GENERIC = "generic"


class NodeStatus(str, Enum):
    """Execution state of a node as reported to the presentation layer.

    A cleared status is reported as ``None``.
    """
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class LogLevel(str, Enum):
    """Severity of a simulation log entry."""
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


class RunOutcome(str, Enum):
    """Final outcome of a simulation run."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ValidationResult(BaseModel):
    """Result of graph validation."""
    is_valid: bool = Field(..., description="Whether the graph is valid")
    errors: List[str] = Field(default_factory=list, description="List of validation errors")
    warnings: List[str] = Field(default_factory=list, description="List of validation warnings")


class BaseNode(BaseModel):
    """Fields shared by every workflow node."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., description="Unique identifier for the node")
    title: Optional[str] = Field(None, description="Title shown on the canvas")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Free-form node metadata")

    @field_validator('id')
    @classmethod
    def validate_id(cls, id_value):
        """Ensure node ID is not empty."""
        if not id_value or not id_value.strip():
            raise ValueError("Node ID cannot be empty")
        return id_value.strip()

    @property
    def display_title(self) -> str:
        """Title used in log messages, falling back to the node ID."""
        return self.title or self.id


class StartNode(BaseNode):
    type: Literal["start"] = "start"


class EndNode(BaseNode):
    type: Literal["end"] = "end"


class TaskNode(BaseNode):
    type: Literal["task"] = "task"
    assignee: Optional[str] = Field(None, description="Person responsible for the task")


class ApprovalNode(BaseNode):
    type: Literal["approval"] = "approval"
    auto_approve_threshold: Optional[float] = Field(
        None,
        alias="autoApproveThreshold",
        description="Threshold at or below which the approval passes without an approver"
    )


class AutomatedNode(BaseNode):
    type: Literal["automated"] = "automated"
    action_id: Optional[str] = Field(None, alias="actionId", description="Automation catalog identifier")
    action_params: Optional[Dict[str, Any]] = Field(
        None, alias="actionParams", description="Payload sent to the automation"
    )


class GenericNode(BaseNode):
    """Node of an unrecognized or unset type.

    The original type tag is kept so it round-trips back to the editor.
    """
    type: str = NodeType.GENERIC.value


WorkflowNode = Union[StartNode, TaskNode, ApprovalNode, AutomatedNode, EndNode, GenericNode]

_NODE_CLASSES = {
    NodeType.START.value: StartNode,
    NodeType.TASK.value: TaskNode,
    NodeType.APPROVAL.value: ApprovalNode,
    NodeType.AUTOMATED.value: AutomatedNode,
    NodeType.END.value: EndNode,
}


def build_node(data: Dict[str, Any]) -> WorkflowNode:
    """Build the node variant matching the ``type`` tag of a raw node mapping.

    Editor documents keep the node fields under ``data`` with the type in
    ``data._nodeType``; those are flattened first. Unknown or missing types
    produce a :class:`GenericNode`.
    """
    fields = dict(data)
    editor_data = fields.pop("data", None)
    if isinstance(editor_data, dict):
        editor_fields = {k: v for k, v in editor_data.items() if not k.startswith("_")}
        node_type = editor_data.get("_nodeType") or fields.get("type")
        fields = {"id": fields.get("id"), **editor_fields, "type": node_type}

    node_type = fields.get("type")
    if isinstance(node_type, Enum):
        node_type = node_type.value
    node_class = _NODE_CLASSES.get(node_type)
    if node_class is None:
        fields["type"] = node_type or NodeType.GENERIC.value
        return GenericNode.model_validate(fields)
    return node_class.model_validate(fields)


class Edge(BaseModel):
    """Directed connection between two nodes."""
    model_config = ConfigDict(frozen=True)

    source: str = Field(..., description="Source node ID")
    target: str = Field(..., description="Target node ID")


class WorkflowGraph(BaseModel):
    """Snapshot of a workflow graph handed to the simulator.

    Edges keep their input order; outgoing edges are followed in that order.
    """
    model_config = ConfigDict(frozen=True)

    nodes: List[WorkflowNode] = Field(default_factory=list, description="Nodes in the graph")
    edges: List[Edge] = Field(default_factory=list, description="Edges connecting nodes")

    _nodes_by_id: Dict[str, WorkflowNode] = PrivateAttr(default_factory=dict)
    _outgoing: Dict[str, List[Edge]] = PrivateAttr(default_factory=dict)

    @field_validator('nodes', mode='before')
    @classmethod
    def build_node_variants(cls, nodes):
        """Turn raw node mappings into their typed variants."""
        if nodes is None:
            return []
        return [build_node(node) if isinstance(node, dict) else node for node in nodes]

    @model_validator(mode='after')
    def validate_unique_node_ids(self):
        """Ensure all node IDs are unique."""
        node_ids = [node.id for node in self.nodes]
        if len(node_ids) != len(set(node_ids)):
            raise ValueError("All node IDs must be unique")
        return self

    def model_post_init(self, __context: Any) -> None:
        """Index nodes by ID and edges by source for lookups during a run."""
        self._nodes_by_id = {node.id: node for node in self.nodes}
        outgoing: Dict[str, List[Edge]] = {}
        for edge in self.edges:
            outgoing.setdefault(edge.source, []).append(edge)
        self._outgoing = outgoing

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> 'WorkflowGraph':
        """Load a graph from an exported ``{nodes, edges}`` document."""
        return cls.model_validate({
            "nodes": document.get("nodes") or [],
            "edges": document.get("edges") or [],
        })

    def get_node(self, node_id: str) -> Optional[WorkflowNode]:
        """Find a node by ID."""
        return self._nodes_by_id.get(node_id)

    def outgoing_edges(self, node_id: str) -> List[Edge]:
        """Edges leaving ``node_id``, in input order."""
        return list(self._outgoing.get(node_id, []))

    def start_nodes(self) -> List[StartNode]:
        """Start nodes in the order they appear in the graph."""
        return [node for node in self.nodes if isinstance(node, StartNode)]


class InvocationTarget(BaseModel):
    """Remote endpoint that performs an automation."""
    url: str = Field(..., description="URL called when the automation runs")
    method: Optional[str] = Field(None, description="HTTP method; POST when unset")

    @field_validator('url')
    @classmethod
    def validate_url(cls, url):
        """Ensure URL is not empty."""
        if not url or not url.strip():
            raise ValueError("Invocation URL cannot be empty")
        return url.strip()


class AutomationAction(BaseModel):
    """Entry of the automation catalog."""
    id: str = Field(..., description="Action identifier referenced by automated nodes")
    label: str = Field("", description="Human readable name")
    params: List[str] = Field(default_factory=list, description="Parameter names the action expects")
    invocation_target: Optional[InvocationTarget] = Field(None, description="Remote endpoint, if any")

    @model_validator(mode='before')
    @classmethod
    def collect_flat_target(cls, data):
        """Accept catalog entries that carry ``url``/``method`` at the top level."""
        if isinstance(data, dict) and data.get("url") and not data.get("invocation_target"):
            data = dict(data)
            data["invocation_target"] = {"url": data.pop("url"), "method": data.pop("method", None)}
        return data


class LogEntry(BaseModel):
    """Log entry for a simulation event."""
    time: datetime = Field(default_factory=datetime.utcnow, description="Timestamp of the entry")
    node_id: Optional[str] = Field(None, description="Node that produced the entry; None for workflow-level entries")
    node_title: Optional[str] = Field(None, description="Title of the node")
    level: LogLevel = Field(..., description="Severity of the entry")
    message: str = Field(..., description="Log message")


class RunResult(BaseModel):
    """Final result of a simulation run."""
    run_id: str = Field(..., description="Identifier of the run")
    success: bool = Field(..., description="Whether every branch completed without failure or cancellation")
    outcome: RunOutcome = Field(..., description="Succeeded, failed or cancelled")
    logs: List[LogEntry] = Field(default_factory=list, description="Ordered run transcript")
