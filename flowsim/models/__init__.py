"""Data models for the workflow simulator."""

from .core import (
    NodeType,
    NodeStatus,
    LogLevel,
    RunOutcome,
    ValidationResult,
    BaseNode,
    StartNode,
    EndNode,
    TaskNode,
    ApprovalNode,
    AutomatedNode,
    GenericNode,
    WorkflowNode,
    build_node,
    Edge,
    WorkflowGraph,
    InvocationTarget,
    AutomationAction,
    LogEntry,
    RunResult,
)

__all__ = [
    "NodeType",
    "NodeStatus",
    "LogLevel",
    "RunOutcome",
    "ValidationResult",
    "BaseNode",
    "StartNode",
    "EndNode",
    "TaskNode",
    "ApprovalNode",
    "AutomatedNode",
    "GenericNode",
    "WorkflowNode",
    "build_node",
    "Edge",
    "WorkflowGraph",
    "InvocationTarget",
    "AutomationAction",
    "LogEntry",
    "RunResult",
]
