"""
Workflow Simulator Package

Simulates workflow graphs built in a visual editor: walks the graph from its
start nodes, runs each step, and reports an ordered log plus node statuses.
"""

__version__ = "1.0.0"

from .core.execution_engine import SimulationEngine
from .core.cancellation import CancellationToken
from .models.core import WorkflowGraph, RunResult, LogEntry, NodeStatus

__all__ = [
    "SimulationEngine",
    "CancellationToken",
    "WorkflowGraph",
    "RunResult",
    "LogEntry",
    "NodeStatus",
]
