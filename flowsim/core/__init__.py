"""Core workflow simulator components."""

from .exceptions import (
    WorkflowEngineError,
    GraphValidationError,
    NodeExecutionError,
    ActionResolutionError,
    SimulationAborted,
    ConfigurationError,
    APIError,
)
from .logging import setup_logging, get_logger
from .cancellation import CancellationToken
from .action_resolver import ActionResolver, StaticActionResolver, HttpActionResolver
from .step_executor import ExecutionContext, StepExecutor
from .execution_engine import SimulationEngine
from .graph_manager import GraphManager

__all__ = [
    "WorkflowEngineError",
    "GraphValidationError",
    "NodeExecutionError",
    "ActionResolutionError",
    "SimulationAborted",
    "ConfigurationError",
    "APIError",
    "setup_logging",
    "get_logger",
    "CancellationToken",
    "ActionResolver",
    "StaticActionResolver",
    "HttpActionResolver",
    "ExecutionContext",
    "StepExecutor",
    "SimulationEngine",
    "GraphManager",
]
