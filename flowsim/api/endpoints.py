"""FastAPI REST and WebSocket endpoints for the workflow simulator."""

import asyncio
import json
from datetime import datetime
from typing import Dict, List, Any, Optional
from fastapi import APIRouter, HTTPException, Depends, status, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field, ValidationError

from ..core.action_resolver import ActionResolver
from ..core.cancellation import CancellationToken
from ..core.execution_engine import SimulationEngine
from ..core.graph_manager import GraphManager
from ..core.exceptions import (
    APIError,
    ActionResolutionError,
    GraphValidationError,
    create_error_response
)
from ..models.core import (
    AutomationAction,
    LogEntry,
    NodeStatus,
    RunResult,
    ValidationResult,
    WorkflowGraph
)
from ..core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1", tags=["simulation"])

# Global instances (initialized in main.py)
_simulation_engine: Optional[SimulationEngine] = None
_graph_manager: Optional[GraphManager] = None
_action_resolver: Optional[ActionResolver] = None
_default_step_delay_ms: int = 700


def init_dependencies(
    simulation_engine: SimulationEngine,
    graph_manager: GraphManager,
    action_resolver: ActionResolver,
    default_step_delay_ms: int = 700
):
    """Initialize the global dependencies."""
    global _simulation_engine, _graph_manager, _action_resolver, _default_step_delay_ms
    _simulation_engine = simulation_engine
    _graph_manager = graph_manager
    _action_resolver = action_resolver
    _default_step_delay_ms = default_step_delay_ms


def get_simulation_engine() -> SimulationEngine:
    """Dependency to get the simulation engine."""
    if _simulation_engine is None:
        raise APIError("Simulation engine not initialized", status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return _simulation_engine


def get_graph_manager() -> GraphManager:
    """Dependency to get graph manager."""
    if _graph_manager is None:
        raise APIError("Graph manager not initialized", status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return _graph_manager


def get_action_resolver() -> ActionResolver:
    """Dependency to get the automation catalog."""
    if _action_resolver is None:
        raise APIError("Action resolver not initialized", status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return _action_resolver


# Request models
class SimulateRequest(BaseModel):
    """Request model for running a simulation."""
    graph: Dict[str, Any] = Field(..., description="Graph document with nodes and edges")
    step_delay_ms: Optional[int] = Field(
        None, ge=0, le=60000, strict=True, description="Simulated processing time per step; server default if omitted"
    )


class ValidateGraphRequest(BaseModel):
    """Request model for graph validation."""
    graph: Dict[str, Any] = Field(..., description="Graph document with nodes and edges")


def _load_graph_or_422(graph_manager: GraphManager, document: Dict[str, Any]) -> WorkflowGraph:
    try:
        return graph_manager.load_graph(document)
    except GraphValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=create_error_response(e)
        )


def _parse_client_message(raw_message: str) -> Optional[Dict[str, Any]]:
    """Decode a client message; None unless it is a JSON object."""
    try:
        message = json.loads(raw_message)
    except json.JSONDecodeError:
        return None
    return message if isinstance(message, dict) else None


def _parse_run_request(message: Dict[str, Any]) -> SimulateRequest:
    """
    Validate a WebSocket ``run`` message with the same rules as POST /simulate.

    Raises:
        GraphValidationError: If the graph or step delay is missing or out of range
    """
    fields = {key: message[key] for key in ("graph", "step_delay_ms") if key in message}
    try:
        return SimulateRequest.model_validate(fields)
    except ValidationError as e:
        errors = [f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise GraphValidationError("Run request is invalid", validation_errors=errors) from e


def _step_delay_seconds(step_delay_ms: Optional[int]) -> float:
    delay_ms = _default_step_delay_ms if step_delay_ms is None else step_delay_ms
    return delay_ms / 1000.0


@router.get(
    "/automations",
    response_model=List[AutomationAction],
    summary="List automations",
    description="List the automation catalog available to automated nodes"
)
def list_automations(
    action_resolver: ActionResolver = Depends(get_action_resolver)
) -> List[AutomationAction]:
    """
    List the automation catalog.

    Raises:
        HTTPException: 502 if the remote catalog cannot be read
    """
    try:
        return action_resolver.list_actions()
    except ActionResolutionError as e:
        logger.error(f"Failed to list automations: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=create_error_response(e)
        )


@router.post(
    "/simulate",
    response_model=RunResult,
    summary="Simulate a workflow graph",
    description="Run a simulation to completion and return its transcript"
)
def simulate_workflow(
    request: SimulateRequest,
    simulation_engine: SimulationEngine = Depends(get_simulation_engine),
    graph_manager: GraphManager = Depends(get_graph_manager)
) -> RunResult:
    """
    Simulate a workflow graph.

    Args:
        request: Graph document and optional step delay
        simulation_engine: Simulation engine dependency
        graph_manager: Graph manager dependency

    Returns:
        The run result with the complete log

    Raises:
        HTTPException: 422 if the graph document is invalid
    """
    graph = _load_graph_or_422(graph_manager, request.graph)
    logger.info(f"Simulating graph with {len(graph.nodes)} nodes and {len(graph.edges)} edges")

    return simulation_engine.run(
        graph,
        cancellation_token=CancellationToken(),
        step_delay=_step_delay_seconds(request.step_delay_ms)
    )


@router.post(
    "/graph/validate",
    response_model=ValidationResult,
    summary="Validate a workflow graph",
    description="Check a graph for structural problems without running it"
)
def validate_graph(
    request: ValidateGraphRequest,
    graph_manager: GraphManager = Depends(get_graph_manager)
) -> ValidationResult:
    """Validate a workflow graph."""
    graph = _load_graph_or_422(graph_manager, request.graph)
    return graph_manager.validate_graph(graph)


# WebSocket endpoint for live simulation

def _event(event_type: str, data: Optional[Dict[str, Any]] = None, **fields) -> Dict[str, Any]:
    message = {"event_type": event_type, "timestamp": datetime.utcnow().isoformat()}
    if data is not None:
        message["data"] = data
    message.update(fields)
    return message


async def _stream_simulation(
    websocket: WebSocket,
    receive_task: "asyncio.Future",
    simulation_engine: SimulationEngine,
    graph: WorkflowGraph,
    step_delay: float
) -> "asyncio.Future":
    """
    Run a simulation in a worker thread and forward its events in order.

    The pending receive task is shared with the caller so client messages
    (``cancel``) are read while the run is in progress.

    Returns:
        The receive task still waiting for the next client message

    Raises:
        WebSocketDisconnect: If the client went away; the run is cancelled first
    """
    loop = asyncio.get_running_loop()
    events: asyncio.Queue = asyncio.Queue()
    token = CancellationToken()

    def on_log(entry: LogEntry) -> None:
        loop.call_soon_threadsafe(events.put_nowait, _event("log", entry.model_dump(mode="json")))

    def on_status(node_id: str, node_status: Optional[NodeStatus]) -> None:
        loop.call_soon_threadsafe(
            events.put_nowait,
            _event("status", {"node_id": node_id, "status": node_status.value if node_status else None})
        )

    run_future = loop.run_in_executor(None, simulation_engine.run, graph, on_log, on_status, token, step_delay)

    while True:
        get_task = asyncio.ensure_future(events.get())
        done, _ = await asyncio.wait(
            {get_task, receive_task, run_future}, return_when=asyncio.FIRST_COMPLETED
        )

        if get_task in done:
            await websocket.send_json(get_task.result())
        else:
            get_task.cancel()

        if receive_task in done:
            try:
                message = _parse_client_message(receive_task.result())
            except WebSocketDisconnect:
                token.cancel()
                await asyncio.wait({run_future})
                raise
            receive_task = asyncio.ensure_future(websocket.receive_text())

            if message is None:
                await websocket.send_json(_event("error", message="Invalid JSON message format"))
            elif message.get("action") == "cancel":
                logger.info("Cancellation requested over WebSocket")
                token.cancel()
            else:
                await websocket.send_json(_event("error", message="A simulation is already running"))

        if run_future.done():
            # Events are queued before the run future completes, so draining here keeps order
            while not events.empty():
                await websocket.send_json(events.get_nowait())
            if run_future.exception() is not None:
                error = run_future.exception()
                logger.error(f"Simulation failed with an unexpected error: {error}")
                await websocket.send_json(_event("error", message=f"Simulation error: {error}"))
            else:
                result: RunResult = run_future.result()
                await websocket.send_json(_event("result", result.model_dump(mode="json")))
            return receive_task


@router.websocket("/ws/simulate")
async def websocket_simulate(websocket: WebSocket):
    """
    WebSocket endpoint for live simulation.

    Message format for client messages:
    {
        "action": "run" | "cancel" | "ping",
        "graph": {...},              # for "run"
        "step_delay_ms": 700         # optional, for "run"
    }

    Message format for server messages:
    {
        "event_type": "connection_established" | "log" | "status" | "result" | "pong" | "error",
        "timestamp": "iso_timestamp",
        "data": {...}
    }
    """
    if _simulation_engine is None or _graph_manager is None:
        await websocket.close(code=1011, reason="Simulation engine not available")
        return

    await websocket.accept()
    await websocket.send_json(_event("connection_established", message="Ready to simulate"))
    logger.info("WebSocket simulation client connected")

    receive_task = asyncio.ensure_future(websocket.receive_text())
    try:
        while True:
            raw_message = await receive_task
            receive_task = asyncio.ensure_future(websocket.receive_text())

            message = _parse_client_message(raw_message)
            if message is None:
                await websocket.send_json(_event("error", message="Invalid JSON message format"))
                continue

            action = message.get("action")
            if action == "ping":
                await websocket.send_json(_event("pong"))
            elif action == "cancel":
                await websocket.send_json(_event("error", message="No simulation is running"))
            elif action == "run":
                try:
                    request = _parse_run_request(message)
                    graph = _graph_manager.load_graph(request.graph)
                except GraphValidationError as e:
                    await websocket.send_json(_event("error", create_error_response(e), message=e.message))
                    continue

                receive_task = await _stream_simulation(
                    websocket, receive_task, _simulation_engine, graph, _step_delay_seconds(request.step_delay_ms)
                )
            else:
                await websocket.send_json(_event("error", message=f"Unknown action: {action}"))

    except WebSocketDisconnect:
        logger.info("WebSocket simulation client disconnected")
    finally:
        if not receive_task.done():
            receive_task.cancel()
