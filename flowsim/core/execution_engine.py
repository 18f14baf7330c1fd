"""Execution engine that walks a workflow graph and simulates each step."""

import logging
import uuid
from typing import Callable, List, Optional, Set

from ..models.core import (
    LogEntry, LogLevel, NodeStatus, RunOutcome, RunResult, WorkflowGraph, WorkflowNode
)
from .cancellation import CancellationToken
from .exceptions import GraphValidationError, NodeExecutionError, SimulationAborted
from .logging import get_logger, log_with_context, logging_context
from .step_executor import ExecutionContext, StepExecutor

logger = get_logger(__name__)

LogCallback = Callable[[LogEntry], None]
StatusCallback = Callable[[str, Optional[NodeStatus]], None]


class _CallbackError(Exception):
    """Carries an exception raised by a caller-supplied callback."""

    def __init__(self, original: BaseException):
        super().__init__(str(original))
        self.original = original


class RunState:
    """State owned by a single run: visited nodes, the transcript and the callbacks."""

    def __init__(
        self,
        run_id: str,
        cancellation_token: CancellationToken,
        on_log: Optional[LogCallback] = None,
        on_status: Optional[StatusCallback] = None
    ):
        self.run_id = run_id
        self.cancellation_token = cancellation_token
        self.visited: Set[str] = set()
        self.logs: List[LogEntry] = []
        self.failed_node_id: Optional[str] = None
        self._on_log = on_log
        self._on_status = on_status

    def log(self, node: Optional[WorkflowNode], level: LogLevel, message: str) -> None:
        """Append an entry to the transcript and push it to the log callback."""
        entry = LogEntry(
            node_id=node.id if node else None,
            node_title=node.display_title if node else None,
            level=level,
            message=message
        )
        self.logs.append(entry)
        if self._on_log:
            try:
                self._on_log(entry)
            except Exception as e:
                raise _CallbackError(e) from e

    def status(self, node_id: str, status: Optional[NodeStatus]) -> None:
        """Report a node status transition."""
        if self._on_status:
            try:
                self._on_status(node_id, status)
            except Exception as e:
                raise _CallbackError(e) from e

    def result(self, outcome: RunOutcome) -> RunResult:
        return RunResult(
            run_id=self.run_id,
            success=outcome == RunOutcome.SUCCEEDED,
            outcome=outcome,
            logs=list(self.logs)
        )


class SimulationEngine:
    """Walks a workflow graph depth-first from its start nodes, one node at a time.

    Every reachable node runs at most once per run. A failing node stops the
    whole run; a cancelled token stops it at the next check or wait.
    Exceptions raised by the log or status callbacks are not handled and
    propagate out of :meth:`run`.
    """

    def __init__(self, step_executor: Optional[StepExecutor] = None):
        """Initialize the simulation engine.

        Args:
            step_executor: Per-node behavior; a default executor with the static catalog if omitted
        """
        self.step_executor = step_executor or StepExecutor()

    def run(
        self,
        graph: WorkflowGraph,
        on_log: Optional[LogCallback] = None,
        on_status: Optional[StatusCallback] = None,
        cancellation_token: Optional[CancellationToken] = None,
        step_delay: float = 0.0
    ) -> RunResult:
        """
        Simulate a workflow graph.

        Args:
            graph: Graph to simulate; it is only read
            on_log: Called with every log entry, in order, as it is produced
            on_status: Called with (node_id, status) on every status change; None clears a status
            cancellation_token: Token observed before each node and during every wait
            step_delay: Simulated processing time per step in seconds

        Returns:
            Result holding the success flag, the outcome and the full transcript

        Raises:
            GraphValidationError: If no graph is given
            ValueError: If step_delay is negative
        """
        if graph is None:
            raise GraphValidationError("A graph is required to run a simulation")
        if step_delay < 0:
            raise ValueError("step_delay must be non-negative")

        state = RunState(
            run_id=str(uuid.uuid4()),
            cancellation_token=cancellation_token or CancellationToken(),
            on_log=on_log,
            on_status=on_status
        )
        with logging_context(run_id=state.run_id):
            log_with_context(
                logger, logging.INFO, "Starting workflow simulation",
                node_count=len(graph.nodes), edge_count=len(graph.edges)
            )

            try:
                outcome = self._run_branches(graph, state, step_delay)
            except _CallbackError as e:
                logger.error(f"Simulation stopped by a failing callback: {e.original}")
                raise e.original

            log_with_context(
                logger, logging.INFO, f"Workflow simulation finished: {outcome.value}",
                outcome=outcome.value, visited=len(state.visited)
            )
        return state.result(outcome)

    def _run_branches(self, graph: WorkflowGraph, state: RunState, step_delay: float) -> RunOutcome:
        """Run every start node's branch in graph order."""
        start_nodes = graph.start_nodes()
        if not start_nodes:
            state.log(None, LogLevel.ERROR, "No Start node found. Simulation aborted.")
            return RunOutcome.FAILED

        try:
            for start_node in start_nodes:
                if start_node.id in state.visited:
                    continue
                state.visited.add(start_node.id)
                if not self._walk_branch(start_node, graph, state, step_delay):
                    state.log(
                        None, LogLevel.ERROR,
                        f"Workflow stopped due to failure at node {state.failed_node_id}."
                    )
                    return RunOutcome.FAILED
        except SimulationAborted:
            logger.info(f"Simulation {state.run_id} aborted by user")
            state.log(None, LogLevel.INFO, "Simulation aborted by user.")
            return RunOutcome.CANCELLED

        state.log(None, LogLevel.SUCCESS, "Workflow simulation completed successfully.")
        return RunOutcome.SUCCEEDED

    def _walk_branch(
        self,
        start_node: WorkflowNode,
        graph: WorkflowGraph,
        state: RunState,
        step_delay: float
    ) -> bool:
        """
        Depth-first walk from a start node.

        Each node's outgoing edges are followed in input order after it
        succeeds; a sibling is only entered once the previous sibling's
        subtree is finished.

        Returns:
            True if every visited node succeeded, False at the first failure
        """
        if not self._visit_node(start_node, state, step_delay):
            return False

        stack = [iter(graph.outgoing_edges(start_node.id))]
        while stack:
            edge = next(stack[-1], None)
            if edge is None:
                stack.pop()
                continue

            target = graph.get_node(edge.target)
            if target is None:
                logger.warning(f"Edge {edge.source} -> {edge.target} points to a missing node, skipping")
                continue
            if target.id in state.visited:
                continue

            state.visited.add(target.id)
            if not self._visit_node(target, state, step_delay):
                return False
            stack.append(iter(graph.outgoing_edges(target.id)))

        return True

    def _visit_node(self, node: WorkflowNode, state: RunState, step_delay: float) -> bool:
        """
        Execute a single node and report its status.

        Args:
            node: Node to execute
            state: State of the current run
            step_delay: Simulated processing time in seconds

        Returns:
            True if the node succeeded

        Raises:
            SimulationAborted: If the run was cancelled before or during the node
        """
        state.cancellation_token.raise_if_cancelled(state.run_id)

        title = node.display_title
        state.log(node, LogLevel.INFO, f'Executing node "{title}"')
        state.status(node.id, NodeStatus.RUNNING)

        context = ExecutionContext(
            run_id=state.run_id,
            node=node,
            cancellation_token=state.cancellation_token,
            step_delay=step_delay,
            log=lambda level, message: state.log(node, level, message)
        )

        try:
            context.wait()
            succeeded = self.step_executor.execute(node, context)
        except SimulationAborted:
            state.status(node.id, None)
            raise
        except _CallbackError:
            raise
        except Exception as e:
            error = NodeExecutionError(str(e), node_id=node.id, run_id=state.run_id)
            logger.error(
                f"Node {node.id} execution failed for run {state.run_id}: {e}",
                exc_info=True,
                extra={"extra_fields": {"error_details": error.to_dict()}}
            )
            state.status(node.id, NodeStatus.FAILED)
            state.log(node, LogLevel.ERROR, f'Node "{title}" execution error: {e}')
            state.failed_node_id = node.id
            return False

        if not succeeded:
            logger.info(f"Node {node.id} failed for run {state.run_id}")
            state.status(node.id, NodeStatus.FAILED)
            state.failed_node_id = node.id
            return False

        logger.debug(f"Successfully executed node {node.id} for run {state.run_id}")
        state.status(node.id, NodeStatus.SUCCESS)
        return True
