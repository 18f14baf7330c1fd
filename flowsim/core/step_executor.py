"""Per-node-type behavior for simulated workflow steps."""

import json
from typing import Callable, Optional

import requests

from ..models.core import (
    ApprovalNode, AutomatedNode, EndNode, LogLevel, StartNode, TaskNode, WorkflowNode
)
from .action_resolver import ActionResolver, StaticActionResolver
from .cancellation import CancellationToken
from .logging import get_logger

logger = get_logger(__name__)


class ExecutionContext:
    """Context for a single node step: where to log and how long to wait."""

    def __init__(
        self,
        run_id: str,
        node: WorkflowNode,
        cancellation_token: CancellationToken,
        step_delay: float,
        log: Callable[[LogLevel, str], None]
    ):
        self.run_id = run_id
        self.node = node
        self.cancellation_token = cancellation_token
        self.step_delay = step_delay
        self._log = log

    @property
    def title(self) -> str:
        return self.node.display_title

    def log(self, level: LogLevel, message: str) -> None:
        """Emit a log entry attributed to the current node."""
        self._log(level, message)

    def wait(self) -> None:
        """Simulate processing time; raises SimulationAborted if cancelled."""
        self.cancellation_token.wait(self.step_delay, run_id=self.run_id)


class StepExecutor:
    """Decides the outcome of one node and produces its log lines.

    Validation problems are reported as a failed outcome (``False``), never
    raised. Cancellation during a wait surfaces as SimulationAborted.
    """

    def __init__(
        self,
        action_resolver: Optional[ActionResolver] = None,
        http_session: Optional[requests.Session] = None,
        request_timeout: Optional[float] = None
    ):
        """Initialize the step executor.

        Args:
            action_resolver: Catalog used by automated nodes; the built-in static catalog if omitted
            http_session: Session used to call automation endpoints
            request_timeout: Optional timeout for automation calls in seconds
        """
        self.action_resolver = action_resolver or StaticActionResolver()
        self._session = http_session or requests.Session()
        self._request_timeout = request_timeout
        self._handlers = {
            StartNode: self._execute_start,
            EndNode: self._execute_end,
            TaskNode: self._execute_task,
            ApprovalNode: self._execute_approval,
            AutomatedNode: self._execute_automated,
        }

    def execute(self, node: WorkflowNode, context: ExecutionContext) -> bool:
        """
        Run the behavior for ``node``.

        Args:
            node: Node to execute
            context: Execution context for the node

        Returns:
            True if the step succeeded, False if it failed
        """
        handler = self._handlers.get(type(node), self._execute_generic)
        return handler(node, context)

    def _execute_start(self, node: StartNode, context: ExecutionContext) -> bool:
        context.log(LogLevel.SUCCESS, f'Start "{context.title}" initialized.')
        return True

    def _execute_end(self, node: EndNode, context: ExecutionContext) -> bool:
        context.log(LogLevel.SUCCESS, f'End "{context.title}" reached.')
        return True

    def _execute_task(self, node: TaskNode, context: ExecutionContext) -> bool:
        if not node.assignee:
            context.log(LogLevel.ERROR, f'Task node "{context.title}" missing assignee.')
            return False
        context.log(LogLevel.SUCCESS, f'Task "{context.title}" completed.')
        return True

    def _execute_approval(self, node: ApprovalNode, context: ExecutionContext) -> bool:
        # Approvals never fail in simulation
        threshold = node.auto_approve_threshold
        if threshold is None:
            context.log(LogLevel.INFO, f'No threshold set; auto-approving "{context.title}".')
        elif threshold <= 0:
            context.log(LogLevel.INFO, f'Auto-approve threshold met for "{context.title}".')
            context.log(LogLevel.SUCCESS, f'Approval "{context.title}" approved.')
        else:
            context.log(LogLevel.INFO, f'Approval required for "{context.title}". Simulating approver...')
            context.wait()
            context.log(LogLevel.SUCCESS, f'Approval "{context.title}" approved.')
        return True

    def _execute_automated(self, node: AutomatedNode, context: ExecutionContext) -> bool:
        title = context.title
        if not node.action_id:
            context.log(LogLevel.ERROR, f'Automated node "{title}" has no actionId configured.')
            return False

        context.log(LogLevel.INFO, f'Triggering automation "{node.action_id}" for "{title}".')

        try:
            action = self.action_resolver.resolve(node.action_id)
        except Exception as e:
            logger.warning(f"Could not resolve automation '{node.action_id}', simulating instead: {e}")
            action = None

        if action is None or action.invocation_target is None:
            context.wait()
            context.log(LogLevel.SUCCESS, f'Automation "{title}" simulated successfully.')
            return True

        target = action.invocation_target
        method = (target.method or "POST").upper()
        logger.debug(f"Calling automation '{action.id}': {method} {target.url}")
        try:
            response = self._session.request(
                method,
                target.url,
                json=node.action_params or {},
                timeout=self._request_timeout
            )
        except requests.RequestException as e:
            context.log(LogLevel.ERROR, f'Automation "{title}" failed: {e}')
            return False

        if not response.ok:
            reason = response.reason or "Request failed"
            context.log(LogLevel.ERROR, f'Automation "{title}" failed: {response.status_code} {reason}')
            return False

        try:
            body = response.json()
        except ValueError:
            body = {}
        context.log(LogLevel.SUCCESS, f'Automation "{title}" succeeded. Response: {json.dumps(body)}')
        return True

    def _execute_generic(self, node: WorkflowNode, context: ExecutionContext) -> bool:
        context.log(LogLevel.INFO, f'Generic node "{context.title}" executed.')
        return True
