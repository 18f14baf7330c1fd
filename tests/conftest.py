"""Pytest configuration and fixtures."""

import pytest
from typing import Any, Dict, List, Optional, Tuple

import requests

from flowsim.core.action_resolver import StaticActionResolver
from flowsim.core.cancellation import CancellationToken
from flowsim.core.execution_engine import SimulationEngine
from flowsim.core.step_executor import StepExecutor
from flowsim.models.core import LogEntry, NodeStatus


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, status_code: int = 200, body: Any = None, reason: str = "OK"):
        self.status_code = status_code
        self.reason = reason
        self._body = body

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        if self._body is None:
            raise ValueError("No JSON body")
        return self._body

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} {self.reason}")


class FakeSession:
    """Records outgoing calls and replays configured responses per URL."""

    def __init__(self):
        self.responses: Dict[str, Any] = {}
        self.calls: List[Dict[str, Any]] = []

    def _reply(self, url: str):
        response = self.responses[url]
        if isinstance(response, Exception):
            raise response
        return response

    def request(self, method: str, url: str, json: Any = None, timeout: Optional[float] = None):
        self.calls.append({"method": method, "url": url, "json": json, "timeout": timeout})
        return self._reply(url)

    def get(self, url: str, timeout: Optional[float] = None):
        self.calls.append({"method": "GET", "url": url, "json": None, "timeout": timeout})
        return self._reply(url)


class CountingToken(CancellationToken):
    """Cancellation token that counts waits and can cancel itself on a given wait."""

    def __init__(self, cancel_on_wait: Optional[int] = None):
        super().__init__()
        self.wait_calls = 0
        self._cancel_on_wait = cancel_on_wait

    def wait(self, seconds: float, run_id: Optional[str] = None) -> None:
        self.wait_calls += 1
        if self._cancel_on_wait is not None and self.wait_calls >= self._cancel_on_wait:
            self.cancel()
        super().wait(seconds, run_id=run_id)


class EventRecorder:
    """Collects log entries and status transitions delivered by the callbacks."""

    def __init__(self):
        self.logs: List[LogEntry] = []
        self.statuses: List[Tuple[str, Optional[NodeStatus]]] = []

    def on_log(self, entry: LogEntry) -> None:
        self.logs.append(entry)

    def on_status(self, node_id: str, status: Optional[NodeStatus]) -> None:
        self.statuses.append((node_id, status))

    def statuses_for(self, node_id: str) -> List[Optional[NodeStatus]]:
        return [status for recorded_id, status in self.statuses if recorded_id == node_id]

    def executed_node_ids(self) -> List[str]:
        return [node_id for node_id, status in self.statuses if status == NodeStatus.RUNNING]


AUTOMATION_URL = "http://automation.test/run"
BROKEN_AUTOMATION_URL = "http://automation.test/broken"


@pytest.fixture
def fake_session():
    """Fake HTTP session with a working and a failing automation endpoint."""
    session = FakeSession()
    session.responses[AUTOMATION_URL] = FakeResponse(200, {"status": "sent"})
    session.responses[BROKEN_AUTOMATION_URL] = FakeResponse(500, reason="Internal Server Error")
    return session


@pytest.fixture
def action_resolver():
    """Static catalog with simulated and remote automations."""
    return StaticActionResolver([
        {"id": "send_email", "label": "Send Email", "params": ["to", "subject"]},
        {"id": "call_api", "label": "Call API", "url": AUTOMATION_URL},
        {"id": "broken_api", "label": "Broken API", "url": BROKEN_AUTOMATION_URL, "method": "put"},
    ])


@pytest.fixture
def step_executor(action_resolver, fake_session):
    return StepExecutor(action_resolver=action_resolver, http_session=fake_session)


@pytest.fixture
def engine(step_executor):
    return SimulationEngine(step_executor)


@pytest.fixture
def recorder():
    return EventRecorder()


def make_graph_document(nodes: List[Dict[str, Any]], edges: List[Tuple[str, str]]) -> Dict[str, Any]:
    """Build a flat graph document from node dicts and (source, target) pairs."""
    return {
        "nodes": nodes,
        "edges": [{"source": source, "target": target} for source, target in edges],
    }
