"""Tests for the simulation engine's graph walk and run outcomes."""

import threading

import pytest

from flowsim.core.action_resolver import ActionResolver
from flowsim.core.cancellation import CancellationToken
from flowsim.core.exceptions import GraphValidationError
from flowsim.core.execution_engine import SimulationEngine
from flowsim.core.step_executor import StepExecutor
from flowsim.models.core import LogLevel, NodeStatus, RunOutcome, WorkflowGraph

from conftest import CountingToken, make_graph_document


def build_graph(nodes, edges):
    return WorkflowGraph.model_validate(make_graph_document(nodes, edges))


def linear_graph():
    return build_graph(
        [
            {"id": "s", "type": "start", "title": "Start"},
            {"id": "t", "type": "task", "title": "Review", "assignee": "bob"},
            {"id": "e", "type": "end", "title": "End"},
        ],
        [("s", "t"), ("t", "e")]
    )


class ExplodingExecutor(StepExecutor):
    """Step executor that raises an unexpected error for one node."""

    def __init__(self, node_id, **kwargs):
        super().__init__(**kwargs)
        self.node_id = node_id

    def execute(self, node, context):
        if node.id == self.node_id:
            raise RuntimeError("boom")
        return super().execute(node, context)


class TestSimulationRuns:
    """Test cases for complete simulation runs."""

    def test_linear_graph_succeeds(self, engine, recorder):
        result = engine.run(linear_graph(), on_log=recorder.on_log, on_status=recorder.on_status)

        assert result.success is True
        assert result.outcome == RunOutcome.SUCCEEDED
        assert [(entry.level, entry.message) for entry in result.logs] == [
            (LogLevel.INFO, 'Executing node "Start"'),
            (LogLevel.SUCCESS, 'Start "Start" initialized.'),
            (LogLevel.INFO, 'Executing node "Review"'),
            (LogLevel.SUCCESS, 'Task "Review" completed.'),
            (LogLevel.INFO, 'Executing node "End"'),
            (LogLevel.SUCCESS, 'End "End" reached.'),
            (LogLevel.SUCCESS, "Workflow simulation completed successfully."),
        ]
        assert recorder.statuses == [
            ("s", NodeStatus.RUNNING), ("s", NodeStatus.SUCCESS),
            ("t", NodeStatus.RUNNING), ("t", NodeStatus.SUCCESS),
            ("e", NodeStatus.RUNNING), ("e", NodeStatus.SUCCESS),
        ]

    def test_callback_logs_match_result_logs(self, engine, recorder):
        result = engine.run(linear_graph(), on_log=recorder.on_log)

        assert recorder.logs == result.logs

    def test_log_entries_carry_node_attribution(self, engine):
        result = engine.run(linear_graph())

        assert result.logs[0].node_id == "s"
        assert result.logs[0].node_title == "Start"
        assert result.logs[-1].node_id is None
        assert result.run_id

    def test_each_run_has_its_own_id(self, engine):
        graph = linear_graph()

        assert engine.run(graph).run_id != engine.run(graph).run_id

    def test_no_start_node(self, engine, recorder):
        graph = build_graph([{"id": "t", "type": "task", "assignee": "bob"}], [])

        result = engine.run(graph, on_log=recorder.on_log, on_status=recorder.on_status)

        assert result.success is False
        assert result.outcome == RunOutcome.FAILED
        assert [entry.message for entry in result.logs] == ["No Start node found. Simulation aborted."]
        assert recorder.statuses == []

    def test_empty_graph(self, engine):
        result = engine.run(WorkflowGraph.from_document({"nodes": []}))

        assert result.success is False
        assert len(result.logs) == 1

    def test_missing_graph_raises(self, engine):
        with pytest.raises(GraphValidationError):
            engine.run(None)

    def test_negative_delay_raises(self, engine):
        with pytest.raises(ValueError):
            engine.run(linear_graph(), step_delay=-1)

    def test_graph_is_not_modified(self, engine):
        graph = linear_graph()
        before = graph.model_dump()

        engine.run(graph)

        assert graph.model_dump() == before


class TestGraphTraversal:
    """Test cases for traversal order and visit-once semantics."""

    def test_fan_in_node_runs_once(self, engine, recorder):
        graph = build_graph(
            [
                {"id": "s", "type": "start"},
                {"id": "a", "type": "task", "assignee": "ann"},
                {"id": "b", "type": "task", "assignee": "ben"},
                {"id": "join", "type": "end"},
            ],
            [("s", "a"), ("s", "b"), ("a", "join"), ("b", "join")]
        )

        result = engine.run(graph, on_status=recorder.on_status)

        assert result.success is True
        assert recorder.executed_node_ids() == ["s", "a", "join", "b"]

    def test_depth_first_in_edge_order(self, engine, recorder):
        graph = build_graph(
            [
                {"id": "s", "type": "start"},
                {"id": "a", "type": "generic"},
                {"id": "a1", "type": "generic"},
                {"id": "a2", "type": "generic"},
                {"id": "b", "type": "generic"},
            ],
            [("s", "a"), ("s", "b"), ("a", "a1"), ("a", "a2")]
        )

        engine.run(graph, on_status=recorder.on_status)

        assert recorder.executed_node_ids() == ["s", "a", "a1", "a2", "b"]

    def test_cycle_terminates(self, engine, recorder):
        graph = build_graph(
            [
                {"id": "s", "type": "start"},
                {"id": "a", "type": "task", "assignee": "ann"},
                {"id": "b", "type": "task", "assignee": "ben"},
            ],
            [("s", "a"), ("a", "b"), ("b", "a"), ("b", "s")]
        )

        result = engine.run(graph, on_status=recorder.on_status)

        assert result.success is True
        assert recorder.executed_node_ids() == ["s", "a", "b"]

    def test_long_chain_does_not_hit_recursion_limit(self, engine):
        count = 3000
        nodes = [{"id": "n0", "type": "start"}]
        nodes += [{"id": f"n{i}", "type": "generic"} for i in range(1, count)]
        edges = [(f"n{i}", f"n{i + 1}") for i in range(count - 1)]

        result = engine.run(build_graph(nodes, edges))

        assert result.success is True

    def test_dangling_edge_is_skipped(self, engine, recorder):
        graph = build_graph(
            [{"id": "s", "type": "start"}, {"id": "e", "type": "end"}],
            [("s", "ghost"), ("s", "e")]
        )

        result = engine.run(graph, on_status=recorder.on_status)

        assert result.success is True
        assert recorder.executed_node_ids() == ["s", "e"]

    def test_multiple_start_nodes_run_in_graph_order(self, engine, recorder):
        graph = build_graph(
            [
                {"id": "s1", "type": "start"},
                {"id": "s2", "type": "start"},
                {"id": "a", "type": "generic"},
                {"id": "b", "type": "generic"},
            ],
            [("s1", "a"), ("s2", "b"), ("s2", "a")]
        )

        engine.run(graph, on_status=recorder.on_status)

        assert recorder.executed_node_ids() == ["s1", "a", "s2", "b"]

    def test_start_reached_from_other_branch_is_not_rerun(self, engine, recorder):
        graph = build_graph(
            [{"id": "s1", "type": "start"}, {"id": "s2", "type": "start"}],
            [("s1", "s2")]
        )

        engine.run(graph, on_status=recorder.on_status)

        assert recorder.executed_node_ids() == ["s1", "s2"]

    def test_unreachable_nodes_do_not_run(self, engine, recorder):
        graph = build_graph(
            [{"id": "s", "type": "start"}, {"id": "orphan", "type": "task"}],
            []
        )

        result = engine.run(graph, on_status=recorder.on_status)

        assert result.success is True
        assert recorder.statuses_for("orphan") == []


class TestFailures:
    """Test cases for failing nodes stopping the run."""

    def test_task_without_assignee_stops_run(self, engine, recorder):
        graph = build_graph(
            [
                {"id": "s", "type": "start"},
                {"id": "t", "type": "task", "title": "Review"},
                {"id": "e", "type": "end"},
            ],
            [("s", "t"), ("t", "e")]
        )

        result = engine.run(graph, on_log=recorder.on_log, on_status=recorder.on_status)

        assert result.success is False
        assert result.outcome == RunOutcome.FAILED
        assert recorder.statuses_for("t") == [NodeStatus.RUNNING, NodeStatus.FAILED]
        assert recorder.statuses_for("e") == []
        assert [entry.message for entry in result.logs[-2:]] == [
            'Task node "Review" missing assignee.',
            "Workflow stopped due to failure at node t.",
        ]

    def test_failure_stops_later_start_branches(self, engine, recorder):
        graph = build_graph(
            [
                {"id": "s1", "type": "start"},
                {"id": "bad", "type": "automated"},
                {"id": "s2", "type": "start"},
            ],
            [("s1", "bad")]
        )

        result = engine.run(graph, on_status=recorder.on_status)

        assert result.success is False
        assert recorder.statuses_for("s2") == []

    def test_failure_stops_sibling_branches(self, engine, recorder):
        graph = build_graph(
            [
                {"id": "s", "type": "start"},
                {"id": "bad", "type": "task"},
                {"id": "sibling", "type": "end"},
            ],
            [("s", "bad"), ("s", "sibling")]
        )

        engine.run(graph, on_status=recorder.on_status)

        assert recorder.statuses_for("sibling") == []

    def test_automated_endpoint_error_fails_run(self, engine):
        graph = build_graph(
            [
                {"id": "s", "type": "start"},
                {"id": "x", "type": "automated", "title": "Hook", "actionId": "broken_api"},
            ],
            [("s", "x")]
        )

        result = engine.run(graph)

        assert result.success is False
        assert result.logs[-2].message == 'Automation "Hook" failed: 500 Internal Server Error'
        assert result.logs[-2].level == LogLevel.ERROR

    def test_automated_success_logs_response(self, engine, fake_session):
        graph = build_graph(
            [
                {"id": "s", "type": "start"},
                {"id": "x", "type": "automated", "title": "Hook", "actionId": "call_api",
                 "actionParams": {"to": "ops"}},
            ],
            [("s", "x")]
        )

        result = engine.run(graph)

        assert result.success is True
        assert 'Response: {"status": "sent"}' in result.logs[-2].message
        assert fake_session.calls[0]["json"] == {"to": "ops"}

    def test_resolver_crash_falls_back_to_simulation(self, fake_session):
        class CrashingResolver(ActionResolver):
            def list_actions(self):
                raise RuntimeError("catalog exploded")

        engine = SimulationEngine(StepExecutor(action_resolver=CrashingResolver(), http_session=fake_session))
        graph = build_graph(
            [
                {"id": "s", "type": "start"},
                {"id": "x", "type": "automated", "title": "Mail", "actionId": "send_email"},
            ],
            [("s", "x")]
        )

        result = engine.run(graph)

        assert result.success is True
        assert 'Automation "Mail" simulated successfully.' in [entry.message for entry in result.logs]
        assert all(entry.level != LogLevel.ERROR for entry in result.logs)

    def test_whitespace_assignee_completes(self, engine):
        graph = build_graph(
            [{"id": "s", "type": "start"}, {"id": "t", "type": "task", "assignee": "  "}],
            [("s", "t")]
        )

        assert engine.run(graph).success is True

    def test_unexpected_exception_marks_node_failed(self, action_resolver, fake_session, recorder):
        engine = SimulationEngine(
            ExplodingExecutor("t", action_resolver=action_resolver, http_session=fake_session)
        )

        result = engine.run(linear_graph(), on_status=recorder.on_status)

        assert result.success is False
        assert recorder.statuses_for("t") == [NodeStatus.RUNNING, NodeStatus.FAILED]
        assert 'Node "Review" execution error: boom' in [entry.message for entry in result.logs]


class TestCancellation:
    """Test cases for cooperative cancellation."""

    def test_cancel_before_run(self, engine, recorder):
        token = CancellationToken()
        token.cancel()

        result = engine.run(linear_graph(), on_status=recorder.on_status, cancellation_token=token)

        assert result.success is False
        assert result.outcome == RunOutcome.CANCELLED
        assert recorder.statuses == []
        assert [entry.message for entry in result.logs] == ["Simulation aborted by user."]

    def test_cancel_during_step_wait(self, engine, recorder):
        # Second wait is the task node's processing delay
        token = CountingToken(cancel_on_wait=2)

        result = engine.run(
            linear_graph(), on_log=recorder.on_log, on_status=recorder.on_status, cancellation_token=token
        )

        assert result.outcome == RunOutcome.CANCELLED
        assert result.success is False
        assert recorder.statuses_for("s") == [NodeStatus.RUNNING, NodeStatus.SUCCESS]
        assert recorder.statuses_for("t") == [NodeStatus.RUNNING, None]
        assert recorder.statuses_for("e") == []
        assert result.logs[-1].message == "Simulation aborted by user."
        assert result.logs[-1].level == LogLevel.INFO
        assert "Task \"Review\" completed." not in [entry.message for entry in result.logs]

    def test_cancel_during_approval_wait(self, engine, recorder):
        graph = build_graph(
            [
                {"id": "s", "type": "start"},
                {"id": "a", "type": "approval", "autoApproveThreshold": 2},
            ],
            [("s", "a")]
        )
        # start delay, approval delay, approver wait
        token = CountingToken(cancel_on_wait=3)

        result = engine.run(graph, on_status=recorder.on_status, cancellation_token=token)

        assert result.outcome == RunOutcome.CANCELLED
        assert recorder.statuses_for("a") == [NodeStatus.RUNNING, None]

    def test_cancel_from_another_thread(self, engine, recorder):
        token = CancellationToken()
        timer = threading.Timer(0.1, token.cancel)
        timer.start()

        result = engine.run(
            linear_graph(), on_status=recorder.on_status, cancellation_token=token, step_delay=5.0
        )
        timer.join()

        assert result.outcome == RunOutcome.CANCELLED
        assert recorder.statuses_for("s") == [NodeStatus.RUNNING, None]


class TestCallbacks:
    """Test cases for caller-supplied callbacks."""

    def test_log_callback_error_propagates(self, engine):
        def on_log(entry):
            raise KeyError("log sink closed")

        with pytest.raises(KeyError):
            engine.run(linear_graph(), on_log=on_log)

    def test_status_callback_error_propagates(self, engine):
        calls = []

        def on_status(node_id, status):
            calls.append(node_id)
            raise RuntimeError("status sink closed")

        with pytest.raises(RuntimeError, match="status sink closed"):
            engine.run(linear_graph(), on_status=on_status)

        assert calls == ["s"]
