"""Graph Manager for loading and checking workflow graphs."""

from collections import deque
from typing import Any, Dict, List, Set

from pydantic import ValidationError

from ..models.core import (
    AutomatedNode, TaskNode, ValidationResult, WorkflowGraph
)
from .exceptions import GraphValidationError
from .logging import get_logger

logger = get_logger(__name__)


class GraphManager:
    """Loads editor documents into graphs and reports structural problems."""

    def load_graph(self, document: Dict[str, Any]) -> WorkflowGraph:
        """
        Build a graph from a ``{nodes, edges}`` document.

        Args:
            document: Exported graph in editor or flat shape

        Returns:
            The parsed graph

        Raises:
            GraphValidationError: If the document is not a valid graph
        """
        if not isinstance(document, dict):
            raise GraphValidationError("Graph document must be a JSON object")
        try:
            return WorkflowGraph.from_document(document)
        except ValidationError as e:
            errors = [f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}" for err in e.errors()]
            logger.warning(f"Rejected graph document: {'; '.join(errors)}")
            raise GraphValidationError("Graph document is invalid", validation_errors=errors) from e

    def validate_graph(self, graph: WorkflowGraph) -> ValidationResult:
        """
        Check a graph without running it.

        A graph without a start node is invalid. Everything else the
        simulator tolerates is reported as a warning.

        Args:
            graph: The graph to validate

        Returns:
            ValidationResult with errors and warnings
        """
        errors: List[str] = []
        warnings: List[str] = []

        if not graph.start_nodes():
            errors.append("Graph has no Start node")

        self._validate_invalid_references(graph, warnings)
        self._validate_unreachable_nodes(graph, warnings)
        self._validate_cycles(graph, warnings)
        self._validate_node_fields(graph, warnings)

        if errors:
            logger.info(f"Graph validation failed: {'; '.join(errors)}")

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

    def _adjacency(self, graph: WorkflowGraph) -> Dict[str, List[str]]:
        adjacency: Dict[str, List[str]] = {}
        for edge in graph.edges:
            adjacency.setdefault(edge.source, []).append(edge.target)
        return adjacency

    def _validate_invalid_references(self, graph: WorkflowGraph, warnings: List[str]):
        """Report edges whose endpoints are not nodes of the graph."""
        node_ids = {node.id for node in graph.nodes}
        for edge in graph.edges:
            if edge.source not in node_ids:
                warnings.append(f"Edge references non-existent source node: '{edge.source}'")
            if edge.target not in node_ids:
                warnings.append(f"Edge references non-existent target node: '{edge.target}'")

    def _validate_unreachable_nodes(self, graph: WorkflowGraph, warnings: List[str]):
        """Report nodes no start node can reach; they never run."""
        start_ids = [node.id for node in graph.start_nodes()]
        if not start_ids:
            return

        adjacency = self._adjacency(graph)
        reachable: Set[str] = set(start_ids)
        queue = deque(start_ids)
        while queue:
            current = queue.popleft()
            for neighbor in adjacency.get(current, []):
                if neighbor not in reachable:
                    reachable.add(neighbor)
                    queue.append(neighbor)

        unreachable = [node.id for node in graph.nodes if node.id not in reachable]
        if unreachable:
            warnings.append(
                f"Unreachable nodes detected: {', '.join(unreachable)}. "
                "They will not run during simulation."
            )

    def _validate_cycles(self, graph: WorkflowGraph, warnings: List[str]):
        """Warn about cycles; each node in a cycle still runs only once."""
        adjacency = self._adjacency(graph)
        visited: Set[str] = set()
        rec_stack: Set[str] = set()

        def has_cycle_from(root_id: str) -> bool:
            visited.add(root_id)
            rec_stack.add(root_id)
            stack = [(root_id, iter(adjacency.get(root_id, [])))]
            while stack:
                node_id, neighbors = stack[-1]
                neighbor = next(neighbors, None)
                if neighbor is None:
                    rec_stack.discard(node_id)
                    stack.pop()
                elif neighbor in rec_stack:
                    return True
                elif neighbor not in visited:
                    visited.add(neighbor)
                    rec_stack.add(neighbor)
                    stack.append((neighbor, iter(adjacency.get(neighbor, []))))
            return False

        for node in graph.nodes:
            if node.id not in visited and has_cycle_from(node.id):
                warnings.append(
                    "Graph contains cycles. Nodes on a cycle run once per simulation."
                )
                return

    def _validate_node_fields(self, graph: WorkflowGraph, warnings: List[str]):
        """Warn about nodes that are configured to fail."""
        for node in graph.nodes:
            if isinstance(node, TaskNode) and not node.assignee:
                warnings.append(f"Task node '{node.display_title}' has no assignee and will fail")
            elif isinstance(node, AutomatedNode) and not node.action_id:
                warnings.append(f"Automated node '{node.display_title}' has no actionId and will fail")
