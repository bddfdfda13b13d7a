"""
Workflow graph model and resolution.

A workflow is a DAG of nodes (one processor kind each) joined by edges.
Edges carry every output artifact of their source node to their target;
a node with several incoming edges receives the concatenation of its
parents' outputs in edge declaration order.
"""

from __future__ import annotations

import heapq
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from docflow.artifact import Artifact


class GraphError(ValueError):
    """The graph definition is inconsistent (unknown node, duplicate id, ...)."""


class CycleError(GraphError):
    """The graph contains a cycle and has no execution order."""

    def __init__(self, message: str, node_ids: Sequence[str] = ()):
        super().__init__(message)
        self.node_ids = tuple(node_ids)


@dataclass(frozen=True)
class Node:
    """
    A processing step.

    Attributes:
        id: Unique node id
        kind: Processor kind, e.g. "compress-pdf"
        settings: Raw, loosely-typed settings for the processor
        inputs: Attached artifacts (only used when the node has no parents)
        label: Display name
    """

    id: str
    kind: str
    settings: Mapping[str, Any] = field(default_factory=dict)
    inputs: tuple[Artifact, ...] = ()
    label: str = ""

    def __post_init__(self):
        object.__setattr__(self, "settings", dict(self.settings or {}))
        object.__setattr__(self, "inputs", tuple(self.inputs))

    @property
    def display_name(self) -> str:
        return self.label or self.id

    def with_inputs(self, inputs: Iterable[Artifact]) -> "Node":
        return Node(self.id, self.kind, self.settings, tuple(inputs), self.label)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "label": self.label,
            "settings": dict(self.settings),
            "inputs": [a.to_dict() for a in self.inputs],
        }


@dataclass(frozen=True)
class Edge:
    """Directed connection: outputs of `source` feed `target`."""

    source: str
    target: str
    id: str | None = None

    @property
    def key(self) -> str:
        return self.id or f"{self.source}->{self.target}"

    def to_dict(self) -> dict:
        return {"id": self.key, "source": self.source, "target": self.target}


class WorkflowGraph:
    """
    Immutable node/edge container with the lookups the executor needs.

    Raises:
        GraphError: On duplicate node ids or edges naming unknown nodes
    """

    def __init__(self, nodes: Iterable[Node], edges: Iterable[Edge] = ()):
        self.nodes: tuple[Node, ...] = tuple(nodes)
        self.edges: tuple[Edge, ...] = tuple(edges)

        self._by_id: dict[str, Node] = {}
        self._order: dict[str, int] = {}
        for index, node in enumerate(self.nodes):
            if node.id in self._by_id:
                raise GraphError(f"Duplicate node id '{node.id}'")
            self._by_id[node.id] = node
            self._order[node.id] = index

        self._incoming: dict[str, list[Edge]] = {node.id: [] for node in self.nodes}
        self._outgoing: dict[str, list[Edge]] = {node.id: [] for node in self.nodes}
        for edge in self.edges:
            for end in (edge.source, edge.target):
                if end not in self._by_id:
                    raise GraphError(f"Edge {edge.key} references unknown node '{end}'")
            self._incoming[edge.target].append(edge)
            self._outgoing[edge.source].append(edge)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._by_id

    def __len__(self) -> int:
        return len(self.nodes)

    def get_node(self, node_id: str) -> Node:
        try:
            return self._by_id[node_id]
        except KeyError:
            raise GraphError(f"Unknown node '{node_id}'") from None

    def incoming(self, node_id: str) -> list[Edge]:
        """Edges ending at a node, in declaration order."""
        return list(self._incoming[node_id])

    def parents(self, node_id: str) -> list[str]:
        return [edge.source for edge in self._incoming[node_id]]

    def children(self, node_id: str) -> list[str]:
        return [edge.target for edge in self._outgoing[node_id]]

    def source_nodes(self) -> list[Node]:
        """Nodes without incoming edges (the workflow's input nodes)."""
        return [node for node in self.nodes if not self._incoming[node.id]]

    def sink_nodes(self) -> list[Node]:
        """Nodes without outgoing edges (the workflow's outputs)."""
        return [node for node in self.nodes if not self._outgoing[node.id]]

    def topological_order(self) -> list[str]:
        """
        Node ids in dependency order (Kahn's algorithm).

        Ties are broken by node declaration order, so the same graph always
        runs in the same order.

        Raises:
            CycleError: If some nodes can never become ready
        """
        in_degree = {node.id: len(self._incoming[node.id]) for node in self.nodes}
        ready = [(self._order[nid], nid) for nid, degree in in_degree.items() if degree == 0]
        heapq.heapify(ready)

        order: list[str] = []
        while ready:
            _, node_id = heapq.heappop(ready)
            order.append(node_id)
            for edge in self._outgoing[node_id]:
                in_degree[edge.target] -= 1
                if in_degree[edge.target] == 0:
                    heapq.heappush(ready, (self._order[edge.target], edge.target))

        if len(order) != len(self.nodes):
            stuck = [node.id for node in self.nodes if in_degree[node.id] > 0]
            raise CycleError(
                f"Workflow contains a cycle through: {', '.join(stuck)}",
                stuck,
            )
        return order

    def with_run_inputs(self, artifacts: Iterable[Artifact]) -> "WorkflowGraph":
        """
        Copy of the graph with run-level files attached to input nodes.

        Only source nodes that carry no attached inputs of their own receive
        the files; every such node gets all of them.
        """
        artifacts = tuple(artifacts)
        if not artifacts:
            return self
        nodes = [
            node.with_inputs(artifacts) if not self._incoming[node.id] and not node.inputs else node
            for node in self.nodes
        ]
        return WorkflowGraph(nodes, self.edges)

    def to_dict(self) -> dict:
        return {
            "nodes": [node.to_dict() for node in self.nodes],
            "edges": [edge.to_dict() for edge in self.edges],
        }


def collect_inputs(
    graph: WorkflowGraph,
    node_id: str,
    outputs: Mapping[str, Sequence[Artifact]],
) -> tuple[Artifact, ...]:
    """
    Resolve the artifacts a node receives.

    Args:
        graph: The workflow graph
        node_id: Node to resolve
        outputs: Recorded outputs of already-executed nodes

    Returns:
        The node's attached inputs if it has no parents; otherwise every
        parent's recorded outputs concatenated in edge order (parents with
        nothing recorded contribute nothing)
    """
    edges = graph.incoming(node_id)
    if not edges:
        return graph.get_node(node_id).inputs

    collected: list[Artifact] = []
    for edge in edges:
        collected.extend(outputs.get(edge.source, ()))
    return tuple(collected)


# -----------------------------------------------------------------------------
# Validation
# -----------------------------------------------------------------------------


@dataclass
class ValidationIssue:
    """A single validation error or warning."""

    message: str
    type: str = ""
    node_id: str | None = None
    edge_id: str | None = None

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "type": self.type,
            "node_id": self.node_id,
            "edge_id": self.edge_id,
        }


@dataclass
class WorkflowValidation:
    """Outcome of validate_workflow()."""

    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
        }


def validate_workflow(graph: WorkflowGraph, registry=None) -> WorkflowValidation:
    """
    Static checks run before a workflow executes.

    Errors: empty workflow, cycles, unknown kinds, no input nodes, and edges
    whose source output format the target does not accept. Warnings: nodes
    with no connections in a graph that has edges, and several input nodes.

    Args:
        graph: Workflow to check
        registry: ProcessorRegistry (default: the built-in registry)

    Returns:
        WorkflowValidation with errors and warnings
    """
    if registry is None:
        from .registry import default_registry

        registry = default_registry()

    result = WorkflowValidation()

    if not graph.nodes:
        result.errors.append(
            ValidationIssue("Workflow is empty. Add at least one node.", type="missing-input")
        )
        return result

    try:
        graph.topological_order()
    except CycleError as e:
        result.errors.append(ValidationIssue(str(e), type="cycle"))
        return result

    for node in graph.nodes:
        if node.kind not in registry:
            result.errors.append(
                ValidationIssue(
                    f'Node "{node.display_name}" uses unsupported kind "{node.kind}".',
                    type="unsupported-kind",
                    node_id=node.id,
                )
            )

    for edge in graph.edges:
        source = registry.get(graph.get_node(edge.source).kind)
        target = registry.get(graph.get_node(edge.target).kind)
        if source is None or target is None:
            continue
        if not target.accepts_format(source.output_format):
            result.errors.append(
                ValidationIssue(
                    f'Output format "{source.output_format}" of {source.kind} is not accepted by '
                    f"{target.kind} ({', '.join(target.accepted_formats)}).",
                    type="format",
                    edge_id=edge.key,
                )
            )

    input_nodes = graph.source_nodes()
    if not input_nodes:
        result.errors.append(ValidationIssue("Workflow has no input nodes.", type="missing-input"))
        return result

    if graph.edges:
        for node in graph.nodes:
            if not graph.parents(node.id) and not graph.children(node.id):
                result.warnings.append(
                    ValidationIssue(
                        f'Node "{node.display_name}" is not connected to the main workflow.',
                        type="orphan",
                        node_id=node.id,
                    )
                )

    if len(input_nodes) > 1:
        names = ", ".join(f'"{node.display_name}"' for node in input_nodes)
        result.warnings.append(
            ValidationIssue(
                f"Workflow has {len(input_nodes)} input nodes ({names}). "
                "Run-level files are sent to each of them.",
                type="multiple-inputs",
            )
        )

    return result
