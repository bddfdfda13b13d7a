"""
JSON workflow documents.

A workflow document is the saved form of a workflow:

    {
      "name": "Shrink and protect",
      "nodes": [
        {"id": "compress", "kind": "compress-pdf", "settings": {"quality": "high"},
         "inputs": ["scans/report.pdf"]},
        {"id": "encrypt", "kind": "encrypt-pdf", "settings": {"userPassword": "s3cret"}}
      ],
      "edges": [{"source": "compress", "target": "encrypt"}]
    }

Nodes saved by the visual editor, which nest everything under "data"
({"id": ..., "data": {"toolId": ..., "label": ..., "settings": {...}}}),
are accepted as well. Input paths are resolved relative to the document.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, model_validator

from docflow.artifact import Artifact

from .graph import Edge, GraphError, Node, WorkflowGraph


class WorkflowDocumentError(ValueError):
    """The workflow document cannot be read, parsed or turned into a graph."""


class NodeSpec(BaseModel):
    """A node as written in a workflow document."""

    id: str
    kind: str
    label: str = ""
    settings: dict[str, Any] = Field(default_factory=dict)
    inputs: list[str] = Field(default_factory=list)  # file paths

    @model_validator(mode="before")
    @classmethod
    def _flatten_editor_node(cls, value: Any) -> Any:
        if not isinstance(value, dict) or "data" not in value:
            return value
        data = value.get("data") or {}
        flat = {k: v for k, v in value.items() if k != "data"}
        flat.setdefault("kind", data.get("toolId"))
        flat.setdefault("label", data.get("label") or "")
        flat.setdefault("settings", data.get("settings") or {})
        return flat


class EdgeSpec(BaseModel):
    """An edge as written in a workflow document."""

    source: str
    target: str
    id: str | None = None


class WorkflowDocument(BaseModel):
    """A complete workflow document."""

    name: str = ""
    description: str = ""
    nodes: list[NodeSpec] = Field(default_factory=list)
    edges: list[EdgeSpec] = Field(default_factory=list)

    def input_paths(self, base_dir: str | Path | None = None) -> dict[str, list[Path]]:
        """Input file paths per node id, resolved against `base_dir`."""
        base = Path(base_dir) if base_dir is not None else Path.cwd()
        resolved = {}
        for node in self.nodes:
            paths = []
            for raw in node.inputs:
                path = Path(raw).expanduser()
                paths.append(path if path.is_absolute() else base / path)
            resolved[node.id] = paths
        return resolved

    def to_graph(self, base_dir: str | Path | None = None) -> WorkflowGraph:
        """
        Build the executable graph, reading node input files from disk.

        Args:
            base_dir: Directory relative input paths are resolved against
                (default: the current directory)

        Raises:
            WorkflowDocumentError: If an input file is missing or the graph
                is inconsistent
        """
        paths = self.input_paths(base_dir)
        nodes = []
        for spec in self.nodes:
            inputs = []
            for path in paths[spec.id]:
                if not path.is_file():
                    raise WorkflowDocumentError(f"Input file not found for node '{spec.id}': {path}")
                inputs.append(Artifact.from_path(path))
            nodes.append(Node(spec.id, spec.kind, spec.settings, tuple(inputs), spec.label))

        edges = [Edge(e.source, e.target, e.id) for e in self.edges]
        try:
            return WorkflowGraph(nodes, edges)
        except GraphError as e:
            raise WorkflowDocumentError(str(e)) from e

    @classmethod
    def from_graph(cls, graph: WorkflowGraph, name: str = "") -> "WorkflowDocument":
        """Document for an in-memory graph (attached inputs are not saved)."""
        return cls(
            name=name,
            nodes=[
                NodeSpec(id=n.id, kind=n.kind, label=n.label, settings=dict(n.settings))
                for n in graph.nodes
            ],
            edges=[EdgeSpec(source=e.source, target=e.target, id=e.id) for e in graph.edges],
        )


def parse_workflow(text: str | bytes) -> WorkflowDocument:
    """
    Parse a workflow document from JSON text.

    Raises:
        WorkflowDocumentError: If the JSON is malformed or does not describe a workflow
    """
    try:
        return WorkflowDocument.model_validate_json(text)
    except ValidationError as e:
        raise WorkflowDocumentError(f"Invalid workflow document: {e}") from e


def load_workflow(path: str | Path) -> WorkflowDocument:
    """
    Read and parse a workflow document file.

    Raises:
        WorkflowDocumentError: If the file cannot be read or parsed
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise WorkflowDocumentError(f"Cannot read workflow file {path}: {e}") from e
    except UnicodeDecodeError as e:
        raise WorkflowDocumentError(f"Workflow file {path} is not valid UTF-8: {e}") from e
    return parse_workflow(text)


def load_workflow_graph(path: str | Path) -> WorkflowGraph:
    """Load a workflow file and build its graph, resolving inputs next to the file."""
    path = Path(path)
    return load_workflow(path).to_graph(base_dir=path.parent)
