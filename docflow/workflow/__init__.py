"""
Docflow Workflow Engine.

Runs a graph of processing steps: each node names a processor kind and its
settings, each edge feeds one node's output files into another node.

Architecture:
    Graph → [Resolver] → inputs → [Coercion] → [Translator] → options
                                                     ↓
              outputs ← [Executor] ← processor.process(files, options)

Usage:
    from docflow.workflow import load_workflow_graph, run_workflow

    graph = load_workflow_graph("shrink-and-protect.json")
    result = await run_workflow(graph)
    print(result.status)
"""

from .coercion import coerce_artifacts
from .document import (
    WorkflowDocument,
    WorkflowDocumentError,
    load_workflow,
    load_workflow_graph,
    parse_workflow,
)
from .executor import (
    ExecutionContext,
    NodeResult,
    NodeStatus,
    RunResult,
    WorkflowRun,
    execute_node,
    run_workflow,
)
from .graph import (
    CycleError,
    Edge,
    GraphError,
    Node,
    WorkflowGraph,
    WorkflowValidation,
    collect_inputs,
    validate_workflow,
)
from .registry import (
    ProcessorEntry,
    ProcessorRegistry,
    build_default_registry,
    default_registry,
    reset_default_registry,
)
from .settings import translate_settings

__all__ = [
    "Node",
    "Edge",
    "WorkflowGraph",
    "GraphError",
    "CycleError",
    "collect_inputs",
    "validate_workflow",
    "WorkflowValidation",
    "coerce_artifacts",
    "translate_settings",
    "ProcessorEntry",
    "ProcessorRegistry",
    "build_default_registry",
    "default_registry",
    "reset_default_registry",
    "ExecutionContext",
    "NodeResult",
    "NodeStatus",
    "RunResult",
    "WorkflowRun",
    "execute_node",
    "run_workflow",
    "WorkflowDocument",
    "WorkflowDocumentError",
    "load_workflow",
    "load_workflow_graph",
    "parse_workflow",
]
