"""
Workflow executor - runs a workflow graph node by node.

Nodes execute one at a time in dependency order. Each node resolves its
inputs from the recorded outputs of its parents, has its settings
translated into the processor's options, and is dispatched to a fresh
processor instance. A failed node records no outputs; its children still
run and let their own input validation report the problem.

Usage:
    run = WorkflowRun(graph, on_progress=lambda pct, msg: print(pct, msg))
    result = await run.run([Artifact.from_path("report.pdf")])
    for node_id, output in result.outputs.items():
        ...
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable

from docflow.artifact import Artifact
from docflow.processors.base import BaseProcessor, ProcessInput, ProcessOutput
from docflow.processors.errors import ErrorCode, create_error
from docflow.progress import MonotonicProgress, ProgressCallback, ProgressRange

from .coercion import coerce_artifacts
from .graph import Node, WorkflowGraph, collect_inputs
from .registry import ProcessorRegistry

logger = logging.getLogger("docflow.workflow")


class NodeStatus(str, Enum):
    """Lifecycle of a node within one run. There is no retry transition."""

    PENDING = "pending"
    RESOLVING_INPUTS = "resolving_inputs"
    TRANSLATING_SETTINGS = "translating_settings"
    DISPATCHING = "dispatching"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (NodeStatus.SUCCEEDED, NodeStatus.FAILED, NodeStatus.CANCELLED)


@dataclass
class ExecutionContext:
    """
    Run-scoped state shared by the nodes of one run.

    Attributes:
        outputs: Recorded output artifacts per executed node id
        statuses: Current status per node id
        cancel_event: Run-level cancellation flag
        current_processor: Processor of the node being dispatched, if any
    """

    outputs: dict[str, tuple[Artifact, ...]] = field(default_factory=dict)
    statuses: dict[str, NodeStatus] = field(default_factory=dict)
    cancel_event: threading.Event = field(default_factory=threading.Event)
    current_processor: BaseProcessor | None = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        """Set the cancellation flag and forward it to the in-flight processor."""
        self.cancel_event.set()
        processor = self.current_processor
        if processor is not None:
            processor.cancel()


@dataclass
class NodeResult:
    """Outcome of executing a single node."""

    node_id: str
    kind: str
    status: NodeStatus
    output: ProcessOutput
    input_count: int = 0
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.output.success

    def to_dict(self) -> dict:
        return {
            "node_id": self.node_id,
            "kind": self.kind,
            "status": self.status.value,
            "input_count": self.input_count,
            "duration_ms": self.duration_ms,
            "output": self.output.to_dict(),
        }


@dataclass
class RunResult:
    """Result of executing a complete workflow."""

    status: str  # "completed", "partial", "failed", "cancelled"
    node_results: list[NodeResult]
    sink_ids: list[str]
    started_at: str = ""
    completed_at: str = ""
    duration_ms: int = 0
    error: str | None = None

    def result_for(self, node_id: str) -> NodeResult | None:
        for result in self.node_results:
            if result.node_id == node_id:
                return result
        return None

    @property
    def outputs(self) -> dict[str, ProcessOutput]:
        """Envelopes of the sink nodes, keyed by node id."""
        outputs = {}
        for node_id in self.sink_ids:
            result = self.result_for(node_id)
            if result is not None:
                outputs[node_id] = result.output
        return outputs

    @property
    def success(self) -> bool:
        """True when every sink node succeeded."""
        outputs = self.outputs
        return bool(self.sink_ids) and len(outputs) == len(self.sink_ids) and all(
            output.success for output in outputs.values()
        )

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "success": self.success,
            "sink_ids": self.sink_ids,
            "node_results": [r.to_dict() for r in self.node_results],
            "outputs": {node_id: output.to_dict() for node_id, output in self.outputs.items()},
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "duration_ms": self.duration_ms,
            "error": self.error,
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, default=str)


# -----------------------------------------------------------------------------
# Single node
# -----------------------------------------------------------------------------


async def execute_node(
    node: Node,
    graph: WorkflowGraph,
    context: ExecutionContext,
    registry: ProcessorRegistry,
    on_progress: ProgressCallback | None = None,
) -> NodeResult:
    """
    Execute one node and record its outputs in the context.

    Never raises for processor problems: cancellation, unknown kinds and
    exceptions escaping the processor all become failed envelopes.

    Args:
        node: Node to execute (its parents must already be terminal)
        graph: The workflow graph
        context: Run-scoped state
        registry: Kind -> processor table
        on_progress: Optional callback(percent, message) for this node's 0..100

    Returns:
        NodeResult with the node's envelope
    """
    start_time = time.monotonic()
    input_count = 0

    def finish(status: NodeStatus, output: ProcessOutput) -> NodeResult:
        context.statuses[node.id] = status
        context.outputs[node.id] = output.artifacts if output.success else ()
        return NodeResult(
            node_id=node.id,
            kind=node.kind,
            status=status,
            output=output,
            input_count=input_count,
            duration_ms=int((time.monotonic() - start_time) * 1000),
        )

    if context.cancelled:
        logger.info("Skipping %s: run was cancelled", node.id)
        return finish(
            NodeStatus.CANCELLED,
            ProcessOutput.fail(create_error(ErrorCode.PROCESSING_CANCELLED, "Processing was cancelled.")),
        )

    entry = registry.get(node.kind)
    if entry is None:
        logger.warning("Node %s uses unsupported kind %r", node.id, node.kind)
        return finish(
            NodeStatus.FAILED,
            ProcessOutput.fail(
                create_error(
                    ErrorCode.UNSUPPORTED_KIND,
                    f'Processor kind "{node.kind}" is not supported.',
                    f"Node: {node.display_name}",
                )
            ),
        )

    try:
        context.statuses[node.id] = NodeStatus.RESOLVING_INPUTS
        files = coerce_artifacts(collect_inputs(graph, node.id, context.outputs), node.kind)
        input_count = len(files)

        context.statuses[node.id] = NodeStatus.TRANSLATING_SETTINGS
        options = entry.translator(node.settings)

        context.statuses[node.id] = NodeStatus.DISPATCHING
        processor = entry.factory()
        progress = MonotonicProgress(on_progress)

        # process() resets the processor's own flag, so a run-level cancel is
        # also re-applied on every progress report
        def report(percent: float, message: str = "") -> None:
            if context.cancelled and not processor.cancelled:
                processor.cancel()
            progress(percent, message)

        context.current_processor = processor
        logger.debug("Dispatching %s (%s) with %d input(s)", node.id, node.kind, input_count)
        output = await processor.process(ProcessInput(files=files, options=options), report)
        if not isinstance(output, ProcessOutput):
            raise TypeError(f"{node.kind} returned {type(output).__name__} instead of ProcessOutput")
    except Exception as e:
        logger.exception("Node %s (%s) raised an unexpected error", node.id, node.kind)
        output = ProcessOutput.fail(
            create_error(
                ErrorCode.PROCESSING_FAILED,
                str(e) or type(e).__name__,
                f"Node: {node.display_name}",
                recoverable=True,
            )
        )
    finally:
        context.current_processor = None

    if output.success:
        status = NodeStatus.SUCCEEDED
    elif output.error.code == ErrorCode.PROCESSING_CANCELLED:
        status = NodeStatus.CANCELLED
    else:
        status = NodeStatus.FAILED
    return finish(status, output)


# -----------------------------------------------------------------------------
# Whole run
# -----------------------------------------------------------------------------


class WorkflowRun:
    """
    One execution of a workflow graph.

    `cancel()` may be called at any time, from any thread, any number of
    times. Nodes not yet dispatched are skipped as cancelled; the node in
    flight is asked to stop at its next checkpoint.

    Args:
        graph: Workflow to run
        registry: ProcessorRegistry (default: the built-in registry)
        on_progress: Optional callback(percent, message) for the whole run
    """

    def __init__(
        self,
        graph: WorkflowGraph,
        registry: ProcessorRegistry | None = None,
        on_progress: ProgressCallback | None = None,
    ):
        if registry is None:
            from .registry import default_registry

            registry = default_registry()
        self.graph = graph
        self.registry = registry
        self.context = ExecutionContext(
            statuses={node.id: NodeStatus.PENDING for node in graph.nodes}
        )
        self.result: RunResult | None = None
        self._progress = MonotonicProgress(on_progress)
        self._started = False

    @property
    def progress(self) -> float:
        return self._progress.value

    @property
    def message(self) -> str:
        """Latest progress message."""
        return self._progress.message

    @property
    def cancelled(self) -> bool:
        return self.context.cancelled

    @property
    def running(self) -> bool:
        return self._started and self.result is None

    def cancel(self) -> None:
        self.context.cancel()

    async def run(self, inputs: Iterable[Artifact] | None = None) -> RunResult:
        """
        Execute every node in dependency order.

        Args:
            inputs: Run-level files, attached to input nodes that have none

        Returns:
            RunResult with per-node envelopes and the sink outputs

        Raises:
            CycleError: If the graph has no execution order
            RuntimeError: If this run was already started
        """
        if self._started:
            raise RuntimeError("WorkflowRun.run() can only be called once")
        self._started = True

        graph = self.graph.with_run_inputs(inputs or ())
        order = graph.topological_order()
        sink_ids = [node.id for node in graph.sink_nodes()]

        started_at = datetime.now(timezone.utc).isoformat()
        start_time = time.monotonic()
        logger.info("Running workflow with %d node(s)", len(order))

        node_results: list[NodeResult] = []
        for index, node_id in enumerate(order):
            node = graph.get_node(node_id)
            node_range = ProgressRange.for_index(index, len(order))

            def report(percent: float, message: str = "", _node=node, _range=node_range) -> None:
                self._progress(_range.scale(percent), f"{_node.display_name}: {message}")

            result = await execute_node(node, graph, self.context, self.registry, report)
            node_results.append(result)
            self._progress(node_range.end, f"{node.display_name}: {result.status.value}")

        succeeded = sum(1 for r in node_results if r.success)
        if self.context.cancelled and any(r.status == NodeStatus.CANCELLED for r in node_results):
            status = "cancelled"
        elif succeeded == len(node_results):
            status = "completed"
        elif succeeded > 0:
            status = "partial"
        else:
            status = "failed"

        self.result = RunResult(
            status=status,
            node_results=node_results,
            sink_ids=sink_ids,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc).isoformat(),
            duration_ms=int((time.monotonic() - start_time) * 1000),
        )
        logger.info(
            "Workflow %s: %d/%d node(s) succeeded in %dms",
            status,
            succeeded,
            len(node_results),
            self.result.duration_ms,
        )
        return self.result


async def run_workflow(
    graph: WorkflowGraph,
    inputs: Iterable[Artifact] | None = None,
    *,
    registry: ProcessorRegistry | None = None,
    on_progress: ProgressCallback | None = None,
) -> RunResult:
    """
    Run a workflow graph to completion.

    Args:
        graph: Workflow to run
        inputs: Run-level files for the input nodes
        registry: ProcessorRegistry (default: the built-in registry)
        on_progress: Optional callback(percent, message)

    Returns:
        RunResult
    """
    return await WorkflowRun(graph, registry, on_progress).run(inputs)
