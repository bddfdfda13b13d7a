"""
docflow - chain document processors into workflows.

A workflow is a directed graph of processing steps (merge, split, compress,
watermark, convert, ...). Each step runs a processor that turns input
artifacts into output artifacts; the executor walks the graph and wires
outputs into the next step's inputs.

Usage:
    from docflow.workflow import Edge, Node, WorkflowGraph, run_workflow

    graph = WorkflowGraph(
        nodes=[Node("merge", "merge-pdf"), Node("compress", "compress-pdf")],
        edges=[Edge("merge", "compress")],
    )
    result = await run_workflow(graph, inputs=[...])
"""

__version__ = "0.3.0"
