"""
Docflow web server.

A FastAPI server exposing the workflow engine over HTTP: list processor
kinds, validate workflow documents, start runs with uploaded files, poll
their progress, download outputs and cancel them.

Usage:
    docflow web                    # Start server on localhost:8000
    docflow web -p 3000            # Custom port
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator
from urllib.parse import quote

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response, StreamingResponse
from pydantic import BaseModel

from docflow import __version__
from docflow.artifact import Artifact, guess_mime_type
from docflow.workflow import (
    CycleError,
    WorkflowDocument,
    WorkflowDocumentError,
    WorkflowRun,
    default_registry,
    parse_workflow,
    validate_workflow,
)

logger = logging.getLogger("docflow.web")

# Finished runs kept in memory before the oldest are dropped
MAX_RUNS = 50


# =============================================================================
# State Management
# =============================================================================


@dataclass
class RunRecord:
    """A workflow run started through the API."""

    id: str
    run: WorkflowRun
    name: str = ""
    input_count: int = 0
    created_at: float = field(default_factory=time.time)
    error: str | None = None
    task: asyncio.Task | None = None

    @property
    def status(self) -> str:
        if self.error is not None:
            return "failed"
        if self.run.result is not None:
            return self.run.result.status
        if self.run.cancelled:
            return "cancelling"
        return "running" if self.run.running else "pending"

    @property
    def finished(self) -> bool:
        return self.error is not None or self.run.result is not None

    def snapshot(self) -> dict[str, Any]:
        return {
            "run_id": self.id,
            "name": self.name,
            "status": self.status,
            "progress": round(self.run.progress, 2),
            "message": self.run.message,
            "nodes": {node_id: s.value for node_id, s in self.run.context.statuses.items()},
            "error": self.error,
        }


@dataclass
class AppState:
    """Global application state."""

    runs: dict[str, RunRecord] = field(default_factory=dict)

    def add(self, record: RunRecord) -> None:
        self.runs[record.id] = record
        finished = [r for r in self.runs.values() if r.finished]
        while len(self.runs) > MAX_RUNS and finished:
            oldest = min(finished, key=lambda r: r.created_at)
            finished.remove(oldest)
            del self.runs[oldest.id]

    def get(self, run_id: str) -> RunRecord:
        record = self.runs.get(run_id)
        if record is None:
            raise HTTPException(status_code=404, detail=f"Run not found: {run_id}")
        return record

    def active(self) -> list[RunRecord]:
        return [r for r in self.runs.values() if not r.finished]


# Global state instance
state = AppState()


# =============================================================================
# Pydantic Models
# =============================================================================


class StatusResponse(BaseModel):
    """Server status."""

    version: str
    processor_count: int
    active_runs: int
    total_runs: int


class ProcessorModel(BaseModel):
    """A registered processor kind."""

    kind: str
    label: str
    category: str
    accepted_formats: list[str]
    output_format: str


class ValidationIssueModel(BaseModel):
    message: str
    type: str = ""
    node_id: str | None = None
    edge_id: str | None = None


class ValidationResponse(BaseModel):
    """Result of validating a workflow document."""

    is_valid: bool
    errors: list[ValidationIssueModel]
    warnings: list[ValidationIssueModel]


class RunStartedResponse(BaseModel):
    """A run that was accepted for execution."""

    run_id: str
    status: str
    input_count: int


# =============================================================================
# Run Execution
# =============================================================================


def _run_sync(run: WorkflowRun, inputs: list[Artifact]) -> None:
    asyncio.run(run.run(inputs))


async def _execute(record: RunRecord, inputs: list[Artifact]) -> None:
    """Drive a run to completion, recording a crash instead of raising."""
    try:
        # Run the whole workflow in a thread
        await asyncio.to_thread(_run_sync, record.run, inputs)
    except CycleError as e:
        record.error = str(e)
    except Exception as e:
        logger.exception("Run %s crashed", record.id)
        record.error = str(e) or type(e).__name__


def content_disposition(filename: str) -> str:
    """Attachment header for any filename, with an RFC 5987 form for non-ASCII names."""
    quoted = quote(filename)
    if quoted == filename:
        return f'attachment; filename="{filename}"'
    fallback = filename.encode("ascii", "ignore").decode("ascii")
    fallback = fallback.replace('"', "").replace("\\", "").strip() or "download"
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quoted}"


def _reject_input_paths(document: WorkflowDocument) -> None:
    if any(node.inputs for node in document.nodes):
        raise HTTPException(
            status_code=400,
            detail="Node input paths are not accepted over HTTP. Upload the files instead.",
        )


def _document_from_text(text: str) -> WorkflowDocument:
    try:
        document = parse_workflow(text)
    except WorkflowDocumentError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _reject_input_paths(document)
    return document


# =============================================================================
# FastAPI App
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """App lifespan handler for startup/shutdown."""
    logger.info("Docflow server starting...")
    yield
    for record in state.active():
        record.run.cancel()
    logger.info("Shutting down...")


app = FastAPI(
    title="Docflow",
    description="Document processing workflows",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# API Routes
# =============================================================================


@app.get("/api/status", response_model=StatusResponse)
async def get_status():
    """Get current server status."""
    return StatusResponse(
        version=__version__,
        processor_count=len(default_registry()),
        active_runs=len(state.active()),
        total_runs=len(state.runs),
    )


@app.get("/api/processors", response_model=list[ProcessorModel])
async def list_processors(category: str | None = None):
    """List the registered processor kinds, optionally for one category."""
    entries = [e for e in default_registry() if category is None or e.category == category]
    return [ProcessorModel(**e.to_dict()) for e in sorted(entries, key=lambda e: e.kind)]


@app.post("/api/workflows/validate", response_model=ValidationResponse)
async def validate(document: WorkflowDocument):
    """Validate a workflow document without running it."""
    _reject_input_paths(document)
    try:
        graph = document.to_graph()
    except WorkflowDocumentError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ValidationResponse(**validate_workflow(graph).to_dict())


@app.post("/api/workflows/run", response_model=RunStartedResponse)
async def start_run(
    workflow: str = Form(...),
    files: list[UploadFile] = File(default=[]),
    wait: bool = Form(False),
):
    """
    Start a workflow run.

    Accepts multipart/form-data with the workflow document as JSON in the
    `workflow` field and the input files in `files`. The uploaded files go
    to the workflow's input nodes. With `wait` set, the response is sent
    once the run has finished.
    """
    document = _document_from_text(workflow)
    try:
        graph = document.to_graph()
    except WorkflowDocumentError as e:
        raise HTTPException(status_code=400, detail=str(e))

    validation = validate_workflow(graph)
    if not validation.is_valid:
        raise HTTPException(status_code=400, detail=validation.errors[0].message)

    inputs = []
    for upload in files:
        data = await upload.read()
        name = upload.filename or None
        mime_type = upload.content_type
        if not mime_type or mime_type == "application/octet-stream":
            mime_type = guess_mime_type(name) if name else None
        inputs.append(Artifact(data, name, mime_type))

    record = RunRecord(
        id=uuid.uuid4().hex,
        run=WorkflowRun(graph),
        name=document.name,
        input_count=len(inputs),
    )
    state.add(record)
    logger.info("Starting run %s (%d node(s), %d file(s))", record.id, len(graph), len(inputs))

    if wait:
        await _execute(record, inputs)
    else:
        record.task = asyncio.create_task(_execute(record, inputs))

    return RunStartedResponse(run_id=record.id, status=record.status, input_count=len(inputs))


@app.get("/api/runs/{run_id}")
async def get_run(run_id: str):
    """Get the progress of a run, and its result once finished."""
    record = state.get(run_id)
    data = record.snapshot()
    result = record.run.result
    data["result"] = result.to_dict() if result is not None else None
    return data


@app.get("/api/runs/{run_id}/events")
async def run_events(run_id: str):
    """Server-Sent Events stream of a run's progress until it finishes."""
    record = state.get(run_id)

    async def event_generator() -> AsyncGenerator[str, None]:
        last = None
        while True:
            snapshot = record.snapshot()
            if snapshot != last:
                yield f"data: {json.dumps(snapshot)}\n\n"
                last = snapshot
            if record.finished:
                break
            await asyncio.sleep(0.25)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@app.get("/api/runs/{run_id}/outputs/{node_id}/{index}")
async def download_output(run_id: str, node_id: str, index: int):
    """Download one output file of a node."""
    record = state.get(run_id)
    if node_id not in record.run.graph:
        raise HTTPException(status_code=404, detail=f"Node not found: {node_id}")
    artifacts = record.run.context.outputs.get(node_id)
    if not artifacts:
        raise HTTPException(status_code=404, detail=f"Node {node_id} has no outputs")
    if index < 0 or index >= len(artifacts):
        raise HTTPException(status_code=404, detail=f"Output index out of range: {index}")

    artifact = artifacts[index]
    filename = artifact.filename or f"{node_id}-{index}"
    return Response(
        content=artifact.data,
        media_type=artifact.effective_mime_type,
        headers={"Content-Disposition": content_disposition(filename)},
    )


@app.post("/api/runs/{run_id}/cancel")
async def cancel_run(run_id: str):
    """Request cancellation of a run. Safe to repeat."""
    record = state.get(run_id)
    record.run.cancel()
    return {"run_id": record.id, "status": record.status}


# =============================================================================
# Server Runner
# =============================================================================


def run_server(host: str = "127.0.0.1", port: int = 8000):
    """
    Run the Docflow web server.

    Args:
        host: Host to bind to
        port: Port to bind to
    """
    import uvicorn

    print(f"Docflow server running at http://{host}:{port}")
    print("Press Ctrl+C to stop")

    uvicorn.run(app, host=host, port=port, log_level="warning")
