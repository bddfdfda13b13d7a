import asyncio
import json
import threading
from urllib.parse import quote

import pytest
from fastapi.testclient import TestClient

from docflow.artifact import Artifact
from docflow.processors.base import BaseProcessor
from docflow.web import RunRecord, _execute, app, content_disposition, state
from docflow.workflow import WorkflowGraph, WorkflowRun
from docflow.workflow.graph import Node
from docflow.workflow.registry import ProcessorRegistry

ROTATE = {"name": "turn", "nodes": [{"id": "r", "kind": "rotate-pdf", "settings": {"angle": 90}}]}


@pytest.fixture
def client():
    state.runs.clear()
    yield TestClient(app)
    state.runs.clear()


def _start(client, document, files=(), wait=True):
    return client.post(
        "/api/workflows/run",
        data={"workflow": json.dumps(document), "wait": "true" if wait else "false"},
        files=[("files", f) for f in files],
    )


def test_status(client):
    response = client.get("/api/status")
    assert response.status_code == 200
    body = response.json()
    assert body["processor_count"] > 30
    assert body["active_runs"] == 0
    assert body["total_runs"] == 0


def test_processors_by_category(client):
    response = client.get("/api/processors", params={"category": "security"})
    kinds = [p["kind"] for p in response.json()]
    assert "encrypt-pdf" in kinds
    assert "merge-pdf" not in kinds
    assert kinds == sorted(kinds)


def test_validate_reports_errors(client):
    response = client.post(
        "/api/workflows/validate",
        json={"nodes": [{"id": "a", "kind": "teleport"}]},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["is_valid"] is False
    assert body["errors"][0]["type"] == "unsupported-kind"
    assert body["errors"][0]["node_id"] == "a"


def test_validate_ok(client):
    response = client.post("/api/workflows/validate", json=ROTATE)
    assert response.json() == {"is_valid": True, "errors": [], "warnings": []}


def test_validate_rejects_input_paths(client):
    document = {"nodes": [{"id": "a", "kind": "rotate-pdf", "inputs": ["/etc/passwd"]}]}
    response = client.post("/api/workflows/validate", json=document)
    assert response.status_code == 400


def test_run_and_download(client, make_pdf):
    response = _start(client, ROTATE, files=[("doc.pdf", make_pdf(2), "application/pdf")])
    assert response.status_code == 200
    started = response.json()
    assert started["status"] == "completed"
    assert started["input_count"] == 1

    run = client.get(f"/api/runs/{started['run_id']}").json()
    assert run["name"] == "turn"
    assert run["progress"] == 100
    assert run["nodes"] == {"r": "succeeded"}
    assert run["result"]["success"] is True
    assert run["result"]["outputs"]["r"]["artifacts"][0]["filename"] == "doc_rotated.pdf"

    download = client.get(f"/api/runs/{started['run_id']}/outputs/r/0")
    assert download.status_code == 200
    assert download.content.startswith(b"%PDF")
    assert "doc_rotated.pdf" in download.headers["content-disposition"]

    missing = client.get(f"/api/runs/{started['run_id']}/outputs/r/5")
    assert missing.status_code == 404


def test_run_without_files_fails_the_node(client):
    started = _start(client, ROTATE).json()
    assert started["status"] == "failed"
    run = client.get(f"/api/runs/{started['run_id']}").json()
    error = run["result"]["outputs"]["r"]["error"]
    assert error["message"] == "No input file provided."


def test_run_rejects_bad_documents(client):
    bad_json = client.post("/api/workflows/run", data={"workflow": "{"})
    assert bad_json.status_code == 400

    paths = _start(client, {"nodes": [{"id": "a", "kind": "rotate-pdf", "inputs": ["x.pdf"]}]})
    assert paths.status_code == 400

    unknown = _start(client, {"nodes": [{"id": "a", "kind": "teleport"}]})
    assert unknown.status_code == 400
    assert "teleport" in unknown.json()["detail"]


def test_unknown_run(client):
    assert client.get("/api/runs/nope").status_code == 404
    assert client.post("/api/runs/nope/cancel").status_code == 404


def test_cancel_pending_run(client):
    record = RunRecord(id="r1", run=WorkflowRun(WorkflowGraph([Node("a", "rotate-pdf")])))
    state.add(record)

    response = client.post("/api/runs/r1/cancel")
    assert response.status_code == 200
    assert response.json() == {"run_id": "r1", "status": "cancelling"}
    assert record.run.cancelled


def test_events_stream_finished_run(client, make_pdf):
    started = _start(client, ROTATE, files=[("doc.pdf", make_pdf(1), "application/pdf")]).json()
    response = client.get(f"/api/runs/{started['run_id']}/events")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    events = [line for line in response.text.splitlines() if line.startswith("data: ")]
    assert len(events) == 1
    assert json.loads(events[0][len("data: "):])["status"] == "completed"


def test_download_non_ascii_filename(client, make_pdf):
    document = {"nodes": [{"id": "r", "kind": "reverse-pages"}]}
    started = _start(client, document, files=[("文档.pdf", make_pdf(2), "application/pdf")]).json()
    assert started["status"] == "completed"
    run = client.get(f"/api/runs/{started['run_id']}").json()
    filename = run["result"]["outputs"]["r"]["artifacts"][0]["filename"]
    assert filename.startswith("文档")

    download = client.get(f"/api/runs/{started['run_id']}/outputs/r/0")
    assert download.status_code == 200
    assert download.content.startswith(b"%PDF")
    assert f"filename*=UTF-8''{quote(filename)}" in download.headers["content-disposition"]


def test_content_disposition_forms():
    assert content_disposition("report.pdf") == 'attachment; filename="report.pdf"'
    assert content_disposition('say "hi".pdf') == (
        "attachment; filename=\"say hi.pdf\"; filename*=UTF-8''say%20%22hi%22.pdf"
    )
    header = content_disposition("文档.pdf")
    assert header.endswith("filename*=UTF-8''%E6%96%87%E6%A1%A3.pdf")
    header.encode("latin-1")


class ThreadRecorder(BaseProcessor):
    """Notes which thread it ran on."""

    kind = "thread-recorder"
    accepted_types = ()
    min_files = 0
    max_files = None

    def __init__(self, threads):
        super().__init__()
        self.threads = threads

    async def _process(self, files, options):
        self.threads.append(threading.get_ident())
        return self.success_output(Artifact(b"x", "x.bin", "application/octet-stream"))


def test_runs_execute_in_a_worker_thread():
    threads = []
    registry = ProcessorRegistry()
    registry.register("thread-recorder", lambda: ThreadRecorder(threads))
    graph = WorkflowGraph([Node("a", "thread-recorder")])
    record = RunRecord(id="t1", run=WorkflowRun(graph, registry))

    asyncio.run(_execute(record, []))

    assert record.status == "completed"
    assert len(threads) == 1
    assert threads[0] != threading.get_ident()
