import io
from dataclasses import dataclass

import pytest

from docflow.artifact import PDF_MIME, Artifact
from docflow.processors.base import BaseProcessor, ProcessOutput
from docflow.runtime import reset_global_config
from docflow.workflow.registry import ProcessorRegistry, reset_default_registry


# -----------------------------------------------------------------------------
# Documents
# -----------------------------------------------------------------------------


def _pdf_bytes(pages=3, text="Page", width=595, height=842, metadata=None, user_password=None, image=None):
    import pymupdf as fitz

    doc = fitz.open()
    for n in range(1, pages + 1):
        page = doc.new_page(width=width, height=height)
        page.insert_text((72, 72), f"{text} {n}", fontsize=14)
        if image is not None:
            page.insert_image(fitz.Rect(72, 120, 372, 420), stream=image)
    if metadata:
        doc.set_metadata(metadata)
    kwargs = {}
    if user_password:
        kwargs = {
            "encryption": fitz.PDF_ENCRYPT_AES_256,
            "owner_pw": "owner-pass",
            "user_pw": user_password,
        }
    data = doc.tobytes(**kwargs)
    doc.close()
    return data


def _png_bytes(width=200, height=100, color=(200, 30, 30), mode="RGB"):
    from PIL import Image

    img = Image.new(mode, (width, height), color)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def make_pdf():
    return _pdf_bytes


@pytest.fixture
def make_png():
    return _png_bytes


@pytest.fixture
def pdf_artifact():
    return Artifact(_pdf_bytes(3), "doc.pdf", PDF_MIME)


@pytest.fixture
def open_output():
    """Open a PDF artifact with PyMuPDF (caller closes)."""
    import pymupdf as fitz

    def _open(artifact):
        return fitz.open(stream=artifact.data, filetype="pdf")

    return _open


@pytest.fixture(autouse=True)
def _clean_globals():
    yield
    reset_global_config()
    reset_default_registry()


# -----------------------------------------------------------------------------
# Fake processors
# -----------------------------------------------------------------------------


class _Recording(BaseProcessor):
    accepted_types = ()
    max_files = None

    def __init__(self, calls=None):
        super().__init__()
        self.calls = calls if calls is not None else []

    async def process(self, input, on_progress=None):
        self.calls.append((self.kind, [a.filename for a in input.files]))
        return await super().process(input, on_progress)


class PassthroughProcessor(_Recording):
    """Returns its inputs unchanged."""

    kind = "passthrough"

    async def _process(self, files, options):
        self.update_progress(50, "Passing through...")
        return self.success_output(files)


class EmitProcessor(_Recording):
    """Produces artifacts named by settings["emit"], needs no inputs."""

    kind = "emit"
    min_files = 0

    async def _process(self, files, options):
        names = options.get("emit", ["out.bin"])
        return self.success_output([Artifact(name.encode(), name, "application/octet-stream") for name in names])


class CombineProcessor(_Recording):
    """Concatenates every input into one artifact, recording the input order."""

    kind = "combine"

    async def _process(self, files, options):
        data = b"".join(a.data for a in files)
        names = [a.filename for a in files]
        return self.success_output(
            Artifact(data, "combined.bin", "application/octet-stream"),
            metadata={"order": names},
        )


@dataclass
class NamedOptions:
    name: str = ""


class RequiresNameProcessor(_Recording):
    """Fails validation unless a name is set."""

    kind = "requires-name"
    options_class = NamedOptions

    def validate_options(self, options):
        if not options.name:
            return "A name is required."
        return None

    async def _process(self, files, options):
        return self.success_output(files)


class SlowProcessor(_Recording):
    """Many small steps with a checkpoint each."""

    kind = "slow"

    async def _process(self, files, options):
        for step in range(50):
            await self.checkpoint()
            self.update_progress(step * 2, f"Step {step}")
        return self.success_output(files)


class ExplodingProcessor:
    """Not a BaseProcessor: process() raises instead of returning an envelope."""

    def __init__(self, calls=None):
        self.calls = calls if calls is not None else []

    async def process(self, input, on_progress=None):
        self.calls.append(("explode", [a.filename for a in input.files]))
        raise RuntimeError("boom")

    def cancel(self):
        pass

    @property
    def cancelled(self):
        return False


class WrongResultProcessor(ExplodingProcessor):
    async def process(self, input, on_progress=None):
        return {"not": "an envelope"}


@pytest.fixture
def calls():
    return []


@pytest.fixture
def fake_registry(calls):
    registry = ProcessorRegistry()
    registry.register("passthroughA", lambda: PassthroughProcessor(calls), accepted_formats=("*",))
    registry.register("passthroughB", lambda: PassthroughProcessor(calls), accepted_formats=("*",))
    registry.register("emit", lambda: EmitProcessor(calls))
    registry.register("combine", lambda: CombineProcessor(calls), accepted_formats=("*",))
    registry.register("requires-name", lambda: RequiresNameProcessor(calls), accepted_formats=("*",))
    registry.register("slow", lambda: SlowProcessor(calls), accepted_formats=("*",))
    registry.register("explode", lambda: ExplodingProcessor(calls), accepted_formats=("*",))
    registry.register("wrong-result", lambda: WrongResultProcessor(calls), accepted_formats=("*",))
    return registry


@pytest.fixture
def fakes():
    """The fake processor classes, for tests that drive them directly."""
    return {
        "passthrough": PassthroughProcessor,
        "emit": EmitProcessor,
        "combine": CombineProcessor,
        "requires-name": RequiresNameProcessor,
        "slow": SlowProcessor,
    }


def assert_exclusive(output: ProcessOutput) -> None:
    if output.success:
        assert output.artifacts and output.error is None
    else:
        assert output.error is not None and not output.artifacts
