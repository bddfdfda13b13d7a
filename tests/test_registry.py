import pytest

from docflow.processors import MergePDFProcessor, PDFToImageProcessor
from docflow.processors.organize import MergeOptions
from docflow.workflow.registry import (
    ProcessorRegistry,
    build_default_registry,
    default_registry,
    reset_default_registry,
)


def test_default_registry_has_builtin_kinds():
    registry = default_registry()
    for kind in ("merge-pdf", "split-pdf", "compress-pdf", "encrypt-pdf", "pdf-to-jpg", "png-to-pdf"):
        assert kind in registry
    assert registry.kinds() == sorted(registry.kinds())


def test_default_registry_is_shared_until_reset():
    first = default_registry()
    assert default_registry() is first
    reset_default_registry()
    assert default_registry() is not first


def test_create_returns_fresh_instances():
    registry = build_default_registry()
    a = registry.create("merge-pdf")
    b = registry.create("merge-pdf")
    assert isinstance(a, MergePDFProcessor)
    assert a is not b
    assert isinstance(registry.create("pdf-to-webp"), PDFToImageProcessor)


def test_unknown_kind():
    registry = build_default_registry()
    assert registry.get("teleport") is None
    with pytest.raises(KeyError):
        registry.create("teleport")
    with pytest.raises(KeyError):
        registry.translate("teleport", {})


def test_translate_uses_builtin_translator():
    registry = build_default_registry()
    options = registry.translate("merge-pdf", {"filename": "all.pdf"})
    assert options == MergeOptions(output_filename="all.pdf")
    assert registry.translate("merge-pdf", "not a mapping") == MergeOptions()


def test_duplicate_registration_rejected():
    registry = ProcessorRegistry()
    registry.register("custom", MergePDFProcessor)
    with pytest.raises(ValueError):
        registry.register("custom", MergePDFProcessor)


def test_custom_kind_passes_settings_through():
    registry = ProcessorRegistry()
    entry = registry.register("custom", MergePDFProcessor)
    assert registry.translate("custom", {"x": 1}) == {"x": 1}
    assert entry.to_dict()["label"] == "custom"


def test_format_acceptance():
    registry = build_default_registry()
    assert registry.get("pdf-to-zip").accepts_format("json")
    assert not registry.get("compress-pdf").accepts_format("image")
    assert registry.get("jpg-to-pdf").accepts_format("image")


def test_layout_and_document_kinds_registered():
    registry = default_registry()
    for kind in (
        "divide-pages",
        "n-up-pdf",
        "combine-single-page",
        "grid-combine",
        "posterize-pdf",
        "fix-page-size",
        "invert-colors",
        "background-color",
        "remove-blank-pages",
        "flatten-pdf",
        "table-of-contents",
        "extract-attachments",
        "linearize-pdf",
        "pdf-to-svg",
        "xps-to-pdf",
        "epub-to-pdf",
        "fb2-to-pdf",
        "mobi-to-pdf",
    ):
        entry = registry.get(kind)
        assert entry is not None, kind
        assert entry.factory().kind == kind
    assert registry.get("epub-to-pdf").accepted_formats == ("epub",)
    assert registry.get("pdf-to-svg").output_format == "svg"
    assert registry.get("pdf-to-zip").accepts_format(registry.get("extract-attachments").output_format)
