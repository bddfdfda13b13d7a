"""
Document processors.

Each processor takes artifacts plus an options dataclass and returns a
ProcessOutput. They share one contract (BaseProcessor), so the workflow
executor drives all of them the same way.

Usage:
    from docflow.processors import MergePDFProcessor, ProcessInput

    output = await MergePDFProcessor().process(ProcessInput(files=[a, b]))
    if output.success:
        merged = output.artifact
"""

from .base import BaseProcessor, ProcessInput, ProcessOutput, SinglePDFProcessor
from .convert import (
    EpubToPDFProcessor,
    ExtractAttachmentsProcessor,
    ExtractImagesProcessor,
    Fb2ToPDFProcessor,
    ImageToPDFProcessor,
    InvertColorsProcessor,
    JsonToPDFProcessor,
    MobiToPDFProcessor,
    PDFToGreyscaleProcessor,
    PDFToImageProcessor,
    PDFToJsonProcessor,
    PDFToSVGProcessor,
    PDFToZipProcessor,
    PptxToPDFProcessor,
    TextToPDFProcessor,
    WordToPDFProcessor,
    XpsToPDFProcessor,
)
from .edit import (
    AddWatermarkProcessor,
    BackgroundColorProcessor,
    EditMetadataProcessor,
    HeaderFooterProcessor,
    PageNumbersProcessor,
    RemoveAnnotationsProcessor,
    RemoveBlankPagesProcessor,
    RemoveMetadataProcessor,
    TableOfContentsProcessor,
)
from .errors import ErrorCategory, ErrorCode, ProcessingError, ProcessorError, create_error
from .layout import (
    CombineSinglePageProcessor,
    DividePagesProcessor,
    FixPageSizeProcessor,
    GridCombineProcessor,
    NUpPDFProcessor,
    PosterizePDFProcessor,
)
from .optimize import CompressPDFProcessor, FlattenPDFProcessor, LinearizePDFProcessor, RepairPDFProcessor
from .organize import (
    AddBlankPageProcessor,
    AlternateMergeProcessor,
    DeletePagesProcessor,
    ExtractPagesProcessor,
    MergePDFProcessor,
    OrganizePDFProcessor,
    ReversePagesProcessor,
    RotatePDFProcessor,
    SplitPDFProcessor,
)
from .security import (
    ChangePermissionsProcessor,
    DecryptPDFProcessor,
    EncryptPDFProcessor,
    RemoveRestrictionsProcessor,
    SanitizePDFProcessor,
)

__all__ = [
    "BaseProcessor",
    "SinglePDFProcessor",
    "ProcessInput",
    "ProcessOutput",
    "ErrorCode",
    "ErrorCategory",
    "ProcessingError",
    "ProcessorError",
    "create_error",
    # organize
    "MergePDFProcessor",
    "SplitPDFProcessor",
    "ExtractPagesProcessor",
    "DeletePagesProcessor",
    "RotatePDFProcessor",
    "ReversePagesProcessor",
    "AlternateMergeProcessor",
    "AddBlankPageProcessor",
    "OrganizePDFProcessor",
    # layout
    "DividePagesProcessor",
    "NUpPDFProcessor",
    "CombineSinglePageProcessor",
    "GridCombineProcessor",
    "PosterizePDFProcessor",
    "FixPageSizeProcessor",
    # edit
    "AddWatermarkProcessor",
    "PageNumbersProcessor",
    "HeaderFooterProcessor",
    "EditMetadataProcessor",
    "RemoveMetadataProcessor",
    "RemoveAnnotationsProcessor",
    "BackgroundColorProcessor",
    "RemoveBlankPagesProcessor",
    "TableOfContentsProcessor",
    # convert
    "ImageToPDFProcessor",
    "TextToPDFProcessor",
    "JsonToPDFProcessor",
    "WordToPDFProcessor",
    "PptxToPDFProcessor",
    "XpsToPDFProcessor",
    "EpubToPDFProcessor",
    "Fb2ToPDFProcessor",
    "MobiToPDFProcessor",
    "PDFToImageProcessor",
    "PDFToSVGProcessor",
    "PDFToGreyscaleProcessor",
    "InvertColorsProcessor",
    "PDFToJsonProcessor",
    "ExtractImagesProcessor",
    "ExtractAttachmentsProcessor",
    "PDFToZipProcessor",
    # optimize
    "CompressPDFProcessor",
    "RepairPDFProcessor",
    "FlattenPDFProcessor",
    "LinearizePDFProcessor",
    # security
    "EncryptPDFProcessor",
    "DecryptPDFProcessor",
    "ChangePermissionsProcessor",
    "RemoveRestrictionsProcessor",
    "SanitizePDFProcessor",
]
