from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

from studytools.config.schema import AppConfig
from studytools.models.enums import OperationMode, ToolFamily
from studytools.models.operations import (
    CompressImageOptions,
    CompressPdfOptions,
    ConvertImageOptions,
    CropImageOptions,
    ExtractTextOptions,
    FlipImageOptions,
    ImagesToPdfOptions,
    NoOptions,
    OcrOptions,
    OperationOptions,
    PageNumberOptions,
    PdfToImagesOptions,
    ProtectPdfOptions,
    ResizeImageOptions,
    RotateImageOptions,
    RotatePdfOptions,
    SplitPdfOptions,
    TextToPdfOptions,
    UnlockPdfOptions,
    WatermarkImageOptions,
    WatermarkPdfOptions,
)
from studytools.pipeline.ingestion import HeldFile
from studytools.transforms import image_backend, pdf_backend
from studytools.transforms.base import TransformOutput, run_blocking
from studytools.transforms.process_backend import ProcessBackend

# per_file transforms receive one HeldFile, batch transforms the whole list.
Transform = Callable[[Any, OperationOptions], Awaitable[list[TransformOutput]]]

PDF_TYPES = frozenset({"application/pdf"})
IMAGE_TYPES = frozenset(
    {"image/jpeg", "image/jpg", "image/png", "image/webp", "image/gif", "image/bmp", "image/tiff"}
)
OFFICE_TYPES = frozenset(
    {
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-powerpoint",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "application/vnd.oasis.opendocument.text",
        "application/vnd.oasis.opendocument.spreadsheet",
        "application/vnd.oasis.opendocument.presentation",
        "application/rtf",
        "text/rtf",
        "text/plain",
        "text/csv",
    }
)


@dataclass(frozen=True)
class OperationSpec:
    family: ToolFamily
    name: str
    title: str
    mode: OperationMode
    transform: Transform
    allowed_mime_types: frozenset[str]
    max_file_size_bytes: int
    options_model: type[OperationOptions] = NoOptions
    min_files: int = 1
    max_files: int = 1
    archive_name: str = "processed-files.zip"

    @property
    def key(self) -> str:
        return f"{self.family}/{self.name}"

    def describe(self) -> dict[str, Any]:
        return {
            "family": str(self.family),
            "operation": self.name,
            "title": self.title,
            "mode": str(self.mode),
            "minFiles": self.min_files,
            "maxFiles": self.max_files,
            "maxFileSizeBytes": self.max_file_size_bytes,
            "allowedMimeTypes": sorted(self.allowed_mime_types),
            "options": self.options_model.model_json_schema().get("properties", {}),
        }


def _blocking_each(label: str, func: Callable[..., Any]) -> Transform:
    """Adapt a blocking per-file backend function into an async transform."""

    async def transform(held: HeldFile, options: OperationOptions) -> list[TransformOutput]:
        result = await run_blocking(label, func, held, options)
        return list(result) if isinstance(result, list) else [result]

    return transform


def _blocking_batch(label: str, func: Callable[..., TransformOutput]) -> Transform:
    async def transform(files: Sequence[HeldFile], options: OperationOptions) -> list[TransformOutput]:
        return [await run_blocking(label, func, list(files), options)]

    return transform


def _merge(files: Sequence[HeldFile], _options: OperationOptions) -> TransformOutput:
    return pdf_backend.merge_pdfs(files)


def _text_to_pdf(_files: Sequence[HeldFile], options: TextToPdfOptions) -> TransformOutput:
    return pdf_backend.text_to_pdf(options)


def _external(call: Callable[..., Awaitable[TransformOutput]], with_options: bool = True) -> Transform:
    async def transform(held: HeldFile, options: OperationOptions) -> list[TransformOutput]:
        output = await call(held, options) if with_options else await call(held)
        return [output]

    return transform


def build_registry(config: AppConfig, processes: ProcessBackend) -> dict[tuple[str, str], OperationSpec]:
    """Build every operation the service exposes, keyed by (family, operation)."""
    limits = config.limits
    pdf_each = dict(
        family=ToolFamily.pdf,
        mode=OperationMode.per_file,
        allowed_mime_types=PDF_TYPES,
        max_file_size_bytes=limits.pdf_max_bytes,
        max_files=limits.max_files,
    )
    image_each = dict(
        family=ToolFamily.image,
        mode=OperationMode.per_file,
        allowed_mime_types=IMAGE_TYPES,
        max_file_size_bytes=limits.image_max_bytes,
        max_files=limits.max_image_files,
    )
    specs = [
        OperationSpec(
            family=ToolFamily.pdf,
            name="merge",
            title="Merge PDF",
            mode=OperationMode.batch,
            transform=_blocking_batch("PDF merge", _merge),
            allowed_mime_types=PDF_TYPES,
            max_file_size_bytes=limits.pdf_max_bytes,
            min_files=2,
            max_files=limits.max_files,
        ),
        OperationSpec(
            **{**pdf_each, "max_files": 1},
            name="split",
            title="Split PDF",
            transform=_blocking_each("PDF split", pdf_backend.split_pdf),
            options_model=SplitPdfOptions,
            archive_name="split-pages.zip",
        ),
        OperationSpec(
            **pdf_each,
            name="compress",
            title="Compress PDF",
            transform=_external(processes.compress_pdf),
            options_model=CompressPdfOptions,
            archive_name="compressed-pdfs.zip",
        ),
        OperationSpec(
            **pdf_each,
            name="rotate",
            title="Rotate PDF",
            transform=_blocking_each("PDF rotate", pdf_backend.rotate_pdf),
            options_model=RotatePdfOptions,
            archive_name="rotated-pdfs.zip",
        ),
        OperationSpec(
            **pdf_each,
            name="protect",
            title="Protect PDF",
            transform=_external(processes.protect_pdf),
            options_model=ProtectPdfOptions,
            archive_name="protected-pdfs.zip",
        ),
        OperationSpec(
            **pdf_each,
            name="unlock",
            title="Unlock PDF",
            transform=_external(processes.unlock_pdf),
            options_model=UnlockPdfOptions,
            archive_name="unlocked-pdfs.zip",
        ),
        OperationSpec(
            **pdf_each,
            name="watermark",
            title="Watermark PDF",
            transform=_blocking_each("PDF watermark", pdf_backend.watermark_pdf),
            options_model=WatermarkPdfOptions,
            archive_name="watermarked-pdfs.zip",
        ),
        OperationSpec(
            **pdf_each,
            name="page-numbers",
            title="Add page numbers",
            transform=_blocking_each("Page numbering", pdf_backend.number_pages),
            options_model=PageNumberOptions,
            archive_name="numbered-pdfs.zip",
        ),
        OperationSpec(
            **pdf_each,
            name="to-images",
            title="PDF to images",
            transform=_blocking_each("PDF rendering", pdf_backend.pdf_to_images),
            options_model=PdfToImagesOptions,
            archive_name="pdf-images.zip",
        ),
        OperationSpec(
            family=ToolFamily.pdf,
            name="from-images",
            title="Images to PDF",
            mode=OperationMode.batch,
            transform=_blocking_batch("Image to PDF conversion", pdf_backend.images_to_pdf),
            allowed_mime_types=IMAGE_TYPES,
            max_file_size_bytes=limits.image_max_bytes,
            max_files=limits.max_image_files,
            options_model=ImagesToPdfOptions,
        ),
        OperationSpec(
            **{**pdf_each, "allowed_mime_types": IMAGE_TYPES, "max_file_size_bytes": limits.image_max_bytes},
            name="ocr",
            title="OCR",
            transform=_external(processes.ocr_image),
            options_model=OcrOptions,
            archive_name="ocr-results.zip",
        ),
        OperationSpec(
            **{**pdf_each, "allowed_mime_types": OFFICE_TYPES, "max_file_size_bytes": limits.office_max_bytes},
            name="office-to-pdf",
            title="Office to PDF",
            transform=_external(processes.office_to_pdf, with_options=False),
            archive_name="converted-pdfs.zip",
        ),
        OperationSpec(
            **pdf_each,
            name="to-word",
            title="PDF to Word",
            transform=_external(processes.pdf_to_word, with_options=False),
            archive_name="converted-documents.zip",
        ),
        OperationSpec(
            **image_each,
            name="resize",
            title="Resize image",
            transform=_blocking_each("Image resize", image_backend.resize_image),
            options_model=ResizeImageOptions,
            archive_name="resized-images.zip",
        ),
        OperationSpec(
            **image_each,
            name="compress",
            title="Compress image",
            transform=_blocking_each("Image compression", image_backend.compress_image),
            options_model=CompressImageOptions,
            archive_name="compressed-images.zip",
        ),
        OperationSpec(
            **image_each,
            name="convert",
            title="Convert image",
            transform=_blocking_each("Image conversion", image_backend.convert_image),
            options_model=ConvertImageOptions,
            archive_name="converted-images.zip",
        ),
        OperationSpec(
            **image_each,
            name="crop",
            title="Crop image",
            transform=_blocking_each("Image crop", image_backend.crop_image),
            options_model=CropImageOptions,
            archive_name="cropped-images.zip",
        ),
        OperationSpec(
            **image_each,
            name="rotate",
            title="Rotate image",
            transform=_blocking_each("Image rotation", image_backend.rotate_image),
            options_model=RotateImageOptions,
            archive_name="rotated-images.zip",
        ),
        OperationSpec(
            **image_each,
            name="flip",
            title="Flip image",
            transform=_blocking_each("Image flip", image_backend.flip_image),
            options_model=FlipImageOptions,
            archive_name="flipped-images.zip",
        ),
        OperationSpec(
            **image_each,
            name="watermark",
            title="Watermark image",
            transform=_blocking_each("Image watermark", image_backend.watermark_image),
            options_model=WatermarkImageOptions,
            archive_name="watermarked-images.zip",
        ),
        OperationSpec(
            family=ToolFamily.text,
            name="to-pdf",
            title="Text to PDF",
            mode=OperationMode.batch,
            transform=_blocking_batch("Text to PDF conversion", _text_to_pdf),
            allowed_mime_types=frozenset(),
            max_file_size_bytes=limits.pdf_max_bytes,
            options_model=TextToPdfOptions,
            min_files=0,
            max_files=0,
        ),
        OperationSpec(
            **{**pdf_each, "family": ToolFamily.text},
            name="extract-from-pdf",
            title="Extract text from PDF",
            transform=_blocking_each("PDF text extraction", pdf_backend.extract_text),
            options_model=ExtractTextOptions,
            archive_name="extracted-text.zip",
        ),
    ]
    return {(str(spec.family), spec.name): spec for spec in specs}
