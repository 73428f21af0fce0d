from __future__ import annotations

import pymupdf
import pytest

from studytools.models.operations import (
    ExtractTextOptions,
    ImagesToPdfOptions,
    PageNumberOptions,
    PdfToImagesOptions,
    RotatePdfOptions,
    SplitPdfOptions,
    TextToPdfOptions,
    WatermarkPdfOptions,
)
from studytools.pipeline.exceptions import TransformFailure
from studytools.pipeline.ingestion import HoldingArea
from studytools.transforms import pdf_backend
from tests.helpers import make_image_bytes, make_pdf_bytes


def _pages(data: bytes) -> int:
    with pymupdf.open(stream=data, filetype="pdf") as doc:
        return doc.page_count


def test_merge_keeps_order(holding: HoldingArea) -> None:
    files = [
        holding.hold("a.pdf", "application/pdf", make_pdf_bytes(1, text="alpha")),
        holding.hold("b.pdf", "application/pdf", make_pdf_bytes(2, text="beta")),
    ]
    out = pdf_backend.merge_pdfs(files)

    assert out.metadata == {"pageCount": 3, "filesCount": 2}
    with pymupdf.open(stream=out.data, filetype="pdf") as doc:
        assert "alpha" in doc[0].get_text()
        assert "beta" in doc[1].get_text()


def test_parse_page_ranges() -> None:
    assert pdf_backend.parse_page_ranges("1-3,5", 10) == [(0, 2), (4, 4)]
    assert pdf_backend.parse_page_ranges("4-2", 10) == [(1, 3)]
    assert pdf_backend.parse_page_ranges("8-20", 10) == [(7, 9)]
    assert pdf_backend.parse_page_ranges("12", 10) == []


def test_split_by_ranges(holding: HoldingArea) -> None:
    held = holding.hold("doc.pdf", "application/pdf", make_pdf_bytes(5))
    outputs = pdf_backend.split_pdf(held, SplitPdfOptions(mode="ranges", ranges="1-2,5"))

    assert [o.filename for o in outputs] == ["doc-pages-1-2.pdf", "doc-page-5.pdf"]
    assert [_pages(o.data) for o in outputs] == [2, 1]


def test_split_fixed_chunks(holding: HoldingArea) -> None:
    held = holding.hold("doc.pdf", "application/pdf", make_pdf_bytes(5))
    outputs = pdf_backend.split_pdf(held, SplitPdfOptions(mode="fixed", every=2))
    assert [_pages(o.data) for o in outputs] == [2, 2, 1]


def test_split_out_of_range_fails(holding: HoldingArea) -> None:
    held = holding.hold("doc.pdf", "application/pdf", make_pdf_bytes(2))
    with pytest.raises(TransformFailure):
        pdf_backend.split_pdf(held, SplitPdfOptions(mode="ranges", ranges="7-9"))


def test_rotate_selected_pages(holding: HoldingArea) -> None:
    held = holding.hold("doc.pdf", "application/pdf", make_pdf_bytes(3))
    out = pdf_backend.rotate_pdf(held, RotatePdfOptions(angle=90, pages="1,3"))

    assert out.metadata["rotatedPages"] == 2
    with pymupdf.open(stream=out.data, filetype="pdf") as doc:
        assert [page.rotation for page in doc] == [90, 0, 90]


def test_watermark_and_numbers(holding: HoldingArea) -> None:
    held = holding.hold("doc.pdf", "application/pdf", make_pdf_bytes(2))

    marked = pdf_backend.watermark_pdf(held, WatermarkPdfOptions(text="DRAFT"))
    with pymupdf.open(stream=marked.data, filetype="pdf") as doc:
        assert "DRAFT" in doc[0].get_text()

    numbered = pdf_backend.number_pages(held, PageNumberOptions(template="Page {n} of {p}"))
    with pymupdf.open(stream=numbered.data, filetype="pdf") as doc:
        assert "Page 2 of 2" in doc[1].get_text()


def test_pdf_to_images(holding: HoldingArea) -> None:
    held = holding.hold("slides.pdf", "application/pdf", make_pdf_bytes(2))
    outputs = pdf_backend.pdf_to_images(held, PdfToImagesOptions(format="png", dpi=72))

    assert [o.filename for o in outputs] == ["slides-page-1.png", "slides-page-2.png"]
    assert all(o.data.startswith(b"\x89PNG") for o in outputs)


def test_images_to_pdf(holding: HoldingArea) -> None:
    files = [
        holding.hold("a.png", "image/png", make_image_bytes("PNG")),
        holding.hold("b.jpg", "image/jpeg", make_image_bytes("JPEG")),
    ]
    out = pdf_backend.images_to_pdf(files, ImagesToPdfOptions(page_size="a4"))

    assert out.metadata["pageCount"] == 2
    with pymupdf.open(stream=out.data, filetype="pdf") as doc:
        assert round(doc[0].rect.width) == 595


def test_images_to_pdf_rejects_garbage(holding: HoldingArea) -> None:
    files = [holding.hold("a.png", "image/png", b"not an image")]
    with pytest.raises(TransformFailure):
        pdf_backend.images_to_pdf(files, ImagesToPdfOptions())


def test_corrupt_pdf_is_a_transform_failure(holding: HoldingArea) -> None:
    held = holding.hold("bad.pdf", "application/pdf", b"garbage")
    with pytest.raises(TransformFailure) as excinfo:
        pdf_backend.rotate_pdf(held, RotatePdfOptions())
    assert excinfo.value.filename == "bad.pdf"


def test_text_to_pdf_paginates() -> None:
    text = "\n".join(f"Line {n} " + "word " * 20 for n in range(200))
    out = pdf_backend.text_to_pdf(TextToPdfOptions(text=text, title="Notes", filename="my notes"))

    assert out.filename == "my notes.pdf"
    assert out.metadata["pageCount"] > 1
    with pymupdf.open(stream=out.data, filetype="pdf") as doc:
        assert "Notes" in doc[0].get_text()


def test_extract_text_keeps_page_breaks(holding: HoldingArea) -> None:
    held = holding.hold("lecture.pdf", "application/pdf", make_pdf_bytes(2, text="chapter"))

    out = pdf_backend.extract_text(held, ExtractTextOptions())

    text = out.data.decode("utf-8")
    assert out.filename == "lecture.txt"
    assert out.media_type.startswith("text/plain")
    assert out.metadata == {"pageCount": 2, "characters": len(text)}
    first, second = text.split("\f")
    assert "chapter 1" in first
    assert "chapter 2" in second


def test_extract_text_without_page_breaks(holding: HoldingArea) -> None:
    held = holding.hold("lecture.pdf", "application/pdf", make_pdf_bytes(2, text="chapter"))

    text = pdf_backend.extract_text(held, ExtractTextOptions(page_breaks=False)).data.decode("utf-8")

    assert "\f" not in text
    assert text.index("chapter 1") < text.index("chapter 2")


def test_extract_text_rejects_non_pdf(holding: HoldingArea) -> None:
    held = holding.hold("fake.pdf", "application/pdf", b"not a pdf at all")
    with pytest.raises(TransformFailure):
        pdf_backend.extract_text(held, ExtractTextOptions())
