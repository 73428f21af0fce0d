"""PyMuPDF-backed PDF page operations.

All functions here are blocking; the registry runs them through
``run_blocking`` so the event loop stays free while MuPDF works.
"""
from __future__ import annotations

import io
from collections.abc import Sequence

import pymupdf
from PIL import Image

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
from studytools.pipeline.ingestion import HeldFile
from studytools.transforms.base import TransformOutput
from studytools.utils.security import sanitize_filename

PDF_MEDIA_TYPE = "application/pdf"
_IMAGE_MARGIN = 36


def open_pdf(held: HeldFile) -> pymupdf.Document:
    try:
        doc = pymupdf.open(held.path, filetype="pdf")
    except Exception as exc:
        raise TransformFailure(
            f"{held.original_name} is not a readable PDF", filename=held.original_name, detail=str(exc)
        ) from exc
    if doc.needs_pass:
        doc.close()
        raise TransformFailure(f"{held.original_name} is password protected", filename=held.original_name)
    if doc.page_count == 0:
        doc.close()
        raise TransformFailure(f"{held.original_name} has no pages", filename=held.original_name)
    return doc


def _save(doc: pymupdf.Document) -> bytes:
    return doc.tobytes(garbage=3, deflate=True)


def merge_pdfs(files: Sequence[HeldFile]) -> TransformOutput:
    merged = pymupdf.open()
    try:
        for held in files:
            with open_pdf(held) as src:
                merged.insert_pdf(src)
        page_count = merged.page_count
        data = _save(merged)
    finally:
        merged.close()
    return TransformOutput(
        data=data,
        filename="merged-document.pdf",
        media_type=PDF_MEDIA_TYPE,
        metadata={"pageCount": page_count, "filesCount": len(files)},
    )


def parse_page_ranges(ranges: str, page_count: int) -> list[tuple[int, int]]:
    """Turn '1-3,5' into zero-based inclusive (start, end) pairs within the document."""
    result: list[tuple[int, int]] = []
    for part in ranges.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            first, last = (int(p.strip()) for p in part.split("-", 1))
        else:
            first = last = int(part)
        start, end = sorted((first - 1, last - 1))
        start = max(start, 0)
        end = min(end, page_count - 1)
        if start <= end:
            result.append((start, end))
    return result


def split_pdf(held: HeldFile, options: SplitPdfOptions) -> list[TransformOutput]:
    with open_pdf(held) as src:
        page_count = src.page_count
        if options.mode == "pages":
            spans = [(i, i) for i in range(page_count)]
        elif options.mode == "fixed":
            spans = [(i, min(i + options.every, page_count) - 1) for i in range(0, page_count, options.every)]
        else:
            spans = parse_page_ranges(options.ranges or "", page_count)
        if not spans:
            raise TransformFailure(
                f"No pages of {held.original_name} fall inside the requested ranges",
                filename=held.original_name,
            )
        outputs: list[TransformOutput] = []
        for start, end in spans:
            with pymupdf.open() as part:
                part.insert_pdf(src, from_page=start, to_page=end)
                data = _save(part)
            label = f"page-{start + 1}" if start == end else f"pages-{start + 1}-{end + 1}"
            outputs.append(
                TransformOutput(
                    data=data,
                    filename=f"{held.stem}-{label}.pdf",
                    media_type=PDF_MEDIA_TYPE,
                    metadata={"originalPages": page_count, "parts": len(spans)},
                )
            )
    return outputs


def rotate_pdf(held: HeldFile, options: RotatePdfOptions) -> TransformOutput:
    wanted = set(options.pages or [])
    with open_pdf(held) as doc:
        rotated = 0
        for page in doc:
            if wanted and page.number + 1 not in wanted:
                continue
            page.set_rotation((page.rotation + options.angle) % 360)
            rotated += 1
        data = _save(doc)
    return TransformOutput(
        data=data,
        filename=f"{held.stem}-rotated.pdf",
        media_type=PDF_MEDIA_TYPE,
        metadata={"rotatedPages": rotated, "angle": options.angle},
    )


def watermark_pdf(held: HeldFile, options: WatermarkPdfOptions) -> TransformOutput:
    with open_pdf(held) as doc:
        for page in doc:
            rect = page.rect
            center = pymupdf.Point(rect.width / 2, rect.height / 2)
            text_width = pymupdf.get_text_length(options.text, fontname="hebo", fontsize=options.font_size)
            origin = pymupdf.Point(center.x - text_width / 2, center.y + options.font_size / 3)
            page.insert_text(
                origin,
                options.text,
                fontsize=options.font_size,
                fontname="hebo",
                color=(0.75, 0.75, 0.75),
                fill_opacity=options.opacity,
                morph=(center, pymupdf.Matrix(options.rotation)),
            )
        page_count = doc.page_count
        data = _save(doc)
    return TransformOutput(
        data=data,
        filename=f"{held.stem}-watermarked.pdf",
        media_type=PDF_MEDIA_TYPE,
        metadata={"pageCount": page_count},
    )


def number_pages(held: HeldFile, options: PageNumberOptions) -> TransformOutput:
    with open_pdf(held) as doc:
        total = doc.page_count
        for page in doc:
            label = options.template.replace("{n}", str(options.start + page.number)).replace("{p}", str(total))
            rect = page.rect
            width = pymupdf.get_text_length(label, fontname="helv", fontsize=options.font_size)
            vertical, horizontal = options.position.split("-")
            y = 30 + options.font_size if vertical == "top" else rect.height - 30
            if horizontal == "left":
                x = 30.0
            elif horizontal == "right":
                x = rect.width - 30 - width
            else:
                x = (rect.width - width) / 2
            page.insert_text((x, y), label, fontsize=options.font_size, fontname="helv", color=(0, 0, 0))
        data = _save(doc)
    return TransformOutput(
        data=data,
        filename=f"{held.stem}-numbered.pdf",
        media_type=PDF_MEDIA_TYPE,
        metadata={"pageCount": total},
    )


def pdf_to_images(held: HeldFile, options: PdfToImagesOptions) -> list[TransformOutput]:
    media_type = "image/jpeg" if options.format == "jpg" else "image/png"
    outputs: list[TransformOutput] = []
    with open_pdf(held) as doc:
        page_count = doc.page_count
        for page in doc:
            pix = page.get_pixmap(dpi=options.dpi)
            if options.format == "jpg":
                data = pix.tobytes(output="jpg", jpg_quality=90)
            else:
                data = pix.tobytes(output="png")
            outputs.append(
                TransformOutput(
                    data=data,
                    filename=f"{held.stem}-page-{page.number + 1}.{options.format}",
                    media_type=media_type,
                    metadata={"pageCount": page_count, "width": pix.width, "height": pix.height},
                )
            )
    return outputs


def extract_text(held: HeldFile, options: ExtractTextOptions) -> TransformOutput:
    separator = "\f" if options.page_breaks else "\n"
    with open_pdf(held) as doc:
        page_count = doc.page_count
        text = separator.join(page.get_text() for page in doc)
    return TransformOutput(
        data=text.encode("utf-8"),
        filename=f"{held.stem}.txt",
        media_type="text/plain; charset=utf-8",
        metadata={"pageCount": page_count, "characters": len(text)},
    )


def _image_as_pdf(held: HeldFile) -> pymupdf.Document:
    try:
        with Image.open(held.path) as img:
            img.load()
            if img.mode not in ("RGB", "L"):
                img = img.convert("RGB")
            buf = io.BytesIO()
            img.save(buf, format="PNG")
        with pymupdf.open(stream=buf.getvalue(), filetype="png") as picture:
            pdf_bytes = picture.convert_to_pdf()
        return pymupdf.open(stream=pdf_bytes, filetype="pdf")
    except Exception as exc:
        raise TransformFailure(
            f"{held.original_name} is not a readable image", filename=held.original_name, detail=str(exc)
        ) from exc


def images_to_pdf(files: Sequence[HeldFile], options: ImagesToPdfOptions) -> TransformOutput:
    out = pymupdf.open()
    try:
        for held in files:
            with _image_as_pdf(held) as picture:
                if options.page_size == "fit":
                    out.insert_pdf(picture)
                    continue
                width, height = pymupdf.paper_size(options.page_size)
                page = out.new_page(width=width, height=height)
                target = pymupdf.Rect(_IMAGE_MARGIN, _IMAGE_MARGIN, width - _IMAGE_MARGIN, height - _IMAGE_MARGIN)
                page.show_pdf_page(target, picture, 0)
        page_count = out.page_count
        data = _save(out)
    finally:
        out.close()
    return TransformOutput(
        data=data,
        filename="images-to-pdf.pdf",
        media_type=PDF_MEDIA_TYPE,
        metadata={"pageCount": page_count, "imageCount": len(files)},
    )


def _wrap_line(text: str, fontname: str, fontsize: float, max_width: float) -> list[str]:
    words = text.split()
    if not words:
        return [""]
    lines: list[str] = []
    current = ""
    for word in words:
        candidate = f"{current} {word}" if current else word
        if pymupdf.get_text_length(candidate, fontname=fontname, fontsize=fontsize) <= max_width:
            current = candidate
            continue
        if current:
            lines.append(current)
        # Hard-break words wider than the column.
        while pymupdf.get_text_length(word, fontname=fontname, fontsize=fontsize) > max_width and len(word) > 1:
            cut = len(word)
            while cut > 1 and pymupdf.get_text_length(word[:cut], fontname=fontname, fontsize=fontsize) > max_width:
                cut -= 1
            lines.append(word[:cut])
            word = word[cut:]
        current = word
    lines.append(current)
    return lines


def text_to_pdf(options: TextToPdfOptions) -> TransformOutput:
    fontname = "tiro"
    width, height = pymupdf.paper_size("a4")
    max_width = width - 2 * options.margin
    line_height = options.font_size * 1.2
    doc = pymupdf.open()
    try:
        page = doc.new_page(width=width, height=height)
        y = options.margin + options.font_size
        if options.title:
            title_size = options.font_size + 4
            page.insert_text((options.margin, y), options.title, fontsize=title_size, fontname="tibo")
            y += title_size * 2
        for paragraph in options.text.splitlines() or [""]:
            for line in _wrap_line(paragraph, fontname, options.font_size, max_width):
                if y > height - options.margin:
                    page = doc.new_page(width=width, height=height)
                    y = options.margin + options.font_size
                if line:
                    page.insert_text((options.margin, y), line, fontsize=options.font_size, fontname=fontname)
                y += line_height
        page_count = doc.page_count
        data = _save(doc)
    finally:
        doc.close()
    name = sanitize_filename(options.filename, default="document.pdf")
    if not name.lower().endswith(".pdf"):
        name = f"{name}.pdf"
    return TransformOutput(
        data=data,
        filename=name,
        media_type=PDF_MEDIA_TYPE,
        metadata={"pageCount": page_count, "characters": len(options.text)},
    )
