from __future__ import annotations

import pytest
from pydantic import ValidationError

from studytools.models.operations import (
    CompressPdfOptions,
    ConvertImageOptions,
    OcrOptions,
    PdfToImagesOptions,
    ResizeImageOptions,
    RotateImageOptions,
    RotatePdfOptions,
    SplitPdfOptions,
    WatermarkImageOptions,
)


def test_form_strings_are_coerced() -> None:
    options = ResizeImageOptions.model_validate({"width": "800", "height": "", "maintain_ratio": "false"})
    assert options.width == 800
    assert options.height is None
    assert options.maintain_ratio is False


def test_resize_needs_a_dimension() -> None:
    with pytest.raises(ValidationError):
        ResizeImageOptions.model_validate({})


def test_aliases() -> None:
    assert CompressPdfOptions.model_validate({"level": "High"}).level == "extreme"
    assert ConvertImageOptions.model_validate({"target_format": ".JPG"}).target_format == "jpeg"
    assert PdfToImagesOptions.model_validate({"format": "jpeg"}).format == "jpg"


def test_rotate_pdf_angle_and_pages() -> None:
    options = RotatePdfOptions.model_validate({"angle": "-90", "pages": "1, 3"})
    assert options.angle == 270
    assert options.pages == [1, 3]
    with pytest.raises(ValidationError):
        RotatePdfOptions.model_validate({"angle": "45"})


def test_split_ranges_validation() -> None:
    assert SplitPdfOptions.model_validate({"mode": "ranges", "ranges": "1-3,5"}).ranges == "1-3,5"
    with pytest.raises(ValidationError):
        SplitPdfOptions.model_validate({"mode": "ranges"})
    with pytest.raises(ValidationError):
        SplitPdfOptions.model_validate({"mode": "ranges", "ranges": "one-two"})


def test_colors_are_checked() -> None:
    assert RotateImageOptions.model_validate({"background": "black"}).background == "black"
    with pytest.raises(ValidationError):
        WatermarkImageOptions.model_validate({"text": "x", "color": "not-a-color"})


def test_ocr_languages() -> None:
    assert OcrOptions.model_validate({"languages": "eng+fra"}).languages == "eng+fra"
    with pytest.raises(ValidationError):
        OcrOptions.model_validate({"languages": "eng; rm -rf /"})


def test_unknown_fields_are_ignored() -> None:
    assert CompressPdfOptions.model_validate({"level": "low", "ui_hint": "x"}).level == "low"
