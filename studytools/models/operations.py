"""Typed option schemas, one per tool operation.

Form fields arrive as strings; pydantic's lax mode coerces them ("800" -> 800,
"true" -> True). Unknown fields are ignored so UI-only fields do not break
validation.
"""
from __future__ import annotations

import re
from typing import Literal

from PIL import ImageColor
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_RANGES_RE = re.compile(r"^\s*\d+\s*(-\s*\d+\s*)?(,\s*\d+\s*(-\s*\d+\s*)?)*$")


class OperationOptions(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


def _check_color(value: str) -> str:
    try:
        ImageColor.getrgb(value)
    except ValueError as e:
        raise ValueError(f"unknown color {value!r}") from e
    return value


class NoOptions(OperationOptions):
    pass


class SplitPdfOptions(OperationOptions):
    mode: Literal["pages", "ranges", "fixed"] = "pages"
    ranges: str | None = None
    every: int = Field(default=2, ge=1)

    @model_validator(mode="after")
    def _check_ranges(self) -> "SplitPdfOptions":
        if self.mode == "ranges":
            if not self.ranges:
                raise ValueError("ranges is required when mode is 'ranges'")
            if not _RANGES_RE.match(self.ranges):
                raise ValueError("ranges must look like '1-3,5,7-9'")
        return self


class CompressPdfOptions(OperationOptions):
    level: Literal["low", "recommended", "extreme"] = "recommended"

    @field_validator("level", mode="before")
    @classmethod
    def _alias_levels(cls, value: object) -> object:
        aliases = {"medium": "recommended", "high": "extreme"}
        if isinstance(value, str):
            return aliases.get(value.lower(), value.lower())
        return value


class RotatePdfOptions(OperationOptions):
    angle: Literal[90, 180, 270] = 90
    pages: list[int] | None = None

    @field_validator("angle", mode="before")
    @classmethod
    def _normalize_angle(cls, value: object) -> object:
        try:
            return int(str(value)) % 360
        except ValueError:
            return value

    @field_validator("pages", mode="before")
    @classmethod
    def _split_pages(cls, value: object) -> object:
        if isinstance(value, str):
            parts = [p.strip() for p in value.split(",") if p.strip()]
            return parts or None
        return value


class ProtectPdfOptions(OperationOptions):
    password: str = Field(min_length=1)
    owner_password: str | None = None
    allow_printing: bool = True
    allow_copying: bool = False


class UnlockPdfOptions(OperationOptions):
    password: str = Field(min_length=1)


class WatermarkPdfOptions(OperationOptions):
    text: str = Field(min_length=1, max_length=200)
    font_size: int = Field(default=50, ge=6, le=300)
    opacity: float = Field(default=0.25, ge=0.0, le=1.0)
    rotation: int = Field(default=45, ge=-360, le=360)


class PageNumberOptions(OperationOptions):
    position: Literal[
        "bottom-center", "bottom-left", "bottom-right", "top-center", "top-left", "top-right"
    ] = "bottom-center"
    font_size: int = Field(default=12, ge=6, le=72)
    start: int = Field(default=1, ge=0)
    template: str = "{n}"


class PdfToImagesOptions(OperationOptions):
    format: Literal["jpg", "png"] = "jpg"
    dpi: int = Field(default=150, ge=36, le=600)

    @field_validator("format", mode="before")
    @classmethod
    def _lower(cls, value: object) -> object:
        if isinstance(value, str):
            value = value.lower()
            return "jpg" if value == "jpeg" else value
        return value


class ExtractTextOptions(OperationOptions):
    # Separate pages with a form feed, as pdftotext does.
    page_breaks: bool = True


class ImagesToPdfOptions(OperationOptions):
    page_size: Literal["fit", "a4", "letter"] = "fit"


class OcrOptions(OperationOptions):
    languages: str = "eng"
    output: Literal["pdf", "txt"] = "pdf"

    @field_validator("languages")
    @classmethod
    def _check_languages(cls, value: str) -> str:
        if not re.fullmatch(r"[a-z_]{3,16}(\+[a-z_]{3,16})*", value):
            raise ValueError("languages must look like 'eng' or 'eng+deu'")
        return value


class ResizeImageOptions(OperationOptions):
    width: int | None = Field(default=None, ge=1, le=20000)
    height: int | None = Field(default=None, ge=1, le=20000)
    maintain_ratio: bool = True

    @field_validator("width", "height", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _require_dimension(self) -> "ResizeImageOptions":
        if self.width is None and self.height is None:
            raise ValueError("width or height must be specified")
        return self


class CompressImageOptions(OperationOptions):
    quality: int = Field(default=80, ge=1, le=100)
    progressive: bool = True
    preserve_metadata: bool = False


class ConvertImageOptions(OperationOptions):
    target_format: Literal["jpeg", "png", "webp", "gif", "bmp", "tiff"] = "jpeg"
    quality: int = Field(default=90, ge=1, le=100)

    @field_validator("target_format", mode="before")
    @classmethod
    def _normalize_format(cls, value: object) -> object:
        if isinstance(value, str):
            value = value.lower().lstrip(".")
            return {"jpg": "jpeg", "tif": "tiff"}.get(value, value)
        return value


class CropImageOptions(OperationOptions):
    x: int = Field(default=0, ge=0)
    y: int = Field(default=0, ge=0)
    width: int = Field(ge=1)
    height: int = Field(ge=1)


class RotateImageOptions(OperationOptions):
    angle: float = Field(default=90, ge=-360, le=360)
    background: str = "#ffffff"

    @field_validator("background")
    @classmethod
    def _check_background(cls, value: str) -> str:
        return _check_color(value)


class FlipImageOptions(OperationOptions):
    direction: Literal["horizontal", "vertical"] = "horizontal"


class WatermarkImageOptions(OperationOptions):
    text: str = Field(min_length=1, max_length=200)
    font_size: int = Field(default=36, ge=6, le=400)
    opacity: float = Field(default=0.5, ge=0.0, le=1.0)
    position: Literal["center", "top-left", "top-right", "bottom-left", "bottom-right"] = "bottom-right"
    color: str = "#ffffff"

    @field_validator("color")
    @classmethod
    def _check_text_color(cls, value: str) -> str:
        return _check_color(value)


class TextToPdfOptions(OperationOptions):
    text: str = Field(min_length=1, max_length=500_000)
    title: str | None = None
    font_size: int = Field(default=12, ge=6, le=72)
    margin: int = Field(default=50, ge=0, le=200)
    filename: str = "document.pdf"
