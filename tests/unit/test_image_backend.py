from __future__ import annotations

import io

import pytest
from PIL import Image

from studytools.models.operations import (
    CompressImageOptions,
    ConvertImageOptions,
    CropImageOptions,
    FlipImageOptions,
    ResizeImageOptions,
    RotateImageOptions,
    WatermarkImageOptions,
)
from studytools.pipeline.exceptions import TransformFailure
from studytools.pipeline.ingestion import HoldingArea
from studytools.transforms import image_backend
from tests.helpers import make_image_bytes


def _open(data: bytes) -> Image.Image:
    return Image.open(io.BytesIO(data))


def test_resize_keeps_ratio(holding: HoldingArea) -> None:
    held = holding.hold("wide.png", "image/png", make_image_bytes("PNG", (200, 100)))
    out = image_backend.resize_image(held, ResizeImageOptions(width=50))

    assert out.filename == "resized-wide.png"
    assert _open(out.data).size == (50, 25)
    assert out.metadata["originalWidth"] == 200


def test_resize_exact(holding: HoldingArea) -> None:
    held = holding.hold("wide.png", "image/png", make_image_bytes("PNG", (200, 100)))
    out = image_backend.resize_image(held, ResizeImageOptions(width=30, height=30, maintain_ratio=False))
    assert _open(out.data).size == (30, 30)


def test_compress_jpeg(holding: HoldingArea) -> None:
    held = holding.hold("photo.jpg", "image/jpeg", make_image_bytes("JPEG", (120, 80)))
    out = image_backend.compress_image(held, CompressImageOptions(quality=40))

    assert out.media_type == "image/jpeg"
    assert out.metadata["originalSize"] == held.size_bytes
    assert out.metadata["processedSize"] == len(out.data)


def test_convert_png_to_jpeg_flattens_alpha(holding: HoldingArea) -> None:
    held = holding.hold("logo.png", "image/png", make_image_bytes("PNG"))
    out = image_backend.convert_image(held, ConvertImageOptions(target_format="jpg"))

    assert out.filename == "logo.jpg"
    assert out.media_type == "image/jpeg"
    assert out.metadata["originalFormat"] == "png"
    assert _open(out.data).mode == "RGB"


def test_convert_to_gif(holding: HoldingArea) -> None:
    held = holding.hold("photo.jpg", "image/jpeg", make_image_bytes("JPEG"))
    out = image_backend.convert_image(held, ConvertImageOptions(target_format="gif"))
    assert _open(out.data).format == "GIF"


def test_crop(holding: HoldingArea) -> None:
    held = holding.hold("photo.png", "image/png", make_image_bytes("PNG", (100, 100)))
    out = image_backend.crop_image(held, CropImageOptions(x=10, y=20, width=30, height=40))
    assert _open(out.data).size == (30, 40)

    with pytest.raises(TransformFailure):
        image_backend.crop_image(held, CropImageOptions(x=90, y=0, width=30, height=10))


def test_rotate_expands_canvas(holding: HoldingArea) -> None:
    held = holding.hold("photo.jpg", "image/jpeg", make_image_bytes("JPEG", (60, 20)))
    out = image_backend.rotate_image(held, RotateImageOptions(angle=90))
    assert _open(out.data).size == (20, 60)


def test_flip_horizontal(holding: HoldingArea) -> None:
    img = Image.new("RGB", (2, 1))
    img.putpixel((0, 0), (255, 0, 0))
    img.putpixel((1, 0), (0, 0, 255))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    held = holding.hold("two.png", "image/png", buf.getvalue())

    out = image_backend.flip_image(held, FlipImageOptions(direction="horizontal"))
    assert _open(out.data).convert("RGB").getpixel((0, 0)) == (0, 0, 255)


def test_watermark_changes_pixels(holding: HoldingArea) -> None:
    held = holding.hold("plain.png", "image/png", make_image_bytes("PNG", (200, 100), color="black"))
    out = image_backend.watermark_image(
        held, WatermarkImageOptions(text="SAMPLE", opacity=1.0, position="center", color="white")
    )

    marked = _open(out.data).convert("RGB")
    assert marked.size == (200, 100)
    assert max(marked.getdata()) != (0, 0, 0)


def test_unreadable_image(holding: HoldingArea) -> None:
    held = holding.hold("broken.png", "image/png", b"nope")
    with pytest.raises(TransformFailure) as excinfo:
        image_backend.flip_image(held, FlipImageOptions())
    assert excinfo.value.filename == "broken.png"
