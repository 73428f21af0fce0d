"""Pillow-backed raster operations."""
from __future__ import annotations

import io
from typing import Any

from PIL import Image, ImageColor, ImageDraw, ImageFont, ImageOps

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
from studytools.pipeline.ingestion import HeldFile
from studytools.transforms.base import TransformOutput

# Pillow format name -> (extension, media type)
FORMATS: dict[str, tuple[str, str]] = {
    "JPEG": ("jpg", "image/jpeg"),
    "PNG": ("png", "image/png"),
    "WEBP": ("webp", "image/webp"),
    "GIF": ("gif", "image/gif"),
    "BMP": ("bmp", "image/bmp"),
    "TIFF": ("tiff", "image/tiff"),
}


def open_image(held: HeldFile) -> Image.Image:
    try:
        img = Image.open(held.path)
        img.load()
    except Exception as exc:
        raise TransformFailure(
            f"{held.original_name} is not a readable image", filename=held.original_name, detail=str(exc)
        ) from exc
    return img


def _output_format(img: Image.Image) -> str:
    fmt = (img.format or "").upper()
    if fmt == "MPO":
        return "JPEG"
    return fmt if fmt in FORMATS else "PNG"


def _flatten(img: Image.Image, background: tuple[int, int, int] = (255, 255, 255)) -> Image.Image:
    if img.mode in ("RGB", "L"):
        return img
    rgba = img.convert("RGBA")
    base = Image.new("RGB", rgba.size, background)
    base.paste(rgba, mask=rgba.split()[3])
    return base


def encode(img: Image.Image, fmt: str, **params: Any) -> bytes:
    if fmt in ("JPEG", "BMP"):
        img = _flatten(img)
    buf = io.BytesIO()
    img.save(buf, format=fmt, **params)
    return buf.getvalue()


def _output(held: HeldFile, img: Image.Image, fmt: str, data: bytes, prefix: str, **metadata: Any) -> TransformOutput:
    ext, media_type = FORMATS[fmt]
    return TransformOutput(
        data=data,
        filename=f"{prefix}{held.stem}.{ext}",
        media_type=media_type,
        metadata={"width": img.width, "height": img.height, "format": ext, **metadata},
    )


def resize_image(held: HeldFile, options: ResizeImageOptions) -> TransformOutput:
    with open_image(held) as img:
        fmt = _output_format(img)
        src_w, src_h = img.size
        if options.maintain_ratio:
            scales = []
            if options.width:
                scales.append(options.width / src_w)
            if options.height:
                scales.append(options.height / src_h)
            scale = min(scales)
            size = (max(1, round(src_w * scale)), max(1, round(src_h * scale)))
        else:
            size = (options.width or src_w, options.height or src_h)
        resized = img.resize(size, Image.Resampling.LANCZOS)
        data = encode(resized, fmt)
    return _output(held, resized, fmt, data, "resized-", originalWidth=src_w, originalHeight=src_h)


def compress_image(held: HeldFile, options: CompressImageOptions) -> TransformOutput:
    with open_image(held) as img:
        fmt = _output_format(img)
        params: dict[str, Any] = {}
        exif = img.info.get("exif") if options.preserve_metadata else None
        if fmt == "PNG":
            params = {"optimize": True, "compress_level": 9}
        elif fmt == "WEBP":
            params = {"quality": options.quality, "method": 6}
        else:
            fmt = "JPEG"
            params = {"quality": options.quality, "optimize": True, "progressive": options.progressive}
        if exif:
            params["exif"] = exif
        data = encode(img, fmt, **params)
        width, height = img.size
    ext, media_type = FORMATS[fmt]
    return TransformOutput(
        data=data,
        filename=f"compressed-{held.stem}.{ext}",
        media_type=media_type,
        metadata={
            "width": width,
            "height": height,
            "format": ext,
            "originalSize": held.size_bytes,
            "processedSize": len(data),
        },
    )


def convert_image(held: HeldFile, options: ConvertImageOptions) -> TransformOutput:
    fmt = options.target_format.upper()
    with open_image(held) as img:
        params: dict[str, Any] = {}
        if fmt in ("JPEG", "WEBP"):
            params["quality"] = options.quality
        source = img
        if fmt == "GIF" and img.mode not in ("P", "L"):
            source = img.convert("RGB").quantize(colors=256)
        data = encode(source, fmt, **params)
        original = (img.format or "unknown").lower()
        result = _output(held, img, fmt, data, "", originalFormat=original)
    return result


def crop_image(held: HeldFile, options: CropImageOptions) -> TransformOutput:
    with open_image(held) as img:
        right = options.x + options.width
        bottom = options.y + options.height
        if right > img.width or bottom > img.height:
            raise TransformFailure(
                f"Crop area exceeds the {img.width}x{img.height} bounds of {held.original_name}",
                filename=held.original_name,
            )
        fmt = _output_format(img)
        cropped = img.crop((options.x, options.y, right, bottom))
        data = encode(cropped, fmt)
    return _output(held, cropped, fmt, data, "cropped-")


def rotate_image(held: HeldFile, options: RotateImageOptions) -> TransformOutput:
    fill = ImageColor.getrgb(options.background)
    with open_image(held) as img:
        fmt = _output_format(img)
        source = img if img.mode in ("RGB", "RGBA", "L") else img.convert("RGBA")
        if source.mode == "L":
            fill = ImageColor.getcolor(options.background, "L")
        # Pillow rotates counter-clockwise; the tool rotates clockwise.
        rotated = source.rotate(-options.angle, expand=True, fillcolor=fill, resample=Image.Resampling.BICUBIC)
        data = encode(rotated, fmt)
    return _output(held, rotated, fmt, data, "rotated-", angle=options.angle)


def flip_image(held: HeldFile, options: FlipImageOptions) -> TransformOutput:
    with open_image(held) as img:
        fmt = _output_format(img)
        flipped = ImageOps.mirror(img) if options.direction == "horizontal" else ImageOps.flip(img)
        data = encode(flipped, fmt)
    return _output(held, flipped, fmt, data, "flipped-", direction=options.direction)


def watermark_image(held: HeldFile, options: WatermarkImageOptions) -> TransformOutput:
    red, green, blue = ImageColor.getrgb(options.color)[:3]
    with open_image(held) as img:
        fmt = _output_format(img)
        base = img.convert("RGBA")
        overlay = Image.new("RGBA", base.size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(overlay)
        font = ImageFont.load_default(size=options.font_size)
        left, top, right, bottom = draw.textbbox((0, 0), options.text, font=font)
        text_w, text_h = right - left, bottom - top
        pad = max(10, options.font_size // 2)
        positions = {
            "center": ((base.width - text_w) / 2, (base.height - text_h) / 2),
            "top-left": (pad, pad),
            "top-right": (base.width - text_w - pad, pad),
            "bottom-left": (pad, base.height - text_h - pad),
            "bottom-right": (base.width - text_w - pad, base.height - text_h - pad),
        }
        x, y = positions[options.position]
        draw.text((x - left, y - top), options.text, font=font, fill=(red, green, blue, round(255 * options.opacity)))
        marked = Image.alpha_composite(base, overlay)
        if img.mode != "RGBA" and fmt != "PNG":
            marked = marked.convert("RGB")
        data = encode(marked, fmt)
    return _output(held, marked, fmt, data, "watermarked-")
