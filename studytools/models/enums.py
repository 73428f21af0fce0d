from __future__ import annotations

from enum import StrEnum


class ToolFamily(StrEnum):
    pdf = "pdf"
    image = "image"
    text = "text"


class OperationMode(StrEnum):
    batch = "batch"
    per_file = "per_file"
