from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class ArtifactManifest(BaseModel):
    slot: int
    path: str
    logical_name: str
    media_type: str
    size_bytes: int
    created_at: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)
