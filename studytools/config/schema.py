from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

MiB = 1024 * 1024


class ServerSettings(BaseModel):
    environment: Literal["development", "production", "test"] = "development"
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8000

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


class StorageSettings(BaseModel):
    root: Path | None = None
    expiry_seconds: int = Field(default=240, gt=0)
    sweep_interval_seconds: int = Field(default=300, gt=0)
    holding_max_age_seconds: int = Field(default=300, gt=0)
    abandoned_after_seconds: int = Field(default=600, gt=0)
    sweep_batch_size: int = Field(default=200, gt=0)


class LimitSettings(BaseModel):
    pdf_max_bytes: int = Field(default=50 * MiB, gt=0)
    image_max_bytes: int = Field(default=50 * MiB, gt=0)
    office_max_bytes: int = Field(default=50 * MiB, gt=0)
    max_files: int = Field(default=20, gt=0)
    max_image_files: int = Field(default=50, gt=0)


class BackendSettings(BaseModel):
    ghostscript: str = "gs"
    qpdf: str = "qpdf"
    tesseract: str = "tesseract"
    libreoffice: str = "libreoffice"
    process_timeout_seconds: float = Field(default=120.0, gt=0)


class AppConfig(BaseModel):
    server: ServerSettings = Field(default_factory=ServerSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    limits: LimitSettings = Field(default_factory=LimitSettings)
    backends: BackendSettings = Field(default_factory=BackendSettings)
