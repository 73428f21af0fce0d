from __future__ import annotations

import logging
import os
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from pydantic import ValidationError

from studytools.models.operations import OperationOptions
from studytools.pipeline.exceptions import (
    FileTooLarge,
    InvalidOptions,
    NoFileProvided,
    TooFewFiles,
    TooManyFiles,
    UnsupportedMimeType,
)
from studytools.utils.security import safe_join, sanitize_filename

if TYPE_CHECKING:
    from studytools.pipeline.registry import OperationSpec

logger = logging.getLogger(__name__)


class IncomingFile(Protocol):
    """The subset of Starlette's ``UploadFile`` the gate relies on."""

    filename: str | None
    content_type: str | None

    async def read(self, size: int = -1) -> bytes: ...


@dataclass
class HeldFile:
    path: Path
    original_name: str
    content_type: str
    size_bytes: int

    @property
    def stem(self) -> str:
        return Path(self.original_name).stem or "file"

    @property
    def suffix(self) -> str:
        return Path(self.original_name).suffix.lower()


@dataclass
class AdmittedUpload:
    spec: "OperationSpec"
    options: OperationOptions
    files: list[HeldFile] = field(default_factory=list)


def normalize_mime(content_type: str | None) -> str:
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def mime_allowed(content_type: str, allowed: frozenset[str]) -> bool:
    if content_type in allowed:
        return True
    major = content_type.split("/", 1)[0]
    return f"{major}/*" in allowed


class HoldingArea:
    """Transient storage for admitted uploads awaiting orchestration."""

    def __init__(self, base_dir: Path) -> None:
        self._base_dir = base_dir
        self._base_dir.mkdir(parents=True, exist_ok=True)
        self._released: set[Path] = set()
        # Names of uploads held for a running request; the sweeper leaves them alone.
        self._pending: set[str] = set()

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def hold(self, original_name: str, content_type: str, data: bytes) -> HeldFile:
        name = f"{uuid.uuid4().hex}__{sanitize_filename(original_name)}"
        path = safe_join(self._base_dir, name)
        path.write_bytes(data)
        self._pending.add(path.name)
        return HeldFile(path=path, original_name=original_name, content_type=content_type, size_bytes=len(data))

    def release(self, held: HeldFile) -> bool:
        """Delete a held upload. Returns False if it was already released."""
        self._pending.discard(held.path.name)
        if held.path in self._released:
            return False
        self._released.add(held.path)
        try:
            held.path.unlink()
        except FileNotFoundError:
            logger.info("held upload %s was already removed", held.path.name)
        except OSError as e:
            logger.warning("could not delete held upload %s: %s", held.path.name, e)
        return True

    def release_all(self, files: Sequence[HeldFile]) -> None:
        for held in files:
            self.release(held)

    def forget(self, files: Sequence[HeldFile]) -> None:
        # Keep the released-path set bounded once a request is finished.
        for held in files:
            self._released.discard(held.path)

    def is_pending(self, path: Path) -> bool:
        return path.name in self._pending

    def list_files(self) -> list[Path]:
        if not self._base_dir.exists():
            return []
        with os.scandir(self._base_dir) as entries:
            return [Path(e.path) for e in entries if e.is_file()]


class IngestionGate:
    """Admits or rejects an upload before any processing happens.

    Every check (presence, count, MIME type, options, size) runs against the
    request and in-memory bytes. Nothing reaches the holding area unless the
    whole request passes.
    """

    def __init__(self, holding: HoldingArea) -> None:
        self._holding = holding

    @property
    def holding(self) -> HoldingArea:
        return self._holding

    async def admit(
        self,
        spec: "OperationSpec",
        uploads: Sequence[IncomingFile],
        fields: Mapping[str, Any] | None = None,
    ) -> AdmittedUpload:
        present = [u for u in uploads if u.filename]
        count = len(present)
        if spec.min_files > 0 and count == 0:
            raise NoFileProvided()
        if count < spec.min_files:
            raise TooFewFiles(f"At least {spec.min_files} files are required for {spec.title}")
        if count > spec.max_files:
            if spec.max_files == 0:
                raise TooManyFiles(f"{spec.title} does not accept file uploads")
            raise TooManyFiles(f"At most {spec.max_files} files are accepted for {spec.title}")

        for upload in present:
            mime = normalize_mime(upload.content_type)
            if not mime_allowed(mime, spec.allowed_mime_types):
                raise UnsupportedMimeType(f"Unsupported file type for {upload.filename}: {mime or 'unknown'}")

        options = self._validate_options(spec, fields or {})

        payloads: list[tuple[IncomingFile, bytes]] = []
        for upload in present:
            data = await upload.read(spec.max_file_size_bytes + 1)
            if len(data) > spec.max_file_size_bytes:
                limit_mb = spec.max_file_size_bytes / (1024 * 1024)
                raise FileTooLarge(f"{upload.filename} exceeds the {limit_mb:.0f}MB limit")
            payloads.append((upload, data))

        held: list[HeldFile] = []
        try:
            for upload, data in payloads:
                held.append(self._holding.hold(upload.filename or "file", normalize_mime(upload.content_type), data))
        except Exception:
            self._holding.release_all(held)
            raise
        return AdmittedUpload(spec=spec, options=options, files=held)

    @staticmethod
    def _validate_options(spec: "OperationSpec", fields: Mapping[str, Any]) -> OperationOptions:
        try:
            return spec.options_model.model_validate(dict(fields))
        except ValidationError as e:
            first = e.errors()[0]
            loc = ".".join(str(p) for p in first.get("loc", ()))
            message = first.get("msg", "invalid value")
            text = f"{loc}: {message}" if loc else message
            raise InvalidOptions(f"Invalid options for {spec.title}: {text}", detail=str(e)) from e
