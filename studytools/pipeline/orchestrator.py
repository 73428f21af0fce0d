from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from studytools.models.entities import ProcessingSession
from studytools.models.enums import OperationMode
from studytools.models.manifests import ArtifactManifest
from studytools.models.operations import OperationOptions
from studytools.pipeline.exceptions import AllFilesFailed, PipelineError, SystemFailure, TransformFailure
from studytools.pipeline.ingestion import AdmittedUpload, HeldFile, HoldingArea
from studytools.pipeline.packaging import package_outputs
from studytools.pipeline.registry import OperationSpec
from studytools.pipeline.workspace import SessionWorkspace
from studytools.transforms.base import TransformOutput

logger = logging.getLogger(__name__)

_SUMMED_KEYS = ("originalSize", "processedSize", "pageCount")


def download_url(session_id: str, slot: int = 0) -> str:
    return f"/api/downloads/{session_id}/{slot}"


def seconds_until(expires_at: datetime | None, now: datetime) -> int:
    if expires_at is None:
        return 0
    return max(0, int((expires_at - now).total_seconds()))


@dataclass
class ProcessingOutcome:
    session: ProcessingSession
    artifact: ArtifactManifest
    total_files: int
    processed_files: int
    failed_files: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.failed_files:
            return f"Processed {self.processed_files} of {self.total_files} files"
        return "File processed successfully"

    def to_payload(self, now: datetime) -> dict[str, Any]:
        return {
            "success": True,
            "message": self.message,
            "downloadUrl": download_url(self.session.session_id, self.artifact.slot),
            "sessionId": self.session.session_id,
            "expiresAt": self.session.expires_at.isoformat() if self.session.expires_at else None,
            "expiresIn": seconds_until(self.session.expires_at, now),
            "fileName": self.artifact.logical_name,
            "sizeBytes": self.artifact.size_bytes,
            "processedFiles": self.processed_files,
            "totalFiles": self.total_files,
            "failedFiles": list(self.failed_files),
            **self.artifact.metadata,
        }


def summarize(outputs: Sequence[TransformOutput]) -> dict[str, Any]:
    """Collapse per-output metadata into the figures reported to the client.

    Sizes and page counts describe an input file, so they are summed once per
    source file: several pages rendered from one PDF count that PDF's pages
    once. Other keys survive only when every output agrees on them.
    """
    if not outputs:
        return {}
    if len(outputs) == 1:
        meta = dict(outputs[0].metadata)
    else:
        per_source: dict[Any, TransformOutput] = {}
        for index, output in enumerate(outputs):
            key = output.source if output.source is not None else ("output", index)
            per_source.setdefault(key, output)
        meta = {}
        for key in _SUMMED_KEYS:
            values = [o.metadata.get(key) for o in per_source.values()]
            if all(isinstance(v, int) for v in values):
                meta[key] = sum(values)
        first = outputs[0].metadata
        for key, value in first.items():
            if key in meta or key in _SUMMED_KEYS:
                continue
            if all(o.metadata.get(key) == value for o in outputs[1:]):
                meta[key] = value
    original, processed = meta.get("originalSize"), meta.get("processedSize")
    if isinstance(original, int) and isinstance(processed, int) and original > 0:
        meta["compressionRatio"] = round((1 - processed / original) * 100, 2)
    return meta


class Orchestrator:
    """Runs an admitted upload through its transform and stores the result.

    Batch operations are all-or-nothing. Per-file operations skip files that
    fail and succeed as long as one file made it through. Every held upload is
    released exactly once whatever happens.
    """

    def __init__(self, workspace: SessionWorkspace, holding: HoldingArea) -> None:
        self._workspace = workspace
        self._holding = holding

    @property
    def workspace(self) -> SessionWorkspace:
        return self._workspace

    async def run(self, admitted: AdmittedUpload) -> ProcessingOutcome:
        spec = admitted.spec
        files = admitted.files
        session: ProcessingSession | None = None
        registered = False
        try:
            session = await asyncio.to_thread(self._workspace.allocate, spec.key)
            if spec.mode is OperationMode.batch:
                outputs = await spec.transform(files, admitted.options)
                failed: list[str] = []
            else:
                outputs, failed = await self._run_per_file(spec, files, admitted.options)

            if not outputs:
                if failed:
                    raise AllFilesFailed(failed)
                raise TransformFailure(f"{spec.title} produced no output")

            packaged = await asyncio.to_thread(package_outputs, outputs, spec.archive_name)
            artifact = await asyncio.to_thread(
                self._workspace.register,
                session.session_id,
                packaged.data,
                packaged.filename,
                packaged.media_type,
                {**summarize(outputs), **packaged.metadata},
            )
            registered = True
            stored = await asyncio.to_thread(self._workspace.get_session, session.session_id) or session
            logger.info(
                "%s finished for session %s: %d/%d files",
                spec.key,
                session.session_id,
                len(files) - len(failed),
                len(files),
            )
            return ProcessingOutcome(
                session=stored,
                artifact=artifact,
                total_files=len(files),
                processed_files=len(files) - len(failed),
                failed_files=failed,
            )
        except SystemFailure as e:
            logger.error("%s failed: %s (%s)", spec.key, e.message, e.detail)
            raise
        except PipelineError as e:
            logger.warning("%s failed: %s", spec.key, e.message)
            raise
        except Exception as e:
            logger.exception("unexpected error while running %s", spec.key)
            raise SystemFailure(detail=f"{type(e).__name__}: {e}") from e
        finally:
            if session is not None:
                if not registered:
                    await asyncio.to_thread(self._workspace.discard, session.session_id)
                self._workspace.finish(session.session_id)
            await asyncio.to_thread(self._holding.release_all, files)
            self._holding.forget(files)

    async def _run_per_file(
        self,
        spec: OperationSpec,
        files: Sequence[HeldFile],
        options: OperationOptions,
    ) -> tuple[list[TransformOutput], list[str]]:
        outputs: list[TransformOutput] = []
        failed: list[str] = []
        for index, held in enumerate(files):
            try:
                results = await spec.transform(held, options)
                for output in results:
                    output.source = index
                outputs.extend(results)
            except TransformFailure as e:
                logger.warning("%s skipped %s: %s", spec.key, held.original_name, e.message)
                failed.append(held.original_name)
            finally:
                await asyncio.to_thread(self._holding.release, held)
        return outputs, failed
