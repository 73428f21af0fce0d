from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from studytools.api.deps import get_workspace
from studytools.models.manifests import ArtifactManifest
from studytools.pipeline.exceptions import ArtifactExpired, ArtifactNotFound
from studytools.pipeline.orchestrator import download_url, seconds_until
from studytools.pipeline.workspace import SessionWorkspace

router = APIRouter(prefix="/api")

_NO_STORE_HEADERS = {
    "Cache-Control": "no-store",
    "X-Content-Type-Options": "nosniff",
}


def artifact_response(manifest: ArtifactManifest) -> FileResponse:
    path = Path(manifest.path)
    try:
        stat_result = os.stat(path)
    except FileNotFoundError as e:
        # Swept between resolve and read.
        raise ArtifactNotFound() from e
    return FileResponse(
        path=path,
        filename=manifest.logical_name,
        media_type=manifest.media_type,
        headers=dict(_NO_STORE_HEADERS),
        stat_result=stat_result,
    )


def _parse_slot(slot: str) -> int:
    if not slot.isdigit():
        raise ArtifactNotFound()
    return int(slot)


@router.get("/downloads/{session_id}/{slot}")
async def download_artifact(
    session_id: str,
    slot: str,
    workspace: SessionWorkspace = Depends(get_workspace),
) -> FileResponse:
    """Download one artifact of a session.

    Args:
        session_id: Session identifier returned by a tool call.
        slot: Artifact index inside the session.

    Returns:
        The stored file as an attachment.
    """

    manifest = await asyncio.to_thread(workspace.resolve, session_id, _parse_slot(slot))
    return artifact_response(manifest)


@router.get("/downloads/{session_id}")
async def download_primary_artifact(
    session_id: str,
    workspace: SessionWorkspace = Depends(get_workspace),
) -> FileResponse:
    manifest = await asyncio.to_thread(workspace.resolve, session_id, 0)
    return artifact_response(manifest)


@router.get("/sessions/{session_id}")
async def get_session_meta(
    session_id: str,
    workspace: SessionWorkspace = Depends(get_workspace),
) -> dict[str, Any]:
    """Describe a session's artifacts without exposing storage paths.

    Args:
        session_id: Session identifier.

    Returns:
        Expiry and per-artifact download details.
    """

    session = await asyncio.to_thread(workspace.get_session, session_id)
    if session is None or session.expires_at is None:
        raise ArtifactNotFound("Session not found")
    now = workspace.now()
    if session.is_expired(now):
        raise ArtifactExpired("Session has expired")
    return {
        "success": True,
        "sessionId": session.session_id,
        "operation": session.operation,
        "createdAt": session.created_at.isoformat(),
        "expiresAt": session.expires_at.isoformat(),
        "expiresIn": seconds_until(session.expires_at, now),
        "artifacts": [
            {
                "slot": artifact.slot,
                "fileName": artifact.logical_name,
                "mediaType": artifact.media_type,
                "sizeBytes": artifact.size_bytes,
                "downloadUrl": download_url(session.session_id, artifact.slot),
            }
            for artifact in session.artifacts
        ],
    }
