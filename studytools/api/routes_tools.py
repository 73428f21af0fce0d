from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import FileResponse, JSONResponse
from starlette.datastructures import UploadFile

from studytools.api.deps import get_gate, get_orchestrator, get_registry
from studytools.api.routes_downloads import artifact_response
from studytools.pipeline.ingestion import IngestionGate
from studytools.pipeline.orchestrator import Orchestrator
from studytools.pipeline.registry import OperationSpec

router = APIRouter(prefix="/api")

_FILE_FIELDS = ("files", "file")


@router.get("/tools")
async def list_tools(registry: dict[tuple[str, str], OperationSpec] = Depends(get_registry)) -> dict[str, Any]:
    """List every available operation with its limits.

    Returns:
        Tool descriptions grouped in one list.
    """

    return {"success": True, "tools": [spec.describe() for spec in registry.values()]}


async def _read_request(request: Request) -> tuple[list[UploadFile], dict[str, Any], Any]:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        body = await request.json()
        if not isinstance(body, dict):
            raise HTTPException(status_code=400, detail="JSON body must be an object")
        return [], body, None
    form = await request.form()
    uploads = [v for key in _FILE_FIELDS for v in form.getlist(key) if isinstance(v, UploadFile)]
    fields = {k: v for k, v in form.multi_items() if k not in _FILE_FIELDS and isinstance(v, str)}
    return uploads, fields, form


@router.post("/{family}/{operation}", response_model=None)
async def run_tool(
    family: str,
    operation: str,
    request: Request,
    delivery: str | None = None,
    registry: dict[tuple[str, str], OperationSpec] = Depends(get_registry),
    gate: IngestionGate = Depends(get_gate),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> JSONResponse | FileResponse:
    """Run a file tool on the uploaded files.

    Args:
        family: Tool family (pdf, image, text).
        operation: Operation name inside the family.
        delivery: ``file`` to stream the result instead of returning a link.

    Returns:
        Download details, or the processed file itself.
    """

    spec = registry.get((family, operation))
    if spec is None:
        raise HTTPException(status_code=404, detail=f"Unknown tool: {family}/{operation}")

    uploads, fields, form = await _read_request(request)
    try:
        admitted = await gate.admit(spec, uploads, fields)
    finally:
        if form is not None:
            await form.close()

    outcome = await orchestrator.run(admitted)
    if delivery == "file":
        return artifact_response(outcome.artifact)
    return JSONResponse(outcome.to_payload(orchestrator.workspace.now()))
