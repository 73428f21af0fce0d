from __future__ import annotations

import shutil
from typing import Any

from fastapi import APIRouter, Depends

from studytools.api.deps import get_config, get_registry, get_workspace
from studytools.config.schema import AppConfig
from studytools.pipeline.registry import OperationSpec
from studytools.pipeline.workspace import SessionWorkspace

router = APIRouter(prefix="/api")


@router.get("/health")
async def health(
    config: AppConfig = Depends(get_config),
    registry: dict[tuple[str, str], OperationSpec] = Depends(get_registry),
    workspace: SessionWorkspace = Depends(get_workspace),
) -> dict[str, Any]:
    """Liveness check.

    Returns:
        Service status, the tool families served and whether each external
        binary is on the PATH. A missing binary only disables its tools, so
        the service still reports healthy.
    """

    families = sorted({str(spec.family) for spec in registry.values()})
    backends = config.backends
    binaries = {
        "ghostscript": backends.ghostscript,
        "qpdf": backends.qpdf,
        "tesseract": backends.tesseract,
        "libreoffice": backends.libreoffice,
    }
    return {
        "status": "healthy",
        "timestamp": workspace.now().isoformat(),
        "services": {family: "operational" for family in families},
        "backends": {
            name: "available" if shutil.which(binary) else "missing" for name, binary in binaries.items()
        },
    }
