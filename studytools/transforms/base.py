from __future__ import annotations

import asyncio
import functools
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, ParamSpec, TypeVar

from studytools.pipeline.exceptions import PipelineError, TransformFailure

P = ParamSpec("P")
R = TypeVar("R")


@dataclass
class TransformOutput:
    data: bytes
    filename: str
    media_type: str
    metadata: dict[str, Any] = field(default_factory=dict)
    # Index of the input file this output came from, when known.
    source: int | None = None


async def run_blocking(label: str, func: Callable[P, R], *args: P.args, **kwargs: P.kwargs) -> R:
    """Run a blocking library call in a worker thread.

    Library exceptions are wrapped in ``TransformFailure`` so callers only
    have to deal with pipeline errors.
    """
    try:
        return await asyncio.to_thread(functools.partial(func, *args, **kwargs))
    except PipelineError:
        raise
    except Exception as exc:
        raise TransformFailure(f"{label} failed", detail=f"{type(exc).__name__}: {exc}") from exc
