from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from studytools.pipeline.exceptions import BackendUnavailable, ExternalProcessFailed, ExternalProcessTimeout

logger = logging.getLogger(__name__)

_STDERR_TAIL = 2000


@dataclass(frozen=True)
class ProcessResult:
    returncode: int
    stdout: bytes
    stderr: bytes


async def run_process(
    args: Sequence[str],
    timeout: float,
    label: str | None = None,
    ok_codes: Sequence[int] = (0,),
) -> ProcessResult:
    """Run an external binary with a hard deadline.

    An exit status outside ``ok_codes`` raises ``ExternalProcessFailed`` (a
    per-item failure); a timeout kills the process and raises
    ``ExternalProcessTimeout``, which is fatal to the request.
    """
    name = label or args[0]
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise BackendUnavailable(f"{name} is not installed", detail=str(e)) from e
    except PermissionError as e:
        raise BackendUnavailable(f"{name} cannot be executed", detail=str(e)) from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        logger.error("%s exceeded %.0fs and was killed", name, timeout)
        raise ExternalProcessTimeout(f"{name} did not finish within {timeout:.0f} seconds")
    except asyncio.CancelledError:
        proc.kill()
        await proc.wait()
        raise

    returncode = proc.returncode if proc.returncode is not None else -1
    if returncode not in ok_codes:
        tail = stderr.decode("utf-8", errors="replace")[-_STDERR_TAIL:]
        raise ExternalProcessFailed(f"{name} exited with status {returncode}", returncode=returncode, detail=tail)
    return ProcessResult(returncode=returncode, stdout=stdout, stderr=stderr)
