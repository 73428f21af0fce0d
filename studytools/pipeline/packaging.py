from __future__ import annotations

import io
import zipfile
from collections.abc import Sequence
from pathlib import Path

from studytools.transforms.base import TransformOutput

ZIP_MEDIA_TYPE = "application/zip"


def dedupe_names(names: Sequence[str]) -> list[str]:
    """Make archive member names unique, keeping the first occurrence as-is.

    ``a.pdf, a.pdf, a.pdf`` becomes ``a.pdf, a-1.pdf, a-2.pdf``.
    """
    taken: set[str] = set()
    result: list[str] = []
    for name in names:
        candidate = name
        if candidate in taken:
            path = Path(name)
            stem, suffix = path.stem, path.suffix
            n = 1
            while f"{stem}-{n}{suffix}" in taken:
                n += 1
            candidate = f"{stem}-{n}{suffix}"
        taken.add(candidate)
        result.append(candidate)
    return result


def build_archive(outputs: Sequence[TransformOutput]) -> bytes:
    """Zip outputs in processing order."""
    buf = io.BytesIO()
    names = dedupe_names([o.filename for o in outputs])
    with zipfile.ZipFile(buf, mode="w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, output in zip(names, outputs):
            zf.writestr(name, output.data)
    return buf.getvalue()


def package_outputs(outputs: Sequence[TransformOutput], archive_name: str) -> TransformOutput:
    """Return the single output unchanged, or one archive holding all of them."""
    if not outputs:
        raise ValueError("nothing to package")
    if len(outputs) == 1:
        return outputs[0]
    return TransformOutput(
        data=build_archive(outputs),
        filename=archive_name,
        media_type=ZIP_MEDIA_TYPE,
        metadata={"archivedFiles": len(outputs)},
    )
