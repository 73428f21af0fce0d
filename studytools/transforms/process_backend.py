from __future__ import annotations

import shutil
import tempfile
from pathlib import Path

from studytools.config.schema import BackendSettings
from studytools.models.operations import CompressPdfOptions, OcrOptions, ProtectPdfOptions, UnlockPdfOptions
from studytools.pipeline.exceptions import ExternalProcessFailed
from studytools.pipeline.ingestion import HeldFile
from studytools.transforms.base import TransformOutput
from studytools.transforms.external import run_process

GHOSTSCRIPT_PRESETS = {
    "low": "/prepress",
    "recommended": "/ebook",
    "extreme": "/screen",
}

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def _read_output(path: Path, tool: str, held: HeldFile) -> bytes:
    if not path.is_file():
        raise ExternalProcessFailed(f"{tool} produced no output for {held.original_name}")
    return path.read_bytes()


class ProcessBackend:
    """Compression, encryption, OCR and office conversion via external binaries.

    Every call works inside its own temporary directory, so concurrent
    requests never share intermediate files.
    """

    def __init__(self, settings: BackendSettings) -> None:
        self._settings = settings

    @property
    def timeout(self) -> float:
        return self._settings.process_timeout_seconds

    async def compress_pdf(self, held: HeldFile, options: CompressPdfOptions) -> TransformOutput:
        with tempfile.TemporaryDirectory(prefix="studytools-gs-") as tmp:
            out = Path(tmp) / "compressed.pdf"
            await run_process(
                [
                    self._settings.ghostscript,
                    "-sDEVICE=pdfwrite",
                    "-dCompatibilityLevel=1.4",
                    f"-dPDFSETTINGS={GHOSTSCRIPT_PRESETS[options.level]}",
                    "-dNOPAUSE",
                    "-dBATCH",
                    "-dQUIET",
                    "-dSAFER",
                    f"-sOutputFile={out}",
                    str(held.path),
                ],
                timeout=self.timeout,
                label="ghostscript",
            )
            data = _read_output(out, "ghostscript", held)
        return TransformOutput(
            data=data,
            filename=f"{held.stem}-compressed.pdf",
            media_type="application/pdf",
            metadata={"originalSize": held.size_bytes, "processedSize": len(data), "level": options.level},
        )

    async def protect_pdf(self, held: HeldFile, options: ProtectPdfOptions) -> TransformOutput:
        restrictions: list[str] = []
        if not options.allow_printing:
            restrictions.append("--print=none")
        if not options.allow_copying:
            restrictions.append("--extract=n")
        owner = options.owner_password or options.password
        with tempfile.TemporaryDirectory(prefix="studytools-qpdf-") as tmp:
            out = Path(tmp) / "protected.pdf"
            await run_process(
                [
                    self._settings.qpdf,
                    "--encrypt",
                    options.password,
                    owner,
                    "256",
                    *restrictions,
                    "--",
                    str(held.path),
                    str(out),
                ],
                timeout=self.timeout,
                label="qpdf",
                ok_codes=(0, 3),
            )
            data = _read_output(out, "qpdf", held)
        return TransformOutput(
            data=data,
            filename=f"{held.stem}-protected.pdf",
            media_type="application/pdf",
            metadata={"encryption": "AES-256"},
        )

    async def unlock_pdf(self, held: HeldFile, options: UnlockPdfOptions) -> TransformOutput:
        with tempfile.TemporaryDirectory(prefix="studytools-qpdf-") as tmp:
            out = Path(tmp) / "unlocked.pdf"
            try:
                await run_process(
                    [self._settings.qpdf, f"--password={options.password}", "--decrypt", str(held.path), str(out)],
                    timeout=self.timeout,
                    label="qpdf",
                    ok_codes=(0, 3),
                )
            except ExternalProcessFailed as e:
                raise ExternalProcessFailed(
                    f"Could not unlock {held.original_name}, check the password",
                    returncode=e.returncode,
                    detail=e.detail,
                ) from e
            data = _read_output(out, "qpdf", held)
        return TransformOutput(data=data, filename=f"{held.stem}-unlocked.pdf", media_type="application/pdf")

    async def ocr_image(self, held: HeldFile, options: OcrOptions) -> TransformOutput:
        with tempfile.TemporaryDirectory(prefix="studytools-ocr-") as tmp:
            base = Path(tmp) / "ocr"
            await run_process(
                [self._settings.tesseract, str(held.path), str(base), "-l", options.languages, options.output],
                timeout=self.timeout,
                label="tesseract",
            )
            data = _read_output(base.with_suffix(f".{options.output}"), "tesseract", held)
        media_type = "application/pdf" if options.output == "pdf" else "text/plain; charset=utf-8"
        return TransformOutput(
            data=data,
            filename=f"{held.stem}-ocr.{options.output}",
            media_type=media_type,
            metadata={"languages": options.languages},
        )

    async def office_to_pdf(self, held: HeldFile) -> TransformOutput:
        data = await self._libreoffice(held, ["--convert-to", "pdf"], ".pdf")
        return TransformOutput(data=data, filename=f"{held.stem}.pdf", media_type="application/pdf")

    async def pdf_to_word(self, held: HeldFile) -> TransformOutput:
        data = await self._libreoffice(
            held,
            ["--infilter=writer_pdf_import", "--convert-to", "docx:MS Word 2007 XML"],
            ".docx",
        )
        return TransformOutput(data=data, filename=f"{held.stem}.docx", media_type=DOCX_MEDIA_TYPE)

    async def _libreoffice(self, held: HeldFile, convert_args: list[str], suffix: str) -> bytes:
        with tempfile.TemporaryDirectory(prefix="studytools-soffice-") as tmp:
            tmp_dir = Path(tmp)
            source = tmp_dir / f"input{held.suffix or '.bin'}"
            shutil.copyfile(held.path, source)
            outdir = tmp_dir / "out"
            outdir.mkdir()
            # A private profile lets concurrent conversions run side by side.
            profile = (tmp_dir / "profile").as_uri()
            await run_process(
                [
                    self._settings.libreoffice,
                    "--headless",
                    "--norestore",
                    f"-env:UserInstallation={profile}",
                    *convert_args,
                    "--outdir",
                    str(outdir),
                    str(source),
                ],
                timeout=self.timeout,
                label="libreoffice",
            )
            return _read_output(outdir / f"input{suffix}", "libreoffice", held)
