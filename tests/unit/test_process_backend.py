from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from _pytest.monkeypatch import MonkeyPatch

from studytools.config.schema import BackendSettings
from studytools.models.operations import CompressPdfOptions, OcrOptions, ProtectPdfOptions, UnlockPdfOptions
from studytools.pipeline.exceptions import ExternalProcessFailed
from studytools.pipeline.ingestion import HoldingArea
from studytools.transforms import process_backend
from studytools.transforms.external import ProcessResult
from studytools.transforms.process_backend import ProcessBackend
from tests.helpers import make_image_bytes, make_pdf_bytes


class RecordingRunner:
    """Replaces run_process and writes the output file a real tool would."""

    def __init__(self, output: bytes = b"%PDF-out", fail: bool = False) -> None:
        self.output = output
        self.fail = fail
        self.calls: list[tuple[list[str], dict]] = []

    async def __call__(self, args, timeout, label=None, ok_codes=(0,)):
        self.calls.append((list(args), {"timeout": timeout, "label": label, "ok_codes": tuple(ok_codes)}))
        if self.fail:
            raise ExternalProcessFailed(f"{label} exited with status 2", returncode=2, detail="invalid password")
        self._write_output(list(args))
        return ProcessResult(returncode=0, stdout=b"", stderr=b"")

    def _write_output(self, args: list[str]) -> None:
        for arg in args:
            if arg.startswith("-sOutputFile="):
                Path(arg.split("=", 1)[1]).write_bytes(self.output)
                return
        if "--outdir" in args:
            outdir = Path(args[args.index("--outdir") + 1])
            source = Path(args[-1])
            suffix = ".docx" if any(a.startswith("docx") for a in args) else ".pdf"
            (outdir / f"{source.stem}{suffix}").write_bytes(self.output)
            return
        if args[0] == "tesseract":
            Path(f"{args[2]}.{args[-1]}").write_bytes(self.output)
            return
        Path(args[-1]).write_bytes(self.output)


@pytest.fixture
def runner(monkeypatch: MonkeyPatch) -> RecordingRunner:
    fake = RecordingRunner()
    monkeypatch.setattr(process_backend, "run_process", fake)
    return fake


@pytest.fixture
def backend() -> ProcessBackend:
    return ProcessBackend(BackendSettings(process_timeout_seconds=7))


def test_compress_builds_ghostscript_command(runner: RecordingRunner, backend: ProcessBackend, holding: HoldingArea) -> None:
    held = holding.hold("big.pdf", "application/pdf", make_pdf_bytes(2))
    out = asyncio.run(backend.compress_pdf(held, CompressPdfOptions(level="extreme")))

    args, meta = runner.calls[0]
    assert args[0] == "gs"
    assert "-dPDFSETTINGS=/screen" in args
    assert "-dSAFER" in args
    assert args[-1] == str(held.path)
    assert meta["timeout"] == 7
    assert out.filename == "big-compressed.pdf"
    assert out.metadata["originalSize"] == held.size_bytes
    assert out.metadata["processedSize"] == len(b"%PDF-out")


def test_protect_applies_restrictions(runner: RecordingRunner, backend: ProcessBackend, holding: HoldingArea) -> None:
    held = holding.hold("secret.pdf", "application/pdf", make_pdf_bytes())
    options = ProtectPdfOptions(password="user", allow_printing=False, allow_copying=False)
    out = asyncio.run(backend.protect_pdf(held, options))

    args, meta = runner.calls[0]
    assert args[:5] == ["qpdf", "--encrypt", "user", "user", "256"]
    assert "--print=none" in args
    assert "--extract=n" in args
    assert meta["ok_codes"] == (0, 3)
    assert out.filename == "secret-protected.pdf"


def test_unlock_reports_bad_password(monkeypatch: MonkeyPatch, backend: ProcessBackend, holding: HoldingArea) -> None:
    monkeypatch.setattr(process_backend, "run_process", RecordingRunner(fail=True))
    held = holding.hold("locked.pdf", "application/pdf", make_pdf_bytes())

    with pytest.raises(ExternalProcessFailed) as excinfo:
        asyncio.run(backend.unlock_pdf(held, UnlockPdfOptions(password="wrong")))
    assert "check the password" in excinfo.value.message
    assert excinfo.value.returncode == 2


def test_ocr_text_output(runner: RecordingRunner, backend: ProcessBackend, holding: HoldingArea) -> None:
    runner.output = b"recognised text"
    held = holding.hold("scan.png", "image/png", make_image_bytes())
    out = asyncio.run(backend.ocr_image(held, OcrOptions(languages="eng+deu", output="txt")))

    args, _ = runner.calls[0]
    assert args[args.index("-l") + 1] == "eng+deu"
    assert out.data == b"recognised text"
    assert out.filename == "scan-ocr.txt"
    assert out.media_type.startswith("text/plain")


def test_office_conversion_uses_private_profile(
    runner: RecordingRunner, backend: ProcessBackend, holding: HoldingArea
) -> None:
    held = holding.hold("essay.docx", "application/vnd.openxmlformats-officedocument.wordprocessingml.document", b"PK")
    out = asyncio.run(backend.office_to_pdf(held))

    args, _ = runner.calls[0]
    assert "--headless" in args
    assert any(a.startswith("-env:UserInstallation=file://") for a in args)
    assert out.filename == "essay.pdf"


def test_pdf_to_word(runner: RecordingRunner, backend: ProcessBackend, holding: HoldingArea) -> None:
    held = holding.hold("paper.pdf", "application/pdf", make_pdf_bytes())
    out = asyncio.run(backend.pdf_to_word(held))

    args, _ = runner.calls[0]
    assert "--infilter=writer_pdf_import" in args
    assert out.filename == "paper.docx"
    assert out.media_type == process_backend.DOCX_MEDIA_TYPE


def test_missing_output_is_a_failure(monkeypatch: MonkeyPatch, backend: ProcessBackend, holding: HoldingArea) -> None:
    async def silent(args, timeout, label=None, ok_codes=(0,)):
        return ProcessResult(returncode=0, stdout=b"", stderr=b"")

    monkeypatch.setattr(process_backend, "run_process", silent)
    held = holding.hold("big.pdf", "application/pdf", make_pdf_bytes())

    with pytest.raises(ExternalProcessFailed):
        asyncio.run(backend.compress_pdf(held, CompressPdfOptions()))
