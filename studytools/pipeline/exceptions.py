from __future__ import annotations


class PipelineError(Exception):
    """Base exception for all file-pipeline errors."""

    status_code = 500
    default_message = "File processing failed"

    def __init__(self, message: str | None = None, *, detail: str | None = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


class UploadValidationError(PipelineError):
    """Raised by the ingestion gate for client-fixable request problems."""

    status_code = 400
    default_message = "Invalid upload"


class NoFileProvided(UploadValidationError):
    default_message = "No file uploaded"


class UnsupportedMimeType(UploadValidationError):
    default_message = "Unsupported file type"


class FileTooLarge(UploadValidationError):
    default_message = "File is too large"


class TooFewFiles(UploadValidationError):
    default_message = "Not enough files uploaded"


class TooManyFiles(UploadValidationError):
    default_message = "Too many files uploaded"


class InvalidOptions(UploadValidationError):
    default_message = "Invalid options"


class TransformFailure(PipelineError):
    """Raised when a backend fails to process a single input."""

    def __init__(self, message: str | None = None, *, filename: str | None = None, detail: str | None = None) -> None:
        super().__init__(message, detail=detail)
        self.filename = filename


class ExternalProcessFailed(TransformFailure):
    """Raised when an external binary exits with a non-zero status."""

    def __init__(self, message: str | None = None, *, returncode: int | None = None, detail: str | None = None) -> None:
        super().__init__(message, detail=detail)
        self.returncode = returncode


class AllFilesFailed(PipelineError):
    default_message = "None of the uploaded files could be processed"

    def __init__(self, failed: list[str], *, detail: str | None = None) -> None:
        names = ", ".join(failed)
        super().__init__(f"None of the uploaded files could be processed: {names}", detail=detail)
        self.failed = failed


class SystemFailure(PipelineError):
    """Raised for failures that are fatal to the whole request."""

    default_message = "Internal processing error"


class ExternalProcessTimeout(SystemFailure):
    default_message = "Processing timed out"


class BackendUnavailable(SystemFailure):
    default_message = "Processing backend is not available"


class WorkspaceError(SystemFailure):
    default_message = "Could not store the processed file"


class ArtifactUnavailable(PipelineError):
    """Raised by the download gateway; always answered with 404."""

    status_code = 404
    default_message = "File not found or expired"


class ArtifactNotFound(ArtifactUnavailable):
    default_message = "File not found"


class ArtifactExpired(ArtifactUnavailable):
    default_message = "File has expired"
