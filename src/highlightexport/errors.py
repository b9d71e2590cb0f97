"""Exceptions raised by the export pipeline.

Every error carries a machine-readable code. The request entry point
catches them once and turns them into an ExportResult; nothing here is
meant to cross that boundary.
"""


class ExportError(Exception):
    """Base class for all export failures."""

    code: str = "EXPORT_ERROR"
    message: str = "Export failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.__class__.message
        super().__init__(self.message)


class InvalidRequestError(ExportError):
    """The request payload cannot be exported as given."""

    code = "INVALID_REQUEST"
    message = "Invalid export request"


class UserCancelledError(ExportError):
    """The output directory prompt was dismissed."""

    code = "USER_CANCELLED"
    message = "Export cancelled: no output directory selected"


class AnnotationDecodeError(ExportError):
    """An annotation payload is not a decodable base64 image data URL."""

    code = "ANNOTATION_DECODE_ERROR"
    message = "Annotation image could not be decoded"


class DualSourceMissingError(ExportError):
    """Dual-angle composition needs a secondary source that was not given."""

    code = "DUAL_SOURCE_MISSING"
    message = "Dual-angle export requires a second video source"


class ExternalProcessError(ExportError):
    """The transcoder failed to start or exited with a non-zero code."""

    code = "EXTERNAL_PROCESS_ERROR"
    message = "Transcoder failed"

    def __init__(
        self,
        message: str | None = None,
        *,
        exit_code: int | None = None,
        stderr_tail: str = "",
    ):
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail
        if message is None and exit_code is not None:
            message = f"ffmpeg exited with code {exit_code}"
        super().__init__(message)
