"""Exceptions raised by the media pipeline.

Each error carries the HTTP status the routers answer with.
"""


class MediaPipelineError(Exception):
    """Base exception for media pipeline errors."""

    status_code = 500


class ValidationError(MediaPipelineError):
    """Raised when request input is missing or out of range."""

    status_code = 400


class NotFoundError(MediaPipelineError):
    """Raised when an asset or its source location cannot be found."""

    status_code = 404


class StorageFetchError(MediaPipelineError):
    """Raised when stored video bytes cannot be read."""

    pass


class EmptyAssetError(MediaPipelineError):
    """Raised when a fetched asset has no bytes."""

    pass


class TranscodeError(MediaPipelineError):
    """Raised when the media tool fails.

    ``diagnostics`` holds the tool's stderr output, if any.
    """

    def __init__(self, message: str, diagnostics: str = ""):
        super().__init__(message)
        self.diagnostics = diagnostics


class UnsupportedFormatError(MediaPipelineError):
    """Raised when asked to produce a format the transcoder cannot write."""

    pass
