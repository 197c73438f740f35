"""
Error taxonomy for the detection pipeline.

Only ConfigurationError is allowed to reach the caller. Content and
inference errors are raised by collaborators and recovered inside Stage 3.
"""


class DetectionError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(DetectionError, ValueError):
    """Invalid policy or pipeline configuration. Fatal at construction."""


class ContentError(DetectionError):
    """Attachment content could not be turned into text."""


class DownloadError(ContentError):
    """The content loader failed to fetch attachment bytes."""


class ExtractionError(ContentError):
    """Attachment bytes could not be converted to text."""


class InferenceError(DetectionError):
    """The inference provider failed (timeout, rate limit, HTTP error)."""


class MalformedResponseError(InferenceError):
    """The model answered, but not with a usable verdict."""

    def __init__(self, message: str, raw_response: str = ""):
        super().__init__(message)
        self.raw_response = raw_response
