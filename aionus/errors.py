"""Exception types shared by the RAG pipeline."""
from typing import Optional


class AionusError(Exception):
    """Base class for errors raised by this package."""


class ConfigurationError(AionusError):
    """A required credential, model id or setting is missing or invalid.

    Raised before any network call is attempted and never retried.
    """


class UpstreamError(AionusError):
    """An embedding or storage provider call failed.

    Covers non-success responses, malformed bodies, timeouts and transport
    errors. ``status_code`` is set when the provider answered at all.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        timed_out: bool = False,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.timed_out = timed_out

    @property
    def transient(self) -> bool:
        """Whether a retry has a reasonable chance of succeeding."""
        if self.timed_out or self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500


class ExtractionError(AionusError):
    """Text could not be extracted from a document, or too little was."""


class UnsupportedTypeError(ExtractionError):
    """No extractor exists for the document's content type."""
