"""
Error taxonomy for the submission and archive flows.

Every failure a caller can observe is one of these. Adapters translate
their provider's error shapes into the matching subclass and attach the
provider's raw error body as `payload`; nothing upstream of an adapter
inspects that payload.
"""

from typing import Any, Optional


class ArchiveError(Exception):
    """Base class for clip archive failures."""

    kind = "ArchiveError"
    message = "Server error"
    status_code = 500

    def __init__(self, detail: str = "", payload: Optional[Any] = None) -> None:
        super().__init__(detail or self.message)
        self.detail = detail or self.message
        self.payload = payload

    def to_dict(self) -> dict[str, Any]:
        """Serializable form used in error responses."""
        return {
            "kind": self.kind,
            "detail": self.detail,
            "payload": self.payload,
        }


class ValidationError(ArchiveError):
    """The submission was rejected before any I/O."""

    kind = "ValidationError"
    message = "Invalid file type. Only audio files are allowed."
    status_code = 400


class TranscodeError(ArchiveError):
    kind = "TranscodeError"
    message = "Failed to convert audio"


class FolderInitError(ArchiveError):
    kind = "FolderInitError"
    message = "Failed to ensure archive folder exists"


class UploadError(ArchiveError):
    kind = "UploadError"
    message = "Failed to upload clip"


class ListError(ArchiveError):
    kind = "ListError"
    message = "Failed to retrieve archive"


class LinkError(ArchiveError):
    kind = "LinkError"
    message = "Failed to resolve clip link"


class AbortedError(ArchiveError):
    """The client went away before the submission finished."""

    kind = "AbortedError"
    message = "Request aborted"
