"""
Clip archive logic.

Contains the submission pipeline, the archive assembler, clip naming and
the domain models they share.
"""

from .assembler import ArchiveAssembler, AssemblerConfig
from .errors import (
    AbortedError,
    ArchiveError,
    FolderInitError,
    LinkError,
    ListError,
    TranscodeError,
    UploadError,
    ValidationError,
)
from .models import (
    ArchiveEntry,
    ArchiveListing,
    AudioFormat,
    CommittedFile,
    FolderStatus,
    RemoteEntry,
    Submission,
    SubmissionState,
)
from .pipeline import PipelineConfig, RemoteStore, SubmissionPipeline, Transcoder

__all__ = [
    "ArchiveAssembler",
    "AssemblerConfig",
    "AbortedError",
    "ArchiveError",
    "FolderInitError",
    "LinkError",
    "ListError",
    "TranscodeError",
    "UploadError",
    "ValidationError",
    "ArchiveEntry",
    "ArchiveListing",
    "AudioFormat",
    "CommittedFile",
    "FolderStatus",
    "RemoteEntry",
    "Submission",
    "SubmissionState",
    "PipelineConfig",
    "RemoteStore",
    "SubmissionPipeline",
    "Transcoder",
]
