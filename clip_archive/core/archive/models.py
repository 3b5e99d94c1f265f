"""
Domain models for the clip archive.

These models represent the core concepts: an inbound submission, the
audio encodings we recognise, what the remote store reports back, and
the entries we hand to listing callers. They have no dependencies on
HTTP frameworks or storage SDKs.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any, Optional
from uuid import UUID, uuid4


class SubmissionState(Enum):
    """Where a submission is in the pipeline."""
    RECEIVED = "received"
    TRANSCODING = "transcoding"
    FOLDER_ENSURING = "folder_ensuring"
    NAMING = "naming"
    COMMITTING = "committing"
    CLEANING_UP = "cleaning_up"
    DONE = "done"
    FAILED = "failed"


class FolderStatus(Enum):
    """Outcome of an idempotent folder initialization."""
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"


@dataclass(frozen=True)
class AudioFormat:
    """
    An audio encoding we know how to name and detect.

    Frozen because formats are values: two formats with the same name
    are the same format.
    """
    name: str
    extension: str
    mime_type: str
    aliases: tuple[str, ...] = ()

    @property
    def mime_types(self) -> tuple[str, ...]:
        return (self.mime_type,) + self.aliases


MP3 = AudioFormat("mp3", ".mp3", "audio/mpeg", aliases=("audio/mp3", "audio/mpeg3"))
WAV = AudioFormat("wav", ".wav", "audio/wav", aliases=("audio/x-wav", "audio/wave", "audio/vnd.wave"))
OGG = AudioFormat("ogg", ".ogg", "audio/ogg", aliases=("audio/opus",))
WEBM = AudioFormat("webm", ".webm", "audio/webm")
M4A = AudioFormat("m4a", ".m4a", "audio/mp4", aliases=("audio/x-m4a", "audio/aac", "audio/m4a"))
FLAC = AudioFormat("flac", ".flac", "audio/flac", aliases=("audio/x-flac",))

KNOWN_FORMATS: tuple[AudioFormat, ...] = (MP3, WAV, OGG, WEBM, M4A, FLAC)


def format_by_name(name: str) -> AudioFormat:
    """Look up a known format by its short name (e.g. "mp3")."""
    wanted = name.strip().lower().lstrip(".")
    for audio_format in KNOWN_FORMATS:
        if audio_format.name == wanted:
            return audio_format
    raise ValueError(f"Unknown audio format: {name}")


def detect_format(mime_type: Optional[str], filename: Optional[str]) -> Optional[AudioFormat]:
    """
    Detect the source encoding of an upload.

    The declared mime type wins; the file extension is the fallback.
    Returns None when neither is recognised, which means the pipeline
    will transcode regardless.
    """
    if mime_type:
        base = mime_type.split(";", 1)[0].strip().lower()
        for audio_format in KNOWN_FORMATS:
            if base in audio_format.mime_types:
                return audio_format

    if filename:
        suffix = PurePosixPath(filename).suffix.lower()
        for audio_format in KNOWN_FORMATS:
            if suffix == audio_format.extension:
                return audio_format

    return None


@dataclass(frozen=True)
class RemoteEntry:
    """A file as reported by a remote folder listing."""
    name: str
    path: str


@dataclass(frozen=True)
class CommittedFile:
    """
    What the remote store reports after a successful commit.

    `path` is the canonical path the store actually used, which differs
    from the requested one when the store auto-renamed the upload.
    `metadata` is the store's own commit metadata, passed through to
    the caller untouched.
    """
    name: str
    path: str
    size: int
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class Submission:
    """
    One inbound audio file while it is being processed.

    The original name and declared mime type come from the client and
    are never used to address remote storage.
    """
    original_name: str
    declared_mime_type: str
    id: UUID = field(default_factory=uuid4)
    local_path: Optional[Path] = None
    encoding: Optional[AudioFormat] = None
    remote_path: Optional[str] = None
    state: SubmissionState = SubmissionState.RECEIVED
    error: Optional[Exception] = None
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def advance(self, state: SubmissionState) -> None:
        self.state = state

    def fail(self, error: Exception) -> None:
        self.error = error
        self.state = SubmissionState.FAILED

    @property
    def is_terminal(self) -> bool:
        return self.state in (SubmissionState.DONE, SubmissionState.FAILED)


@dataclass(frozen=True)
class ArchiveEntry:
    """
    One stored clip as surfaced to a listing caller.

    Built fresh for every archive request. `link` may be short-lived,
    and `display_name` is presentation only.
    """
    stored_name: str
    path: str
    ordinal: int
    link: str
    display_name: str


@dataclass(frozen=True)
class ArchiveListing:
    """Sorted archive entries plus the paths whose links could not be resolved."""
    entries: list[ArchiveEntry] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
