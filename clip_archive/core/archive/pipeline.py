"""
Submission pipeline.

Takes one inbound audio file through validation, optional transcoding,
folder initialization, naming and commit:

    RECEIVED -> (TRANSCODING) -> FOLDER_ENSURING -> NAMING
             -> COMMITTING -> CLEANING_UP -> DONE

Any stage can fail into FAILED. Stages run strictly in sequence, and
CLEANING_UP runs on every exit path, including cancellation.

This module is framework-agnostic. It talks to the outside world only
through the RemoteStore and Transcoder protocols below.
"""

import asyncio
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, BinaryIO, Callable, Iterator, Optional, Protocol, TypeVar

from .artifacts import TempArtifacts
from .errors import (
    AbortedError,
    ArchiveError,
    FolderInitError,
    ListError,
    TranscodeError,
    UploadError,
    ValidationError,
)
from .models import (
    MP3,
    AudioFormat,
    CommittedFile,
    FolderStatus,
    RemoteEntry,
    Submission,
    SubmissionState,
    detect_format,
)
from .naming import NamingStrategy, SequentialNaming

logger = logging.getLogger(__name__)

T = TypeVar("T")

CHUNK_SIZE = 1024 * 1024


# ---------------------------------------------------------------------------
# Protocols (interfaces)
# ---------------------------------------------------------------------------

class RemoteStore(Protocol):
    """
    The remote object store, as the core sees it.

    Implementations raise FolderInitError, UploadError, ListError and
    LinkError; they never leak provider-specific exceptions.
    """

    async def ensure_folder(self, path: str) -> FolderStatus:
        """Create the folder, treating "already exists" as success."""
        ...

    async def commit(self, path: str, data: bytes) -> CommittedFile:
        """Upload without overwriting; the store renames on conflict."""
        ...

    async def list_folder(self, folder: str) -> list[RemoteEntry]:
        """List files in a folder. A missing folder lists as empty."""
        ...

    async def resolve_link(self, path: str) -> str:
        """Return a playback URL for a stored file."""
        ...

    async def close(self) -> None:
        ...


class Transcoder(Protocol):
    """Converts audio between encodings."""

    async def transcode(
        self,
        source_path: Path,
        output_path: Path,
        target: AudioFormat,
    ) -> bytes:
        """Write `target`-encoded audio to output_path and return its bytes."""
        ...


AbortCheck = Callable[[], Awaitable[bool]]


async def call_with_timeout(
    awaitable: Awaitable[T],
    timeout: Optional[float],
    error_cls: type[ArchiveError],
    operation: str,
) -> T:
    """Await an external call, mapping a timeout to the stage's error kind."""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        raise error_cls(f"{operation} timed out after {timeout}s")


def remote_join(folder: str, name: str) -> str:
    return f"{folder.rstrip('/')}/{name}"


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

@dataclass
class PipelineConfig:
    """Settings the pipeline needs, passed in at construction."""
    archive_folder: str = "/audio"
    target_format: AudioFormat = MP3
    upload_dir: Optional[Path] = None
    max_upload_bytes: Optional[int] = None
    remote_timeout_seconds: Optional[float] = 30.0
    transcode_timeout_seconds: Optional[float] = 120.0

    def __post_init__(self) -> None:
        if not self.archive_folder.startswith("/"):
            raise ValueError("archive_folder must be an absolute path")


class SubmissionPipeline:
    """
    Processes one submission at a time per call; holds no per-request state.

    Instances can be shared across requests. Everything specific to a
    submission lives in the Submission object and its TempArtifacts scope.
    """

    def __init__(
        self,
        store: RemoteStore,
        transcoder: Transcoder,
        config: Optional[PipelineConfig] = None,
        naming: Optional[NamingStrategy] = None,
    ) -> None:
        self._store = store
        self._transcoder = transcoder
        self._config = config or PipelineConfig()
        self._naming = naming or SequentialNaming(self._config.target_format)

    async def submit(
        self,
        source: BinaryIO,
        original_name: str,
        declared_mime_type: str,
        is_aborted: Optional[AbortCheck] = None,
        submission: Optional[Submission] = None,
    ) -> CommittedFile:
        """
        Archive one uploaded file.

        Args:
            source: Readable binary stream with the uploaded bytes
            original_name: Client-supplied filename (used only for format detection)
            declared_mime_type: Client-supplied content type
            is_aborted: Optional async check for client disconnect, polled between stages
            submission: Optional pre-built Submission, so callers can inspect its final state

        Returns:
            The store's canonical metadata for the committed clip

        Raises:
            ArchiveError subclass for any failed stage
        """
        if submission is None:
            submission = Submission(
                original_name=original_name,
                declared_mime_type=declared_mime_type,
            )

        logger.info(
            "Submission received",
            extra={
                "submission_id": str(submission.id),
                "original_name": original_name,
                "content_type": declared_mime_type,
            }
        )

        try:
            with self._scoped_artifacts(submission) as artifacts:
                committed = await self._process(submission, source, artifacts, is_aborted)
        except asyncio.CancelledError:
            submission.fail(AbortedError("Request cancelled before completion"))
            logger.warning(
                "Submission cancelled",
                extra={"submission_id": str(submission.id)}
            )
            raise
        except ArchiveError as e:
            submission.fail(e)
            logger.error(
                "Submission failed",
                extra={
                    "submission_id": str(submission.id),
                    "kind": e.kind,
                    "error": e.detail,
                    "payload": e.payload,
                }
            )
            raise
        except Exception as e:
            submission.fail(e)
            logger.exception(
                "Submission failed unexpectedly",
                extra={"submission_id": str(submission.id)}
            )
            raise

        submission.advance(SubmissionState.DONE)
        logger.info(
            "Submission archived",
            extra={
                "submission_id": str(submission.id),
                "remote_path": committed.path,
                "size_bytes": committed.size,
            }
        )
        return committed

    @contextmanager
    def _scoped_artifacts(self, submission: Submission) -> Iterator[TempArtifacts]:
        artifacts = TempArtifacts(self._config.upload_dir)
        try:
            yield artifacts
        finally:
            self._advance(submission, SubmissionState.CLEANING_UP)
            removed = artifacts.release()
            logger.debug(
                "Temporary artifacts released",
                extra={"submission_id": str(submission.id), "count": removed}
            )

    async def _process(
        self,
        submission: Submission,
        source: BinaryIO,
        artifacts: TempArtifacts,
        is_aborted: Optional[AbortCheck],
    ) -> CommittedFile:
        config = self._config

        # RECEIVED
        self._validate(submission)
        submission.encoding = detect_format(
            submission.declared_mime_type, submission.original_name
        )
        suffix = submission.encoding.extension if submission.encoding else ""
        submission.local_path = artifacts.create(suffix)
        size = await asyncio.to_thread(
            _spool, source, submission.local_path, config.max_upload_bytes
        )
        if size == 0:
            raise ValidationError("Uploaded file is empty")
        await self._check_aborted(is_aborted)

        # TRANSCODING
        if submission.encoding != config.target_format:
            self._advance(submission, SubmissionState.TRANSCODING)
            output_path = artifacts.create(config.target_format.extension)
            data = await call_with_timeout(
                self._transcoder.transcode(
                    submission.local_path, output_path, config.target_format
                ),
                config.transcode_timeout_seconds,
                TranscodeError,
                "transcode",
            )
            submission.encoding = config.target_format
        else:
            data = await asyncio.to_thread(submission.local_path.read_bytes)
        await self._check_aborted(is_aborted)

        # FOLDER_ENSURING
        self._advance(submission, SubmissionState.FOLDER_ENSURING)
        status = await call_with_timeout(
            self._store.ensure_folder(config.archive_folder),
            config.remote_timeout_seconds,
            FolderInitError,
            "create folder",
        )
        logger.debug(
            "Archive folder ready",
            extra={"folder": config.archive_folder, "status": status.value}
        )
        await self._check_aborted(is_aborted)

        # NAMING
        self._advance(submission, SubmissionState.NAMING)
        entries: list[RemoteEntry] = []
        if self._naming.requires_listing:
            entries = await call_with_timeout(
                self._store.list_folder(config.archive_folder),
                config.remote_timeout_seconds,
                ListError,
                "list folder",
            )
        name = self._naming.next_name(entries)
        submission.remote_path = remote_join(config.archive_folder, name)
        await self._check_aborted(is_aborted)

        # COMMITTING
        self._advance(submission, SubmissionState.COMMITTING)
        return await call_with_timeout(
            self._store.commit(submission.remote_path, data),
            config.remote_timeout_seconds,
            UploadError,
            "upload",
        )

    def _validate(self, submission: Submission) -> None:
        mime = (submission.declared_mime_type or "").strip().lower()
        if not mime.startswith("audio/"):
            raise ValidationError(
                f"Invalid file type '{submission.declared_mime_type}'. Only audio files are allowed."
            )

    def _advance(self, submission: Submission, state: SubmissionState) -> None:
        submission.advance(state)
        logger.debug(
            "Submission stage",
            extra={"submission_id": str(submission.id), "state": state.value}
        )

    async def _check_aborted(self, is_aborted: Optional[AbortCheck]) -> None:
        if is_aborted is not None and await is_aborted():
            raise AbortedError("Client disconnected before the submission finished")


def _spool(source: BinaryIO, destination: Path, limit: Optional[int]) -> int:
    """Copy the upload stream to disk, enforcing the size limit."""
    written = 0
    with open(destination, "wb") as out:
        while True:
            chunk = source.read(CHUNK_SIZE)
            if not chunk:
                break
            written += len(chunk)
            if limit is not None and written > limit:
                raise ValidationError(
                    f"File too large. Maximum size: {limit // (1024 * 1024)}MB"
                )
            out.write(chunk)
    return written
