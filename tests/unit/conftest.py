"""
Shared fixtures for the clip archive tests.

Everything here is in-process: an in-memory remote store that records
its calls, a pass-through transcoder, and small audio payloads.
"""

import asyncio
import io
import wave
from pathlib import Path
from typing import Optional

import pytest

from clip_archive.core.archive.errors import LinkError, TranscodeError
from clip_archive.core.archive.models import AudioFormat, CommittedFile, FolderStatus, RemoteEntry
from clip_archive.core.archive.pipeline import PipelineConfig, SubmissionPipeline
from clip_archive.infrastructure.audio.transcoder import MockTranscoder
from clip_archive.infrastructure.storage.client import MockRemoteStore


class RecordingStore(MockRemoteStore):
    """
    In-memory store that records every call and fails on request.

    fail_on maps an operation name to the error it should raise;
    fail_links holds (lowercased) paths whose link resolution fails.
    """

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[str] = []
        self.fail_on: dict[str, Exception] = {}
        self.fail_links: set[str] = set()

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.fail_on:
            raise self.fail_on[operation]

    async def ensure_folder(self, path: str) -> FolderStatus:
        self._record("ensure_folder")
        return await super().ensure_folder(path)

    async def commit(self, path: str, data: bytes) -> CommittedFile:
        self._record("commit")
        return await super().commit(path, data)

    async def list_folder(self, folder: str) -> list[RemoteEntry]:
        self._record("list_folder")
        return await super().list_folder(folder)

    async def resolve_link(self, path: str) -> str:
        self._record("resolve_link")
        if path.lower() in self.fail_links:
            raise LinkError(f"link refused for {path}", payload={"error_summary": "not_found/"})
        return await super().resolve_link(path)


class FailingTranscoder:
    """Transcoder that writes a partial output and then fails."""

    def __init__(self) -> None:
        self.outputs: list[Path] = []

    async def transcode(self, source_path: Path, output_path: Path, target: AudioFormat) -> bytes:
        self.outputs.append(output_path)
        output_path.write_bytes(b"partial")
        raise TranscodeError("Invalid data found when processing input", payload="ffmpeg exit 1")


def make_wav(size: int = 10 * 1024) -> bytes:
    """A silent mono 16-bit WAV of roughly `size` bytes."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(8000)
        wav.writeframes(b"\x00\x00" * (size // 2))
    return buffer.getvalue()


def make_mp3(size: int = 4 * 1024) -> bytes:
    """Bytes that look like an ID3-tagged mp3 stream."""
    header = b"ID3\x03\x00\x00\x00\x00\x00\x00"
    frame = b"\xff\xfb\x90\x64" + b"\x00" * 413
    body = frame * (size // len(frame) + 1)
    return header + body[: size - len(header)]


def seed(store: MockRemoteStore, folder: str, names: list[str]) -> None:
    """Put files with the given names straight into a mock store."""
    async def commit_all() -> None:
        await MockRemoteStore.ensure_folder(store, folder)
        for name in names:
            await MockRemoteStore.commit(store, f"{folder}/{name}", b"seed")

    asyncio.run(commit_all())


def leftovers(directory: Path) -> list[Path]:
    if not directory.exists():
        return []
    return sorted(directory.iterdir())


@pytest.fixture
def upload_dir(tmp_path: Path) -> Path:
    return tmp_path / "uploads"


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def transcoder() -> MockTranscoder:
    return MockTranscoder()


@pytest.fixture
def pipeline_config(upload_dir: Path) -> PipelineConfig:
    return PipelineConfig(
        archive_folder="/audio",
        upload_dir=upload_dir,
        max_upload_bytes=1024 * 1024,
        remote_timeout_seconds=2.0,
        transcode_timeout_seconds=2.0,
    )


@pytest.fixture
def pipeline(
    store: RecordingStore,
    transcoder: MockTranscoder,
    pipeline_config: PipelineConfig,
) -> SubmissionPipeline:
    return SubmissionPipeline(store=store, transcoder=transcoder, config=pipeline_config)


def submit(
    pipeline: SubmissionPipeline,
    data: bytes,
    filename: str,
    mime: str,
    submission=None,
    is_aborted: Optional[object] = None,
) -> CommittedFile:
    """Run one submission to completion from synchronous test code."""
    return asyncio.run(
        pipeline.submit(
            io.BytesIO(data),
            original_name=filename,
            declared_mime_type=mime,
            is_aborted=is_aborted,
            submission=submission,
        )
    )
