"""
Audio transcoding using FFmpeg.

Submissions arrive in whatever encoding the browser recorded (webm,
ogg, wav, m4a...). Before archiving we normalize them to a single
target format so every stored clip plays the same way.

All operations work on file paths because FFmpeg works best with
them. The caller allocates the output path and owns the file written
there; this module never deletes anything.
"""

import asyncio
import logging
import shutil
import subprocess
from pathlib import Path
from typing import Optional

from ...core.archive.errors import TranscodeError
from ...core.archive.models import AudioFormat
from ...core.archive.pipeline import Transcoder

logger = logging.getLogger(__name__)


# ffmpeg audio encoder per target format name
AUDIO_CODECS = {
    "mp3": "libmp3lame",
    "wav": "pcm_s16le",
    "ogg": "libvorbis",
    "webm": "libopus",
    "m4a": "aac",
    "flac": "flac",
}


class FFmpegTranscoder:
    """
    Transcoder backed by the ffmpeg binary.

    The binary runs as an asyncio subprocess. However transcode() exits,
    ffmpeg has been reaped by then, so nothing writes to output_path
    once the caller cleans up.
    """

    def __init__(self, ffmpeg_path: str = "ffmpeg", timeout_seconds: float = 120.0):
        """
        Initialize transcoder with the FFmpeg path.

        Args:
            ffmpeg_path: Path to ffmpeg binary (default assumes it's in PATH)
            timeout_seconds: Hard limit for a single conversion
        """
        self._ffmpeg = ffmpeg_path
        self._timeout = timeout_seconds

        # verify ffmpeg is available
        try:
            result = subprocess.run(
                [self._ffmpeg, "-version"],
                capture_output=True,
                text=True,
                timeout=5
            )
            if result.returncode != 0:
                raise RuntimeError("FFmpeg not working properly")
            logger.info("FFmpeg transcoder initialized")
        except FileNotFoundError:
            raise RuntimeError(
                "FFmpeg not found. Install with: apt-get install ffmpeg"
            )

    def build_command(self, source_path: Path, output_path: Path, target: AudioFormat) -> list[str]:
        codec = AUDIO_CODECS.get(target.name)
        if codec is None:
            raise TranscodeError(f"No encoder configured for {target.name}")

        # -vn drops any cover-art or video stream
        # -y because the caller pre-creates the output file
        return [
            self._ffmpeg,
            "-hide_banner",
            "-loglevel", "error",
            "-i", str(source_path),
            "-vn",
            "-c:a", codec,
            "-y",
            str(output_path),
        ]

    async def transcode(
        self,
        source_path: Path,
        output_path: Path,
        target: AudioFormat,
    ) -> bytes:
        """
        Convert source_path into `target` at output_path.

        Raises TranscodeError on a non-zero exit, an empty output or a
        timeout. There is no fallback to the untranscoded input.
        """
        cmd = self.build_command(source_path, output_path, target)
        input_stat = await asyncio.to_thread(source_path.stat)

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TranscodeError(f"FFmpeg could not be started: {e}")

        try:
            _, stderr_bytes = await asyncio.wait_for(process.communicate(), timeout=self._timeout)
        except asyncio.TimeoutError:
            raise TranscodeError(f"FFmpeg timed out after {self._timeout}s")
        finally:
            # also reached on cancellation
            if process.returncode is None:
                await self._kill(process)

        if process.returncode != 0:
            stderr = stderr_bytes.decode(errors="replace").strip()
            logger.error(
                "Transcoding failed",
                extra={"target": target.name, "returncode": process.returncode, "stderr": stderr[:500]}
            )
            raise TranscodeError("FFmpeg conversion failed", payload=stderr[:2000])

        data = await asyncio.to_thread(output_path.read_bytes)
        if not data:
            raise TranscodeError("FFmpeg produced no output")

        logger.info(
            "Transcoding completed",
            extra={
                "target": target.name,
                "input_bytes": input_stat.st_size,
                "output_bytes": len(data),
            }
        )

        return data

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()
        logger.warning("FFmpeg killed before finishing", extra={"pid": process.pid})


class MockTranscoder:
    """
    Mock transcoder for local development without FFmpeg.

    Copies the input to the output unchanged, so the rest of the
    pipeline can be exercised end to end.
    """

    def __init__(self):
        self.calls: list[tuple[Path, AudioFormat]] = []
        logger.info("Initialized mock transcoder")

    async def transcode(
        self,
        source_path: Path,
        output_path: Path,
        target: AudioFormat,
    ) -> bytes:
        self.calls.append((source_path, target))
        await asyncio.to_thread(shutil.copyfile, source_path, output_path)
        return await asyncio.to_thread(output_path.read_bytes)


def create_transcoder(
    mock_mode: bool = False,
    ffmpeg_path: str = "ffmpeg",
    timeout_seconds: Optional[float] = 120.0,
) -> Transcoder:
    """
    Factory function for the transcoder.

    Args:
        mock_mode: If True, return mock transcoder (no FFmpeg required)
        ffmpeg_path: Path to the ffmpeg binary
        timeout_seconds: Per-conversion limit for the real transcoder

    Returns:
        Transcoder implementation
    """
    if mock_mode:
        return MockTranscoder()

    return FFmpegTranscoder(
        ffmpeg_path=ffmpeg_path,
        timeout_seconds=timeout_seconds if timeout_seconds is not None else 120.0,
    )
