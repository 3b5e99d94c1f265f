"""
Audio transcoding infrastructure.

Normalizes uploaded clips to the archival format using FFmpeg.
"""

from .transcoder import (
    FFmpegTranscoder,
    MockTranscoder,
    create_transcoder,
)

__all__ = [
    "FFmpegTranscoder",
    "MockTranscoder",
    "create_transcoder",
]
