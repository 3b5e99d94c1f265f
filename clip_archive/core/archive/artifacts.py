"""
Scoped temporary files for one submission.

Every on-disk artifact a submission creates (the spooled upload, the
transcoded output) is allocated through a TempArtifacts scope and
deleted when the scope exits, whether it exits by return, by exception
or by task cancellation.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class TempArtifacts:
    """
    Owns the temporary files created while handling one submission.

    Usage:
        with TempArtifacts(upload_dir) as artifacts:
            path = artifacts.create(".wav")
            ...
    """

    def __init__(self, directory: Optional[Path] = None) -> None:
        self._directory = Path(directory) if directory is not None else None
        self._paths: list[Path] = []

    @property
    def paths(self) -> list[Path]:
        return list(self._paths)

    def create(self, suffix: str = "") -> Path:
        """Allocate an empty temporary file owned by this scope."""
        if self._directory is not None:
            self._directory.mkdir(parents=True, exist_ok=True)
        fd, name = tempfile.mkstemp(
            suffix=suffix,
            prefix="clip-",
            dir=str(self._directory) if self._directory is not None else None,
        )
        os.close(fd)
        path = Path(name)
        self._paths.append(path)
        return path

    def release(self) -> int:
        """
        Delete every artifact still on disk.

        Failures are logged and skipped so that one stuck file never
        masks the submission's own result. Returns the number removed.
        """
        removed = 0
        while self._paths:
            path = self._paths.pop()
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning(
                    "Failed to delete temporary artifact",
                    extra={"path": str(path), "error": str(e)},
                )
        return removed

    def __enter__(self) -> "TempArtifacts":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
