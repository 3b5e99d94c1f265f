"""
Archive assembly for listing requests.

Lists the archive folder, resolves a playback link for every entry
concurrently, and returns the entries ordered by ordinal. A failed link
resolution drops that one entry; only a failed listing fails the call.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from .errors import LinkError, ListError
from .models import ArchiveEntry, ArchiveListing, RemoteEntry
from .naming import display_name, extract_ordinal
from .pipeline import RemoteStore, call_with_timeout

logger = logging.getLogger(__name__)


@dataclass
class AssemblerConfig:
    archive_folder: str = "/audio"
    display_prefix: str = ""
    link_concurrency: int = 8
    remote_timeout_seconds: Optional[float] = 30.0

    def __post_init__(self) -> None:
        if self.link_concurrency < 1:
            raise ValueError("link_concurrency must be positive")


class ArchiveAssembler:
    """Builds the archive view from a fresh listing on every call."""

    def __init__(self, store: RemoteStore, config: Optional[AssemblerConfig] = None) -> None:
        self._store = store
        self._config = config or AssemblerConfig()

    async def list_archive(self) -> ArchiveListing:
        """
        List stored clips with resolved links.

        Raises:
            ListError: if the folder listing itself fails
        """
        config = self._config

        remote_entries = await call_with_timeout(
            self._store.list_folder(config.archive_folder),
            config.remote_timeout_seconds,
            ListError,
            "list folder",
        )

        semaphore = asyncio.Semaphore(config.link_concurrency)

        async def resolve(entry: RemoteEntry) -> Optional[ArchiveEntry]:
            async with semaphore:
                try:
                    link = await call_with_timeout(
                        self._store.resolve_link(entry.path),
                        config.remote_timeout_seconds,
                        LinkError,
                        "resolve link",
                    )
                except LinkError as e:
                    logger.warning(
                        "Skipping archive entry without a link",
                        extra={
                            "remote_path": entry.path,
                            "error": e.detail,
                            "payload": e.payload,
                        }
                    )
                    return None

            ordinal = extract_ordinal(entry.name)
            return ArchiveEntry(
                stored_name=entry.name,
                path=entry.path,
                ordinal=ordinal if ordinal is not None else 0,
                link=link,
                display_name=display_name(entry.name, config.display_prefix),
            )

        resolved = await asyncio.gather(*(resolve(entry) for entry in remote_entries))

        entries = [entry for entry in resolved if entry is not None]
        entries.sort(key=lambda e: (e.ordinal, e.stored_name.lower()))
        skipped = [
            remote.path
            for remote, entry in zip(remote_entries, resolved)
            if entry is None
        ]

        logger.info(
            "Archive assembled",
            extra={"count": len(entries), "skipped": len(skipped)}
        )

        return ArchiveListing(entries=entries, skipped=skipped)
