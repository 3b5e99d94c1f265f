"""
FastAPI dependency injection.

Dependencies provide the pipeline, the assembler and the adapters they
sit on to route handlers. Each adapter gets an explicit config object
built here from Settings; nothing below the API layer reads settings.

Each dependency is a function that FastAPI calls when needed, so tests
can swap any of them through app.dependency_overrides.
"""

import logging
from typing import Annotated, AsyncGenerator

from fastapi import Depends

from ..config.settings import Settings, get_settings
from ..core.archive.assembler import ArchiveAssembler, AssemblerConfig
from ..core.archive.models import format_by_name
from ..core.archive.naming import create_naming_strategy
from ..core.archive.pipeline import PipelineConfig, RemoteStore, SubmissionPipeline, Transcoder
from ..infrastructure.audio.transcoder import create_transcoder
from ..infrastructure.storage.client import StorageConfig, create_remote_store
from ..infrastructure.storage.dropbox import DropboxConfig

logger = logging.getLogger(__name__)

# Global instances shared across requests
_mock_remote_store = None
_transcoder = None


# ---------------------------------------------------------------------------
# Adapter Dependencies
# ---------------------------------------------------------------------------

def build_dropbox_config(settings: Settings) -> DropboxConfig:
    return DropboxConfig(
        access_token=settings.dropbox_access_token,
        api_url=settings.dropbox_api_url,
        content_url=settings.dropbox_content_url,
        link_mode=settings.dropbox_link_mode,
        timeout_seconds=settings.remote_timeout_seconds,
    )


def build_storage_config(settings: Settings) -> StorageConfig:
    return StorageConfig(
        access_key_id=settings.r2_access_key_id,
        secret_access_key=settings.r2_secret_access_key,
        bucket_name=settings.r2_bucket_name,
        endpoint_url=settings.r2_endpoint,
        link_expiry_seconds=settings.r2_link_expiry_seconds,
    )


async def get_remote_store(
    settings: Annotated[Settings, Depends(get_settings)],
) -> AsyncGenerator[RemoteStore, None]:
    """
    Provide the remote store for this request.

    This is a generator so the store's HTTP client is closed after the
    request. In mock mode, we reuse the same in-memory store across
    requests so that uploaded clips persist during the session.
    """
    global _mock_remote_store

    if settings.storage_backend == "mock":
        if _mock_remote_store is None:
            _mock_remote_store = create_remote_store("mock")
            logger.info("Created shared mock remote store for session")
        yield _mock_remote_store
        return

    if settings.storage_backend == "dropbox":
        store = create_remote_store("dropbox", dropbox_config=build_dropbox_config(settings))
    else:
        store = create_remote_store("r2", storage_config=build_storage_config(settings))

    try:
        yield store
    finally:
        await store.close()


def get_transcoder(
    settings: Annotated[Settings, Depends(get_settings)],
) -> Transcoder:
    """
    Provide the transcoder.

    Created once per process; the FFmpeg binary check only runs the
    first time.
    """
    global _transcoder

    if _transcoder is None:
        _transcoder = create_transcoder(
            mock_mode=settings.transcoder_mock_mode,
            ffmpeg_path=settings.ffmpeg_path,
            timeout_seconds=settings.transcode_timeout_seconds,
        )
    return _transcoder


# ---------------------------------------------------------------------------
# Service Dependencies
# ---------------------------------------------------------------------------

def get_submission_pipeline(
    settings: Annotated[Settings, Depends(get_settings)],
    store: Annotated[RemoteStore, Depends(get_remote_store)],
    transcoder: Annotated[Transcoder, Depends(get_transcoder)],
) -> SubmissionPipeline:
    """Provide a SubmissionPipeline wired to this request's store."""
    target = format_by_name(settings.target_format)

    config = PipelineConfig(
        archive_folder=settings.archive_folder,
        target_format=target,
        upload_dir=settings.upload_dir,
        max_upload_bytes=settings.max_upload_bytes,
        remote_timeout_seconds=settings.remote_timeout_seconds,
        transcode_timeout_seconds=settings.transcode_timeout_seconds,
    )

    naming = create_naming_strategy(
        settings.naming_strategy,
        target,
        prefix=settings.clip_name_prefix,
        width=settings.ordinal_width,
        fixed_name=settings.fixed_clip_name,
    )

    return SubmissionPipeline(store=store, transcoder=transcoder, config=config, naming=naming)


def get_archive_assembler(
    settings: Annotated[Settings, Depends(get_settings)],
    store: Annotated[RemoteStore, Depends(get_remote_store)],
) -> ArchiveAssembler:
    """Provide an ArchiveAssembler wired to this request's store."""
    config = AssemblerConfig(
        archive_folder=settings.archive_folder,
        display_prefix=settings.display_prefix,
        link_concurrency=settings.link_concurrency,
        remote_timeout_seconds=settings.remote_timeout_seconds,
    )
    return ArchiveAssembler(store=store, config=config)


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

# These type aliases make route signatures cleaner
SettingsDep = Annotated[Settings, Depends(get_settings)]
RemoteStoreDep = Annotated[RemoteStore, Depends(get_remote_store)]
TranscoderDep = Annotated[Transcoder, Depends(get_transcoder)]
SubmissionPipelineDep = Annotated[SubmissionPipeline, Depends(get_submission_pipeline)]
ArchiveAssemblerDep = Annotated[ArchiveAssembler, Depends(get_archive_assembler)]
