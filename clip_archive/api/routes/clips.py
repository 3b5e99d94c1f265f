"""
Clip submission and archive endpoints.

POST /upload   accepts one audio file in the multipart field "audio"
GET  /archive  lists stored clips with playback links

Both handlers are thin: they hand the request to the SubmissionPipeline
or ArchiveAssembler and let ArchiveError propagate to the exception
handler registered in main.py, which renders {message, error}.
"""

import logging
from typing import Annotated, Any, Optional

from fastapi import APIRouter, File, Request, UploadFile, status
from pydantic import BaseModel, ConfigDict, Field

from ...core.archive.errors import ValidationError
from ..dependencies import ArchiveAssemblerDep, SubmissionPipelineDep

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class UploadResponse(BaseModel):
    """Response after a clip is committed to the archive."""
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(description="Status message")
    stored_metadata: dict[str, Any] = Field(
        alias="storedMetadata",
        description="The remote store's metadata for the committed clip",
    )


class ArchiveEntryResponse(BaseModel):
    """One archived clip."""
    name: str = Field(description="Display name")
    link: str = Field(description="Playback URL, possibly short-lived")
    ordinal: int = Field(description="Sequence number from the stored name, 0 if none")
    path: str = Field(description="Remote path of the stored clip")


class ArchiveResponse(BaseModel):
    """Archive listing ordered by ordinal."""
    entries: list[ArchiveEntryResponse]
    skipped: int = Field(
        default=0,
        description="Clips left out because their link could not be resolved",
    )


class ErrorResponse(BaseModel):
    """Body of every failed request."""
    message: str
    error: Any = None


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/upload",
    response_model=UploadResponse,
    status_code=status.HTTP_200_OK,
    summary="Submit an audio clip",
    responses={
        400: {"model": ErrorResponse, "description": "Not an audio file"},
        500: {"model": ErrorResponse, "description": "Transcoding or storage failure"},
    },
)
async def upload_clip(
    request: Request,
    pipeline: SubmissionPipelineDep,
    audio: Annotated[Optional[UploadFile], File(description="Audio clip (any browser recording format)")] = None,
) -> UploadResponse:
    """
    Archive one audio clip.

    The clip is transcoded to the archival format if needed, named
    after the highest existing ordinal and committed without
    overwriting anything already in the archive.
    """
    if audio is None:
        raise ValidationError("No audio file provided in field 'audio'")

    try:
        committed = await pipeline.submit(
            audio.file,
            original_name=audio.filename or "",
            declared_mime_type=audio.content_type or "",
            is_aborted=request.is_disconnected,
        )
    finally:
        await audio.close()

    return UploadResponse(
        message="File uploaded successfully!",
        stored_metadata=committed.metadata,
    )


@router.get(
    "/archive",
    response_model=ArchiveResponse,
    status_code=status.HTTP_200_OK,
    summary="List archived clips",
    responses={500: {"model": ErrorResponse, "description": "Listing failed"}},
)
async def list_archive(assembler: ArchiveAssemblerDep) -> ArchiveResponse:
    """
    List every archived clip with a fresh playback link.

    Clips whose link cannot be resolved are left out and counted in
    `skipped`; only a failure to list the folder fails the request.
    """
    listing = await assembler.list_archive()

    return ArchiveResponse(
        entries=[
            ArchiveEntryResponse(
                name=entry.display_name,
                link=entry.link,
                ordinal=entry.ordinal,
                path=entry.path,
            )
            for entry in listing.entries
        ],
        skipped=len(listing.skipped),
    )
