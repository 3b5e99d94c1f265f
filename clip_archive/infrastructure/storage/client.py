"""
Object storage clients for archived clips.

Three backends implement the core RemoteStore protocol:
- DropboxRemoteStore (see dropbox.py): the Dropbox HTTP API
- R2RemoteStore: Cloudflare R2 or any S3-compatible bucket, via boto3
- MockRemoteStore: in-memory, for local development and tests

S3 has neither folders nor autorename, so R2RemoteStore emulates both:
a folder is a zero-byte "<folder>/" marker object, and a commit tries
"name (1).ext", "name (2).ext"... until it finds a free key. The write
itself is conditional (If-None-Match: *), so two uploads racing for the
same key never overwrite each other: the loser moves on to the next
candidate.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Iterator, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ...core.archive.errors import (
    FolderInitError,
    LinkError,
    ListError,
    UploadError,
)
from ...core.archive.models import CommittedFile, FolderStatus, RemoteEntry, detect_format
from ...core.archive.pipeline import RemoteStore
from .dropbox import DropboxConfig, DropboxRemoteStore

logger = logging.getLogger(__name__)

MAX_RENAME_ATTEMPTS = 100

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}

# a conditional put lost to an existing key, or to a concurrent conditional put
CONFLICT_CODES = {"412", "PreconditionFailed", "409", "ConditionalRequestConflict"}


def autorename_candidates(path: str, limit: int = MAX_RENAME_ATTEMPTS) -> Iterator[str]:
    """
    Yield the requested path, then Dropbox-style renamed alternatives.

    "/audio/Clip #0001.mp3" -> "/audio/Clip #0001 (1).mp3" -> ...
    """
    yield path
    posix = PurePosixPath(path)
    for n in range(1, limit + 1):
        yield str(posix.with_name(f"{posix.stem} ({n}){posix.suffix}"))


@dataclass
class StorageConfig:
    """Configuration for R2/S3-compatible storage."""
    access_key_id: str
    secret_access_key: str
    bucket_name: str
    endpoint_url: str
    region: str = "auto"  # R2 uses 'auto' for region
    link_expiry_seconds: int = 3600


class R2RemoteStore:
    """
    Cloudflare R2 remote store.

    Uses boto3 because R2 is S3-compatible. boto3 is synchronous, so
    every call runs in a worker thread via asyncio.to_thread.
    """

    def __init__(self, config: StorageConfig, s3_client: Optional[Any] = None) -> None:
        """
        Initialize R2 client with boto3.

        Args:
            config: Bucket and credential settings
            s3_client: Pre-built S3 client; built from config when omitted
        """
        self._config = config

        if s3_client is None:
            import boto3
            from botocore.config import Config

            # R2 requires v4 signatures and path-style addressing
            boto_config = Config(
                signature_version='s3v4',
                s3={'addressing_style': 'path'},
            )

            s3_client = boto3.client(
                's3',
                endpoint_url=config.endpoint_url,
                aws_access_key_id=config.access_key_id,
                aws_secret_access_key=config.secret_access_key,
                region_name=config.region,
                config=boto_config,
            )

        self._s3_client = s3_client

        logger.info(
            "Initialized R2 storage client",
            extra={
                "bucket": config.bucket_name,
                "endpoint": config.endpoint_url,
            }
        )

    @staticmethod
    def _key(path: str) -> str:
        return path.strip("/")

    def _exists(self, key: str) -> bool:
        try:
            self._s3_client.head_object(Bucket=self._config.bucket_name, Key=key)
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in NOT_FOUND_CODES:
                return False
            raise

    @staticmethod
    def _payload(e: Exception) -> Any:
        if isinstance(e, ClientError):
            return e.response.get("Error", {})
        return str(e)

    async def ensure_folder(self, path: str) -> FolderStatus:
        marker = self._key(path) + "/"

        def create() -> FolderStatus:
            if self._exists(marker):
                return FolderStatus.ALREADY_EXISTS
            self._s3_client.put_object(
                Bucket=self._config.bucket_name,
                Key=marker,
                Body=b"",
            )
            return FolderStatus.CREATED

        try:
            status = await asyncio.to_thread(create)
        except (ClientError, BotoCoreError) as e:
            logger.error(
                "Failed to create folder marker",
                extra={"folder": path, "error": str(e)}
            )
            raise FolderInitError(f"Could not create folder {path}", payload=self._payload(e))

        if status is FolderStatus.CREATED:
            logger.info("Archive folder created", extra={"folder": path})
        return status

    async def commit(self, path: str, data: bytes) -> CommittedFile:
        audio_format = detect_format(None, path)
        content_type = audio_format.mime_type if audio_format else "application/octet-stream"

        def upload() -> str:
            for candidate in autorename_candidates(path):
                key = self._key(candidate)
                if self._exists(key):
                    continue
                try:
                    self._s3_client.put_object(
                        Bucket=self._config.bucket_name,
                        Key=key,
                        Body=data,
                        ContentType=content_type,
                        IfNoneMatch="*",
                    )
                except ClientError as e:
                    if e.response.get("Error", {}).get("Code") not in CONFLICT_CODES:
                        raise
                    logger.info(
                        "Key taken by a concurrent upload, trying next name",
                        extra={"key": key}
                    )
                    continue
                return key
            raise UploadError(f"No free name for {path} after {MAX_RENAME_ATTEMPTS} attempts")

        try:
            key = await asyncio.to_thread(upload)
        except (ClientError, BotoCoreError) as e:
            logger.error(
                "Failed to upload clip",
                extra={"remote_path": path, "error": str(e)}
            )
            raise UploadError(f"Could not upload {path}", payload=self._payload(e))

        committed_path = "/" + key
        logger.info(
            "Uploaded clip",
            extra={"remote_path": committed_path, "size_bytes": len(data)}
        )

        return CommittedFile(
            name=committed_path.rsplit("/", 1)[-1],
            path=committed_path,
            size=len(data),
            metadata={
                "name": committed_path.rsplit("/", 1)[-1],
                "path_display": committed_path,
                "size": len(data),
                "content_type": content_type,
                "bucket": self._config.bucket_name,
            },
        )

    async def list_folder(self, folder: str) -> list[RemoteEntry]:
        prefix = self._key(folder) + "/"

        def collect() -> list[RemoteEntry]:
            entries: list[RemoteEntry] = []
            kwargs: dict[str, Any] = {"Bucket": self._config.bucket_name, "Prefix": prefix}
            while True:
                response = self._s3_client.list_objects_v2(**kwargs)
                for obj in response.get("Contents", []):
                    name = obj["Key"][len(prefix):]
                    # skip the folder marker and anything nested deeper
                    if not name or "/" in name:
                        continue
                    entries.append(RemoteEntry(name=name, path="/" + obj["Key"]))
                if not response.get("IsTruncated"):
                    return entries
                kwargs["ContinuationToken"] = response["NextContinuationToken"]

        try:
            return await asyncio.to_thread(collect)
        except (ClientError, BotoCoreError) as e:
            logger.error(
                "Failed to list folder",
                extra={"folder": folder, "error": str(e)}
            )
            raise ListError(f"Could not list {folder}", payload=self._payload(e))

    async def resolve_link(self, path: str) -> str:
        """Generate a presigned GET url, valid for link_expiry_seconds."""
        try:
            return await asyncio.to_thread(
                self._s3_client.generate_presigned_url,
                'get_object',
                Params={
                    'Bucket': self._config.bucket_name,
                    'Key': self._key(path),
                },
                ExpiresIn=self._config.link_expiry_seconds,
            )
        except (ClientError, BotoCoreError) as e:
            raise LinkError(f"Presigned URL generation failed for {path}", payload=self._payload(e))

    async def close(self) -> None:
        return None


# ---------------------------------------------------------------------------
# Mock Storage for Local Development
# ---------------------------------------------------------------------------

class MockRemoteStore:
    """
    In-memory remote store for local development.

    Follows Dropbox semantics: paths are case-insensitive, uploads never
    overwrite, and a conflicting upload is renamed "name (1).ext".
    Links are mock:// URIs.
    """

    def __init__(self) -> None:
        self._folders: set[str] = set()
        # lowercased path -> (display path, data)
        self._files: dict[str, tuple[str, bytes]] = {}
        logger.info("Initialized mock storage client (in-memory)")

    async def ensure_folder(self, path: str) -> FolderStatus:
        key = path.rstrip("/").lower()
        if key in self._folders:
            return FolderStatus.ALREADY_EXISTS
        self._folders.add(key)
        return FolderStatus.CREATED

    async def commit(self, path: str, data: bytes) -> CommittedFile:
        for candidate in autorename_candidates(path):
            if candidate.lower() not in self._files:
                break
        else:
            raise UploadError(f"No free name for {path} after {MAX_RENAME_ATTEMPTS} attempts")

        self._files[candidate.lower()] = (candidate, data)
        name = candidate.rsplit("/", 1)[-1]

        logger.debug(
            "Stored clip in mock storage",
            extra={"remote_path": candidate, "size_bytes": len(data)}
        )

        return CommittedFile(
            name=name,
            path=candidate,
            size=len(data),
            metadata={
                "name": name,
                "path_display": candidate,
                "path_lower": candidate.lower(),
                "size": len(data),
            },
        )

    async def list_folder(self, folder: str) -> list[RemoteEntry]:
        parent = folder.rstrip("/").lower()
        return [
            RemoteEntry(name=display.rsplit("/", 1)[-1], path=key)
            for key, (display, _) in self._files.items()
            if key.rsplit("/", 1)[0] == parent
        ]

    async def resolve_link(self, path: str) -> str:
        if path.lower() not in self._files:
            raise LinkError(f"File not found: {path}")
        display, _ = self._files[path.lower()]
        return f"mock://storage{display}"

    def read(self, path: str) -> bytes:
        """Return stored bytes by path or mock:// link."""
        if path.startswith("mock://storage"):
            path = path[len("mock://storage"):]
        if path.lower() not in self._files:
            raise KeyError(path)
        return self._files[path.lower()][1]

    async def close(self) -> None:
        return None


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_remote_store(
    backend: str,
    dropbox_config: Optional[DropboxConfig] = None,
    storage_config: Optional[StorageConfig] = None,
) -> RemoteStore:
    """
    Create the remote store for the configured backend.

    Args:
        backend: "dropbox", "r2" or "mock"
        dropbox_config: Required for the dropbox backend
        storage_config: Required for the r2 backend

    Returns:
        RemoteStore implementation
    """
    if backend == "mock":
        return MockRemoteStore()

    if backend == "dropbox":
        if dropbox_config is None:
            raise ValueError("dropbox_config is required for the dropbox backend")
        return DropboxRemoteStore(dropbox_config)

    if backend == "r2":
        if storage_config is None:
            raise ValueError("storage_config is required for the r2 backend")
        return R2RemoteStore(storage_config)

    raise ValueError(f"Unknown storage backend: {backend}")
