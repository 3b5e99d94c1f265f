"""
Remote storage for archived clips.

Supports Dropbox (HTTP API) and R2/S3 (S3-compatible API).
Includes mock mode for local development without credentials.
"""

from .client import (
    MockRemoteStore,
    R2RemoteStore,
    StorageConfig,
    create_remote_store,
)
from .dropbox import DropboxConfig, DropboxRemoteStore

__all__ = [
    "DropboxConfig",
    "DropboxRemoteStore",
    "MockRemoteStore",
    "R2RemoteStore",
    "StorageConfig",
    "create_remote_store",
]
