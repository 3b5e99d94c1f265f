"""
Dropbox remote store.

Talks to the Dropbox v2 HTTP API with httpx. Dropbox reports endpoint
errors as HTTP 409 with a nested, tagged union in the body, e.g.

    {"error": {".tag": "path", "path": {".tag": "conflict", ...}}}

Those unions are decoded here and only here. Callers see FolderStatus,
CommittedFile and RemoteEntry values, or one of the archive error types
with the raw Dropbox body attached as payload.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ...core.archive.errors import (
    ArchiveError,
    FolderInitError,
    LinkError,
    ListError,
    UploadError,
)
from ...core.archive.models import CommittedFile, FolderStatus, RemoteEntry

logger = logging.getLogger(__name__)

LINK_MODES = ("temporary", "shared")


@dataclass
class DropboxConfig:
    """Configuration for the Dropbox remote store."""
    access_token: str
    api_url: str = "https://api.dropboxapi.com"
    content_url: str = "https://content.dropboxapi.com"
    link_mode: str = "temporary"
    timeout_seconds: float = 30.0

    def __post_init__(self) -> None:
        if not self.access_token:
            raise ValueError("Dropbox access token is required")
        if self.link_mode not in LINK_MODES:
            raise ValueError(f"link_mode must be one of {LINK_MODES}")


def error_body(response: httpx.Response) -> Any:
    """Decode an error response body, falling back to text."""
    try:
        return response.json()
    except ValueError:
        return response.text


def success_body(
    response: httpx.Response,
    error_cls: type[ArchiveError],
    message: str,
) -> dict[str, Any]:
    """
    Decode a 2xx response body that must be a JSON object.

    Proxies and outages sometimes answer 200 with HTML or an empty body;
    that surfaces as error_cls with the raw text as payload.
    """
    try:
        body = response.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        logger.error(
            "Unexpected Dropbox response",
            extra={"url": str(response.request.url), "status": response.status_code, "body": response.text[:500]}
        )
        raise error_cls(message, payload=response.text)
    return body


def error_tags(body: Any) -> list[str]:
    """
    Flatten a Dropbox tagged-union error into its tag chain.

    {"error": {".tag": "path", "path": {".tag": "not_found"}}}
    becomes ["path", "not_found"].
    """
    tags: list[str] = []
    node = body.get("error") if isinstance(body, dict) else None
    while isinstance(node, dict) and ".tag" in node:
        tag = node[".tag"]
        tags.append(tag)
        node = node.get(tag)
    return tags


class DropboxRemoteStore:
    """
    Remote store backed by a Dropbox app folder.

    One instance wraps one httpx.AsyncClient; call close() when done.
    """

    def __init__(
        self,
        config: DropboxConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._client = httpx.AsyncClient(
            headers={"Authorization": f"Bearer {config.access_token}"},
            timeout=config.timeout_seconds,
            transport=transport,
        )

    async def _post(
        self,
        url: str,
        error_cls: type[ArchiveError],
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            return await self._client.post(url, **kwargs)
        except httpx.TimeoutException as e:
            raise error_cls(f"Dropbox request timed out: {url}", payload=str(e))
        except httpx.HTTPError as e:
            raise error_cls(f"Dropbox request failed: {e}", payload=str(e))

    async def _rpc(
        self,
        endpoint: str,
        payload: dict[str, Any],
        error_cls: type[ArchiveError],
    ) -> httpx.Response:
        return await self._post(
            f"{self._config.api_url}/2/{endpoint}",
            error_cls,
            json=payload,
        )

    async def ensure_folder(self, path: str) -> FolderStatus:
        response = await self._rpc(
            "files/create_folder_v2",
            {"path": path, "autorename": False},
            FolderInitError,
        )

        if response.is_success:
            logger.info("Archive folder created", extra={"folder": path})
            return FolderStatus.CREATED

        body = error_body(response)
        if error_tags(body)[:2] == ["path", "conflict"]:
            logger.debug("Archive folder already exists", extra={"folder": path})
            return FolderStatus.ALREADY_EXISTS

        logger.error(
            "Error creating archive folder",
            extra={"folder": path, "status": response.status_code, "body": body}
        )
        raise FolderInitError(f"Could not create folder {path}", payload=body)

    async def commit(self, path: str, data: bytes) -> CommittedFile:
        args = {
            "path": path,
            "mode": "add",
            "autorename": True,
            "mute": False,
        }
        response = await self._post(
            f"{self._config.content_url}/2/files/upload",
            UploadError,
            headers={
                "Content-Type": "application/octet-stream",
                "Dropbox-API-Arg": json.dumps(args),
            },
            content=data,
        )

        if not response.is_success:
            body = error_body(response)
            logger.error(
                "Dropbox upload error",
                extra={"remote_path": path, "status": response.status_code, "body": body}
            )
            raise UploadError(f"Could not upload {path}", payload=body)

        metadata = success_body(response, UploadError, f"Unexpected upload response for {path}")
        committed = CommittedFile(
            name=metadata.get("name", path.rsplit("/", 1)[-1]),
            path=metadata.get("path_display") or metadata.get("path_lower") or path,
            size=int(metadata.get("size", len(data))),
            metadata=metadata,
        )

        if committed.path.lower() != path.lower():
            logger.info(
                "Dropbox renamed upload on conflict",
                extra={"requested": path, "committed": committed.path}
            )

        return committed

    async def list_folder(self, folder: str) -> list[RemoteEntry]:
        response = await self._rpc("files/list_folder", {"path": folder}, ListError)

        if not response.is_success:
            body = error_body(response)
            if error_tags(body)[:2] == ["path", "not_found"]:
                logger.info("Archive folder missing, treating as empty", extra={"folder": folder})
                return []
            logger.error(
                "Error retrieving archive",
                extra={"folder": folder, "status": response.status_code, "body": body}
            )
            raise ListError(f"Could not list {folder}", payload=body)

        data = success_body(response, ListError, f"Unexpected listing response for {folder}")
        entries = self._file_entries(data)

        while data.get("has_more"):
            cursor = data.get("cursor")
            if not cursor:
                raise ListError(f"Listing of {folder} has more entries but no cursor", payload=data)
            response = await self._rpc(
                "files/list_folder/continue",
                {"cursor": cursor},
                ListError,
            )
            if not response.is_success:
                body = error_body(response)
                raise ListError(f"Could not continue listing {folder}", payload=body)
            data = success_body(response, ListError, f"Unexpected listing response for {folder}")
            entries.extend(self._file_entries(data))

        return entries

    def _file_entries(self, data: dict[str, Any]) -> list[RemoteEntry]:
        return [
            RemoteEntry(
                name=entry["name"],
                path=entry.get("path_lower") or entry.get("path_display"),
            )
            for entry in data.get("entries") or []
            if isinstance(entry, dict) and entry.get(".tag") == "file" and entry.get("name")
        ]

    async def resolve_link(self, path: str) -> str:
        if self._config.link_mode == "shared":
            return await self._shared_link(path)
        return await self._temporary_link(path)

    async def _temporary_link(self, path: str) -> str:
        response = await self._rpc("files/get_temporary_link", {"path": path}, LinkError)

        if not response.is_success:
            body = error_body(response)
            raise LinkError(f"Could not get temporary link for {path}", payload=body)

        body = success_body(response, LinkError, f"Unexpected temporary link response for {path}")
        link = body.get("link")
        if not isinstance(link, str) or not link:
            raise LinkError(f"No temporary link returned for {path}", payload=body)
        return link

    async def _shared_link(self, path: str) -> str:
        """
        Create a shared link, or reuse the existing one.

        Dropbox refuses to create a second shared link for the same
        file with shared_link_already_exists; that case still yields
        a usable url, either from the error metadata or by listing.
        """
        response = await self._rpc(
            "sharing/create_shared_link_with_settings",
            {"path": path},
            LinkError,
        )

        if response.is_success:
            created = success_body(response, LinkError, f"Unexpected shared link response for {path}")
            url = created.get("url")
            if not isinstance(url, str) or not url:
                raise LinkError(f"No shared link returned for {path}", payload=created)
            return url

        body = error_body(response)
        if error_tags(body)[:1] != ["shared_link_already_exists"]:
            raise LinkError(f"Could not create shared link for {path}", payload=body)

        existing = body["error"].get("shared_link_already_exists")
        metadata = existing.get("metadata") if isinstance(existing, dict) else None
        url = metadata.get("url") if isinstance(metadata, dict) else None
        if isinstance(url, str) and url:
            return url

        response = await self._rpc(
            "sharing/list_shared_links",
            {"path": path, "direct_only": True},
            LinkError,
        )
        if not response.is_success:
            raise LinkError(f"Could not list shared links for {path}", payload=error_body(response))

        listed = success_body(response, LinkError, f"Unexpected shared link listing for {path}")
        urls = [
            link["url"] for link in listed.get("links") or []
            if isinstance(link, dict) and isinstance(link.get("url"), str)
        ]
        if not urls:
            raise LinkError(f"No shared link found for {path}", payload=body)
        return urls[0]

    async def close(self) -> None:
        await self._client.aclose()
