"""Directory listing over local, WebDAV and SMB sources."""

import asyncio
import logging
import os
import posixpath
from dataclasses import dataclass
from typing import Literal, Optional, Protocol
from urllib.parse import quote, unquote, urlsplit

import httpx
import smbclient
from lxml import etree
from smbprotocol.exceptions import SMBException
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from ..config import DataSource, SourceConfig, settings

logger = logging.getLogger(__name__)

DAV_NS = {"d": "DAV:"}

PROPFIND_BODY = b"""<?xml version="1.0" encoding="utf-8"?>
<d:propfind xmlns:d="DAV:">
  <d:prop><d:resourcetype/><d:getcontentlength/></d:prop>
</d:propfind>"""


class BackendError(Exception):
    """A listing failed: unreachable host, invalid path or missing configuration."""


@dataclass
class ListingEntry:
    """One child of a listed directory."""

    path: str
    name: str
    type: Literal["file", "directory"]
    size: int = 0

    @property
    def is_dir(self) -> bool:
        return self.type == "directory"


class Backend(Protocol):
    async def list(self, path: str) -> list[ListingEntry]: ...


class LocalBackend:
    """Lists directories on the local filesystem."""

    def __init__(self, config: SourceConfig):
        if not config.path:
            raise BackendError("Local path not configured")
        self.root = config.path

    def _full_path(self, path: str) -> str:
        if path in ("", "/", "\\"):
            return self.root
        if os.path.isabs(path):
            return path
        return os.path.join(self.root, path)

    def _scan(self, full_path: str) -> list[ListingEntry]:
        entries = []
        with os.scandir(full_path) as it:
            for entry in it:
                is_dir = entry.is_dir()
                entries.append(ListingEntry(
                    path=os.path.join(full_path, entry.name),
                    name=entry.name,
                    type="directory" if is_dir else "file",
                    size=0 if is_dir else entry.stat().st_size,
                ))
        return entries

    async def list(self, path: str) -> list[ListingEntry]:
        full_path = self._full_path(path)
        try:
            return await asyncio.to_thread(self._scan, full_path)
        except OSError as e:
            raise BackendError(f"Error listing local directory {full_path}: {e}") from e


class WebDAVBackend:
    """Lists WebDAV collections with PROPFIND (Depth: 1)."""

    def __init__(
        self,
        config: SourceConfig,
        client: Optional[httpx.AsyncClient] = None,
        retry_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ):
        if not config.url:
            raise BackendError("WebDAV not configured")
        self.base_url = config.url.rstrip("/")
        self.base_path = urlsplit(self.base_url).path.rstrip("/")
        auth = (config.username, config.password or "") if config.username else None
        self._client = client or httpx.AsyncClient(auth=auth, timeout=30.0)
        self.retry_attempts = retry_attempts or settings.webdav_retry_attempts
        self.retry_delay = settings.webdav_retry_delay if retry_delay is None else retry_delay

    async def close(self):
        if not self._client.is_closed:
            await self._client.aclose()

    def _relative(self, href: str) -> str:
        path = unquote(urlsplit(href).path)
        if self.base_path and path.startswith(self.base_path):
            path = path[len(self.base_path):]
        return "/" + path.strip("/")

    def _parse(self, body: bytes, listed: str) -> list[ListingEntry]:
        root = etree.fromstring(body)
        entries = []
        for response in root.findall("d:response", DAV_NS):
            href = response.findtext("d:href", default="", namespaces=DAV_NS)
            path = self._relative(href)
            if path == listed:
                continue
            is_dir = response.find(".//d:resourcetype/d:collection", DAV_NS) is not None
            length = response.findtext(".//d:getcontentlength", default="0", namespaces=DAV_NS)
            entries.append(ListingEntry(
                path=path,
                name=posixpath.basename(path),
                type="directory" if is_dir else "file",
                size=int(length) if length.strip().isdigit() else 0,
            ))
        return entries

    async def _propfind(self, path: str) -> bytes:
        response = await self._client.request(
            "PROPFIND",
            f"{self.base_url}{quote(path)}",
            headers={"Depth": "1", "Content-Type": "application/xml"},
            content=PROPFIND_BODY,
        )
        response.raise_for_status()
        return response.content

    async def list(self, path: str) -> list[ListingEntry]:
        listed = "/" + path.strip("/")
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.retry_attempts),
                wait=wait_fixed(self.retry_delay),
                retry=retry_if_exception_type(httpx.HTTPError),
                reraise=True,
            ):
                with attempt:
                    body = await self._propfind(listed)
        except httpx.HTTPError as e:
            raise BackendError(f"WebDAV error listing {listed}: {e}") from e

        try:
            return self._parse(body, listed)
        except etree.XMLSyntaxError as e:
            raise BackendError(f"Malformed WebDAV response for {listed}: {e}") from e


class SMBBackend:
    """Lists directories on an SMB share via smbclient."""

    def __init__(self, config: SourceConfig):
        if not config.share:
            raise BackendError("SMB not configured")
        self.unc_root = "\\\\" + config.share.replace("/", "\\").strip("\\")
        username = config.username or "guest"
        if config.domain and "\\" not in username:
            username = f"{config.domain}\\{username}"
        self.credentials = {"username": username, "password": config.password or ""}

    def _unc(self, path: str) -> str:
        rel = path.replace("/", "\\").strip("\\")
        return f"{self.unc_root}\\{rel}" if rel else self.unc_root

    def _scan(self, path: str) -> list[ListingEntry]:
        entries = []
        for entry in smbclient.scandir(self._unc(path), **self.credentials):
            is_dir = entry.is_dir()
            entries.append(ListingEntry(
                path=posixpath.join(path or "/", entry.name),
                name=entry.name,
                type="directory" if is_dir else "file",
                size=0 if is_dir else entry.stat().st_size,
            ))
        return entries

    async def list(self, path: str) -> list[ListingEntry]:
        try:
            return await asyncio.to_thread(self._scan, path)
        except (OSError, SMBException) as e:
            raise BackendError(f"SMB error listing {path}: {e}") from e


def get_backend(source: DataSource) -> Backend:
    """Build the listing backend for a configured source."""
    if source.type == "local":
        return LocalBackend(source.config)
    if source.type == "webdav":
        return WebDAVBackend(source.config)
    if source.type == "smb":
        return SMBBackend(source.config)
    raise BackendError(f"Unknown source type: {source.type}")


def resolve_url(source: DataSource, file_path: str) -> str:
    """Build the URL a player uses to open ``file_path`` on ``source``."""
    if source.type == "webdav":
        return f"{(source.config.url or '').rstrip('/')}/{file_path.lstrip('/')}"
    if source.type == "smb":
        share = (source.config.share or "").replace("\\", "/").rstrip("/")
        return f"{share}/{file_path.lstrip('/')}"
    return file_path
