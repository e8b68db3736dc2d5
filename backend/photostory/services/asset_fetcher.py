"""Asset resolution and download for the render worker.

A resource id resolves to one of:
- an http(s) URL (used as-is),
- a key under ``asset_base_url`` when one is configured,
- a key in the render storage backend,
- an existing local file path.

Network failures and 5xx responses are retried with exponential backoff and
then surface as AssetFetchError (transient). A 4xx response or a missing
asset is a deterministic failure and raises RenderError.
"""

import asyncio
import hashlib
import logging
import os
import re
from typing import Iterable

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from photostory.config import get_settings
from photostory.exceptions import AssetFetchError, RenderError
from photostory.services.storage_service import StorageService

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class _RetryableHTTPError(Exception):
    pass


def local_filename(resource_id: str) -> str:
    """Filesystem-safe name for a resource id, keeping its extension."""
    base = resource_id.split("?", 1)[0].rstrip("/").rsplit("/", 1)[-1] or "asset"
    digest = hashlib.sha1(resource_id.encode("utf-8")).hexdigest()[:10]
    return f"{digest}_{_UNSAFE_CHARS.sub('_', base)}"


class AssetFetcher:
    """Downloads every asset a render needs into a work directory."""

    def __init__(
        self,
        storage: StorageService | None = None,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        max_attempts: int = 3,
        client: httpx.AsyncClient | None = None,
        wait: wait_base | None = None,
    ):
        settings = get_settings()
        self.storage = storage
        self.base_url = (base_url if base_url is not None else settings.asset_base_url).rstrip("/")
        self.timeout = timeout or settings.asset_fetch_timeout_seconds
        self.max_attempts = max_attempts
        self._client = client
        self._wait = wait or wait_exponential(multiplier=1, min=1, max=10)

    def resolve_url(self, resource_id: str) -> str | None:
        if resource_id.startswith(("http://", "https://")):
            return resource_id
        if self.base_url:
            return f"{self.base_url}/{resource_id.lstrip('/')}"
        return None

    async def fetch_all(self, resource_ids: Iterable[str], dest_dir: str) -> dict[str, str]:
        """Fetch resources concurrently. Returns resource_id -> local path."""
        os.makedirs(dest_dir, exist_ok=True)
        ids = sorted(set(resource_ids))
        paths = await asyncio.gather(*(self.fetch(rid, dest_dir) for rid in ids))
        logger.info(f"[ASSETS] Fetched {len(ids)} assets into {dest_dir}")
        return dict(zip(ids, paths))

    async def fetch(self, resource_id: str, dest_dir: str) -> str:
        url = self.resolve_url(resource_id)
        dest = os.path.join(dest_dir, local_filename(resource_id))
        if url:
            return await self._download(url, dest)
        if self.storage is not None and self.storage.file_exists(resource_id):
            return await self.storage.download_file(resource_id, dest)
        if os.path.isfile(resource_id):
            return resource_id
        raise RenderError(f"Asset not found: {resource_id}")

    async def _download(self, url: str, dest: str) -> str:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=self._wait,
                retry=retry_if_exception_type((httpx.TransportError, _RetryableHTTPError)),
                before_sleep=before_sleep_log(logger, logging.WARNING),
            ):
                with attempt:
                    await self._download_once(url, dest)
        except RetryError as e:
            cause = e.last_attempt.exception()
            raise AssetFetchError(f"Asset download failed after {self.max_attempts} attempts: {url} ({cause})") from cause
        return dest

    async def _download_once(self, url: str, dest: str) -> None:
        client = self._client or httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        try:
            async with client.stream("GET", url) as response:
                if response.status_code >= 500 or response.status_code == 429:
                    raise _RetryableHTTPError(f"HTTP {response.status_code}")
                if response.status_code >= 400:
                    raise RenderError(f"Asset download rejected (HTTP {response.status_code}): {url}")
                with open(dest, "wb") as f:
                    async for chunk in response.aiter_bytes():
                        f.write(chunk)
        finally:
            if self._client is None:
                await client.aclose()
