"""Telegram Bot API used as an opaque, size-capped blob sink."""

from __future__ import annotations

import logging
import secrets
from pathlib import PurePosixPath
from typing import Protocol

import httpx

from blobrelay.config import settings
from blobrelay.exceptions import BackendRequestError, RateLimitedError
from blobrelay.services.node_registry import BackendNode

logger = logging.getLogger(__name__)


class BlobBackend(Protocol):
    """One network call against one node; no retries at this level."""

    async def upload(self, node: BackendNode, data: bytes, name: str) -> str:
        """Store data and return the backend's opaque blob id."""
        ...

    async def download(self, node: BackendNode, blob_id: str) -> bytes:
        ...


def obfuscate_name(name: str) -> str:
    """Random 32-hex-char name keeping only the lower-cased extension."""
    suffix = PurePosixPath(name).suffix.lower()
    return f"{secrets.token_hex(16)}{suffix}"


def _raise_for_payload(data: dict, action: str) -> None:
    if data.get("ok"):
        return
    error_code = data.get("error_code")
    description = data.get("description") or f"code {error_code}"
    if error_code == 429:
        retry_after = (data.get("parameters") or {}).get("retry_after")
        raise RateLimitedError(
            f"Telegram rate limit on {action} (retry after {retry_after or '?'}s)",
            retry_after=retry_after,
        )
    raise BackendRequestError(f"Telegram {action} failed: {description}")


def _json_or_error(resp: httpx.Response, action: str) -> dict:
    try:
        return resp.json()
    except ValueError:
        raise BackendRequestError(
            f"Telegram {action} returned non-JSON response (HTTP {resp.status_code})"
        )


class TelegramBackend:
    """Bot API client: sendDocument to store, getFile + file download to read."""

    def __init__(
        self,
        api_url: str | None = None,
        chat_id: str | None = None,
        timeout: float | None = None,
    ):
        self._api_url = (api_url or settings.telegram_api_url).rstrip("/")
        self._chat_id = chat_id if chat_id is not None else settings.storage_chat_id
        self._timeout = timeout or settings.backend_timeout_seconds

    async def upload(self, node: BackendNode, data: bytes, name: str) -> str:
        url = f"{self._api_url}/bot{node.credential}/sendDocument"
        files = {"document": (obfuscate_name(name), data, "application/octet-stream")}
        form = {"chat_id": self._chat_id or node.id}

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, data=form, files=files)
        except httpx.HTTPError as e:
            raise BackendRequestError(f"sendDocument via {node.id} failed: {e!r}") from e

        payload = _json_or_error(resp, "sendDocument")
        _raise_for_payload(payload, "sendDocument")
        try:
            return payload["result"]["document"]["file_id"]
        except (KeyError, TypeError):
            raise BackendRequestError("sendDocument response has no document file_id")

    async def download_url(self, node: BackendNode, blob_id: str) -> str:
        """Resolve a blob id to a temporary direct download URL."""
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(
                    f"{self._api_url}/bot{node.credential}/getFile",
                    params={"file_id": blob_id},
                )
        except httpx.HTTPError as e:
            raise BackendRequestError(f"getFile via {node.id} failed: {e!r}") from e

        payload = _json_or_error(resp, "getFile")
        _raise_for_payload(payload, "getFile")
        try:
            file_path = payload["result"]["file_path"]
        except (KeyError, TypeError):
            raise BackendRequestError("getFile response has no file_path")
        return f"{self._api_url}/file/bot{node.credential}/{file_path}"

    async def download(self, node: BackendNode, blob_id: str) -> bytes:
        url = await self.download_url(node, blob_id)
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(url)
        except httpx.HTTPError as e:
            raise BackendRequestError(f"File download via {node.id} failed: {e!r}") from e

        if resp.status_code == 429:
            raise RateLimitedError(f"Telegram rate limit on file download via {node.id}")
        if resp.status_code != 200:
            raise BackendRequestError(
                f"File download via {node.id} returned HTTP {resp.status_code}"
            )
        return resp.content
