"""Tests for the Telegram Bot API blob sink."""

import re
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from blobrelay.exceptions import BackendRequestError, RateLimitedError
from blobrelay.services.node_registry import BackendNode
from blobrelay.services.telegram_backend import TelegramBackend, obfuscate_name


@pytest.fixture
def node():
    return BackendNode(id="bot_1", credential="123:abc", display_name="blobrelay bot 1")


@pytest.fixture
def backend():
    return TelegramBackend(api_url="https://tg.test", chat_id="-100042", timeout=5.0)


def _response(status_code=200, json_data=None, content=b""):
    resp = MagicMock()
    resp.status_code = status_code
    resp.content = content
    if json_data is None:
        resp.json.side_effect = ValueError("not json")
    else:
        resp.json.return_value = json_data
    return resp


def _mock_client(mock_client_cls, **methods):
    mock_http = AsyncMock()
    for name, value in methods.items():
        setattr(mock_http, name, value)
    mock_http.__aenter__ = AsyncMock(return_value=mock_http)
    mock_http.__aexit__ = AsyncMock(return_value=False)
    mock_client_cls.return_value = mock_http
    return mock_http


def test_obfuscated_name_keeps_extension():
    name = obfuscate_name("Holiday Photo.JPG")
    assert re.fullmatch(r"[0-9a-f]{32}\.jpg", name)
    assert re.fullmatch(r"[0-9a-f]{32}", obfuscate_name("README"))


class TestUpload:
    @pytest.mark.asyncio
    @patch("blobrelay.services.telegram_backend.httpx.AsyncClient")
    async def test_returns_document_file_id(self, mock_client_cls, backend, node):
        resp = _response(json_data={"ok": True, "result": {"document": {"file_id": "F1"}}})
        mock_http = _mock_client(mock_client_cls, post=AsyncMock(return_value=resp))

        blob_id = await backend.upload(node, b"data", "report.pdf")

        assert blob_id == "F1"
        args, kwargs = mock_http.post.call_args
        assert args[0] == "https://tg.test/bot123:abc/sendDocument"
        assert kwargs["data"] == {"chat_id": "-100042"}
        filename, payload, _ = kwargs["files"]["document"]
        assert filename.endswith(".pdf") and "report" not in filename
        assert payload == b"data"

    @pytest.mark.asyncio
    @patch("blobrelay.services.telegram_backend.httpx.AsyncClient")
    async def test_rate_limit_carries_retry_after(self, mock_client_cls, backend, node):
        resp = _response(json_data={
            "ok": False,
            "error_code": 429,
            "description": "Too Many Requests",
            "parameters": {"retry_after": 7},
        })
        _mock_client(mock_client_cls, post=AsyncMock(return_value=resp))

        with pytest.raises(RateLimitedError) as exc_info:
            await backend.upload(node, b"data", "a.bin")
        assert exc_info.value.retry_after == 7

    @pytest.mark.asyncio
    @patch("blobrelay.services.telegram_backend.httpx.AsyncClient")
    async def test_api_error(self, mock_client_cls, backend, node):
        resp = _response(json_data={"ok": False, "error_code": 400, "description": "Bad Request"})
        _mock_client(mock_client_cls, post=AsyncMock(return_value=resp))

        with pytest.raises(BackendRequestError, match="Bad Request"):
            await backend.upload(node, b"data", "a.bin")

    @pytest.mark.asyncio
    @patch("blobrelay.services.telegram_backend.httpx.AsyncClient")
    async def test_network_error_wrapped(self, mock_client_cls, backend, node):
        _mock_client(mock_client_cls, post=AsyncMock(side_effect=httpx.ConnectError("refused")))

        with pytest.raises(BackendRequestError):
            await backend.upload(node, b"data", "a.bin")

    @pytest.mark.asyncio
    @patch("blobrelay.services.telegram_backend.httpx.AsyncClient")
    async def test_non_json_response(self, mock_client_cls, backend, node):
        _mock_client(mock_client_cls, post=AsyncMock(return_value=_response(status_code=502)))

        with pytest.raises(BackendRequestError, match="non-JSON"):
            await backend.upload(node, b"data", "a.bin")

    @pytest.mark.asyncio
    @patch("blobrelay.services.telegram_backend.httpx.AsyncClient")
    async def test_chat_defaults_to_node(self, mock_client_cls, node):
        backend = TelegramBackend(api_url="https://tg.test", chat_id="", timeout=5.0)
        resp = _response(json_data={"ok": True, "result": {"document": {"file_id": "F1"}}})
        mock_http = _mock_client(mock_client_cls, post=AsyncMock(return_value=resp))

        await backend.upload(node, b"data", "a.bin")
        assert mock_http.post.call_args.kwargs["data"] == {"chat_id": "bot_1"}


class TestDownload:
    @pytest.mark.asyncio
    @patch("blobrelay.services.telegram_backend.httpx.AsyncClient")
    async def test_resolves_path_then_fetches(self, mock_client_cls, backend, node):
        get_file = _response(json_data={"ok": True, "result": {"file_path": "documents/file_1"}})
        content = _response(content=b"blob-bytes")
        mock_http = _mock_client(mock_client_cls, get=AsyncMock(side_effect=[get_file, content]))

        data = await backend.download(node, "F1")

        assert data == b"blob-bytes"
        first, second = mock_http.get.call_args_list
        assert first.args[0] == "https://tg.test/bot123:abc/getFile"
        assert first.kwargs["params"] == {"file_id": "F1"}
        assert second.args[0] == "https://tg.test/file/bot123:abc/documents/file_1"

    @pytest.mark.asyncio
    @patch("blobrelay.services.telegram_backend.httpx.AsyncClient")
    async def test_http_429_is_rate_limit(self, mock_client_cls, backend, node):
        get_file = _response(json_data={"ok": True, "result": {"file_path": "p"}})
        _mock_client(mock_client_cls, get=AsyncMock(side_effect=[get_file, _response(status_code=429)]))

        with pytest.raises(RateLimitedError):
            await backend.download(node, "F1")

    @pytest.mark.asyncio
    @patch("blobrelay.services.telegram_backend.httpx.AsyncClient")
    async def test_http_error_status(self, mock_client_cls, backend, node):
        get_file = _response(json_data={"ok": True, "result": {"file_path": "p"}})
        _mock_client(mock_client_cls, get=AsyncMock(side_effect=[get_file, _response(status_code=404)]))

        with pytest.raises(BackendRequestError, match="404"):
            await backend.download(node, "F1")
