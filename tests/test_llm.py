"""Tests for capcom.llm: HttpLLM and EchoLLM."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from capcom.errors import CompletionServiceError
from capcom.llm import EchoLLM, HttpLLM


def _mock_response(body, status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = body
    resp.raise_for_status = MagicMock(
        side_effect=None if status < 400 else httpx.HTTPStatusError(
            "", request=MagicMock(), response=resp
        )
    )
    return resp


# ---------------------------------------------------------------------------
# EchoLLM
# ---------------------------------------------------------------------------

class TestEchoLLM:
    async def test_returns_prompt_unchanged(self) -> None:
        assert await EchoLLM()("classify", "hello world", "be brief") == "hello world"


# ---------------------------------------------------------------------------
# HttpLLM, OpenAI Responses format
# ---------------------------------------------------------------------------

class TestHttpLLMOpenAI:
    @pytest.fixture
    def llm(self) -> HttpLLM:
        return HttpLLM(provider_url="https://api.example.com/", api_key="sk-test", model="gpt-test")

    async def test_output_text(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"output_text": "Roger that."}))
        with patch("httpx.AsyncClient.post", mock_post):
            assert await llm("narrate", "prompt") == "Roger that."

    async def test_request_shape(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"output_text": "ok"}))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("classify", "make an orbit", "return JSON")
        assert mock_post.call_args[0][0] == "https://api.example.com/v1/responses"
        assert mock_post.call_args.kwargs["json"] == {
            "input": "make an orbit",
            "model": "gpt-test",
            "instructions": "return JSON",
        }
        assert mock_post.call_args.kwargs["headers"]["Authorization"] == "Bearer sk-test"

    async def test_instructions_omitted_when_absent(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"output_text": "ok"}))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("narrate", "prompt")
        assert "instructions" not in mock_post.call_args.kwargs["json"]

    async def test_output_content_list(self, llm: HttpLLM) -> None:
        body = {"output": [{"type": "message", "content": [{"type": "output_text", "text": "From content"}]}]}
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=_mock_response(body))):
            assert await llm("narrate", "p") == "From content"

    async def test_chat_completions_shape(self, llm: HttpLLM) -> None:
        body = {"choices": [{"message": {"content": "From choices"}}]}
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=_mock_response(body))):
            assert await llm("narrate", "p") == "From choices"

    async def test_unexpected_body(self, llm: HttpLLM) -> None:
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=_mock_response({"weird": True}))):
            with pytest.raises(CompletionServiceError, match="Unexpected response format"):
                await llm("narrate", "p")


# ---------------------------------------------------------------------------
# HttpLLM, KoboldCpp format
# ---------------------------------------------------------------------------

class TestHttpLLMKoboldCpp:
    @pytest.fixture
    def llm(self) -> HttpLLM:
        return HttpLLM(provider_url="http://localhost:5001", provider_format="koboldcpp")

    async def test_happy_path(self, llm: HttpLLM) -> None:
        body = {"results": [{"text": "Orbit established."}]}
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            assert await llm("narrate", "prompt") == "Orbit established."
        assert mock_post.call_args[0][0] == "http://localhost:5001/api/v1/generate"

    async def test_instructions_prepended(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"results": [{"text": "ok"}]}))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("classify", "user text", "RULES")
        assert mock_post.call_args.kwargs["json"] == {"prompt": "RULES\n\nuser text"}

    async def test_no_auth_header_without_key(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"results": [{"text": "ok"}]}))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("narrate", "p")
        assert "Authorization" not in mock_post.call_args.kwargs["headers"]

    async def test_missing_results(self, llm: HttpLLM) -> None:
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=_mock_response({"results": []}))):
            with pytest.raises(CompletionServiceError):
                await llm("narrate", "p")


# ---------------------------------------------------------------------------
# Transport failures
# ---------------------------------------------------------------------------

class TestHttpLLMErrors:
    @pytest.fixture
    def llm(self) -> HttpLLM:
        return HttpLLM(provider_url="http://localhost:5001", api_key="k", timeout=3)

    async def test_connect_error(self, llm: HttpLLM) -> None:
        with patch("httpx.AsyncClient.post", AsyncMock(side_effect=httpx.ConnectError("refused"))):
            with pytest.raises(CompletionServiceError, match="Cannot connect"):
                await llm("narrate", "p")

    async def test_http_status_error(self, llm: HttpLLM) -> None:
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=_mock_response({}, status=429))):
            with pytest.raises(CompletionServiceError, match="429"):
                await llm("narrate", "p")

    async def test_timeout(self, llm: HttpLLM) -> None:
        with patch("httpx.AsyncClient.post", AsyncMock(side_effect=httpx.ReadTimeout("slow"))):
            with pytest.raises(CompletionServiceError, match="timed out after 3"):
                await llm("narrate", "p")

    async def test_invalid_json(self, llm: HttpLLM) -> None:
        resp = _mock_response({})
        resp.json.side_effect = ValueError("no json")
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=resp)):
            with pytest.raises(CompletionServiceError, match="invalid JSON"):
                await llm("narrate", "p")
