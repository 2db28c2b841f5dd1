"""LLM client: HTTP connection to a language-completion backend.

The orchestrator injects an LLM callable matching the protocol:

    async def __call__(self, stage: str, prompt: str, instructions: str | None = None) -> str: ...

`stage` identifies which pipeline stage is calling ("classify", "narrate",
"introduce"). Implementations may use it for logging; the simplest ignore it.

    HttpLLM   real HTTP client, supports the OpenAI Responses API and
              KoboldCpp backends. Selected by provider_format.
    EchoLLM   returns the prompt back unchanged. Useful for smoke-testing
              the wiring without a running model.
"""

from __future__ import annotations

import logging
from typing import Any, Literal, Protocol

import httpx

from capcom.errors import CompletionServiceError

logger = logging.getLogger(__name__)


class LLM(Protocol):
    async def __call__(self, stage: str, prompt: str, instructions: str | None = None) -> str: ...


ProviderFormat = Literal["openai", "koboldcpp"]


class HttpLLM:
    """Async HTTP client for language-completion backends.

    Supported formats:
      "openai"     POST /v1/responses      {"model", "input", "instructions"}
                   Response: {"output_text": ...} or {"output": [{"content": [{"text": ...}]}]}
      "koboldcpp"  POST /api/v1/generate   {"prompt": ...}
                   Response: {"results": [{"text": "..."}]}

    KoboldCpp has no separate instruction channel, so instructions are
    prepended to the prompt.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "openai",
        model: str = "",
        timeout: float = 30.0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(self, prompt: str, instructions: str | None) -> tuple[str, dict]:
        if self._format == "openai":
            body: dict[str, Any] = {"input": prompt}
            if self._model:
                body["model"] = self._model
            if instructions:
                body["instructions"] = instructions
            return f"{self._base_url}/v1/responses", body

        text = f"{instructions}\n\n{prompt}" if instructions else prompt
        return f"{self._base_url}/api/v1/generate", {"prompt": text}

    def _parse_response(self, data: Any) -> str:
        if not isinstance(data, dict):
            raise CompletionServiceError("Completion backend returned a non-object body")

        if self._format == "openai":
            if isinstance(data.get("output_text"), str):
                return data["output_text"]
            for item in data.get("output") or []:
                for part in item.get("content") or []:
                    if isinstance(part, dict) and isinstance(part.get("text"), str):
                        return part["text"]
            choices = data.get("choices")
            if choices and isinstance(choices[0].get("message"), dict):
                content = choices[0]["message"].get("content")
                if isinstance(content, str):
                    return content
            raise CompletionServiceError("Unexpected response format from OpenAI-compatible backend")

        results = data.get("results")
        if not results or "text" not in results[0]:
            raise CompletionServiceError("Unexpected response format from KoboldCpp backend")
        return results[0]["text"]

    async def __call__(self, stage: str, prompt: str, instructions: str | None = None) -> str:
        url, body = self._build_request(prompt, instructions)
        logger.debug(
            "llm call stage=%s url=%s prompt_len=%d instructions_len=%d",
            stage, url, len(prompt), len(instructions or ""),
        )

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise CompletionServiceError(f"Cannot connect to completion backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise CompletionServiceError(
                f"Completion backend returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise CompletionServiceError(f"Completion backend timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise CompletionServiceError(f"Completion request failed: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise CompletionServiceError("Completion backend returned invalid JSON") from e

        text = self._parse_response(data)
        logger.debug("llm response stage=%s len=%d", stage, len(text))
        return text


class EchoLLM:
    """Returns the prompt text as-is. No network calls.

    The classification stage will see non-JSON text and fall back to "no
    action", so every turn exercises the non-command path.
    """

    async def __call__(self, stage: str, prompt: str, instructions: str | None = None) -> str:
        logger.debug("EchoLLM stage=%s prompt_len=%d", stage, len(prompt))
        return prompt
