"""LLM client — HTTP connection to a text-generation backend.

The engine injects an LLM callable matching the protocol:

    async def __call__(self, stage: str, system: str, prompt: str,
                       params: GenerationParams) -> str: ...

`stage` identifies which engine step is calling (e.g. "action",
"destiny_create", "summary", "health"). The implementation may use it for
logging or routing; the simplest implementation ignores it.

Two implementations are provided:

    HttpLLM   — real HTTP client, supports Anthropic Messages, OpenAI-compatible
                completions and KoboldCpp backends. Selected by provider_format.
    EchoLLM   — returns the prompt back unchanged. Useful for smoke-testing
                the day cycle without a running model: structured stages fail
                validation and every character falls back to templates.

Callers never use an LLM directly; they go through Generator, which adds
the per-call timeout, retries, and JSON parsing.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

import httpx

from hearthwood.engine.validation import parse_json_output
from hearthwood.errors import TransportError
from hearthwood.prompts import HEALTH_PROMPT, HEALTH_SYSTEM
from hearthwood.retry import LLM_POLICY, RetryPolicy

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol — every LLM implementation must match this signature
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GenerationParams:
    max_tokens: int = 1024
    temperature: float = 0.7
    stop: tuple[str, ...] = field(default_factory=tuple)


class LLM(Protocol):
    async def __call__(
        self, stage: str, system: str, prompt: str, params: GenerationParams
    ) -> str: ...


# ---------------------------------------------------------------------------
# HttpLLM — connects to a real backend
# ---------------------------------------------------------------------------

ProviderFormat = Literal["anthropic", "openai", "koboldcpp"]

ANTHROPIC_VERSION = "2023-06-01"


class HttpLLM:
    """Async HTTP client for text-generation backends.

    Supported formats:
      "anthropic"  — POST /v1/messages  {"model", "system", "messages", ...}
                     Response: {"content": [{"type": "text", "text": "..."}]}
      "openai"     — POST /v1/completions  {"model": ..., "prompt": ...}
                     Response: {"choices": [{"text": "..."}]}
      "koboldcpp"  — POST /api/v1/generate  {"prompt": ...}
                     Response: {"results": [{"text": "..."}]}

    Args:
        provider_url:    Base URL of the backend, e.g. "https://api.anthropic.com".
        api_key:         API key, or empty string if not required.
        provider_format: Wire format to use. Defaults to "anthropic".
        model:           Model identifier (anthropic and openai formats).
        timeout:         HTTP timeout in seconds. Defaults to 30.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "anthropic",
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
        if not self._api_key:
            return headers
        if self._format == "anthropic":
            headers["x-api-key"] = self._api_key
            headers["anthropic-version"] = ANTHROPIC_VERSION
        else:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(
        self, system: str, prompt: str, params: GenerationParams
    ) -> tuple[str, dict[str, Any]]:
        """Return (url, body) for the configured format."""
        if self._format == "anthropic":
            body: dict[str, Any] = {
                "model": self._model,
                "max_tokens": params.max_tokens,
                "temperature": params.temperature,
                "system": system,
                "messages": [{"role": "user", "content": prompt}],
            }
            if params.stop:
                body["stop_sequences"] = list(params.stop)
            return f"{self._base_url}/v1/messages", body

        # Completion-style backends take a single prompt string
        full_prompt = f"{system}\n\n{prompt}" if system else prompt

        if self._format == "openai":
            body = {
                "prompt": full_prompt,
                "max_tokens": params.max_tokens,
                "temperature": params.temperature,
            }
            if self._model:
                body["model"] = self._model
            if params.stop:
                body["stop"] = list(params.stop)
            return f"{self._base_url}/v1/completions", body

        # koboldcpp
        body = {
            "prompt": full_prompt,
            "max_length": params.max_tokens,
            "temperature": params.temperature,
        }
        if params.stop:
            body["stop_sequence"] = list(params.stop)
        return f"{self._base_url}/api/v1/generate", body

    def _parse_response(self, data: dict) -> str:
        """Extract the completion text from the response body."""
        if self._format == "anthropic":
            content = data.get("content")
            if not content or content[0].get("type") != "text":
                raise LLMError("Unexpected response format from Anthropic backend")
            return content[0]["text"]

        if self._format == "openai":
            choices = data.get("choices")
            if not choices or "text" not in choices[0]:
                raise LLMError("Unexpected response format from OpenAI-compatible backend")
            return choices[0]["text"]

        results = data.get("results")
        if not results or "text" not in results[0]:
            raise LLMError("Unexpected response format from KoboldCpp backend")
        return results[0]["text"]

    async def __call__(
        self, stage: str, system: str, prompt: str, params: GenerationParams
    ) -> str:
        url, body = self._build_request(system, prompt, params)
        logger.debug("llm call stage=%s url=%s prompt_len=%d", stage, url, len(prompt))

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(
                f"LLM backend returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM backend timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise LLMError(f"LLM request failed: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise LLMError("LLM backend returned a non-JSON body") from e
        text = self._parse_response(data)
        logger.debug("llm response stage=%s len=%d", stage, len(text))
        return text


# ---------------------------------------------------------------------------
# EchoLLM — returns the prompt unchanged; useful for cycle smoke tests
# ---------------------------------------------------------------------------

class EchoLLM:
    """Returns the user prompt as-is. No network calls."""

    async def __call__(
        self, stage: str, system: str, prompt: str, params: GenerationParams
    ) -> str:
        logger.debug("EchoLLM stage=%s prompt_len=%d", stage, len(prompt))
        return prompt


# ---------------------------------------------------------------------------
# Generator — timeout, retries, and JSON parsing around an LLM
# ---------------------------------------------------------------------------

JSON_ONLY_INSTRUCTION = (
    "IMPORTANT: Respond with valid JSON only. No markdown, no code fences, just raw JSON."
)

HEALTH_PARAMS = GenerationParams(max_tokens=10, temperature=0.0)


class Generator:
    """The handle the engine uses to talk to the generative collaborator.

    Each attempt is raced against `timeout`; a timeout counts as a retryable
    LLMError. After `policy.max_attempts` failures the last LLMError
    propagates and the caller applies its own fallback.
    """

    def __init__(
        self,
        llm: LLM,
        timeout: float = 10.0,
        policy: RetryPolicy = LLM_POLICY,
        health_timeout: float = 5.0,
    ) -> None:
        self.llm = llm
        self.timeout = timeout
        self.policy = policy
        self.health_timeout = health_timeout

    async def _attempt(
        self, stage: str, system: str, prompt: str, params: GenerationParams, timeout: float
    ) -> str:
        try:
            return await asyncio.wait_for(self.llm(stage, system, prompt, params), timeout)
        except asyncio.TimeoutError as e:
            raise LLMError(f"LLM call timed out after {timeout}s (stage={stage})") from e

    async def generate_text(
        self, stage: str, system: str, prompt: str, params: GenerationParams | None = None
    ) -> str:
        params = params or GenerationParams()

        async def _call() -> str:
            return await self._attempt(stage, system, prompt, params, self.timeout)

        return await self.policy.run(_call, retry_on=(LLMError,))

    async def generate_json(
        self, stage: str, system: str, prompt: str, params: GenerationParams | None = None
    ) -> Any:
        """Generate and parse a JSON value. Callers must validate its shape."""
        text = await self.generate_text(stage, f"{system}\n\n{JSON_ONLY_INSTRUCTION}", prompt, params)
        return parse_json_output(text)

    async def check_health(self) -> bool:
        """One short attempt; never raises."""
        try:
            text = await self._attempt(
                "health", HEALTH_SYSTEM, HEALTH_PROMPT, HEALTH_PARAMS, self.health_timeout
            )
        except Exception as e:
            logger.warning("LLM health check failed: %s", e)
            return False
        return bool(text.strip())


# ---------------------------------------------------------------------------
# LLMError — raised for all connection, protocol, and timeout failures
# ---------------------------------------------------------------------------

class LLMError(TransportError):
    """Raised when the LLM backend cannot be reached or returns an error."""
