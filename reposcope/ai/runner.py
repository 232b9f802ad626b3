"""Adapter around OpenAI-compatible chat-completions endpoints."""

from __future__ import annotations

import http.client
import json
import os
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from ..errors import CollaboratorError
from ..models import TokenUsage

_AUTO_API_KEY = object()


@dataclass
class LLMRequest:
    """Represents one inference request for the chat-completions endpoint."""

    prompt: str
    system: Optional[str]
    model: str
    temperature: Optional[float]
    max_tokens: Optional[int]
    base_url: str
    api_key: Optional[str]
    request_timeout: Optional[float]
    json_mode: bool = False


@dataclass
class LLMResponse:
    """Response text plus the token usage reported by the endpoint."""

    text: str
    usage: TokenUsage = TokenUsage()


class LLMRunner:
    """Executes prompts against the configured chat-completions endpoint."""

    DEFAULT_MODEL = "gpt-4o-mini"
    DEFAULT_BASE_URL = "https://api.openai.com/v1"
    ENV_MODEL_KEYS = ("REPOSCOPE_LLM_MODEL", "OPENAI_MODEL")
    ENV_BASE_URL_KEYS = ("REPOSCOPE_LLM_BASE_URL", "OPENAI_BASE_URL")
    ENV_API_KEY_KEYS = ("REPOSCOPE_LLM_API_KEY", "OPENAI_API_KEY")

    def __init__(
        self,
        model: str | None = None,
        *,
        base_url: str | None = None,
        temperature: Optional[float] = 0.2,
        max_tokens: Optional[int] = None,
        api_key: str | None | object = _AUTO_API_KEY,
        request_timeout: Optional[float] = 120.0,
        runner: Callable[[LLMRequest], LLMResponse] | None = None,
    ) -> None:
        self.model = model or self._first_env_value(self.ENV_MODEL_KEYS) or self.DEFAULT_MODEL
        self.base_url = (
            base_url or self._first_env_value(self.ENV_BASE_URL_KEYS) or self.DEFAULT_BASE_URL
        ).rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.api_key = self._resolve_api_key(api_key)
        self.request_timeout = request_timeout
        self._runner = runner or self._http_runner

    def run(
        self, prompt: str, *, system: str | None = None, json_mode: bool = False
    ) -> LLMResponse:
        """Send the prompt to the configured model and return its response."""
        request = LLMRequest(
            prompt=prompt,
            system=system,
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            base_url=self.base_url,
            api_key=self.api_key,
            request_timeout=self.request_timeout,
            json_mode=json_mode,
        )
        return self._runner(request)

    @staticmethod
    def _http_runner(request: LLMRequest) -> LLMResponse:
        endpoint = f"{request.base_url}/chat/completions"
        payload: dict[str, object] = {
            "model": request.model,
            "messages": LLMRunner._build_messages(request.system, request.prompt),
        }
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.max_tokens is not None:
            payload["max_tokens"] = request.max_tokens
        if request.json_mode:
            payload["response_format"] = {"type": "json_object"}

        data = json.dumps(payload).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if request.api_key:
            headers["Authorization"] = f"Bearer {request.api_key}"

        http_request = Request(endpoint, data=data, headers=headers, method="POST")
        timeout = request.request_timeout or 120.0

        try:
            with urlopen(http_request, timeout=timeout) as response:  # type: ignore[arg-type]
                raw = response.read()
        except HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="ignore") if hasattr(exc, "read") else ""
            message = detail.strip() or exc.reason
            raise CollaboratorError(
                f"LLM request failed with status {exc.code}: {message}"
            ) from exc
        except URLError as exc:
            raise CollaboratorError(f"LLM request failed: {exc.reason}") from exc
        except (OSError, http.client.HTTPException) as exc:
            raise CollaboratorError(f"LLM request failed: {exc}") from exc

        try:
            response_payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise CollaboratorError("LLM endpoint returned invalid JSON") from exc
        if not isinstance(response_payload, dict):
            raise CollaboratorError("LLM endpoint returned an unexpected payload")

        content = LLMRunner._extract_content(response_payload)
        if not content:
            raise CollaboratorError("LLM endpoint returned an empty response")
        return LLMResponse(
            text=content.strip(), usage=LLMRunner._extract_usage(response_payload)
        )

    @staticmethod
    def _build_messages(system: str | None, prompt: str) -> list[dict[str, str]]:
        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return messages

    @staticmethod
    def _extract_content(payload: dict[str, Any]) -> str:
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            return ""
        first = choices[0]
        if not isinstance(first, dict):
            return ""
        message = first.get("message")
        if isinstance(message, dict):
            content = message.get("content")
            if isinstance(content, str):
                return content
        text = first.get("text")
        if isinstance(text, str):
            return text
        return ""

    @staticmethod
    def _extract_usage(payload: dict[str, Any]) -> TokenUsage:
        usage = payload.get("usage")
        if not isinstance(usage, dict):
            return TokenUsage()
        prompt_tokens = usage.get("prompt_tokens")
        completion_tokens = usage.get("completion_tokens")
        return TokenUsage(
            input_tokens=prompt_tokens if isinstance(prompt_tokens, int) else 0,
            output_tokens=completion_tokens if isinstance(completion_tokens, int) else 0,
        )

    def _resolve_api_key(self, api_key: str | None | object) -> str | None:
        if api_key is _AUTO_API_KEY:
            return self._first_env_value(self.ENV_API_KEY_KEYS)
        return api_key  # type: ignore[return-value]

    @staticmethod
    def _first_env_value(keys: Sequence[str]) -> str | None:
        for key in keys:
            value = os.getenv(key)
            if value:
                return value
        return None


__all__ = ["LLMRequest", "LLMResponse", "LLMRunner"]
