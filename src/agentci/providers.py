from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from agentci.config import Settings
from agentci.demo import DemoProvider
from agentci.errors import ConfigError, ProviderError
from agentci.models import ChatRequest, ChatResponse, ToolCall, Usage
from agentci.suite import PROVIDER_NAMES
from agentci.template import get_by_path, render_request_template

logger = logging.getLogger(__name__)

OPENAI_BASE = "https://api.openai.com/v1"
ANTHROPIC_BASE = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"


class Provider(Protocol):
    name: str

    async def chat(self, request: ChatRequest) -> ChatResponse: ...


def _error_body(response: httpx.Response, limit: int) -> str:
    text = response.text
    return text[:limit] + ("..." if len(text) > limit else "")


async def _post(
    url: str,
    payload: Any,
    headers: dict[str, str],
    timeout: float | None,
    transport: httpx.AsyncBaseTransport | None,
) -> httpx.Response:
    logger.debug("POST %s", url)
    async with httpx.AsyncClient(timeout=httpx.Timeout(timeout), transport=transport) as client:
        return await client.post(url, json=payload, headers=headers)


@dataclass
class OpenAIProvider:
    api_key: str
    base_url: str | None = None
    timeout: float | None = None
    transport: httpx.AsyncBaseTransport | None = None
    name: str = "openai"

    async def chat(self, request: ChatRequest) -> ChatResponse:
        messages: list[dict[str, str]] = []
        if request.system:
            messages.append({"role": "system", "content": request.system})
        messages.append({"role": "user", "content": request.prompt})

        payload: dict[str, Any] = {
            "model": request.model,
            "messages": messages,
            "temperature": request.temperature if request.temperature is not None else 0.0,
            "max_tokens": request.max_tokens if request.max_tokens is not None else 500,
        }
        if request.tools:
            payload["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": tool.parameters,
                    },
                }
                for tool in request.tools
            ]

        url = f"{(self.base_url or OPENAI_BASE).rstrip('/')}/chat/completions"
        response = await _post(
            url,
            payload,
            {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"},
            self.timeout,
            self.transport,
        )
        if response.is_error:
            raise ProviderError(f"OpenAI API error: {response.status_code} {_error_body(response, 500)}")

        data = response.json()
        message = data["choices"][0]["message"]
        tool_calls = [
            ToolCall(
                name=call["function"]["name"],
                arguments=json.loads(call["function"]["arguments"]),
            )
            for call in message.get("tool_calls") or []
        ]
        usage = data.get("usage")
        return ChatResponse(
            content=message.get("content") or "",
            tool_calls=tool_calls,
            usage=Usage(
                prompt_tokens=int(usage.get("prompt_tokens") or 0),
                completion_tokens=int(usage.get("completion_tokens") or 0),
            )
            if usage
            else None,
            model=data.get("model"),
        )


@dataclass
class AnthropicProvider:
    api_key: str
    timeout: float | None = None
    transport: httpx.AsyncBaseTransport | None = None
    name: str = "anthropic"

    async def chat(self, request: ChatRequest) -> ChatResponse:
        payload: dict[str, Any] = {
            "model": request.model,
            "max_tokens": request.max_tokens if request.max_tokens is not None else 500,
            "messages": [{"role": "user", "content": request.prompt}],
        }
        if request.system:
            payload["system"] = request.system
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.tools:
            payload["tools"] = [
                {"name": tool.name, "description": tool.description, "input_schema": tool.parameters}
                for tool in request.tools
            ]

        response = await _post(
            f"{ANTHROPIC_BASE}/messages",
            payload,
            {
                "x-api-key": self.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "Content-Type": "application/json",
            },
            self.timeout,
            self.transport,
        )
        if response.is_error:
            raise ProviderError(f"Anthropic API error: {response.status_code} {_error_body(response, 500)}")

        data = response.json()
        content = ""
        tool_calls: list[ToolCall] = []
        for block in data.get("content", []):
            if block.get("type") == "text":
                content += block.get("text", "")
            elif block.get("type") == "tool_use":
                tool_calls.append(ToolCall(name=block["name"], arguments=block.get("input") or {}))

        usage = data.get("usage") or {}
        return ChatResponse(
            content=content,
            tool_calls=tool_calls,
            usage=Usage(
                prompt_tokens=int(usage.get("input_tokens") or 0),
                completion_tokens=int(usage.get("output_tokens") or 0),
            ),
            model=data.get("model"),
        )


@dataclass
class HttpProvider:
    """POST the request to any JSON endpoint and read the reply from ``response_path``."""

    base_url: str
    headers: dict[str, str] = field(default_factory=dict)
    request_template: dict[str, Any] | None = None
    response_path: str = "content"
    timeout: float | None = None
    transport: httpx.AsyncBaseTransport | None = None
    name: str = "http"

    def build_body(self, request: ChatRequest) -> Any:
        tools = [tool.model_dump() for tool in request.tools] if request.tools else None
        if self.request_template is not None:
            values = {
                "prompt": request.prompt,
                "system": request.system,
                "model": request.model,
                "temperature": request.temperature,
                "max_tokens": request.max_tokens,
                "tools": tools,
            }
            return render_request_template(self.request_template, values)

        body: dict[str, Any] = {"prompt": request.prompt, "model": request.model}
        if request.system is not None:
            body["system"] = request.system
        if request.temperature is not None:
            body["temperature"] = request.temperature
        if request.max_tokens is not None:
            body["max_tokens"] = request.max_tokens
        if tools:
            body["tools"] = tools
        return body

    async def chat(self, request: ChatRequest) -> ChatResponse:
        response = await _post(
            self.base_url,
            self.build_body(request),
            {"Content-Type": "application/json", **self.headers},
            self.timeout,
            self.transport,
        )
        if response.is_error:
            detail = _error_body(response, 500)
            raise ProviderError(
                f"HTTP provider error: {response.status_code} {response.reason_phrase}"
                + (f" - {detail}" if detail else "")
            )

        data = response.json()
        raw_content = get_by_path(data, self.response_path)
        if raw_content is None:
            content = ""
        elif isinstance(raw_content, str):
            content = raw_content
        else:
            content = json.dumps(raw_content)

        tool_calls: list[ToolCall] = []
        usage = None
        model = None
        if isinstance(data, dict):
            if isinstance(data.get("tool_calls"), list):
                tool_calls = [ToolCall.model_validate(call) for call in data["tool_calls"]]
            if isinstance(data.get("usage"), dict):
                usage = Usage.model_validate(data["usage"])
            if isinstance(data.get("model"), str):
                model = data["model"]
        return ChatResponse(content=content, tool_calls=tool_calls, usage=usage, model=model)


def create_provider(
    name: str,
    *,
    base_url: str | None = None,
    headers: dict[str, str] | None = None,
    request_template: dict[str, Any] | None = None,
    response_path: str | None = None,
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Provider:
    if name == "demo":
        return DemoProvider()
    if name not in PROVIDER_NAMES:
        raise ConfigError(f"Unknown provider: {name}")

    settings = settings or Settings()
    if name == "http":
        if not base_url:
            raise ConfigError("The http provider requires a base_url")
        return HttpProvider(
            base_url=base_url,
            headers=dict(headers or {}),
            request_template=request_template,
            response_path=response_path or "content",
            timeout=settings.timeout_seconds,
            transport=transport,
        )
    if name == "openai":
        if not settings.openai_api_key:
            raise ProviderError("OPENAI_API_KEY is not set (required for the openai provider)")
        return OpenAIProvider(
            api_key=settings.openai_api_key,
            base_url=base_url,
            timeout=settings.timeout_seconds,
            transport=transport,
        )
    if not settings.anthropic_api_key:
        raise ProviderError("ANTHROPIC_API_KEY is not set (required for the anthropic provider)")
    return AnthropicProvider(
        api_key=settings.anthropic_api_key,
        timeout=settings.timeout_seconds,
        transport=transport,
    )
