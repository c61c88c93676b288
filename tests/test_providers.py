"""
Tests for the chat provider adapters and the provider factory.
"""

import json

import pytest

from agentci.config import Settings
from agentci.errors import ConfigError, ProviderError
from agentci.models import ChatRequest, ToolDefinition
from agentci.providers import (
    AnthropicProvider,
    HttpProvider,
    OpenAIProvider,
    create_provider,
)

BASE_URL = "http://localhost:8000/chat"

WEATHER_TOOL = ToolDefinition(
    name="get_weather",
    description="Look up the weather",
    parameters={"type": "object", "properties": {"city": {"type": "string"}}},
)


@pytest.fixture
def request_():
    return ChatRequest(
        model="my-agent",
        prompt="What is 2+2?",
        system="You are helpful.",
        temperature=0,
        max_tokens=500,
    )


class TestOpenAIProvider:
    @pytest.mark.asyncio
    async def test_builds_messages_and_reads_choice(self, mock_http, request_):
        transport, requests = mock_http(
            {
                "model": "gpt-4o-mini",
                "choices": [{"message": {"content": "4"}}],
                "usage": {"prompt_tokens": 12, "completion_tokens": 1},
            }
        )
        provider = OpenAIProvider(api_key="sk-test", transport=transport)
        response = await provider.chat(request_)

        assert response.content == "4"
        assert response.tool_calls == []
        assert response.usage.prompt_tokens == 12
        assert response.usage.completion_tokens == 1

        sent = requests[0]
        assert str(sent.url) == "https://api.openai.com/v1/chat/completions"
        assert sent.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(sent.content)
        assert body["messages"] == [
            {"role": "system", "content": "You are helpful."},
            {"role": "user", "content": "What is 2+2?"},
        ]
        assert body["temperature"] == 0
        assert body["max_tokens"] == 500
        assert "tools" not in body

    @pytest.mark.asyncio
    async def test_custom_base_url(self, mock_http, request_):
        transport, requests = mock_http({"choices": [{"message": {"content": "ok"}}]})
        provider = OpenAIProvider(api_key="k", base_url="http://proxy.local/v1/", transport=transport)
        await provider.chat(request_)
        assert str(requests[0].url) == "http://proxy.local/v1/chat/completions"

    @pytest.mark.asyncio
    async def test_tools_and_tool_calls(self, mock_http):
        transport, requests = mock_http(
            {
                "choices": [
                    {
                        "message": {
                            "content": None,
                            "tool_calls": [
                                {"function": {"name": "get_weather", "arguments": '{"city": "Paris"}'}}
                            ],
                        }
                    }
                ]
            }
        )
        provider = OpenAIProvider(api_key="k", transport=transport)
        response = await provider.chat(ChatRequest(model="m", prompt="weather?", tools=[WEATHER_TOOL]))

        assert response.content == ""
        assert response.tool_calls[0].name == "get_weather"
        assert response.tool_calls[0].arguments == {"city": "Paris"}
        tools = json.loads(requests[0].content)["tools"]
        assert tools[0]["type"] == "function"
        assert tools[0]["function"]["name"] == "get_weather"
        assert tools[0]["function"]["parameters"]["properties"]["city"]["type"] == "string"

    @pytest.mark.asyncio
    async def test_malformed_tool_arguments_raise(self, mock_http, request_):
        transport, _ = mock_http(
            {"choices": [{"message": {"content": "", "tool_calls": [{"function": {"name": "x", "arguments": "{oops"}}]}}]}
        )
        provider = OpenAIProvider(api_key="k", transport=transport)
        with pytest.raises(ValueError):
            await provider.chat(request_)

    @pytest.mark.asyncio
    async def test_error_status_raises(self, mock_http, request_):
        transport, _ = mock_http({"error": {"message": "bad key"}}, status=401)
        provider = OpenAIProvider(api_key="k", transport=transport)
        with pytest.raises(ProviderError, match="401"):
            await provider.chat(request_)


class TestAnthropicProvider:
    @pytest.mark.asyncio
    async def test_request_shape_and_blocks(self, mock_http, request_):
        transport, requests = mock_http(
            {
                "model": "claude-test",
                "content": [
                    {"type": "text", "text": "Let me check. "},
                    {"type": "tool_use", "name": "get_weather", "input": {"city": "Paris"}},
                    {"type": "text", "text": "Done."},
                ],
                "usage": {"input_tokens": 20, "output_tokens": 7},
            }
        )
        provider = AnthropicProvider(api_key="ak", transport=transport)
        response = await provider.chat(request_.model_copy(update={"tools": [WEATHER_TOOL]}))

        assert response.content == "Let me check. Done."
        assert response.tool_calls[0].name == "get_weather"
        assert response.tool_calls[0].arguments == {"city": "Paris"}
        assert response.usage.prompt_tokens == 20
        assert response.usage.completion_tokens == 7

        sent = requests[0]
        assert str(sent.url) == "https://api.anthropic.com/v1/messages"
        assert sent.headers["x-api-key"] == "ak"
        assert sent.headers["anthropic-version"] == "2023-06-01"
        body = json.loads(sent.content)
        assert body["system"] == "You are helpful."
        assert body["messages"] == [{"role": "user", "content": "What is 2+2?"}]
        assert body["tools"][0]["input_schema"] == WEATHER_TOOL.parameters

    @pytest.mark.asyncio
    async def test_system_omitted_when_absent(self, mock_http):
        transport, requests = mock_http({"content": [{"type": "text", "text": "hi"}]})
        provider = AnthropicProvider(api_key="ak", transport=transport)
        await provider.chat(ChatRequest(model="m", prompt="hello"))
        assert "system" not in json.loads(requests[0].content)

    @pytest.mark.asyncio
    async def test_error_status_raises(self, mock_http, request_):
        transport, _ = mock_http(status=529, text="overloaded")
        provider = AnthropicProvider(api_key="ak", transport=transport)
        with pytest.raises(ProviderError, match="overloaded"):
            await provider.chat(request_)


class TestHttpProviderRequest:
    @pytest.mark.asyncio
    async def test_default_body(self, mock_http, request_):
        transport, requests = mock_http({"content": "4"})
        provider = HttpProvider(base_url=BASE_URL, transport=transport)
        await provider.chat(request_)

        sent = requests[0]
        assert str(sent.url) == BASE_URL
        assert sent.method == "POST"
        assert sent.headers["Content-Type"] == "application/json"
        assert json.loads(sent.content) == {
            "prompt": "What is 2+2?",
            "model": "my-agent",
            "system": "You are helpful.",
            "temperature": 0,
            "max_tokens": 500,
        }

    @pytest.mark.asyncio
    async def test_default_body_omits_unset_fields(self, mock_http):
        transport, requests = mock_http({"content": "hi"})
        provider = HttpProvider(base_url=BASE_URL, transport=transport)
        await provider.chat(ChatRequest(model="m", prompt="hello", temperature=None, max_tokens=None))
        assert json.loads(requests[0].content) == {"prompt": "hello", "model": "m"}

    @pytest.mark.asyncio
    async def test_custom_headers(self, mock_http, request_):
        transport, requests = mock_http({"content": "ok"})
        provider = HttpProvider(
            base_url=BASE_URL,
            headers={"Authorization": "Bearer my-token", "X-Custom": "value"},
            transport=transport,
        )
        await provider.chat(request_)
        headers = requests[0].headers
        assert headers["Authorization"] == "Bearer my-token"
        assert headers["X-Custom"] == "value"
        assert headers["Content-Type"] == "application/json"

    @pytest.mark.asyncio
    async def test_request_template(self, mock_http, request_):
        transport, requests = mock_http({"content": "ok"})
        provider = HttpProvider(
            base_url=BASE_URL,
            request_template={
                "messages": [{"role": "user", "content": "{{prompt}}"}],
                "settings": {"temp": "{{temperature}}", "limit": "{{max_tokens}}"},
                "label": "model={{model}} system={{missing}}!",
                "stream": False,
                "n": 1,
            },
            transport=transport,
        )
        await provider.chat(request_)

        body = json.loads(requests[0].content)
        assert body["messages"][0]["content"] == "What is 2+2?"
        assert body["settings"]["temp"] == 0
        assert isinstance(body["settings"]["limit"], int)
        assert body["label"] == "model=my-agent system=!"
        assert body["stream"] is False
        assert body["n"] == 1


class TestHttpProviderResponse:
    @pytest.mark.asyncio
    async def test_default_path(self, mock_http, request_):
        transport, _ = mock_http({"content": "The answer is 4"})
        response = await HttpProvider(base_url=BASE_URL, transport=transport).chat(request_)
        assert response.content == "The answer is 4"

    @pytest.mark.asyncio
    async def test_nested_path(self, mock_http, request_):
        transport, _ = mock_http({"data": {"reply": {"text": "four"}}})
        provider = HttpProvider(base_url=BASE_URL, response_path="data.reply.text", transport=transport)
        assert (await provider.chat(request_)).content == "four"

    @pytest.mark.asyncio
    async def test_missing_path_is_empty(self, mock_http, request_):
        transport, _ = mock_http({"other": "stuff"})
        provider = HttpProvider(base_url=BASE_URL, response_path="data.missing", transport=transport)
        assert (await provider.chat(request_)).content == ""

    @pytest.mark.asyncio
    async def test_tool_calls_model_and_usage(self, mock_http, request_):
        transport, _ = mock_http(
            {
                "content": "",
                "model": "custom-v1",
                "tool_calls": [{"name": "search", "arguments": {"q": "test"}}],
                "usage": {"prompt_tokens": 10, "completion_tokens": 5},
            }
        )
        response = await HttpProvider(base_url=BASE_URL, transport=transport).chat(request_)
        assert response.tool_calls[0].name == "search"
        assert response.tool_calls[0].arguments == {"q": "test"}
        assert response.model == "custom-v1"
        assert response.usage.prompt_tokens == 10
        assert response.usage.completion_tokens == 5

    @pytest.mark.asyncio
    async def test_no_tool_calls(self, mock_http, request_):
        transport, _ = mock_http({"content": "hi"})
        response = await HttpProvider(base_url=BASE_URL, transport=transport).chat(request_)
        assert response.tool_calls == []
        assert response.usage is None

    @pytest.mark.asyncio
    async def test_error_status_includes_code_and_body(self, mock_http, request_):
        transport, _ = mock_http({"error": "unauthorized"}, status=401)
        provider = HttpProvider(base_url=BASE_URL, transport=transport)
        with pytest.raises(ProviderError) as excinfo:
            await provider.chat(request_)
        assert "HTTP provider error: 401" in str(excinfo.value)
        assert "unauthorized" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_error_body_is_truncated(self, mock_http, request_):
        transport, _ = mock_http(status=500, text="x" * 5000)
        provider = HttpProvider(base_url=BASE_URL, transport=transport)
        with pytest.raises(ProviderError) as excinfo:
            await provider.chat(request_)
        assert len(str(excinfo.value)) < 600


class TestCreateProvider:
    def test_unknown_provider(self):
        with pytest.raises(ConfigError, match="Unknown provider: cohere"):
            create_provider("cohere", settings=Settings())

    def test_openai_requires_key(self):
        with pytest.raises(ProviderError, match="OPENAI_API_KEY"):
            create_provider("openai", settings=Settings())

    def test_anthropic_requires_key(self):
        with pytest.raises(ProviderError, match="ANTHROPIC_API_KEY"):
            create_provider("anthropic", settings=Settings())

    def test_http_requires_base_url(self):
        with pytest.raises(ConfigError, match="base_url"):
            create_provider("http", settings=Settings())

    def test_builds_each_provider(self):
        settings = Settings(openai_api_key="o", anthropic_api_key="a")
        assert isinstance(create_provider("openai", base_url="http://x/v1", settings=settings), OpenAIProvider)
        assert isinstance(create_provider("anthropic", settings=settings), AnthropicProvider)
        http = create_provider("http", base_url=BASE_URL, response_path="out", settings=settings)
        assert isinstance(http, HttpProvider)
        assert http.response_path == "out"

    def test_reads_credentials_from_environment(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "from-env")
        provider = create_provider("openai")
        assert provider.api_key == "from-env"
