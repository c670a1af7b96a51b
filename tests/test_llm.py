"""
Tests for the LLM provider clients.

The SDK clients are replaced with mocks; these tests cover transcript
conversion, response parsing and error mapping.
"""

import json
import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from calendar_assistant.conversation.transcript import ImagePart, ToolCall, Turn
from calendar_assistant.core.llm import ToolSpec

TOOLS = [
    ToolSpec(
        name="create_task",
        description="Create a task",
        parameters={
            "type": "object",
            "properties": {"title": {"type": "string"}, "tags": {"type": "array", "items": {"type": "string"}}},
            "required": ["title"],
        },
    )
]


def conversation():
    call = ToolCall(name="create_task", arguments={"title": "Buy milk"}, call_id="call_1")
    return [
        Turn.user("remind me to buy milk", (ImagePart(mime_type="image/png", data=b"png"),)),
        Turn.model(call),
        Turn.tool(call, {"status": "ok", "taskId": "task-1"}),
        Turn.model("Task created: Buy milk"),
    ]


class TestGroqClient:
    """Tests for GroqClient."""

    def test_message_conversion(self):
        from calendar_assistant.core.llm import GroqClient

        messages = GroqClient._to_messages("policy", conversation())

        assert messages[0] == {"role": "system", "content": "policy"}
        assert messages[1]["role"] == "user"
        assert messages[1]["content"][0] == {"type": "text", "text": "remind me to buy milk"}
        assert messages[1]["content"][1]["image_url"]["url"] == "data:image/png;base64,cG5n"
        assert messages[2]["tool_calls"][0]["id"] == "call_1"
        assert json.loads(messages[2]["tool_calls"][0]["function"]["arguments"]) == {"title": "Buy milk"}
        assert messages[3] == {
            "role": "tool",
            "tool_call_id": "call_1",
            "content": json.dumps({"status": "ok", "taskId": "task-1"}),
        }
        assert messages[4] == {"role": "assistant", "content": "Task created: Buy milk"}

    @pytest.mark.asyncio
    async def test_tool_call_response(self):
        from calendar_assistant.core.llm import GroqClient, LLMProvider

        tool_call = SimpleNamespace(
            id="call_9",
            function=SimpleNamespace(name="create_task", arguments='{"title": "Buy milk"}'),
        )
        completion = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=None, tool_calls=[tool_call]), finish_reason="tool_calls")],
            usage=SimpleNamespace(total_tokens=42),
        )
        client = GroqClient(api_key="test-key")
        client._async_client = MagicMock()
        client._async_client.chat.completions.create = AsyncMock(return_value=completion)

        response = await client.agenerate("policy", [Turn.user("buy milk")], TOOLS)

        assert response.provider == LLMProvider.GROQ
        assert response.text is None
        assert response.function_call == ToolCall(name="create_task", arguments={"title": "Buy milk"}, call_id="call_9")
        assert response.tokens_used == 42
        params = client._async_client.chat.completions.create.call_args.kwargs
        assert params["tool_choice"] == "auto"
        assert params["tools"][0]["function"]["name"] == "create_task"

    @pytest.mark.asyncio
    async def test_invalid_arguments(self):
        from calendar_assistant.core.errors import MalformedResponse
        from calendar_assistant.core.llm import GroqClient

        tool_call = SimpleNamespace(id="call_9", function=SimpleNamespace(name="create_task", arguments="{title"))
        completion = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=None, tool_calls=[tool_call]), finish_reason="tool_calls")],
            usage=None,
        )
        client = GroqClient(api_key="test-key")
        client._async_client = MagicMock()
        client._async_client.chat.completions.create = AsyncMock(return_value=completion)

        with pytest.raises(MalformedResponse) as exc_info:
            await client.agenerate("policy", [Turn.user("buy milk")], TOOLS)
        assert exc_info.value.raw == "{title"

    @pytest.mark.asyncio
    async def test_api_error_becomes_provider_error(self):
        import groq

        from calendar_assistant.core.errors import ProviderError
        from calendar_assistant.core.llm import GroqClient

        client = GroqClient(api_key="test-key")
        client._async_client = MagicMock()
        client._async_client.chat.completions.create = AsyncMock(
            side_effect=groq.APIConnectionError(request=httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions"))
        )

        with pytest.raises(ProviderError) as exc_info:
            await client.agenerate("policy", [Turn.user("hi")], TOOLS)
        assert "Groq" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_missing_key(self):
        from calendar_assistant.core.errors import ProviderError
        from calendar_assistant.core.llm import GroqClient

        client = GroqClient(api_key="")
        assert not client.is_available()

        with pytest.raises(ProviderError):
            await client.agenerate("policy", [Turn.user("hi")], TOOLS)


class TestGeminiClient:
    """Tests for GeminiClient."""

    def test_schema_types_are_upper_case(self):
        from calendar_assistant.core.llm import _gemini_schema

        schema = _gemini_schema(TOOLS[0].parameters)

        assert schema["type"] == "OBJECT"
        assert schema["properties"]["title"]["type"] == "STRING"
        assert schema["properties"]["tags"]["items"]["type"] == "STRING"
        assert schema["required"] == ["title"]

    def test_content_conversion(self):
        from calendar_assistant.core.llm import GeminiClient

        contents = GeminiClient._to_contents(conversation())

        assert [c.role for c in contents] == ["user", "model", "user", "model"]
        assert contents[0].parts[0].text == "remind me to buy milk"
        assert contents[0].parts[1].inline_data.mime_type == "image/png"
        assert contents[1].parts[0].function_call.name == "create_task"
        assert contents[2].parts[0].function_response.response == {"status": "ok", "taskId": "task-1"}
        assert contents[3].parts[0].text == "Task created: Buy milk"

    @pytest.mark.asyncio
    async def test_function_call_response(self):
        from calendar_assistant.core.llm import GeminiClient, LLMProvider

        part = SimpleNamespace(
            function_call=SimpleNamespace(id=None, name="find_contacts", args={"query": "Anna"}),
            text=None,
        )
        response = SimpleNamespace(
            candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]), finish_reason="STOP")],
            usage_metadata=SimpleNamespace(total_token_count=17),
        )
        client = GeminiClient(api_key="test-key")
        client._client = MagicMock()
        client._client.aio.models.generate_content = AsyncMock(return_value=response)

        result = await client.agenerate("policy", [Turn.user("find Anna")], TOOLS)

        assert result.provider == LLMProvider.GEMINI
        assert result.function_call.name == "find_contacts"
        assert result.function_call.arguments == {"query": "Anna"}
        assert result.function_call.call_id.startswith("call_")
        assert result.tokens_used == 17
        config = client._client.aio.models.generate_content.call_args.kwargs["config"]
        assert config.system_instruction == "policy"
        assert config.automatic_function_calling.disable is True

    @pytest.mark.asyncio
    async def test_text_response(self):
        from calendar_assistant.core.llm import GeminiClient

        parts = [SimpleNamespace(function_call=None, text="Hello "), SimpleNamespace(function_call=None, text="there")]
        response = SimpleNamespace(
            candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts), finish_reason="STOP")],
            usage_metadata=None,
        )
        client = GeminiClient(api_key="test-key")
        client._client = MagicMock()
        client._client.aio.models.generate_content = AsyncMock(return_value=response)

        result = await client.agenerate("policy", [Turn.user("hi")], [])

        assert result.text == "Hello there"
        assert result.function_call is None
        assert result.tokens_used is None

    @pytest.mark.asyncio
    async def test_network_error_becomes_provider_error(self):
        from calendar_assistant.core.errors import ProviderError
        from calendar_assistant.core.llm import GeminiClient

        client = GeminiClient(api_key="test-key")
        client._client = MagicMock()
        client._client.aio.models.generate_content = AsyncMock(side_effect=httpx.ConnectError("Connection refused"))

        with pytest.raises(ProviderError) as exc_info:
            await client.agenerate("policy", [Turn.user("hi")], TOOLS)
        assert exc_info.value.message == "Unable to reach Gemini. Please check your internet connection."


class TestCreateClient:
    """Tests for create_llm_client."""

    def test_requires_key(self):
        from calendar_assistant.core.config import LLMConfig
        from calendar_assistant.core.errors import ConfigurationError
        from calendar_assistant.core.llm import create_llm_client

        with pytest.raises(ConfigurationError):
            create_llm_client(LLMConfig(), None)

    def test_gemini_default(self):
        from calendar_assistant.core.config import LLMConfig
        from calendar_assistant.core.llm import GeminiClient, create_llm_client

        client = create_llm_client(LLMConfig(), "key")

        assert isinstance(client, GeminiClient)
        assert client.model == "gemini-2.5-flash"

    def test_groq_replaces_gemini_model(self):
        from calendar_assistant.core.config import LLMConfig
        from calendar_assistant.core.llm import DEFAULT_MODELS, GroqClient, LLMProvider, create_llm_client

        client = create_llm_client(LLMConfig(provider="groq", timeout=10), "key")

        assert isinstance(client, GroqClient)
        assert client.model == DEFAULT_MODELS[LLMProvider.GROQ]
        assert client.timeout == 10


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
