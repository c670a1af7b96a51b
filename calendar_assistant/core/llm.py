"""
LLM Integration Module for the calendar assistant.

Provides one interface over the supported providers for a single
function-calling request: a system instruction, the replayed transcript and
a set of tool declarations go in, text or one function call comes out.

Supported providers:
- Gemini (default, via google-genai)
- Groq (OpenAI-style tool calls)

Failures of any kind are raised as ProviderError; nothing is retried here.
"""

from __future__ import annotations

import base64
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx
from groq import APIError as GroqAPIError
from groq import AsyncGroq
from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from loguru import logger

from ..conversation.transcript import ToolCall, Turn, TurnRole
from .errors import ConfigurationError, MalformedResponse, ProviderError, handle_api_error


class LLMProvider(Enum):
    """Supported LLM providers."""
    GEMINI = "gemini"
    GROQ = "groq"


# Default model per provider when the configured one belongs to another
DEFAULT_MODELS = {
    LLMProvider.GEMINI: "gemini-2.5-flash",
    LLMProvider.GROQ: "llama-3.3-70b-versatile",
}


@dataclass
class ToolSpec:
    """A function the model may call. `parameters` is a JSON schema object."""
    name: str
    description: str
    parameters: Dict[str, Any]


@dataclass
class LLMResponse:
    """Response from an LLM: prose, a function call, or both."""
    text: Optional[str]
    function_call: Optional[ToolCall]
    provider: LLMProvider
    model: str
    tokens_used: Optional[int] = None
    finish_reason: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class BaseLLMClient(ABC):
    """Abstract base class for LLM clients."""

    def __init__(
        self,
        model: str,
        temperature: float = 0.2,
        max_tokens: int = 2048,
        timeout: int = 30,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

    @property
    @abstractmethod
    def provider(self) -> LLMProvider:
        """Get the provider type."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the provider is usable."""
        pass

    @abstractmethod
    async def agenerate(
        self,
        system: str,
        turns: List[Turn],
        tools: List[ToolSpec],
    ) -> LLMResponse:
        """
        Run one request.

        Raises:
            ProviderError: network, auth, quota or SDK failure
        """
        pass


def _gemini_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    """Gemini's Schema wants upper-case type names."""
    converted: Dict[str, Any] = {}
    for key, value in schema.items():
        if key == "type":
            converted[key] = str(value).upper()
        elif key == "properties":
            converted[key] = {name: _gemini_schema(prop) for name, prop in value.items()}
        elif key == "items":
            converted[key] = _gemini_schema(value)
        else:
            converted[key] = value
    return converted


class GeminiClient(BaseLLMClient):
    """Google Gemini client (google-genai SDK)."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        temperature: float = 0.2,
        max_tokens: int = 2048,
        timeout: int = 30,
    ):
        super().__init__(model, temperature, max_tokens, timeout)
        self.api_key = api_key
        self._client: Optional[genai.Client] = None

    @property
    def provider(self) -> LLMProvider:
        return LLMProvider.GEMINI

    def _get_client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(
                api_key=self.api_key,
                http_options=types.HttpOptions(timeout=self.timeout * 1000),
            )
        return self._client

    def is_available(self) -> bool:
        return bool(self.api_key)

    @staticmethod
    def _to_contents(turns: List[Turn]) -> List[types.Content]:
        contents = []
        for turn in turns:
            if turn.role == TurnRole.USER:
                parts = []
                if turn.text:
                    parts.append(types.Part.from_text(text=turn.text))
                for image in turn.images:
                    parts.append(types.Part.from_bytes(data=image.data, mime_type=image.mime_type))
                contents.append(types.Content(role="user", parts=parts))
            elif turn.role == TurnRole.MODEL:
                if turn.is_tool_call:
                    part = types.Part.from_function_call(name=turn.content.name, args=turn.content.arguments)
                else:
                    part = types.Part.from_text(text=turn.text or "")
                contents.append(types.Content(role="model", parts=[part]))
            else:
                result = turn.content
                contents.append(types.Content(
                    role="user",
                    parts=[types.Part.from_function_response(name=result.name, response=result.payload)],
                ))
        return contents

    async def agenerate(self, system: str, turns: List[Turn], tools: List[ToolSpec]) -> LLMResponse:
        if not self.is_available():
            raise ProviderError("Gemini API key is not set.")

        declarations = [
            types.FunctionDeclaration(
                name=tool.name,
                description=tool.description,
                parameters=_gemini_schema(tool.parameters),
            )
            for tool in tools
        ]
        generation_config = types.GenerateContentConfig(
            system_instruction=system,
            temperature=self.temperature,
            max_output_tokens=self.max_tokens,
            tools=[types.Tool(function_declarations=declarations)] if declarations else None,
            automatic_function_calling=types.AutomaticFunctionCallingConfig(disable=True),
        )

        try:
            response = await self._get_client().aio.models.generate_content(
                model=self.model,
                contents=self._to_contents(turns),
                config=generation_config,
            )
        except (genai_errors.APIError, httpx.HTTPError, OSError) as e:
            logger.warning(f"Gemini request failed: {e}")
            raise ProviderError(handle_api_error("Gemini", e)) from e

        call = None
        text_parts = []
        candidates = response.candidates or []
        content = candidates[0].content if candidates else None
        for part in (content.parts if content and content.parts else []):
            if part.function_call and call is None:
                fc = part.function_call
                kwargs = {"call_id": fc.id} if fc.id else {}
                call = ToolCall(name=fc.name, arguments=dict(fc.args or {}), **kwargs)
            elif part.text:
                text_parts.append(part.text)

        usage = response.usage_metadata
        return LLMResponse(
            text="".join(text_parts) or None,
            function_call=call,
            provider=self.provider,
            model=self.model,
            tokens_used=usage.total_token_count if usage else None,
            finish_reason=str(candidates[0].finish_reason) if candidates else None,
        )


class GroqClient(BaseLLMClient):
    """Groq API client."""

    def __init__(
        self,
        api_key: str,
        model: str = "llama-3.3-70b-versatile",
        temperature: float = 0.2,
        max_tokens: int = 2048,
        timeout: int = 30,
    ):
        super().__init__(model, temperature, max_tokens, timeout)
        self.api_key = api_key
        self._async_client: Optional[AsyncGroq] = None

    @property
    def provider(self) -> LLMProvider:
        return LLMProvider.GROQ

    def _get_async_client(self) -> AsyncGroq:
        if self._async_client is None:
            self._async_client = AsyncGroq(api_key=self.api_key, timeout=self.timeout)
        return self._async_client

    def is_available(self) -> bool:
        return bool(self.api_key)

    @staticmethod
    def _to_messages(system: str, turns: List[Turn]) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = [{"role": "system", "content": system}]
        for turn in turns:
            if turn.role == TurnRole.USER:
                if turn.images:
                    content: Any = [{"type": "text", "text": turn.text or ""}]
                    for image in turn.images:
                        encoded = base64.b64encode(image.data).decode("ascii")
                        content.append({
                            "type": "image_url",
                            "image_url": {"url": f"data:{image.mime_type};base64,{encoded}"},
                        })
                else:
                    content = turn.text or ""
                messages.append({"role": "user", "content": content})
            elif turn.role == TurnRole.MODEL:
                if turn.is_tool_call:
                    call = turn.content
                    messages.append({
                        "role": "assistant",
                        "content": None,
                        "tool_calls": [{
                            "id": call.call_id,
                            "type": "function",
                            "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                        }],
                    })
                else:
                    messages.append({"role": "assistant", "content": turn.text or ""})
            else:
                result = turn.content
                messages.append({
                    "role": "tool",
                    "tool_call_id": result.call_id,
                    "content": json.dumps(result.payload, default=str),
                })
        return messages

    async def agenerate(self, system: str, turns: List[Turn], tools: List[ToolSpec]) -> LLMResponse:
        if not self.is_available():
            raise ProviderError("Groq API key is not set.")

        params: Dict[str, Any] = {
            "model": self.model,
            "messages": self._to_messages(system, turns),
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if tools:
            params["tools"] = [
                {
                    "type": "function",
                    "function": {"name": t.name, "description": t.description, "parameters": t.parameters},
                }
                for t in tools
            ]
            params["tool_choice"] = "auto"

        try:
            response = await self._get_async_client().chat.completions.create(**params)
        except GroqAPIError as e:
            logger.warning(f"Groq request failed: {e}")
            raise ProviderError(handle_api_error("Groq", e)) from e

        choice = response.choices[0]
        message = choice.message
        call = None
        if message.tool_calls:
            tool_call = message.tool_calls[0]
            try:
                arguments = json.loads(tool_call.function.arguments or "{}")
            except json.JSONDecodeError as e:
                raise MalformedResponse(
                    f"function arguments are not valid JSON for {tool_call.function.name}",
                    raw=tool_call.function.arguments,
                ) from e
            call = ToolCall(name=tool_call.function.name, arguments=arguments, call_id=tool_call.id)

        return LLMResponse(
            text=message.content or None,
            function_call=call,
            provider=self.provider,
            model=self.model,
            tokens_used=response.usage.total_tokens if response.usage else None,
            finish_reason=choice.finish_reason,
        )


def create_llm_client(llm_config: Any, api_key: Optional[str]) -> BaseLLMClient:
    """
    Create the client for the configured provider.

    Args:
        llm_config: LLMConfig section
        api_key: Key for that provider

    Raises:
        ConfigurationError: no key available
    """
    if not api_key:
        raise ConfigurationError(
            f"No API key for {llm_config.provider}. Set it with --set-llm-key or in .env."
        )

    provider = LLMProvider(llm_config.provider)
    model = llm_config.model
    if provider == LLMProvider.GROQ and model.startswith("gemini"):
        model = DEFAULT_MODELS[provider]
    elif provider == LLMProvider.GEMINI and not model.startswith("gemini"):
        model = DEFAULT_MODELS[provider]

    client_class = GeminiClient if provider == LLMProvider.GEMINI else GroqClient
    client = client_class(
        api_key=api_key,
        model=model,
        temperature=llm_config.temperature,
        max_tokens=llm_config.max_tokens,
        timeout=llm_config.timeout,
    )
    logger.info(f"LLM client ready: {provider.value} ({model})")
    return client
