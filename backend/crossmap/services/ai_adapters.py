"""
AI Adapters — provider-agnostic interface for LLM calls made by the
augmentation bridge. Supports Anthropic Claude and OpenAI-compatible APIs.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx


@dataclass
class LLMResponse:
    """Response from LLM with text and usage metadata."""
    text: str
    tokens_input: int = 0
    tokens_output: int = 0
    model: str = ""


class AIAdapter(ABC):
    """Base adapter for any AI provider."""

    def __init__(self, endpoint: str, api_key: str, model: str):
        self.endpoint = endpoint.rstrip("/")
        self.api_key = api_key
        self.model = model

    @abstractmethod
    async def chat_completion(self, system: str, user_message: str,
                              max_tokens: int, temperature: float,
                              timeout: float = 30) -> LLMResponse:
        """Send a prompt and return structured response with usage data."""


class AnthropicAdapter(AIAdapter):
    """Adapter for Anthropic Claude API (/v1/messages)."""

    async def chat_completion(self, system, user_message, max_tokens, temperature,
                              timeout=30):
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(
                f"{self.endpoint}/v1/messages",
                headers={
                    "x-api-key": self.api_key,
                    "anthropic-version": "2023-06-01",
                    "content-type": "application/json",
                },
                json={
                    "model": self.model,
                    "max_tokens": max_tokens,
                    "temperature": temperature,
                    "system": system,
                    "messages": [{"role": "user", "content": user_message}],
                },
            )
            response.raise_for_status()
            data = response.json()

        content = data.get("content") or []
        if not content:
            raise ValueError(f"Anthropic API returned an empty response (stop_reason={data.get('stop_reason', '?')})")
        usage = data.get("usage", {})
        return LLMResponse(
            text=content[0].get("text", ""),
            tokens_input=usage.get("input_tokens", 0),
            tokens_output=usage.get("output_tokens", 0),
            model=data.get("model", self.model),
        )


class OpenAICompatibleAdapter(AIAdapter):
    """Adapter for OpenAI-compatible API (OpenAI, vLLM, Ollama, LocalAI)."""

    async def chat_completion(self, system, user_message, max_tokens, temperature,
                              timeout=30):
        headers = {"content-type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(
                f"{self.endpoint}/v1/chat/completions",
                headers=headers,
                json={
                    "model": self.model,
                    "max_tokens": max_tokens,
                    "temperature": temperature,
                    "messages": [
                        {"role": "system", "content": system},
                        {"role": "user", "content": user_message},
                    ],
                },
            )
            response.raise_for_status()
            data = response.json()

        choices = data.get("choices") or []
        if not choices:
            raise ValueError("OpenAI-compatible API returned no choices")
        usage = data.get("usage", {})
        return LLMResponse(
            text=choices[0].get("message", {}).get("content", ""),
            tokens_input=usage.get("prompt_tokens", 0),
            tokens_output=usage.get("completion_tokens", 0),
            model=data.get("model", self.model),
        )


def get_ai_adapter(config) -> AIAdapter | None:
    """Factory: adapter for the configured provider, or None if AI is off."""
    if config is None or not config.ai_enabled:
        return None
    if config.AI_PROVIDER == "anthropic":
        return AnthropicAdapter(config.AI_ENDPOINT, config.AI_API_KEY, config.AI_MODEL)
    if config.AI_PROVIDER == "openai_compatible":
        return OpenAICompatibleAdapter(config.AI_ENDPOINT, config.AI_API_KEY, config.AI_MODEL)
    return None
