from typing import List, Optional

import httpx
from httpx import AsyncClient

from .provider import LLMProvider, LLMProviderError, Message, build_payload_messages


class AnthropicProvider(LLMProvider):
    """Anthropic Claude provider over the Messages API"""

    def __init__(self, api_key: str, model: str = "claude-sonnet-4-20250514", timeout: float = 120.0):
        self.api_key = api_key
        self.model = model
        self.client = AsyncClient(
            headers={
                "x-api-key": self.api_key,
                "anthropic-version": "2023-06-01",
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )
        self.api_url = "https://api.anthropic.com/v1/messages"

    async def generate(self, prompt: str, messages: Optional[List[Message]] = None, **kwargs) -> str:
        """Generate text from Anthropic Claude models"""
        temperature = kwargs.get("temperature", 0.7)
        max_tokens = kwargs.get("max_tokens", 1000)
        system_prompt = kwargs.get("system_prompt", "")

        if messages and not system_prompt:
            # Anthropic takes the system prompt outside of the message list
            system_messages = [msg for msg in messages if msg.role == "system"]
            if system_messages:
                system_prompt = system_messages[0].content

        payload = {
            "model": self.model,
            "messages": build_payload_messages(prompt, messages),
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if system_prompt:
            payload["system"] = system_prompt

        try:
            response = await self.client.post(self.api_url, json=payload)
        except httpx.HTTPError as e:
            raise LLMProviderError(f"Anthropic API request failed: {str(e)}") from e

        if response.status_code != 200:
            raise LLMProviderError(f"Anthropic API error: {response.status_code} - {response.text}")

        result = response.json()
        text_blocks = [block["text"] for block in result.get("content", []) if block.get("type") == "text"]
        if not text_blocks:
            raise LLMProviderError("Unexpected response type from Claude")
        return "".join(text_blocks)

    async def aclose(self) -> None:
        await self.client.aclose()
