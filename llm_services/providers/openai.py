from typing import List, Optional

import httpx

from .provider import LLMProvider, LLMProviderError, Message


class OpenAIProvider(LLMProvider):
    """OpenAI chat completions provider"""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", timeout: float = 60.0):
        self.api_key = api_key
        self.model = model
        self.client = httpx.AsyncClient(
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )
        self.api_url = "https://api.openai.com/v1/chat/completions"

    async def generate(self, prompt: str, messages: Optional[List[Message]] = None, **kwargs) -> str:
        """Generate text from OpenAI models"""
        temperature = kwargs.get("temperature", 0.7)
        max_tokens = kwargs.get("max_tokens", 1000)
        system_prompt = kwargs.get("system_prompt", "")

        if messages:
            # Use full conversation history
            payload_messages = [msg.to_dict() for msg in messages]
        else:
            payload_messages = [{"role": "user", "content": prompt}]
        if system_prompt and not any(m["role"] == "system" for m in payload_messages):
            payload_messages.insert(0, {"role": "system", "content": system_prompt})

        payload = {
            "model": self.model,
            "messages": payload_messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        try:
            response = await self.client.post(self.api_url, json=payload)
        except httpx.HTTPError as e:
            raise LLMProviderError(f"OpenAI API request failed: {str(e)}") from e

        if response.status_code != 200:
            raise LLMProviderError(f"OpenAI API error: {response.status_code} - {response.text}")

        result = response.json()
        return result["choices"][0]["message"].get("content") or ""

    async def aclose(self) -> None:
        await self.client.aclose()
