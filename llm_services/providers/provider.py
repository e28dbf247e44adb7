from abc import ABC, abstractmethod
from typing import List, Optional, Literal
from dataclasses import dataclass


class LLMProviderError(Exception):
    """Raised when an LLM API call fails or returns an unusable payload"""
    pass


@dataclass
class Message:
    """Class representing a message in a conversation"""
    role: Literal["system", "user", "assistant"]
    content: str

    def to_dict(self):
        """Converts the Message object to a dictionary."""
        return {"role": self.role, "content": self.content}


class LLMProvider(ABC):
    """Base class for LLM providers"""

    @abstractmethod
    async def generate(self, prompt: str, messages: Optional[List[Message]] = None, **kwargs) -> str:
        """
        Generate text from prompt or message history

        Args:
            prompt: The prompt to generate from (used if messages is None)
            messages: Optional list of messages representing conversation history
            **kwargs: Additional arguments for generation (system_prompt, max_tokens, temperature)

        Returns:
            Generated text response

        Raises:
            LLMProviderError: If the API call fails
        """
        pass

    async def aclose(self) -> None:
        """Release the underlying HTTP client"""
        pass


def build_payload_messages(prompt: str, messages: Optional[List[Message]]) -> List[dict]:
    if messages:
        return [msg.to_dict() for msg in messages if msg.role != "system"]
    return [{"role": "user", "content": prompt}]
