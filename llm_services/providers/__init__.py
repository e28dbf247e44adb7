from .provider import Message, LLMProvider, LLMProviderError
from .anthropic import AnthropicProvider
from .openai import OpenAIProvider
from .llm_provider_factory import LLMProviderFactory

__all__ = [
    "Message",
    "LLMProvider",
    "LLMProviderError",
    "AnthropicProvider",
    "OpenAIProvider",
    "LLMProviderFactory",
]
