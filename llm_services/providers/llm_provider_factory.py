import os
from typing import Optional
from .openai import OpenAIProvider
from .anthropic import AnthropicProvider
from .provider import LLMProvider


class LLMProviderFactory:
    """Factory class to create appropriate LLM provider based on model name"""

    _PROVIDER_MAP = {
        "claude-": AnthropicProvider,
        "gpt-3.5-turbo": OpenAIProvider,
        "gpt-4": OpenAIProvider,
        "o1": OpenAIProvider,
        "o3": OpenAIProvider,
    }

    _API_KEY_ENV_MAP = {
        AnthropicProvider: "ANTHROPIC_API_KEY",
        OpenAIProvider: "OPENAI_API_KEY",
    }

    @classmethod
    def create_provider(cls, model: str, api_key: Optional[str] = None) -> LLMProvider:
        """Create appropriate LLM provider based on model name"""
        for prefix, provider_cls in cls._PROVIDER_MAP.items():
            if model.startswith(prefix):
                # Try to get API key from environment if not provided
                if not api_key:
                    env_key = cls._API_KEY_ENV_MAP.get(provider_cls)
                    api_key = os.environ.get(env_key) if env_key else None
                    if not api_key:
                        raise ValueError(f"API key not provided and not found in environment for model {model}")

                return provider_cls(api_key=api_key, model=model)

        raise ValueError(f"Unknown model: {model}. Please use a supported model.")
