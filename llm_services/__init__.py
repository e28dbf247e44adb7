from .providers.llm_provider_factory import LLMProviderFactory
from .providers.provider import LLMProvider, LLMProviderError, Message
from .prompts.loader import PromptLoader
from .query_assistant import (
    QueryAssistant,
    ProcessQueryRequest,
    ProcessQueryResponse,
    PipelineStep,
)

__all__ = [
    "LLMProviderFactory",
    "LLMProvider",
    "LLMProviderError",
    "Message",
    "PromptLoader",
    "QueryAssistant",
    "ProcessQueryRequest",
    "ProcessQueryResponse",
    "PipelineStep",
]
