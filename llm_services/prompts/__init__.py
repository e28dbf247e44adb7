from .loader import PromptLoader

__all__ = ["PromptLoader"]
