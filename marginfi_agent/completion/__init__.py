"""Language-completion backends."""
from .openai_client import SYSTEM_INSTRUCTION, OpenAICompletionClient

__all__ = ["OpenAICompletionClient", "SYSTEM_INSTRUCTION"]
