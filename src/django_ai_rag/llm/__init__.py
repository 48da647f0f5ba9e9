from .base import ChatStream, LLMService
from .prompt import Prompt

__all__ = [
    "ChatStream",
    "LLMService",
    "Prompt",
]
