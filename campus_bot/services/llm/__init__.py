from campus_bot.services.llm.base import LLMProvider, LLMResponse
from campus_bot.services.llm.openai_provider import LLMError, OpenAIProvider

__all__ = ["LLMError", "LLMProvider", "LLMResponse", "OpenAIProvider"]
