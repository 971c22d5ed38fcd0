from typing import Any, Optional, Protocol

import structlog
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel, Field

from bureau.domain.errors import GenerationError

logger = structlog.get_logger(__name__)


class GenerateOptions(BaseModel):
    """Per-call generation settings"""
    system_prompt: str = ""
    temperature: float = Field(0.7, ge=0.0)
    max_tokens: int = Field(2000, gt=0)
    model: Optional[str] = None


class TextGenerator(Protocol):
    async def generate(self, prompt: str, options: GenerateOptions) -> str:
        ...


class ChatModelGenerator:
    """Adapts a langchain-core chat model to the TextGenerator protocol"""

    def __init__(self, model: BaseChatModel):
        self.model = model

    async def generate(self, prompt: str, options: GenerateOptions) -> str:
        messages = []
        if options.system_prompt:
            messages.append(SystemMessage(content=options.system_prompt))
        messages.append(HumanMessage(content=prompt))

        bind_kwargs: dict = {"temperature": options.temperature, "max_tokens": options.max_tokens}
        if options.model:
            bind_kwargs["model"] = options.model

        try:
            response = await self.model.bind(**bind_kwargs).ainvoke(messages)
        except Exception as e:
            logger.warning("Chat model call failed", error=str(e))
            raise GenerationError(f"generation failed: {e}") from e

        return self._text(response.content)

    @staticmethod
    def _text(content: Any) -> str:
        if isinstance(content, str):
            return content
        # Multi-part content: keep the text blocks
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(part.get("text", ""))
        return "".join(parts)
