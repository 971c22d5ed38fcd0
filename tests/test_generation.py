"""Tests for the chat-model generation adapter."""

from typing import Any, List, Optional

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from langchain_core.messages import BaseMessage

from bureau.domain.errors import GenerationError
from bureau.domain.generation.provider import ChatModelGenerator, GenerateOptions


class OfflineChatModel(FakeListChatModel):
    def _call(self, messages: List[BaseMessage], stop: Optional[List[str]] = None, run_manager: Any = None, **kwargs: Any) -> str:
        raise ConnectionError("provider offline")


@pytest.mark.asyncio
async def test_generate_returns_model_text():
    generator = ChatModelGenerator(FakeListChatModel(responses=["first", "second"]))

    assert await generator.generate("hello", GenerateOptions(system_prompt="Be brief")) == "first"
    assert await generator.generate("hello", GenerateOptions()) == "second"


@pytest.mark.asyncio
async def test_provider_errors_become_generation_errors():
    generator = ChatModelGenerator(OfflineChatModel(responses=["unused"]))

    with pytest.raises(GenerationError, match="provider offline") as excinfo:
        await generator.generate("hello", GenerateOptions())
    assert isinstance(excinfo.value.__cause__, ConnectionError)


def test_multipart_content_keeps_text_blocks():
    content = ["a", {"type": "text", "text": "b"}, {"type": "image_url", "image_url": "x"}]

    assert ChatModelGenerator._text(content) == "ab"
