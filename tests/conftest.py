"""Pytest configuration and shared fixtures."""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from bureau.domain.context.memory.embedding import HashEmbeddingFunction
from bureau.domain.context.memory.memory_manager import MemoryManager
from bureau.domain.context.memory.structured_store import SQLiteMemoryStore
from bureau.domain.context.memory.vector_memory_store import InMemoryVectorIndex
from bureau.domain.errors import GenerationError
from bureau.domain.generation.provider import GenerateOptions
from bureau.infrastructure.config.settings import BureauConfig, LayerConfig, OrganizationConfig

DIMENSION = 64


class EchoGenerator:
    """Returns a fixed line per call and records every prompt"""

    def __init__(self, text: str = "generated output"):
        self.text = text
        self.prompts: List[str] = []
        self.options: List[GenerateOptions] = []

    async def generate(self, prompt: str, options: GenerateOptions) -> str:
        self.prompts.append(prompt)
        self.options.append(options)
        return self.text


class UnavailableGenerator:
    """Provider that is down"""

    async def generate(self, prompt: str, options: GenerateOptions) -> str:
        raise GenerationError("provider unavailable")


class RoleFailingGenerator:
    """Crashes whenever the prompt is addressed to the given role"""

    def __init__(self, role: str):
        self.role = role

    async def generate(self, prompt: str, options: GenerateOptions) -> str:
        if f"You are the {self.role} " in prompt:
            raise RuntimeError(f"{self.role} crashed")
        return "ok"


class SlowGenerator:
    def __init__(self, delay: float):
        self.delay = delay

    async def generate(self, prompt: str, options: GenerateOptions) -> str:
        await asyncio.sleep(self.delay)
        return "slow output"


class RecordingNotifier:
    def __init__(self):
        self.events: List[Dict[str, Any]] = []

    async def notify(self, event_type: str, role: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.events.append({"event_type": event_type, "role": role, "message": message, "details": details or {}})

    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [event for event in self.events if event["event_type"] == event_type]


def make_config(*layers: LayerConfig, **kwargs) -> BureauConfig:
    return BureauConfig(organization=OrganizationConfig(layers=list(layers)), **kwargs)


@pytest.fixture
async def store():
    store = SQLiteMemoryStore(":memory:")
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
async def memory_manager():
    """Manager without a vector index"""
    manager = MemoryManager(SQLiteMemoryStore(":memory:"))
    yield manager
    await manager.close()


@pytest.fixture
async def vector_memory_manager():
    manager = MemoryManager(
        SQLiteMemoryStore(":memory:"),
        InMemoryVectorIndex(DIMENSION),
        HashEmbeddingFunction(DIMENSION),
    )
    yield manager
    await manager.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()
