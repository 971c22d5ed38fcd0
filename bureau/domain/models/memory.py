from typing import Dict, List, Optional
from pydantic import BaseModel, Field
from datetime import datetime, timezone
from enum import Enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemoryType(str, Enum):
    """Kinds of memory an agent records"""
    CONVERSATION = "conversation"
    TASK = "task"
    KNOWLEDGE = "knowledge"
    DECISION = "decision"
    CONTEXT = "context"


class MemoryEntry(BaseModel):
    """A single persisted memory item"""
    id: str = Field(default="", description="Unique memory identifier, assigned on store when empty")
    agent_id: str = Field(description="Agent owning the memory")
    type: MemoryType
    content: str = ""
    metadata: Dict[str, str] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)
    embedding: Optional[List[float]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    score: Optional[float] = Field(None, description="Similarity score, only set on search results")

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Whether the entry is past its expiration"""
        if self.expires_at is None:
            return False
        return self.expires_at < (now or utcnow())


class TimeRange(BaseModel):
    """Inclusive range over created_at"""
    start: datetime
    end: datetime


class MemoryQuery(BaseModel):
    """Structured filter over stored memories"""
    agent_id: Optional[str] = None
    type: Optional[MemoryType] = None
    content: Optional[str] = Field(None, description="Case-insensitive substring match on content")
    tags: List[str] = Field(default_factory=list, description="Entries must carry every listed tag")
    time_range: Optional[TimeRange] = None
    limit: int = 0
    offset: int = 0


class SearchResult(BaseModel):
    """A ranked hit from the vector index"""
    id: str
    score: float
    metadata: Dict[str, str] = Field(default_factory=dict)
