from typing import Dict, Any, Optional
from pydantic import BaseModel, Field


class TaskRequest(BaseModel):
    """Task submitted by a client"""
    title: str = Field(min_length=1)
    description: str = ""
    content: str = ""
    priority: int = 0
    metadata: Dict[str, str] = Field(default_factory=dict)
    timeout: Optional[float] = Field(None, gt=0, description="Seconds before the task is abandoned")


class NotifyRequest(BaseModel):
    event_type: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class NotifyAck(BaseModel):
    acknowledged: bool = True
    agent_id: str
