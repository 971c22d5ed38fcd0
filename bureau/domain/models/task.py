from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field
from datetime import datetime, timezone
from enum import Enum
import uuid


class AgentRole(str, Enum):
    """Roles an agent can hold in the organization"""
    PRESIDENT = "President"
    SECRETARY = "Secretary"
    DIRECTOR = "Director"
    MANAGER = "Manager"
    ENGINEER = "Engineer"
    LEAD = "Lead"


class AgentStatus(str, Enum):
    """Agent lifecycle status"""
    STOPPED = "stopped"
    RUNNING = "running"


class TaskStatus(str, Enum):
    """Task execution status"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    DELEGATED = "delegated"


def new_task_id() -> str:
    return str(uuid.uuid4())


class Task(BaseModel):
    """A unit of work passed between agents.

    Tasks are not mutated once handed to an agent; delegation creates a new
    task that points back at its parent through ``metadata["parent_task_id"]``.
    """
    id: str = Field(default_factory=new_task_id, description="Unique task identifier")
    title: str = Field(description="Task title")
    description: str = Field(default="", description="Task description")
    content: str = Field(default="", description="Additional context or specification")
    from_agent: str = Field(default="", description="Agent that issued the task")
    to_agent: str = Field(default="", description="Agent the task is addressed to")
    priority: int = Field(default=0)
    metadata: Dict[str, str] = Field(default_factory=dict)

    model_config = {"frozen": True}

    def delegate(self, from_agent: str, to_agent: str, title: str, content: Optional[str] = None) -> "Task":
        """Mint the task handed to a subordinate"""
        metadata = dict(self.metadata)
        metadata["parent_task_id"] = self.id
        return Task(
            title=title,
            description=self.description,
            content=self.content if content is None else content,
            from_agent=from_agent,
            to_agent=to_agent,
            priority=self.priority,
            metadata=metadata,
        )


class TaskResponse(BaseModel):
    """Outcome of one processing attempt"""
    task_id: str
    status: TaskStatus
    result: str = ""
    error: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    @property
    def failed(self) -> bool:
        return self.status == TaskStatus.FAILED


class AgentStats(BaseModel):
    """Snapshot of an agent's counters and lifecycle state"""
    agent_id: str
    role: AgentRole
    status: AgentStatus
    active_tasks: int = 0
    completed_tasks: int = 0
    subordinates: List[str] = Field(default_factory=list)
    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def get_state_summary(self) -> Dict[str, Any]:
        """Get a summary suitable for status endpoints"""
        return {
            "agent_id": self.agent_id,
            "role": self.role.value,
            "status": self.status.value,
            "active": self.active_tasks,
            "completed": self.completed_tasks,
            "running": self.status == AgentStatus.RUNNING,
        }
