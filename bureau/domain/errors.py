"""
Domain errors shared by the memory subsystem and the delegation engine
"""

from typing import Optional


class BureauError(Exception):
    """Base class for all domain errors"""


class NotFoundError(BureauError):
    """A referenced agent, memory or subordinate does not exist"""


class AgentNotFoundError(NotFoundError):
    def __init__(self, agent_id: str):
        super().__init__(f"agent not found: {agent_id}")
        self.agent_id = agent_id


class MemoryNotFoundError(NotFoundError):
    def __init__(self, memory_id: str):
        super().__init__(f"memory entry not found: {memory_id}")
        self.memory_id = memory_id


class DuplicateMemoryError(BureauError):
    def __init__(self, memory_id: str):
        super().__init__(f"memory entry already exists: {memory_id}")
        self.memory_id = memory_id


class AgentStateError(BureauError):
    """Lifecycle call made in the wrong state (start twice, stop while stopped)"""

    def __init__(self, agent_id: str, state: str):
        super().__init__(f"agent {agent_id} is already {state}")
        self.agent_id = agent_id
        self.state = state


class BackendUnavailableError(BureauError):
    """The structured store failed or is not configured"""


class VectorIndexError(BureauError):
    """The vector index failed; callers degrade instead of failing"""


class DelegationError(BureauError):
    """A subordinate failed while processing a delegated task.

    Each hop wraps the error raised below it (``raise ... from``), so the
    ``__cause__`` chain reads from the failing agent up to the root.
    """

    def __init__(self, agent_id: str, role: str, subordinate_id: str, reason: Optional[str] = None):
        message = f"{role} {agent_id}: delegation to {subordinate_id} failed"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.agent_id = agent_id
        self.role = role
        self.subordinate_id = subordinate_id

    def chain(self) -> list:
        """Messages of this error and every cause below it"""
        messages = []
        error: Optional[BaseException] = self
        while error is not None:
            messages.append(str(error))
            error = error.__cause__
        return messages


class ConfigurationError(BureauError):
    """Invalid hierarchy or settings"""


class GenerationError(BureauError):
    """The text-generation provider failed; agents fall back to local content"""
