from typing import Callable, Dict, List, Optional, Set
import asyncio
import itertools

import structlog

from bureau.domain.context.memory.agent_memory import AgentMemory
from bureau.domain.errors import AgentNotFoundError, AgentStateError
from bureau.domain.generation.provider import GenerateOptions, TextGenerator
from bureau.domain.models.task import AgentRole, AgentStats, AgentStatus, Task, TaskResponse
from bureau.domain.notification.notifier import Notifier, NotificationType, notify_safely
from bureau.infrastructure.config.settings import AgentSettings
from bureau.infrastructure.observability.logging import agent_logger
from .delegation import DelegationPolicy, policy_for_role
from .task_workflow import TaskWorkflow

logger = structlog.get_logger(__name__)

SUBORDINATE_LABELS: Dict[AgentRole, str] = {
    AgentRole.PRESIDENT: "directors",
    AgentRole.SECRETARY: "directors",
    AgentRole.DIRECTOR: "managers",
    AgentRole.MANAGER: "engineers",
    AgentRole.LEAD: "engineers",
    AgentRole.ENGINEER: "subordinates",
}


class Agent:
    """A role-tagged task processor.

    Role behaviour comes from the injected delegation policy; subordinates
    are held as ids and resolved through the organization on each call.
    """

    def __init__(
        self,
        agent_id: str,
        role: AgentRole,
        policy: Optional[DelegationPolicy] = None,
        memory: Optional[AgentMemory] = None,
        generator: Optional[TextGenerator] = None,
        settings: Optional[AgentSettings] = None,
        notifier: Optional[Notifier] = None,
        resolver: Optional[Callable[[str], "Agent"]] = None,
        subordinate_label: Optional[str] = None,
    ):
        self.agent_id = agent_id
        self.role = role
        self.policy = policy or policy_for_role(role)
        self.memory = memory or AgentMemory(agent_id)
        self.generator = generator
        self.settings = settings or AgentSettings()
        self.notifier = notifier
        self.subordinate_label = subordinate_label or SUBORDINATE_LABELS[role]

        self.subordinate_ids: List[str] = []
        self.parent_ids: List[str] = []
        self.status = AgentStatus.STOPPED

        self._resolver = resolver
        self._local_agents: Dict[str, "Agent"] = {}
        self._active_tasks = 0
        self._completed_tasks = 0
        self._cursor = itertools.count()
        self._background_tasks: Set[asyncio.Task] = set()
        self._lock = asyncio.Lock()

        self.workflow = TaskWorkflow(self)

    @property
    def role_tag(self) -> str:
        return self.role.value.lower()

    @property
    def generate_options(self) -> GenerateOptions:
        return GenerateOptions(
            system_prompt=self.settings.system_prompt,
            temperature=self.settings.temperature,
            max_tokens=self.settings.max_tokens,
            model=self.settings.model,
        )

    # Hierarchy

    def add_subordinate(self, subordinate: "Agent") -> None:
        """Link a subordinate built outside an organization"""

        self._local_agents[subordinate.agent_id] = subordinate
        self.link_subordinate(subordinate.agent_id)
        if self.agent_id not in subordinate.parent_ids:
            subordinate.parent_ids.append(self.agent_id)

    def link_subordinate(self, subordinate_id: str) -> None:
        if subordinate_id not in self.subordinate_ids:
            self.subordinate_ids.append(subordinate_id)

    def get_subordinate_ids(self) -> List[str]:
        return list(self.subordinate_ids)

    def resolve(self, agent_id: str) -> "Agent":
        """Look up a subordinate by id"""

        if agent_id in self._local_agents:
            return self._local_agents[agent_id]
        if self._resolver is not None:
            return self._resolver(agent_id)
        raise AgentNotFoundError(agent_id)

    async def advance_cursor(self) -> int:
        """Next round-robin position"""
        async with self._lock:
            return next(self._cursor)

    # Lifecycle

    async def start(self) -> None:
        async with self._lock:
            if self.status == AgentStatus.RUNNING:
                raise AgentStateError(self.agent_id, AgentStatus.RUNNING.value)
            self.status = AgentStatus.RUNNING
        agent_logger.log_agent_event("started", self.agent_id, self.role.value)

    async def stop(self) -> None:
        async with self._lock:
            if self.status != AgentStatus.RUNNING:
                raise AgentStateError(self.agent_id, AgentStatus.STOPPED.value)
            self.status = AgentStatus.STOPPED
        agent_logger.log_agent_event("stopped", self.agent_id, self.role.value)

    async def increment_active_tasks(self) -> None:
        async with self._lock:
            self._active_tasks += 1

    async def decrement_active_tasks(self) -> None:
        """Close out one task: the gauge drops and the completed count grows"""
        async with self._lock:
            if self._active_tasks > 0:
                self._active_tasks -= 1
            self._completed_tasks += 1

    async def get_stats(self) -> AgentStats:
        async with self._lock:
            return AgentStats(
                agent_id=self.agent_id,
                role=self.role,
                status=self.status,
                active_tasks=self._active_tasks,
                completed_tasks=self._completed_tasks,
                subordinates=list(self.subordinate_ids),
            )

    # Processing

    async def process_task(self, task: Task) -> TaskResponse:
        """Process a task, delegating per policy.

        Raises DelegationError when a synchronous subordinate fails; the
        error's cause chain leads to the failing agent.
        """

        await self.increment_active_tasks()
        try:
            return await self.workflow.run(task)
        except Exception as e:
            logger.error("Task failed", agent_id=self.agent_id, role=self.role.value, task_id=task.id, error=str(e))
            raise
        finally:
            await self.decrement_active_tasks()

    def dispatch(self, subordinate: "Agent", task: Task) -> asyncio.Task:
        """Schedule a subordinate call without awaiting it"""

        background = asyncio.create_task(self._run_dispatched(subordinate, task))
        self._background_tasks.add(background)
        background.add_done_callback(self._background_tasks.discard)
        return background

    async def _run_dispatched(self, subordinate: "Agent", task: Task) -> Optional[TaskResponse]:
        try:
            response = await subordinate.process_task(task)
        except Exception as e:
            error = str(e)
        else:
            if not response.failed:
                return response
            error = response.error or "task failed"

        logger.error(
            "Dispatched task failed",
            agent_id=self.agent_id,
            subordinate_id=subordinate.agent_id,
            task_id=task.id,
            error=error,
        )
        await notify_safely(
            self.notifier,
            NotificationType.ERROR.value,
            subordinate.role.value,
            f"Dispatched task {task.title} failed at {subordinate.agent_id}: {error}",
            {"task_id": task.id, "agent_id": subordinate.agent_id, "dispatched_by": self.agent_id},
        )
        return None

    @property
    def has_pending_dispatches(self) -> bool:
        return bool(self._background_tasks)

    async def wait_for_dispatches(self) -> None:
        """Wait until every fire-and-forget call issued so far has finished"""

        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    def __repr__(self) -> str:
        return f"Agent(id={self.agent_id!r}, role={self.role.value}, policy={self.policy.name})"
