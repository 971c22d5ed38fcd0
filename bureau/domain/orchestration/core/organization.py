from typing import Dict, Any, List, Optional
import asyncio

import structlog

from bureau.domain.context.memory.agent_memory import AgentMemory
from bureau.domain.context.memory.memory_manager import MemoryManager
from bureau.domain.errors import AgentNotFoundError, AgentStateError, ConfigurationError
from bureau.domain.generation.provider import TextGenerator
from bureau.domain.models.task import AgentRole, AgentStatus, Task, TaskResponse, TaskStatus
from bureau.domain.notification.notifier import Notifier, NotificationType, WebhookNotifier, notify_safely
from bureau.infrastructure.config.settings import BureauConfig, LayerConfig
from .agent import Agent
from .delegation import policy_by_name, policy_for_role

logger = structlog.get_logger(__name__)


def plural_label(name: str) -> str:
    label = name.lower()
    if label.endswith("y"):
        return label[:-1] + "ies"
    return label + "s"


class Organization:
    """Arena of agents built from the configured hierarchy.

    Agents live in ``agents`` keyed by id; hierarchy edges are the id lists
    on each agent. Chain layers (no ``attach_to``) serve the next chain
    layer. A layer attached to X sits between X and the chain layer after X.
    """

    def __init__(
        self,
        config: BureauConfig,
        memory_manager: Optional[MemoryManager] = None,
        generator: Optional[TextGenerator] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.config = config
        self.memory_manager = memory_manager
        self.generator = generator
        self.notifier = notifier
        self.agents: Dict[str, Agent] = {}
        self.layers: Dict[str, List[str]] = {}
        self.root: Optional[Agent] = None

        self._build_hierarchy()

    # Construction

    def _build_hierarchy(self) -> None:
        layers = self.config.organization.layers
        if not layers:
            raise ConfigurationError("organization has no layers")

        chain = [layer for layer in layers if not layer.attach_to]
        labels = self._subordinate_labels(layers, chain)

        for layer in layers:
            self._create_layer(layer, labels.get(layer.name))

        for first, second in zip(chain, chain[1:]):
            self._link_layers(first.name, second.name)

        for layer in layers:
            for attach_to in layer.attach_to:
                self._attach_layer(layer, attach_to, chain)

        first_layer = self.layers[layers[0].name]
        self.root = self.agents[first_layer[0]] if first_layer else None

        logger.info(
            "Organization built",
            agents=len(self.agents),
            layers=[layer.name for layer in layers],
            root=self.root.agent_id if self.root else None,
        )

    def _subordinate_labels(self, layers: List[LayerConfig], chain: List[LayerConfig]) -> Dict[str, str]:
        labels = {}
        for first, second in zip(chain, chain[1:]):
            labels[first.name] = plural_label(second.name)
        for layer in layers:
            for attach_to in layer.attach_to:
                labels[attach_to] = plural_label(layer.name)
                following = self._next_chain_layer(attach_to, chain)
                if following is not None:
                    labels[layer.name] = plural_label(following.name)
        return labels

    def _create_layer(self, layer: LayerConfig, subordinate_label: Optional[str]) -> None:
        try:
            role = AgentRole(layer.name)
        except ValueError:
            raise ConfigurationError(
                f"unknown role in hierarchy: {layer.name} (expected one of {', '.join(r.value for r in AgentRole)})"
            ) from None

        if layer.name in self.layers:
            raise ConfigurationError(f"duplicate layer: {layer.name}")

        settings = self.config.settings_for(layer.name)
        ids = []
        for i in range(layer.agent_count):
            agent_id = f"{layer.name.lower()}-{i + 1}"
            policy = policy_by_name(layer.delegation) if layer.delegation else policy_for_role(role)
            agent = Agent(
                agent_id,
                role,
                policy=policy,
                memory=AgentMemory(agent_id, self.memory_manager),
                generator=self.generator,
                settings=settings,
                notifier=self.notifier,
                resolver=self.get_agent,
                subordinate_label=subordinate_label,
            )
            self.agents[agent_id] = agent
            ids.append(agent_id)

        self.layers[layer.name] = ids

    def _link(self, parent_id: str, child_id: str) -> None:
        parent = self.agents[parent_id]
        child = self.agents[child_id]
        parent.link_subordinate(child_id)
        if parent_id not in child.parent_ids:
            child.parent_ids.append(parent_id)

    def _unlink(self, parent_id: str, child_id: str) -> None:
        parent = self.agents[parent_id]
        child = self.agents[child_id]
        if child_id in parent.subordinate_ids:
            parent.subordinate_ids.remove(child_id)
        if parent_id in child.parent_ids:
            child.parent_ids.remove(parent_id)

    def _link_layers(self, upper: str, lower: str) -> None:
        for parent_id in self.layers[upper]:
            for child_id in self.layers[lower]:
                self._link(parent_id, child_id)

    def _next_chain_layer(self, name: str, chain: List[LayerConfig]) -> Optional[LayerConfig]:
        names = [layer.name for layer in chain]
        if name not in names:
            return None
        index = names.index(name)
        return chain[index + 1] if index + 1 < len(chain) else None

    def _attach_layer(self, layer: LayerConfig, attach_to: str, chain: List[LayerConfig]) -> None:
        """Insert a side layer between attach_to and the layer it delegated to"""

        if not self.layers.get(attach_to):
            raise ConfigurationError(
                f"layer {layer.name} attaches to {attach_to}, which has no registered agents"
            )

        following = self._next_chain_layer(attach_to, chain)
        following_ids = self.layers[following.name] if following else []

        for parent_id in self.layers[attach_to]:
            for child_id in following_ids:
                self._unlink(parent_id, child_id)
            for side_id in self.layers[layer.name]:
                self._link(parent_id, side_id)

        for side_id in self.layers[layer.name]:
            for child_id in following_ids:
                self._link(side_id, child_id)

    # Lookup

    def get_agent(self, agent_id: str) -> Agent:
        try:
            return self.agents[agent_id]
        except KeyError:
            raise AgentNotFoundError(agent_id) from None

    def get_agents_by_role(self, role: AgentRole) -> List[Agent]:
        return [agent for agent in self.agents.values() if agent.role == role]

    async def get_status(self) -> Dict[str, Dict[str, Any]]:
        """Per-agent counters and lifecycle state"""

        status = {}
        for agent_id, agent in self.agents.items():
            stats = await agent.get_stats()
            status[agent_id] = stats.get_state_summary()
        return status

    # Lifecycle

    def _require_all(self, status: AgentStatus) -> None:
        """Reject a lifecycle call before any agent changes state"""
        for agent in self.agents.values():
            if agent.status != status:
                raise AgentStateError(agent.agent_id, agent.status.value)

    async def start(self) -> None:
        self._require_all(AgentStatus.STOPPED)
        for agent in self.agents.values():
            await agent.start()
        logger.info("Organization started", agents=len(self.agents))

    async def stop(self) -> None:
        self._require_all(AgentStatus.RUNNING)
        for agent in self.agents.values():
            await agent.stop()
        logger.info("Organization stopped", agents=len(self.agents))

    async def wait_for_dispatches(self) -> None:
        """Wait for all fire-and-forget work, including work it spawns"""

        while any(agent.has_pending_dispatches for agent in self.agents.values()):
            for agent in list(self.agents.values()):
                await agent.wait_for_dispatches()

    async def close(self) -> None:
        """Drain dispatched work, stop running agents and release memory backends"""

        await self.wait_for_dispatches()
        for agent in self.agents.values():
            if agent.status == AgentStatus.RUNNING:
                await agent.stop()
        if isinstance(self.notifier, WebhookNotifier):
            await self.notifier.close()
        if self.memory_manager is not None:
            await self.memory_manager.close()

    # Processing

    async def process_task(self, task: Task, timeout: Optional[float] = None) -> TaskResponse:
        """Hand a task to the root agent.

        Raises DelegationError on the first hard failure along the
        synchronous path and asyncio.TimeoutError when the timeout expires.
        """

        if self.root is None:
            raise ConfigurationError("no root agent available")

        if not task.to_agent:
            task = task.model_copy(update={"to_agent": self.root.agent_id})

        with structlog.contextvars.bound_contextvars(request_id=task.id):
            logger.info("Processing task", task_id=task.id, title=task.title, root=self.root.agent_id)
            if timeout is None:
                return await self.root.process_task(task)
            return await asyncio.wait_for(self.root.process_task(task), timeout)

    async def submit_task(self, task: Task, timeout: Optional[float] = None) -> TaskResponse:
        """Like process_task, but failures come back as a failed response"""

        try:
            return await self.process_task(task, timeout)
        except asyncio.TimeoutError:
            error = f"task timed out after {timeout}s"
        except Exception as e:
            error = str(e)

        logger.error("Task failed", task_id=task.id, error=error)
        await notify_safely(
            self.notifier,
            NotificationType.ERROR.value,
            self.root.role.value if self.root else "",
            error,
            {"task_id": task.id},
        )
        return TaskResponse(task_id=task.id, status=TaskStatus.FAILED, error=error)

    async def process_client_request(self, instruction: str, timeout: Optional[float] = None) -> TaskResponse:
        """Wrap a raw client instruction into a task for the root agent"""

        title = instruction.strip().splitlines()[0][:80] if instruction.strip() else "Client request"
        task = Task(
            title=title,
            description=instruction,
            content=instruction,
            from_agent="client",
            to_agent=self.root.agent_id if self.root else "",
        )
        return await self.process_task(task, timeout)
