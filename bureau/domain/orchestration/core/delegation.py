"""
Delegation policies.

A policy decides which subordinates receive a task and under which
contract the parent waits for them:

  synchronous      exactly one subordinate, awaited in-line; its failure
                   fails the parent
  fire_and_forget  every subordinate, each on its own asyncio task; the
                   parent completes once dispatch is done
"""

from abc import ABC, abstractmethod
from collections import Counter
from typing import Dict, List, Type, TYPE_CHECKING
from enum import Enum

import structlog

from bureau.domain.errors import ConfigurationError
from bureau.domain.models.memory import MemoryType
from bureau.domain.models.task import AgentRole, Task

if TYPE_CHECKING:
    from .agent import Agent

logger = structlog.get_logger(__name__)

# Past tasks consulted when routing by memory
RELATED_TASKS_LIMIT = 5


class DelegationContract(str, Enum):
    SYNCHRONOUS = "synchronous"
    FIRE_AND_FORGET = "fire_and_forget"
    NONE = "none"


class DelegationPolicy(ABC):
    """Chooses delegation targets among an agent's subordinates"""

    name: str = ""
    contract: DelegationContract = DelegationContract.NONE

    @abstractmethod
    async def select_targets(self, agent: "Agent", task: Task, subordinate_ids: List[str]) -> List[str]:
        """Return the subordinate ids that receive the task"""
        pass

    @property
    def delegates(self) -> bool:
        return self.contract != DelegationContract.NONE

    def __repr__(self) -> str:
        return f"{type(self).__name__}(contract={self.contract.value})"


class NoDelegationPolicy(DelegationPolicy):
    name = "none"
    contract = DelegationContract.NONE

    async def select_targets(self, agent: "Agent", task: Task, subordinate_ids: List[str]) -> List[str]:
        return []


class RoundRobinPolicy(DelegationPolicy):
    """Strict rotation over subordinates, driven by the agent's cursor"""

    name = "round_robin"
    contract = DelegationContract.SYNCHRONOUS

    async def select_targets(self, agent: "Agent", task: Task, subordinate_ids: List[str]) -> List[str]:
        if not subordinate_ids:
            return []
        index = await agent.advance_cursor() % len(subordinate_ids)
        return [subordinate_ids[index]]


class MemoryInformedPolicy(RoundRobinPolicy):
    """Round-robin, overridden by subordinates that handled related tasks.

    The override picks the first subordinate, scanning in rotation order
    from the round-robin pick, that appears as ``to_agent`` on a related
    task memory. Ids no longer among the subordinates are ignored.
    """

    name = "memory_informed"
    contract = DelegationContract.SYNCHRONOUS

    async def select_targets(self, agent: "Agent", task: Task, subordinate_ids: List[str]) -> List[str]:
        if not subordinate_ids:
            return []

        index = await agent.advance_cursor() % len(subordinate_ids)
        if not agent.memory.enabled:
            return [subordinate_ids[index]]

        related = await agent.memory.get_related_tasks(task.description or task.title, RELATED_TASKS_LIMIT)
        handled = Counter(
            entry.metadata.get("to_agent")
            for entry in related
            if entry.type == MemoryType.TASK and entry.metadata.get("to_agent")
        )

        for offset in range(len(subordinate_ids)):
            candidate = subordinate_ids[(index + offset) % len(subordinate_ids)]
            if handled.get(candidate, 0) > 0:
                if offset:
                    logger.info(
                        "Memory override",
                        agent_id=agent.agent_id,
                        round_robin=subordinate_ids[index],
                        selected=candidate,
                    )
                return [candidate]

        return [subordinate_ids[index]]


class FanOutPolicy(DelegationPolicy):
    """Every subordinate receives its own copy of the task"""

    name = "fan_out"
    contract = DelegationContract.FIRE_AND_FORGET

    async def select_targets(self, agent: "Agent", task: Task, subordinate_ids: List[str]) -> List[str]:
        return list(subordinate_ids)


POLICIES: Dict[str, Type[DelegationPolicy]] = {
    policy.name: policy
    for policy in (NoDelegationPolicy, RoundRobinPolicy, MemoryInformedPolicy, FanOutPolicy)
}

ROLE_POLICIES: Dict[AgentRole, Type[DelegationPolicy]] = {
    AgentRole.PRESIDENT: RoundRobinPolicy,
    AgentRole.SECRETARY: MemoryInformedPolicy,
    AgentRole.DIRECTOR: RoundRobinPolicy,
    AgentRole.MANAGER: RoundRobinPolicy,
    AgentRole.ENGINEER: NoDelegationPolicy,
    AgentRole.LEAD: FanOutPolicy,
}


def policy_for_role(role: AgentRole) -> DelegationPolicy:
    """Default policy of a role"""
    return ROLE_POLICIES[role]()


def policy_by_name(name: str) -> DelegationPolicy:
    try:
        return POLICIES[name]()
    except KeyError:
        raise ConfigurationError(
            f"unknown delegation policy: {name} (expected one of {', '.join(sorted(POLICIES))})"
        ) from None
