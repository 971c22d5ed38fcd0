from typing import TypedDict, Annotated, List, Optional, Literal, TYPE_CHECKING
import operator

import structlog
from langgraph.graph import StateGraph, END

from bureau.domain.errors import DelegationError, GenerationError
from bureau.domain.models.memory import MemoryEntry, MemoryType
from bureau.domain.models.task import Task, TaskResponse, TaskStatus
from bureau.domain.notification.notifier import NotificationType, notify_safely
from bureau.infrastructure.observability.logging import agent_logger
from .delegation import DelegationContract

if TYPE_CHECKING:
    from .agent import Agent

logger = structlog.get_logger(__name__)

RELATED_CONTEXT_LIMIT = 3
KNOWLEDGE_CONTEXT_LIMIT = 2


class TaskWorkflowState(TypedDict):
    """State for one agent processing one task"""
    task: Task
    related_tasks: List[MemoryEntry]
    knowledge: List[MemoryEntry]
    output: Optional[str]
    transcript: Annotated[List[str], operator.add]
    delegated: bool
    response: Optional[TaskResponse]


class TaskWorkflow:
    """Per-call state machine of an agent, compiled once per agent.

    received -> consult_memory? -> generate? -> delegate? -> finalize
    """

    def __init__(self, agent: "Agent"):
        self.agent = agent
        self.graph = self._create_workflow()

    def _create_workflow(self):
        workflow = StateGraph(TaskWorkflowState)

        workflow.add_node("receive", self.receive_node)
        workflow.add_node("consult_memory", self.consult_memory_node)
        workflow.add_node("generate", self.generate_node)
        workflow.add_node("delegate", self.delegate_node)
        workflow.add_node("finalize", self.finalize_node)

        workflow.set_entry_point("receive")

        workflow.add_conditional_edges(
            "receive",
            self.route_after_receive,
            {
                "consult_memory": "consult_memory",
                "generate": "generate",
                "delegate": "delegate",
                "finalize": "finalize",
            }
        )
        workflow.add_conditional_edges(
            "consult_memory",
            self.route_after_memory,
            {
                "generate": "generate",
                "delegate": "delegate",
                "finalize": "finalize",
            }
        )
        workflow.add_conditional_edges(
            "generate",
            self.route_to_delegation,
            {
                "delegate": "delegate",
                "finalize": "finalize",
            }
        )
        workflow.add_edge("delegate", "finalize")
        workflow.add_edge("finalize", END)

        return workflow.compile()

    async def run(self, task: Task) -> TaskResponse:
        """Drive a task through the graph and return the terminal response"""

        initial_state: TaskWorkflowState = {
            "task": task,
            "related_tasks": [],
            "knowledge": [],
            "output": None,
            "transcript": [],
            "delegated": False,
            "response": None,
        }
        final_state = await self.graph.ainvoke(initial_state)
        return final_state["response"]

    # Nodes

    async def receive_node(self, state: TaskWorkflowState) -> dict:
        agent = self.agent
        task = state["task"]

        await agent.memory.store_conversation(
            f"Received task: {task.title} - {task.description}",
            [agent.role_tag, "task"],
        )
        agent_logger.log_agent_event("task_received", agent.agent_id, agent.role.value, task.id)

        return {"transcript": [f"{agent.role.value} {agent.agent_id} processing task: {task.title}\n"]}

    async def consult_memory_node(self, state: TaskWorkflowState) -> dict:
        """Pull related past tasks and knowledge into the prompt context"""

        agent = self.agent
        task = state["task"]
        query = task.description or task.title

        related = await agent.memory.get_related_tasks(query, RELATED_CONTEXT_LIMIT)
        related = [entry for entry in related if entry.type == MemoryType.TASK]
        knowledge = await agent.memory.get_knowledge(query, KNOWLEDGE_CONTEXT_LIMIT)

        transcript = []
        if related:
            transcript.append(f"Found {len(related)} related past task(s) to reference.\n")

        return {"related_tasks": related, "knowledge": knowledge, "transcript": transcript}

    async def generate_node(self, state: TaskWorkflowState) -> dict:
        agent = self.agent
        task = state["task"]
        prompt = self._build_prompt(task, state["related_tasks"], state["knowledge"])

        try:
            output = await agent.generator.generate(prompt, agent.generate_options)
        except GenerationError as e:
            logger.warning("Generation failed, using local content", agent_id=agent.agent_id, task_id=task.id, error=str(e))
            return {"output": None, "transcript": [f"Warning: generation failed: {e}\n"]}

        await agent.memory.store_knowledge(
            f"Output for: {task.title}\n\n{output}",
            [agent.role_tag, "output", task.title],
        )

        return {
            "output": output,
            "transcript": ["=== Generated Output ===\n", output, "\n=== End of Output ===\n"],
        }

    async def delegate_node(self, state: TaskWorkflowState) -> dict:
        agent = self.agent
        task = state["task"]
        subordinate_ids = agent.get_subordinate_ids()

        if not subordinate_ids:
            return {
                "transcript": [
                    f"No {agent.subordinate_label} available. Task completed at {agent.role.value} level.\n"
                ]
            }

        targets = await agent.policy.select_targets(agent, task, subordinate_ids)
        content = state["output"] if state["output"] else task.content

        if agent.policy.contract == DelegationContract.FIRE_AND_FORGET:
            for target in targets:
                subordinate = agent.resolve(target)
                child = task.delegate(agent.agent_id, target, f"{subordinate.role.value}: {task.title}", content)
                await self._announce(subordinate, child)
                agent.dispatch(subordinate, child)
            return {
                "delegated": True,
                "transcript": [f"Dispatched to {len(targets)} {agent.subordinate_label}: {', '.join(targets)}\n"],
            }

        target = targets[0]
        subordinate = agent.resolve(target)
        child = task.delegate(agent.agent_id, target, f"{subordinate.role.value}: {task.title}", content)
        await self._announce(subordinate, child)

        try:
            response = await subordinate.process_task(child)
        except DelegationError as e:
            raise DelegationError(agent.agent_id, agent.role.value, target) from e
        except Exception as e:
            raise DelegationError(agent.agent_id, agent.role.value, target, str(e)) from e

        if response.failed:
            raise DelegationError(agent.agent_id, agent.role.value, target, response.error or "task failed")

        return {
            "delegated": True,
            "transcript": [
                f"Delegated to {subordinate.role.value} {target}\n",
                f"{subordinate.role.value} response: {response.result}\n",
            ],
        }

    async def finalize_node(self, state: TaskWorkflowState) -> dict:
        agent = self.agent
        task = state["task"]
        result = "".join(state["transcript"])

        tags = [agent.role_tag, "completed", "delegated" if state["delegated"] else "no-delegation"]
        await agent.memory.store_task(task, result, tags)

        await notify_safely(
            agent.notifier,
            NotificationType.TASK_COMPLETED.value,
            agent.role.value,
            f"{task.title} completed by {agent.agent_id}",
            {"task_id": task.id, "agent_id": agent.agent_id},
        )
        agent_logger.log_agent_event("task_completed", agent.agent_id, agent.role.value, task.id)

        response = TaskResponse(
            task_id=task.id,
            status=TaskStatus.COMPLETED,
            result=result,
            metadata={"agent_id": agent.agent_id, "role": agent.role.value},
        )
        return {"response": response}

    # Routing

    def route_after_receive(self, state: TaskWorkflowState) -> Literal["consult_memory", "generate", "delegate", "finalize"]:
        if self.agent.memory.enabled:
            return self._transition(state, "receive", "consult_memory", "memory enabled")
        return self._transition(state, "receive", self._next_after_memory(), None)

    def route_after_memory(self, state: TaskWorkflowState) -> Literal["generate", "delegate", "finalize"]:
        return self._transition(state, "consult_memory", self._next_after_memory(), None)

    def route_to_delegation(self, state: TaskWorkflowState) -> Literal["delegate", "finalize"]:
        if self.agent.policy.delegates:
            return self._transition(state, "generate", "delegate", self.agent.policy.name)
        return self._transition(state, "generate", "finalize", "leaf role")

    def _next_after_memory(self) -> str:
        if self.agent.generator is not None:
            return "generate"
        if self.agent.policy.delegates:
            return "delegate"
        return "finalize"

    def _transition(self, state: TaskWorkflowState, from_node: str, to_node: str, condition: Optional[str]) -> str:
        agent_logger.log_workflow_transition(self.agent.agent_id, state["task"].id, from_node, to_node, condition)
        return to_node

    # Helpers

    async def _announce(self, subordinate: "Agent", child: Task) -> None:
        """Record, log and notify a delegation before handing it over"""

        agent = self.agent
        await agent.memory.store_decision(
            f"Delegated to {subordinate.role_tag} {subordinate.agent_id}",
            f"Selected by {agent.policy.name} policy",
            ["delegation", subordinate.role_tag],
        )
        agent_logger.log_delegation(
            agent.agent_id, subordinate.agent_id, child.id, agent.policy.name, agent.policy.contract.value
        )
        await notify_safely(
            agent.notifier,
            NotificationType.TASK_ASSIGNED.value,
            agent.role.value,
            f"{child.title} assigned to {subordinate.agent_id}",
            {"task_id": child.id, "parent_task_id": child.metadata.get("parent_task_id", ""), "to_agent": subordinate.agent_id},
        )

    def _build_prompt(self, task: Task, related: List[MemoryEntry], knowledge: List[MemoryEntry]) -> str:
        lines = [
            f"You are the {self.agent.role.value} of a software organization. Handle the following task:",
            "",
            f"Title: {task.title}",
            f"Description: {task.description}",
            f"Details: {task.content}",
        ]

        if related:
            lines.extend(["", "=== Context from Past Tasks ==="])
            for i, entry in enumerate(related, start=1):
                lines.append(f"Past Task {i}:\n{entry.content}")
            lines.append("=== End of Past Context ===")

        if knowledge:
            lines.extend(["", "=== Relevant Knowledge ==="])
            lines.extend(entry.content for entry in knowledge)
            lines.append("=== End of Knowledge ===")

        return "\n".join(lines)
