from typing import Annotated, Dict, Any

import structlog
from fastapi import APIRouter, Depends, Request

from bureau.domain.models.task import Task, TaskResponse
from bureau.domain.notification.notifier import notify_safely
from bureau.domain.orchestration.core.organization import Organization
from ..schema.requests import NotifyAck, NotifyRequest, TaskRequest

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1")


def get_organization(request: Request) -> Organization:
    return request.app.state.organization


OrganizationDep = Annotated[Organization, Depends(get_organization)]


@router.post("/tasks", response_model=TaskResponse)
async def submit_task(request: TaskRequest, organization: OrganizationDep) -> TaskResponse:
    """Run a task through the hierarchy; failures come back as status=failed"""

    task = Task(
        title=request.title,
        description=request.description,
        content=request.content,
        priority=request.priority,
        metadata=request.metadata,
        from_agent="client",
    )
    return await organization.submit_task(task, timeout=request.timeout)


@router.get("/agents")
async def list_agents(organization: OrganizationDep) -> Dict[str, Any]:
    return {
        "root": organization.root.agent_id if organization.root else None,
        "agents": await organization.get_status(),
    }


@router.get("/agents/{agent_id}/status")
async def agent_status(agent_id: str, organization: OrganizationDep) -> Dict[str, Any]:
    agent = organization.get_agent(agent_id)
    stats = await agent.get_stats()
    return stats.get_state_summary()


@router.post("/agents/{agent_id}/start")
async def start_agent(agent_id: str, organization: OrganizationDep) -> Dict[str, Any]:
    agent = organization.get_agent(agent_id)
    await agent.start()
    return (await agent.get_stats()).get_state_summary()


@router.post("/agents/{agent_id}/stop")
async def stop_agent(agent_id: str, organization: OrganizationDep) -> Dict[str, Any]:
    agent = organization.get_agent(agent_id)
    await agent.stop()
    return (await agent.get_stats()).get_state_summary()


@router.post("/agents/{agent_id}/notify", response_model=NotifyAck)
async def notify_agent(agent_id: str, request: NotifyRequest, organization: OrganizationDep) -> NotifyAck:
    """Fire-and-forget notification, forwarded to the organization's notifier"""

    agent = organization.get_agent(agent_id)
    logger.info(
        "Notification received",
        agent_id=agent.agent_id,
        role=agent.role.value,
        event_type=request.event_type,
        message=request.message,
        details=request.details,
    )
    await notify_safely(
        organization.notifier,
        request.event_type,
        agent.role.value,
        request.message,
        {**request.details, "agent_id": agent.agent_id},
    )
    return NotifyAck(agent_id=agent.agent_id)
