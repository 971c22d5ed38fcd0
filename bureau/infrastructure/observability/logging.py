import structlog
import logging
import sys
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import os


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "bureau"
) -> None:
    """Setup structured logging configuration"""

    # Configure Python logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO)
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        add_service_context,
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(
        service=service_name,
        environment=os.getenv("ENVIRONMENT", "development"),
    )


def add_service_context(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add service context to all log entries"""

    if "timestamp" not in event_dict:
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()

    # Root task id, bound by the organization for the duration of a request
    request_id = structlog.contextvars.get_contextvars().get("request_id")
    if request_id:
        event_dict["request_id"] = request_id

    return event_dict


class AgentLogger:
    """Specialized logger for agent operations"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_agent_event(
        self,
        event_type: str,
        agent_id: str,
        role: str,
        task_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        """Log agent-specific events"""

        self.logger.info(
            "agent_event",
            event_type=event_type,
            agent_id=agent_id,
            role=role,
            task_id=task_id,
            data=data or {},
            **kwargs
        )

    def log_delegation(
        self,
        agent_id: str,
        subordinate_id: str,
        task_id: str,
        policy: str,
        contract: str
    ):
        """Log a delegation decision"""

        self.logger.info(
            "delegation",
            agent_id=agent_id,
            subordinate_id=subordinate_id,
            task_id=task_id,
            policy=policy,
            contract=contract
        )

    def log_workflow_transition(
        self,
        agent_id: str,
        task_id: str,
        from_node: str,
        to_node: str,
        condition: Optional[str] = None
    ):
        """Log workflow state transitions"""

        self.logger.debug(
            "workflow_transition",
            agent_id=agent_id,
            task_id=task_id,
            from_node=from_node,
            to_node=to_node,
            condition=condition
        )

    def log_memory_operation(
        self,
        operation: str,
        memory_id: Optional[str] = None,
        agent_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """Log memory store/search/prune operations"""

        self.logger.debug(
            "memory_operation",
            operation=operation,
            memory_id=memory_id,
            agent_id=agent_id,
            details=details or {}
        )


# Global logger instance
agent_logger = AgentLogger("bureau")
