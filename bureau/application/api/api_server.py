from contextlib import asynccontextmanager
import os

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bureau.domain.errors import AgentStateError, ConfigurationError, NotFoundError
from bureau.domain.orchestration.core.organization import Organization
from bureau.infrastructure.config.factory import build_organization
from bureau.infrastructure.config.settings import load_config
from bureau.infrastructure.observability.logging import setup_logging
from .route.organization import router

logger = structlog.get_logger(__name__)


def create_app(organization: Organization) -> FastAPI:
    """Build the HTTP transport around an organization"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await organization.start()
        logger.info("API server started", agents=len(organization.agents))
        yield
        await organization.close()
        logger.info("API server stopped")

    app = FastAPI(title="Bureau API", lifespan=lifespan)
    app.state.organization = organization

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(AgentStateError)
    async def agent_state_handler(request: Request, exc: AgentStateError):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(ConfigurationError)
    async def configuration_handler(request: Request, exc: ConfigurationError):
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    app.include_router(router)
    return app


def main() -> None:
    config = load_config(os.getenv("BUREAU_CONFIG", "config/bureau.yaml"))
    setup_logging(config.log_level, config.log_format)

    app = create_app(build_organization(config))
    uvicorn.run(
        app,
        host=os.getenv("BUREAU_HOST", "0.0.0.0"),
        port=int(os.getenv("BUREAU_PORT", "8000")),
    )


if __name__ == "__main__":
    main()
