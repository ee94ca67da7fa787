from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI

from switchyard_service.app.http.routers.agent import router as agent_router
from switchyard_service.app.http.routers.health import router as health_router
from switchyard_service.app.http.routers.integrations import router as integrations_router
from switchyard_service.core.logging import configure_logging
from switchyard_service.protocol.service.agent_service import AgentService


def create_app(settings: Optional[Dict[str, Any]] = None, service: Optional[AgentService] = None) -> FastAPI:
    """Create and configure the FastAPI application with DI"""
    from switchyard_service.core.factory import ServiceFactory

    factory = ServiceFactory(settings)
    configure_logging(factory.config)

    app = FastAPI(title="Switchyard")
    app.state.settings = factory.config
    app.state.agent_svc = service or factory.get_agent_service()

    v1_router = APIRouter(prefix="/api/v1")
    v1_router.include_router(agent_router)
    v1_router.include_router(health_router)
    v1_router.include_router(integrations_router)

    app.include_router(v1_router)
    return app
