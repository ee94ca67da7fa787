from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    return {"ok": True}


@router.get("/readyz")
def readyz(request: Request):
    """
    Provider: credentials present.
    Gateway: credentials present (integrations degrade to none without them).
    """
    orchestrator = request.app.state.agent_svc.orchestrator
    provider_ok = orchestrator.driver.provider.is_configured()
    gateway = orchestrator.gateway
    gateway_ok = gateway.is_configured() if gateway is not None else False
    return {"ready": provider_ok, "provider": provider_ok, "integrations": gateway_ok}
