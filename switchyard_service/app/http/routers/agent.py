import math
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from switchyard_service.core.errors import InvalidRequestError
from switchyard_service.core.logging import logger
from switchyard_service.core.types import CallerIdentity, ErrorEvent, ErrorKind

router = APIRouter(prefix="/agent", tags=["agent"])


class MessageIn(BaseModel):
    role: str = Field(..., description="'user' or 'assistant'.")
    content: Union[str, List[Dict[str, Any]]] = Field(..., description="Text, or a list of typed content segments.")


class AgentStreamRequest(BaseModel):
    messages: List[MessageIn] = Field(..., description="Conversation history, oldest first.")
    selected_integrations: List[str] = Field(default_factory=list, description="Integration ids to make available, e.g. gmail.")


def caller_identity(request: Request) -> CallerIdentity:
    """Identity comes from the fronting layer: X-User-Id, else the client address."""
    user_id = (request.headers.get("x-user-id") or "").strip() or None
    forwarded = request.headers.get("x-forwarded-for", "")
    origin = forwarded.split(",")[0].strip() if forwarded else None
    if not origin and request.client:
        origin = request.client.host
    return CallerIdentity(user_id=user_id, network_origin=origin or None)


def _error_body(event: ErrorEvent, **extra: Any) -> Dict[str, Any]:
    return {"type": str(event.type), "data": event.data(), **extra}


@router.post("/stream")
async def stream(request: Request, body: AgentStreamRequest):
    svc = request.app.state.agent_svc
    identity = caller_identity(request)

    admission = svc.admit(identity)
    if not admission.allowed:
        logger.info(f"/agent/stream rate limited: key={identity.rate_limit_key}, wait_ms={admission.wait_ms}")
        event = ErrorEvent(
            ErrorKind.RATE_LIMITED,
            f"Too many requests. Please retry in {math.ceil(admission.wait_ms / 1000)}s.",
            retryable=True,
            wait_ms=admission.wait_ms,
        )
        return JSONResponse(
            status_code=429,
            content=_error_body(event, retry_after_ms=admission.wait_ms),
            headers={"Retry-After": str(max(1, math.ceil(admission.wait_ms / 1000)))},
        )

    try:
        orchestration = svc.prepare(
            [m.model_dump() for m in body.messages],
            identity,
            body.selected_integrations,
        )
    except InvalidRequestError as e:
        return JSONResponse(
            status_code=400,
            content={"type": "error", "data": {"kind": "invalid_request", "message": str(e), "retryable": False}},
        )

    logger.info(
        f"/agent/stream called: request_id={orchestration.request_id}, user={identity.user_id or 'anonymous'}, "
        f"messages={len(orchestration.messages)}"
    )

    async def event_generator():
        frames = svc.stream(orchestration)
        try:
            async for frame in frames:
                # Check disconnect BEFORE yielding
                if await request.is_disconnected():
                    logger.info(f"Client disconnected: request_id={orchestration.request_id}")
                    break
                yield frame
        except Exception as e:
            logger.exception(f"Exception in /agent/stream: {e}")
            raise
        finally:
            await frames.aclose()

    return StreamingResponse(
        event_generator(),
        media_type="application/x-ndjson",
        headers={"X-Request-Id": orchestration.request_id, "Cache-Control": "no-cache"},
    )
