import asyncio
from typing import Any, AsyncGenerator, Dict, Iterable, Set

from switchyard_service.core.interfaces import Admission, RateLimiter
from switchyard_service.core.logging import logger
from switchyard_service.core.types import CallerIdentity
from switchyard_service.protocol.messages import validate_messages
from switchyard_service.protocol.orchestration.emitter import EventChannel, NdjsonEmitter
from switchyard_service.protocol.orchestration.orchestrator import OrchestrationRequest, Orchestrator


class AgentService:
    """Admission, validation and NDJSON streaming around the orchestrator."""

    def __init__(
        self,
        orchestrator: Orchestrator,
        rate_limiter: RateLimiter,
        max_messages: int = 100,
        max_message_chars: int = 100_000,
    ):
        self.orchestrator = orchestrator
        self.rate_limiter = rate_limiter
        self.max_messages = max_messages
        self.max_message_chars = max_message_chars
        self._active: Set[asyncio.Task] = set()

    def admit(self, identity: CallerIdentity) -> Admission:
        return self.rate_limiter.admit(identity.rate_limit_key)

    def prepare(
        self,
        messages: Iterable[Dict[str, Any]],
        identity: CallerIdentity,
        selected_integrations: Iterable[str] = (),
        is_user_facing: bool = True,
    ) -> OrchestrationRequest:
        """Validate the inbound payload; raises InvalidRequestError."""
        validated = validate_messages(messages, self.max_messages, self.max_message_chars)
        return OrchestrationRequest(
            messages=tuple(validated),
            identity=identity,
            selected_integrations=tuple(dict.fromkeys(selected_integrations or ())),
            is_user_facing=is_user_facing,
        )

    async def stream(self, request: OrchestrationRequest) -> AsyncGenerator[bytes, None]:
        """
        Run the orchestrator as its own task and relay its events as NDJSON lines.
        Closing this generator closes the channel, which the orchestrator
        notices at its next event and abandons the request.
        """
        channel = EventChannel()
        emitter = NdjsonEmitter(request.request_id)
        task = asyncio.create_task(self.orchestrator.run(request, channel))
        self._active.add(task)
        task.add_done_callback(self._active.discard)

        try:
            async for event in channel:
                yield emitter.emit(event)
        finally:
            if not channel.closed:
                logger.info(f"Stream consumer left early: request_id={request.request_id}")
            channel.close()

    @property
    def active_requests(self) -> int:
        return len(self._active)
