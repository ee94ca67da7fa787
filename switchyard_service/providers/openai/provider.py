import os
from typing import Any, AsyncGenerator, Dict, Optional

from dotenv import load_dotenv
from openai import AsyncOpenAI

from switchyard_service.core.interfaces import CompletionProvider, CompletionRequest
from switchyard_service.core.logging import logger


load_dotenv()


class OpenAIResponsesProvider(CompletionProvider):
    """Streams the OpenAI Responses API; events are passed on as plain dicts."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 120,
        max_retries: int = 3,
        stateful_continuation: bool = False,
    ):
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.base_url = base_url or os.getenv("OPENAI_BASE_URL")
        self.timeout = timeout
        self.max_retries = max_retries
        self.stateful_continuation = stateful_continuation
        self._client: Optional[AsyncOpenAI] = None

    @property
    def supports_continuation(self) -> bool:
        return self.stateful_continuation

    def is_configured(self) -> bool:
        return bool(self.api_key)

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=self.max_retries,
            )
        return self._client

    async def stream(self, request: CompletionRequest) -> AsyncGenerator[Dict[str, Any], None]:
        params = request.to_params()
        logger.debug(f"OpenAI responses.create: model={request.model}, stream=True")
        stream = await self.client.responses.create(**params, stream=True)
        async with stream:
            async for event in stream:
                yield event.model_dump(exclude_none=True)
