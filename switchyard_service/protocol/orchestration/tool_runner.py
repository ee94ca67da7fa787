import asyncio
import json
import time
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

from switchyard_service.core.interfaces import IntegrationGateway, Tool
from switchyard_service.core.logging import logger
from switchyard_service.core.types import CallerIdentity, PendingToolCall, ToolManifestEntry, ToolResult


class ToolRunner:
    """
    Execute one batch of tool calls, each as its own task with a timeout.

    Every call ends in a ToolResult; failures (unknown tool, bad arguments,
    missing authorization, gateway error, timeout) are reported in the result
    and never affect sibling calls. Nothing is retried here.
    """

    def __init__(
        self,
        gateway: Optional[IntegrationGateway],
        local_tools: Dict[str, Tool],
        manifest: Sequence[ToolManifestEntry],
        timeout: float = 30,
        request_id: Optional[str] = None,
    ):
        self.gateway = gateway
        self.local_tools = local_tools or {}
        self.manifest = {entry.identifier: entry for entry in manifest}
        self.timeout = timeout
        self.request_id = request_id

    async def execute(self, calls: Sequence[PendingToolCall], identity: CallerIdentity) -> List[ToolResult]:
        """Run the batch; results come back in input order."""
        results: List[Optional[ToolResult]] = [None] * len(calls)
        async for idx, result in self.execute_as_completed(calls, identity):
            results[idx] = result
        return results  # type: ignore[return-value]

    async def execute_as_completed(
        self,
        calls: Sequence[PendingToolCall],
        identity: CallerIdentity,
    ) -> AsyncIterator[Tuple[int, ToolResult]]:
        """Yield (input index, result) pairs as results become available."""
        tasks = {asyncio.create_task(self._run_one(call, identity)): idx for idx, call in enumerate(calls)}
        pending = set(tasks)
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in sorted(done, key=tasks.__getitem__):
                    yield tasks[task], task.result()
        finally:
            # consumer went away: abandon whatever is still running
            for task in pending:
                task.cancel()

    async def _run_one(self, call: PendingToolCall, identity: CallerIdentity) -> ToolResult:
        start = time.monotonic()
        result = await self._dispatch(call, identity)
        logger.info(
            f"Tool call: request_id={self.request_id}, tool={call.tool_name}, call_id={call.call_id}, success={result.success}, "
            f"duration_ms={int((time.monotonic() - start) * 1000)}"
        )
        return result

    async def _dispatch(self, call: PendingToolCall, identity: CallerIdentity) -> ToolResult:
        def failed(message: str) -> ToolResult:
            return ToolResult(call_id=call.call_id, tool_name=call.tool_name, success=False, output={"error": message})

        entry = self.manifest.get(call.tool_name)
        if entry is None or entry.hosted:
            return failed(f"Tool '{call.tool_name}' is not available for this request")

        try:
            args = json.loads(call.arguments or "{}")
        except ValueError as e:
            return failed(f"Invalid arguments JSON: {e}")
        if not isinstance(args, dict):
            return failed("Tool arguments must be a JSON object")

        try:
            if entry.integration:
                if not identity.is_authenticated or self.gateway is None:
                    return failed(f"Tool '{call.tool_name}' requires a signed-in user with {entry.integration} connected")
                outcome = await asyncio.wait_for(
                    self.gateway.execute(call.tool_name, identity.user_id, args),
                    timeout=self.timeout,
                )
                return ToolResult(
                    call_id=call.call_id,
                    tool_name=call.tool_name,
                    success=bool(outcome.get("success")),
                    output=outcome.get("output"),
                )

            tool = self.local_tools.get(call.tool_name)
            if tool is None:
                return failed(f"Tool '{call.tool_name}' not found")
            output: Any = await asyncio.wait_for(tool.run(**args), timeout=self.timeout)
            success = not (isinstance(output, dict) and "error" in output)
            return ToolResult(call_id=call.call_id, tool_name=call.tool_name, success=success, output=output)

        except asyncio.TimeoutError:
            return failed(f"Tool '{call.tool_name}' timed out after {self.timeout}s")
        except Exception as e:
            logger.warning(f"Tool '{call.tool_name}' raised {type(e).__name__}: {e}")
            return failed(f"{type(e).__name__}: {e}")
