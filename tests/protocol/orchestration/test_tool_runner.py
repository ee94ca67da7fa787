"""
Tests for ToolRunner: per-call isolation, ordering and failure reporting.
"""
import asyncio

import pytest

from switchyard_service.core.errors import IntegrationError
from switchyard_service.core.tool_registry import HOSTED_WEB_SEARCH
from switchyard_service.core.types import CallerIdentity, PendingToolCall, ToolManifestEntry
from switchyard_service.protocol.orchestration.tool_runner import ToolRunner
from switchyard_service.providers.dummy.gateway import StaticGateway
from switchyard_service.tools.base import BaseTool

USER = CallerIdentity(user_id="user-1")


class EchoTool(BaseTool):
    """Echo the input back after an optional delay."""

    async def run(self, text: str, delay: float = 0.0) -> dict:
        await asyncio.sleep(delay)
        return {"echo": text}


class BrokenTool(BaseTool):
    """Always raises."""

    async def run(self) -> dict:
        raise RuntimeError("kaput")


def integration_entry(name, integration="gmail"):
    return ToolManifestEntry(identifier=name, schema={"type": "function", "function": {"name": name}},
                             integration=integration)


def local_entry(tool, name):
    return ToolManifestEntry(identifier=name, schema=tool.schema)


def call(name, arguments="{}", call_id=None):
    return PendingToolCall(call_id=call_id or f"call_{name}", tool_name=name, arguments=arguments)


class TestExecute:
    @pytest.mark.asyncio
    async def test_results_keep_input_order(self):
        echo = EchoTool()
        runner = ToolRunner(None, {"echo": echo}, [local_entry(echo, "echo")])
        calls = [
            call("echo", '{"text": "slow", "delay": 0.05}', "c1"),
            call("echo", '{"text": "fast"}', "c2"),
        ]
        results = await runner.execute(calls, USER)
        assert [r.call_id for r in results] == ["c1", "c2"]
        assert results[0].output == {"echo": "slow"}
        assert all(r.success for r in results)

    @pytest.mark.asyncio
    async def test_as_completed_yields_fastest_first(self):
        echo = EchoTool()
        runner = ToolRunner(None, {"echo": echo}, [local_entry(echo, "echo")])
        calls = [
            call("echo", '{"text": "slow", "delay": 0.1}', "c1"),
            call("echo", '{"text": "fast"}', "c2"),
        ]
        order = [idx async for idx, _ in runner.execute_as_completed(calls, USER)]
        assert order == [1, 0]

    @pytest.mark.asyncio
    async def test_integration_tool_goes_through_gateway(self):
        gateway = StaticGateway(connected=["gmail"])
        runner = ToolRunner(gateway, {}, [integration_entry("GMAIL_SEND_EMAIL")])
        (result,) = await runner.execute([call("GMAIL_SEND_EMAIL", '{"to": "bob@example.com"}')], USER)
        assert result.success
        assert gateway.executed == [("GMAIL_SEND_EMAIL", "user-1", {"to": "bob@example.com"})]

    @pytest.mark.asyncio
    async def test_gateway_reported_failure(self):
        gateway = StaticGateway(results={"GMAIL_SEND_EMAIL": {"success": False, "output": {"error": "quota"}}})
        runner = ToolRunner(gateway, {}, [integration_entry("GMAIL_SEND_EMAIL")])
        (result,) = await runner.execute([call("GMAIL_SEND_EMAIL")], USER)
        assert not result.success
        assert result.output == {"error": "quota"}


class TestFailureIsolation:
    @pytest.mark.asyncio
    async def test_one_failure_does_not_affect_siblings(self):
        echo, broken = EchoTool(), BrokenTool()
        gateway = StaticGateway(results={"GMAIL_FETCH_EMAILS": IntegrationError("upstream 502", status=502)})
        runner = ToolRunner(
            gateway,
            {"echo": echo, "broken": broken},
            [local_entry(echo, "echo"), local_entry(broken, "broken"), integration_entry("GMAIL_FETCH_EMAILS")],
        )
        results = await runner.execute(
            [call("echo", '{"text": "ok"}'), call("broken"), call("GMAIL_FETCH_EMAILS")],
            USER,
        )
        assert [r.success for r in results] == [True, False, False]
        assert "kaput" in results[1].output["error"]
        assert "upstream 502" in results[2].output["error"]

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        runner = ToolRunner(None, {}, [])
        (result,) = await runner.execute([call("nope")], USER)
        assert not result.success
        assert "not available" in result.output["error"]

    @pytest.mark.asyncio
    async def test_hosted_tool_is_not_executed_locally(self):
        runner = ToolRunner(None, {}, [HOSTED_WEB_SEARCH])
        (result,) = await runner.execute([call("web_search")], USER)
        assert not result.success

    @pytest.mark.asyncio
    async def test_malformed_arguments(self):
        echo = EchoTool()
        runner = ToolRunner(None, {"echo": echo}, [local_entry(echo, "echo")])
        bad_json, not_object = await runner.execute(
            [call("echo", "{oops", "c1"), call("echo", "[1, 2]", "c2")], USER
        )
        assert "Invalid arguments JSON" in bad_json.output["error"]
        assert not_object.output == {"error": "Tool arguments must be a JSON object"}

    @pytest.mark.asyncio
    async def test_integration_tool_requires_signed_in_user(self):
        gateway = StaticGateway(connected=["gmail"])
        runner = ToolRunner(gateway, {}, [integration_entry("GMAIL_SEND_EMAIL")])
        (result,) = await runner.execute([call("GMAIL_SEND_EMAIL")], CallerIdentity(network_origin="1.2.3.4"))
        assert not result.success
        assert gateway.executed == []

    @pytest.mark.asyncio
    async def test_timeout(self):
        echo = EchoTool()
        runner = ToolRunner(None, {"echo": echo}, [local_entry(echo, "echo")], timeout=0.05)
        (result,) = await runner.execute([call("echo", '{"text": "x", "delay": 1}')], USER)
        assert not result.success
        assert "timed out" in result.output["error"]

    @pytest.mark.asyncio
    async def test_error_dict_from_local_tool_is_failure(self):
        class Refusing(BaseTool):
            """Refuses."""

            async def run(self) -> dict:
                return {"error": "no"}

        tool = Refusing()
        runner = ToolRunner(None, {"refuse": tool}, [local_entry(tool, "refuse")])
        (result,) = await runner.execute([call("refuse")], USER)
        assert result.success is False
        assert result.output == {"error": "no"}
