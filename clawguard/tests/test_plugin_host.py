"""
Tests for the plugin host and tool exposure gate.
"""

import asyncio

import pytest
from pydantic import BaseModel

from clawguard.core.sandbox import safe_exec
from clawguard.core.tools import NoInput, Tool
from clawguard.service.approvals import ApprovalStatus
from clawguard.service.plugin_host import (
    DuplicateToolError,
    PluginHost,
    summarize_input,
)
from clawguard.service.policy import PolicyDecision, ToolPolicy
from clawguard.service.state_store import StateStoreError


class EchoInput(BaseModel):
    text: str


class EchoExecutor:
    def __init__(self):
        self.calls = []

    async def run(self, params: EchoInput) -> str:
        self.calls.append(params.text)
        return f"echo: {params.text}"


class BrokenExecutor:
    def __init__(self, error: Exception):
        self.error = error

    async def run(self, params) -> str:
        raise self.error


class UnameExecutor:
    async def run(self, params) -> str:
        return await safe_exec("uname", ["-s"])


def _tool(name, executor=None, input_model=EchoInput):
    return Tool(
        name=name,
        description=f"{name} tool",
        executor=executor or EchoExecutor(),
        input_model=input_model,
    )


class TestRegistry:
    """Tool registration."""

    def test_register_and_list(self):
        host = PluginHost()
        host.register_tool(_tool("a"))
        host.register_external_tool(_tool("mcp_b"))

        assert [t.name for t in host.get_tools()] == ["a", "mcp_b"]

    def test_duplicate_names_rejected(self):
        host = PluginHost()
        host.register_tool(_tool("a"))

        with pytest.raises(DuplicateToolError):
            host.register_tool(_tool("a"))
        with pytest.raises(DuplicateToolError):
            host.register_external_tool(_tool("a"))
        assert len(host.get_tools()) == 1

    @pytest.mark.asyncio
    async def test_plugin_lifecycle(self, state):
        order = []

        class ObservePlugin:
            name = "observe"
            version = "0.1.0"

            async def init(self, ctx):
                order.append(("init", self.name, ctx.config))
                assert ctx.state is state
                assert ctx.logger.name == "clawguard.plugin.observe"
                ctx.register_tool(_tool("observe_uname", UnameExecutor()))

            async def shutdown(self):
                order.append(("shutdown", self.name))

        class SchedulerPlugin:
            name = "scheduler"
            version = "0.1.0"

            async def init(self, ctx):
                order.append(("init", self.name, ctx.config))

            async def shutdown(self):
                order.append(("shutdown", self.name))

        host = PluginHost(state=state)
        await host.register(ObservePlugin(), {"allowedReadPaths": ["/tmp"]})
        await host.register(SchedulerPlugin())
        await host.init_all()
        await host.shutdown_all()

        assert order == [
            ("init", "observe", {"allowedReadPaths": ["/tmp"]}),
            ("init", "scheduler", {}),
            ("shutdown", "scheduler"),
            ("shutdown", "observe"),
        ]
        assert [t.name for t in host.get_tools()] == ["observe_uname"]


class TestExposure:
    """Which tools the agent sees per context."""

    @pytest.fixture
    def host(self):
        host = PluginHost()
        for name in ("nixclaw_query", "nixclaw_processes", "Bash"):
            host.register_tool(_tool(name))
        return host

    def test_no_policies_exposes_everything(self, host):
        tools = host.get_tools_for_context("telegram", "anyone")
        assert [t.name for t in tools] == ["nixclaw_query", "nixclaw_processes", "Bash"]

    def test_denied_tools_hidden_approve_tools_visible(self, host):
        host.set_policies(
            [
                ToolPolicy.create("nixclaw_query", "deny", channels=["telegram"]),
                ToolPolicy.create("Bash", "approve"),
            ]
        )

        telegram = [t.name for t in host.get_tools_for_context("telegram", "u")]
        webui = [t.name for t in host.get_tools_for_context("webui", "u")]

        assert telegram == ["nixclaw_processes", "Bash"]
        assert webui == ["nixclaw_query", "nixclaw_processes", "Bash"]
        assert host.decide("Bash", "telegram", "u") == PolicyDecision.APPROVE

    def test_owner_exception_before_wildcard_deny(self, host):
        host.set_policies(
            [
                ToolPolicy.create("*", "allow", users=["owner"]),
                ToolPolicy.create("*", "deny"),
            ]
        )

        assert len(host.get_tools_for_context("telegram", "owner")) == 3
        assert host.get_tools_for_context("telegram", "stranger") == []


class TestExecute:
    """Policy-enforced execution."""

    @pytest.mark.asyncio
    async def test_allowed_tool_runs(self):
        executor = EchoExecutor()
        host = PluginHost()
        host.register_tool(_tool("echo", executor))

        result = await host.execute("echo", {"text": "hi"}, "terminal", "me")

        assert result == "echo: hi"
        assert executor.calls == ["hi"]

    @pytest.mark.asyncio
    async def test_denied_tool_returns_blocked_text(self):
        executor = EchoExecutor()
        host = PluginHost()
        host.register_tool(_tool("echo", executor))
        host.set_policies([ToolPolicy.create("echo", "deny")])

        result = await host.execute("echo", {"text": "hi"}, "terminal", "me")

        assert result.startswith("BLOCKED:")
        assert executor.calls == []

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        result = await PluginHost().execute("ghost", {}, "terminal", "me")
        assert result.startswith("Error:")

    @pytest.mark.asyncio
    async def test_invalid_input_returns_text(self):
        executor = EchoExecutor()
        host = PluginHost()
        host.register_tool(_tool("echo", executor))

        result = await host.execute("echo", {"wrong": 1}, "terminal", "me")

        assert result.startswith("Error: Invalid input")
        assert executor.calls == []

    @pytest.mark.asyncio
    async def test_executor_exception_becomes_text(self):
        host = PluginHost()
        host.register_tool(_tool("boom", BrokenExecutor(RuntimeError("kaput"))))

        result = await host.execute("boom", {"text": "x"}, "terminal", "me")

        assert result.startswith("Error:")
        assert "kaput" in result

    @pytest.mark.asyncio
    async def test_store_failures_propagate(self):
        host = PluginHost()
        host.register_tool(_tool("boom", BrokenExecutor(StateStoreError("disk gone"))))

        with pytest.raises(StateStoreError):
            await host.execute("boom", {"text": "x"}, "terminal", "me")

    @pytest.mark.asyncio
    async def test_sandboxed_tool(self):
        host = PluginHost()
        host.register_tool(_tool("uname", UnameExecutor(), input_model=NoInput))

        result = await host.execute("uname", {}, "terminal", "me")

        assert result.strip()
        assert not result.startswith("BLOCKED")

    @pytest.mark.asyncio
    async def test_approve_without_store_is_blocked(self):
        executor = EchoExecutor()
        host = PluginHost()
        host.register_tool(_tool("echo", executor))
        host.set_policies([ToolPolicy.create("echo", "approve")])

        result = await host.execute("echo", {"text": "hi"}, "terminal", "me")

        assert result.startswith("BLOCKED:")
        assert executor.calls == []


class TestApprovalGating:
    """APPROVE tools wait for a human decision."""

    @pytest.fixture
    def executor(self):
        return EchoExecutor()

    @pytest.fixture
    def host(self, state, approvals, executor):
        host = PluginHost(
            state=state, approvals=approvals, approval_timeout=5, poll_interval=0.02
        )
        host.register_tool(_tool("Bash", executor))
        host.set_policies([ToolPolicy.create("Bash", "approve")])
        return host

    async def _pending_id(self, approvals):
        for _ in range(100):
            pending = approvals.list_pending()
            if pending:
                return pending[0].id
            await asyncio.sleep(0.01)
        raise AssertionError("no approval request was created")

    @pytest.mark.asyncio
    async def test_allowed_after_approval(self, host, approvals, executor):
        task = asyncio.create_task(
            host.execute("Bash", {"text": "git status"}, "telegram", "owner", "s1")
        )
        request_id = await self._pending_id(approvals)
        request = approvals.get(request_id)
        assert request.tool == "Bash"
        assert request.session == "s1"
        assert request.requester == "owner"
        assert "git status" in request.input

        approvals.decide(request_id, ApprovalStatus.ALLOW)

        assert await task == "echo: git status"
        assert executor.calls == ["git status"]

    @pytest.mark.asyncio
    async def test_blocked_after_denial(self, host, approvals, executor):
        task = asyncio.create_task(
            host.execute("Bash", {"text": "rm it"}, "telegram", "owner")
        )
        request_id = await self._pending_id(approvals)
        approvals.decide(request_id, ApprovalStatus.DENY)

        result = await task

        assert result.startswith("BLOCKED:")
        assert "denied" in result
        assert executor.calls == []

    @pytest.mark.asyncio
    async def test_timeout_fails_closed_and_expires(self, host, approvals, executor):
        host.approval_timeout = 0.1

        result = await host.execute("Bash", {"text": "x"}, "telegram", "owner")

        assert result.startswith("BLOCKED:")
        assert "timed out" in result
        assert executor.calls == []
        assert approvals.list_pending() == []
        assert approvals.get_stats()["expired"] == 1


class TestSummarizeInput:
    def test_caps_length(self):
        text = summarize_input({"command": "x" * 2000}, limit=100)
        assert len(text) == 100
        assert text.endswith("...")

    def test_short_input(self):
        assert summarize_input({"command": "ls"}) == "command='ls'"
        assert summarize_input({}) == ""
