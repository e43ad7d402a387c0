"""
Plugin Host and Tool Exposure Gate.

Plugins register tools at init time. Per invocation context (channel,
sender) the host decides which tools the agent may see, and gates every
execution through the same policy:

- DENY: tool hidden, execution refused
- ALLOW: tool visible, runs directly
- APPROVE: tool visible, execution waits for a human decision through the
  Approval Store (fail-closed on timeout)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from ..core.tools import Tool
from .approvals import ApprovalStatus, ApprovalStore, wait_for_decision
from .policy import PolicyDecision, ToolPolicy, evaluate_policy
from .state_store import StateStore, StateStoreError

logger = logging.getLogger(__name__)

INPUT_SUMMARY_LIMIT = 500


class DuplicateToolError(Exception):
    """Raised when a tool name is registered twice."""

    pass


@dataclass
class PluginContext:
    """Everything a plugin gets during init."""

    register_tool: Callable[[Tool], None]
    state: Optional[StateStore]
    config: Dict[str, Any] = field(default_factory=dict)
    logger: logging.Logger = logger


class Plugin(Protocol):
    name: str
    version: str

    async def init(self, ctx: PluginContext) -> None: ...

    async def shutdown(self) -> None: ...


def summarize_input(raw_input: Dict[str, Any], limit: int = INPUT_SUMMARY_LIMIT) -> str:
    """One-line, length-capped rendering of tool input for approvers."""
    text = ", ".join(f"{k}={v!r}" for k, v in (raw_input or {}).items())
    return text if len(text) <= limit else text[: limit - 3] + "..."


class PluginHost:
    """
    Tool registry plus per-context exposure and execution gate.

    Tool names are unique: registering a name twice raises
    DuplicateToolError instead of silently shadowing the first tool.
    """

    def __init__(
        self,
        state: Optional[StateStore] = None,
        approvals: Optional[ApprovalStore] = None,
        approval_timeout: float = 300.0,
        poll_interval: float = 1.0,
    ):
        self.state = state
        self.approvals = approvals
        self.approval_timeout = approval_timeout
        self.poll_interval = poll_interval
        self._plugins: List[tuple] = []
        self._tools: Dict[str, Tool] = {}
        self._policies: List[ToolPolicy] = []

    # === Plugin lifecycle ===

    async def register(self, plugin: Plugin, config: Optional[Dict[str, Any]] = None):
        self._plugins.append((plugin, config or {}))

    async def init_all(self):
        for plugin, config in self._plugins:
            ctx = PluginContext(
                register_tool=self.register_tool,
                state=self.state,
                config=config,
                logger=logging.getLogger(f"clawguard.plugin.{plugin.name}"),
            )
            await plugin.init(ctx)
            logger.info(f"Initialized plugin {plugin.name} v{plugin.version}")

    async def shutdown_all(self):
        for plugin, _ in reversed(self._plugins):
            await plugin.shutdown()

    # === Registry ===

    def register_tool(self, tool: Tool):
        if tool.name in self._tools:
            raise DuplicateToolError(f'Tool "{tool.name}" is already registered')
        self._tools[tool.name] = tool
        logger.debug(f"Registered tool {tool.name}")

    def register_external_tool(self, tool: Tool):
        """Register a tool imported from an external provider."""
        self.register_tool(tool)

    def get_tools(self) -> List[Tool]:
        return list(self._tools.values())

    def set_policies(self, policies: Sequence[ToolPolicy]):
        self._policies = list(policies)

    # === Exposure gate ===

    def decide(self, tool_name: str, channel: str, sender: str) -> PolicyDecision:
        return evaluate_policy(self._policies, tool_name, channel, sender)

    def get_tools_for_context(self, channel: str, sender: str) -> List[Tool]:
        """Tools visible to the agent for this channel and sender."""
        return [
            tool
            for tool in self._tools.values()
            if self.decide(tool.name, channel, sender) != PolicyDecision.DENY
        ]

    async def execute(
        self,
        tool_name: str,
        raw_input: Dict[str, Any],
        channel: str,
        sender: str,
        session: str = "agent",
    ) -> str:
        """
        Run a tool on behalf of a sender, enforcing policy.

        Always returns text. Only StateStoreError propagates, since losing an
        approval decision must not look like an ordinary tool failure.
        """
        tool = self._tools.get(tool_name)
        if tool is None:
            return f'Error: Unknown tool "{tool_name}"'

        decision = self.decide(tool_name, channel, sender)

        if decision == PolicyDecision.DENY:
            logger.info(f"Tool {tool_name} denied for {sender} on {channel}")
            return f'BLOCKED: Tool "{tool_name}" is not permitted for {sender} on {channel}.'

        if decision == PolicyDecision.APPROVE:
            blocked = await self._await_approval(tool_name, raw_input, session, sender)
            if blocked:
                return blocked

        try:
            return await tool.invoke(raw_input)
        except StateStoreError:
            raise
        except Exception as e:
            logger.error(f"Tool {tool_name} failed: {e}", exc_info=True)
            return f'Error: Tool "{tool_name}" failed: {e}'

    async def _await_approval(
        self, tool_name: str, raw_input: Dict[str, Any], session: str, sender: str
    ) -> Optional[str]:
        """Block until a human decides. Returns refusal text, or None if allowed."""
        if self.approvals is None:
            logger.warning(f"Tool {tool_name} requires approval but none is configured")
            return f'BLOCKED: Tool "{tool_name}" requires approval, which is unavailable.'

        request_id = self.approvals.request_approval(
            tool=tool_name,
            input=summarize_input(raw_input),
            session=session,
            requester=sender,
        )
        status = await wait_for_decision(
            self.approvals,
            request_id,
            timeout=self.approval_timeout,
            poll_interval=self.poll_interval,
        )

        if status is None:
            # A decision may land between the last poll and the expiry
            request = self.approvals.expire(request_id)
            status = request.status if request else ApprovalStatus.EXPIRED

        if status == ApprovalStatus.ALLOW:
            return None
        if status == ApprovalStatus.DENY:
            return (
                f'BLOCKED: Tool "{tool_name}" was denied by the approver '
                f"(request {request_id})."
            )
        return (
            f'BLOCKED: Approval for tool "{tool_name}" timed out '
            f"(request {request_id})."
        )
