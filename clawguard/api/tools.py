"""
Tool exposure endpoints for ClawGuard.

Lets a channel adapter ask which tools the agent may use for a given
channel and sender.
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Request
from pydantic import BaseModel

from ..service.plugin_host import PluginHost

logger = logging.getLogger(__name__)
router = APIRouter()


class ToolInfo(BaseModel):
    name: str
    description: str
    decision: str
    input_schema: Dict[str, Any]


class ToolsResponse(BaseModel):
    channel: str
    sender: str
    count: int
    tools: List[ToolInfo]


@router.get("/api/tools", response_model=ToolsResponse)
async def list_tools(request: Request, channel: str, sender: str):
    """Tools visible for a channel/sender pair (denied tools are omitted)."""
    host: PluginHost = request.app.state.plugin_host
    tools = [
        ToolInfo(
            name=tool.name,
            description=tool.description,
            decision=host.decide(tool.name, channel, sender).value,
            input_schema=tool.input_schema(),
        )
        for tool in host.get_tools_for_context(channel, sender)
    ]
    logger.debug(f"{len(tools)} tools visible for {sender} on {channel}")
    return ToolsResponse(channel=channel, sender=sender, count=len(tools), tools=tools)
