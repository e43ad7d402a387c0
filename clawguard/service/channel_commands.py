"""
Human-channel approval commands.

A human answers an approval request from a messaging channel by replying
"/allow <id>" or "/deny <id>". Any other text is ordinary conversation.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Sequence

from .approvals import ApprovalRequest, ApprovalStatus, ApprovalStore

logger = logging.getLogger(__name__)

_COMMAND_RE = re.compile(r"^/(allow|deny)\s+(\S+)")


@dataclass(frozen=True)
class ApprovalCommand:
    decision: ApprovalStatus
    id: str


def parse_approval_command(text: str) -> Optional[ApprovalCommand]:
    """Parse "/allow <id>" or "/deny <id>"; None for anything else."""
    match = _COMMAND_RE.match(text or "")
    if not match:
        return None
    return ApprovalCommand(decision=ApprovalStatus(match.group(1)), id=match.group(2))


def format_approval_notification(request: ApprovalRequest) -> str:
    """Message sent to the human approver for a new request."""
    return (
        f"🔐 Approval Request [{request.id}]\n\n"
        f"Tool: {request.tool}\n"
        f"Input: {request.input}\n"
        f"Session: {request.session}\n\n"
        f"Reply:\n/allow {request.id}\n/deny {request.id}"
    )


def handle_channel_message(
    text: str,
    sender: str,
    store: ApprovalStore,
    allowed_users: Sequence[str] = (),
) -> Optional[str]:
    """
    Apply an approval command from a channel message.

    Args:
        text: Incoming message text
        sender: Channel user id of the author
        store: Approval store to decide on
        allowed_users: Users permitted to decide; empty means everyone

    Returns:
        Reply text, or None if the message is not an approval command
    """
    command = parse_approval_command(text)
    if command is None:
        return None

    if allowed_users and sender not in allowed_users:
        logger.warning(f"Unauthorized approval command from {sender}: {text!r}")
        return "✗ You are not allowed to decide approval requests."

    request, changed = store.try_decide(command.id, command.decision)
    if request is None:
        return f"✗ Unknown approval request {command.id}"
    if not changed:
        return f"✗ Request {command.id} is already {request.status.value}"
    return f"✓ Sent {command.decision.value} for request {command.id}"
