"""
Tool Policy Engine - Ordered first-match-wins rules.

Each rule names a tool (or "*"), an effect, and optional channel/user sets.
Rules are evaluated in order and the first match decides. Specific allow
rules must therefore come before general deny rules to carve out exceptions.

No rule matching means ALLOW. Operators get fail-closed behavior by
appending an explicit wildcard deny rule.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Iterable, Optional, Sequence

logger = logging.getLogger(__name__)

WILDCARD = "*"


class PolicyDecision(str, Enum):
    """Effect of a policy rule."""

    ALLOW = "allow"
    DENY = "deny"
    APPROVE = "approve"  # Allowed only after a human decision


@dataclass(frozen=True)
class ToolPolicy:
    """A single ordered policy rule."""

    tool: str
    effect: PolicyDecision
    channels: Optional[FrozenSet[str]] = None
    users: Optional[FrozenSet[str]] = None

    @classmethod
    def create(
        cls,
        tool: str,
        effect: str,
        channels: Optional[Iterable[str]] = None,
        users: Optional[Iterable[str]] = None,
    ) -> "ToolPolicy":
        return cls(
            tool=tool,
            effect=PolicyDecision(effect),
            channels=frozenset(channels) if channels is not None else None,
            users=frozenset(users) if users is not None else None,
        )

    def matches(self, tool_name: str, channel: str, sender: str) -> bool:
        if self.tool != WILDCARD and self.tool != tool_name:
            return False
        if self.channels is not None and channel not in self.channels:
            return False
        if self.users is not None and sender not in self.users:
            return False
        return True


def evaluate_policy(
    policies: Sequence[ToolPolicy], tool_name: str, channel: str, sender: str
) -> PolicyDecision:
    """
    Decide whether a tool may be used from a channel by a sender.

    Returns:
        Effect of the first matching rule, or ALLOW when none matches.
    """
    for policy in policies:
        if policy.matches(tool_name, channel, sender):
            return policy.effect
    return PolicyDecision.ALLOW
