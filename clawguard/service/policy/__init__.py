"""
Policy service for ClawGuard - ordered tool rules and policy file loading.
"""

from .engine import (
    PolicyDecision,
    ToolPolicy,
    evaluate_policy,
)
from .loader import (
    PolicyLoadError,
    load_policies,
    parse_policies,
)

__all__ = [
    "PolicyDecision",
    "ToolPolicy",
    "evaluate_policy",
    "PolicyLoadError",
    "load_policies",
    "parse_policies",
]
