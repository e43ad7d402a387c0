"""
Policy file loading.

Policies live in a YAML file read once at startup:

    policies:
      - tool: nixclaw_query
        effect: allow
        users: [owner]
      - tool: "*"
        effect: deny
        channels: [telegram]

A bare list at the top level is accepted too. Order is preserved.
"""

import logging
from pathlib import Path
from typing import Any, List, Literal, Optional

import aiofiles
import yaml
from pydantic import BaseModel, ValidationError

from .engine import ToolPolicy

logger = logging.getLogger(__name__)


class PolicyLoadError(Exception):
    """Raised when a policy file cannot be parsed or validated."""

    pass


class PolicyRuleModel(BaseModel):
    """Schema of one rule in a policy file."""

    tool: str
    effect: Literal["allow", "deny", "approve"]
    channels: Optional[List[str]] = None
    users: Optional[List[str]] = None


def parse_policies(data: Any) -> List[ToolPolicy]:
    """
    Validate raw policy data into ordered ToolPolicy rules.

    Args:
        data: List of rule mappings, or a mapping with a "policies" key

    Raises:
        PolicyLoadError: if the data is not a list of valid rules
    """
    if data is None:
        return []
    if isinstance(data, dict):
        data = data.get("policies") or []
    if not isinstance(data, list):
        raise PolicyLoadError(
            f"Policies must be a list of rules, got {type(data).__name__}"
        )

    rules = []
    for i, raw in enumerate(data):
        try:
            rule = PolicyRuleModel.model_validate(raw)
        except ValidationError as e:
            raise PolicyLoadError(f"Invalid policy rule #{i}: {e}") from e
        rules.append(
            ToolPolicy.create(
                tool=rule.tool,
                effect=rule.effect,
                channels=rule.channels,
                users=rule.users,
            )
        )
    return rules


async def load_policies(path: Optional[Path]) -> List[ToolPolicy]:
    """
    Load policy rules from a YAML file.

    A missing file means no rules (everything allowed).
    """
    if path is None or not path.exists():
        logger.info(f"No policy file at {path}, all tools allowed by default")
        return []

    try:
        async with aiofiles.open(path, "r") as f:
            content = await f.read()
        data = yaml.safe_load(content)
    except (OSError, yaml.YAMLError) as e:
        raise PolicyLoadError(f"Failed to read policy file {path}: {e}") from e

    policies = parse_policies(data)
    logger.info(f"Loaded {len(policies)} policy rules from {path}")
    return policies
