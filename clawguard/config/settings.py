"""
ClawGuard - Runtime Configuration

Environment Variables:
  CLAWGUARD_STATE_DIR         - Directory for the state database (default ~/.local/share/clawguard)
  CLAWGUARD_HOST              - API bind address (default 127.0.0.1)
  CLAWGUARD_PORT              - API port (default 3344)
  CLAWGUARD_POLICY_FILE       - YAML tool policy file (default <state_dir>/policies.yaml)
  CLAWGUARD_APPROVAL_MAX_AGE  - Seconds before a pending approval is expired (default 300)
  CLAWGUARD_SWEEP_INTERVAL    - Seconds between expiry sweeps (default 30)
  CLAWGUARD_APPROVAL_TIMEOUT  - Seconds a gated tool waits for a decision (default 300)
  CLAWGUARD_NOTIFY_URL        - Webhook receiving new approval requests (optional)
  CLAWGUARD_ALLOWED_USERS     - Comma-separated users allowed to decide (optional)
  CLAWGUARD_LOG_LEVEL         - Logging level (default INFO)
  CLAWGUARD_CONFIG            - JSON object overriding any of the above by field name
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger("clawguard.config")

DEFAULT_STATE_DIR = Path.home() / ".local" / "share" / "clawguard"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _env_list(name: str) -> List[str]:
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class GuardConfig:
    """Runtime configuration for the daemon, CLI and hook."""

    state_dir: Path = DEFAULT_STATE_DIR
    host: str = "127.0.0.1"
    port: int = 3344
    policy_file: Optional[Path] = None

    # Approvals
    approval_max_age_seconds: float = 300.0
    sweep_interval_seconds: float = 30.0
    approval_timeout_seconds: float = 300.0
    poll_interval_seconds: float = 1.0
    notify_url: Optional[str] = None
    allowed_users: List[str] = field(default_factory=list)

    log_level: str = "INFO"

    def __post_init__(self):
        self.state_dir = Path(self.state_dir).expanduser()
        if self.policy_file is None:
            self.policy_file = self.state_dir / "policies.yaml"
        else:
            self.policy_file = Path(self.policy_file).expanduser()

    @property
    def db_path(self) -> Path:
        return self.state_dir / "clawguard.db"

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @classmethod
    def from_env(cls) -> "GuardConfig":
        """Load configuration from environment variables."""
        values = {
            "state_dir": Path(os.getenv("CLAWGUARD_STATE_DIR", str(DEFAULT_STATE_DIR))),
            "host": os.getenv("CLAWGUARD_HOST", "127.0.0.1"),
            "port": int(_env_float("CLAWGUARD_PORT", 3344)),
            "policy_file": os.getenv("CLAWGUARD_POLICY_FILE") or None,
            "approval_max_age_seconds": _env_float("CLAWGUARD_APPROVAL_MAX_AGE", 300.0),
            "sweep_interval_seconds": _env_float("CLAWGUARD_SWEEP_INTERVAL", 30.0),
            "approval_timeout_seconds": _env_float("CLAWGUARD_APPROVAL_TIMEOUT", 300.0),
            "notify_url": os.getenv("CLAWGUARD_NOTIFY_URL") or None,
            "allowed_users": _env_list("CLAWGUARD_ALLOWED_USERS"),
            "log_level": os.getenv("CLAWGUARD_LOG_LEVEL", "INFO").upper(),
        }

        overrides = os.getenv("CLAWGUARD_CONFIG")
        if overrides:
            data = json.loads(overrides)
            if not isinstance(data, dict):
                raise ValueError("CLAWGUARD_CONFIG must be a JSON object")
            known = {f.name for f in fields(cls)}
            for key, value in data.items():
                if key in known:
                    values[key] = value
                else:
                    logger.warning(f"Ignoring unknown config key: {key}")

        return cls(**values)
