"""
Shared fixtures for ClawGuard tests.
"""

import pytest

from clawguard.service.approvals import ApprovalStore
from clawguard.service.state_store import StateStore


@pytest.fixture
def state(tmp_path):
    """Fresh SQLite state store per test."""
    return StateStore(tmp_path / "clawguard-test.db")


@pytest.fixture
def approvals(state):
    return ApprovalStore(state)
