"""
ClawGuard approval client.

Used by an external automation process (e.g. a coding assistant's pre-tool
hook) that must block on a human decision. It never talks to the human
channel; it creates a request and polls its status over HTTP.

The client enforces its own deadline and fails closed: timeouts, connection
errors and malformed responses all end in "deny", whether or not the
server's expiry sweep has run.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_URL = "http://localhost:3344"
DEFAULT_TIMEOUT_SECONDS = 300.0
INPUT_LIMIT = 500

TERMINAL_DECISIONS = ("allow", "deny")


class ApprovalClient:
    """HTTP client for the approval endpoints."""

    def __init__(
        self,
        base_url: str = DEFAULT_URL,
        client: Optional[httpx.Client] = None,
        request_timeout: float = 10.0,
    ):
        self.base_url = base_url
        self._client = client or httpx.Client(base_url=base_url, timeout=request_timeout)

    def close(self):
        self._client.close()

    def __enter__(self) -> "ApprovalClient":
        return self

    def __exit__(self, *exc):
        self.close()

    def request_approval(
        self, tool: str, input: str, session: str, requester: str
    ) -> str:
        response = self._client.post(
            "/api/approve",
            json={
                "tool": tool,
                "input": input[:INPUT_LIMIT],
                "session": session,
                "requester": requester,
            },
        )
        response.raise_for_status()
        return response.json()["id"]

    def get_status(self, request_id: str) -> Optional[Dict[str, Any]]:
        """Current request record, or None if the server does not know the id."""
        response = self._client.get(f"/api/approve/{request_id}")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    def list_pending(self) -> List[Dict[str, Any]]:
        response = self._client.get("/api/approve")
        response.raise_for_status()
        return response.json()["requests"]

    def decide(self, request_id: str, decision: str) -> Optional[Dict[str, Any]]:
        response = self._client.post(
            f"/api/approve/{request_id}/decide", json={"decision": decision}
        )
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    def wait_for_decision(
        self,
        request_id: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        poll_interval: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> str:
        """
        Poll until the request is allowed or denied.

        Returns:
            "allow" or "deny"; "deny" on timeout, expiry or unknown id
        """
        deadline = clock() + timeout
        while True:
            try:
                record = self.get_status(request_id)
            except (httpx.HTTPError, ValueError) as e:
                # Transient failure; keep polling until the deadline
                logger.debug(f"Polling approval {request_id} failed: {e}")
                record = {}
            if record is None:
                logger.warning(f"Approval {request_id} disappeared, denying")
                return "deny"
            if not isinstance(record, dict):
                logger.debug(f"Malformed status for approval {request_id}: {record!r}")
                record = {}
            status = record.get("status", "pending")
            if status in TERMINAL_DECISIONS:
                return status
            if status == "expired":
                return "deny"
            if clock() >= deadline:
                logger.warning(f"Approval {request_id} timed out after {timeout}s")
                return "deny"
            sleep(poll_interval)

    def gate(
        self,
        tool: str,
        input: str,
        session: str,
        requester: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        poll_interval: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> str:
        """
        Request approval and wait for it. Any failure means "deny".
        """
        try:
            request_id = self.request_approval(tool, input, session, requester)
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Could not create approval request: {e}")
            return "deny"

        if not request_id or not isinstance(request_id, str):
            return "deny"

        return self.wait_for_decision(
            request_id, timeout=timeout, poll_interval=poll_interval, sleep=sleep
        )
