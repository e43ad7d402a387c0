"""
Approval Store for ClawGuard.

Manages actions that need a human decision before they may run.

The requester (e.g. a coding-assistant hook) and the human deciding on a
messaging channel never talk to each other directly. Both only touch the
durable record, so a request can be created by one process, decided by a
second, and polled by a third:

    pending --decide--> allow | deny
    pending --expire--> expired

Terminal records are never modified again and never deleted.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from .state_store import StateStore, StateTransaction

logger = logging.getLogger(__name__)

NAMESPACE = "approvals"
PENDING_INDEX_KEY = "_pending_index"


class ApprovalStatus(str, Enum):
    """Status of an approval request."""

    PENDING = "pending"
    ALLOW = "allow"
    DENY = "deny"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self != ApprovalStatus.PENDING


@dataclass
class ApprovalRequest:
    """A persisted request awaiting (or holding) a human decision."""

    id: str
    tool: str
    input: str
    session: str
    requester: str
    status: ApprovalStatus
    created_at: int  # epoch milliseconds
    resolved_at: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["status"] = self.status.value
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApprovalRequest":
        return cls(
            id=data["id"],
            tool=data["tool"],
            input=data["input"],
            session=data["session"],
            requester=data["requester"],
            status=ApprovalStatus(data["status"]),
            created_at=data["created_at"],
            resolved_at=data.get("resolved_at"),
        )


def _now_ms() -> int:
    return int(time.time() * 1000)


class ApprovalStore:
    """
    Durable approval state machine on top of the StateStore.

    Records live under the "approvals" namespace, keyed by id. A pending
    index (ordered list of ids) lives next to them and is rewritten in the
    same transaction as every status change.
    """

    def __init__(
        self,
        state: StateStore,
        clock: Callable[[], int] = _now_ms,
    ):
        self.state = state
        self._clock = clock
        self._callbacks: List[Callable[[ApprovalRequest, str], None]] = []

    def register_callback(self, callback: Callable[[ApprovalRequest, str], None]):
        """Register a callback for request updates."""
        self._callbacks.append(callback)

    def _notify(self, request: ApprovalRequest, event_type: str):
        """Notify all registered callbacks."""
        for callback in self._callbacks:
            try:
                callback(request, event_type)
            except Exception as e:
                logger.error(f"Callback error: {e}")

    # === Internal helpers (run inside a transaction) ===

    @staticmethod
    def _load(txn: StateTransaction, request_id: str) -> Optional[ApprovalRequest]:
        data = txn.get_json(NAMESPACE, request_id)
        return ApprovalRequest.from_dict(data) if data else None

    @staticmethod
    def _index(txn: StateTransaction) -> List[str]:
        return txn.get_json(NAMESPACE, PENDING_INDEX_KEY) or []

    def _resolve(
        self, txn: StateTransaction, request: ApprovalRequest, status: ApprovalStatus
    ):
        request.status = status
        request.resolved_at = self._clock()
        txn.set_json(NAMESPACE, request.id, request.to_dict())
        index = [i for i in self._index(txn) if i != request.id]
        txn.set_json(NAMESPACE, PENDING_INDEX_KEY, index)

    # === Public API ===

    def request_approval(
        self, tool: str, input: str, session: str, requester: str
    ) -> str:
        """
        Create a new pending request.

        Returns:
            The fresh request id
        """
        with self.state.transaction() as txn:
            request_id = uuid.uuid4().hex[:8]
            while (
                request_id == PENDING_INDEX_KEY
                or txn.get(NAMESPACE, request_id) is not None
            ):
                request_id = uuid.uuid4().hex[:8]

            request = ApprovalRequest(
                id=request_id,
                tool=tool,
                input=input,
                session=session,
                requester=requester,
                status=ApprovalStatus.PENDING,
                created_at=self._clock(),
            )
            txn.set_json(NAMESPACE, request_id, request.to_dict())
            index = self._index(txn)
            index.append(request_id)
            txn.set_json(NAMESPACE, PENDING_INDEX_KEY, index)

        self._notify(request, "requested")
        logger.info(
            f"Approval requested: {request_id} ({tool}) "
            f"session={session} requester={requester}"
        )
        return request_id

    def get(self, request_id: str) -> Optional[ApprovalRequest]:
        """Get a request by id."""
        if request_id == PENDING_INDEX_KEY:
            return None
        with self.state.transaction() as txn:
            return self._load(txn, request_id)

    def decide(
        self, request_id: str, decision: ApprovalStatus
    ) -> Optional[ApprovalRequest]:
        """
        Apply a human decision to a pending request.

        A request that is already allowed, denied or expired is left
        untouched, so double submissions and late decisions are no-ops.

        Returns:
            The request as stored after the call, or None if unknown
        """
        request, _ = self.try_decide(request_id, decision)
        return request

    def try_decide(
        self, request_id: str, decision: ApprovalStatus
    ) -> Tuple[Optional[ApprovalRequest], bool]:
        """
        Like decide, but also reports whether this call resolved the request.

        The check and the transition share one transaction, so of several
        concurrent submitters exactly one sees True.
        """
        decision = ApprovalStatus(decision)
        if decision not in (ApprovalStatus.ALLOW, ApprovalStatus.DENY):
            raise ValueError(f"Decision must be allow or deny, got {decision.value}")
        if request_id == PENDING_INDEX_KEY:
            return None, False

        with self.state.transaction() as txn:
            request = self._load(txn, request_id)
            if request is None:
                return None, False
            if request.status != ApprovalStatus.PENDING:
                logger.warning(
                    f"Ignoring {decision.value} for non-pending request: "
                    f"{request_id} ({request.status.value})"
                )
                return request, False
            self._resolve(txn, request, decision)

        self._notify(request, decision.value)
        logger.info(f"Request {request_id} decided: {decision.value}")
        return request, True

    def expire(self, request_id: str) -> Optional[ApprovalRequest]:
        """Mark a single pending request as expired."""
        if request_id == PENDING_INDEX_KEY:
            return None
        with self.state.transaction() as txn:
            request = self._load(txn, request_id)
            if request is None or request.status != ApprovalStatus.PENDING:
                return request
            self._resolve(txn, request, ApprovalStatus.EXPIRED)

        self._notify(request, "expired")
        logger.info(f"Request expired: {request_id}")
        return request

    def expire_older_than(self, max_age_ms: int) -> List[str]:
        """
        Expire every pending request at least max_age_ms old.

        This is a sweep, not a timer: it only runs when called.

        Returns:
            Ids that were expired by this call
        """
        now = self._clock()
        expired: List[ApprovalRequest] = []

        with self.state.transaction() as txn:
            index = self._index(txn)
            keep = []
            for request_id in index:
                request = self._load(txn, request_id)
                if request is None or request.status != ApprovalStatus.PENDING:
                    continue  # stale entry, drop it
                if now - request.created_at >= max_age_ms:
                    request.status = ApprovalStatus.EXPIRED
                    request.resolved_at = now
                    txn.set_json(NAMESPACE, request_id, request.to_dict())
                    expired.append(request)
                else:
                    keep.append(request_id)
            if keep != index:
                txn.set_json(NAMESPACE, PENDING_INDEX_KEY, keep)

        for request in expired:
            self._notify(request, "expired")
        if expired:
            logger.info(f"Expired {len(expired)} pending approval requests")
        return [r.id for r in expired]

    def list_pending(self) -> List[ApprovalRequest]:
        """List pending requests in creation order."""
        with self.state.transaction() as txn:
            pending = []
            for request_id in self._index(txn):
                request = self._load(txn, request_id)
                if request is not None and request.status == ApprovalStatus.PENDING:
                    pending.append(request)
            return pending

    def get_stats(self) -> Dict[str, int]:
        """Count requests by status."""
        counts = {status.value: 0 for status in ApprovalStatus}
        with self.state.transaction() as txn:
            for key in txn.keys(NAMESPACE):
                if key == PENDING_INDEX_KEY:
                    continue
                data = txn.get_json(NAMESPACE, key)
                if data:
                    counts[data["status"]] += 1
        return counts


async def wait_for_decision(
    store: ApprovalStore,
    request_id: str,
    timeout: float,
    poll_interval: float = 1.0,
) -> Optional[ApprovalStatus]:
    """
    Poll a request until it leaves pending or the deadline passes.

    Sees a decision at most one poll_interval after it is stored.

    Returns:
        The terminal status, or None on timeout or unknown id
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout

    while True:
        request = await loop.run_in_executor(None, store.get, request_id)
        if request is None:
            return None
        if request.status.is_terminal:
            return request.status

        remaining = deadline - loop.time()
        if remaining <= 0:
            return None
        await asyncio.sleep(min(poll_interval, remaining))
