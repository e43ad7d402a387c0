"""
Approval lifecycle endpoints for ClawGuard.

Implements the poll-based rendezvous between an automation client waiting
on a sensitive action and the human who decides it:

- POST /api/approve              create a pending request
- GET  /api/approve/{id}         poll its status
- POST /api/approve/{id}/decide  submit allow/deny
- GET  /api/approve              list pending requests
- POST /api/channel/message      apply an /allow or /deny chat message
"""

import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from ..service.approvals import ApprovalRequest, ApprovalStatus, ApprovalStore
from ..service.channel_commands import handle_channel_message
from ..service.state_store import StateStoreError

logger = logging.getLogger(__name__)
router = APIRouter()


class ApprovalCreateRequest(BaseModel):
    """Request from an automation client that needs a human decision."""

    tool: str
    input: str = ""
    session: str = "unknown"
    requester: str = "unknown"


class ApprovalCreateResponse(BaseModel):
    id: str


class ApprovalStatusResponse(BaseModel):
    """Current state of an approval request."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    status: Literal["pending", "allow", "deny", "expired"]
    tool: str
    input: str
    session: str
    requester: str
    created_at: int = Field(alias="createdAt")

    @classmethod
    def from_request(cls, request: ApprovalRequest) -> "ApprovalStatusResponse":
        return cls(
            id=request.id,
            status=request.status.value,
            tool=request.tool,
            input=request.input,
            session=request.session,
            requester=request.requester,
            created_at=request.created_at,
        )


class DecisionRequest(BaseModel):
    decision: Literal["allow", "deny"]


class DecisionResponse(BaseModel):
    id: str
    status: Literal["pending", "allow", "deny", "expired"]
    changed: bool


class PendingListResponse(BaseModel):
    count: int
    requests: List[ApprovalStatusResponse]


def get_approval_store(request: Request) -> ApprovalStore:
    return request.app.state.approvals


def _store_failure(e: StateStoreError) -> HTTPException:
    logger.error(f"Approval store failure: {e}", exc_info=True)
    return HTTPException(status_code=500, detail="Approval store unavailable")


@router.post("/api/approve", response_model=ApprovalCreateResponse)
def create_approval(
    body: ApprovalCreateRequest, store: ApprovalStore = Depends(get_approval_store)
):
    """Create a pending approval request and return its id."""
    try:
        request_id = store.request_approval(
            tool=body.tool,
            input=body.input,
            session=body.session,
            requester=body.requester,
        )
    except StateStoreError as e:
        raise _store_failure(e)
    return ApprovalCreateResponse(id=request_id)


@router.get("/api/approve", response_model=PendingListResponse)
def list_pending(store: ApprovalStore = Depends(get_approval_store)):
    """List requests still waiting for a decision."""
    try:
        pending = store.list_pending()
    except StateStoreError as e:
        raise _store_failure(e)
    return PendingListResponse(
        count=len(pending),
        requests=[ApprovalStatusResponse.from_request(r) for r in pending],
    )


@router.get("/api/approve/{request_id}", response_model=ApprovalStatusResponse)
def get_approval(
    request_id: str, store: ApprovalStore = Depends(get_approval_store)
):
    """
    Get the current status of a request (polled by the automation client).

    Unknown ids are 404, never reported as pending.
    """
    try:
        request = store.get(request_id)
    except StateStoreError as e:
        raise _store_failure(e)
    if request is None:
        raise HTTPException(status_code=404, detail=f"Approval {request_id} not found")
    return ApprovalStatusResponse.from_request(request)


@router.post("/api/approve/{request_id}/decide", response_model=DecisionResponse)
def decide_approval(
    request_id: str,
    body: DecisionRequest,
    store: ApprovalStore = Depends(get_approval_store),
):
    """Submit a human decision. Deciding a non-pending request changes nothing."""
    try:
        request, changed = store.try_decide(request_id, ApprovalStatus(body.decision))
    except StateStoreError as e:
        raise _store_failure(e)
    if request is None:
        raise HTTPException(status_code=404, detail=f"Approval {request_id} not found")
    return DecisionResponse(id=request_id, status=request.status.value, changed=changed)


class ChannelMessage(BaseModel):
    """A chat message forwarded by a messaging bot bridge."""

    text: str
    sender: str


class ChannelReply(BaseModel):
    handled: bool
    reply: Optional[str] = None


@router.post("/api/channel/message", response_model=ChannelReply)
def channel_message(
    body: ChannelMessage,
    request: Request,
    store: ApprovalStore = Depends(get_approval_store),
):
    """
    Apply "/allow <id>" or "/deny <id>" from a human channel.

    Other text is not handled and should be routed to the agent as usual.
    """
    allowed_users = request.app.state.config.allowed_users
    try:
        reply = handle_channel_message(
            body.text, body.sender, store, allowed_users=allowed_users
        )
    except StateStoreError as e:
        raise _store_failure(e)
    return ChannelReply(handled=reply is not None, reply=reply)
