from __future__ import annotations

import logging
from typing import Any, Dict, List, Union

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from rcv_node.executor import LedgerExecutor
from rcv_node.rcv_runtime.errors import LedgerError, TxVerificationError
from rcv_node.rcv_runtime.tx import Cosignature, TxEnvelope

log = logging.getLogger(__name__)

router = APIRouter(prefix="/governance", tags=["governance"])

__all__ = ["router", "TxRequest", "CosignatureModel", "ERROR_STATUS"]


# reason tag -> HTTP status
ERROR_STATUS: Dict[str, int] = {
    "Unauthorized": status.HTTP_403_FORBIDDEN,
    "NotCredentialHolder": status.HTTP_403_FORBIDDEN,
    "IndexOutOfRange": status.HTTP_404_NOT_FOUND,
    "ProposalClosed": status.HTTP_409_CONFLICT,
    "InvalidRanking": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "CredentialLookupFailed": status.HTTP_424_FAILED_DEPENDENCY,
}


class CosignatureModel(BaseModel):
    public_key: str
    signature: str


class TxRequest(BaseModel):
    kind: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    nonce: int = 0
    public_key: str = ""
    sender: str = ""
    signature: str = ""
    cosignatures: List[CosignatureModel] = Field(default_factory=list)

    def to_envelope(self) -> TxEnvelope:
        return TxEnvelope(
            kind=self.kind,
            payload=dict(self.payload),
            nonce=self.nonce,
            public_key=self.public_key,
            sender=self.sender,
            signature=self.signature,
            cosignatures=[
                Cosignature(public_key=c.public_key, signature=c.signature)
                for c in self.cosignatures
            ],
        )


def get_executor(request: Request) -> LedgerExecutor:
    return request.app.state.executor


def _http_error(e: Union[LedgerError, TxVerificationError]) -> HTTPException:
    # callers get the reason tag, not the message
    if isinstance(e, LedgerError):
        if e.ctx is not None:
            log.info("%s rejected (%s): %s", e.ctx.action, e.reason, e.ctx.detail)
        return HTTPException(status_code=ERROR_STATUS.get(e.reason, 400), detail=e.reason)
    log.info("tx rejected (%s): %s", e.reason, e)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.reason)


# ---- Reads ----

@router.get("/status")
def api_status(ex: LedgerExecutor = Depends(get_executor)):
    return ex.status()


@router.get("/proposals")
def api_list_proposals(ex: LedgerExecutor = Depends(get_executor)):
    return {"proposals": [p.to_dict() for p in ex.list_proposals()]}


@router.get("/proposals/count")
def api_proposal_count(ex: LedgerExecutor = Depends(get_executor)):
    return {"count": ex.proposal_count()}


@router.get("/proposals/latest")
def api_latest_proposal_id(ex: LedgerExecutor = Depends(get_executor)):
    return {"proposal_id": ex.latest_proposal_id()}


@router.get("/proposals/{proposal_id}")
def api_get_proposal(proposal_id: int, ex: LedgerExecutor = Depends(get_executor)):
    try:
        return ex.get_proposal(proposal_id).to_dict()
    except LedgerError as e:
        raise _http_error(e)


@router.get("/proposals/{proposal_id}/ballots")
def api_list_ballots(proposal_id: int, ex: LedgerExecutor = Depends(get_executor)):
    try:
        return {"ballots": [b.to_dict() for b in ex.ballots_for(proposal_id)]}
    except LedgerError as e:
        raise _http_error(e)


@router.get("/proposals/{proposal_id}/ballots/{voter}")
def api_get_ballot(proposal_id: int, voter: str, ex: LedgerExecutor = Depends(get_executor)):
    ballot = ex.get_ballot(proposal_id, voter)
    return {
        "proposal_id": proposal_id,
        "voter": voter.lower(),
        "ballot": ballot.to_dict() if ballot is not None else None,
    }


@router.get("/events")
def api_events(
    since: int = Query(default=0, ge=0),
    ex: LedgerExecutor = Depends(get_executor),
):
    return {"events": [e.to_dict() for e in ex.events_since(since)]}


@router.get("/nonce/{sender}")
def api_expected_nonce(sender: str, ex: LedgerExecutor = Depends(get_executor)):
    return {"sender": sender.lower(), "nonce": ex.expected_nonce(sender)}


# ---- Mutations ----

@router.post("/tx")
def api_submit_tx(req: TxRequest, ex: LedgerExecutor = Depends(get_executor)):
    try:
        return ex.submit(req.to_envelope())
    except (LedgerError, TxVerificationError) as e:
        raise _http_error(e)
