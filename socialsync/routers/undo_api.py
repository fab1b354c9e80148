from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from socialsync.deps import get_ledger, get_workspace_id
from socialsync.services.undo_ledger import UndoableAction, UndoLedger

router = APIRouter(prefix="/api/undo", tags=["undo"])

class UndoPushIn(BaseModel):
    type: str
    description: str
    params: Dict[str, Any] = Field(default_factory=dict)
    ttl_ms: Optional[int] = Field(None, ge=100, le=60_000)

def _owned(ledger: UndoLedger, action_id: str, workspace_id: str) -> UndoableAction:
    # another workspace's action looks exactly like a missing one
    action = ledger.get(action_id)
    if not action or action.workspace_id != workspace_id:
        raise HTTPException(404, "Undo action not found")
    return action

@router.post("")
def push(body: UndoPushIn, workspace_id: str = Depends(get_workspace_id),
         ledger: UndoLedger = Depends(get_ledger)) -> Dict[str, Any]:
    params = {**body.params, "workspace_id": workspace_id}
    action_id = ledger.push_descriptor(body.type, params, body.description, ttl_ms=body.ttl_ms,
                                       workspace_id=workspace_id)
    return ledger.get(action_id).to_dict(ledger.clock())

@router.get("/latest")
def latest(workspace_id: str = Depends(get_workspace_id),
           ledger: UndoLedger = Depends(get_ledger)) -> Dict[str, Any]:
    action = ledger.most_recent(workspace_id)
    return {"action": action.to_dict(ledger.clock()) if action else None}

@router.get("/{action_id}")
def status(action_id: str, workspace_id: str = Depends(get_workspace_id),
           ledger: UndoLedger = Depends(get_ledger)) -> Dict[str, Any]:
    return _owned(ledger, action_id, workspace_id).to_dict(ledger.clock())

@router.post("/{action_id}/undo")
def undo(action_id: str, workspace_id: str = Depends(get_workspace_id),
         ledger: UndoLedger = Depends(get_ledger)) -> Dict[str, Any]:
    _owned(ledger, action_id, workspace_id)
    return {"undone": ledger.undo(action_id)}

@router.delete("/{action_id}")
def clear(action_id: str, workspace_id: str = Depends(get_workspace_id),
          ledger: UndoLedger = Depends(get_ledger)) -> Dict[str, Any]:
    _owned(ledger, action_id, workspace_id)
    ledger.clear(action_id)
    return {"cleared": True}
