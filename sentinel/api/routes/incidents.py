from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from sentinel.core.errors import IncidentNotFoundError, InvalidActionError
from sentinel.core.orchestrator import DispatchOrchestrator
from sentinel.models.enums import Speaker

router = APIRouter(prefix="/api/incidents", tags=["incidents"])

# Request models
class UtteranceRequest(BaseModel):
    speaker: Speaker
    text: str = Field(min_length=1)
    timestamp_iso: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

class ActionRequest(BaseModel):
    responder_id: str
    action_type: str
    action_data: Dict[str, Any] = Field(default_factory=dict)
    reason: Optional[str] = None

# This will be set by main.py
orchestrator: Optional[DispatchOrchestrator] = None

def set_orchestrator(orch: DispatchOrchestrator):
    """Set the orchestrator instance"""
    global orchestrator
    orchestrator = orch

def _require_orchestrator() -> DispatchOrchestrator:
    if not orchestrator:
        raise HTTPException(status_code=500, detail="Orchestrator not initialized")
    return orchestrator

@router.get("/")
async def list_incidents():
    """Dashboard snapshot of every incident"""
    return await _require_orchestrator().get_state()

@router.get("/{incident_id}")
async def get_incident(incident_id: str):
    """Incident with transcript, extracted fields and actions"""
    orch = _require_orchestrator()
    try:
        return await orch.get_incident_context(incident_id)
    except IncidentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

@router.post("/{incident_id}/utterances")
async def add_utterance(incident_id: str, request: UtteranceRequest):
    """
    Transcript ingestion for the voice transport.

    Accepts one finalized speaker turn; analysis happens asynchronously.
    """
    orch = _require_orchestrator()
    if await orch.store.get(incident_id) is None:
        raise HTTPException(status_code=404, detail="Incident not found")

    utterance = await orch.on_utterance(
        incident_id,
        request.speaker.value,
        request.text,
        timestamp_iso=request.timestamp_iso,
        tags=request.tags,
    )
    return {"ok": True, "utterance_id": utterance.id}

@router.post("/{incident_id}/session/end")
async def end_session(incident_id: str):
    """Voice session closed; lifts the analysis throttle"""
    orch = _require_orchestrator()
    if await orch.store.get(incident_id) is None:
        raise HTTPException(status_code=404, detail="Incident not found")
    orch.end_session(incident_id)
    return {"ok": True}

@router.post("/{incident_id}/actions")
async def record_action(incident_id: str, request: ActionRequest):
    """Operator action (dispatch, note, escalate, mark_safe, ...)"""
    orch = _require_orchestrator()
    try:
        action = await orch.record_action(
            incident_id,
            request.responder_id,
            request.action_type,
            action_data=request.action_data,
            reason=request.reason,
        )
    except IncidentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidActionError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"ok": True, "action": action.model_dump(mode="json")}
