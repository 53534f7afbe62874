import json
import logging
import time
from typing import Dict, Optional
from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse
from sentinel.core.orchestrator import DispatchOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/dispatch", tags=["dispatch"])

orchestrator: Optional[DispatchOrchestrator] = None

# Idempotency-Key -> clock() reading when its event was processed
seen_event_keys: Dict[str, float] = {}
EVENT_KEY_TTL_SECONDS = 3600
clock = time.monotonic

def set_orchestrator(orch: DispatchOrchestrator):
    """Set the orchestrator instance"""
    global orchestrator
    orchestrator = orch
    seen_event_keys.clear()

def _already_processed(key: str) -> bool:
    now = clock()
    for seen, processed_at in list(seen_event_keys.items()):
        if now - processed_at >= EVENT_KEY_TTL_SECONDS:
            del seen_event_keys[seen]
    return key in seen_event_keys

def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"ok": False, "error": message})

async def _read_body(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}

@router.post("/call-start")
async def call_start(request: Request):
    """Voice provider webhook: a new call began"""
    if not orchestrator:
        return _error(500, "Orchestrator not initialized")

    body = await _read_body(request)
    incident_id = body.get("incident_id")
    if not incident_id:
        return _error(422, "Missing incident_id")

    incident, created = await orchestrator.start_call(
        str(incident_id),
        incident_type=body.get("incident_type"),
        location_text=body.get("location_text"),
    )
    return {"ok": True, "duplicate": not created, "call": incident.model_dump(mode="json")}

@router.post("/events")
async def dispatch_events(request: Request, idempotency_key: Optional[str] = Header(default=None)):
    """Location webhook: geocode and write straight to the incident"""
    if not orchestrator:
        return _error(500, "Orchestrator not initialized")

    if idempotency_key and _already_processed(idempotency_key):
        return {"ok": True, "duplicate": True}

    body = await _read_body(request)
    if isinstance(body.get("location_json"), str):
        try:
            body["location_json"] = json.loads(body["location_json"])
        except ValueError:
            return _error(422, "location_json must be JSON")

    logger.info(f"Dispatch event received for {body.get('incident_id')}")
    result = await orchestrator.handle_location_event(body)
    # Only a processed event counts; a failed attempt stays retryable
    if idempotency_key:
        seen_event_keys[idempotency_key] = clock()
    return {"ok": True, "event_received": True, **result}
