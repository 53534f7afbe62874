import json
import logging
from fastapi import WebSocket, WebSocketDisconnect
from sentinel.core.errors import IncidentNotFoundError
from sentinel.core.orchestrator import DispatchOrchestrator
from sentinel.api.websocket.manager import DASHBOARD_STATE, INCIDENT_UPDATE, ConnectionManager

logger = logging.getLogger(__name__)

async def dashboard_endpoint(
    websocket: WebSocket,
    manager: ConnectionManager,
    orchestrator: DispatchOrchestrator
):
    """
    Dashboard WebSocket session.

    Sends the current state on connect, then listens for:
        "refresh"                              -> re-broadcast the state
        {"type": "focus", "incident_id": ...}  -> follow one incident
        {"type": "unfocus"}                    -> stop following it
        {"type": "ping"}                       -> {"type": "pong"}
    """
    await manager.connect_dashboard(websocket)

    try:
        await websocket.send_json({"type": DASHBOARD_STATE, "data": await orchestrator.get_state()})

        while True:
            raw = await websocket.receive_text()
            if raw == "refresh":
                await orchestrator.broadcast_update()
                continue

            try:
                message = json.loads(raw)
            except ValueError:
                logger.warning(f"Ignoring non-JSON dashboard message: {raw[:100]}")
                continue
            if not isinstance(message, dict):
                continue

            kind = message.get("type")
            if kind == "focus":
                await _focus(websocket, manager, orchestrator, message.get("incident_id"))
            elif kind == "unfocus":
                manager.focus(websocket, None)
            elif kind == "ping":
                await websocket.send_json({"type": "pong"})
            else:
                logger.info(f"Unknown dashboard message type {kind!r}")

    except WebSocketDisconnect:
        manager.disconnect_dashboard(websocket)
    except Exception as e:
        logger.error(f"Dashboard error: {e}")
        manager.disconnect_dashboard(websocket)

async def _focus(websocket: WebSocket, manager: ConnectionManager, orchestrator: DispatchOrchestrator, incident_id):
    try:
        context = await orchestrator.get_incident_context(str(incident_id))
    except IncidentNotFoundError as e:
        await websocket.send_json({"type": "error", "detail": str(e)})
        return
    manager.focus(websocket, context["id"])
    await websocket.send_json({"type": INCIDENT_UPDATE, "data": context})
