import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import WebSocket

logger = logging.getLogger(__name__)

DASHBOARD_STATE = "dashboard_state"
INCIDENT_UPDATE = "incident_update"


class ConnectionManager:
    """
    Dashboard WebSocket registry.

    Every dashboard gets the full incident list on each change. A dashboard
    may also focus one incident (the call detail view) and then receives
    that incident's transcript, extracted fields and actions as well.
    """

    def __init__(self):
        # websocket -> id of the incident it is focused on
        self.dashboards: Dict[WebSocket, Optional[str]] = {}

    async def connect_dashboard(self, websocket: WebSocket):
        await websocket.accept()
        self.dashboards[websocket] = None
        logger.info(f"🖥️ Dashboard connected. Total: {len(self.dashboards)}")

    def disconnect_dashboard(self, websocket: WebSocket):
        if websocket in self.dashboards:
            del self.dashboards[websocket]
            logger.info(f"Dashboard disconnected. Total: {len(self.dashboards)}")

    def focus(self, websocket: WebSocket, incident_id: Optional[str]):
        if websocket in self.dashboards:
            self.dashboards[websocket] = incident_id

    def watchers(self, incident_id: str) -> List[WebSocket]:
        return [ws for ws, focused in self.dashboards.items() if focused == incident_id]

    async def broadcast_dashboard(self, state: Dict[str, Any]):
        """Push the dashboard snapshot to every connected dashboard."""
        await self._send(list(self.dashboards), {"type": DASHBOARD_STATE, "data": state})

    async def send_incident(self, incident_id: str, context: Dict[str, Any]):
        """Push one incident's full context to the dashboards focused on it."""
        await self._send(self.watchers(incident_id), {"type": INCIDENT_UPDATE, "data": context})

    async def _send(self, targets: List[WebSocket], message: Dict[str, Any]):
        if not targets:
            return
        text = json.dumps(message)
        for websocket in targets:
            try:
                await websocket.send_text(text)
            except Exception as e:
                logger.warning(f"Dropping dashboard after send error: {e}")
                self.disconnect_dashboard(websocket)
