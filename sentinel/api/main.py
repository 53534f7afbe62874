import logging
from typing import Optional

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from sentinel.config import configure_logging, get_settings
from sentinel.core.orchestrator import DispatchOrchestrator
from sentinel.api.websocket.manager import ConnectionManager
from sentinel.api.websocket.dashboard import dashboard_endpoint
from sentinel.api.routes import dispatch, incidents

logger = logging.getLogger(__name__)


def create_app(orchestrator: Optional[DispatchOrchestrator] = None) -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="Sentinel Dispatch API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    manager = ConnectionManager()
    orchestrator = orchestrator or DispatchOrchestrator(settings)
    orchestrator.set_broadcast_function(manager.broadcast_dashboard, manager.send_incident)

    # Routes reach the orchestrator through module-level handles
    incidents.set_orchestrator(orchestrator)
    dispatch.set_orchestrator(orchestrator)
    app.include_router(incidents.router)
    app.include_router(dispatch.router)

    app.state.orchestrator = orchestrator
    app.state.manager = manager

    @app.on_event("startup")
    async def startup():
        await orchestrator.start()

    @app.on_event("shutdown")
    async def shutdown():
        await orchestrator.stop()

    @app.get("/health")
    async def health():
        return {"ok": True}

    @app.websocket("/ws/dashboard")
    async def ws_dashboard(websocket: WebSocket):
        await dashboard_endpoint(websocket, manager, orchestrator)

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
