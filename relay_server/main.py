# main.py - FastAPI signaling relay (room-coded sessions)
import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from relay_server.config import Settings, configure_logging
from relay_server.gateway import RelayGateway
from relay_server.session_manager import SessionManager

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None,
               manager: Optional[SessionManager] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    manager = manager or SessionManager()
    gateway = RelayGateway(manager, queue_size=settings.outbound_queue_size)

    app = FastAPI(title="Signaling Relay")
    app.state.settings = settings
    app.state.gateway = gateway

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -----------------------------------------------------------------------
    # REST API
    # -----------------------------------------------------------------------

    @app.get("/api/health")
    async def health_check():
        return {"status": "ok", **gateway.stats()}

    @app.get("/api/config")
    async def client_config():
        return {"iceServers": [{"urls": url} for url in settings.ice_servers]}

    # -----------------------------------------------------------------------
    # WebSocket: session control and relaying
    # -----------------------------------------------------------------------

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        await websocket.accept()
        connection = gateway.connect(websocket)
        connection.send({"type": "welcome", "id": connection.participant_id})

        try:
            while True:
                try:
                    frame = await asyncio.wait_for(
                        websocket.receive(),
                        timeout=settings.keepalive_interval
                    )
                except asyncio.TimeoutError:
                    connection.send({"type": "ping"})
                    continue

                if frame["type"] == "websocket.disconnect":
                    logger.info(f"[WebSocket] {connection.participant_id} closed the connection")
                    break

                data = frame.get("text")
                if data is None:
                    connection.send({"type": "error", "message": "Binary frames are not supported"})
                    continue

                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    connection.send({"type": "error", "message": "Malformed JSON"})
                    continue

                gateway.dispatch(connection, message)

        except Exception:
            logger.exception(f"[WebSocket] Error with {connection.participant_id}")
        finally:
            gateway.disconnect(connection)

    # -----------------------------------------------------------------------
    # Static file serving
    # -----------------------------------------------------------------------

    web_dir = Path(settings.static_dir)
    if web_dir.is_dir():
        app.mount("/", StaticFiles(directory=str(web_dir), html=True), name="static")
    else:
        logger.info(f"[Static] {web_dir} not found, serving API only")

    return app


app = create_app()


def main():
    import uvicorn
    settings = app.state.settings
    uvicorn.run(app, host=settings.host, port=settings.port,
                log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
