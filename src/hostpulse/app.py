"""hostpulse - WebSocket telemetry server."""

import argparse
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

import uvicorn
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hostpulse.broadcaster import Session
from hostpulse.config import load_config
from hostpulse.errors import HostPulseError, status_for
from hostpulse.logger import setup_logging
from hostpulse.service import TelemetryService

logger = logging.getLogger(__name__)

# Client -> server events on the socket
REQUEST_PROCESSES = "requestProcesses"
KILL_PROCESS = "killProcess"
KILL_RESULT = "killResult"


def create_app(service: TelemetryService) -> FastAPI:
    """Build the FastAPI application around a telemetry service."""

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        service.start()
        try:
            yield
        finally:
            await service.stop()

    app = FastAPI(title="hostpulse", version="0.1.0", lifespan=lifespan)
    app.state.service = service

    if service.config.allowed_origins:
        if any(o == "*" for o in service.config.allowed_origins):
            raise ValueError("Wildcard CORS origins are not allowed.")
        app.add_middleware(
            CORSMiddleware,
            allow_origins=service.config.allowed_origins,
            allow_credentials=False,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )

    @app.exception_handler(HostPulseError)
    async def hostpulse_error_handler(request: Request, exc: HostPulseError):
        return JSONResponse(status_code=status_for(exc), content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": "Invalid request.", "code": "bad_input"})

    @app.get("/health")
    async def health():
        return {"status": "ok", "sessions": len(service.broadcaster.sessions)}

    @app.get("/api/system")
    async def system_info():
        info = await service.cache.get_system_info()
        return info.to_dict() if info is not None else {}

    @app.get("/api/metrics")
    async def metrics():
        snapshot = await service.cache.get_metrics()
        return snapshot.to_dict() if snapshot is not None else {}

    @app.get("/api/processes")
    async def processes():
        return [proc.to_dict() for proc in await service.cache.get_processes()]

    @app.post("/api/processes/{pid}/terminate")
    async def terminate_process(pid: str):
        return await service.control.terminate(pid)

    @app.websocket("/ws")
    async def telemetry_socket(websocket: WebSocket):
        await websocket.accept()

        async def send(event: str, data: Any) -> None:
            await websocket.send_json({"event": event, "data": data})

        session = await service.broadcaster.open_session(send)
        try:
            while True:
                text = await websocket.receive_text()
                await _handle_message(service, session, text)
        except WebSocketDisconnect:
            pass
        finally:
            await service.broadcaster.close_session(session)

    return app


async def _handle_message(service: TelemetryService, session: Session, text: str) -> None:
    """Dispatch one client message; malformed input is logged and dropped."""
    try:
        message = json.loads(text)
    except ValueError:
        logger.warning("Session %d sent invalid JSON", session.session_id)
        return
    if not isinstance(message, dict):
        logger.warning("Session %d sent a non-object message", session.session_id)
        return

    event = message.get("event")
    if event == REQUEST_PROCESSES:
        await service.broadcaster.request_processes(session)
    elif event == KILL_PROCESS:
        try:
            result = await service.control.terminate(message.get("pid"))
        except HostPulseError as exc:
            result = exc.to_dict()
        await service.broadcaster.deliver(session, KILL_RESULT, result)
    else:
        logger.warning("Session %d sent unknown event %r", session.session_id, event)


def main(argv: Optional[list[str]] = None) -> None:
    """Entry point for the hostpulse server."""
    parser = argparse.ArgumentParser(prog="hostpulse", description="Stream live host telemetry over WebSockets.")
    parser.add_argument("--config", default=None, help="Path to a JSON config file.")
    parser.add_argument("--host", default=None)
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args(argv)

    config = load_config(args.config, host=args.host, port=args.port, log_level=args.log_level)
    setup_logging(config.log_level, config.log_dir)
    app = create_app(TelemetryService(config))
    uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level.lower())


if __name__ == "__main__":
    main()
