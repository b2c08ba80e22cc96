from contextlib import asynccontextmanager
import json
import logging
from typing import Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import RecorderConfig, configure_logging
from models import utc_now
from storage import Storage
from recorder.browser import BrowserManager
from recorder.core import RecordingSessionStore
from recorder.errors import (
    DriverUnavailable,
    DurableWriteFailure,
    HealingExhausted,
    InvalidTransition,
    NotFoundError,
    RecorderError,
    ValidationFailure,
    from_pydantic_errors,
)
from recorder.notifications import NotificationHub
# Session Management
from session_api import router as session_router
# Code / CI / report export
from export_api import router as export_router

# Configure logging
logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = [
    (NotFoundError, 404),
    (ValidationFailure, 422),
    (InvalidTransition, 409),
    (DriverUnavailable, 503),
    (HealingExhausted, 422),
    (DurableWriteFailure, 500),
]


def status_code_for(error: RecorderError) -> int:
    for error_cls, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_cls):
            return status_code
    return 500


def create_app(
    config: Optional[RecorderConfig] = None,
    storage: Optional[Storage] = None,
    browser_manager: Optional[BrowserManager] = None
) -> FastAPI:
    """Build the FastAPI application; collaborators can be injected for tests"""
    config = config or RecorderConfig.from_env()
    configure_logging(config.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        hub = NotificationHub()
        manager = browser_manager or BrowserManager(
            headless=config.headless,
            recordings_dir=config.recordings_dir,
            record_artifacts=config.record_artifacts
        )
        store = RecordingSessionStore(
            storage or Storage(config.data_dir),
            hub,
            manager,
            capture_queue_size=config.capture_queue_size,
            reconcile_interval=config.reconcile_interval,
            default_browser=config.default_browser
        )
        app.state.hub = hub
        app.state.browser_manager = manager
        app.state.store = store

        store.start()
        logger.info("Recording backend ready")
        try:
            yield
        finally:
            logger.info("Shutting down recording backend...")
            await store.close()

    app = FastAPI(title="Self-Healing Test Recorder", lifespan=lifespan)

    # CORS Configuration
    # In production, set CORS_ORIGINS to comma-separated allowed origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept"],
    )

    # ============ Error Mapping ============

    @app.exception_handler(RecorderError)
    async def recorder_error_handler(request: Request, exc: RecorderError):
        status_code = status_code_for(exc)
        if status_code >= 500:
            logger.error(f"{exc.category} on {request.url.path}: {exc.detail}")
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        failure = from_pydantic_errors("Request validation failed", exc.errors())
        return JSONResponse(status_code=422, content=failure.to_dict())

    app.include_router(session_router)
    app.include_router(export_router)

    # ============ Health ============

    @app.get("/health")
    async def health(request: Request):
        store: RecordingSessionStore = request.app.state.store
        return {
            "status": "ok",
            "timestamp": utc_now().isoformat(),
            "active_sessions": store.get_active_session_count(),
            "loaded_sessions": store.get_loaded_session_count(),
            "driver_bindings": request.app.state.browser_manager.get_active_session_count(),
        }

    # ============ WebSocket Session Channel ============

    @app.websocket("/ws/session")
    async def websocket_session(websocket: WebSocket):
        await websocket.accept()
        hub: NotificationHub = websocket.app.state.hub
        store: RecordingSessionStore = websocket.app.state.store
        await websocket.send_json(hub.build_message("connected", "", {}))

        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    message = json.loads(raw)
                except ValueError:
                    await hub.send_to(websocket, "session:error", "", ValidationFailure("Message is not valid JSON").to_dict())
                    continue
                if not isinstance(message, dict):
                    await hub.send_to(websocket, "session:error", "", ValidationFailure("Message must be a JSON object").to_dict())
                    continue
                await handle_socket_message(websocket, hub, store, message)
        except WebSocketDisconnect:
            hub.disconnect(websocket)
            logger.info("WebSocket client disconnected")

    return app


async def handle_socket_message(websocket: WebSocket, hub: NotificationHub, store: RecordingSessionStore, message: dict):
    """Dispatch one push-channel request; failures go back to the caller as session:error"""
    event = message.get("event")
    session_id = message.get("session_id") or ""
    data = message.get("data") or {}

    if event == "join-session":
        hub.join(session_id, websocket)
        await hub.send_to(websocket, "session:joined", session_id, {})
        return
    if event == "leave-session":
        hub.leave(session_id, websocket)
        return

    handlers = {
        "recording:start": lambda: store.start_recording(session_id),
        "recording:pause": lambda: store.pause_recording(session_id),
        "recording:resume": lambda: store.resume_recording(session_id),
        "recording:stop": lambda: store.stop_recording(session_id),
        "step:add": lambda: store.add_step(session_id, data),
        "step:update": lambda: store.update_step(session_id, data.get("step_id", ""), data.get("updates") or {}),
        "step:remove": lambda: store.remove_step(session_id, data.get("step_id", "")),
        "settings:update": lambda: store.update_settings(session_id, data),
    }

    handler = handlers.get(event)
    try:
        if not isinstance(data, dict):
            raise ValidationFailure("Message data must be a JSON object")
        if handler is None:
            raise ValidationFailure(f"Unknown event: {event}")
        await handler()
    except RecorderError as e:
        logger.warning(f"WebSocket {event} failed for {session_id}: {e.detail}")
        await hub.send_to(websocket, "session:error", session_id, e.to_dict())


app = create_app()
