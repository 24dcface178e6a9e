from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timezone
from time import perf_counter
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request, Response, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from services.canvas import (
    CanvasStore,
    CanvasStoreRegistry,
    Command,
    MessageReport,
    SceneSnapshot,
    list_variants,
    process_commands,
    process_message_with_report,
)
from services.canvas.parser import VERBS
from services.canvas.schema import ELEMENT_TYPES, SHARED_DEFAULTS
from services.canvas.store import normalize_session_id
from services.config.runtime_config import (
    ENV_PATH,
    configure_logging,
    load_settings,
    masked_state,
    parse_env,
    validate_setup,
)
from services.gateway.app.metrics import metrics_response, record_http, record_outcomes
from services.gateway.app.security import enforce_http_auth, websocket_authorized
from services.protocol import CANVAS_COMMAND_SCHEMA, ProtocolValidationError, default_validator
from services.versioning import project_revision, project_version

logger = logging.getLogger("livecanvas.gateway")

settings = load_settings()
configure_logging(settings)
protocol_validator = default_validator()


class MessageRequest(BaseModel):
    text: str


class CommandsRequest(BaseModel):
    commands: list[dict[str, Any]] = Field(default_factory=list)


class SetupValidateRequest(BaseModel):
    values: dict[str, str] = Field(default_factory=dict)


def _wrap_event(event_type: str, payload: dict, session_id: str) -> dict:
    return {
        "event_type": event_type,
        "session_id": session_id,
        "event_id": str(uuid4()),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "payload": payload,
    }


class SceneBroadcaster:
    """Fans store snapshots out to the WebSocket renderers of each session.

    Store callbacks are synchronous, so events are queued and sent by
    ``flush`` once the handler that mutated the store can await.
    """

    def __init__(self) -> None:
        self.connections: dict[str, set[WebSocket]] = {}
        self._pending: dict[str, list[dict]] = {}

    def _queue(self, session_id: str, event: dict) -> None:
        if self.connections.get(session_id):
            self._pending.setdefault(session_id, []).append(event)

    def attach(self, session_id: str, store: CanvasStore) -> None:
        def _on_change(snapshot: SceneSnapshot) -> None:
            self._queue(session_id, _wrap_event("canvas.scene", snapshot.to_payload(), session_id))

        store.subscribe(_on_change)

    def session_dropped(self, session_id: str, reason: str) -> None:
        # Scene events still queued for the old store are stale now.
        self._pending.pop(session_id, None)
        self._queue(
            session_id,
            _wrap_event("canvas.error", {"error": "session_dropped", "reason": reason}, session_id),
        )

    async def connect(self, session_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self.connections.setdefault(session_id, set()).add(websocket)

    def disconnect(self, session_id: str, websocket: WebSocket) -> None:
        rows = self.connections.get(session_id)
        if rows is None:
            return
        rows.discard(websocket)
        if not rows:
            self.connections.pop(session_id, None)

    async def send_snapshot(self, session_id: str, snapshot: SceneSnapshot, websocket: WebSocket) -> None:
        await websocket.send_json(_wrap_event("canvas.scene", snapshot.to_payload(), session_id))

    async def flush(self) -> None:
        pending, self._pending = self._pending, {}
        for session_id, events in pending.items():
            targets = list(self.connections.get(session_id, set()))
            for event in events:
                await asyncio.gather(*(ws.send_json(event) for ws in targets), return_exceptions=True)


app = FastAPI(title="LiveCanvas Gateway", version=project_version())

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def _on_session_evicted(session_id: str) -> None:
    broadcaster.session_dropped(session_id, reason="evicted")


def build_registry(max_sessions: int) -> CanvasStoreRegistry:
    return CanvasStoreRegistry(max_sessions=max_sessions, on_evict=_on_session_evicted)


registry = build_registry(settings.max_sessions)
broadcaster = SceneBroadcaster()


def _route_path(request: Request) -> str:
    route = request.scope.get("route")
    return str(getattr(route, "path", "") or request.url.path)


@app.middleware("http")
async def security_and_metrics(request: Request, call_next):  # type: ignore[override]
    started = perf_counter()
    status_code = 500
    try:
        enforce_http_auth(request)
        response = await call_next(request)
        status_code = response.status_code
        return response
    except HTTPException as exc:
        status_code = exc.status_code
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
    finally:
        record_http(
            method=request.method,
            path=_route_path(request),
            status_code=status_code,
            duration_s=perf_counter() - started,
        )


def _session_store(session_id: str) -> tuple[str, CanvasStore]:
    key = normalize_session_id(session_id)
    store = registry.get(key)
    if store is None:
        store = registry.get_or_create(key)
        broadcaster.attach(key, store)
    else:
        store = registry.get_or_create(key)
    return key, store


def _validate_or_422(payload: object, schema_path: str, context: str) -> None:
    try:
        protocol_validator.validate(schema_path=schema_path, payload=payload)
    except ProtocolValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail={
                "error": "schema_validation_failed",
                "schema": schema_path,
                "context": context,
                "issues": exc.issues,
            },
        ) from exc


def _scene_payload(session_id: str, store: CanvasStore) -> dict[str, Any]:
    snapshot = store.snapshot()
    return {
        "session_id": session_id,
        **snapshot.to_payload(),
        "summary": store.summary(),
    }


def _report_payload(session_id: str, report: MessageReport) -> dict[str, Any]:
    payload = report.to_payload()
    record_outcomes(payload["outcomes"], warnings=len(report.warnings))
    return {"session_id": session_id, **payload}


@app.get("/health")
def health() -> dict:
    return {
        "status": "ok",
        "service": "gateway",
        "version": project_version(),
        "revision": project_revision(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/metrics")
def metrics() -> Response:
    payload, content_type = metrics_response()
    return Response(content=payload, media_type=content_type)


@app.get("/v1/canvas/capabilities")
def canvas_capabilities() -> dict[str, Any]:
    return {
        "verbs": list(VERBS),
        "element_types": list(ELEMENT_TYPES),
        "variants": list_variants(),
        "shared_defaults": SHARED_DEFAULTS,
        "syntaxes": ["inline", "fenced-block"],
        "limits": {
            "max_message_chars": settings.max_message_chars,
            "max_sessions": settings.max_sessions,
        },
    }


@app.get("/v1/setup/state")
def setup_state() -> dict:
    values = parse_env(ENV_PATH)
    for key, value in os.environ.items():
        if key.startswith("LIVECANVAS_") and key not in values:
            values[key] = value
    return {"values": masked_state(values)}


@app.post("/v1/setup/validate")
def setup_validate(req: SetupValidateRequest) -> dict:
    return validate_setup(req.values)


@app.get("/v1/canvas/sessions")
def list_sessions() -> dict[str, Any]:
    return {"sessions": registry.session_ids()}


@app.post("/v1/canvas/sessions/{session_id}/messages")
async def post_message(session_id: str, req: MessageRequest) -> dict[str, Any]:
    if len(req.text) > settings.max_message_chars:
        raise HTTPException(
            status_code=422,
            detail={"error": "message_too_long", "max_chars": settings.max_message_chars},
        )
    key, store = _session_store(session_id)
    report = process_message_with_report(store, req.text, settings)
    await broadcaster.flush()
    return _report_payload(key, report)


@app.post("/v1/canvas/sessions/{session_id}/commands")
async def post_commands(session_id: str, req: CommandsRequest) -> dict[str, Any]:
    for idx, entry in enumerate(req.commands):
        _validate_or_422(entry, CANVAS_COMMAND_SCHEMA, context=f"commands[{idx}]")
    key, store = _session_store(session_id)
    commands = [Command.from_payload(entry, source="api") for entry in req.commands]
    outcomes = process_commands(store, commands, settings)
    await broadcaster.flush()
    report = MessageReport(commands=commands, outcomes=outcomes, scene=store.summary())
    return _report_payload(key, report)


@app.get("/v1/canvas/sessions/{session_id}/scene")
def get_scene(session_id: str) -> dict[str, Any]:
    key = normalize_session_id(session_id)
    store = registry.get(key)
    if store is None:
        raise HTTPException(status_code=404, detail={"error": "session_not_found", "session_id": key})
    return _scene_payload(key, store)


@app.delete("/v1/canvas/sessions/{session_id}")
async def delete_session(session_id: str) -> dict[str, Any]:
    key = normalize_session_id(session_id)
    dropped = registry.drop(key)
    if dropped:
        broadcaster.session_dropped(key, reason="deleted")
        await broadcaster.flush()
    return {"ok": True, "session_id": key, "dropped": dropped}


@app.websocket("/v1/canvas/sessions/{session_id}/ws")
async def session_ws(websocket: WebSocket, session_id: str) -> None:
    if not websocket_authorized(websocket):
        await websocket.close(code=4401)
        return
    key, store = _session_store(session_id)
    await broadcaster.connect(key, websocket)
    try:
        await broadcaster.send_snapshot(key, store.snapshot(), websocket)
        await broadcaster.flush()
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(code=message.get("code", 1000))
            text = message.get("text")
            if text is None:
                await websocket.send_json(_wrap_event("canvas.error", {"error": "unsupported_frame", "expected": "text"}, key))
                continue
            if len(text) > settings.max_message_chars:
                await websocket.send_json(
                    _wrap_event("canvas.error", {"error": "message_too_long", "max_chars": settings.max_message_chars}, key)
                )
                continue
            # The session may have been dropped or evicted since the last frame.
            _, current = _session_store(key)
            if current is not store:
                logger.info("Gateway: session '%s' was replaced, resyncing renderer", key)
                store = current
                await broadcaster.send_snapshot(key, store.snapshot(), websocket)
            report = process_message_with_report(store, text, settings)
            payload = _report_payload(key, report)
            await broadcaster.flush()
            await websocket.send_json(_wrap_event("canvas.outcomes", payload, key))
    except WebSocketDisconnect:
        logger.info("Gateway: renderer disconnected from session '%s'", key)
    finally:
        broadcaster.disconnect(key, websocket)
