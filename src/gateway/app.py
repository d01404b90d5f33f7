from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Literal

import structlog
from fastapi import Body, FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from src.config.settings import get_settings
from src.feeds.hub import SnapshotFeedHub
from src.gateway.protocol import (
    DismissParams,
    RPCError,
    RPCErrorData,
    RPCResponse,
    TabOpenParams,
    parse_rpc_request,
)
from src.gateway.tab import TabSession
from src.infra.errors import GatewayError, SalesDeskError
from src.infra.logging import clear_tab_context, setup_logging
from src.storage.database import create_db_engine, ensure_schema, make_session_factory
from src.storage.memory import StorageArea
from src.storage.sql import SqlKeyValueStore

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize shared state on startup."""
    settings = get_settings()
    setup_logging(json_output=settings.gateway.log_json, log_level=settings.gateway.log_level)

    engine = None
    if settings.storage.backend == "sql":
        engine = await create_db_engine(settings.database)
        await ensure_schema(engine, settings.database.schema_)
        db_session_factory = make_session_factory(engine)
        poll_interval_s = settings.storage.poll_interval_s
        app.state.store_factory = lambda tab_id: SqlKeyValueStore(
            db_session_factory, writer_id=tab_id, poll_interval_s=poll_interval_s,
        )
        logger.info("db_connected")
    else:
        area = StorageArea()
        app.state.store_factory = area.view

    app.state.feed_hub = SnapshotFeedHub()
    app.state.reminder_settings = settings.reminder
    app.state.tabs = {}
    logger.info(
        "gateway_started",
        host=settings.gateway.host,
        port=settings.gateway.port,
        storage_backend=settings.storage.backend,
    )

    yield

    for tab in list(app.state.tabs.values()):
        await tab.close()
    app.state.tabs.clear()
    if engine is not None:
        await engine.dispose()
        logger.info("db_engine_disposed")


app = FastAPI(title="SalesDesk Reminders Gateway", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.put("/feeds/{reference_id}/{collection}")
async def publish_snapshot(
    reference_id: str,
    collection: Literal["meetings", "notes"],
    docs: list[dict[str, Any]] = Body(...),
) -> dict[str, int]:
    """Replace one agent's meeting or note snapshot and fan it out to open tabs."""
    hub: SnapshotFeedHub = app.state.feed_hub
    delivered = hub.publish(collection, reference_id, docs)
    return {"documents": len(docs), "subscribers": delivered}


@app.post("/push/{reference_id}")
async def relay_push(reference_id: str, payload: dict[str, Any] = Body(...)) -> dict[str, int]:
    """Relay a server push message to every open tab of one agent."""
    delivered = 0
    for tab in list(app.state.tabs.values()):
        if tab.is_open and tab.reference_id == reference_id:
            await tab.relay_push(payload)
            delivered += 1
    return {"delivered": delivered}


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    await websocket.accept()
    tab = TabSession(
        websocket.send_text,
        feed_hub=websocket.app.state.feed_hub,
        store_factory=websocket.app.state.store_factory,
        settings=websocket.app.state.reminder_settings,
    )
    websocket.app.state.tabs[tab.tab_id] = tab
    logger.info("ws_connected", tab_id=tab.tab_id)
    try:
        while True:
            raw = await websocket.receive_text()
            await _handle_rpc_message(websocket, tab, raw)
    except WebSocketDisconnect:
        logger.info("ws_disconnected", tab_id=tab.tab_id)
    finally:
        websocket.app.state.tabs.pop(tab.tab_id, None)
        await tab.close()
        clear_tab_context()


async def _handle_rpc_message(websocket: WebSocket, tab: TabSession, raw: str) -> None:
    """Parse RPC request, route it to the tab, reply with a response or error frame."""
    request_id = "unknown"
    try:
        request = parse_rpc_request(raw)
        request_id = request.id

        if request.method == "tab.open":
            await _handle_tab_open(websocket, tab, request_id, request.params)
        elif request.method == "reminder.dismiss":
            await _handle_dismiss(websocket, tab, request_id, request.params)
        elif request.method == "reminder.state":
            response = RPCResponse(id=request_id, data=tab.state_snapshot())
            await websocket.send_text(response.model_dump_json())
        else:
            error = RPCError(
                id=request_id,
                error=RPCErrorData(
                    code="METHOD_NOT_FOUND",
                    message=f"Unknown method: {request.method}",
                ),
            )
            await websocket.send_text(error.model_dump_json())

    except SalesDeskError as e:
        logger.warning("request_error", code=e.code, error=str(e), request_id=request_id)
        error = RPCError(
            id=request_id,
            error=RPCErrorData(code=e.code, message=str(e)),
        )
        await websocket.send_text(error.model_dump_json())
    except Exception:
        logger.exception("unhandled_error", request_id=request_id)
        error = RPCError(
            id=request_id,
            error=RPCErrorData(code="INTERNAL_ERROR", message="An internal error occurred"),
        )
        await websocket.send_text(error.model_dump_json())


async def _handle_tab_open(
    websocket: WebSocket, tab: TabSession, request_id: str, params: dict
) -> None:
    """Handle tab.open: start this tab's reminder engine."""
    try:
        parsed = TabOpenParams.model_validate(params)
    except ValidationError as e:
        raise GatewayError(str(e), code="INVALID_PARAMS") from e

    await tab.open(parsed)
    response = RPCResponse(id=request_id, data={"tab_id": tab.tab_id, **tab.state_snapshot()})
    await websocket.send_text(response.model_dump_json())


async def _handle_dismiss(
    websocket: WebSocket, tab: TabSession, request_id: str, params: dict
) -> None:
    """Handle reminder.dismiss: acknowledge one track for today."""
    try:
        parsed = DismissParams.model_validate(params)
    except ValidationError as e:
        raise GatewayError(str(e), code="INVALID_PARAMS") from e

    dismissed = await tab.dismiss(parsed.track)
    response = RPCResponse(id=request_id, data={"track": str(parsed.track), "dismissed": dismissed})
    await websocket.send_text(response.model_dump_json())
