"""WebSocket route for realtime payment changes.

Clients authenticate with the same bearer token as the HTTP API, then
``join`` the ``payments:id:*`` / ``payments:order:*`` / ``payments:user:*``
rooms they own. Heartbeat/idle-timeout handling detects half-open
connections: the server sends a JSON ping on idle and closes after the
configured number of missed pongs.
"""
from __future__ import annotations

import asyncio

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from api.dependencies import CurrentUser, get_uow_factory, resolve_user
from application.ports.realtime import Envelope
from application.services.realtime_service import RealtimeService
from core.config import settings
from core.exceptions import TokenExpiredException, UnauthorizedException
from core.logging_config import get_logger


logger = get_logger(__name__)


router = APIRouter(prefix="/ws", tags=["WebSocket"])


def _extract_token(ws: WebSocket) -> str | None:
    # Prefer query param, fallback to header `Authorization: Bearer x`
    token = ws.query_params.get("token")
    if token:
        return token
    auth = ws.headers.get("authorization") or ""
    if auth.lower().startswith("bearer "):
        return auth[7:].strip()
    return None


def get_realtime_service_from_app(ws: WebSocket) -> RealtimeService:
    svc = getattr(ws.app.state, "realtime_service", None)
    if svc is None:
        raise RuntimeError("Realtime service not initialized. Ensure lifespan sets app.state.realtime_service.")
    return svc


def _error(message: str) -> dict:
    return Envelope(type="error", data={"message": message}).model_dump()


async def _authenticate(ws: WebSocket) -> CurrentUser | None:
    token = _extract_token(ws)
    if not token:
        return None
    try:
        return await resolve_user(token, get_uow_factory())
    except (TokenExpiredException, UnauthorizedException):
        return None


class _Heartbeat:
    """Idle ping / missed pong bookkeeping for one socket."""

    def __init__(self) -> None:
        self.interval = settings.REALTIME_WS_IDLE_PING_INTERVAL_S
        self.grace = settings.REALTIME_WS_PONG_GRACE_S
        self.limit = settings.REALTIME_WS_MISSED_PING_LIMIT
        self.missed = 0

    async def receive(self, ws: WebSocket) -> dict | None:
        """Next client message; ``None`` when the peer stopped answering pings."""
        if not self.interval or self.interval <= 0:
            return await ws.receive_json()
        while True:
            try:
                return await asyncio.wait_for(ws.receive_json(), timeout=self.interval)
            except asyncio.TimeoutError:
                self.missed += 1
                await ws.send_json(Envelope(type="ping").model_dump())
            try:
                msg = await asyncio.wait_for(ws.receive_json(), timeout=self.grace)
                self.missed = 0
                return msg
            except asyncio.TimeoutError:
                if self.missed > self.limit:
                    return None


async def _handle(msg: dict, ws: WebSocket, rt: RealtimeService, user: CurrentUser) -> None:
    mtype = str(msg.get("type") or "").lower()
    room = str(msg.get("room") or "").strip()
    if mtype == "join":
        if not room:
            await ws.send_json(_error("room required"))
            return
        try:
            await rt.join_room(user.id, room, ws, is_admin=user.is_admin)
        except PermissionError:
            await ws.send_json(_error("forbidden"))
    elif mtype == "leave":
        if room:
            await rt.leave_room(user.id, room, ws)
    elif mtype == "ping":
        await ws.send_json(Envelope(type="pong").model_dump())
    elif mtype != "pong":
        await ws.send_json(_error("unknown message type"))


@router.websocket("")
async def websocket_endpoint(ws: WebSocket) -> None:
    await ws.accept()
    current_user = await _authenticate(ws)
    if current_user is None:
        await ws.close(code=1008)
        return

    rt = get_realtime_service_from_app(ws)
    await rt.connect(current_user.id, ws, is_admin=current_user.is_admin)
    heartbeat = _Heartbeat()
    try:
        while True:
            msg = await heartbeat.receive(ws)
            if msg is None:
                logger.info("ws_idle_timeout", user_id=current_user.id, missed=heartbeat.missed)
                await ws.close(code=1001)
                break
            await _handle(msg, ws, rt, current_user)
    except WebSocketDisconnect:
        pass
    except Exception as exc:
        logger.error("ws_error", user_id=current_user.id, error=str(exc), exc_info=True)
    finally:
        await rt.disconnect(current_user.id, ws)
