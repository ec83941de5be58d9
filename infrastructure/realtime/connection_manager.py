"""In-process WebSocket connection manager.

Tracks each user's sockets and the ``payments:*`` rooms they joined, and
fans envelopes out through a bounded per-socket send queue. Cross-process
delivery is the broker's job; this class only serves local sockets.
"""
from __future__ import annotations

import asyncio
from typing import Dict, List, Set, Tuple

from fastapi import WebSocket

from application.ports.realtime import Envelope
from core.logging_config import get_logger
from core.config import settings


logger = get_logger(__name__)

OVERFLOW_POLICIES = {"drop_oldest", "drop_new", "disconnect"}


def _is_payment_change(payload: dict) -> bool:
    return str(payload.get("type") or "").startswith("payment.")


class ConnectionManager:
    """Per-process sockets, room memberships and send queues."""

    def __init__(self) -> None:
        self._by_user: Dict[str, Set[WebSocket]] = {}
        self._by_room: Dict[str, Set[Tuple[str, WebSocket]]] = {}
        self._lock = asyncio.Lock()
        self._send_queues: Dict[WebSocket, asyncio.Queue] = {}
        self._sender_tasks: Dict[WebSocket, asyncio.Task] = {}

    @staticmethod
    def _overflow_policy() -> str:
        policy = (settings.REALTIME_WS_SEND_OVERFLOW_POLICY or "drop_oldest").lower()
        if policy not in OVERFLOW_POLICIES:
            logger.warning("ws_send_queue_policy_invalid", policy=policy, fallback="drop_oldest")
            return "drop_oldest"
        return policy

    async def add(self, user_id: str, ws: WebSocket) -> None:
        async with self._lock:
            self._by_user.setdefault(user_id, set()).add(ws)
            if ws not in self._send_queues:
                q: asyncio.Queue = asyncio.Queue(maxsize=max(1, int(settings.REALTIME_WS_SEND_QUEUE_MAX)))
                self._send_queues[ws] = q
                self._sender_tasks[ws] = asyncio.create_task(self._sender_loop(ws, q))
            sockets = len(self._by_user[user_id])
        logger.info("ws_connected", user_id=user_id, sockets=sockets)

    async def remove(self, user_id: str, ws: WebSocket) -> None:
        async with self._lock:
            conns = self._by_user.get(user_id)
            if conns is not None:
                conns.discard(ws)
                if not conns:
                    self._by_user.pop(user_id, None)
            for room in [r for r, members in self._by_room.items() if (user_id, ws) in members]:
                self._discard_member(room, user_id, ws)
            task = self._sender_tasks.pop(ws, None)
            if task is not None:
                task.cancel()
            self._send_queues.pop(ws, None)
        logger.info("ws_disconnected", user_id=user_id)

    async def join(self, room: str, user_id: str, ws: WebSocket) -> None:
        async with self._lock:
            self._by_room.setdefault(room, set()).add((user_id, ws))
            members = len(self._by_room[room])
        logger.info("ws_join_room", room=room, user_id=user_id, members=members)

    async def leave(self, room: str, user_id: str, ws: WebSocket) -> None:
        async with self._lock:
            self._discard_member(room, user_id, ws)
        logger.info("ws_leave_room", room=room, user_id=user_id)

    def _discard_member(self, room: str, user_id: str, ws: WebSocket) -> None:
        members = self._by_room.get(room)
        if members is None:
            return
        members.discard((user_id, ws))
        if not members:
            self._by_room.pop(room, None)

    async def rooms_of(self, user_id: str, ws: WebSocket) -> List[str]:
        async with self._lock:
            return [room for room, members in self._by_room.items() if (user_id, ws) in members]

    async def broadcast_room(self, room: str, envelope: Envelope) -> None:
        async with self._lock:
            targets = list(self._by_room.get(room, set()))
        if not targets:
            return
        payload = envelope.model_dump(mode="json")
        for _uid, ws in targets:
            await self._enqueue(ws, payload, context={"room": room, "type": envelope.type})

    async def broadcast_user(self, user_id: str, envelope: Envelope) -> None:
        async with self._lock:
            conns = list(self._by_user.get(user_id, set()))
        if not conns:
            return
        payload = envelope.model_dump(mode="json")
        for ws in conns:
            await self._enqueue(ws, payload, context={"user_id": user_id, "type": envelope.type})

    async def _enqueue(self, ws: WebSocket, payload: dict, context: dict) -> None:
        q = self._send_queues.get(ws)
        if q is None:
            return
        try:
            q.put_nowait(payload)
            return
        except asyncio.QueueFull:
            pass

        policy = self._overflow_policy()
        # 支付变更携带完整最新行，不能被丢弃；为它腾出位置
        if policy == "drop_new" and _is_payment_change(payload):
            policy = "drop_oldest"
        if policy == "drop_new":
            logger.warning("ws_send_queue_drop_new", **context)
            return
        if policy == "disconnect":
            logger.warning("ws_send_queue_disconnect", **context)
            try:
                await ws.close(code=1013)
            except RuntimeError:
                pass
            return
        try:
            q.get_nowait()
        except asyncio.QueueEmpty:
            pass
        try:
            q.put_nowait(payload)
        except asyncio.QueueFull:
            logger.warning("ws_send_queue_drop_after_trim", **context)

    async def _sender_loop(self, ws: WebSocket, q: asyncio.Queue) -> None:
        try:
            while True:
                payload = await q.get()
                try:
                    await ws.send_json(payload)
                except Exception as exc:  # pragma: no cover
                    logger.warning("ws_send_failed", type=payload.get("type"), error=str(exc))
        except asyncio.CancelledError:
            return
