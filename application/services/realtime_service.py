"""Application service for realtime WebSocket workflows.

Keeps application logic (authorization, orchestration) separate from
the concrete connection management and broadcast transport. Payment row
changes are published by ``PaymentChangePublisher`` after commit; clients
only receive them by joining a ``payments:*`` room they are allowed to see.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import WebSocket

from application.ports.realtime import Envelope, RealtimeBrokerPort, payment_rooms
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.events import PaymentRowChanged
from infrastructure.realtime.connection_manager import ConnectionManager
from core.logging_config import get_logger


logger = get_logger(__name__)

ROOM_PREFIX_ID = "payments:id:"
ROOM_PREFIX_ORDER = "payments:order:"
ROOM_PREFIX_USER = "payments:user:"


class RealtimeService:
    def __init__(
        self,
        *,
        broker: RealtimeBrokerPort,
        connections: ConnectionManager,
        uow_factory: Optional[Callable[..., AbstractUnitOfWork]] = None,
    ) -> None:
        self._broker = broker
        self._conn = connections
        self._uow_factory = uow_factory

    # Connection lifecycle management
    async def connect(self, user_id: str, ws: WebSocket, *, is_admin: bool = False) -> None:
        await self._conn.add(user_id, ws)
        await self._conn.broadcast_user(
            user_id,
            Envelope(
                type="welcome",
                data={
                    "user_id": user_id,
                    "server_time": datetime.now(timezone.utc).isoformat(),
                    "capabilities": ["payments"],
                },
            ),
        )
        logger.info("user_connected", user_id=user_id, is_admin=is_admin)

    async def disconnect(self, user_id: str, ws: WebSocket) -> None:
        rooms = await self._conn.rooms_of(user_id, ws)
        for room in rooms:
            await self.leave_room(user_id, room, ws)
        await self._conn.remove(user_id, ws)
        logger.info("user_disconnected", user_id=user_id, rooms_left=len(rooms))

    # Public API (use-cases)
    async def join_room(self, user_id: str, room: str, ws: WebSocket, *, is_admin: bool = False) -> None:
        await self.ensure_can_join(user_id, room, is_admin=is_admin)
        await self._conn.join(room, user_id, ws)
        await self._conn.broadcast_user(
            user_id,
            Envelope(type="joined", room=room, data={"timestamp": datetime.now(timezone.utc).isoformat()}),
        )

    async def leave_room(self, user_id: str, room: str, ws: WebSocket) -> None:
        await self._conn.leave(room, user_id, ws)

    # Broker callback (cross-process events → in-process broadcast)
    async def on_broker_event(self, envelope: Envelope) -> None:
        if envelope.room:
            await self._conn.broadcast_room(envelope.room, envelope)
        elif envelope.sender_id:
            await self._conn.broadcast_user(envelope.sender_id, envelope)
        logger.debug("realtime_event_dispatched", type=envelope.type, room=envelope.room)

    @property
    def connections(self) -> ConnectionManager:
        return self._conn

    # -------------------- ACL --------------------
    async def ensure_can_join(self, user_id: str, room: str, *, is_admin: bool = False) -> None:
        """用户只能加入自己的用户房间、以及自己拥有的支付/订单房间；管理员不受限"""
        if is_admin:
            return
        if room.startswith(ROOM_PREFIX_USER):
            if room[len(ROOM_PREFIX_USER):] != user_id:
                raise PermissionError("forbidden: user room")
            return
        if room.startswith(ROOM_PREFIX_ID):
            owner = await self._payment_owner(room[len(ROOM_PREFIX_ID):])
        elif room.startswith(ROOM_PREFIX_ORDER):
            owner = await self._order_owner(room[len(ROOM_PREFIX_ORDER):])
        else:
            raise PermissionError("forbidden: unknown room")
        if owner != user_id:
            raise PermissionError("forbidden: not owner")

    async def _payment_owner(self, payment_id: str) -> Optional[str]:
        if self._uow_factory is None:
            return None
        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payment_repository.get_by_id(payment_id)
        return payment.user_id if payment else None

    async def _order_owner(self, order_id: str) -> Optional[str]:
        if self._uow_factory is None:
            return None
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_id(order_id)
        return order.user_id if order else None


class PaymentChangePublisher:
    """提交后的支付行变更 → payment.insert / payment.update 推送到各房间"""

    def __init__(self, broker: RealtimeBrokerPort) -> None:
        self._broker = broker

    def register(self, events) -> None:
        events.subscribe(PaymentRowChanged, self.on_row_changed)

    async def on_row_changed(self, event: PaymentRowChanged) -> None:
        envelope_type = f"payment.{event.change}"
        for room in payment_rooms(event.payment_id, event.order_id, event.user_id):
            await self._broker.publish(room, Envelope(type=envelope_type, room=room, data=event.row))
        logger.debug("payment_change_published", payment_id=event.payment_id, type=envelope_type)
