"""
Payment tracking: a status poller and a realtime listener merged into one
scoped resource.

``PaymentTracker`` is acquired with ``async with`` (or ``start``/``stop``)
and releases both its poll task and its broker subscription on exit, error
paths included. Both paths only copy authoritative rows into local state;
the tracker never computes a status itself.
"""
from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from pydantic import ValidationError

from application.dtos.payments import PaymentView
from application.ports.realtime import Envelope, RealtimeBrokerPort
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.payment.entity import PaymentStatus


logger = get_logger(__name__)

StatusSource = Callable[[], Awaitable[Optional[PaymentView]]]

PAYMENT_CHANGE_TYPES = frozenset({"payment.insert", "payment.update"})

MSG_STARTED = "Suivi du paiement démarré"
MSG_STOPPED = "Suivi terminé"


@dataclass(frozen=True)
class PaymentLogEntry:
    timestamp: datetime
    status: Optional[PaymentStatus]
    message: str


class PaymentTracker:
    """跟踪一个支付（或订单/用户下的支付）直到终态

    - 轮询：每 poll_interval 秒调用 status_source，终态后停止
    - 实时：订阅 broker，按房间过滤 payment.insert/payment.update
    - 日志：仅追加，每次观察到状态变化记录一条
    """

    def __init__(
        self,
        *,
        status_source: Optional[StatusSource] = None,
        broker: Optional[RealtimeBrokerPort] = None,
        payment_id: Optional[str] = None,
        order_id: Optional[str] = None,
        user_id: Optional[str] = None,
        poll_interval: Optional[float] = None,
    ) -> None:
        scopes = [s for s in (payment_id, order_id, user_id) if s]
        if len(scopes) != 1:
            raise ValueError("exactly one of payment_id, order_id or user_id is required")
        if payment_id:
            self._room = f"payments:id:{payment_id}"
        elif order_id:
            self._room = f"payments:order:{order_id}"
        else:
            self._room = f"payments:user:{user_id}"
        # 用户范围跟踪多笔支付，不会因单笔终态而结束
        self._single = user_id is None

        self._source = status_source
        self._broker = broker
        self._interval = (
            poll_interval if poll_interval is not None else payment_settings.tracking.poll_interval_s
        )
        self._rows: dict[str, PaymentView] = {}
        self._state: Optional[PaymentView] = None
        self._log: list[PaymentLogEntry] = []
        self._terminal = asyncio.Event()
        self._poll_task: Optional[asyncio.Task] = None
        self._subscribed = False
        self._started = False
        self._stopped = False

    # ---------------------------------------------------------------- state
    @property
    def room(self) -> str:
        return self._room

    @property
    def state(self) -> Optional[PaymentView]:
        return self._state

    @property
    def rows(self) -> dict[str, PaymentView]:
        return dict(self._rows)

    @property
    def log(self) -> tuple[PaymentLogEntry, ...]:
        return tuple(self._log)

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    @property
    def is_subscribed(self) -> bool:
        return self._subscribed

    @property
    def is_terminal(self) -> bool:
        return self._terminal.is_set()

    # ------------------------------------------------------------ lifecycle
    async def start(self) -> "PaymentTracker":
        if self._started:
            return self
        self._started = True
        try:
            if self._broker is not None:
                await self._broker.subscribe(self._on_envelope)
                self._subscribed = True
            self._append(None, MSG_STARTED)
            if self._source is not None:
                self._poll_task = asyncio.create_task(self._poll_loop(), name=f"payment-poll:{self._room}")
        except BaseException:
            await self.stop()
            raise
        logger.info("payment_tracking_started", room=self._room, interval=self._interval)
        return self

    async def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        task, self._poll_task = self._poll_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        try:
            if self._subscribed and self._broker is not None:
                await self._broker.unsubscribe(self._on_envelope)
        finally:
            self._subscribed = False
            self._append(self._state.status if self._state else None, MSG_STOPPED)
            logger.info("payment_tracking_stopped", room=self._room, entries=len(self._log))

    async def __aenter__(self) -> "PaymentTracker":
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def wait_for_terminal(self, timeout: Optional[float] = None) -> Optional[PaymentView]:
        await asyncio.wait_for(self._terminal.wait(), timeout=timeout)
        return self._state

    # --------------------------------------------------------------- poller
    async def poll_once(self) -> Optional[PaymentView]:
        """读取一次当前行；行尚不存在时返回 None"""
        if self._source is None:
            return None
        try:
            row = await self._source()
        except Exception as exc:
            logger.warning("payment_poll_failed", room=self._room, error=str(exc))
            return None
        if row is None:
            return None
        self._accept(row, origin="poll")
        return row

    async def _poll_loop(self) -> None:
        while not self._terminal.is_set():
            await self.poll_once()
            if self._terminal.is_set():
                break
            try:
                await asyncio.wait_for(self._terminal.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                continue
        logger.info("payment_polling_finished", room=self._room)

    # ------------------------------------------------------------- realtime
    async def _on_envelope(self, envelope: Envelope) -> None:
        if envelope.room != self._room or envelope.type not in PAYMENT_CHANGE_TYPES:
            return
        try:
            row = PaymentView.model_validate(envelope.data)
        except ValidationError as exc:
            logger.warning("payment_realtime_row_invalid", room=self._room, error=str(exc))
            return
        self._accept(row, origin="realtime")

    # ---------------------------------------------------------------- merge
    def _accept(self, row: PaymentView, *, origin: str) -> None:
        known = self._rows.get(row.id)
        if known is not None and _older(row, known):
            return
        current = self._state
        if self._single and current is not None and current.id != row.id and _created_before(row, current):
            # 订单下更早创建的支付不是当前支付
            return

        self._rows[row.id] = row
        self._state = row
        if known is None or known.status != row.status:
            if origin == "realtime":
                message = f"Mise à jour temps réel: {row.status.value}"
            else:
                message = f"Statut vérifié: {row.status.value}"
            self._append(row.status, message)

        if self._single and row.status.is_terminal and not self._terminal.is_set():
            self._terminal.set()
            logger.info("payment_tracking_terminal", room=self._room, status=row.status.value, origin=origin)

    def _append(self, status: Optional[PaymentStatus], message: str) -> None:
        self._log.append(PaymentLogEntry(timestamp=datetime.now(timezone.utc), status=status, message=message))


def _older(row: PaymentView, known: PaymentView) -> bool:
    if row.updated_at is None or known.updated_at is None:
        return False
    return _utc(row.updated_at) < _utc(known.updated_at)


def _created_before(row: PaymentView, current: PaymentView) -> bool:
    if row.created_at is None or current.created_at is None:
        return False
    return _utc(row.created_at) < _utc(current.created_at)


def _utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
