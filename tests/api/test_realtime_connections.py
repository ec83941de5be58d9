import asyncio

from application.ports.realtime import Envelope
from core.config import settings
from infrastructure.realtime.connection_manager import ConnectionManager


class BlockedSocket:
    """Socket whose sends wait until released, so the queue fills up."""

    def __init__(self):
        self.sent = []
        self.release = asyncio.Event()
        self.closed_with = None

    async def send_json(self, payload):
        await self.release.wait()
        self.sent.append(payload)

    async def close(self, code=1000):
        self.closed_with = code


async def _drain(ws, count):
    for _ in range(100):
        if len(ws.sent) >= count:
            return
        await asyncio.sleep(0.01)


async def test_payment_changes_survive_queue_overflow(monkeypatch):
    monkeypatch.setattr(settings, "REALTIME_WS_SEND_QUEUE_MAX", 1)
    monkeypatch.setattr(settings, "REALTIME_WS_SEND_OVERFLOW_POLICY", "drop_new")
    manager = ConnectionManager()
    ws = BlockedSocket()
    room = "payments:id:p1"
    await manager.add("user-1", ws)
    await manager.join(room, "user-1", ws)

    await manager.broadcast_room(room, Envelope(type="notice", data={"n": 1}))
    await asyncio.sleep(0.01)  # sender picks up the first envelope and blocks
    await manager.broadcast_room(room, Envelope(type="notice", data={"n": 2}))
    await manager.broadcast_room(room, Envelope(type="notice", data={"n": 3}))
    await manager.broadcast_room(room, Envelope(type="payment.update", data={"id": "p1", "status": "completed"}))

    ws.release.set()
    await _drain(ws, 2)
    assert [p["type"] for p in ws.sent] == ["notice", "payment.update"]
    assert ws.sent[1]["data"]["status"] == "completed"

    await manager.remove("user-1", ws)
    assert await manager.rooms_of("user-1", ws) == []


async def test_disconnect_policy_closes_slow_socket(monkeypatch):
    monkeypatch.setattr(settings, "REALTIME_WS_SEND_QUEUE_MAX", 1)
    monkeypatch.setattr(settings, "REALTIME_WS_SEND_OVERFLOW_POLICY", "disconnect")
    manager = ConnectionManager()
    ws = BlockedSocket()
    await manager.add("user-1", ws)

    for i in range(3):
        await manager.broadcast_user("user-1", Envelope(type="notice", data={"n": i}))
        await asyncio.sleep(0.01)

    assert ws.closed_with == 1013
    await manager.remove("user-1", ws)


async def test_leave_and_remove_clean_up_rooms():
    manager = ConnectionManager()
    ws = BlockedSocket()
    await manager.add("user-1", ws)
    await manager.join("payments:user:user-1", "user-1", ws)
    await manager.join("payments:order:o1", "user-1", ws)

    await manager.leave("payments:order:o1", "user-1", ws)
    assert await manager.rooms_of("user-1", ws) == ["payments:user:user-1"]

    await manager.remove("user-1", ws)
    assert await manager.rooms_of("user-1", ws) == []
