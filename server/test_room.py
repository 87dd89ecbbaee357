"""
Test suite for Room and RoomManager.

Covers:
- Room lookup/creation by code (case-insensitive, one room per code)
- Seating and detaching players
- Per-recipient event delivery and snapshots
- Deferred room tasks and cancellation

Run with: pytest test_room.py -v
"""

import asyncio
import pytest

from game import GameStatus
from models.events import notification, stack_reveal
from room import Room, RoomManager


# =============================================================================
# Mock helpers
# =============================================================================

class MockWebSocket:
    """Mock WebSocket that collects sent messages."""

    def __init__(self):
        self.messages: list[dict] = []

    async def send_json(self, data: dict):
        self.messages.append(data)

    def messages_of_type(self, msg_type: str) -> list[dict]:
        return [m for m in self.messages if m.get("type") == msg_type]


class BrokenWebSocket:
    """WebSocket whose peer has gone away."""

    async def send_json(self, data: dict):
        raise RuntimeError("socket closed")


def make_room():
    room = Room(code="TEST")
    ws1, ws2 = MockWebSocket(), MockWebSocket()
    room.add_player("p1", "Alice", ws1)
    room.add_player("p2", "Bob", ws2)
    return room, ws1, ws2


# =============================================================================
# RoomManager tests
# =============================================================================

class TestRoomManager:

    def test_get_or_create_creates_once(self):
        rm = RoomManager()
        room = rm.get_or_create("abcd")
        assert room is not None
        assert rm.get_or_create("ABCD") is room
        assert len(rm.rooms) == 1

    def test_codes_normalized(self):
        rm = RoomManager()
        room = rm.get_or_create("  game1 ")
        assert room.code == "GAME1"
        assert rm.get_room("Game1") is room

    def test_blank_code_rejected(self):
        rm = RoomManager()
        assert rm.get_or_create("   ") is None
        assert rm.rooms == {}

    def test_rooms_are_isolated(self):
        rm = RoomManager()
        a = rm.get_or_create("AAAA")
        b = rm.get_or_create("BBBB")
        assert a.game is not b.game
        assert a.game_lock is not b.game_lock

    def test_room_code_passed_to_game(self):
        room = RoomManager().get_or_create("xyz")
        assert room.game.room_code == "XYZ"

    def test_get_room_not_found(self):
        assert RoomManager().get_room("NOPE") is None

    def test_remove_room(self):
        rm = RoomManager()
        rm.get_or_create("ABCD")
        rm.remove_room("abcd")
        assert rm.get_room("ABCD") is None

    def test_remove_nonexistent_room(self):
        RoomManager().remove_room("ZZZZ")  # Should not raise

    def test_player_count(self):
        rm = RoomManager()
        rm.get_or_create("A").add_player("p1", "Alice", MockWebSocket())
        rm.get_or_create("B").add_player("p2", "Bob", MockWebSocket())
        assert rm.player_count() == 2


# =============================================================================
# Seating
# =============================================================================

class TestRoomPlayers:

    def test_add_player(self):
        room, _, _ = make_room()
        assert set(room.connections) == {"p1", "p2"}
        assert room.game.player_order == ["p1", "p2"]

    def test_third_player_refused(self):
        room, _, _ = make_room()
        assert room.add_player("p3", "Carol", MockWebSocket()) is None
        assert "p3" not in room.connections

    def test_join_after_deal_refused(self):
        room = Room(code="TEST")
        room.add_player("p1", "Alice", MockWebSocket())
        room.game.status = GameStatus.PLAYING
        assert room.add_player("p2", "Bob", MockWebSocket()) is None

    def test_detach_keeps_seat(self):
        room, _, _ = make_room()
        connection = room.detach("p1")
        assert connection.name == "Alice"
        assert not connection.connected
        assert "p1" in room.game.players
        assert room.connected_ids() == ["p2"]

    def test_detach_unknown(self):
        room, _, _ = make_room()
        assert room.detach("ghost") is None


# =============================================================================
# Delivery
# =============================================================================

class TestDelivery:

    @pytest.mark.asyncio
    async def test_broadcast_reaches_connected_players(self):
        room, ws1, ws2 = make_room()
        await room.broadcast({"type": "hello"})
        assert ws1.messages == [{"type": "hello"}]
        assert ws2.messages == [{"type": "hello"}]

    @pytest.mark.asyncio
    async def test_broadcast_exclude(self):
        room, ws1, ws2 = make_room()
        await room.broadcast({"type": "hello"}, exclude="p1")
        assert ws1.messages == []
        assert len(ws2.messages) == 1

    @pytest.mark.asyncio
    async def test_dead_socket_does_not_block_others(self):
        room = Room(code="TEST")
        ws = MockWebSocket()
        room.add_player("p1", "Alice", BrokenWebSocket())
        room.add_player("p2", "Bob", ws)
        await room.broadcast({"type": "hello"})
        assert ws.messages == [{"type": "hello"}]

    @pytest.mark.asyncio
    async def test_detached_player_skipped(self):
        room, ws1, ws2 = make_room()
        room.detach("p1")
        await room.send_to("p1", {"type": "hello"})
        assert ws1.messages == []

    @pytest.mark.asyncio
    async def test_events_go_to_recipients(self):
        room, ws1, ws2 = make_room()
        await room.deliver_events([
            notification("for everyone"),
            stack_reveal({"id": "7_hearts"}, "p2"),
        ])
        assert ws1.messages == [
            {"type": "game_notification", "data": {"message": "for everyone", "type": "info"}},
        ]
        assert [m["type"] for m in ws2.messages] == ["game_notification", "stack_reveal"]
        assert ws2.messages[1]["data"]["card"] == {"id": "7_hearts"}

    @pytest.mark.asyncio
    async def test_publish_sends_events_then_own_snapshot(self):
        room, ws1, ws2 = make_room()
        room.game.mark_ready("p1")
        room.game.mark_ready("p2")
        room.game.finish_memorization(room.game.deal_id)

        await room.publish()

        for ws, pid in ((ws1, "p1"), (ws2, "p2")):
            assert ws.messages[-1]["type"] == "game_state_update"
            assert ws.messages[-1]["data"]["you"] == pid
            assert ws.messages_of_type("game_notification")[0]["data"]["message"] == "Alice's turn!"
        assert room.game.drain_events() == []

    @pytest.mark.asyncio
    async def test_snapshots_redacted_per_recipient(self):
        room, ws1, ws2 = make_room()
        room.game.mark_ready("p1")
        room.game.mark_ready("p2")

        await room.publish()

        own = ws1.messages[-1]["data"]["players"]["p1"]["hand"]
        seen_by_bob = ws2.messages[-1]["data"]["players"]["p1"]["hand"]
        assert own[2]["rank"] != "?"
        assert seen_by_bob[2]["rank"] == "?"


# =============================================================================
# Deferred tasks
# =============================================================================

class TestSchedule:

    @pytest.mark.asyncio
    async def test_callback_runs_after_delay(self):
        room = Room(code="TEST")
        fired = []

        async def callback():
            fired.append(True)

        room.schedule(0.01, callback)
        assert fired == []
        await asyncio.sleep(0.05)
        assert fired == [True]
        assert room.timers == set()

    @pytest.mark.asyncio
    async def test_cancel_timers(self):
        room = Room(code="TEST")
        fired = []

        async def callback():
            fired.append(True)

        room.schedule(0.01, callback)
        room.cancel_timers()
        await asyncio.sleep(0.05)
        assert fired == []
        assert room.timers == set()

    @pytest.mark.asyncio
    async def test_failing_callback_is_contained(self):
        room = Room(code="TEST")

        async def callback():
            raise ValueError("boom")

        task = room.schedule(0, callback)
        await asyncio.sleep(0.01)
        assert task.done()
        assert task.exception() is None

    @pytest.mark.asyncio
    async def test_remove_room_cancels_timers(self):
        rm = RoomManager()
        room = rm.get_or_create("ABCD")
        fired = []

        async def callback():
            fired.append(True)

        room.schedule(0.01, callback)
        rm.remove_room("ABCD")
        await asyncio.sleep(0.05)
        assert fired == []
