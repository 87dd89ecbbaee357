"""
Room management for the card game server.

This module handles room lookup/creation, player connections, deferred
room tasks and WebSocket delivery for game sessions.

A Room contains:
    - A short code shared by both players to join
    - The WebSocket connection of each seated player
    - One Game instance with the actual game state
    - The room's pending timers (memorization end, peek expiry)
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from fastapi import WebSocket

from game import Game
from logging_config import get_logger
from models.events import GameEvent

logger = get_logger(__name__)


@dataclass
class RoomConnection:
    """
    A player's connection to a room.

    This is separate from game.Player - RoomConnection tracks the socket,
    while game.Player tracks seat, hand and score. The websocket is None
    once the player has disconnected.

    Attributes:
        id: Player identifier (the connection id).
        name: Display name.
        websocket: WebSocket connection, or None after a disconnect.
    """

    id: str
    name: str
    websocket: Optional[WebSocket] = None

    @property
    def connected(self) -> bool:
        return self.websocket is not None


@dataclass
class Room:
    """
    A game room hosting one two-player game.

    Attributes:
        code: Room code used for joining (e.g., "ABCD").
        connections: Dict mapping player IDs to RoomConnection objects.
        game: The Game instance containing actual game state.
        game_lock: asyncio.Lock serializing every mutation of this room's game.
        timers: Pending deferred tasks owned by this room.
    """

    code: str
    connections: dict[str, RoomConnection] = field(default_factory=dict)
    game: Game = field(default_factory=Game)
    game_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    timers: set[asyncio.Task] = field(default_factory=set)

    def __post_init__(self) -> None:
        self.game.room_code = self.code
        self.log = logger.with_context(room_code=self.code)

    def add_player(self, player_id: str, name: str, websocket: WebSocket) -> Optional[RoomConnection]:
        """
        Seat a player and attach their connection.

        Returns:
            The RoomConnection, or None if the game refused the seat.
        """
        if self.game.add_player(player_id, name) is None:
            return None

        connection = RoomConnection(id=player_id, name=name, websocket=websocket)
        self.connections[player_id] = connection
        self.log.info(f"{name} joined", extra={"player_id": player_id})
        return connection

    def detach(self, player_id: str) -> Optional[RoomConnection]:
        """
        Forget a player's socket after a disconnect. The seat is kept.

        Returns:
            The detached RoomConnection, or None if not found.
        """
        connection = self.connections.get(player_id)
        if connection is None:
            return None
        connection.websocket = None
        self.log.info(f"{connection.name} disconnected", extra={"player_id": player_id})
        return connection

    def connected_ids(self) -> list[str]:
        return [pid for pid, conn in self.connections.items() if conn.connected]

    # -------------------------------------------------------------------------
    # Deferred tasks
    # -------------------------------------------------------------------------

    def schedule(self, delay: float, callback: Callable[[], Awaitable[None]]) -> asyncio.Task:
        """
        Run a coroutine callback after `delay` seconds.

        The task is tracked on the room so it can be cancelled on reset.
        Callbacks must validate the game state themselves when they fire.
        """

        async def runner() -> None:
            try:
                await asyncio.sleep(delay)
                await callback()
            except asyncio.CancelledError:
                pass
            except Exception:
                self.log.exception("Deferred room task failed")

        task = asyncio.create_task(runner())
        self.timers.add(task)
        task.add_done_callback(self.timers.discard)
        return task

    def cancel_timers(self) -> None:
        """Cancel every pending deferred task of this room."""
        for task in list(self.timers):
            task.cancel()
        self.timers.clear()

    # -------------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------------

    async def send_to(self, player_id: str, message: dict) -> None:
        """
        Send a message to a specific player.

        Args:
            player_id: ID of the recipient player.
            message: JSON-serializable message dict.
        """
        connection = self.connections.get(player_id)
        if not connection or not connection.websocket:
            return
        try:
            await connection.websocket.send_json(message)
        except Exception as e:
            self.log.warning(f"Send to {player_id} failed: {e}")

    async def broadcast(self, message: dict, exclude: Optional[str] = None) -> None:
        """
        Send a message to every connected player in the room.

        Args:
            message: JSON-serializable message dict.
            exclude: Optional player ID to skip.
        """
        for player_id in self.connected_ids():
            if player_id != exclude:
                await self.send_to(player_id, message)

    async def deliver_events(self, events: list[GameEvent]) -> None:
        """Send queued game events to their recipients, oldest first."""
        for event in events:
            message = event.to_message()
            self.log.debug(f"Event #{event.sequence_num} {event.event_type.value}")
            for player_id in self.connected_ids():
                if event.is_for(player_id):
                    await self.send_to(player_id, message)

    async def publish(self) -> None:
        """
        Flush the game's outbox, then send each player their own snapshot.

        Snapshots are projected per recipient on every call.
        """
        await self.deliver_events(self.game.drain_events())
        for player_id in self.connected_ids():
            await self.send_to(player_id, {
                "type": "game_state_update",
                "data": self.game.get_state(player_id),
            })


class RoomManager:
    """
    Registry of all rooms in this process.

    One instance is created by the application at startup and handed to
    the handlers; rooms live until the process ends.
    """

    def __init__(self) -> None:
        """Initialize an empty room manager."""
        self.rooms: dict[str, Room] = {}

    @staticmethod
    def normalize_code(code: str) -> str:
        return code.strip().upper()

    def get_or_create(self, code: str) -> Optional[Room]:
        """
        Get a room by code, creating it on first use.

        Lookup and insertion happen without yielding to the event loop, so
        two joins racing for a new code always end up in the same room.

        Returns:
            The Room, or None for a blank code.
        """
        code = self.normalize_code(code)
        if not code:
            return None
        room = self.rooms.get(code)
        if room is None:
            room = Room(code=code)
            self.rooms[code] = room
            logger.info(f"Room {code} created")
        return room

    def get_room(self, code: str) -> Optional[Room]:
        """
        Get a room by its code (case-insensitive).

        Returns:
            The Room if found, None otherwise.
        """
        return self.rooms.get(self.normalize_code(code))

    def remove_room(self, code: str) -> None:
        """Delete a room and cancel its timers."""
        room = self.rooms.pop(self.normalize_code(code), None)
        if room:
            room.cancel_timers()

    def player_count(self) -> int:
        return sum(len(room.game.player_order) for room in self.rooms.values())
