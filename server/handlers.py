"""WebSocket message handlers for the card game.

Each handler corresponds to a single message type from the client.
Handlers are dispatched via the HANDLERS dict in main.py with the
frame's "data" payload, and receive their collaborators as keyword
arguments:

    room_manager: the process's RoomManager
    broadcast_game_state: coroutine publishing a room's events and snapshots
    timers: TimerSettings with the deferred transition delays

Illegal actions are dropped silently: nothing is mutated and nothing is
sent back.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from fastapi import WebSocket
from pydantic import BaseModel, ValidationError

from config import TimerSettings
from game import Game, GameStatus, Peek
from models.events import NotificationType, notification
from models.messages import (
    CallItMessage,
    CallStackMessage,
    DiscardDrawnCardMessage,
    DrawDeckMessage,
    DrawDiscardMessage,
    ExecuteStackMessage,
    JackRespondMessage,
    JoinGameMessage,
    PlayAbilityTargetMessage,
    PlayAgainMessage,
    PlayerReadyMessage,
    SwapDrawnCardMessage,
)
from room import Room, RoomManager

logger = logging.getLogger(__name__)

MessageT = TypeVar("MessageT", bound=BaseModel)


@dataclass
class ConnectionContext:
    """State tracked per WebSocket connection."""

    websocket: WebSocket
    connection_id: str
    player_id: str
    current_room: Optional[Room] = None


def parse_message(model: type[MessageT], data: dict) -> Optional[MessageT]:
    """Validate a client payload, or return None if it is malformed."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.debug(f"Ignoring malformed {model.__name__}: {e.error_count()} error(s)")
        return None


# ---------------------------------------------------------------------------
# Deferred transitions
# ---------------------------------------------------------------------------

def schedule_transition(
    room: Room,
    delay: float,
    transition: Callable[[Game], bool],
    *,
    room_manager: RoomManager,
    broadcast_game_state,
) -> None:
    """
    Apply `transition` to the room's game after `delay` seconds.

    When it fires, the callback checks the room is still registered and
    lets the transition validate its own state token; a stale timer does
    nothing.
    """
    code = room.code

    async def fire() -> None:
        if room_manager.get_room(code) is not room:
            return
        async with room.game_lock:
            if transition(room.game):
                await broadcast_game_state(room)

    room.schedule(delay, fire)


def schedule_memorization_end(room: Room, *, timers: TimerSettings, **deps) -> None:
    deal_id = room.game.deal_id
    schedule_transition(
        room,
        timers.PHASE1_REVEAL,
        lambda game: game.finish_memorization(deal_id),
        **deps,
    )


def schedule_peek_expiry(room: Room, peek: Peek, *, timers: TimerSettings, **deps) -> None:
    schedule_transition(
        room,
        timers.ABILITY_PEEK,
        lambda game: game.expire_peek(peek),
        **deps,
    )


# ---------------------------------------------------------------------------
# Lobby handlers
# ---------------------------------------------------------------------------

async def handle_join_game(data: dict, ctx: ConnectionContext, *, room_manager, broadcast_game_state, **kw) -> None:
    msg = parse_message(JoinGameMessage, data)
    if not msg or ctx.current_room:
        return

    room = room_manager.get_or_create(msg.room_id)
    if not room:
        return

    async with room.game_lock:
        if room.add_player(ctx.player_id, msg.player_name, ctx.websocket) is None:
            reason = "Room is full" if room.game.is_full() else "Game already in progress"
            await ctx.websocket.send_json(notification(reason, NotificationType.ERROR).to_message())
            return

        ctx.current_room = room
        await broadcast_game_state(room)


async def handle_player_ready(data: dict, ctx: ConnectionContext, *, broadcast_game_state, **kw) -> None:
    if not ctx.current_room or not parse_message(PlayerReadyMessage, data):
        return

    room = ctx.current_room
    async with room.game_lock:
        if room.game.mark_ready(ctx.player_id):
            if room.game.status == GameStatus.PHASE1:
                schedule_memorization_end(room, broadcast_game_state=broadcast_game_state, **kw)
            await broadcast_game_state(room)


# ---------------------------------------------------------------------------
# Turn action handlers
# ---------------------------------------------------------------------------

async def handle_draw_deck(data: dict, ctx: ConnectionContext, *, broadcast_game_state, **kw) -> None:
    if not ctx.current_room or not parse_message(DrawDeckMessage, data):
        return

    async with ctx.current_room.game_lock:
        if ctx.current_room.game.draw_from_deck(ctx.player_id):
            await broadcast_game_state(ctx.current_room)


async def handle_draw_discard(data: dict, ctx: ConnectionContext, *, broadcast_game_state, **kw) -> None:
    msg = parse_message(DrawDiscardMessage, data)
    if not ctx.current_room or not msg:
        return

    async with ctx.current_room.game_lock:
        if ctx.current_room.game.draw_from_discard(ctx.player_id, msg.hand_index):
            await broadcast_game_state(ctx.current_room)


async def handle_swap_drawn_card(data: dict, ctx: ConnectionContext, *, broadcast_game_state, **kw) -> None:
    msg = parse_message(SwapDrawnCardMessage, data)
    if not ctx.current_room or not msg:
        return

    async with ctx.current_room.game_lock:
        if ctx.current_room.game.swap_drawn_card(ctx.player_id, msg.hand_index):
            await broadcast_game_state(ctx.current_room)


async def handle_discard_drawn_card(data: dict, ctx: ConnectionContext, *, broadcast_game_state, **kw) -> None:
    if not ctx.current_room or not parse_message(DiscardDrawnCardMessage, data):
        return

    async with ctx.current_room.game_lock:
        if ctx.current_room.game.discard_drawn_card(ctx.player_id):
            await broadcast_game_state(ctx.current_room)


async def handle_call_it(data: dict, ctx: ConnectionContext, *, broadcast_game_state, **kw) -> None:
    if not ctx.current_room or not parse_message(CallItMessage, data):
        return

    async with ctx.current_room.game_lock:
        if ctx.current_room.game.call_it(ctx.player_id):
            await broadcast_game_state(ctx.current_room)


# ---------------------------------------------------------------------------
# Stack handlers
# ---------------------------------------------------------------------------

async def handle_call_stack(data: dict, ctx: ConnectionContext, *, broadcast_game_state, **kw) -> None:
    if not ctx.current_room or not parse_message(CallStackMessage, data):
        return

    async with ctx.current_room.game_lock:
        if ctx.current_room.game.call_stack(ctx.player_id):
            await broadcast_game_state(ctx.current_room)


async def handle_execute_stack(data: dict, ctx: ConnectionContext, *, broadcast_game_state, **kw) -> None:
    msg = parse_message(ExecuteStackMessage, data)
    if not ctx.current_room or not msg:
        return

    async with ctx.current_room.game_lock:
        if ctx.current_room.game.execute_stack(
            ctx.player_id,
            msg.target_player_id,
            msg.hand_index,
            msg.offensive_give_index,
        ):
            await broadcast_game_state(ctx.current_room)


# ---------------------------------------------------------------------------
# Ability handlers
# ---------------------------------------------------------------------------

async def handle_play_ability_target(data: dict, ctx: ConnectionContext, *, broadcast_game_state, **kw) -> None:
    msg = parse_message(PlayAbilityTargetMessage, data)
    if not ctx.current_room or not msg:
        return

    room = ctx.current_room
    target = msg.target_data
    async with room.game_lock:
        if not room.game.play_ability_target(
            ctx.player_id,
            msg.ability_type,
            my_index=target.my_index,
            opponent_id=target.opponent_id,
            opp_index=target.opp_index,
        ):
            return

        for peek in room.game.drain_peeks():
            schedule_peek_expiry(room, peek, broadcast_game_state=broadcast_game_state, **kw)
        await broadcast_game_state(room)


async def handle_jack_respond(data: dict, ctx: ConnectionContext, *, broadcast_game_state, **kw) -> None:
    msg = parse_message(JackRespondMessage, data)
    if not ctx.current_room or not msg:
        return

    async with ctx.current_room.game_lock:
        if ctx.current_room.game.jack_respond(ctx.player_id, msg.my_index):
            await broadcast_game_state(ctx.current_room)


# ---------------------------------------------------------------------------
# Replay / disconnect
# ---------------------------------------------------------------------------

async def handle_play_again(data: dict, ctx: ConnectionContext, *, broadcast_game_state, **kw) -> None:
    if not ctx.current_room or not parse_message(PlayAgainMessage, data):
        return

    room = ctx.current_room
    async with room.game_lock:
        if room.game.play_again(ctx.player_id):
            room.cancel_timers()
            schedule_memorization_end(room, broadcast_game_state=broadcast_game_state, **kw)
            await broadcast_game_state(room)


async def handle_player_disconnect(ctx: ConnectionContext, *, broadcast_game_state, **kw) -> None:
    """
    Detach a closed connection from its room.

    The seat and the game are left as they are; the other player is told.
    """
    room = ctx.current_room
    if not room:
        return

    async with room.game_lock:
        connection = room.detach(ctx.player_id)
        if connection:
            await room.broadcast(notification(f"{connection.name} disconnected").to_message())
    ctx.current_room = None


# ---------------------------------------------------------------------------
# Handler dispatch table
# ---------------------------------------------------------------------------

HANDLERS = {
    "join_game": handle_join_game,
    "player_ready": handle_player_ready,
    "draw_deck": handle_draw_deck,
    "draw_discard": handle_draw_discard,
    "swap_drawn_card": handle_swap_drawn_card,
    "discard_drawn_card": handle_discard_drawn_card,
    "call_stack": handle_call_stack,
    "execute_stack": handle_execute_stack,
    "play_ability_target": handle_play_ability_target,
    "jack_respond": handle_jack_respond,
    "call_it": handle_call_it,
    "play_again": handle_play_again,
}
