"""Models package for the card game server."""

from .events import EventType, GameEvent, NotificationType
from .messages import (
    ActionMessage,
    JoinGameMessage,
    DrawDiscardMessage,
    SwapDrawnCardMessage,
    ExecuteStackMessage,
    PlayAbilityTargetMessage,
    JackRespondMessage,
)

__all__ = [
    "EventType",
    "GameEvent",
    "NotificationType",
    "ActionMessage",
    "JoinGameMessage",
    "DrawDiscardMessage",
    "SwapDrawnCardMessage",
    "ExecuteStackMessage",
    "PlayAbilityTargetMessage",
    "JackRespondMessage",
]
