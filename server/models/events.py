"""
Outbound event definitions for the card game server.

Game operations never touch sockets. Anything a client should hear about
besides the state snapshot (notifications, card movements, private
reveals) is recorded as a GameEvent on the game's outbox and delivered by
the room after the action has been fully applied.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union


class EventType(str, Enum):
    """All outbound message types besides the state snapshot."""

    GAME_NOTIFICATION = "game_notification"
    CARD_ANIMATION = "card_animation"
    ABILITY_REVEAL = "ability_reveal"
    STACK_REVEAL = "stack_reveal"


class NotificationType(str, Enum):
    """Severity hint for game_notification (sent as the payload "type"), used by the client for styling."""

    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


# A card movement endpoint: "deck", "discard", "drawn" or a hand slot
Location = Union[str, dict]


def slot(player_id: str, index: int) -> dict:
    """Build a hand-slot endpoint for a card movement."""
    return {"player": player_id, "index": index}


@dataclass
class GameEvent:
    """
    A presentation event produced by a game action.

    Attributes:
        event_type: The type of event (from EventType enum).
        data: Message payload, sent under the "data" key.
        recipients: Player IDs that should receive it (None = whole room).
        sequence_num: Monotonically increasing number within one game.
    """

    event_type: EventType
    data: dict = field(default_factory=dict)
    recipients: Optional[list[str]] = None
    sequence_num: int = 0

    def is_for(self, player_id: str) -> bool:
        """Check whether a player should receive this event."""
        return self.recipients is None or player_id in self.recipients

    def to_message(self) -> dict:
        """Build the WebSocket message for this event."""
        return {"type": self.event_type.value, "data": self.data}


# =============================================================================
# Event Factory Functions
# =============================================================================


def notification(
    message: str,
    kind: NotificationType = NotificationType.INFO,
    recipients: Optional[list[str]] = None,
) -> GameEvent:
    """Create a human-readable notification for the room or some players."""
    return GameEvent(
        event_type=EventType.GAME_NOTIFICATION,
        data={"message": message, "type": kind.value},
        recipients=recipients,
    )


def card_animation(movements: list[tuple[Location, Location]]) -> GameEvent:
    """
    Create a card_animation event.

    Movements describe where cards came from for the client's animations.
    They are derived from the action and never authoritative.
    """
    return GameEvent(
        event_type=EventType.CARD_ANIMATION,
        data={"movements": [{"from": src, "to": dst} for src, dst in movements]},
    )


def ability_reveal(card: dict, index: int, owner_id: str, viewer_id: str) -> GameEvent:
    """Create a private reveal of one hand card for the 8 / 6 abilities."""
    return GameEvent(
        event_type=EventType.ABILITY_REVEAL,
        data={"card": card, "index": index, "player": owner_id},
        recipients=[viewer_id],
    )


def stack_reveal(card: dict, viewer_id: str) -> GameEvent:
    """Create a private reveal of the card a failed stack picked."""
    return GameEvent(
        event_type=EventType.STACK_REVEAL,
        data={"card": card},
        recipients=[viewer_id],
    )

