"""
Per-player views of a game.

project_state() builds the snapshot one viewer receives. Face-down cards
the viewer is not entitled to see keep their slot position but lose their
identity, so the client can still lay out the table without learning
anything it should not. The result is rebuilt on every call and never
shared between viewers: the same card can be hidden from one player while
revealed to the other.
"""

from typing import Optional

from constants import HIDDEN_VALUE, PRIVATE_SETUP_SLOTS
from game import Card, Game, GameStatus


def hidden_card(card_id: str) -> dict:
    """The sentinel sent in place of a card the viewer may not see."""
    return {"id": card_id, "suit": HIDDEN_VALUE, "rank": HIDDEN_VALUE, "face_up": False}


def can_see(game: Game, card: Card, owner_id: str, index: int, viewer_id: Optional[str]) -> bool:
    """
    Whether a viewer may see a card sitting in someone's hand.

    Args:
        game: The game the card belongs to.
        card: The card in question.
        owner_id: ID of the player holding it.
        index: Slot of the card in the owner's hand.
        viewer_id: ID of the player receiving the snapshot.
    """
    if card.face_up or game.status == GameStatus.FINISHED:
        return True
    is_owner = owner_id == viewer_id
    if game.status == GameStatus.PHASE1 and is_owner and index in PRIVATE_SETUP_SLOTS:
        return True
    if card.known_to_owner and is_owner:
        return True
    if card.known_to_opponent and not is_owner and viewer_id is not None:
        return True
    return False


def project_hand(game: Game, owner_id: str, viewer_id: Optional[str]) -> list[Optional[dict]]:
    hand = []
    for index, card in enumerate(game.players[owner_id].hand):
        if card is None:
            hand.append(None)
        elif can_see(game, card, owner_id, index, viewer_id):
            hand.append(card.to_dict())
        else:
            hand.append(hidden_card(f"hidden_{index}"))
    return hand


def project_drawn_card(game: Game, viewer_id: Optional[str]) -> Optional[dict]:
    card = game.drawn_card
    if card is None:
        return None
    if game.status == GameStatus.FINISHED or game.current_player_id() == viewer_id:
        return card.to_dict()
    return hidden_card("hidden_drawn")


def project_state(game: Game, viewer_id: Optional[str]) -> dict:
    """
    Build the snapshot of a game for one viewer.

    Args:
        game: The game to project. It is only read, never modified.
        viewer_id: The player who will receive this snapshot.

    Returns:
        Dict ready for JSON serialization.
    """
    players = {}
    for pid in game.player_order:
        player = game.players[pid]
        players[pid] = {
            "id": player.id,
            "seat": player.seat,
            "name": player.name,
            "hand": project_hand(game, pid, viewer_id),
            "score": player.score,
            "ready": player.ready,
            "is_final_turn": player.is_final_turn,
        }

    ability = game.active_ability

    return {
        "status": game.status.value,
        "room_code": game.room_code,
        "you": viewer_id,
        "players": players,
        "player_order": list(game.player_order),
        "turn_index": game.turn_index,
        "current_player_id": game.current_player_id(),
        "deck_count": game.deck.cards_remaining() if game.deck else 0,
        "discard_pile": [card.to_dict() for card in game.discard_pile],
        "drawn_card": project_drawn_card(game, viewer_id),
        "active_ability": ability.to_dict() if ability else None,
        "stack_window": game.stack_window.to_dict(),
        "end_triggered_by": game.end_triggered_by,
    }
