"""
Game logic for the two-player stacking memory game.

This module implements the authoritative game state machine: the 54-card
deck, dealing, turn flow, the four ability cards, the real-time stack
interrupt, end-game detection and scoring.

Rules Summary:
    - Each player holds 4 face-down cards; lowest total wins
    - After the deal, each player privately sees their bottom two cards
      for a short memorization window
    - On your turn: draw from the deck (then swap or discard), or take the
      top discard straight into your hand
    - Discarding a K, J, 8 or 6 triggers that card's ability
    - Anyone may call STACK at any time to throw a card matching the top
      discard; a wrong guess costs a blind penalty card
    - A player may "call it" on their turn; the round ends when play
      comes back around to them

Hand Layout:
    [0] [1]   <- top row
    [2] [3]   <- bottom row (seen during memorization)

    Penalty cards from failed stacks are appended after slot 3.
"""

import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from constants import (
    ABILITY_LABELS,
    ABILITY_RANKS,
    DEFAULT_CARD_VALUES,
    HAND_SIZE,
    MAX_PLAYERS,
    PRIVATE_SETUP_SLOTS,
    get_card_value_for_rank,
)
from models.events import (
    GameEvent,
    NotificationType,
    ability_reveal,
    card_animation,
    notification,
    slot,
    stack_reveal,
)

logger = logging.getLogger(__name__)


class Suit(Enum):
    """Card suits. Jokers carry no suit."""

    HEARTS = "hearts"
    DIAMONDS = "diamonds"
    CLUBS = "clubs"
    SPADES = "spades"
    NONE = "none"


class Rank(Enum):
    """
    Card ranks with their display values.

    Scoring:
        - Joker: -1 point
        - Ace: 1 point
        - 2-10: Face value
        - Jack, King: 10 points
        - Queen: 10 points, except red Queens which are worth 0
    """

    ACE = "A"
    TWO = "2"
    THREE = "3"
    FOUR = "4"
    FIVE = "5"
    SIX = "6"
    SEVEN = "7"
    EIGHT = "8"
    NINE = "9"
    TEN = "10"
    JACK = "J"
    QUEEN = "Q"
    KING = "K"
    JOKER = "Joker"


# Map Rank enum to point values (derived from constants.py as single source of truth)
RANK_VALUES: dict[Rank, int] = {rank: DEFAULT_CARD_VALUES[rank.value] for rank in Rank}

STANDARD_SUITS = (Suit.HEARTS, Suit.DIAMONDS, Suit.CLUBS, Suit.SPADES)


def get_card_value(card: "Card") -> int:
    """
    Get point value for a card.

    Total over every card in the deck: the suit only matters for Queens.
    """
    return get_card_value_for_rank(card.rank.value, card.suit.value)


def calculate_score(hand: list[Optional["Card"]]) -> int:
    """Sum of card values over the non-empty slots of a hand."""
    return sum(get_card_value(card) for card in hand if card is not None)


@dataclass(eq=False)
class Card:
    """
    A physical playing card.

    Cards are never copied: the same object moves between the deck, hands,
    the discard pile and the drawn-card slot, so identity comparisons
    (``is``) are meaningful.

    Attributes:
        id: Unique identity within one deck (e.g. "Q_hearts", "Joker_1").
        suit: The card's suit (Suit.NONE for jokers).
        rank: The card's rank.
        face_up: Whether the card is visible to everyone.
        known_to_owner: Privately visible to the player holding it.
        known_to_opponent: Privately visible to the other player (8 peek).
        peek_token: Token of the most recent private reveal.
    """

    id: str
    suit: Suit
    rank: Rank
    face_up: bool = False
    known_to_owner: bool = False
    known_to_opponent: bool = False
    peek_token: int = 0

    @property
    def ability(self) -> Optional[str]:
        """The ability this card grants when discarded, if any."""
        return self.rank.value if self.rank.value in ABILITY_RANKS else None

    def hide(self) -> None:
        """Turn the card face-down and forget any private reveal."""
        self.face_up = False
        self.known_to_owner = False
        self.known_to_opponent = False

    def reveal(self) -> None:
        """Turn the card face-up for everyone."""
        self.face_up = True
        self.known_to_owner = False
        self.known_to_opponent = False

    def to_dict(self) -> dict:
        """Full card data (server-side view; use visibility.py for clients)."""
        return {
            "id": self.id,
            "suit": self.suit.value,
            "rank": self.rank.value,
            "face_up": self.face_up,
        }


def build_cards() -> list[Card]:
    """Build the 54 cards of one deck: 13 ranks x 4 suits plus 2 jokers."""
    cards = [
        Card(id=f"{rank.value}_{suit.value}", suit=suit, rank=rank)
        for suit in STANDARD_SUITS
        for rank in Rank
        if rank != Rank.JOKER
    ]
    cards.append(Card(id="Joker_1", suit=Suit.NONE, rank=Rank.JOKER))
    cards.append(Card(id="Joker_2", suit=Suit.NONE, rank=Rank.JOKER))
    return cards


class Deck:
    """
    The draw pile. The end of ``cards`` is the top of the deck.

    The deck can be initialized with a seed for a reproducible shuffle.
    """

    def __init__(self, seed: Optional[int] = None, shuffle: bool = True) -> None:
        self.cards: list[Card] = build_cards()
        self.seed: int = seed if seed is not None else random.randint(0, 2**31 - 1)
        if shuffle:
            self.shuffle()

    def shuffle(self) -> None:
        """Uniform random permutation (random.shuffle is Fisher-Yates)."""
        random.Random(self.seed).shuffle(self.cards)

    def draw(self) -> Optional[Card]:
        """
        Draw the top card from the deck.

        Returns:
            The drawn Card, or None if deck is empty.
        """
        if self.cards:
            return self.cards.pop()
        return None

    def cards_remaining(self) -> int:
        """Return the number of cards left in the deck."""
        return len(self.cards)


@dataclass
class Player:
    """
    A seated player.

    Attributes:
        id: Connection ID of the player.
        name: Display name.
        seat: 1 or 2, in join order.
        hand: Slots 0-3 plus any penalty cards; None marks an empty slot.
        score: Hand value, filled in when the game finishes.
        ready: Whether the player pressed ready in the lobby.
        is_final_turn: Set once when the hand first becomes all face-up/empty.
    """

    id: str
    name: str
    seat: int
    hand: list[Optional[Card]] = field(default_factory=lambda: [None] * HAND_SIZE)
    score: int = 0
    ready: bool = False
    is_final_turn: bool = False

    def cards(self) -> list[Card]:
        """Cards currently held, skipping empty slots."""
        return [card for card in self.hand if card is not None]

    def card_count(self) -> int:
        return len(self.cards())

    def is_empty(self) -> bool:
        return all(card is None for card in self.hand)

    def all_face_up(self) -> bool:
        """True when every held card is revealed (or nothing is held)."""
        return all(card is None or card.face_up for card in self.hand)

    def has_slot(self, index: Optional[int]) -> bool:
        return index is not None and 0 <= index < len(self.hand)

    def card_at(self, index: Optional[int]) -> Optional[Card]:
        """The card in a slot, or None for an empty or out-of-range slot."""
        if not self.has_slot(index):
            return None
        return self.hand[index]

    def calculate_score(self) -> int:
        self.score = calculate_score(self.hand)
        return self.score

    def reset_for_deal(self) -> None:
        self.hand = [None] * HAND_SIZE
        self.score = 0
        self.is_final_turn = False


class GameStatus(Enum):
    """
    Lifecycle of a room's game.

    Flow: LOBBY -> PHASE1 -> PLAYING -> FINISHED, then FINISHED -> PHASE1
    on replay.
    """

    LOBBY = "lobby"        # Waiting for two ready players
    PHASE1 = "phase1"      # Memorization window after the deal
    PLAYING = "playing"    # Normal turns
    FINISHED = "finished"  # Scored; only play_again is accepted


class JackPhase(str, Enum):
    SELF_CHOOSE = "self_choose"
    OPPONENT_CHOOSE = "opponent_choose"


@dataclass
class ActiveAbility:
    """
    An ability waiting for its targets.

    Attributes:
        type: Rank of the card that granted it ("K", "J", "8" or "6").
        player: ID of the player who holds the ability.
        phase: Jack only - whose choice is outstanding.
        jack_index: Jack only - the slot the holder picked in phase 1.
    """

    type: str
    player: str
    phase: Optional[JackPhase] = None
    jack_index: Optional[int] = None

    @classmethod
    def grant(cls, card: Card, player_id: str) -> "ActiveAbility":
        phase = JackPhase.SELF_CHOOSE if card.rank == Rank.JACK else None
        return cls(type=card.rank.value, player=player_id, phase=phase)

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "player": self.player,
            "phase": self.phase.value if self.phase else None,
        }


# -----------------------------------------------------------------------------
# Engine modes
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class Idle:
    """No draw pending and no ability outstanding."""


@dataclass(frozen=True)
class AwaitingPlacement:
    """The active player holds a drawn card and must swap or discard it."""

    card: Card


@dataclass(frozen=True)
class AbilityPending:
    """
    An ability is outstanding.

    suspended_draw holds the active player's drawn card when a stack handed
    an ability to someone mid-draw; placement resumes once it resolves.
    """

    ability: ActiveAbility
    suspended_draw: Optional[Card] = None


EngineMode = Union[Idle, AwaitingPlacement, AbilityPending]


@dataclass
class StackWindow:
    """The open stack call, if any. At most one per game."""

    active: bool = False
    caller: Optional[str] = None
    target_value: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "active": self.active,
            "caller": self.caller,
            "target_value": self.target_value,
        }


@dataclass(frozen=True)
class Peek:
    """A temporary private reveal that must be turned off later."""

    card: Card
    flag: str  # "known_to_owner" or "known_to_opponent"
    deal_id: int
    token: int


@dataclass
class Game:
    """
    Main game state and logic controller for one room.

    Every public action validates its guards and returns False/None when
    the action is illegal in the current state, leaving the game untouched.
    Presentation side effects are queued on the outbox (see drain_events).

    Attributes:
        room_code: Code of the owning room (for logs and snapshots).
        status: Current lifecycle status.
        players: Seated players by ID.
        player_order: Player IDs in seat order.
        turn_index: Index into player_order of the active player.
        deck: The draw pile (None before the first deal).
        discard_pile: Face-up discards; the end of the list is the top.
        mode: Turn-level engine mode (Idle / AwaitingPlacement / AbilityPending).
        stack_window: The open stack call, if any.
        end_triggered_by: ID of the player who called it.
        deal_id: Incremented on each deal; deferred callbacks compare it.
    """

    room_code: str = ""
    status: GameStatus = GameStatus.LOBBY
    players: dict[str, Player] = field(default_factory=dict)
    player_order: list[str] = field(default_factory=list)
    turn_index: int = 0
    deck: Optional[Deck] = None
    discard_pile: list[Card] = field(default_factory=list)
    mode: EngineMode = field(default_factory=Idle)
    stack_window: StackWindow = field(default_factory=StackWindow)
    end_triggered_by: Optional[str] = None
    deal_id: int = 0

    _outbox: list[GameEvent] = field(default_factory=list, repr=False, compare=False)
    _new_peeks: list[Peek] = field(default_factory=list, repr=False, compare=False)
    _sequence_num: int = field(default=0, repr=False, compare=False)
    _peek_seq: int = field(default=0, repr=False, compare=False)

    # -------------------------------------------------------------------------
    # Mode projections
    # -------------------------------------------------------------------------

    @property
    def drawn_card(self) -> Optional[Card]:
        """The card held by the active player, not yet placed."""
        if isinstance(self.mode, AwaitingPlacement):
            return self.mode.card
        if isinstance(self.mode, AbilityPending):
            return self.mode.suspended_draw
        return None

    @property
    def active_ability(self) -> Optional[ActiveAbility]:
        if isinstance(self.mode, AbilityPending):
            return self.mode.ability
        return None

    # -------------------------------------------------------------------------
    # Outbox
    # -------------------------------------------------------------------------

    def _emit(self, event: GameEvent) -> None:
        self._sequence_num += 1
        event.sequence_num = self._sequence_num
        self._outbox.append(event)

    def _notify(
        self,
        message: str,
        kind: NotificationType = NotificationType.INFO,
        to: Optional[str] = None,
    ) -> None:
        self._emit(notification(message, kind, recipients=[to] if to else None))

    def drain_events(self) -> list[GameEvent]:
        """Return and clear the queued presentation events, oldest first."""
        events, self._outbox = self._outbox, []
        return events

    def drain_peeks(self) -> list[Peek]:
        """Return and clear the reveals started since the last call."""
        peeks, self._new_peeks = self._new_peeks, []
        return peeks

    # -------------------------------------------------------------------------
    # Player Management
    # -------------------------------------------------------------------------

    def is_full(self) -> bool:
        return len(self.player_order) >= MAX_PLAYERS

    def add_player(self, player_id: str, name: str) -> Optional[Player]:
        """
        Seat a player in the lobby.

        Returns:
            The new Player, the existing one if already seated, or None
            if the room is full or the game has started.
        """
        if player_id in self.players:
            return self.players[player_id]
        if self.status != GameStatus.LOBBY or self.is_full():
            return None

        player = Player(id=player_id, name=name, seat=len(self.player_order) + 1)
        self.players[player_id] = player
        self.player_order.append(player_id)
        return player

    def get_player(self, player_id: Optional[str]) -> Optional[Player]:
        if player_id is None:
            return None
        return self.players.get(player_id)

    def player_name(self, player_id: Optional[str]) -> str:
        player = self.get_player(player_id)
        return player.name if player else "Unknown"

    def opponent_of(self, player_id: str) -> Optional[Player]:
        for pid in self.player_order:
            if pid != player_id:
                return self.players[pid]
        return None

    def current_player_id(self) -> Optional[str]:
        if self.player_order:
            return self.player_order[self.turn_index]
        return None

    def current_player(self) -> Optional[Player]:
        return self.get_player(self.current_player_id())

    def all_cards(self) -> list[Card]:
        """Every card of the current deal, wherever it is."""
        cards = list(self.deck.cards) if self.deck else []
        cards.extend(self.discard_pile)
        for pid in self.player_order:
            cards.extend(self.players[pid].cards())
        if self.drawn_card is not None:
            cards.append(self.drawn_card)
        return cards

    # -------------------------------------------------------------------------
    # Game Lifecycle
    # -------------------------------------------------------------------------

    def mark_ready(self, player_id: str) -> bool:
        """
        Mark a player ready. Deals once both seated players are ready.

        Returns:
            True if anything changed.
        """
        player = self.get_player(player_id)
        if not player or self.status != GameStatus.LOBBY:
            return False

        player.ready = True
        all_ready = self.is_full() and all(self.players[pid].ready for pid in self.player_order)
        if all_ready:
            self.deal()
        return True

    def deal(self, seed: Optional[int] = None) -> None:
        """
        Shuffle a fresh deck, deal 4 cards each and open the memorization window.

        Slots 2 and 3 are privately visible to their owner until
        finish_memorization() runs.
        """
        self.deck = Deck(seed=seed)
        self.discard_pile = []
        self.mode = Idle()
        self.stack_window = StackWindow()
        self.end_triggered_by = None
        self.turn_index = 0
        self.deal_id += 1

        for pid in self.player_order:
            player = self.players[pid]
            player.reset_for_deal()
            player.hand = [self.deck.draw() for _ in range(HAND_SIZE)]
            for index in PRIVATE_SETUP_SLOTS:
                player.hand[index].known_to_owner = True

        self.status = GameStatus.PHASE1
        logger.info(
            f"Room {self.room_code}: dealt (deal {self.deal_id}, seed {self.deck.seed})"
        )

    def finish_memorization(self, deal_id: int) -> bool:
        """
        End the memorization window and start play.

        Args:
            deal_id: The deal the timer was scheduled for.

        Returns:
            False if the timer is stale (another deal, or already playing).
        """
        if deal_id != self.deal_id or self.status != GameStatus.PHASE1:
            return False

        for pid in self.player_order:
            player = self.players[pid]
            for index in PRIVATE_SETUP_SLOTS:
                card = player.card_at(index)
                if card:
                    card.known_to_owner = False

        self.status = GameStatus.PLAYING
        self._notify(f"{self.player_name(self.current_player_id())}'s turn!")
        return True

    def play_again(self, player_id: str) -> bool:
        """Re-deal in place after a finished game, keeping the seats."""
        if self.status != GameStatus.FINISHED or player_id not in self.players:
            return False
        self.deal()
        return True

    # -------------------------------------------------------------------------
    # Turn Actions
    # -------------------------------------------------------------------------

    def _is_turn_of(self, player_id: str) -> bool:
        return self.status == GameStatus.PLAYING and self.current_player_id() == player_id

    def draw_from_deck(self, player_id: str) -> Optional[Card]:
        """
        Draw the top card of the deck into the drawn-card slot.

        Returns:
            The drawn Card, or None if the action is illegal or the deck
            is exhausted.
        """
        if not self._is_turn_of(player_id) or not isinstance(self.mode, Idle):
            return None

        card = self.deck.draw()
        if card is None:
            return None
        self.mode = AwaitingPlacement(card)
        return card

    def draw_from_discard(self, player_id: str, hand_index: int) -> bool:
        """
        Take the top discard straight into a hand slot.

        The displaced card goes to the discard pile and may trigger an
        ability of its own.
        """
        if not self._is_turn_of(player_id) or not isinstance(self.mode, Idle):
            return False
        player = self.players[player_id]
        if not self.discard_pile or not player.has_slot(hand_index):
            return False

        taken = self.discard_pile.pop()
        old_card = player.hand[hand_index]
        self._emit(card_animation([
            ("discard", slot(player_id, hand_index)),
            (slot(player_id, hand_index), "discard"),
        ]))

        taken.hide()
        player.hand[hand_index] = taken
        self._settle_discard(old_card, player_id)
        return True

    def swap_drawn_card(self, player_id: str, hand_index: int) -> bool:
        """Put the drawn card into a hand slot; the old card is discarded."""
        if not self._is_turn_of(player_id) or not isinstance(self.mode, AwaitingPlacement):
            return False
        player = self.players[player_id]
        if not player.has_slot(hand_index):
            return False

        drawn = self.mode.card
        old_card = player.hand[hand_index]
        self._emit(card_animation([
            ("drawn", slot(player_id, hand_index)),
            (slot(player_id, hand_index), "discard"),
        ]))

        drawn.hide()
        player.hand[hand_index] = drawn
        self.mode = Idle()
        self._settle_discard(old_card, player_id)
        return True

    def discard_drawn_card(self, player_id: str) -> bool:
        """Discard the drawn card without touching the hand."""
        if not self._is_turn_of(player_id) or not isinstance(self.mode, AwaitingPlacement):
            return False

        drawn = self.mode.card
        self.mode = Idle()
        self._emit(card_animation([("drawn", "discard")]))
        self._settle_discard(drawn, player_id)
        return True

    def call_it(self, player_id: str) -> bool:
        """
        Declare the final round. Play continues until it is the caller's
        turn again, then the game is scored.
        """
        if not self._is_turn_of(player_id) or not isinstance(self.mode, Idle):
            return False
        if self.stack_window.active or self.end_triggered_by is not None:
            return False

        self.end_triggered_by = player_id
        self._notify(f"{self.player_name(player_id)} CALLED IT! Final round!")
        self._advance_turn()
        return True

    # -------------------------------------------------------------------------
    # Stacking
    # -------------------------------------------------------------------------

    def call_stack(self, player_id: str) -> bool:
        """Open the stack window on the current top discard (either player)."""
        if self.status != GameStatus.PLAYING or player_id not in self.players:
            return False
        if not self.discard_pile or self.stack_window.active:
            return False

        self.stack_window = StackWindow(
            active=True,
            caller=player_id,
            target_value=self.discard_top().rank.value,
        )
        self._notify(f"{self.player_name(player_id)} called STACK!")
        return True

    def execute_stack(
        self,
        player_id: str,
        target_player_id: str,
        hand_index: int,
        offensive_give_index: Optional[int] = None,
    ) -> bool:
        """
        Resolve the caller's stack attempt.

        A match moves the chosen card to the discard pile (and, when the
        target is the opponent, fills the hole with one of the caller's
        cards). A mismatch costs the caller a blind penalty card. Either
        way the window closes.
        """
        window = self.stack_window
        if self.status != GameStatus.PLAYING or not window.active or window.caller != player_id:
            return False
        caller = self.players[player_id]
        target = self.get_player(target_player_id)
        if target is None or not target.has_slot(hand_index):
            return False
        offensive = target is not caller
        if offensive and offensive_give_index is not None and not caller.has_slot(offensive_give_index):
            return False

        chosen = target.hand[hand_index]
        matched = chosen is not None and chosen.rank.value == window.target_value
        inherited: Optional[ActiveAbility] = None
        suspended = self.drawn_card

        if matched:
            movements = [(slot(target.id, hand_index), "discard")]
            if offensive and offensive_give_index is not None:
                movements.append((slot(player_id, offensive_give_index), slot(target.id, hand_index)))
            self._emit(card_animation(movements))

            target.hand[hand_index] = None
            chosen.reveal()
            self.discard_pile.append(chosen)

            if offensive and offensive_give_index is not None:
                given = caller.hand[offensive_give_index]
                if given is not None:
                    caller.hand[offensive_give_index] = None
                    given.hide()
                    target.hand[hand_index] = given

            # The stack interrupts any outstanding ability
            if chosen.ability:
                usable = chosen.rank == Rank.EIGHT or caller.card_count() > 0
                if usable:
                    inherited = ActiveAbility.grant(chosen, player_id)
                else:
                    logger.debug(
                        f"Room {self.room_code}: {player_id} cannot use stacked {chosen.rank.value}"
                    )

            if inherited:
                self.mode = AbilityPending(inherited, suspended_draw=suspended)
            elif suspended is not None:
                self.mode = AwaitingPlacement(suspended)
            else:
                self.mode = Idle()

            self._notify(
                f"Stack successful! {caller.name} matched the {chosen.rank.value}.",
                NotificationType.SUCCESS,
            )
        else:
            penalty = self.deck.draw() if self.deck else None
            if penalty is not None:
                penalty.hide()
                caller.hand.append(penalty)
                self._emit(card_animation([("deck", slot(player_id, len(caller.hand) - 1))]))

            if chosen is not None:
                self._emit(stack_reveal(chosen.to_dict(), player_id))
            self._notify("Stack failed! You draw a penalty card.", NotificationType.ERROR, to=player_id)
            opponent = self.opponent_of(player_id)
            if opponent:
                self._notify(f"{caller.name}'s stack failed!", to=opponent.id)

        self.stack_window = StackWindow()

        if matched:
            if any(self.players[pid].is_empty() for pid in self.player_order):
                self._end_game()
            elif inherited is None and suspended is None:
                self._check_end_and_advance()
        return True

    # -------------------------------------------------------------------------
    # Abilities
    # -------------------------------------------------------------------------

    def play_ability_target(
        self,
        player_id: str,
        ability_type: str,
        my_index: Optional[int] = None,
        opponent_id: Optional[str] = None,
        opp_index: Optional[int] = None,
    ) -> bool:
        """
        Apply the holder's targets for the pending ability.

        K swaps one own card with one opponent card, J records the
        holder's card and hands the choice to the opponent, 8 peeks at an
        opponent card and 6 peeks at an own card.
        """
        ability = self.active_ability
        if self.status != GameStatus.PLAYING or ability is None:
            return False
        if ability.player != player_id or ability.type != ability_type:
            return False

        holder = self.players[player_id]
        opponent = self.opponent_of(player_id)
        if opponent_id is not None and (opponent is None or opponent_id != opponent.id):
            return False

        if ability.type == Rank.KING.value:
            mine = holder.card_at(my_index)
            theirs = opponent.card_at(opp_index) if opponent else None
            if mine is None or theirs is None:
                return False
            self._emit(card_animation([
                (slot(player_id, my_index), slot(opponent.id, opp_index)),
                (slot(opponent.id, opp_index), slot(player_id, my_index)),
            ]))
            self._swap_slots(holder, my_index, opponent, opp_index)
            self._notify("Cards swapped!")

        elif ability.type == Rank.JACK.value:
            if ability.phase != JackPhase.SELF_CHOOSE or holder.card_at(my_index) is None:
                return False
            if opponent is None or opponent.is_empty():
                return False
            ability.phase = JackPhase.OPPONENT_CHOOSE
            ability.jack_index = my_index
            self._notify(
                f"{holder.name} played a Jack! Choose a card to give up.",
                to=opponent.id,
            )
            return True

        elif ability.type == Rank.EIGHT.value:
            card = opponent.card_at(opp_index) if opponent else None
            if card is None or card.face_up:
                return False
            self._start_peek(card, "known_to_opponent")
            self._emit(ability_reveal(card.to_dict(), opp_index, opponent.id, player_id))
            self._notify(f"{holder.name} peeked at one of your cards!", to=opponent.id)

        elif ability.type == Rank.SIX.value:
            card = holder.card_at(my_index)
            if card is None or card.face_up:
                return False
            self._start_peek(card, "known_to_owner")
            self._emit(ability_reveal(card.to_dict(), my_index, player_id, player_id))

        self._complete_ability()
        return True

    def jack_respond(self, player_id: str, my_index: int) -> bool:
        """The Jack holder's opponent gives up one of their cards in a swap."""
        ability = self.active_ability
        if self.status != GameStatus.PLAYING or ability is None:
            return False
        if ability.type != Rank.JACK.value or ability.phase != JackPhase.OPPONENT_CHOOSE:
            return False
        if player_id == ability.player or player_id not in self.players:
            return False

        jack_holder = self.players[ability.player]
        responder = self.players[player_id]
        if responder.card_at(my_index) is None or jack_holder.card_at(ability.jack_index) is None:
            return False

        self._emit(card_animation([
            (slot(jack_holder.id, ability.jack_index), slot(player_id, my_index)),
            (slot(player_id, my_index), slot(jack_holder.id, ability.jack_index)),
        ]))
        self._swap_slots(jack_holder, ability.jack_index, responder, my_index)
        self._notify("Cards swapped!")
        self._complete_ability()
        return True

    def _start_peek(self, card: Card, flag: str) -> None:
        self._peek_seq += 1
        card.peek_token = self._peek_seq
        setattr(card, flag, True)
        self._new_peeks.append(Peek(card, flag, self.deal_id, self._peek_seq))

    def expire_peek(self, peek: Peek) -> bool:
        """
        Turn off a temporary reveal.

        Returns:
            False if the peek belongs to an earlier deal, was superseded by
            a newer reveal of the same card, or already ended.
        """
        if peek.deal_id != self.deal_id or peek.card.peek_token != peek.token:
            return False
        if not getattr(peek.card, peek.flag):
            return False
        setattr(peek.card, peek.flag, False)
        return True

    def _swap_slots(self, a: Player, a_index: int, b: Player, b_index: int) -> None:
        card_a, card_b = a.hand[a_index], b.hand[b_index]
        a.hand[a_index], b.hand[b_index] = card_b, card_a
        for card in (card_a, card_b):
            if card is not None:
                card.hide()

    def _complete_ability(self) -> None:
        suspended = self.drawn_card
        if suspended is not None:
            self.mode = AwaitingPlacement(suspended)
            return
        self.mode = Idle()
        self._check_end_and_advance()

    # -------------------------------------------------------------------------
    # Turn & Game Flow (Internal)
    # -------------------------------------------------------------------------

    def _settle_discard(self, card: Optional[Card], player_id: str) -> None:
        """
        Land a card face-up on the discard pile and continue the turn.

        Ability cards suspend the turn until their ability resolves.
        """
        if card is None:
            self._check_end_and_advance()
            return

        card.reveal()
        self.discard_pile.append(card)

        if card.ability:
            self.mode = AbilityPending(ActiveAbility.grant(card, player_id))
            self._notify(f"{self.player_name(player_id)} played a {ABILITY_LABELS[card.ability]}!")
            return

        self._check_end_and_advance()

    def _check_end_and_advance(self) -> None:
        """
        End the game the first time the active player's hand is all
        face-up (or empty); otherwise pass the turn.
        """
        player = self.current_player()
        if player and player.all_face_up() and not player.is_final_turn:
            player.is_final_turn = True
            self._end_game()
            return

        self._advance_turn()

    def _advance_turn(self) -> None:
        self.turn_index = (self.turn_index + 1) % len(self.player_order)
        self.mode = Idle()

        next_id = self.player_order[self.turn_index]
        if self.end_triggered_by == next_id:
            self._end_game()
            return

        self._notify(f"{self.player_name(next_id)}'s turn")

    def _end_game(self) -> None:
        """Reveal every hand and score it."""
        self.status = GameStatus.FINISHED
        self.stack_window = StackWindow()
        # A card still in hand stays visible in the drawn slot
        held = self.drawn_card
        self.mode = AwaitingPlacement(held) if held is not None else Idle()

        for pid in self.player_order:
            player = self.players[pid]
            for card in player.cards():
                card.face_up = True
            player.calculate_score()

        scores = {self.players[pid].name: self.players[pid].score for pid in self.player_order}
        logger.info(f"Room {self.room_code}: game finished, scores {scores}")

    # -------------------------------------------------------------------------
    # State Queries
    # -------------------------------------------------------------------------

    def discard_top(self) -> Optional[Card]:
        """Get the top card of the discard pile (if any)."""
        if self.discard_pile:
            return self.discard_pile[-1]
        return None

    def get_state(self, for_player_id: Optional[str]) -> dict:
        """
        Get the redacted game state for a specific player.

        Args:
            for_player_id: The player who will receive this state.

        Returns:
            Dict suitable for JSON serialization (see visibility.project_state).
        """
        # Import here to avoid circular dependency
        from visibility import project_state

        return project_state(self, for_player_id)
