"""
Tests for the four ability cards.

- King: swap one own card with one opponent card
- Jack: holder picks a card, then the opponent picks the card to trade
- 8: peek at an opponent card until the peek expires
- 6: peek at an own face-down card until the peek expires

Run with: pytest test_abilities.py -v
"""

import pytest

from game import (
    AbilityPending, AwaitingPlacement, Game, GameStatus, Idle, JackPhase, Rank,
)
from models.events import EventType


# =============================================================================
# Helpers
# =============================================================================

def make_game():
    game = Game(room_code="TEST")
    game.add_player("p1", "Alice")
    game.add_player("p2", "Bob")
    game.mark_ready("p1")
    game.mark_ready("p2")
    game.finish_memorization(game.deal_id)
    set_hand(game, "p1", [Rank.TWO, Rank.THREE, Rank.FOUR, Rank.FIVE])
    set_hand(game, "p2", [Rank.TWO, Rank.THREE, Rank.FOUR, Rank.FIVE])
    game.drain_events()
    return game


def take(game, rank):
    for card in game.deck.cards:
        if card.rank == rank:
            game.deck.cards.remove(card)
            return card
    raise AssertionError(f"{rank} not in deck")


def set_hand(game, player_id, ranks):
    player = game.players[player_id]
    game.deck.cards.extend(player.cards())
    player.hand = [take(game, rank) for rank in ranks]


def put_on_discard(game, rank):
    card = take(game, rank)
    card.face_up = True
    game.discard_pile.append(card)
    return card


def trigger(game, player_id, rank):
    """Draw a card of `rank` and discard it to start its ability."""
    game.deck.cards.append(take(game, rank))
    game.draw_from_deck(player_id)
    game.discard_drawn_card(player_id)
    game.drain_events()


def assert_conserved(game):
    ids = [card.id for card in game.all_cards()]
    assert len(ids) == 54
    assert len(set(ids)) == 54


# =============================================================================
# King
# =============================================================================

class TestKing:

    def test_swap_with_opponent(self):
        game = make_game()
        trigger(game, "p1", Rank.KING)
        mine = game.players["p1"].hand[0]
        theirs = game.players["p2"].hand[1]

        assert game.play_ability_target("p1", "K", my_index=0, opponent_id="p2", opp_index=1)
        assert game.players["p1"].hand[0] is theirs
        assert game.players["p2"].hand[1] is mine
        assert game.active_ability is None
        assert game.current_player_id() == "p2"
        assert_conserved(game)

    def test_swapped_cards_become_hidden(self):
        game = make_game()
        trigger(game, "p1", Rank.KING)
        game.players["p1"].hand[0].known_to_owner = True
        game.players["p2"].hand[1].known_to_opponent = True

        game.play_ability_target("p1", "K", my_index=0, opponent_id="p2", opp_index=1)
        for card in (game.players["p1"].hand[0], game.players["p2"].hand[1]):
            assert not card.face_up
            assert not card.known_to_owner
            assert not card.known_to_opponent

    def test_emits_two_movements(self):
        game = make_game()
        trigger(game, "p1", Rank.KING)
        game.play_ability_target("p1", "K", my_index=0, opponent_id="p2", opp_index=1)

        animation = next(e for e in game.drain_events() if e.event_type == EventType.CARD_ANIMATION)
        assert animation.data["movements"] == [
            {"from": {"player": "p1", "index": 0}, "to": {"player": "p2", "index": 1}},
            {"from": {"player": "p2", "index": 1}, "to": {"player": "p1", "index": 0}},
        ]

    def test_empty_target_slot_rejected(self):
        game = make_game()
        trigger(game, "p1", Rank.KING)
        game.deck.cards.append(game.players["p2"].hand[1])
        game.players["p2"].hand[1] = None

        assert not game.play_ability_target("p1", "K", my_index=0, opponent_id="p2", opp_index=1)
        assert game.active_ability.type == "K"

    def test_wrong_opponent_rejected(self):
        game = make_game()
        trigger(game, "p1", Rank.KING)
        assert not game.play_ability_target("p1", "K", my_index=0, opponent_id="ghost", opp_index=1)

    def test_type_must_match(self):
        game = make_game()
        trigger(game, "p1", Rank.KING)
        assert not game.play_ability_target("p1", "8", opponent_id="p2", opp_index=1)
        assert game.active_ability.type == "K"

    def test_only_holder_may_play(self):
        game = make_game()
        trigger(game, "p1", Rank.KING)
        assert not game.play_ability_target("p2", "K", my_index=0, opponent_id="p1", opp_index=1)

    def test_no_ability_pending_rejected(self):
        game = make_game()
        assert not game.play_ability_target("p1", "K", my_index=0, opponent_id="p2", opp_index=1)


class TestAbilityBlocksTurn:

    def test_no_draws_while_pending(self):
        game = make_game()
        put_on_discard(game, Rank.NINE)
        trigger(game, "p1", Rank.KING)

        assert game.draw_from_deck("p1") is None
        assert not game.draw_from_discard("p1", 0)
        assert not game.draw_from_deck("p2")
        assert not game.call_it("p1")
        assert game.turn_index == 0

    def test_stack_call_allowed_while_pending(self):
        game = make_game()
        trigger(game, "p1", Rank.KING)
        assert game.call_stack("p2")


# =============================================================================
# Jack
# =============================================================================

class TestJack:

    def test_two_phase_swap(self):
        game = make_game()
        trigger(game, "p1", Rank.JACK)
        assert game.active_ability.phase == JackPhase.SELF_CHOOSE
        mine = game.players["p1"].hand[2]
        theirs = game.players["p2"].hand[3]

        assert game.play_ability_target("p1", "J", my_index=2)
        assert game.active_ability.phase == JackPhase.OPPONENT_CHOOSE
        assert game.active_ability.jack_index == 2
        assert game.turn_index == 0

        assert game.jack_respond("p2", 3)
        assert game.players["p1"].hand[2] is theirs
        assert game.players["p2"].hand[3] is mine
        assert game.active_ability is None
        assert game.current_player_id() == "p2"
        assert_conserved(game)

    def test_opponent_is_prompted_privately(self):
        game = make_game()
        trigger(game, "p1", Rank.JACK)
        game.play_ability_target("p1", "J", my_index=2)

        prompts = [e for e in game.drain_events() if e.event_type == EventType.GAME_NOTIFICATION]
        assert prompts[0].data["message"] == "Alice played a Jack! Choose a card to give up."
        assert prompts[0].recipients == ["p2"]

    def test_holder_cannot_respond(self):
        game = make_game()
        trigger(game, "p1", Rank.JACK)
        game.play_ability_target("p1", "J", my_index=2)
        assert not game.jack_respond("p1", 0)

    def test_respond_before_choice_rejected(self):
        game = make_game()
        trigger(game, "p1", Rank.JACK)
        assert not game.jack_respond("p2", 0)

    def test_phase_one_only_once(self):
        game = make_game()
        trigger(game, "p1", Rank.JACK)
        game.play_ability_target("p1", "J", my_index=2)
        assert not game.play_ability_target("p1", "J", my_index=0)
        assert game.active_ability.jack_index == 2

    def test_respond_to_empty_slot_rejected(self):
        game = make_game()
        trigger(game, "p1", Rank.JACK)
        game.play_ability_target("p1", "J", my_index=2)
        game.deck.cards.append(game.players["p2"].hand[0])
        game.players["p2"].hand[0] = None

        assert not game.jack_respond("p2", 0)
        assert game.active_ability.phase == JackPhase.OPPONENT_CHOOSE


# =============================================================================
# Peeks (8 and 6)
# =============================================================================

class TestEight:

    def test_peek_visible_to_holder(self):
        game = make_game()
        trigger(game, "p1", Rank.EIGHT)
        target = game.players["p2"].hand[0]

        assert game.play_ability_target("p1", "8", opponent_id="p2", opp_index=0)
        assert target.known_to_opponent
        assert not target.face_up
        assert game.current_player_id() == "p2"

        events = game.drain_events()
        reveal = next(e for e in events if e.event_type == EventType.ABILITY_REVEAL)
        assert reveal.recipients == ["p1"]
        assert reveal.data == {"card": target.to_dict(), "index": 0, "player": "p2"}
        told = [e for e in events if e.data.get("message") == "Alice peeked at one of your cards!"]
        assert told[0].recipients == ["p2"]

    def test_peek_expires(self):
        game = make_game()
        trigger(game, "p1", Rank.EIGHT)
        game.play_ability_target("p1", "8", opponent_id="p2", opp_index=0)
        [peek] = game.drain_peeks()

        assert game.expire_peek(peek)
        assert not game.players["p2"].hand[0].known_to_opponent
        assert not game.expire_peek(peek)

    def test_older_expiry_leaves_newer_peek(self):
        game = make_game()
        trigger(game, "p1", Rank.EIGHT)
        game.play_ability_target("p1", "8", opponent_id="p2", opp_index=0)
        [first] = game.drain_peeks()

        trigger(game, "p2", Rank.SEVEN)
        trigger(game, "p1", Rank.EIGHT)
        assert game.play_ability_target("p1", "8", opponent_id="p2", opp_index=0)
        [second] = game.drain_peeks()
        target = game.players["p2"].hand[0]

        assert not game.expire_peek(first)
        assert target.known_to_opponent
        assert game.expire_peek(second)
        assert not target.known_to_opponent

    def test_face_up_target_rejected(self):
        game = make_game()
        trigger(game, "p1", Rank.EIGHT)
        game.players["p2"].hand[0].face_up = True
        assert not game.play_ability_target("p1", "8", opponent_id="p2", opp_index=0)
        assert game.drain_peeks() == []


class TestSix:

    def test_peek_own_card(self):
        game = make_game()
        trigger(game, "p1", Rank.SIX)
        target = game.players["p1"].hand[1]

        assert game.play_ability_target("p1", "6", my_index=1)
        assert target.known_to_owner

        reveal = next(e for e in game.drain_events() if e.event_type == EventType.ABILITY_REVEAL)
        assert reveal.recipients == ["p1"]
        assert reveal.data["player"] == "p1"

        [peek] = game.drain_peeks()
        assert (peek.card, peek.flag, peek.deal_id) == (target, "known_to_owner", game.deal_id)
        assert game.expire_peek(peek)
        assert not target.known_to_owner

    def test_empty_slot_rejected(self):
        game = make_game()
        trigger(game, "p1", Rank.SIX)
        game.deck.cards.append(game.players["p1"].hand[1])
        game.players["p1"].hand[1] = None
        assert not game.play_ability_target("p1", "6", my_index=1)

    def test_peek_from_previous_deal_is_stale(self):
        game = make_game()
        trigger(game, "p1", Rank.SIX)
        game.play_ability_target("p1", "6", my_index=1)
        [peek] = game.drain_peeks()

        game.deal()
        assert not game.expire_peek(peek)
        assert peek.card.known_to_owner


# =============================================================================
# Abilities from swaps and discard draws
# =============================================================================

class TestDisplacedAbilityCards:

    def test_king_swapped_out_of_hand(self):
        game = make_game()
        set_hand(game, "p1", [Rank.KING, Rank.THREE, Rank.FOUR, Rank.FIVE])
        game.deck.cards.append(take(game, Rank.NINE))
        game.draw_from_deck("p1")
        game.swap_drawn_card("p1", 0)

        assert isinstance(game.mode, AbilityPending)
        assert game.active_ability.type == "K"
        assert game.play_ability_target("p1", "K", my_index=0, opponent_id="p2", opp_index=0)
        assert isinstance(game.mode, Idle)
        assert game.current_player_id() == "p2"
        assert_conserved(game)


# =============================================================================
# Abilities inherited mid-draw
# =============================================================================

class TestSuspendedDraw:

    def setup_suspended(self):
        """Alice holds a drawn 7 while Bob stacks a King and inherits it."""
        game = make_game()
        set_hand(game, "p2", [Rank.KING, Rank.THREE, Rank.FOUR, Rank.FIVE])
        put_on_discard(game, Rank.KING)
        game.deck.cards.append(take(game, Rank.SEVEN))
        drawn = game.draw_from_deck("p1")

        game.call_stack("p2")
        game.execute_stack("p2", "p2", 0)
        game.drain_events()
        return game, drawn

    def test_drawn_card_survives_inherited_ability(self):
        game, drawn = self.setup_suspended()
        assert isinstance(game.mode, AbilityPending)
        assert game.mode.suspended_draw is drawn
        assert game.drawn_card is drawn
        assert game.active_ability.player == "p2"
        assert game.turn_index == 0
        assert_conserved(game)

    def test_placement_resumes_after_ability(self):
        game, drawn = self.setup_suspended()
        assert game.play_ability_target("p2", "K", my_index=1, opponent_id="p1", opp_index=0)

        assert game.mode == AwaitingPlacement(drawn)
        assert game.turn_index == 0
        assert_conserved(game)

        assert game.discard_drawn_card("p1")
        assert game.current_player_id() == "p2"
        assert_conserved(game)

    def test_placement_blocked_until_ability_resolves(self):
        game, drawn = self.setup_suspended()
        assert not game.discard_drawn_card("p1")
        assert not game.swap_drawn_card("p1", 0)
        assert game.drawn_card is drawn


class TestFinishedGame:

    def test_no_ability_input_after_finish(self):
        game = make_game()
        trigger(game, "p1", Rank.KING)
        game.status = GameStatus.FINISHED
        assert not game.play_ability_target("p1", "K", my_index=0, opponent_id="p2", opp_index=0)
