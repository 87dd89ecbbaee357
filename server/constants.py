"""
Card value constants for the stacking memory game.

This module is the single source of truth for card point values and for
the ranks that carry a special ability when they land on the discard pile.

Scoring (lowest hand wins):
    - Joker: -1 point
    - Queen of hearts / diamonds: 0 points
    - Ace: 1 point
    - 2-10: Face value
    - Jack, Queen (clubs / spades), King: 10 points
"""

# =============================================================================
# Card Values - Single Source of Truth
# =============================================================================

DEFAULT_CARD_VALUES: dict[str, int] = {
    'A': 1,
    '2': 2,
    '3': 3,
    '4': 4,
    '5': 5,
    '6': 6,
    '7': 7,
    '8': 8,
    '9': 9,
    '10': 10,
    'J': 10,
    'Q': 10,
    'K': 10,
    'Joker': -1,
}

RED_QUEEN_VALUE: int = 0
RED_SUITS: frozenset[str] = frozenset({"hearts", "diamonds"})


# =============================================================================
# Abilities
# =============================================================================

# Rank -> display label used in notifications
ABILITY_LABELS: dict[str, str] = {
    'K': 'King',
    'J': 'Jack',
    '8': '8',
    '6': '6',
}
ABILITY_RANKS: frozenset[str] = frozenset(ABILITY_LABELS)


# =============================================================================
# Game Constants
# =============================================================================

HAND_SIZE = 4
PRIVATE_SETUP_SLOTS = (2, 3)  # bottom row, shown to the owner during phase1
MAX_PLAYERS = 2

HIDDEN_VALUE = '?'


def get_card_value_for_rank(rank_str: str, suit_str: str = "") -> int:
    """
    Get point value for a card given as rank / suit strings.

    Use this for string-based lookups (e.g., from client payloads or logs).

    Args:
        rank_str: Card rank as string ('A', '2', ..., 'K', 'Joker')
        suit_str: Card suit as string ('hearts', ..., 'none')

    Returns:
        Point value for the card
    """
    if rank_str == 'Q' and suit_str in RED_SUITS:
        return RED_QUEEN_VALUE
    return DEFAULT_CARD_VALUES.get(rank_str, 0)
