"""
Rule constants for Shithead.

This module is the single source of truth for deal sizes and the ranks that
carry special effects. Room limits are read from config.py so they can be
tuned with environment variables (see .env.example).

Special ranks:
    - 2: Wild. Always playable, same player goes again
    - 5: Skip. Each 5 played skips one more player
    - 7: Cap. The next card must be 7 or lower
    - 8: Transparent. Always playable, ignored when reading the pile top
    - 10: Burn. Always playable, pile is discarded, same player goes again
"""

from config import config


# =============================================================================
# Deal
# =============================================================================

DECK_SIZE = 52
FACE_DOWN_COUNT = 3
FACE_UP_COUNT = 3
HAND_SIZE = 3
CARDS_PER_PLAYER = FACE_DOWN_COUNT + FACE_UP_COUNT + HAND_SIZE


# =============================================================================
# Special Ranks
# =============================================================================

WILD_RANK = 2
SKIP_RANK = 5
CAP_RANK = 7
TRANSPARENT_RANK = 8
BURN_RANK = 10

# Consecutive same-rank cards on the pile that burn it
BURN_RUN_LENGTH = 4


# =============================================================================
# Players & Rooms
# =============================================================================

MIN_PLAYERS = 2
# A full deal must fit in one deck
MAX_PLAYERS = min(DECK_SIZE // CARDS_PER_PLAYER, config.MAX_PLAYERS_PER_ROOM)
ROOM_CODE_LENGTH = config.ROOM_CODE_LENGTH
