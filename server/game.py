"""
Game logic for Shithead.

This module implements the core rules engine for the shedding card game
Shithead: card/deck management, the three player zones, dealing, the
legality rule, special-card effects and the turn-resolution state machine.

Shithead Rules Summary:
    - Each player is dealt 3 face-down cards, 3 face-up cards and a hand of 3
    - Players shed same-rank sets onto the pile, matching or beating the
      effective top card, or pick up the whole pile instead
    - Hand is replenished from the deck up to 3 cards after every play
    - Zones are played in order: hand, then face-up, then face-down (blind)
    - The first player out wins; the last player holding cards is the shithead

Special cards:
    2   wild, always playable, grants another turn (pile stays)
    5   skips one further player per 5 played
    7   next card must be 7 or lower
    8   transparent, always playable, ignored when reading the top
    10  always playable, burns the pile and grants another turn
    Four consecutive cards of one rank also burn the pile.
"""

import random
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Callable, Optional

from constants import (
    BURN_RANK,
    BURN_RUN_LENGTH,
    CAP_RANK,
    FACE_DOWN_COUNT,
    FACE_UP_COUNT,
    HAND_SIZE,
    MIN_PLAYERS,
    SKIP_RANK,
    TRANSPARENT_RANK,
    WILD_RANK,
)


class Suit(Enum):
    """Card suits for a standard deck."""

    HEARTS = "hearts"
    DIAMONDS = "diamonds"
    CLUBS = "clubs"
    SPADES = "spades"


SUIT_SYMBOLS: dict[Suit, str] = {
    Suit.HEARTS: "♥",
    Suit.DIAMONDS: "♦",
    Suit.CLUBS: "♣",
    Suit.SPADES: "♠",
}


class Rank(IntEnum):
    """
    Card ranks by numeric value.

    Twos keep rank-value 2 for equality; their special "lowest" treatment
    only applies when choosing the starting player.
    """

    TWO = 2
    THREE = 3
    FOUR = 4
    FIVE = 5
    SIX = 6
    SEVEN = 7
    EIGHT = 8
    NINE = 9
    TEN = 10
    JACK = 11
    QUEEN = 12
    KING = 13
    ACE = 14

    @property
    def label(self) -> str:
        return RANK_LABELS.get(self, str(self.value))


RANK_LABELS: dict[Rank, str] = {
    Rank.JACK: "J",
    Rank.QUEEN: "Q",
    Rank.KING: "K",
    Rank.ACE: "A",
}

# Deck construction order: 3..A, then the 2s
DECK_RANK_ORDER: list[Rank] = [r for r in Rank if r != Rank.TWO] + [Rank.TWO]


@dataclass(frozen=True)
class Card:
    """
    A playing card.

    Cards are immutable values. Within a match every (rank, suit) pair exists
    exactly once, and the engine always moves the same instances between
    zones rather than building new ones.
    """

    rank: Rank
    suit: Suit

    def __str__(self) -> str:
        return f"{self.rank.label}{SUIT_SYMBOLS[self.suit]}"

    def to_dict(self) -> dict:
        """Convert card to dictionary for JSON serialization."""
        return {
            "rank": int(self.rank),
            "suit": self.suit.value,
            "label": str(self),
        }


def start_value(card: Card) -> int:
    """Comparison value used to pick the starting player (2 counts as 1)."""
    return 1 if card.rank == WILD_RANK else int(card.rank)


def format_cards(cards: list[Card]) -> str:
    return ", ".join(str(c) for c in cards)


def _index_of(zone: list[Card], card: Card) -> int:
    """Position of this exact card instance in a zone, or -1."""
    for i, held in enumerate(zone):
        if held is card:
            return i
    return -1


class Deck:
    """
    A single 52-card deck, shuffled once at construction.

    The shuffle seed is stored so a match can be replayed exactly.
    """

    def __init__(self, seed: Optional[int] = None) -> None:
        """
        Build and shuffle a new deck.

        Args:
            seed: Optional random seed for a deterministic shuffle.
                  If None, a random seed is generated and stored.
        """
        self.seed: int = seed if seed is not None else random.randint(0, 2**31 - 1)
        self.cards: list[Card] = [
            Card(rank, suit) for suit in Suit for rank in DECK_RANK_ORDER
        ]
        # random.shuffle is a Fisher-Yates shuffle
        random.Random(self.seed).shuffle(self.cards)

    def draw(self) -> Optional[Card]:
        """
        Draw the top card from the deck.

        Returns:
            The drawn Card, or None if the deck is exhausted.
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
    A player in a Shithead match.

    Attributes:
        id: Unique identifier for the player.
        name: Display name.
        hand: Cards held privately.
        face_up: Cards visible to everyone, played once the hand is empty.
        face_down: Hidden cards, played blind once hand and face-up are empty.
        finished: Set once the player has shed every card. Never reverts.
    """

    id: str
    name: str
    hand: list[Card] = field(default_factory=list)
    face_up: list[Card] = field(default_factory=list)
    face_down: list[Card] = field(default_factory=list)
    finished: bool = False

    def has_cards(self) -> bool:
        """Check if the player still holds a card in any zone."""
        return bool(self.hand or self.face_up or self.face_down)

    def active_zone(self) -> list[Card]:
        """The zone cards are currently played from (hand > face-up > face-down)."""
        if self.hand:
            return self.hand
        if self.face_up:
            return self.face_up
        return self.face_down

    def card_count(self) -> int:
        return len(self.hand) + len(self.face_up) + len(self.face_down)

    def find_card(self, rank: int, suit: str) -> Optional[Card]:
        """
        Find the physical card instance matching a rank/suit description.

        Args:
            rank: Numeric rank (2-14).
            suit: Suit name ("hearts", "diamonds", "clubs", "spades").

        Returns:
            The held Card, or None if the player does not hold it.
        """
        for zone in (self.hand, self.face_up, self.face_down):
            for card in zone:
                if card.rank == rank and card.suit.value == suit:
                    return card
        return None

    def to_dict(self, reveal_hand: bool = False) -> dict:
        """
        Convert player to dictionary for client display.

        Face-up cards are public and face-down cards are only counted. The
        hand is only included for the player it belongs to.

        Args:
            reveal_hand: If True, include the full hand.
        """
        data = {
            "id": self.id,
            "name": self.name,
            "finished": self.finished,
            "hand_count": len(self.hand),
            "face_up": [c.to_dict() for c in self.face_up],
            "face_down_count": len(self.face_down),
        }
        if reveal_hand:
            data["hand"] = [c.to_dict() for c in self.hand]
        return data


SwapPolicy = Callable[[Player], None]


def default_swap_policy(player: Player) -> None:
    """
    Keep low cards in hand and put high cards face up.

    Sorts hand and face-up ascending by rank, then swaps index i whenever the
    hand card outranks the face-up card at the same index.
    """
    player.hand.sort(key=lambda c: c.rank)
    player.face_up.sort(key=lambda c: c.rank)
    for i in range(min(len(player.hand), len(player.face_up))):
        if player.hand[i].rank > player.face_up[i].rank:
            player.hand[i], player.face_up[i] = player.face_up[i], player.hand[i]


class ConstructionError(ValueError):
    """Raised when a Game cannot be created from the given players."""


class GamePhase(Enum):
    """
    Phases of a Shithead match.

    Flow: SWAPPING -> PLAYING -> GAME_OVER
    SWAPPING is skipped when a swap policy is applied automatically.
    """

    SWAPPING = "swapping"    # Players exchanging hand and face-up cards
    PLAYING = "playing"      # Turns in progress
    GAME_OVER = "game_over"  # At most one player still holds cards


class TurnOutcome(Enum):
    """Closed set of results a turn submission can produce."""

    PLAYED = "played"
    PICKED_UP = "picked_up"
    INVALID_MOVE = "invalid_move"
    ALREADY_FINISHED = "already_finished"


class InvalidReason(Enum):
    """Why a submission was rejected. Only set for INVALID_MOVE."""

    MIXED_RANKS = "mixed_ranks"
    ILLEGAL_CARD = "illegal_card"
    NOT_HELD = "not_held"
    DUPLICATE_CARD = "duplicate_card"
    WRONG_ZONE = "wrong_zone"
    WRONG_PHASE = "wrong_phase"


@dataclass
class TurnResult:
    """
    Outcome of a single play_turn call.

    Attributes:
        outcome: Which variant this result is.
        player_id: The player the turn was requested for.
        message: Human-readable summary.
        cards: Cards played (PLAYED) or picked up (PICKED_UP).
        burned: Whether the pile went to the discard.
        skipped: Number of extra players skipped by fives.
        extra_turn: Whether the same player acts again.
        finished: Whether the player shed their last card on this turn.
        reason: Rejection reason (INVALID_MOVE only).
        offending_card: The card that failed validation, if any.
        offending_rank: The rank that broke the same-rank rule, if any.
    """

    outcome: TurnOutcome
    player_id: str
    message: str
    cards: list[Card] = field(default_factory=list)
    burned: bool = False
    skipped: int = 0
    extra_turn: bool = False
    finished: bool = False
    reason: Optional[InvalidReason] = None
    offending_card: Optional[Card] = None
    offending_rank: Optional[Rank] = None

    @property
    def ok(self) -> bool:
        """True when the game state was changed by this turn."""
        return self.outcome in (TurnOutcome.PLAYED, TurnOutcome.PICKED_UP)

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "player_id": self.player_id,
            "message": self.message,
            "cards": [c.to_dict() for c in self.cards],
            "burned": self.burned,
            "skipped": self.skipped,
            "extra_turn": self.extra_turn,
            "finished": self.finished,
            "reason": self.reason.value if self.reason else None,
            "offending_card": self.offending_card.to_dict() if self.offending_card is not None else None,
            "offending_rank": int(self.offending_rank) if self.offending_rank is not None else None,
        }


class Game:
    """
    Main game state and turn-resolution state machine for Shithead.

    A Game is created once per match with its players in clockwise seat
    order. It deals immediately and, unless the swap step is interactive,
    is ready for the first turn.

    Attributes:
        players: Players in fixed turn order (never reordered).
        deck: The draw pile.
        pile: Played cards, most recent last.
        discard: Burned cards, permanently out of play.
        current_player_index: Index of the player whose turn it is.
        phase: Current match phase.
        finish_order: Player IDs in the order they went out.
        last_action: Summary of the most recent successful turn.
    """

    def __init__(
        self,
        players: list[Player],
        seed: Optional[int] = None,
        swap_policy: Optional[SwapPolicy] = default_swap_policy,
    ) -> None:
        """
        Create and deal a new match.

        Args:
            players: Players in seat order (at least two, unique IDs).
            seed: Optional deck seed for a reproducible deal.
            swap_policy: Applied to every player after dealing. Pass None to
                let players swap interactively during the SWAPPING phase.

        Raises:
            ConstructionError: Fewer than two players, or duplicate IDs.
        """
        if len(players) < MIN_PLAYERS:
            raise ConstructionError(f"At least {MIN_PLAYERS} players are required")
        ids = [p.id for p in players]
        if len(set(ids)) != len(ids):
            raise ConstructionError("Player IDs must be unique")

        self.players: list[Player] = list(players)
        self.deck = Deck(seed)
        self.pile: list[Card] = []
        self.discard: list[Card] = []
        self.current_player_index = 0
        self.phase = GamePhase.SWAPPING
        self.finish_order: list[str] = []
        self.last_action: Optional[str] = None
        self._ready: set[str] = set()

        self._deal()

        if swap_policy is not None:
            for player in self.players:
                swap_policy(player)
            self._begin_play()

    # -------------------------------------------------------------------------
    # Setup
    # -------------------------------------------------------------------------

    def _deal(self) -> None:
        """Deal face-down, then face-up, then hand cards, one per player per pass."""
        for zone_name, count in (
            ("face_down", FACE_DOWN_COUNT),
            ("face_up", FACE_UP_COUNT),
            ("hand", HAND_SIZE),
        ):
            for _ in range(count):
                for player in self.players:
                    card = self.deck.draw()
                    if card is not None:
                        getattr(player, zone_name).append(card)

    def _begin_play(self) -> None:
        self.current_player_index = self._starting_player_index()
        self.phase = GamePhase.PLAYING

    def _starting_player_index(self) -> int:
        """Index of the player holding the lowest card in hand (first seat wins ties)."""
        lowest: Optional[int] = None
        starting = 0
        for i, player in enumerate(self.players):
            for card in player.hand:
                value = start_value(card)
                if lowest is None or value < lowest:
                    lowest = value
                    starting = i
        return starting

    def swap_cards(self, player_id: str, hand_card: Card, face_up_card: Card) -> bool:
        """
        Exchange one hand card with one face-up card during the swap phase.

        Args:
            player_id: The swapping player.
            hand_card: A card instance currently in the player's hand.
            face_up_card: A card instance currently face up.

        Returns:
            True if swapped, False if not allowed.
        """
        if self.phase != GamePhase.SWAPPING or player_id in self._ready:
            return False
        player = self.get_player(player_id)
        if player is None:
            return False
        hand_idx = _index_of(player.hand, hand_card)
        up_idx = _index_of(player.face_up, face_up_card)
        if hand_idx < 0 or up_idx < 0:
            return False
        player.hand[hand_idx], player.face_up[up_idx] = face_up_card, hand_card
        return True

    def apply_swap_policy(
        self, player_id: str, policy: SwapPolicy = default_swap_policy
    ) -> bool:
        """Run a swap policy for one player during the swap phase."""
        if self.phase != GamePhase.SWAPPING or player_id in self._ready:
            return False
        player = self.get_player(player_id)
        if player is None:
            return False
        policy(player)
        return True

    def mark_ready(self, player_id: str) -> bool:
        """
        Lock in a player's swaps. Play begins once every player is ready.

        Returns:
            True if the player was marked ready.
        """
        if self.phase != GamePhase.SWAPPING or self.get_player(player_id) is None:
            return False
        self._ready.add(player_id)
        if len(self._ready) == len(self.players):
            self._begin_play()
        return True

    def is_ready(self, player_id: str) -> bool:
        return player_id in self._ready or self.phase != GamePhase.SWAPPING

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_player(self, player_id: str) -> Optional[Player]:
        """Find a player by ID."""
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def current_player(self) -> Player:
        """Get the player whose turn it currently is."""
        return self.players[self.current_player_index]

    def active_players(self) -> list[Player]:
        """Players that still hold cards, in seat order."""
        return [p for p in self.players if not p.finished]

    def is_game_over(self) -> bool:
        """The match ends when at most one player still holds cards."""
        return len(self.active_players()) <= 1

    def winner(self) -> Optional[Player]:
        """First player to go out."""
        if self.finish_order:
            return self.get_player(self.finish_order[0])
        return None

    def loser(self) -> Optional[Player]:
        """The shithead: the last player holding cards once the match is over."""
        if not self.is_game_over():
            return None
        remaining = self.active_players()
        return remaining[0] if remaining else None

    def top_effective_card(self) -> Optional[Card]:
        """
        The most recent non-8 card on the pile.

        Eights are transparent: the next player must beat the card beneath.

        Returns:
            The effective top card, or None if the pile is empty or all eights.
        """
        for card in reversed(self.pile):
            if card.rank != TRANSPARENT_RANK:
                return card
        return None

    def is_playable(self, card: Card) -> bool:
        """
        Check whether a card can legally go on the current pile.

        Tens, twos and eights are always legal. Otherwise the card must match
        or beat the effective top, except on a seven where it must be seven
        or lower.
        """
        if card.rank in (BURN_RANK, WILD_RANK, TRANSPARENT_RANK):
            return True
        top = self.top_effective_card()
        if top is None:
            return True
        if top.rank == CAP_RANK:
            return card.rank <= CAP_RANK
        return card.rank >= top.rank

    def total_cards(self) -> int:
        """Count every card in play. Always equals the deck size."""
        return (
            self.deck.cards_remaining()
            + len(self.discard)
            + len(self.pile)
            + sum(p.card_count() for p in self.players)
        )

    # -------------------------------------------------------------------------
    # Turn Flow
    # -------------------------------------------------------------------------

    def play_turn(self, player: Player, cards: list[Card]) -> TurnResult:
        """
        Resolve one turn for a player.

        An empty card list means the player picks up the pile. Otherwise the
        cards must share one rank, be held in the player's active zone and be
        legal on the current pile. All checks run before anything changes, so
        a rejected submission leaves the game untouched.

        Args:
            player: Player taking the turn.
            cards: Card instances to lay down, in order. Empty to pick up.

        Returns:
            A TurnResult describing what happened.
        """
        if not player.has_cards():
            return TurnResult(
                TurnOutcome.ALREADY_FINISHED,
                player.id,
                f"{player.name} has already finished.",
            )
        if self.phase != GamePhase.PLAYING:
            return self._reject(
                player, InvalidReason.WRONG_PHASE,
                f"Cannot play during the {self.phase.value} phase",
            )

        if not cards:
            return self._pick_up(player)

        rejection = self._validate(player, cards)
        if rejection is not None:
            return rejection

        rank = cards[0].rank
        self._remove_from_player(player, cards)
        self.pile.extend(cards)

        burned = False
        extra_turn = False
        skip = 0
        if rank == BURN_RANK:
            self._burn_pile()
            burned = True
            extra_turn = True
        elif rank == WILD_RANK:
            extra_turn = True
        elif rank == SKIP_RANK:
            skip = len(cards)

        if not burned and self._check_four_of_a_kind_burn():
            burned = True
            extra_turn = True

        self._replenish_hand(player)
        self._progress_zones(player)

        just_finished = False
        if not player.has_cards():
            player.finished = True
            just_finished = True
            self.finish_order.append(player.id)

        # Going out or keeping the turn cancels any skip
        if just_finished:
            extra_turn = False
            skip = 0
            self.advance_player(1)
        elif extra_turn:
            skip = 0
        else:
            self.advance_player(1 + skip)

        message = f"{player.name} plays {format_cards(cards)}"
        if burned:
            message += " and burns the pile"
        if skip:
            message += f" and skips {skip} player(s)"
        if extra_turn:
            message += " and takes another turn"
        if just_finished:
            message += " and goes out"
        message += "."

        self._after_turn(message)
        return TurnResult(
            TurnOutcome.PLAYED,
            player.id,
            message,
            cards=list(cards),
            burned=burned,
            skipped=skip,
            extra_turn=extra_turn,
            finished=just_finished,
        )

    def _pick_up(self, player: Player) -> TurnResult:
        picked = list(self.pile)
        player.hand.extend(picked)
        self.pile.clear()
        self.advance_player(1)
        message = f"{player.name} picks up the pile ({len(picked)} cards)."
        self._after_turn(message)
        return TurnResult(TurnOutcome.PICKED_UP, player.id, message, cards=picked)

    def _reject(
        self,
        player: Player,
        reason: InvalidReason,
        message: str,
        card: Optional[Card] = None,
        rank: Optional[Rank] = None,
    ) -> TurnResult:
        return TurnResult(
            TurnOutcome.INVALID_MOVE,
            player.id,
            message,
            reason=reason,
            offending_card=card,
            offending_rank=rank,
        )

    def _validate(self, player: Player, cards: list[Card]) -> Optional[TurnResult]:
        """Run every check for a play. Returns a rejection, or None if legal."""
        rank = cards[0].rank
        for card in cards:
            if card.rank != rank:
                return self._reject(
                    player, InvalidReason.MIXED_RANKS,
                    f"All played cards must be of the same rank ({card} is not a {rank.label})",
                    card=card, rank=card.rank,
                )

        zone = player.active_zone()
        seen: list[Card] = []
        for card in cards:
            if _index_of(seen, card) >= 0:
                return self._reject(
                    player, InvalidReason.DUPLICATE_CARD,
                    f"{card} was submitted more than once", card=card,
                )
            seen.append(card)
            if _index_of(zone, card) < 0:
                held = any(
                    _index_of(z, card) >= 0
                    for z in (player.hand, player.face_up, player.face_down)
                )
                if held:
                    return self._reject(
                        player, InvalidReason.WRONG_ZONE,
                        f"{card} cannot be played until earlier zones are empty",
                        card=card,
                    )
                return self._reject(
                    player, InvalidReason.NOT_HELD,
                    f"{player.name} does not hold {card}", card=card,
                )

        for card in cards:
            if not self.is_playable(card):
                top = self.top_effective_card()
                return self._reject(
                    player, InvalidReason.ILLEGAL_CARD,
                    f"Cannot play {card} on {top}", card=card,
                )
        return None

    def _remove_from_player(self, player: Player, cards: list[Card]) -> None:
        """Remove exact card instances, searching hand, then face-up, then face-down."""
        for card in cards:
            for zone in (player.hand, player.face_up, player.face_down):
                idx = _index_of(zone, card)
                if idx >= 0:
                    del zone[idx]
                    break

    def _burn_pile(self) -> None:
        self.discard.extend(self.pile)
        self.pile.clear()

    def _check_four_of_a_kind_burn(self) -> bool:
        """Burn the pile if its last four cards share a rank. Returns True if burned."""
        if len(self.pile) < BURN_RUN_LENGTH:
            return False
        run = self.pile[-BURN_RUN_LENGTH:]
        if all(c.rank == run[-1].rank for c in run):
            self._burn_pile()
            return True
        return False

    def _replenish_hand(self, player: Player) -> None:
        """Draw until the hand holds three cards or the deck runs out."""
        while len(player.hand) < HAND_SIZE:
            card = self.deck.draw()
            if card is None:
                break
            player.hand.append(card)

    def _progress_zones(self, player: Player) -> None:
        """Move face-up cards into hand, or one blind face-down card."""
        if not player.hand and player.face_up:
            player.hand.extend(player.face_up)
            player.face_up.clear()
        if not player.hand and not player.face_up and player.face_down:
            player.hand.append(player.face_down.pop())

    def advance_player(self, n: int) -> None:
        """
        Move the turn forward by n unfinished players, wrapping around.

        Finished players are stepped over without counting, which handles
        both five-skips and players who have gone out.

        Args:
            n: Number of unfinished players to advance past.
        """
        if not self.active_players():
            return
        total = len(self.players)
        idx = self.current_player_index
        steps = n
        while steps > 0:
            idx = (idx + 1) % total
            if not self.players[idx].finished:
                steps -= 1
        self.current_player_index = idx

    def _after_turn(self, message: str) -> None:
        self.last_action = message
        if self.is_game_over():
            self.phase = GamePhase.GAME_OVER

    # -------------------------------------------------------------------------
    # State Queries
    # -------------------------------------------------------------------------

    def get_state(self, for_player_id: Optional[str] = None) -> dict:
        """
        Get the match state from one player's point of view.

        Only the requesting player's hand is included in full; everyone sees
        face-up cards and face-down counts.

        Args:
            for_player_id: The player who will receive this state, or None
                for a spectator view with no hands revealed.

        Returns:
            Dict suitable for JSON serialization.
        """
        current = self.current_player()
        pile_top = self.pile[-1] if self.pile else None
        effective_top = self.top_effective_card()
        winner = self.winner()
        loser = self.loser()

        return {
            "phase": self.phase.value,
            "players": [
                p.to_dict(reveal_hand=p.id == for_player_id) for p in self.players
            ],
            "current_player_index": self.current_player_index,
            "current_player_id": current.id,
            "pile_top": pile_top.to_dict() if pile_top else None,
            "effective_top": effective_top.to_dict() if effective_top else None,
            "pile_size": len(self.pile),
            "discard_size": len(self.discard),
            "deck_remaining": self.deck.cards_remaining(),
            "finish_order": list(self.finish_order),
            "winner_id": winner.id if winner else None,
            "loser_id": loser.id if loser else None,
            "last_action": self.last_action,
            "waiting_for_swap": (
                self.phase == GamePhase.SWAPPING
                and for_player_id is not None
                and for_player_id not in self._ready
            ),
        }

