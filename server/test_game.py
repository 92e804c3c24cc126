"""
Test suite for the Shithead rules engine.

Verifies our implementation of the rules:
- Deck construction and seeded shuffle
- Round-robin deal and the pre-play swap heuristic
- Starting-player rule (2 counts as lowest)
- Legality rule, transparent eights and the seven cap
- Burns (tens and four of a kind), wild twos, skipping fives
- Hand replenishment and zone progression (hand > face-up > face-down)
- Finishing, game over and the advance algorithm
- Rejected moves never change the game

Run with: pytest test_game.py -v
"""

import pytest

from constants import DECK_SIZE
from game import (
    Card, ConstructionError, Deck, Game, GamePhase, InvalidReason, Player,
    Rank, Suit, TurnOutcome, default_swap_policy,
)


# =============================================================================
# Helpers
# =============================================================================

SUIT_CODES = {"H": Suit.HEARTS, "D": Suit.DIAMONDS, "C": Suit.CLUBS, "S": Suit.SPADES}
RANK_CODES = {"J": Rank.JACK, "Q": Rank.QUEEN, "K": Rank.KING, "A": Rank.ACE}


def parse(code: str) -> tuple[Rank, Suit]:
    """Shorthand like "10H", "KS" or "2C" to (rank, suit)."""
    rank_text, suit_text = code[:-1], code[-1]
    rank = RANK_CODES[rank_text] if rank_text in RANK_CODES else Rank(int(rank_text))
    return rank, SUIT_CODES[suit_text]


def make_game(num_players: int = 2, seed: int = 7, **kwargs) -> Game:
    players = [Player(id=f"p{i}", name=f"Player {i}") for i in range(num_players)]
    return Game(players, seed=seed, **kwargs)


def arrange(game, zones=None, pile=(), deck=None, current=0, phase=GamePhase.PLAYING):
    """
    Lay the game's own 52 card instances out as described.

    zones maps player id to (hand, face_up, face_down) shorthand lists.
    Players not listed get three leftover cards in hand; an explicit empty
    tuple leaves a player with nothing (finished). Leftover cards form the
    deck, or go to the discard when an explicit deck list is given.
    """
    zones = zones or {}
    every = list(game.deck.cards) + game.discard + game.pile
    for p in game.players:
        every += p.hand + p.face_up + p.face_down
    pool = {(c.rank, c.suit): c for c in every}
    assert len(pool) == DECK_SIZE

    def take(codes):
        return [pool.pop(parse(code)) for code in codes]

    for p in game.players:
        p.hand, p.face_up, p.face_down = [], [], []
    for p in game.players:
        if p.id in zones:
            layout = tuple(zones[p.id]) + ((), (), ())
            p.hand, p.face_up, p.face_down = take(layout[0]), take(layout[1]), take(layout[2])
    game.pile = take(pile)
    drawn = take(deck) if deck is not None else []
    for p in game.players:
        if p.id not in zones:
            p.hand = [pool.pop(key) for key in list(pool)[:3]]

    if deck is None:
        game.deck.cards = list(pool.values())
        game.discard = []
    else:
        game.deck.cards = drawn
        game.discard = list(pool.values())

    game.finish_order = []
    for p in game.players:
        p.finished = not p.has_cards()
        if p.finished:
            game.finish_order.append(p.id)
    game.current_player_index = current
    game.phase = phase
    game.last_action = None
    assert game.total_cards() == DECK_SIZE
    return game


def held(player: Player, code: str) -> Card:
    """The physical instance the player holds for a shorthand code."""
    rank, suit = parse(code)
    card = player.find_card(int(rank), suit.value)
    assert card is not None, f"{player.id} does not hold {code}"
    return card


def snapshot(game: Game) -> tuple:
    """Everything observable about a game, by card identity."""
    def ids(cards):
        return [id(c) for c in cards]
    return (
        ids(game.deck.cards),
        ids(game.pile),
        ids(game.discard),
        [(ids(p.hand), ids(p.face_up), ids(p.face_down), p.finished) for p in game.players],
        game.current_player_index,
        game.phase,
        list(game.finish_order),
        game.last_action,
    )


# =============================================================================
# Card and Deck Tests
# =============================================================================

class TestCard:

    def test_str_uses_label_and_symbol(self):
        assert str(Card(Rank.TEN, Suit.HEARTS)) == "10♥"
        assert str(Card(Rank.QUEEN, Suit.SPADES)) == "Q♠"
        assert str(Card(Rank.TWO, Suit.CLUBS)) == "2♣"

    def test_to_dict(self):
        assert Card(Rank.ACE, Suit.DIAMONDS).to_dict() == {
            "rank": 14, "suit": "diamonds", "label": "A♦",
        }

    def test_cards_are_immutable(self):
        card = Card(Rank.FIVE, Suit.CLUBS)
        with pytest.raises(AttributeError):
            card.rank = Rank.SIX


class TestDeck:

    def test_has_52_unique_cards(self):
        deck = Deck(seed=1)
        assert deck.cards_remaining() == 52
        assert len({(c.rank, c.suit) for c in deck.cards}) == 52

    def test_same_seed_same_order(self):
        assert Deck(seed=42).cards == Deck(seed=42).cards

    def test_different_seeds_differ(self):
        assert Deck(seed=1).cards != Deck(seed=2).cards

    def test_seed_is_stored(self):
        assert Deck(seed=99).seed == 99
        assert isinstance(Deck().seed, int)

    def test_draw_takes_top_card(self):
        deck = Deck(seed=3)
        top = deck.cards[-1]
        assert deck.draw() is top
        assert deck.cards_remaining() == 51

    def test_draw_exhausted_returns_none(self):
        deck = Deck(seed=3)
        for _ in range(52):
            assert deck.draw() is not None
        assert deck.draw() is None
        assert deck.cards_remaining() == 0


# =============================================================================
# Construction and Deal Tests
# =============================================================================

class TestConstruction:

    def test_single_player_rejected(self):
        with pytest.raises(ConstructionError):
            Game([Player(id="solo", name="Solo")])

    def test_no_players_rejected(self):
        with pytest.raises(ValueError):
            Game([])

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ConstructionError):
            Game([Player(id="a", name="A"), Player(id="a", name="B")])

    def test_each_zone_gets_three(self):
        game = make_game(4)
        for p in game.players:
            assert len(p.hand) == 3
            assert len(p.face_up) == 3
            assert len(p.face_down) == 3
        assert game.deck.cards_remaining() == 52 - 4 * 9

    def test_five_players_fit_one_deck(self):
        game = make_game(5)
        assert game.deck.cards_remaining() == 7
        assert game.total_cards() == 52

    def test_deal_is_round_robin(self):
        """Face-down, then face-up, then hand, one card per player per pass."""
        n = 3
        order = list(reversed(Deck(seed=11).cards))
        game = make_game(n, seed=11, swap_policy=None)

        for i, p in enumerate(game.players):
            assert p.face_down == [order[r * n + i] for r in range(3)]
            assert p.face_up == [order[3 * n + r * n + i] for r in range(3)]
            assert p.hand == [order[6 * n + r * n + i] for r in range(3)]

    def test_starts_playing_with_default_policy(self):
        game = make_game(3)
        assert game.phase == GamePhase.PLAYING
        assert game.pile == []
        assert game.discard == []


class TestSwapPolicy:

    def test_default_heuristic(self):
        player = Player(id="p", name="P")
        player.hand = [Card(Rank.KING, Suit.HEARTS), Card(Rank.THREE, Suit.CLUBS), Card(Rank.NINE, Suit.SPADES)]
        player.face_up = [Card(Rank.FOUR, Suit.HEARTS), Card(Rank.ACE, Suit.CLUBS), Card(Rank.TWO, Suit.DIAMONDS)]

        default_swap_policy(player)

        assert [c.rank for c in player.hand] == [Rank.TWO, Rank.FOUR, Rank.KING]
        assert [c.rank for c in player.face_up] == [Rank.THREE, Rank.NINE, Rank.ACE]

    def test_already_low_hand_unchanged(self):
        player = Player(id="p", name="P")
        player.hand = [Card(Rank.FOUR, Suit.HEARTS), Card(Rank.THREE, Suit.CLUBS), Card(Rank.FIVE, Suit.SPADES)]
        player.face_up = [Card(Rank.QUEEN, Suit.HEARTS), Card(Rank.JACK, Suit.CLUBS), Card(Rank.KING, Suit.DIAMONDS)]

        default_swap_policy(player)

        assert [c.rank for c in player.hand] == [Rank.THREE, Rank.FOUR, Rank.FIVE]
        assert [c.rank for c in player.face_up] == [Rank.JACK, Rank.QUEEN, Rank.KING]

    def test_custom_policy_applied_to_every_player(self):
        seen = []
        make_game(3, swap_policy=lambda p: seen.append(p.id))
        assert seen == ["p0", "p1", "p2"]


# =============================================================================
# Swap Phase and Starting Player Tests
# =============================================================================

class TestSwapPhase:

    def setup_method(self):
        self.game = make_game(2, swap_policy=None)

    def test_waits_in_swapping(self):
        assert self.game.phase == GamePhase.SWAPPING
        assert self.game.get_state("p0")["waiting_for_swap"] is True

    def test_swap_exchanges_instances(self):
        p0 = self.game.get_player("p0")
        hand_card, up_card = p0.hand[0], p0.face_up[2]

        assert self.game.swap_cards("p0", hand_card, up_card)
        assert p0.hand[0] is up_card
        assert p0.face_up[2] is hand_card
        assert self.game.total_cards() == 52

    def test_swap_rejects_unheld_card(self):
        p0 = self.game.get_player("p0")
        p1 = self.game.get_player("p1")
        assert not self.game.swap_cards("p0", p1.hand[0], p0.face_up[0])

    def test_swap_after_ready_rejected(self):
        p0 = self.game.get_player("p0")
        self.game.mark_ready("p0")
        assert self.game.is_ready("p0")
        assert not self.game.swap_cards("p0", p0.hand[0], p0.face_up[0])

    def test_play_rejected_while_swapping(self):
        p0 = self.game.get_player("p0")
        result = self.game.play_turn(p0, [p0.hand[0]])
        assert result.outcome == TurnOutcome.INVALID_MOVE
        assert result.reason == InvalidReason.WRONG_PHASE

    def test_all_ready_starts_play(self):
        self.game.mark_ready("p0")
        assert self.game.phase == GamePhase.SWAPPING
        self.game.mark_ready("p1")
        assert self.game.phase == GamePhase.PLAYING
        assert self.game.get_state("p0")["waiting_for_swap"] is False

    def test_unknown_player_cannot_ready(self):
        assert not self.game.mark_ready("ghost")

    def test_apply_swap_policy_for_one_player(self):
        assert self.game.apply_swap_policy("p1")
        p1 = self.game.get_player("p1")
        assert [c.rank for c in p1.face_up] == sorted(c.rank for c in p1.face_up)


class TestStartingPlayer:

    def start(self, hands: dict) -> Game:
        game = make_game(3, swap_policy=None)
        arrange(game, {pid: (hand,) for pid, hand in hands.items()}, phase=GamePhase.SWAPPING)
        for p in game.players:
            game.mark_ready(p.id)
        return game

    def test_lowest_card_starts(self):
        game = self.start({"p0": ["9C", "JC"], "p1": ["4D", "AS"], "p2": ["6H", "QD"]})
        assert game.current_player().id == "p1"

    def test_two_counts_as_lowest(self):
        game = self.start({"p0": ["3C", "JC"], "p1": ["4D", "AS"], "p2": ["2H", "QD"]})
        assert game.current_player().id == "p2"

    def test_tie_goes_to_first_seat(self):
        game = self.start({"p0": ["9C", "JC"], "p1": ["3D", "AS"], "p2": ["3H", "QD"]})
        assert game.current_player().id == "p1"


# =============================================================================
# Legality Tests
# =============================================================================

class TestLegality:

    def setup_method(self):
        self.game = make_game(2)

    def on(self, *pile):
        arrange(self.game, pile=pile)
        return self.game

    def test_empty_pile_accepts_anything(self):
        game = self.on()
        assert game.top_effective_card() is None
        assert game.is_playable(Card(Rank.THREE, Suit.CLUBS))

    def test_must_match_or_beat(self):
        game = self.on("9H")
        assert game.is_playable(Card(Rank.NINE, Suit.CLUBS))
        assert game.is_playable(Card(Rank.KING, Suit.CLUBS))
        assert not game.is_playable(Card(Rank.SIX, Suit.CLUBS))

    def test_seven_caps_the_next_card(self):
        game = self.on("7D")
        assert not game.is_playable(Card(Rank.NINE, Suit.SPADES))
        assert game.is_playable(Card(Rank.FOUR, Suit.SPADES))
        assert game.is_playable(Card(Rank.SEVEN, Suit.SPADES))

    @pytest.mark.parametrize("rank", [Rank.TWO, Rank.EIGHT, Rank.TEN])
    def test_power_cards_always_legal(self, rank):
        game = self.on("AH")
        assert game.is_playable(Card(rank, Suit.CLUBS))
        arrange(game, pile=["7H"])
        assert game.is_playable(Card(rank, Suit.CLUBS))

    def test_eights_are_transparent(self):
        game = self.on("9H", "8C", "8D")
        assert game.top_effective_card().rank == Rank.NINE
        assert not game.is_playable(Card(Rank.FIVE, Suit.SPADES))
        assert game.is_playable(Card(Rank.NINE, Suit.SPADES))

    def test_seven_under_eight_still_caps(self):
        game = self.on("7H", "8C")
        assert not game.is_playable(Card(Rank.JACK, Suit.SPADES))

    def test_pile_of_eights_has_no_top(self):
        game = self.on("8C", "8D")
        assert game.top_effective_card() is None
        assert game.is_playable(Card(Rank.THREE, Suit.SPADES))

    def test_anything_goes_on_a_two(self):
        game = self.on("KH", "2C")
        assert game.is_playable(Card(Rank.THREE, Suit.SPADES))

    def test_is_playable_is_pure(self):
        game = self.on("JH")
        before = snapshot(game)
        card = Card(Rank.FIVE, Suit.SPADES)
        answers = {game.is_playable(card) for _ in range(5)}
        assert answers == {False}
        assert snapshot(game) == before


# =============================================================================
# Turn Resolution Tests
# =============================================================================

class TestPlayTurn:

    def setup_method(self):
        self.game = make_game(2)

    def test_seven_rejects_nine_then_accepts_four(self):
        game = arrange(self.game, {"p0": (["9S", "4S", "KC"],)}, pile=["7D"])
        p0 = game.get_player("p0")
        nine = held(p0, "9S")

        result = game.play_turn(p0, [nine])
        assert result.outcome == TurnOutcome.INVALID_MOVE
        assert result.reason == InvalidReason.ILLEGAL_CARD
        assert result.offending_card is nine

        result = game.play_turn(p0, [held(p0, "4S")])
        assert result.outcome == TurnOutcome.PLAYED
        assert game.pile[-1].rank == Rank.FOUR
        assert game.current_player().id == "p1"

    def test_cards_go_on_pile_in_order(self):
        game = arrange(self.game, {"p0": (["6S", "6H", "6D"],)}, pile=["3C"])
        p0 = game.get_player("p0")
        cards = [held(p0, "6H"), held(p0, "6D")]

        game.play_turn(p0, cards)

        assert game.pile[-2] is cards[0]
        assert game.pile[-1] is cards[1]
        assert held(p0, "6S") is not None

    def test_removal_is_by_identity(self):
        game = arrange(self.game, {"p0": (["6S", "6H", "9D"],)}, deck=[])
        p0 = game.get_player("p0")
        six_h = held(p0, "6H")

        game.play_turn(p0, [six_h])

        assert [str(c) for c in p0.hand] == ["6♠", "9♦"]

    def test_mixed_ranks_rejected(self):
        game = arrange(self.game, {"p0": (["6S", "9H", "KD"],)})
        p0 = game.get_player("p0")

        result = game.play_turn(p0, [held(p0, "6S"), held(p0, "9H")])

        assert result.outcome == TurnOutcome.INVALID_MOVE
        assert result.reason == InvalidReason.MIXED_RANKS
        assert result.offending_rank == Rank.NINE

    def test_card_from_other_player_rejected(self):
        game = arrange(self.game, {"p0": (["6S"],), "p1": (["6H"],)})
        p0, p1 = game.get_player("p0"), game.get_player("p1")

        result = game.play_turn(p0, [held(p1, "6H")])

        assert result.reason == InvalidReason.NOT_HELD
        assert held(p1, "6H") in p1.hand

    def test_fabricated_card_rejected(self):
        game = arrange(self.game, {"p0": (["6S"],)})
        p0 = game.get_player("p0")

        result = game.play_turn(p0, [Card(Rank.SIX, Suit.SPADES)])

        assert result.reason == InvalidReason.NOT_HELD
        assert game.total_cards() == 52

    def test_same_card_twice_rejected(self):
        game = arrange(self.game, {"p0": (["6S", "6H"],)})
        p0 = game.get_player("p0")
        six = held(p0, "6S")

        result = game.play_turn(p0, [six, six])

        assert result.reason == InvalidReason.DUPLICATE_CARD

    def test_face_up_locked_while_hand_holds_cards(self):
        game = arrange(self.game, {"p0": (["6S"], ["9H"], ["3C"])})
        p0 = game.get_player("p0")

        result = game.play_turn(p0, [held(p0, "9H")])

        assert result.reason == InvalidReason.WRONG_ZONE

    @pytest.mark.parametrize("submit", [
        lambda p: [held(p, "4S")],
        lambda p: [held(p, "KC"), held(p, "4S")],
        lambda p: [held(p, "AH")],
        lambda p: [Card(Rank.KING, Suit.SPADES)],
    ])
    def test_rejection_changes_nothing(self, submit):
        game = arrange(self.game, {"p0": (["4S", "KC"], ["AH"], ["3D"])}, pile=["QD"])
        p0 = game.get_player("p0")
        before = snapshot(game)
        state_before = game.get_state("p0")

        result = game.play_turn(p0, submit(p0))

        assert not result.ok
        assert snapshot(game) == before
        assert game.get_state("p0") == state_before

    def test_already_finished_is_a_no_op(self):
        game = arrange(make_game(3), {"p1": ()})
        p1 = game.get_player("p1")
        before = snapshot(game)

        result = game.play_turn(p1, [])

        assert result.outcome == TurnOutcome.ALREADY_FINISHED
        assert not result.ok
        assert snapshot(game) == before


class TestPickUp:

    def test_two_player_pickup(self):
        game = arrange(make_game(2), {"p0": (["3S"],)}, pile=["KC", "QD", "AH"])
        p0 = game.get_player("p0")

        result = game.play_turn(p0, [])

        assert result.outcome == TurnOutcome.PICKED_UP
        assert len(result.cards) == 3
        assert game.pile == []
        assert len(p0.hand) == 4
        assert game.current_player().id == "p1"
        assert "picks up the pile (3 cards)" in result.message

    def test_pickup_of_empty_pile(self):
        game = arrange(make_game(2), {"p0": (["3S"],)})
        p0 = game.get_player("p0")

        result = game.play_turn(p0, [])

        assert result.outcome == TurnOutcome.PICKED_UP
        assert result.cards == []
        assert game.current_player().id == "p1"

    def test_pickup_skips_finished_players(self):
        game = arrange(make_game(3), {"p1": ()}, pile=["KC"])

        game.play_turn(game.get_player("p0"), [])

        assert game.current_player().id == "p2"


class TestBurns:

    def test_ten_burns_and_keeps_turn(self):
        game = arrange(make_game(2), {"p0": (["10H", "4C"],)}, pile=["KC", "QD", "9S"])
        p0 = game.get_player("p0")
        ten = held(p0, "10H")

        result = game.play_turn(p0, [ten])

        assert result.burned and result.extra_turn
        assert game.pile == []
        assert len(game.discard) == 4
        assert ten in game.discard
        assert game.current_player() is p0
        assert "burns the pile" in result.message
        assert "takes another turn" in result.message

    def test_ten_on_empty_pile(self):
        game = arrange(make_game(2), {"p0": (["10H", "4C"],)})
        p0 = game.get_player("p0")

        result = game.play_turn(p0, [held(p0, "10H")])

        assert result.burned
        assert game.discard == [result.cards[0]]

    def test_four_fives_burn(self):
        game = arrange(make_game(3), {"p0": (["5S", "JC"],)}, pile=["5C", "5D", "5H"])
        p0 = game.get_player("p0")

        result = game.play_turn(p0, [held(p0, "5S")])

        assert result.burned and result.extra_turn
        assert result.skipped == 0
        assert game.pile == []
        assert game.current_player() is p0

    def test_four_of_a_kind_across_players(self):
        game = arrange(make_game(2), {"p0": (["9H", "9S", "QC"],)}, pile=["4C", "9C", "9D"])
        p0 = game.get_player("p0")

        result = game.play_turn(p0, [held(p0, "9H"), held(p0, "9S")])

        assert result.burned
        assert len(game.discard) == 5
        assert game.current_player() is p0

    def test_three_of_a_kind_does_not_burn(self):
        game = arrange(make_game(2), {"p0": (["9H", "QC"],)}, pile=["9C", "9D"])
        p0 = game.get_player("p0")

        result = game.play_turn(p0, [held(p0, "9H")])

        assert not result.burned
        assert len(game.pile) == 3
        assert game.current_player().id == "p1"

    def test_four_eights_burn(self):
        game = arrange(make_game(2), {"p0": (["8H", "QC"],)}, pile=["KS", "8C", "8D", "8S"])
        p0 = game.get_player("p0")

        result = game.play_turn(p0, [held(p0, "8H")])

        assert result.burned
        assert game.pile == []


class TestTwos:

    def test_two_keeps_turn_without_clearing(self):
        game = arrange(make_game(2), {"p0": (["2H", "4C"],)}, pile=["KC"])
        p0 = game.get_player("p0")

        result = game.play_turn(p0, [held(p0, "2H")])

        assert result.extra_turn
        assert not result.burned
        assert [c.rank for c in game.pile] == [Rank.KING, Rank.TWO]
        assert game.current_player() is p0
        assert "takes another turn" in result.message
        assert "reset" not in result.message

    def test_low_card_follows_a_two(self):
        game = arrange(make_game(2), {"p0": (["2H", "3C", "QD"],)}, pile=["AC"], deck=[])
        p0 = game.get_player("p0")

        game.play_turn(p0, [held(p0, "2H")])
        result = game.play_turn(p0, [held(p0, "3C")])

        assert result.outcome == TurnOutcome.PLAYED
        assert game.current_player().id == "p1"


class TestFives:

    def setup_method(self):
        self.game = make_game(4)

    def test_one_five_skips_one(self):
        game = arrange(self.game, {"p0": (["5S", "KC"],)})
        result = game.play_turn(game.get_player("p0"), [held(game.get_player("p0"), "5S")])

        assert result.skipped == 1
        assert game.current_player().id == "p2"
        assert "skips 1 player(s)" in result.message

    def test_two_fives_skip_two(self):
        game = arrange(self.game, {"p0": (["5S", "5H", "KC"],)})
        p0 = game.get_player("p0")

        result = game.play_turn(p0, [held(p0, "5S"), held(p0, "5H")])

        assert result.skipped == 2
        assert game.current_player().id == "p3"

    def test_three_fives_wrap_around(self):
        game = arrange(self.game, {"p0": (["5S", "5H", "5D", "KC"],)})
        p0 = game.get_player("p0")

        game.play_turn(p0, [held(p0, "5S"), held(p0, "5H"), held(p0, "5D")])

        assert game.current_player().id == "p0"

    def test_skip_steps_over_finished_players(self):
        game = arrange(self.game, {"p0": (["5S", "KC"],), "p1": ()})
        p0 = game.get_player("p0")

        game.play_turn(p0, [held(p0, "5S")])

        assert game.current_player().id == "p3"


# =============================================================================
# Replenish and Zone Progression Tests
# =============================================================================

class TestZones:

    def test_hand_refills_to_three(self):
        game = arrange(make_game(2), {"p0": (["3C", "4C", "6C"],)})
        p0 = game.get_player("p0")
        deck_before = game.deck.cards_remaining()

        game.play_turn(p0, [held(p0, "3C")])

        assert len(p0.hand) == 3
        assert game.deck.cards_remaining() == deck_before - 1

    def test_refill_stops_when_deck_runs_out(self):
        game = arrange(make_game(2), {"p0": (["3C", "3D", "6C"], ["KH"])}, deck=["JS"])
        p0 = game.get_player("p0")

        game.play_turn(p0, [held(p0, "3C"), held(p0, "3D")])

        assert [str(c) for c in p0.hand] == ["6♣", "J♠"]
        assert game.deck.cards_remaining() == 0

    def test_face_up_moves_into_hand(self):
        game = arrange(
            make_game(2),
            {"p0": (["4C"], ["9H", "KC"], ["3D", "6S", "JH"])},
            deck=[],
        )
        p0 = game.get_player("p0")
        face_down = list(p0.face_down)

        game.play_turn(p0, [held(p0, "4C")])

        assert sorted(str(c) for c in p0.hand) == ["9♥", "K♣"]
        assert p0.face_up == []
        assert p0.face_down == face_down

    def test_plays_from_face_up_when_hand_empty(self):
        game = arrange(make_game(2), {"p0": ([], ["9H", "KC"], ["3D"])}, deck=[])
        p0 = game.get_player("p0")

        result = game.play_turn(p0, [held(p0, "9H")])

        assert result.outcome == TurnOutcome.PLAYED
        assert [str(c) for c in p0.hand] == ["K♣"]
        assert p0.face_up == []

    def test_blind_draw_from_face_down(self):
        game = arrange(make_game(2), {"p0": (["4C"], [], ["6D", "JS", "3H"])}, deck=[])
        p0 = game.get_player("p0")

        game.play_turn(p0, [held(p0, "4C")])

        assert [str(c) for c in p0.hand] == ["3♥"]
        assert [str(c) for c in p0.face_down] == ["6♦", "J♠"]

    def test_blind_card_can_be_illegal(self):
        game = arrange(make_game(2), {"p0": (["3H"], [], ["6D"])}, pile=["KS"], deck=[])
        p0 = game.get_player("p0")

        result = game.play_turn(p0, [held(p0, "3H")])
        assert result.reason == InvalidReason.ILLEGAL_CARD

        result = game.play_turn(p0, [])
        assert result.outcome == TurnOutcome.PICKED_UP
        assert len(p0.hand) == 2


# =============================================================================
# Finishing and Game Over Tests
# =============================================================================

class TestFinishing:

    def test_last_card_finishes_player(self):
        game = arrange(make_game(3), {"p0": (["4C"],)}, deck=[])
        p0 = game.get_player("p0")

        result = game.play_turn(p0, [held(p0, "4C")])

        assert result.finished
        assert p0.finished
        assert not p0.has_cards()
        assert game.finish_order == ["p0"]
        assert game.current_player().id == "p1"
        assert game.phase == GamePhase.PLAYING
        assert "goes out" in result.message

    def test_finishing_on_a_ten_passes_the_turn(self):
        game = arrange(make_game(3), {"p0": (["10C"],)}, pile=["9D"], deck=[])
        p0 = game.get_player("p0")

        result = game.play_turn(p0, [held(p0, "10C")])

        assert result.burned and result.finished
        assert not result.extra_turn
        assert game.current_player().id == "p1"

    def test_finishing_on_a_five_ignores_skip(self):
        game = arrange(make_game(3), {"p0": (["5C"],)}, deck=[])
        p0 = game.get_player("p0")

        result = game.play_turn(p0, [held(p0, "5C")])

        assert result.skipped == 0
        assert game.current_player().id == "p1"

    def test_finished_never_reverts(self):
        game = arrange(make_game(3), {"p0": (["4C"],)}, deck=[])
        p0 = game.get_player("p0")
        game.play_turn(p0, [held(p0, "4C")])

        result = game.play_turn(p0, [])

        assert result.outcome == TurnOutcome.ALREADY_FINISHED
        assert p0.finished
        assert p0.hand == []

    def test_game_over_names_winner_and_loser(self):
        game = arrange(make_game(2), {"p0": (["4C"],), "p1": (["KD", "3S"],)}, deck=[])
        p0, p1 = game.get_player("p0"), game.get_player("p1")

        game.play_turn(p0, [held(p0, "4C")])

        assert game.is_game_over()
        assert game.phase == GamePhase.GAME_OVER
        assert game.winner() is p0
        assert game.loser() is p1

        state = game.get_state()
        assert state["winner_id"] == "p0"
        assert state["loser_id"] == "p1"

    def test_no_moves_after_game_over(self):
        game = arrange(make_game(2), {"p0": (["4C"],), "p1": (["KD"],)}, deck=[])
        game.play_turn(game.get_player("p0"), [held(game.get_player("p0"), "4C")])
        p1 = game.get_player("p1")
        before = snapshot(game)

        result = game.play_turn(p1, [held(p1, "KD")])

        assert result.reason == InvalidReason.WRONG_PHASE
        assert snapshot(game) == before

    def test_no_loser_before_game_over(self):
        game = make_game(3)
        assert game.loser() is None
        assert game.winner() is None


class TestAdvance:

    def test_wraps_around(self):
        game = arrange(make_game(3), current=2)
        game.advance_player(1)
        assert game.current_player_index == 0

    def test_skips_finished(self):
        game = arrange(make_game(3), {"p1": ()})
        game.advance_player(1)
        assert game.current_player_index == 2
        game.advance_player(2)
        assert game.current_player_index == 2

    def test_no_active_players_leaves_index(self):
        game = arrange(make_game(2), current=1)
        for p in game.players:
            p.finished = True
        game.advance_player(1)
        assert game.current_player_index == 1


# =============================================================================
# State Snapshot Tests
# =============================================================================

class TestGetState:

    def test_only_own_hand_revealed(self):
        game = make_game(3)
        state = game.get_state("p1")

        by_id = {p["id"]: p for p in state["players"]}
        assert "hand" in by_id["p1"]
        assert "hand" not in by_id["p0"]
        assert by_id["p0"]["hand_count"] == 3
        assert by_id["p0"]["face_down_count"] == 3
        assert len(by_id["p0"]["face_up"]) == 3

    def test_spectator_sees_no_hands(self):
        state = make_game(2).get_state()
        assert all("hand" not in p for p in state["players"])

    def test_counts(self):
        game = arrange(make_game(2), pile=["3C", "8D"])
        state = game.get_state("p0")

        assert state["phase"] == "playing"
        assert state["pile_size"] == 2
        assert state["pile_top"]["label"] == "8♦"
        assert state["effective_top"]["label"] == "3♣"
        assert state["discard_size"] == 0
        assert state["deck_remaining"] == game.deck.cards_remaining()
        assert state["current_player_id"] == "p0"

    def test_last_action_recorded(self):
        game = arrange(make_game(2), {"p0": (["6S", "KC"],)})
        p0 = game.get_player("p0")
        result = game.play_turn(p0, [held(p0, "6S")])

        assert game.get_state()["last_action"] == result.message

    def test_turn_result_to_dict(self):
        game = arrange(make_game(2), {"p0": (["6S", "KC"],)})
        p0 = game.get_player("p0")

        data = game.play_turn(p0, [held(p0, "6S")]).to_dict()

        assert data["outcome"] == "played"
        assert data["player_id"] == "p0"
        assert data["cards"] == [{"rank": 6, "suit": "spades", "label": "6♠"}]
        assert data["reason"] is None
        assert data["offending_card"] is None
        assert data["offending_rank"] is None

    def test_rejected_turn_to_dict_names_offender(self):
        game = arrange(make_game(2), {"p0": (["6S", "9H", "KD"],)})
        p0 = game.get_player("p0")

        data = game.play_turn(p0, [held(p0, "6S"), held(p0, "9H")]).to_dict()

        assert data["outcome"] == "invalid_move"
        assert data["reason"] == "mixed_ranks"
        assert data["offending_card"]["label"] == "9♥"
        assert data["offending_rank"] == 9


# =============================================================================
# Conservation Tests
# =============================================================================

class TestConservation:

    def test_total_survives_a_sequence_of_turns(self):
        game = arrange(
            make_game(3),
            {"p0": (["10H", "5C", "KD"],), "p1": (["2S", "9C"],), "p2": (["QH", "QS"],)},
        )
        p0, p1, p2 = game.players

        game.play_turn(p0, [held(p0, "10H")])
        assert game.total_cards() == 52
        game.play_turn(p0, [held(p0, "5C")])
        assert game.total_cards() == 52
        game.play_turn(p2, [held(p2, "QH"), held(p2, "QS")])
        assert game.total_cards() == 52
        game.play_turn(p0, [])
        assert game.total_cards() == 52

    def test_finished_players_hold_nothing(self):
        game = arrange(make_game(3), {"p0": (["4C"],)}, deck=[])
        game.play_turn(game.get_player("p0"), [held(game.get_player("p0"), "4C")])

        for p in game.players:
            if p.finished:
                assert p.hand == p.face_up == p.face_down == []
