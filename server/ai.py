"""AI personalities for CPU players in Shithead."""

import asyncio
import logging
import os
import random
from collections import defaultdict
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from constants import BURN_RANK, WILD_RANK
from game import Card, Game, Player, TurnResult, default_swap_policy


# Set AI_DEBUG=1 environment variable to enable detailed AI decision logging
AI_DEBUG = os.environ.get("AI_DEBUG", "0") == "1"

ai_logger = logging.getLogger("shithead.ai")
if AI_DEBUG:
    ai_logger.setLevel(logging.DEBUG)


def ai_log(message: str):
    """Log AI decision info when AI_DEBUG is enabled."""
    if AI_DEBUG:
        ai_logger.debug(message)


# =============================================================================
# CPU Turn Timing Configuration (seconds)
# =============================================================================

CPU_TIMING = {
    # Delay before CPU "looks at" the pile
    "initial_look": (0.3, 0.5),
    # Consideration time before laying cards down
    "consider": (0.2, 0.4),
    # Pause after the play so clients can animate it
    "post_action_pause": (0.5, 0.7),
}

# Ranks a careful player keeps for when nothing else goes
POWER_RANKS = (WILD_RANK, BURN_RANK)


@dataclass
class CPUProfile:
    """Pre-defined CPU player profile with personality traits."""
    name: str
    style: str  # Brief description shown to players
    # Keep 2s and 10s until no other card is playable
    hold_power_cards: bool
    # Wildcard factor: chance of playing a random legal group (0.0-0.3)
    unpredictability: float

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "style": self.style,
        }


CPU_PROFILES = [
    CPUProfile(
        name="Dora",
        style="Patient Hoarder",
        hold_power_cards=True,
        unpredictability=0.02,
    ),
    CPUProfile(
        name="Ozzie",
        style="Burn Happy",
        hold_power_cards=False,
        unpredictability=0.1,
    ),
    CPUProfile(
        name="Priya",
        style="Steady Eddie",
        hold_power_cards=True,
        unpredictability=0.05,
    ),
    CPUProfile(
        name="Tomasz",
        style="Risk Taker",
        hold_power_cards=False,
        unpredictability=0.2,
    ),
    CPUProfile(
        name="Bea",
        style="Chaotic Gambler",
        hold_power_cards=False,
        unpredictability=0.28,
    ),
    CPUProfile(
        name="Hank",
        style="Adaptive Strategist",
        hold_power_cards=True,
        unpredictability=0.08,
    ),
]

DEFAULT_PROFILE = CPUProfile("CPU", "Balanced", True, 0.0)


def pick_profile(used_names: set[str], name: Optional[str] = None) -> Optional[CPUProfile]:
    """
    Choose a profile not already used in a room.

    Args:
        used_names: Profile names already taken in the room.
        name: Specific profile to request, or None for a random one.

    Returns:
        The chosen profile, or None if none is available.
    """
    available = [p for p in CPU_PROFILES if p.name not in used_names]
    if name is not None:
        available = [p for p in available if p.name == name]
    if not available:
        return None
    return random.choice(available)


def get_all_profiles() -> list[dict]:
    """Get all CPU profiles for display."""
    return [p.to_dict() for p in CPU_PROFILES]


class ShitheadAI:
    """AI decision-making for Shithead."""

    @staticmethod
    def choose_swaps(player: Player) -> None:
        """Pre-play swap: keep low cards in hand, high cards face up."""
        default_swap_policy(player)

    @staticmethod
    def playable_groups(game: Game, player: Player) -> dict[int, list[Card]]:
        """Group the legal cards of the player's active zone by rank."""
        groups: dict[int, list[Card]] = defaultdict(list)
        zone = player.active_zone()
        # A face-down card is played blind: only one at a time
        if zone is player.face_down:
            zone = zone[-1:]
        for card in zone:
            if game.is_playable(card):
                groups[int(card.rank)].append(card)
        return dict(groups)

    @staticmethod
    def choose_play(game: Game, player: Player, profile: CPUProfile = DEFAULT_PROFILE) -> list[Card]:
        """
        Pick the cards to lay down this turn.

        Plays every card of the lowest playable rank. Profiles that hold
        power cards only spend a 2 or 10 when nothing else is legal.

        Returns:
            Cards to play, or an empty list to pick up the pile.
        """
        groups = ShitheadAI.playable_groups(game, player)
        if not groups:
            ai_log(f"{player.name}: nothing playable, picking up")
            return []

        ranks = sorted(groups)
        if random.random() < profile.unpredictability:
            rank = random.choice(ranks)
            ai_log(f"{player.name}: unpredictable play of rank {rank}")
            return list(groups[rank])

        if profile.hold_power_cards:
            ordinary = [r for r in ranks if r not in POWER_RANKS]
            if ordinary:
                ranks = ordinary

        rank = ranks[0]
        ai_log(f"{player.name}: playing lowest rank {rank} from {sorted(groups)}")
        return list(groups[rank])


async def process_cpu_turn(
    game: Game,
    cpu_player: Player,
    profile: Optional[CPUProfile],
    broadcast_callback: Callable[[TurnResult], Awaitable[None]],
    delay_scale: float = 1.0,
) -> TurnResult:
    """
    Process a complete turn for a CPU player.

    Args:
        game: The match in progress.
        cpu_player: The CPU player whose turn it is.
        profile: Personality to play with (default profile if None).
        broadcast_callback: Awaited with the turn result after the play.
        delay_scale: Multiplier on the "thinking" pauses (0 for none).

    Returns:
        The TurnResult of the play.
    """
    profile = profile or DEFAULT_PROFILE

    async def pause(key: str) -> None:
        low, high = CPU_TIMING[key]
        if delay_scale > 0:
            await asyncio.sleep(random.uniform(low, high) * delay_scale)

    await pause("initial_look")
    cards = ShitheadAI.choose_play(game, cpu_player, profile)
    await pause("consider")

    result = game.play_turn(cpu_player, cards)
    if not result.ok:
        # choose_play only offers legal cards, so fall back to picking up
        ai_logger.warning(
            f"AI {cpu_player.name} move rejected ({result.message}), picking up instead"
        )
        result = game.play_turn(cpu_player, [])

    ai_log(result.message)
    await broadcast_callback(result)
    await pause("post_action_pause")
    return result
