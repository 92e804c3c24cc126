"""
Shithead AI Simulation Runner

Runs CPU-vs-CPU matches to see how the personalities fare and to exercise
the rules engine end to end. No server/websocket needed - runs games directly.

Usage:
    python simulate.py [num_games] [num_players]

Examples:
    python simulate.py 10        # Run 10 games with 4 players each
    python simulate.py 50 2      # Run 50 games with 2 players each
"""

import sys
from typing import Optional

from ai import CPU_PROFILES, CPUProfile, ShitheadAI
from constants import DECK_SIZE
from game import Game, GamePhase, Player, TurnOutcome

# Safety valve for pathological pick-up loops
MAX_TURNS = 2000


class SimulationStats:
    """Track simulation statistics."""

    def __init__(self):
        self.games_played = 0
        self.unfinished_games = 0
        self.total_turns = 0
        self.pickups = 0
        self.burns = 0
        self.losses: dict[str, int] = {}
        self.wins: dict[str, int] = {}

    def record_turn(self, outcome: TurnOutcome, burned: bool):
        self.total_turns += 1
        if outcome == TurnOutcome.PICKED_UP:
            self.pickups += 1
        if burned:
            self.burns += 1

    def record_game(self, game: Game):
        self.games_played += 1
        if game.phase != GamePhase.GAME_OVER:
            self.unfinished_games += 1
            return
        winner = game.winner()
        loser = game.loser()
        if winner:
            self.wins[winner.name] = self.wins.get(winner.name, 0) + 1
        if loser:
            self.losses[loser.name] = self.losses.get(loser.name, 0) + 1

    def report(self) -> str:
        lines = [
            "=" * 50,
            "SIMULATION RESULTS",
            "=" * 50,
            f"Games played: {self.games_played}",
            f"Unfinished (turn cap): {self.unfinished_games}",
            f"Total turns: {self.total_turns}",
            f"Avg turns/game: {self.total_turns / max(1, self.games_played):.1f}",
            f"Pickups: {self.pickups}  Burns: {self.burns}",
            "",
            "WINS (first out):",
        ]
        for name, count in sorted(self.wins.items(), key=lambda x: -x[1]):
            lines.append(f"  {name}: {count}")
        lines.append("")
        lines.append("SHITHEADS (last with cards):")
        for name, count in sorted(self.losses.items(), key=lambda x: -x[1]):
            pct = count / max(1, self.games_played) * 100
            lines.append(f"  {name}: {count} ({pct:.1f}%)")
        return "\n".join(lines)


def create_cpu_players(num_players: int) -> list[tuple[Player, CPUProfile]]:
    """Seat the first num_players profiles."""
    return [
        (Player(id=profile.name.lower(), name=profile.name), profile)
        for profile in CPU_PROFILES[:num_players]
    ]


def run_game(
    num_players: int = 4,
    seed: Optional[int] = None,
    stats: Optional[SimulationStats] = None,
) -> Game:
    """
    Play one CPU-only match to completion (or the turn cap).

    Raises:
        RuntimeError: If a CPU move is rejected or a turn loses or
            duplicates a card.
    """
    seated = create_cpu_players(num_players)
    profiles = {player.id: profile for player, profile in seated}
    game = Game([player for player, _ in seated], seed=seed)

    turns = 0
    while game.phase == GamePhase.PLAYING and turns < MAX_TURNS:
        current = game.current_player()
        cards = ShitheadAI.choose_play(game, current, profiles[current.id])
        result = game.play_turn(current, cards)
        if not result.ok:
            raise RuntimeError(f"CPU made an illegal move: {result.message}")
        if game.total_cards() != DECK_SIZE:
            raise RuntimeError(f"Card count drifted to {game.total_cards()}")
        if stats:
            stats.record_turn(result.outcome, result.burned)
        turns += 1

    if stats:
        stats.record_game(game)
    return game


def run_simulation(num_games: int, num_players: int) -> SimulationStats:
    stats = SimulationStats()
    for i in range(num_games):
        run_game(num_players, seed=i, stats=stats)
    return stats


if __name__ == "__main__":
    num_games = int(sys.argv[1]) if len(sys.argv) > 1 else 10
    num_players = int(sys.argv[2]) if len(sys.argv) > 2 else 4

    print(f"Running {num_games} games with {num_players} players...")
    print(run_simulation(num_games, num_players).report())
