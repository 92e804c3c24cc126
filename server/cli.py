"""
Terminal Shithead: one human against CPU players.

Usage:
    python cli.py [num_cpu] [seed]

Examples:
    python cli.py          # You against one CPU
    python cli.py 3 42     # You against three CPUs, reproducible deal

On your turn enter the hand positions of the cards to play, separated by
commas (they must share a rank), or "p" to pick up the pile.
"""

import sys
from typing import Optional

from ai import CPU_PROFILES, ShitheadAI
from constants import MAX_PLAYERS
from game import Card, Game, GamePhase, Player, TurnOutcome, format_cards

HUMAN_ID = "you"
PICKUP_WORDS = ("p", "pickup", "pick up")


def parse_selection(text: str, hand: list[Card]) -> Optional[list[Card]]:
    """
    Turn a typed selection into the cards to play.

    Args:
        text: Raw user input, e.g. "0,2" or "p".
        hand: The player's current hand, in displayed order.

    Returns:
        The selected cards (empty list to pick up), or None if the input
        is not understood.
    """
    text = text.strip().lower()
    if text in PICKUP_WORDS:
        return []
    if not text:
        return None

    indexes = []
    for part in text.replace(" ", ",").split(","):
        if not part:
            continue
        if not part.isdigit():
            return None
        idx = int(part)
        if idx >= len(hand) or idx in indexes:
            return None
        indexes.append(idx)
    if not indexes:
        return None
    return [hand[i] for i in indexes]


def render_state(game: Game, viewer: Player) -> str:
    """Build the text shown before the human's turn."""
    top = game.pile[-1] if game.pile else None
    effective = game.top_effective_card()
    lines = [
        "",
        f"Pile: {top or '(empty)'}"
        + (f"  (play on {effective})" if effective and effective is not top else "")
        + f"  [{len(game.pile)} cards]",
        f"Deck: {game.deck.cards_remaining()}  Burned: {len(game.discard)}",
    ]
    for player in game.players:
        if player is viewer:
            continue
        status = "out" if player.finished else (
            f"hand {len(player.hand)}, up [{format_cards(player.face_up)}], "
            f"down {len(player.face_down)}"
        )
        lines.append(f"  {player.name}: {status}")
    lines.append(
        "Your hand: "
        + " | ".join(f"{i}: {c}" for i, c in enumerate(viewer.hand))
    )
    lines.append(f"Your face-up: {format_cards(viewer.face_up) or '-'}")
    lines.append(f"Your face-down: {len(viewer.face_down)} cards")
    return "\n".join(lines)


def create_game(num_cpu: int, seed: Optional[int] = None) -> Game:
    """Seat the human first, then CPU players."""
    num_cpu = max(1, min(num_cpu, MAX_PLAYERS - 1, len(CPU_PROFILES)))
    players = [Player(id=HUMAN_ID, name="You")]
    for profile in CPU_PROFILES[:num_cpu]:
        players.append(Player(id=profile.name.lower(), name=profile.name))
    return Game(players, seed=seed)


def human_turn(game: Game, player: Player, read=None, write=None) -> None:
    """Prompt until the human makes an accepted move."""
    read = read or input
    write = write or print
    while True:
        write(render_state(game, player))
        answer = read("Play positions (e.g. 0,1) or 'p' to pick up: ")
        cards = parse_selection(answer, player.hand)
        if cards is None:
            write("Invalid input.")
            continue
        result = game.play_turn(player, cards)
        if result.outcome == TurnOutcome.INVALID_MOVE:
            write(f"Not allowed: {result.message}")
            continue
        write(result.message)
        return


def play(game: Game, read=None, write=None) -> None:
    """
    Run a whole match in the terminal.

    Args:
        game: A match with the human seated as HUMAN_ID.
        read: Prompt function, input() by default.
        write: Output function, print() by default.
    """
    read = read or input
    write = write or print
    profiles = {p.name.lower(): p for p in CPU_PROFILES}
    write("Welcome to Shithead!")

    while game.phase == GamePhase.PLAYING:
        current = game.current_player()
        if current.id == HUMAN_ID:
            human_turn(game, current, read, write)
        else:
            cards = ShitheadAI.choose_play(game, current, profiles[current.id])
            result = game.play_turn(current, cards)
            write(result.message)

    winner = game.winner()
    loser = game.loser()
    write("")
    write(f"{winner.name if winner else 'Nobody'} went out first.")
    if loser is not None:
        write(f"{loser.name} is the shithead!")


def main(argv: list[str]) -> int:
    try:
        num_cpu = int(argv[1]) if len(argv) > 1 else 1
        seed = int(argv[2]) if len(argv) > 2 else None
    except ValueError:
        print(__doc__)
        return 2

    try:
        play(create_game(num_cpu, seed))
    except (KeyboardInterrupt, EOFError):
        print("\nBye.")
    return 0


def run() -> None:
    """Console script entry point."""
    sys.exit(main(sys.argv))


if __name__ == "__main__":
    run()
