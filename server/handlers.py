"""WebSocket message handlers for the Shithead card game.

Each handler corresponds to a single message type from the client.
Handlers are dispatched via the HANDLERS dict in main.py.

Every handler that touches a Game does so while holding the room's
game_lock, and turn actions are checked against the current player before
they reach the engine.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import WebSocket

from ai import get_all_profiles
from constants import MAX_PLAYERS, MIN_PLAYERS
from game import Card, GamePhase, TurnOutcome
from logging_config import game_id_var, get_logger
from room import Room

logger = get_logger(__name__)


@dataclass
class ConnectionContext:
    """State tracked per WebSocket connection."""

    websocket: WebSocket
    connection_id: str
    player_id: str
    current_room: Optional[Room] = None


async def send_error(ctx: ConnectionContext, message: str, reason: Optional[str] = None, **details) -> None:
    payload = {"type": "error", "message": message}
    if reason:
        payload["reason"] = reason
    payload.update(details)
    await ctx.websocket.send_json(payload)


def resolve_cards(player, raw_cards) -> Optional[list[Card]]:
    """
    Map client card descriptions to the instances the player holds.

    Args:
        player: The game.Player submitting the cards.
        raw_cards: List of {"rank": int, "suit": str} dicts.

    Returns:
        The held cards in submission order, or None if any is malformed or
        not held.
    """
    if not isinstance(raw_cards, list):
        return None
    cards = []
    for raw in raw_cards:
        if not isinstance(raw, dict):
            return None
        try:
            rank = int(raw.get("rank"))
        except (TypeError, ValueError):
            return None
        card = player.find_card(rank, str(raw.get("suit", "")))
        if card is None:
            return None
        cards.append(card)
    return cards


# ---------------------------------------------------------------------------
# Lobby / Room handlers
# ---------------------------------------------------------------------------

async def handle_create_room(data: dict, ctx: ConnectionContext, *, room_manager, **kw) -> None:
    player_name = data.get("player_name", "Player")
    room = room_manager.create_room()
    room.add_player(ctx.player_id, player_name, ctx.websocket)
    ctx.current_room = room

    await ctx.websocket.send_json({
        "type": "room_created",
        "room_code": room.code,
        "player_id": ctx.player_id,
    })

    await room.broadcast({
        "type": "player_joined",
        "players": room.player_list(),
    })


async def handle_join_room(data: dict, ctx: ConnectionContext, *, room_manager, **kw) -> None:
    room_code = data.get("room_code")
    player_name = data.get("player_name", "Player")
    if not isinstance(room_code, str):
        await send_error(ctx, "Room not found")
        return

    room = room_manager.get_room(room_code.upper())
    if not room:
        await send_error(ctx, "Room not found")
        return

    if len(room.players) >= MAX_PLAYERS:
        await send_error(ctx, "Room is full")
        return

    if room.game is not None:
        await send_error(ctx, "Game already in progress")
        return

    room.add_player(ctx.player_id, player_name, ctx.websocket)
    ctx.current_room = room

    await ctx.websocket.send_json({
        "type": "room_joined",
        "room_code": room.code,
        "player_id": ctx.player_id,
    })

    await room.broadcast({
        "type": "player_joined",
        "players": room.player_list(),
    })


async def handle_get_cpu_profiles(data: dict, ctx: ConnectionContext, **kw) -> None:
    if not ctx.current_room:
        return
    await ctx.websocket.send_json({
        "type": "cpu_profiles",
        "profiles": get_all_profiles(),
    })


async def handle_add_cpu(data: dict, ctx: ConnectionContext, **kw) -> None:
    if not ctx.current_room:
        return

    room_player = ctx.current_room.get_player(ctx.player_id)
    if not room_player or not room_player.is_host:
        await send_error(ctx, "Only the host can add CPU players")
        return

    if ctx.current_room.game is not None:
        await send_error(ctx, "Game already in progress")
        return

    if len(ctx.current_room.players) >= MAX_PLAYERS:
        await send_error(ctx, "Room is full")
        return

    cpu_id = f"cpu_{uuid.uuid4().hex[:8]}"
    cpu_player = ctx.current_room.add_cpu_player(cpu_id, data.get("profile_name"))
    if not cpu_player:
        await send_error(ctx, "CPU profile not available")
        return

    await ctx.current_room.broadcast({
        "type": "player_joined",
        "players": ctx.current_room.player_list(),
    })


async def handle_remove_cpu(data: dict, ctx: ConnectionContext, **kw) -> None:
    if not ctx.current_room:
        return

    room_player = ctx.current_room.get_player(ctx.player_id)
    if not room_player or not room_player.is_host or ctx.current_room.game is not None:
        return

    cpu_players = ctx.current_room.get_cpu_players()
    if cpu_players:
        ctx.current_room.remove_player(cpu_players[-1].id)
        await ctx.current_room.broadcast({
            "type": "player_joined",
            "players": ctx.current_room.player_list(),
        })


# ---------------------------------------------------------------------------
# Game lifecycle handlers
# ---------------------------------------------------------------------------

async def handle_start_game(data: dict, ctx: ConnectionContext, *, broadcast_game_state, check_and_run_cpu_turn, interactive_swap=False, **kw) -> None:
    room = ctx.current_room
    if not room:
        return

    room_player = room.get_player(ctx.player_id)
    if not room_player or not room_player.is_host:
        await send_error(ctx, "Only the host can start the game")
        return

    if len(room.players) < MIN_PLAYERS:
        await send_error(ctx, f"Need at least {MIN_PLAYERS} players")
        return

    if room.in_progress():
        await send_error(ctx, "Game already in progress")
        return

    async with room.game_lock:
        game = room.start_game(interactive_swap=interactive_swap)
        game_id_var.set(f"{room.code}-{game.deck.seed}")

        for pid, player in room.players.items():
            if player.websocket and not player.is_cpu:
                await player.websocket.send_json({
                    "type": "game_started",
                    "game_state": room.game.get_state(pid),
                })

        await check_and_run_cpu_turn(room)


async def handle_swap_cards(data: dict, ctx: ConnectionContext, *, broadcast_game_state, **kw) -> None:
    room = ctx.current_room
    if not room or room.game is None:
        return

    async with room.game_lock:
        game = room.game
        player = game.get_player(ctx.player_id)
        if player is None:
            return
        hand_card = resolve_cards(player, [data.get("hand_card")])
        face_up_card = resolve_cards(player, [data.get("face_up_card")])
        if not hand_card or not face_up_card or not game.swap_cards(
            ctx.player_id, hand_card[0], face_up_card[0]
        ):
            await send_error(ctx, "Cannot swap those cards", reason="invalid_swap")
            return
        room.touch()
        await broadcast_game_state(room)


async def handle_ready(data: dict, ctx: ConnectionContext, *, broadcast_game_state, check_and_run_cpu_turn, **kw) -> None:
    room = ctx.current_room
    if not room or room.game is None:
        return

    async with room.game_lock:
        if room.game.mark_ready(ctx.player_id):
            room.touch()
            await broadcast_game_state(room)
            if room.game.phase == GamePhase.PLAYING:
                await check_and_run_cpu_turn(room)


# ---------------------------------------------------------------------------
# Turn action handlers
# ---------------------------------------------------------------------------

async def _submit_turn(room: Room, ctx: ConnectionContext, raw_cards, *, broadcast_game_state, check_and_run_cpu_turn) -> None:
    async with room.game_lock:
        game = room.game
        if game is None or game.phase != GamePhase.PLAYING:
            await send_error(ctx, "No game in progress", reason="wrong_phase")
            return

        if game.current_player().id != ctx.player_id:
            await send_error(ctx, "Not your turn", reason="out_of_turn")
            return

        player = game.current_player()
        cards = resolve_cards(player, raw_cards)
        if cards is None:
            await send_error(ctx, "You do not hold those cards", reason="not_held")
            return

        result = game.play_turn(player, cards)
        if result.outcome == TurnOutcome.INVALID_MOVE:
            logger.with_context(room_code=room.code, player_id=ctx.player_id).debug(
                f"Rejected move ({result.reason.value}): {result.message}"
            )
            result_data = result.to_dict()
            await send_error(
                ctx, result.message, reason=result.reason.value,
                offending_card=result_data["offending_card"],
                offending_rank=result_data["offending_rank"],
            )
            return
        if result.outcome == TurnOutcome.ALREADY_FINISHED:
            await send_error(ctx, result.message, reason=result.outcome.value)
            return

        room.touch()
        await room.broadcast({"type": "turn_result", "result": result.to_dict()})
        await broadcast_game_state(room)
        await check_and_run_cpu_turn(room)


async def handle_play_cards(data: dict, ctx: ConnectionContext, *, broadcast_game_state, check_and_run_cpu_turn, **kw) -> None:
    if not ctx.current_room:
        return

    raw_cards = data.get("cards")
    if not raw_cards:
        await send_error(ctx, "Choose at least one card, or pick up the pile", reason="no_cards")
        return

    await _submit_turn(
        ctx.current_room, ctx, raw_cards,
        broadcast_game_state=broadcast_game_state,
        check_and_run_cpu_turn=check_and_run_cpu_turn,
    )


async def handle_pick_up(data: dict, ctx: ConnectionContext, *, broadcast_game_state, check_and_run_cpu_turn, **kw) -> None:
    if not ctx.current_room:
        return

    await _submit_turn(
        ctx.current_room, ctx, [],
        broadcast_game_state=broadcast_game_state,
        check_and_run_cpu_turn=check_and_run_cpu_turn,
    )


# ---------------------------------------------------------------------------
# Leave / End handlers
# ---------------------------------------------------------------------------

async def handle_leave_room(data: dict, ctx: ConnectionContext, *, handle_player_leave, **kw) -> None:
    if ctx.current_room:
        await handle_player_leave(ctx.current_room, ctx.player_id)
        ctx.current_room = None


async def handle_end_game(data: dict, ctx: ConnectionContext, *, room_manager, **kw) -> None:
    if not ctx.current_room:
        return

    room_player = ctx.current_room.get_player(ctx.player_id)
    if not room_player or not room_player.is_host:
        await send_error(ctx, "Only the host can end the game")
        return

    await ctx.current_room.broadcast({
        "type": "game_ended",
        "reason": "Host ended the game",
    })

    room_manager.close_room(ctx.current_room.code)
    ctx.current_room = None


# ---------------------------------------------------------------------------
# Handler dispatch table
# ---------------------------------------------------------------------------

HANDLERS = {
    "create_room": handle_create_room,
    "join_room": handle_join_room,
    "get_cpu_profiles": handle_get_cpu_profiles,
    "add_cpu": handle_add_cpu,
    "remove_cpu": handle_remove_cpu,
    "start_game": handle_start_game,
    "swap_cards": handle_swap_cards,
    "ready": handle_ready,
    "play_cards": handle_play_cards,
    "pick_up": handle_pick_up,
    "leave_room": handle_leave_room,
    "end_game": handle_end_game,
}
