"""FastAPI WebSocket server for the Shithead card game."""

import asyncio
import json
import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from ai import ShitheadAI, process_cpu_turn
from config import config
from game import GamePhase
from handlers import HANDLERS, ConnectionContext, send_error
from logging_config import player_id_var, room_code_var, setup_logging
from room import Room, RoomManager, utcnow
from routers.health import router as health_router

setup_logging(
    level=config.LOG_LEVEL,
    environment=config.ENVIRONMENT,
)
logger = logging.getLogger(__name__)


async def _sweep_idle_rooms(room_manager: RoomManager) -> None:
    """Periodic task closing rooms nobody has touched for ROOM_TIMEOUT_MINUTES."""
    while True:
        try:
            await asyncio.sleep(config.ROOM_SWEEP_SECONDS)
            for room in room_manager.expire_idle_rooms(utcnow(), config.ROOM_TIMEOUT_MINUTES):
                await room.broadcast({
                    "type": "game_ended",
                    "reason": "Room closed after inactivity",
                })
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error(f"Idle room sweep failed: {e}")


async def _close_all_websockets(room_manager: RoomManager) -> None:
    """Close all active WebSocket connections gracefully."""
    for room in list(room_manager.rooms.values()):
        for player in room.players.values():
            if player.websocket and not player.is_cpu:
                try:
                    await player.websocket.close(code=1001, reason="Server shutting down")
                except Exception as e:
                    logger.debug(f"Closing websocket for {player.id} failed: {e}")
    logger.info("All WebSocket connections closed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Own the room registry for the lifetime of the application."""
    room_manager = RoomManager()
    app.state.room_manager = room_manager
    sweep_task = asyncio.create_task(_sweep_idle_rooms(room_manager))
    logger.info(f"Shithead server started (environment={config.ENVIRONMENT})")

    yield

    logger.info("Shutdown initiated...")
    sweep_task.cancel()
    try:
        await sweep_task
    except asyncio.CancelledError:
        pass
    await _close_all_websockets(room_manager)
    room_manager.rooms.clear()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Shithead Card Game",
    debug=config.DEBUG,
    version="1.0.0",
    lifespan=lifespan,
)
app.include_router(health_router)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()
    room_manager: RoomManager = websocket.app.state.room_manager

    connection_id = str(uuid.uuid4())
    player_id_var.set(connection_id)
    logger.debug(f"WebSocket connected as {connection_id}")

    ctx = ConnectionContext(
        websocket=websocket,
        connection_id=connection_id,
        player_id=connection_id,
    )

    # Shared dependencies passed to every handler
    handler_deps = dict(
        room_manager=room_manager,
        broadcast_game_state=broadcast_game_state,
        check_and_run_cpu_turn=check_and_run_cpu_turn,
        handle_player_leave=lambda room, pid: handle_player_leave(room_manager, room, pid),
        interactive_swap=config.INTERACTIVE_SWAP,
    )

    try:
        while True:
            try:
                data = await websocket.receive_json()
            except json.JSONDecodeError:
                await send_error(ctx, "Malformed message")
                continue
            if not isinstance(data, dict):
                await send_error(ctx, "Malformed message")
                continue
            handler = HANDLERS.get(data.get("type"))
            if handler is None:
                await send_error(ctx, f"Unknown message type: {data.get('type')}")
                continue
            await handler(data, ctx, **handler_deps)
            room_code_var.set(ctx.current_room.code if ctx.current_room else None)
    except WebSocketDisconnect:
        logger.debug(f"WebSocket {connection_id} disconnected")
    except Exception as e:
        logger.error(f"WebSocket {connection_id} failed: {e}", exc_info=True)
    finally:
        # Every way out of the loop frees the seat
        if ctx.current_room:
            await handle_player_leave(room_manager, ctx.current_room, ctx.player_id)


async def broadcast_game_state(room: Room):
    """Send each human player their own view of the game."""
    game = room.game
    if game is None:
        return

    for pid, player in list(room.players.items()):
        if player.is_cpu or not player.websocket:
            continue

        await room.send_to(pid, {
            "type": "game_state",
            "game_state": game.get_state(pid),
        })

        if game.phase == GamePhase.GAME_OVER:
            winner = game.winner()
            loser = game.loser()
            await room.send_to(pid, {
                "type": "game_over",
                "finish_order": list(game.finish_order),
                "winner": winner.name if winner else None,
                "shithead": loser.name if loser else None,
            })
        elif game.phase == GamePhase.PLAYING and game.current_player().id == pid:
            await room.send_to(pid, {"type": "your_turn"})

    if game.phase == GamePhase.GAME_OVER:
        loser = game.loser()
        logger.info(
            f"Game over, shithead is {loser.name if loser else 'nobody'}",
            extra={"room_code": room.code},
        )


async def check_and_run_cpu_turn(room: Room):
    """
    Play CPU turns until a human is up or the game ends.

    Callers must hold room.game_lock.
    """
    while room.game is not None and room.game.phase == GamePhase.PLAYING:
        current = room.game.current_player()
        room_player = room.get_player(current.id)
        if not room_player or not room_player.is_cpu:
            return

        async def broadcast_cb(result):
            await room.broadcast({"type": "turn_result", "result": result.to_dict()})
            await broadcast_game_state(room)

        await process_cpu_turn(
            room.game,
            current,
            room_player.cpu_profile,
            broadcast_cb,
            delay_scale=config.CPU_DELAY_SCALE,
        )
        room.touch()


async def handle_player_leave(room_manager: RoomManager, room: Room, player_id: str):
    """
    Handle a player leaving a room.

    A player leaving mid-game has their seat taken over by a CPU so the
    match can continue for everyone else.
    """
    room_code = room.code
    room_player = room.get_player(player_id)
    if room_player is None:
        return

    if room.in_progress():
        async with room.game_lock:
            room_player.websocket = None
            room_player.is_cpu = True
            room_player.is_host = False
            if room.human_player_count() == 0:
                room_manager.close_room(room_code)
                return
            if not any(p.is_host for p in room.players.values()):
                next(p for p in room.players.values() if not p.is_cpu).is_host = True
            # The new CPU seat still owes its swap before play can begin
            if room.game.phase == GamePhase.SWAPPING:
                room.game.apply_swap_policy(player_id, ShitheadAI.choose_swaps)
                room.game.mark_ready(player_id)
            await room.broadcast({
                "type": "player_left",
                "player_id": player_id,
                "player_name": room_player.name,
                "players": room.player_list(),
            })
            await broadcast_game_state(room)
            await check_and_run_cpu_turn(room)
        return

    room.remove_player(player_id)
    if room.is_empty() or room.human_player_count() == 0:
        room_manager.close_room(room_code)
    else:
        await room.broadcast({
            "type": "player_left",
            "player_id": player_id,
            "player_name": room_player.name,
            "players": room.player_list(),
        })


def run():
    """Run the server using uvicorn."""
    import uvicorn

    logger.info(f"Starting Shithead server on {config.HOST}:{config.PORT}")
    logger.info(f"Debug mode: {config.DEBUG}")

    uvicorn.run(
        "main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.DEBUG,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
