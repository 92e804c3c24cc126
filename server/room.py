"""
Room management for multiplayer Shithead games.

This module handles room creation, player management, and WebSocket
communication for multiplayer game sessions.

A Room contains:
    - A unique 4-letter code for joining
    - A collection of RoomPlayers (human or CPU)
    - A Game instance once the host starts the match
    - A lock that serializes every mutation of that Game

Rooms live in a RoomManager owned by the running application. A room exists
from create_room() until it is closed explicitly or expires after sitting
idle for ROOM_TIMEOUT_MINUTES.
"""

import asyncio
import logging
import random
import string
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import WebSocket

from ai import CPUProfile, ShitheadAI, pick_profile
from constants import ROOM_CODE_LENGTH
from game import Game, Player

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RoomPlayer:
    """
    A player in a game room (lobby-level representation).

    This is separate from game.Player - RoomPlayer tracks room-level info
    like WebSocket connections and host status, while game.Player tracks
    the player's cards.

    Attributes:
        id: Unique player identifier (connection_id).
        name: Display name.
        websocket: WebSocket connection (None for CPU players).
        is_host: Whether this player controls the room.
        is_cpu: Whether this is an AI-controlled player.
        cpu_profile: Personality for CPU players.
    """

    id: str
    name: str
    websocket: Optional[WebSocket] = None
    is_host: bool = False
    is_cpu: bool = False
    cpu_profile: Optional[CPUProfile] = None


@dataclass
class Room:
    """
    A game room/lobby that can host a multiplayer Shithead match.

    Attributes:
        code: 4-letter room code for joining (e.g., "ABCD").
        players: Dict mapping player IDs to RoomPlayer objects, in seat order.
        game: The Game instance, None until the match starts.
        game_lock: asyncio.Lock serializing game mutations. At most one
            play_turn runs against the Game at a time.
        created_at: When the room was opened.
        last_activity: Last time anything happened in the room.
    """

    code: str
    players: dict[str, RoomPlayer] = field(default_factory=dict)
    game: Optional[Game] = None
    game_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    created_at: datetime = field(default_factory=utcnow)
    last_activity: datetime = field(default_factory=utcnow)

    def touch(self, now: Optional[datetime] = None) -> None:
        """Record activity so the room is not expired."""
        self.last_activity = now or utcnow()

    def is_expired(self, now: datetime, timeout_minutes: int) -> bool:
        return now - self.last_activity >= timedelta(minutes=timeout_minutes)

    def in_progress(self) -> bool:
        return self.game is not None and not self.game.is_game_over()

    def add_player(
        self,
        player_id: str,
        name: str,
        websocket: Optional[WebSocket],
    ) -> RoomPlayer:
        """
        Add a human player to the room.

        The first player to join becomes the host.

        Args:
            player_id: Unique identifier for the player (connection_id).
            name: Display name.
            websocket: The player's WebSocket connection.

        Returns:
            The created RoomPlayer object.
        """
        is_host = len(self.players) == 0
        room_player = RoomPlayer(
            id=player_id,
            name=name,
            websocket=websocket,
            is_host=is_host,
        )
        self.players[player_id] = room_player
        self.touch()
        return room_player

    def add_cpu_player(
        self,
        cpu_id: str,
        profile_name: Optional[str] = None,
    ) -> Optional[RoomPlayer]:
        """
        Add a CPU player to the room.

        Profiles are unique within a room.

        Args:
            cpu_id: Unique identifier for the CPU player.
            profile_name: Specific AI profile to use, or None for random.

        Returns:
            The created RoomPlayer, or None if no profile is available.
        """
        used = {p.cpu_profile.name for p in self.get_cpu_players() if p.cpu_profile}
        profile = pick_profile(used, profile_name)
        if not profile:
            return None

        room_player = RoomPlayer(
            id=cpu_id,
            name=profile.name,
            websocket=None,
            is_host=False,
            is_cpu=True,
            cpu_profile=profile,
        )
        self.players[cpu_id] = room_player
        self.touch()
        return room_player

    def remove_player(self, player_id: str) -> Optional[RoomPlayer]:
        """
        Remove a player from the room.

        Handles host reassignment if the host leaves.

        Args:
            player_id: ID of the player to remove.

        Returns:
            The removed RoomPlayer, or None if not found.
        """
        if player_id not in self.players:
            return None

        room_player = self.players.pop(player_id)

        if room_player.is_host:
            next_host = next((p for p in self.players.values() if not p.is_cpu), None)
            if next_host:
                next_host.is_host = True

        self.touch()
        return room_player

    def start_game(self, interactive_swap: bool = False, seed: Optional[int] = None) -> Game:
        """
        Create and deal the match for everyone currently seated.

        Args:
            interactive_swap: Leave hand/face-up swapping to the players.
                CPU players always swap automatically and are marked ready.
            seed: Optional deck seed.

        Returns:
            The new Game.

        Raises:
            ConstructionError: If fewer than two players are seated.
        """
        players = [Player(id=p.id, name=p.name) for p in self.players.values()]
        if interactive_swap:
            self.game = Game(players, seed=seed, swap_policy=None)
            for cpu in self.get_cpu_players():
                self.game.apply_swap_policy(cpu.id, ShitheadAI.choose_swaps)
                self.game.mark_ready(cpu.id)
        else:
            self.game = Game(players, seed=seed)
        self.touch()
        logger.info(
            f"Game started with {len(players)} players",
            extra={"room_code": self.code},
        )
        return self.game

    def get_player(self, player_id: str) -> Optional[RoomPlayer]:
        """Get a player by ID, or None if not found."""
        return self.players.get(player_id)

    def is_empty(self) -> bool:
        """Check if the room has no players."""
        return len(self.players) == 0

    def player_list(self) -> list[dict]:
        """
        Get list of players for client display.

        Returns:
            List of dicts with id, name, is_host, is_cpu, and style (for CPUs).
        """
        result = []
        for p in self.players.values():
            player_data = {
                "id": p.id,
                "name": p.name,
                "is_host": p.is_host,
                "is_cpu": p.is_cpu,
            }
            if p.cpu_profile:
                player_data["style"] = p.cpu_profile.style
            result.append(player_data)
        return result

    def get_cpu_players(self) -> list[RoomPlayer]:
        """Get all CPU players in the room."""
        return [p for p in self.players.values() if p.is_cpu]

    def human_player_count(self) -> int:
        """Count the number of human (non-CPU) players."""
        return sum(1 for p in self.players.values() if not p.is_cpu)

    async def broadcast(self, message: dict, exclude: Optional[str] = None) -> None:
        """
        Send a message to all human players in the room.

        Args:
            message: JSON-serializable message dict.
            exclude: Optional player ID to skip.
        """
        for player_id, player in list(self.players.items()):
            if player_id != exclude and player.websocket and not player.is_cpu:
                try:
                    await player.websocket.send_json(message)
                except Exception as e:
                    logger.debug(f"Broadcast to {player_id} failed: {e}", extra={"room_code": self.code})

    async def send_to(self, player_id: str, message: dict) -> None:
        """
        Send a message to a specific player.

        Args:
            player_id: ID of the recipient player.
            message: JSON-serializable message dict.
        """
        player = self.players.get(player_id)
        if player and player.websocket and not player.is_cpu:
            try:
                await player.websocket.send_json(message)
            except Exception as e:
                logger.debug(f"Send to {player_id} failed: {e}", extra={"room_code": self.code})


class RoomManager:
    """
    Registry of active game rooms.

    Provides room creation with unique codes, lookup, explicit close and
    idle expiry. The application creates one RoomManager at startup and
    discards it at shutdown.
    """

    def __init__(self, code_length: int = ROOM_CODE_LENGTH) -> None:
        self.rooms: dict[str, Room] = {}
        self.code_length = code_length

    def _generate_code(self, max_attempts: int = 100) -> str:
        """Generate a unique room code."""
        for _ in range(max_attempts):
            code = "".join(random.choices(string.ascii_uppercase, k=self.code_length))
            if code not in self.rooms:
                return code
        raise RuntimeError("Could not generate unique room code")

    def create_room(self) -> Room:
        """
        Create a new room with a unique code.

        Returns:
            The newly created Room.
        """
        code = self._generate_code()
        room = Room(code=code)
        self.rooms[code] = room
        logger.info("Room created", extra={"room_code": code})
        return room

    def get_room(self, code: str) -> Optional[Room]:
        """
        Get a room by its code (case-insensitive).

        Args:
            code: The room code.

        Returns:
            The Room if found, None otherwise.
        """
        return self.rooms.get(code.upper())

    def close_room(self, code: str) -> Optional[Room]:
        """
        Delete a room.

        Args:
            code: The room code to remove.

        Returns:
            The removed Room, or None if it did not exist.
        """
        room = self.rooms.pop(code.upper(), None)
        if room:
            logger.info("Room closed", extra={"room_code": room.code})
        return room

    def find_player_room(self, player_id: str) -> Optional[Room]:
        """
        Find which room a player is in.

        Args:
            player_id: The player ID to search for.

        Returns:
            The Room containing the player, or None.
        """
        for room in self.rooms.values():
            if player_id in room.players:
                return room
        return None

    def expire_idle_rooms(self, now: datetime, timeout_minutes: int) -> list[Room]:
        """
        Close every room idle for at least timeout_minutes.

        Returns:
            The rooms that were closed.
        """
        expired = [r for r in self.rooms.values() if r.is_expired(now, timeout_minutes)]
        for room in expired:
            logger.info("Room expired after inactivity", extra={"room_code": room.code})
            self.close_room(room.code)
        return expired
