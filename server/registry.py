from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Callable, Dict, List, Optional, Tuple

from tycoon import GameConfig, GameState, create_game
from tycoon.exceptions import NotFoundError, StateConflictError, ValidationError
from tycoon.room import (
    Participant,
    Room,
    RoomSettings,
    RoomStatus,
    generate_room_code,
    new_player_id,
    validate_name,
)

logger = logging.getLogger(__name__)


class RoomRegistry:
    """
    In-memory registry of rooms and their running games.

    Owned by the application; nothing here is module-level. Mutations of
    the room table take the registry lock, game mutations take the
    per-room lock from ``lock_for``. Lookups are plain dict reads.
    """

    def __init__(
        self,
        *,
        min_players: int = 2,
        max_players: int = 8,
        max_rooms: int = 100,
        room_code_length: int = 6,
    ):
        self.min_players = min_players
        self.max_players = max_players
        self.max_rooms = max_rooms
        self.room_code_length = room_code_length
        self._rooms: Dict[str, Room] = {}
        self._games: Dict[str, GameState] = {}
        self._room_locks: Dict[str, asyncio.Lock] = {}
        self._lock = asyncio.Lock()

    # ---- lookups ----

    def get_room(self, code: str) -> Room:
        room = self._rooms.get(code.upper())
        if room is None:
            raise NotFoundError(f"room {code} not found")
        return room

    def get_game(self, code: str) -> GameState:
        game = self._games.get(code.upper())
        if game is None:
            raise NotFoundError(f"room {code} has no running game")
        return game

    def has_room(self, code: str) -> bool:
        return code.upper() in self._rooms

    def has_game(self, code: str) -> bool:
        return code.upper() in self._games

    def lock_for(self, code: str) -> asyncio.Lock:
        """The lock serialising every mutation of one room's game."""
        code = code.upper()
        if code not in self._rooms:
            raise NotFoundError(f"room {code} not found")
        return self._room_locks.setdefault(code, asyncio.Lock())

    def public_rooms(self) -> List[dict]:
        return [r.summary() for r in self._rooms.values() if r.is_public and r.status == RoomStatus.WAITING]

    def running_games(self) -> List[Tuple[str, GameState]]:
        return list(self._games.items())

    def __len__(self) -> int:
        return len(self._rooms)

    # ---- room lifecycle ----

    def _new_code(self) -> str:
        while True:
            code = generate_room_code(self.room_code_length)
            if code not in self._rooms:
                return code

    async def create_room(
        self,
        host_name: str,
        *,
        settings: Optional[RoomSettings] = None,
        is_public: bool = True,
        max_players: int = 4,
    ) -> Tuple[Room, Participant]:
        if not self.min_players <= max_players <= self.max_players:
            raise ValidationError(f"max players must be between {self.min_players} and {self.max_players}")
        host = Participant(new_player_id(), validate_name(host_name))
        async with self._lock:
            if len(self._rooms) >= self.max_rooms:
                raise StateConflictError("server is at its room limit")
            room = Room(
                self._new_code(),
                host,
                settings=settings,
                is_public=is_public,
                max_players=max_players,
                min_players=self.min_players,
            )
            self._rooms[room.code] = room
            self._room_locks[room.code] = asyncio.Lock()
        logger.info("Room %s created by %s", room.code, host.name)
        return room, host

    async def join_room(self, code: str, name: str) -> Participant:
        participant = Participant(new_player_id(), validate_name(name))
        async with self._lock:
            room = self.get_room(code)
            room.add_participant(participant)
        logger.info("%s joined room %s", participant.name, room.code)
        return participant

    async def leave_room(self, code: str, player_id: str) -> Optional[Room]:
        """
        Remove a participant from a waiting room. Returns the room, or
        None when the last participant left and the room was deleted.
        """
        async with self._lock:
            room = self.get_room(code)
            if room.status == RoomStatus.PLAYING:
                raise StateConflictError("cannot leave a game in progress; declare bankruptcy instead")
            room.remove_participant(player_id)
            if room.is_empty():
                self._drop(room.code)
                logger.info("Room %s deleted (empty)", room.code)
                return None
        return room

    async def set_ready(self, code: str, player_id: str, ready: bool = True) -> Participant:
        async with self._lock:
            return self.get_room(code).set_ready(player_id, ready)

    async def start_game(
        self,
        code: str,
        player_id: str,
        *,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> GameState:
        """Host starts the game: builds the roster and the GameState."""
        async with self._lock:
            room = self.get_room(code)
            roster = room.start(player_id)
            config = GameConfig.from_room_settings(
                room.settings, min_players=self.min_players, max_players=self.max_players
            )
            try:
                game = create_game(config, roster, room_code=room.code, rng=rng, clock=clock)
            except ValidationError:
                room.status = RoomStatus.WAITING
                raise
            self._games[room.code] = game
        logger.info("Game started in room %s with %d players", room.code, len(roster))
        return game

    async def install_game(self, code: str, game: GameState) -> Room:
        """
        Install a restored game. An existing room must seat exactly the
        game's players; a missing room is recreated from the game roster.
        """
        code = code.upper()
        async with self._lock:
            room = self._rooms.get(code)
            roster = [p.player_id for p in game.players]
            if room is None:
                if len(self._rooms) >= self.max_rooms:
                    raise StateConflictError("server is at its room limit")
                first, *rest = game.players
                room = Room(
                    code,
                    Participant(first.player_id, first.name),
                    max_players=max(len(game.players), self.min_players),
                    min_players=self.min_players,
                )
                room.participants.extend(Participant(p.player_id, p.name) for p in rest)
                self._rooms[code] = room
                self._room_locks[code] = asyncio.Lock()
            elif sorted(p.player_id for p in room.participants) != sorted(roster):
                raise StateConflictError(f"room {code} is seated with different players than the saved game")
            for participant in room.participants:
                participant.is_ready = True
            game.room_code = code
            room.status = RoomStatus.FINISHED if game.is_finished else RoomStatus.PLAYING
            self._games[code] = game
        logger.info("Game installed in room %s", code)
        return room

    async def remove_room(self, code: str) -> None:
        async with self._lock:
            self.get_room(code)
            self._drop(code.upper())
        logger.info("Room %s removed", code.upper())

    def _drop(self, code: str) -> None:
        self._rooms.pop(code, None)
        self._games.pop(code, None)
        self._room_locks.pop(code, None)

    async def cleanup_inactive_rooms(self, timeout: float, now: Optional[float] = None) -> List[str]:
        """Remove waiting rooms with no activity for ``timeout`` seconds."""
        now = time.time() if now is None else now
        removed: List[str] = []
        async with self._lock:
            for code, room in list(self._rooms.items()):
                if room.status != RoomStatus.WAITING:
                    continue
                last_active = max([room.created_at] + [p.last_active for p in room.participants])
                if now - last_active >= timeout:
                    self._drop(code)
                    removed.append(code)
        if removed:
            logger.info("Cleaned up %d inactive rooms: %s", len(removed), ", ".join(removed))
        return removed
