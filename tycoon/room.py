"""
Room and membership model.

A room is the lobby that precedes a game: participants join, mark
themselves ready and the host starts the game. Participants keep a stable
``player_id`` for the life of the room; the connection bound to them can
change when they reconnect.
"""

import secrets
import string
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from tycoon.exceptions import AuthorizationError, NotFoundError, StateConflictError, ValidationError
from tycoon.player import Player

ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits
MAX_NAME_LENGTH = 20


class RoomStatus(Enum):
    WAITING = "waiting"
    PLAYING = "playing"
    FINISHED = "finished"


@dataclass
class RoomSettings:
    """House rules chosen by the host."""

    starting_money: int = 15000
    go_salary: int = 2000
    jail_fine: int = 500
    free_parking_jackpot: bool = False
    auction_enabled: bool = True


@dataclass
class Participant:
    player_id: str
    name: str
    connection_id: Optional[str] = None
    is_ready: bool = False
    is_host: bool = False
    connected: bool = False
    last_active: float = field(default_factory=time.time)

    def touch(self) -> None:
        self.last_active = time.time()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "player_id": self.player_id,
            "name": self.name,
            "is_ready": self.is_ready,
            "is_host": self.is_host,
            "connected": self.connected,
        }


def generate_room_code(length: int = 6) -> str:
    return "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(length))


def new_player_id() -> str:
    return f"player_{uuid.uuid4().hex[:12]}"


def validate_name(name: str) -> str:
    name = (name or "").strip()
    if not 1 <= len(name) <= MAX_NAME_LENGTH:
        raise ValidationError(f"name must be 1-{MAX_NAME_LENGTH} characters")
    return name


class Room:
    """A game room/lobby."""

    def __init__(
        self,
        code: str,
        host: Participant,
        settings: Optional[RoomSettings] = None,
        is_public: bool = True,
        max_players: int = 4,
        min_players: int = 2,
    ):
        if not min_players <= max_players:
            raise ValidationError("max players is below the minimum")
        self.code = code
        self.host_id = host.player_id
        host.is_host = True
        self.participants: List[Participant] = [host]
        self.settings = settings or RoomSettings()
        self.is_public = is_public
        self.max_players = max_players
        self.min_players = min_players
        self.status = RoomStatus.WAITING
        self.created_at = time.time()

    def get_participant(self, player_id: str) -> Participant:
        for participant in self.participants:
            if participant.player_id == player_id:
                return participant
        raise NotFoundError(f"player {player_id} is not in room {self.code}")

    def find_participant(self, player_id: str) -> Optional[Participant]:
        return next((p for p in self.participants if p.player_id == player_id), None)

    def is_full(self) -> bool:
        return len(self.participants) >= self.max_players

    def is_empty(self) -> bool:
        return not self.participants

    def all_ready(self) -> bool:
        if len(self.participants) < self.min_players:
            return False
        return all(p.is_ready for p in self.participants)

    def add_participant(self, participant: Participant) -> None:
        if self.status != RoomStatus.WAITING:
            raise StateConflictError("game has already started")
        if self.is_full():
            raise StateConflictError("room is full")
        if any(p.name.lower() == participant.name.lower() for p in self.participants):
            raise StateConflictError(f"name {participant.name!r} is already taken in this room")
        self.participants.append(participant)

    def remove_participant(self, player_id: str) -> Participant:
        """Remove a participant, handing the host role to the next in line."""
        participant = self.get_participant(player_id)
        self.participants.remove(participant)
        if player_id == self.host_id and self.participants:
            new_host = self.participants[0]
            new_host.is_host = True
            self.host_id = new_host.player_id
        return participant

    def set_ready(self, player_id: str, ready: bool) -> Participant:
        if self.status != RoomStatus.WAITING:
            raise StateConflictError("game has already started")
        participant = self.get_participant(player_id)
        participant.is_ready = ready
        participant.touch()
        return participant

    def start(self, player_id: str) -> List[Player]:
        """Move to PLAYING and return the roster in seating order."""
        if player_id != self.host_id:
            raise AuthorizationError("only the host can start the game")
        if self.status != RoomStatus.WAITING:
            raise StateConflictError("game has already started")
        if len(self.participants) < self.min_players:
            raise StateConflictError(f"need at least {self.min_players} players to start")
        if not self.all_ready():
            raise StateConflictError("not all players are ready")
        self.status = RoomStatus.PLAYING
        return [Player(p.player_id, p.name) for p in self.participants]

    def summary(self) -> Dict[str, Any]:
        """Room summary for the lobby list."""
        host = self.find_participant(self.host_id)
        return {
            "code": self.code,
            "player_count": len(self.participants),
            "max_players": self.max_players,
            "status": self.status.value,
            "is_public": self.is_public,
            "host_name": host.name if host else None,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "host_id": self.host_id,
            "participants": [p.to_dict() for p in self.participants],
            "is_public": self.is_public,
            "max_players": self.max_players,
            "status": self.status.value,
            "created_at": self.created_at,
            "settings": {
                "starting_money": self.settings.starting_money,
                "go_salary": self.settings.go_salary,
                "jail_fine": self.settings.jail_fine,
                "free_parking_jackpot": self.settings.free_parking_jackpot,
                "auction_enabled": self.settings.auction_enabled,
            },
        }
