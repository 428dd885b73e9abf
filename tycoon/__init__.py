"""
Tycoon Rules Engine

Authoritative rules for a Dhaka-themed Monopoly variant: board, cards,
ledgers, the per-room game state machine, and the room lobby model.
"""

from .board import BOARD_VERSION, Board
from .config import GameConfig
from .exceptions import (
    AuthorizationError,
    InsufficientFundsError,
    InvariantViolation,
    MonopolyError,
    NotFoundError,
    SnapshotError,
    StateConflictError,
    StorageError,
    ValidationError,
)
from .game import GameState, GameStatus, TurnPhase, create_game
from .player import Player, PlayerState
from .room import Room, RoomSettings

__all__ = [
    "BOARD_VERSION",
    "Board",
    "GameConfig",
    "GameState",
    "GameStatus",
    "TurnPhase",
    "create_game",
    "Player",
    "PlayerState",
    "Room",
    "RoomSettings",
    "MonopolyError",
    "ValidationError",
    "AuthorizationError",
    "InsufficientFundsError",
    "StateConflictError",
    "NotFoundError",
    "InvariantViolation",
    "SnapshotError",
    "StorageError",
]
