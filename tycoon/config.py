"""
Game configuration settings.
"""

from dataclasses import dataclass
from typing import Optional


BOARD_SIZE = 40
GO_POSITION = 0
JAIL_POSITION = 10


@dataclass
class GameConfig:
    """Rules for one game. Built from the room settings when a game starts."""

    starting_money: int = 15000
    go_salary: int = 2000
    jail_fine: int = 500
    max_jail_turns: int = 3

    house_limit: int = 32
    hotel_limit: int = 12

    mortgage_percent: int = 50
    unmortgage_interest_percent: int = 10

    free_parking_jackpot: bool = False
    auction_enabled: bool = True
    auction_duration_seconds: float = 30.0
    auction_extension_seconds: float = 10.0

    # Legacy behaviour: rent, tax and the forced jail fine take whatever the
    # payer has left. When False the full amount becomes a pending debt.
    cap_payments_at_balance: bool = True

    min_players: int = 2
    max_players: int = 8

    seed: Optional[int] = None

    def mortgage_value(self, price: int) -> int:
        return price * self.mortgage_percent // 100

    def unmortgage_cost(self, price: int) -> int:
        """Principal plus interest on the principal, rounded down."""
        return price * self.mortgage_percent * (100 + self.unmortgage_interest_percent) // 10000

    @classmethod
    def from_room_settings(cls, settings, **overrides) -> "GameConfig":
        """Build a config from a room's ``RoomSettings``."""
        config = cls(
            starting_money=settings.starting_money,
            go_salary=settings.go_salary,
            jail_fine=settings.jail_fine,
            free_parking_jackpot=settings.free_parking_jackpot,
            auction_enabled=settings.auction_enabled,
        )
        for key, value in overrides.items():
            setattr(config, key, value)
        return config
