"""
Player state and management.
"""

from dataclasses import dataclass
from typing import Optional


class PlayerState:
    """Represents the complete ledger of a player in the game."""

    def __init__(self, player_id: str, name: str, starting_money: int):
        self.player_id = player_id
        self.name = name
        self.money = starting_money
        self.position = 0
        self.in_jail = False
        self.jail_turns = 0
        self.get_out_of_jail_cards = 0
        self.is_bankrupt = False
        self.properties: set[int] = set()

    def add_money(self, amount: int) -> int:
        self.money += amount
        return self.money

    def remove_money(self, amount: int) -> int:
        """Deduct up to ``amount`` and return what was actually taken."""
        taken = min(self.money, amount)
        self.money -= taken
        return taken

    def __repr__(self) -> str:
        return (
            f"PlayerState(id={self.player_id!r}, name='{self.name}', "
            f"money={self.money}, position={self.position}, bankrupt={self.is_bankrupt})"
        )


@dataclass
class PropertyOwnership:
    """Mutable ownership overlay for a purchasable space."""

    owner_id: Optional[str] = None
    houses: int = 0
    hotels: int = 0
    is_mortgaged: bool = False

    def is_owned(self) -> bool:
        return self.owner_id is not None

    def has_buildings(self) -> bool:
        return self.houses > 0 or self.hotels > 0

    @property
    def building_level(self) -> int:
        """Houses, with a hotel counted as level 5."""
        return 5 if self.hotels else self.houses

    def reset(self) -> None:
        """Return to the bank: no owner, no buildings, no mortgage."""
        self.owner_id = None
        self.houses = 0
        self.hotels = 0
        self.is_mortgaged = False


class Player:
    """
    Roster entry used to start a game.
    Carries the stable id that survives reconnects.
    """

    def __init__(self, player_id: str, name: str):
        self.player_id = player_id
        self.name = name

    def __repr__(self) -> str:
        return f"Player(id={self.player_id!r}, name='{self.name}')"
