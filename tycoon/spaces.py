"""
Board space definitions and types.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


class SpaceType(Enum):
    """Types of spaces on the board."""

    GO = "go"
    PROPERTY = "property"
    STATION = "station"
    UTILITY = "utility"
    TAX = "tax"
    CHANCE = "chance"
    COMMUNITY_CHEST = "community-chest"
    JAIL = "jail"
    FREE_PARKING = "free-parking"
    GO_TO_JAIL = "go-to-jail"


PURCHASABLE_TYPES = frozenset({SpaceType.PROPERTY, SpaceType.STATION, SpaceType.UTILITY})


@dataclass(frozen=True)
class Space:
    """Base class for a board space."""

    name: str
    position: int
    space_type: SpaceType

    @property
    def is_purchasable(self) -> bool:
        return self.space_type in PURCHASABLE_TYPES

    @property
    def price(self) -> Optional[int]:
        return None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}', position={self.position})"


@dataclass(frozen=True, repr=False)
class PropertySpace(Space):
    """A colored site that can be owned, built upon and mortgaged."""

    cost: int = 0
    color_group: str = ""
    rent: Tuple[int, int, int, int, int, int] = (0, 0, 0, 0, 0, 0)
    build_cost: int = 0

    @property
    def price(self) -> int:
        return self.cost

    def get_rent(self, houses: int, hotels: int, has_monopoly: bool) -> int:
        """
        Calculate rent for this property.

        Args:
            houses: Number of houses (0-4)
            hotels: Number of hotels (0-1)
            has_monopoly: Whether the owner holds the whole color group

        Returns:
            Rent amount
        """
        if hotels > 0:
            return self.rent[5]
        if houses > 0:
            return self.rent[houses]
        return self.rent[0] * 2 if has_monopoly else self.rent[0]


@dataclass(frozen=True, repr=False)
class StationSpace(Space):
    """A station. Rent scales with the number of stations the owner holds."""

    cost: int = 2000
    rent: Tuple[int, int, int, int] = (250, 500, 1000, 2000)

    @property
    def price(self) -> int:
        return self.cost

    def get_rent(self, stations_owned: int) -> int:
        index = max(1, min(stations_owned, len(self.rent))) - 1
        return self.rent[index]


@dataclass(frozen=True, repr=False)
class UtilitySpace(Space):
    """A utility (electricity or water supply)."""

    cost: int = 1500

    @property
    def price(self) -> int:
        return self.cost

    def get_rent(self, dice_total: int, utilities_owned: int) -> int:
        multiplier = 4 if utilities_owned == 1 else 10
        return dice_total * multiplier


@dataclass(frozen=True, repr=False)
class TaxSpace(Space):
    """Income or luxury tax."""

    amount: int = 0


def go(position: int = 0) -> Space:
    return Space("Go", position, SpaceType.GO)


def chance(position: int) -> Space:
    return Space("Chance", position, SpaceType.CHANCE)


def community_chest(position: int) -> Space:
    return Space("Community Chest", position, SpaceType.COMMUNITY_CHEST)


def jail(position: int = 10) -> Space:
    return Space("Jail", position, SpaceType.JAIL)


def free_parking(position: int = 20) -> Space:
    return Space("Free Parking", position, SpaceType.FREE_PARKING)


def go_to_jail(position: int = 30) -> Space:
    return Space("Go To Jail", position, SpaceType.GO_TO_JAIL)
