"""
The fixed 40-space Dhaka board.

Changing this table changes ``BOARD_VERSION``; snapshots saved against a
different board are refused on load.
"""

from typing import Dict, List, Optional

from tycoon.config import BOARD_SIZE
from tycoon.spaces import (
    PropertySpace,
    Space,
    SpaceType,
    StationSpace,
    TaxSpace,
    UtilitySpace,
    chance,
    community_chest,
    free_parking,
    go,
    go_to_jail,
    jail,
)

BOARD_VERSION = "dhaka-1"


def _site(name: str, position: int, price: int, group: str, rent, build_cost: int) -> PropertySpace:
    return PropertySpace(
        name, position, SpaceType.PROPERTY, cost=price, color_group=group, rent=tuple(rent), build_cost=build_cost
    )


def _station(name: str, position: int) -> StationSpace:
    return StationSpace(name, position, SpaceType.STATION)


def _utility(name: str, position: int) -> UtilitySpace:
    return UtilitySpace(name, position, SpaceType.UTILITY)


def _tax(name: str, position: int, amount: int) -> TaxSpace:
    return TaxSpace(name, position, SpaceType.TAX, amount=amount)


class Board:
    """The game board with 40 spaces."""

    def __init__(self):
        self.spaces: List[Space] = self._create_standard_board()
        self.color_groups: Dict[str, List[int]] = self._build_color_groups()

    def _create_standard_board(self) -> List[Space]:
        return [
            # Bottom row (0-10)
            go(0),
            _site("Puran Dhaka", 1, 600, "Brown", (20, 100, 300, 900, 1600, 2500), 500),
            community_chest(2),
            _site("Lalbagh Fort", 3, 600, "Brown", (40, 200, 600, 1800, 3200, 4500), 500),
            _tax("Income Tax", 4, 2000),
            _station("Kamalapur Station", 5),
            _site("Motijheel", 6, 1000, "LightBlue", (60, 300, 900, 2700, 4000, 5500), 500),
            chance(7),
            _site("Dilkusha", 8, 1000, "LightBlue", (60, 300, 900, 2700, 4000, 5500), 500),
            _site("Naya Paltan", 9, 1200, "LightBlue", (80, 400, 1000, 3000, 4500, 6000), 500),
            jail(10),
            # Left side (11-20)
            _site("Farmgate", 11, 1400, "Pink", (100, 500, 1500, 4500, 6250, 7500), 1000),
            _utility("Electric Supply", 12),
            _site("Elephant Road", 13, 1400, "Pink", (100, 500, 1500, 4500, 6250, 7500), 1000),
            _site("New Market", 14, 1600, "Pink", (120, 600, 1800, 5000, 7000, 9000), 1000),
            _station("Airport Station", 15),
            _site("Dhanmondi", 16, 1800, "Orange", (140, 700, 2000, 5500, 7500, 9500), 1000),
            community_chest(17),
            _site("Mohammadpur", 18, 1800, "Orange", (140, 700, 2000, 5500, 7500, 9500), 1000),
            _site("Shyamoli", 19, 2000, "Orange", (160, 800, 2200, 6000, 8000, 10000), 1000),
            free_parking(20),
            # Top row (21-30)
            _site("Gulshan", 21, 2200, "Red", (180, 900, 2500, 7000, 8750, 10500), 1500),
            chance(22),
            _site("Banani", 23, 2200, "Red", (180, 900, 2500, 7000, 8750, 10500), 1500),
            _site("Baridhara", 24, 2400, "Red", (200, 1000, 3000, 7500, 9250, 11000), 1500),
            _station("Chattogram Station", 25),
            _site("Uttara", 26, 2600, "Yellow", (220, 1100, 3300, 8000, 9750, 11500), 1500),
            _site("Mirpur", 27, 2600, "Yellow", (220, 1100, 3300, 8000, 9750, 11500), 1500),
            _utility("Water Works", 28),
            _site("Bashundhara", 29, 2800, "Yellow", (240, 1200, 3600, 8500, 10250, 12000), 1500),
            go_to_jail(30),
            # Right side (31-39)
            _site("Cox's Bazar", 31, 3000, "Green", (260, 1300, 3900, 9000, 11000, 13000), 2000),
            _site("Saint Martin", 32, 3000, "Green", (260, 1300, 3900, 9000, 11000, 13000), 2000),
            community_chest(33),
            _site("Bandarban", 34, 3200, "Green", (280, 1500, 4500, 10000, 12000, 14000), 2000),
            _station("Sylhet Station", 35),
            chance(36),
            _site("Sreemangal", 37, 3500, "DarkBlue", (350, 1750, 5000, 11000, 13000, 15000), 2000),
            _tax("Luxury Tax", 38, 1000),
            _site("Jaflong", 39, 4000, "DarkBlue", (500, 2000, 6000, 14000, 17000, 20000), 2000),
        ]

    def _build_color_groups(self) -> Dict[str, List[int]]:
        """Build a mapping of color groups to property positions."""
        groups: Dict[str, List[int]] = {}
        for space in self.spaces:
            if isinstance(space, PropertySpace):
                groups.setdefault(space.color_group, []).append(space.position)
        return groups

    def get_space(self, position: int) -> Space:
        """Get the space at the given position."""
        return self.spaces[position % BOARD_SIZE]

    def get_property_space(self, position: int) -> Optional[PropertySpace]:
        space = self.get_space(position)
        return space if isinstance(space, PropertySpace) else None

    def get_color_group(self, color: str) -> List[int]:
        """Get all property positions in a color group."""
        return self.color_groups.get(color, [])

    def positions_of(self, space_type: SpaceType) -> List[int]:
        return [s.position for s in self.spaces if s.space_type == space_type]

    def purchasable_positions(self) -> List[int]:
        return [s.position for s in self.spaces if s.is_purchasable]

    def find_nearest(self, position: int, space_type: SpaceType) -> int:
        """Find the nearest space of a type moving forward from ``position``."""
        targets = set(self.positions_of(space_type))
        for offset in range(1, BOARD_SIZE + 1):
            pos = (position + offset) % BOARD_SIZE
            if pos in targets:
                return pos
        raise ValueError(f"no {space_type.value} space on the board")

    def fingerprint(self) -> List[Dict[str, object]]:
        """Per-index type and price, used to detect board table mismatches."""
        return [{"type": s.space_type.value, "price": s.price} for s in self.spaces]
