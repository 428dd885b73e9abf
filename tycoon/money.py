"""
Bank inventory and the game history log.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class EventType(Enum):
    """Types of game events recorded in the history."""

    GAME_START = "game_start"
    TURN_START = "turn_start"
    DICE_ROLL = "dice_roll"
    MOVE = "move"
    PASS_GO = "pass_go"
    LAND = "land"

    PURCHASE_OFFERED = "purchase_offered"
    PURCHASE = "purchase"
    PURCHASE_DECLINED = "purchase_declined"
    AUCTION_START = "auction_start"
    AUCTION_BID = "auction_bid"
    AUCTION_END = "auction_end"

    RENT_PAYMENT = "rent_payment"
    TAX_PAYMENT = "tax_payment"
    DEBT_CREATED = "debt_created"
    DEBT_PAID = "debt_paid"
    FREE_PARKING_PAYOUT = "free_parking_payout"

    CARD_DRAW = "card_draw"
    CARD_EFFECT = "card_effect"
    DECK_RESHUFFLE = "deck_reshuffle"

    BUILD_HOUSE = "build_house"
    BUILD_HOTEL = "build_hotel"
    SELL_BUILDING = "sell_building"

    MORTGAGE = "mortgage"
    UNMORTGAGE = "unmortgage"

    GO_TO_JAIL = "go_to_jail"
    JAIL_ATTEMPT = "jail_attempt"
    JAIL_RELEASE = "jail_release"

    BANKRUPTCY = "bankruptcy"
    GAME_END = "game_end"

    TRADE_PROPOSED = "trade_proposed"
    TRADE_ACCEPTED = "trade_accepted"
    TRADE_REJECTED = "trade_rejected"
    TRADE_CANCELLED = "trade_cancelled"


@dataclass
class GameEvent:
    """A logged event in the game history."""

    sequence: int
    event_type: EventType
    turn_number: int
    timestamp: float
    player_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def __repr__(self) -> str:
        player_str = self.player_id if self.player_id is not None else "System"
        return f"[{player_str}] {self.event_type.value}: {self.details}"


class EventLog:
    """Append-only game history."""

    def __init__(self):
        self.events: List[GameEvent] = []

    def log(
        self,
        event_type: EventType,
        player_id: Optional[str] = None,
        *,
        turn_number: int = 0,
        timestamp: float = 0.0,
        **details: Any,
    ) -> GameEvent:
        """Append an event and return it."""
        event = GameEvent(self.next_sequence, event_type, turn_number, timestamp, player_id, details)
        self.events.append(event)
        return event

    def restore(self, events: List[GameEvent]) -> None:
        """Replace the log with previously saved events (snapshot load)."""
        self.events = list(events)

    def get_events(self) -> List[GameEvent]:
        return self.events.copy()

    def get_recent_events(self, count: int = 10) -> List[GameEvent]:
        """Get the most recent N events."""
        if count <= 0:
            return []
        return self.events[-count:]

    def since(self, sequence: int) -> List[GameEvent]:
        """Events with a sequence number greater than or equal to ``sequence``."""
        return [e for e in self.events if e.sequence >= sequence]

    @property
    def next_sequence(self) -> int:
        return self.events[-1].sequence + 1 if self.events else 0

    def __len__(self) -> int:
        return len(self.events)


class Bank:
    """
    Shared building supply and the free-parking pot.
    The bank has unlimited money but limited houses and hotels.
    """

    def __init__(self, house_limit: int = 32, hotel_limit: int = 12):
        self.house_limit = house_limit
        self.hotel_limit = hotel_limit
        self.houses_available = house_limit
        self.hotels_available = hotel_limit
        self.free_parking_pot = 0

    def can_buy_houses(self, count: int = 1) -> bool:
        return self.houses_available >= count

    def can_buy_hotel(self) -> bool:
        return self.hotels_available > 0

    def buy_house(self) -> None:
        self.houses_available -= 1

    def buy_hotel(self, return_houses: int = 4) -> None:
        """Take a hotel, returning the houses it replaces."""
        self.hotels_available -= 1
        self.houses_available += return_houses

    def sell_houses(self, count: int) -> None:
        self.houses_available += count

    def sell_hotel(self, take_houses: int = 4) -> None:
        """Return a hotel and take back the houses it breaks down into."""
        self.hotels_available += 1
        self.houses_available -= take_houses
