"""
Timed auction for an unowned property.

Bids must be strictly increasing and arrive before the deadline; every
accepted bid pushes the deadline out. Player-level checks (funds,
bankruptcy) are made by the game state, which owns the ledgers.
"""

from dataclasses import dataclass, field
from typing import Collection, List, Optional

from tycoon.exceptions import StateConflictError, ValidationError


@dataclass
class Bid:
    player_id: str
    amount: int
    timestamp: float


@dataclass
class Auction:
    """
    Manages an auction for a property.
    At most one auction is active per game.
    """

    property_position: int
    property_name: str
    deadline: float
    current_bid: int = 0
    current_bidder: Optional[str] = None
    bid_log: List[Bid] = field(default_factory=list)
    is_active: bool = True

    def is_expired(self, now: float) -> bool:
        return now >= self.deadline

    def place_bid(self, player_id: str, amount: int, now: float, extension: float) -> Bid:
        """
        Record a bid. Raises if the auction is closed, expired, or the bid
        does not beat the current one.
        """
        if not self.is_active:
            raise StateConflictError("auction is not active")
        if self.is_expired(now):
            raise StateConflictError("auction deadline has passed")
        if amount <= self.current_bid:
            raise ValidationError(f"bid must be higher than {self.current_bid}")

        bid = Bid(player_id, amount, now)
        self.bid_log.append(bid)
        self.current_bid = amount
        self.current_bidder = player_id
        self.deadline = now + extension
        return bid

    def fall_back(self, excluded: Collection[str]) -> None:
        """Hand the lead to the best bid not placed by an excluded player."""
        self.current_bid = 0
        self.current_bidder = None
        for bid in self.bid_log:
            if bid.player_id not in excluded and bid.amount > self.current_bid:
                self.current_bid = bid.amount
                self.current_bidder = bid.player_id

    def close(self) -> None:
        self.is_active = False
