"""
Trade proposals between two players.

The game state validates and executes trades; this module only holds
the proposal record and its lifecycle.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional


class TradeStatus(Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


@dataclass
class Trade:
    """
    A trade proposal.

    ``offered_*`` move from ``from_player`` to ``to_player``;
    ``requested_*`` move the other way.
    """

    trade_id: str
    from_player: str
    to_player: str
    offered_money: int = 0
    requested_money: int = 0
    offered_properties: FrozenSet[int] = field(default_factory=frozenset)
    requested_properties: FrozenSet[int] = field(default_factory=frozenset)
    status: TradeStatus = TradeStatus.PENDING
    reason: Optional[str] = None

    def is_empty(self) -> bool:
        return not (
            self.offered_money or self.requested_money or self.offered_properties or self.requested_properties
        )

    def involves(self, player_id: str) -> bool:
        return player_id in (self.from_player, self.to_player)

    def __repr__(self) -> str:
        return (
            f"Trade({self.trade_id}, {self.from_player} -> {self.to_player}, "
            f"offers {self.offered_money} + {sorted(self.offered_properties)}, "
            f"requests {self.requested_money} + {sorted(self.requested_properties)}, {self.status.value})"
        )


def new_trade(
    from_player: str,
    to_player: str,
    offered_money: int = 0,
    requested_money: int = 0,
    offered_properties: Iterable[int] = (),
    requested_properties: Iterable[int] = (),
) -> Trade:
    return Trade(
        trade_id=uuid.uuid4().hex,
        from_player=from_player,
        to_player=to_player,
        offered_money=offered_money,
        requested_money=requested_money,
        offered_properties=frozenset(offered_properties),
        requested_properties=frozenset(requested_properties),
    )


def trades_involving(trades: Dict[str, Trade], player_id: str):
    """Pending trades where the player is either party."""
    return [t for t in trades.values() if t.involves(player_id)]
