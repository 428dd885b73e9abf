"""
Chance and Community Chest cards.

Cards are declarative descriptors; the game state machine interprets
them. Decks are cyclic: a cursor walks a fixed order and the order is
reshuffled only when the cursor wraps back to zero.
"""

import random
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence

from tycoon.spaces import SpaceType


class CardAction(Enum):
    """Closed set of card effects."""

    ADD_MONEY = "add_money"
    REMOVE_MONEY = "remove_money"
    MOVE_TO = "move_to"
    MOVE_RELATIVE = "move_relative"
    GO_TO_JAIL = "go_to_jail"
    GET_OUT_OF_JAIL_FREE = "get_out_of_jail_free"
    PAY_EACH_PLAYER = "pay_each_player"
    COLLECT_FROM_EACH_PLAYER = "collect_from_each_player"
    MOVE_TO_NEAREST = "move_to_nearest"
    REPAIRS = "repairs"


class DeckKind(Enum):
    CHANCE = "chance"
    COMMUNITY_CHEST = "community_chest"


@dataclass(frozen=True)
class Card:
    """A Chance or Community Chest card."""

    card_id: str
    text: str
    action: CardAction
    amount: int = 0
    target: Optional[int] = None
    collect_go: bool = False
    steps: int = 0
    space_type: Optional[SpaceType] = None
    rent_multiplier: Optional[int] = None
    house_cost: int = 0
    hotel_cost: int = 0

    def __repr__(self) -> str:
        return f"Card({self.card_id!r}, '{self.text}')"


class CyclicDeck:
    """A deck read through a cursor over a shuffled order of card indices."""

    def __init__(self, kind: DeckKind, cards: Sequence[Card], rng: random.Random, shuffle: bool = True):
        self.kind = kind
        self.cards = tuple(cards)
        self.rng = rng
        self.order: List[int] = list(range(len(self.cards)))
        self.cursor = 0
        self._by_id: Dict[str, int] = {card.card_id: i for i, card in enumerate(self.cards)}
        if shuffle:
            self.shuffle()

    def shuffle(self) -> None:
        self.rng.shuffle(self.order)

    def draw(self) -> Card:
        """
        Draw the card under the cursor and advance.
        Reshuffles exactly when the cursor wraps to zero, never mid-deck.
        """
        card = self.cards[self.order[self.cursor]]
        self.cursor = (self.cursor + 1) % len(self.order)
        if self.cursor == 0:
            self.shuffle()
        return card

    def order_ids(self) -> List[str]:
        return [self.cards[i].card_id for i in self.order]

    def restore(self, order_ids: Sequence[str], cursor: int) -> None:
        """Restore a saved order and cursor. Ids must be a permutation of this deck."""
        if sorted(order_ids) != sorted(self._by_id):
            raise ValueError(f"{self.kind.value} deck order does not match the card table")
        if not 0 <= cursor < len(self.cards):
            raise ValueError(f"{self.kind.value} deck cursor out of range: {cursor}")
        self.order = [self._by_id[card_id] for card_id in order_ids]
        self.cursor = cursor

    def __len__(self) -> int:
        return len(self.cards)


def chance_cards() -> List[Card]:
    """Standard Chance cards."""
    return [
        Card("chance-01", "Advance to Go (Collect ৳2000).", CardAction.MOVE_TO, target=0, collect_go=True),
        Card("chance-02", "Advance to Motijheel.", CardAction.MOVE_TO, target=6),
        Card(
            "chance-03",
            "Advance token to nearest Utility.",
            CardAction.MOVE_TO_NEAREST,
            space_type=SpaceType.UTILITY,
        ),
        Card(
            "chance-04",
            "Advance token to the nearest Station. Pay the owner twice the rental.",
            CardAction.MOVE_TO_NEAREST,
            space_type=SpaceType.STATION,
            rent_multiplier=2,
        ),
        Card("chance-05", "Bank pays you dividend of ৳500.", CardAction.ADD_MONEY, amount=500),
        Card("chance-06", "Get Out of Jail Free card.", CardAction.GET_OUT_OF_JAIL_FREE),
        Card("chance-07", "Go Back 3 Spaces.", CardAction.MOVE_RELATIVE, steps=-3),
        Card("chance-08", "Go to Jail.", CardAction.GO_TO_JAIL),
        Card(
            "chance-09",
            "Make general repairs on all your property. For each house pay ৳250, for each hotel ৳1000.",
            CardAction.REPAIRS,
            house_cost=250,
            hotel_cost=1000,
        ),
        Card("chance-10", "Pay poor tax of ৳150.", CardAction.REMOVE_MONEY, amount=150),
        Card("chance-11", "Take a trip to Kamalapur Station.", CardAction.MOVE_TO, target=5, collect_go=True),
        Card("chance-12", "Advance to Jaflong.", CardAction.MOVE_TO, target=39),
        Card(
            "chance-13",
            "You have been elected Chairman of the Board. Pay each player ৳500.",
            CardAction.PAY_EACH_PLAYER,
            amount=500,
        ),
        Card("chance-14", "Your building loan matures. Collect ৳1500.", CardAction.ADD_MONEY, amount=1500),
    ]


def community_chest_cards() -> List[Card]:
    """Standard Community Chest cards."""
    return [
        Card("chest-01", "Advance to Go (Collect ৳2000).", CardAction.MOVE_TO, target=0, collect_go=True),
        Card("chest-02", "Bank error in your favor. Collect ৳2000.", CardAction.ADD_MONEY, amount=2000),
        Card("chest-03", "Doctor's fee. Pay ৳500.", CardAction.REMOVE_MONEY, amount=500),
        Card("chest-04", "From sale of stock you get ৳500.", CardAction.ADD_MONEY, amount=500),
        Card("chest-05", "Get Out of Jail Free card.", CardAction.GET_OUT_OF_JAIL_FREE),
        Card("chest-06", "Go to Jail.", CardAction.GO_TO_JAIL),
        Card("chest-07", "Holiday fund matures. Receive ৳1000.", CardAction.ADD_MONEY, amount=1000),
        Card("chest-08", "Income tax refund. Collect ৳200.", CardAction.ADD_MONEY, amount=200),
        Card(
            "chest-09",
            "It is your birthday. Collect ৳100 from every player.",
            CardAction.COLLECT_FROM_EACH_PLAYER,
            amount=100,
        ),
        Card("chest-10", "Life insurance matures. Collect ৳1000.", CardAction.ADD_MONEY, amount=1000),
        Card("chest-11", "Pay hospital fees of ৳1000.", CardAction.REMOVE_MONEY, amount=1000),
        Card("chest-12", "Pay school fees of ৳500.", CardAction.REMOVE_MONEY, amount=500),
        Card("chest-13", "Receive ৳250 consultancy fee.", CardAction.ADD_MONEY, amount=250),
        Card(
            "chest-14",
            "You are assessed for street repairs. ৳400 per house, ৳1150 per hotel.",
            CardAction.REPAIRS,
            house_cost=400,
            hotel_cost=1150,
        ),
        Card(
            "chest-15",
            "You have won second prize in a beauty contest. Collect ৳100.",
            CardAction.ADD_MONEY,
            amount=100,
        ),
        Card("chest-16", "You inherit ৳1000.", CardAction.ADD_MONEY, amount=1000),
    ]


def create_chance_deck(rng: random.Random) -> CyclicDeck:
    return CyclicDeck(DeckKind.CHANCE, chance_cards(), rng)


def create_community_chest_deck(rng: random.Random) -> CyclicDeck:
    return CyclicDeck(DeckKind.COMMUNITY_CHEST, community_chest_cards(), rng)
