"""
Mapping from internal EventLog objects to canonical public JSON events.

The engine records GameEvent objects with an EventType and a flat details
dict. This module produces stable, client-friendly dicts with consistent
event_type strings, space names resolved from the board, and a sequence
number clients can use to detect gaps after a reconnect.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from tycoon.board import Board
from tycoon.money import EventType, GameEvent

_POSITIONAL_EVENTS = {
    EventType.PURCHASE_OFFERED,
    EventType.PURCHASE,
    EventType.PURCHASE_DECLINED,
    EventType.AUCTION_START,
    EventType.AUCTION_BID,
    EventType.AUCTION_END,
    EventType.RENT_PAYMENT,
    EventType.BUILD_HOUSE,
    EventType.BUILD_HOTEL,
    EventType.SELL_BUILDING,
    EventType.MORTGAGE,
    EventType.UNMORTGAGE,
}


def _space_name(board: Board, position: Optional[int]) -> Optional[str]:
    if not isinstance(position, int):
        return None
    return board.get_space(position).name


def map_event(board: Board, event: GameEvent) -> Dict[str, Any]:
    """
    Map a single GameEvent to a canonical JSON dict.

    Args:
        board: Board instance (for resolving space names)
        event: internal event object

    Returns:
        dict with keys: seq, event_type, turn_number, player_id (optional),
        and event-specific fields
    """
    d = event.details
    base: Dict[str, Any] = {
        "seq": event.sequence,
        "event_type": event.event_type.value,
        "turn_number": event.turn_number,
        "timestamp": event.timestamp,
    }
    if event.player_id is not None:
        base["player_id"] = event.player_id

    if event.event_type == EventType.DICE_ROLL:
        base.update(die1=d.get("die1"), die2=d.get("die2"), total=d.get("total"), is_doubles=d.get("doubles"))
        return base

    if event.event_type == EventType.MOVE:
        to_pos = d.get("to")
        base.update(
            from_position=d.get("from"),
            to_position=to_pos,
            spaces=d.get("spaces"),
            direct=d.get("direct", False),
            space_name=_space_name(board, to_pos),
        )
        return base

    if event.event_type == EventType.PASS_GO:
        base.update(amount=d.get("amount"), money_after=d.get("balance"))
        return base

    if event.event_type == EventType.LAND:
        base.update(position=d.get("position"), space_name=d.get("space"))
        return base

    if event.event_type in (EventType.RENT_PAYMENT, EventType.TAX_PAYMENT):
        base.update(amount=d.get("amount"), amount_due=d.get("due"))
        if "owner" in d:
            base["owner_id"] = d["owner"]
        if "position" in d:
            base.update(position=d["position"], property_name=_space_name(board, d["position"]))
        return base

    if event.event_type in (EventType.DEBT_CREATED, EventType.DEBT_PAID):
        base.update(creditor_id=d.get("creditor"), amount=d.get("amount"), reason=d.get("reason"))
        return base

    if event.event_type == EventType.CARD_DRAW:
        base.update(deck=d.get("deck"), card_id=d.get("card_id"), card=d.get("text"))
        return base

    if event.event_type == EventType.CARD_EFFECT:
        base.update(card_id=d.get("card_id"), effect_type=d.get("action"))
        for key in ("amount", "passed_go", "skipped"):
            if key in d:
                base[key] = d[key]
        return base

    if event.event_type == EventType.JAIL_ATTEMPT:
        base.update(attempt=d.get("attempt"))
        return base

    if event.event_type == EventType.JAIL_RELEASE:
        base.update(method=d.get("method"), amount=d.get("amount", 0))
        return base

    if event.event_type == EventType.TURN_START:
        base.update(turn=d.get("turn"))
        return base

    if event.event_type == EventType.GAME_START:
        players = d.get("players") or []
        base.update(
            player_names=players,
            num_players=len(players),
            starting_money=d.get("starting_money"),
            seed=d.get("seed"),
        )
        return base

    if event.event_type == EventType.GAME_END:
        base.update(winner_id=event.player_id, winner_name=d.get("winner"))
        return base

    if event.event_type == EventType.BANKRUPTCY:
        base.update(creditor_id=d.get("creditor"), properties=d.get("properties", []))
        return base

    if event.event_type in _POSITIONAL_EVENTS:
        base.update(d)
        base["property_name"] = _space_name(board, d.get("position"))
        return base

    # Default: echo raw fields
    base.update(d)
    return base


def map_events(board: Board, events: Iterable[GameEvent]) -> List[Dict[str, Any]]:
    """Map a sequence of GameEvent objects, preserving log order."""
    return [map_event(board, ev) for ev in events]
