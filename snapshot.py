"""
Snapshot serialization of GameState.

``serialize`` produces a complete, versioned document that can rebuild a
game (deck order included). ``public_view`` produces the sanitized view
broadcast to clients, without hidden information such as deck order.
``deserialize`` refuses any document that fails ``validate`` before it
builds anything.

RNG state is not part of the document: a restored game rolls from a
fresh generator.
"""

from __future__ import annotations

import dataclasses
import random
from typing import Any, Callable, Dict, List, Optional

from tycoon.auction import Auction, Bid
from tycoon.board import BOARD_VERSION, Board
from tycoon.cards import chance_cards, community_chest_cards
from tycoon.config import BOARD_SIZE, GameConfig
from tycoon.exceptions import SnapshotError
from tycoon.game import GameState, GameStatus, PendingDebt
from tycoon.money import EventType, GameEvent
from tycoon.player import Player
from tycoon.spaces import PropertySpace
from tycoon.trade import Trade, TradeStatus

FORMAT_VERSION = 1

REQUIRED_FIELDS = (
    "format_version",
    "board_version",
    "room_code",
    "status",
    "winner_id",
    "turn_number",
    "current_player_index",
    "config",
    "board",
    "players",
    "properties",
    "bank",
    "turn",
    "decks",
    "trades",
    "auction",
    "history",
)


def _player_doc(pstate) -> Dict[str, Any]:
    return {
        "player_id": pstate.player_id,
        "name": pstate.name,
        "money": pstate.money,
        "position": pstate.position,
        "in_jail": pstate.in_jail,
        "jail_turns": pstate.jail_turns,
        "get_out_of_jail_cards": pstate.get_out_of_jail_cards,
        "is_bankrupt": pstate.is_bankrupt,
        "properties": sorted(pstate.properties),
    }


def _trade_doc(trade: Trade) -> Dict[str, Any]:
    return {
        "trade_id": trade.trade_id,
        "from_player": trade.from_player,
        "to_player": trade.to_player,
        "offered_money": trade.offered_money,
        "requested_money": trade.requested_money,
        "offered_properties": sorted(trade.offered_properties),
        "requested_properties": sorted(trade.requested_properties),
        "status": trade.status.value,
    }


def _auction_doc(auction: Optional[Auction]) -> Optional[Dict[str, Any]]:
    if auction is None:
        return None
    return {
        "property_position": auction.property_position,
        "property_name": auction.property_name,
        "current_bid": auction.current_bid,
        "current_bidder": auction.current_bidder,
        "deadline": auction.deadline,
        "is_active": auction.is_active,
        "bid_log": [{"player_id": b.player_id, "amount": b.amount, "timestamp": b.timestamp} for b in auction.bid_log],
    }


def _event_doc(event: GameEvent) -> Dict[str, Any]:
    return {
        "sequence": event.sequence,
        "event_type": event.event_type.value,
        "turn_number": event.turn_number,
        "timestamp": event.timestamp,
        "player_id": event.player_id,
        "details": dict(event.details),
    }


def _properties_doc(game: GameState) -> List[Dict[str, Any]]:
    return [
        {
            "position": pos,
            "owner_id": o.owner_id,
            "houses": o.houses,
            "hotels": o.hotels,
            "is_mortgaged": o.is_mortgaged,
        }
        for pos, o in sorted(game.property_ownership.items())
    ]


def _turn_doc(game: GameState) -> Dict[str, Any]:
    debt = game.pending_debt
    return {
        "phase": game.phase.value,
        "dice": list(game.dice) if game.dice else None,
        "doubles_streak": game.doubles_streak,
        "has_rolled": game.has_rolled,
        "can_roll_again": game.can_roll_again,
        "pending_purchase": game.pending_purchase,
        "pending_debt": dataclasses.asdict(debt) if debt else None,
        "next_rent_multiplier": game.next_rent_multiplier,
    }


def serialize(game: GameState, history_window: int = 100) -> Dict[str, Any]:
    """Serialize a GameState into a complete, versioned JSON-safe dict.

    Deterministic: two calls without an intervening mutation are equal.
    """
    return {
        "format_version": FORMAT_VERSION,
        "board_version": BOARD_VERSION,
        "room_code": game.room_code,
        "status": game.status.value,
        "winner_id": game.winner_id,
        "turn_number": game.turn_number,
        "current_player_index": game.current_player_index,
        "config": dataclasses.asdict(game.config),
        "board": game.board.fingerprint(),
        "players": [_player_doc(p) for p in game.players],
        "properties": _properties_doc(game),
        "bank": {
            "houses_available": game.bank.houses_available,
            "hotels_available": game.bank.hotels_available,
            "free_parking_pot": game.bank.free_parking_pot,
        },
        "turn": _turn_doc(game),
        "decks": {
            "chance": {"order": game.chance_deck.order_ids(), "cursor": game.chance_deck.cursor},
            "community_chest": {"order": game.community_deck.order_ids(), "cursor": game.community_deck.cursor},
        },
        "trades": [_trade_doc(t) for t in game.active_trades.values()],
        "auction": _auction_doc(game.active_auction),
        "history": [_event_doc(e) for e in game.history.get_recent_events(history_window)],
    }


def public_view(game: GameState) -> Dict[str, Any]:
    """Sanitized snapshot for clients: no deck order, no history."""
    players: List[Dict[str, Any]] = []
    for pstate in game.players:
        entry = _player_doc(pstate)
        entry["properties"] = [
            {
                "position": pos,
                "name": game.board.get_space(pos).name,
                "houses": game.property_ownership[pos].houses,
                "hotels": game.property_ownership[pos].hotels,
                "mortgaged": game.property_ownership[pos].is_mortgaged,
            }
            for pos in sorted(pstate.properties)
        ]
        players.append(entry)

    current = game.get_current_player()
    return {
        "room_code": game.room_code,
        "status": game.status.value,
        "winner_id": game.winner_id,
        "turn_number": game.turn_number,
        "current_player_id": current.player_id,
        "players": players,
        "bank": {
            "houses_available": game.bank.houses_available,
            "hotels_available": game.bank.hotels_available,
            "free_parking_pot": game.bank.free_parking_pot,
        },
        "turn": _turn_doc(game),
        "trades": [_trade_doc(t) for t in game.active_trades.values()],
        "auction": _auction_doc(game.active_auction),
        "decks": {
            "chance": {"cards": len(game.chance_deck), "cursor": game.chance_deck.cursor},
            "community_chest": {"cards": len(game.community_deck), "cursor": game.community_deck.cursor},
        },
    }


# ----------------------------------------------------------------------
# Validation
# ----------------------------------------------------------------------


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _validate_config(config: Any, errors: List[str]) -> None:
    if not isinstance(config, dict):
        errors.append("config must be an object")
        return
    defaults = GameConfig()
    for f in dataclasses.fields(GameConfig):
        if f.name not in config:
            continue
        value, default = config[f.name], getattr(defaults, f.name)
        if f.name == "seed":
            ok = value is None or _is_int(value)
        elif isinstance(default, bool):
            ok = isinstance(value, bool)
        elif isinstance(default, int):
            ok = _is_int(value) and value >= 0
        else:
            ok = _is_number(value) and value >= 0
        if not ok:
            errors.append(f"config.{f.name} has an invalid value {value!r}")


def _validate_players(doc: Dict[str, Any], min_players: int, max_players: int, errors: List[str]) -> List[str]:
    players = doc["players"]
    if not isinstance(players, list):
        errors.append("players must be a list")
        return []
    if not min_players <= len(players) <= max_players:
        errors.append(f"player count {len(players)} outside {min_players}..{max_players}")

    ids: List[str] = []
    for i, p in enumerate(players):
        if not isinstance(p, dict):
            errors.append(f"player {i} is not an object")
            continue
        pid = p.get("player_id")
        if not isinstance(pid, str) or not pid:
            errors.append(f"player {i} has no id")
            continue
        ids.append(pid)
        if not isinstance(p.get("name"), str) or not p["name"]:
            errors.append(f"player {pid}: name must be a non-empty string")
        if not _is_int(p.get("money")) or p["money"] < 0:
            errors.append(f"player {pid}: money must be a non-negative integer")
        if not _is_int(p.get("position")) or not 0 <= p["position"] < BOARD_SIZE:
            errors.append(f"player {pid}: position out of range")
        for flag in ("in_jail", "is_bankrupt"):
            if not isinstance(p.get(flag), bool):
                errors.append(f"player {pid}: {flag} must be a boolean")
        if not _is_int(p.get("jail_turns")) or not 0 <= p["jail_turns"] <= 2:
            errors.append(f"player {pid}: jail_turns out of range")
        if not _is_int(p.get("get_out_of_jail_cards")) or p["get_out_of_jail_cards"] < 0:
            errors.append(f"player {pid}: invalid jail card count")
        props = p.get("properties")
        if not isinstance(props, list) or not all(_is_int(pos) for pos in props):
            errors.append(f"player {pid}: properties must be a list of positions")
        elif p.get("is_bankrupt") and (p.get("money") != 0 or props):
            errors.append(f"player {pid}: bankrupt player still holds assets")
    if len(set(ids)) != len(ids):
        errors.append("duplicate player ids")

    index = doc["current_player_index"]
    if not _is_int(index) or not 0 <= index < len(players):
        errors.append("current_player_index out of range")
    return ids


def _validate_properties(
    doc: Dict[str, Any], board: Board, ids: List[str], errors: List[str]
) -> Optional[Dict[int, Optional[str]]]:
    """Check the ownership table; returns position -> owner when it is well formed."""
    entries = doc["properties"]
    if not isinstance(entries, list) or not all(isinstance(e, dict) for e in entries):
        errors.append("properties must be a list of objects")
        return None
    positions = [e.get("position") for e in entries]
    if not all(_is_int(p) for p in positions) or sorted(positions) != board.purchasable_positions():
        errors.append("property table does not cover the purchasable spaces")
        return None

    owners: Dict[int, Optional[str]] = {}
    houses = hotels = 0
    for e in entries:
        pos = e["position"]
        if "owner_id" not in e or "is_mortgaged" not in e:
            errors.append(f"space {pos}: owner_id and is_mortgaged are required")
            continue
        owner, h, ht = e["owner_id"], e.get("houses"), e.get("hotels")
        if not isinstance(e["is_mortgaged"], bool):
            errors.append(f"space {pos}: is_mortgaged must be a boolean")
        if not (_is_int(h) and _is_int(ht)) or not 0 <= h <= 4 or not 0 <= ht <= 1 or (h and ht):
            errors.append(f"space {pos}: invalid building counts")
            continue
        if (h or ht) and not isinstance(board.get_space(pos), PropertySpace):
            errors.append(f"space {pos}: buildings on a non-site")
        if owner is None and (h or ht or e["is_mortgaged"]):
            errors.append(f"space {pos}: unowned but built on or mortgaged")
        if owner is not None and owner not in ids:
            errors.append(f"space {pos}: unknown owner {owner}")
        owners[pos] = owner
        houses += h
        hotels += ht

    for p in doc["players"]:
        for pos in p["properties"]:
            if owners.get(pos, "") != p["player_id"]:
                errors.append(f"player {p['player_id']}: holds space {pos} without owning it")
    for pos, owner in owners.items():
        if owner is not None and owner in ids:
            holder = next(p for p in doc["players"] if p["player_id"] == owner)
            if pos not in holder["properties"]:
                errors.append(f"space {pos}: missing from owner's properties")

    config = doc["config"]
    bank = doc["bank"]
    if not isinstance(bank, dict) or not isinstance(config, dict):
        errors.append("bank and config must be objects")
        return None
    if not _is_int(bank.get("houses_available")) or bank["houses_available"] + houses != config.get("house_limit"):
        errors.append("house inventory does not add up")
    if not _is_int(bank.get("hotels_available")) or bank["hotels_available"] + hotels != config.get("hotel_limit"):
        errors.append("hotel inventory does not add up")
    if not _is_int(bank.get("free_parking_pot")) or bank["free_parking_pot"] < 0:
        errors.append("free parking pot must be a non-negative integer")
    return owners


def _validate_decks(doc: Dict[str, Any], errors: List[str]) -> None:
    decks = doc["decks"]
    if not isinstance(decks, dict):
        errors.append("decks must be an object")
        return
    for name, cards in (("chance", chance_cards()), ("community_chest", community_chest_cards())):
        deck = decks.get(name)
        if not isinstance(deck, dict):
            errors.append(f"{name} deck missing")
            continue
        expected = sorted(c.card_id for c in cards)
        order = deck.get("order")
        if not isinstance(order, list) or not all(isinstance(c, str) for c in order) or sorted(order) != expected:
            errors.append(f"{name} deck order is not a permutation of its cards")
        cursor = deck.get("cursor")
        if not _is_int(cursor) or not 0 <= cursor < len(expected):
            errors.append(f"{name} deck cursor out of range")


TURN_FIELDS = (
    "dice",
    "doubles_streak",
    "has_rolled",
    "can_roll_again",
    "pending_purchase",
    "pending_debt",
    "next_rent_multiplier",
)


def _validate_turn(turn: Any, owners: Dict[int, Optional[str]], ids: List[str], errors: List[str]) -> None:
    if not isinstance(turn, dict):
        errors.append("turn must be an object")
        return
    missing = [name for name in TURN_FIELDS if name not in turn]
    if missing:
        errors.extend(f"missing field: turn.{name}" for name in missing)
        return

    dice = turn["dice"]
    if dice is not None and (
        not isinstance(dice, list) or len(dice) != 2 or not all(_is_int(d) and 1 <= d <= 6 for d in dice)
    ):
        errors.append("turn.dice must be null or two values in 1..6")
    if not _is_int(turn["doubles_streak"]) or not 0 <= turn["doubles_streak"] <= 3:
        errors.append("turn.doubles_streak out of range")
    for flag in ("has_rolled", "can_roll_again"):
        if not isinstance(turn[flag], bool):
            errors.append(f"turn.{flag} must be a boolean")

    pending = turn["pending_purchase"]
    if pending is not None and (not _is_int(pending) or pending not in owners):
        errors.append("turn.pending_purchase is not a purchasable space")
    elif pending is not None and owners[pending] is not None:
        errors.append("turn.pending_purchase is already owned")

    multiplier = turn["next_rent_multiplier"]
    if multiplier is not None and (not _is_int(multiplier) or multiplier < 1):
        errors.append("turn.next_rent_multiplier must be null or a positive integer")

    debt = turn["pending_debt"]
    if debt is None:
        return
    expected = {f.name for f in dataclasses.fields(PendingDebt)}
    if not isinstance(debt, dict) or set(debt) != expected:
        errors.append(f"turn.pending_debt must have exactly {sorted(expected)}")
        return
    if debt["debtor_id"] not in ids:
        errors.append("turn.pending_debt has an unknown debtor")
    if debt["creditor_id"] is not None and debt["creditor_id"] not in ids:
        errors.append("turn.pending_debt has an unknown creditor")
    if not _is_int(debt["amount"]) or debt["amount"] <= 0:
        errors.append("turn.pending_debt amount must be a positive integer")
    if not isinstance(debt["reason"], str):
        errors.append("turn.pending_debt reason must be a string")


TRADE_FIELDS = (
    "trade_id",
    "from_player",
    "to_player",
    "offered_money",
    "requested_money",
    "offered_properties",
    "requested_properties",
)


def _validate_trades(trades: Any, owners: Dict[int, Optional[str]], ids: List[str], errors: List[str]) -> None:
    if not isinstance(trades, list) or not all(isinstance(t, dict) for t in trades):
        errors.append("trades must be a list of objects")
        return
    seen = set()
    for i, trade in enumerate(trades):
        missing = [name for name in TRADE_FIELDS if name not in trade]
        if missing:
            errors.append(f"trade {i} is missing {', '.join(missing)}")
            continue
        tid = trade["trade_id"]
        if not isinstance(tid, str) or not tid or tid in seen:
            errors.append(f"trade {i} has a missing or duplicate id")
            continue
        seen.add(tid)
        if trade["from_player"] not in ids or trade["to_player"] not in ids:
            errors.append(f"trade {tid} references unknown players")
        elif trade["from_player"] == trade["to_player"]:
            errors.append(f"trade {tid} is with the proposer")
        for key in ("offered_money", "requested_money"):
            if not _is_int(trade[key]) or trade[key] < 0:
                errors.append(f"trade {tid}: {key} must be a non-negative integer")
        for key in ("offered_properties", "requested_properties"):
            props = trade[key]
            if not isinstance(props, list) or not all(_is_int(p) and p in owners for p in props):
                errors.append(f"trade {tid}: {key} must list purchasable spaces")
            elif len(set(props)) != len(props):
                errors.append(f"trade {tid}: {key} has duplicates")
        if trade.get("status", TradeStatus.PENDING.value) != TradeStatus.PENDING.value:
            errors.append(f"trade {tid} is not pending")


def _validate_auction(auction: Any, owners: Dict[int, Optional[str]], ids: List[str], errors: List[str]) -> None:
    if auction is None:
        return
    if not isinstance(auction, dict):
        errors.append("auction must be an object")
        return
    pos = auction.get("property_position")
    if not _is_int(pos) or pos not in owners:
        errors.append("auction lot is not a purchasable space")
    elif owners[pos] is not None:
        errors.append("auction lot is already owned")
    if not isinstance(auction.get("property_name", ""), (str, type(None))):
        errors.append("auction property_name must be a string")
    bid = auction.get("current_bid")
    if not _is_int(bid) or bid < 0:
        errors.append("auction current_bid must be a non-negative integer")
    if "current_bidder" not in auction:
        errors.append("auction current_bidder is required")
    else:
        bidder = auction["current_bidder"]
        if bidder is not None and bidder not in ids:
            errors.append("auction current_bidder is not a player")
        elif (bidder is None) != (bid == 0):
            errors.append("auction current_bid and current_bidder disagree")
    if not _is_number(auction.get("deadline")):
        errors.append("auction deadline must be a number")
    if not isinstance(auction.get("is_active", True), bool):
        errors.append("auction is_active must be a boolean")
    log = auction.get("bid_log", [])
    if not isinstance(log, list) or not all(
        isinstance(b, dict)
        and b.get("player_id") in ids
        and _is_int(b.get("amount"))
        and b["amount"] > 0
        and _is_number(b.get("timestamp"))
        for b in log
    ):
        errors.append("auction bid_log is malformed")


def _validate_history(history: Any, errors: List[str]) -> None:
    if not isinstance(history, list) or not all(isinstance(e, dict) for e in history):
        errors.append("history must be a list of objects")
        return
    known_events = {t.value for t in EventType}
    last = -1
    for entry in history:
        seq = entry.get("sequence")
        if (
            entry.get("event_type") not in known_events
            or not _is_int(seq)
            or seq <= last
            or not _is_int(entry.get("turn_number"))
            or not _is_number(entry.get("timestamp"))
            or not isinstance(entry.get("player_id"), (str, type(None)))
            or not isinstance(entry.get("details", {}), (dict, type(None)))
        ):
            errors.append(f"history entry {seq!r} is malformed")
            return
        last = seq


def validate(doc: Any, min_players: int = 2, max_players: int = 8) -> List[str]:
    """Structural validation of a snapshot document. Returns a list of errors.

    Every key ``deserialize`` reads is checked here, so a document with no
    errors always rebuilds into a game the engine can run.
    """
    if not isinstance(doc, dict):
        return ["snapshot must be an object"]
    missing = [name for name in REQUIRED_FIELDS if name not in doc]
    if missing:
        return [f"missing field: {name}" for name in missing]

    errors: List[str] = []
    if doc["format_version"] != FORMAT_VERSION:
        errors.append(f"unsupported format version {doc['format_version']!r}")
    if doc["board_version"] != BOARD_VERSION:
        errors.append(f"board version {doc['board_version']!r} does not match {BOARD_VERSION!r}")

    board = Board()
    if not isinstance(doc["board"], list) or len(doc["board"]) != BOARD_SIZE:
        errors.append(f"board must have {BOARD_SIZE} spaces")
    elif doc["board"] != board.fingerprint():
        errors.append("board table does not match the static board")
    if not isinstance(doc["room_code"], str):
        errors.append("room_code must be a string")
    if doc["status"] not in {s.value for s in GameStatus}:
        errors.append(f"unknown status {doc['status']!r}")
    if not _is_int(doc["turn_number"]) or doc["turn_number"] < 1:
        errors.append("turn_number must be a positive integer")
    _validate_config(doc["config"], errors)

    ids = _validate_players(doc, min_players, max_players, errors)
    if errors:
        return errors
    if doc["winner_id"] is not None and doc["winner_id"] not in ids:
        errors.append("winner_id is not a player")
    owners = _validate_properties(doc, board, ids, errors)
    _validate_decks(doc, errors)
    if owners is None:
        return errors
    _validate_turn(doc["turn"], owners, ids, errors)
    _validate_trades(doc["trades"], owners, ids, errors)
    _validate_auction(doc["auction"], owners, ids, errors)
    _validate_history(doc["history"], errors)
    return errors


# ----------------------------------------------------------------------
# Reconstruction
# ----------------------------------------------------------------------


def deserialize(
    doc: Dict[str, Any],
    min_players: int = 2,
    max_players: int = 8,
    rng: Optional[random.Random] = None,
    clock: Optional[Callable[[], float]] = None,
) -> GameState:
    """Rebuild a GameState. Raises SnapshotError without building anything on a bad document."""
    errors = validate(doc, min_players, max_players)
    if errors:
        raise SnapshotError(errors)

    known = {f.name for f in dataclasses.fields(GameConfig)}
    config = GameConfig(**{k: v for k, v in doc["config"].items() if k in known})
    players = [Player(p["player_id"], p["name"]) for p in doc["players"]]
    game = GameState(config, players, room_code=doc["room_code"], rng=rng, clock=clock)

    for pstate, p in zip(game.players, doc["players"]):
        pstate.money = p["money"]
        pstate.position = p["position"]
        pstate.in_jail = bool(p["in_jail"])
        pstate.jail_turns = p["jail_turns"]
        pstate.get_out_of_jail_cards = p["get_out_of_jail_cards"]
        pstate.is_bankrupt = bool(p["is_bankrupt"])
        pstate.properties = set(p["properties"])

    for e in doc["properties"]:
        ownership = game.property_ownership[e["position"]]
        ownership.owner_id = e["owner_id"]
        ownership.houses = e["houses"]
        ownership.hotels = e["hotels"]
        ownership.is_mortgaged = bool(e["is_mortgaged"])

    game.bank.houses_available = doc["bank"]["houses_available"]
    game.bank.hotels_available = doc["bank"]["hotels_available"]
    game.bank.free_parking_pot = doc["bank"]["free_parking_pot"]

    game.status = GameStatus(doc["status"])
    game.winner_id = doc["winner_id"]
    game.turn_number = doc["turn_number"]
    game.current_player_index = doc["current_player_index"]

    turn = doc["turn"]
    game.dice = tuple(turn["dice"]) if turn.get("dice") else None
    game.doubles_streak = turn.get("doubles_streak", 0)
    game.has_rolled = bool(turn.get("has_rolled"))
    game.can_roll_again = bool(turn.get("can_roll_again"))
    game.pending_purchase = turn.get("pending_purchase")
    game.pending_debt = PendingDebt(**turn["pending_debt"]) if turn.get("pending_debt") else None
    game.next_rent_multiplier = turn.get("next_rent_multiplier")

    try:
        game.chance_deck.restore(doc["decks"]["chance"]["order"], doc["decks"]["chance"]["cursor"])
        game.community_deck.restore(
            doc["decks"]["community_chest"]["order"], doc["decks"]["community_chest"]["cursor"]
        )
    except ValueError as exc:
        raise SnapshotError([str(exc)]) from exc

    for t in doc["trades"]:
        trade = Trade(
            trade_id=t["trade_id"],
            from_player=t["from_player"],
            to_player=t["to_player"],
            offered_money=t["offered_money"],
            requested_money=t["requested_money"],
            offered_properties=frozenset(t["offered_properties"]),
            requested_properties=frozenset(t["requested_properties"]),
            status=TradeStatus(t.get("status", "pending")),
        )
        game.active_trades[trade.trade_id] = trade

    a = doc["auction"]
    if a is not None:
        game.active_auction = Auction(
            property_position=a["property_position"],
            property_name=a.get("property_name") or game.board.get_space(a["property_position"]).name,
            deadline=a["deadline"],
            current_bid=a["current_bid"],
            current_bidder=a["current_bidder"],
            bid_log=[Bid(b["player_id"], b["amount"], b["timestamp"]) for b in a.get("bid_log", [])],
            is_active=a.get("is_active", True),
        )

    game.history.restore(
        [
            GameEvent(
                sequence=e["sequence"],
                event_type=EventType(e["event_type"]),
                turn_number=e["turn_number"],
                timestamp=e["timestamp"],
                player_id=e.get("player_id"),
                details=dict(e.get("details") or {}),
            )
            for e in doc["history"]
        ]
    )

    violations = game.check_invariants()
    if violations:
        raise SnapshotError(violations)
    return game
