"""
Event dispatcher: the transport-agnostic seam between clients and games.

Connections are identified by an opaque id and own an outbound
``asyncio.Queue``. A connection is bound to at most one player of one
room; every game operation resolves ``(room_code, player_id)`` from that
binding, runs under the room lock and broadcasts the outcome to every
connection in the room. Failures only go back to the caller.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from contextlib import nullcontext
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

import snapshot
from events.mapper import map_events
from tycoon import GameState
from tycoon.exceptions import (
    AuthorizationError,
    MonopolyError,
    NotFoundError,
    StorageError,
)
from tycoon.room import Room, RoomStatus

from .registry import RoomRegistry
from .schemas import intent_adapter
from .storage import SnapshotStore

logger = logging.getLogger(__name__)

# Actions only the player whose turn it is may take.
TURN_ACTIONS = frozenset(
    {"roll", "buy", "decline", "start_auction", "end_turn", "pay_jail_fine", "use_jail_card"}
)


def to_jsonable(value: Any) -> Any:
    """Convert engine results (dataclasses, enums, frozensets) to JSON-safe values."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (frozenset, set)):
        return sorted(to_jsonable(v) for v in value)
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def error_message(exc: MonopolyError) -> Dict[str, Any]:
    return {"type": "error", **exc.to_dict()}


@dataclass
class Connection:
    connection_id: str
    queue: asyncio.Queue
    room_code: Optional[str] = None
    player_id: Optional[str] = None


class EventDispatcher:
    def __init__(
        self,
        registry: RoomRegistry,
        store: Optional[SnapshotStore] = None,
        *,
        history_window: int = 100,
        queue_size: int = 256,
    ):
        self.registry = registry
        self.store = store
        self.history_window = history_window
        self.queue_size = queue_size
        self._connections: Dict[str, Connection] = {}
        # Next event sequence to broadcast, per room.
        self._cursors: Dict[str, int] = {}
        self._bind_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def connect(self, connection_id: str, room_code: Optional[str] = None) -> asyncio.Queue:
        """Register a connection and return its outbound queue."""
        if room_code is not None:
            room_code = self.registry.get_room(room_code).code
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._connections[connection_id] = Connection(connection_id, queue, room_code=room_code)
        logger.debug("Connection %s opened (room=%s)", connection_id, room_code)
        return queue

    def get_connection(self, connection_id: str) -> Connection:
        conn = self._connections.get(connection_id)
        if conn is None:
            raise NotFoundError(f"unknown connection {connection_id}")
        return conn

    def connections_in(self, room_code: str) -> List[Connection]:
        code = room_code.upper()
        return [c for c in self._connections.values() if c.room_code == code]

    async def identify(
        self, connection_id: str, room_code: Optional[str] = None, player_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Bind a connection to a player of a room.

        The most recent assertion of a player id wins: the connection that
        held it before is unbound and told it was superseded. Without a
        player id the connection is bound only when exactly one
        participant is disconnected; otherwise it stays a spectator.
        Players are never created here.
        """
        async with self._bind_lock:
            conn = self.get_connection(connection_id)
            room = self.registry.get_room(room_code or conn.room_code or "")
            if player_id is not None:
                participant = room.get_participant(player_id)
            else:
                candidates = [p for p in room.participants if not p.connected]
                participant = candidates[0] if len(candidates) == 1 else None

            if conn.player_id is not None and (participant is None or conn.player_id != participant.player_id):
                self._unbind(conn)
            conn.room_code = room.code

            if participant is None:
                logger.info("Connection %s joined room %s as spectator", connection_id, room.code)
                reply = {"type": "identified", "room_code": room.code, "player_id": None, "spectator": True}
                self._send(conn, reply)
                return reply

            previous = self._connections.get(participant.connection_id or "")
            if previous is not None and previous is not conn:
                previous.player_id = None
                self._send(previous, {"type": "superseded", "room_code": room.code, "player_id": participant.player_id})
                logger.info("Player %s rebound from %s to %s", participant.player_id, previous.connection_id, connection_id)

            conn.player_id = participant.player_id
            participant.connection_id = connection_id
            participant.connected = True
            participant.touch()

        reply = {"type": "identified", "room_code": room.code, "player_id": participant.player_id, "spectator": False}
        self._send(conn, reply)
        await self._broadcast(room.code, {"type": "presence", "room_code": room.code, "player_id": participant.player_id, "connected": True})
        return reply

    def _unbind(self, conn: Connection) -> Optional[str]:
        """Detach ``conn`` from its participant; returns the player id it held."""
        player_id = conn.player_id
        conn.player_id = None
        if player_id is None or conn.room_code is None:
            return None
        try:
            room = self.registry.get_room(conn.room_code)
        except NotFoundError:
            return None
        participant = room.find_participant(player_id)
        if participant is None or participant.connection_id != conn.connection_id:
            return None
        participant.connection_id = None
        participant.connected = False
        return player_id

    async def disconnect(self, connection_id: str) -> None:
        async with self._bind_lock:
            conn = self._connections.pop(connection_id, None)
            if conn is None:
                return
            player_id = self._unbind(conn)
        logger.debug("Connection %s closed", connection_id)
        if player_id is not None and conn.room_code is not None:
            await self._broadcast(
                conn.room_code, {"type": "presence", "room_code": conn.room_code, "player_id": player_id, "connected": False}
            )

    def _send(self, conn: Connection, message: Dict[str, Any]) -> bool:
        try:
            conn.queue.put_nowait(message)
            return True
        except asyncio.QueueFull:
            logger.warning("Outbound queue full for connection %s; dropping it", conn.connection_id)
            self._unbind(conn)
            self._connections.pop(conn.connection_id, None)
            return False

    async def _broadcast(self, room_code: str, message: Dict[str, Any]) -> None:
        for conn in self.connections_in(room_code):
            self._send(conn, message)

    # ------------------------------------------------------------------
    # Intent entry point
    # ------------------------------------------------------------------

    async def dispatch(self, connection_id: str, payload: Any) -> Dict[str, Any]:
        """
        Validate and execute one client intent.

        Returns the message produced for the caller: the broadcast update
        on success, or ``{"type": "error", kind, message}``, which is also
        queued to the caller only.
        """
        conn = self._connections.get(connection_id)
        if conn is None:
            return error_message(NotFoundError(f"unknown connection {connection_id}"))
        try:
            intent = intent_adapter.validate_python(payload)
        except PydanticValidationError as exc:
            problems = "; ".join(f"{'.'.join(str(p) for p in e['loc']) or 'payload'}: {e['msg']}" for e in exc.errors())
            reply = {"type": "error", "kind": "validation", "message": problems}
            self._send(conn, reply)
            return reply

        try:
            if intent.action == "identify":
                return await self.identify(connection_id, conn.room_code, intent.player_id)
            if conn.room_code is None:
                raise AuthorizationError("connection is not attached to a room")
            if intent.action == "snapshot":
                reply = {"type": "snapshot", "room_code": conn.room_code, "snapshot": await self.request_snapshot(conn.room_code)}
                self._send(conn, reply)
                return reply
            if conn.player_id is None:
                raise AuthorizationError("identify as a player before acting")
            return await self._route(conn.room_code, conn.player_id, intent)
        except MonopolyError as exc:
            reply = error_message(exc)
            self._send(conn, reply)
            return reply

    async def _route(self, code: str, pid: str, intent: Any) -> Dict[str, Any]:
        action = intent.action
        if action == "roll":
            return await self.submit_roll(code, pid)
        if action == "buy":
            return await self.submit_buy(code, pid)
        if action == "decline":
            return await self.submit_decline(code, pid)
        if action == "start_auction":
            return await self.submit_start_auction(code, pid)
        if action == "build":
            return await self.submit_build(code, pid, intent.position)
        if action == "sell_building":
            return await self.submit_sell_building(code, pid, intent.position)
        if action == "mortgage":
            return await self.submit_mortgage(code, pid, intent.position)
        if action == "unmortgage":
            return await self.submit_unmortgage(code, pid, intent.position)
        if action == "propose_trade":
            return await self.submit_trade_proposal(
                code,
                pid,
                intent.to_player,
                offered_money=intent.offered_money,
                requested_money=intent.requested_money,
                offered_properties=intent.offered_properties,
                requested_properties=intent.requested_properties,
            )
        if action == "respond_trade":
            return await self.submit_trade_response(code, pid, intent.trade_id, intent.accept)
        if action == "cancel_trade":
            return await self.submit_trade_cancel(code, pid, intent.trade_id)
        if action == "bid":
            return await self.submit_auction_bid(code, pid, intent.amount)
        if action == "end_auction":
            return await self.request_end_auction(code, pid)
        if action == "end_turn":
            return await self.submit_end_turn(code, pid)
        if action == "pay_jail_fine":
            return await self.submit_pay_jail_fine(code, pid)
        if action == "use_jail_card":
            return await self.submit_use_jail_card(code, pid)
        if action == "pay_debt":
            return await self.submit_pay_debt(code, pid)
        if action == "bankrupt":
            return await self.declare_bankruptcy(code, pid, intent.creditor_id)
        raise AssertionError(f"unrouted action {action}")

    # ------------------------------------------------------------------
    # Operation runner
    # ------------------------------------------------------------------

    def _update(self, room: Room, game: GameState, player_id: Optional[str], action: str, result: Any) -> Dict[str, Any]:
        start = self._cursors.get(room.code, 0)
        events = game.history.since(start)
        self._cursors[room.code] = game.history.next_sequence
        if game.is_finished and room.status != RoomStatus.FINISHED:
            room.status = RoomStatus.FINISHED
            logger.info("Game in room %s finished; winner %s", room.code, game.winner_id)
        return {
            "type": "update",
            "room_code": room.code,
            "action": action,
            "player_id": player_id,
            "result": to_jsonable(result),
            "events": map_events(game.board, events),
            "snapshot": snapshot.public_view(game),
        }

    async def _run(
        self,
        room_code: str,
        player_id: Optional[str],
        action: str,
        op: Callable[[GameState], Any],
    ) -> Dict[str, Any]:
        async with self.registry.lock_for(room_code):
            room = self.registry.get_room(room_code)
            game = self.registry.get_game(room.code)
            if player_id is not None:
                game.get_player(player_id)
                if action in TURN_ACTIONS and game.get_current_player().player_id != player_id:
                    raise AuthorizationError("not your turn")
            result = op(game)
            message = self._update(room, game, player_id, action, result)
        await self._broadcast(room.code, message)
        return message

    # ------------------------------------------------------------------
    # Transport-agnostic operations
    # ------------------------------------------------------------------

    async def start_game(self, room_code: str, player_id: str) -> Dict[str, Any]:
        game = await self.registry.start_game(room_code, player_id)
        room = self.registry.get_room(room_code)
        self._cursors[room.code] = 0
        async with self.registry.lock_for(room.code):
            message = self._update(room, game, player_id, "start_game", None)
        await self._broadcast(room.code, message)
        return message

    async def submit_roll(self, room_code: str, player_id: str) -> Dict[str, Any]:
        return await self._run(room_code, player_id, "roll", lambda g: g.roll_dice(player_id))

    async def submit_buy(self, room_code: str, player_id: str) -> Dict[str, Any]:
        return await self._run(room_code, player_id, "buy", lambda g: g.buy_property(player_id))

    async def submit_decline(self, room_code: str, player_id: str) -> Dict[str, Any]:
        return await self._run(room_code, player_id, "decline", lambda g: g.decline_purchase(player_id))

    async def submit_start_auction(self, room_code: str, player_id: str) -> Dict[str, Any]:
        return await self._run(room_code, player_id, "start_auction", lambda g: g.start_auction(player_id))

    async def submit_build(self, room_code: str, player_id: str, position: int) -> Dict[str, Any]:
        return await self._run(room_code, player_id, "build", lambda g: g.build_on(player_id, position))

    async def submit_sell_building(self, room_code: str, player_id: str, position: int) -> Dict[str, Any]:
        return await self._run(room_code, player_id, "sell_building", lambda g: g.sell_building(player_id, position))

    async def submit_mortgage(self, room_code: str, player_id: str, position: int) -> Dict[str, Any]:
        return await self._run(room_code, player_id, "mortgage", lambda g: g.mortgage(player_id, position))

    async def submit_unmortgage(self, room_code: str, player_id: str, position: int) -> Dict[str, Any]:
        return await self._run(room_code, player_id, "unmortgage", lambda g: g.unmortgage(player_id, position))

    async def submit_trade_proposal(
        self,
        room_code: str,
        player_id: str,
        to_player: str,
        *,
        offered_money: int = 0,
        requested_money: int = 0,
        offered_properties=(),
        requested_properties=(),
    ) -> Dict[str, Any]:
        return await self._run(
            room_code,
            player_id,
            "propose_trade",
            lambda g: g.propose_trade(
                player_id,
                to_player,
                offered_money=offered_money,
                requested_money=requested_money,
                offered_properties=offered_properties,
                requested_properties=requested_properties,
            ),
        )

    async def submit_trade_response(self, room_code: str, player_id: str, trade_id: str, accept: bool) -> Dict[str, Any]:
        return await self._run(room_code, player_id, "respond_trade", lambda g: g.respond_to_trade(player_id, trade_id, accept))

    async def submit_trade_cancel(self, room_code: str, player_id: str, trade_id: str) -> Dict[str, Any]:
        return await self._run(room_code, player_id, "cancel_trade", lambda g: g.cancel_trade(player_id, trade_id))

    async def submit_auction_bid(self, room_code: str, player_id: str, amount: int) -> Dict[str, Any]:
        return await self._run(room_code, player_id, "bid", lambda g: g.place_bid(player_id, amount))

    async def request_end_auction(self, room_code: str, player_id: Optional[str] = None) -> Dict[str, Any]:
        """Close the auction once its deadline has passed."""
        return await self._run(room_code, player_id, "end_auction", lambda g: g.end_auction())

    async def submit_end_turn(self, room_code: str, player_id: str) -> Dict[str, Any]:
        return await self._run(room_code, player_id, "end_turn", lambda g: g.end_turn(player_id))

    async def submit_pay_jail_fine(self, room_code: str, player_id: str) -> Dict[str, Any]:
        return await self._run(room_code, player_id, "pay_jail_fine", lambda g: g.pay_jail_fine(player_id))

    async def submit_use_jail_card(self, room_code: str, player_id: str) -> Dict[str, Any]:
        return await self._run(room_code, player_id, "use_jail_card", lambda g: g.use_jail_card(player_id))

    async def submit_pay_debt(self, room_code: str, player_id: str) -> Dict[str, Any]:
        return await self._run(room_code, player_id, "pay_debt", lambda g: g.pay_debt(player_id))

    async def declare_bankruptcy(self, room_code: str, player_id: str, creditor_id: Optional[str] = None) -> Dict[str, Any]:
        return await self._run(room_code, player_id, "bankrupt", lambda g: g.declare_bankruptcy(player_id, creditor_id))

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    async def request_snapshot(self, room_code: str) -> Dict[str, Any]:
        """
        Resync view of a room's game for a (re)connecting client.

        This is ``snapshot.public_view``, not the full ``serialize``
        document: deck order and history stay on the server. Every other
        GameState field is included, which is what clients rebuild from.
        Use ``save_snapshot`` for the complete document.
        """
        async with self.registry.lock_for(room_code):
            return snapshot.public_view(self.registry.get_game(room_code))

    def _require_store(self) -> SnapshotStore:
        if self.store is None:
            raise StorageError("no snapshot store configured")
        return self.store

    async def save_snapshot(self, room_code: str) -> int:
        store = self._require_store()
        async with self.registry.lock_for(room_code):
            game = self.registry.get_game(room_code)
            document = snapshot.serialize(game, self.history_window)
        return await store.save(game.room_code, document)

    async def load_snapshot(self, room_code: str, document: Optional[Dict[str, Any]] = None) -> Room:
        """
        Restore a game from ``document``, or from the store when omitted.
        A malformed document raises SnapshotError and leaves the room as it was.
        """
        code = room_code.upper()
        if document is None:
            document = await self._require_store().load(code)
        game = snapshot.deserialize(
            document, min_players=self.registry.min_players, max_players=self.registry.max_players
        )
        # An existing room's game is only swapped while its lock is held.
        lock = self.registry.lock_for(code) if self.registry.has_room(code) else nullcontext()
        async with lock:
            room = await self.registry.install_game(code, game)
            self._cursors[room.code] = game.history.next_sequence
        message = {
            "type": "loaded",
            "room_code": room.code,
            "snapshot": snapshot.public_view(game),
        }
        await self._broadcast(room.code, message)
        logger.info("Room %s restored from snapshot (turn %d)", room.code, game.turn_number)
        return room

    # ------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------

    async def sweep_auctions(self, now: Optional[float] = None) -> List[Dict[str, Any]]:
        """End every auction whose deadline has passed; returns the broadcasts."""
        messages: List[Dict[str, Any]] = []
        for code, _ in self.registry.running_games():
            try:
                async with self.registry.lock_for(code):
                    # Looked up under the lock: a snapshot load may have replaced the game.
                    room = self.registry.get_room(code)
                    game = self.registry.get_game(code)
                    if game.active_auction is None:
                        continue
                    result = game.sweep_auction(now)
                    if result is None:
                        continue
                    message = self._update(room, game, None, "auction_end", result)
            except NotFoundError:
                continue
            except MonopolyError as exc:
                logger.error("Auction sweep failed in room %s: %s", code, exc.message)
                continue
            await self._broadcast(code, message)
            messages.append(message)
        return messages

    async def autosave(self) -> int:
        """Save every unfinished game; returns how many were saved."""
        if self.store is None:
            return 0
        saved = 0
        for code, game in self.registry.running_games():
            if game.is_finished:
                continue
            try:
                await self.save_snapshot(code)
                saved += 1
            except MonopolyError as exc:
                logger.error("Autosave failed for room %s: %s", code, exc.message)
        if saved:
            logger.info("Autosaved %d games", saved)
        return saved
