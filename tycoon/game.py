"""
Main game engine and state management.

``GameState`` is the single owner of one room's mutable game. Every
mutating operation validates its preconditions, raises a typed error
before touching anything if they fail, and runs inside an atomic section
that restores the previous state if the operation fails midway or leaves
an invariant broken.
"""

import copy
import logging
import random
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from tycoon.auction import Auction, Bid
from tycoon.board import Board
from tycoon.cards import Card, CardAction, CyclicDeck, create_chance_deck, create_community_chest_deck
from tycoon.config import BOARD_SIZE, JAIL_POSITION, GameConfig
from tycoon.exceptions import (
    AuthorizationError,
    InsufficientFundsError,
    InvariantViolation,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from tycoon.money import Bank, EventLog, EventType
from tycoon.player import Player, PlayerState, PropertyOwnership
from tycoon.spaces import PropertySpace, SpaceType, StationSpace, TaxSpace, UtilitySpace
from tycoon.trade import Trade, TradeStatus, new_trade, trades_involving

logger = logging.getLogger(__name__)


class GameStatus(Enum):
    ACTIVE = "active"
    FINISHED = "finished"


class TurnPhase(Enum):
    """Where the current turn is. Derived from the turn-transient fields."""

    WAITING_FOR_ROLL = "waiting_for_roll"
    AWAITING_DECISION = "awaiting_decision"
    AUCTION = "auction"
    TURN_COMPLETE = "turn_complete"
    FINISHED = "finished"


class LandingOutcome(Enum):
    NOTHING = "nothing"
    PURCHASE_AVAILABLE = "purchase_available"
    OWN_PROPERTY = "own_property"
    MORTGAGED = "mortgaged"
    RENT_PAID = "rent_paid"
    TAX_PAID = "tax_paid"
    DEBT_PENDING = "debt_pending"
    CARD = "card"
    GO_TO_JAIL = "go_to_jail"
    FREE_PARKING = "free_parking"


@dataclass
class PendingDebt:
    """An unpaid charge. Only recorded when payments are not capped at the balance."""

    debtor_id: str
    creditor_id: Optional[str]
    amount: int
    reason: str


@dataclass
class Payment:
    amount_due: int
    amount_paid: int
    creditor_id: Optional[str] = None
    bankruptcy_triggered: bool = False
    debt_pending: bool = False


@dataclass
class LandingResult:
    """What happened when a player came to rest on a space."""

    position: int
    space_name: str
    outcome: LandingOutcome
    amount: int = 0
    payee_id: Optional[str] = None
    bankruptcy_triggered: bool = False
    creditor_id: Optional[str] = None
    card: Optional[Card] = None
    card_skipped: bool = False
    follow_up: Optional["LandingResult"] = None


@dataclass
class RollResult:
    dice: Tuple[int, int]
    is_doubles: bool
    doubles_streak: int
    from_position: int
    to_position: int
    passed_go: bool = False
    jail_outcome: Optional[str] = None
    landing: Optional[LandingResult] = None
    can_roll_again: bool = False


@dataclass
class ActionResult:
    """Outcome of a simple ledger operation (buy, build, mortgage, ...)."""

    action: str
    player_id: str
    position: Optional[int] = None
    amount: int = 0
    balance: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AuctionResult:
    position: int
    winner_id: Optional[str]
    amount: int
    sold: bool


# Shared, never copied by the atomic section.
_SHARED_ATTRS = ("config", "board", "rng", "clock")


class GameState:
    """
    Represents the complete state of one room's game.
    This is the main interface for the game engine.
    """

    def __init__(
        self,
        config: GameConfig,
        players: List[Player],
        room_code: str = "",
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.config = config
        self.room_code = room_code
        self.board = Board()
        self.rng = rng if rng is not None else random.Random(config.seed)
        self.clock = clock or time.time

        self.bank = Bank(config.house_limit, config.hotel_limit)
        self.history = EventLog()

        self.players: List[PlayerState] = [
            PlayerState(p.player_id, p.name, config.starting_money) for p in players
        ]
        self.property_ownership: Dict[int, PropertyOwnership] = {
            pos: PropertyOwnership() for pos in self.board.purchasable_positions()
        }

        self.chance_deck: CyclicDeck = create_chance_deck(self.rng)
        self.community_deck: CyclicDeck = create_community_chest_deck(self.rng)

        self.status = GameStatus.ACTIVE
        self.winner_id: Optional[str] = None
        self.current_player_index = 0
        self.turn_number = 1

        # Turn-transient state
        self.dice: Optional[Tuple[int, int]] = None
        self.doubles_streak = 0
        self.has_rolled = False
        self.can_roll_again = False
        self.pending_purchase: Optional[int] = None
        self.pending_debt: Optional[PendingDebt] = None
        self.next_rent_multiplier: Optional[int] = None

        self.active_trades: Dict[str, Trade] = {}
        self.active_auction: Optional[Auction] = None

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_player(self, player_id: str) -> PlayerState:
        for player in self.players:
            if player.player_id == player_id:
                return player
        raise NotFoundError(f"player {player_id} is not in this game")

    def get_current_player(self) -> PlayerState:
        return self.players[self.current_player_index]

    def get_active_players(self) -> List[PlayerState]:
        """Get all non-bankrupt players."""
        return [p for p in self.players if not p.is_bankrupt]

    @property
    def is_finished(self) -> bool:
        return self.status == GameStatus.FINISHED

    @property
    def phase(self) -> TurnPhase:
        if self.is_finished:
            return TurnPhase.FINISHED
        if self.active_auction is not None:
            return TurnPhase.AUCTION
        if self.pending_purchase is not None or self.pending_debt is not None:
            return TurnPhase.AWAITING_DECISION
        if not self.has_rolled or self.can_roll_again:
            return TurnPhase.WAITING_FOR_ROLL
        return TurnPhase.TURN_COMPLETE

    def owns_color_group(self, player_id: str, color_group: str) -> bool:
        return all(
            self.property_ownership[pos].owner_id == player_id for pos in self.board.get_color_group(color_group)
        )

    def group_has_buildings(self, color_group: str) -> bool:
        return any(self.property_ownership[pos].has_buildings() for pos in self.board.get_color_group(color_group))

    def count_owned(self, player_id: str, space_type: SpaceType) -> int:
        return sum(
            1 for pos in self.board.positions_of(space_type) if self.property_ownership[pos].owner_id == player_id
        )

    def calculate_rent(self, position: int, dice_total: int) -> int:
        """
        Rent owed for landing on an owned, unmortgaged space.

        Monopoly doubling applies when the owner holds the whole color group
        and nothing in the group is built on. A pending card multiplier is
        applied on top.
        """
        ownership = self.property_ownership[position]
        if not ownership.is_owned() or ownership.is_mortgaged:
            return 0

        space = self.board.get_space(position)
        owner_id = ownership.owner_id

        if isinstance(space, PropertySpace):
            has_monopoly = self.owns_color_group(owner_id, space.color_group) and not self.group_has_buildings(
                space.color_group
            )
            rent = space.get_rent(ownership.houses, ownership.hotels, has_monopoly)
        elif isinstance(space, StationSpace):
            rent = space.get_rent(self.count_owned(owner_id, SpaceType.STATION))
        elif isinstance(space, UtilitySpace):
            rent = space.get_rent(dice_total, self.count_owned(owner_id, SpaceType.UTILITY))
        else:
            raise InvariantViolation(f"space {position} has ownership but no rent schedule")

        if self.next_rent_multiplier is not None:
            rent *= self.next_rent_multiplier
        return rent

    # ------------------------------------------------------------------
    # Atomic sections and invariants
    # ------------------------------------------------------------------

    def _capture(self) -> Tuple[Dict[str, Any], Any]:
        memo = {id(getattr(self, name)): getattr(self, name) for name in _SHARED_ATTRS}
        state = {k: v for k, v in self.__dict__.items() if k not in _SHARED_ATTRS}
        return copy.deepcopy(state, memo), self.rng.getstate()

    def _restore(self, saved: Tuple[Dict[str, Any], Any]) -> None:
        state, rng_state = saved
        self.__dict__.update(state)
        self.rng.setstate(rng_state)

    @contextmanager
    def _atomic(self, operation: str):
        saved = self._capture()
        try:
            yield
        except InvariantViolation:
            self._restore(saved)
            logger.exception("Defect during %s in room %s", operation, self.room_code)
            raise
        except Exception:
            self._restore(saved)
            raise
        violations = self.check_invariants()
        if violations:
            self._restore(saved)
            logger.error("Invariant violation after %s in room %s: %s", operation, self.room_code, violations)
            raise InvariantViolation(f"{operation} would break game invariants: {'; '.join(violations)}")

    def check_invariants(self) -> List[str]:
        """Return a list of violated invariants (empty when the state is sound)."""
        errors: List[str] = []
        ids = [p.player_id for p in self.players]

        total_houses = sum(o.houses for o in self.property_ownership.values())
        total_hotels = sum(o.hotels for o in self.property_ownership.values())
        if self.bank.houses_available + total_houses != self.config.house_limit:
            errors.append(
                f"house inventory mismatch: {self.bank.houses_available} available + {total_houses} built"
            )
        if self.bank.hotels_available + total_hotels != self.config.hotel_limit:
            errors.append(
                f"hotel inventory mismatch: {self.bank.hotels_available} available + {total_hotels} built"
            )
        if not 0 <= self.bank.houses_available <= self.config.house_limit:
            errors.append(f"houses available out of range: {self.bank.houses_available}")
        if not 0 <= self.bank.hotels_available <= self.config.hotel_limit:
            errors.append(f"hotels available out of range: {self.bank.hotels_available}")
        if self.bank.free_parking_pot < 0:
            errors.append("free parking pot is negative")

        for pos, ownership in self.property_ownership.items():
            space = self.board.get_space(pos)
            if not 0 <= ownership.houses <= 4 or not 0 <= ownership.hotels <= 1:
                errors.append(f"{space.name}: building counts out of range")
            if ownership.houses and ownership.hotels:
                errors.append(f"{space.name}: has both houses and a hotel")
            if ownership.has_buildings() and not isinstance(space, PropertySpace):
                errors.append(f"{space.name}: buildings on a non-site")
            if ownership.has_buildings() and ownership.is_mortgaged:
                errors.append(f"{space.name}: mortgaged with buildings")
            if ownership.owner_id is None:
                if ownership.is_mortgaged or ownership.has_buildings():
                    errors.append(f"{space.name}: unowned but mortgaged or built on")
            elif ownership.owner_id not in ids:
                errors.append(f"{space.name}: owned by unknown player {ownership.owner_id}")
            elif pos not in self.get_player(ownership.owner_id).properties:
                errors.append(f"{space.name}: missing from owner's property set")

        for player in self.players:
            if player.money < 0:
                errors.append(f"{player.name}: negative money")
            if not 0 <= player.position < BOARD_SIZE:
                errors.append(f"{player.name}: position out of range")
            if not 0 <= player.jail_turns < self.config.max_jail_turns:
                errors.append(f"{player.name}: jail turns out of range")
            if player.get_out_of_jail_cards < 0:
                errors.append(f"{player.name}: negative jail cards")
            for pos in player.properties:
                ownership = self.property_ownership.get(pos)
                if ownership is None or ownership.owner_id != player.player_id:
                    errors.append(f"{player.name}: holds {pos} without owning it")
            if player.is_bankrupt and (player.money != 0 or player.properties):
                errors.append(f"{player.name}: bankrupt but still holds assets")

        if not 0 <= self.current_player_index < len(self.players):
            errors.append("current player index out of range")
        elif not self.is_finished and self.get_current_player().is_bankrupt:
            errors.append("current player is bankrupt")
        if not 0 <= self.doubles_streak <= 3:
            errors.append("doubles streak out of range")
        return errors

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def _log(self, event_type: EventType, player_id: Optional[str] = None, **details: Any):
        return self.history.log(
            event_type, player_id, turn_number=self.turn_number, timestamp=self.clock(), **details
        )

    def _require_active(self) -> None:
        if self.is_finished:
            raise StateConflictError("game is finished")

    def _require_player(self, player_id: str) -> PlayerState:
        player = self.get_player(player_id)
        if player.is_bankrupt:
            raise StateConflictError(f"{player.name} is bankrupt")
        return player

    def _require_current(self, player_id: str) -> PlayerState:
        self._require_active()
        player = self.get_player(player_id)
        if player is not self.get_current_player():
            raise AuthorizationError("not your turn")
        return player

    def _require_owner(self, player_id: str, position: int) -> PropertyOwnership:
        self._require_active()
        self._require_player(player_id)
        ownership = self.property_ownership.get(position)
        if ownership is None:
            raise ValidationError(f"space {position} cannot be owned")
        if ownership.owner_id != player_id:
            raise AuthorizationError(f"{self.board.get_space(position).name} is not your property")
        return ownership

    def _require_site(self, position: int) -> PropertySpace:
        space = self.board.get_property_space(position)
        if space is None:
            raise ValidationError(f"{self.board.get_space(position).name} cannot hold buildings")
        return space

    # ------------------------------------------------------------------
    # Money movement
    # ------------------------------------------------------------------

    def _credit(self, creditor_id: Optional[str], amount: int, reason: str) -> None:
        if creditor_id is not None:
            self.get_player(creditor_id).add_money(amount)
        elif reason == "tax" and self.config.free_parking_jackpot:
            self.bank.free_parking_pot += amount

    def _charge(self, payer: PlayerState, amount: int, creditor_id: Optional[str], reason: str) -> Payment:
        """
        Apply the payment policy for rent, tax and the forced jail fine.

        Capped: take what the payer has, flag bankruptcy when they hit zero.
        Uncapped: take the full amount or record a pending debt and take nothing.
        """
        if self.config.cap_payments_at_balance:
            paid = payer.remove_money(amount)
            self._credit(creditor_id, paid, reason)
            return Payment(amount, paid, creditor_id, bankruptcy_triggered=amount > 0 and payer.money == 0)

        if payer.money >= amount:
            payer.remove_money(amount)
            self._credit(creditor_id, amount, reason)
            return Payment(amount, amount, creditor_id)

        self.pending_debt = PendingDebt(payer.player_id, creditor_id, amount, reason)
        self._log(EventType.DEBT_CREATED, payer.player_id, creditor=creditor_id, amount=amount, reason=reason)
        return Payment(amount, 0, creditor_id, debt_pending=True)

    def _collect_go(self, player: PlayerState) -> None:
        player.add_money(self.config.go_salary)
        self._log(EventType.PASS_GO, player.player_id, amount=self.config.go_salary, balance=player.money)

    # ------------------------------------------------------------------
    # Movement and landing
    # ------------------------------------------------------------------

    def _move_by(self, player: PlayerState, steps: int) -> bool:
        """Move forward (or back, for negative steps). Returns True when GO was passed or landed on."""
        old = player.position
        passed_go = steps > 0 and old + steps >= BOARD_SIZE
        player.position = (old + steps) % BOARD_SIZE
        if passed_go:
            self._collect_go(player)
        self._log(EventType.MOVE, player.player_id, **{"from": old, "to": player.position, "spaces": steps})
        return passed_go

    def _move_to(self, player: PlayerState, target: int, collect_go: bool) -> bool:
        old = player.position
        passed_go = collect_go and target <= old
        player.position = target
        if passed_go:
            self._collect_go(player)
        self._log(EventType.MOVE, player.player_id, **{"from": old, "to": target, "direct": True})
        return passed_go

    def _send_to_jail(self, player: PlayerState) -> None:
        player.position = JAIL_POSITION
        player.in_jail = True
        player.jail_turns = 0
        self.doubles_streak = 0
        self.can_roll_again = False
        self._log(EventType.GO_TO_JAIL, player.player_id)

    def _release_from_jail(self, player: PlayerState, method: str, amount: int = 0) -> None:
        player.in_jail = False
        player.jail_turns = 0
        self._log(EventType.JAIL_RELEASE, player.player_id, method=method, amount=amount)

    def resolve_landing(self, player_id: str, dice_total: int) -> LandingResult:
        """
        Apply the effect of the space the player is standing on.
        Called after every movement, including card-driven movement.
        """
        player = self.get_player(player_id)
        space = self.board.get_space(player.position)
        result = LandingResult(player.position, space.name, LandingOutcome.NOTHING)
        self._log(EventType.LAND, player.player_id, position=space.position, space=space.name)

        try:
            if space.space_type in (SpaceType.PROPERTY, SpaceType.STATION, SpaceType.UTILITY):
                self._land_on_ownable(player, space.position, dice_total, result)
            elif space.space_type == SpaceType.TAX:
                self._land_on_tax(player, space, result)
            elif space.space_type == SpaceType.CHANCE:
                self._draw_and_apply(player, self.chance_deck, dice_total, result)
            elif space.space_type == SpaceType.COMMUNITY_CHEST:
                self._draw_and_apply(player, self.community_deck, dice_total, result)
            elif space.space_type == SpaceType.GO_TO_JAIL:
                self._send_to_jail(player)
                result.outcome = LandingOutcome.GO_TO_JAIL
            elif space.space_type == SpaceType.FREE_PARKING:
                self._land_on_free_parking(player, result)
            elif space.space_type in (SpaceType.GO, SpaceType.JAIL):
                pass
            else:
                raise InvariantViolation(f"unhandled space type {space.space_type!r} at {space.position}")
        finally:
            self.next_rent_multiplier = None
        return result

    def _land_on_ownable(self, player: PlayerState, position: int, dice_total: int, result: LandingResult) -> None:
        ownership = self.property_ownership[position]
        if not ownership.is_owned():
            self.pending_purchase = position
            result.outcome = LandingOutcome.PURCHASE_AVAILABLE
            result.amount = self.board.get_space(position).price
            self._log(EventType.PURCHASE_OFFERED, player.player_id, position=position, price=result.amount)
            return
        if ownership.owner_id == player.player_id:
            result.outcome = LandingOutcome.OWN_PROPERTY
            return
        if ownership.is_mortgaged:
            result.outcome = LandingOutcome.MORTGAGED
            return

        owner = self.get_player(ownership.owner_id)
        if owner.is_bankrupt:
            return
        rent = self.calculate_rent(position, dice_total)
        payment = self._charge(player, rent, owner.player_id, "rent")
        self._apply_payment(result, payment, LandingOutcome.RENT_PAID)
        result.payee_id = owner.player_id
        if not payment.debt_pending:
            self._log(
                EventType.RENT_PAYMENT,
                player.player_id,
                owner=owner.player_id,
                position=position,
                amount=payment.amount_paid,
                due=rent,
            )

    def _land_on_tax(self, player: PlayerState, space: TaxSpace, result: LandingResult) -> None:
        payment = self._charge(player, space.amount, None, "tax")
        self._apply_payment(result, payment, LandingOutcome.TAX_PAID)
        if not payment.debt_pending:
            self._log(EventType.TAX_PAYMENT, player.player_id, amount=payment.amount_paid, due=space.amount)

    def _land_on_free_parking(self, player: PlayerState, result: LandingResult) -> None:
        pot = self.bank.free_parking_pot
        if not self.config.free_parking_jackpot or pot == 0:
            return
        player.add_money(pot)
        self.bank.free_parking_pot = 0
        result.outcome = LandingOutcome.FREE_PARKING
        result.amount = pot
        self._log(EventType.FREE_PARKING_PAYOUT, player.player_id, amount=pot)

    @staticmethod
    def _apply_payment(result: LandingResult, payment: Payment, paid_outcome: LandingOutcome) -> None:
        result.outcome = LandingOutcome.DEBT_PENDING if payment.debt_pending else paid_outcome
        result.amount = payment.amount_due if payment.debt_pending else payment.amount_paid
        result.bankruptcy_triggered = payment.bankruptcy_triggered
        result.creditor_id = payment.creditor_id

    # ------------------------------------------------------------------
    # Cards
    # ------------------------------------------------------------------

    def _draw_and_apply(self, player: PlayerState, deck: CyclicDeck, dice_total: int, result: LandingResult) -> None:
        card = deck.draw()
        self._log(EventType.CARD_DRAW, player.player_id, deck=deck.kind.value, card_id=card.card_id, text=card.text)
        if deck.cursor == 0:
            self._log(EventType.DECK_RESHUFFLE, deck=deck.kind.value)
        result.outcome = LandingOutcome.CARD
        result.card = card
        self.apply_card(player, card, dice_total, result)

    def apply_card(self, player: PlayerState, card: Card, dice_total: int, result: LandingResult) -> None:
        """Interpret a card. Movement cards resolve the landing at the destination."""
        action = card.action
        details: Dict[str, Any] = {"card_id": card.card_id, "action": action.value}

        if action == CardAction.ADD_MONEY:
            player.add_money(card.amount)
            details["amount"] = card.amount

        elif action == CardAction.REMOVE_MONEY:
            details["amount"] = player.remove_money(card.amount)

        elif action == CardAction.MOVE_TO:
            details["passed_go"] = self._move_to(player, card.target, card.collect_go)
            result.follow_up = self.resolve_landing(player.player_id, dice_total)

        elif action == CardAction.MOVE_RELATIVE:
            details["passed_go"] = self._move_by(player, card.steps)
            result.follow_up = self.resolve_landing(player.player_id, dice_total)

        elif action == CardAction.MOVE_TO_NEAREST:
            target = self.board.find_nearest(player.position, card.space_type)
            details["passed_go"] = self._move_to(player, target, collect_go=True)
            self.next_rent_multiplier = card.rent_multiplier
            result.follow_up = self.resolve_landing(player.player_id, dice_total)

        elif action == CardAction.GO_TO_JAIL:
            self._send_to_jail(player)

        elif action == CardAction.GET_OUT_OF_JAIL_FREE:
            player.get_out_of_jail_cards += 1

        elif action == CardAction.PAY_EACH_PLAYER:
            others = [p for p in self.get_active_players() if p is not player]
            total = card.amount * len(others)
            if player.money < total:
                result.card_skipped = True
                details["skipped"] = True
            else:
                for other in others:
                    player.remove_money(card.amount)
                    other.add_money(card.amount)
                details["amount"] = total

        elif action == CardAction.COLLECT_FROM_EACH_PLAYER:
            collected = 0
            for other in self.get_active_players():
                if other is not player:
                    taken = other.remove_money(card.amount)
                    player.add_money(taken)
                    collected += taken
            details["amount"] = collected

        elif action == CardAction.REPAIRS:
            houses = sum(self.property_ownership[pos].houses for pos in player.properties)
            hotels = sum(self.property_ownership[pos].hotels for pos in player.properties)
            details["amount"] = player.remove_money(houses * card.house_cost + hotels * card.hotel_cost)

        else:
            raise InvariantViolation(f"unhandled card action {action!r}")

        result.amount = details.get("amount", 0)
        self._log(EventType.CARD_EFFECT, player.player_id, **details)

    # ------------------------------------------------------------------
    # Turn operations
    # ------------------------------------------------------------------

    def roll_dice(self, player_id: str) -> RollResult:
        """
        Roll two dice for the current player and resolve the outcome.

        In jail, doubles release the player and move them without an extra
        roll; the third failed attempt charges the fine, releases and moves.
        Out of jail, a third consecutive double sends the player to jail.
        """
        with self._atomic("roll_dice"):
            player = self._require_current(player_id)
            if self.phase != TurnPhase.WAITING_FOR_ROLL:
                raise StateConflictError(f"cannot roll during {self.phase.value}")

            die1, die2 = self.rng.randint(1, 6), self.rng.randint(1, 6)
            total = die1 + die2
            is_doubles = die1 == die2
            self.dice = (die1, die2)
            self.has_rolled = True
            self.can_roll_again = False
            self._log(EventType.DICE_ROLL, player.player_id, die1=die1, die2=die2, total=total, doubles=is_doubles)

            result = RollResult(
                dice=(die1, die2),
                is_doubles=is_doubles,
                doubles_streak=self.doubles_streak,
                from_position=player.position,
                to_position=player.position,
            )

            if player.in_jail:
                if is_doubles:
                    self._release_from_jail(player, "doubles")
                    result.jail_outcome = "released_doubles"
                else:
                    player.jail_turns += 1
                    self._log(EventType.JAIL_ATTEMPT, player.player_id, attempt=player.jail_turns)
                    if player.jail_turns < self.config.max_jail_turns:
                        result.jail_outcome = "stayed"
                        return result
                    payment = self._charge(player, self.config.jail_fine, None, "jail_fine")
                    self._release_from_jail(player, "fine", payment.amount_paid)
                    if payment.debt_pending:
                        # Released but held on the jail space until the fine is settled.
                        result.jail_outcome = "fine_owed"
                        return result
                    result.jail_outcome = "released_fine"
            else:
                if is_doubles:
                    self.doubles_streak += 1
                    result.doubles_streak = self.doubles_streak
                if self.doubles_streak >= 3:
                    self._send_to_jail(player)
                    result.jail_outcome = "sent_to_jail"
                    result.to_position = player.position
                    return result

            result.passed_go = self._move_by(player, total)
            result.to_position = player.position
            result.landing = self.resolve_landing(player.player_id, total)
            if is_doubles and not player.in_jail and result.jail_outcome is None:
                self.can_roll_again = True
            result.can_roll_again = self.can_roll_again
            return result

    def end_turn(self, player_id: str) -> ActionResult:
        """End the current player's turn. An unused doubles re-roll is forfeited."""
        with self._atomic("end_turn"):
            player = self._require_current(player_id)
            if not self.has_rolled:
                raise StateConflictError("roll the dice before ending the turn")
            if self.pending_purchase is not None:
                raise StateConflictError("buy or decline the property first")
            if self.pending_debt is not None:
                raise StateConflictError("settle the outstanding debt first")
            if self.active_auction is not None:
                raise StateConflictError("an auction is still running")
            self._advance_turn()
            return ActionResult("end_turn", player.player_id, details={"next_player": self.get_current_player().player_id})

    def _advance_turn(self) -> None:
        self.dice = None
        self.doubles_streak = 0
        self.has_rolled = False
        self.can_roll_again = False
        self.pending_purchase = None
        self.next_rent_multiplier = None

        count = len(self.players)
        for _ in range(count):
            self.current_player_index = (self.current_player_index + 1) % count
            if not self.get_current_player().is_bankrupt:
                break
        self.turn_number += 1
        self._log(EventType.TURN_START, self.get_current_player().player_id, turn=self.turn_number)

    # ------------------------------------------------------------------
    # Purchase and auction
    # ------------------------------------------------------------------

    def buy_property(self, player_id: str) -> ActionResult:
        with self._atomic("buy_property"):
            player = self._require_current(player_id)
            if self.active_auction is not None:
                raise StateConflictError("property is being auctioned")
            position = self.pending_purchase
            if position is None:
                raise StateConflictError("no property is on offer")
            ownership = self.property_ownership[position]
            if ownership.is_owned():
                raise StateConflictError("property was bought in the meantime")

            space = self.board.get_space(position)
            if player.money < space.price:
                raise InsufficientFundsError(f"{space.name} costs {space.price}, you have {player.money}")

            player.remove_money(space.price)
            player.properties.add(position)
            ownership.owner_id = player.player_id
            self.pending_purchase = None
            self._log(EventType.PURCHASE, player.player_id, position=position, price=space.price, balance=player.money)
            return ActionResult("buy", player.player_id, position, space.price, player.money)

    def decline_purchase(self, player_id: str) -> Optional[Auction]:
        """Pass on the offered property. Opens an auction when the room allows them."""
        with self._atomic("decline_purchase"):
            player = self._require_current(player_id)
            position = self.pending_purchase
            if position is None:
                raise StateConflictError("no property is on offer")
            self.pending_purchase = None
            self._log(EventType.PURCHASE_DECLINED, player.player_id, position=position)
            if not self.config.auction_enabled:
                return None
            return self._open_auction(position)

    def start_auction(self, player_id: str) -> Auction:
        with self._atomic("start_auction"):
            self._require_current(player_id)
            if not self.config.auction_enabled:
                raise StateConflictError("auctions are disabled in this room")
            position = self.pending_purchase
            if position is None:
                raise StateConflictError("no property is on offer")
            self.pending_purchase = None
            return self._open_auction(position)

    def _open_auction(self, position: int) -> Auction:
        if self.active_auction is not None:
            raise StateConflictError("an auction is already running")
        space = self.board.get_space(position)
        now = self.clock()
        self.active_auction = Auction(position, space.name, deadline=now + self.config.auction_duration_seconds)
        self._log(EventType.AUCTION_START, position=position, property=space.name, deadline=self.active_auction.deadline)
        return self.active_auction

    def place_bid(self, player_id: str, amount: int, now: Optional[float] = None) -> Bid:
        with self._atomic("place_bid"):
            self._require_active()
            player = self._require_player(player_id)
            auction = self.active_auction
            if auction is None:
                raise StateConflictError("no auction is running")
            if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
                raise ValidationError("bid must be a positive whole amount")
            if amount > player.money:
                raise InsufficientFundsError(f"bid of {amount} exceeds your balance of {player.money}")
            now = self.clock() if now is None else now
            bid = auction.place_bid(player.player_id, amount, now, self.config.auction_extension_seconds)
            self._log(EventType.AUCTION_BID, player.player_id, position=auction.property_position, amount=amount)
            return bid

    def end_auction(self, now: Optional[float] = None, force: bool = False) -> AuctionResult:
        """
        Close the running auction. Before the deadline only a forced close
        is allowed. The lot goes to the leader if they can still pay.
        """
        with self._atomic("end_auction"):
            auction = self.active_auction
            if auction is None:
                raise StateConflictError("no auction is running")
            now = self.clock() if now is None else now
            if not force and not auction.is_expired(now):
                raise StateConflictError("auction deadline has not passed")
            return self._close_auction(auction)

    def sweep_auction(self, now: Optional[float] = None) -> Optional[AuctionResult]:
        """End the auction if its deadline has passed. Returns None when nothing was due."""
        auction = self.active_auction
        now = self.clock() if now is None else now
        if auction is None or not auction.is_expired(now):
            return None
        return self.end_auction(now)

    def _close_auction(self, auction: Auction) -> AuctionResult:
        position = auction.property_position
        winner_id = auction.current_bidder
        sold = False
        if winner_id is not None:
            winner = self.get_player(winner_id)
            if not winner.is_bankrupt and winner.money >= auction.current_bid:
                winner.remove_money(auction.current_bid)
                winner.properties.add(position)
                self.property_ownership[position].owner_id = winner_id
                sold = True
        auction.close()
        self.active_auction = None
        result = AuctionResult(position, winner_id if sold else None, auction.current_bid if sold else 0, sold)
        self._log(EventType.AUCTION_END, result.winner_id, position=position, amount=result.amount, sold=sold)
        return result

    # ------------------------------------------------------------------
    # Buildings and mortgages
    # ------------------------------------------------------------------

    def build_on(self, player_id: str, position: int) -> ActionResult:
        """
        Build a house, or a hotel on a site that already has four houses.

        Requires the whole color group, nothing in it mortgaged, and even
        building: the target must sit at the group's lowest level.
        """
        with self._atomic("build_on"):
            ownership = self._require_owner(player_id, position)
            space = self._require_site(position)
            player = self.get_player(player_id)
            group = self.board.get_color_group(space.color_group)

            if not self.owns_color_group(player_id, space.color_group):
                raise StateConflictError(f"you need the whole {space.color_group} group to build")
            if any(self.property_ownership[pos].is_mortgaged for pos in group):
                raise StateConflictError(f"a {space.color_group} property is mortgaged")
            if ownership.hotels:
                raise StateConflictError(f"{space.name} already has a hotel")

            lowest = min(self.property_ownership[pos].building_level for pos in group)
            if ownership.building_level > lowest:
                raise StateConflictError("build evenly across the color group")

            building_hotel = ownership.houses == 4
            if building_hotel:
                others = [self.property_ownership[pos] for pos in group if pos != position]
                if any(o.houses != 4 and not o.hotels for o in others):
                    raise StateConflictError("every site in the group needs four houses first")
                if not self.bank.can_buy_hotel():
                    raise StateConflictError("the bank has no hotels left")
            elif not self.bank.can_buy_houses(1):
                raise StateConflictError("the bank has no houses left")

            if player.money < space.build_cost:
                raise InsufficientFundsError(f"building costs {space.build_cost}, you have {player.money}")

            player.remove_money(space.build_cost)
            if building_hotel:
                self.bank.buy_hotel(return_houses=4)
                ownership.houses = 0
                ownership.hotels = 1
                event, kind = EventType.BUILD_HOTEL, "hotel"
            else:
                self.bank.buy_house()
                ownership.houses += 1
                event, kind = EventType.BUILD_HOUSE, "house"
            self._log(event, player_id, position=position, cost=space.build_cost, houses=ownership.houses)
            return ActionResult(
                "build",
                player_id,
                position,
                space.build_cost,
                player.money,
                {"building": kind, "houses": ownership.houses, "hotels": ownership.hotels},
            )

    def sell_building(self, player_id: str, position: int) -> ActionResult:
        """Sell one building back to the bank for half its cost, selling evenly."""
        with self._atomic("sell_building"):
            ownership = self._require_owner(player_id, position)
            space = self._require_site(position)
            player = self.get_player(player_id)
            if not ownership.has_buildings():
                raise StateConflictError(f"{space.name} has no buildings")

            group = self.board.get_color_group(space.color_group)
            highest = max(self.property_ownership[pos].building_level for pos in group)
            if ownership.building_level < highest:
                raise StateConflictError("sell evenly across the color group")

            refund = space.build_cost // 2
            if ownership.hotels:
                if self.bank.houses_available < 4:
                    raise StateConflictError("the bank needs four houses to break down a hotel")
                self.bank.sell_hotel(take_houses=4)
                ownership.hotels = 0
                ownership.houses = 4
                kind = "hotel"
            else:
                self.bank.sell_houses(1)
                ownership.houses -= 1
                kind = "house"

            player.add_money(refund)
            self._log(EventType.SELL_BUILDING, player_id, position=position, building=kind, refund=refund)
            return ActionResult(
                "sell_building", player_id, position, refund, player.money, {"building": kind, "houses": ownership.houses}
            )

    def mortgage(self, player_id: str, position: int) -> ActionResult:
        with self._atomic("mortgage"):
            ownership = self._require_owner(player_id, position)
            space = self.board.get_space(position)
            if ownership.is_mortgaged:
                raise StateConflictError(f"{space.name} is already mortgaged")
            if ownership.has_buildings():
                raise StateConflictError(f"sell the buildings on {space.name} first")

            player = self.get_player(player_id)
            value = self.config.mortgage_value(space.price)
            player.add_money(value)
            ownership.is_mortgaged = True
            self._log(EventType.MORTGAGE, player_id, position=position, value=value, balance=player.money)
            return ActionResult("mortgage", player_id, position, value, player.money)

    def unmortgage(self, player_id: str, position: int) -> ActionResult:
        with self._atomic("unmortgage"):
            ownership = self._require_owner(player_id, position)
            space = self.board.get_space(position)
            if not ownership.is_mortgaged:
                raise StateConflictError(f"{space.name} is not mortgaged")

            player = self.get_player(player_id)
            cost = self.config.unmortgage_cost(space.price)
            if player.money < cost:
                raise InsufficientFundsError(f"lifting the mortgage costs {cost}, you have {player.money}")
            player.remove_money(cost)
            ownership.is_mortgaged = False
            self._log(EventType.UNMORTGAGE, player_id, position=position, cost=cost, balance=player.money)
            return ActionResult("unmortgage", player_id, position, cost, player.money)

    # ------------------------------------------------------------------
    # Jail and debts
    # ------------------------------------------------------------------

    def _require_jailed_before_roll(self, player_id: str) -> PlayerState:
        player = self._require_current(player_id)
        if not player.in_jail:
            raise StateConflictError("you are not in jail")
        if self.has_rolled:
            raise StateConflictError("you have already rolled this turn")
        return player

    def pay_jail_fine(self, player_id: str) -> ActionResult:
        with self._atomic("pay_jail_fine"):
            player = self._require_jailed_before_roll(player_id)
            fine = self.config.jail_fine
            if player.money < fine:
                raise InsufficientFundsError(f"the fine is {fine}, you have {player.money}")
            player.remove_money(fine)
            self._release_from_jail(player, "fine", fine)
            return ActionResult("pay_jail_fine", player_id, amount=fine, balance=player.money)

    def use_jail_card(self, player_id: str) -> ActionResult:
        with self._atomic("use_jail_card"):
            player = self._require_jailed_before_roll(player_id)
            if player.get_out_of_jail_cards == 0:
                raise StateConflictError("you have no Get Out of Jail Free card")
            player.get_out_of_jail_cards -= 1
            self._release_from_jail(player, "card")
            return ActionResult("use_jail_card", player_id, balance=player.money)

    def pay_debt(self, player_id: str) -> ActionResult:
        with self._atomic("pay_debt"):
            self._require_active()
            debt = self.pending_debt
            if debt is None or debt.debtor_id != player_id:
                raise StateConflictError("you have no outstanding debt")
            player = self.get_player(player_id)
            if player.money < debt.amount:
                raise InsufficientFundsError(f"you owe {debt.amount}, you have {player.money}")

            creditor_id = debt.creditor_id
            if creditor_id is not None and self.get_player(creditor_id).is_bankrupt:
                creditor_id = None
            player.remove_money(debt.amount)
            self._credit(creditor_id, debt.amount, debt.reason)
            self.pending_debt = None
            self._log(EventType.DEBT_PAID, player_id, creditor=creditor_id, amount=debt.amount, reason=debt.reason)
            return ActionResult("pay_debt", player_id, amount=debt.amount, balance=player.money, details={"creditor": creditor_id})

    # ------------------------------------------------------------------
    # Bankruptcy
    # ------------------------------------------------------------------

    def declare_bankruptcy(self, player_id: str, creditor_id: Optional[str] = None) -> ActionResult:
        """
        Retire a player from the game.

        With a creditor, money, properties (buildings and mortgages intact)
        and jail cards pass to the creditor. Otherwise properties go back to
        the bank unbuilt and unmortgaged. When only one player is left the
        game ends.
        """
        with self._atomic("declare_bankruptcy"):
            self._require_active()
            player = self._require_player(player_id)
            debt = self.pending_debt
            if creditor_id is None and debt is not None and debt.debtor_id == player_id:
                creditor_id = debt.creditor_id
                if creditor_id is not None and self.get_player(creditor_id).is_bankrupt:
                    creditor_id = None

            creditor = None
            if creditor_id is not None:
                if creditor_id == player_id:
                    raise ValidationError("cannot go bankrupt to yourself")
                creditor = self.get_player(creditor_id)
                if creditor.is_bankrupt:
                    raise StateConflictError(f"{creditor.name} is already bankrupt")

            was_current = player is self.get_current_player()
            properties = sorted(player.properties)

            if creditor is not None:
                creditor.add_money(player.money)
                creditor.get_out_of_jail_cards += player.get_out_of_jail_cards
                for pos in properties:
                    self.property_ownership[pos].owner_id = creditor.player_id
                    creditor.properties.add(pos)
            else:
                for pos in properties:
                    ownership = self.property_ownership[pos]
                    if ownership.hotels:
                        self.bank.sell_hotel(take_houses=0)
                    self.bank.sell_houses(ownership.houses)
                    ownership.reset()

            player.money = 0
            player.get_out_of_jail_cards = 0
            player.properties.clear()
            player.in_jail = False
            player.jail_turns = 0
            player.is_bankrupt = True

            if debt is not None and debt.debtor_id == player_id:
                self.pending_debt = None
            for trade in trades_involving(self.active_trades, player_id):
                self._retire_trade(trade, TradeStatus.CANCELLED, EventType.TRADE_CANCELLED, f"{player.name} went bankrupt")
            if self.active_auction is not None and self.active_auction.current_bidder == player_id:
                self.active_auction.fall_back({p.player_id for p in self.players if p.is_bankrupt})

            self._log(EventType.BANKRUPTCY, player_id, creditor=creditor_id, properties=properties)

            remaining = self.get_active_players()
            if len(remaining) == 1:
                self._finish(remaining[0])
            elif was_current:
                self._advance_turn()

            return ActionResult("bankrupt", player_id, balance=0, details={"creditor": creditor_id, "properties": properties})

    def _finish(self, winner: PlayerState) -> None:
        self.status = GameStatus.FINISHED
        self.winner_id = winner.player_id
        self.pending_purchase = None
        self.pending_debt = None
        if self.active_auction is not None:
            self.active_auction.close()
            self.active_auction = None
        if self.get_current_player().is_bankrupt:
            self.current_player_index = self.players.index(winner)
        self._log(EventType.GAME_END, winner.player_id, winner=winner.name)

    # ------------------------------------------------------------------
    # Trading
    # ------------------------------------------------------------------

    def _check_tradeable(self, owner: PlayerState, position: int) -> None:
        ownership = self.property_ownership.get(position)
        if ownership is None:
            raise ValidationError(f"space {position} cannot be traded")
        space = self.board.get_space(position)
        if ownership.owner_id != owner.player_id:
            raise StateConflictError(f"{owner.name} does not own {space.name}")
        if ownership.is_mortgaged:
            raise StateConflictError(f"{space.name} is mortgaged")
        if isinstance(space, PropertySpace) and self.group_has_buildings(space.color_group):
            raise StateConflictError(f"the {space.color_group} group has buildings")

    def _check_trade(self, trade: Trade) -> None:
        """Raise if the trade cannot be carried out against the current state."""
        if trade.from_player == trade.to_player:
            raise ValidationError("cannot trade with yourself")
        proposer = self._require_player(trade.from_player)
        recipient = self._require_player(trade.to_player)
        for amount in (trade.offered_money, trade.requested_money):
            if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
                raise ValidationError("trade amounts must be non-negative whole numbers")
        if trade.is_empty():
            raise ValidationError("trade is empty")
        if trade.offered_properties & trade.requested_properties:
            raise ValidationError("a property cannot be both offered and requested")
        if trade.offered_money > proposer.money:
            raise InsufficientFundsError(f"{proposer.name} cannot cover {trade.offered_money}")
        if trade.requested_money > recipient.money:
            raise InsufficientFundsError(f"{recipient.name} cannot cover {trade.requested_money}")
        for pos in trade.offered_properties:
            self._check_tradeable(proposer, pos)
        for pos in trade.requested_properties:
            self._check_tradeable(recipient, pos)

    def propose_trade(
        self,
        player_id: str,
        to_player: str,
        offered_money: int = 0,
        requested_money: int = 0,
        offered_properties: Iterable[int] = (),
        requested_properties: Iterable[int] = (),
    ) -> Trade:
        with self._atomic("propose_trade"):
            self._require_active()
            trade = new_trade(player_id, to_player, offered_money, requested_money, offered_properties, requested_properties)
            self._check_trade(trade)
            self.active_trades[trade.trade_id] = trade
            self._log(
                EventType.TRADE_PROPOSED,
                player_id,
                trade_id=trade.trade_id,
                to_player=to_player,
                offered_money=trade.offered_money,
                requested_money=trade.requested_money,
                offered_properties=sorted(trade.offered_properties),
                requested_properties=sorted(trade.requested_properties),
            )
            return trade

    def _get_trade(self, trade_id: str) -> Trade:
        trade = self.active_trades.get(trade_id)
        if trade is None:
            raise NotFoundError(f"trade {trade_id} is not pending")
        return trade

    def _retire_trade(self, trade: Trade, status: TradeStatus, event: EventType, reason: Optional[str] = None) -> None:
        trade.status = status
        trade.reason = reason
        del self.active_trades[trade.trade_id]
        details: Dict[str, Any] = {"trade_id": trade.trade_id}
        if reason:
            details["reason"] = reason
        self._log(event, trade.to_player if status != TradeStatus.CANCELLED else trade.from_player, **details)

    def respond_to_trade(self, player_id: str, trade_id: str, accept: bool) -> Trade:
        """
        Accept or reject a pending trade. Acceptance re-validates the whole
        trade; a trade that has gone stale is rejected before any transfer.
        """
        with self._atomic("respond_to_trade"):
            self._require_active()
            trade = self._get_trade(trade_id)
            if trade.to_player != player_id:
                raise AuthorizationError("only the recipient can respond to this trade")
            if not accept:
                self._retire_trade(trade, TradeStatus.REJECTED, EventType.TRADE_REJECTED)
                return trade
            try:
                self._check_trade(trade)
            except (ValidationError, StateConflictError, InsufficientFundsError) as exc:
                logger.info("Trade %s in room %s went stale: %s", trade_id, self.room_code, exc.message)
                self._retire_trade(trade, TradeStatus.REJECTED, EventType.TRADE_REJECTED, exc.message)
                return trade

            proposer = self.get_player(trade.from_player)
            recipient = self.get_player(trade.to_player)
            proposer.remove_money(trade.offered_money)
            recipient.add_money(trade.offered_money)
            recipient.remove_money(trade.requested_money)
            proposer.add_money(trade.requested_money)
            for pos in trade.offered_properties:
                self._transfer_property(pos, proposer, recipient)
            for pos in trade.requested_properties:
                self._transfer_property(pos, recipient, proposer)
            self._retire_trade(trade, TradeStatus.ACCEPTED, EventType.TRADE_ACCEPTED)
            return trade

    def _transfer_property(self, position: int, giver: PlayerState, taker: PlayerState) -> None:
        giver.properties.discard(position)
        taker.properties.add(position)
        self.property_ownership[position].owner_id = taker.player_id

    def cancel_trade(self, player_id: str, trade_id: str) -> Trade:
        with self._atomic("cancel_trade"):
            trade = self._get_trade(trade_id)
            if trade.from_player != player_id:
                raise AuthorizationError("only the proposer can cancel this trade")
            self._retire_trade(trade, TradeStatus.CANCELLED, EventType.TRADE_CANCELLED)
            return trade


def create_game(
    config: GameConfig,
    players: List[Player],
    room_code: str = "",
    rng: Optional[random.Random] = None,
    clock: Optional[Callable[[], float]] = None,
) -> GameState:
    """Create a new game with the specified configuration and players."""
    if not config.min_players <= len(players) <= config.max_players:
        raise ValidationError(f"a game needs {config.min_players} to {config.max_players} players")
    ids = [p.player_id for p in players]
    if len(set(ids)) != len(ids):
        raise ValidationError("player ids must be unique")
    if any(not p.name for p in players):
        raise ValidationError("every player needs a name")

    game = GameState(config, players, room_code=room_code, rng=rng, clock=clock)
    game._log(
        EventType.GAME_START,
        players=[p.name for p in players],
        starting_money=config.starting_money,
        seed=config.seed,
    )
    game._log(EventType.TURN_START, game.get_current_player().player_id, turn=game.turn_number)
    logger.info("Game created for room %s with %d players", room_code or "-", len(players))
    return game
