"""
Tests for the turn cycle: rolling, buying, doubles and ending turns.
"""

import pytest

from tycoon import GameConfig, Player, TurnPhase, create_game
from tycoon.exceptions import (
    AuthorizationError,
    InsufficientFundsError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from tycoon.game import LandingOutcome
from tycoon.money import EventType


class TestCreateGame:
    def test_initial_state(self, basic_game):
        assert basic_game.get_current_player().player_id == "p1"
        assert basic_game.turn_number == 1
        assert basic_game.phase == TurnPhase.WAITING_FOR_ROLL
        assert all(p.money == 15000 for p in basic_game.players)
        assert all(p.position == 0 for p in basic_game.players)
        assert basic_game.bank.houses_available == 32
        assert basic_game.bank.hotels_available == 12
        types = [e.event_type for e in basic_game.history.get_events()]
        assert types == [EventType.GAME_START, EventType.TURN_START]

    def test_rejects_single_player(self, game_config):
        with pytest.raises(ValidationError):
            create_game(game_config, [Player("p1", "Alice")])

    def test_rejects_duplicate_ids(self, game_config):
        with pytest.raises(ValidationError):
            create_game(game_config, [Player("p1", "Alice"), Player("p1", "Bob")])

    def test_same_seed_same_decks(self, two_players):
        a = create_game(GameConfig(seed=7), two_players)
        b = create_game(GameConfig(seed=7), two_players)
        assert a.chance_deck.order_ids() == b.chance_deck.order_ids()
        assert a.community_deck.order_ids() == b.community_deck.order_ids()


class TestRoll:
    def test_roll_moves_and_offers_purchase(self, basic_game, dice):
        dice.queue(1, 2)

        result = basic_game.roll_dice("p1")

        assert result.dice == (1, 2)
        assert result.from_position == 0
        assert result.to_position == 3
        assert result.landing.outcome == LandingOutcome.PURCHASE_AVAILABLE
        assert result.landing.amount == 600
        assert basic_game.pending_purchase == 3
        assert basic_game.phase == TurnPhase.AWAITING_DECISION

    def test_landing_short_of_go_offers_jaflong(self, basic_game, dice):
        basic_game.get_player("p1").position = 32
        dice.queue(3, 4)

        result = basic_game.roll_dice("p1")

        assert result.to_position == 39
        assert result.passed_go is False
        assert result.landing.outcome == LandingOutcome.PURCHASE_AVAILABLE
        assert result.landing.amount == 4000
        assert basic_game.get_player("p1").money == 15000
        assert basic_game.property_ownership[39].owner_id is None
        assert basic_game.pending_purchase == 39
        types = [e.event_type for e in basic_game.history.get_events()]
        assert EventType.PURCHASE_OFFERED in types
        assert EventType.PURCHASE not in types

    def test_roll_out_of_turn_is_rejected(self, basic_game):
        with pytest.raises(AuthorizationError):
            basic_game.roll_dice("p2")

    def test_unknown_player_is_not_found(self, basic_game):
        with pytest.raises(NotFoundError):
            basic_game.roll_dice("nobody")

    def test_cannot_roll_twice_without_doubles(self, basic_game, dice):
        dice.queue(1, 3)
        basic_game.roll_dice("p1")
        assert basic_game.phase == TurnPhase.TURN_COMPLETE
        with pytest.raises(StateConflictError):
            basic_game.roll_dice("p1")

    def test_passing_go_pays_salary(self, basic_game, dice):
        basic_game.get_player("p1").position = 38
        dice.queue(1, 2)

        result = basic_game.roll_dice("p1")

        assert result.passed_go is True
        assert result.to_position == 1
        assert basic_game.get_player("p1").money == 17000

    def test_go_to_jail_space(self, basic_game, dice):
        basic_game.get_player("p1").position = 25
        dice.queue(2, 3)

        result = basic_game.roll_dice("p1")

        player = basic_game.get_player("p1")
        assert result.landing.outcome == LandingOutcome.GO_TO_JAIL
        assert player.in_jail is True
        assert player.position == 10
        assert player.money == 15000


class TestDoubles:
    def test_doubles_grant_another_roll(self, basic_game, dice):
        dice.queue(3, 3)
        result = basic_game.roll_dice("p1")
        assert result.is_doubles is True
        assert result.can_roll_again is True

        basic_game.buy_property("p1")
        assert basic_game.phase == TurnPhase.WAITING_FOR_ROLL

        dice.queue(1, 2)
        result = basic_game.roll_dice("p1")
        assert result.to_position == 9
        assert result.can_roll_again is False
        assert basic_game.phase == TurnPhase.AWAITING_DECISION

    def test_third_double_goes_to_jail(self, basic_game, dice):
        dice.queue(2, 2, 3, 3, 4, 4)
        basic_game.roll_dice("p1")
        basic_game.roll_dice("p1")
        result = basic_game.roll_dice("p1")

        player = basic_game.get_player("p1")
        assert result.jail_outcome == "sent_to_jail"
        assert result.doubles_streak == 3
        assert player.in_jail is True
        assert player.position == 10
        assert basic_game.can_roll_again is False
        basic_game.end_turn("p1")
        assert basic_game.get_current_player().player_id == "p2"

    def test_unused_reroll_is_forfeited_at_end_turn(self, basic_game, dice):
        dice.queue(3, 3)
        basic_game.roll_dice("p1")
        basic_game.buy_property("p1")
        assert basic_game.can_roll_again is True

        basic_game.end_turn("p1")

        assert basic_game.get_current_player().player_id == "p2"
        assert basic_game.doubles_streak == 0
        assert basic_game.phase == TurnPhase.WAITING_FOR_ROLL


class TestEndTurn:
    def test_end_turn_before_rolling(self, basic_game):
        with pytest.raises(StateConflictError):
            basic_game.end_turn("p1")

    def test_end_turn_with_pending_purchase(self, basic_game, dice):
        dice.queue(1, 2)
        basic_game.roll_dice("p1")
        with pytest.raises(StateConflictError):
            basic_game.end_turn("p1")

    def test_turn_rotation(self, four_player_game, dice):
        order = []
        for _ in range(5):
            current = four_player_game.get_current_player().player_id
            order.append(current)
            four_player_game.get_player(current).position = 6
            dice.queue(1, 3)
            four_player_game.roll_dice(current)
            four_player_game.end_turn(current)
        assert order == ["p1", "p2", "p3", "p4", "p1"]
        assert four_player_game.turn_number == 6

    def test_rotation_skips_bankrupt_players(self, four_player_game, dice):
        four_player_game.declare_bankruptcy("p2")
        four_player_game.get_player("p1").position = 6
        dice.queue(1, 3)
        four_player_game.roll_dice("p1")
        four_player_game.end_turn("p1")
        assert four_player_game.get_current_player().player_id == "p3"


class TestBuy:
    def test_buy_property(self, basic_game, dice):
        dice.queue(1, 2)
        basic_game.roll_dice("p1")

        result = basic_game.buy_property("p1")

        assert result.amount == 600
        assert result.balance == 14400
        assert basic_game.property_ownership[3].owner_id == "p1"
        assert 3 in basic_game.get_player("p1").properties
        assert basic_game.pending_purchase is None

        basic_game.end_turn("p1")
        assert basic_game.get_current_player().player_id == "p2"
        assert basic_game.turn_number == 2

    def test_buy_without_offer(self, basic_game):
        with pytest.raises(StateConflictError):
            basic_game.buy_property("p1")

    def test_failed_buy_leaves_state_untouched(self, basic_game, dice):
        dice.queue(1, 2)
        basic_game.roll_dice("p1")
        basic_game.get_player("p1").money = 100
        events_before = len(basic_game.history)

        with pytest.raises(InsufficientFundsError):
            basic_game.buy_property("p1")

        assert basic_game.get_player("p1").money == 100
        assert basic_game.pending_purchase == 3
        assert basic_game.property_ownership[3].owner_id is None
        assert len(basic_game.history) == events_before

    def test_decline_without_auctions(self, two_players, dice, clock):
        game = create_game(GameConfig(auction_enabled=False), two_players, rng=dice, clock=clock)
        dice.queue(1, 2)
        game.roll_dice("p1")

        assert game.decline_purchase("p1") is None
        assert game.pending_purchase is None
        assert game.property_ownership[3].owner_id is None
        game.end_turn("p1")
