"""
Tests for mortgages, debts and bankruptcy.
"""

import pytest

from tycoon import GameStatus
from tycoon.exceptions import (
    AuthorizationError,
    InsufficientFundsError,
    StateConflictError,
    ValidationError,
)
from tycoon.money import EventType

from .conftest import give_property, put_buildings


class TestMortgage:
    def test_mortgage_pays_half_price(self, basic_game):
        give_property(basic_game, "p1", 39)
        result = basic_game.mortgage("p1", 39)
        assert result.amount == 2000
        assert basic_game.property_ownership[39].is_mortgaged is True
        assert basic_game.get_player("p1").money == 17000

    def test_unmortgage_charges_interest(self, basic_game):
        give_property(basic_game, "p1", 39)
        basic_game.mortgage("p1", 39)
        result = basic_game.unmortgage("p1", 39)
        assert result.amount == 2200
        assert basic_game.property_ownership[39].is_mortgaged is False
        assert basic_game.get_player("p1").money == 15000 + 2000 - 2200

    def test_unmortgage_rounds_down(self, basic_game):
        give_property(basic_game, "p1", 12)
        basic_game.mortgage("p1", 12)
        assert basic_game.unmortgage("p1", 12).amount == 825

    def test_mortgage_twice(self, basic_game):
        give_property(basic_game, "p1", 39)
        basic_game.mortgage("p1", 39)
        with pytest.raises(StateConflictError):
            basic_game.mortgage("p1", 39)

    def test_mortgage_with_buildings(self, basic_game):
        give_property(basic_game, "p1", 37, 39)
        put_buildings(basic_game, 39, houses=1)
        with pytest.raises(StateConflictError):
            basic_game.mortgage("p1", 39)

    def test_mortgage_sibling_of_built_site_is_allowed(self, basic_game):
        give_property(basic_game, "p1", 1, 3)
        put_buildings(basic_game, 3, houses=1)
        basic_game.mortgage("p1", 1)
        assert basic_game.property_ownership[1].is_mortgaged is True

    def test_mortgage_not_owned(self, basic_game):
        give_property(basic_game, "p2", 39)
        with pytest.raises(AuthorizationError):
            basic_game.mortgage("p1", 39)

    def test_mortgage_non_property_space(self, basic_game):
        with pytest.raises(ValidationError):
            basic_game.mortgage("p1", 4)

    def test_unmortgage_needs_funds(self, basic_game):
        give_property(basic_game, "p1", 39)
        basic_game.mortgage("p1", 39)
        basic_game.get_player("p1").money = 100
        with pytest.raises(InsufficientFundsError):
            basic_game.unmortgage("p1", 39)
        assert basic_game.property_ownership[39].is_mortgaged is True


class TestDebt:
    def test_pay_debt_without_debt(self, basic_game):
        with pytest.raises(StateConflictError):
            basic_game.pay_debt("p1")

    def test_pay_debt_needs_full_amount(self, uncapped_game, dice):
        uncapped_game.get_player("p1").money = 1000
        dice.queue(1, 3)
        uncapped_game.roll_dice("p1")
        assert uncapped_game.pending_debt.amount == 2000

        with pytest.raises(InsufficientFundsError):
            uncapped_game.pay_debt("p1")

        give_property(uncapped_game, "p1", 39)
        uncapped_game.mortgage("p1", 39)
        uncapped_game.pay_debt("p1")
        assert uncapped_game.get_player("p1").money == 1000
        assert uncapped_game.pending_debt is None


class TestBankruptcy:
    def test_bankrupt_to_bank_returns_properties_unbuilt(self, four_player_game):
        give_property(four_player_game, "p2", 1, 3, 39)
        put_buildings(four_player_game, 1, houses=2)
        put_buildings(four_player_game, 3, hotels=1)
        four_player_game.property_ownership[39].is_mortgaged = True

        result = four_player_game.declare_bankruptcy("p2")

        player = four_player_game.get_player("p2")
        assert result.details == {"creditor": None, "properties": [1, 3, 39]}
        assert player.is_bankrupt is True
        assert player.money == 0
        assert player.properties == set()
        for pos in (1, 3, 39):
            ownership = four_player_game.property_ownership[pos]
            assert ownership.owner_id is None
            assert not ownership.has_buildings()
            assert ownership.is_mortgaged is False
        assert four_player_game.bank.houses_available == 32
        assert four_player_game.bank.hotels_available == 12
        assert four_player_game.status == GameStatus.ACTIVE

    def test_bankrupt_to_creditor_transfers_everything(self, four_player_game):
        give_property(four_player_game, "p2", 1, 3, 39)
        put_buildings(four_player_game, 1, houses=2)
        four_player_game.property_ownership[39].is_mortgaged = True
        debtor = four_player_game.get_player("p2")
        debtor.money = 700
        debtor.get_out_of_jail_cards = 1

        four_player_game.declare_bankruptcy("p2", creditor_id="p3")

        creditor = four_player_game.get_player("p3")
        assert creditor.money == 15700
        assert creditor.get_out_of_jail_cards == 1
        assert creditor.properties == {1, 3, 39}
        assert four_player_game.property_ownership[1].houses == 2
        assert four_player_game.property_ownership[39].is_mortgaged is True
        assert four_player_game.property_ownership[1].owner_id == "p3"

    def test_bankruptcy_uses_pending_debt_creditor(self, uncapped_game, dice):
        give_property(uncapped_game, "p2", 39)
        uncapped_game.get_player("p1").position = 35
        uncapped_game.get_player("p1").money = 100
        dice.queue(1, 3)
        uncapped_game.roll_dice("p1")
        assert uncapped_game.pending_debt.creditor_id == "p2"

        uncapped_game.declare_bankruptcy("p1")

        assert uncapped_game.get_player("p2").money == 15100
        assert uncapped_game.pending_debt is None
        assert uncapped_game.status == GameStatus.FINISHED
        assert uncapped_game.winner_id == "p2"

    def test_last_player_standing_wins(self, basic_game):
        basic_game.declare_bankruptcy("p1")
        assert basic_game.is_finished
        assert basic_game.winner_id == "p2"
        assert basic_game.get_current_player().player_id == "p2"
        types = [e.event_type for e in basic_game.history.get_events()]
        assert types[-2:] == [EventType.BANKRUPTCY, EventType.GAME_END]
        with pytest.raises(StateConflictError):
            basic_game.roll_dice("p2")

    def test_current_player_bankruptcy_advances_turn(self, four_player_game):
        four_player_game.declare_bankruptcy("p1")
        assert four_player_game.get_current_player().player_id == "p2"
        assert four_player_game.turn_number == 2

    def test_cannot_go_bankrupt_twice(self, four_player_game):
        four_player_game.declare_bankruptcy("p3")
        with pytest.raises(StateConflictError):
            four_player_game.declare_bankruptcy("p3")

    def test_cannot_go_bankrupt_to_self(self, four_player_game):
        with pytest.raises(ValidationError):
            four_player_game.declare_bankruptcy("p2", creditor_id="p2")

    def test_bankruptcy_cancels_trades(self, four_player_game):
        give_property(four_player_game, "p2", 1)
        trade = four_player_game.propose_trade("p2", "p3", offered_properties=[1], requested_money=100)
        four_player_game.declare_bankruptcy("p2")
        assert trade.trade_id not in four_player_game.active_trades
