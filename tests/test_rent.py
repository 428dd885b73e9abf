"""
Tests for rent calculation and rent payment on landing.
"""

import pytest

from tycoon import GameConfig, create_game
from tycoon.exceptions import StateConflictError
from tycoon.game import LandingOutcome, TurnPhase

from .conftest import give_property, put_buildings


class TestCalculateRent:
    def test_unowned_space_has_no_rent(self, basic_game):
        assert basic_game.calculate_rent(1, 7) == 0

    def test_base_rent(self, basic_game):
        give_property(basic_game, "p1", 1)
        assert basic_game.calculate_rent(1, 7) == 20

    def test_monopoly_doubles_base_rent(self, basic_game):
        give_property(basic_game, "p1", 1, 3)
        assert basic_game.calculate_rent(1, 7) == 40
        assert basic_game.calculate_rent(3, 7) == 80

    def test_buildings_anywhere_in_group_cancel_doubling(self, basic_game):
        give_property(basic_game, "p1", 1, 3)
        put_buildings(basic_game, 1, houses=1)
        assert basic_game.calculate_rent(1, 7) == 100
        assert basic_game.calculate_rent(3, 7) == 40

    def test_hotel_rent(self, basic_game):
        give_property(basic_game, "p1", 37, 39)
        put_buildings(basic_game, 39, hotels=1)
        assert basic_game.calculate_rent(39, 7) == 20000

    def test_station_rent_scales_with_count(self, basic_game):
        give_property(basic_game, "p1", 5)
        assert basic_game.calculate_rent(5, 7) == 250
        give_property(basic_game, "p1", 15, 25)
        assert basic_game.calculate_rent(5, 7) == 1000

    def test_utility_rent_uses_dice(self, basic_game):
        give_property(basic_game, "p1", 12)
        assert basic_game.calculate_rent(12, 7) == 28
        give_property(basic_game, "p1", 28)
        assert basic_game.calculate_rent(12, 7) == 70

    def test_mortgaged_property_has_no_rent(self, basic_game):
        give_property(basic_game, "p1", 1)
        basic_game.property_ownership[1].is_mortgaged = True
        assert basic_game.calculate_rent(1, 7) == 0


class TestRentOnLanding:
    def test_rent_moves_money_to_owner(self, basic_game, dice):
        give_property(basic_game, "p2", 6)
        dice.queue(2, 4)

        result = basic_game.roll_dice("p1")

        assert result.landing.outcome == LandingOutcome.RENT_PAID
        assert result.landing.amount == 60
        assert result.landing.payee_id == "p2"
        assert basic_game.get_player("p1").money == 15000 - 60
        assert basic_game.get_player("p2").money == 15000 + 60

    def test_own_property_is_free(self, basic_game, dice):
        give_property(basic_game, "p1", 6)
        dice.queue(2, 4)
        result = basic_game.roll_dice("p1")
        assert result.landing.outcome == LandingOutcome.OWN_PROPERTY
        assert basic_game.get_player("p1").money == 15000

    def test_mortgaged_property_collects_nothing(self, basic_game, dice):
        give_property(basic_game, "p2", 6)
        basic_game.property_ownership[6].is_mortgaged = True
        dice.queue(2, 4)
        result = basic_game.roll_dice("p1")
        assert result.landing.outcome == LandingOutcome.MORTGAGED
        assert basic_game.get_player("p2").money == 15000

    def test_capped_rent_takes_remaining_balance(self, basic_game, dice):
        give_property(basic_game, "p2", 6)
        basic_game.get_player("p1").money = 30
        dice.queue(2, 4)

        result = basic_game.roll_dice("p1")

        assert result.landing.outcome == LandingOutcome.RENT_PAID
        assert result.landing.amount == 30
        assert result.landing.bankruptcy_triggered is True
        assert basic_game.get_player("p1").money == 0
        assert basic_game.get_player("p2").money == 15030
        assert basic_game.pending_debt is None

    def test_uncapped_rent_records_debt(self, uncapped_game, dice):
        give_property(uncapped_game, "p2", 6)
        uncapped_game.get_player("p1").money = 30
        dice.queue(2, 4)

        result = uncapped_game.roll_dice("p1")

        assert result.landing.outcome == LandingOutcome.DEBT_PENDING
        assert result.landing.amount == 60
        assert uncapped_game.pending_debt.amount == 60
        assert uncapped_game.pending_debt.creditor_id == "p2"
        assert uncapped_game.get_player("p1").money == 30
        assert uncapped_game.get_player("p2").money == 15000
        assert uncapped_game.phase == TurnPhase.AWAITING_DECISION

        with pytest.raises(StateConflictError):
            uncapped_game.end_turn("p1")

        uncapped_game.get_player("p1").money = 100
        uncapped_game.pay_debt("p1")
        assert uncapped_game.get_player("p1").money == 40
        assert uncapped_game.get_player("p2").money == 15060
        assert uncapped_game.pending_debt is None
        uncapped_game.end_turn("p1")


class TestTax:
    def test_income_tax(self, basic_game, dice):
        dice.queue(1, 3)
        result = basic_game.roll_dice("p1")
        assert result.landing.outcome == LandingOutcome.TAX_PAID
        assert result.landing.amount == 2000
        assert basic_game.get_player("p1").money == 13000

    def test_tax_feeds_free_parking_pot_when_enabled(self, two_players, dice, clock):
        game = create_game(GameConfig(free_parking_jackpot=True), two_players, rng=dice, clock=clock)
        dice.queue(1, 3)
        game.roll_dice("p1")
        assert game.bank.free_parking_pot == 2000

        game.end_turn("p1")
        game.get_player("p2").position = 15
        dice.queue(2, 3)
        result = game.roll_dice("p2")
        assert result.landing.outcome == LandingOutcome.FREE_PARKING
        assert result.landing.amount == 2000
        assert game.bank.free_parking_pot == 0
        assert game.get_player("p2").money == 17000
