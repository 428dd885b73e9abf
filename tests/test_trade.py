"""
Tests for the trading system.
"""

import pytest

from tycoon.exceptions import (
    AuthorizationError,
    InsufficientFundsError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from tycoon.money import EventType
from tycoon.trade import TradeStatus

from .conftest import give_property, put_buildings


@pytest.fixture
def game_with_properties(basic_game):
    """Alice holds the Browns, Bob holds two Light Blues."""
    give_property(basic_game, "p1", 1, 3)
    give_property(basic_game, "p2", 6, 8)
    return basic_game


class TestProposal:
    def test_propose_trade(self, game_with_properties):
        trade = game_with_properties.propose_trade(
            "p1", "p2", offered_money=500, offered_properties=[1], requested_properties=[6]
        )
        assert trade.status == TradeStatus.PENDING
        assert trade.offered_properties == frozenset({1})
        assert game_with_properties.active_trades[trade.trade_id] is trade
        assert game_with_properties.history.get_events()[-1].event_type == EventType.TRADE_PROPOSED

    def test_propose_outside_own_turn(self, game_with_properties):
        trade = game_with_properties.propose_trade("p2", "p1", offered_properties=[8], requested_money=900)
        assert trade.from_player == "p2"

    def test_empty_trade(self, game_with_properties):
        with pytest.raises(ValidationError):
            game_with_properties.propose_trade("p1", "p2")

    def test_trade_with_self(self, game_with_properties):
        with pytest.raises(ValidationError):
            game_with_properties.propose_trade("p1", "p1", offered_money=10)

    def test_offering_unowned_property(self, game_with_properties):
        with pytest.raises(StateConflictError):
            game_with_properties.propose_trade("p1", "p2", offered_properties=[6])

    def test_requesting_unowned_property(self, game_with_properties):
        with pytest.raises(StateConflictError):
            game_with_properties.propose_trade("p1", "p2", requested_properties=[3])

    def test_non_property_space(self, game_with_properties):
        with pytest.raises(ValidationError):
            game_with_properties.propose_trade("p1", "p2", offered_properties=[4])

    def test_offering_more_money_than_held(self, game_with_properties):
        with pytest.raises(InsufficientFundsError):
            game_with_properties.propose_trade("p1", "p2", offered_money=20000)

    def test_mortgaged_property_cannot_be_traded(self, game_with_properties):
        game_with_properties.mortgage("p1", 1)
        with pytest.raises(StateConflictError):
            game_with_properties.propose_trade("p1", "p2", offered_properties=[1])

    def test_group_with_buildings_cannot_be_traded(self, game_with_properties):
        put_buildings(game_with_properties, 3, houses=1)
        with pytest.raises(StateConflictError):
            game_with_properties.propose_trade("p1", "p2", offered_properties=[1])


class TestResponse:
    def test_accept_swaps_assets(self, game_with_properties):
        trade = game_with_properties.propose_trade(
            "p1", "p2", offered_money=500, offered_properties=[1], requested_money=200, requested_properties=[6]
        )

        result = game_with_properties.respond_to_trade("p2", trade.trade_id, accept=True)

        alice = game_with_properties.get_player("p1")
        bob = game_with_properties.get_player("p2")
        assert result.status == TradeStatus.ACCEPTED
        assert alice.money == 15000 - 500 + 200
        assert bob.money == 15000 + 500 - 200
        assert alice.properties == {3, 6}
        assert bob.properties == {1, 8}
        assert game_with_properties.property_ownership[1].owner_id == "p2"
        assert game_with_properties.property_ownership[6].owner_id == "p1"
        assert trade.trade_id not in game_with_properties.active_trades

    def test_reject(self, game_with_properties):
        trade = game_with_properties.propose_trade("p1", "p2", offered_money=100)
        result = game_with_properties.respond_to_trade("p2", trade.trade_id, accept=False)
        assert result.status == TradeStatus.REJECTED
        assert game_with_properties.get_player("p1").money == 15000

    def test_only_recipient_may_respond(self, game_with_properties):
        trade = game_with_properties.propose_trade("p1", "p2", offered_money=100)
        with pytest.raises(AuthorizationError):
            game_with_properties.respond_to_trade("p1", trade.trade_id, accept=True)

    def test_unknown_trade(self, game_with_properties):
        with pytest.raises(NotFoundError):
            game_with_properties.respond_to_trade("p2", "missing", accept=True)

    def test_stale_trade_is_rejected_without_transfer(self, game_with_properties):
        trade = game_with_properties.propose_trade("p1", "p2", offered_properties=[1], requested_properties=[6])
        game_with_properties.mortgage("p2", 6)

        result = game_with_properties.respond_to_trade("p2", trade.trade_id, accept=True)

        assert result.status == TradeStatus.REJECTED
        assert "mortgaged" in result.reason
        assert game_with_properties.property_ownership[1].owner_id == "p1"
        assert game_with_properties.property_ownership[6].owner_id == "p2"

    def test_stale_money_is_rejected(self, game_with_properties):
        trade = game_with_properties.propose_trade("p1", "p2", offered_money=1000, requested_properties=[8])
        game_with_properties.get_player("p1").money = 10
        result = game_with_properties.respond_to_trade("p2", trade.trade_id, accept=True)
        assert result.status == TradeStatus.REJECTED
        assert game_with_properties.get_player("p2").money == 15000


class TestCancel:
    def test_proposer_cancels(self, game_with_properties):
        trade = game_with_properties.propose_trade("p1", "p2", offered_money=100)
        result = game_with_properties.cancel_trade("p1", trade.trade_id)
        assert result.status == TradeStatus.CANCELLED
        assert not game_with_properties.active_trades

    def test_recipient_cannot_cancel(self, game_with_properties):
        trade = game_with_properties.propose_trade("p1", "p2", offered_money=100)
        with pytest.raises(AuthorizationError):
            game_with_properties.cancel_trade("p2", trade.trade_id)
        assert trade.trade_id in game_with_properties.active_trades
