"""Shared test fixtures for the Tycoon engine and server."""

import random

import pytest

from tycoon import GameConfig, Player, create_game


class ScriptedDice(random.Random):
    """Seeded generator whose dice rolls can be queued ahead of time."""

    def __init__(self):
        super().__init__(1234)
        self.script = []

    def queue(self, *dice):
        self.script.extend(dice)

    def randint(self, a, b):
        if self.script:
            return self.script.pop(0)
        return super().randint(a, b)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def give_property(game, player_id, *positions):
    """Hand unowned spaces to a player without charging them."""
    player = game.get_player(player_id)
    for pos in positions:
        game.property_ownership[pos].owner_id = player_id
        player.properties.add(pos)


def put_buildings(game, position, houses=0, hotels=0):
    """Place buildings on a site, drawing them from the bank's supply."""
    ownership = game.property_ownership[position]
    game.bank.houses_available += ownership.houses - houses
    game.bank.hotels_available += ownership.hotels - hotels
    ownership.houses = houses
    ownership.hotels = hotels


@pytest.fixture
def game_config():
    """Default game configuration with fixed seed for reproducibility."""
    return GameConfig(seed=42)


@pytest.fixture
def two_players():
    return [Player("p1", "Alice"), Player("p2", "Bob")]


@pytest.fixture
def four_players():
    return [
        Player("p1", "Alice"),
        Player("p2", "Bob"),
        Player("p3", "Charlie"),
        Player("p4", "Diana"),
    ]


@pytest.fixture
def dice():
    return ScriptedDice()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def basic_game(game_config, two_players, dice, clock):
    """Two-player game with scripted dice and a fake clock."""
    return create_game(game_config, two_players, room_code="TEST01", rng=dice, clock=clock)


@pytest.fixture
def four_player_game(game_config, four_players, dice, clock):
    return create_game(game_config, four_players, room_code="TEST04", rng=dice, clock=clock)


@pytest.fixture
def uncapped_game(two_players, dice, clock):
    """Game where unaffordable charges become pending debts."""
    config = GameConfig(seed=42, cap_payments_at_balance=False)
    return create_game(config, two_players, room_code="DEBT01", rng=dice, clock=clock)
