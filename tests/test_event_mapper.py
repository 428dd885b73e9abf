from events.mapper import map_event, map_events
from tycoon.board import Board
from tycoon.money import EventLog, EventType

from .conftest import give_property


def _log():
    return EventLog()


def test_dice_roll_mapping():
    log = _log()
    ev = log.log(EventType.DICE_ROLL, "p1", turn_number=1, timestamp=5.0, die1=3, die2=4, total=7, doubles=False)
    mapped = map_event(Board(), ev)
    assert mapped == {
        "seq": 0,
        "event_type": "dice_roll",
        "turn_number": 1,
        "timestamp": 5.0,
        "player_id": "p1",
        "die1": 3,
        "die2": 4,
        "total": 7,
        "is_doubles": False,
    }


def test_move_resolves_space_name():
    log = _log()
    ev = log.log(EventType.MOVE, "p1", turn_number=1, timestamp=0.0, **{"from": 0, "to": 39, "spaces": 39})
    mapped = map_event(Board(), ev)
    assert mapped["to_position"] == 39
    assert mapped["space_name"] == "Jaflong"
    assert mapped["direct"] is False


def test_positional_event_gets_property_name():
    log = _log()
    ev = log.log(EventType.PURCHASE, "p1", turn_number=2, timestamp=0.0, position=5, price=2000, balance=13000)
    mapped = map_event(Board(), ev)
    assert mapped["property_name"] == "Kamalapur Station"
    assert mapped["price"] == 2000


def test_event_without_player_omits_player_id():
    log = _log()
    ev = log.log(EventType.DECK_RESHUFFLE, turn_number=3, timestamp=0.0, deck="chance")
    mapped = map_event(Board(), ev)
    assert "player_id" not in mapped
    assert mapped["deck"] == "chance"


def test_sequence_numbers_increase():
    log = _log()
    for turn in range(3):
        log.log(EventType.TURN_START, "p1", turn_number=turn + 1, timestamp=0.0, turn=turn + 1)
    mapped = map_events(Board(), log.get_events())
    assert [m["seq"] for m in mapped] == [0, 1, 2]
    assert [m["turn"] for m in mapped] == [1, 2, 3]


def test_rent_payment_from_game(basic_game, dice):
    give_property(basic_game, "p2", 6)
    dice.queue(2, 4)
    basic_game.roll_dice("p1")

    mapped = map_events(basic_game.board, basic_game.history.get_events())

    rent = next(m for m in mapped if m["event_type"] == "rent_payment")
    assert rent["owner_id"] == "p2"
    assert rent["amount"] == 60
    assert rent["amount_due"] == 60
    assert rent["property_name"] == "Motijheel"
