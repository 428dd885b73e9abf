"""
Tests for rooms, membership and the room registry.
"""

import asyncio

import pytest

from server.registry import RoomRegistry
from tycoon.exceptions import (
    AuthorizationError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from tycoon.room import Participant, Room, RoomSettings, RoomStatus, generate_room_code, validate_name


def _room(max_players=4):
    return Room("ABC123", Participant("h", "Host"), max_players=max_players)


class TestRoom:
    def test_host_is_marked(self):
        room = _room()
        assert room.host_id == "h"
        assert room.participants[0].is_host is True

    def test_duplicate_name_rejected(self):
        room = _room()
        with pytest.raises(StateConflictError):
            room.add_participant(Participant("x", "host"))

    def test_full_room(self):
        room = _room(max_players=2)
        room.add_participant(Participant("a", "Ann"))
        with pytest.raises(StateConflictError):
            room.add_participant(Participant("b", "Ben"))

    def test_host_role_passes_on_leave(self):
        room = _room()
        room.add_participant(Participant("a", "Ann"))
        room.remove_participant("h")
        assert room.host_id == "a"
        assert room.participants[0].is_host is True

    def test_start_requires_host(self):
        room = _room()
        room.add_participant(Participant("a", "Ann"))
        with pytest.raises(AuthorizationError):
            room.start("a")

    def test_start_requires_everyone_ready(self):
        room = _room()
        room.add_participant(Participant("a", "Ann"))
        room.set_ready("h", True)
        with pytest.raises(StateConflictError):
            room.start("h")
        room.set_ready("a", True)
        roster = room.start("h")
        assert [p.player_id for p in roster] == ["h", "a"]
        assert room.status == RoomStatus.PLAYING

    def test_start_needs_minimum_players(self):
        room = _room()
        room.set_ready("h", True)
        with pytest.raises(StateConflictError):
            room.start("h")

    def test_join_after_start_rejected(self):
        room = _room()
        room.add_participant(Participant("a", "Ann"))
        room.set_ready("h", True)
        room.set_ready("a", True)
        room.start("h")
        with pytest.raises(StateConflictError):
            room.add_participant(Participant("b", "Ben"))

    def test_unknown_participant(self):
        with pytest.raises(NotFoundError):
            _room().get_participant("ghost")


def test_room_code_alphabet():
    code = generate_room_code(8)
    assert len(code) == 8
    assert code.isalnum() and code.upper() == code


@pytest.mark.parametrize("name", ["", "   ", "x" * 21])
def test_invalid_names(name):
    with pytest.raises(ValidationError):
        validate_name(name)


def test_name_is_trimmed():
    assert validate_name("  Rafi ") == "Rafi"


class TestRegistry:
    def test_create_and_join(self):
        async def scenario():
            registry = RoomRegistry()
            room, host = await registry.create_room("Host", settings=RoomSettings(starting_money=5000))
            guest = await registry.join_room(room.code.lower(), "Guest")
            return registry, room, host, guest

        registry, room, host, guest = asyncio.run(scenario())
        assert registry.get_room(room.code) is room
        assert [p.player_id for p in room.participants] == [host.player_id, guest.player_id]
        assert registry.public_rooms()[0]["player_count"] == 2

    def test_room_limit(self):
        async def scenario():
            registry = RoomRegistry(max_rooms=1)
            await registry.create_room("One")
            await registry.create_room("Two")

        with pytest.raises(StateConflictError):
            asyncio.run(scenario())

    def test_max_players_bounds(self):
        registry = RoomRegistry(max_players=4)
        with pytest.raises(ValidationError):
            asyncio.run(registry.create_room("Host", max_players=6))

    def test_start_game_uses_room_settings(self):
        async def scenario():
            registry = RoomRegistry()
            room, host = await registry.create_room("Host", settings=RoomSettings(starting_money=5000))
            guest = await registry.join_room(room.code, "Guest")
            await registry.set_ready(room.code, host.player_id)
            await registry.set_ready(room.code, guest.player_id)
            game = await registry.start_game(room.code, host.player_id)
            return registry, room, game

        registry, room, game = asyncio.run(scenario())
        assert registry.get_game(room.code) is game
        assert game.room_code == room.code
        assert [p.money for p in game.players] == [5000, 5000]
        assert room.status == RoomStatus.PLAYING
        assert registry.public_rooms() == []

    def test_leave_last_player_deletes_room(self):
        async def scenario():
            registry = RoomRegistry()
            room, host = await registry.create_room("Host")
            result = await registry.leave_room(room.code, host.player_id)
            return registry, room, result

        registry, room, result = asyncio.run(scenario())
        assert result is None
        assert len(registry) == 0
        with pytest.raises(NotFoundError):
            registry.get_room(room.code)

    def test_cannot_leave_running_game(self):
        async def scenario():
            registry = RoomRegistry()
            room, host = await registry.create_room("Host")
            guest = await registry.join_room(room.code, "Guest")
            await registry.set_ready(room.code, host.player_id)
            await registry.set_ready(room.code, guest.player_id)
            await registry.start_game(room.code, host.player_id)
            await registry.leave_room(room.code, guest.player_id)

        with pytest.raises(StateConflictError):
            asyncio.run(scenario())

    def test_cleanup_removes_idle_waiting_rooms(self):
        async def scenario():
            registry = RoomRegistry()
            room, _ = await registry.create_room("Host")
            kept = await registry.cleanup_inactive_rooms(60.0, now=room.created_at + 10)
            removed = await registry.cleanup_inactive_rooms(60.0, now=room.created_at + 3600)
            return registry, room, kept, removed

        registry, room, kept, removed = asyncio.run(scenario())
        assert kept == []
        assert removed == [room.code]
        assert len(registry) == 0

    def test_install_game_recreates_missing_room(self, basic_game):
        registry = RoomRegistry()
        room = asyncio.run(registry.install_game("test01", basic_game))
        assert room.code == "TEST01"
        assert [p.player_id for p in room.participants] == ["p1", "p2"]
        assert all(p.is_ready for p in room.participants)
        assert room.status == RoomStatus.PLAYING
        assert registry.get_game("TEST01") is basic_game

    def test_install_game_rejects_different_roster(self, basic_game):
        async def scenario():
            registry = RoomRegistry()
            room, _ = await registry.create_room("Host")
            await registry.install_game(room.code, basic_game)

        with pytest.raises(StateConflictError):
            asyncio.run(scenario())

    def test_remove_room_drops_game(self, basic_game):
        async def scenario():
            registry = RoomRegistry()
            await registry.install_game("TEST01", basic_game)
            await registry.remove_room("test01")
            return registry

        registry = asyncio.run(scenario())
        assert not registry.has_game("TEST01")
        with pytest.raises(NotFoundError):
            registry.get_room("TEST01")

    def test_lock_for_unknown_room(self):
        with pytest.raises(NotFoundError):
            RoomRegistry().lock_for("NOPE")
