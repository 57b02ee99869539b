import logging
import random

import pytest

from gridlords.config import NegotiatorSettings, RulesConfig
from gridlords.core import (
    Action,
    ActionKind,
    Board,
    BoardInvariantError,
    CellMark,
    Coordinate,
    GameState,
    Side,
    SpecialItem,
    new_game,
    scatter_specials,
)
from helpers import c, make_state


def test_coordinate_notation():
    coord = Coordinate(1, 2)
    assert coord.label() == "B3"
    assert str(coord) == "B3"
    assert coord.key() == "1,2"


def test_coordinate_neighbors_stay_on_board():
    assert sorted(Coordinate(0, 0).neighbors(5)) == [Coordinate(0, 1), Coordinate(1, 0)]
    assert len(Coordinate(2, 2).neighbors(5)) == 4
    assert all(n.distance(Coordinate(4, 4)) == 1 for n in Coordinate(4, 4).neighbors(5))


def test_action_renders_keyword():
    assert str(Action(ActionKind.EXPAND, Coordinate(1, 2))) == "CONQUER B3"
    assert ActionKind.EXPAND.letter == "C"
    assert ActionKind.FORTIFY.letter == "F"
    assert ActionKind.ATTACK.letter == "A"


def test_board_rejects_out_of_bounds_writes():
    board = Board(5)
    with pytest.raises(BoardInvariantError):
        board.set_cell(Coordinate(5, 0), CellMark.SIDE_A)
    with pytest.raises(BoardInvariantError):
        board.get_cell(Coordinate(0, -1))
    with pytest.raises(BoardInvariantError):
        board.place_special(Coordinate(0, 7), SpecialItem.SHIELD)


def test_board_overlay_is_independent_of_marks():
    board = Board(3)
    board.place_special(Coordinate(1, 1), SpecialItem.SHIELD)
    assert board.is_empty(Coordinate(1, 1))
    assert board.has_shield(Coordinate(1, 1))
    assert board.remove_special(Coordinate(1, 1)) is SpecialItem.SHIELD
    assert board.remove_special(Coordinate(1, 1)) is None


def test_side_cannot_hold_items_on_unowned_cells():
    side = Side(0, "X")
    with pytest.raises(BoardInvariantError):
        side.add_power_source(Coordinate(0, 0))
    with pytest.raises(BoardInvariantError):
        side.add_magic_well(Coordinate(0, 0))


def test_removing_position_drops_held_items():
    side = Side(1, "O")
    coord = Coordinate(2, 2)
    side.add_position(coord)
    side.add_power_source(coord)
    side.add_magic_well(coord)
    assert side.held_items(coord) == [SpecialItem.POWER_SOURCE, SpecialItem.MAGIC_WELL]

    side.remove_position(coord)
    assert not side.owns(coord)
    assert not side.owns_any_power_source()
    assert not side.owns_any_magic_well()


def test_shield_is_not_holdable():
    side = Side(0, "X")
    side.add_position(Coordinate(0, 0))
    with pytest.raises(ValueError):
        side.add_item(Coordinate(0, 0), SpecialItem.SHIELD)


def test_new_game_seeds_corners():
    state = new_game(rng=random.Random(3))
    assert state.side(0).positions == {Coordinate(0, 0)}
    assert state.side(1).positions == {Coordinate(4, 4)}
    assert state.board.get_cell(Coordinate(0, 0)) is CellMark.SIDE_A
    assert state.board.get_cell(Coordinate(4, 4)) is CellMark.SIDE_B
    assert state.current_side_id == 0
    assert state.turn == 1
    assert state.bonus is None


@pytest.mark.parametrize("seed", range(10))
def test_new_game_scatters_one_of_each_item_on_empty_cells(seed):
    state = new_game(rng=random.Random(seed))
    specials = state.board.specials
    assert sorted(item.name for item in specials.values()) == ["MAGIC_WELL", "POWER_SOURCE", "SHIELD"]
    for coord in specials:
        assert state.board.is_empty(coord)


def test_new_game_is_reproducible_with_seed():
    first = new_game(rng=random.Random(42))
    second = new_game(rng=random.Random(42))
    assert first.board.specials == second.board.specials


def test_scatter_tolerates_partial_placement(caplog):
    config = RulesConfig(grid_size=2, victory_cells=3, initial_special_cells=0)
    state = make_state(x=("A1",), o=("B2",), config=config)
    with caplog.at_level(logging.WARNING):
        placed = scatter_specials(state, 5, random.Random(0))
    assert placed == 2
    assert set(state.board.specials) == {Coordinate(0, 1), Coordinate(1, 0)}
    assert "Could only place 2 of 5" in caplog.text


def test_scatter_cycles_item_types():
    config = RulesConfig(grid_size=4, victory_cells=9, initial_special_cells=0)
    state = make_state(x=(), o=(), config=config)
    scatter_specials(state, 6, random.Random(1))
    items = list(state.board.specials.values())
    assert items.count(SpecialItem.POWER_SOURCE) == 2
    assert items.count(SpecialItem.MAGIC_WELL) == 2
    assert items.count(SpecialItem.SHIELD) == 2


def test_state_serialization():
    state = make_state(x=("A1", "A2"), specials={"C3": SpecialItem.SHIELD}, x_power=("A2",))
    data = state.to_dict(viewer_side_id=1)
    assert data["type"] == "game_state"
    assert data["viewer_side"] == 1
    assert data["grid"][0][:2] == ["X", "X"]
    assert data["grid"][4][4] == "O"
    assert data["specials"] == {"C3": "SHIELD"}
    assert data["sides"][0]["cells"] == ["A1", "A2"]
    assert data["sides"][0]["power_sources"] == ["A2"]
    assert data["bonus"] is None
    assert data["game_status"] == "active"


def test_owner_lookup():
    state = make_state()
    assert state.owner_of(c("A1")) is state.side(0)
    assert state.owner_of(c("E5")) is state.side(1)
    assert state.owner_of(c("C3")) is None


@pytest.mark.parametrize("kwargs", [
    {"grid_size": 1},
    {"grid_size": 27},
    {"grid_size": 3, "victory_cells": 10},
    {"min_dice_roll": 6, "max_dice_roll": 1},
    {"player_marks": ("X", "X")},
])
def test_rules_config_validation(kwargs):
    with pytest.raises(ValueError):
        RulesConfig(**kwargs)


def test_negotiator_settings():
    assert NegotiatorSettings(max_retries=2).max_attempts == 3
    with pytest.raises(ValueError):
        NegotiatorSettings(request_timeout=0)
    with pytest.raises(ValueError):
        NegotiatorSettings(max_retries=-1)


def test_game_state_uses_configured_marks():
    state = GameState(RulesConfig(player_marks=("R", "B")))
    assert [side.mark for side in state.sides] == ["R", "B"]
