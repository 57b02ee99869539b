import random

import pytest

from gridlords.config import RulesConfig
from gridlords.core import Action, ActionKind, CellMark, GameStatus, SpecialItem, new_game
from gridlords.engine import GameEngine, MoveExecutor
from gridlords.rules import IllegalActionError, RejectReason, RulesEngine
from helpers import FixedRolls, assert_ledgers_consistent, c, make_state


def _engine(state, *rolls):
    return GameEngine(state, RulesEngine(state.config, FixedRolls(*rolls)))


def _act(kind, label):
    return Action(kind, c(label))


def test_expand_claims_cell_and_blocks_second_expand():
    state = make_state()
    executor = MoveExecutor(RulesEngine())
    executor.execute(state, 0, _act(ActionKind.EXPAND, "A2"))

    assert state.board.get_cell(c("A1")) is CellMark.SIDE_A
    assert state.board.get_cell(c("A2")) is CellMark.SIDE_A
    assert state.side(0).positions == {c("A1"), c("A2")}

    for side_id in (0, 1):
        with pytest.raises(IllegalActionError) as excinfo:
            executor.execute(state, side_id, _act(ActionKind.EXPAND, "A2"))
        assert excinfo.value.reason is RejectReason.NOT_EMPTY


def test_rejected_action_leaves_state_untouched():
    state = make_state(specials={"C3": SpecialItem.POWER_SOURCE})
    before = state.to_dict()
    with pytest.raises(IllegalActionError):
        MoveExecutor(RulesEngine()).execute(state, 0, _act(ActionKind.EXPAND, "C3"))
    assert state.to_dict() == before


def test_expand_captures_power_source():
    state = make_state(specials={"A2": SpecialItem.POWER_SOURCE})
    outcome = MoveExecutor(RulesEngine()).execute(state, 0, _act(ActionKind.EXPAND, "A2"))
    assert outcome.captured == [SpecialItem.POWER_SOURCE]
    assert state.side(0).power_sources == {c("A2")}
    assert state.board.get_special(c("A2")) is None
    assert_ledgers_consistent(state)


def test_expand_onto_shield_keeps_it():
    state = make_state(specials={"B1": SpecialItem.SHIELD})
    outcome = MoveExecutor(RulesEngine()).execute(state, 0, _act(ActionKind.EXPAND, "B1"))
    assert outcome.shield_kept
    assert state.board.has_shield(c("B1"))
    assert state.side(0).owns(c("B1"))


def test_fortify_places_shield_and_destroys_held_items():
    state = make_state(x=("A1", "A2"), x_power=("A2",), x_wells=("A2",))
    outcome = MoveExecutor(RulesEngine()).execute(state, 0, _act(ActionKind.FORTIFY, "A2"))
    assert state.board.has_shield(c("A2"))
    assert not state.side(0).owns_any_power_source()
    assert not state.side(0).owns_any_magic_well()
    assert set(outcome.destroyed) == {SpecialItem.POWER_SOURCE, SpecialItem.MAGIC_WELL}
    assert state.side(0).owns(c("A2"))


def test_attack_on_shielded_cell_captures_and_destroys_shield():
    state = make_state(x=("C2",), o=("C3",), specials={"C3": SpecialItem.SHIELD})
    executor = MoveExecutor(RulesEngine(rng=FixedRolls(6, 2)))
    total_before = sum(side.position_count for side in state.sides)

    outcome = executor.execute(state, 0, _act(ActionKind.ATTACK, "C3"))

    assert outcome.attack_roll == 6
    assert outcome.defense_roll == 3
    assert outcome.success
    assert not state.board.has_shield(c("C3"))
    assert not state.side(1).owns(c("C3"))
    assert state.side(0).owns(c("C3"))
    assert SpecialItem.SHIELD in outcome.destroyed
    assert sum(side.position_count for side in state.sides) == total_before
    assert_ledgers_consistent(state)


def test_attack_tie_favours_defender():
    state = make_state(x=("C2",), o=("C3",))
    outcome = MoveExecutor(RulesEngine(rng=FixedRolls(4, 4))).execute(state, 0, _act(ActionKind.ATTACK, "C3"))
    assert not outcome.success
    assert state.side(1).owns(c("C3"))
    assert state.board.get_cell(c("C3")) is CellMark.SIDE_B


def test_attack_transfers_held_items():
    state = make_state(x=("C2",), o=("C3", "D3"), o_power=("C3",), o_wells=("C3",))
    outcome = MoveExecutor(RulesEngine(rng=FixedRolls(5, 1))).execute(state, 0, _act(ActionKind.ATTACK, "C3"))
    assert outcome.success
    assert set(outcome.captured) == {SpecialItem.POWER_SOURCE, SpecialItem.MAGIC_WELL}
    assert state.side(0).power_sources == {c("C3")}
    assert state.side(0).magic_wells == {c("C3")}
    assert not state.side(1).owns_any_power_source()
    assert not state.side(1).owns_any_magic_well()
    assert_ledgers_consistent(state)


def test_power_source_turns_tie_into_win():
    state = make_state(x=("C2",), o=("C3",), x_power=("C2",))
    outcome = MoveExecutor(RulesEngine(rng=FixedRolls(3, 4))).execute(state, 0, _act(ActionKind.ATTACK, "C3"))
    assert outcome.attack_roll == 4
    assert not outcome.success


@pytest.mark.parametrize("attack,defense", [(a, d) for a in range(1, 7) for d in range(1, 7)])
def test_attack_changes_total_territory_by_nothing(attack, defense):
    state = make_state(x=("C2", "B2"), o=("C3", "D3"), specials={"C3": SpecialItem.SHIELD})
    total_before = sum(side.position_count for side in state.sides)
    MoveExecutor(RulesEngine(rng=FixedRolls(attack, defense))).execute(state, 0, _act(ActionKind.ATTACK, "C3"))
    total_after = sum(side.position_count for side in state.sides)
    assert total_before - 1 <= total_after <= total_before
    assert_ledgers_consistent(state)


@pytest.mark.parametrize("seed", range(5))
def test_accepted_actions_are_no_longer_legal(seed):
    rng = random.Random(seed)
    state = new_game(rng=rng)
    engine = GameEngine(state, RulesEngine(state.config, rng))

    for _ in range(40):
        if engine.is_over:
            break
        engine.begin_turn()
        moves = engine.legal_moves()
        if not moves:
            engine.skip_turn()
            engine.end_turn()
            continue
        action = rng.choice(moves)
        outcome = engine.execute(action)
        if outcome.success:
            assert engine.validate(action) is not None
        assert_ledgers_consistent(state)
        engine.end_turn()


def test_magic_well_bonus_lasts_exactly_one_enemy_turn():
    state = make_state(x=("C2", "A1"), o=("C3", "E5"), x_wells=("A1",))
    engine = _engine(state, 3, 3, 3, 3)

    # Turn 1: X acts and nominates C2
    engine.begin_turn()
    engine.execute(_act(ActionKind.EXPAND, "A2"))
    assert engine.grant_magic_well_bonus(c("C2"))
    engine.end_turn()

    # Turn 2: O attacks C2, defense gets the bonus
    engine.begin_turn()
    assert state.bonus is not None
    outcome = engine.execute(_act(ActionKind.ATTACK, "C2"))
    assert outcome.magic_bonus_applied
    assert outcome.defense_roll == 4
    assert not outcome.success
    engine.end_turn()

    # Turn 3: X acts without renewing the bonus
    engine.begin_turn()
    assert state.bonus is None
    engine.execute(_act(ActionKind.EXPAND, "B1"))
    engine.end_turn()

    # Turn 4: O attacks C2 again, no bonus
    engine.begin_turn()
    outcome = engine.execute(_act(ActionKind.ATTACK, "C2"))
    assert not outcome.magic_bonus_applied
    assert outcome.defense_roll == 3


def test_magic_well_bonus_expires_even_when_unused():
    state = make_state(x=("C2", "A1"), o=("E5",), x_wells=("A1",))
    engine = _engine(state)

    engine.begin_turn()
    engine.execute(_act(ActionKind.EXPAND, "A2"))
    engine.grant_magic_well_bonus(c("C2"))
    engine.end_turn()

    engine.begin_turn()
    assert state.bonus is not None
    engine.execute(_act(ActionKind.EXPAND, "E4"))
    engine.end_turn()

    engine.begin_turn()
    assert state.bonus is None


def test_magic_well_bonus_requires_well_and_owned_cell():
    state = make_state(x=("A1", "A2"), x_wells=("A1",))
    engine = GameEngine(state)
    assert not engine.grant_magic_well_bonus(c("E5"))
    assert engine.grant_magic_well_bonus(c("A2"))

    no_well = GameEngine(make_state())
    assert not no_well.can_grant_magic_well_bonus()
    assert not no_well.grant_magic_well_bonus(c("A1"))
    assert no_well.state.bonus is None


def test_fortifying_last_well_removes_bonus_ability():
    state = make_state(x=("A1",), x_wells=("A1",))
    engine = GameEngine(state)
    engine.begin_turn()
    engine.execute(_act(ActionKind.FORTIFY, "A1"))
    assert not engine.can_grant_magic_well_bonus()


def test_end_turn_declares_winner():
    config = RulesConfig(grid_size=3, victory_cells=3)
    state = make_state(x=("A1", "A2"), o=("C3",), config=config)
    engine = GameEngine(state)
    engine.begin_turn()
    engine.execute(Action(ActionKind.EXPAND, c("A3", 3)))
    result = engine.end_turn()
    assert result == {"turn": 1, "side": 0, "winner": 0, "game_over": True}
    assert state.status is GameStatus.ENDED
    assert state.winner_id == 0
    with pytest.raises(ValueError):
        engine.execute(Action(ActionKind.EXPAND, c("B1", 3)))


def test_end_turn_alternates_sides():
    engine = GameEngine(make_state())
    engine.begin_turn()
    engine.execute(_act(ActionKind.EXPAND, "A2"))
    result = engine.end_turn()
    assert result["game_over"] is False
    assert engine.state.current_side_id == 1
    assert engine.state.turn == 2


def test_two_consecutive_skips_end_in_draw():
    engine = GameEngine(make_state())
    engine.begin_turn()
    engine.skip_turn()
    assert not engine.end_turn()["game_over"]
    engine.begin_turn()
    engine.skip_turn()
    result = engine.end_turn()
    assert result["game_over"]
    assert result["winner"] is None
    assert engine.is_over
    assert engine.state.winner_id is None


def test_a_move_resets_skip_count():
    engine = GameEngine(make_state())
    engine.begin_turn()
    engine.skip_turn()
    engine.end_turn()
    engine.begin_turn()
    engine.execute(_act(ActionKind.EXPAND, "E4"))
    engine.end_turn()
    assert engine.state.consecutive_skips == 0
    assert not engine.is_over
