import asyncio
from typing import Dict, Iterable, Optional

from gridlords.config import RulesConfig
from gridlords.core import Coordinate, GameState, SpecialItem
from gridlords.notation import parse_coordinate
from gridlords.suggesters import Suggester


class FixedRolls:
    """Stand-in for ``random`` that returns scripted dice and always picks the first choice."""

    def __init__(self, *rolls: int):
        self.rolls = list(rolls)
        self.choices = []

    def randint(self, low: int, high: int) -> int:
        value = self.rolls.pop(0)
        assert low <= value <= high
        return value

    def choice(self, seq):
        self.choices.append(list(seq))
        return seq[0]


class ScriptedSuggester(Suggester):
    """Returns queued replies in order; queued exceptions are raised instead."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.prompts = []
        self.states = []

    async def suggest(self, prompt, state):
        self.prompts.append(prompt)
        self.states.append(state)
        reply = self.replies.pop(0) if self.replies else "CONQUER: Z99"
        if isinstance(reply, BaseException):
            raise reply
        return reply


class SlowSuggester(Suggester):
    """Never answers within any reasonable timeout."""

    def __init__(self):
        self.calls = 0

    async def suggest(self, prompt, state):
        self.calls += 1
        await asyncio.sleep(30)
        return "CONQUER: A2"


def c(label: str, size: int = 5) -> Coordinate:
    return parse_coordinate(label, size)


def make_state(x: Iterable[str] = ("A1",), o: Iterable[str] = ("E5",),
               specials: Optional[Dict[str, SpecialItem]] = None,
               x_power: Iterable[str] = (), x_wells: Iterable[str] = (),
               o_power: Iterable[str] = (), o_wells: Iterable[str] = (),
               config: Optional[RulesConfig] = None) -> GameState:
    """Build a state with explicit territory and items, without random scattering."""
    state = GameState(config)
    size = state.board.size
    for label in x:
        state.claim_cell(c(label, size), 0)
    for label in o:
        state.claim_cell(c(label, size), 1)
    for label, item in (specials or {}).items():
        state.board.place_special(c(label, size), item)
    for label in x_power:
        state.side(0).add_power_source(c(label, size))
    for label in x_wells:
        state.side(0).add_magic_well(c(label, size))
    for label in o_power:
        state.side(1).add_power_source(c(label, size))
    for label in o_wells:
        state.side(1).add_magic_well(c(label, size))
    return state


def assert_ledgers_consistent(state: GameState) -> None:
    for side in state.sides:
        assert side.power_sources <= side.positions
        assert side.magic_wells <= side.positions
        for coord in side.positions:
            assert state.board.get_cell(coord) is side.cell_mark
    assert not (state.sides[0].positions & state.sides[1].positions)
