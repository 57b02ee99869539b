"""
Terminal rendering and line input for interactive play.
"""

import asyncio
import sys
from typing import Callable, Optional, TextIO

from gridlords.config import RulesConfig
from gridlords.core import ASCII_A_OFFSET, ActionKind, Coordinate, GameState, SpecialItem
from gridlords.engine import ActionOutcome
from gridlords.notation import row_range

COLUMN_WIDTH = 4


class TerminalRenderer:
    """Draws the board and game events as plain text."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdout

    def write(self, text: str = "") -> None:
        print(text, file=self.stream)

    def board_lines(self, state: GameState):
        board = state.board
        marks = {0: state.sides[0].mark, 1: state.sides[1].mark}
        border = "   +" + "---+" * board.size

        yield "     " + "".join(f"{c + 1:<{COLUMN_WIDTH}}" for c in range(board.size)).rstrip()
        yield border
        for r in range(board.size):
            cells = []
            for c in range(board.size):
                coord = Coordinate(r, c)
                owner = board.get_cell(coord).side_id
                special = board.get_special(coord)
                mark = marks[owner] if owner is not None else " "
                cells.append(mark + (special.symbol if special is not None else " "))
            yield f" {chr(ASCII_A_OFFSET + r)} |" + "|".join(f" {cell}" for cell in cells) + "|"
            yield border

    def render(self, state: GameState) -> None:
        """Print the board, the legend and each side's holdings."""
        self.write()
        for line in self.board_lines(state):
            self.write(line)

        symbols = ", ".join(f"{item.symbol}={item.label}" for item in SpecialItem)
        self.write(f"Legend: {state.sides[0].mark}, {state.sides[1].mark} = Players, {symbols}")
        for side in state.sides:
            wells = ", ".join(c.label() for c in sorted(side.magic_wells)) or "-"
            powers = ", ".join(c.label() for c in sorted(side.power_sources)) or "-"
            self.write(
                f"Player {side.mark}: {side.position_count}/{state.config.victory_cells} cells"
                f" | Power Sources: {powers} | Magic Wells: {wells}"
            )
        if state.bonus is not None:
            beneficiary = state.side(state.bonus.beneficiary)
            self.write(f"Magic Well bonus: {beneficiary.mark} defends {state.bonus.coordinate} with +"
                       f"{state.config.magic_well_defense_bonus}")

    def turn_header(self, state: GameState) -> None:
        self.write(f"\n--- Turn {state.turn}: Player {state.current_side.mark} ---")

    def outcome(self, state: GameState, outcome: ActionOutcome) -> None:
        """Report what an action did, including dice for attacks."""
        side = state.side(outcome.side_id)
        action = outcome.action
        if action.kind is ActionKind.ATTACK:
            bonus = " (Magic Well bonus)" if outcome.magic_bonus_applied else ""
            self.write(f"{side.mark} attacks {action.target}: rolled {outcome.attack_roll} "
                       f"vs defense {outcome.defense_roll}{bonus}")
            if outcome.success:
                self.write(f"Attack succeeded! {side.mark} captures {action.target}.")
            else:
                self.write("Attack failed. The defender holds.")
        elif action.kind is ActionKind.FORTIFY:
            self.write(f"{side.mark} fortifies {action.target}.")
        else:
            self.write(f"{side.mark} conquers {action.target}.")
            if outcome.shield_kept:
                self.write("The shield on this cell now protects it.")

        for item in outcome.captured:
            self.write(f"{side.mark} captured a {item.label}!")
        for item in outcome.destroyed:
            self.write(f"A {item.label} was destroyed.")

    def message(self, text: str) -> None:
        self.write(text)

    def error(self, text: str) -> None:
        self.write(f"Error: {text}")

    def game_over(self, state: GameState) -> None:
        self.render(state)
        if state.winner_id is not None:
            winner = state.side(state.winner_id)
            self.write(f"\nPlayer {winner.mark} wins with {winner.position_count} cells!")
        else:
            self.write("\nNo side can move. The game ends in a draw.")


def render_manual(config: Optional[RulesConfig] = None) -> str:
    """The game manual, filled in with the live rule values."""
    config = config or RulesConfig.default()
    rows = row_range(config.grid_size)
    power = SpecialItem.POWER_SOURCE
    well = SpecialItem.MAGIC_WELL
    shield = SpecialItem.SHIELD
    return f"""GRIDLORDS

Goal: be the first to control {config.victory_cells} cells of the {config.grid_size}x{config.grid_size} grid.
Player {config.player_marks[0]} starts at A1, player {config.player_marks[1]} in the opposite corner.

Each turn choose ONE action, typed as ACTION COORD (rows {rows}, columns 1-{config.grid_size}):
  C <coord>  Conquer an empty cell up, down, left or right of your territory.
  F <coord>  Fortify one of your cells with a {shield.symbol} {shield.label}. Destroys any
             {power.label} or {well.label} you hold on that cell.
  A <coord>  Attack an adjacent enemy cell. Both sides roll {config.min_dice_roll}-{config.max_dice_roll}; the attacker
             must roll strictly higher to capture it.

Special items:
  {power.symbol} {power.label}  +{config.power_source_attack_bonus} to all your attacks while you hold at least one.
  {well.symbol} {well.label}    after your action, pick one of your cells to defend at
                +{config.magic_well_defense_bonus} during the opponent's next turn.
  {shield.symbol} {shield.label}        +{config.shield_defense_bonus} defense. Destroyed when the cell falls.

Conquering a cell captures its {power.label} or {well.label}. Capturing an enemy cell takes
any items held there. A side without a legal move skips its turn; two skips in a row end
the game in a draw.
"""


class TerminalInput:
    """Reads lines without blocking the event loop."""

    def __init__(self, reader: Optional[Callable[[str], str]] = None):
        self.reader = reader or input

    async def read(self, prompt: str) -> str:
        return await asyncio.to_thread(self.reader, prompt)
