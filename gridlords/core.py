"""
Gridlords - Core Data Structures

This module contains the data model for a two-sided territorial-control game
played on a small square grid: cell ownership, the sparse special-item overlay,
per-side territory ledgers and the complete game state.
"""

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterator, List, Optional, Set, Tuple

from gridlords.config import RulesConfig

logger = logging.getLogger(__name__)

ASCII_A_OFFSET = 65
ORTHOGONAL_DELTAS: Tuple[Tuple[int, int], ...] = ((-1, 0), (1, 0), (0, -1), (0, 1))


class BoardInvariantError(RuntimeError):
    """Raised when a grid or ledger invariant is violated. Always fatal."""


class CellMark(Enum):
    """Ownership mark of a single cell."""
    EMPTY = "empty"
    SIDE_A = "side_a"
    SIDE_B = "side_b"

    @classmethod
    def for_side(cls, side_id: int) -> "CellMark":
        """Return the mark used for the given side."""
        if side_id == 0:
            return cls.SIDE_A
        if side_id == 1:
            return cls.SIDE_B
        raise ValueError(f"Unknown side {side_id}")

    @property
    def side_id(self) -> Optional[int]:
        if self is CellMark.SIDE_A:
            return 0
        if self is CellMark.SIDE_B:
            return 1
        return None


class SpecialItem(Enum):
    """Special items of the overlay, valued by their board symbol."""
    POWER_SOURCE = "∆"
    MAGIC_WELL = "✶"
    SHIELD = "⛨"

    @property
    def symbol(self) -> str:
        return self.value

    @property
    def label(self) -> str:
        return self.name.replace("_", " ").title()


# Order in which item types are handed out at setup
SPECIAL_PLACEMENT_ORDER: Tuple[SpecialItem, ...] = (
    SpecialItem.POWER_SOURCE,
    SpecialItem.MAGIC_WELL,
    SpecialItem.SHIELD,
)


class ActionKind(Enum):
    """The three single actions a side may take, valued by their reply keyword."""
    EXPAND = "CONQUER"
    FORTIFY = "FORTIFY"
    ATTACK = "ATTACK"

    @property
    def keyword(self) -> str:
        return self.value

    @property
    def letter(self) -> str:
        return self.value[0]


class GameStatus(Enum):
    """Enumeration for game status states."""
    ACTIVE = "active"
    ENDED = "ended"


@dataclass(frozen=True, order=True)
class Coordinate:
    """
    A 0-indexed (row, column) position on the grid.

    Attributes:
        row: Row index, rendered as a letter (0 -> A)
        col: Column index, rendered 1-based
    """
    row: int
    col: int

    def key(self) -> str:
        """Canonical string encoding used in serialized state."""
        return f"{self.row},{self.col}"

    def label(self) -> str:
        """User-facing notation, e.g. (1, 2) -> 'B3'."""
        return f"{chr(ASCII_A_OFFSET + self.row)}{self.col + 1}"

    def distance(self, other: "Coordinate") -> int:
        """Manhattan distance to another coordinate."""
        return abs(self.row - other.row) + abs(self.col - other.col)

    def neighbors(self, grid_size: int) -> List["Coordinate"]:
        """Orthogonal neighbours that lie on a grid of the given size."""
        result = []
        for dr, dc in ORTHOGONAL_DELTAS:
            r, c = self.row + dr, self.col + dc
            if 0 <= r < grid_size and 0 <= c < grid_size:
                result.append(Coordinate(r, c))
        return result

    def __str__(self) -> str:
        return self.label()


@dataclass(frozen=True)
class Action:
    """
    A single turn action.

    Attributes:
        kind: Expand, Fortify or Attack
        target: Coordinate the action is aimed at
    """
    kind: ActionKind
    target: Coordinate

    def __str__(self) -> str:
        return f"{self.kind.keyword} {self.target.label()}"


class Board:
    """
    Dense grid of cell ownership marks plus a sparse special-item overlay.

    The overlay is keyed by coordinate and is independent of the cell marks:
    a shield may sit on an empty cell, and captured power sources and magic
    wells leave the overlay entirely.
    """

    def __init__(self, size: int):
        """
        Initialize an empty board.

        Args:
            size: Side length of the square grid

        Raises:
            ValueError: If size is not positive
        """
        if size <= 0:
            raise ValueError("Grid size must be positive")
        self.size = size
        self._cells: List[List[CellMark]] = [[CellMark.EMPTY for _ in range(size)] for _ in range(size)]
        self.specials: Dict[Coordinate, SpecialItem] = {}

    def is_valid_coordinate(self, coord: Coordinate) -> bool:
        return 0 <= coord.row < self.size and 0 <= coord.col < self.size

    def get_cell(self, coord: Coordinate) -> CellMark:
        """
        Get the ownership mark of a cell.

        Raises:
            BoardInvariantError: If the coordinate is off the board
        """
        if not self.is_valid_coordinate(coord):
            raise BoardInvariantError(f"Cell {coord.key()} is outside the {self.size}x{self.size} grid")
        return self._cells[coord.row][coord.col]

    def set_cell(self, coord: Coordinate, mark: CellMark) -> None:
        """
        Set the ownership mark of a cell.

        Raises:
            BoardInvariantError: If the coordinate is off the board
        """
        if not self.is_valid_coordinate(coord):
            raise BoardInvariantError(f"Cell {coord.key()} is outside the {self.size}x{self.size} grid")
        self._cells[coord.row][coord.col] = mark

    def is_empty(self, coord: Coordinate) -> bool:
        return self.get_cell(coord) is CellMark.EMPTY

    def get_special(self, coord: Coordinate) -> Optional[SpecialItem]:
        return self.specials.get(coord)

    def has_shield(self, coord: Coordinate) -> bool:
        return self.specials.get(coord) is SpecialItem.SHIELD

    def place_special(self, coord: Coordinate, item: SpecialItem) -> None:
        """
        Put a special item on the overlay, replacing whatever was there.

        Raises:
            BoardInvariantError: If the coordinate is off the board
        """
        if not self.is_valid_coordinate(coord):
            raise BoardInvariantError(f"Special at {coord.key()} is outside the grid")
        self.specials[coord] = item

    def remove_special(self, coord: Coordinate) -> Optional[SpecialItem]:
        """Remove and return the overlay item at a coordinate, if any."""
        return self.specials.pop(coord, None)

    def coordinates(self) -> Iterator[Coordinate]:
        """Iterate all coordinates in row-major order."""
        for r in range(self.size):
            for c in range(self.size):
                yield Coordinate(r, c)

    def rows(self) -> List[List[CellMark]]:
        """Copy of the grid rows."""
        return [row[:] for row in self._cells]


class Side:
    """
    Territory ledger of one combatant.

    Invariant: every coordinate in the power-source and magic-well subsets is
    also an owned coordinate. Removing ownership cascades to both subsets.
    """

    def __init__(self, side_id: int, mark: str):
        """
        Initialize a side with no territory.

        Args:
            side_id: 0 or 1
            mark: Display mark, e.g. 'X'
        """
        if side_id not in (0, 1):
            raise ValueError(f"Side id must be 0 or 1, got {side_id}")
        self.id = side_id
        self.mark = mark
        self._positions: Set[Coordinate] = set()
        self._power_sources: Set[Coordinate] = set()
        self._magic_wells: Set[Coordinate] = set()

    @property
    def cell_mark(self) -> CellMark:
        return CellMark.for_side(self.id)

    def add_position(self, coord: Coordinate) -> None:
        self._positions.add(coord)

    def remove_position(self, coord: Coordinate) -> None:
        """Drop ownership of a coordinate along with any item held there."""
        self._positions.discard(coord)
        self._power_sources.discard(coord)
        self._magic_wells.discard(coord)

    def owns(self, coord: Coordinate) -> bool:
        return coord in self._positions

    @property
    def positions(self) -> FrozenSet[Coordinate]:
        return frozenset(self._positions)

    @property
    def position_count(self) -> int:
        return len(self._positions)

    @property
    def power_sources(self) -> FrozenSet[Coordinate]:
        return frozenset(self._power_sources)

    @property
    def magic_wells(self) -> FrozenSet[Coordinate]:
        return frozenset(self._magic_wells)

    def owns_any_power_source(self) -> bool:
        return bool(self._power_sources)

    def owns_any_magic_well(self) -> bool:
        return bool(self._magic_wells)

    def add_power_source(self, coord: Coordinate) -> None:
        self._require_owned(coord, SpecialItem.POWER_SOURCE)
        self._power_sources.add(coord)

    def remove_power_source(self, coord: Coordinate) -> None:
        self._power_sources.discard(coord)

    def add_magic_well(self, coord: Coordinate) -> None:
        self._require_owned(coord, SpecialItem.MAGIC_WELL)
        self._magic_wells.add(coord)

    def remove_magic_well(self, coord: Coordinate) -> None:
        self._magic_wells.discard(coord)

    def held_items(self, coord: Coordinate) -> List[SpecialItem]:
        """Items this side holds on the given coordinate."""
        items = []
        if coord in self._power_sources:
            items.append(SpecialItem.POWER_SOURCE)
        if coord in self._magic_wells:
            items.append(SpecialItem.MAGIC_WELL)
        return items

    def add_item(self, coord: Coordinate, item: SpecialItem) -> None:
        if item is SpecialItem.POWER_SOURCE:
            self.add_power_source(coord)
        elif item is SpecialItem.MAGIC_WELL:
            self.add_magic_well(coord)
        else:
            raise ValueError(f"{item.label} is not a holdable item")

    def _require_owned(self, coord: Coordinate, item: SpecialItem) -> None:
        if coord not in self._positions:
            raise BoardInvariantError(
                f"Side {self.mark} cannot hold a {item.label} at unowned cell {coord.label()}"
            )

    def to_dict(self) -> Dict:
        """
        Convert side to dictionary format for JSON serialization.

        Returns:
            Dictionary representation of the side
        """
        return {
            "id": self.id,
            "mark": self.mark,
            "cells": sorted(c.label() for c in self._positions),
            "power_sources": sorted(c.label() for c in self._power_sources),
            "magic_wells": sorted(c.label() for c in self._magic_wells),
        }


@dataclass(frozen=True)
class MagicWellBonus:
    """
    A one-shot defense bonus nominated by a Magic Well holder.

    Attributes:
        coordinate: Cell that defends with the bonus
        beneficiary: Side id that owns the cell and receives the bonus
        granted_turn: Turn number at whose end the bonus was granted
    """
    coordinate: Coordinate
    beneficiary: int
    granted_turn: int


class GameState:
    """
    Represents the complete state of one game session.

    Attributes:
        config: Rule parameters
        board: Cell marks and special-item overlay
        sides: Both territory ledgers, indexed by side id
        current_side_id: Side whose turn it is
        turn: Current turn number, starting at 1
        bonus: The Magic Well bonus, if one is pending
        status: Current game status
        winner_id: Winning side id once the game has ended with a winner
        consecutive_skips: Number of turns skipped in a row for lack of moves
    """

    def __init__(self, config: Optional[RulesConfig] = None):
        self.config = config or RulesConfig.default()
        self.board = Board(self.config.grid_size)
        self.sides: Tuple[Side, Side] = (
            Side(0, self.config.player_marks[0]),
            Side(1, self.config.player_marks[1]),
        )
        self.current_side_id = 0
        self.turn = 1
        self.bonus: Optional[MagicWellBonus] = None
        self.status = GameStatus.ACTIVE
        self.winner_id: Optional[int] = None
        self.consecutive_skips = 0

    def side(self, side_id: int) -> Side:
        return self.sides[side_id]

    def opponent_of(self, side_id: int) -> Side:
        return self.sides[1 - side_id]

    @property
    def current_side(self) -> Side:
        return self.sides[self.current_side_id]

    def owner_of(self, coord: Coordinate) -> Optional[Side]:
        side_id = self.board.get_cell(coord).side_id
        return None if side_id is None else self.sides[side_id]

    def claim_cell(self, coord: Coordinate, side_id: int) -> None:
        """Mark a cell as owned by a side in both the grid and the ledger."""
        side = self.sides[side_id]
        self.board.set_cell(coord, side.cell_mark)
        side.add_position(coord)

    def to_dict(self, viewer_side_id: Optional[int] = None) -> Dict:
        """
        Convert game state to dictionary format for JSON serialization.

        Args:
            viewer_side_id: Side the snapshot is prepared for, if any

        Returns:
            Dictionary representation of the game state
        """
        marks = {CellMark.EMPTY: " ", CellMark.SIDE_A: self.sides[0].mark, CellMark.SIDE_B: self.sides[1].mark}
        return {
            "type": "game_state",
            "turn": self.turn,
            "grid_size": self.board.size,
            "victory_cells": self.config.victory_cells,
            "current_side": self.current_side_id,
            "viewer_side": viewer_side_id,
            "grid": [[marks[cell] for cell in row] for row in self.board.rows()],
            "specials": {coord.label(): item.name for coord, item in sorted(self.board.specials.items())},
            "sides": [side.to_dict() for side in self.sides],
            "bonus": None if self.bonus is None else {
                "cell": self.bonus.coordinate.label(),
                "side": self.bonus.beneficiary,
            },
            "game_status": self.status.value,
            "winner": self.winner_id,
        }


def scatter_specials(state: GameState, count: int, rng=None) -> int:
    """
    Scatter special items onto empty, unclaimed cells.

    Candidate coordinates are drawn at random without replacement until every
    item is placed or the attempt budget (two draws per cell) runs out. Partial
    placement is tolerated.

    Args:
        state: Game state whose overlay receives the items
        count: Number of items to place
        rng: Random source; defaults to the process-wide generator

    Returns:
        Number of items actually placed
    """
    rng = rng if rng is not None else random
    board = state.board
    candidates = list(board.coordinates())
    max_attempts = board.size * board.size * 2
    placed = 0
    attempts = 0

    while placed < count and attempts < max_attempts and candidates:
        coord = candidates.pop(rng.randint(0, len(candidates) - 1))
        if board.is_empty(coord) and board.get_special(coord) is None:
            item = SPECIAL_PLACEMENT_ORDER[placed % len(SPECIAL_PLACEMENT_ORDER)]
            board.place_special(coord, item)
            placed += 1
        attempts += 1

    if placed < count:
        logger.warning(f"Could only place {placed} of {count} special items")
    return placed


def new_game(config: Optional[RulesConfig] = None, rng=None) -> GameState:
    """
    Create a game with both seed cells claimed and special items scattered.

    Side 0 starts in the top-left corner and side 1 in the bottom-right corner.

    Args:
        config: Rule parameters; reference configuration if omitted
        rng: Random source for special placement

    Returns:
        A fresh, active game state
    """
    state = GameState(config)
    last = state.config.grid_size - 1
    state.claim_cell(Coordinate(0, 0), 0)
    state.claim_cell(Coordinate(last, last), 1)
    placed = scatter_specials(state, state.config.initial_special_cells, rng)
    logger.info(f"New {state.board.size}x{state.board.size} game with {placed} special items")
    return state
