"""Coordinate notation and parsing of typed move commands.

Rows are letters starting at ``A`` and columns are 1-based numbers, so on the
reference 5x5 board cells run from ``A1`` to ``E5``.
"""

import re
from typing import Tuple

from gridlords.core import ASCII_A_OFFSET, ActionKind, Coordinate

COORDINATE_PATTERN = re.compile(r"^([A-Z])\s?([1-9]\d*)$")

ACTION_LETTERS = {kind.letter: kind for kind in ActionKind}


def row_range(grid_size: int) -> str:
    """Human-readable bounds, e.g. 'A-E' and '1-5'."""
    return f"{chr(ASCII_A_OFFSET)}-{chr(ASCII_A_OFFSET + grid_size - 1)}"


def parse_coordinate(raw: str, grid_size: int) -> Coordinate:
    """
    Parse a coordinate token such as ``B3`` (case-insensitive).

    Raises:
        ValueError: If the token is malformed or off the board
    """
    text = raw.strip().upper()
    match = COORDINATE_PATTERN.match(text)
    if not match:
        raise ValueError(f"Invalid coordinate format '{raw.strip()}'. Use LetterNumber (e.g., A1, C5).")

    row = ord(match.group(1)) - ASCII_A_OFFSET
    col = int(match.group(2)) - 1
    if not (0 <= row < grid_size and 0 <= col < grid_size):
        raise ValueError(
            f"Invalid coordinate '{text}'. Row must be {row_range(grid_size)}, column must be 1-{grid_size}."
        )
    return Coordinate(row, col)


def parse_player_move(raw: str, grid_size: int) -> Tuple[ActionKind, Coordinate]:
    """
    Parse a typed ``ACTION COORD`` command, e.g. ``c b3`` or ``A E4``.

    Action letters are C (conquer), F (fortify) and A (attack).

    Raises:
        ValueError: With a message suitable for re-prompting
    """
    parts = raw.strip().upper().split()
    if len(parts) != 2:
        raise ValueError("Invalid input format. Use: ACTION COORD (e.g., C B3).")

    action_token, coord_token = parts
    kind = ACTION_LETTERS.get(action_token)
    if kind is None:
        letters = ", ".join(sorted(ACTION_LETTERS))
        raise ValueError(f"Invalid action '{action_token}'. Use {letters}.")

    return kind, parse_coordinate(coord_token, grid_size)
