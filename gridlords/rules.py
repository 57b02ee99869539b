"""
Rules engine: adjacency, dice, victory and move legality.

The engine is stateless apart from its configuration and random source, so the
same instance can answer legality questions for the executor, the negotiator
and the bots alike.
"""

import logging
import random
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from gridlords.config import RulesConfig
from gridlords.core import Action, ActionKind, Board, Coordinate, Side

logger = logging.getLogger(__name__)


class RejectReason(Enum):
    """Precondition that an illegal action failed."""
    OUT_OF_BOUNDS = "out_of_bounds"
    NOT_EMPTY = "not_empty"
    NOT_ADJACENT = "not_adjacent"
    NOT_OWNED = "not_owned"
    ALREADY_SHIELDED = "already_shielded"
    NOT_ENEMY = "not_enemy"

    @property
    def message(self) -> str:
        return _REJECT_MESSAGES[self]


_REJECT_MESSAGES = {
    RejectReason.OUT_OF_BOUNDS: "Coordinate is outside the board.",
    RejectReason.NOT_EMPTY: "Target cell is not empty.",
    RejectReason.NOT_ADJACENT: "Target cell is not adjacent to your territory.",
    RejectReason.NOT_OWNED: "You do not control this cell.",
    RejectReason.ALREADY_SHIELDED: "This cell is already fortified with a shield.",
    RejectReason.NOT_ENEMY: "Target cell is not controlled by the enemy.",
}


class IllegalActionError(ValueError):
    """Raised when an action violates a rules precondition. Nothing is mutated."""

    def __init__(self, action: Action, reason: RejectReason):
        super().__init__(f"{action}: {reason.message}")
        self.action = action
        self.reason = reason


class RulesEngine:
    """
    Legality, dice and victory rules for one configuration.
    """

    def __init__(self, config: Optional[RulesConfig] = None, rng=None):
        """
        Initialize the rules engine.

        Args:
            config: Rule parameters
            rng: Random source with ``randint``; the process-wide generator by default
        """
        self.config = config or RulesConfig.default()
        self.rng = rng if rng is not None else random

    def is_adjacent(self, target: Coordinate, side: Side) -> bool:
        """True iff some cell owned by ``side`` is at Manhattan distance exactly 1."""
        return any(owned.distance(target) == 1 for owned in side.positions)

    def _roll(self) -> int:
        return self.rng.randint(self.config.min_dice_roll, self.config.max_dice_roll)

    def roll_attack(self, side: Side) -> int:
        """
        Roll the attack die for a side.

        The power-source bonus applies once no matter how many are held.
        """
        bonus = self.config.power_source_attack_bonus if side.owns_any_power_source() else 0
        return self._roll() + bonus

    def roll_defense(self, side: Side, coord: Coordinate, shielded: bool,
                     boosted_coord: Optional[Coordinate]) -> int:
        """
        Roll the defense die for a cell.

        Args:
            side: Defending side
            coord: Defended cell
            shielded: Whether the cell carries a shield
            boosted_coord: Cell currently holding the Magic Well bonus for ``side``

        Returns:
            Base roll plus shield and magic bonuses
        """
        shield_bonus = self.config.shield_defense_bonus if shielded else 0
        magic_bonus = self.config.magic_well_defense_bonus if boosted_coord == coord else 0
        return self._roll() + shield_bonus + magic_bonus

    def check_winner(self, sides: Iterable[Side]) -> Optional[Side]:
        """
        Return the first side that reached the victory threshold.

        Only one side's count changes per resolved action, so both sides can
        never cross the threshold on the same action.
        """
        for side in sides:
            if side.position_count >= self.config.victory_cells:
                return side
        return None

    def enumerate_legal_moves(self, side: Side, opponent: Side, board: Board) -> List[Action]:
        """
        List every action currently legal for ``side``.

        Each (kind, target) pair appears once even when several owned cells
        reach the same target.
        """
        moves: Dict[Tuple[ActionKind, Coordinate], Action] = {}

        for owned in sorted(side.positions):
            if not board.has_shield(owned):
                moves.setdefault((ActionKind.FORTIFY, owned), Action(ActionKind.FORTIFY, owned))

            for neighbor in owned.neighbors(board.size):
                if board.is_empty(neighbor):
                    moves.setdefault((ActionKind.EXPAND, neighbor), Action(ActionKind.EXPAND, neighbor))
                elif opponent.owns(neighbor):
                    moves.setdefault((ActionKind.ATTACK, neighbor), Action(ActionKind.ATTACK, neighbor))

        return list(moves.values())

    def magic_well_targets(self, side: Side) -> List[Coordinate]:
        """Cells eligible for the Magic Well bonus: any cell the side owns."""
        return sorted(side.positions)

    def validate_action(self, action: Action, side: Side, opponent: Side, board: Board) -> Optional[RejectReason]:
        """
        Check an action's preconditions without mutating anything.

        Returns:
            None if the action is legal, otherwise the first failed precondition
        """
        target = action.target
        if not board.is_valid_coordinate(target):
            return RejectReason.OUT_OF_BOUNDS

        if action.kind is ActionKind.EXPAND:
            if not board.is_empty(target):
                return RejectReason.NOT_EMPTY
            if not self.is_adjacent(target, side):
                return RejectReason.NOT_ADJACENT

        elif action.kind is ActionKind.FORTIFY:
            if not side.owns(target):
                return RejectReason.NOT_OWNED
            if board.has_shield(target):
                return RejectReason.ALREADY_SHIELDED

        elif action.kind is ActionKind.ATTACK:
            # An empty cell carrying a shield is not enemy-owned and is rejected here.
            if not opponent.owns(target):
                return RejectReason.NOT_ENEMY
            if not self.is_adjacent(target, side):
                return RejectReason.NOT_ADJACENT

        else:
            raise ValueError(f"Unknown action kind {action.kind}")

        return None

    def check_action(self, action: Action, side: Side, opponent: Side, board: Board) -> None:
        """
        Raise if the action is illegal.

        Raises:
            IllegalActionError: Carrying the failed precondition
        """
        reason = self.validate_action(action, side, opponent, board)
        if reason is not None:
            logger.debug(f"Side {side.mark} rejected {action}: {reason.value}")
            raise IllegalActionError(action, reason)
