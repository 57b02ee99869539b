"""
Move execution and turn sequencing.

``MoveExecutor`` applies one validated action to the board and ledgers.
``GameEngine`` wraps it with the per-turn lifecycle: Magic Well bonus expiry,
bonus grants, skipped turns, victory checks and turn advancement.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from gridlords.core import (
    Action,
    ActionKind,
    Coordinate,
    GameState,
    GameStatus,
    MagicWellBonus,
    Side,
    SpecialItem,
)
from gridlords.rules import RejectReason, RulesEngine

logger = logging.getLogger(__name__)

HOLDABLE_ITEMS = (SpecialItem.POWER_SOURCE, SpecialItem.MAGIC_WELL)

# Consecutive skipped turns that end the game without a winner
STALEMATE_SKIPS = 2


@dataclass
class ActionOutcome:
    """
    Result of a processed action.

    Attributes:
        action: The action that was applied
        side_id: Acting side
        success: False only for an attack the defender held
        attack_roll: Attacker total, for attacks
        defense_roll: Defender total, for attacks
        magic_bonus_applied: Whether the defender's roll included the Magic Well bonus
        captured: Items that changed hands or were picked up from the overlay
        destroyed: Items removed from play
        shield_kept: An expand landed on an existing shield
    """
    action: Action
    side_id: int
    success: bool = True
    attack_roll: Optional[int] = None
    defense_roll: Optional[int] = None
    magic_bonus_applied: bool = False
    captured: List[SpecialItem] = field(default_factory=list)
    destroyed: List[SpecialItem] = field(default_factory=list)
    shield_kept: bool = False


class MoveExecutor:
    """
    Applies single actions to a game state.

    Every action is validated in full before the first mutation, so a rejected
    action leaves the state untouched.
    """

    def __init__(self, rules: RulesEngine):
        self.rules = rules

    def execute(self, state: GameState, side_id: int, action: Action) -> ActionOutcome:
        """
        Validate and apply an action for a side.

        Args:
            state: Game state to mutate
            side_id: Acting side
            action: Action to apply

        Returns:
            What happened

        Raises:
            IllegalActionError: If a precondition fails; nothing is changed
        """
        side = state.side(side_id)
        opponent = state.opponent_of(side_id)
        self.rules.check_action(action, side, opponent, state.board)

        if action.kind is ActionKind.EXPAND:
            return self._expand(state, side, action)
        if action.kind is ActionKind.FORTIFY:
            return self._fortify(state, side, action)
        return self._attack(state, side, opponent, action)

    def _expand(self, state: GameState, side: Side, action: Action) -> ActionOutcome:
        target = action.target
        outcome = ActionOutcome(action=action, side_id=side.id)
        special = state.board.get_special(target)

        state.claim_cell(target, side.id)

        if special is SpecialItem.SHIELD:
            outcome.shield_kept = True
            logger.info(f"Side {side.mark} conquered shielded cell {target}, shield remains")
        elif special in HOLDABLE_ITEMS:
            side.add_item(target, special)
            state.board.remove_special(target)
            outcome.captured.append(special)
            logger.info(f"Side {side.mark} conquered {target} and captured a {special.label}")
        else:
            logger.info(f"Side {side.mark} conquered {target}")
        return outcome

    def _fortify(self, state: GameState, side: Side, action: Action) -> ActionOutcome:
        target = action.target
        outcome = ActionOutcome(action=action, side_id=side.id)

        for item in side.held_items(target):
            if item is SpecialItem.POWER_SOURCE:
                side.remove_power_source(target)
            else:
                side.remove_magic_well(target)
            outcome.destroyed.append(item)

        overlay = state.board.get_special(target)
        if overlay in HOLDABLE_ITEMS:
            state.board.remove_special(target)
            if overlay not in outcome.destroyed:
                outcome.destroyed.append(overlay)

        state.board.place_special(target, SpecialItem.SHIELD)
        if outcome.destroyed:
            lost = ", ".join(item.label for item in outcome.destroyed)
            logger.info(f"Side {side.mark} fortified {target}, destroying {lost}")
        else:
            logger.info(f"Side {side.mark} fortified {target}")
        return outcome

    def _attack(self, state: GameState, side: Side, opponent: Side, action: Action) -> ActionOutcome:
        target = action.target
        board = state.board
        shielded = board.has_shield(target)

        boosted: Optional[Coordinate] = None
        if state.bonus is not None and state.bonus.beneficiary == opponent.id:
            boosted = state.bonus.coordinate

        attack_roll = self.rules.roll_attack(side)
        defense_roll = self.rules.roll_defense(opponent, target, shielded, boosted)
        outcome = ActionOutcome(
            action=action,
            side_id=side.id,
            success=attack_roll > defense_roll,
            attack_roll=attack_roll,
            defense_roll=defense_roll,
            magic_bonus_applied=boosted == target,
        )
        logger.info(
            f"Attack {side.mark} -> {opponent.mark} at {target}: "
            f"{attack_roll} vs {defense_roll} ({'captured' if outcome.success else 'held'})"
        )

        if not outcome.success:
            return outcome

        transferred = opponent.held_items(target)
        overlay = board.get_special(target)
        if overlay in HOLDABLE_ITEMS and overlay not in transferred:
            transferred.append(overlay)

        opponent.remove_position(target)
        if shielded:
            board.remove_special(target)
            outcome.destroyed.append(SpecialItem.SHIELD)

        state.claim_cell(target, side.id)
        for item in transferred:
            side.add_item(target, item)
            outcome.captured.append(item)
        if overlay in HOLDABLE_ITEMS:
            board.remove_special(target)

        return outcome


class GameEngine:
    """
    Handles the turn lifecycle of a single game.
    """

    def __init__(self, state: GameState, rules: Optional[RulesEngine] = None):
        """
        Initialize the game engine with a game state.

        Args:
            state: The game state to operate on
            rules: Rules engine; one built from the state's configuration by default
        """
        self.state = state
        self.rules = rules or RulesEngine(state.config)
        self.executor = MoveExecutor(self.rules)

    @property
    def is_over(self) -> bool:
        return self.state.status is GameStatus.ENDED

    def begin_turn(self) -> Side:
        """
        Prepare the current side's turn.

        A Magic Well bonus only survives into the turn right after the one
        that granted it; any other bonus is cleared here, consumed or not.

        Returns:
            The side to act
        """
        bonus = self.state.bonus
        if bonus is not None and bonus.granted_turn != self.state.turn - 1:
            logger.debug(f"Magic Well bonus on {bonus.coordinate} expired")
            self.state.bonus = None
        return self.state.current_side

    def legal_moves(self, side_id: Optional[int] = None) -> List[Action]:
        side_id = self.state.current_side_id if side_id is None else side_id
        return self.rules.enumerate_legal_moves(
            self.state.side(side_id), self.state.opponent_of(side_id), self.state.board
        )

    def validate(self, action: Action, side_id: Optional[int] = None) -> Optional[RejectReason]:
        side_id = self.state.current_side_id if side_id is None else side_id
        return self.rules.validate_action(
            action, self.state.side(side_id), self.state.opponent_of(side_id), self.state.board
        )

    def execute(self, action: Action) -> ActionOutcome:
        """
        Apply an action for the side to move.

        Raises:
            IllegalActionError: If the action is illegal
            ValueError: If the game is already over
        """
        if self.is_over:
            raise ValueError("Game has already ended")
        outcome = self.executor.execute(self.state, self.state.current_side_id, action)
        self.state.consecutive_skips = 0
        return outcome

    def can_grant_magic_well_bonus(self, side_id: Optional[int] = None) -> bool:
        side_id = self.state.current_side_id if side_id is None else side_id
        return self.state.side(side_id).owns_any_magic_well()

    def grant_magic_well_bonus(self, coord: Coordinate, side_id: Optional[int] = None) -> bool:
        """
        Nominate a cell for the Magic Well defense bonus during the next enemy turn.

        Args:
            coord: One of the side's own cells
            side_id: Granting side; the side to move by default

        Returns:
            True if the bonus was set
        """
        side_id = self.state.current_side_id if side_id is None else side_id
        side = self.state.side(side_id)
        if not side.owns_any_magic_well():
            logger.warning(f"Side {side.mark} holds no Magic Well; bonus ignored")
            return False
        if not side.owns(coord):
            logger.warning(f"Side {side.mark} does not own {coord}; bonus ignored")
            return False

        self.state.bonus = MagicWellBonus(coordinate=coord, beneficiary=side_id, granted_turn=self.state.turn)
        logger.info(f"Side {side.mark} boosts {coord} for the next enemy turn")
        return True

    def skip_turn(self) -> None:
        """Record that the side to move had no action available."""
        self.state.consecutive_skips += 1
        logger.info(f"Side {self.state.current_side.mark} has no legal move and skips turn {self.state.turn}")

    def end_turn(self) -> Dict:
        """
        Close the current turn: check for a winner, detect stalemate, advance.

        Returns:
            Dictionary with turn results
        """
        state = self.state
        turn_results = {
            "turn": state.turn,
            "side": state.current_side_id,
            "winner": None,
            "game_over": False,
        }

        winner = self.rules.check_winner(state.sides)
        if winner is not None:
            state.status = GameStatus.ENDED
            state.winner_id = winner.id
            turn_results["winner"] = winner.id
            turn_results["game_over"] = True
            logger.info(f"Side {winner.mark} controls {winner.position_count} cells and wins")
            return turn_results

        if state.consecutive_skips >= STALEMATE_SKIPS:
            state.status = GameStatus.ENDED
            turn_results["game_over"] = True
            logger.info("Neither side can move; game ends in a stalemate")
            return turn_results

        state.turn += 1
        state.current_side_id = 1 - state.current_side_id
        return turn_results
