"""
Sequential turn loop for one interactive game.

Each side is driven by a controller: ``HumanController`` reads typed commands
from the terminal, ``AIController`` asks the suggestion negotiator. Only one
turn is ever in flight; the next one starts after the previous one resolved.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

from gridlords.core import Action, Coordinate, GameState
from gridlords.engine import GameEngine
from gridlords.negotiator import NegotiationResult, SuggestionNegotiator
from gridlords.notation import parse_coordinate, parse_player_move
from gridlords.terminal import TerminalInput, TerminalRenderer

logger = logging.getLogger(__name__)


class Controller(ABC):
    """Chooses actions for one side."""

    @abstractmethod
    async def choose_action(self, engine: GameEngine) -> Optional[Action]:
        """
        Pick the action for the side to move.

        Returns:
            A legal action, or None if the side cannot move
        """

    @abstractmethod
    async def choose_well_target(self, engine: GameEngine) -> Optional[Coordinate]:
        """Pick the Magic Well target after the action has been applied."""


class HumanController(Controller):
    """Prompts a player at the terminal until the input is legal."""

    def __init__(self, reader: TerminalInput, renderer: TerminalRenderer):
        self.reader = reader
        self.renderer = renderer

    async def choose_action(self, engine: GameEngine) -> Optional[Action]:
        state = engine.state
        side = state.current_side
        while True:
            raw = await self.reader.read(f"Player {side.mark}, enter your action (C/F/A COORD): ")
            try:
                kind, target = parse_player_move(raw, state.board.size)
            except ValueError as e:
                self.renderer.error(str(e))
                continue

            action = Action(kind, target)
            reason = engine.validate(action)
            if reason is not None:
                self.renderer.error(reason.message)
                continue
            return action

    async def choose_well_target(self, engine: GameEngine) -> Optional[Coordinate]:
        state = engine.state
        side = state.current_side
        owned = ", ".join(c.label() for c in engine.rules.magic_well_targets(side))
        self.renderer.message(f"You hold a Magic Well. Choose one of your cells to defend: {owned}")
        while True:
            raw = await self.reader.read(f"Player {side.mark}, Magic Well target: ")
            try:
                coord = parse_coordinate(raw, state.board.size)
            except ValueError as e:
                self.renderer.error(str(e))
                continue
            if not side.owns(coord):
                self.renderer.error(f"You do not control {coord}.")
                continue
            return coord


class AIController(Controller):
    """Obtains moves from the suggestion negotiator."""

    def __init__(self, negotiator: SuggestionNegotiator, renderer: Optional[TerminalRenderer] = None):
        self.negotiator = negotiator
        self.renderer = renderer
        self.last_result: Optional[NegotiationResult] = None

    async def choose_action(self, engine: GameEngine) -> Optional[Action]:
        state = engine.state
        if self.renderer:
            self.renderer.message(f"Player {state.current_side.mark} (AI) is thinking...")
        self.last_result = await self.negotiator.negotiate(state, state.current_side_id)
        if self.renderer and self.last_result.used_fallback:
            self.renderer.message("The AI could not decide, so it plays a random legal move.")
        return self.last_result.action

    async def choose_well_target(self, engine: GameEngine) -> Optional[Coordinate]:
        side = engine.state.current_side
        proposed = self.last_result.well_target if self.last_result is not None else None
        if proposed is not None and side.owns(proposed):
            return proposed

        # The action may have captured the first well or lost the proposed cell
        targets = engine.rules.magic_well_targets(side)
        if not targets:
            return None
        target = self.negotiator.rng.choice(targets)
        logger.info(f"Assigned random Magic Well target {target} for {side.mark}")
        return target


class GameSession:
    """
    Drives a game from the first turn to victory or stalemate.
    """

    def __init__(self, engine: GameEngine, controllers: Dict[int, Controller],
                 renderer: Optional[TerminalRenderer] = None):
        """
        Initialize the session.

        Args:
            engine: Engine wrapping the game state
            controllers: Controller for each side id
            renderer: Output collaborator
        """
        if set(controllers) != {0, 1}:
            raise ValueError("A controller is required for both sides")
        self.engine = engine
        self.controllers = controllers
        self.renderer = renderer or TerminalRenderer()

    @property
    def state(self) -> GameState:
        return self.engine.state

    async def play_turn(self) -> Dict:
        """
        Play one turn for the side to move.

        Returns:
            Turn results from ``GameEngine.end_turn``
        """
        engine = self.engine
        side = engine.begin_turn()
        self.renderer.turn_header(self.state)

        if not engine.legal_moves():
            self.renderer.message(f"Player {side.mark} has no legal move and skips this turn.")
            engine.skip_turn()
            return engine.end_turn()

        controller = self.controllers[side.id]
        action = await controller.choose_action(engine)
        if action is None:
            logger.error(f"Controller for {side.mark} produced no move")
            engine.skip_turn()
            return engine.end_turn()

        outcome = engine.execute(action)
        self.renderer.outcome(self.state, outcome)

        # Fortify may have destroyed the last well held, so check after acting
        if engine.can_grant_magic_well_bonus(side.id):
            target = await controller.choose_well_target(engine)
            if target is not None and engine.grant_magic_well_bonus(target, side.id):
                self.renderer.message(f"{target} gets +{self.state.config.magic_well_defense_bonus} "
                                      f"defense during the next enemy turn.")

        return engine.end_turn()

    async def run(self) -> Optional[int]:
        """
        Play until the game ends.

        Returns:
            The winning side id, or None on a draw
        """
        while not self.engine.is_over:
            self.renderer.render(self.state)
            await self.play_turn()
        self.renderer.game_over(self.state)
        return self.state.winner_id
