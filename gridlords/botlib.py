"""
Bot Library for Gridlords Suggestion Bots

A suggestion bot is a small WebSocket service that the game asks for move
suggestions. This library handles the connection handling and state parsing so
a bot only has to implement the strategy.

Usage:
1. Inherit from SuggestionBot
2. Implement the play_turn() method
3. Call bot.run() to start serving

Example:
    class MyBot(SuggestionBot):
        def play_turn(self, view):
            for cell in view.frontline_cells():
                empty = view.empty_neighbors(cell)
                if empty:
                    return self.conquer(empty[0])
            return None

    bot = MyBot()
    bot.run()

Protocol: the game sends ``{"type": "suggest", "prompt": ..., "state": ...}``
where ``state`` is ``GameState.to_dict`` for the side to move. The bot answers
``{"type": "suggestion", "text": ...}`` or ``{"type": "error", "message": ...}``.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import websockets
from websockets.asyncio.server import ServerConnection

from gridlords.config import BotConfig, ServerConfig
from gridlords.core import ActionKind, Coordinate, SpecialItem
from gridlords.notation import parse_coordinate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Suggestion:
    """A move a bot proposes, optionally with a Magic Well target."""
    kind: ActionKind
    target: Coordinate
    well_target: Optional[Coordinate] = None

    def to_text(self) -> str:
        """Render in the reply grammar the negotiator parses."""
        text = f"{self.kind.keyword}: {self.target.label()}"
        if self.well_target is not None:
            text += f"\nWELL_TARGET: {self.well_target.label()}"
        return text


class GameView:
    """
    Convenient wrapper around a serialized game state, seen from one side.
    """

    def __init__(self, raw_state: Dict[str, Any]):
        self.raw = raw_state
        self.grid_size: int = raw_state["grid_size"]
        self.turn = raw_state.get("turn", 0)
        self.victory_cells = raw_state.get("victory_cells", 0)
        viewer = raw_state.get("viewer_side")
        self.my_side_id: int = raw_state.get("current_side", 0) if viewer is None else viewer
        self.enemy_side_id = 1 - self.my_side_id

        sides = raw_state.get("sides", [])
        me = sides[self.my_side_id]
        enemy = sides[self.enemy_side_id]
        self.my_mark = me["mark"]

        self.my_cells = self._coords(me["cells"])
        self.enemy_cells = self._coords(enemy["cells"])
        self.my_power_sources = self._coords(me.get("power_sources", []))
        self.my_magic_wells = self._coords(me.get("magic_wells", []))
        self.enemy_power_sources = self._coords(enemy.get("power_sources", []))

        self.specials: Dict[Coordinate, SpecialItem] = {
            parse_coordinate(label, self.grid_size): SpecialItem[name]
            for label, name in raw_state.get("specials", {}).items()
        }

        self._mine = set(self.my_cells)
        self._enemy = set(self.enemy_cells)

    def _coords(self, labels: List[str]) -> List[Coordinate]:
        return sorted(parse_coordinate(label, self.grid_size) for label in labels)

    def is_mine(self, coord: Coordinate) -> bool:
        return coord in self._mine

    def is_enemy(self, coord: Coordinate) -> bool:
        return coord in self._enemy

    def is_empty(self, coord: Coordinate) -> bool:
        return coord not in self._mine and coord not in self._enemy

    def is_shielded(self, coord: Coordinate) -> bool:
        return self.specials.get(coord) is SpecialItem.SHIELD

    def special_at(self, coord: Coordinate) -> Optional[SpecialItem]:
        return self.specials.get(coord)

    @property
    def holds_power_source(self) -> bool:
        return bool(self.my_power_sources)

    @property
    def holds_magic_well(self) -> bool:
        return bool(self.my_magic_wells)

    @property
    def enemy_holds_power_source(self) -> bool:
        return bool(self.enemy_power_sources)

    def get_neighbors(self, coord: Coordinate) -> List[Coordinate]:
        return coord.neighbors(self.grid_size)

    def empty_neighbors(self, coord: Coordinate) -> List[Coordinate]:
        return [n for n in self.get_neighbors(coord) if self.is_empty(n)]

    def enemy_neighbors(self, coord: Coordinate) -> List[Coordinate]:
        return [n for n in self.get_neighbors(coord) if self.is_enemy(n)]

    def frontline_cells(self) -> List[Coordinate]:
        """My cells that touch an empty or enemy cell."""
        return [c for c in self.my_cells if any(not self.is_mine(n) for n in self.get_neighbors(c))]

    def expandable_cells(self) -> List[Coordinate]:
        """Empty cells adjacent to my territory, each listed once."""
        return sorted({n for c in self.my_cells for n in self.empty_neighbors(c)})

    def attackable_cells(self) -> List[Coordinate]:
        """Enemy cells adjacent to my territory, each listed once."""
        return sorted({n for c in self.my_cells for n in self.enemy_neighbors(c)})

    def fortifiable_cells(self) -> List[Coordinate]:
        return [c for c in self.my_cells if not self.is_shielded(c)]

    def threat_level(self, coord: Coordinate) -> int:
        """Number of enemy cells orthogonally adjacent to a cell."""
        return len(self.enemy_neighbors(coord))


class SuggestionBot(ABC):
    """
    Abstract base class for suggestion bots. Handles all WebSocket
    communication and provides a clean interface for bot implementation.
    """

    difficulty = "easy"

    def __init__(self, name: Optional[str] = None, host: str = ServerConfig.HOST, port: int = ServerConfig.PORT):
        """
        Initialize the bot.

        Args:
            name: Display name used in logs
            host: Interface to listen on
            port: Port to listen on
        """
        self.name = name or BotConfig.BOT_NAME_PREFIX.get(self.difficulty, self.__class__.__name__)
        self.host = host
        self.port = port
        self.server = None
        self.suggestions_made = 0

    @abstractmethod
    def play_turn(self, view: GameView) -> Optional[Suggestion]:
        """
        Main bot logic - implement this method.

        Args:
            view: State of the game from the side to move

        Returns:
            A suggestion, or None if the bot has nothing to propose
        """

    # High-level convenience methods

    def conquer(self, target: Coordinate, well_target: Optional[Coordinate] = None) -> Suggestion:
        return Suggestion(ActionKind.EXPAND, target, well_target)

    def fortify(self, target: Coordinate, well_target: Optional[Coordinate] = None) -> Suggestion:
        return Suggestion(ActionKind.FORTIFY, target, well_target)

    def attack(self, target: Coordinate, well_target: Optional[Coordinate] = None) -> Suggestion:
        return Suggestion(ActionKind.ATTACK, target, well_target)

    # Connection handling

    def handle_message(self, message: Dict[str, Any]) -> Dict[str, Any]:
        """
        Build the reply to one request.

        Args:
            message: Decoded request

        Returns:
            Reply message
        """
        message_type = message.get("type") if isinstance(message, dict) else None
        if message_type != "suggest":
            return {"type": "error", "message": f"Unknown message type: {message_type}"}

        try:
            view = GameView(message["state"])
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning(f"[{self.name}] Malformed state: {e}")
            return {"type": "error", "message": "Malformed state"}

        suggestion = self.play_turn(view)
        if suggestion is None:
            return {"type": "error", "message": "No suggestion"}

        self.suggestions_made += 1
        logger.info(f"[{self.name}] Turn {view.turn}: suggesting {suggestion.kind.keyword} {suggestion.target}")
        return {"type": "suggestion", "text": suggestion.to_text()}

    async def handle_client(self, websocket: ServerConnection) -> None:
        """Answer requests on one connection until it closes."""
        logger.info(f"[{self.name}] Game connected")
        try:
            async for raw in websocket:
                try:
                    message = json.loads(raw)
                except ValueError:
                    reply = {"type": "error", "message": "Invalid JSON"}
                else:
                    reply = self.handle_message(message)
                await websocket.send(json.dumps(reply))
        except websockets.exceptions.ConnectionClosed as e:
            logger.debug(f"[{self.name}] Connection closed: {e}")
        logger.info(f"[{self.name}] Game disconnected")

    async def start(self) -> None:
        """Start listening; the bound port is stored back on the bot."""
        self.server = await websockets.serve(self.handle_client, self.host, self.port)
        sockets = list(self.server.sockets)
        if sockets:
            self.port = sockets[0].getsockname()[1]
        logger.info(f"[{self.name}] Serving suggestions on {ServerConfig.url(self.host, self.port)}")

    async def stop(self) -> None:
        if self.server is not None:
            self.server.close()
            await self.server.wait_closed()
            self.server = None

    def run(self) -> None:
        """Run the bot (blocking call)."""
        logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        try:
            asyncio.run(self._run_async())
        except KeyboardInterrupt:
            logger.info(f"[{self.name}] Shutting down...")

    async def _run_async(self) -> None:
        await self.start()
        try:
            await self.server.wait_closed()
        finally:
            await self.stop()
            logger.info(f"[{self.name}] Bot terminated")
