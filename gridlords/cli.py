"""
Command-line entry point for Gridlords.
"""

import argparse
import asyncio
import logging
import os
import random
import sys
from typing import List, Optional

from gridlords.config import GameDefaults, NegotiatorSettings, RulesConfig, ServerConfig, SuggesterConfig
from gridlords.core import BoardInvariantError, new_game
from gridlords.engine import GameEngine
from gridlords.negotiator import SuggestionNegotiator
from gridlords.rules import RulesEngine
from gridlords.session import AIController, GameSession, HumanController
from gridlords.suggesters import GeminiSuggester, Suggester, WebSocketSuggester
from gridlords.terminal import TerminalInput, TerminalRenderer, render_manual

logger = logging.getLogger(__name__)

MISSING_KEY_MESSAGE = (
    f"PvE with Gemini needs an API key. Set {SuggesterConfig.API_KEY_ENV}, pass --api-key, "
    "or use --suggester websocket with a local suggestion bot."
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gridlords", description="Gridlords: a territorial-control grid game")
    parser.add_argument("--mode", choices=["pvp", "pve"], default="pve",
                        help="pvp: two players at one terminal; pve: play against the AI (default)")
    parser.add_argument("--suggester", choices=["gemini", "websocket"], default="gemini",
                        help="Move-suggestion service used by the AI")
    parser.add_argument("--server-url", default=ServerConfig.url(),
                        help="URL of a WebSocket suggestion bot (with --suggester websocket)")
    parser.add_argument("--api-key", default=None,
                        help=f"Gemini API key (default: ${SuggesterConfig.API_KEY_ENV})")
    parser.add_argument("--grid-size", type=int, default=GameDefaults.GRID_SIZE, help="Board side length")
    parser.add_argument("--victory-cells", type=int, default=None,
                        help="Cells needed to win (default: 13 on a 5x5 board, otherwise half the board plus one)")
    parser.add_argument("--timeout", type=float, default=SuggesterConfig.REQUEST_TIMEOUT,
                        help="Seconds to wait for each suggestion")
    parser.add_argument("--retries", type=int, default=SuggesterConfig.MAX_RETRIES,
                        help="Extra suggestion attempts before a random fallback")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for a reproducible game")
    parser.add_argument("--manual", action="store_true", help="Print the game manual and exit")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser


def build_rules_config(args: argparse.Namespace) -> RulesConfig:
    victory = args.victory_cells
    if victory is None:
        if args.grid_size == GameDefaults.GRID_SIZE:
            victory = GameDefaults.VICTORY_CELLS
        else:
            victory = args.grid_size * args.grid_size // 2 + 1
    return RulesConfig(grid_size=args.grid_size, victory_cells=victory)


def build_negotiator_settings(args: argparse.Namespace) -> NegotiatorSettings:
    return NegotiatorSettings(request_timeout=args.timeout, max_retries=args.retries)


def resolve_api_key(args: argparse.Namespace) -> Optional[str]:
    return args.api_key or os.environ.get(SuggesterConfig.API_KEY_ENV)


def build_suggester(args: argparse.Namespace) -> Suggester:
    """
    Create the suggestion service selected on the command line.

    Raises:
        ValueError: If Gemini is selected without an API key
    """
    if args.suggester == "websocket":
        return WebSocketSuggester(args.server_url, timeout=args.timeout)

    api_key = resolve_api_key(args)
    if not api_key:
        raise ValueError(MISSING_KEY_MESSAGE)
    return GeminiSuggester(api_key, timeout=args.timeout)


async def play(args: argparse.Namespace, config: RulesConfig,
               settings: Optional[NegotiatorSettings] = None) -> Optional[int]:
    rng = random.Random(args.seed) if args.seed is not None else None
    state = new_game(config, rng)
    rules = RulesEngine(config, rng)
    engine = GameEngine(state, rules)
    renderer = TerminalRenderer()
    reader = TerminalInput()

    controllers = {0: HumanController(reader, renderer)}
    suggester = None
    if args.mode == "pve":
        suggester = build_suggester(args)
        negotiator = SuggestionNegotiator(suggester, rules, settings, rng)
        controllers[GameDefaults.AI_SIDE_ID] = AIController(negotiator, renderer)
    else:
        controllers[1] = HumanController(reader, renderer)

    try:
        return await GameSession(engine, controllers, renderer).run()
    finally:
        if suggester is not None:
            await suggester.close()


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    try:
        config = build_rules_config(args)
        settings = build_negotiator_settings(args)
    except ValueError as e:
        parser.error(str(e))

    if args.manual:
        print(render_manual(config))
        return 0

    if args.mode == "pve" and args.suggester == "gemini" and not resolve_api_key(args):
        print(f"Error: {MISSING_KEY_MESSAGE}", file=sys.stderr)
        return 2

    try:
        asyncio.run(play(args, config, settings))
    except (KeyboardInterrupt, EOFError):
        print("\nGame interrupted. Goodbye!")
        return 130
    except BoardInvariantError as e:
        logger.critical(f"Board invariant violated: {e}")
        print(f"Fatal error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
