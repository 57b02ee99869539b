"""
Suggestion negotiator: turns free-text move suggestions into legal actions.

One negotiation is an explicit state machine driven by ``Negotiation.step``::

    IDLE -> AWAITING_SUGGESTION -> VALIDATING -> RESOLVED
                    ^                  |
                    +---- retry -------+
    ... -> FALLBACK (random legal move) | FAILED (no legal move exists)

Replies are untrusted. A suggestion is accepted only after the same
precondition checks the move executor applies. Parse failures and illegal
suggestions both consume a retry. A transport failure consumes a retry too,
while a timeout short-circuits straight to the fallback.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from gridlords.config import NegotiatorSettings
from gridlords.core import Action, ActionKind, Coordinate, GameState, SpecialItem
from gridlords.notation import parse_coordinate
from gridlords.rules import RulesEngine
from gridlords.suggesters import Suggester, SuggesterError, SuggesterTimeout

logger = logging.getLogger(__name__)

KEYWORD_ALIASES = {
    "CONQUER": ActionKind.EXPAND,
    "EXPAND": ActionKind.EXPAND,
    "FORTIFY": ActionKind.FORTIFY,
    "ATTACK": ActionKind.ATTACK,
}

ACTION_LINE = re.compile(r"^(CONQUER|EXPAND|FORTIFY|ATTACK)\s*:\s*([A-Z]\s?\d+)$")
WELL_TARGET_LINE = re.compile(r"^WELL_TARGET\s*:\s*([A-Z]\s?\d+)$")


class NegotiationState(Enum):
    """Phases of a single negotiation."""
    IDLE = "idle"
    AWAITING_SUGGESTION = "awaiting_suggestion"
    VALIDATING = "validating"
    RESOLVED = "resolved"
    FALLBACK = "fallback"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (NegotiationState.RESOLVED, NegotiationState.FALLBACK, NegotiationState.FAILED)


class AttemptOutcome(Enum):
    """How one request to the suggester ended."""
    ACCEPTED = "accepted"
    PARSE_FAILURE = "parse_failure"
    ILLEGAL = "illegal"
    TRANSPORT_FAILURE = "transport_failure"
    TIMEOUT = "timeout"


class SuggestionParseError(ValueError):
    """Raised when a reply does not follow the ``ACTION: COORD`` grammar."""


@dataclass(frozen=True)
class ParsedSuggestion:
    """A syntactically valid reply, not yet checked for legality."""
    kind: ActionKind
    target: Coordinate
    well_target: Optional[Coordinate] = None

    @property
    def action(self) -> Action:
        return Action(self.kind, self.target)


@dataclass
class AttemptRecord:
    """Diagnostic record of one attempt."""
    number: int
    outcome: AttemptOutcome
    detail: str = ""
    reply: Optional[str] = None


@dataclass
class NegotiationResult:
    """
    Final result of a negotiation.

    Attributes:
        state: RESOLVED, FALLBACK or FAILED
        action: A legal action, or None when the side has no legal move
        well_target: Cell to receive the Magic Well bonus, if the side holds a well
        attempts: One record per request made
    """
    state: NegotiationState
    action: Optional[Action]
    well_target: Optional[Coordinate] = None
    attempts: List[AttemptRecord] = field(default_factory=list)

    @property
    def has_move(self) -> bool:
        return self.action is not None

    @property
    def used_fallback(self) -> bool:
        return self.state is NegotiationState.FALLBACK


def parse_suggestion(text: str, grid_size: int) -> ParsedSuggestion:
    """
    Parse a suggestion reply.

    The first non-empty line must read ``ACTION: COORD`` (case-insensitive,
    whitespace-tolerant). An optional next line ``WELL_TARGET: COORD`` names a
    Magic Well target; a malformed well line is ignored.

    Args:
        text: Raw reply text
        grid_size: Board size used to bound coordinates

    Returns:
        The parsed suggestion

    Raises:
        SuggestionParseError: If the action line is missing or malformed
    """
    lines = [line.strip().upper() for line in (text or "").splitlines() if line.strip()]
    if not lines:
        raise SuggestionParseError("Empty reply")

    match = ACTION_LINE.match(lines[0])
    if not match:
        raise SuggestionParseError(f"Unexpected main action format '{lines[0]}'")

    kind = KEYWORD_ALIASES[match.group(1)]
    try:
        target = parse_coordinate(match.group(2), grid_size)
    except ValueError as e:
        raise SuggestionParseError(f"Invalid main coordinate '{match.group(2)}'") from e

    well_target = None
    if len(lines) > 1:
        well_match = WELL_TARGET_LINE.match(lines[1])
        if well_match:
            try:
                well_target = parse_coordinate(well_match.group(1), grid_size)
            except ValueError:
                logger.warning(f"Ignoring invalid WELL_TARGET coordinate '{well_match.group(1)}'")
        else:
            logger.warning(f"Ignoring malformed WELL_TARGET line '{lines[1]}'")

    return ParsedSuggestion(kind=kind, target=target, well_target=well_target)


def _labels(coords) -> str:
    return ", ".join(c.label() for c in sorted(coords)) or "None"


def describe_state(state: GameState, side_id: int, rules: RulesEngine, list_legal_moves: bool = True) -> str:
    """
    Build the natural-language request sent to a suggester.

    Args:
        state: Current game state
        side_id: Side asking for a move
        rules: Rules engine, used for legal moves and well targets
        list_legal_moves: Whether to append the enumeration of legal moves

    Returns:
        The prompt text
    """
    config = state.config
    board = state.board
    me = state.side(side_id)
    enemy = state.opponent_of(side_id)
    expand = ActionKind.EXPAND.keyword

    marks = {0: state.sides[0].mark, 1: state.sides[1].mark}
    border = "  +" + "---+" * board.size
    lines = ["   " + "".join(f" {c + 1}  " for c in range(board.size)), border]
    for r in range(board.size):
        row = f"{Coordinate(r, 0).label()[0]} |"
        for c in range(board.size):
            coord = Coordinate(r, c)
            special = board.get_special(coord)
            owner = board.get_cell(coord).side_id
            char = special.symbol if special else (marks[owner] if owner is not None else " ")
            row += f" {char} |"
        lines.append(row)
        lines.append(border)
    board_text = "\n".join(lines)

    specials = ", ".join(f"{coord.label()}({item.symbol})" for coord, item in sorted(board.specials.items())) or "None"
    well_targets = _labels(rules.magic_well_targets(me)) if me.owns_any_magic_well() else "None available"
    shield = SpecialItem.SHIELD.symbol
    power = SpecialItem.POWER_SOURCE.symbol
    well = SpecialItem.MAGIC_WELL.symbol

    prompt = f"""You are Gridlords AI player {me.mark}. Goal: control {config.victory_cells} cells. Grid {board.size}x{board.size}.

Current board:
{board_text}
Legend: [ ]=Empty, {marks[0]}, {marks[1]} = Players, {power}=Power Source, {well}=Magic Well, {shield}=Shield

Your cells ({me.position_count}): {_labels(me.positions)}
Opponent ({enemy.mark}) cells ({enemy.position_count}): {_labels(enemy.positions)}
Board specials: {specials}
You hold Power Sources at: {_labels(me.power_sources)}
You hold Magic Wells at: {_labels(me.magic_wells)}

Rules summary:
- Actions: {expand}, FORTIFY, ATTACK. Choose exactly ONE.
- Adjacency: {expand}/ATTACK targets must be up/down/left/right of one of YOUR cells. Diagonals do not count.
- {expand}: target an EMPTY cell adjacent to your territory. A {shield} on it stays with you; a {power} or {well} on it is captured.
- FORTIFY: target YOUR OWN cell without a {shield}. Adds a {shield}; destroys any {power} or {well} you hold there.
- ATTACK: target an OPPONENT cell adjacent to your territory. Both sides roll {config.min_dice_roll}-{config.max_dice_roll}.
  Attacker +{config.power_source_attack_bonus} if holding any {power}. Defender +{config.shield_defense_bonus} if the cell has a {shield}, +{config.magic_well_defense_bonus} if the cell holds the active {well} bonus.
  Attacker wins only on a strictly higher roll: the cell is captured, its {shield} destroyed, its {power}/{well} taken.
- Magic Well: if you hold any {well}, name ONE of your cells ({well_targets}) to get +{config.magic_well_defense_bonus} defense during the opponent's next turn.
"""
    if list_legal_moves:
        moves = sorted(rules.enumerate_legal_moves(me, enemy, board), key=lambda a: (a.kind.keyword, a.target))
        prompt += "\nLegal moves right now: " + (", ".join(f"{a.kind.keyword}: {a.target.label()}" for a in moves) or "None") + "\n"

    prompt += f"""
Reply format (nothing else):
ACTION: COORD
and, only if you hold a {well}, a second line:
WELL_TARGET: COORD

Valid examples:
{expand}: B3
ATTACK: D4
WELL_TARGET: C5

Invalid examples (do NOT output these):
{expand}: C3 (if C3 is occupied)
ATTACK: B3 (if B3 is empty or yours)
FORTIFY: D4 (if you do not own D4)

What is your move?"""
    return prompt


class Negotiation:
    """
    One negotiation for one turn. Advance it with ``step`` until terminal.
    """

    def __init__(self, negotiator: "SuggestionNegotiator", state: GameState, side_id: int):
        self.negotiator = negotiator
        self.game_state = state
        self.side_id = side_id
        self.state = NegotiationState.IDLE
        self.attempts: List[AttemptRecord] = []
        self.action: Optional[Action] = None
        self.well_target: Optional[Coordinate] = None
        self._prompt: Optional[str] = None
        self._snapshot: Optional[dict] = None
        self._reply: Optional[str] = None
        self._parsed: Optional[ParsedSuggestion] = None

    @property
    def settings(self) -> NegotiatorSettings:
        return self.negotiator.settings

    @property
    def rules(self) -> RulesEngine:
        return self.negotiator.rules

    async def step(self) -> NegotiationState:
        """Advance the state machine by one transition and return the new state."""
        if self.state is NegotiationState.IDLE:
            self._prompt = describe_state(self.game_state, self.side_id, self.rules)
            self._snapshot = self.game_state.to_dict(self.side_id)
            self.state = NegotiationState.AWAITING_SUGGESTION

        elif self.state is NegotiationState.AWAITING_SUGGESTION:
            await self._request()

        elif self.state is NegotiationState.VALIDATING:
            self._validate()

        return self.state

    async def run(self) -> NegotiationResult:
        """Drive the negotiation to a terminal state."""
        while not self.state.is_terminal:
            await self.step()
        self._choose_well_target()
        return NegotiationResult(
            state=self.state,
            action=self.action,
            well_target=self.well_target,
            attempts=list(self.attempts),
        )

    async def _request(self) -> None:
        number = len(self.attempts) + 1
        if number > 1:
            logger.info(f"Attempt {number} to get a suggestion")
            await asyncio.sleep(self.settings.retry_delay)

        try:
            reply = await asyncio.wait_for(
                self.negotiator.suggester.suggest(self._prompt, self._snapshot),
                timeout=self.settings.request_timeout,
            )
        except (asyncio.TimeoutError, SuggesterTimeout) as e:
            logger.error(f"Suggestion request timed out: {e or 'no reply'}")
            self._record(AttemptOutcome.TIMEOUT, "request timed out")
            self._fall_back()
            return
        except SuggesterError as e:
            logger.error(f"Communication failure with suggester: {e}")
            self._record(AttemptOutcome.TRANSPORT_FAILURE, str(e))
            self._retry_or_fall_back()
            return

        self._reply = reply
        self.state = NegotiationState.VALIDATING

    def _validate(self) -> None:
        state = self.game_state
        reply = self._reply
        try:
            parsed = parse_suggestion(reply, state.board.size)
        except SuggestionParseError as e:
            logger.warning(f"Could not parse suggestion: {e}")
            self._record(AttemptOutcome.PARSE_FAILURE, str(e), reply)
            self._retry_or_fall_back()
            return

        side = state.side(self.side_id)
        reason = self.rules.validate_action(parsed.action, side, state.opponent_of(self.side_id), state.board)
        if reason is not None:
            logger.warning(f"Suggested illegal move {parsed.action}: {reason.message}")
            self._record(AttemptOutcome.ILLEGAL, reason.value, reply)
            self._retry_or_fall_back()
            return

        self._record(AttemptOutcome.ACCEPTED, str(parsed.action), reply)
        self._parsed = parsed
        self.action = parsed.action
        self.state = NegotiationState.RESOLVED

    def _record(self, outcome: AttemptOutcome, detail: str, reply: Optional[str] = None) -> None:
        self.attempts.append(AttemptRecord(len(self.attempts) + 1, outcome, detail, reply))

    def _retry_or_fall_back(self) -> None:
        if len(self.attempts) < self.settings.max_attempts:
            self.state = NegotiationState.AWAITING_SUGGESTION
        else:
            self._fall_back()

    def _fall_back(self) -> None:
        state = self.game_state
        moves = self.rules.enumerate_legal_moves(
            state.side(self.side_id), state.opponent_of(self.side_id), state.board
        )
        if not moves:
            logger.error(f"No legal moves for side {state.side(self.side_id).mark}")
            self.state = NegotiationState.FAILED
            return
        self.action = self.negotiator.rng.choice(moves)
        logger.warning(f"No valid suggestion after {len(self.attempts)} attempts; random fallback {self.action}")
        self.state = NegotiationState.FALLBACK

    def _choose_well_target(self) -> None:
        side = self.game_state.side(self.side_id)
        if self.action is None or not side.owns_any_magic_well():
            return

        proposed = self._parsed.well_target if self._parsed is not None else None
        if proposed is not None and side.owns(proposed):
            self.well_target = proposed
            return
        if proposed is not None:
            logger.warning(f"Discarding WELL_TARGET {proposed}: not owned by side {side.mark}")

        targets = self.rules.magic_well_targets(side)
        if targets:
            self.well_target = self.negotiator.rng.choice(targets)
            logger.info(f"Assigned random Magic Well target {self.well_target}")


class SuggestionNegotiator:
    """
    Obtains one guaranteed-legal action per turn from an unreliable suggester.
    """

    def __init__(self, suggester: Suggester, rules: RulesEngine,
                 settings: Optional[NegotiatorSettings] = None, rng=None):
        """
        Initialize the negotiator.

        Args:
            suggester: External suggestion service
            rules: Rules engine used for validation and fallback enumeration
            settings: Retry, delay and timeout bounds
            rng: Random source for fallbacks; the rules engine's by default
        """
        self.suggester = suggester
        self.rules = rules
        self.settings = settings or NegotiatorSettings()
        self.rng = rng if rng is not None else rules.rng

    def start(self, state: GameState, side_id: int) -> Negotiation:
        return Negotiation(self, state, side_id)

    async def negotiate(self, state: GameState, side_id: int) -> NegotiationResult:
        """
        Run a full negotiation for a side.

        Returns:
            A result whose action is legal for the current state, or None only
            when the side has no legal move at all
        """
        result = await self.start(state, side_id).run()
        logger.debug(f"Negotiation finished {result.state.value} after {len(result.attempts)} attempts")
        return result
