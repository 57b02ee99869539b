from dataclasses import dataclass
from typing import Tuple


# ===== GAME DEFAULTS =====
class GameDefaults:
    """Default settings for new games."""

    # Grid dimensions
    GRID_SIZE = 5
    MIN_GRID_SIZE = 2
    MAX_GRID_SIZE = 26  # one row letter per row

    # Victory
    VICTORY_CELLS = 13

    # Special items scattered at setup
    INITIAL_SPECIAL_CELLS = 3

    # Dice
    MIN_DICE_ROLL = 1
    MAX_DICE_ROLL = 6

    # Modifiers
    POWER_SOURCE_ATTACK_BONUS = 1
    SHIELD_DEFENSE_BONUS = 1
    MAGIC_WELL_DEFENSE_BONUS = 1

    # Sides
    PLAYER_MARKS = ("X", "O")
    AI_SIDE_ID = 1


# ===== SUGGESTION SERVICE =====
class SuggesterConfig:
    """Remote move-suggestion settings."""

    REQUEST_TIMEOUT = 20.0  # seconds
    MAX_RETRIES = 2
    RETRY_DELAY = 0.5  # seconds

    # Gemini
    API_KEY_ENV = "GEMINI_API_KEY"
    GEMINI_MODEL = "gemini-1.5-flash-latest"
    GEMINI_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
    TEMPERATURE = 0.7


# ===== SERVER CONFIGURATION =====
class ServerConfig:
    """WebSocket suggestion-bot server configuration."""
    HOST = "localhost"
    PORT = 8765

    @classmethod
    def url(cls, host: str | None = None, port: int | None = None) -> str:
        return f"ws://{host or cls.HOST}:{port or cls.PORT}"


# ===== BOT MANAGEMENT =====
class BotConfig:
    """Suggestion bot configuration."""

    # Available difficulty levels
    DIFFICULTIES = ["easy", "hard"]

    # Bot naming
    BOT_NAME_PREFIX = {
        "easy": "EasyBot",
        "hard": "HardBot"
    }


@dataclass(frozen=True)
class RulesConfig:
    """
    Immutable rule parameters handed to the rules engine and move executor.

    Attributes:
        grid_size: Side length N of the square board
        victory_cells: Owned-cell count that wins the game
        initial_special_cells: Number of special items scattered at setup
        min_dice_roll: Lowest face of the die
        max_dice_roll: Highest face of the die
        power_source_attack_bonus: Flat attack bonus while any PowerSource is held
        shield_defense_bonus: Defense bonus of a shielded cell
        magic_well_defense_bonus: Defense bonus of the Magic Well target cell
        player_marks: Display marks for side 0 and side 1
    """
    grid_size: int = GameDefaults.GRID_SIZE
    victory_cells: int = GameDefaults.VICTORY_CELLS
    initial_special_cells: int = GameDefaults.INITIAL_SPECIAL_CELLS
    min_dice_roll: int = GameDefaults.MIN_DICE_ROLL
    max_dice_roll: int = GameDefaults.MAX_DICE_ROLL
    power_source_attack_bonus: int = GameDefaults.POWER_SOURCE_ATTACK_BONUS
    shield_defense_bonus: int = GameDefaults.SHIELD_DEFENSE_BONUS
    magic_well_defense_bonus: int = GameDefaults.MAGIC_WELL_DEFENSE_BONUS
    player_marks: Tuple[str, str] = GameDefaults.PLAYER_MARKS

    def __post_init__(self):
        """Validate rule parameters after initialization."""
        if not (GameDefaults.MIN_GRID_SIZE <= self.grid_size <= GameDefaults.MAX_GRID_SIZE):
            raise ValueError(
                f"Grid size must be between {GameDefaults.MIN_GRID_SIZE} and {GameDefaults.MAX_GRID_SIZE}"
            )
        if not (1 <= self.victory_cells <= self.grid_size * self.grid_size):
            raise ValueError("Victory threshold must be reachable on the board")
        if self.initial_special_cells < 0:
            raise ValueError("Special cell count cannot be negative")
        if self.min_dice_roll > self.max_dice_roll:
            raise ValueError("Minimum dice roll cannot exceed maximum")
        if len(self.player_marks) != 2 or self.player_marks[0] == self.player_marks[1]:
            raise ValueError("Exactly two distinct player marks are required")

    @classmethod
    def default(cls) -> "RulesConfig":
        """Return the reference configuration."""
        return cls()


@dataclass(frozen=True)
class NegotiatorSettings:
    """Retry, delay and timeout bounds for one suggestion negotiation."""
    request_timeout: float = SuggesterConfig.REQUEST_TIMEOUT
    max_retries: int = SuggesterConfig.MAX_RETRIES
    retry_delay: float = SuggesterConfig.RETRY_DELAY

    def __post_init__(self):
        if self.request_timeout <= 0:
            raise ValueError("Request timeout must be positive")
        if self.max_retries < 0:
            raise ValueError("Retry count cannot be negative")
        if self.retry_delay < 0:
            raise ValueError("Retry delay cannot be negative")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1
