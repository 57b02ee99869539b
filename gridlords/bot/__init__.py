"""Built-in suggestion bots."""

from gridlords.bot.easy import EasyBot
from gridlords.bot.hard import HardBot

BOTS = {
    "easy": EasyBot,
    "hard": HardBot,
}
