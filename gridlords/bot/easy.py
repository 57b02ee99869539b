#!/usr/bin/env python3
import sys
from typing import Optional

from gridlords.botlib import GameView, Suggestion, SuggestionBot
from gridlords.core import SpecialItem


class EasyBot(SuggestionBot):
    difficulty = "easy"

    def play_turn(self, view: GameView) -> Optional[Suggestion]:
        """
        - Conquer neighbouring cells carrying a Power Source or Magic Well
        - Otherwise conquer any neighbouring empty cell
        - Fortify when there is nowhere left to expand
        """
        return self._expand(view) or self._fortify(view)

    def _expand(self, view: GameView) -> Optional[Suggestion]:
        targets = view.expandable_cells()
        if not targets:
            return None

        specials = [c for c in targets if view.special_at(c) in (SpecialItem.POWER_SOURCE, SpecialItem.MAGIC_WELL)]
        return self.conquer((specials or targets)[0], self._well_target(view))

    def _fortify(self, view: GameView) -> Optional[Suggestion]:
        candidates = view.fortifiable_cells()
        if not candidates:
            return None
        return self.fortify(candidates[0], self._well_target(view))

    def _well_target(self, view: GameView):
        if view.holds_magic_well and view.my_cells:
            return view.my_cells[0]
        return None


if __name__ == "__main__":
    port = int(sys.argv[1]) if len(sys.argv) > 1 else None

    bot = EasyBot(port=port) if port else EasyBot()
    bot.run()
