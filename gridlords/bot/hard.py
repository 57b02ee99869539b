#!/usr/bin/env python3
import sys
from typing import Optional

from gridlords.botlib import GameView, Suggestion, SuggestionBot
from gridlords.core import Coordinate, SpecialItem


class HardBot(SuggestionBot):
    difficulty = "hard"

    def play_turn(self, view: GameView) -> Optional[Suggestion]:
        """
        Enhanced strategy that includes:
        - Attack enemy cells when the dice favour us
        - Capture neighbouring special items, then any empty cell
        - Shield the most threatened frontline cell
        - Put the Magic Well bonus on the most threatened cell
        """
        well_target = self._well_target(view)
        suggestion = (self._attack_enemies(view) or
                      self._expand_to_empty(view) or
                      self._fortify_frontline(view))
        if suggestion is None:
            return None
        return Suggestion(suggestion.kind, suggestion.target, well_target)

    def _attack_enemies(self, view: GameView) -> Optional[Suggestion]:
        """Attack only with a Power Source in hand or against an unshielded cell."""
        targets = []
        for enemy in view.attackable_cells():
            if view.is_shielded(enemy) and not view.holds_power_source:
                continue
            # Prefer cells holding enemy items, then unshielded ones
            value = (enemy in view.enemy_power_sources, not view.is_shielded(enemy))
            targets.append((value, enemy))

        if not targets:
            return None

        targets.sort(key=lambda t: (not t[0][0], not t[0][1], t[1]))
        return self.attack(targets[0][1])

    def _expand_to_empty(self, view: GameView) -> Optional[Suggestion]:
        """Conquer an empty cell, preferring special items and contested ground."""
        targets = view.expandable_cells()
        if not targets:
            return None

        def priority(cell: Coordinate):
            special = view.special_at(cell)
            return (
                special not in (SpecialItem.POWER_SOURCE, SpecialItem.MAGIC_WELL),
                special is not SpecialItem.SHIELD,
                -view.threat_level(cell),
                cell,
            )

        return self.conquer(min(targets, key=priority))

    def _fortify_frontline(self, view: GameView) -> Optional[Suggestion]:
        candidates = view.fortifiable_cells()
        if not candidates:
            return None

        # Do not shield cells holding our own items, fortifying destroys them
        safe = [c for c in candidates if c not in view.my_power_sources and c not in view.my_magic_wells]
        best = max(safe or candidates, key=lambda c: (view.threat_level(c), c in view.frontline_cells()))
        return self.fortify(best)

    def _well_target(self, view: GameView) -> Optional[Coordinate]:
        if not view.holds_magic_well or not view.my_cells:
            return None
        return max(view.my_cells, key=lambda c: (view.threat_level(c), view.is_shielded(c)))


if __name__ == "__main__":
    port = int(sys.argv[1]) if len(sys.argv) > 1 else None

    bot = HardBot(port=port) if port else HardBot()
    bot.run()
