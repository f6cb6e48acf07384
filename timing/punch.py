"""Punch: stamps open and close times onto cards using an injectable time source."""
from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Optional

from timing.card import Card


TIME_SOURCES: Dict[str, Callable[[], float]] = {
    "monotonic": time.monotonic,
    "wall": time.time,
    "perf_counter": time.perf_counter,
}


@dataclass(frozen=True)
class Punch:
    time_now: Callable[[], float] = field(default=time.monotonic)

    @classmethod
    def from_name(cls, name: str) -> "Punch":
        try:
            return cls(time_now=TIME_SOURCES[name])
        except KeyError:
            raise ValueError(
                f"Unknown time source {name!r}; expected one of {', '.join(sorted(TIME_SOURCES))}"
            ) from None

    def new_card(self, subject: Any, parent: Optional[Card] = None) -> Card:
        return Card(subject=subject, parent=parent)

    def open(self, card: Card) -> Card:
        return replace(card, opened_at=self.time_now())

    def close(self, card: Card) -> Card:
        return replace(card, closed_at=self.time_now())

    def parent_of(self, card: Card) -> Optional[Card]:
        return card.parent
