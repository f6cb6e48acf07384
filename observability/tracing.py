"""In-memory recording sink for inspecting card trees."""
from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

from timing.card import Card


@dataclass
class CardEvent:
    phase: str
    card: Card


class TraceRecorder:
    """Records every card passed to its hooks, in call order.

    Wire it into a clock with ``clock.with_added_on_open(recorder.on_open)``
    and ``clock.with_added_on_close(recorder.on_close)``.
    """

    def __init__(self) -> None:
        self.events: List[CardEvent] = []
        self._lock = threading.Lock()

    def on_open(self, card: Card) -> None:
        self._record("open", card)

    def on_close(self, card: Card) -> None:
        self._record("close", card)

    @property
    def closed_cards(self) -> List[Card]:
        return [event.card for event in self.events if event.phase == "close"]

    def subjects(self, phase: Optional[str] = None) -> List[object]:
        return [event.card.subject for event in self.events if phase is None or event.phase == phase]

    def export(self) -> List[Dict[str, object]]:
        return [
            {
                "phase": event.phase,
                "subject": event.card.subject,
                "depth": event.card.depth,
                "elapsed": event.card.elapsed,
            }
            for event in self.events
        ]

    def reset(self) -> None:
        with self._lock:
            self.events.clear()

    def _record(self, phase: str, card: Card) -> None:
        with self._lock:
            self.events.append(CardEvent(phase=phase, card=card))
