"""Punch cards: immutable records of one timed unit of work."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator, Optional


@dataclass(frozen=True)
class Card:
    """One timing interval and the card it is nested under.

    Cards are values: opening and closing return new cards via
    ``dataclasses.replace`` and never touch the original.
    """

    subject: Any
    parent: Optional["Card"] = None
    opened_at: Optional[float] = None
    closed_at: Optional[float] = None

    @property
    def is_opened(self) -> bool:
        return self.opened_at is not None

    @property
    def is_closed(self) -> bool:
        return self.closed_at is not None

    @property
    def depth(self) -> int:
        depth = 1
        for _ in self.ancestors():
            depth += 1
        return depth

    @property
    def elapsed(self) -> Optional[float]:
        if self.opened_at is None or self.closed_at is None:
            return None
        return self.closed_at - self.opened_at

    def ancestors(self) -> Iterator["Card"]:
        card = self.parent
        while card is not None:
            yield card
            card = card.parent
