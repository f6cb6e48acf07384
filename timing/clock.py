"""The punch-card clock: ``open`` (tick) and ``close`` (tock) nested cards.

Like a factory time clock where each worker carries their own card, a
``Clock`` is an immutable configuration and all timing state lives on cards.
The card currently open for this thread or task is kept in an
``ExecutionContext``, so cards nest correctly across threads, asyncio tasks
and deferred calls without any locking.

Side effects (logging, recording) happen in the ``on_open`` and ``on_close``
hooks. Errors raised by a hook reach the caller of ``open``/``close``.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Optional

from context.execution_context import ExecutionContext, default_context
from observability.logging import CardLogger, RedactingLogger
from timing.card import Card
from timing.punch import Punch
from timing.wraps import Wraps

CURRENT_CARD_KEY = "__ticktock/current_card__"

Hook = Callable[[Card], Any]


class ContractViolation(RuntimeError):
    """Raised when a card is closed out of order or more than once."""


def compose_hooks(existing: Optional[Hook], added: Hook) -> Hook:
    if existing is None:
        return added

    def composed(card: Card) -> None:
        existing(card)
        added(card)

    return composed


@dataclass(frozen=True)
class Clock(Wraps):
    punch: Punch = field(default_factory=Punch)
    on_open: Optional[Hook] = None
    on_close: Optional[Hook] = None
    context: ExecutionContext = field(default_factory=default_context, compare=False)
    logger: RedactingLogger = field(
        default_factory=lambda: RedactingLogger(__name__), compare=False, repr=False
    )

    @classmethod
    def default(cls, context: Optional[ExecutionContext] = None) -> "Clock":
        log_card = CardLogger.default()
        return cls(
            punch=Punch(),
            on_open=log_card,
            on_close=log_card,
            context=context or default_context(),
        )

    def current_card(self) -> Optional[Card]:
        if self.context.has(CURRENT_CARD_KEY):
            return self.context.get(CURRENT_CARD_KEY)
        return None

    def open(self, subject: Any) -> Card:
        """Open a card for ``subject`` nested under the current card and make it current."""

        parent = self.current_card()
        card = self.punch.open(self.punch.new_card(subject, parent))
        self.context.set(CURRENT_CARD_KEY, card)
        self.logger.debug("Opened card for %r", card.subject)
        if self.on_open is not None:
            try:
                self.on_open(card)
            except BaseException:
                self.context.set(CURRENT_CARD_KEY, parent)
                raise
        return card

    def close(self, card: Card) -> Card:
        """Close ``card`` and make its parent current again.

        ``card`` must be the current card or one of its ancestors; closing an
        ancestor also drops any descendants left open by abandoned lazy
        sequences.
        """

        if not card.is_opened:
            self._violation("Cannot close card for %r: it was never opened" % (card.subject,))
        if card.is_closed:
            self._violation("Cannot close card for %r: it is already closed" % (card.subject,))
        if not self._is_current_or_ancestor(card):
            self._violation(
                "Cannot close card for %r: it is not open in the current context" % (card.subject,)
            )

        closed = self.punch.close(card)
        self.context.set(CURRENT_CARD_KEY, self.punch.parent_of(closed))
        self.logger.debug("Closed card for %r after %.6fs", closed.subject, closed.elapsed)
        if self.on_close is not None:
            self.on_close(closed)
        return closed

    def with_added_on_open(self, hook: Hook) -> "Clock":
        return replace(self, on_open=compose_hooks(self.on_open, hook))

    def with_added_on_close(self, hook: Hook) -> "Clock":
        return replace(self, on_close=compose_hooks(self.on_close, hook))

    def _is_current_or_ancestor(self, card: Card) -> bool:
        node = self.current_card()
        while node is not None:
            if node is card:
                return True
            node = node.parent
        return False

    def _violation(self, message: str) -> None:
        self.logger.warning(message)
        raise ContractViolation(message)
