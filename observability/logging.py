"""Logging helpers: redacting logger and the default card sink."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Optional, Union

from timing.card import Card


class RedactingFormatter(logging.Formatter):
    REDACTION = "[REDACTED]"
    PATTERNS = [
        re.compile(rf"({word})(\s*[=:]\s*)\S+", re.IGNORECASE)
        for word in ["password", "secret", "token"]
    ]

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        message = super().format(record)
        for pattern in self.PATTERNS:
            message = pattern.sub(rf"\1\2{self.REDACTION}", message)
        return message


class RedactingLogger(logging.LoggerAdapter):
    def __init__(self, name: str) -> None:
        logger = logging.getLogger(name)
        if not logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(RedactingFormatter("%(asctime)s - %(levelname)s - %(message)s"))
            logger.addHandler(handler)
            logger.setLevel(logging.DEBUG)
        super().__init__(logger, {})

    def process(self, msg, kwargs):  # type: ignore[override]
        return msg, kwargs


AnyLogger = Union[logging.Logger, logging.LoggerAdapter]


@dataclass(frozen=True)
class CardLogger:
    """Default sink: logs each card as it is punched in and out.

    Opened cards render as ``"> Started subject"`` and closed cards as
    ``"< Completed subject [0.120s]"``, with one marker per nesting level.
    Any callable taking a card can be used as a sink instead.
    """

    logger: AnyLogger = field(default_factory=lambda: RedactingLogger("ticktock"))
    level: int = logging.INFO
    secs_decimals: int = 3
    show_zero_mins: bool = False
    show_zero_hrs: bool = False

    @classmethod
    def default(cls) -> "CardLogger":
        return cls()

    def __call__(self, card: Card) -> Optional[str]:
        """Log ``card`` and return the formatted line, or ``None`` if the level is disabled."""

        if not self.logger.isEnabledFor(self.level):
            return None
        formatted = self.format(card)
        self.logger.log(self.level, "%s", formatted)
        return formatted

    def format(self, card: Card) -> str:
        if card.is_closed:
            return f"{'<' * card.depth} Completed {card.subject} [{self.elapsed(card.elapsed or 0.0)}]"
        return f"{'>' * card.depth} Started {card.subject}"

    def elapsed(self, secs: float) -> str:
        if secs < 60 and not self.show_zero_hrs and not self.show_zero_mins:
            return f"{secs:.{self.secs_decimals}f}s"

        # two digits plus the decimal point
        secs_width = 3 + self.secs_decimals
        text = "%02dh:%02dm:%0*.*fs" % (
            int(secs // 3600),
            int(secs // 60 % 60),
            secs_width,
            self.secs_decimals,
            secs % 60,
        )
        if not self.show_zero_hrs:
            text = text.replace("00h:", "", 1)
        if not (self.show_zero_hrs or self.show_zero_mins):
            text = text.replace("00m:", "", 1)
        return text
