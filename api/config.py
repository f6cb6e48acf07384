"""Environment-driven configuration and the process-start clock factory."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from context.execution_context import ExecutionContext, default_context
from observability.logging import CardLogger, RedactingLogger
from timing.clock import Clock, Hook
from timing.punch import Punch

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean (true/false), got {raw!r}")


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_level(env: Mapping[str, str], name: str, default: str) -> int:
    raw = env.get(name, default).strip().upper()
    level = logging.getLevelName(raw)
    if not isinstance(level, int):
        raise ValueError(f"{name} must be a logging level name, got {raw!r}")
    return level


@dataclass
class TickTockConfig:
    time_source: str = "monotonic"
    log_level: int = logging.INFO
    logger_name: str = "ticktock"
    secs_decimals: int = 3
    show_zero_mins: bool = False
    show_zero_hrs: bool = False

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "TickTockConfig":
        env = os.environ if env is None else env
        config = cls(
            time_source=env.get("TICKTOCK_TIME_SOURCE", "monotonic").strip().lower(),
            log_level=_env_level(env, "TICKTOCK_LOG_LEVEL", "INFO"),
            logger_name=env.get("TICKTOCK_LOGGER_NAME", "ticktock"),
            secs_decimals=_env_int(env, "TICKTOCK_SECS_DECIMALS", 3),
            show_zero_mins=_env_bool(env, "TICKTOCK_SHOW_ZERO_MINS", False),
            show_zero_hrs=_env_bool(env, "TICKTOCK_SHOW_ZERO_HRS", False),
        )
        if config.secs_decimals < 0:
            raise ValueError("TICKTOCK_SECS_DECIMALS must not be negative")
        return config

    def card_logger(self) -> CardLogger:
        return CardLogger(
            logger=RedactingLogger(self.logger_name),
            level=self.log_level,
            secs_decimals=self.secs_decimals,
            show_zero_mins=self.show_zero_mins,
            show_zero_hrs=self.show_zero_hrs,
        )

    def to_dict(self) -> dict:
        return {
            "time_source": self.time_source,
            "log_level": logging.getLevelName(self.log_level),
            "logger_name": self.logger_name,
            "secs_decimals": self.secs_decimals,
            "show_zero_mins": self.show_zero_mins,
            "show_zero_hrs": self.show_zero_hrs,
        }


def build_clock(
    config: Optional[TickTockConfig] = None,
    context: Optional[ExecutionContext] = None,
    extra_sinks: Iterable[Hook] = (),
) -> Clock:
    """Build the clock a process hands to its instrumented code.

    The configured card logger runs first on every tick and tock, followed by
    each of ``extra_sinks`` in order.
    """

    config = config or TickTockConfig.from_env()
    log_card = config.card_logger()
    clock = Clock(
        punch=Punch.from_name(config.time_source),
        on_open=log_card,
        on_close=log_card,
        context=context or default_context(),
    )
    for sink in extra_sinks:
        clock = clock.with_added_on_open(sink).with_added_on_close(sink)
    return clock
