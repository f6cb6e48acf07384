"""Copy-on-write local context carried across threads, tasks and deferred calls.

Values live in a ``contextvars.ContextVar`` holding a read-only mapping, so each
thread and each asyncio task sees its own mapping. Every write installs a new
mapping; anyone still holding the old one sees no change.

``capture_and_wrap`` snapshots the mapping so a callable run later, or on a
different thread, sees the values that were current when it was wrapped.
"""
from __future__ import annotations

import functools
import inspect
from contextvars import ContextVar
from types import MappingProxyType
from typing import Any, Callable, Mapping, TypeVar

T = TypeVar("T")

EMPTY_CONTEXT: Mapping[str, Any] = MappingProxyType({})


class KeyNotFound(KeyError):
    """Raised when reading a key that was never set in the current context."""


class ExecutionContext:
    """Per-execution-unit key/value snapshot.

    Example::

        ctx = ExecutionContext()
        ctx.set("user", "alice")
        show_user = ctx.capture_and_wrap(lambda: ctx.get("user"))

        ctx.set("user", "bob")
        show_user()       # -> "alice"
        ctx.get("user")   # -> "bob"

    Each instance owns its own ``ContextVar``, and every ``Context`` that has
    seen it keeps a strong reference to it. Create instances once, at module
    level or at process start, and share them; do not build one per request.
    """

    def __init__(self, name: str = "ticktock.locals") -> None:
        self.name = name
        self._var: ContextVar[Mapping[str, Any]] = ContextVar(name, default=EMPTY_CONTEXT)

    def get(self, key: str) -> Any:
        try:
            return self._var.get()[key]
        except KeyError:
            raise KeyNotFound(f"key not found in local context: {key!r}") from None

    def has(self, key: str) -> bool:
        return key in self._var.get()

    def set(self, key: str, value: T) -> T:
        self._var.set(MappingProxyType({**self._var.get(), key: value}))
        return value

    def clear(self) -> None:
        self._var.set(EMPTY_CONTEXT)

    def snapshot(self) -> Mapping[str, Any]:
        return self._var.get()

    def capture_and_wrap(self, fn: Callable[..., T]) -> Callable[..., T]:
        """Bind the current mapping into ``fn``.

        The returned callable installs the captured mapping for the duration of
        each call and puts back the caller's own mapping afterwards, whether the
        call returns or raises. Coroutine functions get a coroutine wrapper so
        the mapping stays installed across the awaited body.
        """

        captured = self._var.get()

        if inspect.iscoroutinefunction(fn):

            @functools.wraps(fn)
            async def async_wrapped(*args: Any, **kwargs: Any) -> Any:
                saved = self._var.get()
                self._var.set(captured)
                try:
                    return await fn(*args, **kwargs)
                finally:
                    self._var.set(saved)

            return async_wrapped  # type: ignore[return-value]

        @functools.wraps(fn)
        def wrapped(*args: Any, **kwargs: Any) -> T:
            saved = self._var.get()
            self._var.set(captured)
            try:
                return fn(*args, **kwargs)
            finally:
                self._var.set(saved)

        return wrapped

    def __repr__(self) -> str:
        return f"ExecutionContext(name={self.name!r}, keys={sorted(self._var.get())!r})"


_DEFAULT_CONTEXT = ExecutionContext()


def default_context() -> ExecutionContext:
    """Process-wide context shared by clocks built without an explicit one."""

    return _DEFAULT_CONTEXT
