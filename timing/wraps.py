"""Instrumentation idioms built on a clock's ``open``/``close``.

``Wraps`` is mixed into ``Clock`` and provides three ways to time work:

* a block of code (``span`` / ``wrap_block``),
* a callable, optionally carrying the local context to wherever it runs
  (``wrap_callable`` / ``timed``),
* a lazy sequence, ticking on the first pull and tocking on exhaustion
  (``wrap_lazy`` / ``wrap_async_lazy``).

Lazy sequences abandoned before exhaustion leave their card open: nothing
closes it unless the caller calls ``close()`` (or ``aclose()``) on the wrapper,
or uses it as a context manager.
"""
from __future__ import annotations

import contextlib
import functools
import inspect
from abc import ABC, abstractmethod
from typing import (
    Any,
    AsyncIterable,
    AsyncIterator,
    Awaitable,
    Callable,
    Iterable,
    Iterator,
    Optional,
    TypeVar,
)

from context.execution_context import ExecutionContext
from timing.card import Card
from timing.subject import as_subject

T = TypeVar("T")


class Wraps(ABC):
    """Mixin for clocks: subclasses supply ``context``, ``open`` and ``close``."""

    context: ExecutionContext

    @abstractmethod
    def open(self, subject: Any) -> Card:
        ...  # pragma: no cover - interface

    @abstractmethod
    def close(self, card: Card) -> Card:
        ...  # pragma: no cover - interface

    @contextlib.contextmanager
    def span(self, subject: Any) -> Iterator[Card]:
        """Open a card for ``subject`` and close it on every exit path."""

        card = self.open(subject)
        try:
            yield card
        finally:
            self.close(card)

    def wrap_block(self, subject: Any, body: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        with self.span(subject):
            return body(*args, **kwargs)

    def wrap_callable(
        self,
        fn: Callable[..., Any],
        subject: Any = None,
        capture_context: bool = False,
    ) -> Callable[..., Any]:
        """Return ``fn`` timed on every call.

        ``subject`` may be a fixed value or a callable receiving the call's
        arguments; it defaults to the qualified name of ``fn``. With
        ``capture_context`` the current local context is bound into the result,
        so cards opened by it nest under the card that is current right now,
        even when it is called from another thread.
        """

        resolved = as_subject(getattr(fn, "__qualname__", repr(fn)) if subject is None else subject)

        if inspect.iscoroutinefunction(fn):

            @functools.wraps(fn)
            async def async_timed(*args: Any, **kwargs: Any) -> Any:
                with self.span(resolved.resolve(*args, **kwargs)):
                    return await fn(*args, **kwargs)

            wrapped: Callable[..., Any] = async_timed
        else:

            @functools.wraps(fn)
            def timed_call(*args: Any, **kwargs: Any) -> Any:
                with self.span(resolved.resolve(*args, **kwargs)):
                    return fn(*args, **kwargs)

            wrapped = timed_call

        if capture_context:
            wrapped = self.context.capture_and_wrap(wrapped)
        return wrapped

    def timed(self, subject: Any = None, capture_context: bool = False) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator form of ``wrap_callable``."""

        def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
            return self.wrap_callable(fn, subject=subject, capture_context=capture_context)

        return decorator

    def wrap_lazy(self, source: Iterable[T], subject: Any) -> "LazySpanIterator[T]":
        return LazySpanIterator(self, source, subject)

    def wrap_async_lazy(self, source: AsyncIterable[T], subject: Any) -> "AsyncLazySpanIterator[T]":
        return AsyncLazySpanIterator(self, source, subject)


class LazySpanIterator(Iterator[T]):
    """Yields the elements of ``source`` inside a card opened on the first pull.

    The card closes when ``source`` is exhausted or raises. Pulling again after
    that keeps raising ``StopIteration`` and never opens a second card.
    """

    def __init__(self, clock: Wraps, source: Iterable[T], subject: Any) -> None:
        self._clock = clock
        self._iterator = iter(source)
        self._subject = subject
        self._card: Optional[Card] = None
        self._finished = False

    @property
    def card(self) -> Optional[Card]:
        return self._card

    def __iter__(self) -> "LazySpanIterator[T]":
        return self

    def __next__(self) -> T:
        if self._finished:
            raise StopIteration
        if self._card is None:
            self._card = self._clock.open(self._subject)
        try:
            return next(self._iterator)
        except Exception:  # exhaustion or failure of the source
            self._finish()
            raise

    def close(self) -> None:
        """Stop early: close the source and any card still open."""

        if self._finished:
            return
        source_close = getattr(self._iterator, "close", None)
        try:
            if source_close is not None:
                source_close()
        finally:
            self._finish()

    def __enter__(self) -> "LazySpanIterator[T]":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

    def _finish(self) -> None:
        self._finished = True
        if self._card is not None and not self._card.is_closed:
            self._card = self._clock.close(self._card)


class AsyncLazySpanIterator(AsyncIterator[T]):
    """Async counterpart of ``LazySpanIterator`` for ``async for`` consumers."""

    def __init__(self, clock: Wraps, source: AsyncIterable[T], subject: Any) -> None:
        self._clock = clock
        self._iterator = source.__aiter__()
        self._subject = subject
        self._card: Optional[Card] = None
        self._finished = False

    @property
    def card(self) -> Optional[Card]:
        return self._card

    def __aiter__(self) -> "AsyncLazySpanIterator[T]":
        return self

    async def __anext__(self) -> T:
        if self._finished:
            raise StopAsyncIteration
        if self._card is None:
            self._card = self._clock.open(self._subject)
        try:
            return await self._iterator.__anext__()
        except Exception:  # exhaustion or failure of the source
            self._finish()
            raise

    async def aclose(self) -> None:
        if self._finished:
            return
        source_aclose: Optional[Callable[[], Awaitable[None]]] = getattr(self._iterator, "aclose", None)
        try:
            if source_aclose is not None:
                await source_aclose()
        finally:
            self._finish()

    async def __aenter__(self) -> "AsyncLazySpanIterator[T]":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        await self.aclose()
        return False

    def _finish(self) -> None:
        self._finished = True
        if self._card is not None and not self._card.is_closed:
            self._card = self._clock.close(self._card)
