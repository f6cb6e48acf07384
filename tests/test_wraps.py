import asyncio
import inspect
import itertools
import logging
import threading

import pytest

from context.execution_context import ExecutionContext
from observability.logging import CardLogger
from observability.tracing import TraceRecorder
from timing.clock import Clock
from timing.punch import Punch
from timing.subject import ComputedSubject, FixedSubject, as_subject


def make_clock():
    recorder = TraceRecorder()
    clock = Clock(punch=Punch(time_now=itertools.count().__next__), context=ExecutionContext())
    return clock.with_added_on_open(recorder.on_open).with_added_on_close(recorder.on_close), recorder


def test_as_subject_variants():
    fixed = as_subject("name")
    computed = as_subject(lambda a, b: f"{a}+{b}")
    assert isinstance(fixed, FixedSubject) and fixed.resolve(1, 2) == "name"
    assert isinstance(computed, ComputedSubject) and computed.resolve(1, 2) == "1+2"
    assert as_subject(fixed) is fixed

    literal_callable = FixedSubject(len)
    assert as_subject(literal_callable).resolve("abc") is len


def test_span_yields_opened_card_and_closes_it():
    clock, recorder = make_clock()
    with clock.span("work") as card:
        assert card.subject == "work"
        assert clock.current_card() is card
    assert clock.current_card() is None
    assert recorder.subjects() == ["work", "work"]


def test_wrap_block_returns_body_result():
    clock, recorder = make_clock()
    assert clock.wrap_block("sum", lambda a, b=0: a + b, 2, b=3) == 5
    assert [event.phase for event in recorder.events] == ["open", "close"]


def test_wrap_block_closes_card_before_failure_propagates():
    clock, recorder = make_clock()

    def body():
        raise KeyError("original")

    with pytest.raises(KeyError, match="original") as excinfo:
        clock.wrap_block("X", body)

    assert type(excinfo.value) is KeyError
    assert [(event.phase, event.card.subject) for event in recorder.events] == [("open", "X"), ("close", "X")]
    assert clock.current_card() is None


def test_nested_blocks_render_hierarchically(caplog):
    clock, recorder = make_clock()
    card_logger = CardLogger(logger=logging.getLogger("ticktock.test"), level=logging.INFO)
    clock = clock.with_added_on_open(card_logger).with_added_on_close(card_logger)

    with caplog.at_level(logging.INFO, logger="ticktock.test"):
        clock.wrap_block("A", lambda: clock.wrap_block("B", lambda: None))

    opened = {event.card.subject: event.card for event in recorder.events if event.phase == "open"}
    assert opened["B"].parent is opened["A"]

    def render(event):
        marker = ">" if event.phase == "open" else "<"
        return f"{marker * event.card.depth} {event.card.subject}"

    assert [render(event) for event in recorder.events] == ["> A", ">> B", "<< B", "< A"]
    messages = [record.getMessage() for record in caplog.records]
    assert messages[0] == "> Started A"
    assert messages[1] == ">> Started B"
    assert messages[2] == "<< Completed B [1.000s]"
    assert messages[3] == "< Completed A [3.000s]"


def test_wrap_callable_subjects():
    clock, recorder = make_clock()

    def add(a, b=1):
        return a + b

    fixed = clock.wrap_callable(add, subject="adding")
    computed = clock.wrap_callable(add, subject=lambda a, b=1: f"add {a} {b}")
    default = clock.wrap_callable(add)

    assert fixed(1) == 2
    assert computed(2, b=5) == 7
    assert default(3) == 4
    assert recorder.subjects("open") == ["adding", "add 2 5", add.__qualname__]
    assert default.__name__ == "add"


def test_wrap_callable_resolves_subject_per_call():
    clock, recorder = make_clock()
    wrapped = clock.wrap_callable(lambda n: n * 2, subject=lambda n: f"Num {n}")
    assert [wrapped(n) for n in [1, 2, 3]] == [2, 4, 6]
    assert recorder.subjects("close") == ["Num 1", "Num 2", "Num 3"]


def test_wrap_callable_propagates_failure_unchanged():
    clock, recorder = make_clock()

    class Boom(Exception):
        pass

    def explode():
        raise Boom("bad")

    wrapped = clock.wrap_callable(explode, subject="explode")
    with pytest.raises(Boom):
        wrapped()
    assert recorder.subjects("close") == ["explode"]
    assert clock.current_card() is None


def test_wrap_callable_capture_context_nests_across_threads():
    clock, recorder = make_clock()

    def work():
        return clock.current_card().subject

    with clock.span("Top Level") as top:
        captured = clock.wrap_callable(work, subject="captured", capture_context=True)
        uncaptured = clock.wrap_callable(work, subject="uncaptured")

    results = {}

    def worker():
        results["captured"] = captured()
        results["uncaptured"] = uncaptured()
        results["after"] = clock.current_card()

    thread = threading.Thread(target=worker)
    thread.start()
    thread.join()

    assert results == {"captured": "captured", "uncaptured": "uncaptured", "after": None}
    closed = {card.subject: card for card in recorder.closed_cards}
    assert closed["captured"].parent is top
    assert closed["uncaptured"].parent is None


def test_timed_decorator():
    clock, recorder = make_clock()

    @clock.timed(subject=lambda name: f"greet {name}")
    def greet(name):
        return f"hello {name}"

    assert greet("bob") == "hello bob"
    assert greet.__name__ == "greet"
    assert recorder.subjects() == ["greet bob", "greet bob"]


def test_wrap_callable_coroutine_function_nests_gathered_tasks():
    clock, recorder = make_clock()

    async def double(n):
        await asyncio.sleep(0)
        return n * 2

    wrapped = clock.wrap_callable(double, subject=lambda n: f"Num {n}")
    assert inspect.iscoroutinefunction(wrapped)

    async def run():
        with clock.span("Top Level") as top:
            values = await asyncio.gather(*(wrapped(n) for n in [1, 2, 3]))
        return top, values

    top, values = asyncio.run(run())
    assert values == [2, 4, 6]
    nums = [card for card in recorder.closed_cards if card.subject.startswith("Num")]
    assert len(nums) == 3
    assert all(card.parent is top for card in nums)
    assert recorder.subjects("close")[-1] == "Top Level"


def test_span_closes_when_awaited_body_fails():
    clock, recorder = make_clock()

    async def run():
        with clock.span("async work"):
            await asyncio.sleep(0)
            raise ValueError("late failure")

    with pytest.raises(ValueError, match="late failure"):
        asyncio.run(run())
    assert recorder.subjects("close") == ["async work"]


def test_span_closes_when_task_is_cancelled():
    clock, recorder = make_clock()

    async def run():
        started = asyncio.Event()

        async def body():
            with clock.span("S"):
                started.set()
                await asyncio.Event().wait()

        task = asyncio.create_task(body())
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return clock.current_card()

    assert asyncio.run(run()) is None
    assert recorder.subjects("close") == ["S"]
