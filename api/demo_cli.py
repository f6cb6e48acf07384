"""CLI that runs small instrumented workloads and logs their card trees.

Usage:
    python -m api.demo_cli --example nested --delay 0.2
    python -m api.demo_cli --example threaded --secs-decimals 1
"""

from __future__ import annotations

import argparse
import asyncio
import threading
import time
from pprint import pprint
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from api.config import TickTockConfig, build_clock
from timing.clock import Clock

INPUTS = [1, 2, 3]


def _slow_double(delay: float) -> Callable[[int], int]:
    def slow_double(n: int) -> int:
        time.sleep(delay)
        return n * 2

    return slow_double


def run_nested(clock: Clock, delay: float) -> List[int]:
    """Cards for each number nest under the lazy sequence, inside the top-level block."""

    wrapped_double = clock.wrap_callable(_slow_double(delay), subject=lambda n: f"Num {n}")
    return clock.wrap_block("Top Level", lambda: [wrapped_double(n) for n in clock.wrap_lazy(INPUTS, "Lazy Sequence")])


def run_lazy(clock: Clock, delay: float) -> List[int]:
    # Both wrappers are built up front; nothing is timed until the list is pulled.
    wrapped_double = clock.wrap_callable(_slow_double(delay), subject=lambda n: f"Num {n}")
    doubled = map(wrapped_double, clock.wrap_lazy(iter(INPUTS), "Lazy Sequence"))
    with clock.span("Top Level"):
        return list(doubled)


def run_threaded(clock: Clock, delay: float) -> List[List[int]]:
    def scaled(n: int) -> int:
        time.sleep(delay)
        return n * int(threading.current_thread().name)

    wrapped_scaled = clock.wrap_callable(
        scaled, subject=lambda n: f"Thr {threading.current_thread().name}, Num {n}"
    )
    results: Dict[int, List[int]] = {}

    with clock.span("Top Level"):

        def per_thread(n: int) -> None:
            results[n] = [wrapped_scaled(value) for value in INPUTS]

        # Each thread picks up the "Top Level" card captured here.
        thread_body = clock.wrap_callable(per_thread, subject=lambda n: f"Thr {n}", capture_context=True)
        threads = [threading.Thread(target=thread_body, args=(n,), name=str(n)) for n in INPUTS]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

    return [results[n] for n in INPUTS]


async def _numbers(delay: float) -> AsyncIterator[int]:
    for n in INPUTS:
        await asyncio.sleep(delay)
        yield n


async def run_async(clock: Clock, delay: float) -> List[int]:
    async def slow_double(n: int) -> int:
        await asyncio.sleep(delay)
        return n * 2

    wrapped_double = clock.wrap_callable(slow_double, subject=lambda n: f"Num {n}")
    with clock.span("Top Level"):
        numbers = [n async for n in clock.wrap_async_lazy(_numbers(delay), "Async Sequence")]
        return list(await asyncio.gather(*(wrapped_double(n) for n in numbers)))


EXAMPLES: Dict[str, Callable[[Clock, float], Any]] = {
    "nested": run_nested,
    "lazy": run_lazy,
    "threaded": run_threaded,
}


def run_example(name: str, clock: Clock, delay: float) -> Any:
    if name == "async":
        return asyncio.run(run_async(clock, delay))
    if name not in EXAMPLES:
        raise ValueError(f"Unknown example {name!r}")
    return EXAMPLES[name](clock, delay)


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Run an instrumented workload and log its nested timings.")
    parser.add_argument(
        "--example",
        choices=sorted([*EXAMPLES, "async"]),
        default="nested",
        help="Workload to run (default: nested).",
    )
    parser.add_argument("--delay", type=float, default=0.1, help="Seconds each unit of work sleeps (default: 0.1).")
    parser.add_argument(
        "--secs-decimals",
        type=int,
        help="Decimal places for elapsed seconds (default: TICKTOCK_SECS_DECIMALS or 3).",
    )

    args = parser.parse_args(argv)
    config = TickTockConfig.from_env()
    if args.secs_decimals is not None:
        config.secs_decimals = args.secs_decimals
    clock = build_clock(config)
    pprint(run_example(args.example, clock, args.delay))


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    main()
