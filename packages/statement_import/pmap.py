"""A small bounded-concurrency map over ``ThreadPoolExecutor``, in the spirit of
``p-map``'s settled mode.

Goals
-----
- One call: an iterable, a mapper and a ``concurrency`` cap.
- Hide executor mechanics (submission window, shutdown).
- Never fail fast: every item settles as a value, an error, or "not
  dispatched", and the results come back in input order regardless of
  completion order.
- Cooperative cancellation: once ``cancel`` is set no new item is submitted;
  calls already running finish and are reported normally.

Non-goals
---------
- Interrupting a running mapper call.
- Process pools or async iterables.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Generic, TypeVar

InT = TypeVar("InT")
OutT = TypeVar("OutT")


@dataclass(frozen=True, slots=True)
class Settled(Generic[InT, OutT]):
    """How one input item ended up.

    Exactly one of three states holds: ``dispatched`` with ``error`` unset
    (``value`` is the mapper result), ``dispatched`` with ``error`` set, or not
    ``dispatched`` at all (cancelled before submission).
    """

    item: InT
    value: OutT | None = None
    error: Exception | None = None
    dispatched: bool = True

    @property
    def ok(self) -> bool:
        return self.dispatched and self.error is None


def p_map_settled(
    iterable: Iterable[InT],
    mapper: Callable[[InT], OutT],
    *,
    concurrency: int,
    cancel: threading.Event | None = None,
) -> list[Settled[InT, OutT]]:
    """Map ``iterable`` through ``mapper`` with at most ``concurrency`` calls in flight.

    Every item is submitted at most once. Mapper exceptions are captured on
    the item's :class:`Settled` entry instead of propagating.
    """

    if isinstance(concurrency, bool) or not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")

    # Avoid pre-materializing the iterable; items are pulled as slots free up.
    it = enumerate(iterable)
    settled: dict[int, Settled[InT, OutT]] = {}
    future_to_entry: dict[Future[OutT], tuple[int, InT]] = {}

    def _cancelled() -> bool:
        return cancel is not None and cancel.is_set()

    def _submit(pool: ThreadPoolExecutor) -> Future[OutT] | None:
        if _cancelled():
            return None
        try:
            idx, item = next(it)
        except StopIteration:
            return None
        fut = pool.submit(mapper, item)
        future_to_entry[fut] = (idx, item)
        return fut

    with ThreadPoolExecutor(max_workers=concurrency) as pool:
        # Prime the window
        active: set[Future[OutT]] = set()
        for _ in range(concurrency):
            fut = _submit(pool)
            if fut is None:
                break
            active.add(fut)

        # Drive completion/queueing until all submitted work has settled.
        while active:
            done, active = wait(active, return_when=FIRST_COMPLETED)

            for fut in done:
                idx, item = future_to_entry.pop(fut)
                try:
                    settled[idx] = Settled(item, value=fut.result())
                except Exception as e:  # noqa: BLE001
                    settled[idx] = Settled(item, error=e)

            # Top up: one new submission per completion.
            for _ in range(len(done)):
                fut = _submit(pool)
                if fut is None:
                    break
                active.add(fut)

    # Anything left in the iterator was never sent.
    for idx, item in it:
        settled[idx] = Settled(item, dispatched=False)

    return [settled[i] for i in sorted(settled)]


__all__ = ["Settled", "p_map_settled"]
