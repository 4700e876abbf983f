import threading
import time

import pytest
from statement_import.pmap import p_map_settled


def test_results_come_back_in_input_order():
    def slow_first(x: int) -> int:
        time.sleep(0.05 if x == 0 else 0.0)
        return x * 10

    settled = p_map_settled(range(6), slow_first, concurrency=3)
    assert [s.item for s in settled] == list(range(6))
    assert [s.value for s in settled] == [0, 10, 20, 30, 40, 50]
    assert all(s.ok for s in settled)


def test_concurrency_is_bounded():
    lock = threading.Lock()
    in_flight = 0
    peak = 0

    def work(_: int) -> None:
        nonlocal in_flight, peak
        with lock:
            in_flight += 1
            peak = max(peak, in_flight)
        time.sleep(0.01)
        with lock:
            in_flight -= 1

    p_map_settled(range(20), work, concurrency=3)
    assert 1 <= peak <= 3


def test_errors_are_captured_per_item():
    def maybe_fail(x: int) -> int:
        if x == 2:
            raise RuntimeError("boom")
        return x

    settled = p_map_settled([1, 2, 3], maybe_fail, concurrency=2)
    assert [s.ok for s in settled] == [True, False, True]
    assert isinstance(settled[1].error, RuntimeError)
    assert settled[1].dispatched


def test_cancel_stops_new_submissions_only():
    cancel = threading.Event()
    calls: list[int] = []

    def work(x: int) -> int:
        calls.append(x)
        cancel.set()
        return x

    settled = p_map_settled(range(5), work, concurrency=1, cancel=cancel)
    assert calls == [0]
    assert settled[0].ok
    assert [s.dispatched for s in settled] == [True, False, False, False, False]


def test_each_item_is_submitted_once():
    seen: list[int] = []
    lock = threading.Lock()

    def work(x: int) -> None:
        with lock:
            seen.append(x)

    p_map_settled(range(50), work, concurrency=8)
    assert sorted(seen) == list(range(50))


@pytest.mark.parametrize("bad", [0, -1, True, 1.5])
def test_concurrency_must_be_positive_int(bad):
    with pytest.raises(ValueError):
        p_map_settled([1], lambda x: x, concurrency=bad)
