import threading

from dashtime.threading.atomic import Atomic


def test_atomic_set_get_basic() -> None:
    """Test basic set and get functionality."""
    atomic_int = Atomic[int](10)
    assert atomic_int.get() == 10

    atomic_int.set(20)
    assert atomic_int.get() == 20


def test_atomic_exchange_returns_previous() -> None:
    atomic_str = Atomic[str]("first")

    previous = atomic_str.exchange("second")

    assert previous == "first"
    assert atomic_str.get() == "second"


def test_atomic_returns_same_reference() -> None:
    """Loads hand back the stored object itself, not a copy."""
    value = ("immutable", 1)
    atomic_tuple = Atomic[tuple[str, int]](value)
    assert atomic_tuple.get() is value


def test_atomic_exchange_thread_safety() -> None:
    """Every exchanged-out value is seen exactly once across threads."""
    num_threads = 8
    iterations_per_thread = 200
    atomic_val = Atomic[int](-1)
    seen: list[int] = []
    seen_lock = threading.Lock()

    def worker(thread_index: int) -> None:
        local_seen = []
        for i in range(iterations_per_thread):
            local_seen.append(
                atomic_val.exchange(thread_index * iterations_per_thread + i)
            )
        with seen_lock:
            seen.extend(local_seen)

    threads = [
        threading.Thread(target=worker, args=(i,)) for i in range(num_threads)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    seen.append(atomic_val.get())
    expected = list(range(num_threads * iterations_per_thread)) + [-1]
    assert sorted(seen) == sorted(expected)
