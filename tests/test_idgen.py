"""
Tests for the shared identifier generator.
"""

import threading

from cri_loadgen.idgen import IdGenerator


def test_counters_start_at_zero_and_increment(ids):
    assert [ids.uid(), ids.uid()] == ["uid-0", "uid-1"]
    assert [ids.pod_name(), ids.pod_name()] == ["pod-0", "pod-1"]
    assert ids.container_name() == "ctr-0"


def test_counters_are_independent():
    ids = IdGenerator()
    ids.uid()
    ids.uid()

    assert ids.pod_name() == "pod-0"
    assert ids.container_name() == "ctr-0"
    assert ids.uid() == "uid-2"


def test_concurrent_generation_has_no_duplicates_or_gaps():
    ids = IdGenerator()
    workers, calls = 8, 500
    results: list[list[str]] = [[] for _ in range(workers)]
    start = threading.Barrier(workers)

    def generate(slot: int) -> None:
        start.wait()
        for _ in range(calls):
            results[slot].append(ids.uid())

    threads = [threading.Thread(target=generate, args=(i,)) for i in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    generated = [value for chunk in results for value in chunk]
    assert len(generated) == workers * calls
    assert set(generated) == {f"uid-{n}" for n in range(workers * calls)}
    for chunk in results:
        numbers = [int(value.split("-")[1]) for value in chunk]
        assert numbers == sorted(numbers)
