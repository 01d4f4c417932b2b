from __future__ import annotations

import itertools
import threading
from typing import Callable

import pytest

from cri_loadgen.idgen import IdGenerator
from cri_loadgen.runtime import ContainerOptions


class FakeRuntime:
    """In-memory runtime client whose calls can be scripted to fail."""

    pause_image = "pause:test"

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handles = itertools.count()
        self.failures: dict[str, Callable[..., bool]] = {}
        self.calls: list[tuple[str, tuple]] = []
        self.live_pods: set[str] = set()
        self.live_containers: set[str] = set()
        self.pulled = False

    def fail(self, operation: str, predicate: Callable[..., bool] | None = None) -> None:
        self.failures[operation] = predicate or (lambda *args: True)

    def count(self, operation: str) -> int:
        with self._lock:
            return sum(1 for name, _ in self.calls if name == operation)

    def pull_images(self) -> None:
        self.pulled = True

    def _call(self, operation: str, *args) -> None:
        with self._lock:
            self.calls.append((operation, args))
        predicate = self.failures.get(operation)
        if predicate is not None and predicate(*args):
            raise RuntimeError(f"{operation} failed")

    def _handle(self, prefix: str) -> str:
        with self._lock:
            return f"{prefix}-{next(self._handles)}"

    def create_pod(self, namespace: str, name: str, uid: str) -> str:
        self._call("create_pod", namespace, name, uid)
        pod = self._handle("pod")
        self.live_pods.add(pod)
        return pod

    def create_container(
        self, pod: str, name: str, uid: str, options: ContainerOptions
    ) -> str:
        self._call("create_container", pod, name, uid, options)
        ctr = self._handle("ctr")
        self.live_containers.add(ctr)
        return ctr

    def start_container(self, container: str) -> None:
        self._call("start_container", container)

    def stop_container(self, container: str) -> None:
        self._call("stop_container", container)

    def remove_container(self, container: str) -> None:
        self._call("remove_container", container)
        self.live_containers.discard(container)

    def stop_pod(self, pod: str) -> None:
        self._call("stop_pod", pod)

    def remove_pod(self, pod: str) -> None:
        self._call("remove_pod", pod)
        self.live_pods.discard(pod)


def fail_first(times: int) -> Callable[..., bool]:
    """Predicate failing the first ``times`` calls and passing afterwards."""
    counter = itertools.count()
    return lambda *args: next(counter) < times


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def ids() -> IdGenerator:
    return IdGenerator()
