from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterator

from .idgen import IdGenerator
from .latency import RuntimeLatency, as_latency, format_latency
from .runtime import ContainerOptions, RuntimeClient

LOGGER = logging.getLogger("cri_loadgen.batch")

DEFAULT_NAMESPACE = "test"
DEFAULT_POD_COUNT = 1
DEFAULT_CONTAINER_COUNT = 1
DEFAULT_ROUNDS = 10

MAX_POD_CREATE_ATTEMPTS = 3


class BatchOperationError(Exception):
    """A runtime call that failed inside a batch round."""

    def __init__(
        self,
        batch: str,
        round_no: int,
        rounds: int,
        operation: str,
        pod: int,
        container: int | None = None,
    ) -> None:
        self.batch = batch
        self.round = round_no
        self.rounds = rounds
        self.operation = operation
        self.pod = pod
        self.container = container
        super().__init__(batch, round_no, operation, pod, container)

    def __str__(self) -> str:
        target = f"#{self.pod}" if self.container is None else f"#{self.pod}:{self.container}"
        message = f"round {self.round}/{self.rounds}: failed to {self.operation} {target}"
        if self.__cause__ is not None:
            message += f": {self.__cause__}"
        return message


@dataclass
class RetryCount:
    run_pod_sandbox: int = 0


class BatchGroup:
    """Runs every batch on its own thread and joins them all at once."""

    def __init__(self) -> None:
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()
        self.failures: list[BaseException] = []

    def spawn(self, name: str, target: Callable[[], None]) -> None:
        def runner() -> None:
            try:
                target()
            except Exception as exc:  # noqa: BLE001
                LOGGER.exception("batch %s terminated unexpectedly", name)
                with self._lock:
                    self.failures.append(exc)

        thread = threading.Thread(target=runner, name=f"batch-{name}", daemon=True)
        self._threads.append(thread)
        thread.start()

    def wait(self) -> None:
        for thread in self._threads:
            thread.join()

    def __len__(self) -> int:
        return len(self._threads)


class Batch:
    """Repeated lifecycle rounds over a fixed grid of pods and containers.

    Each round creates every pod, creates and starts its containers, then
    tears everything down again. Slots hold a runtime handle or ``None``;
    a phase skips empty slots, so a failed create turns into fewer
    operations for the rest of the round instead of aborting it.
    """

    def __init__(
        self,
        name: str,
        ids: IdGenerator,
        namespace: str = DEFAULT_NAMESPACE,
        pod_count: int = DEFAULT_POD_COUNT,
        container_count: int = DEFAULT_CONTAINER_COUNT,
        rounds: int = DEFAULT_ROUNDS,
        verbose: bool = False,
    ) -> None:
        self.name = name
        self.namespace = namespace
        self.pod_count = pod_count
        self.container_count = container_count
        self.rounds = rounds
        self.verbose = verbose

        self._ids = ids
        self._client: RuntimeClient | None = None
        self._options: ContainerOptions | None = None
        self._pods: list[str | None] = []
        self._containers: list[list[str | None]] = []
        self._round = 0

        self.latency = RuntimeLatency()
        self.retries = RetryCount()
        self.errors: list[BatchOperationError] = []

    def run(self, client: RuntimeClient, group: BatchGroup) -> None:
        """Schedule all rounds of this batch in ``group`` and return."""
        self._client = client

        if not self.namespace:
            self.namespace = DEFAULT_NAMESPACE
        if self.pod_count <= 0:
            self.pod_count = DEFAULT_POD_COUNT
        if self.container_count <= 0:
            self.container_count = DEFAULT_CONTAINER_COUNT
        if self.rounds <= 0:
            self.rounds = DEFAULT_ROUNDS

        self._pods = [None] * self.pod_count
        self._containers = [[None] * self.container_count for _ in range(self.pod_count)]
        self._options = ContainerOptions(image=client.pause_image, command=None)

        group.spawn(self.name, self.run_rounds)

    def run_rounds(self) -> None:
        for round_no in range(1, self.rounds + 1):
            self._round = round_no
            LOGGER.info("batch %s, round #%d/%d", self.name, round_no, self.rounds)
            self._create_pods()
            self._create_containers()
            self._start_containers()
            self._stop_containers()
            self._remove_containers()
            self._stop_pods()
            self._remove_pods()

    def _create_pods(self) -> None:
        for i in range(self.pod_count):
            name = f"{self.name}-{i}"
            uid = self._ids.uid()
            pod: str | None = None
            error: Exception | None = None
            for _ in range(MAX_POD_CREATE_ATTEMPTS):
                try:
                    pod, latency = self._timed(
                        self._client.create_pod, self.namespace, name, uid
                    )
                except Exception as exc:  # noqa: BLE001
                    error = exc
                    self.retries.run_pod_sandbox += 1
                    continue
                self.latency.run_pod_sandbox.append(latency)
                self._log("created #%d pod %s (latency %s)", i, pod, format_latency(latency))
                break
            self._pods[i] = pod
            if pod is None:
                self._fail("create pod", error, i)

    def _create_containers(self) -> None:
        for i, pod in enumerate(self._pods):
            if pod is None:
                continue
            for j in range(self.container_count):
                name = f"ctr-{j}"
                uid = self._ids.uid()
                try:
                    ctr, latency = self._timed(
                        self._client.create_container, pod, name, uid, self._options
                    )
                except Exception as exc:  # noqa: BLE001
                    self._containers[i][j] = None
                    self._fail("create container", exc, i, j)
                    continue
                self._containers[i][j] = ctr
                self.latency.create_container.append(latency)
                self._log(
                    "created #%d:%d container %s (latency %s)",
                    i, j, ctr, format_latency(latency),
                )

    def _start_containers(self) -> None:
        for i, j, ctr in self._live_containers():
            try:
                _, latency = self._timed(self._client.start_container, ctr)
            except Exception as exc:  # noqa: BLE001
                self._fail("start container", exc, i, j)
                continue
            self.latency.start_container.append(latency)
            self._log("started #%d:%d container %s (latency %s)", i, j, ctr, format_latency(latency))

    def _stop_containers(self) -> None:
        for i, j, ctr in self._live_containers():
            try:
                _, latency = self._timed(self._client.stop_container, ctr)
            except Exception as exc:  # noqa: BLE001
                self._fail("stop container", exc, i, j)
                continue
            self.latency.stop_container.append(latency)
            self._log("stopped #%d:%d container %s (latency %s)", i, j, ctr, format_latency(latency))

    def _remove_containers(self) -> None:
        for i, j, ctr in self._live_containers():
            # the container is treated as gone whether or not removal succeeded
            self._containers[i][j] = None
            try:
                _, latency = self._timed(self._client.remove_container, ctr)
            except Exception as exc:  # noqa: BLE001
                self._fail("remove container", exc, i, j)
                continue
            self.latency.remove_container.append(latency)
            self._log("removed #%d:%d container %s (latency %s)", i, j, ctr, format_latency(latency))

    def _stop_pods(self) -> None:
        for i, pod in self._live_pods():
            try:
                _, latency = self._timed(self._client.stop_pod, pod)
            except Exception as exc:  # noqa: BLE001
                self._fail("stop pod", exc, i)
                continue
            self.latency.stop_pod_sandbox.append(latency)
            self._log("stopped #%d pod %s (latency %s)", i, pod, format_latency(latency))

    def _remove_pods(self) -> None:
        for i, pod in self._live_pods():
            self._pods[i] = None
            try:
                _, latency = self._timed(self._client.remove_pod, pod)
            except Exception as exc:  # noqa: BLE001
                self._fail("remove pod", exc, i)
                continue
            self.latency.remove_pod_sandbox.append(latency)
            self._log("removed #%d pod %s (latency %s)", i, pod, format_latency(latency))

    def _live_pods(self) -> Iterator[tuple[int, str]]:
        for i, pod in enumerate(self._pods):
            if pod is not None:
                yield i, pod

    def _live_containers(self) -> Iterator[tuple[int, int, str]]:
        for i, _ in self._live_pods():
            for j, ctr in enumerate(self._containers[i]):
                if ctr is not None:
                    yield i, j, ctr

    @staticmethod
    def _timed(call: Callable[..., Any], *args: Any) -> tuple[Any, float]:
        start = time.perf_counter_ns()
        result = call(*args)
        return result, as_latency(time.perf_counter_ns() - start)

    def _fail(
        self,
        operation: str,
        cause: Exception | None,
        pod: int,
        container: int | None = None,
    ) -> None:
        error = BatchOperationError(
            self.name, self._round, self.rounds, operation, pod, container
        )
        error.__cause__ = cause
        self.errors.append(error)
        self._log("%s", error)

    def _log(self, message: str, *args: Any) -> None:
        if not self.verbose:
            return
        LOGGER.info("%s: " + message, self.name, *args)


__all__ = [
    "Batch",
    "BatchGroup",
    "BatchOperationError",
    "DEFAULT_CONTAINER_COUNT",
    "DEFAULT_NAMESPACE",
    "DEFAULT_POD_COUNT",
    "DEFAULT_ROUNDS",
    "MAX_POD_CREATE_ATTEMPTS",
    "RetryCount",
]
