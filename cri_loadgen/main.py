from __future__ import annotations

import logging
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path

from docker.errors import DockerException

from .batch import Batch, BatchGroup, BatchOperationError
from .charts import render_latency_chart
from .config import LoadgenConfig, parse_config
from .idgen import IdGenerator
from .latency import NoSamplesError, PersistError, RuntimeLatency, format_latency
from .runtime import RuntimeClient, RuntimeUnavailableError, connect_runtime

LOGGER = logging.getLogger("cri_loadgen")


@dataclass
class RunResult:
    """Merged outcome of every batch after the group has been joined."""

    batches: list[Batch]
    elapsed_s: float
    latency: RuntimeLatency = field(default_factory=RuntimeLatency)
    failures: list[BaseException] = field(default_factory=list)

    @property
    def errors(self) -> list[BatchOperationError]:
        return [error for batch in self.batches for error in batch.errors]

    @property
    def pod_create_retries(self) -> int:
        return sum(batch.retries.run_pod_sandbox for batch in self.batches)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def build_batches(config: LoadgenConfig, ids: IdGenerator) -> list[Batch]:
    return [
        Batch(
            name=f"batch{i}",
            ids=ids,
            namespace=config.namespace,
            pod_count=config.pods,
            container_count=config.containers,
            rounds=config.rounds,
            verbose=config.verbose,
        )
        for i in range(config.batches)
    ]


def run_batches(batches: list[Batch], client: RuntimeClient) -> RunResult:
    """Run all batches concurrently, wait for every one, then merge latencies."""
    group = BatchGroup()
    start = time.perf_counter()
    for batch in batches:
        batch.run(client, group)
    group.wait()
    elapsed = time.perf_counter() - start

    result = RunResult(batches=batches, elapsed_s=elapsed, failures=list(group.failures))
    for batch in batches:
        result.latency.add(batch.latency)
    result.latency.sort()
    return result


def print_report(config: LoadgenConfig, result: RunResult) -> None:
    for batch in result.batches:
        if batch.errors:
            print(f"batch {batch.name} had {len(batch.errors)} errors:")
            for error in batch.errors:
                print(f"  {error}")

    elapsed = format_latency(result.elapsed_s * 1_000_000)
    print(
        f"{elapsed} to run {config.rounds} rounds of {config.batches} batches "
        f"of {config.pods} pods with {config.containers} containers"
    )

    if result.failures:
        print(f"{len(result.failures)} batches terminated early:")
        for failure in result.failures:
            print(f"  {failure!r}")

    error_count = len(result.errors) + len(result.failures)
    if error_count > 0:
        print(f"encountered {error_count} errors total")
    else:
        print("no errors encountered")
    if result.pod_create_retries:
        print(f"pod creation retried {result.pod_create_retries} times")

    for operation in RuntimeLatency.operations():
        try:
            summary = result.latency.summarize(operation)
        except NoSamplesError:
            print(f"{operation} latency: no samples")
            continue
        for line in summary.render():
            print(line)


def write_artifacts(config: LoadgenConfig, latency: RuntimeLatency) -> int:
    """Persist raw samples, then the optional summary table and chart.

    Only a failure to persist the raw samples yields a non-zero exit code.
    """
    exit_code = 0
    if config.save:
        try:
            saved = latency.save(config.save)
        except PersistError as exc:
            print(f"failed to save raw results in {config.save}: {exc}")
            exit_code = 1
        else:
            if saved is not None:
                LOGGER.info("Saved raw latencies to %s", saved)

    if config.summary_csv:
        csv_path = Path(config.summary_csv)
        try:
            latency.to_dataframe().to_csv(csv_path, index=False)
            LOGGER.info("Saved latency summary to %s", csv_path)
        except Exception:  # noqa: BLE001
            LOGGER.exception("failed to write latency summary %s", csv_path)

    if config.chart:
        chart_path = Path(config.chart)
        try:
            render_latency_chart(latency, chart_path)
        except Exception:  # noqa: BLE001
            LOGGER.exception("failed to write latency chart %s", chart_path)

    return exit_code


def main(argv: list[str] | None = None) -> int:
    config = parse_config(argv)
    setup_logging(config.log_level)

    try:
        client = connect_runtime(
            pause_image=config.pause_image, stop_timeout=config.stop_timeout
        )
        client.pull_images()
    except (RuntimeUnavailableError, DockerException) as exc:
        LOGGER.error("failed to set up container runtime: %s", exc)
        return 1

    batches = build_batches(config, IdGenerator())
    result = run_batches(batches, client)
    print_report(config, result)
    return write_artifacts(config, result.latency)


if __name__ == "__main__":
    sys.exit(main())
