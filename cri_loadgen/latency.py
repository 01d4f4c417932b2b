from __future__ import annotations

import dataclasses
import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

import numpy as np
import pandas as pd

PERCENTILES: tuple[float, ...] = (0.25, 0.50, 0.75, 0.95)

SUMMARY_COLUMNS = [
    "operation",
    "count",
    "min_us",
    "max_us",
    "mean_us",
    "stddev_us",
    "p25_us",
    "p50_us",
    "p75_us",
    "p95_us",
]


class NoSamplesError(ValueError):
    """Raised when statistics are requested for an operation without samples."""

    def __init__(self, operation: str) -> None:
        super().__init__(f"no samples for {operation}")
        self.operation = operation


class PersistError(Exception):
    """Raised when latency results cannot be written."""


def _samples(label: str):
    return field(default_factory=list, metadata={"label": label})


@dataclass
class RuntimeLatency:
    """Latency samples in microseconds, one list per runtime operation.

    Only successful operations contribute samples. Each list keeps append
    order until :meth:`sort` is called.
    """

    run_pod_sandbox: list[float] = _samples("RunPodSandbox")
    stop_pod_sandbox: list[float] = _samples("StopPodSandbox")
    remove_pod_sandbox: list[float] = _samples("RemovePodSandbox")
    create_container: list[float] = _samples("CreateContainer")
    start_container: list[float] = _samples("StartContainer")
    stop_container: list[float] = _samples("StopContainer")
    remove_container: list[float] = _samples("RemoveContainer")

    @classmethod
    def operations(cls) -> list[str]:
        return [f.metadata["label"] for f in dataclasses.fields(cls)]

    def items(self) -> Iterator[tuple[str, list[float]]]:
        for f in dataclasses.fields(self):
            yield f.metadata["label"], getattr(self, f.name)

    def samples(self, operation: str) -> list[float]:
        for label, values in self.items():
            if label == operation:
                return values
        raise KeyError(f"unknown runtime operation {operation!r}")

    def add(self, other: RuntimeLatency) -> None:
        for f in dataclasses.fields(self):
            getattr(self, f.name).extend(getattr(other, f.name))

    def sort(self) -> None:
        for _, values in self.items():
            values.sort()

    def summarize(self, operation: str) -> LatencySummary:
        """Compute summary statistics for one operation.

        Expects the samples to be sorted already: min and max are read from
        the ends of the list.
        """
        values = self.samples(operation)
        if not values:
            raise NoSamplesError(operation)

        array = np.asarray(values, dtype=float)
        p25, p50, p75, p95 = (quantile(values, q) for q in PERCENTILES)
        stddev = float(array.std(ddof=1)) if len(values) > 1 else 0.0
        return LatencySummary(
            operation=operation,
            count=len(values),
            min=values[0],
            max=values[-1],
            mean=float(array.mean()),
            stddev=stddev,
            p25=p25,
            p50=p50,
            p75=p75,
            p95=p95,
        )

    def summaries(self) -> list[LatencySummary]:
        return [
            self.summarize(label) for label, values in self.items() if values
        ]

    def to_dataframe(self) -> pd.DataFrame:
        rows = [summary.as_row() for summary in self.summaries()]
        if not rows:
            return pd.DataFrame(columns=SUMMARY_COLUMNS)
        return pd.DataFrame(rows, columns=SUMMARY_COLUMNS)

    def to_dict(self) -> dict[str, list[float]]:
        return {label: list(values) for label, values in self.items()}

    def save(self, path: str) -> Path | None:
        """Write all samples as JSON to ``path``, or to stdout for ``-``.

        A ``.json`` suffix is appended when missing. Returns the written path.
        """
        payload = self.to_dict()
        if path == "-":
            json.dump(payload, sys.stdout)
            sys.stdout.write("\n")
            return None

        if not path.endswith(".json"):
            path += ".json"
        target = Path(path)
        try:
            with open(target, "w", encoding="utf-8") as f:
                json.dump(payload, f)
                f.write("\n")
        except OSError as exc:
            raise PersistError(f"failed to save results to {target}: {exc}") from exc
        return target

    @classmethod
    def load(cls, path: str | Path) -> RuntimeLatency:
        with open(path, encoding="utf-8") as f:
            payload = json.load(f)
        latency = cls()
        for label, values in latency.items():
            values.extend(float(value) for value in payload.get(label) or [])
        return latency


@dataclass(frozen=True)
class LatencySummary:
    operation: str
    count: int
    min: float
    max: float
    mean: float
    stddev: float
    p25: float
    p50: float
    p75: float
    p95: float

    def as_row(self) -> dict[str, object]:
        return {
            "operation": self.operation,
            "count": self.count,
            "min_us": self.min,
            "max_us": self.max,
            "mean_us": self.mean,
            "stddev_us": self.stddev,
            "p25_us": self.p25,
            "p50_us": self.p50,
            "p75_us": self.p75,
            "p95_us": self.p95,
        }

    def render(self) -> list[str]:
        return [
            f"{self.operation} latency:",
            "  - min, max: {}, {}, mean, deviation: {}, {}".format(
                format_latency(self.min),
                format_latency(self.max),
                format_latency(self.mean),
                format_latency(self.stddev),
            ),
            "  - {{25,50,75,95}}-percentiles: {}, {}, {}, {}".format(
                format_latency(self.p25),
                format_latency(self.p50),
                format_latency(self.p75),
                format_latency(self.p95),
            ),
        ]


def quantile(sorted_values: list[float], q: float) -> float:
    """Linearly interpolated empirical quantile at position ``q * (n - 1)``."""
    if not sorted_values:
        raise ValueError("quantile of empty sequence")
    return float(np.quantile(np.asarray(sorted_values, dtype=float), q))


def as_latency(elapsed_ns: int) -> float:
    return float(elapsed_ns // 1_000)


def format_latency(value_us: float) -> str:
    if value_us < 1_000:
        return f"{value_us:.6g}µs"
    if value_us < 1_000_000:
        return f"{value_us / 1_000:.6g}ms"
    return f"{value_us / 1_000_000:.6g}s"


__all__ = [
    "LatencySummary",
    "NoSamplesError",
    "PERCENTILES",
    "PersistError",
    "RuntimeLatency",
    "as_latency",
    "format_latency",
    "quantile",
]
