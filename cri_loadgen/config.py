from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass
from typing import Mapping

from .batch import (
    DEFAULT_CONTAINER_COUNT,
    DEFAULT_NAMESPACE,
    DEFAULT_POD_COUNT,
    DEFAULT_ROUNDS,
)
from .runtime import DEFAULT_PAUSE_IMAGE

_TRUE_VALUES = {"1", "true", "t", "yes", "y", "on"}
_FALSE_VALUES = {"0", "false", "f", "no", "n", "off", ""}


@dataclass(frozen=True)
class LoadgenConfig:
    """Everything the coordinator needs to set up and report a run."""

    batches: int = 1
    pods: int = DEFAULT_POD_COUNT
    containers: int = DEFAULT_CONTAINER_COUNT
    rounds: int = DEFAULT_ROUNDS
    save: str = ""
    verbose: bool = False
    namespace: str = DEFAULT_NAMESPACE
    pause_image: str = DEFAULT_PAUSE_IMAGE
    stop_timeout: int = 0
    summary_csv: str = ""
    chart: str = ""
    log_level: str = "INFO"


def parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise argparse.ArgumentTypeError(f"invalid boolean value {value!r}")


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    value = env.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        print(
            f"invalid {name} value {value!r}; defaulting to {default}",
            file=sys.stderr,
        )
        return default


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    value = env.get(name)
    if value is None:
        return default
    try:
        return parse_bool(value)
    except argparse.ArgumentTypeError:
        print(
            f"invalid {name} value {value!r}; defaulting to {str(default).lower()}",
            file=sys.stderr,
        )
        return default


def build_parser(env: Mapping[str, str] | None = None) -> argparse.ArgumentParser:
    env = os.environ if env is None else env
    parser = argparse.ArgumentParser(
        prog="cri-loadgen",
        description="Drive pod and container lifecycles against a container runtime",
    )
    parser.add_argument(
        "-batches",
        "--batches",
        type=int,
        default=_env_int(env, "LOADGEN_BATCHES", 1),
        help="number of parallel batches to run",
    )
    parser.add_argument(
        "-pods",
        "--pods",
        type=int,
        default=_env_int(env, "LOADGEN_PODS", DEFAULT_POD_COUNT),
        help="number of pods to create per batch",
    )
    parser.add_argument(
        "-containers",
        "--containers",
        type=int,
        default=_env_int(env, "LOADGEN_CONTAINERS", DEFAULT_CONTAINER_COUNT),
        help="number of containers to create per pod",
    )
    parser.add_argument(
        "-rounds",
        "--rounds",
        type=int,
        default=_env_int(env, "LOADGEN_ROUNDS", DEFAULT_ROUNDS),
        help="test rounds per batch",
    )
    parser.add_argument(
        "-save",
        "--save",
        default=env.get("LOADGEN_SAVE", ""),
        help="file to save measured raw latencies in ('-' for stdout)",
    )
    parser.add_argument(
        "-verbose",
        "--verbose",
        nargs="?",
        const=True,
        type=parse_bool,
        default=_env_bool(env, "LOADGEN_VERBOSE", False),
        help="verbose printing during test rounds",
    )
    parser.add_argument(
        "--namespace",
        default=env.get("LOADGEN_NAMESPACE", DEFAULT_NAMESPACE),
        help="namespace label for created pods",
    )
    parser.add_argument(
        "--pause-image",
        default=env.get("LOADGEN_PAUSE_IMAGE", DEFAULT_PAUSE_IMAGE),
        help="image used for pod sandboxes and test containers",
    )
    parser.add_argument(
        "--stop-timeout",
        type=int,
        default=_env_int(env, "LOADGEN_STOP_TIMEOUT", 0),
        help="seconds the runtime waits before killing a stopped container",
    )
    parser.add_argument(
        "--summary-csv",
        default=env.get("LOADGEN_SUMMARY_CSV", ""),
        help="optional CSV file for the latency summary table",
    )
    parser.add_argument(
        "--chart",
        default=env.get("LOADGEN_CHART", ""),
        help="optional PNG file for a latency distribution chart",
    )
    parser.add_argument(
        "--log-level",
        default=env.get("LOADGEN_LOG_LEVEL", "INFO"),
        help="Logging level",
    )
    return parser


def parse_config(
    argv: list[str] | None = None, env: Mapping[str, str] | None = None
) -> LoadgenConfig:
    args = build_parser(env).parse_args(argv)
    return LoadgenConfig(
        batches=args.batches,
        pods=args.pods,
        containers=args.containers,
        rounds=args.rounds,
        save=args.save,
        verbose=args.verbose,
        namespace=args.namespace,
        pause_image=args.pause_image,
        stop_timeout=args.stop_timeout,
        summary_csv=args.summary_csv,
        chart=args.chart,
        log_level=args.log_level,
    )


__all__ = ["LoadgenConfig", "build_parser", "parse_bool", "parse_config"]
