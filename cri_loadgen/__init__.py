"""
Load generator for container runtimes.

This package drives repeated pod and container lifecycles (create, start,
stop, remove) through a runtime client from several concurrent batches,
records per-operation latency and reports summary statistics.
"""

from .main import main

__all__ = ["main"]
