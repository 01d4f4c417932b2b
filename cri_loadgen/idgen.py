from __future__ import annotations

import threading


class IdGenerator:
    """Hands out unique uids and names, safe to share between batches."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._uid = 0
        self._pod = 0
        self._ctr = 0

    def uid(self) -> str:
        with self._lock:
            value = self._uid
            self._uid += 1
        return f"uid-{value}"

    def pod_name(self) -> str:
        with self._lock:
            value = self._pod
            self._pod += 1
        return f"pod-{value}"

    def container_name(self) -> str:
        with self._lock:
            value = self._ctr
            self._ctr += 1
        return f"ctr-{value}"


__all__ = ["IdGenerator"]
