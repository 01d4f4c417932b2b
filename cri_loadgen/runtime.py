from __future__ import annotations

import contextlib
import logging
import time
from dataclasses import dataclass
from typing import Protocol

import docker
from docker.errors import DockerException, ImageNotFound

LOGGER = logging.getLogger("cri_loadgen.runtime")

DEFAULT_PAUSE_IMAGE = "registry.k8s.io/pause:3.9"

LABEL_NAMESPACE = "io.cri-loadgen.namespace"
LABEL_POD_NAME = "io.cri-loadgen.pod.name"
LABEL_POD_UID = "io.cri-loadgen.pod.uid"
LABEL_POD_ID = "io.cri-loadgen.pod.id"
LABEL_CONTAINER_NAME = "io.cri-loadgen.container.name"
LABEL_CONTAINER_UID = "io.cri-loadgen.container.uid"


class RuntimeUnavailableError(Exception):
    """Raised when the container runtime cannot be reached."""


@dataclass(frozen=True)
class ContainerOptions:
    image: str
    command: list[str] | None = None


class RuntimeClient(Protocol):
    """Pod and container lifecycle calls a batch drives.

    Every call raises on failure; handles are opaque strings.
    """

    pause_image: str

    def create_pod(self, namespace: str, name: str, uid: str) -> str: ...

    def create_container(
        self, pod: str, name: str, uid: str, options: ContainerOptions
    ) -> str: ...

    def start_container(self, container: str) -> None: ...

    def stop_container(self, container: str) -> None: ...

    def remove_container(self, container: str) -> None: ...

    def stop_pod(self, pod: str) -> None: ...

    def remove_pod(self, pod: str) -> None: ...


class DockerRuntime:
    """Runtime client backed by the Docker Engine API.

    A pod sandbox is a detached pause container. Pod containers join the
    sandbox's network and PID namespaces.
    """

    def __init__(
        self,
        client: docker.DockerClient,
        pause_image: str = DEFAULT_PAUSE_IMAGE,
        stop_timeout: int = 0,
    ) -> None:
        self._client = client
        self._api = client.api
        self.pause_image = pause_image
        self._stop_timeout = stop_timeout

    def pull_images(self) -> None:
        try:
            self._client.images.get(self.pause_image)
            LOGGER.debug("Image %s already present", self.pause_image)
        except ImageNotFound:
            LOGGER.info("Pulling image %s", self.pause_image)
            self._client.images.pull(self.pause_image)

    def create_pod(self, namespace: str, name: str, uid: str) -> str:
        response = self._api.create_container(
            self.pause_image,
            name=f"{namespace}_{name}_{uid}",
            detach=True,
            labels={
                LABEL_NAMESPACE: namespace,
                LABEL_POD_NAME: name,
                LABEL_POD_UID: uid,
            },
        )
        pod = response["Id"]
        try:
            self._api.start(pod)
        except DockerException:
            # a sandbox that never started must not keep its name reserved
            with contextlib.suppress(DockerException):
                self._api.remove_container(pod, force=True)
            raise
        return pod

    def create_container(
        self, pod: str, name: str, uid: str, options: ContainerOptions
    ) -> str:
        host_config = self._api.create_host_config(
            network_mode=f"container:{pod}",
            pid_mode=f"container:{pod}",
        )
        response = self._api.create_container(
            options.image,
            command=options.command,
            name=f"{name}_{uid}",
            labels={
                LABEL_POD_ID: pod,
                LABEL_CONTAINER_NAME: name,
                LABEL_CONTAINER_UID: uid,
            },
            host_config=host_config,
        )
        return response["Id"]

    def start_container(self, container: str) -> None:
        self._api.start(container)

    def stop_container(self, container: str) -> None:
        self._api.stop(container, timeout=self._stop_timeout)

    def remove_container(self, container: str) -> None:
        self._api.remove_container(container)

    def stop_pod(self, pod: str) -> None:
        self._api.stop(pod, timeout=self._stop_timeout)

    def remove_pod(self, pod: str) -> None:
        self._api.remove_container(pod, force=True)


def connect_runtime(
    pause_image: str = DEFAULT_PAUSE_IMAGE,
    stop_timeout: int = 0,
    timeout_s: float = 60.0,
) -> DockerRuntime:
    backoff = 1.0
    max_backoff = 10.0
    deadline = time.time() + timeout_s

    while True:
        try:
            client = docker.from_env()
            client.ping()
            return DockerRuntime(client, pause_image=pause_image, stop_timeout=stop_timeout)
        except DockerException as exc:
            if time.time() >= deadline:
                raise RuntimeUnavailableError(
                    f"failed to connect to container runtime within {timeout_s:g} seconds"
                ) from exc

            LOGGER.warning("Container runtime not reachable yet: %s", exc)
            time.sleep(backoff)
            backoff = min(backoff * 1.5, max_backoff)


__all__ = [
    "ContainerOptions",
    "DEFAULT_PAUSE_IMAGE",
    "DockerRuntime",
    "RuntimeClient",
    "RuntimeUnavailableError",
    "connect_runtime",
]
