"""Thin synchronous facade over the Docker engine.

The gateway holds no state of its own. Errors from the `docker` library are translated to
`GatewayError` subclasses, so the rest of the framework doesn't depend on `docker` directly
and tests can substitute the gateway with a fake.
"""

import contextlib
import dataclasses
import logging
import typing as tp

import docker
import requests
from docker import errors as docker_errors

from minimesos.cluster import errors

LOGGER = logging.getLogger(__name__)


class GatewayError(errors.MinimesosError):
    """Raised when the container runtime request failed."""


class NotFoundError(GatewayError):
    """Raised when the requested container or image doesn't exist."""


class InternalServerError(GatewayError):
    """Raised when the container runtime failed with a server error."""


@dataclasses.dataclass(frozen=True, order=True)
class PortInfo:
    private_port: int
    public_port: int | None = None
    ip: str = ""
    type: str = "tcp"


@dataclasses.dataclass(frozen=True, order=True)
class ContainerInfo:
    created: int
    id: str
    names: tuple[str, ...]
    ports: tuple[PortInfo, ...] = ()
    state: str = ""


@dataclasses.dataclass(frozen=True)
class ContainerSpec:
    """Request for creation of a container."""

    name: str
    image: str
    environment: dict[str, str] = dataclasses.field(default_factory=dict)
    command: tuple[str, ...] = ()
    exposed_ports: tuple[int | str, ...] = ()
    # container port -> host port
    port_bindings: dict[int | str, int] = dataclasses.field(default_factory=dict)
    # "host_path:container_path[:mode]"
    binds: tuple[str, ...] = ()
    network_mode: str = ""
    privileged: bool = False
    labels: dict[str, str] = dataclasses.field(default_factory=dict)


class RuntimeGateway(tp.Protocol):
    """Interface of the container runtime expected by the cluster."""

    def list_containers(self) -> list[ContainerInfo]:
        """Return all containers, including stopped ones."""

    def create_container(self, spec: ContainerSpec) -> str:
        """Create container and return its ID."""

    def start_container(self, container_id: str) -> None:
        """Start created container."""

    def remove_container(
        self, container_id: str, *, force: bool = True, with_volumes: bool = True
    ) -> None:
        """Remove container."""

    def pull_image(self, image: str) -> None:
        """Pull image from registry."""

    def image_exists(self, image: str) -> bool:
        """Check if image is available locally."""

    def inspect_container(self, container_id: str) -> dict[str, tp.Any]:
        """Return low-level information about container."""

    def get_ip_address(self, container_id: str) -> str:
        """Return IP address of container."""

    def is_running(self, container_id: str) -> bool:
        """Check if container is running."""


@contextlib.contextmanager
def _translate_errors(action: str) -> tp.Iterator[None]:
    try:
        yield
    except docker_errors.NotFound as exc:
        msg = f"Failed to {action}: {exc}"
        raise NotFoundError(msg) from exc
    except docker_errors.APIError as exc:
        msg = f"Failed to {action}: {exc}"
        if exc.is_server_error():
            raise InternalServerError(msg) from exc
        raise GatewayError(msg) from exc
    except (docker_errors.DockerException, requests.exceptions.ConnectionError) as exc:
        msg = f"Failed to {action}: {exc}"
        raise GatewayError(msg) from exc


def split_image(image: str) -> tuple[str, str]:
    """Split image reference to repository and tag.

    >>> split_image("localhost:5000/mesos-agent:1.0")
    ('localhost:5000/mesos-agent', '1.0')
    >>> split_image("jplock/zookeeper")
    ('jplock/zookeeper', 'latest')
    """
    repository, sep, tag = image.rpartition(":")
    if not sep or "/" in tag:
        return image, "latest"
    return repository, tag


class DockerGateway:
    """Runtime gateway backed by the Docker engine API."""

    def __init__(self, client: docker.APIClient | None = None) -> None:
        self._client = client

    @property
    def client(self) -> docker.APIClient:
        if self._client is None:
            with _translate_errors("connect to Docker"):
                self._client = docker.from_env().api
        return self._client

    def list_containers(self) -> list[ContainerInfo]:
        with _translate_errors("list containers"):
            records = self.client.containers(all=True)

        containers = []
        for rec in records:
            ports = tuple(
                PortInfo(
                    private_port=p.get("PrivatePort", 0),
                    public_port=p.get("PublicPort"),
                    ip=p.get("IP") or "",
                    type=p.get("Type") or "tcp",
                )
                for p in rec.get("Ports") or ()
            )
            containers.append(
                ContainerInfo(
                    created=int(rec.get("Created") or 0),
                    id=rec["Id"],
                    names=tuple(n.lstrip("/") for n in rec.get("Names") or ()),
                    ports=ports,
                    state=rec.get("State") or "",
                )
            )
        return containers

    def create_container(self, spec: ContainerSpec) -> str:
        LOGGER.debug(f"Creating container '{spec.name}' from image '{spec.image}'.")
        with _translate_errors(f"create container '{spec.name}'"):
            host_config = self.client.create_host_config(
                port_bindings=spec.port_bindings or None,
                binds=list(spec.binds) or None,
                network_mode=spec.network_mode or None,
                privileged=spec.privileged,
            )
            exposed_ports = list(spec.exposed_ports) or list(spec.port_bindings) or None
            created = self.client.create_container(
                image=spec.image,
                name=spec.name,
                command=list(spec.command) or None,
                environment=spec.environment or None,
                ports=exposed_ports,
                labels=spec.labels or None,
                host_config=host_config,
            )
        return str(created["Id"])

    def start_container(self, container_id: str) -> None:
        with _translate_errors(f"start container '{container_id}'"):
            self.client.start(container_id)

    def remove_container(
        self, container_id: str, *, force: bool = True, with_volumes: bool = True
    ) -> None:
        LOGGER.debug(f"Removing container '{container_id}'.")
        with _translate_errors(f"remove container '{container_id}'"):
            self.client.remove_container(container_id, v=with_volumes, force=force)

    def pull_image(self, image: str) -> None:
        repository, tag = split_image(image)
        LOGGER.info(f"Pulling image '{repository}:{tag}'.")
        with _translate_errors(f"pull image '{image}'"):
            self.client.pull(repository, tag=tag)

    def image_exists(self, image: str) -> bool:
        try:
            with _translate_errors(f"inspect image '{image}'"):
                self.client.inspect_image(image)
        except NotFoundError:
            return False
        return True

    def inspect_container(self, container_id: str) -> dict[str, tp.Any]:
        with _translate_errors(f"inspect container '{container_id}'"):
            return dict(self.client.inspect_container(container_id))

    def get_ip_address(self, container_id: str) -> str:
        network_settings = self.inspect_container(container_id).get("NetworkSettings") or {}
        ip_address = network_settings.get("IPAddress") or ""
        if ip_address:
            return str(ip_address)
        # Containers on user-defined networks have the address only per network
        for network in (network_settings.get("Networks") or {}).values():
            if network.get("IPAddress"):
                return str(network["IPAddress"])
        return ""

    def is_running(self, container_id: str) -> bool:
        state = self.inspect_container(container_id).get("State") or {}
        return bool(state.get("Running"))
