"""Containers of cluster services.

Each service role has its own container class that knows how to build a creation request
for the container runtime and how to detect that the service is ready.

Containers refer to the services they depend on (e.g. agent to ZooKeeper) only by UUID.
The referenced container is looked up in the owning cluster.
"""

import abc
import json
import logging
import pathlib as pl
import socket
import typing as tp

import requests

from minimesos.cluster import cluster_config
from minimesos.cluster import container_names
from minimesos.cluster import docker_gateway
from minimesos.cluster import errors
from minimesos.cluster.cluster_config import Role
from minimesos.utils import configuration
from minimesos.utils import helpers
from minimesos.utils import http_client
from minimesos.utils import waiting

if tp.TYPE_CHECKING:
    from minimesos.cluster.mesos_cluster import MesosCluster

LOGGER = logging.getLogger(__name__)

CLUSTER_LABEL = "minimesos.cluster"
ROLE_LABEL = "minimesos.role"

MESOS_MASTER_WORK_DIR = "/var/lib/mesos"
MESOS_AGENT_WORK_DIR = "/tmp/mesos"
DOCKER_SOCKET = "/var/run/docker.sock"


class ClusterContainer(abc.ABC):
    """Base of containers of cluster services."""

    role: str = ""

    def __init__(
        self,
        config: cluster_config.ServiceConfig | None = None,
        *,
        uuid: str = "",
        container_id: str = "",
    ) -> None:
        if config is None and self.role in set(Role):
            config = cluster_config.default_service_config(Role(self.role))
        self.config = config
        self.uuid = uuid or helpers.get_instance_token()
        self.container_id = container_id
        # Role -> UUID of the linked container
        self.links: dict[str, str] = {}

        self._cluster: "MesosCluster | None" = None
        self._ip_address = ""

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(role={self.role!r}, uuid={self.uuid!r}, "
            f"container_id={self.container_id!r})"
        )

    @property
    def cluster(self) -> "MesosCluster":
        if self._cluster is None:
            msg = f"Container '{self.role}' ({self.uuid}) is not attached to any cluster."
            raise errors.MinimesosError(msg)
        return self._cluster

    def attach(self, cluster: "MesosCluster") -> None:
        """Make the container a part of the cluster."""
        self._cluster = cluster

    @property
    def cluster_id(self) -> str:
        return self.cluster.cluster_id

    @property
    def gateway(self) -> docker_gateway.RuntimeGateway:
        return self.cluster.gateway

    @property
    def name(self) -> str:
        return container_names.get_container_name(
            role=self.role, cluster_id=self.cluster_id, uuid=self.uuid
        )

    @property
    def image(self) -> str:
        if self.config is None:
            msg = f"Image of the '{self.role}' container is not configured."
            raise errors.ConfigurationError(msg)
        return self.config.image

    @property
    def port_number(self) -> int:
        return self.config.port_number if self.config else 0

    @property
    def ip_address(self) -> str:
        if not self._ip_address and self.container_id:
            self._ip_address = self.gateway.get_ip_address(self.container_id)
        return self._ip_address

    def link(self, container: "ClusterContainer") -> None:
        """Link the container to a container it depends on."""
        self.links[container.role] = container.uuid

    def get_linked(self, role: str) -> "ClusterContainer | None":
        """Return the linked container of given role."""
        uuid = self.links.get(role)
        if not uuid:
            return None
        return self.cluster.get_by_uuid(uuid)

    def require_linked(self, role: str) -> "ClusterContainer":
        linked = self.get_linked(role)
        if linked is None:
            msg = f"The '{self.role}' container of cluster {self.cluster_id} needs '{role}'."
            raise errors.ServiceNotFoundError(msg)
        return linked

    def get_labels(self) -> dict[str, str]:
        return {CLUSTER_LABEL: self.cluster_id, ROLE_LABEL: self.role}

    @abc.abstractmethod
    def build_create_request(self) -> docker_gateway.ContainerSpec:
        """Return request for creation of the container."""

    def is_ready(self) -> bool:
        """Check that the service is ready."""
        return bool(self.container_id) and self.gateway.is_running(self.container_id)

    def wait_for_ready(self, timeout: float) -> None:
        waiting.wait_for(self.is_ready, timeout=timeout, message=f"'{self.name}' to be ready")

    def prepare(self) -> None:
        """Prepare host resources needed by the container."""

    def pull_image(self) -> None:
        """Pull the image if it is not available locally."""
        if not self.gateway.image_exists(self.image):
            self.gateway.pull_image(self.image)

    def start(self, timeout: float) -> str:
        """Create and start the container, wait until it is running.

        Returns:
            str: ID of the started container.
        """
        if self.container_id:
            msg = f"Container '{self.name}' ({self.container_id}) was already started."
            raise errors.AlreadyRunningError(msg)

        try:
            self.pull_image()
            self.prepare()
            spec = self.build_create_request()
            self.container_id = self.gateway.create_container(spec)
            LOGGER.debug(f"Starting container '{self.name}' ({self.container_id}).")
            self.gateway.start_container(self.container_id)
            waiting.wait_for(
                lambda: self.gateway.is_running(self.container_id),
                timeout=timeout,
                propagate=(docker_gateway.NotFoundError,),
                message=f"container '{self.name}' to be running",
            )
        except (docker_gateway.GatewayError, errors.ClusterTimeoutError) as exc:
            msg = (
                f"Failed to start '{self.name}' ({self.container_id or 'not created'}) "
                f"container of cluster {self.cluster_id}"
            )
            raise errors.ContainerStartError(msg) from exc

        return self.container_id

    def remove(self) -> None:
        """Force remove the container together with its volumes."""
        if not self.container_id:
            return
        self.gateway.remove_container(self.container_id, force=True, with_volumes=True)
        self._ip_address = ""

    def _get_url(self, path: str, *, port: int | None = None) -> str:
        return f"http://{self.ip_address}:{port or self.port_number}{path}"

    def _get_json(self, path: str) -> tp.Any:
        return http_client.get_json(self._get_url(path))


class ZooKeeperContainer(ClusterContainer):
    """ZooKeeper, the service through which other services find each other."""

    role = Role.ZOOKEEPER
    PEER_PORTS = (2888, 3888)

    @staticmethod
    def formatted_zk_address(
        ip_address: str, *, path: str = "mesos", port: int = cluster_config.ZOOKEEPER_PORT
    ) -> str:
        return f"zk://{ip_address}:{port}/{path}"

    def get_formatted_zk_address(self, *, path: str = "mesos") -> str:
        return self.formatted_zk_address(self.ip_address, path=path, port=self.port_number)

    def build_create_request(self) -> docker_gateway.ContainerSpec:
        return docker_gateway.ContainerSpec(
            name=self.name,
            image=self.image,
            exposed_ports=(self.port_number, *self.PEER_PORTS),
            labels=self.get_labels(),
        )

    def is_ready(self) -> bool:
        try:
            with socket.create_connection(
                (self.ip_address, self.port_number), timeout=configuration.HTTP_TIMEOUT
            ):
                return True
        except OSError:
            return False


class MesosContainer(ClusterContainer):
    """Common functionality of Mesos master and agent."""

    def get_zk_address(self) -> str:
        zookeeper = tp.cast(ZooKeeperContainer, self.require_linked(Role.ZOOKEEPER))
        return zookeeper.get_formatted_zk_address()

    def get_mesos_env(self) -> dict[str, str]:
        return {
            "MESOS_PORT": str(self.port_number),
            "MESOS_LOGGING_LEVEL": self.cluster.config.logging_level,
        }

    def get_state_info(self) -> dict[str, tp.Any]:
        """Return state JSON of the Mesos process."""
        return dict(self._get_json("/state.json"))

    def is_ready(self) -> bool:
        try:
            return bool(self.get_state_info())
        except (requests.exceptions.RequestException, ValueError):
            return False


class MesosMasterContainer(MesosContainer):
    role = Role.MASTER

    def build_create_request(self) -> docker_gateway.ContainerSpec:
        env = {
            **self.get_mesos_env(),
            "MESOS_QUORUM": "1",
            "MESOS_ZK": self.get_zk_address(),
            "MESOS_CLUSTER": self.cluster.cluster_name,
            "MESOS_REGISTRY": "in_memory",
            "MESOS_WORK_DIR": MESOS_MASTER_WORK_DIR,
        }
        port = self.port_number
        return docker_gateway.ContainerSpec(
            name=self.name,
            image=self.image,
            environment=env,
            exposed_ports=(port,),
            port_bindings={port: port} if self.cluster.expose_ports else {},
            labels=self.get_labels(),
        )


class MesosAgentContainer(MesosContainer):
    role = Role.AGENT

    @property
    def sandbox_dir(self) -> pl.Path:
        return self.cluster.sandbox_dir / f"agent-{self.uuid}"

    def prepare(self) -> None:
        if self.cluster.config.map_agent_sandbox_volume:
            self.sandbox_dir.mkdir(parents=True, exist_ok=True)

    def build_create_request(self) -> docker_gateway.ContainerSpec:
        resources = (
            self.config.resources
            if self.config and self.config.resources
            else cluster_config.AgentResources()
        )
        env = {
            **self.get_mesos_env(),
            "MESOS_MASTER": self.get_zk_address(),
            "MESOS_RESOURCES": resources.to_mesos_string(),
            "MESOS_SWITCH_USER": "false",
            "MESOS_CONTAINERIZERS": "docker,mesos",
            "MESOS_ISOLATION": "cgroups/cpu,cgroups/mem",
            "MESOS_EXECUTOR_REGISTRATION_TIMEOUT": "5mins",
            "MESOS_WORK_DIR": MESOS_AGENT_WORK_DIR,
        }
        binds = [
            f"{DOCKER_SOCKET}:{DOCKER_SOCKET}",
            "/sys/fs/cgroup:/sys/fs/cgroup",
        ]
        if self.cluster.config.map_agent_sandbox_volume:
            binds.append(f"{self.sandbox_dir}:{MESOS_AGENT_WORK_DIR}")

        return docker_gateway.ContainerSpec(
            name=self.name,
            image=self.image,
            environment=env,
            exposed_ports=(self.port_number,),
            binds=tuple(binds),
            privileged=True,
            labels=self.get_labels(),
        )


class MarathonContainer(ClusterContainer):
    """Marathon, the service for deployment of long running applications."""

    role = Role.MARATHON

    def build_create_request(self) -> docker_gateway.ContainerSpec:
        zookeeper = tp.cast(ZooKeeperContainer, self.require_linked(Role.ZOOKEEPER))
        port = self.port_number
        return docker_gateway.ContainerSpec(
            name=self.name,
            image=self.image,
            command=(
                "--master",
                zookeeper.get_formatted_zk_address(),
                "--zk",
                zookeeper.get_formatted_zk_address(path="marathon"),
            ),
            exposed_ports=(port,),
            port_bindings={port: port} if self.cluster.expose_ports else {},
            labels=self.get_labels(),
        )

    def is_ready(self) -> bool:
        try:
            self._get_json("/v2/info")
        except (requests.exceptions.RequestException, ValueError):
            return False
        return True

    def deploy_app(self, app_json: str) -> dict[str, tp.Any]:
        """Deploy app defined by Marathon JSON."""
        try:
            app_id = json.loads(app_json).get("id", "")
        except (ValueError, AttributeError) as exc:
            msg = f"Invalid Marathon app definition: {exc}"
            raise errors.ConfigurationError(msg) from exc

        LOGGER.debug(f"Deploying app '{app_id}' on Marathon {self.ip_address}.")
        try:
            response = http_client.get_session().post(
                self._get_url("/v2/apps"),
                data=app_json,
                headers={"Content-Type": "application/json"},
                timeout=configuration.HTTP_DEPLOY_TIMEOUT,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as exc:
            msg = f"Failed to deploy app '{app_id}' on Marathon of cluster {self.cluster_id}"
            raise errors.ServiceRequestError(msg) from exc

        return dict(response.json())

    def get_app_ids(self) -> list[str]:
        """Return IDs of deployed apps."""
        return [str(app["id"]) for app in self._get_json("/v2/apps").get("apps") or []]

    def kill_all_apps(self) -> None:
        """Delete all deployed apps, failures are only logged."""
        try:
            app_ids = self.get_app_ids()
        except (
            requests.exceptions.RequestException,
            ValueError,
            KeyError,
            TypeError,
            AttributeError,
        ) as exc:
            LOGGER.warning(f"Failed to list Marathon apps of cluster {self.cluster_id}: {exc}")
            return

        for app_id in app_ids:
            path = f"/v2/apps{app_id}" if app_id.startswith("/") else f"/v2/apps/{app_id}"
            try:
                response = http_client.get_session().delete(
                    self._get_url(path),
                    params={"force": "true"},
                    timeout=configuration.HTTP_TIMEOUT,
                )
                response.raise_for_status()
            except requests.exceptions.RequestException as exc:  # noqa: PERF203
                LOGGER.warning(f"Failed to delete Marathon app '{app_id}': {exc}")
            else:
                LOGGER.debug(f"Deleted Marathon app '{app_id}'.")


class ConsulContainer(ClusterContainer):
    """Consul, the registry of services."""

    role = Role.CONSUL
    EXTRA_PORTS = (8300, 8301, 8302, 8400, "8600/udp")

    def build_create_request(self) -> docker_gateway.ContainerSpec:
        port = self.port_number
        return docker_gateway.ContainerSpec(
            name=self.name,
            image=self.image,
            environment={"SERVICE_IGNORE": "1"},
            command=("agent", "-server", "-bootstrap-expect", "1", "-client", "0.0.0.0"),
            exposed_ports=(port, *self.EXTRA_PORTS),
            port_bindings={port: port} if self.cluster.expose_ports else {},
            labels=self.get_labels(),
        )

    def is_ready(self) -> bool:
        try:
            return bool(self._get_json("/v1/status/leader"))
        except (requests.exceptions.RequestException, ValueError):
            return False


class RegistratorContainer(ClusterContainer):
    """Registrator, registers containers in Consul as they come online."""

    role = Role.REGISTRATOR

    def build_create_request(self) -> docker_gateway.ContainerSpec:
        consul = self.require_linked(Role.CONSUL)
        return docker_gateway.ContainerSpec(
            name=self.name,
            image=self.image,
            command=("-internal", f"consul://{consul.ip_address}:{consul.port_number}"),
            binds=(f"{DOCKER_SOCKET}:/tmp/docker.sock",),
            network_mode="host",
            labels=self.get_labels(),
        )


class GenericContainer(ClusterContainer):
    """Container defined by the caller, e.g. a framework scheduler."""

    def __init__(
        self,
        *,
        role: str,
        image: str,
        command: tp.Iterable[str] = (),
        environment: dict[str, str] | None = None,
        ports: tp.Iterable[int] = (),
        uuid: str = "",
        container_id: str = "",
    ) -> None:
        self.role = role
        super().__init__(None, uuid=uuid, container_id=container_id)
        self._image = image
        self.command = tuple(command)
        self.environment = dict(environment or {})
        self.ports = tuple(ports)

    @property
    def image(self) -> str:
        return self._image

    @property
    def port_number(self) -> int:
        return self.ports[0] if self.ports else 0

    def build_create_request(self) -> docker_gateway.ContainerSpec:
        return docker_gateway.ContainerSpec(
            name=self.name,
            image=self.image,
            environment=self.environment,
            command=self.command,
            exposed_ports=self.ports,
            labels=self.get_labels(),
        )


# Role token (as found in container name) -> container class
ROLE_CLASSES: dict[str, type[ClusterContainer]] = {
    Role.ZOOKEEPER: ZooKeeperContainer,
    Role.MASTER: MesosMasterContainer,
    Role.AGENT: MesosAgentContainer,
    Role.MARATHON: MarathonContainer,
    Role.CONSUL: ConsulContainer,
    Role.REGISTRATOR: RegistratorContainer,
}


def create_container(config: cluster_config.ServiceConfig) -> ClusterContainer:
    """Return container for the configured service."""
    return ROLE_CLASSES[config.role](config)
