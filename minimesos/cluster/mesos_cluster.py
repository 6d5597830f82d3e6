"""Lifecycle of a local Mesos cluster made of Docker containers.

The cluster is either built fresh from `ClusterArchitecture`, or reconstructed from running
containers just by its ID (see `MesosCluster.load_cluster`). Cluster membership is recorded
only in container names, see `container_names`.
"""

import datetime
import logging
import pathlib as pl
import shutil
import typing as tp

import requests

from minimesos.cluster import architecture
from minimesos.cluster import cluster_config
from minimesos.cluster import container_names
from minimesos.cluster import docker_gateway
from minimesos.cluster import errors
from minimesos.cluster import services
from minimesos.cluster import shutdown
from minimesos.cluster import state
from minimesos.cluster.cluster_config import Role
from minimesos.utils import configuration
from minimesos.utils import helpers
from minimesos.utils import locations
from minimesos.utils import waiting

LOGGER = logging.getLogger(__name__)

# Role of a reattached container -> role of the container it is linked to
REATTACH_LINKS: dict[str, str] = {
    Role.MASTER: Role.ZOOKEEPER,
    Role.AGENT: Role.ZOOKEEPER,
    Role.MARATHON: Role.ZOOKEEPER,
    Role.REGISTRATOR: Role.CONSUL,
}


def _get_member_name(
    info: docker_gateway.ContainerInfo, cluster_id: str
) -> container_names.ContainerName | None:
    for name in info.names:
        parsed = container_names.parse_container_name(name)
        if parsed is not None and parsed.cluster_id == cluster_id:
            return parsed
    return None


def _get_creation_key(
    info: docker_gateway.ContainerInfo, *, gateway: docker_gateway.RuntimeGateway
) -> tuple[int, float]:
    """Return key for sorting containers by creation time.

    The container list has creation time in whole seconds only, the inspected container
    has it precise.
    """
    try:
        created = gateway.inspect_container(info.id).get("Created") or ""
        precise = datetime.datetime.fromisoformat(str(created)).timestamp()
    except (docker_gateway.NotFoundError, ValueError):
        precise = 0.0
    return info.created, precise


def destroy_containers(
    cluster_id: str, *, gateway: docker_gateway.RuntimeGateway | None = None
) -> list[str]:
    """Force remove all containers that belong to the cluster, including their volumes.

    Containers that are already gone are skipped.

    Returns:
        list[str]: Messages about containers that failed to be removed.
    """
    gateway = gateway or docker_gateway.DockerGateway()
    failures = []
    for info in gateway.list_containers():
        if not container_names.belongs_to_cluster(info.names, cluster_id):
            continue
        name = container_names.get_from_docker_names(info.names)
        try:
            gateway.remove_container(info.id, force=True, with_volumes=True)
        except docker_gateway.NotFoundError:
            LOGGER.error(f"Cannot remove container '{name}', maybe it's already dead?")
        except docker_gateway.GatewayError as exc:
            LOGGER.error(f"Failed to remove container '{name}': {exc}")
            failures.append(f"{name}: {exc}")
        else:
            LOGGER.debug(f"Removed container '{name}' ({info.id}).")

    LOGGER.info(f"Destroyed minimesos cluster {cluster_id}")
    return failures


class MesosCluster:
    """Local Mesos cluster.

    Containers are started one by one, in the order of the architecture, as each of them
    needs addresses of the containers started before.
    """

    def __init__(
        self,
        cluster_architecture: architecture.ClusterArchitecture | None = None,
        *,
        gateway: docker_gateway.RuntimeGateway | None = None,
        cluster_id: str = "",
    ) -> None:
        cluster_architecture = cluster_architecture or architecture.ClusterArchitecture()
        self.config = cluster_architecture.config
        self.gateway: docker_gateway.RuntimeGateway = gateway or docker_gateway.DockerGateway()
        self.cluster_id = cluster_id or helpers.get_rand_id()
        if container_names.SEPARATOR in self.cluster_id:
            msg = f"Invalid cluster ID '{self.cluster_id}'"
            raise errors.ConfigurationError(msg)

        self.expose_ports = self.config.expose_ports
        self.running = False
        self._containers: list[services.ClusterContainer] = []
        self._shutdown_hook: shutdown.ShutdownHook | None = None

        for container in cluster_architecture.containers:
            container.attach(self)
            self._containers.append(container)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(cluster_id={self.cluster_id!r}, "
            f"running={self.running}, containers={self._containers!r})"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MesosCluster):
            return NotImplemented
        return self.cluster_id == other.cluster_id

    def __hash__(self) -> int:
        return hash(self.cluster_id)

    def __enter__(self) -> "MesosCluster":
        self._shutdown_hook = shutdown.ShutdownHook(
            lambda: destroy_containers(self.cluster_id, gateway=self.gateway),
            name=f"destroy cluster {self.cluster_id}",
        )
        self._shutdown_hook.register()
        try:
            self.start()
        except BaseException:
            self._shutdown_hook.unregister()
            self._shutdown_hook = None
            raise
        return self

    def __exit__(self, *args: tp.Any) -> None:
        try:
            self.stop()
        finally:
            if self._shutdown_hook is not None:
                self._shutdown_hook.unregister()
                self._shutdown_hook = None

    @classmethod
    def load_cluster(
        cls, cluster_id: str, *, gateway: docker_gateway.RuntimeGateway | None = None
    ) -> "MesosCluster":
        """Reconstruct running cluster from its containers."""
        cluster = cls(gateway=gateway, cluster_id=cluster_id)
        members = [
            (info, member)
            for info in cluster.gateway.list_containers()
            if (member := _get_member_name(info, cluster_id)) is not None
        ]
        members.sort(key=lambda m: _get_creation_key(m[0], gateway=cluster.gateway))

        for info, member in members:
            container_cls = services.ROLE_CLASSES.get(member.role)
            if container_cls is None:
                LOGGER.debug(f"Skipping container '{member}' of unknown role.")
                continue

            container = container_cls(uuid=member.uuid, container_id=info.id)
            container.attach(cluster)
            cluster._containers.append(container)

            if member.role == Role.MASTER and any(
                p.private_port == container.port_number and p.ip for p in info.ports
            ):
                cluster.expose_ports = True

        if not cluster._containers:
            msg = f"No containers found for cluster ID {cluster_id}"
            raise errors.ReattachError(msg)

        for container in cluster._containers:
            linked_role = REATTACH_LINKS.get(container.role)
            linked = cluster._get_one(linked_role) if linked_role else None
            if linked is not None:
                container.link(linked)

        cluster.running = True
        LOGGER.debug(f"Reattached to cluster {cluster_id}: {cluster._containers}")
        return cluster

    @property
    def cluster_name(self) -> str:
        return self.config.cluster_name or f"{container_names.PRODUCT}-{self.cluster_id}"

    @property
    def sandbox_dir(self) -> pl.Path:
        return (
            configuration.HOST_DIR
            / ".sandbox"
            / f"{container_names.PRODUCT}{container_names.SEPARATOR}{self.cluster_id}"
        )

    def get_containers(self) -> list[services.ClusterContainer]:
        return list(self._containers)

    def get_by_uuid(self, uuid: str) -> services.ClusterContainer | None:
        for container in self._containers:
            if container.uuid == uuid:
                return container
        return None

    def _get_one(self, role: str) -> services.ClusterContainer | None:
        for container in self._containers:
            if container.role == role:
                return container
        return None

    def get_agents(self) -> list[services.MesosAgentContainer]:
        return [c for c in self._containers if isinstance(c, services.MesosAgentContainer)]

    def get_master(self) -> services.MesosMasterContainer | None:
        return tp.cast(services.MesosMasterContainer | None, self._get_one(Role.MASTER))

    def get_zookeeper(self) -> services.ZooKeeperContainer | None:
        return tp.cast(services.ZooKeeperContainer | None, self._get_one(Role.ZOOKEEPER))

    def get_marathon(self) -> services.MarathonContainer | None:
        return tp.cast(services.MarathonContainer | None, self._get_one(Role.MARATHON))

    def get_consul(self) -> services.ConsulContainer | None:
        return tp.cast(services.ConsulContainer | None, self._get_one(Role.CONSUL))

    def get_registrator(self) -> services.RegistratorContainer | None:
        return tp.cast(services.RegistratorContainer | None, self._get_one(Role.REGISTRATOR))

    def _require_master(self) -> services.MesosMasterContainer:
        master = self.get_master()
        if master is None:
            msg = f"Cluster {self.cluster_id} has no Mesos master."
            raise errors.ServiceNotFoundError(msg)
        return master

    def start(self, timeout: float | None = None) -> None:
        """Start all containers and wait until the cluster is ready.

        When the start fails, already started containers are left running. Use `destroy`
        to clean them up.
        """
        if self.running:
            msg = f"Cluster {self.cluster_id} is already running"
            raise errors.AlreadyRunningError(msg)

        timeout = timeout or self.config.timeout
        LOGGER.info(f"Starting cluster {self.cluster_id}.")

        for container in self._containers:
            container.start(timeout)
            LOGGER.debug(f"Started container '{container.name}' ({container.container_id}).")

        self.wait_for_state(timeout=timeout)
        for container in self._containers:
            if isinstance(container, services.MesosMasterContainer):
                continue
            container.wait_for_ready(timeout)

        self.install_marathon_apps()

        self.running = True
        LOGGER.info(f"Cluster {self.cluster_id} started.")

    def stop(self) -> None:
        """Remove containers in the reverse order of their creation.

        Containers that are already gone are skipped. The cluster is considered stopped
        even when some removals failed.
        """
        LOGGER.debug(f"Stopping cluster {self.cluster_id}.")
        failures = []
        for container in reversed(self._containers):
            if not container.container_id:
                continue
            try:
                container.remove()
            except docker_gateway.NotFoundError:
                LOGGER.error(
                    f"Cannot remove container {container.container_id}, maybe it's already dead?"
                )
            except docker_gateway.GatewayError as exc:
                LOGGER.error(f"Failed to remove container {container.container_id}: {exc}")
                failures.append(f"{container.container_id}: {exc}")
            else:
                LOGGER.debug(f"Removed container '{container.name}' ({container.container_id}).")

        self._containers.clear()
        self.running = False

        if failures:
            msg = f"Failed to stop {len(failures)} container(s) of cluster {self.cluster_id}"
            raise errors.TeardownError(msg, errors=failures)

    def destroy(self) -> None:
        """Remove all containers of the cluster, including those unknown to this instance.

        Apps deployed on Marathon are deleted first, so they don't leave their own
        containers behind. Finally the sandbox directory of the cluster is deleted.
        """
        marathon = self.get_marathon()
        if marathon is not None and marathon.container_id:
            try:
                marathon.kill_all_apps()
            except docker_gateway.GatewayError as exc:
                LOGGER.warning(
                    f"Failed to delete Marathon apps of cluster {self.cluster_id}: {exc}"
                )

        failures = destroy_containers(self.cluster_id, gateway=self.gateway)
        self._containers.clear()
        self.running = False

        try:
            shutil.rmtree(self.sandbox_dir)
        except FileNotFoundError:
            pass
        except OSError as exc:
            LOGGER.error(f"Failed to delete sandbox '{self.sandbox_dir}': {exc}")
            failures.append(f"sandbox {self.sandbox_dir}: {exc}")

        if failures:
            msg = f"Failed to destroy cluster {self.cluster_id}, {len(failures)} removal(s) failed"
            raise errors.TeardownError(msg, errors=failures)

    def add_and_start_container(
        self, container: services.ClusterContainer, timeout: float | None = None
    ) -> str:
        """Start one more container as a part of the cluster.

        The container is linked to the containers of services it depends on. It is added to
        the cluster only when it was started successfully.
        """
        if (
            container.role in cluster_config.SINGLETON_ROLES
            and self._get_one(container.role) is not None
        ):
            msg = f"Cluster {self.cluster_id} already has a '{container.role}' container."
            raise errors.ConfigurationError(msg)

        depends_on = container.config.depends_on if container.config else ()
        for role in depends_on:
            linked = self._get_one(role)
            if linked is None:
                msg = (
                    f"The '{container.role}' container depends on '{role}', "
                    f"which is not a part of cluster {self.cluster_id}."
                )
                raise errors.ConfigurationError(msg)
            container.link(linked)

        container.attach(self)
        try:
            container.start(timeout or self.config.timeout)
        except (errors.ContainerStartError, errors.AlreadyRunningError):
            raise
        except errors.MinimesosError as exc:
            msg = f"Failed to start '{container.role}' container of cluster {self.cluster_id}"
            raise errors.ContainerStartError(msg) from exc

        self._containers.append(container)
        LOGGER.debug(f"Added container '{container.name}' ({container.container_id}).")
        return container.container_id

    def install(self, marathon_json: str) -> dict[str, tp.Any]:
        """Deploy app on Marathon of the cluster."""
        marathon = self.get_marathon()
        if marathon is None:
            msg = f"Cluster {self.cluster_id} has no Marathon to install the app on."
            raise errors.ServiceNotFoundError(msg)
        return marathon.deploy_app(marathon_json)

    def install_marathon_apps(self) -> None:
        """Deploy apps from Marathon configuration, stop on the first failure."""
        marathon = self.get_marathon()
        if marathon is None or marathon.config is None:
            return

        for app in marathon.config.apps:
            content = locations.read_location(app.marathon_json)
            if content is None:
                msg = f"Failed to find content of '{app.marathon_json}'"
                raise errors.ManifestNotFoundError(msg)
            self.install(content.decode("utf-8"))

    def wait_for_state(
        self,
        predicate: tp.Callable[[state.ClusterState], tp.Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> state.ClusterState:
        """Wait until the state of the master satisfies the predicate.

        Without the predicate, wait until the master returns any state.
        """
        master = self._require_master()

        def _fetch() -> state.ClusterState | None:
            try:
                return state.ClusterState.from_json(master.get_state_info())
            except (docker_gateway.InternalServerError, requests.exceptions.HTTPError) as exc:
                LOGGER.error(f"Failed to get state of cluster {self.cluster_id}: {exc}")
            return None

        def _check(cluster_state: state.ClusterState | None) -> bool:
            if cluster_state is None:
                return False
            return predicate is None or bool(predicate(cluster_state))

        found = waiting.wait_for(
            _fetch,
            _check,
            timeout=timeout or self.config.timeout,
            propagate=(errors.ServiceNotFoundError,),
            message=f"state of cluster {self.cluster_id}",
        )
        return tp.cast(state.ClusterState, found)

    def get_cluster_state_info(self) -> dict[str, tp.Any]:
        """Return state JSON of the Mesos master."""
        master = self._require_master()
        try:
            return master.get_state_info()
        except (requests.exceptions.RequestException, ValueError) as exc:
            msg = f"Failed to retrieve state of cluster {self.cluster_id} from Mesos master"
            raise errors.ServiceRequestError(msg) from exc

    def get_agent_state_info(self, container_id: str) -> dict[str, tp.Any]:
        """Return state JSON of the agent with given (prefix of) container ID."""
        agents = [a for a in self.get_agents() if a.container_id.startswith(container_id)]
        if not agents:
            msg = f"No agent container '{container_id}' in cluster {self.cluster_id}"
            raise errors.ServiceNotFoundError(msg)
        if len(agents) > 1:
            msg = f"Provided ID '{container_id}' is not enough to uniquely identify container"
            raise errors.MinimesosError(msg)

        agent = agents[0]
        try:
            return agent.get_state_info()
        except (requests.exceptions.RequestException, ValueError) as exc:
            msg = f"Failed to retrieve state from Mesos agent container {agent.container_id}"
            raise errors.ServiceRequestError(msg) from exc

    def get_service_urls(self) -> list[str]:
        """Return shell `export` lines with URLs of the cluster services."""
        host_ip = configuration.DOCKER_HOST_IP if self.expose_ports else ""
        lines = []
        for container in self._containers:
            ip_address = host_ip or container.ip_address
            if container.role == Role.MASTER:
                lines.append(
                    f"export MINIMESOS_MASTER=http://{ip_address}:{container.port_number}"
                )
            elif container.role == Role.MARATHON:
                lines.append(
                    f"export MINIMESOS_MARATHON=http://{ip_address}:{container.port_number}"
                )
            elif container.role == Role.ZOOKEEPER:
                zk_address = services.ZooKeeperContainer.formatted_zk_address(
                    ip_address, port=container.port_number
                )
                lines.append(f"export MINIMESOS_ZOOKEEPER={zk_address}")
            elif container.role == Role.CONSUL:
                lines.append(
                    f"export MINIMESOS_CONSUL=http://{ip_address}:{container.port_number}"
                )
                lines.append(f"export MINIMESOS_CONSUL_IP={ip_address}")
        return lines

    def print_service_urls(self, out: tp.TextIO | None = None) -> None:
        for line in self.get_service_urls():
            print(line, file=out)

    def info(self, out: tp.TextIO | None = None) -> None:
        """Print information about the running cluster."""
        print(f"Minimesos cluster is running: {self.cluster_id}", file=out)
        master = self.get_master()
        if master is not None and master.config is not None:
            print(f"Mesos version: {master.config.image_tag}", file=out)
        self.print_service_urls(out)
