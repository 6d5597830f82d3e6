"""Commands working with the current cluster, as recorded in the cluster registry.

Unlike `MesosCluster`, the commands tolerate the state of the cluster not matching the
request, e.g. `up` on an already running cluster just reports it.
"""

import dataclasses
import json
import logging
import pathlib as pl
import typing as tp

from minimesos.cluster import architecture
from minimesos.cluster import cluster_config
from minimesos.cluster import docker_gateway
from minimesos.cluster import errors
from minimesos.cluster import mesos_cluster
from minimesos.cluster import repository as cluster_repository
from minimesos.cluster.cluster_config import Role
from minimesos.utils import configuration
from minimesos.utils import locations

LOGGER = logging.getLogger(__name__)

NOT_RUNNING_MSG = "Minimesos cluster is not running"


def load_cluster_config(
    location: str = configuration.CLUSTER_CONFIG_FILE,
) -> cluster_config.ClusterConfig:
    """Load cluster configuration from file or URI.

    When the default configuration file doesn't exist, default configuration is returned.
    """
    content = locations.read_location(location)
    if content is not None:
        return cluster_config.parse_cluster_config(content.decode("utf-8"))
    if location == configuration.CLUSTER_CONFIG_FILE:
        LOGGER.debug(f"No '{location}' found, using default cluster configuration.")
        return cluster_config.ClusterConfig()

    msg = f"Cluster configuration '{location}' not found"
    raise errors.ConfigurationError(msg)


def up(
    config: cluster_config.ClusterConfig,
    *,
    gateway: docker_gateway.RuntimeGateway | None = None,
    repository: cluster_repository.ClusterRepository | None = None,
    out: tp.TextIO | None = None,
) -> mesos_cluster.MesosCluster:
    """Start a new cluster, unless a cluster is already running."""
    repository = repository or cluster_repository.ClusterRepository()

    cluster = repository.load_cluster(gateway=gateway)
    if cluster is not None:
        print(f"Cluster {cluster.cluster_id} is already running", file=out)
        return cluster

    cluster = mesos_cluster.MesosCluster(
        architecture.ClusterArchitecture.from_config(config), gateway=gateway
    )
    # Recorded before the start, so a partially started cluster can be destroyed
    repository.save_cluster_id(cluster)
    cluster.start()
    cluster.print_service_urls(out)
    return cluster


def destroy(
    *,
    gateway: docker_gateway.RuntimeGateway | None = None,
    repository: cluster_repository.ClusterRepository | None = None,
    out: tp.TextIO | None = None,
) -> None:
    """Destroy the current cluster and forget it."""
    repository = repository or cluster_repository.ClusterRepository()

    cluster = repository.load_cluster(gateway=gateway)
    if cluster is None:
        print(NOT_RUNNING_MSG, file=out)
        return

    try:
        cluster.destroy()
    finally:
        repository.delete_cluster_file()
    print(f"Destroyed minimesos cluster {cluster.cluster_id}", file=out)


def _require_cluster(
    gateway: docker_gateway.RuntimeGateway | None,
    repository: cluster_repository.ClusterRepository | None,
) -> mesos_cluster.MesosCluster:
    repository = repository or cluster_repository.ClusterRepository()
    cluster = repository.load_cluster(gateway=gateway)
    if cluster is None:
        raise errors.MinimesosError(NOT_RUNNING_MSG)
    return cluster


def info(
    *,
    gateway: docker_gateway.RuntimeGateway | None = None,
    repository: cluster_repository.ClusterRepository | None = None,
    out: tp.TextIO | None = None,
) -> None:
    repository = repository or cluster_repository.ClusterRepository()
    cluster = repository.load_cluster(gateway=gateway)
    if cluster is None:
        print(NOT_RUNNING_MSG, file=out)
        return
    cluster.info(out)


def state(
    agent_id: str = "",
    *,
    gateway: docker_gateway.RuntimeGateway | None = None,
    repository: cluster_repository.ClusterRepository | None = None,
    out: tp.TextIO | None = None,
) -> None:
    """Print state JSON of the master, or of the agent with given container ID (prefix)."""
    cluster = _require_cluster(gateway, repository)
    if agent_id:
        state_info = cluster.get_agent_state_info(agent_id)
    else:
        state_info = cluster.get_cluster_state_info()
    print(json.dumps(state_info, indent=2), file=out)


def install(
    location: str,
    *,
    gateway: docker_gateway.RuntimeGateway | None = None,
    repository: cluster_repository.ClusterRepository | None = None,
    out: tp.TextIO | None = None,
) -> None:
    """Deploy Marathon app defined in the file or URI on the current cluster."""
    cluster = _require_cluster(gateway, repository)
    content = locations.read_location(location)
    if content is None:
        msg = f"Failed to find content of '{location}'"
        raise errors.ManifestNotFoundError(msg)

    deployed = cluster.install(content.decode("utf-8"))
    print(f"Installed app '{deployed.get('id', '')}' on cluster {cluster.cluster_id}", file=out)


def ps(
    *,
    gateway: docker_gateway.RuntimeGateway | None = None,
    repository: cluster_repository.ClusterRepository | None = None,
    out: tp.TextIO | None = None,
) -> None:
    """Print containers of the current cluster."""
    repository = repository or cluster_repository.ClusterRepository()
    cluster = repository.load_cluster(gateway=gateway)
    if cluster is None:
        print(NOT_RUNNING_MSG, file=out)
        return

    print(f"{'Role':<15} {'Name':<70} {'Container ID'}", file=out)
    for container in cluster.get_containers():
        print(f"{container.role:<15} {container.name:<70} {container.container_id}", file=out)


def init(host_dir: pl.Path | None = None, *, out: tp.TextIO | None = None) -> pl.Path:
    """Write default cluster configuration file."""
    config_file = (host_dir or configuration.HOST_DIR) / configuration.CLUSTER_CONFIG_FILE
    if config_file.exists():
        msg = f"A '{config_file}' file already exists, refusing to overwrite it"
        raise errors.MinimesosError(msg)

    config = dataclasses.replace(
        cluster_config.ClusterConfig(),
        marathon=cluster_config.default_service_config(Role.MARATHON),
    )
    config_file.write_text(cluster_config.dump_cluster_config(config), encoding="utf-8")
    print(f"Initialized minimesos cluster configuration in '{config_file}'", file=out)
    return config_file
