"""Pytest plugin providing a local Mesos cluster to tests.

Enable it with `-p minimesos.pytest_plugins.cluster_fixture`, or list it in `pytest_plugins`
of the top-level `conftest.py`.
"""

import logging
import typing as tp

import pytest

from minimesos.cluster import architecture
from minimesos.cluster import cluster_config
from minimesos.cluster import commands
from minimesos.cluster import mesos_cluster as cluster_lib

LOGGER = logging.getLogger(__name__)


def pytest_addoption(parser: tp.Any) -> None:
    parser.addoption(
        "--minimesos-config",
        action="store",
        default="",
        help="Path or URI of the cluster configuration file (default configuration if unset).",
    )


@pytest.fixture(scope="session")
def mesos_cluster_config(request: pytest.FixtureRequest) -> cluster_config.ClusterConfig:
    location = request.config.getoption("--minimesos-config")
    if location:
        return commands.load_cluster_config(location)
    return commands.load_cluster_config()


@pytest.fixture(scope="session")
def mesos_cluster(
    mesos_cluster_config: cluster_config.ClusterConfig,
) -> tp.Generator[cluster_lib.MesosCluster, None, None]:
    """Start a cluster for the whole test session, destroy it at the end."""
    cluster = cluster_lib.MesosCluster(
        architecture.ClusterArchitecture.from_config(mesos_cluster_config)
    )
    LOGGER.info(f"Starting minimesos cluster {cluster.cluster_id} for the test session.")
    try:
        with cluster:
            yield cluster
    finally:
        cluster.destroy()
