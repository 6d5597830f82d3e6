"""Persisting ID of the current cluster, so other invocations can reattach to it."""

import logging
import pathlib as pl

from minimesos.cluster import docker_gateway
from minimesos.cluster import errors
from minimesos.cluster import mesos_cluster
from minimesos.utils import configuration
from minimesos.utils import locking

LOGGER = logging.getLogger(__name__)

REGISTRY_DIR = ".minimesos"
REGISTRY_FILE = "minimesos.cluster"


class ClusterRepository:
    """Registry of the current cluster, a file with the cluster ID."""

    def __init__(self, host_dir: pl.Path | None = None) -> None:
        self.host_dir = host_dir or configuration.HOST_DIR

    @property
    def cluster_file(self) -> pl.Path:
        return self.host_dir / REGISTRY_DIR / REGISTRY_FILE

    def save_cluster_id(self, cluster: mesos_cluster.MesosCluster) -> None:
        """Record the cluster as the current one, replacing any previous record."""
        cluster_file = self.cluster_file
        cluster_file.parent.mkdir(parents=True, exist_ok=True)
        with locking.registry_lock(cluster_file):
            cluster_file.write_text(cluster.cluster_id, encoding="utf-8")
        LOGGER.debug(f"Saved ID of cluster {cluster.cluster_id} to '{cluster_file}'.")

    def get_cluster_id(self) -> str:
        """Return ID of the current cluster, or empty string if there's none."""
        cluster_file = self.cluster_file
        if not cluster_file.exists():
            return ""
        with locking.registry_lock(cluster_file):
            try:
                return cluster_file.read_text(encoding="utf-8").strip()
            except FileNotFoundError:
                return ""

    def delete_cluster_file(self) -> None:
        cluster_file = self.cluster_file
        if not cluster_file.parent.exists():
            return
        with locking.registry_lock(cluster_file):
            cluster_file.unlink(missing_ok=True)

    def load_cluster(
        self, *, gateway: docker_gateway.RuntimeGateway | None = None
    ) -> mesos_cluster.MesosCluster | None:
        """Reattach to the current cluster.

        When containers of the recorded cluster are gone, the record is deleted.
        """
        cluster_id = self.get_cluster_id()
        if not cluster_id:
            return None

        try:
            return mesos_cluster.MesosCluster.load_cluster(cluster_id, gateway=gateway)
        except errors.ReattachError:
            LOGGER.info(f"Containers of cluster {cluster_id} are gone, forgetting the cluster.")
            self.delete_cluster_file()
            return None
