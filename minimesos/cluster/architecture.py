"""Ordered collection of containers a cluster is built from."""

import logging

from minimesos.cluster import cluster_config
from minimesos.cluster import errors
from minimesos.cluster import services

LOGGER = logging.getLogger(__name__)


class ClusterArchitecture:
    """Containers of a cluster in the order they need to be started.

    A container can only be added after the containers it depends on.
    """

    def __init__(self, config: cluster_config.ClusterConfig | None = None) -> None:
        self.config = config or cluster_config.ClusterConfig()
        self.containers: list[services.ClusterContainer] = []

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(containers={self.containers!r})"

    def get_by_role(self, role: str) -> list[services.ClusterContainer]:
        return [c for c in self.containers if c.role == role]

    def add(self, container: services.ClusterContainer) -> "ClusterArchitecture":
        """Add container and link it to the containers it depends on."""
        if container.role in cluster_config.SINGLETON_ROLES and self.get_by_role(container.role):
            msg = f"Only one '{container.role}' container can be part of the cluster."
            raise errors.ConfigurationError(msg)

        depends_on = container.config.depends_on if container.config else ()
        for role in depends_on:
            dependencies = self.get_by_role(role)
            if not dependencies:
                msg = f"The '{container.role}' container requires '{role}' to be added first."
                raise errors.ConfigurationError(msg)
            container.link(dependencies[0])

        self.containers.append(container)
        return self

    @classmethod
    def from_config(cls, config: cluster_config.ClusterConfig) -> "ClusterArchitecture":
        """Build architecture with all services of the configuration."""
        config.validate()
        architecture = cls(config)
        for service in config.get_services():
            architecture.add(services.create_container(service))
        return architecture
