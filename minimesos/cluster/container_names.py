"""Naming of cluster containers.

Container name is the only record of cluster membership. It has the format
`<product>-<role>-<cluster_id>-<uuid>`, so a running cluster can be reconstructed just by
listing containers.
"""

import dataclasses
import typing as tp

from minimesos.cluster import errors

PRODUCT = "minimesos"
SEPARATOR = "-"


@dataclasses.dataclass(frozen=True, order=True)
class ContainerName:
    role: str
    cluster_id: str
    uuid: str

    def __str__(self) -> str:
        return get_container_name(role=self.role, cluster_id=self.cluster_id, uuid=self.uuid)


def _check_token(token: str, kind: str) -> None:
    if not token or SEPARATOR in token:
        msg = f"Invalid {kind} '{token}': must be non-empty and must not contain '{SEPARATOR}'"
        raise errors.ConfigurationError(msg)


def get_container_name(*, role: str, cluster_id: str, uuid: str) -> str:
    """Return name of a cluster container."""
    _check_token(role, "role")
    _check_token(cluster_id, "cluster ID")
    _check_token(uuid, "container UUID")
    return SEPARATOR.join((PRODUCT, role, cluster_id, uuid))


def parse_container_name(name: str) -> ContainerName | None:
    """Parse container name, return `None` if it is not a name of a cluster container."""
    parts = name.lstrip("/").split(SEPARATOR)
    if len(parts) != 4 or parts[0] != PRODUCT or not all(parts):
        return None
    return ContainerName(role=parts[1], cluster_id=parts[2], uuid=parts[3])


def get_from_docker_names(names: tp.Iterable[str]) -> str:
    """Return the first container name that belongs to any cluster, or the first name."""
    stripped = [n.lstrip("/") for n in names]
    for name in stripped:
        if parse_container_name(name) is not None:
            return name
    return stripped[0] if stripped else ""


def belongs_to_cluster(names: str | tp.Iterable[str], cluster_id: str) -> bool:
    """Check if a container with given name(s) belongs to the cluster."""
    if isinstance(names, str):
        names = [names]
    for name in names:
        parsed = parse_container_name(name)
        if parsed is not None and parsed.cluster_id == cluster_id:
            return True
    return False
