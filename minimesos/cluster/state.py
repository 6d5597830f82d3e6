"""Snapshot of the Mesos master state, as returned by its `state.json` endpoint."""

import typing as tp

import pydantic


@pydantic.dataclasses.dataclass(frozen=True, order=True)
class Framework:
    name: str
    id: str
    active: bool = False
    tasks: tuple[dict[str, tp.Any], ...] = ()

    @classmethod
    def from_json(cls, data: dict[str, tp.Any]) -> "Framework":
        return cls(
            name=data.get("name") or "",
            id=data.get("id") or "",
            active=bool(data.get("active")),
            tasks=tuple(data.get("tasks") or ()),
        )


@pydantic.dataclasses.dataclass(frozen=True)
class ClusterState:
    version: str = ""
    leader: str = ""
    hostname: str = ""
    activated_agents: int = 0
    frameworks: tuple[Framework, ...] = ()

    @classmethod
    def from_json(cls, data: dict[str, tp.Any]) -> "ClusterState":
        """Build the snapshot from `state.json` content.

        Raises `pydantic.ValidationError` when the content is not a Mesos state.
        """
        # Older Mesos versions call agents "slaves"
        activated = data.get("activated_agents", data.get("activated_slaves")) or 0
        return cls(
            version=data.get("version") or "",
            leader=data.get("leader") or "",
            hostname=data.get("hostname") or "",
            activated_agents=activated,
            frameworks=tuple(Framework.from_json(f) for f in data.get("frameworks") or ()),
        )

    def get_framework(self, name: str) -> Framework | None:
        """Return framework with the given name, if registered."""
        for framework in self.frameworks:
            if framework.name == name:
                return framework
        return None
