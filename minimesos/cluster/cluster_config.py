"""Cluster configuration.

The configuration is a tree of frozen pydantic dataclasses. It can be loaded from (and dumped
to) a YAML file, e.g.:

```
timeout: 60
expose_ports: false
logging_level: INFO
zookeeper:
  image_tag: 3.4.6
master:
  image_tag: 0.25.0-0.2.70.ubuntu1404
agents:
  - resources:
      cpus: 2
      mem: 512
  - {}
marathon:
  apps:
    - marathon_json: https://example.com/app.json
```
"""

import dataclasses
import enum
import logging
import typing as tp

import pydantic
import yaml

from minimesos.cluster import errors
from minimesos.utils import configuration

LOGGER = logging.getLogger(__name__)

# Unknown keys are rejected, numeric values of string fields (e.g. `image_tag: 3.5`) are
# converted to strings
_CONF_STRICT_KEYS: pydantic.ConfigDict = {"extra": "forbid", "coerce_numbers_to_str": True}


class Role(enum.StrEnum):
    MASTER = "master"
    AGENT = "agent"
    ZOOKEEPER = "zookeeper"
    MARATHON = "marathon"
    CONSUL = "consul"
    REGISTRATOR = "registrator"


SINGLETON_ROLES = frozenset(
    {Role.MASTER, Role.ZOOKEEPER, Role.MARATHON, Role.CONSUL, Role.REGISTRATOR}
)

MESOS_MASTER_PORT = 5050
MESOS_AGENT_PORT = 5051
ZOOKEEPER_PORT = 2181
MARATHON_PORT = 8080
CONSUL_HTTP_PORT = 8500


@pydantic.dataclasses.dataclass(frozen=True, order=True, config=_CONF_STRICT_KEYS)
class AgentResources:
    cpus: float = pydantic.Field(default=4.0, gt=0)
    mem: int = pydantic.Field(default=1024, gt=0)
    disk: int = pydantic.Field(default=200, ge=0)
    ports: str = "[31000-32000]"

    def to_mesos_string(self) -> str:
        """Return resources in the format of the `MESOS_RESOURCES` variable."""
        cpus = int(self.cpus) if float(self.cpus).is_integer() else self.cpus
        return (
            f"cpus(*):{cpus}; mem(*):{self.mem}; disk(*):{self.disk}; ports(*):{self.ports}"
        )


@pydantic.dataclasses.dataclass(frozen=True, order=True, config=_CONF_STRICT_KEYS)
class AppConfig:
    # Either absolute URI or path to a JSON file with Marathon app definition
    marathon_json: str


@pydantic.dataclasses.dataclass(frozen=True, config=_CONF_STRICT_KEYS)
class ServiceConfig:
    role: Role
    image_name: str
    image_tag: str
    port_number: int = pydantic.Field(ge=0, le=65535)
    resources: AgentResources | None = None
    depends_on: tuple[Role, ...] = ()
    apps: tuple[AppConfig, ...] = ()

    @pydantic.model_validator(mode="after")
    def check_role_options(self) -> "ServiceConfig":
        if self.resources is not None and self.role != Role.AGENT:
            msg = f"Resources can be configured only for agents, not for '{self.role}'."
            raise ValueError(msg)
        if self.apps and self.role != Role.MARATHON:
            msg = f"Apps can be configured only for Marathon, not for '{self.role}'."
            raise ValueError(msg)
        return self

    @property
    def image(self) -> str:
        return f"{self.image_name}:{self.image_tag}"


_DEFAULTS: dict[Role, dict[str, tp.Any]] = {
    Role.ZOOKEEPER: {
        "image_name": "jplock/zookeeper",
        "image_tag": "3.4.6",
        "port_number": ZOOKEEPER_PORT,
    },
    Role.MASTER: {
        "image_name": "containersol/mesos-master",
        "image_tag": configuration.MESOS_IMAGE_TAG,
        "port_number": MESOS_MASTER_PORT,
        "depends_on": (Role.ZOOKEEPER,),
    },
    Role.AGENT: {
        "image_name": "containersol/mesos-agent",
        "image_tag": configuration.MESOS_IMAGE_TAG,
        "port_number": MESOS_AGENT_PORT,
        "depends_on": (Role.ZOOKEEPER,),
    },
    Role.MARATHON: {
        "image_name": "mesosphere/marathon",
        "image_tag": "v0.15.3",
        "port_number": MARATHON_PORT,
        "depends_on": (Role.ZOOKEEPER,),
    },
    Role.CONSUL: {
        "image_name": "containersol/consul-server",
        "image_tag": "0.6-1",
        "port_number": CONSUL_HTTP_PORT,
    },
    Role.REGISTRATOR: {
        "image_name": "gliderlabs/registrator",
        "image_tag": "v6",
        "port_number": 0,
        "depends_on": (Role.CONSUL,),
    },
}


def _get_defaults(role: Role) -> dict[str, tp.Any]:
    values: dict[str, tp.Any] = {"role": role, **_DEFAULTS[role]}
    if role == Role.AGENT:
        values["resources"] = AgentResources()
    return values


def default_service_config(role: Role, **overrides: tp.Any) -> ServiceConfig:
    """Return configuration of a service with default values."""
    return ServiceConfig(**{**_get_defaults(role), **overrides})


def _default_agents() -> tuple[ServiceConfig, ...]:
    return (default_service_config(Role.AGENT),)


@pydantic.dataclasses.dataclass(frozen=True, config=_CONF_STRICT_KEYS)
class ClusterConfig:
    timeout: int = pydantic.Field(default=configuration.DEFAULT_TIMEOUT, gt=0)
    expose_ports: bool = False
    cluster_name: str = ""
    logging_level: str = configuration.DEFAULT_LOGGING_LEVEL
    map_agent_sandbox_volume: bool = False
    zookeeper: ServiceConfig | None = dataclasses.field(
        default_factory=lambda: default_service_config(Role.ZOOKEEPER)
    )
    master: ServiceConfig | None = dataclasses.field(
        default_factory=lambda: default_service_config(Role.MASTER)
    )
    agents: tuple[ServiceConfig, ...] = dataclasses.field(default_factory=_default_agents)
    marathon: ServiceConfig | None = None
    consul: ServiceConfig | None = None
    registrator: ServiceConfig | None = None

    @pydantic.field_validator("logging_level", mode="before")
    @classmethod
    def normalize_logging_level(cls, value: tp.Any) -> str:
        level = str(value).upper()
        if level not in configuration.LOGGING_LEVELS:
            msg = (
                f"Invalid logging level '{value}': "
                f"must be one of {', '.join(configuration.LOGGING_LEVELS)}"
            )
            raise ValueError(msg)
        return level

    def get_services(self) -> list[ServiceConfig]:
        """Return configured services in the order they need to be started."""
        services = [
            self.zookeeper,
            self.master,
            *self.agents,
            self.marathon,
            self.consul,
            self.registrator,
        ]
        return [s for s in services if s is not None]

    def validate(self) -> None:
        """Check that the services of the cluster are consistent with each other."""
        if self.master is None:
            msg = "The cluster must have a master."
            raise errors.ConfigurationError(msg)
        if not self.agents:
            msg = "The cluster must have at least one agent."
            raise errors.ConfigurationError(msg)

        slots = {
            Role.ZOOKEEPER: [self.zookeeper],
            Role.MASTER: [self.master],
            Role.AGENT: list(self.agents),
            Role.MARATHON: [self.marathon],
            Role.CONSUL: [self.consul],
            Role.REGISTRATOR: [self.registrator],
        }
        for role, services in slots.items():
            for service in services:
                if service is not None and service.role != role:
                    msg = f"Service with role '{service.role}' is configured as '{role}'."
                    raise errors.ConfigurationError(msg)

        configured = {s.role for s in self.get_services()}
        for service in self.get_services():
            missing = [r for r in service.depends_on if r not in configured]
            if missing:
                msg = (
                    f"Service '{service.role}' depends on '{', '.join(missing)}', "
                    "which is not configured."
                )
                raise errors.ConfigurationError(msg)


def with_overrides(
    cluster_config: ClusterConfig,
    *,
    expose_ports: bool | None = None,
    timeout: int | None = None,
    num_agents: int | None = None,
    mesos_image_tag: str | None = None,
    zookeeper_image_tag: str | None = None,
    marathon_image_tag: str | None = None,
) -> ClusterConfig:
    """Return a copy of the configuration adjusted by command line parameters.

    When the number of agents is not given, the configured agents are kept. Missing agents
    are added with default configuration, extra agents are dropped.
    """
    changes: dict[str, tp.Any] = {}
    if expose_ports is not None:
        changes["expose_ports"] = expose_ports
    if timeout is not None:
        changes["timeout"] = timeout

    zookeeper = cluster_config.zookeeper or default_service_config(Role.ZOOKEEPER)
    if zookeeper_image_tag:
        zookeeper = dataclasses.replace(zookeeper, image_tag=zookeeper_image_tag)
    changes["zookeeper"] = zookeeper

    master = cluster_config.master or default_service_config(Role.MASTER)
    if mesos_image_tag:
        master = dataclasses.replace(master, image_tag=mesos_image_tag)
    changes["master"] = master

    if cluster_config.marathon is not None and marathon_image_tag:
        changes["marathon"] = dataclasses.replace(
            cluster_config.marathon, image_tag=marathon_image_tag
        )

    agents = list(cluster_config.agents)
    agents_count = num_agents if num_agents and num_agents > 0 else (len(agents) or 1)
    updated_agents = []
    for i in range(agents_count):
        agent = agents[i] if i < len(agents) else default_service_config(Role.AGENT)
        if mesos_image_tag:
            agent = dataclasses.replace(agent, image_tag=mesos_image_tag)
        updated_agents.append(agent)
    changes["agents"] = tuple(updated_agents)

    return dataclasses.replace(cluster_config, **changes)


def _format_validation_error(exc: pydantic.ValidationError, section: str) -> str:
    problems = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in (section, *err["loc"]) if p != "")
        problems.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return f"Invalid cluster configuration: {'; '.join(problems)}"


def _check_mapping(data: tp.Any, section: str) -> dict[str, tp.Any]:
    if data is None:
        return {}
    if not isinstance(data, dict) or not all(isinstance(k, str) for k in data):
        msg = f"The '{section}' section must be a mapping."
        raise errors.ConfigurationError(msg)
    return data


def _parse_service(role: Role, data: tp.Any) -> ServiceConfig:
    values = _check_mapping(data=data, section=role)
    try:
        # The role is given by the section, not by its content
        return ServiceConfig(**{**_get_defaults(role), **values, "role": role})
    except pydantic.ValidationError as exc:
        msg = _format_validation_error(exc, section=role)
        raise errors.ConfigurationError(msg) from exc


def parse_cluster_config(content: str) -> ClusterConfig:
    """Parse YAML content of the cluster configuration file."""
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        msg = f"Failed to parse cluster configuration: {exc}"
        raise errors.ConfigurationError(msg) from exc

    values = dict(_check_mapping(data=data, section="cluster"))

    # ZooKeeper and master are always present, optional services only when configured
    for role in (Role.ZOOKEEPER, Role.MASTER):
        values[role.value] = _parse_service(role=role, data=values.get(role.value))
    for role in (Role.MARATHON, Role.CONSUL, Role.REGISTRATOR):
        if role.value in values:
            values[role.value] = _parse_service(role=role, data=values[role.value])

    if "agents" in values:
        agents_data = values["agents"] or []
        if not isinstance(agents_data, list):
            msg = "The 'agents' section must be a list."
            raise errors.ConfigurationError(msg)
        values["agents"] = tuple(_parse_service(role=Role.AGENT, data=a) for a in agents_data)

    try:
        cluster_config = ClusterConfig(**values)
    except pydantic.ValidationError as exc:
        msg = _format_validation_error(exc, section="")
        raise errors.ConfigurationError(msg) from exc

    cluster_config.validate()
    return cluster_config


def _service_to_dict(service: ServiceConfig) -> dict[str, tp.Any]:
    out: dict[str, tp.Any] = {
        "image_name": service.image_name,
        "image_tag": service.image_tag,
        "port_number": service.port_number,
    }
    if service.resources is not None:
        out["resources"] = dataclasses.asdict(service.resources)
    if service.apps:
        out["apps"] = [dataclasses.asdict(a) for a in service.apps]
    return out


def dump_cluster_config(cluster_config: ClusterConfig) -> str:
    """Return YAML representation of the cluster configuration."""
    data: dict[str, tp.Any] = {
        "timeout": cluster_config.timeout,
        "expose_ports": cluster_config.expose_ports,
        "cluster_name": cluster_config.cluster_name,
        "logging_level": cluster_config.logging_level,
        "map_agent_sandbox_volume": cluster_config.map_agent_sandbox_volume,
    }
    for role in (Role.ZOOKEEPER, Role.MASTER):
        service = getattr(cluster_config, role.value)
        if service is not None:
            data[role.value] = _service_to_dict(service)
    data["agents"] = [_service_to_dict(a) for a in cluster_config.agents]
    for role in (Role.MARATHON, Role.CONSUL, Role.REGISTRATOR):
        service = getattr(cluster_config, role.value)
        if service is not None:
            data[role.value] = _service_to_dict(service)

    return str(yaml.safe_dump(data, sort_keys=False))
