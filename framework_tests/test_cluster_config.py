import dataclasses

import pytest

from minimesos.cluster import cluster_config
from minimesos.cluster import errors
from minimesos.cluster.cluster_config import Role

CONFIG_YAML = """
timeout: 120
expose_ports: true
cluster_name: testing
logging_level: warning
zookeeper:
  image_tag: 3.4.8
agents:
  - resources:
      cpus: 2
      mem: 512
  - {}
marathon:
  apps:
    - marathon_json: https://example.com/app.json
"""


def test_defaults():
    config = cluster_config.ClusterConfig()
    config.validate()
    assert [s.role for s in config.get_services()] == [Role.ZOOKEEPER, Role.MASTER, Role.AGENT]
    assert config.master is not None
    assert config.master.port_number == 5050
    assert config.master.image.startswith("containersol/mesos-master:")


def test_agent_resources():
    resources = cluster_config.AgentResources(cpus=0.5, mem=256)
    assert resources.to_mesos_string() == (
        "cpus(*):0.5; mem(*):256; disk(*):200; ports(*):[31000-32000]"
    )
    assert cluster_config.AgentResources().to_mesos_string().startswith("cpus(*):4;")


def test_parse():
    config = cluster_config.parse_cluster_config(CONFIG_YAML)
    assert config.timeout == 120
    assert config.expose_ports
    assert config.cluster_name == "testing"
    assert config.logging_level == "WARNING"
    assert config.zookeeper is not None
    assert config.zookeeper.image == "jplock/zookeeper:3.4.8"
    assert len(config.agents) == 2
    assert config.agents[0].resources == cluster_config.AgentResources(cpus=2, mem=512)
    assert config.agents[1].resources == cluster_config.AgentResources()
    assert config.marathon is not None
    assert config.marathon.apps == (cluster_config.AppConfig("https://example.com/app.json"),)
    assert config.consul is None


def test_dump_and_parse():
    config = cluster_config.parse_cluster_config(CONFIG_YAML)
    dumped = cluster_config.dump_cluster_config(config)
    assert cluster_config.parse_cluster_config(dumped) == config


@pytest.mark.parametrize(
    "content",
    (
        "unknown: 1",
        "master:\n  unknown: 1",
        "agents: []",
        "timeout: 0",
        "logging_level: DEBUG",
        "registrator: {}",
        "master:\n  resources: {cpus: 1}",
        "- 1",
        "timeout: [",
        "timeout: abc",
        "expose_ports: maybe",
        "master: 5",
        "master:\n  port_number: abc",
        "master:\n  port_number: 70000",
        "agents:\n  - resources: {cpus: many}",
        "marathon:\n  apps: [{}]",
    ),
)
def test_invalid_config(content: str):
    with pytest.raises(errors.ConfigurationError):
        cluster_config.parse_cluster_config(content)


def test_misplaced_service():
    config = dataclasses.replace(
        cluster_config.ClusterConfig(),
        marathon=cluster_config.default_service_config(Role.CONSUL),
    )
    with pytest.raises(errors.ConfigurationError):
        config.validate()


def test_with_overrides():
    config = cluster_config.parse_cluster_config(CONFIG_YAML)
    updated = cluster_config.with_overrides(
        config,
        expose_ports=False,
        timeout=30,
        num_agents=3,
        mesos_image_tag="1.0.0",
        zookeeper_image_tag="3.5",
        marathon_image_tag="v1.1",
    )
    assert not updated.expose_ports
    assert updated.timeout == 30
    assert len(updated.agents) == 3
    assert {a.image_tag for a in updated.agents} == {"1.0.0"}
    assert updated.agents[0].resources == cluster_config.AgentResources(cpus=2, mem=512)
    assert updated.master is not None
    assert updated.master.image_tag == "1.0.0"
    assert updated.zookeeper is not None
    assert updated.zookeeper.image_tag == "3.5"
    assert updated.marathon is not None
    assert updated.marathon.image_tag == "v1.1"


def test_with_overrides_keeps_config():
    config = cluster_config.parse_cluster_config(CONFIG_YAML)
    updated = cluster_config.with_overrides(config)
    assert updated == config


def test_invalid_value_location():
    with pytest.raises(errors.ConfigurationError, match=r"master\.port_number"):
        cluster_config.parse_cluster_config("master:\n  port_number: abc\n")


def test_numeric_image_tag():
    config = cluster_config.parse_cluster_config("zookeeper:\n  image_tag: 3.5\n")
    assert config.zookeeper is not None
    assert config.zookeeper.image_tag == "3.5"
