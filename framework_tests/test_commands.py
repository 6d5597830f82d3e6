import dataclasses
import io
import json
import pathlib as pl

import pytest

from minimesos.cluster import cluster_config
from minimesos.cluster import commands
from minimesos.cluster import docker_gateway
from minimesos.cluster import errors
from minimesos.cluster import repository
from minimesos.cluster.cluster_config import Role


@pytest.fixture
def config() -> cluster_config.ClusterConfig:
    return dataclasses.replace(
        cluster_config.ClusterConfig(timeout=1),
        marathon=cluster_config.default_service_config(Role.MARATHON),
    )


@pytest.fixture
def repo() -> repository.ClusterRepository:
    return repository.ClusterRepository()


def test_up(gateway, repo, config):
    out = io.StringIO()
    cluster = commands.up(config, gateway=gateway, repository=repo, out=out)
    assert cluster.running
    assert repo.get_cluster_id() == cluster.cluster_id
    assert "export MINIMESOS_MASTER=http://" in out.getvalue()


def test_up_already_running(gateway, repo, config):
    cluster = commands.up(config, gateway=gateway, repository=repo, out=io.StringIO())

    out = io.StringIO()
    again = commands.up(config, gateway=gateway, repository=repo, out=out)
    assert again == cluster
    assert out.getvalue().strip() == f"Cluster {cluster.cluster_id} is already running"
    assert len(gateway.created) == 4


def test_destroy_after_failed_up(gateway, repo, config):
    assert config.marathon is not None
    gateway.create_errors[config.marathon.image] = docker_gateway.GatewayError("failed")
    with pytest.raises(errors.ContainerStartError):
        commands.up(config, gateway=gateway, repository=repo, out=io.StringIO())
    assert repo.get_cluster_id()

    out = io.StringIO()
    commands.destroy(gateway=gateway, repository=repo, out=out)
    assert gateway.list_containers() == []
    assert repo.get_cluster_id() == ""
    assert out.getvalue().startswith("Destroyed minimesos cluster")


def test_not_running(gateway, repo):
    for command in (commands.destroy, commands.info, commands.ps):
        out = io.StringIO()
        command(gateway=gateway, repository=repo, out=out)
        assert out.getvalue().strip() == commands.NOT_RUNNING_MSG

    with pytest.raises(errors.MinimesosError):
        commands.state(gateway=gateway, repository=repo, out=io.StringIO())


def test_info_and_ps(gateway, repo, config):
    cluster = commands.up(config, gateway=gateway, repository=repo, out=io.StringIO())

    out = io.StringIO()
    commands.info(gateway=gateway, repository=repo, out=out)
    assert f"Minimesos cluster is running: {cluster.cluster_id}" in out.getvalue()

    out = io.StringIO()
    commands.ps(gateway=gateway, repository=repo, out=out)
    lines = out.getvalue().splitlines()
    assert len(lines) == 5
    assert lines[1].split()[0] == "zookeeper"
    assert lines[1].split()[2] == cluster.get_containers()[0].container_id


def test_state(gateway, repo, config, master_state):
    cluster = commands.up(config, gateway=gateway, repository=repo, out=io.StringIO())

    out = io.StringIO()
    commands.state(gateway=gateway, repository=repo, out=out)
    assert json.loads(out.getvalue()) == master_state

    out = io.StringIO()
    agent_id = cluster.get_agents()[0].container_id
    commands.state(agent_id, gateway=gateway, repository=repo, out=out)
    assert json.loads(out.getvalue()) == master_state


def test_install(gateway, repo, config, session, tmp_path: pl.Path):
    commands.up(config, gateway=gateway, repository=repo, out=io.StringIO())
    (tmp_path / "web.json").write_text('{"id": "/web"}')

    out = io.StringIO()
    commands.install("web.json", gateway=gateway, repository=repo, out=out)
    assert "Installed app '/web'" in out.getvalue()

    with pytest.raises(errors.ManifestNotFoundError):
        commands.install("missing.json", gateway=gateway, repository=repo, out=io.StringIO())


def test_init(tmp_path: pl.Path):
    config_file = commands.init(tmp_path, out=io.StringIO())
    assert config_file == tmp_path / "minimesosFile"

    config = commands.load_cluster_config()
    assert config.marathon is not None
    assert len(config.agents) == 1

    with pytest.raises(errors.MinimesosError):
        commands.init(tmp_path, out=io.StringIO())


def test_load_cluster_config():
    assert commands.load_cluster_config() == cluster_config.ClusterConfig()
    with pytest.raises(errors.ConfigurationError):
        commands.load_cluster_config("custom.yaml")
