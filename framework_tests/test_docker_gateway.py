import typing as tp

import pytest
import requests
from docker import errors as docker_errors

from minimesos.cluster import docker_gateway


def _api_error(status_code: int) -> docker_errors.APIError:
    response = requests.Response()
    response.status_code = status_code
    return docker_errors.APIError(f"{status_code} error", response=response)


class FakeAPIClient:
    def __init__(self) -> None:
        self.calls: list[tuple[str, tp.Any]] = []
        self.remove_error: Exception | None = None

    def containers(self, all: bool = False) -> list[dict[str, tp.Any]]:  # noqa: A002
        return [
            {
                "Id": "abc",
                "Created": 10,
                "Names": ["/minimesos-master-1-x"],
                "Ports": [
                    {"PrivatePort": 5050, "PublicPort": 5050, "IP": "0.0.0.0", "Type": "tcp"}
                ],
                "State": "running",
            }
        ]

    def create_host_config(self, **kwargs: tp.Any) -> dict[str, tp.Any]:
        return kwargs

    def create_container(self, **kwargs: tp.Any) -> dict[str, str]:
        self.calls.append(("create", kwargs))
        return {"Id": "new"}

    def remove_container(self, container_id: str, **kwargs: tp.Any) -> None:
        if self.remove_error:
            raise self.remove_error
        self.calls.append(("remove", (container_id, kwargs)))

    def pull(self, repository: str, tag: str) -> None:
        self.calls.append(("pull", (repository, tag)))

    def inspect_image(self, image: str) -> dict[str, tp.Any]:
        raise docker_errors.ImageNotFound(image)

    def inspect_container(self, container_id: str) -> dict[str, tp.Any]:
        return {
            "State": {"Running": True},
            "NetworkSettings": {
                "IPAddress": "",
                "Networks": {"bridge": {"IPAddress": "10.0.0.2"}},
            },
        }


@pytest.fixture
def client() -> FakeAPIClient:
    return FakeAPIClient()


def test_list_containers(client):
    gateway = docker_gateway.DockerGateway(client)  # type: ignore[arg-type]
    (info,) = gateway.list_containers()
    assert info.names == ("minimesos-master-1-x",)
    assert info.ports == (docker_gateway.PortInfo(5050, 5050, "0.0.0.0", "tcp"),)


def test_create_container(client):
    gateway = docker_gateway.DockerGateway(client)  # type: ignore[arg-type]
    spec = docker_gateway.ContainerSpec(
        name="minimesos-master-1-x",
        image="containersol/mesos-master:1",
        environment={"MESOS_PORT": "5050"},
        exposed_ports=(5050,),
        port_bindings={5050: 5050},
    )
    assert gateway.create_container(spec) == "new"
    __, kwargs = client.calls[0]
    assert kwargs["name"] == "minimesos-master-1-x"
    assert kwargs["ports"] == [5050]
    assert kwargs["host_config"]["port_bindings"] == {5050: 5050}


def test_ip_address_and_state(client):
    gateway = docker_gateway.DockerGateway(client)  # type: ignore[arg-type]
    assert gateway.get_ip_address("abc") == "10.0.0.2"
    assert gateway.is_running("abc")
    assert not gateway.image_exists("jplock/zookeeper:3.4.6")


def test_pull_image(client):
    gateway = docker_gateway.DockerGateway(client)  # type: ignore[arg-type]
    gateway.pull_image("jplock/zookeeper")
    assert client.calls == [("pull", ("jplock/zookeeper", "latest"))]


@pytest.mark.parametrize(
    ("error", "expected"),
    (
        (docker_errors.NotFound("gone"), docker_gateway.NotFoundError),
        (_api_error(500), docker_gateway.InternalServerError),
        (_api_error(409), docker_gateway.GatewayError),
        (requests.exceptions.ConnectionError("refused"), docker_gateway.GatewayError),
    ),
)
def test_error_translation(client, error: Exception, expected: type[Exception]):
    client.remove_error = error
    gateway = docker_gateway.DockerGateway(client)  # type: ignore[arg-type]
    with pytest.raises(expected):
        gateway.remove_container("abc")


def test_split_image():
    assert docker_gateway.split_image("localhost:5000/agent:1.0") == ("localhost:5000/agent", "1.0")
    assert docker_gateway.split_image("localhost:5000/agent") == ("localhost:5000/agent", "latest")
