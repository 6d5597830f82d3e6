import contextlib
import json
import pathlib as pl
import socket
import typing as tp
import urllib.parse

import pytest
import requests

from minimesos.cluster import container_names
from minimesos.cluster import docker_gateway
from minimesos.utils import configuration
from minimesos.utils import http_client

MASTER_STATE = {
    "version": "0.25.0",
    "leader": "master@172.17.0.3:5050",
    "hostname": "master",
    "activated_slaves": 1,
    "frameworks": [{"name": "marathon", "id": "fw-1", "active": True, "tasks": []}],
}


class FakeGateway:
    """In-memory container runtime."""

    def __init__(self) -> None:
        self.containers: dict[str, dict[str, tp.Any]] = {}
        self.created: list[docker_gateway.ContainerSpec] = []
        self.started: list[str] = []
        self.removed: list[str] = []
        self.pulled: list[str] = []
        self.images: set[str] = set()
        # image -> error raised when creating a container from the image
        self.create_errors: dict[str, Exception] = {}
        # container ID -> error raised when removing the container
        self.remove_errors: dict[str, Exception] = {}
        self._counter = 0

    def _add(
        self, name: str, ports: tuple[docker_gateway.PortInfo, ...] = (), *, running: bool
    ) -> str:
        self._counter += 1
        container_id = f"cid{self._counter:03d}"
        self.containers[container_id] = {
            "name": name,
            "created": self._counter,
            # Precise creation time, as reported by container inspection
            "created_at": f"2016-01-01T00:00:00.{self._counter:06d}321Z",
            "running": running,
            "ip": f"172.17.0.{self._counter + 1}",
            "ports": ports,
        }
        return container_id

    def add_container(self, name: str, *, master_port: int | None = None) -> str:
        """Add container created outside the cluster."""
        ports = ()
        if master_port:
            ports = (docker_gateway.PortInfo(master_port, master_port, "0.0.0.0"),)
        return self._add(name, ports, running=True)

    def names_by_role(self) -> list[str]:
        roles = []
        for spec in self.created:
            parsed = container_names.parse_container_name(spec.name)
            roles.append(parsed.role if parsed else spec.name)
        return roles

    def list_containers(self) -> list[docker_gateway.ContainerInfo]:
        return [
            docker_gateway.ContainerInfo(
                created=rec["created"],
                id=container_id,
                names=(f"/{rec['name']}",),
                ports=rec["ports"],
                state="running" if rec["running"] else "created",
            )
            for container_id, rec in self.containers.items()
        ]

    def create_container(self, spec: docker_gateway.ContainerSpec) -> str:
        if spec.image in self.create_errors:
            raise self.create_errors[spec.image]
        ports = tuple(
            docker_gateway.PortInfo(int(private), public, "0.0.0.0")
            for private, public in spec.port_bindings.items()
        )
        self.created.append(spec)
        return self._add(spec.name, ports, running=False)

    def _get(self, container_id: str) -> dict[str, tp.Any]:
        if container_id not in self.containers:
            msg = f"No such container: {container_id}"
            raise docker_gateway.NotFoundError(msg)
        return self.containers[container_id]

    def start_container(self, container_id: str) -> None:
        self._get(container_id)["running"] = True
        self.started.append(container_id)

    def remove_container(
        self, container_id: str, *, force: bool = True, with_volumes: bool = True
    ) -> None:
        if container_id in self.remove_errors:
            raise self.remove_errors[container_id]
        self._get(container_id)
        del self.containers[container_id]
        self.removed.append(container_id)

    def pull_image(self, image: str) -> None:
        self.pulled.append(image)
        self.images.add(image)

    def image_exists(self, image: str) -> bool:
        return image in self.images

    def inspect_container(self, container_id: str) -> dict[str, tp.Any]:
        rec = self._get(container_id)
        return {
            "Created": rec["created_at"],
            "State": {"Running": rec["running"]},
            "NetworkSettings": {"IPAddress": rec["ip"]},
        }

    def get_ip_address(self, container_id: str) -> str:
        return str(self._get(container_id)["ip"])

    def is_running(self, container_id: str) -> bool:
        return bool(self._get(container_id)["running"])


class FakeResponse:
    def __init__(
        self, payload: tp.Any = None, *, status_code: int = 200, content: bytes = b""
    ) -> None:
        self.payload = payload
        self.status_code = status_code
        self.content = content

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            msg = f"{self.status_code} Error"
            raise requests.exceptions.HTTPError(msg, response=self)  # type: ignore[arg-type]

    def json(self) -> tp.Any:
        if self.payload is None:
            msg = "No JSON"
            raise ValueError(msg)
        return self.payload


class FakeSession:
    """Requests session answering by method and URL path, regardless of host."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], tp.Any] = {}
        self.requests: list[tuple[str, str, dict[str, tp.Any]]] = []

    def _handle(self, method: str, url: str, **kwargs: tp.Any) -> tp.Any:
        self.requests.append((method, url, kwargs))
        handler = self.routes.get((method, urllib.parse.urlsplit(url).path))
        if handler is None:
            msg = f"Connection refused: {url}"
            raise requests.exceptions.ConnectionError(msg)
        if isinstance(handler, FakeResponse):
            return handler
        return handler(url, **kwargs)

    def get(self, url: str, **kwargs: tp.Any) -> tp.Any:
        return self._handle("GET", url, **kwargs)

    def post(self, url: str, **kwargs: tp.Any) -> tp.Any:
        return self._handle("POST", url, **kwargs)

    def delete(self, url: str, **kwargs: tp.Any) -> tp.Any:
        return self._handle("DELETE", url, **kwargs)


def _echo_app(url: str, **kwargs: tp.Any) -> FakeResponse:
    return FakeResponse(json.loads(kwargs["data"]), status_code=201)


@pytest.fixture(autouse=True)
def session(monkeypatch: pytest.MonkeyPatch, tmp_path: pl.Path) -> FakeSession:
    """Isolate tests from network and from the working directory."""
    fake_session = FakeSession()
    fake_session.routes.update(
        {
            ("GET", "/state.json"): FakeResponse(MASTER_STATE),
            ("GET", "/v2/info"): FakeResponse({"version": "0.15.3"}),
            ("GET", "/v2/apps"): FakeResponse({"apps": []}),
            ("POST", "/v2/apps"): _echo_app,
            ("GET", "/v1/status/leader"): FakeResponse("172.17.0.6:8300"),
        }
    )
    monkeypatch.setattr(http_client, "get_session", lambda: fake_session)
    monkeypatch.setattr(
        socket, "create_connection", lambda *args, **kwargs: contextlib.nullcontext()
    )
    monkeypatch.setattr(configuration, "POLL_INTERVAL", 0)
    monkeypatch.setattr(configuration, "HOST_DIR", tmp_path)
    monkeypatch.setattr(configuration, "DOCKER_HOST_IP", "")
    monkeypatch.chdir(tmp_path)
    return fake_session


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def fake_response() -> type[FakeResponse]:
    return FakeResponse


@pytest.fixture
def master_state() -> dict[str, tp.Any]:
    return MASTER_STATE
