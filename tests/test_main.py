"""Tests for the HTTP API."""

from typing import Optional
from unittest.mock import MagicMock

import pytest
from docker.errors import ImageNotFound
from fastapi.testclient import TestClient

from mcservers import main
from mcservers.models import ModVersion, ServerEntry, UpdateSummary
from mcservers.services.image_service import ImageService
from mcservers.services.servers_dat import decode, encode


class StubModrinth:
    def __init__(self, version: Optional[ModVersion]) -> None:
        self.version = version
        self.calls: list[tuple[str, str, str, str]] = []

    def latest_compatible_version(self, project_id: str, exact: str, wildcard: str, loader: str):
        self.calls.append((project_id, exact, wildcard, loader))
        return self.version


@pytest.fixture
def docker_client() -> MagicMock:
    client = MagicMock()
    client.images.build.return_value = (MagicMock(), iter([]))
    return client


@pytest.fixture
def client(server_service, docker_client, monkeypatch) -> TestClient:
    monkeypatch.setattr(main, "servers", server_service)
    monkeypatch.setattr(main, "images", ImageService(servers=server_service, docker_client=docker_client))
    return TestClient(main.app)


def test_list_servers(client) -> None:
    response = client.get("/servers")

    assert response.status_code == 200
    servers = response.json()["servers"]
    assert [server["key"] for server in servers] == ["dj-server", "fabric-server"]
    assert servers[0]["packwiz_url"] == "https://packs.example.com/dj-server/pack.toml"
    assert servers[0]["multiplayer"] == [{"name": "D&J Server (gamingrig)", "address": "gamingrig:25565"}]


def test_get_servers_dat_for_catalog_entry(client) -> None:
    response = client.get("/servers/dj-server/servers.dat")

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/octet-stream"
    assert "servers.dat" in response.headers["content-disposition"]
    assert decode(response.content) == [
        ServerEntry(name="D&J Server (gamingrig)", address="gamingrig:25565")
    ]


def test_get_servers_dat_unknown_server(client) -> None:
    response = client.get("/servers/ghost/servers.dat")

    assert response.status_code == 404
    assert response.json() == {"detail": "Unknown server: ghost"}


def test_post_servers_dat_encodes_body(client) -> None:
    entries = [{"name": "A", "address": "a:1"}, {"name": "B", "address": "b:2"}]

    response = client.post("/servers-dat", json={"servers": entries})

    assert response.status_code == 200
    assert response.content == encode([("A", "a:1"), ("B", "b:2")])


def test_post_servers_dat_empty_list(client) -> None:
    response = client.post("/servers-dat", json={"servers": []})

    assert response.status_code == 200
    assert len(response.content) == 19


def test_post_servers_dat_field_too_long(client) -> None:
    response = client.post("/servers-dat", json={"servers": [{"name": "x" * 65536, "address": "a"}]})

    assert response.status_code == 422
    assert response.json()["kind"] == "field_too_long"


def test_build_server_with_default_body(client, docker_client, dj_server) -> None:
    response = client.post("/servers/dj-server/build")

    assert response.status_code == 200
    body = response.json()
    assert body["image"] == "ghcr.io/example/minecraft-servers/dj-server"
    assert body["packwiz_url"] == "https://packs.example.com/dj-server/pack.toml"
    docker_client.images.push.assert_not_called()


def test_build_server_missing_directory(client) -> None:
    response = client.post("/servers/ghost/build", json={"tag": "v1"})

    assert response.status_code == 404
    assert "Server directory not found" in response.json()["detail"]


def test_latest_mod_version(client, monkeypatch) -> None:
    stub = StubModrinth(ModVersion(id="abc", version_number="1.2.3", filename="mod.jar"))
    monkeypatch.setattr(main, "modrinth", stub)

    response = client.get("/mods/P1/latest", params={"minecraft": "1.21.1"})

    assert response.status_code == 200
    assert response.json()["id"] == "abc"
    assert stub.calls == [("P1", "1.21.1", "1.21.x", "neoforge")]


def test_latest_mod_version_not_found(client, monkeypatch) -> None:
    monkeypatch.setattr(main, "modrinth", StubModrinth(None))

    response = client.get("/mods/P1/latest", params={"minecraft": "1.21.1", "loader": "fabric"})

    assert response.status_code == 404
    assert response.json() == {"detail": "No compatible versions found"}


def test_push_server_requires_local_image(client, docker_client, dj_server) -> None:
    docker_client.images.get.side_effect = ImageNotFound("missing")

    response = client.post("/servers/dj-server/push", json={"tag": "v1"})

    assert response.status_code == 404
    assert "Run build first" in response.json()["detail"]


def test_update_mods_dry_run(client, monkeypatch) -> None:
    packwiz = MagicMock()
    packwiz.update_server.return_value = UpdateSummary(
        server="dj-server", minecraft="1.21.1", wildcard="1.21.x", loader="neoforge", dry_run=True
    )
    monkeypatch.setattr(main, "packwiz", packwiz)

    response = client.post("/servers/dj-server/mods/update", params={"dry_run": "true", "delay": 0})

    assert response.status_code == 200
    assert response.json()["dry_run"] is True
    packwiz.check_dependencies.assert_called_once_with()
    packwiz.update_server.assert_called_once_with("dj-server", dry_run=True, delay=0.0)
