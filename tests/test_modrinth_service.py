"""Tests for Modrinth version lookups."""

import json
from typing import Any

import httpx
import pytest

from mcservers.services.modrinth_service import ModrinthError, ModrinthService, wildcard_version


def _version(
    version_id: str,
    published: str,
    game_versions: list[str],
    loaders: list[str],
    filename: str = "mod.jar",
) -> dict[str, Any]:
    return {
        "id": version_id,
        "version_number": version_id,
        "date_published": published,
        "game_versions": game_versions,
        "loaders": loaders,
        "files": [
            {"filename": f"sources-{filename}", "primary": False},
            {"filename": filename, "primary": True},
        ],
    }


@pytest.fixture
def service() -> ModrinthService:
    return ModrinthService(base_url="https://api.example.com/v2/")


@pytest.mark.parametrize(
    ("minecraft", "expected"),
    [
        ("1.21.1", "1.21.x"),
        ("1.20.4", "1.20.x"),
        ("1.21", "1.21"),
    ],
)
def test_wildcard_version(minecraft: str, expected: str) -> None:
    assert wildcard_version(minecraft) == expected


def test_latest_compatible_version_picks_newest_match(
    service: ModrinthService, monkeypatch: pytest.MonkeyPatch
) -> None:
    versions = [
        _version("fabric-new", "2024-09-01T00:00:00Z", ["1.21.1"], ["fabric"]),
        _version("exact", "2024-07-01T00:00:00Z", ["1.21.1"], ["neoforge"], "exact.jar"),
        _version("wild", "2024-08-01T00:00:00Z", ["1.21.x"], ["neoforge"], "wild.jar"),
        _version("old-mc", "2024-10-01T00:00:00Z", ["1.20.1"], ["neoforge"]),
    ]
    monkeypatch.setattr(service, "get_versions", lambda project_id, loader, game_version: versions)

    latest = service.latest_compatible_version("abc", "1.21.1", "1.21.x", "neoforge")

    assert latest is not None
    assert latest.id == "wild"
    assert latest.filename == "wild.jar"


def test_latest_compatible_version_matches_loader_exactly(
    service: ModrinthService, monkeypatch: pytest.MonkeyPatch
) -> None:
    versions = [_version("neo", "2024-07-01T00:00:00Z", ["1.21.1"], ["neoforge"])]
    monkeypatch.setattr(service, "get_versions", lambda project_id, loader, game_version: versions)

    assert service.latest_compatible_version("abc", "1.21.1", "1.21.x", "forge") is None


def test_latest_compatible_version_tie_prefers_first_listed(
    service: ModrinthService, monkeypatch: pytest.MonkeyPatch
) -> None:
    versions = [
        _version("first", "2024-07-01T00:00:00Z", ["1.21.1"], ["neoforge"]),
        _version("second", "2024-07-01T00:00:00Z", ["1.21.x"], ["neoforge"]),
    ]
    monkeypatch.setattr(service, "get_versions", lambda project_id, loader, game_version: versions)

    latest = service.latest_compatible_version("abc", "1.21.1", "1.21.x", "neoforge")

    assert latest is not None
    assert latest.id == "first"


def test_get_versions_sends_json_filters(service: ModrinthService, monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict[str, Any]] = []

    def fake_get(url: str, **kwargs: Any) -> httpx.Response:
        calls.append({"url": url, **kwargs})
        return httpx.Response(200, json=[], request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx, "get", fake_get)

    assert service.get_versions("abc", "neoforge", "1.21.1") == []
    assert calls[0]["url"] == "https://api.example.com/v2/project/abc/version"
    assert json.loads(calls[0]["params"]["loaders"]) == ["neoforge"]
    assert json.loads(calls[0]["params"]["game_versions"]) == ["1.21.1"]


def test_get_raises_modrinth_error_on_http_error(
    service: ModrinthService, monkeypatch: pytest.MonkeyPatch
) -> None:
    def fake_get(url: str, **kwargs: Any) -> httpx.Response:
        return httpx.Response(404, text="not found", request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx, "get", fake_get)

    with pytest.raises(ModrinthError) as excinfo:
        service.get_versions("missing", None, None)

    assert excinfo.value.status_code == 404


def test_get_raises_modrinth_error_on_request_error(
    service: ModrinthService, monkeypatch: pytest.MonkeyPatch
) -> None:
    def fake_get(url: str, **kwargs: Any) -> httpx.Response:
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(httpx, "get", fake_get)

    with pytest.raises(ModrinthError) as excinfo:
        service.get_versions("abc", "neoforge", None)

    assert excinfo.value.status_code == 502
    assert "connection refused" in excinfo.value.message
