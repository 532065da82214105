"""Shared fixtures: a throwaway repository with a servers/ tree and catalog."""

import os
import textwrap
from pathlib import Path
from typing import Optional

import pytest

from mcservers.services.server_service import ServerService


PACKWIZ_BASE_URL = "https://packs.example.com"
IMAGE_REGISTRY = "ghcr.io/example/minecraft-servers"

CATALOG = """
[servers.dj-server]
name = "D&J Minecraft Server"
minecraft = "1.21.1"
loader = "neoforge"
loader_version = "21.1.217"
multiplayer = [
  { name = "D&J Server (gamingrig)", address = "gamingrig:25565" },
]

[servers.fabric-server]
name = "Fabric Server"
minecraft = "1.21.1"
loader = "fabric"
loader_version = "0.16.9"
packwiz_url = "https://example.org/fabric/pack.toml"
"""

PACK_TOML = """
name = "D&J"
pack-format = "packwiz:1.1.0"

[index]
file = "index.toml"
hash-format = "sha256"
hash = "0"

[versions]
minecraft = "1.21.1"
neoforge = "21.1.217"
"""


def write_mod(server_dir: Path, slug: str, filename: str, mod_id: Optional[str], version: str = "v1") -> Path:
    mods_dir = server_dir / "mods"
    mods_dir.mkdir(parents=True, exist_ok=True)
    content = f'name = "{slug}"\nfilename = "{filename}"\nside = "both"\n'
    if mod_id:
        content += f'\n[update.modrinth]\nmod-id = "{mod_id}"\nversion = "{version}"\n'
    path = mods_dir / f"{slug}.pw.toml"
    path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture
def repo_root(tmp_path: Path) -> Path:
    root = tmp_path / "repo"
    (root / "servers").mkdir(parents=True)
    (root / "servers.toml").write_text(textwrap.dedent(CATALOG), encoding="utf-8")
    return root


@pytest.fixture
def server_service(repo_root: Path) -> ServerService:
    return ServerService(
        servers_dir=os.path.join(repo_root, "servers"),
        catalog_path=os.path.join(repo_root, "servers.toml"),
        packwiz_base_url=PACKWIZ_BASE_URL,
        image_registry=IMAGE_REGISTRY,
    )


@pytest.fixture
def dj_server(repo_root: Path) -> Path:
    server_dir = repo_root / "servers" / "dj-server"
    server_dir.mkdir()
    (server_dir / "Dockerfile").write_text("FROM eclipse-temurin:21-jre\n", encoding="utf-8")
    (server_dir / "pack.toml").write_text(textwrap.dedent(PACK_TOML), encoding="utf-8")
    return server_dir


@pytest.fixture
def make_mod():
    return write_mod
