import logging
import os
import re
import tomllib
from typing import Optional

from dotenv import dotenv_values
from pydantic import ValidationError

from ..config import settings
from ..models import ServerDefinition, ServerSummary


class ServiceError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


SERVER_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class ServerService:
    """Server catalog (servers.toml) and the per-server directories under servers/."""

    def __init__(
        self,
        servers_dir: Optional[str] = None,
        catalog_path: Optional[str] = None,
        packwiz_base_url: Optional[str] = None,
        image_registry: Optional[str] = None,
    ) -> None:
        self.servers_dir = servers_dir or settings.servers_dir
        self.catalog_path = catalog_path or settings.catalog_path
        self.packwiz_base_url = (packwiz_base_url or settings.packwiz_base_url).rstrip("/")
        self.image_registry = (image_registry or settings.image_registry).rstrip("/")
        self.log = logging.getLogger("mc-servers")

    def load_catalog(self) -> dict[str, ServerDefinition]:
        if not os.path.exists(self.catalog_path):
            self.log.debug("No server catalog at %s", self.catalog_path)
            return {}
        try:
            with open(self.catalog_path, "rb") as handle:
                data = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            raise ServiceError(500, f"Server catalog is invalid: {exc}") from exc
        except OSError as exc:
            raise ServiceError(500, f"Failed to read server catalog: {exc}") from exc

        servers = data.get("servers", {})
        if not isinstance(servers, dict):
            raise ServiceError(500, "Server catalog must define [servers.<name>] tables")

        catalog: dict[str, ServerDefinition] = {}
        for key, raw in servers.items():
            if not isinstance(raw, dict):
                raise ServiceError(500, f"Server catalog entry {key} must be a table")
            try:
                catalog[key] = ServerDefinition(**raw)
            except ValidationError as exc:
                raise ServiceError(500, f"Server catalog entry {key} is invalid: {exc}") from exc
        return catalog

    def get_server(self, key: str) -> ServerDefinition:
        catalog = self.load_catalog()
        if key not in catalog:
            raise ServiceError(404, f"Unknown server: {key}")
        return catalog[key]

    def summaries(self) -> list[ServerSummary]:
        return [
            ServerSummary(
                key=key,
                name=definition.name,
                minecraft=definition.minecraft,
                loader=definition.loader,
                loader_version=definition.loader_version,
                packwiz_url=definition.packwiz_url or self.packwiz_url(key),
                multiplayer=definition.multiplayer,
            )
            for key, definition in sorted(self.load_catalog().items())
        ]

    def list_server_dirs(self) -> list[str]:
        if not os.path.isdir(self.servers_dir):
            return []
        return sorted(
            name
            for name in os.listdir(self.servers_dir)
            if os.path.isdir(os.path.join(self.servers_dir, name))
        )

    def server_dir(self, server: str) -> str:
        if not SERVER_NAME_RE.match(server):
            raise ServiceError(400, f"Invalid server name: {server}")
        return os.path.join(self.servers_dir, server)

    def require_server_dir(self, server: str) -> str:
        path = self.server_dir(server)
        if not os.path.isdir(path):
            raise ServiceError(404, f"Server directory not found: {path}")
        return path

    def server_env(self, server: str) -> dict[str, str]:
        path = os.path.join(self.server_dir(server), "server.env")
        if not os.path.isfile(path):
            return {}
        return {key: value for key, value in dotenv_values(path).items() if value}

    def image_name(self, server: str) -> str:
        return self.server_env(server).get("IMAGE_NAME") or f"{self.image_registry}/{server}"

    def packwiz_url(self, server: str) -> str:
        base_url = self.server_env(server).get("PACKWIZ_BASE_URL") or self.packwiz_base_url
        return f"{base_url.rstrip('/')}/{server}/pack.toml"
