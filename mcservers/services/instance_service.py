import json
import logging
import os
import shutil
from typing import Any, Iterable, Optional

import httpx

from ..config import settings
from ..models import InstanceResult, ServerDefinition
from .server_service import ServerService, ServiceError
from .servers_dat import write_servers_dat


BOOTSTRAP_JAR = "packwiz-installer-bootstrap.jar"
LWJGL_VERSION = "3.3.3"


def instance_cfg(definition: ServerDefinition, packwiz_url: str) -> str:
    return (
        "[General]\n"
        "ConfigVersion=1.2\n"
        "iconKey=default\n"
        f"name={definition.name}\n"
        "OverrideCommands=true\n"
        f'PreLaunchCommand="$INST_JAVA" -jar {BOOTSTRAP_JAR} {packwiz_url}\n'
    )


def mmc_pack(definition: ServerDefinition) -> dict[str, Any]:
    minecraft = definition.minecraft
    components: list[dict[str, Any]] = [
        {
            "cachedName": "LWJGL 3",
            "cachedVersion": LWJGL_VERSION,
            "dependencyOnly": True,
            "uid": "org.lwjgl3",
            "version": LWJGL_VERSION,
        },
        {
            "cachedName": "Minecraft",
            "cachedRequires": [{"equals": LWJGL_VERSION, "uid": "org.lwjgl3"}],
            "cachedVersion": minecraft,
            "important": True,
            "uid": "net.minecraft",
            "version": minecraft,
        },
    ]
    requires_minecraft = [{"equals": minecraft, "uid": "net.minecraft"}]
    if definition.loader == "neoforge":
        components.append(
            {
                "cachedName": "NeoForge",
                "cachedRequires": requires_minecraft,
                "cachedVersion": definition.loader_version,
                "uid": "net.neoforged",
                "version": definition.loader_version,
            }
        )
    elif definition.loader == "fabric":
        components.append(
            {
                "cachedName": "Intermediary Mappings",
                "cachedRequires": requires_minecraft,
                "cachedVersion": minecraft,
                "dependencyOnly": True,
                "uid": "net.fabricmc.intermediary",
                "version": minecraft,
            }
        )
        components.append(
            {
                "cachedName": "Fabric Loader",
                "cachedRequires": [{"uid": "net.fabricmc.intermediary"}],
                "cachedVersion": definition.loader_version,
                "uid": "net.fabricmc.fabric-loader",
                "version": definition.loader_version,
            }
        )
    elif definition.loader == "forge":
        components.append(
            {
                "cachedName": "Forge",
                "cachedRequires": requires_minecraft,
                "cachedVersion": definition.loader_version,
                "uid": "net.minecraftforge",
                "version": definition.loader_version,
            }
        )
    return {"components": components, "formatVersion": 1}


class InstanceService:
    """Prism Launcher instances that sync their mods from the packwiz pack on launch."""

    def __init__(
        self,
        servers: Optional[ServerService] = None,
        instances_path: Optional[str] = None,
        bootstrap_jar_path: Optional[str] = None,
        bootstrap_jar_url: Optional[str] = None,
    ) -> None:
        self.servers = servers or ServerService()
        self.instances_path = instances_path or settings.instances_path
        self.bootstrap_jar_path = bootstrap_jar_path or settings.bootstrap_jar_path
        self.bootstrap_jar_url = bootstrap_jar_url or settings.bootstrap_jar_url
        self.log = logging.getLogger("mc-servers")

    def setup_instance(self, key: str, definition: Optional[ServerDefinition] = None) -> InstanceResult:
        definition = definition or self.servers.get_server(key)
        packwiz_url = definition.packwiz_url or self.servers.packwiz_url(key)
        instance_dir = os.path.join(self.instances_path, key)
        minecraft_dir = os.path.join(instance_dir, ".minecraft")
        self.log.info("Creating instance %s in %s", key, instance_dir)

        try:
            os.makedirs(minecraft_dir, exist_ok=True)
            jar_path = os.path.join(minecraft_dir, BOOTSTRAP_JAR)
            shutil.copyfile(self._bootstrap_jar(), jar_path)

            cfg_path = os.path.join(instance_dir, "instance.cfg")
            with open(cfg_path, "w", encoding="utf-8") as handle:
                handle.write(instance_cfg(definition, packwiz_url))

            pack_path = os.path.join(instance_dir, "mmc-pack.json")
            with open(pack_path, "w", encoding="utf-8") as handle:
                json.dump(mmc_pack(definition), handle, indent=2, sort_keys=True)
                handle.write("\n")
        except OSError as exc:
            raise ServiceError(500, f"Failed to create instance {key}: {exc}") from exc

        files = [jar_path, cfg_path, pack_path]
        if definition.multiplayer:
            servers_dat = os.path.join(minecraft_dir, "servers.dat")
            write_servers_dat(servers_dat, definition.multiplayer)
            files.append(servers_dat)
        return InstanceResult(server=key, instance_dir=instance_dir, files=files)

    def setup_instances(self, keys: Optional[Iterable[str]] = None) -> list[InstanceResult]:
        catalog = self.servers.load_catalog()
        selected = list(keys) if keys else sorted(catalog)
        unknown = [key for key in selected if key not in catalog]
        if unknown:
            raise ServiceError(404, f"Unknown server(s): {', '.join(unknown)}")
        return [self.setup_instance(key, catalog[key]) for key in selected]

    def _bootstrap_jar(self) -> str:
        if self.bootstrap_jar_path:
            if not os.path.isfile(self.bootstrap_jar_path):
                raise ServiceError(404, f"Bootstrap jar not found: {self.bootstrap_jar_path}")
            return self.bootstrap_jar_path

        cached = os.path.join(self.instances_path, f".{BOOTSTRAP_JAR}")
        if not os.path.isfile(cached):
            os.makedirs(self.instances_path, exist_ok=True)
            self._download_file(self.bootstrap_jar_url, cached)
        return cached

    def _download_file(self, url: str, dest_path: str) -> None:
        self.log.info("Downloading %s", url)
        tmp_path = f"{dest_path}.part"
        try:
            with httpx.stream(
                "GET",
                url,
                headers={"User-Agent": "minecraft-servers/1.0"},
                timeout=httpx.Timeout(30.0),
                follow_redirects=True,
            ) as response:
                if response.status_code >= 400:
                    raise ServiceError(
                        502, f"Bootstrap jar download failed: HTTP {response.status_code}"
                    )
                with open(tmp_path, "wb") as handle:
                    for chunk in response.iter_bytes():
                        handle.write(chunk)
        except httpx.RequestError as exc:
            self._discard(tmp_path)
            raise ServiceError(502, f"Bootstrap jar download failed: {exc}") from exc
        except (ServiceError, OSError):
            self._discard(tmp_path)
            raise
        os.replace(tmp_path, dest_path)

    def _discard(self, path: str) -> None:
        if os.path.exists(path):
            os.remove(path)
