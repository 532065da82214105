import logging
import os
import re
import shutil
import subprocess
import time
import tomllib
from typing import Any, Callable, Optional

from ..config import settings
from ..models import LOADERS, ModFile, ModUpdateResult, PackInfo, UpdateSummary
from .modrinth_service import ModrinthError, ModrinthService, wildcard_version
from .server_service import ServerService, ServiceError


VERSION_RE = re.compile(r"(?<![0-9.])([0-9]+)\.([0-9]+)")


def targets_older_minecraft(filename: str, minecraft: str) -> bool:
    """True when ``filename`` names an older minor release of ``minecraft`` but not it."""
    match = VERSION_RE.match(minecraft)
    if not match or not filename:
        return False
    major, minor = int(match.group(1)), int(match.group(2))
    minors = {
        int(found.group(2))
        for found in VERSION_RE.finditer(filename)
        if int(found.group(1)) == major
    }
    return minor not in minors and any(value < minor for value in minors)


class PackwizService:
    def __init__(
        self,
        servers: Optional[ServerService] = None,
        modrinth: Optional[ModrinthService] = None,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        sleep: Callable[[float], None] = time.sleep,
        packwiz_bin: Optional[str] = None,
    ) -> None:
        self.servers = servers or ServerService()
        self.modrinth = modrinth or ModrinthService()
        self.runner = runner
        self.sleep = sleep
        self.packwiz_bin = packwiz_bin or settings.packwiz_bin
        self.log = logging.getLogger("mc-servers")

    def check_dependencies(self) -> None:
        if shutil.which(self.packwiz_bin) is None:
            raise ServiceError(
                503,
                "packwiz is not installed. "
                "Install it with: go install github.com/packwiz/packwiz@latest",
            )

    def read_pack(self, server: str) -> PackInfo:
        server_dir = self.servers.require_server_dir(server)
        data = self._load_toml(os.path.join(server_dir, "pack.toml"), required=True)
        versions = data.get("versions") or {}
        minecraft = versions.get("minecraft")
        if not isinstance(minecraft, str) or not minecraft.strip():
            raise ServiceError(500, f"pack.toml for {server} has no minecraft version")
        minecraft = minecraft.strip()
        loader = next((name for name in LOADERS if name in versions), "neoforge")
        return PackInfo(minecraft=minecraft, wildcard=wildcard_version(minecraft), loader=loader)

    def list_mods(self, server: str) -> list[ModFile]:
        mods_dir = os.path.join(self.servers.require_server_dir(server), "mods")
        if not os.path.isdir(mods_dir):
            self.log.warning("No mods directory found in %s", mods_dir)
            return []
        return [
            self.read_mod(os.path.join(mods_dir, name))
            for name in sorted(os.listdir(mods_dir))
            if name.endswith(".pw.toml") and os.path.isfile(os.path.join(mods_dir, name))
        ]

    def read_mod(self, path: str) -> ModFile:
        data = self._load_toml(path, required=False)
        modrinth = (data.get("update") or {}).get("modrinth") or {}
        return ModFile(
            slug=os.path.basename(path)[: -len(".pw.toml")],
            path=path,
            filename=data.get("filename"),
            mod_id=modrinth.get("mod-id"),
            version_id=modrinth.get("version"),
        )

    def refresh(self, server: str) -> None:
        completed = self._run(server, ["refresh"])
        if completed.returncode != 0:
            self.log.warning(
                "packwiz refresh had issues for %s, continuing: %s",
                server,
                (completed.stdout or "").strip(),
            )

    def update_server(
        self, server: str, dry_run: bool = False, delay: Optional[float] = None
    ) -> UpdateSummary:
        delay = settings.update_delay_seconds if delay is None else delay
        pack = self.read_pack(server)
        self.log.info(
            "Updating %s (minecraft %s, also %s, loader %s)",
            server,
            pack.minecraft,
            pack.wildcard,
            pack.loader,
        )
        summary = UpdateSummary(
            server=server,
            minecraft=pack.minecraft,
            wildcard=pack.wildcard,
            loader=pack.loader,
            dry_run=dry_run,
        )

        self.refresh(server)
        mods = self.list_mods(server)
        for index, mod in enumerate(mods):
            self.log.info("[%d/%d] %s", index + 1, len(mods), mod.slug)
            if dry_run:
                summary.results.append(
                    ModUpdateResult(slug=mod.slug, status="skipped", old_filename=mod.filename)
                )
                continue

            summary.results.append(self._update_mod(server, pack, mod))
            if index < len(mods) - 1 and delay > 0:
                self.sleep(delay)
        return summary

    def update_all(
        self, dry_run: bool = False, delay: Optional[float] = None
    ) -> tuple[list[UpdateSummary], dict[str, str]]:
        summaries: list[UpdateSummary] = []
        failures: dict[str, str] = {}
        for server in self.servers.list_server_dirs():
            try:
                summaries.append(self.update_server(server, dry_run=dry_run, delay=delay))
            except ServiceError as exc:
                self.log.error("Update failed for %s: %s", server, exc.message)
                failures[server] = exc.message
        return summaries, failures

    def _update_mod(self, server: str, pack: PackInfo, mod: ModFile) -> ModUpdateResult:
        command = ["update", mod.slug]
        if mod.mod_id:
            try:
                latest = self.modrinth.latest_compatible_version(
                    mod.mod_id, pack.minecraft, pack.wildcard, pack.loader
                )
            except ModrinthError as exc:
                self.log.warning("Modrinth lookup failed for %s: %s", mod.slug, exc.message)
                latest = None
            if latest is not None and latest.id != mod.version_id:
                self.log.info("Found newer version via API: %s", latest.filename or latest.id)
                command = [
                    "modrinth",
                    "install",
                    "--project-id",
                    mod.mod_id,
                    "--version-id",
                    latest.id,
                    "-y",
                ]

        completed = self._run(server, command)
        if completed.returncode != 0:
            output = (completed.stdout or "").strip()
            self.log.error("Error updating %s: %s", mod.slug, output)
            return ModUpdateResult(
                slug=mod.slug, status="failed", old_filename=mod.filename, error=output
            )

        new_filename = self.read_mod(mod.path).filename if os.path.exists(mod.path) else None
        if new_filename != mod.filename:
            self.log.info("Updated %s: %s -> %s", mod.slug, mod.filename, new_filename)
            status = "updated"
        elif targets_older_minecraft(new_filename or "", pack.minecraft):
            self.log.warning(
                "No %s version of %s available, still on %s", pack.minecraft, mod.slug, new_filename
            )
            status = "outdated"
        else:
            status = "unchanged"
        return ModUpdateResult(
            slug=mod.slug, status=status, old_filename=mod.filename, new_filename=new_filename
        )

    def _run(self, server: str, args: list[str]) -> subprocess.CompletedProcess:
        command = [self.packwiz_bin, *args]
        self.log.debug("Running %s", " ".join(command))
        try:
            return self.runner(
                command,
                cwd=self.servers.server_dir(server),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise ServiceError(503, f"packwiz is not installed: {exc}") from exc

    def _load_toml(self, path: str, required: bool) -> dict[str, Any]:
        if not os.path.isfile(path):
            if required:
                raise ServiceError(404, f"{os.path.basename(path)} not found in {os.path.dirname(path)}")
            return {}
        try:
            with open(path, "rb") as handle:
                return tomllib.load(handle)
        except (OSError, tomllib.TOMLDecodeError) as exc:
            raise ServiceError(500, f"Failed to read {path}: {exc}") from exc
