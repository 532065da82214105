import json
import logging
import re
from typing import Any, Optional

import httpx

from ..config import settings
from ..models import ModVersion


USER_AGENT = "minecraft-servers/1.0"


class ModrinthError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def wildcard_version(minecraft: str) -> str:
    """Turn ``1.21.1`` into ``1.21.x``; versions without a patch are kept."""
    if minecraft.count(".") < 2:
        return minecraft
    return re.sub(r"\.[0-9]+$", ".x", minecraft)


class ModrinthService:
    def __init__(self, base_url: Optional[str] = None) -> None:
        self.base_url = (base_url or settings.modrinth_base_url).rstrip("/")
        self.timeout = httpx.Timeout(20.0)
        self.log = logging.getLogger("mc-servers")

    def get_versions(
        self, project_id: str, loader: Optional[str], game_version: Optional[str]
    ) -> list[dict[str, Any]]:
        params: dict[str, str] = {}
        if loader:
            params["loaders"] = json.dumps([loader])
        if game_version:
            params["game_versions"] = json.dumps([game_version])
        return self._get(f"/project/{project_id}/version", params)

    def latest_compatible_version(
        self, project_id: str, exact: str, wildcard: str, loader: str
    ) -> Optional[ModVersion]:
        """Newest version tagged for ``loader`` and either ``exact`` or ``wildcard``.

        Mods are tagged on Modrinth with either form (``1.21.1`` or ``1.21.x``),
        so both are accepted. On equal publish dates the version listed first
        by the API wins.
        """
        versions = self.get_versions(project_id, None, None)
        best: Optional[dict[str, Any]] = None
        for version in versions if isinstance(versions, list) else []:
            if not isinstance(version, dict):
                continue
            if loader not in (version.get("loaders") or []):
                continue
            game_versions = version.get("game_versions") or []
            if exact not in game_versions and wildcard not in game_versions:
                continue
            published = str(version.get("date_published") or "")
            if best is None or published > str(best.get("date_published") or ""):
                best = version

        if best is None:
            self.log.debug("No %s version of %s for %s/%s", loader, project_id, exact, wildcard)
            return None

        files = best.get("files") or []
        primary = next((item for item in files if item.get("primary")), files[0] if files else {})
        return ModVersion(
            id=best["id"],
            version_number=best.get("version_number"),
            date_published=str(best.get("date_published") or ""),
            filename=primary.get("filename"),
            game_versions=list(best.get("game_versions") or []),
        )

    def _get(self, path: str, params: dict[str, str]) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = httpx.get(
                url,
                params=params,
                headers={"User-Agent": USER_AGENT},
                timeout=self.timeout,
            )
        except httpx.RequestError as exc:
            raise ModrinthError(502, f"Modrinth request failed: {exc}") from exc

        if response.status_code >= 400:
            raise ModrinthError(
                response.status_code,
                f"Modrinth error {response.status_code}: {response.text}",
            )
        return response.json()
