import logging
import os
from typing import Optional

from docker.errors import BuildError, DockerException, ImageNotFound

from ..config import settings
from ..docker_client import get_docker_client
from ..models import BuildResult, PushResult
from .server_service import ServerService, ServiceError


class ImageService:
    def __init__(self, servers: Optional[ServerService] = None, docker_client=None) -> None:
        self.servers = servers or ServerService()
        self._docker_client = docker_client
        self.log = logging.getLogger("mc-servers")

    def build(
        self,
        server: str,
        tag: Optional[str] = None,
        no_cache: Optional[bool] = None,
        push: bool = False,
    ) -> BuildResult:
        tag = tag or settings.image_tag
        no_cache = settings.no_cache if no_cache is None else no_cache
        server_dir = self.servers.require_server_dir(server)
        if not os.path.isfile(os.path.join(server_dir, "Dockerfile")):
            raise ServiceError(404, f"Dockerfile not found in {server_dir}")

        image_name = self.servers.image_name(server)
        packwiz_url = self.servers.packwiz_url(server)
        self.log.info("Building %s as %s:%s (packwiz %s)", server, image_name, tag, packwiz_url)

        docker_client = self._client()
        try:
            image, build_logs = docker_client.images.build(
                path=server_dir,
                dockerfile="Dockerfile",
                tag=f"{image_name}:{tag}",
                buildargs={"PACKWIZ_URL": packwiz_url},
                nocache=no_cache,
                rm=True,
            )
            for chunk in build_logs:
                line = chunk.get("stream", "").rstrip() if isinstance(chunk, dict) else ""
                if line:
                    self.log.debug("%s", line)
            tags = [tag]
            if tag != "latest":
                image.tag(image_name, "latest")
                tags.append("latest")
        except BuildError as exc:
            raise ServiceError(500, f"Failed to build {server}: {exc.msg}") from exc
        except DockerException as exc:
            raise ServiceError(503, f"Docker unavailable: {exc}") from exc

        self.log.info("Built %s:%s", image_name, tag)
        result = BuildResult(server=server, image=image_name, tags=tags, packwiz_url=packwiz_url)
        if push:
            for pushed_tag in tags:
                self._push_tag(image_name, pushed_tag)
            result.pushed = True
        return result

    def build_all(
        self, tag: Optional[str] = None, no_cache: Optional[bool] = None, push: bool = False
    ) -> list[BuildResult]:
        servers = self.servers.list_server_dirs()
        if not servers:
            raise ServiceError(404, f"No servers found in {self.servers.servers_dir}")
        return [self.build(server, tag=tag, no_cache=no_cache, push=push) for server in servers]

    def push(self, server: str, tag: Optional[str] = None) -> PushResult:
        tag = tag or settings.image_tag
        self.servers.require_server_dir(server)
        image_name = self.servers.image_name(server)

        if not self._image_exists(f"{image_name}:{tag}"):
            raise ServiceError(
                404, f"Image {image_name}:{tag} not found locally. Run build first."
            )

        self._push_tag(image_name, tag)
        tags = [tag]
        if tag != "latest" and self._image_exists(f"{image_name}:latest"):
            self._push_tag(image_name, "latest")
            tags.append("latest")
        return PushResult(server=server, image=image_name, tags=tags)

    def push_all(self, tag: Optional[str] = None) -> tuple[list[PushResult], dict[str, str]]:
        pushed: list[PushResult] = []
        failures: dict[str, str] = {}
        for server in self.servers.list_server_dirs():
            try:
                pushed.append(self.push(server, tag=tag))
            except ServiceError as exc:
                self.log.error("Push failed for %s: %s", server, exc.message)
                failures[server] = exc.message
        return pushed, failures

    def _client(self):
        if self._docker_client is None:
            try:
                self._docker_client = get_docker_client()
            except DockerException as exc:
                raise ServiceError(503, f"Docker unavailable: {exc}") from exc
        return self._docker_client

    def _image_exists(self, reference: str) -> bool:
        try:
            self._client().images.get(reference)
        except ImageNotFound:
            return False
        except DockerException as exc:
            raise ServiceError(503, f"Docker unavailable: {exc}") from exc
        return True

    def _push_tag(self, image_name: str, tag: str) -> None:
        self.log.info("Pushing %s:%s", image_name, tag)
        try:
            for line in self._client().images.push(image_name, tag=tag, stream=True, decode=True):
                if isinstance(line, dict) and line.get("error"):
                    raise ServiceError(500, f"Failed to push {image_name}:{tag}: {line['error']}")
        except DockerException as exc:
            raise ServiceError(500, f"Failed to push {image_name}:{tag}: {exc}") from exc
        self.log.info("Pushed %s:%s", image_name, tag)
