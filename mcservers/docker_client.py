from typing import Optional

import docker

from .config import settings

_docker_client: Optional[docker.DockerClient] = None


def get_docker_client() -> docker.DockerClient:
    # Connect to the Docker socket on first use
    global _docker_client
    if _docker_client is None:
        _docker_client = docker.DockerClient(base_url=settings.docker_base_url)
    return _docker_client
