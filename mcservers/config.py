import os
from dataclasses import dataclass

from dotenv import load_dotenv


load_dotenv()


def _get_env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value in (None, ""):
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _get_env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value in (None, ""):
        return default
    if value.strip().lower() in {"1", "true", "yes", "on"}:
        return True
    if value.strip().lower() in {"0", "false", "no", "off"}:
        return False
    return default


@dataclass(frozen=True)
class Settings:
    repo_root: str
    servers_dir: str
    catalog_path: str
    image_registry: str
    packwiz_base_url: str
    modrinth_base_url: str
    docker_base_url: str
    image_tag: str
    no_cache: bool
    update_delay_seconds: float
    instances_path: str
    bootstrap_jar_url: str
    bootstrap_jar_path: str | None
    packwiz_bin: str
    log_level: str


def load_settings() -> Settings:
    repo_root = os.path.abspath(os.getenv("REPO_ROOT", os.getcwd()))
    default_instances = os.path.join(
        os.path.expanduser("~"), ".local", "share", "PrismLauncher", "instances"
    )
    return Settings(
        repo_root=repo_root,
        servers_dir=os.path.join(repo_root, "servers"),
        catalog_path=os.path.abspath(
            os.getenv("SERVERS_CATALOG", os.path.join(repo_root, "servers.toml"))
        ),
        image_registry=os.getenv("IMAGE_REGISTRY", "ghcr.io/curtbushko/minecraft-servers"),
        packwiz_base_url=os.getenv(
            "PACKWIZ_BASE_URL", "https://curtbushko.github.io/minecraft-servers"
        ),
        modrinth_base_url=os.getenv("MODRINTH_BASE_URL", "https://api.modrinth.com/v2"),
        docker_base_url=os.getenv("DOCKER_BASE_URL", "unix://var/run/docker.sock"),
        image_tag=os.getenv("TAG", "latest"),
        no_cache=_get_env_bool("NO_CACHE", False),
        update_delay_seconds=_get_env_float("DELAY_SECONDS", 2.0),
        instances_path=os.path.expanduser(os.getenv("INSTANCES_PATH", default_instances)),
        bootstrap_jar_url=os.getenv(
            "PACKWIZ_BOOTSTRAP_URL",
            "https://github.com/packwiz/packwiz-installer-bootstrap/releases/download/"
            "v0.0.3/packwiz-installer-bootstrap.jar",
        ),
        bootstrap_jar_path=os.getenv("PACKWIZ_BOOTSTRAP_JAR") or None,
        packwiz_bin=os.getenv("PACKWIZ_BIN", "packwiz"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


settings = load_settings()
