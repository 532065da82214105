from typing import Optional

from pydantic import BaseModel, Field


LOADERS = ("neoforge", "fabric", "forge", "quilt")


class ServerEntry(BaseModel):
    name: str
    address: str


class ServerDefinition(BaseModel):
    name: str = Field(..., min_length=1)
    minecraft: str = Field(..., min_length=1)
    loader: str = "neoforge"
    loader_version: str = Field(..., min_length=1)
    packwiz_url: Optional[str] = None
    multiplayer: list[ServerEntry] = Field(default_factory=list)


class ServerSummary(BaseModel):
    key: str
    name: str
    minecraft: str
    loader: str
    loader_version: str
    packwiz_url: str
    multiplayer: list[ServerEntry]


class ServerListResponse(BaseModel):
    servers: list[ServerSummary]


class ServersDatRequest(BaseModel):
    servers: list[ServerEntry] = Field(default_factory=list)


class PackInfo(BaseModel):
    minecraft: str
    wildcard: str
    loader: str


class ModFile(BaseModel):
    slug: str
    path: str
    filename: Optional[str] = None
    mod_id: Optional[str] = None
    version_id: Optional[str] = None


class ModVersion(BaseModel):
    id: str
    version_number: Optional[str] = None
    date_published: str = ""
    filename: Optional[str] = None
    game_versions: list[str] = Field(default_factory=list)


class ModUpdateResult(BaseModel):
    slug: str
    status: str
    old_filename: Optional[str] = None
    new_filename: Optional[str] = None
    error: Optional[str] = None


class UpdateSummary(BaseModel):
    server: str
    minecraft: str
    wildcard: str
    loader: str
    dry_run: bool
    results: list[ModUpdateResult] = Field(default_factory=list)

    def count(self, status: str) -> int:
        return sum(1 for result in self.results if result.status == status)

    @property
    def failed(self) -> int:
        return self.count("failed")

    @property
    def outdated(self) -> list[ModUpdateResult]:
        return [result for result in self.results if result.status == "outdated"]


class BuildRequest(BaseModel):
    tag: Optional[str] = Field(None, min_length=1, max_length=128)
    no_cache: bool = False
    push: bool = False


class BuildResult(BaseModel):
    server: str
    image: str
    tags: list[str]
    packwiz_url: str
    pushed: bool = False


class PushRequest(BaseModel):
    tag: Optional[str] = Field(None, min_length=1, max_length=128)


class PushResult(BaseModel):
    server: str
    image: str
    tags: list[str]


class InstanceResult(BaseModel):
    server: str
    instance_dir: str
    files: list[str]
