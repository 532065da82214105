from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, Response

from .models import (
    BuildRequest,
    BuildResult,
    ModVersion,
    PushRequest,
    PushResult,
    ServerListResponse,
    ServersDatRequest,
    UpdateSummary,
)
from .services.image_service import ImageService
from .services.modrinth_service import ModrinthError, ModrinthService, wildcard_version
from .services.packwiz_service import PackwizService
from .services.server_service import ServerService, ServiceError
from .services.servers_dat import EncodingError, EncodingErrorKind, encode

app = FastAPI(title="Minecraft Servers")
servers = ServerService()
modrinth = ModrinthService()
images = ImageService(servers=servers)
packwiz = PackwizService(servers=servers, modrinth=modrinth)

SERVERS_DAT_MEDIA_TYPE = "application/octet-stream"


@app.exception_handler(ServiceError)
def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(ModrinthError)
def modrinth_error_handler(request: Request, exc: ModrinthError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(EncodingError)
def encoding_error_handler(request: Request, exc: EncodingError) -> JSONResponse:
    status_code = 500 if exc.kind == EncodingErrorKind.WRITE_FAILURE else 422
    return JSONResponse(
        status_code=status_code, content={"detail": exc.message, "kind": exc.kind.value}
    )


def _servers_dat_response(data: bytes) -> Response:
    return Response(
        content=data,
        media_type=SERVERS_DAT_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="servers.dat"'},
    )


@app.get("/servers", response_model=ServerListResponse)
def list_servers() -> ServerListResponse:
    return ServerListResponse(servers=servers.summaries())


@app.get("/servers/{key}/servers.dat")
def get_servers_dat(key: str) -> Response:
    definition = servers.get_server(key)
    return _servers_dat_response(encode(definition.multiplayer))


@app.post("/servers-dat")
def encode_servers_dat(request: ServersDatRequest) -> Response:
    return _servers_dat_response(encode(request.servers))


@app.post("/servers/{key}/build", response_model=BuildResult)
def build_server(key: str, request: Optional[BuildRequest] = None) -> BuildResult:
    request = request or BuildRequest()
    return images.build(key, tag=request.tag, no_cache=request.no_cache, push=request.push)


@app.post("/servers/{key}/push", response_model=PushResult)
def push_server(key: str, request: Optional[PushRequest] = None) -> PushResult:
    request = request or PushRequest()
    return images.push(key, tag=request.tag)


@app.post("/servers/{key}/mods/update", response_model=UpdateSummary)
def update_mods(
    key: str,
    dry_run: bool = Query(False),
    delay: Optional[float] = Query(None, ge=0),
) -> UpdateSummary:
    packwiz.check_dependencies()
    return packwiz.update_server(key, dry_run=dry_run, delay=delay)


@app.get("/mods/{project_id}/latest", response_model=ModVersion)
def latest_mod_version(
    project_id: str,
    minecraft: str = Query(..., min_length=1),
    loader: str = Query("neoforge"),
) -> ModVersion:
    version = modrinth.latest_compatible_version(
        project_id, minecraft, wildcard_version(minecraft), loader
    )
    if version is None:
        raise ServiceError(404, "No compatible versions found")
    return version
