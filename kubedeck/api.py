import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Tuple

import httpx
from fastapi import APIRouter, FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.types import ASGIApp

import kubedeck.backend
from kubedeck.defaults import DEFAULT_API_URL, DEFAULT_IMAGE, DEFAULT_INTERVAL
from kubedeck.models import (
    AssistantRequest,
    ClientConfig,
    ClusterInfo,
    ManifestEdit,
    NamespaceSelection,
    NodeSummary,
    OpenRequest,
    Outcome,
    ResourceKind,
    ResourceSummary,
    SessionInfo,
    TemplateInputs,
)
from kubedeck.session import Session

# Convenience.
logit = logging.getLogger("kubedeck")

router = APIRouter()

# Map failed outcomes to HTTP status codes.
ERROR_STATUS = {
    "validation": 422,
    "backend": status.HTTP_502_BAD_GATEWAY,
    "context": status.HTTP_409_CONFLICT,
}


def make_httpclient(api_url: str) -> Tuple[httpx.AsyncClient, bool]:
    base_url = api_url.rstrip("/") + "/api"
    ca_path = os.environ.get("KUBEDECK_CA_FILE", None)
    try:
        if ca_path:
            verify = str(Path(ca_path).expanduser())
            client = httpx.AsyncClient(base_url=base_url, verify=verify)
        else:
            client = httpx.AsyncClient(base_url=base_url)
    except OSError as err:
        logit.error("cannot create http client", {"reason": tuple(err.args)})
        return httpx.AsyncClient(base_url=base_url), True
    return client, False


# ----------------------------------------------------------------------
# Setup Client.
# ----------------------------------------------------------------------
def compile_client_config() -> Tuple[ClientConfig, bool]:
    api_url = os.getenv("KUBEDECK_API_URL", DEFAULT_API_URL)
    try:
        interval = float(os.getenv("KUBEDECK_INTERVAL", str(DEFAULT_INTERVAL)))
        settle = float(os.getenv("KUBEDECK_SETTLE", "2"))
        port = int(os.getenv("KUBEDECK_PORT", "5002"))
        loglevel = os.getenv("KUBEDECK_LOGLEVEL", "info")
        assert interval > 0 and settle >= 0
        assert loglevel.upper() in logging.getLevelNamesMapping()
    except (AssertionError, ValueError) as e:
        logit.error("invalid environment variables", {"reason": tuple(e.args)})
        return (
            ClientConfig(api_url="", port=-1, httpclient=httpx.AsyncClient()),
            True,
        )

    # Only create the client once all scalar settings are known to be valid.
    client, err = make_httpclient(api_url)
    cfg = ClientConfig(
        api_url=api_url,
        interval=interval,
        settle=settle,
        image=os.getenv("KUBEDECK_IMAGE", DEFAULT_IMAGE),
        loglevel=loglevel,
        host=os.getenv("KUBEDECK_HOST", "127.0.0.1"),
        port=port,
        httpclient=client,
    )
    return cfg, err


def get_session(request: Request) -> Session:
    return request.app.extra["session"]


def raise_on_error(ret: Outcome) -> Outcome:
    """Convert a failed `Outcome` into an `HTTPException`."""
    if not ret.ok:
        raise HTTPException(
            status_code=ERROR_STATUS.get(ret.error, status.HTTP_400_BAD_REQUEST),
            detail=ret.model_dump(mode="json"),
        )
    return ret


@asynccontextmanager
async def lifespan(app: FastAPI):
    cfg: ClientConfig = app.extra["config"]

    # Provide a single AsyncClient instance to the entire app. The session
    # cancels its reconciliation loops on exit.
    async with cfg.httpclient, Session(cfg) as session:
        app.extra["session"] = session
        logit.info("server startup complete")
        yield
    logit.info("server shutdown complete")


async def validation_error_handler(
    _: Request, exc: RequestValidationError
) -> JSONResponse:
    logit.info("invalid request", {"errors": exc.errors()})
    return JSONResponse(
        status_code=422,
        content=jsonable_encoder({"detail": exc.errors(), "body": exc.body}),
    )


# ----------------------------------------------------------------------
# Routes.
# ----------------------------------------------------------------------
@router.get("/healthz")
def get_healthz() -> int:
    """Health check endpoint. Always returns 200."""
    return status.HTTP_200_OK


@router.get("/v1/namespaces")
async def get_namespaces(request: Request) -> List[str]:
    session = get_session(request)
    namespaces, err = await kubedeck.backend.list_namespaces(session.cfg)
    if err:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Cannot fetch namespaces",
        )
    return namespaces


@router.get("/v1/cluster")
async def get_cluster(request: Request) -> ClusterInfo:
    name, err = await kubedeck.backend.get_cluster_name(get_session(request).cfg)
    if err:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Cannot fetch cluster name",
        )
    return ClusterInfo(clusterName=name)


@router.get("/v1/nodes")
async def get_nodes(request: Request) -> List[NodeSummary]:
    nodes, err = await kubedeck.backend.list_nodes(get_session(request).cfg)
    if err:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Cannot fetch node details",
        )
    return nodes


@router.get("/v1/session")
def get_session_info(request: Request) -> SessionInfo:
    return get_session(request).info()


@router.put("/v1/session")
def put_session_namespace(sel: NamespaceSelection, request: Request) -> SessionInfo:
    session = get_session(request)
    session.select_namespace(sel.namespace)
    return session.info()


@router.get("/v1/resources/{kind}")
def get_resources(kind: ResourceKind, request: Request) -> List[ResourceSummary]:
    return get_session(request).list_resources(kind)


@router.delete("/v1/resources/{kind}/{name}")
async def delete_resource(kind: ResourceKind, name: str, request: Request) -> Outcome:
    ret = await get_session(request).delete(kind, name)
    return raise_on_error(ret)


@router.post("/v1/session/open")
async def post_session_open(req: OpenRequest, request: Request) -> SessionInfo:
    session = get_session(request)
    if req.mode == "create":
        session.open_create(req.kind, req.name, req.image)
    elif req.mode == "edit":
        raise_on_error(await session.open_edit(req.kind, req.name))
    else:
        raise_on_error(await session.open_logs(req.name))
    return session.info()


@router.put("/v1/session/inputs")
def put_session_inputs(inputs: TemplateInputs, request: Request) -> SessionInfo:
    session = get_session(request)
    raise_on_error(session.set_inputs(inputs.name, inputs.kind, inputs.image))
    return session.info()


@router.put("/v1/session/manifest")
def put_session_manifest(edit: ManifestEdit, request: Request) -> SessionInfo:
    session = get_session(request)
    session.edit_manifest(edit.manifest)
    return session.info()


@router.post("/v1/session/submit")
async def post_session_submit(request: Request) -> Outcome:
    ret = await get_session(request).submit()
    return raise_on_error(ret)


@router.post("/v1/session/close")
def post_session_close(request: Request) -> SessionInfo:
    session = get_session(request)
    session.close()
    return session.info()


@router.post("/v1/assistant")
async def post_assistant(req: AssistantRequest, request: Request) -> Outcome:
    ret = await get_session(request).draft(req.query)
    return raise_on_error(ret)


def make_app(cfg: ClientConfig | None = None) -> ASGIApp:
    """Return a fully configured FastAPI instance."""
    if cfg is None:
        cfg, err = compile_client_config()
        if err:
            raise RuntimeError("could not meet preconditions to start server")

    app = FastAPI(
        title="Kubedeck",
        summary="",
        description="",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.extra["config"] = cfg

    app.include_router(router, prefix="", tags=["Kubedeck"])
    app.add_exception_handler(RequestValidationError, handler=validation_error_handler)  # type: ignore
    return app
