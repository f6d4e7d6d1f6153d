import httpx
import pytest

import kubedeck.logstreams
from kubedeck.models import ClientConfig, OperationContext, ResourceKind
from kubedeck.operations import Controller
from kubedeck.store import ResourceStore

# Convenience: all mocked backend routes live under this URL.
BASE_URL = "http://kubedeck.test/api"


def pytest_configure(*args, **kwargs):
    """Pytest calls this hook on startup."""
    # Set log level to DEBUG for all unit tests.
    kubedeck.logstreams.setup("DEBUG")


def get_client_config(client: httpx.AsyncClient | None = None) -> ClientConfig:
    return ClientConfig(
        api_url="http://kubedeck.test",
        interval=10,
        settle=0,
        image="nginx",
        loglevel="debug",
        host="127.0.0.1",
        port=5002,
        httpclient=client or httpx.AsyncClient(base_url=BASE_URL),
    )


def url(path: str) -> str:
    return BASE_URL + path


@pytest.fixture
async def cfg(respx_mock):
    """Return a client config whose backend requests are all mocked."""
    async with httpx.AsyncClient(base_url=BASE_URL) as client:
        yield get_client_config(client)


@pytest.fixture
def store():
    return ResourceStore()


@pytest.fixture
def controller(cfg: ClientConfig, store: ResourceStore):
    return Controller(cfg, store)


def open_context(mode: str, name: str, kind=ResourceKind.pod) -> OperationContext:
    return OperationContext(mode=mode, kind=kind, name=name)  # type: ignore
