from collections.abc import Callable
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import Engine

from harmony.app import create_app
from harmony.backends.service_response import CallbackRegistry, token_from_url
from harmony.backends.services import ServiceCallback, ServiceCatalog, ServiceConfig, ServiceResponse
from harmony.cmr import StaticCollectionCatalog, load_collection_catalog
from harmony.crypto import create_decrypter, create_encrypter
from harmony.db import create_db_engine, init_schema
from harmony.env import DEFAULT_COLLECTIONS_CONFIG, Settings
from harmony.models.data_operation import DataOperation
from harmony.models.request_context import RequestContext

SECRET = "test-shared-secret"
CALLBACK_ROOT = "http://localhost:3001"

Responder = Callable[["StubService", DataOperation, str | None], ServiceResponse | None]


class StubService:
    """In-process backend recording each invocation and answering via ``respond``."""

    def __init__(self, config: ServiceConfig, respond: Responder | None = None):
        self.config = config
        self.respond = respond
        self.registry: CallbackRegistry | None = None
        self.invocations: list[tuple[DataOperation, str | None]] = []

    def invoke(self, operation, context, callback_url=None):
        self.invocations.append((operation, callback_url))
        if self.respond is None:
            return None
        return self.respond(self, operation, callback_url)

    def call_back(self, callback_url: str, **callback: object) -> None:
        assert self.registry is not None
        self.registry.invoke(token_from_url(callback_url), ServiceCallback(**callback), None)


def _callback_with(**callback: object) -> Responder:
    def respond(service: StubService, operation: DataOperation, callback_url: str | None) -> None:
        service.call_back(callback_url, **callback)
        return None

    return respond


@pytest.fixture
def callback_with() -> Callable[..., Responder]:
    """Responders that call back once, synchronously, with the given callback fields."""

    return _callback_with


@pytest.fixture
def settings() -> Settings:
    return Settings(
        callback_url_root=CALLBACK_ROOT,
        shared_secret_key=SECRET,
        sync_request_timeout_seconds=2.0,
    )


@pytest.fixture
def engine() -> Engine:
    engine = create_db_engine("sqlite+pysqlite:///:memory:")
    init_schema(engine)
    return engine


@pytest.fixture
def registry() -> CallbackRegistry:
    return CallbackRegistry(f"{CALLBACK_ROOT}/service/")


@pytest.fixture
def collections() -> StaticCollectionCatalog:
    return load_collection_catalog(DEFAULT_COLLECTIONS_CONFIG)


@pytest.fixture
def context() -> RequestContext:
    return RequestContext(id=str(uuid4()), frontend="test")


@pytest.fixture
def operation() -> DataOperation:
    return DataOperation(create_encrypter(SECRET), create_decrypter(SECRET), request_id=str(uuid4()))


@pytest.fixture
def stub_service(registry) -> Callable[..., StubService]:
    def _make(respond: Responder | None = None, **config: object) -> StubService:
        config.setdefault("name", "stub-service")
        config.setdefault("collections", ["C1215669046-GES_DISC", "C1225808241-GES_DISC", "C1234088182-EEDTEST"])
        service = StubService(ServiceConfig(**config), respond)
        service.registry = registry
        return service

    return _make


@pytest.fixture
def make_client(settings, engine, registry, collections) -> Callable[..., TestClient]:
    def _make(*services: StubService, raise_server_exceptions: bool = True) -> TestClient:
        app = create_app(
            settings,
            services=ServiceCatalog(list(services)),
            collections=collections,
            registry=registry,
            engine=engine,
        )
        return TestClient(app, raise_server_exceptions=raise_server_exceptions)

    return _make
