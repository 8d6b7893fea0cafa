"""Application factory wiring settings, storage, backends and routers together."""

import logging

from dotenv import load_dotenv
from fastapi import FastAPI
from sqlalchemy import Engine

from harmony import __version__
from harmony.backends.dispatcher import ServiceDispatcher
from harmony.backends.service_response import CallbackRegistry
from harmony.backends.services import ServiceCatalog, load_service_catalog
from harmony.cmr import CollectionLookup, load_collection_catalog
from harmony.db import create_db_engine, init_schema
from harmony.endpoints.errors import install_error_handlers
from harmony.endpoints.jobs import router as jobs_router
from harmony.endpoints.service_callbacks import router as service_callbacks_router
from harmony.env import Settings
from harmony.frontends.eoss import router as eoss_router
from harmony.frontends.ogc_coverages import router as ogc_coverages_router
from harmony.frontends.wms import router as wms_router
from harmony.log import configure_logging
from harmony.state import HarmonyState

logger = logging.getLogger(__name__)


def _log_startup_configuration(state: HarmonyState) -> None:
    settings = state.settings
    logger.info(
        "Startup config: callbackBaseUrl=%s syncTimeoutSeconds=%s",
        settings.callback_base_url,
        settings.sync_request_timeout_seconds,
    )
    logger.info(
        "Startup config: services=%s database=%s",
        [service.config.name for service in state.services.services],
        state.engine.url.render_as_string(hide_password=True),
    )


def create_app(
    settings: Settings | None = None,
    *,
    services: ServiceCatalog | None = None,
    collections: CollectionLookup | None = None,
    registry: CallbackRegistry | None = None,
    engine: Engine | None = None,
) -> FastAPI:
    """Build the gateway; explicit components override the configured ones."""

    load_dotenv()
    configure_logging()
    if settings is None:
        settings = Settings.from_env()

    if engine is None:
        engine = create_db_engine(settings.database_url)
    if settings.create_schema:
        init_schema(engine)

    if registry is None:
        registry = CallbackRegistry()
    registry.configure(settings.callback_base_url)
    if services is None:
        services = load_service_catalog(settings.services_config)
    if collections is None:
        collections = load_collection_catalog(settings.collections_config)
    dispatcher = ServiceDispatcher(
        services,
        registry,
        engine,
        callback_timeout_seconds=settings.sync_request_timeout_seconds,
    )

    app = FastAPI(title="Harmony", version=__version__)
    app.state.harmony = HarmonyState(
        settings=settings,
        engine=engine,
        registry=registry,
        services=services,
        collections=collections,
        dispatcher=dispatcher,
    )

    app.include_router(wms_router)
    app.include_router(eoss_router)
    app.include_router(ogc_coverages_router)
    app.include_router(service_callbacks_router)
    app.include_router(jobs_router)
    install_error_handlers(app)

    _log_startup_configuration(app.state.harmony)
    return app
