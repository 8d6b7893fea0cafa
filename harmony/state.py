from dataclasses import dataclass

from sqlalchemy import Engine

from harmony.backends.dispatcher import ServiceDispatcher
from harmony.backends.service_response import CallbackRegistry
from harmony.backends.services import ServiceCatalog
from harmony.cmr import CollectionLookup
from harmony.env import Settings


@dataclass
class HarmonyState:
    """Process-wide components, created once by the app factory."""

    settings: Settings
    engine: Engine
    registry: CallbackRegistry
    services: ServiceCatalog
    collections: CollectionLookup
    dispatcher: ServiceDispatcher
