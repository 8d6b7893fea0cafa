"""Correlates backend callbacks with the pending requests that issued them.

A dispatcher binds a handler and hands the returned URL to a backend. When
the backend later calls that URL, possibly from another process and in any
order relative to other operations, the callback endpoint resolves the token
and invokes the handler. Invocation never removes the binding: the party that
knows the callback sequence is over calls :meth:`CallbackRegistry.unbind`.
"""

import logging
import threading
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse
from uuid import uuid4

from harmony.errors import ConfigurationError, CorrelationError

logger = logging.getLogger(__name__)

CallbackHandler = Callable[[Any, Any], None]

# Remembered after unbind so stale callbacks can be told apart from bogus ones
DEFAULT_RETIRED_TOKEN_LIMIT = 10_000


@dataclass
class CallbackBinding:
    token: str
    handler: CallbackHandler
    bound_url: str
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


def token_from_url(url: str) -> str | None:
    path = urlparse(url).path.rstrip("/")
    if not path:
        return None
    token = path.rsplit("/", 1)[-1]
    return token or None


class CallbackRegistry:
    """Thread-safe table of ``token -> handler`` bindings."""

    def __init__(self, base_url: str | None = None, *, retired_token_limit: int = DEFAULT_RETIRED_TOKEN_LIMIT):
        self._lock = threading.Lock()
        self._bindings: dict[str, CallbackBinding] = {}
        self._retired: OrderedDict[str, None] = OrderedDict()
        self._retired_token_limit = retired_token_limit
        self._base_url: str | None = None
        if base_url:
            self.configure(base_url)

    @property
    def base_url(self) -> str | None:
        return self._base_url

    def configure(self, base_url: str) -> None:
        """Set the URL tokens are appended to; may only ever be set to one value."""

        if not base_url:
            return
        normalized = base_url if base_url.endswith("/") else f"{base_url}/"
        with self._lock:
            if self._base_url and self._base_url != normalized:
                raise ConfigurationError(
                    f"Callback base URL {self._base_url} would be overwritten by {normalized}"
                )
            self._base_url = normalized

    def bind(self, handler: CallbackHandler) -> str:
        """Store ``handler`` under a fresh token and return the URL to call."""

        with self._lock:
            if not self._base_url:
                raise ConfigurationError("Call configure(base_url) before binding callbacks")
            token = str(uuid4())
            url = f"{self._base_url}{token}"
            self._bindings[token] = CallbackBinding(token=token, handler=handler, bound_url=url)
            size = len(self._bindings)
        logger.info("Bound callback %s (bindings: %d)", token, size)
        return url

    def is_bound(self, url: str | None) -> bool:
        if not url:
            return False
        token = token_from_url(url)
        with self._lock:
            return token is not None and token in self._bindings

    def invoke(self, token: str, request: Any, response: Any) -> None:
        """Run the handler bound to ``token`` with the callback request/response.

        Invocations of one token are serialized, and a token unbound by an
        earlier invocation is rejected rather than run again.

        Raises:
            CorrelationError: if the token is unknown or has been unbound.
        """

        binding = self._lookup(token)
        with binding.lock:
            # The previous holder of the lock may have unbound the token
            self._lookup(token, expected=binding)
            binding.handler(request, response)

    def unbind(self, url: str | None) -> None:
        if not url:
            return
        token = token_from_url(url)
        if token is None:
            return
        with self._lock:
            if self._bindings.pop(token, None) is None:
                return
            self._retired[token] = None
            while len(self._retired) > self._retired_token_limit:
                self._retired.popitem(last=False)
            size = len(self._bindings)
        logger.info("Unbound callback %s (bindings: %d)", token, size)

    def _lookup(self, token: str, expected: CallbackBinding | None = None) -> CallbackBinding:
        with self._lock:
            binding = self._bindings.get(token)
            consumed = token in self._retired
        if binding is None or (expected is not None and binding is not expected):
            error = CorrelationError(token, consumed=consumed)
            logger.warning(error.message)
            raise error
        return binding

    def __len__(self) -> int:
        with self._lock:
            return len(self._bindings)
