"""
Search Backends

Client boundary between the dispatch core and individual search services.
"""

from search_dispatch.backends.base import BackendConfig, SearchBackend
from search_dispatch.backends.fake_backend import FakeBackend
from search_dispatch.backends.http_backend import HttpJsonBackend
from search_dispatch.backends.registry import BACKEND_KINDS, BackendRegistry, register_backends

__all__ = [
    "BackendConfig",
    "SearchBackend",
    "FakeBackend",
    "HttpJsonBackend",
    "BackendRegistry",
    "BACKEND_KINDS",
    "register_backends",
]
