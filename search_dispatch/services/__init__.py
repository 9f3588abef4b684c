"""
Services Module

Search orchestration on top of the core resilience components.
"""

from search_dispatch.services.dispatcher import BackendOutcome, Dispatcher, build_dispatcher
from search_dispatch.services.result_cache import ResultCache

__all__ = ["BackendOutcome", "Dispatcher", "build_dispatcher", "ResultCache"]
