"""
LiveQuery - Reactive State Engines for Paginated, Filtered Collections

A small fine-grained reactive runtime (signals, computed values, effects)
plus scoped service engines built on it: cursor pagination, filter/sort
state, quantity selection, mutation flows and status polling.

Example:
    from livequery import ServiceScope, MemoryCollection
    from livequery.query import (
        CursorPaginationConfig, CursorPaginationServiceDefinition,
        CursorPaginationServiceImplementation,
    )

    with ServiceScope() as scope:
        pager = scope.register(
            CursorPaginationServiceDefinition,
            CursorPaginationServiceImplementation,
            CursorPaginationConfig(fetcher=MemoryCollection("products", rows), collection_id="products"),
        )
        await pager.load_items({"limit": 10})
"""

from .errors import (
    LiveQueryError, ServiceNotFoundError, ScopeDisposedError, ServiceConfigurationError,
    ComputedWriteError, ReactiveCycleError, SignalDisposedError,
    FetchError, ValidationError, ConstraintViolation,
)
from .reactivity import (
    Signal, Computed, Effect, SignalOwner,
    signal, computed, effect, batch, untracked, configure_reactivity,
)
from .services import (
    LiveQueryConfig, Environment, PageMode, configure_logging,
    ServiceDefinition, ServiceImplementation, ServiceContext, ServiceFactoryContext,
    ServiceScope, define_service, implement_service, service_binding, create_scope,
)
from .persistence import MemoryCollection

__version__ = "0.1.0"

__all__ = [
    # Errors
    'LiveQueryError', 'ServiceNotFoundError', 'ScopeDisposedError', 'ServiceConfigurationError',
    'ComputedWriteError', 'ReactiveCycleError', 'SignalDisposedError',
    'FetchError', 'ValidationError', 'ConstraintViolation',

    # Reactivity
    'Signal', 'Computed', 'Effect', 'SignalOwner',
    'signal', 'computed', 'effect', 'batch', 'untracked', 'configure_reactivity',

    # Services
    'LiveQueryConfig', 'Environment', 'PageMode', 'configure_logging',
    'ServiceDefinition', 'ServiceImplementation', 'ServiceContext', 'ServiceFactoryContext',
    'ServiceScope', 'define_service', 'implement_service', 'service_binding', 'create_scope',

    # Collaborators
    'MemoryCollection',
]
