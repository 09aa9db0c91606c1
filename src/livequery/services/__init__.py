"""
Services - Scoped Service Registry and Configuration

Components:
- container.py: service definitions, implementations and hierarchical scopes
- configuration.py: environment-aware defaults and logging setup
"""

from .configuration import (
    LiveQueryConfig, Environment, PageMode, PaginationConfig, PollingConfig,
    ReactivityConfig, LoggingConfig, configure_logging,
)
from .container import (
    ServiceDefinition, ServiceImplementation, ServiceContext, ServiceFactoryContext,
    ServiceRegistration, ServiceScope, define_service, implement_service,
    service_binding, create_scope,
)

__all__ = [
    "LiveQueryConfig", "Environment", "PageMode", "PaginationConfig", "PollingConfig",
    "ReactivityConfig", "LoggingConfig", "configure_logging",
    "ServiceDefinition", "ServiceImplementation", "ServiceContext", "ServiceFactoryContext",
    "ServiceRegistration", "ServiceScope", "define_service", "implement_service",
    "service_binding", "create_scope",
]
