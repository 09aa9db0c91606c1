"""
Service Scopes

🔧 Service Composition and Lifecycle:
A ServiceDefinition is an opaque named token for a contract. A ServiceScope
constructs an instance for a definition from an implementation factory and a
configuration object, owns that instance for its lifetime, and resolves
definitions by walking outward through enclosing scopes.

Example:
    CounterDefinition = define_service("counter")

    @implement_service(CounterDefinition)
    def counter_service(ctx):
        count = ctx.signals.signal(ctx.config["start"], name="count")
        return SimpleNamespace(count=count)

    with ServiceScope() as page:
        page.register(CounterDefinition, counter_service, {"start": 1})
        with page.child() as widget:
            widget.get(CounterDefinition).count.get()   # 1, found in the parent
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Tuple, TypeVar, Union

from ..errors import ServiceConfigurationError, ServiceNotFoundError, ScopeDisposedError
from ..reactivity.signals import SignalOwner, configure_reactivity
from .configuration import LiveQueryConfig

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass(frozen=True, eq=False)
class ServiceDefinition(Generic[T]):
    """Named token for a service contract. Compared by identity."""
    name: str
    description: str = ""

    def __repr__(self):
        return f"ServiceDefinition({self.name!r})"


def define_service(name: str, description: str = "") -> ServiceDefinition:
    if not name:
        raise ServiceConfigurationError("Service definitions need a name")
    return ServiceDefinition(name=name, description=description)


@dataclass(frozen=True)
class ServiceImplementation(Generic[T]):
    """A factory bound to the definition it implements"""
    definition: ServiceDefinition
    factory: Callable[['ServiceFactoryContext'], T]

    def __call__(self, ctx: 'ServiceFactoryContext') -> T:
        return self.factory(ctx)


def implement_service(definition: ServiceDefinition, factory: Optional[Callable] = None):
    """Bind a factory to a definition. Usable directly or as a decorator."""
    if factory is None:
        def decorator(fn: Callable) -> ServiceImplementation:
            return ServiceImplementation(definition, fn)
        return decorator
    return ServiceImplementation(definition, factory)


@dataclass(frozen=True)
class ServiceContext:
    """
    Context threaded into every factory at construction time.

    ``values`` holds opaque collaborators (API clients, session holders)
    that the core passes along without reading.
    """
    config: LiveQueryConfig = field(default_factory=LiveQueryConfig)
    values: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def with_values(self, **values: Any) -> 'ServiceContext':
        return ServiceContext(config=self.config, values={**self.values, **values})


@dataclass
class ServiceFactoryContext:
    """Everything a factory receives when its scope constructs it"""
    definition: ServiceDefinition
    config: Any
    context: ServiceContext
    signals: SignalOwner
    scope: 'ServiceScope'

    def get_service(self, definition: ServiceDefinition[T]) -> T:
        return self.scope.get(definition)

    @property
    def app_config(self) -> LiveQueryConfig:
        return self.context.config


@dataclass
class ServiceRegistration:
    """A live instance and the bookkeeping needed to dispose it"""
    definition: ServiceDefinition
    instance: Any
    config: Any
    owner: SignalOwner
    registered_at: datetime = field(default_factory=datetime.now)
    access_count: int = 0

    def access(self) -> Any:
        self.access_count += 1
        return self.instance


Binding = Tuple[ServiceDefinition, Union[ServiceImplementation, Callable], Any]


def service_binding(definition: ServiceDefinition, implementation: Union[ServiceImplementation, Callable],
                    config: Any = None) -> Binding:
    """Bundle a definition, its implementation and config for ``register_all``"""
    return (definition, implementation, config)


class ServiceScope:
    """
    A mountable container of service instances.

    Resolution looks in this scope first, then in each enclosing scope.
    Disposing a scope disposes its child scopes, then its own instances in
    reverse registration order, then every reactive cell they created.
    """

    def __init__(self, parent: Optional['ServiceScope'] = None, context: Optional[ServiceContext] = None,
                 name: Optional[str] = None):
        if parent is not None:
            parent._ensure_active()
        self.parent = parent
        self.name = name or ("root" if parent is None else f"{parent.name}/child")
        self.context = context or (parent.context if parent is not None else ServiceContext())
        self._registrations: Dict[ServiceDefinition, ServiceRegistration] = {}
        self._children: List['ServiceScope'] = []
        self._disposed = False

        if parent is not None:
            parent._children.append(self)
        else:
            configure_reactivity(self.context.config.reactivity.max_flush_iterations)

    def register(self, definition: ServiceDefinition[T], implementation: Union[ServiceImplementation, Callable],
                 config: Any = None) -> T:
        """Construct and own an instance for ``definition``"""
        self._ensure_active()

        if isinstance(implementation, ServiceImplementation):
            if implementation.definition is not definition:
                raise ServiceConfigurationError(
                    f"{implementation.definition!r} implementation registered for {definition!r}"
                )
        elif not callable(implementation):
            raise ServiceConfigurationError(f"Implementation for {definition!r} must be callable")

        if definition in self._registrations:
            raise ServiceConfigurationError(f"{definition!r} is already registered in scope {self.name}")

        owner = SignalOwner(definition.name)
        factory_context = ServiceFactoryContext(
            definition=definition,
            config=config,
            context=self.context,
            signals=owner,
            scope=self,
        )

        try:
            instance = implementation(factory_context)
        except Exception:
            owner.dispose()
            raise

        self._registrations[definition] = ServiceRegistration(
            definition=definition,
            instance=instance,
            config=config,
            owner=owner,
        )
        logger.info(f"Registered {definition.name} in scope {self.name}")
        return instance

    def register_all(self, bindings: Iterable[Binding]) -> List[Any]:
        return [self.register(definition, implementation, config)
                for definition, implementation, config in bindings]

    def get(self, definition: ServiceDefinition[T]) -> T:
        """Resolve to the nearest enclosing instance registered under ``definition``"""
        self._ensure_active()
        registration = self._find(definition)
        if registration is not None:
            return registration.access()
        raise ServiceNotFoundError(
            f"Service not registered: {definition.name}",
            details={"scope": self.name},
        )

    def _find(self, definition: ServiceDefinition) -> Optional[ServiceRegistration]:
        scope: Optional[ServiceScope] = self
        while scope is not None:
            registration = scope._registrations.get(definition)
            if registration is not None:
                return registration
            scope = scope.parent
        return None

    def try_get(self, definition: ServiceDefinition[T]) -> Optional[T]:
        try:
            return self.get(definition)
        except ServiceNotFoundError:
            return None

    def is_registered(self, definition: ServiceDefinition) -> bool:
        return self._find(definition) is not None

    def child(self, context: Optional[ServiceContext] = None, name: Optional[str] = None) -> 'ServiceScope':
        return ServiceScope(parent=self, context=context, name=name)

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        if self._disposed:
            return

        for child in reversed(list(self._children)):
            child.dispose()

        for registration in reversed(list(self._registrations.values())):
            hook = getattr(registration.instance, 'dispose', None)
            if callable(hook):
                try:
                    hook()
                except Exception as e:
                    logger.error(f"Error disposing {registration.definition.name}: {e}")
            registration.owner.dispose()

        self._registrations.clear()
        self._disposed = True
        if self.parent is not None and self in self.parent._children:
            self.parent._children.remove(self)
        logger.info(f"Disposed scope {self.name}")

    def get_metrics(self) -> Dict[str, Any]:
        return {
            "scope": self.name,
            "registered_services": len(self._registrations),
            "child_scopes": len(self._children),
            "total_accesses": sum(r.access_count for r in self._registrations.values()),
            "is_disposed": self._disposed,
        }

    def _ensure_active(self):
        if self._disposed:
            raise ScopeDisposedError(f"Scope {self.name} is disposed")

    def __enter__(self) -> 'ServiceScope':
        self._ensure_active()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.dispose()
        return False


def create_scope(bindings: Iterable[Binding] = (), context: Optional[ServiceContext] = None,
                 name: Optional[str] = None) -> ServiceScope:
    """Create a root scope and register ``bindings`` in order"""
    scope = ServiceScope(context=context, name=name)
    scope.register_all(bindings)
    return scope


__all__ = [
    "ServiceDefinition", "ServiceImplementation", "ServiceContext", "ServiceFactoryContext",
    "ServiceRegistration", "ServiceScope", "define_service", "implement_service",
    "service_binding", "create_scope",
]
