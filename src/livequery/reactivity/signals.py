"""
Reactive Signal System

🔄 Signals, computed values and effects:
Dependency tracking uses an explicit observer stack. Before a Computed or an
Effect evaluates, it pushes itself; every ``get()`` made while it is on top
registers a dependency edge; it pops when evaluation finishes.

Writes never compare values: every ``set`` marks dependents dirty. Effects
scheduled by writes inside one ``batch()`` run once, after the outermost
batch exits. A ``set`` outside any batch is a batch of one.

Example:
    count = signal(1)
    double = computed(lambda: count.get() * 2)
    dispose = effect(lambda: print(double.get()))

    with batch():
        count.set(2)
        count.set(3)   # effect prints 6 once, after the block

    dispose()
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from ..errors import ComputedWriteError, ReactiveCycleError, SignalDisposedError

logger = logging.getLogger(__name__)

T = TypeVar('T')

DEFAULT_MAX_FLUSH_ITERATIONS = 100


class _Runtime(threading.local):
    """Per-thread tracking and scheduling state"""

    def __init__(self):
        # None entries mark untracked sections
        self.observers: List[Optional['_Observer']] = []
        self.computing = 0
        self.batch_depth = 0
        self.pending: Dict['Effect', None] = {}
        self.flushing = False
        self.max_flush_iterations = DEFAULT_MAX_FLUSH_ITERATIONS


_runtime = _Runtime()


class _Source:
    """Something that can be read inside a tracking context"""

    def __init__(self):
        self._subscribers: Dict['_Observer', None] = {}

    def _track(self):
        if not _runtime.observers:
            return
        observer = _runtime.observers[-1]
        if observer is None:
            return
        observer._dependencies[self] = None
        self._subscribers[observer] = None

    def _notify_subscribers(self):
        for observer in list(self._subscribers):
            observer._mark_dirty()


class _Observer:
    """Something that evaluates a function and records what it read"""

    def __init__(self):
        self._dependencies: Dict[_Source, None] = {}

    def _mark_dirty(self):
        raise NotImplementedError

    def _clear_dependencies(self):
        for source in self._dependencies:
            source._subscribers.pop(self, None)
        self._dependencies = {}

    def _evaluate(self, fn: Callable[[], T]) -> T:
        self._clear_dependencies()
        _runtime.observers.append(self)
        try:
            return fn()
        finally:
            _runtime.observers.pop()


class Signal(_Source, Generic[T]):
    """A mutable reactive cell"""

    def __init__(self, value: T, name: Optional[str] = None):
        super().__init__()
        self._value = value
        self._disposed = False
        self.name = name

    def get(self) -> T:
        """Read the value and subscribe the active tracking context"""
        self._track()
        return self._value

    def peek(self) -> T:
        """Read the value without subscribing"""
        return self._value

    def set(self, value: T) -> None:
        if self._disposed:
            raise SignalDisposedError(f"Cannot write disposed signal {self!r}")
        if _runtime.computing:
            raise ComputedWriteError(f"Signal {self!r} written during computed evaluation")
        self._value = value
        with batch():
            self._notify_subscribers()

    def update(self, fn: Callable[[T], T]) -> None:
        """Set the value to ``fn(current)``"""
        self.set(fn(self._value))

    def subscribe(self, callback: Callable[[T], Any]) -> Callable[[], None]:
        """Call ``callback(value)`` now and after every change. Returns an unsubscribe function."""
        return effect(lambda: callback(self.get()))

    @property
    def value(self) -> T:
        return self.get()

    @value.setter
    def value(self, value: T) -> None:
        self.set(value)

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        for observer in list(self._subscribers):
            observer._dependencies.pop(self, None)
        self._subscribers.clear()
        self._disposed = True

    def __repr__(self):
        label = self.name or hex(id(self))
        return f"Signal({label})"


class Computed(_Source, _Observer, Generic[T]):
    """A memoized derivation, recomputed lazily after a dependency changes"""

    def __init__(self, fn: Callable[[], T], name: Optional[str] = None):
        _Source.__init__(self)
        _Observer.__init__(self)
        self._fn = fn
        self._value: Optional[T] = None
        self._dirty = True
        self._error: Optional[Exception] = None
        self._disposed = False
        self.name = name

    def get(self) -> T:
        self._track()
        return self._read()

    def peek(self) -> T:
        return self._read()

    def _read(self) -> T:
        if self._dirty and not self._disposed:
            self._recompute()
        if self._error is not None:
            raise self._error
        return self._value

    def _recompute(self):
        # A failure is cached like a value: the cell is clean until a dependency changes
        _runtime.computing += 1
        try:
            value = self._evaluate(self._fn)
        except Exception as e:
            self._error = e
            self._dirty = False
            raise
        finally:
            _runtime.computing -= 1
        self._value = value
        self._error = None
        self._dirty = False

    def _mark_dirty(self):
        if self._dirty:
            return
        self._dirty = True
        self._notify_subscribers()

    @property
    def value(self) -> T:
        return self.get()

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        self._clear_dependencies()
        for observer in list(self._subscribers):
            observer._dependencies.pop(self, None)
        self._subscribers.clear()
        self._disposed = True

    def __repr__(self):
        label = self.name or hex(id(self))
        return f"Computed({label})"


class Effect(_Observer):
    """A side effect re-run whenever something it read changes.

    If the function returns a callable, that callable runs before the next
    run and on disposal.
    """

    def __init__(self, fn: Callable[[], Any], name: Optional[str] = None):
        super().__init__()
        self._fn = fn
        self._cleanup: Optional[Callable[[], Any]] = None
        self._disposed = False
        self.name = name

    def _mark_dirty(self):
        if not self._disposed:
            _runtime.pending[self] = None

    def run(self) -> None:
        if self._disposed:
            return
        self._run_cleanup()
        result = self._evaluate(self._fn)
        if callable(result):
            self._cleanup = result

    def _run_cleanup(self):
        cleanup, self._cleanup = self._cleanup, None
        if cleanup is not None:
            untracked(cleanup)

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        _runtime.pending.pop(self, None)
        self._clear_dependencies()
        self._run_cleanup()

    def __call__(self) -> None:
        self.dispose()

    def __repr__(self):
        label = self.name or getattr(self._fn, '__name__', hex(id(self)))
        return f"Effect({label})"


def _flush():
    if _runtime.flushing:
        return
    _runtime.flushing = True
    try:
        iterations = 0
        while _runtime.pending:
            iterations += 1
            if iterations > _runtime.max_flush_iterations:
                stuck = list(_runtime.pending)
                _runtime.pending.clear()
                raise ReactiveCycleError(
                    f"Effects still pending after {_runtime.max_flush_iterations} flushes",
                    details={"effects": [repr(e) for e in stuck]},
                )
            effects = list(_runtime.pending)
            _runtime.pending.clear()
            for eff in effects:
                try:
                    eff.run()
                except ReactiveCycleError:
                    raise
                except Exception:
                    logger.exception(f"Effect {eff!r} failed")
    finally:
        _runtime.flushing = False


@contextmanager
def batch():
    """Coalesce writes; dependent effects run once when the outermost batch exits."""
    _runtime.batch_depth += 1
    try:
        yield
    finally:
        _runtime.batch_depth -= 1
        if _runtime.batch_depth == 0:
            _flush()


def untracked(fn: Callable[[], T]) -> T:
    """Evaluate ``fn`` without registering dependencies"""
    _runtime.observers.append(None)
    try:
        return fn()
    finally:
        _runtime.observers.pop()


def signal(initial: T, name: Optional[str] = None) -> Signal[T]:
    return Signal(initial, name=name)


def computed(fn: Callable[[], T], name: Optional[str] = None) -> Computed[T]:
    return Computed(fn, name=name)


def effect(fn: Callable[[], Any], name: Optional[str] = None) -> Effect:
    """Run ``fn`` now and on every dependency change. The returned Effect is its own disposer."""
    eff = Effect(fn, name=name)
    eff.run()
    return eff


def configure_reactivity(max_flush_iterations: int = DEFAULT_MAX_FLUSH_ITERATIONS):
    """Configure reactive runtime behavior for the current thread"""
    if max_flush_iterations < 1:
        raise ValueError("max_flush_iterations must be at least 1")
    _runtime.max_flush_iterations = max_flush_iterations


class SignalOwner:
    """
    Creates reactive cells on behalf of one service instance.

    Every Signal, Computed and Effect made through an owner is disposed with
    it, so no cell outlives the instance that created it.
    """

    def __init__(self, name: str = "owner"):
        self.name = name
        self._cells: List[Any] = []
        self._disposed = False

    def signal(self, initial: T, name: Optional[str] = None) -> Signal[T]:
        return self._own(Signal(initial, name=self._label(name)))

    def computed(self, fn: Callable[[], T], name: Optional[str] = None) -> Computed[T]:
        return self._own(Computed(fn, name=self._label(name)))

    def effect(self, fn: Callable[[], Any], name: Optional[str] = None) -> Effect:
        eff = self._own(Effect(fn, name=self._label(name)))
        eff.run()
        return eff

    def _own(self, cell):
        if self._disposed:
            raise SignalDisposedError(f"Owner {self.name} is disposed")
        self._cells.append(cell)
        return cell

    def _label(self, name: Optional[str]) -> Optional[str]:
        return f"{self.name}.{name}" if name else None

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        if self._disposed:
            return
        # Effects first so no reaction runs against half-disposed state
        for cell in reversed(self._cells):
            if isinstance(cell, Effect):
                cell.dispose()
        for cell in reversed(self._cells):
            if not isinstance(cell, Effect):
                cell.dispose()
        self._cells.clear()
        self._disposed = True
        logger.debug(f"Disposed reactive cells of {self.name}")


__all__ = [
    "Signal", "Computed", "Effect", "SignalOwner",
    "signal", "computed", "effect", "batch", "untracked", "configure_reactivity",
]
