"""
Reactivity - Signals, Computed Values and Effects

Structure:
- signals.py: reactive cells, dependency tracking, batching and ownership

Example:
    from livequery.reactivity import signal, computed, effect

    items = signal([])
    count = computed(lambda: len(items.get()))
    stop = effect(lambda: print(count.get()))
"""

from .signals import (
    Signal, Computed, Effect, SignalOwner,
    signal, computed, effect, batch, untracked, configure_reactivity,
)

__all__ = [
    "Signal", "Computed", "Effect", "SignalOwner",
    "signal", "computed", "effect", "batch", "untracked", "configure_reactivity",
]
