"""
Quantity/Selection Constraint Engine

🎟️ Selected quantities per (primary key, optional secondary key):
Each primary key has an externally supplied maximum (0 means unavailable).
An optional group limit caps the total across all entries. Writes outside
the allowed range are clamped through ``constrain_quantity``; nothing here
raises for a constraint violation.

Entries clamped to zero are pruned, so an entry is present exactly when its
quantity is positive.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from ..reactivity.signals import batch
from ..services.container import ServiceFactoryContext, define_service, implement_service
from .constraints import constrain_quantity

logger = logging.getLogger(__name__)

SelectionKey = Tuple[str, Optional[str]]


class SelectionEntry(BaseModel):
    """Selected quantity for one compound key"""
    model_config = ConfigDict(frozen=True)

    primary_key: str
    secondary_key: Optional[str] = None
    quantity: int = Field(default=0, ge=0)

    @property
    def key(self) -> SelectionKey:
        return (self.primary_key, self.secondary_key)


@dataclass
class QuantitySelectionConfig:
    """Configuration for a QuantitySelectionService"""
    limits: Mapping[str, int] = field(default_factory=dict)
    group_limit: Optional[int] = None
    initial_selection: Iterable[Union[SelectionEntry, Dict[str, Any]]] = ()


QuantitySelectionServiceDefinition = define_service(
    "quantity-selection",
    "Per-key selected quantities bounded by per-item and group maximums",
)


class QuantitySelectionService:
    """
    Signals: limits, entries. Computeds: total_quantity, has_selection.
    """

    def __init__(self, ctx: ServiceFactoryContext):
        config = ctx.config or QuantitySelectionConfig()
        self.group_limit = config.group_limit

        signals = ctx.signals
        self.limits = signals.signal(dict(config.limits), name="limits")
        self.entries = signals.signal([], name="entries")
        self.total_quantity = signals.computed(
            lambda: sum(entry.quantity for entry in self.entries.get()), name="total_quantity")
        self.has_selection = signals.computed(lambda: len(self.entries.get()) > 0, name="has_selection")

        if config.initial_selection:
            seeded = [entry if isinstance(entry, SelectionEntry) else SelectionEntry.model_validate(entry)
                      for entry in config.initial_selection]
            self.entries.set(self._constrain_all(seeded, self.limits.peek()))

    def get_max_quantity(self, primary_key: str) -> int:
        return max(int(self.limits.get().get(primary_key, 0) or 0), 0)

    def get_current_quantity(self, primary_key: str, secondary_key: Optional[str] = None) -> int:
        entry = self._find(self.entries.get(), (primary_key, secondary_key))
        return entry.quantity if entry is not None else 0

    def get_total_quantity(self, primary_key: str) -> int:
        """Quantity across every secondary key of ``primary_key``"""
        return sum(entry.quantity for entry in self.entries.get() if entry.primary_key == primary_key)

    def is_sold_out(self, primary_key: str) -> bool:
        return self.get_max_quantity(primary_key) == 0

    def set_quantity(self, primary_key: str, quantity: int, secondary_key: Optional[str] = None) -> int:
        """Replace the entry for the compound key; returns the quantity actually stored"""
        key = (primary_key, secondary_key)
        entries = self.entries.peek()
        others = [entry for entry in entries if entry.key != key]

        maximum = max(int(self.limits.peek().get(primary_key, 0) or 0), 0)
        allowed = constrain_quantity(quantity, maximum, self._group_remaining(others))
        if allowed != quantity:
            logger.debug(f"Clamped {key} from {quantity} to {allowed}")

        if allowed > 0:
            others.append(SelectionEntry(primary_key=primary_key, secondary_key=secondary_key, quantity=allowed))
        self.entries.set(others)
        return allowed

    def increment(self, primary_key: str, secondary_key: Optional[str] = None) -> int:
        current = self._current(primary_key, secondary_key)
        return self.set_quantity(primary_key, current + 1, secondary_key)

    def decrement(self, primary_key: str, secondary_key: Optional[str] = None) -> int:
        current = self._current(primary_key, secondary_key)
        return self.set_quantity(primary_key, current - 1, secondary_key)

    def set_limits(self, limits: Mapping[str, int]):
        """Replace the constraint source and re-clamp the current selection"""
        limits = dict(limits)
        with batch():
            self.limits.set(limits)
            self.entries.set(self._constrain_all(self.entries.peek(), limits))

    def clear(self):
        self.entries.set([])

    def snapshot(self) -> List[Dict[str, Any]]:
        return [entry.model_dump() for entry in self.entries.peek()]

    def _current(self, primary_key: str, secondary_key: Optional[str]) -> int:
        entry = self._find(self.entries.peek(), (primary_key, secondary_key))
        return entry.quantity if entry is not None else 0

    @staticmethod
    def _find(entries: List[SelectionEntry], key: SelectionKey) -> Optional[SelectionEntry]:
        for entry in entries:
            if entry.key == key:
                return entry
        return None

    def _group_remaining(self, others: List[SelectionEntry]) -> Optional[int]:
        if self.group_limit is None:
            return None
        return self.group_limit - sum(entry.quantity for entry in others)

    def _constrain_all(self, entries: List[SelectionEntry], limits: Mapping[str, int]) -> List[SelectionEntry]:
        kept: List[SelectionEntry] = []
        for entry in entries:
            kept = [k for k in kept if k.key != entry.key]
            maximum = max(int(limits.get(entry.primary_key, 0) or 0), 0)
            allowed = constrain_quantity(entry.quantity, maximum, self._group_remaining(kept))
            if allowed > 0:
                kept.append(entry.model_copy(update={"quantity": allowed}))
        return kept


QuantitySelectionServiceImplementation = implement_service(
    QuantitySelectionServiceDefinition, QuantitySelectionService
)


__all__ = [
    "SelectionEntry", "QuantitySelectionConfig", "QuantitySelectionService",
    "QuantitySelectionServiceDefinition", "QuantitySelectionServiceImplementation",
]
