"""
Filter/Sort State Machine

🔎 Predicate and sort state driving a pagination engine:
Status moves IDLE → FILTERING when a change is applied and back to IDLE when
the fetch completes. Every change reloads the bound pagination engine from
page one; cursors obtained under the previous predicate are discarded,
because a cursor is only valid for the query that produced it.

Predicates map field names to either a plain value (equality) or an operator
mapping such as ``{"$gte": 10, "$lte": 95}``.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Set

from ..errors import ValidationError
from ..services.container import ServiceDefinition, ServiceFactoryContext, define_service, implement_service
from .interface import SortItem, coerce_sort
from .pagination import CursorPaginationServiceDefinition

logger = logging.getLogger(__name__)


class FilterOperator(str, Enum):
    """Operators understood in operator-mapping predicate values"""
    EQ = "$eq"
    NE = "$ne"
    GT = "$gt"
    GTE = "$gte"
    LT = "$lt"
    LTE = "$lte"
    HAS_SOME = "$hasSome"
    HAS_ALL = "$hasAll"
    CONTAINS = "$contains"
    STARTS_WITH = "$startsWith"
    ENDS_WITH = "$endsWith"
    IS_EMPTY = "$isEmpty"
    IS_NOT_EMPTY = "$isNotEmpty"


OPERATORS = {op.value for op in FilterOperator}


class FilterStatus(Enum):
    IDLE = "idle"
    FILTERING = "filtering"


def is_operator_condition(value: Any) -> bool:
    return isinstance(value, Mapping) and bool(value) and all(
        isinstance(key, str) and key.startswith("$") for key in value
    )


def normalize_predicate(predicate: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Copy of ``predicate`` without None entries, with operators checked"""
    normalized = {}
    for field_name, condition in (predicate or {}).items():
        if not field_name:
            raise ValidationError("Filter field name is required")
        if condition is None:
            continue
        if is_operator_condition(condition):
            unknown = set(condition) - OPERATORS
            if unknown:
                raise ValidationError(
                    f"Unknown filter operator for \"{field_name}\": {', '.join(sorted(unknown))}",
                    details={"field": field_name, "operators": sorted(unknown)},
                )
            condition = dict(condition)
        normalized[field_name] = condition
    return normalized


@dataclass
class FilterSortConfig:
    """Configuration for a FilterSortService"""
    pagination: ServiceDefinition = CursorPaginationServiceDefinition
    initial_filter: Optional[Dict[str, Any]] = None
    initial_sort: Optional[List[Any]] = None


FilterSortServiceDefinition = define_service(
    "filter-sort",
    "Active predicate and sort specification for a pagination engine",
)


class FilterSortService:
    """
    Drives the predicate and sort spec of a pagination engine.

    The engine's ``query_options`` is the single store for both: ``filter``
    and ``sort`` here are derived from it, so a sort set directly on the
    engine survives a later filter change and vice versa.

    Computeds: filter, sort, is_filtered, is_filtering. Signals: status.
    """

    def __init__(self, ctx: ServiceFactoryContext):
        config = ctx.config or FilterSortConfig()
        self._pagination = ctx.get_service(config.pagination)
        query_options = self._pagination.query_options

        signals = ctx.signals
        self.filter = signals.computed(lambda: dict(query_options.get().filter), name="filter")
        self.sort = signals.computed(lambda: list(query_options.get().sort), name="sort")
        self.status = signals.signal(FilterStatus.IDLE, name="status")
        self.is_filtered = signals.computed(lambda: len(self.filter.get()) > 0, name="is_filtered")
        self.is_filtering = signals.computed(
            lambda: self.status.get() == FilterStatus.FILTERING, name="is_filtering")

        self._in_flight = 0
        self._disposed = False
        self._tasks: Set[asyncio.Task] = set()

        changes = {}
        if config.initial_filter is not None:
            changes["filter"] = normalize_predicate(config.initial_filter)
        if config.initial_sort is not None:
            changes["sort"] = coerce_sort(config.initial_sort)
        if changes:
            # Stored first so a later load_items() picks it up even without a running loop
            options = self._pagination.set_query_options(
                query_options.peek().with_changes(skip=0, **changes))
            self._spawn(self._load(options))

    async def set_filter(self, predicate: Optional[Mapping[str, Any]]) -> bool:
        """Replace the predicate and reload from page one"""
        return await self._apply(filter=normalize_predicate(predicate))

    async def add_filter(self, field_name: str, condition: Any) -> bool:
        """Set the condition for one field, keeping the others"""
        if not field_name:
            raise ValidationError("Filter field name is required")
        predicate = dict(self.filter.peek())
        predicate[field_name] = condition
        return await self.set_filter(predicate)

    async def remove_filter(self, field_name: str) -> bool:
        predicate = dict(self.filter.peek())
        if predicate.pop(field_name, None) is None:
            return False
        return await self.set_filter(predicate)

    async def reset_filter(self) -> bool:
        """Clear the predicate and reload unfiltered from page one"""
        return await self._apply(filter={})

    async def set_sort(self, sort) -> bool:
        return await self._apply(sort=coerce_sort(sort))

    def get_filter(self, field_name: str, default: Any = None) -> Any:
        return self.filter.peek().get(field_name, default)

    @property
    def sort_items(self) -> List[SortItem]:
        return list(self.sort.peek())

    async def _apply(self, **changes) -> bool:
        options = self._pagination.query_options.peek().with_changes(skip=0, **changes)
        return await self._load(options)

    async def _load(self, options) -> bool:
        self._in_flight += 1
        self.status.set(FilterStatus.FILTERING)
        logger.debug(f"Applying filter {options.filter} with sort {[s.field_name for s in options.sort]}")
        try:
            return await self._pagination.load_items(options)
        finally:
            self._in_flight -= 1
            if self._in_flight == 0 and not self._disposed:
                self.status.set(FilterStatus.IDLE)

    def _spawn(self, coro):
        try:
            task = asyncio.get_running_loop().create_task(coro)
        except RuntimeError:
            coro.close()
            logger.debug("No running event loop; initial filter applies on the next load_items()")
            return None
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def dispose(self):
        self._disposed = True
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()


FilterSortServiceImplementation = implement_service(FilterSortServiceDefinition, FilterSortService)


__all__ = [
    "FilterOperator", "FilterStatus", "FilterSortConfig", "FilterSortService",
    "FilterSortServiceDefinition", "FilterSortServiceImplementation",
    "normalize_predicate", "is_operator_condition",
]
