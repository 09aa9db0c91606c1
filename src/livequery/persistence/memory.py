"""
Memory Collection - In-Memory Data-Fetch and Mutation Collaborator

🧠 A dict-backed collection speaking both collaborator contracts:
``find(query)`` filters, sorts and slices the stored items and returns a Page
whose cursors re-run the same query at the neighbouring offset. ``insert``,
``update``, ``remove`` and ``get`` cover the mutation contract.

Items are plain dicts keyed by ``_id``. Returned items are copies, so callers
cannot change stored state by mutating what they read.
"""

import asyncio
import copy
import logging
import uuid
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from ..errors import FetchError, ValidationError
from ..query.filters import FilterOperator, is_operator_condition
from ..query.interface import Page, QueryOptions, SortItem, SortOrder, coerce_query_options

logger = logging.getLogger(__name__)

_MISSING = object()


class MemoryCollection:
    """
    In-memory collection of dict items.

    Args:
        name: Collection id used in log and error messages
        items: Initial items; an ``_id`` is generated for items without one
        latency: Seconds each call sleeps before answering
    """

    def __init__(self, name: str, items: Iterable[Mapping[str, Any]] = (), latency: float = 0.0):
        self.name = name
        self.latency = latency
        self._items: Dict[str, Dict[str, Any]] = {}
        self._failures: List[Exception] = []
        self.find_calls = 0

        for item in items:
            self._store(dict(item))

    # Data-fetch contract

    async def find(self, query: Union[QueryOptions, Dict[str, Any], None] = None) -> Page:
        query = coerce_query_options(query)
        await self._before_call("find")
        self.find_calls += 1

        matched = [item for item in self._items.values() if self._matches(item, query.filter)]
        matched = self._sort(matched, query.sort)
        total = len(matched)

        start = query.skip
        end = start + query.limit if query.limit is not None else total
        window = [copy.deepcopy(item) for item in matched[start:end]]

        next_cursor = None
        prev_cursor = None
        if query.limit is not None and end < total:
            next_query = query.with_changes(skip=end)
            next_cursor = lambda: self.find(next_query)  # noqa: E731
        if start > 0:
            step = query.limit if query.limit is not None else start
            prev_query = query.with_changes(skip=max(start - step, 0))
            prev_cursor = lambda: self.find(prev_query)  # noqa: E731

        logger.debug(f"{self.name}: find matched {total}, returning {len(window)} from offset {start}")
        return Page(items=window, total_count=total, next_cursor=next_cursor, prev_cursor=prev_cursor)

    # Mutation contract

    async def insert(self, item: Mapping[str, Any]) -> Dict[str, Any]:
        await self._before_call("insert")
        data = dict(item)
        if data.get("_id") in self._items:
            raise ValidationError(f"{self.name}: item {data['_id']} already exists")
        stored = self._store(data)
        logger.info(f"{self.name}: inserted {stored['_id']}")
        return copy.deepcopy(stored)

    async def update(self, item: Mapping[str, Any]) -> Dict[str, Any]:
        await self._before_call("update")
        item_id = item.get("_id")
        if not item_id:
            raise ValidationError(f"{self.name}: ID is required for update")
        if item_id not in self._items:
            raise FetchError(f"{self.name}: item {item_id} not found", details={"id": item_id})
        self._items[item_id] = copy.deepcopy(dict(item))
        logger.info(f"{self.name}: updated {item_id}")
        return copy.deepcopy(self._items[item_id])

    async def remove(self, item_id: str) -> Dict[str, Any]:
        await self._before_call("remove")
        removed = self._items.pop(item_id, None)
        if removed is None:
            raise FetchError(f"{self.name}: item {item_id} not found", details={"id": item_id})
        logger.info(f"{self.name}: removed {item_id}")
        return removed

    async def get(self, item_id: str) -> Optional[Dict[str, Any]]:
        await self._before_call("get")
        item = self._items.get(item_id)
        return copy.deepcopy(item) if item is not None else None

    # Test helpers

    def fail_next(self, error: Optional[Exception] = None):
        """Make the next call raise ``error``"""
        self._failures.append(error or FetchError(f"{self.name}: simulated failure"))

    def __len__(self) -> int:
        return len(self._items)

    # Internals

    async def _before_call(self, operation: str):
        if self.latency:
            await asyncio.sleep(self.latency)
        if self._failures:
            error = self._failures.pop(0)
            logger.debug(f"{self.name}: {operation} failing with {error!r}")
            raise error

    def _store(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if not data.get("_id"):
            data["_id"] = str(uuid.uuid4())
        self._items[data["_id"]] = copy.deepcopy(data)
        return self._items[data["_id"]]

    def _matches(self, item: Mapping[str, Any], predicate: Mapping[str, Any]) -> bool:
        for field_name, condition in predicate.items():
            value = item.get(field_name, _MISSING)
            if is_operator_condition(condition):
                for op, operand in condition.items():
                    if not self._matches_operator(value, FilterOperator(op), operand):
                        return False
            elif value is _MISSING or value != condition:
                return False
        return True

    @staticmethod
    def _matches_operator(value: Any, op: FilterOperator, operand: Any) -> bool:
        if op == FilterOperator.IS_EMPTY:
            return _is_empty(value) == bool(operand)
        if op == FilterOperator.IS_NOT_EMPTY:
            return _is_empty(value) != bool(operand)
        if value is _MISSING:
            return op == FilterOperator.NE

        try:
            if op == FilterOperator.EQ:
                return value == operand
            elif op == FilterOperator.NE:
                return value != operand
            elif op == FilterOperator.GT:
                return value is not None and value > operand
            elif op == FilterOperator.GTE:
                return value is not None and value >= operand
            elif op == FilterOperator.LT:
                return value is not None and value < operand
            elif op == FilterOperator.LTE:
                return value is not None and value <= operand
            elif op == FilterOperator.HAS_SOME:
                return isinstance(value, (list, tuple, set)) and any(v in value for v in operand)
            elif op == FilterOperator.HAS_ALL:
                return isinstance(value, (list, tuple, set)) and all(v in value for v in operand)
            elif op == FilterOperator.CONTAINS:
                if isinstance(value, str):
                    return isinstance(operand, str) and operand in value
                return isinstance(value, (list, tuple, set)) and operand in value
            elif op == FilterOperator.STARTS_WITH:
                return isinstance(value, str) and isinstance(operand, str) and value.startswith(operand)
            elif op == FilterOperator.ENDS_WITH:
                return isinstance(value, str) and isinstance(operand, str) and value.endswith(operand)
        except TypeError:
            # Incomparable types never match
            return False
        return False

    @staticmethod
    def _sort(items: List[Dict[str, Any]], sort: List[SortItem]) -> List[Dict[str, Any]]:
        # Stable sort applied from the last criterion to the first; missing values go last
        ordered = list(items)
        for criterion in reversed(sort):
            descending = criterion.order == SortOrder.DESC
            present = [item for item in ordered if item.get(criterion.field_name) is not None]
            absent = [item for item in ordered if item.get(criterion.field_name) is None]
            present.sort(key=lambda item: item[criterion.field_name], reverse=descending)
            ordered = present + absent
        return ordered


def _is_empty(value: Any) -> bool:
    return value is _MISSING or value is None or value == "" or (
        isinstance(value, (list, tuple, set, dict)) and len(value) == 0
    )


__all__ = ["MemoryCollection"]
