"""
Cursor Pagination Engine

📄 A window of fetched items plus opaque cursors:
The first page comes from the data-fetch collaborator's ``find(query)``; later
pages come from the ``next()``/``prev()`` cursors carried by each result. A
consumed cursor is never reused: the result it returns brings its own.

Every fetch goes through ``_run`` and every result through ``_apply_result``.
Each fetch is stamped with a request epoch; when ``discard_stale_results`` is
on, a result whose epoch was superseded by a newer fetch is dropped instead
of overwriting newer state.

Example:
    products = MemoryCollection("products", rows)
    scope = ServiceScope()
    pager = scope.register(
        CursorPaginationServiceDefinition,
        CursorPaginationServiceImplementation,
        CursorPaginationConfig(fetcher=products, collection_id="products"),
    )
    await pager.load_items({"limit": 10})
    await pager.load_next_page()
    pager.window.get().items    # 20 items
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple, Union

from ..errors import ServiceConfigurationError, ValidationError, describe_error
from ..reactivity.signals import batch
from ..services.configuration import PageMode
from ..services.container import ServiceFactoryContext, define_service, implement_service
from .constraints import constrain_page, constrain_page_size
from .interface import (
    Page, PageInfo, PageWindow, QueryOptions, coerce_query_options, coerce_sort,
    resolve_find, total_count_of,
)

logger = logging.getLogger(__name__)

# (new items, offset of the first item, pages in the window)
WindowMerge = Callable[[List[Any]], Tuple[List[Any], int, int]]


@dataclass
class CursorPaginationConfig:
    """Configuration for a CursorPaginationService"""
    fetcher: Any
    collection_id: str
    initial_result: Optional[Any] = None
    query_options: Optional[Union[QueryOptions, Dict[str, Any]]] = None
    next_mode: Optional[PageMode] = None
    discard_stale_results: Optional[bool] = None
    auto_load: bool = True


CursorPaginationServiceDefinition = define_service(
    "cursor-pagination",
    "Window of fetched items with next/prev cursors and loading/error state",
)


class CursorPaginationService:
    """
    Pagination engine over an opaque data-fetch collaborator.

    Signals: items, query_result, total_count, offset, is_loading, error,
    query_options. Computeds: has_next, has_prev, page_info, window.
    """

    def __init__(self, ctx: ServiceFactoryContext):
        config = ctx.config
        if not isinstance(config, CursorPaginationConfig):
            raise ServiceConfigurationError(
                f"{ctx.definition.name} needs a CursorPaginationConfig, got {type(config).__name__}"
            )
        if not config.collection_id:
            raise ValidationError("No collection ID provided")

        defaults = ctx.app_config.pagination
        self.collection_id = config.collection_id
        self._find = resolve_find(config.fetcher)
        self._max_page_size = defaults.max_page_size
        self._default_page_size = defaults.page_size
        self._next_mode = config.next_mode or defaults.next_mode
        self._discard_stale = (defaults.discard_stale_results if config.discard_stale_results is None
                               else config.discard_stale_results)

        options = self._with_page_size(coerce_query_options(config.query_options))
        seed = config.initial_result

        signals = ctx.signals
        self.items = signals.signal(list(seed.items) if seed is not None else [], name="items")
        self.query_result = signals.signal(seed, name="query_result")
        self.total_count = signals.signal(total_count_of(seed), name="total_count")
        self.offset = signals.signal(options.skip, name="offset")
        self.is_loading = signals.signal(False, name="is_loading")
        self.error = signals.signal(None, name="error")
        self.query_options = signals.signal(options, name="query_options")

        self.has_next = signals.computed(
            lambda: self._cursor_available(self.query_result.get(), 'has_next'), name="has_next")
        self.has_prev = signals.computed(
            lambda: self._cursor_available(self.query_result.get(), 'has_prev'), name="has_prev")
        self.page_info = signals.computed(self._compute_page_info, name="page_info")
        self.window = signals.computed(self._compute_window, name="window")

        self._epoch = 0
        self._pages_in_window = 1 if seed is not None else 0
        self._disposed = False
        self._tasks: Set[asyncio.Task] = set()

        if seed is None and config.auto_load:
            self._spawn(self.load_items(options))

    # Operations

    async def load_items(self, options: Union[QueryOptions, Dict[str, Any], None] = None) -> bool:
        """Replace the window with a fresh first-page fetch"""
        if options is None:
            options = self.query_options.peek()
        options = self._with_page_size(coerce_query_options(options))
        self.query_options.set(options)

        def merge(items):
            return items, options.skip, 1

        return await self._run(lambda: self._find(options), merge, "Failed to load collection items")

    async def load_next_page(self) -> bool:
        """Follow the next cursor; no-op without one or while a fetch is in flight"""
        result = self.query_result.peek()
        if result is None or not result.has_next() or self.is_loading.peek():
            return False

        if self._next_mode == PageMode.ACCUMULATE:
            def merge(items):
                return self.items.peek() + items, self.offset.peek(), self._pages_in_window + 1
        else:
            def merge(items):
                return items, self.offset.peek() + len(self.items.peek()), 1

        return await self._run(result.next, merge, "Failed to load next page")

    async def load_prev_page(self) -> bool:
        """Follow the prev cursor, replacing the window with the previous page"""
        result = self.query_result.peek()
        if result is None or not result.has_prev() or self.is_loading.peek():
            return False

        def merge(items):
            return items, max(self.offset.peek() - len(items), 0), 1

        return await self._run(result.prev, merge, "Failed to load previous page")

    async def invalidate(self) -> bool:
        """Re-fetch the current position without going back to page one"""
        position = self.query_options.peek().with_changes(skip=self.offset.peek())
        pages = max(self._pages_in_window, 1)
        fetched = 0

        async def refetch():
            nonlocal fetched
            first = last = await self._find(position)
            collected = list(first.items)
            fetched = 1
            while fetched < pages and last.has_next():
                last = await last.next()
                collected.extend(last.items)
                fetched += 1
            return Page(
                items=collected,
                total_count=total_count_of(last),
                next_cursor=last.next if last.has_next() else None,
                prev_cursor=first.prev if first.has_prev() else None,
            )

        def merge(items):
            return items, position.skip, fetched

        return await self._run(refetch, merge, "Failed to refresh collection items")

    async def set_sort(self, sort) -> bool:
        """Store the sort spec and reload from page one"""
        options = self.query_options.peek().with_changes(sort=coerce_sort(sort), skip=0)
        return await self.load_items(options)

    async def go_to_page(self, page: int) -> bool:
        """Load the 1-based ``page``, clamped to the known page count"""
        options = self.query_options.peek()
        total_pages = self.page_info.peek().total_pages
        target = constrain_page(page, total_pages)
        if target != page:
            logger.debug(f"Clamped page {page} to {target} for collection \"{self.collection_id}\"")
        return await self.load_items(options.with_changes(skip=(target - 1) * options.limit))

    def set_query_options(self, options: Union[QueryOptions, Dict[str, Any]]) -> QueryOptions:
        """Store options for the next load without fetching"""
        options = self._with_page_size(coerce_query_options(options))
        self.query_options.set(options)
        return options

    async def set_page_size(self, page_size: int) -> bool:
        """Change the page size (clamped to the configured maximum) and reload from page one"""
        limit = constrain_page_size(page_size, self._max_page_size)
        options = self.query_options.peek().with_changes(limit=limit, skip=0)
        return await self.load_items(options)

    # Fetch plumbing

    async def _run(self, fetch: Callable[[], Awaitable[Any]], merge: WindowMerge, failure_message: str) -> bool:
        epoch = self._begin()
        try:
            result = await fetch()
            # Result and loading flag land in one flush
            with batch():
                applied = self._apply_result(epoch, result, merge)
                self._finish(epoch)
            return applied
        except asyncio.CancelledError:
            self._finish(epoch)
            raise
        except Exception as e:
            with batch():
                self._apply_error(epoch, e, failure_message)
                self._finish(epoch)
            return False

    def _begin(self) -> int:
        self._epoch += 1
        logger.debug(f"Fetch #{self._epoch} started for collection \"{self.collection_id}\"")
        with batch():
            self.is_loading.set(True)
            self.error.set(None)
        return self._epoch

    def _superseded(self, epoch: int) -> bool:
        return self._discard_stale and epoch != self._epoch

    def _finish(self, epoch: int):
        if not self._disposed and not self._superseded(epoch):
            self.is_loading.set(False)

    def _apply_result(self, epoch: int, result: Any, merge: WindowMerge) -> bool:
        """The only place fetched data is written into the window"""
        if self._disposed:
            return False
        if self._superseded(epoch):
            logger.debug(f"Discarding stale result #{epoch} for collection \"{self.collection_id}\"")
            return False

        items, offset, pages = merge(list(result.items))
        self._pages_in_window = pages
        with batch():
            self.query_result.set(result)
            self.items.set(items)
            self.offset.set(offset)
            self.total_count.set(total_count_of(result))
            self.error.set(None)
        return True

    def _apply_error(self, epoch: int, exc: Exception, failure_message: str):
        if self._disposed or self._superseded(epoch):
            logger.debug(f"Ignoring failure of superseded fetch #{epoch}: {exc}")
            return
        logger.error(f"{failure_message} from collection \"{self.collection_id}\": {exc}")
        self.error.set(describe_error(exc, failure_message))

    def _spawn(self, coro):
        try:
            task = asyncio.get_running_loop().create_task(coro)
        except RuntimeError:
            coro.close()
            logger.debug(f"No running event loop; \"{self.collection_id}\" waits for load_items()")
            return None
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _with_page_size(self, options: QueryOptions) -> QueryOptions:
        limit = options.limit if options.limit is not None else self._default_page_size
        limit = constrain_page_size(limit, self._max_page_size)
        if limit == options.limit:
            return options
        return options.with_changes(limit=limit)

    # Derived state

    @property
    def cursors(self) -> Dict[str, Optional[Callable[[], Awaitable[Any]]]]:
        """The live next/prev continuations of the current result"""
        result = self.query_result.peek()
        if result is None:
            return {"next": None, "prev": None}
        return {
            "next": result.next if result.has_next() else None,
            "prev": result.prev if result.has_prev() else None,
        }

    @staticmethod
    def _cursor_available(result: Any, method: str) -> bool:
        return bool(result is not None and getattr(result, method)())

    def _compute_page_info(self) -> PageInfo:
        options = self.query_options.get()
        total = self.total_count.get()
        offset = self.offset.get()
        limit = options.limit
        return PageInfo(
            offset=offset,
            limit=limit,
            loaded=len(self.items.get()),
            current_page=offset // limit + 1 if limit else 1,
            total_pages=math.ceil(total / limit) if total is not None and limit else None,
            total_count=total,
            has_next=self.has_next.get(),
            has_prev=self.has_prev.get(),
        )

    def _compute_window(self) -> PageWindow:
        return PageWindow(
            items=list(self.items.get()),
            total_count=self.total_count.get(),
            has_next=self.has_next.get(),
            has_prev=self.has_prev.get(),
            is_loading=self.is_loading.get(),
            error=self.error.get(),
        )

    # Lifecycle

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self):
        self._disposed = True
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()


CursorPaginationServiceImplementation = implement_service(
    CursorPaginationServiceDefinition, CursorPaginationService
)


async def load_pagination_config(fetcher: Any, collection_id: str,
                                 options: Union[QueryOptions, Dict[str, Any], None] = None,
                                 **overrides: Any) -> CursorPaginationConfig:
    """
    Fetch the first page ahead of mounting and return a seeded config.

    Args:
        fetcher: The data-fetch collaborator
        collection_id: Collection the fetcher reads
        options: Query options for the first page
        **overrides: Extra CursorPaginationConfig fields

    Returns:
        A config whose ``initial_result`` holds the first page
    """
    if not collection_id:
        raise ValidationError("No collection ID provided")
    query = coerce_query_options(options)

    try:
        result = await resolve_find(fetcher)(query)
    except Exception as e:
        logger.error(f"Failed to load collection config for \"{collection_id}\": {e}")
        raise

    return CursorPaginationConfig(
        fetcher=fetcher,
        collection_id=collection_id,
        initial_result=result,
        query_options=query,
        **overrides,
    )


__all__ = [
    "CursorPaginationConfig", "CursorPaginationService", "CursorPaginationServiceDefinition",
    "CursorPaginationServiceImplementation", "load_pagination_config",
]
