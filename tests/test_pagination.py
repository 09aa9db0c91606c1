"""
Tests for the cursor pagination engine.
"""

import asyncio

import pytest

from livequery import (
    FetchError, PageMode, ServiceConfigurationError, ValidationError, effect,
)
from livequery.query import (
    CursorPaginationServiceDefinition, CursorPaginationServiceImplementation,
    SortOrder, load_pagination_config,
)

from conftest import GatedCollection, ScriptedFetcher, product_rows, register_pager


class TestLoading:

    @pytest.mark.asyncio
    async def test_first_page(self, scope, products):
        pager = register_pager(scope, products)

        assert await pager.load_items({"limit": 10})

        assert len(pager.items.get()) == 10
        assert pager.total_count.get() == 15
        assert pager.has_next.get() is True
        assert pager.has_prev.get() is False
        assert pager.offset.get() == 0
        assert pager.is_loading.get() is False
        assert pager.error.get() is None

    @pytest.mark.asyncio
    async def test_next_page_accumulates_until_exhausted(self, scope, products):
        pager = register_pager(scope, products)
        await pager.load_items({"limit": 10})

        assert await pager.load_next_page()

        assert len(pager.items.get()) == 15
        assert pager.has_next.get() is False
        assert [item["_id"] for item in pager.items.get()] == [row["_id"] for row in product_rows()]

        calls = products.find_calls
        assert await pager.load_next_page() is False
        assert products.find_calls == calls

    @pytest.mark.asyncio
    async def test_page_info(self, scope, products):
        pager = register_pager(scope, products)
        await pager.load_items({"limit": 10})
        await pager.load_next_page()

        info = pager.page_info.get()

        assert info.loaded == 15
        assert info.total_pages == 2
        assert info.current_page == 1
        assert info.has_next is False

    @pytest.mark.asyncio
    async def test_replace_mode_and_prev_page(self, scope, products):
        pager = register_pager(scope, products, next_mode=PageMode.REPLACE)
        await pager.load_items({"limit": 10})

        await pager.load_next_page()
        assert [item["_id"] for item in pager.items.get()] == ["p11", "p12", "p13", "p14", "p15"]
        assert pager.offset.get() == 10
        assert pager.has_prev.get() is True
        assert pager.page_info.get().current_page == 2

        assert await pager.load_prev_page()
        assert len(pager.items.get()) == 10
        assert pager.items.get()[0]["_id"] == "p01"
        assert pager.offset.get() == 0
        assert pager.has_prev.get() is False

    @pytest.mark.asyncio
    async def test_prev_without_cursor_is_noop(self, scope, products):
        pager = register_pager(scope, products)
        await pager.load_items({"limit": 10})

        assert await pager.load_prev_page() is False
        assert pager.cursors["prev"] is None
        assert pager.cursors["next"] is not None

    @pytest.mark.asyncio
    async def test_default_page_size_from_config(self, scope, products):
        pager = register_pager(scope, products)

        await pager.load_items()

        assert pager.query_options.get().limit == 10
        assert len(pager.items.get()) == 10

    @pytest.mark.asyncio
    async def test_set_page_size_is_clamped(self, scope, products):
        pager = register_pager(scope, products)

        await pager.set_page_size(1000)

        assert pager.query_options.get().limit == 100
        assert len(pager.items.get()) == 15
        assert pager.has_next.get() is False

    @pytest.mark.asyncio
    async def test_set_sort_reloads_from_first_page(self, scope, products):
        pager = register_pager(scope, products, next_mode=PageMode.REPLACE)
        await pager.load_items({"limit": 10})
        await pager.load_next_page()

        await pager.set_sort([("price", "DESC")])

        assert pager.offset.get() == 0
        assert pager.items.get()[0]["_id"] == "p15"
        assert pager.query_options.get().sort[0].order == SortOrder.DESC

    @pytest.mark.asyncio
    async def test_invalid_options_raise_before_fetch(self, scope, products):
        pager = register_pager(scope, products)

        with pytest.raises(ValidationError):
            await pager.load_items({"limit": 0})
        assert products.find_calls == 0

    @pytest.mark.asyncio
    async def test_window_effect_runs_once_per_result(self, scope, products):
        pager = register_pager(scope, products)
        sizes = []
        stop = effect(lambda: sizes.append(len(pager.items.get())))

        await pager.load_items({"limit": 10})
        await pager.load_next_page()

        assert sizes == [0, 10, 15]
        stop()

    @pytest.mark.asyncio
    async def test_result_and_loading_flag_land_together(self, scope, products):
        pager = register_pager(scope, products)
        snapshots = []

        def record():
            window = pager.window.get()
            snapshots.append((len(window.items), window.is_loading))

        stop = effect(record)
        await pager.load_items({"limit": 10})

        assert snapshots == [(0, False), (0, True), (10, False)]
        stop()

    @pytest.mark.asyncio
    async def test_error_and_loading_flag_land_together(self, scope, products):
        pager = register_pager(scope, products)
        snapshots = []

        def record():
            window = pager.window.get()
            snapshots.append((window.is_loading, window.error))

        stop = effect(record)
        products.fail_next()
        await pager.load_items({"limit": 10})

        assert snapshots == [(False, None), (True, None), (False, "products: simulated failure")]
        stop()


class TestPageJump:

    @pytest.mark.asyncio
    async def test_go_to_page(self, scope, products):
        pager = register_pager(scope, products, next_mode=PageMode.REPLACE)
        await pager.load_items({"limit": 5})

        assert await pager.go_to_page(3)

        assert pager.offset.get() == 10
        assert [item["_id"] for item in pager.items.get()] == ["p11", "p12", "p13", "p14", "p15"]
        assert pager.page_info.get().current_page == 3
        assert pager.has_next.get() is False

    @pytest.mark.asyncio
    async def test_out_of_range_pages_are_clamped(self, scope, products):
        pager = register_pager(scope, products)
        await pager.load_items({"limit": 5})

        await pager.go_to_page(9)
        assert pager.page_info.get().current_page == 3

        await pager.go_to_page(0)
        assert pager.offset.get() == 0
        assert pager.items.get()[0]["_id"] == "p01"

    @pytest.mark.asyncio
    async def test_unknown_total_stays_on_first_page(self, scope, products):
        pager = register_pager(scope, products)

        await pager.go_to_page(4)

        assert pager.offset.get() == 0
        assert pager.page_info.get().total_pages == 2

    @pytest.mark.asyncio
    async def test_keeps_filter_and_sort(self, scope, products):
        pager = register_pager(scope, products)
        await pager.load_items({"limit": 2, "filter": {"category": "a"}, "sort": [{"field_name": "price", "order": "DESC"}]})

        await pager.go_to_page(2)

        assert [item["_id"] for item in pager.items.get()] == ["p11", "p09"]


class TestQueryOptions:

    @pytest.mark.asyncio
    async def test_set_query_options_does_not_fetch(self, scope, products):
        pager = register_pager(scope, products)

        stored = pager.set_query_options({"limit": 500, "filter": {"category": "b"}})

        assert stored.limit == 100
        assert products.find_calls == 0

        await pager.load_items()
        assert pager.total_count.get() == 7


class TestInFlight:

    @pytest.mark.asyncio
    async def test_back_to_back_next_is_noop(self, scope):
        products = GatedCollection("products", product_rows())
        pager = register_pager(scope, products)
        await pager.load_items({"limit": 10})

        products.gate.clear()
        first = asyncio.create_task(pager.load_next_page())
        await asyncio.sleep(0)

        assert pager.is_loading.get() is True
        assert pager.window.get().is_loading is True
        assert await pager.load_next_page() is False

        products.gate.set()
        assert await first is True
        assert len(pager.items.get()) == 15
        assert products.find_calls == 2
        assert pager.is_loading.get() is False

    @pytest.mark.asyncio
    async def test_stale_result_is_discarded(self, scope):
        fetcher = ScriptedFetcher()
        pager = register_pager(scope, fetcher)

        older = asyncio.create_task(pager.load_items({"limit": 2, "filter": {"label": "old"}}))
        await asyncio.sleep(0)
        newer = asyncio.create_task(pager.load_items({"limit": 2, "filter": {"label": "new"}}))
        await asyncio.sleep(0)

        fetcher.pending[1].set()
        assert await newer is True
        fetcher.pending[0].set()
        assert await older is False

        assert pager.items.get() == ["new-0", "new-1"]
        assert pager.is_loading.get() is False

    @pytest.mark.asyncio
    async def test_loading_stays_on_until_latest_fetch_finishes(self, scope):
        fetcher = ScriptedFetcher()
        pager = register_pager(scope, fetcher)

        older = asyncio.create_task(pager.load_items({"limit": 2, "filter": {"label": "old"}}))
        await asyncio.sleep(0)
        newer = asyncio.create_task(pager.load_items({"limit": 2, "filter": {"label": "new"}}))
        await asyncio.sleep(0)

        fetcher.pending[0].set()
        assert await older is False
        assert pager.is_loading.get() is True
        assert pager.items.get() == []

        fetcher.pending[1].set()
        await newer
        assert pager.is_loading.get() is False

    @pytest.mark.asyncio
    async def test_last_write_wins_when_discarding_is_off(self, scope):
        fetcher = ScriptedFetcher()
        pager = register_pager(scope, fetcher, discard_stale_results=False)

        older = asyncio.create_task(pager.load_items({"limit": 2, "filter": {"label": "old"}}))
        await asyncio.sleep(0)
        newer = asyncio.create_task(pager.load_items({"limit": 2, "filter": {"label": "new"}}))
        await asyncio.sleep(0)

        fetcher.pending[1].set()
        await newer
        fetcher.pending[0].set()
        assert await older is True

        assert pager.items.get() == ["old-0", "old-1"]

    @pytest.mark.asyncio
    async def test_late_result_after_dispose_is_ignored(self, scope):
        products = GatedCollection("products", product_rows())
        pager = register_pager(scope, products)
        await pager.load_items({"limit": 10})

        products.gate.clear()
        pending = asyncio.create_task(pager.load_next_page())
        await asyncio.sleep(0)
        scope.dispose()
        products.gate.set()

        assert await pending is False
        assert pager.disposed
        assert len(pager.items.peek()) == 10


class TestErrors:

    @pytest.mark.asyncio
    async def test_failed_next_keeps_items(self, scope, products):
        pager = register_pager(scope, products)
        await pager.load_items({"limit": 10})
        products.fail_next()

        assert await pager.load_next_page() is False

        assert len(pager.items.get()) == 10
        assert pager.error.get() == "products: simulated failure"
        assert pager.is_loading.get() is False
        assert pager.window.get().error == "products: simulated failure"

        assert await pager.load_next_page() is True
        assert pager.error.get() is None
        assert len(pager.items.get()) == 15

    @pytest.mark.asyncio
    async def test_unexpected_exception_message(self, scope, products):
        pager = register_pager(scope, products)
        products.fail_next(RuntimeError("connection reset"))

        assert await pager.load_items({"limit": 10}) is False

        assert pager.error.get() == "connection reset"
        assert pager.items.get() == []

    @pytest.mark.asyncio
    async def test_failure_is_logged(self, scope, products, caplog):
        pager = register_pager(scope, products)
        products.fail_next()

        await pager.load_items()

        assert "Failed to load collection items" in caplog.text

    def test_missing_collection_id(self, scope, products):
        from livequery.query import CursorPaginationConfig

        with pytest.raises(ValidationError):
            scope.register(
                CursorPaginationServiceDefinition,
                CursorPaginationServiceImplementation,
                CursorPaginationConfig(fetcher=products, collection_id=""),
            )

    def test_wrong_config_type(self, scope):
        with pytest.raises(ServiceConfigurationError):
            scope.register(
                CursorPaginationServiceDefinition,
                CursorPaginationServiceImplementation,
                {"collection_id": "products"},
            )


class TestInvalidate:

    @pytest.mark.asyncio
    async def test_invalidate_is_idempotent(self, scope, products):
        pager = register_pager(scope, products)
        await pager.load_items({"limit": 10})
        await pager.load_next_page()
        before = pager.window.get()

        assert await pager.invalidate()
        first = pager.window.get()
        assert await pager.invalidate()
        second = pager.window.get()

        assert first == before
        assert second == first
        assert len(second.items) == 15

    @pytest.mark.asyncio
    async def test_invalidate_reflects_backing_changes(self, scope, products):
        pager = register_pager(scope, products)
        await pager.load_items({"limit": 10})

        await products.remove("p01")
        await pager.invalidate()

        assert pager.items.get()[0]["_id"] == "p02"
        assert len(pager.items.get()) == 10
        assert pager.total_count.get() == 14

    @pytest.mark.asyncio
    async def test_invalidate_keeps_position(self, scope, products):
        pager = register_pager(scope, products, next_mode=PageMode.REPLACE)
        await pager.load_items({"limit": 10})
        await pager.load_next_page()

        await pager.invalidate()

        assert pager.offset.get() == 10
        assert pager.items.get()[0]["_id"] == "p11"
        assert pager.has_prev.get() is True


class TestMounting:

    @pytest.mark.asyncio
    async def test_auto_load_on_registration(self, scope, products):
        pager = register_pager(scope, products, auto_load=True, query_options={"limit": 5})

        await asyncio.gather(*pager._tasks)

        assert len(pager.items.get()) == 5
        assert pager.has_next.get() is True

    def test_auto_load_without_event_loop(self, scope, products):
        pager = register_pager(scope, products, auto_load=True)

        assert pager.items.get() == []
        assert products.find_calls == 0

    @pytest.mark.asyncio
    async def test_seeded_from_server_side_loader(self, scope, products):
        config = await load_pagination_config(products, "products", {"limit": 5})
        pager = scope.register(CursorPaginationServiceDefinition, CursorPaginationServiceImplementation, config)

        assert len(pager.items.get()) == 5
        assert pager.total_count.get() == 15
        assert pager.has_next.get() is True
        assert products.find_calls == 1

        await pager.load_next_page()
        assert len(pager.items.get()) == 10

    @pytest.mark.asyncio
    async def test_loader_validates_id(self, products):
        with pytest.raises(ValidationError):
            await load_pagination_config(products, "")

    @pytest.mark.asyncio
    async def test_loader_reraises_fetch_failure(self, products):
        products.fail_next()

        with pytest.raises(FetchError):
            await load_pagination_config(products, "products")

    @pytest.mark.asyncio
    async def test_bare_callable_fetcher(self, scope, products):
        pager = register_pager(scope, products.find)

        await pager.load_items({"limit": 3})

        assert len(pager.items.get()) == 3
