"""
Shared fixtures for the livequery test suite.
"""

import asyncio
from typing import List

import pytest

from livequery import Environment, LiveQueryConfig, MemoryCollection, ServiceContext, ServiceScope
from livequery.query import (
    CursorPaginationConfig, CursorPaginationServiceDefinition, CursorPaginationServiceImplementation,
    Page,
)


def product_rows(count: int = 15):
    return [
        {
            "_id": f"p{i:02d}",
            "name": f"Product {i}",
            "price": i * 10,
            "category": "a" if i % 2 else "b",
            "tags": ["sale"] if i % 3 == 0 else [],
        }
        for i in range(1, count + 1)
    ]


class GatedCollection(MemoryCollection):
    """MemoryCollection whose calls wait until ``gate`` is set"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.gate = asyncio.Event()
        self.gate.set()

    async def _before_call(self, operation: str):
        await self.gate.wait()
        await super()._before_call(operation)


class ScriptedFetcher:
    """Fetcher whose calls each block on their own event, released in any order"""

    def __init__(self):
        self.pending: List[asyncio.Event] = []

    async def find(self, query):
        release = asyncio.Event()
        self.pending.append(release)
        await release.wait()
        label = query.filter.get("label", "all")
        size = query.limit or 3
        return Page(items=[f"{label}-{i}" for i in range(size)], total_count=size)


@pytest.fixture
def test_config():
    return LiveQueryConfig.for_environment(Environment.TESTING)


@pytest.fixture
def scope(test_config):
    """Root scope disposed after each test"""
    root = ServiceScope(context=ServiceContext(config=test_config), name="test")
    yield root
    root.dispose()


@pytest.fixture
def products():
    return MemoryCollection("products", product_rows())


def register_pager(scope, fetcher, **overrides):
    """Register a pagination engine that waits for an explicit load_items()"""
    overrides.setdefault("auto_load", False)
    return scope.register(
        CursorPaginationServiceDefinition,
        CursorPaginationServiceImplementation,
        CursorPaginationConfig(fetcher=fetcher, collection_id="products", **overrides),
    )
