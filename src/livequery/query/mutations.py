"""
Collection Mutation Flow

✏️ Create, update and delete through a mutation collaborator, then refresh:
After a successful write the bound pagination engine re-fetches its current
position, so the displayed window reflects the change without jumping back
to page one. Missing identifiers raise ValidationError before the
collaborator is called; collaborator failures land in ``error``.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple

from ..errors import ValidationError, describe_error
from ..reactivity.signals import batch
from ..services.container import ServiceDefinition, ServiceFactoryContext, define_service, implement_service
from .pagination import CursorPaginationServiceDefinition

logger = logging.getLogger(__name__)


@dataclass
class CollectionMutationConfig:
    """Configuration for a CollectionMutationService"""
    collaborator: Any
    collection_id: str
    pagination: Optional[ServiceDefinition] = CursorPaginationServiceDefinition


CollectionMutationServiceDefinition = define_service(
    "collection-mutation",
    "Item mutations followed by invalidation of the current page",
)


class CollectionMutationService:
    """
    Signals: is_saving, error, item (the last item written or fetched).
    """

    def __init__(self, ctx: ServiceFactoryContext):
        config: CollectionMutationConfig = ctx.config
        if not config.collection_id:
            raise ValidationError("No collection ID provided")

        self.collection_id = config.collection_id
        self._collaborator = config.collaborator
        self._pagination = ctx.get_service(config.pagination) if config.pagination is not None else None

        signals = ctx.signals
        self.is_saving = signals.signal(False, name="is_saving")
        self.error = signals.signal(None, name="error")
        self.item = signals.signal(None, name="item")

        self._disposed = False

    async def create_item(self, data: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        if not isinstance(data, Mapping):
            raise ValidationError(f"{self.collection_id} item data must be a mapping")
        ok, created = await self._mutate(
            lambda: self._collaborator.insert(dict(data)),
            f"Failed to create {self.collection_id} item",
        )
        return created if ok else None

    async def update_item(self, data: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        if not isinstance(data, Mapping) or not data.get("_id"):
            raise ValidationError(f"{self.collection_id} ID is required for update")
        ok, updated = await self._mutate(
            lambda: self._collaborator.update(dict(data)),
            f"Failed to update {self.collection_id} item",
        )
        return updated if ok else None

    async def delete_item(self, item_id: str) -> bool:
        if not item_id:
            raise ValidationError(f"{self.collection_id} ID is required for deletion")
        current = self.item.peek()
        ok, _ = await self._mutate(
            lambda: self._collaborator.remove(item_id),
            f"Failed to delete {self.collection_id} item",
            keep_item=True,
        )
        if not ok:
            return False
        if current is not None and current.get("_id") == item_id and not self._disposed:
            self.item.set(None)
        return True

    async def get_item(self, item_id: str) -> Optional[Dict[str, Any]]:
        if not item_id:
            raise ValidationError(f"{self.collection_id} ID is required")
        ok, found = await self._mutate(
            lambda: self._collaborator.get(item_id),
            f"Failed to fetch {self.collection_id} item by ID",
            invalidate=False,
        )
        return found if ok else None

    async def _mutate(self, operation: Callable[[], Awaitable[Any]], failure_message: str,
                      invalidate: bool = True, keep_item: bool = False) -> Tuple[bool, Any]:
        """Run one collaborator call; returns (succeeded, result)"""
        with batch():
            self.is_saving.set(True)
            self.error.set(None)
        try:
            result = await operation()
        except asyncio.CancelledError:
            if not self._disposed:
                self.is_saving.set(False)
            raise
        except Exception as e:
            logger.error(f"{failure_message}: {e}")
            if not self._disposed:
                with batch():
                    self.error.set(describe_error(e, failure_message))
                    self.is_saving.set(False)
            return False, None

        if self._disposed:
            return True, result
        with batch():
            if not keep_item:
                self.item.set(result)
            self.is_saving.set(False)
        if invalidate and self._pagination is not None:
            await self._pagination.invalidate()
        return True, result

    def dispose(self):
        self._disposed = True


CollectionMutationServiceImplementation = implement_service(
    CollectionMutationServiceDefinition, CollectionMutationService
)


__all__ = [
    "CollectionMutationConfig", "CollectionMutationService",
    "CollectionMutationServiceDefinition", "CollectionMutationServiceImplementation",
]
