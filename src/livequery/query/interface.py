"""
Query Interface

💾 The contract between engines and their collaborators:
Query options and sort criteria, the page result shape returned by a
data-fetch collaborator, the mutation collaborator contract, and the plain
records engines hand to the presentation layer.

A data-fetch collaborator is anything with ``async find(query)`` (or a bare
async callable) returning an object shaped like PageResult. Engines treat
that result as opaque: page sizes are not assumed uniform and ``has_next()``
is taken from the collaborator, never inferred from item counts.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any, Awaitable, Callable, Dict, Generic, Iterable, List, Optional,
    Protocol, TypeVar, Union, runtime_checkable
)

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..errors import FetchError, ValidationError

T = TypeVar('T')


class SortOrder(str, Enum):
    """Sort direction"""
    ASC = "ASC"
    DESC = "DESC"


class SortItem(BaseModel):
    """A single sort criterion"""
    model_config = ConfigDict(frozen=True)

    field_name: str = Field(min_length=1)
    order: SortOrder = SortOrder.ASC


class QueryOptions(BaseModel):
    """Options for a first-page fetch"""
    limit: Optional[int] = Field(default=None, ge=1)
    skip: int = Field(default=0, ge=0)
    filter: Dict[str, Any] = Field(default_factory=dict)
    sort: List[SortItem] = Field(default_factory=list)

    def with_changes(self, **changes: Any) -> 'QueryOptions':
        """Validated copy with ``changes`` applied"""
        data = self.model_dump()
        data.update(changes)
        return coerce_query_options(data)


def coerce_query_options(options: Union[QueryOptions, Dict[str, Any], None]) -> QueryOptions:
    if options is None:
        return QueryOptions()
    if isinstance(options, QueryOptions):
        return options
    try:
        return QueryOptions.model_validate(options)
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid query options",
            details={"errors": e.errors(include_url=False)},
            cause=e,
        )


def coerce_sort(sort: Iterable[Union[SortItem, Dict[str, Any], tuple]]) -> List[SortItem]:
    """Accept SortItems, dicts or ``(field_name, order)`` tuples"""
    items = []
    try:
        for entry in sort or []:
            if isinstance(entry, SortItem):
                items.append(entry)
            elif isinstance(entry, tuple):
                field_name, order = (entry + (SortOrder.ASC,))[:2]
                items.append(SortItem(field_name=field_name, order=order))
            else:
                items.append(SortItem.model_validate(entry))
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid sort specification",
            details={"errors": e.errors(include_url=False)},
            cause=e,
        )
    return items


@runtime_checkable
class PageResult(Protocol[T]):
    """What a data-fetch collaborator returns"""
    items: List[T]

    def has_next(self) -> bool: ...

    def has_prev(self) -> bool: ...

    async def next(self) -> 'PageResult[T]': ...

    async def prev(self) -> 'PageResult[T]': ...


class DataFetcher(Protocol):
    async def find(self, query: QueryOptions) -> PageResult: ...


class MutationCollaborator(Protocol):
    async def insert(self, item: Dict[str, Any]) -> Dict[str, Any]: ...

    async def update(self, item: Dict[str, Any]) -> Dict[str, Any]: ...

    async def remove(self, item_id: str) -> Any: ...

    async def get(self, item_id: str) -> Optional[Dict[str, Any]]: ...


Cursor = Callable[[], Awaitable['Page']]


@dataclass
class Page(Generic[T]):
    """Concrete PageResult with cursor coroutines"""
    items: List[T] = field(default_factory=list)
    total_count: Optional[int] = None
    next_cursor: Optional[Cursor] = None
    prev_cursor: Optional[Cursor] = None

    def has_next(self) -> bool:
        return self.next_cursor is not None

    def has_prev(self) -> bool:
        return self.prev_cursor is not None

    async def next(self) -> 'Page[T]':
        if self.next_cursor is None:
            raise FetchError("No next page")
        return await self.next_cursor()

    async def prev(self) -> 'Page[T]':
        if self.prev_cursor is None:
            raise FetchError("No previous page")
        return await self.prev_cursor()


def resolve_find(fetcher: Any) -> Callable[[QueryOptions], Awaitable[PageResult]]:
    """The callable used to fetch a first page"""
    find = getattr(fetcher, 'find', None)
    if callable(find):
        return find
    if callable(fetcher):
        return fetcher
    raise ValidationError(f"Data fetcher must define find() or be callable, got {type(fetcher).__name__}")


def total_count_of(result: Any) -> Optional[int]:
    return getattr(result, 'total_count', None)


class PageInfo(BaseModel):
    """Position of the page window within the collection"""
    offset: int = 0
    limit: Optional[int] = None
    loaded: int = 0
    current_page: int = 1
    total_pages: Optional[int] = None
    total_count: Optional[int] = None
    has_next: bool = False
    has_prev: bool = False


class PageWindow(BaseModel):
    """Serializable view of a pagination engine's state"""
    items: List[Any] = Field(default_factory=list)
    total_count: Optional[int] = None
    has_next: bool = False
    has_prev: bool = False
    is_loading: bool = False
    error: Optional[str] = None


__all__ = [
    "SortOrder", "SortItem", "QueryOptions", "coerce_query_options", "coerce_sort",
    "PageResult", "DataFetcher", "MutationCollaborator", "Page", "Cursor",
    "resolve_find", "total_count_of", "PageInfo", "PageWindow",
]
