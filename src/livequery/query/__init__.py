"""
Query - Engines Over Remote Collections

Components:
- interface.py: query options, page results and collaborator contracts
- constraints.py: shared clamping functions
- pagination.py: cursor pagination engine
- filters.py: filter/sort state machine
- selection.py: quantity selection engine
- mutations.py: create/update/delete followed by invalidation
- status.py: poll a record until it is ready
"""

from .interface import (
    SortOrder, SortItem, QueryOptions, PageResult, DataFetcher, MutationCollaborator,
    Page, PageInfo, PageWindow, coerce_query_options, coerce_sort,
)
from .constraints import clamp, constrain_quantity, constrain_page, constrain_page_size
from .pagination import (
    CursorPaginationConfig, CursorPaginationService, CursorPaginationServiceDefinition,
    CursorPaginationServiceImplementation, load_pagination_config,
)
from .filters import (
    FilterOperator, FilterStatus, FilterSortConfig, FilterSortService,
    FilterSortServiceDefinition, FilterSortServiceImplementation, normalize_predicate,
)
from .selection import (
    SelectionEntry, QuantitySelectionConfig, QuantitySelectionService,
    QuantitySelectionServiceDefinition, QuantitySelectionServiceImplementation,
)
from .mutations import (
    CollectionMutationConfig, CollectionMutationService,
    CollectionMutationServiceDefinition, CollectionMutationServiceImplementation,
)
from .status import (
    StatusPollingConfig, StatusPollingService,
    StatusPollingServiceDefinition, StatusPollingServiceImplementation,
)

__all__ = [
    "SortOrder", "SortItem", "QueryOptions", "PageResult", "DataFetcher", "MutationCollaborator",
    "Page", "PageInfo", "PageWindow", "coerce_query_options", "coerce_sort",
    "clamp", "constrain_quantity", "constrain_page", "constrain_page_size",
    "CursorPaginationConfig", "CursorPaginationService", "CursorPaginationServiceDefinition",
    "CursorPaginationServiceImplementation", "load_pagination_config",
    "FilterOperator", "FilterStatus", "FilterSortConfig", "FilterSortService",
    "FilterSortServiceDefinition", "FilterSortServiceImplementation", "normalize_predicate",
    "SelectionEntry", "QuantitySelectionConfig", "QuantitySelectionService",
    "QuantitySelectionServiceDefinition", "QuantitySelectionServiceImplementation",
    "CollectionMutationConfig", "CollectionMutationService",
    "CollectionMutationServiceDefinition", "CollectionMutationServiceImplementation",
    "StatusPollingConfig", "StatusPollingService",
    "StatusPollingServiceDefinition", "StatusPollingServiceImplementation",
]
