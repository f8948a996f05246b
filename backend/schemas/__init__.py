from .category import (
    BulkCategoryCreate,
    BulkCategoryFailure,
    BulkCategoryResponse,
    CategoryBase,
    CategoryCreate,
    CategoryResponse,
    CategoryStatsResponse,
    CategoryTreeNode,
    CategoryUpdate,
    PaginatedCategoryResponse,
)
from .common import ErrorResponse, PaginatedResponse

__all__ = [
    "BulkCategoryCreate",
    "BulkCategoryFailure",
    "BulkCategoryResponse",
    "CategoryBase",
    "CategoryCreate",
    "CategoryResponse",
    "CategoryStatsResponse",
    "CategoryTreeNode",
    "CategoryUpdate",
    "ErrorResponse",
    "PaginatedCategoryResponse",
    "PaginatedResponse",
]
