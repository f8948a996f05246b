"""Common schemas used across the API.

This module contains reusable schema components for consistent API responses.
"""

from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field


# Generic type for paginated item lists
T = TypeVar("T")


class PaginatedResponse(BaseModel, Generic[T]):
    """
    Page-numbered list response.

    Attributes:
        items: Items on the current page
        total: Total count of all items matching the query
        page: 1-based page number
        limit: Maximum items per page (page size)
        total_pages: ceil(total / limit)
    """
    items: List[T]
    total: int = Field(..., ge=0, description="Total number of items matching the query")
    page: int = Field(..., ge=1, description="1-based page number")
    limit: int = Field(..., ge=1, description="Maximum items per page")
    total_pages: int = Field(..., ge=0, description="Total number of pages")

    model_config = {"from_attributes": True}


class ErrorResponse(BaseModel):
    """
    Standard error response format.

    Attributes:
        detail: Human-readable error message
        code: Optional machine-readable error code for programmatic handling
    """
    detail: str = Field(..., description="Human-readable error description")
    code: Optional[str] = Field(
        None,
        description="Machine-readable error code for programmatic error handling"
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "detail": "Category not found",
                    "code": "NOT_FOUND"
                },
                {
                    "detail": "Cannot set parent: would create circular reference",
                    "code": "CIRCULAR_REFERENCE"
                }
            ]
        }
    }
