from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from .common import PaginatedResponse
from .validators import normalize_category_name, normalize_hex_color, normalize_optional_text


class CategoryBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    color: Optional[str] = Field(None, max_length=7)
    icon: Optional[str] = Field(None, max_length=50)

    @field_validator("name", mode="before")
    @classmethod
    def normalize_name(cls, value: str) -> str:
        return normalize_category_name(value)

    @field_validator("description", mode="before")
    @classmethod
    def normalize_description(cls, value: Optional[str]) -> Optional[str]:
        return normalize_optional_text(value, strip_html=True)

    @field_validator("color", mode="before")
    @classmethod
    def normalize_color(cls, value: Optional[str]) -> Optional[str]:
        return normalize_hex_color(value)

    @field_validator("icon", mode="before")
    @classmethod
    def normalize_icon(cls, value: Optional[str]) -> Optional[str]:
        return normalize_optional_text(value)


class CategoryCreate(CategoryBase):
    parent_id: Optional[int] = Field(None, ge=1)


class CategoryUpdate(BaseModel):
    """Partial update. Only fields present in the request body are applied.

    ``parent_id: null`` moves the category to the root. ``version`` is an
    optional optimistic-locking precondition.
    """

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    color: Optional[str] = Field(None, max_length=7)
    icon: Optional[str] = Field(None, max_length=50)
    parent_id: Optional[int] = Field(None, ge=1)
    is_active: Optional[bool] = None
    version: Optional[int] = Field(None, ge=1)

    @field_validator("name", mode="before")
    @classmethod
    def normalize_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            raise ValueError("Category name cannot be empty")
        return normalize_category_name(value)

    @field_validator("description", mode="before")
    @classmethod
    def normalize_description(cls, value: Optional[str]) -> Optional[str]:
        return normalize_optional_text(value, strip_html=True)

    @field_validator("color", mode="before")
    @classmethod
    def normalize_color(cls, value: Optional[str]) -> Optional[str]:
        return normalize_hex_color(value)

    @field_validator("icon", mode="before")
    @classmethod
    def normalize_icon(cls, value: Optional[str]) -> Optional[str]:
        return normalize_optional_text(value)


class CategoryResponse(BaseModel):
    id: int
    owner_id: int
    name: str
    description: Optional[str] = None
    color: str
    icon: str
    parent_id: Optional[int] = None
    level: int
    path: List[str]
    full_path: str
    is_active: bool
    is_system: bool
    deleted_at: Optional[datetime] = None
    # Optimistic locking version - send it back on update to detect conflicts
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CategoryTreeNode(CategoryResponse):
    children_count: int = 0
    children: List["CategoryTreeNode"] = Field(default_factory=list)


class PaginatedCategoryResponse(PaginatedResponse[CategoryResponse]):
    pass


class BulkCategoryCreate(BaseModel):
    categories: List[CategoryCreate] = Field(..., min_length=1)


class BulkCategoryFailure(BaseModel):
    index: int
    name: Optional[str] = None
    code: str
    detail: str


class BulkCategoryResponse(BaseModel):
    created: List[CategoryResponse]
    failed: List[BulkCategoryFailure]
    requested: int
    created_count: int
    failed_count: int


class CategoryStatsResponse(BaseModel):
    total_categories: int
    active_categories: int
    root_categories: int
    max_depth: int
    categories_by_level: Dict[int, int]
