import json
import logging
from typing import Any, List, Optional

from api.dependencies import get_category_service, get_current_owner_id
from config import get_settings
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import Response
from schemas.category import (
    BulkCategoryCreate,
    BulkCategoryFailure,
    BulkCategoryResponse,
    CategoryCreate,
    CategoryResponse,
    CategoryStatsResponse,
    CategoryTreeNode,
    CategoryUpdate,
    PaginatedCategoryResponse,
)
from schemas.common import ErrorResponse
from services.categories import CategoryFilters, CategoryNode, CategoryService
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

router = APIRouter(prefix="/categories", tags=["categories"])
logger = logging.getLogger(__name__)
settings = get_settings()

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


def _conflict(action: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=f"Conflict while {action} category. Please retry.",
    )


def _push_siblings(stack: List[Any], nodes: List[CategoryNode], closer: str) -> None:
    stack.append(closer)
    for position in range(len(nodes) - 1, -1, -1):
        stack.append(nodes[position])
        if position:
            stack.append(",")


def render_tree_json(roots: List[CategoryNode]) -> str:
    """
    Serialize a category forest to a JSON array of CategoryTreeNode objects.

    Each node's own fields go through CategoryResponse; nesting is written
    with an explicit stack so tree depth is bounded only by the data.
    """
    parts: List[str] = ["["]
    stack: List[Any] = []
    _push_siblings(stack, roots, "]")
    while stack:
        item = stack.pop()
        if isinstance(item, str):
            parts.append(item)
            continue
        fields = CategoryResponse.model_validate(item.category).model_dump(mode="json")
        fields["children_count"] = len(item.children)
        parts.append(json.dumps(fields)[:-1] + ',"children":[')
        _push_siblings(stack, item.children, "]}")
    return "".join(parts)


@router.post(
    "",
    response_model=CategoryResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_ERROR_RESPONSES,
)
async def create_category(
    category_data: CategoryCreate,
    owner_id: int = Depends(get_current_owner_id),
    service: CategoryService = Depends(get_category_service),
):
    """Create a category at the root or under an existing parent."""
    try:
        category = await service.create_category(
            owner_id,
            category_data.name,
            category_data.parent_id,
            description=category_data.description,
            color=category_data.color,
            icon=category_data.icon,
        )
    except IntegrityError:
        # Unique index caught a concurrent insert of the same sibling name
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Category with this name already exists at this level",
        )
    except OperationalError:
        raise _conflict("creating")

    return CategoryResponse.model_validate(category)


@router.post(
    "/bulk",
    response_model=BulkCategoryResponse,
    status_code=status.HTTP_201_CREATED,
)
async def bulk_create_categories(
    bulk_data: BulkCategoryCreate,
    owner_id: int = Depends(get_current_owner_id),
    service: CategoryService = Depends(get_category_service),
):
    """
    Create several categories in one request.

    Items are processed in order and independently: one failing item does not
    undo the others. Failures are reported with their index in the request.
    """
    if len(bulk_data.categories) > settings.CATEGORY_BULK_MAX_ITEMS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Too many categories in one request (max {settings.CATEGORY_BULK_MAX_ITEMS})",
        )

    result = await service.bulk_create_categories(
        owner_id, [item.model_dump() for item in bulk_data.categories]
    )

    return BulkCategoryResponse(
        created=[CategoryResponse.model_validate(c) for c in result.created],
        failed=[
            BulkCategoryFailure(
                index=f.index, name=f.name, code=f.code, detail=f.detail
            )
            for f in result.failed
        ],
        requested=result.requested,
        created_count=len(result.created),
        failed_count=len(result.failed),
    )


@router.get("", response_model=PaginatedCategoryResponse)
async def get_categories(
    parent_id: Optional[int] = Query(None, ge=1),
    root_only: bool = Query(False, description="Only categories without a parent"),
    level: Optional[int] = Query(None, ge=0),
    is_active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(
        settings.CATEGORY_PAGE_SIZE, ge=1, le=settings.CATEGORY_MAX_PAGE_SIZE
    ),
    owner_id: int = Depends(get_current_owner_id),
    service: CategoryService = Depends(get_category_service),
):
    """List the current owner's categories ordered by level, then name."""
    filters = CategoryFilters(
        parent_id=parent_id,
        root_only=root_only,
        level=level,
        is_active=is_active,
        search=search,
        page=page,
        limit=limit,
    )
    result = await service.get_user_categories(owner_id, filters)

    return PaginatedCategoryResponse(
        items=[CategoryResponse.model_validate(c) for c in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
    )


@router.get("/tree", response_model=List[CategoryTreeNode])
async def get_category_tree(
    include_inactive: bool = Query(False),
    owner_id: int = Depends(get_current_owner_id),
    service: CategoryService = Depends(get_category_service),
):
    """Nested category tree; soft-deleted categories are left out by default."""
    tree = await service.get_category_tree(owner_id, include_inactive=include_inactive)
    return Response(content=render_tree_json(tree), media_type="application/json")


@router.get("/stats", response_model=CategoryStatsResponse)
async def get_category_stats(
    owner_id: int = Depends(get_current_owner_id),
    service: CategoryService = Depends(get_category_service),
):
    stats = await service.get_category_stats(owner_id)
    return CategoryStatsResponse(
        total_categories=stats.total_categories,
        active_categories=stats.active_categories,
        root_categories=stats.root_categories,
        max_depth=stats.max_depth,
        categories_by_level=stats.categories_by_level,
    )


@router.get(
    "/{category_id}", response_model=CategoryResponse, responses=_ERROR_RESPONSES
)
async def get_category(
    category_id: int,
    owner_id: int = Depends(get_current_owner_id),
    service: CategoryService = Depends(get_category_service),
):
    category = await service.get_category_by_id(category_id, owner_id)
    return CategoryResponse.model_validate(category)


@router.put(
    "/{category_id}", response_model=CategoryResponse, responses=_ERROR_RESPONSES
)
async def update_category(
    category_id: int,
    category_data: CategoryUpdate,
    owner_id: int = Depends(get_current_owner_id),
    service: CategoryService = Depends(get_category_service),
):
    """
    Update a category.

    Only fields present in the body are changed. Renaming or moving a
    category recomputes level and path for its whole subtree.

    OPTIMISTIC LOCKING: send back the ``version`` you read; if the category
    changed in the meantime the update is rejected with 409.
    """
    patch = category_data.model_dump(exclude_unset=True)

    try:
        category = await service.update_category(category_id, owner_id, patch)
    except IntegrityError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Category with this name already exists at this level",
        )
    except (StaleDataError, OperationalError):
        raise _conflict("updating")

    return CategoryResponse.model_validate(category)


@router.delete(
    "/{category_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=_ERROR_RESPONSES,
)
async def delete_category(
    category_id: int,
    owner_id: int = Depends(get_current_owner_id),
    service: CategoryService = Depends(get_category_service),
):
    """Soft-delete a category. It must have no active subcategories."""
    try:
        await service.delete_category(category_id, owner_id)
    except (StaleDataError, OperationalError, IntegrityError):
        raise _conflict("deleting")
