"""
Category tree service.

Maintains the per-owner forest of spending/income categories:
- Creating categories at the root or under an existing parent
- Renaming and reparenting, with cascading level/path recomputation
- Soft deletion that keeps the node in place
- Filtered listings, nested tree assembly and statistics

Every category stores its depth (``level``) and the names of its ancestors
(``path``). Those denormalized values are recomputed here on every structural
write; nothing else in the codebase writes them.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from models.category import (
    DEFAULT_CATEGORY_COLOR,
    DEFAULT_CATEGORY_ICON,
    Category,
    utcnow,
)
from schemas.validators import strip_invisible_edges
from services.category_errors import (
    CategoryAccessDeniedError,
    CategoryError,
    CategoryHasActiveChildrenError,
    CategoryNotFoundError,
    CategoryVersionConflictError,
    CircularReferenceError,
    DuplicateCategoryNameError,
    InvalidCategoryNameError,
    ParentCategoryNotFoundError,
    SystemCategoryImmutableError,
)
from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20

# Fields a client may patch directly; name/parent_id/is_active need rule checks
_PLAIN_FIELDS = ("description", "color", "icon")
_FIELD_DEFAULTS = {"color": DEFAULT_CATEGORY_COLOR, "icon": DEFAULT_CATEGORY_ICON}
_BULK_ITEM_FIELDS = ("name", "parent_id", "description", "color", "icon")


@dataclass
class CategoryFilters:
    """Filters for listing an owner's categories.

    ``root_only`` selects categories without a parent and takes precedence
    over ``parent_id``.
    """

    parent_id: Optional[int] = None
    root_only: bool = False
    level: Optional[int] = None
    is_active: Optional[bool] = None
    search: Optional[str] = None
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE


@dataclass
class CategoryPage:
    items: List[Category]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


@dataclass(eq=False)
class CategoryNode:
    """A category with its children attached, as returned by the tree view."""

    category: Category
    children: List["CategoryNode"] = field(default_factory=list)


@dataclass
class BulkFailure:
    index: int
    name: Optional[str]
    code: str
    detail: str


@dataclass
class BulkCreateResult:
    requested: int
    created: List[Category] = field(default_factory=list)
    failed: List[BulkFailure] = field(default_factory=list)


@dataclass
class CategoryStats:
    total_categories: int
    active_categories: int
    root_categories: int
    max_depth: int
    categories_by_level: Dict[int, int]


def escape_like_pattern(pattern: str) -> str:
    """
    Escape special characters for SQL LIKE patterns.

    SQL LIKE uses % (any sequence), _ (any single char), and \\ (escape).
    These must be escaped to be treated as literals in search queries.
    """
    # Escape backslash first (since it's the escape character)
    pattern = pattern.replace("\\", "\\\\")
    pattern = pattern.replace("%", "\\%")
    pattern = pattern.replace("_", "\\_")
    return pattern


def would_create_cycle(
    category_id: int,
    new_parent_id: int,
    parent_of: Dict[int, Optional[int]],
) -> bool:
    """
    Check whether placing ``category_id`` under ``new_parent_id`` closes a loop.

    Walks the ancestor chain of the new parent (the parent itself included).
    The walk is bounded by the number of known categories, so a chain that is
    already corrupt is reported as a cycle instead of spinning forever.
    """
    current: Optional[int] = new_parent_id
    max_steps = len(parent_of) + 1
    steps = 0
    while current is not None:
        if current == category_id:
            return True
        steps += 1
        if steps > max_steps:
            return True
        current = parent_of.get(current)
    return False


def index_children(categories: Iterable[Category]) -> Dict[int, List[Category]]:
    """Map parent id -> direct children."""
    children_of: Dict[int, List[Category]] = {}
    for category in categories:
        if category.parent_id is not None:
            children_of.setdefault(category.parent_id, []).append(category)
    return children_of


def cascade_ancestry(
    root: Category,
    children_of: Dict[int, List[Category]],
) -> List[Category]:
    """
    Recompute ``level`` and ``path`` for every descendant of ``root``.

    Depth-first over an explicit stack; each descendant is derived from its
    (already updated) parent and visited exactly once. Returns the
    descendants in visit order.
    """
    visited: Set[int] = {root.id}
    updated: List[Category] = []
    stack = [root]
    while stack:
        parent = stack.pop()
        child_path = [*(parent.path or []), parent.name]
        for child in children_of.get(parent.id, []):
            if child.id in visited:
                continue
            visited.add(child.id)
            child.level = parent.level + 1
            child.path = list(child_path)
            updated.append(child)
            stack.append(child)
    return updated


def _collect_reachable(roots: Iterable[CategoryNode], seen: Set[int]) -> None:
    stack = list(roots)
    while stack:
        node = stack.pop()
        if node.category.id in seen:
            continue
        seen.add(node.category.id)
        stack.extend(node.children)


def build_category_tree(categories: Iterable[Category]) -> List[CategoryNode]:
    """
    Assemble categories into nested nodes.

    One pass builds the id -> node map, a second links each node to its
    parent. The forest is rooted at categories without a parent. A node whose
    parent is not in the given set (for example a soft-deleted parent in the
    active-only view) is left out together with its subtree. Nodes stuck in a
    parent loop are unreachable from any root; they are detached from their
    parent and promoted so the result is always a finite forest.
    """
    nodes: Dict[int, CategoryNode] = {c.id: CategoryNode(c) for c in categories}
    roots: List[CategoryNode] = []
    detached: List[CategoryNode] = []

    for node in nodes.values():
        parent_id = node.category.parent_id
        if parent_id is None or parent_id == node.category.id:
            roots.append(node)
        elif parent_id not in nodes:
            detached.append(node)
        else:
            nodes[parent_id].children.append(node)

    reachable: Set[int] = set()
    _collect_reachable(roots, reachable)
    _collect_reachable(detached, reachable)
    if len(reachable) < len(nodes):
        for category_id in sorted(nodes):
            if category_id in reachable:
                continue
            node = nodes[category_id]
            logger.warning(
                f"Category {category_id} is part of a parent loop; "
                f"listing it at the top level of the tree"
            )
            nodes[node.category.parent_id].children.remove(node)
            roots.append(node)
            _collect_reachable([node], reachable)

    def sort_key(n: CategoryNode):
        return (n.category.level, n.category.name, n.category.id)

    roots.sort(key=sort_key)
    stack = list(roots)
    while stack:
        node = stack.pop()
        node.children.sort(key=sort_key)
        stack.extend(node.children)
    return roots


class CategoryService:
    """Service enforcing the category tree invariants for one session.

    Public mutations commit on success. On a persistence failure the session
    is rolled back and the SQLAlchemy exception is re-raised unchanged.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # ----------------------------------------------------------------- reads

    async def get_category_by_id(self, category_id: int, owner_id: int) -> Category:
        """Load a category and check that ``owner_id`` owns it."""
        category = await self.db.get(Category, category_id)
        if category is None:
            raise CategoryNotFoundError(category_id=category_id)
        if category.owner_id != owner_id:
            raise CategoryAccessDeniedError(category_id=category_id)
        return category

    async def get_user_categories(
        self,
        owner_id: int,
        filters: Optional[CategoryFilters] = None,
    ) -> CategoryPage:
        """
        List an owner's categories, sorted by (level, name).

        That ordering keeps every category after all shallower ones, so the
        page can be rendered as an indented list without re-sorting.
        """
        filters = filters or CategoryFilters()
        page = max(filters.page, 1)
        limit = max(filters.limit, 1)

        conditions = [Category.owner_id == owner_id]
        if filters.root_only:
            conditions.append(Category.parent_id.is_(None))
        elif filters.parent_id is not None:
            conditions.append(Category.parent_id == filters.parent_id)
        if filters.level is not None:
            conditions.append(Category.level == filters.level)
        if filters.is_active is not None:
            conditions.append(Category.is_active.is_(filters.is_active))

        search = (filters.search or "").strip()
        if search:
            pattern = f"%{escape_like_pattern(search)}%"
            conditions.append(
                or_(
                    Category.name.ilike(pattern, escape="\\"),
                    Category.description.ilike(pattern, escape="\\"),
                )
            )

        base_query = select(Category).where(*conditions)

        count_query = select(func.count()).select_from(base_query.subquery())
        total = (await self.db.execute(count_query)).scalar_one()

        query = (
            base_query.order_by(
                Category.level.asc(), Category.name.asc(), Category.id.asc()
            )
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await self.db.execute(query)
        items = list(result.scalars().all())

        logger.debug(
            f"Listed {len(items)} of {total} categories for owner {owner_id} "
            f"(page {page}, limit {limit})"
        )
        return CategoryPage(items=items, total=total, page=page, limit=limit)

    async def get_category_tree(
        self,
        owner_id: int,
        include_inactive: bool = False,
    ) -> List[CategoryNode]:
        """Return the owner's categories as nested nodes (active only by default)."""
        query = select(Category).where(Category.owner_id == owner_id)
        if not include_inactive:
            query = query.where(Category.is_active.is_(True))
        result = await self.db.execute(query)
        tree = build_category_tree(result.scalars().all())
        logger.debug(f"Built category tree for owner {owner_id}: {len(tree)} top-level nodes")
        return tree

    async def get_category_stats(self, owner_id: int) -> CategoryStats:
        owned = Category.owner_id == owner_id

        rows = await self.db.execute(
            select(Category.level, func.count(Category.id))
            .where(owned)
            .group_by(Category.level)
            .order_by(Category.level)
        )
        by_level = {level: count for level, count in rows.all()}

        active = (
            await self.db.execute(
                select(func.count(Category.id)).where(owned, Category.is_active.is_(True))
            )
        ).scalar_one()
        roots = (
            await self.db.execute(
                select(func.count(Category.id)).where(owned, Category.parent_id.is_(None))
            )
        ).scalar_one()

        return CategoryStats(
            total_categories=sum(by_level.values()),
            active_categories=active,
            root_categories=roots,
            max_depth=max(by_level) if by_level else 0,
            categories_by_level=by_level,
        )

    # ------------------------------------------------------------- mutations

    async def create_category(
        self,
        owner_id: int,
        name: str,
        parent_id: Optional[int] = None,
        *,
        description: Optional[str] = None,
        color: Optional[str] = None,
        icon: Optional[str] = None,
        is_system: bool = False,
    ) -> Category:
        """
        Create a category at the root or under ``parent_id``.

        Raises:
            ParentCategoryNotFoundError: parent missing or owned by someone else
            DuplicateCategoryNameError: a sibling already uses ``name``
            InvalidCategoryNameError: ``name`` is blank once trimmed
        """
        name = strip_invisible_edges(name) if isinstance(name, str) else ""
        if not name:
            raise InvalidCategoryNameError()

        level = 0
        path: List[str] = []
        if parent_id is not None:
            parent = await self._resolve_parent(parent_id, owner_id)
            level = parent.level + 1
            path = [*(parent.path or []), parent.name]

        await self._ensure_unique_name(owner_id, parent_id, name)

        category = Category(
            owner_id=owner_id,
            name=name,
            description=description,
            color=color or DEFAULT_CATEGORY_COLOR,
            icon=icon or DEFAULT_CATEGORY_ICON,
            parent_id=parent_id,
            level=level,
            path=path,
            is_active=True,
            is_system=is_system,
        )
        self.db.add(category)
        try:
            await self.db.flush()
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to create category '{name}' for owner {owner_id}: {e}")
            raise

        logger.info(
            f"Created category {category.id} '{name}' for owner {owner_id} "
            f"(parent={parent_id}, level={level})"
        )
        return category

    async def update_category(
        self,
        category_id: int,
        owner_id: int,
        patch: Dict[str, Any],
    ) -> Category:
        """
        Apply a partial update.

        ``patch`` holds only the fields the caller set. A ``parent_id`` of
        None moves the category to the root. A rename or reparent recomputes
        level/path for the whole subtree; the target row is flushed before its
        descendants and everything commits together.

        Raises:
            CategoryNotFoundError, CategoryAccessDeniedError,
            CategoryVersionConflictError, SystemCategoryImmutableError,
            ParentCategoryNotFoundError, CircularReferenceError,
            DuplicateCategoryNameError, CategoryHasActiveChildrenError
        """
        patch = dict(patch)
        category = await self.get_category_by_id(category_id, owner_id)

        expected_version = patch.pop("version", None)
        if expected_version is not None and expected_version != category.version:
            raise CategoryVersionConflictError(
                f"Category has been modified by another request. "
                f"Your version: {expected_version}, current version: {category.version}.",
                category_id=category_id,
            )

        new_name = category.name
        if patch.get("name") is not None:
            raw_name = patch["name"]
            new_name = strip_invisible_edges(raw_name) if isinstance(raw_name, str) else ""
            if not new_name:
                raise InvalidCategoryNameError()
        name_changed = new_name != category.name

        parent_changed = "parent_id" in patch and patch["parent_id"] != category.parent_id
        new_parent_id = patch["parent_id"] if parent_changed else category.parent_id

        activating = patch.get("is_active") is True and not category.is_active
        deactivating = patch.get("is_active") is False and category.is_active

        if category.is_system and (name_changed or parent_changed or deactivating):
            raise SystemCategoryImmutableError(category_id=category_id)

        owner_categories: List[Category] = []
        if name_changed or parent_changed:
            owner_categories = await self._load_owner_categories(owner_id)

        new_parent: Optional[Category] = None
        if parent_changed and new_parent_id is not None:
            new_parent = await self._resolve_parent(new_parent_id, owner_id)
            parent_of = {c.id: c.parent_id for c in owner_categories}
            if would_create_cycle(category.id, new_parent.id, parent_of):
                logger.warning(
                    f"Rejected moving category {category_id} under {new_parent_id}: cycle"
                )
                raise CircularReferenceError(category_id=category_id)

        if name_changed or parent_changed:
            await self._ensure_unique_name(
                owner_id, new_parent_id, new_name, exclude_id=category.id
            )

        if deactivating:
            await self._ensure_no_active_children(category.id)

        try:
            for field_name in _PLAIN_FIELDS:
                if field_name in patch:
                    value = patch[field_name]
                    if value is None:
                        value = _FIELD_DEFAULTS.get(field_name)
                    setattr(category, field_name, value)

            if name_changed:
                category.name = new_name

            if parent_changed:
                category.parent_id = new_parent_id
                if new_parent is None:
                    category.level = 0
                    category.path = []
                else:
                    category.level = new_parent.level + 1
                    category.path = [*(new_parent.path or []), new_parent.name]

            if deactivating:
                category.is_active = False
                category.deleted_at = utcnow()
            elif activating:
                category.is_active = True
                category.deleted_at = None

            await self.db.flush()

            descendants: List[Category] = []
            if name_changed or parent_changed:
                descendants = cascade_ancestry(category, index_children(owner_categories))
                if descendants:
                    await self.db.flush()

            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to update category {category_id} for owner {owner_id}: {e}")
            raise

        logger.info(
            f"Updated category {category_id} for owner {owner_id} "
            f"(name='{category.name}', level={category.level}, "
            f"descendants recomputed={len(descendants)})"
        )
        return category

    async def delete_category(self, category_id: int, owner_id: int) -> None:
        """
        Soft-delete a category.

        The row stays in place (children keep pointing at it); it is only
        flagged inactive. Deleting an already inactive category is a no-op.
        """
        category = await self.get_category_by_id(category_id, owner_id)

        if category.is_system:
            raise SystemCategoryImmutableError(
                "System categories cannot be deleted", category_id=category_id
            )

        await self._ensure_no_active_children(category.id)

        if not category.is_active:
            return

        category.is_active = False
        category.deleted_at = utcnow()
        try:
            await self.db.flush()
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to delete category {category_id} for owner {owner_id}: {e}")
            raise

        logger.info(f"Soft-deleted category {category_id} for owner {owner_id}")

    async def bulk_create_categories(
        self,
        owner_id: int,
        items: List[Dict[str, Any]],
    ) -> BulkCreateResult:
        """
        Create each item independently.

        A failing item is recorded with its index and the loop moves on;
        items that succeeded stay committed.
        """
        result = BulkCreateResult(requested=len(items))
        had_persistence_failure = False

        for index, item in enumerate(items):
            kwargs = {k: item[k] for k in _BULK_ITEM_FIELDS if k in item}
            kwargs.setdefault("name", None)
            try:
                category = await self.create_category(owner_id, **kwargs)
            except CategoryError as e:
                logger.warning(f"Bulk create item {index} for owner {owner_id} failed: {e.message}")
                result.failed.append(
                    BulkFailure(index=index, name=item.get("name"), code=e.code, detail=e.message)
                )
                continue
            except SQLAlchemyError as e:
                had_persistence_failure = True
                logger.warning(f"Bulk create item {index} for owner {owner_id} failed: {e}")
                result.failed.append(
                    BulkFailure(
                        index=index,
                        name=item.get("name"),
                        code="PERSISTENCE_ERROR",
                        detail="Could not save category. Please retry.",
                    )
                )
                continue
            result.created.append(category)

        # A rollback expires every loaded instance, including committed ones.
        if had_persistence_failure:
            for category in result.created:
                await self.db.refresh(category)

        logger.info(
            f"Bulk category creation for owner {owner_id}: "
            f"requested={result.requested}, created={len(result.created)}, "
            f"failed={len(result.failed)}"
        )
        return result

    # --------------------------------------------------------------- helpers

    async def _resolve_parent(self, parent_id: int, owner_id: int) -> Category:
        parent = await self.db.get(Category, parent_id)
        if parent is None or parent.owner_id != owner_id:
            raise ParentCategoryNotFoundError(category_id=parent_id)
        return parent

    async def _ensure_unique_name(
        self,
        owner_id: int,
        parent_id: Optional[int],
        name: str,
        exclude_id: Optional[int] = None,
    ) -> None:
        """Reject ``name`` if a sibling under ``parent_id`` already has it (exact match)."""
        stmt = select(Category.id).where(
            Category.owner_id == owner_id, Category.name == name
        )
        if parent_id is None:
            stmt = stmt.where(Category.parent_id.is_(None))
        else:
            stmt = stmt.where(Category.parent_id == parent_id)
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)

        existing = (await self.db.execute(stmt.limit(1))).scalar_one_or_none()
        if existing is not None:
            raise DuplicateCategoryNameError(category_id=existing)

    async def _ensure_no_active_children(self, category_id: int) -> None:
        stmt = (
            select(Category.id)
            .where(Category.parent_id == category_id, Category.is_active.is_(True))
            .limit(1)
        )
        if (await self.db.execute(stmt)).scalar_one_or_none() is not None:
            raise CategoryHasActiveChildrenError(category_id=category_id)

    async def _load_owner_categories(self, owner_id: int) -> List[Category]:
        result = await self.db.execute(
            select(Category).where(Category.owner_id == owner_id)
        )
        return list(result.scalars().all())
