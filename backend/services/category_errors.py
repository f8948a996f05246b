"""Domain errors raised by the category service.

Each error carries a stable machine-readable ``code`` and the HTTP status the
API layer answers with. Persistence failures are not wrapped: SQLAlchemy
exceptions propagate to the caller unchanged.
"""

from typing import Optional


class CategoryError(Exception):
    """Base class for category rule violations."""

    code = "CATEGORY_ERROR"
    status_code = 400
    default_message = "Category operation failed"

    def __init__(self, message: Optional[str] = None, *, category_id: Optional[int] = None):
        self.message = message or self.default_message
        self.category_id = category_id
        super().__init__(self.message)


class CategoryNotFoundError(CategoryError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Category not found"


class CategoryAccessDeniedError(CategoryError):
    code = "ACCESS_DENIED"
    status_code = 403
    default_message = "Access denied"


class ParentCategoryNotFoundError(CategoryError):
    code = "PARENT_NOT_FOUND"
    status_code = 404
    default_message = "Parent category not found or access denied"


class DuplicateCategoryNameError(CategoryError):
    code = "DUPLICATE_NAME"
    status_code = 409
    default_message = "Category with this name already exists at this level"


class CircularReferenceError(CategoryError):
    code = "CIRCULAR_REFERENCE"
    status_code = 400
    default_message = "Cannot set parent: would create circular reference"


class SystemCategoryImmutableError(CategoryError):
    code = "SYSTEM_CATEGORY_IMMUTABLE"
    status_code = 403
    default_message = "System categories cannot be modified"


class CategoryHasActiveChildrenError(CategoryError):
    code = "HAS_ACTIVE_CHILDREN"
    status_code = 400
    default_message = (
        "Cannot delete category with subcategories. Please delete subcategories first."
    )


class CategoryVersionConflictError(CategoryError):
    code = "VERSION_CONFLICT"
    status_code = 409
    default_message = "Category has been modified by another request. Please refresh and try again."


class InvalidCategoryNameError(CategoryError):
    code = "INVALID_NAME"
    status_code = 400
    default_message = "Category name cannot be blank"
