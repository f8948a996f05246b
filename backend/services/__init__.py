from .categories import CategoryService
from .category_errors import CategoryError

__all__ = ["CategoryService", "CategoryError"]
