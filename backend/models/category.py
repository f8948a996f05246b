from datetime import datetime, timezone

from db.database import Base
from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import expression, func

DEFAULT_CATEGORY_COLOR = "#3B82F6"
DEFAULT_CATEGORY_ICON = "folder"
PATH_SEPARATOR = " > "


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    # Owner identity comes from the auth service; there is no local users table.
    owner_id = Column(Integer, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    color = Column(String(7), nullable=False, default=DEFAULT_CATEGORY_COLOR)
    icon = Column(String(50), nullable=False, default=DEFAULT_CATEGORY_ICON)
    parent_id = Column(Integer, ForeignKey("categories.id"), nullable=True, index=True)

    # Denormalized ancestry, kept in sync by services.categories
    level = Column(Integer, nullable=False, default=0, server_default="0")
    path = Column(JSON, nullable=False, default=list)

    is_active = Column(
        Boolean, nullable=False, default=True, server_default=expression.true()
    )
    is_system = Column(
        Boolean, nullable=False, default=False, server_default=expression.false()
    )
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Optimistic locking: incremented on each UPDATE
    version = Column(Integer, nullable=False, default=1, server_default="1")
    # Timestamps are generated client-side so flushed rows never hold expired
    # attributes (lazy loads are not allowed on AsyncSession).
    created_at = Column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint(
            "owner_id", "parent_id", "name", name="uq_category_owner_parent_name"
        ),
        Index("ix_categories_owner_level", "owner_id", "level"),
        CheckConstraint("level >= 0", name="ck_category_level_non_negative"),
    )

    # Every UPDATE is a compare-and-swap on (id, version); a lost race raises
    # StaleDataError at flush time.
    __mapper_args__ = {
        "version_id_col": version,
        "version_id_generator": lambda v: (v or 0) + 1,
    }

    @property
    def full_path(self) -> str:
        """Breadcrumb from the root down to and including this category."""
        return PATH_SEPARATOR.join([*(self.path or []), self.name])

    def __repr__(self):
        return f"<Category(id={self.id}, name='{self.name}', level={self.level})>"
