"""
Unit tests for Pydantic schemas
"""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError
from schemas.category import (
    BulkCategoryCreate,
    CategoryCreate,
    CategoryResponse,
    CategoryTreeNode,
    CategoryUpdate,
    PaginatedCategoryResponse,
)
from schemas.validators import (
    normalize_hex_color,
    normalize_optional_text,
    strip_html_tags,
    strip_invisible_edges,
)


def response_data(**overrides):
    now = datetime.now(timezone.utc)
    data = {
        "id": 1,
        "owner_id": 1,
        "name": "Food",
        "description": None,
        "color": "#3B82F6",
        "icon": "folder",
        "parent_id": None,
        "level": 0,
        "path": [],
        "full_path": "Food",
        "is_active": True,
        "is_system": False,
        "deleted_at": None,
        "version": 1,
        "created_at": now,
        "updated_at": now,
    }
    data.update(overrides)
    return data


class TestCategoryCreate:
    """Tests for CategoryCreate"""

    def test_valid(self):
        schema = CategoryCreate(name="Food")
        assert schema.name == "Food"
        assert schema.parent_id is None
        assert schema.color is None

    def test_empty_name_fails(self):
        with pytest.raises(ValidationError):
            CategoryCreate(name="")

    def test_whitespace_name_fails(self):
        with pytest.raises(ValidationError):
            CategoryCreate(name=" \t ")

    def test_name_is_trimmed(self):
        schema = CategoryCreate(name="\u200b  Groceries \ufeff")
        assert schema.name == "Groceries"

    def test_name_max_length(self):
        CategoryCreate(name="x" * 100)
        with pytest.raises(ValidationError):
            CategoryCreate(name="x" * 101)

    def test_unpaired_surrogate_rejected(self):
        with pytest.raises(ValidationError):
            CategoryCreate(name="bad\ud800name")

    def test_description_html_is_stripped(self):
        schema = CategoryCreate(name="Food", description="<b>Meals</b> and snacks")
        assert schema.description == "Meals and snacks"

    def test_blank_description_becomes_none(self):
        schema = CategoryCreate(name="Food", description="   ")
        assert schema.description is None

    def test_description_max_length(self):
        with pytest.raises(ValidationError):
            CategoryCreate(name="Food", description="x" * 501)

    @pytest.mark.parametrize("color", ["#fff", "#FFFFFF", "#3b82f6"])
    def test_valid_colors(self, color):
        assert CategoryCreate(name="Food", color=color).color == color

    @pytest.mark.parametrize("color", ["red", "#ggg", "#12345", "3B82F6"])
    def test_invalid_colors(self, color):
        with pytest.raises(ValidationError):
            CategoryCreate(name="Food", color=color)

    def test_parent_id_must_be_positive(self):
        with pytest.raises(ValidationError):
            CategoryCreate(name="Food", parent_id=0)


class TestCategoryUpdate:
    """Tests for CategoryUpdate"""

    def test_only_set_fields_are_dumped(self):
        schema = CategoryUpdate(name="Nutrition")
        assert schema.model_dump(exclude_unset=True) == {"name": "Nutrition"}

    def test_explicit_null_parent_is_kept(self):
        schema = CategoryUpdate(parent_id=None)
        assert schema.model_dump(exclude_unset=True) == {"parent_id": None}

    def test_explicit_null_name_fails(self):
        with pytest.raises(ValidationError):
            CategoryUpdate(name=None)

    def test_version_must_be_positive(self):
        with pytest.raises(ValidationError):
            CategoryUpdate(version=0)

    def test_is_active_flag(self):
        schema = CategoryUpdate(is_active=False, version=3)
        assert schema.model_dump(exclude_unset=True) == {"is_active": False, "version": 3}


class TestCategoryResponse:
    """Tests for response schemas"""

    def test_structure(self):
        schema = CategoryResponse(**response_data(path=["Home"], full_path="Home > Food"))
        assert schema.path == ["Home"]
        assert schema.full_path == "Home > Food"

    def test_tree_node_children(self):
        child = CategoryTreeNode(**response_data(id=2, name="Groceries", parent_id=1, level=1))
        node = CategoryTreeNode(**response_data(), children=[child], children_count=1)

        assert node.children[0].name == "Groceries"
        assert node.children_count == 1

    def test_tree_node_defaults(self):
        node = CategoryTreeNode(**response_data())
        assert node.children == []
        assert node.children_count == 0

    def test_paginated_response(self):
        page = PaginatedCategoryResponse(
            items=[CategoryResponse(**response_data())],
            total=1,
            page=1,
            limit=20,
            total_pages=1,
        )
        assert page.items[0].name == "Food"


class TestBulkCategoryCreate:
    def test_requires_at_least_one_item(self):
        with pytest.raises(ValidationError):
            BulkCategoryCreate(categories=[])

    def test_items_are_validated(self):
        with pytest.raises(ValidationError):
            BulkCategoryCreate(categories=[{"name": "Ok"}, {"name": ""}])


class TestValidators:
    def test_strip_html_tags(self):
        assert strip_html_tags("<i>a</i>b") == "ab"

    def test_strip_invisible_edges_keeps_inner_text(self):
        assert strip_invisible_edges("\u200b a b \u200b") == "a b"

    def test_normalize_optional_text_none(self):
        assert normalize_optional_text(None) is None

    def test_normalize_hex_color_blank(self):
        assert normalize_hex_color("  ") is None
