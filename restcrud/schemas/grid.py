"""Schemas for CRUD grid and autocomplete responses."""

from typing import Any

from pydantic import BaseModel, Field


class UserAccessLevels(BaseModel):
    """Per-row permissions for client-side action buttons."""

    edit: bool
    view: bool
    delete: bool = Field(alias="del")

    model_config = {"populate_by_name": True}


class GridData(BaseModel):
    """Paginated search response for data grids."""

    count: int = Field(ge=0)
    items_per_page: int = Field(alias="itemsPerPage", ge=1)
    page: int = Field(ge=1)
    page_count: int = Field(alias="pageCount", ge=0)
    items: list[Any] = Field(default_factory=list)

    model_config = {"populate_by_name": True}
