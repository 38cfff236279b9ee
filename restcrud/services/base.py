"""Generic CRUD service.

Services own persistence and business rules for one root entity type. The
REST controller only talks to the operations defined here, so concrete
services customise behaviour by setting the class attributes below or by
overriding the hooks (`validate`, `verify`, `handle_uploads`,
`verify_removal`, the permission checks).
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
import logging
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError
from redis.exceptions import RedisError
from sqlalchemy import Select, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from restcrud.services.dto import RequestDto
from restcrud.services.exceptions import EntityError, EntityValidationError, UniqueError
from restcrud.settings import Settings, get_settings
from restcrud.stores.redis import (
    get_autocomplete_cache,
    invalidate_autocomplete_cache,
    set_autocomplete_cache,
)

logger = logging.getLogger("uvicorn.error")

ModelType = TypeVar("ModelType")

# SQLSTATE for unique_violation (PostgreSQL).
UNIQUE_VIOLATION = "23505"

_TRUE_STRINGS = {"1", "true", "yes", "on", "y", "t"}
_FALSE_STRINGS = {"0", "false", "no", "off", "n", "f", ""}


@dataclass
class Page:
    """One window of a paginated query plus the total row count."""

    count: int
    items: list[Any] = field(default_factory=list)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


def _sqlstate(exc: IntegrityError) -> str | None:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def is_unique_violation(exc: IntegrityError) -> bool:
    state = _sqlstate(exc)
    if state is not None:
        return state == UNIQUE_VIOLATION
    # Drivers without SQLSTATE (e.g. sqlite) only tell us through the message.
    return "unique" in str(exc.orig).lower()


class CrudService(Generic[ModelType]):
    """CRUD operations for one mapped model, bound to one session."""

    model: type[ModelType] | None = None
    # Optional pydantic schema used to validate/coerce incoming data on save.
    schema: type[BaseModel] | None = None
    # Namespace for cache keys; defaults to the model's table name.
    resource_name: str | None = None

    id_field: str = "id"
    writable_fields: tuple[str, ...] = ()
    filter_fields: tuple[str, ...] = ()
    search_fields: tuple[str, ...] = ()
    # Column names; a leading "-" sorts descending.
    order_by: tuple[str, ...] = ("id",)
    autocomplete_field: str | None = None

    def __init__(
        self,
        session: AsyncSession,
        *,
        user: Any = None,
        settings: Settings | None = None,
    ) -> None:
        self.session = session
        self.user = user
        self.settings = settings or get_settings()
        self.root_entity: ModelType | None = None

    # ------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------

    def _require_model(self) -> type[ModelType]:
        if self.model is None:
            raise RuntimeError(f"{type(self).__name__}.model must be set")
        return self.model

    def _column(self, name: str) -> Any:
        model = self._require_model()
        try:
            return getattr(model, name)
        except AttributeError:
            raise RuntimeError(f"{model.__name__} has no attribute {name!r}") from None

    def get_resource_name(self) -> str:
        if self.resource_name:
            return self.resource_name
        model = self._require_model()
        return str(getattr(model, "__tablename__", model.__name__.lower()))

    def coerce_value(self, name: str, value: Any) -> Any:
        """Convert a raw parameter (usually a string) to the column's Python type."""
        if value is None:
            return None
        try:
            python_type = self._column(name).type.python_type
        except (AttributeError, NotImplementedError):
            return value

        if python_type is bool:
            if isinstance(value, bool):
                return value
            text = str(value).strip().lower()
            if text in _TRUE_STRINGS:
                return True
            if text in _FALSE_STRINGS:
                return False
            raise EntityValidationError(f"Invalid value for {name}", {name: "expected a boolean"})

        if isinstance(value, python_type):
            return value
        try:
            if python_type in (datetime, date):
                return python_type.fromisoformat(str(value))
            return python_type(value)
        except (TypeError, ValueError):
            raise EntityValidationError(
                f"Invalid value for {name}",
                {name: f"expected {python_type.__name__}"},
            ) from None

    def entity_to_dict(self, entity: Any) -> dict[str, Any]:
        if hasattr(entity, "to_dict"):
            return entity.to_dict()
        if isinstance(entity, Mapping):
            return dict(entity)
        raise TypeError(f"Cannot convert {type(entity).__name__} to dict")

    # ------------------------------------------------------------
    # Read
    # ------------------------------------------------------------

    async def find(self, entity_id: Any) -> ModelType | None:
        if entity_id is None or entity_id == "":
            return None
        model = self._require_model()
        return await self.session.get(model, self.coerce_value(self.id_field, entity_id))

    async def get_root_entity_data(self, entity_id: Any) -> dict[str, Any] | None:
        """Data of one entity for edit screens, or None when it doesn't exist."""
        entity = await self.find(entity_id)
        if entity is None:
            return None
        return self.entity_to_dict(entity)

    def search_query(self, dto: RequestDto) -> Select:
        """Build the grid query from the request parameters.

        - `filter_fields` present in the DTO become equality filters
        - `q` matches any of `search_fields` (case-insensitive substring)
        - rows are ordered by `order_by`
        """
        model = self._require_model()
        stmt = select(model)

        for name in self.filter_fields:
            value = dto.get(name)
            if value is None or value == "":
                continue
            stmt = stmt.where(self._column(name) == self.coerce_value(name, value))

        term = str(dto.get("q") or "").strip()
        if term and self.search_fields:
            stmt = stmt.where(
                or_(*[self._column(name).icontains(term, autoescape=True) for name in self.search_fields])
            )

        for name in self.order_by:
            if name.startswith("-"):
                stmt = stmt.order_by(self._column(name[1:]).desc())
            else:
                stmt = stmt.order_by(self._column(name).asc())
        return stmt

    async def paginate(
        self,
        query: Select,
        offset: int,
        limit: int,
        *,
        as_mappings: bool = False,
    ) -> Page:
        """Count all rows of `query` and fetch the [offset, offset + limit) window.

        Single-entity rows come back as ORM objects, or as dicts when
        `as_mappings` is set. Multi-column rows always come back as dicts.
        """
        count_stmt = select(func.count()).select_from(query.order_by(None).subquery())
        count = (await self.session.execute(count_stmt)).scalar_one()

        result = await self.session.execute(query.offset(offset).limit(limit))
        items: list[Any] = []
        for row in result.all():
            if len(row) == 1:
                item = row[0]
                items.append(self.entity_to_dict(item) if as_mappings else item)
            else:
                items.append(dict(row._mapping))
        return Page(count=int(count), items=items)

    # ------------------------------------------------------------
    # Permissions (override per entity; default allows everything)
    # ------------------------------------------------------------

    async def check_user_edit_permission(self, item: Any) -> bool:
        return True

    async def check_user_view_permission(self, item: Any) -> bool:
        return True

    async def check_user_delete_permission(self, item: Any) -> bool:
        return True

    # ------------------------------------------------------------
    # Write
    # ------------------------------------------------------------

    def new_entity(self) -> ModelType:
        return self._require_model()()

    def extract_data(self, dto: RequestDto) -> dict[str, Any]:
        """Writable fields from the request (query string first, like `RequestDto.get`)."""
        merged = dto.all()
        return {name: merged[name] for name in self.writable_fields if name in merged}

    async def validate(self, data: dict[str, Any], entity: ModelType) -> dict[str, Any]:
        """Validate and coerce `data`; return the cleaned values.

        With a `schema`, updates are validated against the current values
        overlaid with the incoming ones so partial payloads pass.
        """
        if self.schema is None:
            return {name: self.coerce_value(name, value) for name, value in data.items()}

        current: dict[str, Any] = {}
        if getattr(entity, self.id_field, None) is not None:
            current = {name: getattr(entity, name, None) for name in self.writable_fields}
        try:
            parsed = self.schema.model_validate({**current, **data})
        except ValidationError as e:
            errors = {".".join(str(p) for p in err["loc"]): err["msg"] for err in e.errors()}
            raise EntityValidationError("Invalid data", errors) from None
        return parsed.model_dump(include=set(self.writable_fields))

    async def verify(self, entity: ModelType, data: dict[str, Any]) -> None:
        """Business rule checks before writing; raise VerificationError to refuse."""

    async def handle_uploads(self, entity: ModelType, dto: RequestDto) -> None:
        """Process uploaded files; raise HandleUploadsError on failure."""

    def populate(self, entity: ModelType, data: dict[str, Any]) -> None:
        for name, value in data.items():
            setattr(entity, name, value)

    async def save(self, dto: RequestDto) -> ModelType:
        """Create or update the root entity from the request.

        An `id` parameter selects the entity to update; without one a new
        entity is created.

        Raises:
            EntityError: `id` given but no such entity, or a constraint failed.
            EntityValidationError: invalid data.
            VerificationError: a business rule refused the write.
            HandleUploadsError: uploads could not be processed.
            UniqueError: the write would duplicate an existing record.
        """
        model = self._require_model()
        entity_id = dto.get(self.id_field)
        is_new = entity_id is None or entity_id == ""

        if is_new:
            entity = self.new_entity()
        else:
            found = await self.find(entity_id)
            if found is None:
                raise EntityError(f"{model.__name__} {entity_id} not found")
            entity = found

        data = await self.validate(self.extract_data(dto), entity)
        await self.verify(entity, data)
        self.populate(entity, data)
        await self.handle_uploads(entity, dto)

        if is_new:
            self.session.add(entity)
        try:
            await self.session.flush()
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            if is_unique_violation(e):
                raise UniqueError(f"{model.__name__} already exists") from e
            raise EntityError(f"{model.__name__} could not be saved: constraint violation") from e

        self.root_entity = entity
        logger.info(f"[crud] saved {model.__name__} id={self.get_root_entity_id()} new={is_new}")
        await self._invalidate_autocomplete()
        return entity

    def get_root_entity_id(self) -> Any:
        if self.root_entity is None:
            return None
        return getattr(self.root_entity, self.id_field, None)

    async def verify_removal(self, entity: ModelType) -> None:
        """Business rule checks before deleting; raise VerificationError to refuse."""

    async def remove_entity(self, entity_id: Any) -> bool:
        """Delete one entity. Returns False when there is nothing to delete."""
        entity = await self.find(entity_id)
        if entity is None:
            return False

        await self.verify_removal(entity)
        await self.session.delete(entity)
        await self.session.commit()

        logger.info(f"[crud] removed {type(entity).__name__} id={entity_id}")
        await self._invalidate_autocomplete()
        return True

    # ------------------------------------------------------------
    # Autocomplete
    # ------------------------------------------------------------

    def autocomplete_row(self, entity: Any) -> dict[str, Any]:
        return {
            "id": getattr(entity, self.id_field, None),
            "name": getattr(entity, self.autocomplete_field or "", None),
        }

    async def get_all_obj_search_data(self, dto: RequestDto) -> list[dict[str, Any]]:
        """Rows matching the `term` (or `q`) parameter, for autocomplete widgets."""
        if self.autocomplete_field is None:
            raise RuntimeError(f"{type(self).__name__}.autocomplete_field must be set")

        term = str(dto.get("term") or dto.get("q") or "").strip()
        ttl = self.settings.autocomplete_cache_ttl
        resource = self.get_resource_name()

        if ttl > 0:
            try:
                cached = await get_autocomplete_cache(resource, term)
            except (RuntimeError, RedisError, ValueError) as e:
                logger.warning(f"[crud] autocomplete cache read skipped for {resource}: {e}")
                cached = None
            if cached is not None:
                return cached

        column = self._column(self.autocomplete_field)
        stmt = select(self._require_model())
        if term:
            stmt = stmt.where(column.icontains(term, autoescape=True))
        stmt = stmt.order_by(column.asc()).limit(self.settings.autocomplete_limit)

        result = await self.session.execute(stmt)
        rows = [self.autocomplete_row(entity) for entity in result.scalars().all()]

        if ttl > 0:
            try:
                await set_autocomplete_cache(resource, term, rows, ttl)
            except (RuntimeError, RedisError) as e:
                logger.warning(f"[crud] autocomplete cache skipped for {resource}: {e}")
        return rows

    async def _invalidate_autocomplete(self) -> None:
        if self.settings.autocomplete_cache_ttl <= 0:
            return
        try:
            await invalidate_autocomplete_cache(self.get_resource_name())
        except (RuntimeError, RedisError) as e:
            logger.warning(f"[crud] autocomplete cache invalidation skipped: {e}")
