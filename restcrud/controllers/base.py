"""Standard REST controller for CRUDs.

Usage:
- Subclass, set `service_class` and mount `build_router()` under a prefix.
- Route only the actions you use. Leave "delete" out of `actions` for
  resources that must never be removed, so the endpoint doesn't exist.
- The generic behaviour won't fit every screen: override any method.
  Override `get_user_access_levels` to expose more row actions to grids.

A controller instance lives for one request; it holds the service (bound to
the request's DB session) and the request DTO.
"""

from __future__ import annotations

from collections.abc import Iterable
import inspect
import logging
from typing import Any, ClassVar

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from restcrud.schemas.grid import GridData, UserAccessLevels
from restcrud.services.base import CrudService, Page
from restcrud.services.dto import RequestDto
from restcrud.services.exceptions import SAVE_ERRORS, EntityValidationError, ServiceError
from restcrud.services.pagination import page_count, resolve_page_window
from restcrud.settings import Settings, get_settings
from restcrud.stores.postgres import session_dependency

logger = logging.getLogger("uvicorn.error")

ACTIONS: tuple[str, ...] = ("get", "search", "save", "delete", "autocomplete")


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class RestCrudController:
    """Wires HTTP actions to a CrudService."""

    service_class: ClassVar[type[CrudService] | None] = None
    actions: ClassVar[tuple[str, ...]] = ACTIONS

    def __init__(self, service: CrudService, dto: RequestDto, settings: Settings | None = None) -> None:
        self.service = service
        self.dto = dto
        self.settings = settings or get_settings()

    # ------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------

    @classmethod
    def create_service(cls, session: AsyncSession, request: Request | None = None) -> CrudService:
        if cls.service_class is None:
            raise RuntimeError(f"{cls.__name__}.service_class must be set")
        # Authentication middleware, when present, leaves the user on request.state.
        user = getattr(request.state, "user", None) if request is not None else None
        return cls.service_class(session, user=user)

    @classmethod
    async def from_request(cls, request: Request, session: AsyncSession) -> RestCrudController:
        dto = await RequestDto.from_request(request)
        return cls(service=cls.create_service(session, request), dto=dto)

    def get_service(self) -> CrudService:
        return self.service

    def get_dto(self) -> RequestDto:
        return self.dto

    def render_json(self, data: Any, status_code: int = 200) -> JSONResponse:
        return JSONResponse(status_code=status_code, content=jsonable_encoder(data))

    # ------------------------------------------------------------
    # Get
    # ------------------------------------------------------------

    async def get_action(self, entity_id: int) -> JSONResponse:
        """Entity data for edit screens."""
        entity_data = await self.get_service().get_root_entity_data(entity_id)
        if entity_data is None:
            raise HTTPException(
                status_code=404,
                detail={
                    "error": {
                        "code": "ENTITY_NOT_FOUND",
                        "message": f"Entity {entity_id} not found",
                        "detail": {"id": entity_id},
                    }
                },
            )
        return self.render_json(entity_data)

    # ------------------------------------------------------------
    # Search (grid)
    # ------------------------------------------------------------

    async def get_grid_data(
        self,
        search_query_method: str = "search_query",
        prepare_grid_rows_method: str = "prepare_grid_rows",
        as_mappings: bool = False,
    ) -> GridData:
        """Run a paginated search.

        Args:
            search_query_method: Service method building the query from the DTO.
            prepare_grid_rows_method: Controller method turning the page into rows.
            as_mappings: Fetch rows as dicts instead of ORM objects. Cheaper for
                large grids when rows don't need entity behaviour.
        """
        service = self.get_service()
        dto = self.get_dto()

        query = await _resolve(getattr(service, search_query_method)(dto))

        window = resolve_page_window(
            dto.get("rows", self.settings.grid_default_rows),
            dto.get("page", 1),
            default_rows=self.settings.grid_default_rows,
            max_rows=self.settings.grid_max_rows or None,
        )
        page = await service.paginate(query, window.offset, window.rows, as_mappings=as_mappings)

        items = await _resolve(getattr(self, prepare_grid_rows_method)(page))

        return GridData(
            count=page.count,
            items_per_page=window.rows,
            page=window.page,
            page_count=page_count(page.count, window.rows),
            items=items,
        )

    async def prepare_grid_rows(self, page: Page) -> list[dict[str, Any]]:
        """Rows for the grid, each with its `userAccessLevels` column."""
        rows = []
        for item in page:
            row = item.to_dict() if hasattr(item, "to_dict") else dict(item)
            row["userAccessLevels"] = await self.get_user_access_levels(item)
            rows.append(row)
        return rows

    def empty_prepare_rows(self, page: Page) -> list[Any]:
        """Rows exactly as the query returned them."""
        return list(page)

    async def get_user_access_levels(self, item: Any) -> dict[str, bool]:
        service = self.get_service()
        levels = UserAccessLevels(
            edit=await service.check_user_edit_permission(item),
            view=await service.check_user_view_permission(item),
            delete=await service.check_user_delete_permission(item),
        )
        return levels.model_dump(by_alias=True)

    async def get_search_action(self) -> JSONResponse:
        grid = await self.get_grid_data()
        return self.render_json(grid.model_dump(by_alias=True))

    # ------------------------------------------------------------
    # Save / delete
    # ------------------------------------------------------------

    def get_saved_id(self) -> Any:
        """Id of the entity just saved (clients use it to redirect)."""
        return self.get_service().get_root_entity_id()

    async def post_save_action(self) -> JSONResponse:
        try:
            await self.get_service().save(self.get_dto())
        except EntityValidationError as e:
            logger.warning(f"[crud] save rejected by {type(self).__name__}: {e} {e.errors}")
            detail: Any = {"message": str(e), "errors": e.errors} if e.errors else str(e)
            raise HTTPException(status_code=400, detail=detail) from e
        except SAVE_ERRORS as e:
            logger.warning(f"[crud] save rejected by {type(self).__name__}: {e}")
            raise HTTPException(status_code=400, detail=str(e)) from e
        return self.render_json(self.get_saved_id())

    async def delete_action(self, entity_id: int | None = None) -> JSONResponse:
        try:
            removed = await self.get_service().remove_entity(entity_id)
        except ServiceError as e:
            logger.warning(f"[crud] delete rejected by {type(self).__name__} id={entity_id}: {e}")
            raise HTTPException(status_code=400, detail=str(e)) from e
        except Exception as e:
            logger.exception(f"[crud] delete failed in {type(self).__name__} id={entity_id}")
            raise HTTPException(status_code=400, detail=str(e)) from e

        if removed:
            return self.render_json(True)
        raise HTTPException(status_code=400)

    # ------------------------------------------------------------
    # Autocomplete
    # ------------------------------------------------------------

    def treat_no_results_in_autocomplete(self, results: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Replace an empty result with a single "no results" row."""
        if not results:
            return [{"name": self.settings.autocomplete_empty_message}]
        return results

    async def get_autocomplete_action(self) -> JSONResponse:
        results = await self.get_service().get_all_obj_search_data(self.get_dto())
        return self.render_json(self.treat_no_results_in_autocomplete(results))

    # ------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------

    @classmethod
    def build_router(cls, actions: Iterable[str] | None = None) -> APIRouter:
        """Router exposing the selected actions.

        Routes (relative to the mount prefix):
            GET    /{id}          get
            GET    /search        search
            POST   /save          save
            DELETE /{id}          delete
            GET    /autocomplete  autocomplete
        """
        selected = tuple(actions) if actions is not None else cls.actions
        unknown = sorted(set(selected) - set(ACTIONS))
        if unknown:
            raise ValueError(f"Unknown CRUD actions for {cls.__name__}: {unknown}")

        router = APIRouter()

        async def controller_dependency(
            request: Request,
            session: AsyncSession = Depends(session_dependency),
        ) -> RestCrudController:
            return await cls.from_request(request, session)

        # Static paths first; ids only match digits.
        if "search" in selected:

            @router.get("/search")
            async def search(controller: RestCrudController = Depends(controller_dependency)) -> JSONResponse:
                return await controller.get_search_action()

        if "autocomplete" in selected:

            @router.get("/autocomplete")
            async def autocomplete(controller: RestCrudController = Depends(controller_dependency)) -> JSONResponse:
                return await controller.get_autocomplete_action()

        if "save" in selected:

            @router.post("/save")
            async def save(controller: RestCrudController = Depends(controller_dependency)) -> JSONResponse:
                return await controller.post_save_action()

        if "get" in selected:

            @router.get("/{entity_id:int}")
            async def get(
                entity_id: int,
                controller: RestCrudController = Depends(controller_dependency),
            ) -> JSONResponse:
                return await controller.get_action(entity_id)

        if "delete" in selected:

            @router.delete("/{entity_id:int}")
            async def delete(
                entity_id: int,
                controller: RestCrudController = Depends(controller_dependency),
            ) -> JSONResponse:
                return await controller.delete_action(entity_id)

        return router
