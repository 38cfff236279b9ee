"""Tests for the generic CRUD service, using the phrase service as the concrete case."""

import json
from types import SimpleNamespace
from typing import Any

import pytest
from sqlalchemy.exc import IntegrityError

from restcrud.models import Phrase
from restcrud.services import base as base_service
from restcrud.services.base import CrudService, Page
from restcrud.services.dto import RequestDto
from restcrud.services.exceptions import (
    EntityError,
    EntityValidationError,
    UniqueError,
    VerificationError,
)
from restcrud.services.phrases import PhraseService

SETTINGS = SimpleNamespace(autocomplete_cache_ttl=0, autocomplete_limit=10)
CACHED_SETTINGS = SimpleNamespace(autocomplete_cache_ttl=60, autocomplete_limit=10)


class FakeResult:
    def __init__(self, rows: list[tuple]) -> None:
        self._rows = rows

    def scalar_one(self) -> Any:
        return self._rows[0][0]

    def all(self) -> list[tuple]:
        return list(self._rows)

    def scalars(self) -> SimpleNamespace:
        return SimpleNamespace(all=lambda: [row[0] for row in self._rows])


class FakeSession:
    """Just enough of AsyncSession for the service."""

    def __init__(
        self,
        objects: dict[int, Any] | None = None,
        results: list[FakeResult] | None = None,
        flush_error: Exception | None = None,
    ) -> None:
        self.objects = dict(objects or {})
        self.results = list(results or [])
        self.flush_error = flush_error
        self.added: list[Any] = []
        self.deleted: list[Any] = []
        self.executed: list[Any] = []
        self.commits = 0
        self.rollbacks = 0
        self._next_id = 100

    async def get(self, model: type, entity_id: Any) -> Any:
        return self.objects.get(entity_id)

    def add(self, entity: Any) -> None:
        self.added.append(entity)

    async def flush(self) -> None:
        if self.flush_error is not None:
            raise self.flush_error
        for entity in self.added:
            if entity.id is None:
                entity.id = self._next_id
                self._next_id += 1

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1

    async def delete(self, entity: Any) -> None:
        self.deleted.append(entity)

    async def execute(self, stmt: Any) -> FakeResult:
        self.executed.append(stmt)
        return self.results.pop(0)


class DbError(Exception):
    def __init__(self, message: str, sqlstate: str) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate


def make_phrase(**kwargs: Any) -> Phrase:
    values = {"kind": "stopword", "phrase": "the", "enabled": True, "source": None}
    values.update(kwargs)
    return Phrase(**values)


def make_service(session: FakeSession, settings: Any = SETTINGS) -> PhraseService:
    return PhraseService(session, settings=settings)


# ------------------------------------------------------------
# read
# ------------------------------------------------------------


@pytest.mark.asyncio
async def test_get_root_entity_data_returns_columns():
    phrase = make_phrase(id=7, notes="common word")
    service = make_service(FakeSession(objects={7: phrase}))

    data = await service.get_root_entity_data("7")
    assert data is not None
    assert data["id"] == 7
    assert data["phrase"] == "the"
    assert data["notes"] == "common word"
    assert "created_at" in data


@pytest.mark.asyncio
async def test_get_root_entity_data_missing_is_none():
    service = make_service(FakeSession())
    assert await service.get_root_entity_data(1) is None


def test_search_query_applies_filters_search_and_order():
    service = make_service(FakeSession())
    stmt = service.search_query(RequestDto(query={"kind": "stopword", "q": "best", "source": ""}))
    sql = str(stmt)

    assert "phrases.kind = :kind_1" in sql
    assert "phrases.source" not in sql.split("WHERE", 1)[1]
    assert "lower(phrases.phrase) LIKE" in sql
    assert "lower(phrases.notes) LIKE" in sql
    assert sql.rstrip().endswith("ORDER BY phrases.kind ASC, phrases.phrase ASC")


def test_search_query_rejects_bad_filter_values():
    service = make_service(FakeSession())
    with pytest.raises(EntityValidationError) as exc_info:
        service.search_query(RequestDto(query={"enabled": "maybe"}))
    assert "enabled" in exc_info.value.errors


def test_coerce_value_uses_column_types():
    service = make_service(FakeSession())
    assert service.coerce_value("id", "12") == 12
    assert service.coerce_value("enabled", "false") is False
    assert service.coerce_value("enabled", "1") is True
    with pytest.raises(EntityValidationError):
        service.coerce_value("id", "twelve")


@pytest.mark.asyncio
async def test_paginate_counts_and_windows():
    first, second = make_phrase(id=1, phrase="a"), make_phrase(id=2, phrase="b")
    session = FakeSession(results=[FakeResult([(45,)]), FakeResult([(first,), (second,)])])
    service = make_service(session)

    page = await service.paginate(service.search_query(RequestDto()), offset=20, limit=2)

    assert isinstance(page, Page)
    assert page.count == 45
    assert list(page) == [first, second]
    assert "count(*)" in str(session.executed[0])


@pytest.mark.asyncio
async def test_paginate_as_mappings_returns_dicts():
    session = FakeSession(results=[FakeResult([(1,)]), FakeResult([(make_phrase(id=1, phrase="a"),)])])
    service = make_service(session)

    page = await service.paginate(service.search_query(RequestDto()), 0, 20, as_mappings=True)

    assert len(page) == 1
    assert page.items[0]["phrase"] == "a"
    assert isinstance(page.items[0], dict)


# ------------------------------------------------------------
# save
# ------------------------------------------------------------


@pytest.mark.asyncio
async def test_save_creates_entity():
    session = FakeSession()
    service = make_service(session)

    entity = await service.save(
        RequestDto(request={"kind": "Stopword", "phrase": "  The   Best ", "enabled": "false"})
    )

    assert session.added == [entity]
    assert entity.kind == "stopword"
    assert entity.phrase == "the best"
    assert entity.enabled is False
    assert service.get_root_entity_id() == 100
    assert session.commits == 1


@pytest.mark.asyncio
async def test_save_updates_existing_entity():
    phrase = make_phrase(id=7)
    session = FakeSession(objects={7: phrase})
    service = make_service(session)

    await service.save(RequestDto(request={"id": "7", "notes": "reviewed"}))

    assert session.added == []
    assert phrase.notes == "reviewed"
    assert phrase.phrase == "the"
    assert service.get_root_entity_id() == 7


@pytest.mark.asyncio
async def test_save_ignores_non_writable_fields():
    session = FakeSession()
    service = make_service(session)

    entity = await service.save(RequestDto(request={"kind": "blocked", "phrase": "x", "created_at": "never"}))
    assert entity.created_at is None


@pytest.mark.asyncio
async def test_save_prefers_query_values_like_dto_get():
    service = make_service(FakeSession())

    entity = await service.save(
        RequestDto(
            query={"notes": "from query"},
            request={"kind": "stopword", "phrase": "a", "notes": "from body"},
        )
    )
    assert entity.notes == "from query"


@pytest.mark.asyncio
async def test_save_unknown_id_raises_entity_error():
    service = make_service(FakeSession())
    with pytest.raises(EntityError):
        await service.save(RequestDto(request={"id": 5, "kind": "stopword", "phrase": "a"}))


@pytest.mark.asyncio
async def test_save_invalid_data_raises_validation_error():
    session = FakeSession()
    service = make_service(session)

    with pytest.raises(EntityValidationError) as exc_info:
        await service.save(RequestDto(request={"kind": "nonsense", "phrase": "   "}))

    assert set(exc_info.value.errors) == {"kind", "phrase"}
    assert session.added == []
    assert session.commits == 0


@pytest.mark.asyncio
async def test_save_duplicate_raises_unique_error():
    error = IntegrityError("INSERT INTO phrases", {}, DbError("duplicate key", "23505"))
    session = FakeSession(flush_error=error)
    service = make_service(session)

    with pytest.raises(UniqueError):
        await service.save(RequestDto(request={"kind": "stopword", "phrase": "the"}))
    assert session.rollbacks == 1
    assert service.get_root_entity_id() is None


@pytest.mark.asyncio
async def test_save_other_constraint_raises_entity_error():
    error = IntegrityError("INSERT INTO phrases", {}, DbError("not null", "23502"))
    service = make_service(FakeSession(flush_error=error))

    with pytest.raises(EntityError):
        await service.save(RequestDto(request={"kind": "stopword", "phrase": "the"}))


@pytest.mark.asyncio
async def test_save_refuses_system_phrases():
    phrase = make_phrase(id=3, source="system")
    service = make_service(FakeSession(objects={3: phrase}))

    with pytest.raises(VerificationError):
        await service.save(RequestDto(request={"id": 3, "enabled": False}))
    assert phrase.enabled is True


@pytest.mark.asyncio
async def test_save_refuses_reserved_source():
    service = make_service(FakeSession())
    with pytest.raises(VerificationError):
        await service.save(RequestDto(request={"kind": "stopword", "phrase": "a", "source": "system"}))


# ------------------------------------------------------------
# remove
# ------------------------------------------------------------


@pytest.mark.asyncio
async def test_remove_entity_deletes():
    phrase = make_phrase(id=4)
    session = FakeSession(objects={4: phrase})
    service = make_service(session)

    assert await service.remove_entity(4) is True
    assert session.deleted == [phrase]
    assert session.commits == 1


@pytest.mark.asyncio
async def test_remove_entity_missing_is_false():
    session = FakeSession()
    assert await make_service(session).remove_entity(4) is False
    assert await make_service(session).remove_entity(None) is False
    assert session.deleted == []


@pytest.mark.asyncio
async def test_remove_entity_refuses_system_phrases():
    session = FakeSession(objects={4: make_phrase(id=4, source="system")})
    with pytest.raises(VerificationError):
        await make_service(session).remove_entity(4)
    assert session.deleted == []


# ------------------------------------------------------------
# permissions
# ------------------------------------------------------------


@pytest.mark.asyncio
async def test_permissions_protect_system_phrases():
    service = make_service(FakeSession())
    system_row = {"id": 1, "source": "system"}
    manual = make_phrase(id=2, source="manual")

    assert await service.check_user_edit_permission(system_row) is False
    assert await service.check_user_delete_permission(system_row) is False
    assert await service.check_user_view_permission(system_row) is True
    assert await service.check_user_edit_permission(manual) is True
    assert await service.check_user_delete_permission(manual) is True


# ------------------------------------------------------------
# autocomplete
# ------------------------------------------------------------


@pytest.mark.asyncio
async def test_autocomplete_returns_id_and_name():
    session = FakeSession(results=[FakeResult([(make_phrase(id=1, phrase="the"),), (make_phrase(id=2, phrase="then"),)])])
    service = make_service(session)

    rows = await service.get_all_obj_search_data(RequestDto(query={"term": "th"}))

    assert rows == [{"id": 1, "name": "the"}, {"id": 2, "name": "then"}]
    sql = str(session.executed[0])
    assert "lower(phrases.phrase) LIKE" in sql
    assert "LIMIT" in sql


@pytest.mark.asyncio
async def test_autocomplete_works_without_redis():
    settings = SimpleNamespace(autocomplete_cache_ttl=60, autocomplete_limit=10)
    session = FakeSession(results=[FakeResult([(make_phrase(id=1, phrase="the"),)])])

    rows = await make_service(session, settings).get_all_obj_search_data(RequestDto(query={"q": "the"}))
    assert rows == [{"id": 1, "name": "the"}]


@pytest.mark.asyncio
async def test_autocomplete_uses_cache(monkeypatch: pytest.MonkeyPatch):
    async def fake_get_autocomplete_cache(resource: str, term: str) -> list[dict]:
        assert (resource, term) == ("phrases", "th")
        return [{"id": 9, "name": "cached"}]

    monkeypatch.setattr(base_service, "get_autocomplete_cache", fake_get_autocomplete_cache)
    settings = SimpleNamespace(autocomplete_cache_ttl=60, autocomplete_limit=10)
    session = FakeSession()

    rows = await make_service(session, settings).get_all_obj_search_data(RequestDto(query={"term": "th"}))
    assert rows == [{"id": 9, "name": "cached"}]
    assert session.executed == []


@pytest.mark.asyncio
async def test_autocomplete_cache_miss_stores_rows(monkeypatch: pytest.MonkeyPatch):
    stored: list[tuple] = []

    async def fake_get_autocomplete_cache(resource: str, term: str) -> None:
        return None

    async def fake_set_autocomplete_cache(resource: str, term: str, rows: list[dict], ttl: int) -> None:
        stored.append((resource, term, rows, ttl))

    monkeypatch.setattr(base_service, "get_autocomplete_cache", fake_get_autocomplete_cache)
    monkeypatch.setattr(base_service, "set_autocomplete_cache", fake_set_autocomplete_cache)
    session = FakeSession(results=[FakeResult([(make_phrase(id=1, phrase="the"),)])])

    rows = await make_service(session, CACHED_SETTINGS).get_all_obj_search_data(RequestDto(query={"term": " th "}))

    assert rows == [{"id": 1, "name": "the"}]
    assert stored == [("phrases", "th", rows, 60)]


@pytest.mark.asyncio
async def test_autocomplete_corrupt_cache_falls_back_to_db(monkeypatch: pytest.MonkeyPatch):
    async def broken_get_autocomplete_cache(resource: str, term: str) -> list[dict]:
        raise json.JSONDecodeError("Expecting value", "{not json", 0)

    async def fake_set_autocomplete_cache(resource: str, term: str, rows: list[dict], ttl: int) -> None:
        pass

    monkeypatch.setattr(base_service, "get_autocomplete_cache", broken_get_autocomplete_cache)
    monkeypatch.setattr(base_service, "set_autocomplete_cache", fake_set_autocomplete_cache)
    session = FakeSession(results=[FakeResult([(make_phrase(id=2, phrase="then"),)])])

    rows = await make_service(session, CACHED_SETTINGS).get_all_obj_search_data(RequestDto(query={"term": "th"}))

    assert rows == [{"id": 2, "name": "then"}]
    assert len(session.executed) == 1


@pytest.fixture
def invalidated(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    calls: list[str] = []

    async def fake_invalidate_autocomplete_cache(resource: str) -> int:
        calls.append(resource)
        return 0

    monkeypatch.setattr(base_service, "invalidate_autocomplete_cache", fake_invalidate_autocomplete_cache)
    return calls


@pytest.mark.asyncio
async def test_save_invalidates_autocomplete_cache(invalidated: list[str]):
    service = make_service(FakeSession(), CACHED_SETTINGS)

    await service.save(RequestDto(request={"kind": "stopword", "phrase": "a"}))
    assert invalidated == ["phrases"]


@pytest.mark.asyncio
async def test_failed_save_keeps_autocomplete_cache(invalidated: list[str]):
    service = make_service(FakeSession(), CACHED_SETTINGS)

    with pytest.raises(EntityValidationError):
        await service.save(RequestDto(request={"kind": "stopword", "phrase": " "}))
    assert invalidated == []


@pytest.mark.asyncio
async def test_remove_entity_invalidates_autocomplete_cache(invalidated: list[str]):
    service = make_service(FakeSession(objects={4: make_phrase(id=4)}), CACHED_SETTINGS)

    assert await service.remove_entity(4) is True
    assert invalidated == ["phrases"]


@pytest.mark.asyncio
async def test_cache_disabled_skips_invalidation(invalidated: list[str]):
    service = make_service(FakeSession(objects={4: make_phrase(id=4)}))

    await service.remove_entity(4)
    assert invalidated == []


@pytest.mark.asyncio
async def test_autocomplete_requires_field():
    class NoAutocompleteService(CrudService[Phrase]):
        model = Phrase

    with pytest.raises(RuntimeError):
        await NoAutocompleteService(FakeSession(), settings=SETTINGS).get_all_obj_search_data(RequestDto())
