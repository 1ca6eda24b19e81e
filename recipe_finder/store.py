"""Storage capabilities consumed by the search core.

The core only sees these narrow protocols. ``SqlRecipeStore`` implements
all of them on top of the SQLAlchemy queries in ``crud``; every call opens
its own session and runs in a worker thread so calls can be awaited
concurrently.
"""

import asyncio
import threading
from typing import Iterable, List, Protocol, Set, runtime_checkable

from sqlalchemy.orm import Session, sessionmaker

from . import crud, schemas
from .db import SessionLocal


@runtime_checkable
class SubstringSearch(Protocol):
    async def recipe_ids_by_ingredient(self, needle: str) -> Set[int]: ...

    async def recipe_ids_by_tag(self, needle: str) -> Set[int]: ...

    async def recipe_ids_by_recipe_fields(self, needle: str) -> Set[int]: ...


@runtime_checkable
class SynonymSearch(Protocol):
    async def recipe_ids_by_synonym_index(self, needle: str) -> Set[int]: ...


@runtime_checkable
class NearestNeighbors(Protocol):
    async def nearest_neighbors(
        self, recipe_id: int, k: int
    ) -> List[schemas.ScoredRecipe]: ...


@runtime_checkable
class BulkFetch(Protocol):
    async def fetch_recipes_by_ids(
        self, ids: Iterable[int]
    ) -> List[schemas.RecipeRecord]: ...

    async def fetch_tags_for_recipes(
        self, ids: Iterable[int]
    ) -> List[schemas.TagLink]: ...

    async def fetch_ingredients_for_recipes(
        self, ids: Iterable[int]
    ) -> List[schemas.IngredientLink]: ...


def _recipe_records(db: Session, ids) -> List[schemas.RecipeRecord]:
    return [
        schemas.RecipeRecord.model_validate(r)
        for r in crud.fetch_recipes_by_ids(db, ids)
    ]


def _neighbors(db: Session, recipe_id: int, k: int):
    return [
        schemas.ScoredRecipe(**row)
        for row in crud.nearest_neighbors(db, recipe_id, k)
    ]


class _InflightCall:
    """The DBAPI connection a worker thread is currently querying on.

    Cancelling the awaiting task interrupts that connection so an abandoned
    query stops instead of running to completion. Only drivers exposing
    ``interrupt()`` (sqlite3) support this; on others the query finishes
    in the background and its result is discarded.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._conn = None

    def attach(self, conn):
        with self._lock:
            self._conn = conn

    def detach(self):
        with self._lock:
            self._conn = None

    def interrupt(self):
        with self._lock:
            interrupt = getattr(self._conn, "interrupt", None)
            if interrupt is not None:
                interrupt()


class SqlRecipeStore:
    """All storage capabilities backed by one SQLAlchemy session factory."""

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self.session_factory = session_factory

    def _read(self, call, fn, args):
        with self.session_factory() as db:
            call.attach(db.connection().connection.driver_connection)
            try:
                return fn(db, *args)
            finally:
                call.detach()

    async def _run(self, fn, *args):
        call = _InflightCall()
        try:
            return await asyncio.to_thread(self._read, call, fn, args)
        except asyncio.CancelledError:
            call.interrupt()
            raise

    async def recipe_ids_by_ingredient(self, needle: str) -> Set[int]:
        return await self._run(crud.recipe_ids_by_ingredient, needle)

    async def recipe_ids_by_tag(self, needle: str) -> Set[int]:
        return await self._run(crud.recipe_ids_by_tag, needle)

    async def recipe_ids_by_recipe_fields(self, needle: str) -> Set[int]:
        return await self._run(crud.recipe_ids_by_recipe_fields, needle)

    async def recipe_ids_by_synonym_index(self, needle: str) -> Set[int]:
        return await self._run(crud.recipe_ids_by_synonym_index, needle)

    async def nearest_neighbors(self, recipe_id: int, k: int):
        return await self._run(_neighbors, recipe_id, k)

    async def fetch_recipes_by_ids(self, ids):
        return await self._run(_recipe_records, list(ids))

    async def fetch_tags_for_recipes(self, ids):
        return await self._run(crud.fetch_tags_for_recipes, list(ids))

    async def fetch_ingredients_for_recipes(self, ids):
        return await self._run(crud.fetch_ingredients_for_recipes, list(ids))

    # Not part of the search path; used by the HTTP list/detail endpoints.

    async def list_recipe_ids(self, limit: int, offset: int) -> List[int]:
        return await self._run(crud.list_recipe_ids, limit, offset)

    async def count_recipes(self) -> int:
        return await self._run(crud.count_recipes)
