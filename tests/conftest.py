# flake8: noqa
import sys
from datetime import datetime, timedelta
from pathlib import Path

# Ensure project root is on sys.path so `recipe_finder` imports without install
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))  # noqa: E402

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from recipe_finder import crud, schemas
from recipe_finder.db import Base, enable_unicode_lower
from recipe_finder.store import SqlRecipeStore

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0)


@pytest.fixture
def session_factory(tmp_path):
    # file database: every worker thread gets its own connection
    engine = enable_unicode_lower(create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    ))
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(
        autocommit=False, autoflush=False, bind=engine
    )
    yield TestingSessionLocal
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return SqlRecipeStore(session_factory)


@pytest.fixture
def add_recipe(session_factory):
    """Insert a recipe; the n-th call is created n minutes after BASE_TIME."""
    counter = {"n": 0}

    def _add(title, tags=(), ingredients=(), **fields):
        counter["n"] += 1
        fields.setdefault("created_at", BASE_TIME + timedelta(minutes=counter["n"]))
        recipe = schemas.RecipeCreate(
            title=title,
            tags=list(tags),
            ingredients=[
                i if isinstance(i, dict) else {"name": i, "canonical_name": i}
                for i in ingredients
            ],
            **fields,
        )
        db = session_factory()
        try:
            return crud.create_recipe(db, recipe).id
        finally:
            db.close()

    return _add


@pytest.fixture
def add_synonym(session_factory):
    def _add(synonym, ingredients=()):
        db = session_factory()
        try:
            return crud.add_synonym(
                db,
                schemas.SynonymCreate(synonym=synonym, ingredients=list(ingredients)),
            ).id
        finally:
            db.close()

    return _add
