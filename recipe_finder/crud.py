import json
from datetime import datetime
from typing import Iterable, List, Optional, Set

import numpy as np
from sqlalchemy import or_
from sqlalchemy.orm import Session

from . import models, schemas
from .logging_utils import get_logger
from .normalize import normalize_text

logger = get_logger(__name__)


def _contains(column, needle: str):
    """Case-insensitive literal substring match."""
    escaped = (
        needle.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    )
    return column.ilike(f"%{escaped}%", escape="\\")


# Candidate sources: each returns the ids of recipes matching one string


def recipe_ids_by_ingredient(db: Session, needle: str) -> Set[int]:
    rows = (
        db.query(models.RecipeIngredient.recipe_id)
        .join(
            models.Ingredient,
            models.Ingredient.id == models.RecipeIngredient.ingredient_id,
        )
        .filter(
            or_(
                _contains(models.Ingredient.canonical_name, needle),
                _contains(models.Ingredient.normalized_name, needle),
            )
        )
        .distinct()
        .all()
    )
    return {r.recipe_id for r in rows}


def recipe_ids_by_tag(db: Session, needle: str) -> Set[int]:
    rows = (
        db.query(models.RecipeTag.recipe_id)
        .join(models.Tag, models.Tag.id == models.RecipeTag.tag_id)
        .filter(
            or_(
                _contains(models.Tag.name, needle),
                _contains(models.Tag.normalized_name, needle),
            )
        )
        .distinct()
        .all()
    )
    return {r.recipe_id for r in rows}


def recipe_ids_by_recipe_fields(db: Session, needle: str) -> Set[int]:
    rows = (
        db.query(models.Recipe.id)
        .filter(
            or_(
                _contains(models.Recipe.title, needle),
                _contains(models.Recipe.description, needle),
                _contains(models.Recipe.category, needle),
            )
        )
        .all()
    )
    return {r.id for r in rows}


def recipe_ids_by_synonym_index(db: Session, needle: str) -> Set[int]:
    """Ingredient match that also follows registered synonyms.

    Recipes using an ingredient linked to a synonym containing ``needle``
    are returned together with the plain ingredient matches.
    """
    rows = (
        db.query(models.RecipeIngredient.recipe_id)
        .join(
            models.IngredientSynonym,
            models.IngredientSynonym.ingredient_id
            == models.RecipeIngredient.ingredient_id,
        )
        .join(
            models.Synonym,
            models.Synonym.id == models.IngredientSynonym.synonym_id,
        )
        .filter(_contains(models.Synonym.synonym, needle))
        .distinct()
        .all()
    )
    return {r.recipe_id for r in rows} | recipe_ids_by_ingredient(db, needle)


# Bulk reads used to hydrate results


def fetch_recipes_by_ids(db: Session, ids: Iterable[int]):
    ids = list(ids)
    if not ids:
        return []
    return db.query(models.Recipe).filter(models.Recipe.id.in_(ids)).all()


def fetch_tags_for_recipes(
    db: Session, ids: Iterable[int]
) -> List[schemas.TagLink]:
    ids = list(ids)
    if not ids:
        return []
    rows = (
        db.query(
            models.RecipeTag.recipe_id,
            models.Tag.id.label("tag_id"),
            models.Tag.name.label("tag_name"),
        )
        .join(models.Tag, models.Tag.id == models.RecipeTag.tag_id)
        .filter(models.RecipeTag.recipe_id.in_(ids))
        .order_by(models.Tag.sort_order, models.Tag.id)
        .all()
    )
    return [
        schemas.TagLink(
            recipe_id=r.recipe_id, tag_id=r.tag_id, tag_name=r.tag_name
        )
        for r in rows
    ]


def fetch_ingredients_for_recipes(
    db: Session, ids: Iterable[int]
) -> List[schemas.IngredientLink]:
    ids = list(ids)
    if not ids:
        return []
    rows = (
        db.query(
            models.RecipeIngredient.recipe_id,
            models.RecipeIngredient.ingredient_id,
            models.RecipeIngredient.original_name,
            models.RecipeIngredient.amount,
            models.Ingredient.canonical_name,
        )
        .outerjoin(
            models.Ingredient,
            models.Ingredient.id == models.RecipeIngredient.ingredient_id,
        )
        .filter(models.RecipeIngredient.recipe_id.in_(ids))
        .order_by(models.RecipeIngredient.id)
        .all()
    )
    return [
        schemas.IngredientLink(
            recipe_id=r.recipe_id,
            ingredient_id=r.ingredient_id,
            original_name=r.original_name,
            amount=r.amount,
            canonical_name=r.canonical_name,
        )
        for r in rows
    ]


# Vector lookups


def _decode_embedding(raw: Optional[str]) -> Optional[np.ndarray]:
    if not raw:
        return None
    vec = np.asarray(json.loads(raw), dtype=float)
    if vec.ndim != 1 or vec.size == 0:
        return None
    return vec


def get_recipe_embedding(db: Session, recipe_id: int) -> Optional[np.ndarray]:
    row = (
        db.query(models.Recipe.embedding)
        .filter(models.Recipe.id == recipe_id)
        .first()
    )
    if row is None:
        return None
    return _decode_embedding(row.embedding)


def nearest_neighbors(db: Session, recipe_id: int, k: int) -> List[dict]:
    """Return the ``k`` recipes closest to ``recipe_id`` by cosine similarity.

    The recipe itself is excluded. Scores are clipped to [0, 1]. An empty
    list comes back when the recipe has no embedding.
    """
    target = get_recipe_embedding(db, recipe_id)
    if target is None or k <= 0:
        return []
    target_norm = np.linalg.norm(target)
    if target_norm == 0:
        return []

    candidates = (
        db.query(
            models.Recipe.id,
            models.Recipe.title,
            models.Recipe.description,
            models.Recipe.category,
            models.Recipe.embedding,
        )
        .filter(models.Recipe.id != recipe_id)
        .filter(models.Recipe.embedding.isnot(None))
        .all()
    )

    scored = []
    for c in candidates:
        vec = _decode_embedding(c.embedding)
        if vec is None or vec.shape != target.shape:
            logger.debug("Skipping recipe %s: unusable embedding", c.id)
            continue
        norm = np.linalg.norm(vec)
        if norm == 0:
            continue
        cosine = float(np.dot(target, vec) / (target_norm * norm))
        scored.append({
            "id": c.id,
            "title": c.title,
            "description": c.description,
            "category": c.category,
            "similarity": min(max(cosine, 0.0), 1.0),
        })
    scored.sort(key=lambda s: (-s["similarity"], s["id"]))
    return scored[:k]


# Plain recipe reads


def get_recipe_by_title(db: Session, title: str):
    return (
        db.query(models.Recipe).filter(models.Recipe.title == title).first()
    )


def list_recipe_ids(db: Session, limit: int = 100, offset: int = 0):
    rows = (
        db.query(models.Recipe.id)
        .order_by(models.Recipe.created_at.desc(), models.Recipe.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return [r.id for r in rows]


def count_recipes(db: Session) -> int:
    return db.query(models.Recipe).count()


# Seeding


def get_or_create_tag(db: Session, name: str):
    tag = db.query(models.Tag).filter(models.Tag.name == name).first()
    if tag is None:
        tag = models.Tag(name=name, normalized_name=normalize_text(name))
        db.add(tag)
        db.flush()
    return tag


def get_or_create_ingredient(
    db: Session, canonical_name: str, group_name: str = ""
):
    ing = (
        db.query(models.Ingredient)
        .filter(models.Ingredient.canonical_name == canonical_name)
        .first()
    )
    if ing is None:
        ing = models.Ingredient(
            canonical_name=canonical_name,
            normalized_name=normalize_text(canonical_name),
            group_name=group_name,
        )
        db.add(ing)
        db.flush()
    return ing


def create_recipe(db: Session, recipe: schemas.RecipeCreate):
    db_recipe = models.Recipe(
        title=recipe.title,
        description=recipe.description,
        category=recipe.category,
        steps_text=recipe.steps_text,
        created_at=recipe.created_at or datetime.now(),
        embedding=(
            json.dumps(recipe.embedding)
            if recipe.embedding is not None else None
        ),
    )
    db.add(db_recipe)
    db.flush()

    for name in dict.fromkeys(recipe.tags):
        tag = get_or_create_tag(db, name)
        db.add(models.RecipeTag(recipe_id=db_recipe.id, tag_id=tag.id))

    for item in recipe.ingredients:
        ingredient_id = None
        if item.canonical_name:
            ingredient_id = get_or_create_ingredient(
                db, item.canonical_name, item.group_name
            ).id
        db.add(models.RecipeIngredient(
            recipe_id=db_recipe.id,
            ingredient_id=ingredient_id,
            original_name=item.name,
            amount=item.amount,
            note=item.note,
        ))

    db.commit()
    db.refresh(db_recipe)
    return db_recipe


def add_synonym(db: Session, synonym: schemas.SynonymCreate):
    """Register a synonym and link it to existing master ingredients.

    Unknown ingredient names are ignored; the synonym is kept even when
    nothing links to it.
    """
    db_synonym = (
        db.query(models.Synonym)
        .filter(models.Synonym.synonym == synonym.synonym)
        .first()
    )
    if db_synonym is None:
        db_synonym = models.Synonym(synonym=synonym.synonym)
        db.add(db_synonym)
        db.flush()

    for name in synonym.ingredients:
        ing = (
            db.query(models.Ingredient)
            .filter(models.Ingredient.canonical_name == name)
            .first()
        )
        if ing is None:
            continue
        exists = (
            db.query(models.IngredientSynonym)
            .filter(
                models.IngredientSynonym.ingredient_id == ing.id,
                models.IngredientSynonym.synonym_id == db_synonym.id,
            )
            .first()
        )
        if not exists:
            db.add(models.IngredientSynonym(
                ingredient_id=ing.id, synonym_id=db_synonym.id
            ))

    db.commit()
    db.refresh(db_synonym)
    return db_synonym
