"""Query search and similarity engine.

A query is split into tokens. Each token is expanded into its lookup
variants and every variant is matched against ingredients (following
synonyms where the store supports it), tags and the recipe's own text
fields. Per token the matches are unioned; across tokens they are
intersected, so "鶏肉 ヘルシー" finds recipes matching both words.

All storage calls for one search run concurrently and are bounded by a
timeout. A token whose lookups fail or time out matches nothing, which
empties the whole result; only when every lookup of every token fails is
``BackendUnavailable`` raised.
"""

import asyncio
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, List, Optional, Set, Tuple

from . import schemas
from .config import SEARCH_TIMEOUT_SECONDS
from .errors import BackendUnavailable
from .logging_utils import get_logger
from .normalize import expand_token, tokenize
from .store import SynonymSearch

logger = get_logger(__name__)


@dataclass
class TokenMatches:
    token: str
    ids: Set[int]
    calls: int = 0
    failures: int = 0

    @property
    def all_failed(self) -> bool:
        return self.calls > 0 and self.failures == self.calls


def _adapters(store):
    # the synonym index already covers plain ingredient matches
    if isinstance(store, SynonymSearch):
        ingredient = store.recipe_ids_by_synonym_index
    else:
        ingredient = store.recipe_ids_by_ingredient
    return [
        ingredient,
        store.recipe_ids_by_tag,
        store.recipe_ids_by_recipe_fields,
    ]


def _failed(outcome) -> bool:
    if isinstance(outcome, Exception):
        return True
    if isinstance(outcome, BaseException):
        raise outcome
    return False


async def _match_token(store, token: str, timeout: float) -> TokenMatches:
    calls: List[Tuple[str, object]] = [
        (variant, adapter)
        for variant in sorted(expand_token(token))
        for adapter in _adapters(store)
    ]
    outcomes = await asyncio.gather(
        *(asyncio.wait_for(adapter(variant), timeout)
          for variant, adapter in calls),
        return_exceptions=True,
    )

    ids: Set[int] = set()
    failures = 0
    for (variant, adapter), outcome in zip(calls, outcomes):
        if _failed(outcome):
            failures += 1
            logger.warning(
                "Lookup %s(%r) failed: %r",
                getattr(adapter, "__name__", "adapter"), variant, outcome,
            )
            continue
        ids |= set(outcome)

    if failures:
        # a partially answered token must not widen an AND query
        ids = set()
    logger.debug("Token %r matched %d recipe(s)", token, len(ids))
    return TokenMatches(token, ids, calls=len(calls), failures=failures)


async def resolve_token(
    store, token: str, timeout: float = SEARCH_TIMEOUT_SECONDS
) -> Set[int]:
    """Ids of recipes matching any variant of ``token`` in any field."""
    return (await _match_token(store, token, timeout)).ids


async def combine(
    store, tokens: List[str], timeout: float = SEARCH_TIMEOUT_SECONDS
) -> Set[int]:
    """Ids of recipes matching every token."""
    if not tokens:
        return set()
    unique = list(dict.fromkeys(tokens))
    matches = await asyncio.gather(
        *(_match_token(store, t, timeout) for t in unique)
    )
    if all(m.all_failed for m in matches):
        raise BackendUnavailable(
            f"all lookups failed for tokens {unique!r}"
        )

    result = set(matches[0].ids)
    for m in matches[1:]:
        result &= m.ids
    return result


def _or_empty(outcome, what: str) -> list:
    if _failed(outcome):
        logger.error("Error fetching %s: %r", what, outcome)
        return []
    return outcome


async def hydrate(
    store, ids: Iterable[int], timeout: float = SEARCH_TIMEOUT_SECONDS
) -> List[schemas.RecipeResult]:
    """Full recipes for ``ids``, newest first.

    Tags and ingredients are read with one bulk call each. Ids that no
    longer exist are dropped.
    """
    wanted = set(ids)
    if not wanted:
        return []

    try:
        records = await asyncio.wait_for(
            store.fetch_recipes_by_ids(sorted(wanted)), timeout
        )
    except Exception as e:
        raise BackendUnavailable(f"error fetching recipes: {e}") from e

    records = [r for r in records if r.id in wanted]
    if not records:
        return []
    found = sorted({r.id for r in records})

    tag_rows, ingredient_rows = await asyncio.gather(
        asyncio.wait_for(store.fetch_tags_for_recipes(found), timeout),
        asyncio.wait_for(store.fetch_ingredients_for_recipes(found), timeout),
        return_exceptions=True,
    )

    tags = defaultdict(list)
    for t in _or_empty(tag_rows, "tags"):
        tags[t.recipe_id].append(schemas.TagOut(id=t.tag_id, name=t.tag_name))

    ingredients = defaultdict(list)
    for i in _or_empty(ingredient_rows, "ingredients"):
        ingredients[i.recipe_id].append(schemas.IngredientOut(
            id=i.ingredient_id,
            original_name=i.original_name,
            canonical_name=i.canonical_name,
            amount=i.amount,
        ))

    records.sort(key=lambda r: (r.created_at, r.id), reverse=True)
    return [
        schemas.RecipeResult(
            id=r.id,
            title=r.title,
            description=r.description,
            category=r.category,
            created_at=r.created_at,
            steps_text=r.steps_text or "",
            tags=tags.get(r.id, []),
            ingredients=ingredients.get(r.id, []),
        )
        for r in records
    ]


async def find_similar(
    store, recipe_id: int, count: int,
    timeout: float = SEARCH_TIMEOUT_SECONDS,
) -> List[schemas.ScoredRecipe]:
    """Up to ``count`` nearest recipes, most similar first.

    A recipe without an embedding has no neighbours.
    """
    if count <= 0:
        return []
    try:
        # one extra in case the index returns the recipe itself
        rows = await asyncio.wait_for(
            store.nearest_neighbors(recipe_id, count + 1), timeout
        )
    except Exception as e:
        raise BackendUnavailable(f"error finding similar recipes: {e}") from e

    seen = set()
    neighbours = []
    for row in rows:
        if row.id == recipe_id or row.id in seen:
            continue
        seen.add(row.id)
        neighbours.append(row)
    neighbours.sort(key=lambda r: (-r.similarity, r.id))
    return neighbours[:count]


class RecipeSearch:
    """Entry points used by the HTTP layer and the command line."""

    def __init__(self, store, timeout: float = SEARCH_TIMEOUT_SECONDS):
        self.store = store
        self.timeout = timeout

    async def search(self, query: str) -> List[schemas.RecipeResult]:
        tokens = tokenize(query)
        if not tokens:
            return []
        ids = await combine(self.store, tokens, self.timeout)
        results = await hydrate(self.store, ids, self.timeout)
        logger.info(
            "Search %r: %d token(s), %d result(s)",
            query, len(tokens), len(results),
        )
        return results

    async def similar_to(
        self, recipe_id: int, count: int
    ) -> List[schemas.ScoredRecipe]:
        return await find_similar(self.store, recipe_id, count, self.timeout)

    async def get_recipe(
        self, recipe_id: int
    ) -> Optional[schemas.RecipeResult]:
        results = await hydrate(self.store, {recipe_id}, self.timeout)
        return results[0] if results else None

    async def list_recipes(
        self, limit: int = 100, offset: int = 0
    ) -> Tuple[int, List[schemas.RecipeResult]]:
        try:
            ids, total = await asyncio.gather(
                asyncio.wait_for(
                    self.store.list_recipe_ids(limit, offset), self.timeout
                ),
                asyncio.wait_for(self.store.count_recipes(), self.timeout),
            )
        except Exception as e:
            raise BackendUnavailable(f"error listing recipes: {e}") from e
        return total, await hydrate(self.store, ids, self.timeout)
