# flake8: noqa
import asyncio
from datetime import datetime

import pytest

from recipe_finder import schemas
from recipe_finder.errors import BackendUnavailable
from recipe_finder.search import (
    RecipeSearch,
    combine,
    find_similar,
    hydrate,
    resolve_token,
)


def run(coro):
    return asyncio.run(coro)


class FakeStore:
    """In-memory store: each source maps recipe id -> searchable strings."""

    def __init__(self, ingredients=None, tags=None, fields=None,
                 fail=(), slow=(), fail_needles=()):
        self.ingredients = ingredients or {}
        self.tags = tags or {}
        self.fields = fields or {}
        self.fail = set(fail)
        self.slow = set(slow)
        self.fail_needles = set(fail_needles)
        self.calls = []

    async def _lookup(self, name, source, needle):
        self.calls.append((name, needle))
        if name in self.slow:
            await asyncio.sleep(5)
        if name in self.fail or needle in self.fail_needles:
            raise RuntimeError(f"{name} is down")
        n = needle.lower()
        return {
            rid for rid, texts in source.items()
            if any(n in t.lower() for t in texts)
        }

    async def recipe_ids_by_ingredient(self, needle):
        return await self._lookup("ingredient", self.ingredients, needle)

    async def recipe_ids_by_tag(self, needle):
        return await self._lookup("tag", self.tags, needle)

    async def recipe_ids_by_recipe_fields(self, needle):
        return await self._lookup("fields", self.fields, needle)


class SynonymFakeStore(FakeStore):
    def __init__(self, synonyms=None, **kwargs):
        super().__init__(**kwargs)
        # synonym text -> recipe ids reached through it
        self.synonyms = synonyms or {}

    async def recipe_ids_by_synonym_index(self, needle):
        self.calls.append(("synonym", needle))
        if "synonym" in self.fail:
            raise RuntimeError("synonym index is down")
        ids = set()
        for text, rids in self.synonyms.items():
            if needle.lower() in text.lower():
                ids |= set(rids)
        n = needle.lower()
        ids |= {
            rid for rid, texts in self.ingredients.items()
            if any(n in t.lower() for t in texts)
        }
        return ids


def sample_store(cls=FakeStore, **kwargs):
    return cls(
        ingredients={1: ["豚ロース"], 2: ["鳥もも肉"], 3: ["鶏むね肉", "卵"]},
        tags={1: ["和風"], 2: ["スパイシー", "すぱいしー"], 3: ["和風", "ヘルシー"]},
        fields={1: ["豚の生姜焼き"], 2: ["鶏肉カレー"], 3: ["チキン南蛮"]},
        **kwargs,
    )


def test_resolve_token_unions_sources():
    store = sample_store()
    assert run(resolve_token(store, "和風")) == {1, 3}
    assert run(resolve_token(store, "鶏")) == {2, 3}


def test_resolve_token_tries_normalized_variant():
    store = FakeStore(tags={5: ["すぱいしー"]})
    assert run(resolve_token(store, "スパイシー")) == {5}
    assert ("tag", "スパイシー") in store.calls
    assert ("tag", "すぱいしー") in store.calls


def test_resolve_token_plain_adapters_without_synonym_index():
    store = sample_store()
    run(resolve_token(store, "豚"))
    assert sorted(name for name, _ in store.calls) == ["fields", "ingredient", "tag"]


def test_synonym_index_replaces_ingredient_adapter():
    store = sample_store(SynonymFakeStore, synonyms={"鶏肉": [2, 3]})
    assert run(resolve_token(store, "鶏肉")) == {2, 3}
    names = [name for name, _ in store.calls]
    assert "ingredient" not in names
    assert names.count("synonym") == 1


def test_synonym_match_without_literal_substring():
    store = SynonymFakeStore(
        synonyms={"鶏肉": [7]}, ingredients={7: ["鳥もも肉"]}, fields={7: ["唐揚げ"]}
    )
    assert 7 in run(resolve_token(store, "鶏肉"))


def test_combine_empty_tokens():
    store = sample_store()
    assert run(combine(store, [])) == set()
    assert store.calls == []


def test_combine_single_token():
    store = sample_store()
    assert run(combine(store, ["豚"])) == run(resolve_token(store, "豚"))


def test_combine_is_intersection():
    store = sample_store()
    a = run(resolve_token(store, "和風"))
    b = run(resolve_token(store, "鶏"))
    assert run(combine(store, ["和風", "鶏"])) == a & b == {3}


def test_combine_no_common_recipe():
    store = sample_store()
    assert run(combine(store, ["豚", "鶏"])) == set()


def test_failing_adapter_empties_its_token():
    # the tag source is down: every token loses all its matches
    store = sample_store(fail={"tag"})
    assert run(resolve_token(store, "豚")) == set()
    assert run(combine(store, ["豚"])) == set()


def test_failure_on_one_token_empties_and_query():
    store = sample_store(fail_needles={"和風"})
    assert run(combine(store, ["和風", "鶏"])) == set()


def test_total_failure_raises():
    store = sample_store(fail={"ingredient", "tag", "fields"})
    with pytest.raises(BackendUnavailable):
        run(combine(store, ["豚", "鶏"]))


def test_partial_failure_does_not_raise():
    store = sample_store(fail_needles={"豚"})
    assert run(combine(store, ["豚", "鶏"])) == set()


def test_timeout_counts_as_failure():
    store = sample_store(slow={"fields"})
    assert run(resolve_token(store, "豚", timeout=0.05)) == set()


def test_timeout_everywhere_raises():
    store = sample_store(slow={"ingredient", "tag", "fields"})
    with pytest.raises(BackendUnavailable):
        run(combine(store, ["豚"], timeout=0.05))


def test_cancellation_propagates():
    store = sample_store(slow={"ingredient", "tag", "fields"})

    async def scenario():
        task = asyncio.create_task(combine(store, ["豚", "鶏"], timeout=10))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    run(scenario())


class HydrationStore:
    def __init__(self, records, tags=(), ingredients=(), fail=()):
        self.records = {r.id: r for r in records}
        self.tag_links = list(tags)
        self.ingredient_links = list(ingredients)
        self.fail = set(fail)
        self.calls = []

    async def fetch_recipes_by_ids(self, ids):
        self.calls.append(("recipes", list(ids)))
        if "recipes" in self.fail:
            raise RuntimeError("recipes down")
        return [self.records[i] for i in ids if i in self.records]

    async def fetch_tags_for_recipes(self, ids):
        self.calls.append(("tags", list(ids)))
        if "tags" in self.fail:
            raise RuntimeError("tags down")
        return [t for t in self.tag_links if t.recipe_id in ids]

    async def fetch_ingredients_for_recipes(self, ids):
        self.calls.append(("ingredients", list(ids)))
        return [i for i in self.ingredient_links if i.recipe_id in ids]


def record(rid, minute, title=None):
    return schemas.RecipeRecord(
        id=rid,
        title=title or f"recipe {rid}",
        created_at=datetime(2024, 1, 1, 12, minute),
    )


def hydration_store(**kwargs):
    return HydrationStore(
        records=[record(1, 1), record(2, 3), record(3, 2), record(4, 3)],
        tags=[
            schemas.TagLink(recipe_id=1, tag_id=10, tag_name="和風"),
            schemas.TagLink(recipe_id=3, tag_id=11, tag_name="ヘルシー"),
            schemas.TagLink(recipe_id=3, tag_id=10, tag_name="和風"),
        ],
        ingredients=[
            schemas.IngredientLink(
                recipe_id=1, ingredient_id=100, original_name="豚ロース薄切り",
                amount="300g", canonical_name="豚ロース",
            ),
            schemas.IngredientLink(
                recipe_id=1, ingredient_id=None, original_name="隠し味",
            ),
        ],
        **kwargs,
    )


def test_hydrate_orders_newest_first_then_id_desc():
    results = run(hydrate(hydration_store(), {1, 2, 3, 4}))
    assert [r.id for r in results] == [4, 2, 3, 1]


def test_hydrate_is_batched():
    store = hydration_store()
    run(hydrate(store, {1, 2, 3}))
    names = [name for name, _ in store.calls]
    assert names.count("recipes") == 1
    assert names.count("tags") == 1
    assert names.count("ingredients") == 1


def test_hydrate_attaches_tags_and_ingredients():
    results = {r.id: r for r in run(hydrate(hydration_store(), {1, 2, 3}))}
    assert [t.name for t in results[3].tags] == ["ヘルシー", "和風"]
    assert results[2].tags == []
    assert results[2].ingredients == []
    assert results[2].steps_text == ""

    freeform = results[1].ingredients[1]
    assert freeform.original_name == "隠し味"
    assert freeform.id is None
    assert freeform.canonical_name is None
    assert results[1].ingredients[0].canonical_name == "豚ロース"


def test_hydrate_drops_vanished_ids():
    store = hydration_store()
    results = run(hydrate(store, {1, 99}))
    assert [r.id for r in results] == [1]
    assert ("tags", [1]) in store.calls


def test_hydrate_empty_set_makes_no_calls():
    store = hydration_store()
    assert run(hydrate(store, set())) == []
    assert store.calls == []


def test_hydrate_recipe_fetch_failure_raises():
    with pytest.raises(BackendUnavailable):
        run(hydrate(hydration_store(fail={"recipes"}), {1}))


def test_hydrate_tag_fetch_failure_keeps_recipes():
    results = run(hydrate(hydration_store(fail={"tags"}), {1, 3}))
    assert [r.id for r in results] == [3, 1]
    assert all(r.tags == [] for r in results)
    assert len(results[1].ingredients) == 2


class NeighbourStore:
    def __init__(self, rows, fail=False):
        self.rows = rows
        self.fail = fail
        self.requested = None

    async def nearest_neighbors(self, recipe_id, k):
        self.requested = k
        if self.fail:
            raise RuntimeError("vector index down")
        return self.rows[:k]


def scored(rid, similarity):
    return schemas.ScoredRecipe(id=rid, title=f"r{rid}", similarity=similarity)


def test_find_similar_excludes_target_and_limits():
    store = NeighbourStore(
        [scored(1, 1.0), scored(2, 0.9), scored(3, 0.8), scored(4, 0.7)]
    )
    results = run(find_similar(store, 1, 2))
    assert [r.id for r in results] == [2, 3]


def test_find_similar_sorted_with_id_tiebreak():
    store = NeighbourStore([scored(5, 0.5), scored(3, 0.9), scored(2, 0.5)])
    results = run(find_similar(store, 1, 5))
    assert [r.id for r in results] == [3, 2, 5]


def test_find_similar_without_embedding_is_empty():
    assert run(find_similar(NeighbourStore([]), 1, 5)) == []


def test_find_similar_non_positive_count():
    store = NeighbourStore([scored(2, 0.9)])
    assert run(find_similar(store, 1, 0)) == []
    assert store.requested is None


def test_find_similar_backend_failure():
    with pytest.raises(BackendUnavailable):
        run(find_similar(NeighbourStore([], fail=True), 1, 5))


class FullFakeStore(FakeStore, HydrationStore):
    def __init__(self):
        FakeStore.__init__(
            self,
            tags={1: ["和風"], 2: ["スパイシー"]},
            fields={1: ["豚の生姜焼き"], 2: ["鶏肉カレー"]},
        )
        HydrationStore.__init__(
            self,
            records=[record(1, 1, "豚の生姜焼き"), record(2, 2, "鶏肉カレー")],
        )


def test_recipe_search_empty_query():
    store = FullFakeStore()
    assert run(RecipeSearch(store).search("")) == []
    assert run(RecipeSearch(store).search(" 　 ")) == []
    assert store.calls == []


def test_recipe_search_is_idempotent():
    searcher = RecipeSearch(FullFakeStore())
    first = run(searcher.search("豚"))
    second = run(searcher.search("豚"))
    assert [r.id for r in first] == [1]
    assert first == second
