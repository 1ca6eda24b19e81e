"""Command line access to the search engine.

    python -m recipe_finder.main search 鶏肉 ヘルシー
    python -m recipe_finder.main similar 12 --limit 5
"""

import argparse
import asyncio
import sys

from .errors import BackendUnavailable
from .search import RecipeSearch
from .store import SqlRecipeStore


def print_recipes(query, recipes):
    if not recipes:
        print("No recipes found matching your query.")
        return
    print(f"Found {len(recipes)} recipe(s) for \"{query}\":\n")
    for r in recipes:
        print("-" * 60)
        print(f"{r.title}")
        print(f"   ID: {r.id}")
        if r.description:
            print(f"   Description: {r.description}")
        if r.category:
            print(f"   Category: {r.category}")
        if r.tags:
            print(f"   Tags: {', '.join(t.name for t in r.tags)}")
        if r.ingredients:
            print(f"   Ingredients ({len(r.ingredients)}):")
            for i, ing in enumerate(r.ingredients, start=1):
                canonical = f" ({ing.canonical_name})" if ing.canonical_name else ""
                print(f"     {i}. {ing.original_name}{canonical} {ing.amount or ''}")
    print("-" * 60)


def print_similar(recipe_id, neighbours):
    if not neighbours:
        print(f"No similar recipes found for recipe {recipe_id}.")
        return
    print(f"Found {len(neighbours)} similar recipe(s):\n")
    for i, r in enumerate(neighbours, start=1):
        print(f"{i}. \"{r.title}\"")
        print(f"   ID: {r.id}")
        print(f"   Category: {r.category or 'N/A'}")
        print(f"   Similarity: {r.similarity * 100:.2f}%")


def build_parser():
    parser = argparse.ArgumentParser(prog="recipe_finder")
    sub = parser.add_subparsers(dest="command", required=True)

    p_search = sub.add_parser("search", help="Search recipes")
    p_search.add_argument("words", nargs="+", help="Search words (AND)")

    p_similar = sub.add_parser("similar", help="Find similar recipes")
    p_similar.add_argument("recipe_id", type=int)
    p_similar.add_argument("--limit", type=int, default=5)
    return parser


def main(argv=None, searcher=None):
    try:
        args = build_parser().parse_args(argv)
    except SystemExit as e:
        # argparse exits 2 on bad usage and 0 after --help
        return 1 if e.code else 0
    searcher = searcher or RecipeSearch(SqlRecipeStore())

    try:
        if args.command == "search":
            query = " ".join(args.words)
            print_recipes(query, asyncio.run(searcher.search(query)))
        else:
            neighbours = asyncio.run(
                searcher.similar_to(args.recipe_id, args.limit)
            )
            print_similar(args.recipe_id, neighbours)
    except BackendUnavailable as e:
        print(f"Search failed: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
