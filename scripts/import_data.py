import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))  # noqa: E402

from recipe_finder import crud  # noqa: E402
from recipe_finder.db import SessionLocal, init_db  # noqa: E402
from recipe_finder.recipes import load_recipes  # noqa: E402


def main():
    init_db()
    p = Path(__file__).resolve().parents[1] / 'data' / 'recipes.json'
    if not p.exists():
        print('data/recipes.json not found')
        return
    recipes, synonyms = load_recipes(p)
    db = SessionLocal()
    added = 0
    try:
        for recipe in recipes:
            if crud.get_recipe_by_title(db, recipe.title):
                continue
            crud.create_recipe(db, recipe)
            added += 1
        for synonym in synonyms:
            crud.add_synonym(db, synonym)
    finally:
        db.close()
    print(f'Imported {added} recipes, {len(synonyms)} synonyms')


if __name__ == '__main__':
    main()
