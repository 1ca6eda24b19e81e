import json
from pathlib import Path
from typing import List, Tuple

from . import schemas


def load_recipes(path):
    """Load seed data from a JSON file.

    The file holds either a list of recipes or an object with ``recipes``
    and ``synonyms`` lists.

    Args:
        path (str or Path): Path to the JSON file.

    Returns:
        tuple: (list of RecipeCreate, list of SynonymCreate); both empty
        when the file does not exist.
    """
    p = Path(path)
    if not p.exists():
        return [], []
    with p.open("r", encoding="utf-8") as f:
        data = json.load(f)
    return parse_seed(data)


def parse_seed(
    data,
) -> Tuple[List[schemas.RecipeCreate], List[schemas.SynonymCreate]]:
    if isinstance(data, list):
        data = {"recipes": data}
    recipes = [
        schemas.RecipeCreate.model_validate(r)
        for r in data.get("recipes", [])
    ]
    synonyms = [
        schemas.SynonymCreate.model_validate(s)
        for s in data.get("synonyms", [])
    ]
    return recipes, synonyms
