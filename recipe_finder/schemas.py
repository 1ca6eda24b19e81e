from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# Rows handed over by the storage layer


class RecipeRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    steps_text: Optional[str] = None
    created_at: datetime


class TagLink(BaseModel):
    recipe_id: int
    tag_id: int
    tag_name: str


class IngredientLink(BaseModel):
    recipe_id: int
    ingredient_id: Optional[int] = None
    original_name: str
    amount: Optional[str] = None
    canonical_name: Optional[str] = None


# Results returned to callers


class TagOut(BaseModel):
    id: int
    name: str = Field(..., json_schema_extra={"example": "和風"})


class IngredientOut(BaseModel):
    id: Optional[int] = None
    original_name: str = Field(..., json_schema_extra={"example": "豚ロース"})
    canonical_name: Optional[str] = None
    amount: Optional[str] = Field(
        default=None, json_schema_extra={"example": "200g"}
    )


class RecipeResult(BaseModel):
    id: int
    title: str = Field(..., json_schema_extra={"example": "豚の生姜焼き"})
    description: Optional[str] = None
    category: Optional[str] = None
    created_at: datetime
    steps_text: str = ""
    tags: List[TagOut] = Field(default_factory=list)
    ingredients: List[IngredientOut] = Field(default_factory=list)


class ScoredRecipe(BaseModel):
    """A neighbour of some recipe.

    ``similarity`` is the cosine similarity of the two embeddings clipped to
    [0, 1]; multiply by 100 for a percentage.
    """

    id: int
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    similarity: float = Field(..., ge=0.0, le=1.0)


# Seeding input


class IngredientCreate(BaseModel):
    name: str = Field(..., json_schema_extra={"example": "鶏もも肉"})
    amount: Optional[str] = None
    note: Optional[str] = None
    # master ingredient; None keeps the line free-form
    canonical_name: Optional[str] = None
    group_name: str = ""


class RecipeCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    steps_text: Optional[str] = None
    created_at: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)
    ingredients: List[IngredientCreate] = Field(default_factory=list)
    embedding: Optional[List[float]] = None


class SynonymCreate(BaseModel):
    synonym: str = Field(..., min_length=1)
    ingredients: List[str] = Field(default_factory=list)


# Response envelopes


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    message: Optional[str] = None


class SearchResponse(BaseModel):
    success: bool = True
    query: str
    count: int
    data: List[RecipeResult]


class SimilarResponse(BaseModel):
    success: bool = True
    recipe_id: int
    count: int
    data: List[ScoredRecipe]


class RecipeListResponse(BaseModel):
    success: bool = True
    total: int
    count: int
    limit: int
    offset: int
    has_more: bool
    data: List[RecipeResult]


class RecipeDetailResponse(BaseModel):
    success: bool = True
    data: RecipeResult
