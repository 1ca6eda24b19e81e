from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)

from .db import Base


class Recipe(Base):
    __tablename__ = "recipes"
    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False, index=True)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)
    steps_text = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    embedding = Column(Text, nullable=True)  # JSON-encoded list of floats


class Ingredient(Base):
    __tablename__ = "ingredients"
    id = Column(Integer, primary_key=True, index=True)
    canonical_name = Column(String(200), unique=True, nullable=False)
    normalized_name = Column(String(200), nullable=False, index=True)
    group_name = Column(String(100), nullable=False, default="")


class RecipeIngredient(Base):
    __tablename__ = "recipe_ingredients"
    id = Column(Integer, primary_key=True)
    recipe_id = Column(
        Integer, ForeignKey("recipes.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    # null when the line was never matched to a master ingredient
    ingredient_id = Column(
        Integer, ForeignKey("ingredients.id"), nullable=True, index=True
    )
    original_name = Column(String(200), nullable=False)
    amount = Column(String(100), nullable=True)
    note = Column(Text, nullable=True)


class Tag(Base):
    __tablename__ = "tags"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    normalized_name = Column(String(100), nullable=False, index=True)
    sort_order = Column(Integer, nullable=False, default=0)


class RecipeTag(Base):
    __tablename__ = "recipe_tags"
    __table_args__ = (UniqueConstraint("recipe_id", "tag_id"),)
    id = Column(Integer, primary_key=True)
    recipe_id = Column(
        Integer, ForeignKey("recipes.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    tag_id = Column(Integer, ForeignKey("tags.id"), nullable=False)


class Synonym(Base):
    __tablename__ = "synonyms"
    id = Column(Integer, primary_key=True)
    synonym = Column(String(200), unique=True, nullable=False)
    created_at = Column(DateTime, nullable=True, server_default=func.now())


class IngredientSynonym(Base):
    __tablename__ = "ingredient_synonyms"
    __table_args__ = (UniqueConstraint("ingredient_id", "synonym_id"),)
    id = Column(Integer, primary_key=True)
    ingredient_id = Column(
        Integer, ForeignKey("ingredients.id"), nullable=False, index=True
    )
    synonym_id = Column(
        Integer, ForeignKey("synonyms.id"), nullable=False, index=True
    )
    created_at = Column(DateTime, nullable=True, server_default=func.now())
