"""
Wire models for the recipe API.

Fields are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Share(WireModel):
    """A read grant on a recipe for one user."""

    user_id: str
    email: str
    created_at: datetime


class Recipe(WireModel):
    """A recipe as returned by the API.

    Generated recipes have no ``id`` until they are saved.
    """

    id: Optional[str] = None
    owner_id: Optional[str] = None
    owner_email: Optional[str] = None
    title: str
    ingredients: List[str] = Field(default_factory=list)
    instructions: List[str] = Field(default_factory=list)
    prep_time_minutes: Optional[int] = None
    cook_time_minutes: Optional[int] = None
    servings: Optional[int] = None
    created_at: Optional[datetime] = None
    shares: Optional[List[Share]] = None

    @property
    def persisted(self) -> bool:
        return self.id is not None

    def to_save_request(self) -> "SaveRecipeRequest":
        return SaveRecipeRequest(
            title=self.title,
            ingredients=self.ingredients,
            instructions=self.instructions,
            prep_time_minutes=self.prep_time_minutes,
            cook_time_minutes=self.cook_time_minutes,
            servings=self.servings,
        )


def _require_ingredient(value: List[str]) -> List[str]:
    if not any(item.strip() for item in value):
        raise ValueError("at least one non-empty ingredient is required")
    return value


class GenerateRecipeRequest(WireModel):
    ingredients: List[str]
    dietary_restrictions: Optional[List[str]] = None

    @field_validator("ingredients")
    @classmethod
    def _validate_ingredients(cls, value: List[str]) -> List[str]:
        return _require_ingredient(value)


class SaveRecipeRequest(WireModel):
    title: str = Field(min_length=1)
    ingredients: List[str]
    instructions: List[str] = Field(min_length=1)
    prep_time_minutes: Optional[int] = Field(default=None, ge=0, le=300)
    cook_time_minutes: Optional[int] = Field(default=None, ge=0, le=600)
    servings: Optional[int] = Field(default=None, ge=1, le=50)

    @field_validator("ingredients")
    @classmethod
    def _validate_ingredients(cls, value: List[str]) -> List[str]:
        return _require_ingredient(value)


class ShareRequest(WireModel):
    email: str

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str) -> str:
        value = value.strip()
        local, _, domain = value.partition("@")
        if not local or "." not in domain:
            raise ValueError("a valid email address is required")
        return value
