"""Core Data Models - Pydantic models for type safety.

Records travel and persist with camelCase field names, the format the web
frontend already speaks. Python code uses the snake_case attribute names.
"""

from datetime import datetime, timezone
from datetime import date as DateType
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base for records exchanged with the frontend."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        allow_inf_nan=False,
    )

    def to_json(self) -> dict:
        """Dump with wire field names and JSON-safe values."""
        return self.model_dump(mode="json", by_alias=True)


class User(BaseModel):
    """Credential record. The raw password never reaches this model."""

    id: str = Field(pattern=r"^[0-9a-f]{32}$", description="Stable user id (uuid4 hex)")
    username: str = Field(min_length=1, description="Unique, case-sensitive login name")
    email: str = Field(default="", description="Optional contact address")
    password_hash: str = Field(min_length=1, description="bcrypt hash - never store plaintext")
    created_at: datetime = Field(default_factory=utc_now)


class Session(BaseModel):
    """An authenticated session bound to a user id."""

    user_id: str
    username: str
    created_at: datetime
    expires_at: datetime


class WeightEntry(CamelModel):
    """A single body-weight measurement."""

    id: Optional[int] = Field(default=None, description="Assigned by the record store")
    date: DateType = Field(description="Calendar date of the measurement (YYYY-MM-DD)")
    weight: float


class NutritionEntry(CamelModel):
    """A single food item logged against a meal category."""

    id: Optional[int] = None
    date: DateType
    type: str = Field(min_length=1, description="Meal category (breakfast, lunch, ...)")
    name: str = Field(min_length=1, description="Name of the food")
    calories: float = 0
    protein: float = 0
    carbs: float = 0
    fats: float = 0


class DietEntry(CamelModel):
    """Legacy diet log entry, same data as NutritionEntry under older names."""

    id: Optional[int] = None
    date: DateType
    meal: str = Field(min_length=1)
    food_name: str = Field(min_length=1)
    calories: float = 0
    protein: float = 0
    carbs: float = 0
    fats: float = 0


class NutritionSettings(CamelModel):
    """Daily nutrition goals. Also used for the legacy diet settings."""

    calorie_goal: float = 2000
    protein_goal: float = 150
    carbs_goal: float = 200
    fats_goal: float = 65
