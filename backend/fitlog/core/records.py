"""Record Rules - Pure functions for collection ordering, ids and coercion.

All functions are pure: same input always produces same output, no side effects.
"""

import math
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, TypeVar

from pydantic import BaseModel

from .models import DietEntry, NutritionEntry, NutritionSettings, WeightEntry


R = TypeVar("R", bound=BaseModel)


@dataclass(frozen=True)
class Collection:
    """A named per-user collection and the shape/order of its records.

    Attributes:
        name: Storage key under the user's namespace
        model: Pydantic model of one record
        descending: Sort newest date first when True
        singleton: Holds one settings record instead of a sequence
    """

    name: str
    model: type[BaseModel]
    descending: bool = False
    singleton: bool = False


WEIGHT = Collection("weight", WeightEntry)
NUTRITION = Collection("nutrition", NutritionEntry, descending=True)
DIET = Collection("diet", DietEntry, descending=True)
NUTRITION_SETTINGS = Collection("nutrition_settings", NutritionSettings, singleton=True)
DIET_SETTINGS = Collection("diet_settings", NutritionSettings, singleton=True)


def sort_records(records: Iterable[R], descending: bool = False) -> list[R]:
    """Stable sort of dated records.

    Records with the same date keep their relative insertion order in
    both directions.

    Args:
        records: Records that have a ``date`` attribute
        descending: Newest first when True

    Returns:
        New sorted list
    """
    return sorted(records, key=lambda r: r.date, reverse=descending)


def next_record_id(existing_ids: Iterable[int | None], now_ms: int) -> int:
    """Pick the id for a new record in a collection.

    Ids follow creation time in milliseconds but never repeat or go
    backwards within one collection, even for records created in the same
    millisecond or after a clock step back.

    Args:
        existing_ids: Ids already present in the collection
        now_ms: Current time in epoch milliseconds

    Returns:
        New unique id
    """
    highest = max((i for i in existing_ids if i is not None), default=0)
    return max(now_ms, highest + 1)


def parse_number(value: Any) -> float | None:
    """Parse a numeric form field leniently.

    Accepts ints, floats and numeric strings. Booleans, NaN, infinities and
    anything non-numeric yield None.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def is_missing(value: Any) -> bool:
    """True for absent or blank form values (None or whitespace-only strings)."""
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def merge_settings(current: NutritionSettings, payload: Mapping[str, Any]) -> NutritionSettings:
    """Apply a settings form on top of the current goals.

    Each goal is taken from the payload when it parses to a non-zero
    number, otherwise the current value is kept. A bad field never rejects
    the whole update.

    Args:
        current: Stored settings, or defaults for a first save
        payload: Raw form data keyed by camelCase (or snake_case) names

    Returns:
        Updated settings
    """
    updates: dict[str, float] = {}
    for name, field in NutritionSettings.model_fields.items():
        raw = payload.get(field.alias or name, payload.get(name))
        number = parse_number(raw)
        if number:
            updates[name] = number
    return current.model_copy(update=updates)
