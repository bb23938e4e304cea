"""Collection Services - Weight, nutrition and legacy diet logs.

Services validate caller input before touching storage, then delegate to
the record store. Nutrition and the legacy diet log are one service with
two configurations.
"""

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from pydantic import ValidationError

from ..core.errors import InvalidInput
from ..core.models import NutritionSettings, WeightEntry
from ..core.records import (
    DIET,
    DIET_SETTINGS,
    NUTRITION,
    NUTRITION_SETTINGS,
    WEIGHT,
    Collection,
    is_missing,
    merge_settings,
    parse_number,
)
from .record_store import RecordStore


logger = logging.getLogger(__name__)

MACRO_FIELDS = ("protein", "carbs", "fats")


class WeightService:
    """Body-weight log, kept in ascending date order."""

    def __init__(self, records: RecordStore) -> None:
        self._records = records

    def list_entries(self, user_id: str) -> list[WeightEntry]:
        return self._records.read_all(user_id, WEIGHT)

    def add(self, user_id: str, date: Any, weight: Any) -> WeightEntry:
        """Log a weight measurement.

        Args:
            user_id: The user's ID
            date: ISO calendar date (YYYY-MM-DD)
            weight: Numeric weight or numeric string

        Returns:
            The stored entry with its id

        Raises:
            InvalidInput: If date or weight is missing or not usable
        """
        if is_missing(date) or is_missing(weight):
            raise InvalidInput("Date and weight are required")
        value = parse_number(weight)
        if not value:
            raise InvalidInput("Date and weight are required")
        try:
            entry = WeightEntry(date=date, weight=value)
        except ValidationError as e:
            raise InvalidInput("Invalid date") from e

        stored, _ = self._records.append(user_id, WEIGHT, entry)
        return stored

    def remove(self, user_id: str, entry_id: int) -> None:
        self._records.remove_by_id(user_id, WEIGHT, entry_id)


@dataclass(frozen=True)
class EntryLogConfig:
    """Field layout of a food log flavour.

    Attributes:
        entries: Collection holding the log entries
        settings: Collection holding the goals
        category_field: Wire name of the meal category field
        name_field: Wire name of the food name field
        truthy_calories: Treat zero calories as missing
    """

    entries: Collection
    settings: Collection
    category_field: str
    name_field: str
    truthy_calories: bool = False


NUTRITION_LOG = EntryLogConfig(
    entries=NUTRITION,
    settings=NUTRITION_SETTINGS,
    category_field="type",
    name_field="name",
)

DIET_LOG = EntryLogConfig(
    entries=DIET,
    settings=DIET_SETTINGS,
    category_field="meal",
    name_field="foodName",
    truthy_calories=True,
)


class EntryLogService:
    """Food log with per-user goals, newest date first."""

    def __init__(self, records: RecordStore, config: EntryLogConfig) -> None:
        self._records = records
        self.config = config

    def list_entries(self, user_id: str) -> list:
        return self._records.read_all(user_id, self.config.entries)

    def _parse_calories(self, raw: Any) -> float:
        if self.config.truthy_calories:
            # Zero calories counts as missing in the legacy log.
            if not raw:
                raise InvalidInput()
            calories = parse_number(raw)
            if calories is None:
                raise InvalidInput("Calories must be a number")
            return calories
        if raw is None:
            raise InvalidInput()
        return parse_number(raw) or 0

    def build_entry(self, fields: Mapping[str, Any]):
        """Validate a submitted entry form into a record (without id).

        Raises:
            InvalidInput: If date, category, name or calories are missing
        """
        cfg = self.config
        if not isinstance(fields, Mapping):
            raise InvalidInput("Invalid data format")
        for key in ("date", cfg.category_field, cfg.name_field):
            if is_missing(fields.get(key)):
                raise InvalidInput()

        data = {
            "date": fields["date"],
            cfg.category_field: fields[cfg.category_field],
            cfg.name_field: fields[cfg.name_field],
            "calories": self._parse_calories(fields.get("calories")),
        }
        for macro in MACRO_FIELDS:
            data[macro] = parse_number(fields.get(macro)) or 0

        try:
            return cfg.entries.model.model_validate(data)
        except ValidationError as e:
            raise InvalidInput("Invalid entry: %s" % e.errors()[0]["msg"]) from e

    def add(self, user_id: str, fields: Mapping[str, Any]):
        """Log one food item.

        Args:
            user_id: The user's ID
            fields: Form fields using this log's wire names

        Returns:
            The stored entry with its id
        """
        entry = self.build_entry(fields)
        stored, _ = self._records.append(user_id, self.config.entries, entry)
        return stored

    def remove(self, user_id: str, entry_id: int) -> None:
        self._records.remove_by_id(user_id, self.config.entries, entry_id)

    def replace_all(self, user_id: str, items: Any) -> list:
        """Replace the whole log with a client-side copy.

        Args:
            user_id: The user's ID
            items: List of entry dicts; entries without an id get one

        Returns:
            The stored entries

        Raises:
            InvalidInput: If items is not a list or an item is malformed
        """
        if not isinstance(items, list):
            raise InvalidInput("Invalid data format")
        model = self.config.entries.model
        try:
            entries = [model.model_validate(item) for item in items]
        except ValidationError as e:
            raise InvalidInput("Invalid data format") from e
        return self._records.write_all(user_id, self.config.entries, entries)

    def get_settings(self, user_id: str) -> NutritionSettings:
        """Return the user's goals, or the defaults if never saved."""
        settings = self._records.read_one(user_id, self.config.settings)
        return settings if settings is not None else NutritionSettings()

    def save_settings(self, user_id: str, payload: Any) -> NutritionSettings:
        """Update the user's goals field by field.

        Missing or non-numeric fields keep their current value (the
        defaults on a first save); the request itself is never rejected.

        Returns:
            The stored settings
        """
        if not isinstance(payload, Mapping):
            payload = {}
        return self._records.update_one(
            user_id,
            self.config.settings,
            lambda current: merge_settings(current, payload),
        )
