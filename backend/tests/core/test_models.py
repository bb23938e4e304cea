"""Unit tests for data models - validation, defaults and wire names."""

import pytest
from datetime import date
from pydantic import ValidationError

from fitlog.core.models import (
    DietEntry,
    NutritionEntry,
    NutritionSettings,
    User,
    WeightEntry,
)


class TestWeightEntry:
    """Tests for WeightEntry model."""

    def test_parses_iso_date_string(self):
        """ISO date strings become dates."""
        entry = WeightEntry(date="2024-03-01", weight=80.5)
        assert entry.date == date(2024, 3, 1)
        assert entry.id is None

    def test_invalid_date_rejected(self):
        """Non-dates are rejected."""
        with pytest.raises(ValidationError):
            WeightEntry(date="yesterday", weight=80)

    def test_to_json(self):
        """Dump uses plain JSON values."""
        entry = WeightEntry(id=7, date=date(2024, 3, 1), weight=80.5)
        assert entry.to_json() == {"id": 7, "date": "2024-03-01", "weight": 80.5}


class TestNutritionEntry:
    """Tests for NutritionEntry model."""

    def test_macros_default_to_zero(self):
        """Missing macros default to 0."""
        entry = NutritionEntry(date="2024-03-01", type="lunch", name="Rice", calories=200)
        assert entry.protein == 0
        assert entry.carbs == 0
        assert entry.fats == 0

    def test_empty_name_rejected(self):
        """Empty name is rejected."""
        with pytest.raises(ValidationError):
            NutritionEntry(date="2024-03-01", type="lunch", name="")

    @pytest.mark.parametrize("calories", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_rejected(self, calories):
        """NaN and infinities cannot be stored or sent as JSON."""
        with pytest.raises(ValidationError):
            NutritionEntry(date="2024-03-01", type="lunch", name="Rice", calories=calories)


class TestDietEntry:
    """Tests for DietEntry model."""

    def test_accepts_camel_case(self):
        """Legacy wire name foodName maps to food_name."""
        entry = DietEntry.model_validate(
            {"date": "2024-03-01", "meal": "dinner", "foodName": "Soup", "calories": 150}
        )
        assert entry.food_name == "Soup"

    def test_dumps_camel_case(self):
        """Dump uses foodName, not food_name."""
        entry = DietEntry(date="2024-03-01", meal="dinner", food_name="Soup", calories=150)
        data = entry.to_json()
        assert data["foodName"] == "Soup"
        assert "food_name" not in data


class TestNutritionSettings:
    """Tests for NutritionSettings model."""

    def test_defaults(self):
        """Defaults match the standard goals."""
        settings = NutritionSettings()
        assert settings.to_json() == {
            "calorieGoal": 2000,
            "proteinGoal": 150,
            "carbsGoal": 200,
            "fatsGoal": 65,
        }


class TestUser:
    """Tests for User model."""

    def test_valid_user(self):
        """Valid user gets a creation timestamp."""
        user = User(id="a" * 32, username="alice", password_hash="$2b$hash")
        assert user.email == ""
        assert user.created_at is not None

    def test_malformed_id_rejected(self):
        """Ids must be 32 lowercase hex characters."""
        with pytest.raises(ValidationError):
            User(id="../etc", username="alice", password_hash="$2b$hash")
