"""Pytest configuration and shared fixtures.

Config is validated at import time, so a dummy GEMINI_API_KEY is set before
any ``supomeshi`` module is collected. No test talks to Gemini.
"""

import os

import pytest


def pytest_configure(config):
    """Set environment before test collection imports the package."""
    os.environ.setdefault("GEMINI_API_KEY", "test-gemini-key")
    os.environ["DELAY_BETWEEN_RETRIES"] = "1"
    os.environ["LOG_LEVEL"] = "WARNING"


@pytest.fixture
def now_ms():
    """Fixed clock value: 2024-01-31T00:00:00Z in epoch milliseconds."""
    return 1706659200000


@pytest.fixture
def make_profile():
    """Factory for Profile objects with sensible defaults."""
    from supomeshi.models.models import Profile

    def _make(profile_id: str = "1", name: str = "たろう", **overrides):
        return Profile(id=profile_id, name=name, **overrides)

    return _make


@pytest.fixture
def sample_recipe():
    from supomeshi.models.models import Recipe

    return Recipe.model_validate(
        {
            "mealName": "疲労回復！豚しょうが焼き定食",
            "mainDish": "豚肉のしょうが焼き",
            "sideDish": "にんじんのごま和え",
            "soup": "豆腐とわかめの味噌汁",
            "stapleAmount": "子供の手のひら1.5杯分",
            "cookTime": "約20分",
            "nutrition": {"energy": "約650kcal", "protein": "約30g", "fat": "約20g", "carbs": "約80g"},
            "nutritionistComment": "豚肉のビタミンB1が疲労回復を助けます。",
            "shoppingList": ["しょうが"],
            "alternativeIngredients": ["豚肉がなければ鶏むね肉"],
            "tipsForKids": "一緒に味噌を溶いてもらいましょう。",
        }
    )
