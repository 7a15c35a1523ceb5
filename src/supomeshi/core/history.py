"""Recipe history retention.

History items older than the retention window are dropped whenever the
history is read or written. ``now`` is always passed in (epoch milliseconds)
so callers control the clock.
"""

import time
from typing import Callable, Sequence

from supomeshi.models.models import RecipeHistoryItem

DAY_MS = 24 * 60 * 60 * 1000
DEFAULT_RETENTION_DAYS = 30

Clock = Callable[[], int]


def system_clock() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def retention_filter(
    history: Sequence[RecipeHistoryItem],
    now: int,
    retention_days: int = DEFAULT_RETENTION_DAYS,
) -> list[RecipeHistoryItem]:
    """Keep items with ``generated_at > now - retention window`` (strict)."""
    cutoff = now - retention_days * DAY_MS
    return [item for item in history if item.generated_at > cutoff]


def record_generation(
    history: Sequence[RecipeHistoryItem],
    meal_name: str,
    now: int,
    retention_days: int = DEFAULT_RETENTION_DAYS,
) -> list[RecipeHistoryItem]:
    """Append a meal generated at ``now``, then apply the retention filter.

    The new item is stamped with ``now`` itself, so the filter never drops it.
    """
    appended = [*history, RecipeHistoryItem(meal_name=meal_name, generated_at=now)]
    return retention_filter(appended, now, retention_days)


def recent_meal_names(
    history: Sequence[RecipeHistoryItem],
    now: int,
    retention_days: int = DEFAULT_RETENTION_DAYS,
) -> list[str]:
    """Meal names inside the window, oldest first, duplicates kept."""
    return [item.meal_name for item in retention_filter(history, now, retention_days)]
