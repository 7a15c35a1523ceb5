"""Unit tests for the MealPlanner request boundary.

Collaborators are mocked: the analyzer is an AsyncMock and the generator a
MagicMock with an async ``generate``. The clock is a settable fake.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from supomeshi.app.planner import (
    ANALYSIS_FAILED_MESSAGE,
    GENERATION_FAILED_MESSAGE,
    OMAKASE_FAILED_MESSAGE,
    MealPlanner,
)
from supomeshi.core.history import DAY_MS
from supomeshi.models.models import IngredientObservation, ProfileDraft
from supomeshi.storage.store import PROFILES_COLLECTION, RECIPE_HISTORY_COLLECTION, InMemoryStore
from supomeshi.utils.errors import (
    AllIngredientsExcludedError,
    InvalidRequestError,
    ProfileNotFoundError,
    UpstreamCallError,
    UpstreamParseError,
)


class FakeClock:
    def __init__(self, now: int) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def clock(now_ms):
    return FakeClock(now_ms)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def generator(sample_recipe):
    mock = MagicMock()
    mock.generate = AsyncMock(return_value=sample_recipe)
    return mock


@pytest.fixture
def analyzer():
    return AsyncMock(return_value=[])


@pytest.fixture
def planner(store, generator, analyzer, clock):
    return MealPlanner(
        store=store,
        generator=generator,
        analyzer=analyzer,
        clock=clock,
        confirm_threshold=0.6,
        retention_days=30,
    )


def add_selected_profile(planner, clock, name="たろう", **fields):
    profile = planner.save_profile(ProfileDraft(name=name, **fields))
    planner.toggle_profile_selection(profile.id)
    return profile


class TestLoad:
    def test_loads_profiles_and_prunes_history(self, generator, analyzer, clock, now_ms):
        store = InMemoryStore(
            {
                PROFILES_COLLECTION: [{"id": "1", "name": "たろう"}],
                RECIPE_HISTORY_COLLECTION: [
                    {"mealName": "古い献立", "generatedAt": now_ms - 31 * DAY_MS},
                    {"mealName": "カレー", "generatedAt": now_ms - DAY_MS},
                ],
            }
        )

        planner = MealPlanner(store=store, generator=generator, analyzer=analyzer, clock=clock)

        assert [p.name for p in planner.profiles] == ["たろう"]
        assert planner.recent_meal_names() == ["カレー"]
        assert planner.state().step == "input"


class TestProfiles:
    """Test profile CRUD and selection."""

    def test_create_uses_clock_id_and_persists(self, planner, store, clock, now_ms):
        profile = planner.save_profile(ProfileDraft(name="たろう", allergies="えび"))

        assert profile.id == str(now_ms)
        assert store.read_all(PROFILES_COLLECTION)[0]["allergies"] == "えび"
        assert store.read_all(PROFILES_COLLECTION)[0]["exerciseIntensity"] == "Medium"

    def test_same_clock_value_gives_distinct_ids(self, planner, store, now_ms):
        first = planner.save_profile(ProfileDraft(name="たろう"))
        second = planner.save_profile(ProfileDraft(name="はなこ"))

        assert first.id == str(now_ms)
        assert second.id == str(now_ms + 1)
        assert [p["id"] for p in store.read_all(PROFILES_COLLECTION)] == [first.id, second.id]

        planner.toggle_profile_selection(second.id)
        assert planner.selected_profile_ids == [second.id]

        planner.delete_profile(first.id)
        assert [p.name for p in planner.profiles] == ["はなこ"]
        assert planner.selected_profile_ids == [second.id]

    def test_update_existing(self, planner, store):
        profile = planner.save_profile(ProfileDraft(name="たろう"))

        updated = planner.save_profile(ProfileDraft(name="たろう", age=12, difficulty="Easy"), profile_id=profile.id)

        assert updated.id == profile.id
        assert updated.age == 12
        assert len(planner.profiles) == 1
        assert store.read_all(PROFILES_COLLECTION)[0]["age"] == 12

    def test_update_unknown_profile(self, planner):
        with pytest.raises(ProfileNotFoundError):
            planner.save_profile(ProfileDraft(name="たろう"), profile_id="missing")

    def test_delete_also_deselects(self, planner, store, clock):
        profile = add_selected_profile(planner, clock)

        planner.delete_profile(profile.id)

        assert planner.profiles == []
        assert planner.selected_profile_ids == []
        assert store.read_all(PROFILES_COLLECTION) == []

    def test_delete_unknown_profile(self, planner):
        with pytest.raises(ProfileNotFoundError):
            planner.delete_profile("missing")

    def test_toggle_selection(self, planner, clock):
        profile = add_selected_profile(planner, clock)
        assert planner.selected_profile_ids == [profile.id]

        planner.toggle_profile_selection(profile.id)
        assert planner.selected_profile_ids == []

    def test_toggle_unknown_profile(self, planner):
        with pytest.raises(ProfileNotFoundError):
            planner.toggle_profile_selection("missing")


class TestAnalyzeIngredients:
    """Test analysis preconditions and reconciliation."""

    @pytest.mark.asyncio
    async def test_requires_some_input(self, planner, analyzer, clock):
        add_selected_profile(planner, clock)

        with pytest.raises(InvalidRequestError):
            await planner.analyze_ingredients([], "   ")

        analyzer.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_requires_selected_profile(self, planner, analyzer):
        with pytest.raises(InvalidRequestError):
            await planner.analyze_ingredients([], "豚肉")

        analyzer.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_manual_text_only_skips_vision(self, planner, analyzer, clock):
        add_selected_profile(planner, clock)

        result = await planner.analyze_ingredients([], "豚肉 玉ねぎ にんじん")

        analyzer.assert_not_awaited()
        assert result.confirmed == ["豚肉", "玉ねぎ", "にんじん"]
        assert all(o.confidence == 1.0 for o in result.ingredients)
        assert planner.step == "confirmation"

    @pytest.mark.asyncio
    async def test_long_manual_token_is_accepted(self, planner, analyzer, clock):
        add_selected_profile(planner, clock)
        long_name = "x" * 101

        result = await planner.analyze_ingredients([], f"玉ねぎ {long_name}")

        assert result.confirmed == ["玉ねぎ", long_name]
        assert planner.step == "confirmation"

    @pytest.mark.asyncio
    async def test_merges_vision_and_manual(self, planner, analyzer, clock):
        add_selected_profile(planner, clock)
        analyzer.return_value = [
            [IngredientObservation(name="玉ねぎ", confidence=0.9), IngredientObservation(name="しいたけ", confidence=0.4)]
        ]

        result = await planner.analyze_ingredients(["aGVsbG8="], "玉ねぎ")

        analyzer.assert_awaited_once_with(["aGVsbG8="])
        assert [(o.name, o.confidence) for o in result.ingredients] == [("玉ねぎ", 1.0), ("しいたけ", 0.4)]
        assert result.confirmed == ["玉ねぎ"]
        assert [o.name for o in result.low_confidence] == ["しいたけ"]
        assert planner.confirmed == ["玉ねぎ"]

    @pytest.mark.asyncio
    async def test_upstream_failure_keeps_state(self, planner, analyzer, clock):
        add_selected_profile(planner, clock)
        await planner.analyze_ingredients([], "卵")
        analyzer.side_effect = UpstreamCallError()

        with pytest.raises(UpstreamCallError) as exc_info:
            await planner.analyze_ingredients(["aGVsbG8="], "")

        assert exc_info.value.user_message == ANALYSIS_FAILED_MESSAGE
        assert planner.confirmed == ["卵"]
        assert planner.step == "confirmation"

    @pytest.mark.asyncio
    async def test_parse_failure_keeps_kind(self, planner, analyzer, clock):
        add_selected_profile(planner, clock)
        analyzer.side_effect = UpstreamParseError()

        with pytest.raises(UpstreamParseError) as exc_info:
            await planner.analyze_ingredients(["aGVsbG8="], "")

        assert exc_info.value.user_message == ANALYSIS_FAILED_MESSAGE

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_call_error(self, planner, analyzer, clock):
        add_selected_profile(planner, clock)
        analyzer.side_effect = KeyError("boom")

        with pytest.raises(UpstreamCallError) as exc_info:
            await planner.analyze_ingredients(["aGVsbG8="], "")

        assert isinstance(exc_info.value.__cause__, KeyError)

    @pytest.mark.asyncio
    async def test_invalid_image_passes_through(self, planner, analyzer, clock):
        add_selected_profile(planner, clock)
        analyzer.side_effect = InvalidRequestError("1枚目の画像を読み込めませんでした。")

        with pytest.raises(InvalidRequestError, match="1枚目"):
            await planner.analyze_ingredients(["aGVsbG8="], "")


class TestToggleIngredient:
    @pytest.mark.asyncio
    async def test_promote_and_remove(self, planner, clock):
        add_selected_profile(planner, clock)
        await planner.analyze_ingredients([], "卵")

        assert planner.toggle_ingredient("しいたけ") == ["卵", "しいたけ"]
        assert planner.toggle_ingredient("卵") == ["しいたけ"]


class TestGenerateRecipe:
    """Test generation preconditions, exclusions and history recording."""

    @pytest.mark.asyncio
    async def test_requires_selected_profile(self, planner, generator):
        planner.confirmed = ["卵"]

        with pytest.raises(InvalidRequestError):
            await planner.generate_recipe()

        generator.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_requires_confirmed_ingredients(self, planner, generator, clock):
        add_selected_profile(planner, clock)

        with pytest.raises(InvalidRequestError):
            await planner.generate_recipe()

        generator.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_all_ingredients_excluded(self, planner, generator, clock):
        add_selected_profile(planner, clock, disliked_ingredients="トマト")
        add_selected_profile(planner, clock, name="はなこ", allergies="えび")
        await planner.analyze_ingredients([], "トマト えび")

        with pytest.raises(AllIngredientsExcludedError):
            await planner.generate_recipe()

        generator.generate.assert_not_awaited()
        assert planner.recipe is None

    @pytest.mark.asyncio
    async def test_generates_with_filtered_ingredients(self, planner, generator, store, clock, sample_recipe):
        first = add_selected_profile(planner, clock, disliked_ingredients="トマト")
        second = add_selected_profile(planner, clock, name="はなこ", allergies="えび")
        await planner.analyze_ingredients([], "トマト 玉ねぎ えび")

        recipe = await planner.generate_recipe()

        assert recipe == sample_recipe
        profiles, ingredients, recent = generator.generate.await_args.args
        assert [p.id for p in profiles] == [first.id, second.id]
        assert ingredients == ["玉ねぎ"]
        assert recent == []
        assert planner.step == "result"
        assert planner.recent_meal_names() == [sample_recipe.meal_name]
        stored = store.read_all(RECIPE_HISTORY_COLLECTION)
        assert stored == [{"mealName": sample_recipe.meal_name, "generatedAt": clock.now}]

    @pytest.mark.asyncio
    async def test_passes_recent_meal_names(self, planner, generator, clock, sample_recipe):
        add_selected_profile(planner, clock)
        await planner.analyze_ingredients([], "卵")
        await planner.generate_recipe()
        clock.now += DAY_MS

        await planner.generate_recipe()

        assert generator.generate.await_args.args[2] == [sample_recipe.meal_name]

    @pytest.mark.asyncio
    async def test_failure_leaves_state_untouched(self, planner, generator, store, clock):
        add_selected_profile(planner, clock)
        await planner.analyze_ingredients([], "卵")
        generator.generate.side_effect = UpstreamCallError()

        with pytest.raises(UpstreamCallError) as exc_info:
            await planner.generate_recipe()

        assert exc_info.value.user_message == GENERATION_FAILED_MESSAGE
        assert planner.recipe is None
        assert planner.step == "confirmation"
        assert planner.history == []
        assert store.read_all(RECIPE_HISTORY_COLLECTION) == []

    @pytest.mark.asyncio
    async def test_requests_are_serialized(self, planner, generator, clock, sample_recipe):
        add_selected_profile(planner, clock)
        await planner.analyze_ingredients([], "卵")
        in_flight = 0
        max_in_flight = 0

        async def slow_generate(*args):
            nonlocal in_flight, max_in_flight
            in_flight += 1
            max_in_flight = max(max_in_flight, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return sample_recipe

        generator.generate.side_effect = slow_generate

        await asyncio.gather(planner.generate_recipe(), planner.generate_recipe())

        assert max_in_flight == 1
        assert len(planner.history) == 2


class TestOmakase:
    @pytest.mark.asyncio
    async def test_no_profiles_no_ingredients(self, planner, generator, sample_recipe):
        recipe = await planner.generate_omakase_recipe()

        assert recipe == sample_recipe
        assert generator.generate.await_args.args[:2] == ([], [])
        assert planner.step == "result"
        assert planner.recent_meal_names() == [sample_recipe.meal_name]

    @pytest.mark.asyncio
    async def test_uses_selected_profiles(self, planner, generator, clock):
        profile = add_selected_profile(planner, clock)

        await planner.generate_omakase_recipe()

        assert [p.id for p in generator.generate.await_args.args[0]] == [profile.id]

    @pytest.mark.asyncio
    async def test_failure_message(self, planner, generator):
        generator.generate.side_effect = UpstreamParseError()

        with pytest.raises(UpstreamParseError) as exc_info:
            await planner.generate_omakase_recipe()

        assert exc_info.value.user_message == OMAKASE_FAILED_MESSAGE


class TestRestartAndState:
    @pytest.mark.asyncio
    async def test_restart_keeps_profiles_and_history(self, planner, clock, sample_recipe):
        add_selected_profile(planner, clock)
        await planner.analyze_ingredients([], "卵")
        await planner.generate_recipe()

        planner.restart()
        state = planner.state()

        assert state.step == "input"
        assert state.ingredients == []
        assert state.confirmed == []
        assert state.recipe is None
        assert state.selected_profile_ids == []
        assert len(state.profiles) == 1
        assert state.recent_meal_names == [sample_recipe.meal_name]
