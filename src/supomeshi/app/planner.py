"""Request boundary for one user's meal-planning session.

MealPlanner owns the session state (profiles, selection, ingredients,
confirmed list, recipe, history) and turns user actions into calls to the
pure core and the two AI collaborators.

Every operation either succeeds completely or raises a ``MealCoachError``
and leaves the previous state untouched. Analyze/generate requests are
serialized with an ``asyncio.Lock``; there is no automatic retry here.
"""

import asyncio
from typing import Awaitable, Callable, Optional, Sequence

from supomeshi.core import history as history_core
from supomeshi.core import ingredients as ingredient_core
from supomeshi.models.models import (
    AnalysisResult,
    IngredientObservation,
    PlannerState,
    Profile,
    ProfileDraft,
    Recipe,
    RecipeHistoryItem,
    Step,
)
from supomeshi.services.recipes import RecipeGenerator
from supomeshi.services.vision import analyze_images
from supomeshi.storage.store import (
    PROFILES_COLLECTION,
    RECIPE_HISTORY_COLLECTION,
    CollectionStore,
    load_models,
    save_models,
)
from supomeshi.utils.config import config
from supomeshi.utils.errors import (
    AllIngredientsExcludedError,
    InvalidRequestError,
    MealCoachError,
    ProfileNotFoundError,
    UpstreamCallError,
    UpstreamParseError,
)
from supomeshi.utils.logger import logger

ImageAnalyzer = Callable[[Sequence[str | bytes]], Awaitable[list[list[IngredientObservation]]]]

NO_INPUT_MESSAGE = "画像またはテキストで食材を入力してください。"
NO_PROFILE_FOR_ANALYSIS_MESSAGE = "レシピを提案するお子様を1人以上選択してください。"
NO_PROFILE_FOR_GENERATION_MESSAGE = "レシピを生成するためのお子様が選択されていません。"
NO_INGREDIENTS_MESSAGE = "レシピを生成するための食材がありません。"
ANALYSIS_FAILED_MESSAGE = "食材の解析中にエラーが発生しました。もう一度お試しください。"
GENERATION_FAILED_MESSAGE = "レシピの生成中にエラーが発生しました。もう一度お試しください。"
OMAKASE_FAILED_MESSAGE = "おまかせレシピの生成中にエラーが発生しました。もう一度お試しください。"


class MealPlanner:
    """Stateful facade over the ingredient pipeline and AI collaborators."""

    def __init__(
        self,
        store: CollectionStore,
        generator: Optional[RecipeGenerator] = None,
        analyzer: Optional[ImageAnalyzer] = None,
        clock: history_core.Clock = history_core.system_clock,
        confirm_threshold: Optional[float] = None,
        retention_days: Optional[int] = None,
    ) -> None:
        self.store = store
        self.generator = generator or RecipeGenerator()
        self.analyzer = analyzer or analyze_images
        self.clock = clock
        self.confirm_threshold = (
            config.MIN_INGREDIENT_CONFIDENCE if confirm_threshold is None else confirm_threshold
        )
        self.retention_days = config.HISTORY_RETENTION_DAYS if retention_days is None else retention_days
        self._lock = asyncio.Lock()

        self.profiles: list[Profile] = load_models(store, PROFILES_COLLECTION, Profile)
        loaded_history = load_models(store, RECIPE_HISTORY_COLLECTION, RecipeHistoryItem)
        self.history: list[RecipeHistoryItem] = history_core.retention_filter(
            loaded_history, self.clock(), self.retention_days
        )
        if len(self.history) < len(loaded_history):
            logger.info(f"Dropped {len(loaded_history) - len(self.history)} expired recipe history item(s)")

        self.selected_profile_ids: list[str] = []
        self.ingredients: list[IngredientObservation] = []
        self.confirmed: list[str] = []
        self.recipe: Optional[Recipe] = None
        self.step: Step = "input"

        logger.info(f"Planner ready: {len(self.profiles)} profile(s), {len(self.history)} recent recipe(s)")

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def get_profile(self, profile_id: str) -> Profile:
        for profile in self.profiles:
            if profile.id == profile_id:
                return profile
        raise ProfileNotFoundError()

    def selected_profiles(self) -> list[Profile]:
        """Selected profiles in profile-list order."""
        return [p for p in self.profiles if p.id in self.selected_profile_ids]

    def _new_profile_id(self) -> str:
        """Creation time in epoch ms, bumped past any id already in use."""
        used = {p.id for p in self.profiles}
        candidate = self.clock()
        while str(candidate) in used:
            candidate += 1
        return str(candidate)

    def save_profile(self, draft: ProfileDraft, profile_id: Optional[str] = None) -> Profile:
        """Create a profile (``profile_id`` None) or update an existing one."""
        if profile_id is None:
            profile = Profile(id=self._new_profile_id(), **draft.model_dump())
            self.profiles = [*self.profiles, profile]
            logger.info(f"Profile created: {profile.id}")
        else:
            existing = self.get_profile(profile_id)
            profile = existing.model_copy(update=draft.model_dump())
            self.profiles = [profile if p.id == profile_id else p for p in self.profiles]
            logger.info(f"Profile updated: {profile_id}")

        save_models(self.store, PROFILES_COLLECTION, self.profiles)
        return profile

    def delete_profile(self, profile_id: str) -> None:
        """Delete a profile and drop it from the current selection."""
        self.get_profile(profile_id)
        self.profiles = [p for p in self.profiles if p.id != profile_id]
        self.selected_profile_ids = [pid for pid in self.selected_profile_ids if pid != profile_id]
        save_models(self.store, PROFILES_COLLECTION, self.profiles)
        logger.info(f"Profile deleted: {profile_id}")

    def toggle_profile_selection(self, profile_id: str) -> list[str]:
        self.get_profile(profile_id)
        self.selected_profile_ids = ingredient_core.toggle(self.selected_profile_ids, profile_id)
        return self.selected_profile_ids

    # ------------------------------------------------------------------
    # Ingredients
    # ------------------------------------------------------------------

    async def analyze_ingredients(self, images: Sequence[str | bytes] = (), manual_text: str = "") -> AnalysisResult:
        """Merge photo and text ingredients into a ranked list and initial confirmed list.

        Raises:
            InvalidRequestError: No input at all, no profile selected, or a bad image.
            UpstreamCallError / UpstreamParseError: Image analysis failed.
        """
        if not images and not ingredient_core.tokenize(manual_text):
            raise InvalidRequestError(NO_INPUT_MESSAGE)
        if not self.selected_profile_ids:
            raise InvalidRequestError(NO_PROFILE_FOR_ANALYSIS_MESSAGE)

        async with self._lock:
            vision_observations: list[list[IngredientObservation]] = []
            if images:
                vision_observations = await self._call_upstream(
                    self.analyzer(images), ANALYSIS_FAILED_MESSAGE, "analyze"
                )

            reconciled = ingredient_core.reconcile(manual_text, vision_observations)
            confirmed = ingredient_core.confirmed_names(reconciled, self.confirm_threshold)

            self.ingredients = reconciled
            self.confirmed = confirmed
            self.step = "confirmation"

        logger.info(
            f"Ingredients analyzed: {len(reconciled)} candidate(s), {len(confirmed)} confirmed "
            f"(threshold: {self.confirm_threshold})"
        )
        return AnalysisResult(
            ingredients=reconciled,
            confirmed=confirmed,
            low_confidence=ingredient_core.low_confidence(reconciled, self.confirm_threshold),
        )

    def toggle_ingredient(self, name: str) -> list[str]:
        self.confirmed = ingredient_core.toggle(self.confirmed, name)
        return self.confirmed

    # ------------------------------------------------------------------
    # Recipes
    # ------------------------------------------------------------------

    async def generate_recipe(self) -> Recipe:
        """Generate a menu from the confirmed ingredients minus everyone's exclusions.

        Raises:
            InvalidRequestError: No profile selected or no confirmed ingredients.
            AllIngredientsExcludedError: Every confirmed ingredient is excluded.
            UpstreamCallError / UpstreamParseError: Generation failed.
        """
        profiles = self.selected_profiles()
        if not profiles:
            raise InvalidRequestError(NO_PROFILE_FOR_GENERATION_MESSAGE)
        if not self.confirmed:
            raise InvalidRequestError(NO_INGREDIENTS_MESSAGE)

        exclusions = ingredient_core.compute_exclusions(profiles)
        final_ingredients = ingredient_core.filter_excluded(self.confirmed, exclusions)
        if not final_ingredients:
            logger.info(f"All {len(self.confirmed)} confirmed ingredient(s) excluded by profiles")
            raise AllIngredientsExcludedError()

        return await self._generate(profiles, final_ingredients, GENERATION_FAILED_MESSAGE)

    async def generate_omakase_recipe(self) -> Recipe:
        """Generate a menu without an ingredient list; profiles are optional."""
        return await self._generate(self.selected_profiles(), [], OMAKASE_FAILED_MESSAGE)

    async def _generate(self, profiles: list[Profile], ingredients: list[str], failure_message: str) -> Recipe:
        async with self._lock:
            recent = self.recent_meal_names()
            recipe = await self._call_upstream(
                self.generator.generate(profiles, ingredients, recent), failure_message, "generate"
            )

            self.recipe = recipe
            self.history = history_core.record_generation(
                self.history, recipe.meal_name, self.clock(), self.retention_days
            )
            save_models(self.store, RECIPE_HISTORY_COLLECTION, self.history)
            self.step = "result"
        return recipe

    async def _call_upstream(self, awaitable: Awaitable, failure_message: str, step: str):
        """Await a collaborator call, re-raising failures with a user-facing message.

        Invalid requests pass through unchanged. Upstream failures keep their
        kind and cause; the cause is logged, never shown.
        """
        try:
            return await awaitable
        except InvalidRequestError:
            raise
        except UpstreamParseError as e:
            logger.error(
                f"{step} failed: unparseable AI response",
                exc_info=e,
                extra={"step": step, "error_kind": e.kind},
            )
            raise UpstreamParseError(failure_message) from (e.__cause__ or e)
        except MealCoachError as e:
            logger.error(f"{step} failed: {e}", exc_info=e, extra={"step": step, "error_kind": e.kind})
            raise UpstreamCallError(failure_message) from (e.__cause__ or e)
        except Exception as e:
            logger.error(f"{step} failed unexpectedly: {e}", exc_info=e, extra={"step": step})
            raise UpstreamCallError(failure_message) from e

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def recent_meal_names(self) -> list[str]:
        return history_core.recent_meal_names(self.history, self.clock(), self.retention_days)

    def restart(self) -> None:
        """Start over: clear ingredients, recipe and selection. Profiles and history stay."""
        self.ingredients = []
        self.confirmed = []
        self.recipe = None
        self.selected_profile_ids = []
        self.step = "input"

    def state(self) -> PlannerState:
        return PlannerState(
            step=self.step,
            profiles=self.profiles,
            selected_profile_ids=self.selected_profile_ids,
            ingredients=self.ingredients,
            confirmed=self.confirmed,
            recipe=self.recipe,
            recent_meal_names=self.recent_meal_names(),
        )
