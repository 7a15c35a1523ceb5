"""Data models and schemas for Supomeshi Coach.

Defines Pydantic models for domain objects, persisted collections and the
HTTP request/response payloads. All models use Pydantic v2.

Attributes are snake_case in Python and camelCase on the wire and on disk
(``mealName``, ``generatedAt``, ``dislikedIngredients`` ...), so files written
by earlier versions of the app load unchanged.
"""

from typing import Annotated, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


ExerciseIntensity = Literal["None", "Light", "Medium", "High"]
Difficulty = Literal["Easy", "Normal", "Advanced"]
Step = Literal["input", "confirmation", "result"]


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class IngredientObservation(CamelModel):
    """One ingredient candidate with the certainty that it is actually on hand.

    Manual text entries always carry confidence 1.0. Vision results are
    clamped into [0.0, 1.0] on construction.
    """

    name: Annotated[str, Field(min_length=1, description="Ingredient name")]
    confidence: Annotated[float, Field(description="Confidence score (0.0-1.0)")]

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v) -> float:
        """Clamp numeric confidence into [0.0, 1.0]."""
        if isinstance(v, bool):
            raise ValueError("confidence must be numeric")
        try:
            f = float(v)
        except (TypeError, ValueError):
            raise ValueError(f"confidence must be numeric, got: {v!r}")
        return min(1.0, max(0.0, f))


class ProfileDraft(CamelModel):
    """Editable fields of a child profile (everything except the id).

    ``disliked_ingredients`` and ``allergies`` are free text, whitespace
    delimited, e.g. ``"トマト ピーマン"``.
    """

    name: Annotated[str, Field(min_length=1, max_length=50, description="Child's name")]
    age: Annotated[int, Field(ge=1, le=99, description="Age in years")] = 10
    exercise_intensity: Annotated[ExerciseIntensity, Field(description="Daily exercise intensity")] = "Medium"
    difficulty: Annotated[Difficulty, Field(description="Preferred recipe difficulty")] = "Normal"
    disliked_ingredients: Annotated[str, Field(max_length=500, description="Whitespace-separated disliked ingredients")] = ""
    allergies: Annotated[str, Field(max_length=500, description="Whitespace-separated allergens")] = ""


class Profile(ProfileDraft):
    """Persisted child profile."""

    id: Annotated[str, Field(min_length=1, description="Profile identifier (creation time in epoch ms)")]


class Nutrition(CamelModel):
    """Approximate nutrition of the whole menu, as display strings."""

    energy: Annotated[str, Field(description="総エネルギー（例：約650kcal）")]
    protein: Annotated[str, Field(description="たんぱく質量（例：約30g）")]
    fat: Annotated[str, Field(description="脂質量（例：約20g）")]
    carbs: Annotated[str, Field(description="炭水化物量（例：約80g）")]


class Recipe(CamelModel):
    """Dinner menu returned by the recipe generator.

    Field descriptions double as instructions for the model's structured output.
    """

    meal_name: Annotated[str, Field(description="献立名（例：疲労回復！スタミナ満点定食）")]
    main_dish: Annotated[str, Field(description="主菜の料理名")]
    side_dish: Annotated[str, Field(description="副菜の料理名")]
    soup: Annotated[str, Field(description="汁物の料理名")]
    staple_amount: Annotated[
        str,
        Field(description="主食（ご飯など）の量の目安を、子供の手のひらサイズで表現（例：子供の手のひら1.5杯分）"),
    ]
    cook_time: Annotated[str, Field(description="全体の調理にかかる時間（例：約20分）")]
    nutrition: Nutrition
    nutritionist_comment: Annotated[
        str, Field(description="この献立がなぜ運動後の子供に適しているかの栄養士からのコメント")
    ]
    shopping_list: Annotated[
        List[str], Field(description="利用可能な食材以外で、追加購入が必要な食材のリスト")
    ]
    alternative_ingredients: Annotated[
        List[str], Field(description="特定の食材がない場合の代替案のリスト")
    ]
    tips_for_kids: Annotated[str, Field(description="子供が食べやすくなるような工夫や声かけのポイント")]


class RecipeHistoryItem(CamelModel):
    """A generated meal name with its generation time (epoch milliseconds)."""

    meal_name: Annotated[str, Field(min_length=1)]
    generated_at: Annotated[int, Field(ge=0, description="Generation time in epoch milliseconds")]


# ============================================================================
# HTTP payloads
# ============================================================================


def _is_valid_image(image_str: str) -> bool:
    """Check if image string is a URL, a data URI or plain base64."""
    if not image_str:
        return False

    if image_str.startswith(("http://", "https://", "data:")):
        return True

    if all(c in "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/=" for c in image_str):
        return len(image_str) % 4 == 0

    return False


class AnalyzeRequest(CamelModel):
    """Ingredient analysis input: free text and/or images.

    Emptiness and the image count (MAX_IMAGES) are checked downstream and
    reported as invalid requests.
    """

    manual_text: Annotated[str, Field(max_length=2000, description="Whitespace-separated ingredient names")] = ""
    images: Annotated[
        List[str],
        Field(default_factory=list, description="Image URLs, data URIs or base64 strings (count limited by MAX_IMAGES)"),
    ]

    @field_validator("images", mode="before")
    @classmethod
    def parse_images(cls, images: Optional[str | list[str]]) -> list[str]:
        """Normalize comma-separated string or list into a validated list."""
        if not images:
            return []

        if isinstance(images, str):
            image_list = [img.strip() for img in images.split(",") if img.strip()]
        else:
            image_list = [img.strip() if isinstance(img, str) else str(img) for img in images if img]

        for img in image_list:
            if not _is_valid_image(img):
                raise ValueError(
                    f"Invalid image: must be a URL (http/https) or base64-encoded data. Got: {img[:50]}..."
                )
        return image_list


class ToggleIngredientRequest(CamelModel):
    """Name to add to or remove from the confirmed list."""

    name: Annotated[str, Field(min_length=1)]


class AnalysisResult(CamelModel):
    """Outcome of an analysis: the full ranked list and its confirmed subset."""

    ingredients: List[IngredientObservation]
    confirmed: List[str]
    low_confidence: List[IngredientObservation]


class PlannerState(CamelModel):
    """Snapshot of one planner session."""

    step: Step
    profiles: List[Profile]
    selected_profile_ids: List[str]
    ingredients: List[IngredientObservation]
    confirmed: List[str]
    recipe: Optional[Recipe] = None
    recent_meal_names: List[str]


class ErrorResponse(CamelModel):
    """Body returned for every planner error."""

    error: str
    kind: str
