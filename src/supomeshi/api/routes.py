"""FastAPI surface for the meal planner.

One ``MealPlanner`` backs the app (single-user session). Planner errors are
returned as ``{"error": <message>, "kind": <kind>}``; the underlying cause of
upstream failures only goes to the log.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from supomeshi.app.planner import MealPlanner
from supomeshi.models.models import (
    AnalysisResult,
    AnalyzeRequest,
    ErrorResponse,
    PlannerState,
    Profile,
    ProfileDraft,
    Recipe,
    ToggleIngredientRequest,
)
from supomeshi.utils.errors import (
    AllIngredientsExcludedError,
    InvalidRequestError,
    MealCoachError,
    ProfileNotFoundError,
)
from supomeshi.utils.logger import logger


def status_for(error: MealCoachError) -> int:
    """HTTP status code for a planner error."""
    if isinstance(error, ProfileNotFoundError):
        return 404
    if isinstance(error, InvalidRequestError):
        return 400
    if isinstance(error, AllIngredientsExcludedError):
        return 422
    return 502


def _error_response(status_code: int, message: str, kind: str) -> JSONResponse:
    body = ErrorResponse(error=message, kind=kind)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def create_app(planner: MealPlanner) -> FastAPI:
    """Build the FastAPI app around a planner instance."""
    app = FastAPI(title="Supomeshi Coach", version="1.0.0")
    app.state.planner = planner

    @app.exception_handler(MealCoachError)
    async def meal_coach_error_handler(request: Request, exc: MealCoachError):
        status_code = status_for(exc)
        logger.info(f"{request.method} {request.url.path} -> {status_code} ({exc.kind})")
        return _error_response(status_code, exc.user_message, exc.kind)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        logger.info(f"{request.method} {request.url.path} -> 400 ({len(errors)} validation error(s))")
        detail = errors[0].get("msg", "") if errors else ""
        message = InvalidRequestError.default_message
        if detail:
            message = f"{message} ({detail})"
        return _error_response(400, message, InvalidRequestError.kind)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    # === Profiles ===

    @app.get("/profiles", response_model=list[Profile])
    async def list_profiles():
        return planner.profiles

    @app.post("/profiles", response_model=Profile, status_code=201)
    async def create_profile(draft: ProfileDraft):
        return planner.save_profile(draft)

    @app.put("/profiles/{profile_id}", response_model=Profile)
    async def update_profile(profile_id: str, draft: ProfileDraft):
        return planner.save_profile(draft, profile_id=profile_id)

    @app.delete("/profiles/{profile_id}", status_code=204)
    async def delete_profile(profile_id: str):
        planner.delete_profile(profile_id)

    @app.post("/profiles/{profile_id}/select")
    async def select_profile(profile_id: str):
        return {"selectedProfileIds": planner.toggle_profile_selection(profile_id)}

    # === Ingredients ===

    @app.post("/ingredients/analyze", response_model=AnalysisResult)
    async def analyze_ingredients(body: AnalyzeRequest):
        return await planner.analyze_ingredients(body.images, body.manual_text)

    @app.post("/ingredients/toggle")
    async def toggle_ingredient(body: ToggleIngredientRequest):
        return {"confirmed": planner.toggle_ingredient(body.name)}

    # === Recipes ===

    @app.post("/recipes/generate", response_model=Recipe)
    async def generate_recipe():
        return await planner.generate_recipe()

    @app.post("/recipes/omakase", response_model=Recipe)
    async def generate_omakase_recipe():
        return await planner.generate_omakase_recipe()

    @app.get("/history")
    async def recent_meals():
        return {"recentMealNames": planner.recent_meal_names()}

    # === Session ===

    @app.get("/state", response_model=PlannerState)
    async def state():
        return planner.state()

    @app.post("/restart", response_model=PlannerState)
    async def restart():
        planner.restart()
        return planner.state()

    return app
