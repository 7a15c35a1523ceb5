"""Dinner menu generation with an Agno Agent backed by Gemini.

The agent is stateless (no session db, no memories): everything the model
needs travels in the prompt built by ``build_recipe_prompt``. The response
is constrained to the ``Recipe`` schema via ``output_schema``.
"""

import json
from typing import Optional, Sequence

from agno.agent import Agent
from agno.models.google import Gemini
from pydantic import ValidationError

from supomeshi.models.models import Profile, Recipe
from supomeshi.prompts.prompts import build_recipe_prompt, get_system_instructions
from supomeshi.utils.config import config
from supomeshi.utils.errors import UpstreamCallError, UpstreamParseError
from supomeshi.utils.logger import logger


def create_recipe_agent() -> Agent:
    """Factory function for the dinner menu agent.

    Returns:
        Configured Agent instance producing ``Recipe`` content.
    """
    logger.info(f"Configuring recipe agent (model: {config.RECIPE_MODEL})...")

    agent = Agent(
        # === Model Configuration ===
        model=Gemini(
            id=config.RECIPE_MODEL,
            api_key=config.GEMINI_API_KEY,
            temperature=config.TEMPERATURE,
            max_output_tokens=config.MAX_OUTPUT_TOKENS,
        ),
        # === Input/Output Schemas ===
        output_schema=Recipe,
        structured_outputs=True,  # Native Gemini JSON schema output
        # === Instructions ===
        instructions=get_system_instructions(),
        # === Retry & Error Handling ===
        retries=config.MAX_RETRIES - 1,  # MAX_RETRIES counts total attempts
        exponential_backoff=True,
        delay_between_retries=config.DELAY_BETWEEN_RETRIES,
        # === Metadata ===
        name="Supomeshi Recipe Agent",
        description="Plans post-exercise dinner menus for school-age children",
    )

    logger.info("✓ Recipe agent configured")
    return agent


def parse_recipe_content(content) -> Recipe:
    """Coerce agent run content into a ``Recipe``.

    Accepts a Recipe instance, a dict, or a JSON string (optionally fenced).

    Raises:
        UpstreamParseError: Content is missing or does not match the schema.
    """
    if isinstance(content, Recipe):
        return content

    if isinstance(content, str):
        cleaned = content.strip().removeprefix("```json").removeprefix("```").removesuffix("```").strip()
        try:
            content = json.loads(cleaned)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse recipe response: {cleaned[:200]}")
            raise UpstreamParseError() from e

    if not isinstance(content, dict):
        logger.warning(f"Unexpected recipe response type: {type(content).__name__}")
        raise UpstreamParseError()

    try:
        return Recipe.model_validate(content)
    except ValidationError as e:
        logger.warning(f"Recipe response failed validation: {e.error_count()} error(s)")
        raise UpstreamParseError() from e


class RecipeGenerator:
    """Recipe generation collaborator.

    The agent is created on first use so constructing the planner does not
    touch the network.
    """

    def __init__(self, agent: Optional[Agent] = None) -> None:
        self._agent = agent

    @property
    def agent(self) -> Agent:
        if self._agent is None:
            self._agent = create_recipe_agent()
        return self._agent

    async def generate(
        self,
        profiles: Sequence[Profile],
        ingredients: Sequence[str],
        recent_meal_names: Sequence[str] = (),
    ) -> Recipe:
        """Generate one dinner menu.

        Args:
            profiles: Selected child profiles (empty: generic 10-year-old).
            ingredients: Ingredients to use (empty: omakase).
            recent_meal_names: Meals to avoid repeating.

        Raises:
            UpstreamCallError: The agent run failed.
            UpstreamParseError: The response does not match the Recipe schema.
        """
        prompt = build_recipe_prompt(profiles, ingredients, recent_meal_names)
        logger.debug(
            f"Generating recipe: profiles={len(profiles)}, ingredients={len(ingredients)}, "
            f"recent_meals={len(recent_meal_names)}"
        )

        try:
            run_output = await self.agent.arun(prompt)
        except Exception as e:
            logger.warning(f"Recipe agent run failed: {e}")
            raise UpstreamCallError() from e

        recipe = parse_recipe_content(getattr(run_output, "content", None))
        logger.info(f"Recipe generated: {recipe.meal_name}")
        return recipe
