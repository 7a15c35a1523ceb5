"""Supomeshi Coach - HTTP service.

Single entry point for the meal planning API:
- Loads profiles and recipe history from the JSON store (DATA_DIR)
- Builds the MealPlanner (Gemini vision + recipe agent)
- Serves the REST API with uvicorn

Run with: python app.py
"""

import uvicorn

from supomeshi.api.routes import create_app
from supomeshi.app.planner import MealPlanner
from supomeshi.storage.store import JsonFileStore
from supomeshi.utils.config import config
from supomeshi.utils.logger import logger

logger.info(f"Using JSON store: {config.DATA_DIR}")
planner = MealPlanner(store=JsonFileStore(config.DATA_DIR))
app = create_app(planner)


if __name__ == "__main__":
    logger.info(f"Starting Supomeshi Coach on port {config.PORT}")
    logger.info(f"Vision model: {config.IMAGE_DETECTION_MODEL}, recipe model: {config.RECIPE_MODEL}")
    logger.info(f"API docs available at: http://localhost:{config.PORT}/docs")
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
