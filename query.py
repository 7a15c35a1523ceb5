#!/usr/bin/env python3
"""Ad hoc runner for Supomeshi Coach.

Analyze ingredients and generate a dinner menu without starting the API server.

Usage:
    python query.py --text "豚肉 玉ねぎ にんじん" --profile 1700000000000
    python query.py --image images/fridge.jpg --profile 1700000000000
    python query.py --omakase                     # No ingredients, seasonal staples
    python query.py --debug --text "鶏むね肉"      # Show full JSON response
    python query.py --stateless --omakase          # Do not read or write DATA_DIR

Profiles and recipe history are read from (and history written to) DATA_DIR.
With no --profile flag, every saved profile is selected.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown

from supomeshi.app.planner import MealPlanner
from supomeshi.models.models import Recipe
from supomeshi.storage.store import InMemoryStore, JsonFileStore
from supomeshi.utils.config import config
from supomeshi.utils.errors import MealCoachError
from supomeshi.utils.logger import logger

console = Console()


def format_recipe(recipe: Recipe) -> str:
    """Render a recipe as markdown."""
    shopping = "\n".join(f"- {item}" for item in recipe.shopping_list) or "- なし"
    alternatives = "\n".join(f"- {item}" for item in recipe.alternative_ingredients) or "- なし"
    return f"""# {recipe.meal_name}

| | |
|---|---|
| 主菜 | {recipe.main_dish} |
| 副菜 | {recipe.side_dish} |
| 汁物 | {recipe.soup} |
| 主食の量 | {recipe.staple_amount} |
| 調理時間 | {recipe.cook_time} |

## 栄養価（目安）

エネルギー {recipe.nutrition.energy} / たんぱく質 {recipe.nutrition.protein} / 脂質 {recipe.nutrition.fat} / 炭水化物 {recipe.nutrition.carbs}

## 管理栄養士からのコメント

{recipe.nutritionist_comment}

## 買い足し食材

{shopping}

## 代替食材

{alternatives}

## 子どもが食べやすくなる工夫

{recipe.tips_for_kids}
"""


def load_images(paths: list[str]) -> list[bytes]:
    images = []
    for image_path in paths:
        image_file = Path(image_path)
        if not image_file.exists():
            console.print(f"[red]✗ Error: Image file not found: {image_path}[/red]")
            sys.exit(1)
        images.append(image_file.read_bytes())
        logger.info(f"✓ Loaded image: {image_file.name} ({len(images[-1]) / 1024:.1f} KB)")
    return images


async def run_query(
    image_paths: list[str],
    text: str,
    profile_ids: list[str],
    omakase: bool = False,
    debug: bool = False,
    stateless: bool = False,
) -> None:
    """Run analyze then generate once and print the recipe."""
    store = InMemoryStore() if stateless else JsonFileStore(config.DATA_DIR)
    planner = MealPlanner(store=store)

    for profile_id in profile_ids or [p.id for p in planner.profiles]:
        planner.toggle_profile_selection(profile_id)
    names = ", ".join(p.name for p in planner.selected_profiles()) or "(none)"
    logger.info(f"Selected profiles: {names}")

    if omakase:
        recipe = await planner.generate_omakase_recipe()
    else:
        result = await planner.analyze_ingredients(load_images(image_paths), text)
        console.print(f"[bold]確定食材:[/bold] {', '.join(result.confirmed) or 'なし'}")
        if result.low_confidence:
            unsure = ", ".join(f"{o.name} ({o.confidence:.0%})" for o in result.low_confidence)
            console.print(f"[dim]確信度の低い候補: {unsure}[/dim]")
        recipe = await planner.generate_recipe()

    console.print()
    if debug:
        console.print("[bold cyan]Debug Mode: Full Response[/bold cyan]")
        console.print("[dim]" + "=" * 60 + "[/dim]")
        console.print_json(data=recipe.model_dump(by_alias=True))
        console.print("[dim]" + "=" * 60 + "[/dim]")
        console.print()

    console.print(Markdown(format_recipe(recipe)))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate a post-exercise dinner menu")
    parser.add_argument("--image", action="append", default=[], metavar="PATH", help="Ingredient photo (repeatable)")
    parser.add_argument("--text", default="", help="Whitespace-separated ingredient names")
    parser.add_argument("--profile", action="append", default=[], metavar="ID", help="Profile id (repeatable)")
    parser.add_argument("--omakase", action="store_true", help="Generate without an ingredient list")
    parser.add_argument("--debug", action="store_true", help="Show full JSON response")
    parser.add_argument("--stateless", action="store_true", help="Use an empty in-memory store")
    return parser


if __name__ == "__main__":
    args = build_parser().parse_args()
    if not args.omakase and not args.image and not args.text.strip():
        build_parser().print_usage()
        print("Error: provide --image and/or --text, or use --omakase")
        sys.exit(1)

    try:
        asyncio.run(
            run_query(args.image, args.text, args.profile, omakase=args.omakase, debug=args.debug, stateless=args.stateless)
        )
    except MealCoachError as e:
        logger.error(f"Query failed ({e.kind}): {e.user_message}", exc_info=e.__cause__ is not None)
        console.print(f"[red]✗ {e.user_message}[/red]")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("\nQuery interrupted by user.")
        sys.exit(0)
