"""Unit tests for prompt construction."""

from supomeshi.prompts.prompts import (
    DEFAULT_PROFILE_SUMMARY,
    OMAKASE_INGREDIENTS,
    VISION_PROMPT,
    build_recipe_prompt,
    get_system_instructions,
)


class TestSystemInstructions:
    def test_contains_nutrition_targets(self):
        instructions = get_system_instructions()

        assert "500〜750kcal" in instructions
        assert "2.5g以下" in instructions
        assert "20分以内" in instructions

    def test_cook_time_is_configurable(self):
        assert "30分以内" in get_system_instructions(max_cook_minutes=30)


def test_vision_prompt_requests_json_array():
    assert '"confidence"' in VISION_PROMPT
    assert "JSON" in VISION_PROMPT


class TestBuildRecipePrompt:
    """Test the per-request prompt."""

    def test_lists_profiles_and_ingredients(self, make_profile):
        profile = make_profile("1", age=11, exercise_intensity="High", difficulty="Easy")

        prompt = build_recipe_prompt([profile], ["豚肉", "玉ねぎ"])

        assert "- たろう (11歳, 運動強度: High, 希望難易度: Easy)" in prompt
        assert "豚肉, 玉ねぎ" in prompt
        assert "苦手な食材: なし" in prompt
        assert "アレルギー: なし" in prompt

    def test_exclusions_are_deduplicated(self, make_profile):
        profiles = [
            make_profile("1", disliked_ingredients="トマト ピーマン", allergies="えび"),
            make_profile("2", name="はなこ", disliked_ingredients="ピーマン", allergies="えび かに"),
        ]

        prompt = build_recipe_prompt(profiles, ["卵"])

        assert "苦手な食材: トマト, ピーマン" in prompt
        assert "アレルギー: えび, かに" in prompt

    def test_no_profiles_uses_default_child(self):
        assert DEFAULT_PROFILE_SUMMARY in build_recipe_prompt([], ["卵"])

    def test_omakase_without_ingredients(self):
        assert OMAKASE_INGREDIENTS in build_recipe_prompt([], [])

    def test_recent_meals_listed(self, make_profile):
        prompt = build_recipe_prompt([make_profile()], ["卵"], ["カレー", "鍋"])

        assert "【最近作ったレシピ】" in prompt
        assert "- カレー\n- 鍋" in prompt

    def test_no_recent_section_when_empty(self, make_profile):
        assert "最近作ったレシピ" not in build_recipe_prompt([make_profile()], ["卵"])
