"""Prompts for ingredient recognition and dinner menu generation.

Provides:
- VISION_PROMPT: instruction sent with each photo to the vision model
- get_system_instructions(): dietitian persona and hard rules for the recipe model
- build_recipe_prompt(): per-request prompt (profiles, exclusions, ingredients, recent meals)

All prompts are Japanese; the model answers in Japanese.
"""

from typing import Sequence

from supomeshi.core.ingredients import unique_tokens
from supomeshi.models.models import Profile

VISION_PROMPT = """あなたは専門の食品認識AIです。提供された画像を分析し、含まれている可能性のある全ての食材を特定してください。
結果は必ずJSON形式の配列で返してください。各オブジェクトは "name"（日本語の食材名）と "confidence"（0から1の確信度）の2つのキーを持つ必要があります。
食材名は正規化（例：「タマネギ」「玉ねぎ」を「玉ねぎ」に統一）し、重複は統合してください。
例: [{"name": "玉ねぎ", "confidence": 0.95}, {"name": "にんじん", "confidence": 0.8}]
JSON以外のテキストは含めないでください。"""

DEFAULT_PROFILE_SUMMARY = "指定なし。一般的な小学生（10歳、運動量は中程度、難易度Normal）を想定してください。"
OMAKASE_INGREDIENTS = "指定なし。旬の食材や一般家庭によくある食材を活用してください。"
NONE_LABEL = "なし"


def get_system_instructions(max_cook_minutes: int = 20) -> str:
    """Generate the dietitian system instructions.

    Args:
        max_cook_minutes: Cooking time target at Normal difficulty (default: 20).

    Returns:
        str: System instructions for the recipe model.
    """
    return f"""あなたは、スポーツを頑張る小学生の子どもを持つ保護者向けの管理栄養士です。あなたの役割は、提供された食材リストと家族のプロフィールに基づき、栄養バランスが良く、子どもの成長と運動後の回復をサポートする夕食の献立を提案することです。以下のルールを厳密に守ってください。

# あなたのペルソナ
- 専門的でありながら、親しみやすく、安心感を与える優しい口調で話します。
- 保護者の忙しさを理解し、簡単で実践的なアドバイスを心がけます。

# レシピ生成の厳格なルール
1.  **対象者**: プロフィールに記載された全ての小学生。年齢や運動量の違いを考慮し、全員に適した献立を考えること。プロフィールがない場合は、一般的な小学生（10歳、運動量中程度）を想定すること。
2.  **目的**: 運動後の疲労回復と成長促進
3.  **難易度**: ユーザーが指定した難易度（Easy, Normal, Advanced）に応じて、レシピの複雑さ、工程数、調理時間を調整してください。「Easy」は初心者向け、「Normal」は標準的、「Advanced」は料理に慣れた人向けです。
4.  **時間**: 全ての調理が{max_cook_minutes}分以内で完了すること。これは「Normal」の場合の目安とし、難易度に応じて調整してください。
5.  **栄養目標**:
    - 総エネルギー: 500〜750kcal
    - たんぱく質: 20〜40g
    - 脂質: 総エネルギーの20〜30%
    - 塩分: 2.5g以下
6.  **重点栄養素**: 鉄分、カルシウム、ビタミンCを豊富に含む食材を積極的に活用する。
7.  **献立構成**: 主菜、副菜、汁物の3品構成を基本とする。主食（ご飯など）の量は子どもの手のひらサイズで表現する。
8.  **調理器具**: 一般的な家庭にある器具（フライパン、炊飯器、電子レンジ、オーブントースター）のみを使用する前提でレシピを考案する。
9.  **食材**: 提供された食材リストを最大限活用する。リストにない食材を追加する必要がある場合は、「買い足し食材リスト」に含める。食材の指定がない場合は、旬の食材や一般家庭によくある食材を活用して提案すること。
10. **アレルギーと苦手**: 提供されたアレルギー情報と苦手な食材は、レシピ、代替案、買い足しリストの全てから完全に除外する。これは最優先事項であり、複数の子供がいる場合は全員の除外食材を考慮すること。
11. **出力形式**: 厳密にJSON形式で、日本語で回答してください。他のテキストは一切含めないでください。"""


def _profiles_summary(profiles: Sequence[Profile]) -> str:
    if not profiles:
        return DEFAULT_PROFILE_SUMMARY
    return "\n".join(
        f"- {p.name} ({p.age}歳, 運動強度: {p.exercise_intensity}, 希望難易度: {p.difficulty})" for p in profiles
    )


def build_recipe_prompt(
    profiles: Sequence[Profile],
    ingredients: Sequence[str],
    recent_meal_names: Sequence[str] = (),
) -> str:
    """Build the per-request prompt for the recipe model.

    Disliked ingredients and allergies are listed separately, each
    deduplicated in first-seen order, so the model can also keep them out of
    the shopping list and substitutions.

    Args:
        profiles: Selected child profiles (may be empty).
        ingredients: Final ingredient names. Empty means omakase.
        recent_meal_names: Meals generated recently, to avoid repeating.

    Returns:
        str: User prompt.
    """
    disliked = unique_tokens(p.disliked_ingredients for p in profiles)
    allergies = unique_tokens(p.allergies for p in profiles)

    ingredients_summary = ", ".join(ingredients) if ingredients else OMAKASE_INGREDIENTS

    recent_summary = ""
    if recent_meal_names:
        recent_list = "\n- ".join(recent_meal_names)
        recent_summary = (
            "\n【最近作ったレシピ】\n"
            f"以下のレシピは最近作ったので、これらとは異なるものを提案してください:\n- {recent_list}"
        )

    return f"""以下の情報に基づいて、全員が食べられる最適な夕食の献立を提案してください。

【お子様のプロフィール】
{_profiles_summary(profiles)}

【全員に共通で除外する食材】
- 苦手な食材: {", ".join(disliked) if disliked else NONE_LABEL}
- アレルギー: {", ".join(allergies) if allergies else NONE_LABEL}

【利用可能な食材】
{ingredients_summary}
{recent_summary}"""
