"""Error kinds surfaced at the request boundary.

Every error is user-recoverable. Each class carries the Japanese message shown
to the user; upstream errors keep the underlying cause on ``__cause__`` for
logging only.
"""

from typing import Optional


class MealCoachError(Exception):
    """Base class for all planner errors."""

    kind = "error"
    default_message = "エラーが発生しました。もう一度お試しください。"

    def __init__(self, message: Optional[str] = None) -> None:
        self.user_message = message or self.default_message
        super().__init__(self.user_message)


class InvalidRequestError(MealCoachError, ValueError):
    """Missing or malformed input. No external call is made."""

    kind = "invalid_request"
    default_message = "入力内容を確認してください。"


class ProfileNotFoundError(InvalidRequestError):
    """The referenced profile id does not exist."""

    kind = "profile_not_found"
    default_message = "指定されたプロフィールが見つかりません。"


class AllIngredientsExcludedError(MealCoachError):
    """Every confirmed ingredient is disliked or an allergen for a selected profile."""

    kind = "all_ingredients_excluded"
    default_message = "苦手・アレルギー食材を除いた結果、使用できる食材がなくなりました。"


class UpstreamParseError(MealCoachError):
    """The AI response did not match the expected structure."""

    kind = "upstream_parse_failure"
    default_message = "AIからの応答を解析できませんでした。もう一度お試しください。"


class UpstreamCallError(MealCoachError):
    """Network or service failure talking to the AI service."""

    kind = "upstream_call_failure"
    default_message = "AIサービスとの通信に失敗しました。もう一度お試しください。"
