"""Ingredient reconciliation, confirmed-list editing and exclusion filtering.

Pure functions over plain data:
- tokenize(): split free text on whitespace runs
- manual_observations(): text tokens as confidence-1.0 observations
- reconcile(): merge manual + vision observations, keep max confidence per name
- confirmed_names(): names at or above the confidence threshold
- toggle(): add/remove one name from the confirmed list
- compute_exclusions(): disliked + allergy tokens of the selected profiles
- filter_excluded(): drop excluded names (exact string match only)
"""

from typing import Iterable, Sequence

from supomeshi.models.models import IngredientObservation, Profile

MANUAL_CONFIDENCE = 1.0
DEFAULT_CONFIRM_THRESHOLD = 0.6


def tokenize(text: str | None) -> list[str]:
    """Split text on runs of whitespace, dropping empty tokens.

    Args:
        text: Free text such as ``"豚肉 玉ねぎ　にんじん"`` (ideographic spaces count).

    Returns:
        Tokens in their original order. Empty list for blank or missing text.
    """
    if not text:
        return []
    return [token.strip() for token in text.split() if token.strip()]


def manual_observations(manual_text: str | None) -> list[IngredientObservation]:
    """Turn manually typed ingredients into full-confidence observations."""
    return [IngredientObservation(name=name, confidence=MANUAL_CONFIDENCE) for name in tokenize(manual_text)]


def reconcile(
    manual_text: str | None,
    vision_observations: Iterable[Sequence[IngredientObservation]] = (),
) -> list[IngredientObservation]:
    """Merge manual and vision observations into a ranked, deduplicated list.

    Manual entries are scanned first, then every vision list in order. A later
    observation replaces a stored one only when its confidence is strictly
    greater, so on ties the first-seen entry wins (manual beats vision).

    Args:
        manual_text: Whitespace-delimited ingredient names typed by the user.
        vision_observations: Zero or more observation lists from image analysis.

    Returns:
        One observation per unique (case-sensitive) name, sorted by confidence
        descending. Equal confidences keep first-seen order.
    """
    combined: list[IngredientObservation] = manual_observations(manual_text)
    for observations in vision_observations:
        combined.extend(observations)

    by_name: dict[str, IngredientObservation] = {}
    for observation in combined:
        current = by_name.get(observation.name)
        if current is None or current.confidence < observation.confidence:
            by_name[observation.name] = observation

    # sorted() is stable, so ties stay in map insertion order
    return sorted(by_name.values(), key=lambda obs: obs.confidence, reverse=True)


def confirmed_names(
    reconciled: Sequence[IngredientObservation],
    threshold: float = DEFAULT_CONFIRM_THRESHOLD,
) -> list[str]:
    """Names of observations with confidence >= threshold, in ranked order."""
    return [obs.name for obs in reconciled if obs.confidence >= threshold]


def low_confidence(
    reconciled: Sequence[IngredientObservation],
    threshold: float = DEFAULT_CONFIRM_THRESHOLD,
) -> list[IngredientObservation]:
    """Observations below the threshold, offered to the user as suggestions."""
    return [obs for obs in reconciled if obs.confidence < threshold]


def toggle(confirmed: Sequence[str], name: str) -> list[str]:
    """Remove ``name`` if present, otherwise append it.

    Names that were never in the reconciled list are accepted; this is how a
    low-confidence suggestion gets promoted.

    Returns:
        A new list. The input is not modified.
    """
    if name in confirmed:
        return [existing for existing in confirmed if existing != name]
    return [*confirmed, name]


def compute_exclusions(profiles: Iterable[Profile]) -> set[str]:
    """Union of disliked and allergy tokens across the given profiles."""
    exclusions: set[str] = set()
    for profile in profiles:
        exclusions.update(tokenize(profile.disliked_ingredients))
        exclusions.update(tokenize(profile.allergies))
    return exclusions


def filter_excluded(confirmed: Sequence[str], exclusions: set[str] | frozenset[str]) -> list[str]:
    """Keep confirmed names whose exact string is not excluded.

    No normalization or substring matching: excluding "トマト" keeps "ミニトマト".
    """
    return [name for name in confirmed if name not in exclusions]


def unique_tokens(texts: Iterable[str]) -> list[str]:
    """Tokens of several texts, deduplicated in first-seen order."""
    return list(dict.fromkeys(token for text in texts for token in tokenize(text)))
