from __future__ import annotations

import logging
import math
import re
from typing import Any, List, Optional

from recipe_import.app.config import Settings, settings as default_settings
from recipe_import.app.domain.errors import ModelDeclinedExtractionError, ParseFailureError
from recipe_import.app.domain.models import ExtractedRecipe, ExtractionMethod, Ingredient

logger = logging.getLogger(__name__)

DEFAULT_AMOUNT = 1.0
DEFAULT_UNIT = "piece"
DEFAULT_SERVINGS = 4
_ALLOWED_DIFFICULTIES = {"easy", "medium", "hard"}

VULGAR_FRACTIONS = {
    "½": 1 / 2,
    "⅓": 1 / 3,
    "⅔": 2 / 3,
    "¼": 1 / 4,
    "¾": 3 / 4,
    "⅕": 1 / 5,
    "⅖": 2 / 5,
    "⅗": 3 / 5,
    "⅘": 4 / 5,
    "⅙": 1 / 6,
    "⅚": 5 / 6,
    "⅛": 1 / 8,
    "⅜": 3 / 8,
    "⅝": 5 / 8,
    "⅞": 7 / 8,
}

_FRACTION_CHARS = "".join(VULGAR_FRACTIONS)

# Leading quantity, first alternative wins: "1 1/2", "1/2", "0.5", "1,5", "1½", "2 cups", "½"
_AMOUNT_PATTERN = re.compile(
    r"^\s*(?:"
    r"(?P<mixed_whole>\d+)\s+(?P<mixed_num>\d+)\s*/\s*(?P<mixed_den>\d+)"
    r"|(?P<num>\d+)\s*/\s*(?P<den>\d+)"
    r"|(?P<whole>\d+(?:[.,]\d+)?)\s*(?P<whole_vulgar>[" + _FRACTION_CHARS + r"])?"
    r"|(?P<vulgar>[" + _FRACTION_CHARS + r"])"
    r")"
)


def _ratio(num: str, den: str) -> Optional[float]:
    return int(num) / int(den) if int(den) else None


def parse_amount(value: Any) -> float:
    """Coerce a model-provided amount to a number; unparseable values become 1."""
    if isinstance(value, bool):
        return DEFAULT_AMOUNT
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) and value >= 0 else DEFAULT_AMOUNT
    if not isinstance(value, str):
        return DEFAULT_AMOUNT

    try:
        amount = _parse_amount_text(value)
    except (OverflowError, ValueError):
        return DEFAULT_AMOUNT
    return amount if math.isfinite(amount) else DEFAULT_AMOUNT


def _parse_amount_text(value: str) -> float:
    m = _AMOUNT_PATTERN.match(value)
    if not m:
        return DEFAULT_AMOUNT

    if m.group("mixed_whole"):
        fraction = _ratio(m.group("mixed_num"), m.group("mixed_den"))
        return DEFAULT_AMOUNT if fraction is None else int(m.group("mixed_whole")) + fraction
    if m.group("num"):
        fraction = _ratio(m.group("num"), m.group("den"))
        return DEFAULT_AMOUNT if fraction is None else fraction
    if m.group("whole"):
        whole = float(m.group("whole").replace(",", "."))
        vulgar = m.group("whole_vulgar")
        return whole + (VULGAR_FRACTIONS[vulgar] if vulgar else 0.0)
    return VULGAR_FRACTIONS[m.group("vulgar")]


def _to_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        try:
            return int(float(value))
        except (TypeError, ValueError, OverflowError):
            return None


def _clean_str(value: Any) -> Optional[str]:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _sanitize_tags(value: Any, provenance: str) -> List[str]:
    out: List[str] = []
    seen: set[str] = set()
    items = value if isinstance(value, list) else []
    for item in [*items, provenance]:
        text = _clean_str(item) if isinstance(item, str) else None
        if text and text.lower() not in seen:
            seen.add(text.lower())
            out.append(text)
    return out


def _sanitize_ingredients(value: Any) -> List[Ingredient]:
    if not isinstance(value, list):
        return []
    items: List[Ingredient] = []
    for index, entry in enumerate(value):
        if isinstance(entry, str):
            entry = {"name": entry}
        if not isinstance(entry, dict):
            continue
        items.append(
            Ingredient(
                name=_clean_str(entry.get("name")) or f"Ingredient {index + 1}",
                amount=parse_amount(entry.get("amount")),
                unit=_clean_str(entry.get("unit")) or DEFAULT_UNIT,
                optional=entry.get("optional") is True,
            )
        )
    return items


def _sanitize_steps(value: Any) -> List[str]:
    if isinstance(value, str):
        value = value.splitlines()
    if not isinstance(value, list):
        return []
    steps: List[str] = []
    for entry in value:
        if isinstance(entry, dict):
            entry = entry.get("text") or entry.get("description") or entry.get("step")
        text = _clean_str(entry) if isinstance(entry, str) else None
        if text:
            steps.append(text)
    return steps


def _to_minutes(value: Any) -> Optional[int]:
    minutes = _to_int(value)
    return minutes if minutes is not None and minutes >= 0 else None


def _difficulty(value: Any) -> Optional[str]:
    text = _clean_str(value)
    return text.lower() if text and text.lower() in _ALLOWED_DIFFICULTIES else None


def _confidence(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return default
    try:
        number = float(value)
    except ValueError:
        return default
    return number if math.isfinite(number) else default


def normalize_recipe(
    payload: Any,
    source_url: str,
    source_platform: str,
    method: ExtractionMethod,
    config: Settings = default_settings,
) -> ExtractedRecipe:
    """Turn the model's JSON object into a canonical recipe.

    Raises:
        ModelDeclinedExtractionError: The payload carries an ``error`` marker.
        ParseFailureError: The payload is not an object or has no title.
    """
    if not isinstance(payload, dict):
        raise ParseFailureError("Model output is not a JSON object")

    if payload.get("error"):
        raise ModelDeclinedExtractionError(str(payload["error"]))

    title = _clean_str(payload.get("title"))
    if not title:
        raise ParseFailureError("no recipe title")

    confidence = _confidence(payload.get("confidence"), config.DEFAULT_CONFIDENCE)
    confidence = min(1.0, max(0.0, confidence))
    if method is ExtractionMethod.VISUAL_FALLBACK:
        confidence *= config.VISUAL_FALLBACK_PENALTY

    servings = _to_int(payload.get("servings"))

    return ExtractedRecipe(
        title=title,
        description=_clean_str(payload.get("description")) or "",
        source_url=source_url,
        source_platform=source_platform,
        extraction_confidence=confidence,
        ingredients=_sanitize_ingredients(payload.get("ingredients")),
        instructions=_sanitize_steps(payload.get("instructions")),
        servings=servings if servings and servings > 0 else DEFAULT_SERVINGS,
        prep_time=_to_minutes(payload.get("prepTime")),
        cook_time=_to_minutes(payload.get("cookTime")),
        difficulty=_difficulty(payload.get("difficulty")),
        cuisine=_clean_str(payload.get("cuisine")),
        category=_clean_str(payload.get("category")),
        tags=_sanitize_tags(payload.get("tags"), method.tag),
    )
