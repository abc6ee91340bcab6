from __future__ import annotations

import pytest

from recipe_import.app.config import Settings
from recipe_import.app.domain.errors import ModelDeclinedExtractionError, ParseFailureError
from recipe_import.app.domain.models import ExtractionMethod, Ingredient
from recipe_import.services.normalizer import normalize_recipe, parse_amount

SOURCE_URL = "https://example.com/recipe"


def normalize(payload, method: ExtractionMethod = ExtractionMethod.TEXT, **kwargs):
    return normalize_recipe(payload, SOURCE_URL, "web", method, **kwargs)


class TestParseAmount:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("1/2", 0.5),
            ("0.5", 0.5),
            ("", 1.0),
            ("abc", 1.0),
            ("1 1/2", 1.5),
            ("3/4 cup", 0.75),
            ("1½", 1.5),
            ("½", 0.5),
            ("2 cups", 2.0),
            ("1,5", 1.5),
            (" 10 ", 10.0),
            ("1/0", 1.0),
            ("9" * 400 + "/1", 1.0),
            ("9" * 400, 1.0),
            ("9" * 400 + " 1/2", 1.0),
            ("9" * 5000 + "/1", 1.0),
            (2, 2.0),
            (0.25, 0.25),
            (0, 0.0),
            (-2, 1.0),
            (float("nan"), 1.0),
            (float("inf"), 1.0),
            (True, 1.0),
            (None, 1.0),
            ([1], 1.0),
        ],
    )
    def test_values(self, value, expected: float) -> None:
        assert parse_amount(value) == pytest.approx(expected)

    def test_always_returns_float(self) -> None:
        assert isinstance(parse_amount(3), float)
        assert isinstance(parse_amount("a pinch"), float)


class TestNormalizeRecipe:
    def test_full_payload(self) -> None:
        recipe = normalize(
            {
                "title": "  Pancakes ",
                "description": "Fluffy",
                "ingredients": [
                    {"name": "flour", "amount": "1 1/2", "unit": "cup"},
                    {"name": "salt", "amount": "a pinch", "unit": "", "optional": "yes"},
                    {"name": "blueberries", "amount": 1, "unit": "cup", "optional": True},
                ],
                "instructions": ["Mix", "  ", "Fry"],
                "servings": "6",
                "prepTime": "10",
                "cookTime": 15.0,
                "difficulty": "Easy",
                "cuisine": "american",
                "category": "breakfast",
                "tags": ["Breakfast", "breakfast", 3, "sweet"],
                "confidence": 0.9,
            }
        )

        assert recipe.title == "Pancakes"
        assert recipe.ingredients == [
            Ingredient(name="flour", amount=1.5, unit="cup"),
            Ingredient(name="salt", amount=1.0, unit="piece"),
            Ingredient(name="blueberries", amount=1.0, unit="cup", optional=True),
        ]
        assert recipe.instructions == ["Mix", "Fry"]
        assert recipe.servings == 6
        assert recipe.prep_time == 10
        assert recipe.cook_time == 15
        assert recipe.difficulty == "easy"
        assert recipe.tags == ["Breakfast", "sweet", "extracted:text"]
        assert recipe.extraction_confidence == pytest.approx(0.9)
        assert recipe.source_url == SOURCE_URL
        assert recipe.source_platform == "web"

    def test_defaults_for_sparse_payload(self) -> None:
        recipe = normalize({"title": "Toast"})

        assert recipe.description == ""
        assert recipe.ingredients == []
        assert recipe.instructions == []
        assert recipe.servings == 4
        assert recipe.prep_time is None
        assert recipe.difficulty is None
        assert recipe.tags == ["extracted:text"]
        assert recipe.extraction_confidence == pytest.approx(0.7)

    def test_malformed_fields_never_raise(self) -> None:
        recipe = normalize(
            {
                "title": "Stew",
                "ingredients": ["2 carrots", None, {"amount": "1/4"}, 42],
                "instructions": "Chop\n\nSimmer for an hour",
                "servings": -3,
                "prepTime": "about ten",
                "cookTime": -5,
                "difficulty": "impossible",
                "tags": "comfort",
                "confidence": "high",
            }
        )

        assert recipe.ingredients == [
            Ingredient(name="2 carrots", amount=1.0, unit="piece"),
            Ingredient(name="Ingredient 3", amount=0.25, unit="piece"),
        ]
        assert recipe.instructions == ["Chop", "Simmer for an hour"]
        assert recipe.servings == 4
        assert recipe.prep_time is None
        assert recipe.cook_time is None
        assert recipe.difficulty is None
        assert recipe.tags == ["extracted:text"]
        assert recipe.extraction_confidence == pytest.approx(0.7)

    def test_instruction_objects(self) -> None:
        recipe = normalize(
            {
                "title": "Rice",
                "instructions": [{"text": "Rinse"}, {"description": "Boil"}, {"step": "Rest"}, {"other": "x"}],
            }
        )
        assert recipe.instructions == ["Rinse", "Boil", "Rest"]

    @pytest.mark.parametrize("value, expected", [(1.7, 1.0), (-0.2, 0.0), ("0.8", 0.8)])
    def test_confidence_is_clamped(self, value, expected: float) -> None:
        assert normalize({"title": "x", "confidence": value}).extraction_confidence == pytest.approx(expected)

    def test_visual_fallback_penalty(self) -> None:
        recipe = normalize({"title": "Cake", "confidence": 0.9}, ExtractionMethod.VISUAL_FALLBACK)

        assert recipe.extraction_confidence == pytest.approx(0.54)
        assert recipe.tags == ["extracted:visual-fallback"]

    def test_penalty_comes_from_settings(self) -> None:
        config = Settings(VISUAL_FALLBACK_PENALTY=0.5, DEFAULT_CONFIDENCE=0.8)

        recipe = normalize({"title": "Cake"}, ExtractionMethod.VISUAL_FALLBACK, config=config)

        assert recipe.extraction_confidence == pytest.approx(0.4)

    def test_error_marker_is_model_decline(self) -> None:
        with pytest.raises(ModelDeclinedExtractionError) as error:
            normalize({"error": "No food in this video", "confidence": 0})

        assert error.value.model_reason == "No food in this video"

    @pytest.mark.parametrize("payload", [{"title": "  "}, {"description": "no title"}, {"title": None}])
    def test_missing_title(self, payload) -> None:
        with pytest.raises(ParseFailureError) as error:
            normalize(payload)

        assert error.value.reason == "no recipe title"

    @pytest.mark.parametrize("payload", [None, [], "text"])
    def test_non_object_payload(self, payload) -> None:
        with pytest.raises(ParseFailureError):
            normalize(payload)
