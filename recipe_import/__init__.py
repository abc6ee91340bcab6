# recipe_import/__init__.py
from recipe_import.app.domain.errors import RecipeImportError
from recipe_import.app.domain.models import (
    ExtractedRecipe,
    ExtractionMethod,
    ImportResult,
    Ingredient,
    SourceKind,
    ThinkingPhase,
)
from recipe_import.services.ids import detect_source_kind
from recipe_import.services.ingest import (
    RecipeImporter,
    import_from_multiple_photos,
    import_from_photo,
    import_from_url,
)
from recipe_import.services.understanding import NullObserver, ThinkingObserver

__all__ = [
    "ExtractedRecipe",
    "ExtractionMethod",
    "ImportResult",
    "Ingredient",
    "NullObserver",
    "RecipeImportError",
    "RecipeImporter",
    "SourceKind",
    "ThinkingObserver",
    "ThinkingPhase",
    "detect_source_kind",
    "import_from_multiple_photos",
    "import_from_photo",
    "import_from_url",
]
