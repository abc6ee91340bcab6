from __future__ import annotations


class RecipeImportError(Exception):
    def __init__(self, reason: str = "Recipe import failed"):
        super().__init__(reason)
        self.reason = reason


class FetchFailureError(RecipeImportError):
    def __init__(self, url: str, reason: str = "Request failed"):
        super().__init__(f"Failed to fetch {url}: {reason}")
        self.url = url
        self.fetch_reason = reason


class ParseFailureError(RecipeImportError):
    def __init__(self, reason: str = "Malformed content"):
        super().__init__(reason)


class UnsupportedSourceError(RecipeImportError):
    def __init__(self, url: str, kind: str):
        super().__init__(f"No usable content could be extracted from {kind} source: {url}")
        self.url = url
        self.kind = kind


class OversizedMediaError(RecipeImportError):
    def __init__(self, url: str, size_bytes: int, max_bytes: int):
        super().__init__(
            f"Media at {url} is {size_bytes} bytes, above the {max_bytes} byte limit"
        )
        self.url = url
        self.size_bytes = size_bytes
        self.max_bytes = max_bytes


class ModelDeclinedExtractionError(RecipeImportError):
    def __init__(self, reason: str = "No recipe found"):
        super().__init__(f"Model could not extract a recipe: {reason}")
        self.model_reason = reason


class RateLimitedError(RecipeImportError):
    pass


class UnderstandingServiceError(RecipeImportError):
    pass


class GeminiConfigurationError(RecipeImportError):
    pass
