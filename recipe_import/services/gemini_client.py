from __future__ import annotations

import logging
from typing import AsyncIterator, Optional, Sequence

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from recipe_import.app.domain.errors import (
    GeminiConfigurationError,
    RateLimitedError,
    UnderstandingServiceError,
)
from recipe_import.app.domain.models import MediaPart

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_TEMPERATURE = 0.3


def _translate_api_error(err: genai_errors.APIError) -> Exception:
    status_code = getattr(err, "code", None) or getattr(err, "status_code", None)
    message = str(err)
    if status_code == 429 or "RESOURCE_EXHAUSTED" in message:
        return RateLimitedError("Gemini API quota reached. Try again in a few moments.")
    return UnderstandingServiceError(f"Gemini request failed: {message}")


class GeminiClient:
    def __init__(self, api_key: str, model_name: str = DEFAULT_MODEL) -> None:
        self.api_key = api_key
        self.model_name = model_name
        self._client = self._configure_api()

    def _configure_api(self) -> genai.Client:
        if not self.api_key:
            raise GeminiConfigurationError("Missing Google API key.")
        return genai.Client(api_key=self.api_key)

    def _build_contents(self, prompt: str, parts: Sequence[MediaPart]) -> list:
        contents: list = [prompt]
        contents.extend(types.Part.from_bytes(data=p.data, mime_type=p.mime_type) for p in parts)
        return contents

    def _config(self, system_instruction: Optional[str]) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=DEFAULT_TEMPERATURE,
        )

    async def generate_content(
        self,
        prompt: str,
        parts: Sequence[MediaPart] = (),
        system_instruction: Optional[str] = None,
    ) -> str:
        try:
            response = await self._client.aio.models.generate_content(
                model=self.model_name,
                contents=self._build_contents(prompt, parts),
                config=self._config(system_instruction),
            )
        except genai_errors.APIError as err:
            raise _translate_api_error(err) from err
        except httpx.HTTPError as err:
            raise UnderstandingServiceError(f"Gemini request failed: {err}") from err

        if not response.text:
            raise UnderstandingServiceError("Model response did not include text content.")
        return response.text

    async def stream_content(
        self,
        prompt: str,
        parts: Sequence[MediaPart] = (),
        system_instruction: Optional[str] = None,
    ) -> AsyncIterator[str]:
        """Yield response text chunks as they arrive."""
        try:
            stream = await self._client.aio.models.generate_content_stream(
                model=self.model_name,
                contents=self._build_contents(prompt, parts),
                config=self._config(system_instruction),
            )
            async for chunk in stream:
                if chunk.text:
                    yield chunk.text
        except genai_errors.APIError as err:
            raise _translate_api_error(err) from err
        except httpx.HTTPError as err:
            raise UnderstandingServiceError(f"Gemini request failed: {err}") from err
