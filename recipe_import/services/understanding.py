# recipe_import/services/understanding.py
"""
Recipe understanding step: prompt construction, one-shot and streaming model
calls, and recovery of the JSON object from the model's text.

The streaming variant asks the model to think out loud first, one observation
per line prefixed with ``>> ``, before the fenced JSON block. Observations are
forwarded to an observer so a UI can show progress.
"""
from __future__ import annotations

import json
import logging
import re
from typing import AsyncIterator, Optional, Protocol, Sequence

from recipe_import.app.domain.errors import ParseFailureError, RecipeImportError
from recipe_import.app.domain.models import AttachedMedia, ContentBundle, MediaPart, ThinkingPhase
from recipe_import.services.bundle import build_context_text, caption_looks_like_recipe

logger = logging.getLogger(__name__)

NOTE_PREFIX = ">> "

SYSTEM_INSTRUCTION = "You are a world-class culinary AI that turns cooking content into structured recipes."

RECIPE_JSON_SHAPE = """{
  "title": "Recipe Name",
  "description": "Brief appealing description of the dish",
  "ingredients": [{"name": "ingredient", "amount": 1, "unit": "cup", "optional": false}],
  "instructions": ["Step 1: ...", "Step 2: ..."],
  "servings": 4,
  "prepTime": 15,
  "cookTime": 30,
  "difficulty": "easy|medium|hard",
  "cuisine": "italian|mexican|chinese|american|indian|japanese|thai|mediterranean|etc",
  "category": "dinner|lunch|breakfast|dessert|snack|appetizer|side|drink",
  "tags": ["tag1", "tag2"],
  "confidence": 0.85
}"""

NO_RECIPE_MARKER = '{"error": "reason", "confidence": 0}'

MEDIA_INTROS = {
    AttachedMedia.VIDEO: (
        "A COOKING VIDEO is attached. Watch it carefully: observe every ingredient shown and every "
        "cooking step, listen to the voiceover and read any text overlays."
    ),
    AttachedMedia.AUDIO: "An AUDIO RECORDING is attached. Listen for every ingredient, amount and step.",
    AttachedMedia.DOCUMENT: "A DOCUMENT is attached. Read it fully; it may contain one or more recipes, extract the main one.",
    AttachedMedia.PHOTOS: "A PHOTO is attached. Read any printed or handwritten recipe text in it.",
    AttachedMedia.THUMBNAIL: "A THUMBNAIL IMAGE is attached. Use it to identify the dish and its likely ingredients.",
}

CAPTION_IS_RECIPE_RULE = (
    "- IMPORTANT: The caption/description contains a WRITTEN RECIPE with ingredients and instructions. "
    "Treat the caption as the PRIMARY authoritative source for ingredient names, amounts and cooking steps. "
    "Use the video only to fill in gaps or add details the caption does not mention. "
    "Do NOT override caption amounts or steps with guesses from the video."
)
MEDIA_FIRST_RULES = (
    "- If the video shows steps not mentioned in text, include them.\n"
    "- If text mentions ingredients not visible in the video, include those too.\n"
    "- If information conflicts, prefer the video content."
)
COMMON_RULES = (
    "- Convert ALL amounts to numbers (e.g. \"1/2\" -> 0.5, \"a pinch\" -> 0.125, \"two\" -> 2).\n"
    "- If amounts are not specified, estimate reasonable household quantities.\n"
    "- Instructions should be clear, actionable steps.\n"
    "- Estimate prep/cook times in minutes if not explicitly stated.\n"
    "- Set confidence 0-1: >=0.85 for well-documented recipes, 0.5-0.7 for reconstructed ones."
)
THINKING_FORMAT = """IMPORTANT OUTPUT FORMAT:
First, write your observation notes as you analyze the content. Each observation MUST be on its own line and start with ">> ". Write 4-8 short observations about what you see, hear or read.
{caption_focus}
Example observations:
>> Looks like a creamy pasta dish with garlic
>> Chef is using fettuccine noodles in boiling water
>> Heavy cream is being poured into the pan

After your observations, return the recipe as a JSON code block:
```json
{shape}
```"""

PHOTO_PROMPT = """Extract the recipe from {subject}{cookbook}.

{pages_rule}
- Copy ingredient names, amounts and units exactly as printed; convert amounts to numbers ("1/2" -> 0.5).
- Keep the instructions in the printed order.
- Set confidence 0-1 based on how legible and complete the recipe is.

Return ONLY valid JSON:
{shape}

If the photos do not contain a recipe: {marker}"""

MULTI_PAGE_RULE = (
    "- The photos are consecutive pages of ONE recipe, in order. Merge the ingredients from ALL pages "
    "into a single list without duplicates, and continue the instructions across pages: a step cut at the "
    "bottom of one page continues at the top of the next."
)


class ThinkingObserver(Protocol):
    def on_phase(self, phase: ThinkingPhase) -> None: ...

    def on_note(self, note: str) -> None: ...


class NullObserver:
    def on_phase(self, phase: ThinkingPhase) -> None:
        pass

    def on_note(self, note: str) -> None:
        pass


class LanguageModel(Protocol):
    async def generate_content(
        self,
        prompt: str,
        parts: Sequence[MediaPart] = (),
        system_instruction: Optional[str] = None,
    ) -> str: ...

    def stream_content(
        self,
        prompt: str,
        parts: Sequence[MediaPart] = (),
        system_instruction: Optional[str] = None,
    ) -> AsyncIterator[str]: ...


def build_recipe_prompt(bundle: ContentBundle, thinking: bool = False) -> str:
    caption_is_recipe = caption_looks_like_recipe(bundle.content.caption_text)
    sections = [
        "Extract a complete, detailed recipe from the provided content "
        f"(sourced from {bundle.platform.value}).",
    ]

    intro = MEDIA_INTROS.get(bundle.attached)
    if intro:
        sections.append(intro)

    sections.append(f"AVAILABLE CONTEXT:\n{build_context_text(bundle)}")

    if thinking:
        caption_focus = (
            "Since the caption contains a written recipe, focus your observations on confirming the caption "
            "details and any extra visual details from the video.\n"
            if caption_is_recipe
            else ""
        )
        sections.append(THINKING_FORMAT.format(caption_focus=caption_focus, shape=RECIPE_JSON_SHAPE))

    rules = CAPTION_IS_RECIPE_RULE if caption_is_recipe else MEDIA_FIRST_RULES
    sections.append(
        "INSTRUCTIONS:\n"
        "- Combine ALL available information (video, text, captions, structured data) to produce the "
        f"most complete recipe possible.\n{rules}\n{COMMON_RULES}"
    )

    if not thinking:
        sections.append(f"Return ONLY valid JSON:\n{RECIPE_JSON_SHAPE}")
    sections.append(f"If you truly cannot identify any recipe: {NO_RECIPE_MARKER}")
    return "\n\n".join(sections)


def build_photo_prompt(page_count: int, hint_label: Optional[str] = None) -> str:
    subject = "this cookbook page" if page_count <= 1 else f"these {page_count} cookbook pages"
    return PHOTO_PROMPT.format(
        subject=subject,
        cookbook=f' from "{hint_label}"' if hint_label else "",
        pages_rule=MULTI_PAGE_RULE if page_count > 1 else "- The photo shows one cookbook page.",
        shape=RECIPE_JSON_SHAPE,
        marker=NO_RECIPE_MARKER,
    )


_FENCED_JSON_PATTERN = re.compile(r"```json\s*\n?([\s\S]*?)\n?```", re.IGNORECASE)
_FENCED_PATTERN = re.compile(r"```\s*\n?([\s\S]*?)\n?```")


def extract_json_object(text: str) -> dict:
    """Recover the recipe JSON object from model output.

    Accepts a ```json fence, a bare ``` fence, bare JSON, or JSON wrapped in
    prose (the first ``{...}`` that decodes).
    """
    if not text or not text.strip():
        raise ParseFailureError("Model returned an empty response")

    candidates = []
    for pattern in (_FENCED_JSON_PATTERN, _FENCED_PATTERN):
        m = pattern.search(text)
        if m:
            candidates.append(m.group(1))
    candidates.append(text)

    decoder = json.JSONDecoder()
    for candidate in candidates:
        stripped = candidate.strip()
        try:
            parsed = json.loads(stripped)
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed

        for start in (i for i, ch in enumerate(stripped) if ch == "{"):
            try:
                parsed, _ = decoder.raw_decode(stripped, start)
            except ValueError:
                continue
            if isinstance(parsed, dict):
                return parsed

    raise ParseFailureError("Model response did not contain a JSON object")


class _NoteStreamParser:
    """Splits streamed text into lines and reports observation notes and phase changes."""

    def __init__(self, observer: ThinkingObserver) -> None:
        self.observer = observer
        self.in_json_block = False
        self._buffer = ""

    def feed(self, chunk: str) -> None:
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")
        for line in lines:
            self._handle_line(line.strip())

    def finish(self) -> None:
        remainder = self._buffer.strip()
        self._buffer = ""
        if remainder and not self.in_json_block:
            self._emit_note(remainder)

    def _handle_line(self, line: str) -> None:
        if line.startswith("```"):
            if not self.in_json_block and line.lower().startswith("```json"):
                self.in_json_block = True
                self.observer.on_phase(ThinkingPhase.BUILDING)
            elif self.in_json_block:
                self.in_json_block = False
            return

        if not self.in_json_block:
            self._emit_note(line)

    def _emit_note(self, line: str) -> None:
        if line.startswith(NOTE_PREFIX):
            note = line[len(NOTE_PREFIX):].strip()
            if note:
                self.observer.on_note(note)


class RecipeUnderstanding:
    def __init__(self, model: LanguageModel) -> None:
        self.model = model

    def _prompt(self, bundle: ContentBundle, thinking: bool) -> str:
        if bundle.image_paths:
            return build_photo_prompt(len(bundle.parts) or len(bundle.image_paths), bundle.hint_label)
        return build_recipe_prompt(bundle, thinking=thinking)

    async def extract(self, bundle: ContentBundle) -> str:
        """One-shot model call; returns the raw response text."""
        logger.info(
            "Requesting recipe understanding: platform=%s, attached=%s, parts=%d",
            bundle.platform.value,
            bundle.attached.value,
            len(bundle.parts),
        )
        return await self.model.generate_content(
            self._prompt(bundle, thinking=False),
            bundle.parts,
            SYSTEM_INSTRUCTION,
        )

    async def extract_with_thinking(
        self,
        bundle: ContentBundle,
        observer: Optional[ThinkingObserver] = None,
    ) -> str:
        """Streaming model call that reports phases and ``>> `` notes.

        Falls back to :meth:`extract` when the stream fails or yields no
        JSON object.
        """
        observer = observer or NullObserver()
        first_phase = (
            ThinkingPhase.READING
            if caption_looks_like_recipe(bundle.content.caption_text)
            else ThinkingPhase.WATCHING
        )

        try:
            observer.on_phase(first_phase)
            try:
                text = await self._stream(bundle, observer)
                extract_json_object(text)
                return text
            except RecipeImportError as error:
                logger.warning("Streaming extraction failed, falling back to one-shot: %s", error)

            observer.on_phase(ThinkingPhase.BUILDING)
            return await self.extract(bundle)
        finally:
            observer.on_phase(ThinkingPhase.DONE)

    async def _stream(self, bundle: ContentBundle, observer: ThinkingObserver) -> str:
        parser = _NoteStreamParser(observer)
        chunks: list[str] = []
        async for chunk in self.model.stream_content(
            self._prompt(bundle, thinking=True),
            bundle.parts,
            SYSTEM_INSTRUCTION,
        ):
            chunks.append(chunk)
            parser.feed(chunk)
        parser.finish()
        return "".join(chunks)
