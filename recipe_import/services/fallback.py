"""
Ordered fallback ladders for platform extractors.

A technique is a named async callable returning an optional value. The
ladder runs techniques left to right and stops at the first one that
produces something; failures are logged, never aggregated or re-raised.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, Sequence, TypeVar

import httpx

from recipe_import.app.domain.errors import RecipeImportError
from recipe_import.app.domain.models import PlatformContent

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Exceptions that mean "this technique did not work". Anything else is a bug.
TECHNIQUE_ERRORS = (
    httpx.HTTPError,
    httpx.InvalidURL,
    RecipeImportError,
    ValueError,
    KeyError,
    TypeError,
    IndexError,
    AttributeError,
)


@dataclass(frozen=True)
class Technique(Generic[T]):
    name: str
    run: Callable[[], Awaitable[Optional[T]]]


def _is_present(value: object) -> bool:
    if value is None:
        return False
    if isinstance(value, PlatformContent):
        return not value.is_empty()
    if isinstance(value, (str, list, dict, tuple)):
        return bool(value)
    return True


async def run_technique(technique: Technique[T], label: str = "") -> Optional[T]:
    try:
        value = await technique.run()
    except TECHNIQUE_ERRORS as error:
        logger.warning("Technique %s failed%s: %s", technique.name, f" for {label}" if label else "", error)
        return None

    if not _is_present(value):
        logger.debug("Technique %s produced nothing%s", technique.name, f" for {label}" if label else "")
        return None
    return value


async def first_success(
    techniques: Sequence[Technique[T]],
    label: str = "",
) -> Optional[T]:
    """Return the first non-empty technique result, or ``None``."""
    for technique in techniques:
        value = await run_technique(technique, label)
        if value is not None:
            logger.debug("Technique %s succeeded%s", technique.name, f" for {label}" if label else "")
            return value
    return None


def merge_in_order(
    base: PlatformContent,
    partials: Sequence[Optional[PlatformContent]],
) -> PlatformContent:
    """Fold partial records into ``base`` in the given precedence order."""
    merged = base
    for partial in partials:
        merged = merged.merge(partial)
    return merged


async def fill_missing(
    content: PlatformContent,
    field_name: str,
    techniques: Sequence[Technique[PlatformContent]],
    label: str = "",
) -> PlatformContent:
    """Run a ladder of partial-record techniques while ``field_name`` is empty.

    Each partial is merged into the accumulator (filling only absent fields)
    and the ladder stops as soon as the target field is set.
    """
    for technique in techniques:
        if getattr(content, field_name):
            break
        partial = await run_technique(technique, label)
        content = content.merge(partial)
    return content
