"""
Multi-language translation pipeline.

One source string becomes a mapping with a value for every target language:
the source language is optionally detected once, then every target language
is translated concurrently. A language whose call fails keeps the source text.

Nested payloads (a tour with its itinerary days, inclusions, ...) are walked
by ``translate_structure`` following a declared shape, so the fan-out logic
lives in one place.
"""

import asyncio
import html
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol, Sequence

from tour_admin.db.models import LANGUAGES

logger = logging.getLogger(__name__)

# Internal language keys -> provider (Google Translate) codes
PROVIDER_LANGUAGE_CODES: Dict[str, str] = {
    "uz": "uz",
    "ru": "ru",
    "en": "en",
    "sp": "es",
    "uk": "uk",
    "it": "it",
    "ge": "de",
}

_ENTITY_RE = re.compile(r"&(?:#[0-9]+|#[xX][0-9a-fA-F]+|[A-Za-z][A-Za-z0-9]*);")

# Typographic quotes are flattened and nbsp becomes a plain space
_ENTITY_OVERRIDES: Dict[str, str] = {
    "&nbsp;": " ",
    "&#8216;": "'",
    "&#8217;": "'",
    "&#8220;": '"',
    "&#8221;": '"',
}


def decode_html_entities(text: str) -> str:
    """Decode the entity-escaped text the provider returns, in a single pass"""
    def replace(match: "re.Match[str]") -> str:
        entity = match.group(0)
        if entity in _ENTITY_OVERRIDES:
            return _ENTITY_OVERRIDES[entity]
        return html.unescape(entity)

    return _ENTITY_RE.sub(replace, text)


def encode_for_display(text: str) -> str:
    return html.escape(text, quote=True)


class TranslationError(RuntimeError):
    """The translation as a whole could not run; nothing should be saved"""


class TranslateClient(Protocol):
    async def detect(self, text: str) -> Optional[str]:
        ...

    async def translate(self, text: str, target: str, source: Optional[str] = None) -> str:
        ...


class TranslationPipeline:
    def __init__(
        self,
        client: Optional[TranslateClient],
        languages: Sequence[str] = tuple(LANGUAGES),
        detect_language: bool = True,
    ):
        self.client = client
        self.languages = list(languages)
        self.detect_language = detect_language

    async def translate_text(
        self,
        text: str,
        languages: Optional[Sequence[str]] = None,
        detect_language: Optional[bool] = None,
    ) -> Dict[str, str]:
        """
        Translate ``text`` into every language in ``languages``.

        Empty input short-circuits to empty strings without any call. A
        failed detection leaves the source unpinned; a failed language falls
        back to the source text. Raises ``TranslationError`` only when no
        provider is configured.
        """
        targets = list(languages) if languages is not None else self.languages
        if not text or not text.strip():
            return {language: "" for language in targets}

        if self.client is None:
            raise TranslationError("Translation provider is not configured")

        detect = self.detect_language if detect_language is None else detect_language
        source = await self._detect(text) if detect else None

        results = await asyncio.gather(
            *(self._translate_one(text, language, source) for language in targets)
        )
        return dict(zip(targets, results))

    async def translate_structure(self, value: Any, shape: "Shape") -> Any:
        """Replace every translatable leaf of ``value`` with its translations"""
        return await translate_structure(value, shape, self.translate_text)

    async def _detect(self, text: str) -> Optional[str]:
        try:
            return await self.client.detect(text)
        except Exception as e:
            logger.warning(f"Language detection failed, letting the provider auto-detect: {e}")
            return None

    async def _translate_one(self, text: str, language: str, source: Optional[str]) -> str:
        target = PROVIDER_LANGUAGE_CODES.get(language, language)
        if source and source == target:
            return text
        try:
            translated = await self.client.translate(text, target, source)
            return decode_html_entities(translated)
        except Exception as e:
            logger.error(f"Translation to {language} failed, keeping source text: {e}")
            return text


# ===== SHAPES =====

class Shape:
    """Declares where the translatable strings are in a payload"""


@dataclass(frozen=True)
class Text(Shape):
    pass


@dataclass(frozen=True)
class ListOf(Shape):
    item: Shape


@dataclass(frozen=True)
class Record(Shape):
    # Fields not listed are copied through untouched
    fields: Mapping[str, Shape] = field(default_factory=dict)


TEXT = Text()


async def translate_structure(
    value: Any,
    shape: Shape,
    leaf: Callable[[str], Awaitable[Any]],
) -> Any:
    """Walk ``value`` along ``shape``, applying ``leaf`` to every text, preserving order"""
    if value is None:
        return None

    if isinstance(shape, Text):
        return await leaf(value if isinstance(value, str) else str(value))

    if isinstance(shape, ListOf):
        items: List[Any] = list(value or [])
        return list(await asyncio.gather(
            *(translate_structure(item, shape.item, leaf) for item in items)
        ))

    if isinstance(shape, Record):
        result = dict(value)
        names = [name for name in shape.fields if result.get(name) is not None]
        translated = await asyncio.gather(
            *(translate_structure(result[name], shape.fields[name], leaf) for name in names)
        )
        result.update(zip(names, translated))
        return result

    raise TypeError(f"Unknown shape: {shape!r}")


ITINERARY_DAY_SHAPE = Record({
    "title": TEXT,
    "description": TEXT,
    "accommodation": ListOf(TEXT),
    "meals": ListOf(TEXT),
    "includedActivities": ListOf(TEXT),
    "optionalActivities": ListOf(TEXT),
    "specialInformation": TEXT,
})

TOUR_SHAPE = Record({
    "title": TEXT,
    "description": TEXT,
    "location": TEXT,
    "itinerary": ListOf(ITINERARY_DAY_SHAPE),
    "inclusions": Record({
        "included": ListOf(TEXT),
        "notIncluded": ListOf(TEXT),
    }),
})

ARTICLE_SHAPE = Record({
    "title": TEXT,
    "description": TEXT,
})
